"""
Quiz session controller for the Quiz Journey bot.
Manages quiz drafts, running sessions and screen state per Discord channel.
"""
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from .config_manager import ConfigManager
from .levels import LevelCatalog
from .models import (
    Difficulty,
    Level,
    Question,
    QuizSessionConfig,
    RandomQuizSettings,
    ScoreTally,
    SessionSnapshot,
)
from .question_bank import QuestionBank
from .question_editor import QuestionEditError, QuestionListEditor
from .question_source import GenerationCriteria, GenerationError, QuestionSource, StaticQuestionSource
from .reporter import SessionReport, SessionReporter
from .router import InvalidTransitionError, RouteEvent, Screen, ScreenRouter
from .session_engine import (
    EmptyQuestionSet,
    InvalidSessionStateError,
    QuizSessionEngine,
    SessionObserver,
)

LEVEL_QUIZ = "level"
CUSTOM_QUIZ = "custom"


class QuizControllerError(Exception):
    """Base exception for quiz controller errors."""
    pass


class SessionConflictError(QuizControllerError):
    """Raised when a channel already has a running quiz or a pending generation."""
    pass


class SessionNotFoundError(QuizControllerError):
    """Raised when attempting to operate on a non-existent session or draft."""
    pass


class InvalidQuizSetupError(QuizControllerError):
    """Raised when a draft cannot be started as it stands."""
    pass


@dataclass
class QuizDraft:
    """A level or custom quiz being assembled before it starts."""
    kind: str
    title: str
    editor: QuestionListEditor = field(default_factory=QuestionListEditor)
    level: Optional[Level] = None

    @property
    def question_count(self) -> int:
        return len(self.editor)


class _ChannelObserver(SessionObserver):
    """Routes engine events through the controller before the presentation observer."""

    def __init__(self, controller: "QuizController", channel_id: int, observer: SessionObserver):
        self._controller = controller
        self._channel_id = channel_id
        self._observer = observer

    async def question_started(self, snapshot, question):
        await self._observer.question_started(snapshot, question)

    async def time_updated(self, snapshot, remaining_time):
        await self._observer.time_updated(snapshot, remaining_time)

    async def answer_recorded(self, snapshot, result):
        await self._observer.answer_recorded(snapshot, result)

    async def session_finished(self, snapshot, tally):
        self._controller._on_session_finished(self._channel_id, snapshot, tally)
        await self._observer.session_finished(snapshot, tally)


def _default_engine_factory(observer: SessionObserver, session_id: str) -> QuizSessionEngine:
    return QuizSessionEngine(observer=observer, session_id=session_id)


class QuizController:
    """
    Orchestrates quiz setup and sessions across Discord channels.

    Each channel has at most one draft and one running session. Public
    operations return result dicts with 'success', 'error' and
    'user_message' keys instead of raising.
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        generator: QuestionSource,
        level_catalog: Optional[LevelCatalog] = None,
        question_bank: Optional[QuestionBank] = None,
        engine_factory: Optional[Callable[[SessionObserver, str], QuizSessionEngine]] = None
    ):
        """
        Initialize the quiz controller.

        Args:
            config_manager: Instance for quiz defaults
            generator: Question source used for level, custom and random quizzes
            level_catalog: Fixed levels, built on demand if omitted
            question_bank: Optional offline question banks for custom quizzes
            engine_factory: Creates a session engine from an observer and a session id
        """
        self.logger = logging.getLogger(__name__)
        self.config_manager = config_manager
        self.generator = generator
        self.level_catalog = level_catalog or LevelCatalog()
        self.question_bank = question_bank
        self.router = ScreenRouter()
        self.reporter = SessionReporter()
        self._engine_factory = engine_factory or _default_engine_factory

        self._engines: Dict[int, QuizSessionEngine] = {}
        self._drafts: Dict[int, QuizDraft] = {}
        self._generating: set = set()

        self.logger.info("QuizController initialized")

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def open_level_map(self, channel_id: int) -> Dict[str, Any]:
        """Move a channel to the level selection screen."""
        try:
            self._ensure_idle(channel_id)
            self._drafts.pop(channel_id, None)
            screen = self._go_to(channel_id, RouteEvent.OPEN_MAP, Screen.LEVEL_SELECTION)
            return {'success': True, 'screen': screen, 'message': "Level map opened"}
        except Exception as e:
            return self._error_result(channel_id, e, "open level map")

    def play_again(self, channel_id: int) -> Dict[str, Any]:
        """Leave the stats screen and return to the level map."""
        try:
            screen = self.router.dispatch(channel_id, RouteEvent.PLAY_AGAIN)
            self.reporter.clear(channel_id)
            return {'success': True, 'screen': screen, 'message': "Returned to level map"}
        except Exception as e:
            return self._error_result(channel_id, e, "play again")

    def get_screen(self, channel_id: int) -> Screen:
        return self.router.current(channel_id)

    # ------------------------------------------------------------------
    # Drafts (level and custom quizzes)
    # ------------------------------------------------------------------

    async def prepare_level_quiz(self, channel_id: int, level_id: int) -> Dict[str, Any]:
        """
        Generate the questions of a level into an editable draft.

        Args:
            channel_id: Discord channel identifier
            level_id: Level number (1-200)

        Returns:
            Dictionary with success status and the draft
        """
        try:
            self._ensure_idle(channel_id)
            level = self.level_catalog.get(level_id)
            if level is None:
                raise SessionNotFoundError(f"Level {level_id} does not exist")

            self._go_to(channel_id, RouteEvent.SELECT_LEVEL, Screen.LEVEL_QUIZ_SETUP)
            self._drafts.pop(channel_id, None)

            criteria = GenerationCriteria.for_level(level, self.config_manager.get_level_question_count())
            questions = await self._generate(channel_id, criteria)

            draft = QuizDraft(kind=LEVEL_QUIZ, title=level.title, level=level)
            draft.editor.add(questions)
            self._drafts[channel_id] = draft
            self.logger.info(f"Prepared level {level.id} quiz for channel {channel_id} with {len(questions)} questions")
            return {
                'success': True,
                'draft': draft,
                'message': f"Level {level.id} quiz prepared with {len(questions)} questions"
            }
        except Exception as e:
            return self._error_result(channel_id, e, "prepare level quiz")

    def prepare_custom_quiz(self, channel_id: int, title: str) -> Dict[str, Any]:
        """Open an empty custom quiz draft with the given title."""
        try:
            self._ensure_idle(channel_id)
            self._go_to(channel_id, RouteEvent.OPEN_CUSTOM_SETUP, Screen.CUSTOM_QUIZ_SETUP)
            draft = QuizDraft(kind=CUSTOM_QUIZ, title=(title or "").strip())
            self._drafts[channel_id] = draft
            self.logger.info(f"Opened custom quiz draft '{draft.title}' for channel {channel_id}")
            return {'success': True, 'draft': draft, 'message': "Custom quiz draft opened"}
        except Exception as e:
            return self._error_result(channel_id, e, "prepare custom quiz")

    async def add_topic_questions(self, channel_id: int, level_id: int) -> Dict[str, Any]:
        """Generate questions for a topic and append them to the custom draft."""
        try:
            draft = self._get_draft(channel_id, CUSTOM_QUIZ)
            level = self.level_catalog.get(level_id)
            if level is None:
                raise SessionNotFoundError(f"Level {level_id} does not exist")

            criteria = GenerationCriteria.for_level(level, self.config_manager.get_custom_topic_question_count())
            questions = await self._generate(channel_id, criteria)
            total = draft.editor.add(questions)
            return {
                'success': True,
                'draft': draft,
                'added': len(questions),
                'message': f"Added {len(questions)} questions about '{level.title}', draft has {total}"
            }
        except Exception as e:
            return self._error_result(channel_id, e, "add topic questions")

    def add_bank_questions(self, channel_id: int, bank_name: str) -> Dict[str, Any]:
        """Append the questions of a loaded question bank to the custom draft."""
        try:
            draft = self._get_draft(channel_id, CUSTOM_QUIZ)
            if self.question_bank is None or not self.question_bank.bank_exists(bank_name):
                raise SessionNotFoundError(f"Question bank '{bank_name}' not found")

            # Fresh ids so the same bank can be added twice
            questions = [
                Question(q.text, q.options, q.answer, q.time)
                for q in self.question_bank.get_bank_questions(bank_name)
            ]
            total = draft.editor.add(questions)
            return {
                'success': True,
                'draft': draft,
                'added': len(questions),
                'message': f"Added {len(questions)} questions from bank '{bank_name}', draft has {total}"
            }
        except Exception as e:
            return self._error_result(channel_id, e, "add bank questions")

    def get_draft(self, channel_id: int) -> Optional[QuizDraft]:
        return self._drafts.get(channel_id)

    def rename_draft(self, channel_id: int, title: str) -> Dict[str, Any]:
        try:
            draft = self._get_draft(channel_id)
            draft.title = (title or "").strip()
            return {'success': True, 'draft': draft, 'message': f"Draft renamed to '{draft.title}'"}
        except Exception as e:
            return self._error_result(channel_id, e, "rename draft")

    def edit_question(
        self,
        channel_id: int,
        question_id: str,
        text: Optional[str] = None,
        options: Optional[Sequence[str]] = None,
        answer: Optional[str] = None
    ) -> Dict[str, Any]:
        try:
            question = self._get_draft(channel_id).editor.update(question_id, text, options, answer)
            return {'success': True, 'question': question, 'message': "Question updated"}
        except Exception as e:
            return self._error_result(channel_id, e, "edit question")

    def delete_question(self, channel_id: int, question_id: str) -> Dict[str, Any]:
        try:
            question = self._get_draft(channel_id).editor.delete(question_id)
            return {'success': True, 'question': question, 'message': "Question deleted"}
        except Exception as e:
            return self._error_result(channel_id, e, "delete question")

    def set_question_time(self, channel_id: int, question_id: str, seconds: Optional[int]) -> Dict[str, Any]:
        try:
            question = self._get_draft(channel_id).editor.set_time(question_id, seconds)
            return {
                'success': True,
                'question': question,
                'message': f"Question time set to {question.time_limit} seconds"
            }
        except Exception as e:
            return self._error_result(channel_id, e, "set question time")

    def move_question(self, channel_id: int, from_index: int, to_index: int) -> Dict[str, Any]:
        try:
            self._get_draft(channel_id).editor.move(from_index, to_index)
            return {'success': True, 'message': f"Question moved from {from_index + 1} to {to_index + 1}"}
        except Exception as e:
            return self._error_result(channel_id, e, "move question")

    def cancel_setup(self, channel_id: int) -> Dict[str, Any]:
        """Discard the draft and go back to the level map."""
        try:
            self._ensure_idle(channel_id)
            self._drafts.pop(channel_id, None)
            screen = self.router.dispatch(channel_id, RouteEvent.BACK)
            return {'success': True, 'screen': screen, 'message': "Setup cancelled"}
        except Exception as e:
            return self._error_result(channel_id, e, "cancel setup")

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    async def start_draft_quiz(self, channel_id: int, observer: SessionObserver) -> Dict[str, Any]:
        """
        Start the channel's level or custom draft as a quiz session.

        Returns:
            Dictionary with success status and the session handle
        """
        try:
            self._ensure_idle(channel_id)
            draft = self._get_draft(channel_id)
            if not draft.title:
                raise InvalidQuizSetupError("A custom quiz needs a title")
            if draft.editor.is_empty():
                raise InvalidQuizSetupError("A quiz needs at least one question")

            questions = await StaticQuestionSource(draft.editor.questions).fetch()
            config = QuizSessionConfig(title=draft.title, questions=questions)
            result = await self._start_session(channel_id, config, observer)
            self._drafts.pop(channel_id, None)
            return result
        except Exception as e:
            return self._error_result(channel_id, e, "start quiz")

    async def start_random_quiz(
        self,
        channel_id: int,
        observer: SessionObserver,
        count: Optional[int] = None,
        difficulty: Optional[Any] = None,
        time_per_question: Optional[int] = None
    ) -> Dict[str, Any]:
        """
        Generate and start an unthemed quiz.

        Omitted settings fall back to the configured defaults.

        Returns:
            Dictionary with success status and the session handle
        """
        try:
            self._ensure_idle(channel_id)
            settings = self._resolve_random_settings(count, difficulty, time_per_question)
            self._go_to(channel_id, RouteEvent.OPEN_RANDOM_SETUP, Screen.RANDOM_QUIZ_SETUP)

            criteria = GenerationCriteria(count=settings.count, difficulty=settings.difficulty)
            questions = await self._generate(channel_id, criteria)
            questions = [q.with_time(settings.time_per_question) for q in questions]

            config = QuizSessionConfig(title=f"تحدي عشوائي ({settings.difficulty.value})", questions=questions)
            return await self._start_session(channel_id, config, observer)
        except Exception as e:
            return self._error_result(channel_id, e, "start random quiz")

    async def submit_answer(self, channel_id: int, choice: str) -> Dict[str, Any]:
        try:
            engine = self._get_engine(channel_id)
            recorded = await engine.submit_answer(choice)
            return {'success': True, 'recorded': recorded}
        except Exception as e:
            return self._error_result(channel_id, e, "submit answer")

    async def stop_quiz(self, channel_id: int) -> Dict[str, Any]:
        """
        Stop a running quiz early. No report is produced.

        Returns:
            Dictionary with success status and final progress
        """
        try:
            engine = self._get_engine(channel_id)
            snapshot = engine.snapshot()
            await engine.close()
            self._engines.pop(channel_id, None)
            self.router.dispatch(channel_id, RouteEvent.BACK)
            self.logger.info(f"Stopped quiz session {engine.session_id} in channel {channel_id}")
            return {
                'success': True,
                'message': f"Quiz '{snapshot.title}' stopped",
                'progress': {
                    'current_question': snapshot.current_number,
                    'total_questions': snapshot.total_questions,
                    'correct': snapshot.tally.correct,
                }
            }
        except Exception as e:
            return self._error_result(channel_id, e, "stop quiz")

    def has_active_session(self, channel_id: int) -> bool:
        engine = self._engines.get(channel_id)
        return engine is not None and not engine.is_finished and not engine.is_closed

    def get_engine(self, channel_id: int) -> Optional[QuizSessionEngine]:
        return self._engines.get(channel_id)

    def get_snapshot(self, channel_id: int) -> Optional[SessionSnapshot]:
        engine = self._engines.get(channel_id)
        return engine.snapshot() if engine is not None else None

    def get_latest_report(self, channel_id: int) -> Optional[SessionReport]:
        return self.reporter.latest(channel_id)

    def get_session_status_summary(self, channel_id: int) -> str:
        """Human-readable status of the channel."""
        snapshot = self.get_snapshot(channel_id) if self.has_active_session(channel_id) else None
        if snapshot is not None:
            return (
                f"📝 **{snapshot.title}**\n"
                f"السؤال {snapshot.current_number} من {snapshot.total_questions}\n"
                f"الإجابات الصحيحة: {snapshot.tally.correct} | الخاطئة: {snapshot.tally.incorrect}\n"
                f"الوقت المتبقي: {snapshot.time_remaining} ثانية"
            )

        draft = self._drafts.get(channel_id)
        if draft is not None:
            return f"🛠️ جارٍ إعداد التحدي **{draft.title or 'بدون اسم'}** ({draft.question_count} سؤال)"

        return "لا يوجد تحدٍ نشط في هذه القناة. ابدأ بالأمر `/levels`."

    def get_all_active_sessions(self) -> Dict[int, SessionSnapshot]:
        return {
            channel_id: engine.snapshot()
            for channel_id, engine in self._engines.items()
            if self.has_active_session(channel_id)
        }

    async def shutdown(self) -> None:
        """Close every running session and the generator."""
        for channel_id in list(self._engines):
            await self._engines.pop(channel_id).close()
        await self.generator.close()
        self.logger.info("QuizController shut down")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _ensure_idle(self, channel_id: int) -> None:
        if self.has_active_session(channel_id):
            raise SessionConflictError(f"Channel {channel_id} already has a running quiz")
        if channel_id in self._generating:
            raise SessionConflictError(f"Channel {channel_id} is already generating questions")

    def _go_to(self, channel_id: int, event: RouteEvent, target: Screen) -> Screen:
        if self.router.current(channel_id) is target:
            return target
        return self.router.dispatch(channel_id, event)

    def _get_draft(self, channel_id: int, kind: Optional[str] = None) -> QuizDraft:
        draft = self._drafts.get(channel_id)
        if draft is None or (kind is not None and draft.kind != kind):
            raise SessionNotFoundError(f"No {kind or 'quiz'} draft for channel {channel_id}")
        return draft

    def _get_engine(self, channel_id: int) -> QuizSessionEngine:
        if not self.has_active_session(channel_id):
            raise SessionNotFoundError(f"No running quiz in channel {channel_id}")
        return self._engines[channel_id]

    async def _generate(self, channel_id: int, criteria: GenerationCriteria) -> List[Question]:
        if channel_id in self._generating:
            raise SessionConflictError(f"Channel {channel_id} is already generating questions")
        self._generating.add(channel_id)
        try:
            return await self.generator.fetch(criteria)
        finally:
            self._generating.discard(channel_id)

    async def _start_session(
        self,
        channel_id: int,
        config: QuizSessionConfig,
        observer: SessionObserver
    ) -> Dict[str, Any]:
        session_id = f"{channel_id}-{uuid.uuid4().hex[:8]}"
        engine = self._engine_factory(_ChannelObserver(self, channel_id, observer), session_id)
        self._engines[channel_id] = engine
        try:
            handle = await engine.start(config)
        except Exception:
            self._engines.pop(channel_id, None)
            raise
        self.router.dispatch(channel_id, RouteEvent.START_QUIZ)
        self.logger.info(
            f"Started quiz session {session_id} in channel {channel_id}: "
            f"'{config.title}' with {len(config.questions)} questions"
        )
        return {
            'success': True,
            'handle': handle,
            'message': f"Quiz '{config.title}' started with {len(config.questions)} questions"
        }

    def _on_session_finished(self, channel_id: int, snapshot: SessionSnapshot, tally: ScoreTally) -> None:
        self.reporter.record(channel_id, snapshot.title, tally)
        self._engines.pop(channel_id, None)
        try:
            self.router.dispatch(channel_id, RouteEvent.QUIZ_FINISHED)
        except InvalidTransitionError as e:
            self.logger.warning(f"Could not route finished session in channel {channel_id}: {e}")

    def _resolve_random_settings(self, count, difficulty, time_per_question) -> RandomQuizSettings:
        defaults = self.config_manager.get_random_quiz_settings()
        manager = self.config_manager

        count = defaults.count if count is None else count
        if not isinstance(count, int) or not manager.MIN_RANDOM_COUNT <= count <= manager.MAX_RANDOM_COUNT:
            raise InvalidQuizSetupError(
                f"Question count must be between {manager.MIN_RANDOM_COUNT} and {manager.MAX_RANDOM_COUNT}"
            )

        if difficulty is None:
            difficulty = defaults.difficulty
        elif not isinstance(difficulty, Difficulty):
            try:
                difficulty = Difficulty.from_value(str(difficulty))
            except ValueError as e:
                raise InvalidQuizSetupError(str(e)) from e

        time_per_question = defaults.time_per_question if time_per_question is None else time_per_question
        if time_per_question not in manager.TIMER_OPTIONS:
            raise InvalidQuizSetupError(
                f"Time per question must be one of {', '.join(str(t) for t in manager.TIMER_OPTIONS)}"
            )

        return RandomQuizSettings(count=count, difficulty=difficulty, time_per_question=time_per_question)

    def _error_result(self, channel_id: int, error: Exception, operation: str) -> Dict[str, Any]:
        if isinstance(error, (QuizControllerError, QuestionEditError, GenerationError, InvalidTransitionError)):
            self.logger.warning(f"{operation} failed for channel {channel_id}: {error}")
        else:
            self.logger.error(f"Error in {operation} for channel {channel_id}: {error}", exc_info=True)
        return {
            'success': False,
            'error': str(error),
            'operation': operation,
            'user_message': self._get_user_friendly_error_message(error, operation)
        }

    def _get_user_friendly_error_message(self, error: Exception, operation: str) -> str:
        if isinstance(error, SessionConflictError):
            return "❌ يوجد تحدٍ قيد التشغيل أو قيد الإعداد في هذه القناة. أوقفه أولاً باستخدام `/stop`."

        elif isinstance(error, SessionNotFoundError):
            if "draft" in str(error):
                return "❌ لا يوجد تحدٍ قيد الإعداد. ابدأ باختيار مستوى أو إنشاء تحدٍ مخصص."
            if "Level" in str(error):
                return "❌ هذا المستوى غير موجود. المستويات من 1 إلى 200."
            if "bank" in str(error):
                return "❌ بنك الأسئلة غير موجود."
            return "❌ لا يوجد تحدٍ نشط في هذه القناة."

        elif isinstance(error, InvalidQuizSetupError):
            if "title" in str(error):
                return "❌ الرجاء كتابة اسم للتحدي وإضافة سؤال واحد على الأقل."
            if "at least one question" in str(error):
                return "❌ يجب أن يحتوي التحدي على سؤال واحد على الأقل."
            return f"❌ إعدادات غير صالحة: {error}"

        elif isinstance(error, (GenerationError, QuestionEditError)):
            return error.user_message

        elif isinstance(error, EmptyQuestionSet):
            return "❌ لا توجد أسئلة لبدء التحدي."

        elif isinstance(error, InvalidSessionStateError):
            return "❌ حالة التحدي غير صالحة. الرجاء إيقافه وإعادة البدء."

        elif isinstance(error, InvalidTransitionError):
            return "❌ لا يمكن تنفيذ هذا الإجراء الآن."

        else:
            return f"❌ حدث خطأ غير متوقع أثناء {operation}. الرجاء المحاولة مرة أخرى."
