"""
Quiz session engine for the Quiz Journey bot.
Drives one quiz run: per-question countdown, answer evaluation, scoring,
mistake tracking and advancement to the final tally.
"""
import asyncio
import logging
import time
import uuid
from typing import Awaitable, Callable, List, Optional

from .models import (
    AnswerFeedback,
    AnswerResult,
    Question,
    QuizSessionConfig,
    ScoreTally,
    SessionOutcome,
    SessionPhase,
    SessionSnapshot,
    SessionState,
    TIMED_OUT_ANSWER,
)

# Set up logger for timer operations
logger = logging.getLogger(__name__)

DEFAULT_TICK_INTERVAL = 1.0
ANSWER_FEEDBACK_DELAY = 2.0
TIMEOUT_FEEDBACK_DELAY = 1.5


class SessionEngineError(Exception):
    """Base exception for session engine errors."""
    pass


class EmptyQuestionSet(SessionEngineError):
    """Raised when a session is started without any questions."""
    pass


class InvalidSessionStateError(SessionEngineError):
    """Raised when an operation is not allowed in the current session state."""
    pass


class TimerLifecycleLogger:
    """Structured logging for timer lifecycle events."""

    @staticmethod
    def log_timer_created(session_id: str, question_index: int, duration: int) -> None:
        """Log creation of a question timer."""
        logger.debug(
            f"Timer lifecycle: CREATED - Session {session_id}, Question {question_index + 1}, Duration {duration}s",
            extra={
                'event_type': 'timer_created',
                'session_id': session_id,
                'question_index': question_index,
                'duration': duration,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_update(session_id: str, remaining_time: int, total_duration: int) -> None:
        """Log timer update events (throttled to avoid spam)."""
        # Log only at specific intervals to avoid log spam
        if remaining_time % 10 == 0 or remaining_time <= 5:
            progress_percent = ((total_duration - remaining_time) / total_duration) * 100
            logger.debug(
                f"Timer lifecycle: UPDATE - Session {session_id}, Remaining {remaining_time}s ({progress_percent:.1f}% complete)",
                extra={
                    'event_type': 'timer_update',
                    'session_id': session_id,
                    'remaining_time': remaining_time,
                    'total_duration': total_duration,
                    'progress_percent': progress_percent,
                    'timestamp': time.time()
                }
            )

    @staticmethod
    def log_timer_completion(session_id: str, completion_type: str, total_duration: int) -> None:
        """Log timer completion (natural expiry or cancellation)."""
        logger.debug(
            f"Timer lifecycle: COMPLETED - Session {session_id}, Type {completion_type}, Duration {total_duration}s",
            extra={
                'event_type': 'timer_completed',
                'session_id': session_id,
                'completion_type': completion_type,
                'total_duration': total_duration,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_state_transition(session_id: str, from_state: str, to_state: str, reason: str = None) -> None:
        """Log session state machine transitions."""
        logger.info(
            f"Session lifecycle: STATE_TRANSITION - Session {session_id}, {from_state} -> {to_state}" +
            (f" ({reason})" if reason else ""),
            extra={
                'event_type': 'session_state_transition',
                'session_id': session_id,
                'from_state': from_state,
                'to_state': to_state,
                'reason': reason,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_ignored_event(session_id: str, event: str, reason: str) -> None:
        """Log a duplicate or late event that was ignored."""
        logger.debug(
            f"Session lifecycle: IGNORED - Session {session_id}, Event {event}: {reason}",
            extra={
                'event_type': 'session_event_ignored',
                'session_id': session_id,
                'event': event,
                'reason': reason,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_error(session_id: str, error_type: str, error_message: str, operation: str) -> None:
        """Log timer-related errors with context."""
        logger.error(
            f"Timer lifecycle: ERROR - Session {session_id}, Operation {operation}, Type {error_type}: {error_message}",
            extra={
                'event_type': 'timer_error',
                'session_id': session_id,
                'error_type': error_type,
                'error_message': error_message,
                'operation': operation,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_race_condition_detected(session_id: str, details: str) -> None:
        """Log race condition detection."""
        logger.warning(
            f"Timer lifecycle: RACE_CONDITION - Session {session_id}: {details}",
            extra={
                'event_type': 'timer_race_condition',
                'session_id': session_id,
                'details': details,
                'timestamp': time.time()
            }
        )


def _is_current_task(task: Optional[asyncio.Task]) -> bool:
    try:
        return task is not None and task is asyncio.current_task()
    except RuntimeError:
        return False


class QuizTimer:
    """Countdown timer for a single quiz question."""

    def __init__(self, session_id: str, duration: int, tick_interval: float = DEFAULT_TICK_INTERVAL):
        """
        Initialize the timer.

        Args:
            session_id: Session the timer belongs to (for logging)
            duration: Countdown length in ticks (seconds)
            tick_interval: Real seconds between ticks
        """
        self._task: Optional[asyncio.Task] = None
        self._session_id = session_id
        self._total_duration = duration
        self._remaining_time = duration
        self._tick_interval = tick_interval
        self._is_cancelled = False
        self._expired = False

    def start(
        self,
        update_callback: Callable[["QuizTimer", int], Awaitable[None]],
        expiry_callback: Callable[["QuizTimer"], Awaitable[None]]
    ) -> asyncio.Task:
        """
        Start the countdown as a background task.

        Args:
            update_callback: Awaited after every tick with the remaining time
            expiry_callback: Awaited once when the countdown reaches zero

        Returns:
            The asyncio task running the countdown
        """
        if self._task is not None:
            raise RuntimeError("Timer already started")
        self._task = asyncio.create_task(self._run_countdown(update_callback, expiry_callback))
        return self._task

    async def _run_countdown(self, update_callback, expiry_callback) -> None:
        try:
            while self._remaining_time > 0 and not self._is_cancelled:
                await asyncio.sleep(self._tick_interval)
                if self._is_cancelled:
                    break
                self._remaining_time -= 1
                TimerLifecycleLogger.log_timer_update(
                    self._session_id,
                    self._remaining_time,
                    self._total_duration
                )
                await update_callback(self, self._remaining_time)

            if self._is_cancelled:
                TimerLifecycleLogger.log_timer_completion(self._session_id, "cancelled", self._total_duration)
                return

            self._expired = True
            TimerLifecycleLogger.log_timer_completion(self._session_id, "natural_expiry", self._total_duration)
            await expiry_callback(self)

        except asyncio.CancelledError:
            self._is_cancelled = True
            TimerLifecycleLogger.log_timer_completion(self._session_id, "asyncio_cancelled", self._total_duration)
            raise
        except Exception as e:
            TimerLifecycleLogger.log_timer_error(
                self._session_id,
                "countdown_execution_error",
                str(e),
                "_run_countdown"
            )
            raise

    def cancel(self) -> None:
        """Stop the countdown; no further callbacks will be delivered."""
        self._is_cancelled = True
        # The expiry callback runs inside the task itself and may cancel it
        if self._task and not self._task.done() and not _is_current_task(self._task):
            self._task.cancel()

    @property
    def task(self) -> Optional[asyncio.Task]:
        return self._task

    @property
    def is_cancelled(self) -> bool:
        """Check if timer is cancelled."""
        return self._is_cancelled

    @property
    def is_expired(self) -> bool:
        return self._expired

    @property
    def remaining_time(self) -> int:
        """Get remaining time in seconds."""
        return self._remaining_time


class SessionObserver:
    """
    Receives events from a running session.

    All hooks are optional; the presentation layer overrides the ones it
    needs. Exceptions raised by a hook are logged and do not affect the
    session.
    """

    async def question_started(self, snapshot: SessionSnapshot, question: Question) -> None:
        pass

    async def time_updated(self, snapshot: SessionSnapshot, remaining_time: int) -> None:
        pass

    async def answer_recorded(self, snapshot: SessionSnapshot, result: AnswerResult) -> None:
        pass

    async def session_finished(self, snapshot: SessionSnapshot, tally: ScoreTally) -> None:
        pass


class SessionHandle:
    """Caller-side handle for a started quiz session."""

    def __init__(self, engine: "QuizSessionEngine"):
        self._engine = engine
        self._finished = asyncio.get_running_loop().create_future()

    @property
    def session_id(self) -> str:
        return self._engine.session_id

    @property
    def engine(self) -> "QuizSessionEngine":
        return self._engine

    def snapshot(self) -> SessionSnapshot:
        return self._engine.snapshot()

    def done(self) -> bool:
        return self._finished.done()

    async def submit_answer(self, choice: str) -> bool:
        return await self._engine.submit_answer(choice)

    async def wait_finished(self, timeout: Optional[float] = None) -> Optional[ScoreTally]:
        """
        Wait until the session ends.

        Returns:
            The final tally, or None if the session was closed early
        """
        return await asyncio.wait_for(asyncio.shield(self._finished), timeout)

    async def close(self) -> None:
        await self._engine.close()

    def _resolve(self, tally: Optional[ScoreTally]) -> None:
        if not self._finished.done():
            self._finished.set_result(tally)


class QuizSessionEngine:
    """
    State machine for one quiz run.

    States are Active(index, answered) and Finished. A question resolves
    exactly once, either through submit_answer or through its timer
    expiring; the engine then advances after a short feedback delay.
    Duplicate or late events are ignored.
    """

    def __init__(
        self,
        observer: Optional[SessionObserver] = None,
        session_id: Optional[str] = None,
        tick_interval: float = DEFAULT_TICK_INTERVAL,
        answer_delay: float = ANSWER_FEEDBACK_DELAY,
        timeout_delay: float = TIMEOUT_FEEDBACK_DELAY,
        auto_advance: bool = True
    ):
        """
        Initialize the session engine.

        Args:
            observer: Receives question, timer, answer and completion events
            session_id: Identifier used in logs, generated if omitted
            tick_interval: Real seconds per countdown tick
            answer_delay: Seconds to show feedback after an active answer
            timeout_delay: Seconds to show feedback after a timeout
            auto_advance: Advance automatically after the feedback delay
        """
        self.session_id = session_id or uuid.uuid4().hex[:12]
        self._observer = observer or SessionObserver()
        self._tick_interval = tick_interval
        self._answer_delay = answer_delay
        self._timeout_delay = timeout_delay
        self._auto_advance = auto_advance

        self._config: Optional[QuizSessionConfig] = None
        self._state: Optional[SessionState] = None
        self._phase: Optional[SessionPhase] = None
        self._outcome: Optional[SessionOutcome] = None
        self._handle: Optional[SessionHandle] = None
        self._timer: Optional[QuizTimer] = None
        self._advance_task: Optional[asyncio.Task] = None
        self._closed = False

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def start(self, config: QuizSessionConfig) -> SessionHandle:
        """
        Start the session at question 0 and begin its countdown.

        Raises:
            EmptyQuestionSet: If the config has no questions
            InvalidSessionStateError: If this engine was already started
        """
        if self._phase is not None or self._closed:
            raise InvalidSessionStateError(f"Session {self.session_id} has already been started")
        if not config.questions:
            raise EmptyQuestionSet("Cannot start a quiz session without questions")

        self._config = config
        self._state = SessionState()
        self._phase = SessionPhase.ACTIVE
        self._handle = SessionHandle(self)

        logger.info(
            f"Starting quiz session {self.session_id}: title='{config.title}', questions={len(config.questions)}"
        )
        TimerLifecycleLogger.log_state_transition(self.session_id, "idle", "active(0, unanswered)", "session started")

        self._begin_question()
        await self._notify("question_started", self.snapshot(), self.current_question)
        return self._handle

    async def submit_answer(self, choice: str) -> bool:
        """
        Record the user's answer for the current question.

        Returns:
            True if the answer was recorded, False if it was ignored
        """
        if not self._accepts_resolution("submit_answer"):
            return False

        question = self.current_question
        feedback = AnswerFeedback.CORRECT if question.is_correct(choice) else AnswerFeedback.INCORRECT
        result = self._resolve_question(choice, feedback)
        self._schedule_advance(self._answer_delay)
        await self._notify("answer_recorded", self.snapshot(), result)
        return True

    async def on_timeout(self) -> bool:
        """
        Resolve the current question as timed out.

        Returns:
            True if the timeout was recorded, False if it was ignored
        """
        if not self._accepts_resolution("on_timeout"):
            return False

        result = self._resolve_question(TIMED_OUT_ANSWER, AnswerFeedback.TIMED_OUT)
        self._schedule_advance(self._timeout_delay)
        await self._notify("answer_recorded", self.snapshot(), result)
        return True

    async def advance(self) -> SessionOutcome:
        """
        Move past the resolved current question.

        Returns:
            Continuing while questions remain, Finished with the tally after the last one

        Raises:
            InvalidSessionStateError: If the session has not started or the
                current question is still unanswered
        """
        if self._phase is SessionPhase.FINISHED:
            return self._outcome
        if self._phase is None or self._closed:
            raise InvalidSessionStateError(f"Session {self.session_id} is not running")
        if not self._state.answered:
            raise InvalidSessionStateError(
                f"Question {self._state.current_index + 1} of session {self.session_id} has not been answered"
            )

        self._cancel_pending_advance()
        state = self._state

        if state.current_index + 1 < len(self._config.questions):
            previous = state.current_index
            state.current_index += 1
            state.answered = False
            state.selected_answer = None
            self._begin_question()
            TimerLifecycleLogger.log_state_transition(
                self.session_id,
                f"active({previous}, answered)",
                f"active({state.current_index}, unanswered)",
                "advance"
            )
            await self._notify("question_started", self.snapshot(), self.current_question)
            return SessionOutcome.continuing()

        outcome = self._finish()
        await self._notify("session_finished", self.snapshot(), outcome.tally)
        return outcome

    async def close(self) -> None:
        """Stop the session early, cancelling every pending timer and advancement."""
        if self._closed:
            return
        self._closed = True
        self._cancel_timer()
        self._cancel_pending_advance()
        if self._phase is SessionPhase.ACTIVE:
            TimerLifecycleLogger.log_state_transition(self.session_id, "active", "closed", "session closed early")
        if self._handle is not None:
            self._handle._resolve(None)

    def snapshot(self) -> SessionSnapshot:
        """Get a read-only view of the session."""
        if self._state is None:
            raise InvalidSessionStateError(f"Session {self.session_id} has not been started")
        return SessionSnapshot(
            session_id=self.session_id,
            title=self._config.title,
            phase=self._phase,
            current_index=self._state.current_index,
            total_questions=len(self._config.questions),
            time_remaining=self._state.time_remaining,
            answered=self._state.answered,
            selected_answer=self._state.selected_answer,
            tally=self._state.tally.copy()
        )

    @property
    def current_question(self) -> Optional[Question]:
        if self._state is None:
            return None
        return self._config.questions[self._state.current_index]

    @property
    def phase(self) -> Optional[SessionPhase]:
        return self._phase

    @property
    def is_finished(self) -> bool:
        return self._phase is SessionPhase.FINISHED

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def handle(self) -> Optional[SessionHandle]:
        return self._handle

    @property
    def timer(self) -> Optional[QuizTimer]:
        return self._timer

    def pending_tasks(self) -> List[asyncio.Task]:
        """Tasks that may still mutate the session."""
        tasks = []
        if self._timer and self._timer.task and not self._timer.task.done():
            tasks.append(self._timer.task)
        if self._advance_task and not self._advance_task.done():
            tasks.append(self._advance_task)
        return tasks

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _accepts_resolution(self, event: str) -> bool:
        if self._phase is None:
            raise InvalidSessionStateError(f"Session {self.session_id} has not been started")
        if self._closed:
            TimerLifecycleLogger.log_ignored_event(self.session_id, event, "session closed")
            return False
        if self._phase is SessionPhase.FINISHED:
            TimerLifecycleLogger.log_ignored_event(self.session_id, event, "session finished")
            return False
        if self._state.answered:
            TimerLifecycleLogger.log_ignored_event(
                self.session_id, event, f"question {self._state.current_index + 1} already answered"
            )
            return False
        return True

    def _resolve_question(self, selected: str, feedback: AnswerFeedback) -> AnswerResult:
        state = self._state
        question = self.current_question

        # Latch first so a timer callback cannot resolve the question again
        state.answered = True
        state.selected_answer = selected
        self._cancel_timer()

        if feedback is AnswerFeedback.CORRECT:
            state.tally.record_correct()
        else:
            state.tally.record_mistake(question, selected)

        TimerLifecycleLogger.log_state_transition(
            self.session_id,
            f"active({state.current_index}, unanswered)",
            f"active({state.current_index}, answered)",
            feedback.value
        )
        return AnswerResult(
            index=state.current_index,
            question=question,
            selected_answer=selected,
            feedback=feedback
        )

    def _begin_question(self) -> None:
        """Reset the countdown for the current question."""
        self._cancel_timer()
        question = self.current_question
        self._state.time_remaining = question.time_limit

        timer = QuizTimer(self.session_id, question.time_limit, self._tick_interval)
        self._timer = timer
        TimerLifecycleLogger.log_timer_created(self.session_id, self._state.current_index, question.time_limit)
        timer.start(self._handle_timer_tick, self._handle_timer_expiry)

    def _finish(self) -> SessionOutcome:
        self._cancel_timer()
        self._cancel_pending_advance()
        self._phase = SessionPhase.FINISHED
        self._outcome = SessionOutcome.finished(self._state.tally.copy())
        TimerLifecycleLogger.log_state_transition(
            self.session_id,
            f"active({self._state.current_index}, answered)",
            "finished",
            "last question resolved"
        )
        logger.info(
            f"Quiz session {self.session_id} finished: correct={self._outcome.tally.correct}, "
            f"incorrect={self._outcome.tally.incorrect}, total={self._outcome.tally.total}"
        )
        self._handle._resolve(self._outcome.tally)
        return self._outcome

    def _is_live_timer(self, timer: QuizTimer, event: str) -> bool:
        if timer is not self._timer:
            TimerLifecycleLogger.log_race_condition_detected(
                self.session_id, f"{event} from a replaced timer was dropped"
            )
            return False
        if self._closed or self._phase is not SessionPhase.ACTIVE or self._state.answered:
            TimerLifecycleLogger.log_ignored_event(self.session_id, event, "question no longer running")
            return False
        return True

    async def _handle_timer_tick(self, timer: QuizTimer, remaining_time: int) -> None:
        if not self._is_live_timer(timer, "timer_tick"):
            return
        self._state.time_remaining = remaining_time
        await self._notify("time_updated", self.snapshot(), remaining_time)

    async def _handle_timer_expiry(self, timer: QuizTimer) -> None:
        if not self._is_live_timer(timer, "timer_expiry"):
            return
        await self.on_timeout()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()

    def _schedule_advance(self, delay: float) -> None:
        if not self._auto_advance:
            return
        self._cancel_pending_advance()
        self._advance_task = asyncio.create_task(self._advance_after(delay))

    async def _advance_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        if self._closed:
            return
        try:
            await self.advance()
        except InvalidSessionStateError as e:
            TimerLifecycleLogger.log_timer_error(self.session_id, "advance_rejected", str(e), "_advance_after")

    def _cancel_pending_advance(self) -> None:
        task = self._advance_task
        if task is not None and not task.done() and not _is_current_task(task):
            task.cancel()
        self._advance_task = None

    async def _notify(self, hook: str, *args) -> None:
        try:
            await getattr(self._observer, hook)(*args)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(
                f"Session observer hook '{hook}' failed for session {self.session_id}: {e}",
                exc_info=True
            )
