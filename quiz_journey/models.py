"""
Core data models for the Quiz Journey bot.
"""
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


DEFAULT_QUESTION_TIME = 20
MIN_QUESTION_TIME = 5
MAX_QUESTION_TIME = 120
OPTIONS_PER_QUESTION = 4
POINTS_PER_CORRECT_ANSWER = 10

# Recorded as the user's answer when a question runs out of time
TIMED_OUT_ANSWER = "timed out"


class Difficulty(Enum):
    """Difficulty levels understood by the question generator."""
    EASY = "سهل"
    MEDIUM = "متوسط"
    HARD = "صعب"

    @classmethod
    def from_value(cls, value: str) -> "Difficulty":
        """Resolve a difficulty from its Arabic value or its English name."""
        for member in cls:
            if value == member.value or value.upper() == member.name:
                return member
        raise ValueError(f"Unknown difficulty: {value!r}")


def new_question_id() -> str:
    """Create the opaque identity token used for list operations."""
    return uuid.uuid4().hex


def clamp_question_time(seconds: Optional[int]) -> int:
    """Bound an edited time budget to the allowed range."""
    if seconds is None or seconds < MIN_QUESTION_TIME:
        return MIN_QUESTION_TIME
    if seconds > MAX_QUESTION_TIME:
        return MAX_QUESTION_TIME
    return seconds


@dataclass(frozen=True)
class Question:
    """Represents a single multiple-choice quiz question."""
    text: str
    options: Tuple[str, ...]
    answer: str
    time: Optional[int] = None
    id: str = field(default_factory=new_question_id)

    @property
    def time_limit(self) -> int:
        """Seconds allowed for this question."""
        return self.time or DEFAULT_QUESTION_TIME

    def is_correct(self, choice: str) -> bool:
        return choice == self.answer

    def with_time(self, seconds: int) -> "Question":
        return replace(self, time=clamp_question_time(seconds))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "question": self.text,
            "options": list(self.options),
            "correctAnswer": self.answer,
            "time": self.time_limit,
        }


@dataclass(frozen=True)
class Level:
    """One of the fixed topic levels of the journey."""
    id: int
    title: str
    difficulty: Difficulty
    description: str


@dataclass(frozen=True)
class RandomQuizSettings:
    """Configuration for an unthemed, randomly generated quiz."""
    count: int = 10
    difficulty: Difficulty = Difficulty.MEDIUM
    time_per_question: int = DEFAULT_QUESTION_TIME


@dataclass(frozen=True)
class QuizSessionConfig:
    """Immutable input of a quiz session."""
    title: str
    questions: Tuple[Question, ...]

    def __post_init__(self):
        # Accept any sequence but always store a tuple
        if not isinstance(self.questions, tuple):
            object.__setattr__(self, "questions", tuple(self.questions))


@dataclass(frozen=True)
class MistakeRecord:
    """A question the user missed and what they answered."""
    question: Question
    selected_answer: str

    @property
    def timed_out(self) -> bool:
        return self.selected_answer == TIMED_OUT_ANSWER


@dataclass
class ScoreTally:
    """Running counters for a quiz session."""
    correct: int = 0
    incorrect: int = 0
    wrong_questions: List[MistakeRecord] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.correct + self.incorrect

    @property
    def score(self) -> int:
        return self.correct * POINTS_PER_CORRECT_ANSWER

    @property
    def accuracy(self) -> float:
        return self.correct / self.total if self.total else 0.0

    def record_correct(self) -> None:
        self.correct += 1

    def record_mistake(self, question: Question, selected_answer: str) -> None:
        self.incorrect += 1
        self.wrong_questions.append(MistakeRecord(question, selected_answer))

    def copy(self) -> "ScoreTally":
        return ScoreTally(self.correct, self.incorrect, list(self.wrong_questions))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "correct": self.correct,
            "incorrect": self.incorrect,
            "total": self.total,
            "wrongQuestions": [
                {"question": record.question.to_dict(), "selectedAnswer": record.selected_answer}
                for record in self.wrong_questions
            ],
        }


@dataclass
class SessionState:
    """Mutable state of one quiz run, owned by the session engine."""
    current_index: int = 0
    time_remaining: int = 0
    answered: bool = False
    selected_answer: Optional[str] = None
    tally: ScoreTally = field(default_factory=ScoreTally)


class SessionPhase(Enum):
    """Top-level states of the session state machine."""
    ACTIVE = "active"
    FINISHED = "finished"


@dataclass(frozen=True)
class SessionOutcome:
    """Result of advancing a session."""
    phase: SessionPhase
    tally: Optional[ScoreTally] = None

    @property
    def is_finished(self) -> bool:
        return self.phase is SessionPhase.FINISHED

    @classmethod
    def continuing(cls) -> "SessionOutcome":
        return cls(SessionPhase.ACTIVE)

    @classmethod
    def finished(cls, tally: ScoreTally) -> "SessionOutcome":
        return cls(SessionPhase.FINISHED, tally)


class AnswerFeedback(Enum):
    """Transient feedback signal emitted when a question resolves."""
    CORRECT = "correct"
    INCORRECT = "incorrect"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class AnswerResult:
    """What happened when the current question was resolved."""
    index: int
    question: Question
    selected_answer: str
    feedback: AnswerFeedback

    @property
    def is_correct(self) -> bool:
        return self.feedback is AnswerFeedback.CORRECT


@dataclass(frozen=True)
class SessionSnapshot:
    """Read-only view of a running session for presentation."""
    session_id: str
    title: str
    phase: SessionPhase
    current_index: int
    total_questions: int
    time_remaining: int
    answered: bool
    selected_answer: Optional[str]
    tally: ScoreTally

    @property
    def current_number(self) -> int:
        return self.current_index + 1
