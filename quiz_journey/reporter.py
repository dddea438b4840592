"""
End-of-quiz reporting: score, motivational message and mistake review.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Tuple

from .models import MistakeRecord, ScoreTally

logger = logging.getLogger(__name__)

EXCELLENT_THRESHOLD = 0.7
VERY_GOOD_THRESHOLD = 0.5

EXCELLENT_MESSAGE = "ممتاز! أداء رائع!"
VERY_GOOD_MESSAGE = "جيد جداً! استمر في التعلم."
ENCOURAGING_MESSAGE = "لا بأس، كل رحلة تبدأ بخطوة. حاول مرة أخرى!"

# Shown in place of the recorded sentinel for timed-out questions
TIMED_OUT_LABEL = "نفذ الوقت"


def motivational_message(tally: ScoreTally) -> str:
    ratio = tally.accuracy
    if ratio >= EXCELLENT_THRESHOLD:
        return EXCELLENT_MESSAGE
    if ratio >= VERY_GOOD_THRESHOLD:
        return VERY_GOOD_MESSAGE
    return ENCOURAGING_MESSAGE


def displayed_answer(record: MistakeRecord) -> str:
    return TIMED_OUT_LABEL if record.timed_out else record.selected_answer


@dataclass(frozen=True)
class ReviewItem:
    """One missed question as shown in the mistake review."""
    question: str
    your_answer: str
    correct_answer: str
    timed_out: bool


@dataclass(frozen=True)
class SessionReport:
    """Summary of a finished quiz."""
    title: str
    correct: int
    incorrect: int
    total: int
    score: int
    percentage: int
    message: str
    review: Tuple[ReviewItem, ...]

    @property
    def has_mistakes(self) -> bool:
        return bool(self.review)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "correct": self.correct,
            "incorrect": self.incorrect,
            "total": self.total,
            "score": self.score,
            "percentage": self.percentage,
            "message": self.message,
            "review": [
                {
                    "question": item.question,
                    "yourAnswer": item.your_answer,
                    "correctAnswer": item.correct_answer,
                    "timedOut": item.timed_out,
                }
                for item in self.review
            ],
        }


class SessionReporter:
    """Builds reports from final tallies and keeps the most recent one per channel."""

    def __init__(self):
        self._reports: Dict[int, SessionReport] = {}

    @staticmethod
    def build_report(title: str, tally: ScoreTally) -> SessionReport:
        review: List[ReviewItem] = [
            ReviewItem(
                question=record.question.text,
                your_answer=displayed_answer(record),
                correct_answer=record.question.answer,
                timed_out=record.timed_out
            )
            for record in tally.wrong_questions
        ]
        return SessionReport(
            title=title,
            correct=tally.correct,
            incorrect=tally.incorrect,
            total=tally.total,
            score=tally.score,
            percentage=round(tally.accuracy * 100),
            message=motivational_message(tally),
            review=tuple(review)
        )

    def record(self, channel_id: int, title: str, tally: ScoreTally) -> SessionReport:
        report = self.build_report(title, tally)
        self._reports[channel_id] = report
        logger.info(
            f"Quiz '{title}' in channel {channel_id} finished with score {report.score} "
            f"({report.correct}/{report.total})"
        )
        return report

    def latest(self, channel_id: int):
        return self._reports.get(channel_id)

    def clear(self, channel_id: int) -> None:
        self._reports.pop(channel_id, None)
