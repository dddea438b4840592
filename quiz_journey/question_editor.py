"""
Editing of a question list before a quiz starts.
"""
import logging
import random
from dataclasses import replace
from typing import Iterable, List, Optional, Sequence

from .models import OPTIONS_PER_QUESTION, Question, clamp_question_time

logger = logging.getLogger(__name__)


class QuestionEditError(Exception):
    """Raised when an edit would break the question list invariants."""

    def __init__(self, message: str, user_message: Optional[str] = None):
        super().__init__(message)
        self.user_message = user_message or message


class QuestionListEditor:
    """
    Ordered, editable list of questions for a level or custom quiz.

    Questions are addressed by their id for edits and by position for moves.
    """

    def __init__(self, questions: Optional[Iterable[Question]] = None):
        self._questions: List[Question] = list(questions or [])

    def __len__(self) -> int:
        return len(self._questions)

    def __iter__(self):
        return iter(self._questions)

    @property
    def questions(self) -> List[Question]:
        return list(self._questions)

    def is_empty(self) -> bool:
        return not self._questions

    def get(self, question_id: str) -> Question:
        return self._questions[self.index_of(question_id)]

    def index_of(self, question_id: str) -> int:
        for index, question in enumerate(self._questions):
            if question.id == question_id:
                return index
        raise QuestionEditError(f"Question {question_id} not found", "❌ السؤال غير موجود")

    def add(self, questions: Sequence[Question]) -> int:
        """
        Append questions to the end of the list.

        Returns:
            Number of questions in the list afterwards
        """
        self._questions.extend(questions)
        logger.debug(f"Added {len(questions)} questions, list now has {len(self._questions)}")
        return len(self._questions)

    def update(
        self,
        question_id: str,
        text: Optional[str] = None,
        options: Optional[Sequence[str]] = None,
        answer: Optional[str] = None
    ) -> Question:
        """
        Replace the content of a question.

        Raises:
            QuestionEditError: If the text or an option is blank, or the correct
                answer is no longer one of the options
        """
        index = self.index_of(question_id)
        current = self._questions[index]

        new_options = tuple(options) if options is not None else current.options
        new_answer = answer if answer is not None else current.answer
        new_text = text if text is not None else current.text

        if len(new_options) != OPTIONS_PER_QUESTION:
            raise QuestionEditError(
                f"A question needs exactly {OPTIONS_PER_QUESTION} options, got {len(new_options)}",
                f"❌ يجب أن يحتوي السؤال على {OPTIONS_PER_QUESTION} خيارات"
            )
        if not new_text.strip():
            raise QuestionEditError("Question text cannot be empty", "❌ نص السؤال لا يمكن أن يكون فارغًا")
        if not all(isinstance(opt, str) and opt.strip() for opt in new_options):
            raise QuestionEditError("Options cannot be empty", "❌ لا يمكن أن يكون أي خيار فارغًا")
        if new_answer not in new_options:
            raise QuestionEditError(
                "The correct answer is no longer among the options",
                "الإجابة الصحيحة المحددة لم تعد موجودة في الخيارات. الرجاء تحديثها."
            )

        updated = replace(current, text=new_text, options=new_options, answer=new_answer)
        self._questions[index] = updated
        return updated

    def delete(self, question_id: str) -> Question:
        index = self.index_of(question_id)
        return self._questions.pop(index)

    def set_time(self, question_id: str, seconds: Optional[int]) -> Question:
        """Set a question's time budget, clamped to the allowed range."""
        index = self.index_of(question_id)
        updated = replace(self._questions[index], time=clamp_question_time(seconds))
        self._questions[index] = updated
        return updated

    def set_time_for_all(self, seconds: int) -> None:
        self._questions = [replace(q, time=clamp_question_time(seconds)) for q in self._questions]

    def move(self, from_index: int, to_index: int) -> None:
        """
        Move the question at from_index so it ends up at to_index.

        Raises:
            QuestionEditError: If either index is out of range
        """
        size = len(self._questions)
        if not (0 <= from_index < size) or not (0 <= to_index < size):
            raise QuestionEditError(
                f"Cannot move question {from_index} to {to_index} in a list of {size}",
                "❌ موضع السؤال غير صالح"
            )
        question = self._questions.pop(from_index)
        self._questions.insert(to_index, question)

    def shuffle(self) -> None:
        random.shuffle(self._questions)

    def clear(self) -> None:
        self._questions.clear()
