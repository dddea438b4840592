"""
Question sources for quiz sessions.
Fetches questions from the generation proxy or from pre-assembled lists and
validates them before they can enter a session.
"""
import asyncio
import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Union

import aiohttp

from .models import (
    DEFAULT_QUESTION_TIME,
    Difficulty,
    Level,
    OPTIONS_PER_QUESTION,
    Question,
    clamp_question_time,
)
from .prompts import build_generation_config, build_prompt

logger = logging.getLogger(__name__)

GENERATION_FAILED_MESSAGE = "فشل في توليد الأسئلة. الرجاء المحاولة مرة أخرى."


class GenerationError(Exception):
    """Raised when questions could not be fetched or were malformed."""

    def __init__(self, message: str, user_message: str = GENERATION_FAILED_MESSAGE):
        super().__init__(message)
        self.user_message = user_message


@dataclass(frozen=True)
class GenerationCriteria:
    """What to ask the question generator for."""
    count: int
    difficulty: Difficulty = Difficulty.MEDIUM
    topic_title: Optional[str] = None
    topic_description: Optional[str] = None

    @classmethod
    def for_level(cls, level: Level, count: int) -> "GenerationCriteria":
        return cls(
            count=count,
            difficulty=level.difficulty,
            topic_title=level.title,
            topic_description=level.description
        )

    @property
    def is_themed(self) -> bool:
        return bool(self.topic_title)


def _try_parse_json(text: str) -> Optional[list]:
    try:
        data = json.loads(text)
        if isinstance(data, list):
            return data
    except (json.JSONDecodeError, TypeError):
        pass
    return None


def parse_generated_text(raw_text: Optional[str]) -> List[Dict[str, Any]]:
    """
    Parse generator output into a list of raw question dicts.

    Raises:
        GenerationError: If no JSON array can be extracted
    """
    if not raw_text or not raw_text.strip():
        raise GenerationError("Generator returned an empty response")

    text = raw_text.strip()

    # Try direct JSON parse
    questions = _try_parse_json(text)

    # Try extracting from markdown code block
    if questions is None:
        match = re.search(r"```(?:json)?\s*(\[.+?])\s*```", text, re.DOTALL)
        if match:
            questions = _try_parse_json(match.group(1))

    # Try finding array in the text
    if questions is None:
        match = re.search(r"(\[\s*\{.+}\s*])", text, re.DOTALL)
        if match:
            questions = _try_parse_json(match.group(1))

    if questions is None:
        logger.error("Failed to parse generator response as a JSON array")
        raise GenerationError("Generator response is not a JSON array of questions")

    return questions


def _normalize_raw_question(item: Dict[str, Any]) -> Dict[str, Any]:
    """Trim whitespace around the text, options and correct answer."""
    options = item.get("options")
    if isinstance(options, list):
        options = [opt.strip() if isinstance(opt, str) else opt for opt in options]

    correct = item.get("correctAnswer")
    if isinstance(correct, str):
        correct = correct.strip()

    text = item.get("question")
    normalized = dict(item)
    normalized["question"] = text.strip() if isinstance(text, str) else text
    normalized["options"] = options
    normalized["correctAnswer"] = correct
    return normalized


def validate_raw_question(item: Any, position: int) -> None:
    """
    Check one raw generated question.

    Raises:
        GenerationError: If the question is malformed
    """
    if not isinstance(item, dict):
        raise GenerationError(f"Question {position} must be an object")

    text = item.get("question")
    if not isinstance(text, str) or not text:
        raise GenerationError(f"Question {position} is missing its text")

    options = item.get("options")
    if not isinstance(options, list) or len(options) != OPTIONS_PER_QUESTION:
        raise GenerationError(
            f"Question {position} must have exactly {OPTIONS_PER_QUESTION} options"
        )
    if not all(isinstance(opt, str) and opt for opt in options):
        raise GenerationError(f"Question {position} has an empty or non-text option")
    if len(set(options)) != OPTIONS_PER_QUESTION:
        raise GenerationError(f"Question {position} has duplicate options")

    correct = item.get("correctAnswer")
    if not isinstance(correct, str) or correct not in options:
        raise GenerationError(f"Question {position} has a correct answer that is not among its options")


def ingest_raw_questions(
    raw_questions: Any,
    time_per_question: int = DEFAULT_QUESTION_TIME
) -> List[Question]:
    """
    Validate raw generated questions and turn them into Question objects.

    Any malformed item rejects the whole batch so that bad data never
    reaches a session.

    Raises:
        GenerationError: If the batch is empty or any question is malformed
    """
    if not isinstance(raw_questions, list) or not raw_questions:
        raise GenerationError("Generator returned an empty or invalid array of questions")

    questions = []
    for position, item in enumerate(raw_questions, start=1):
        if isinstance(item, dict):
            item = _normalize_raw_question(item)
        validate_raw_question(item, position)
        questions.append(Question(
            text=item["question"],
            options=tuple(item["options"]),
            answer=item["correctAnswer"],
            time=clamp_question_time(item["time"]) if isinstance(item.get("time"), int) else time_per_question
        ))
    return questions


def validate_question(question: Question) -> None:
    """
    Check an assembled Question before it enters a session.

    Raises:
        GenerationError: If the question would break the session invariants
    """
    if not question.text:
        raise GenerationError("A question has no text")
    if len(question.options) != OPTIONS_PER_QUESTION:
        raise GenerationError(
            f"Question '{question.text}' must have exactly {OPTIONS_PER_QUESTION} options"
        )
    if question.answer not in question.options:
        raise GenerationError(f"Question '{question.text}' has a correct answer that is not among its options")


class QuestionSource(ABC):
    """Supplies an ordered, finite list of questions for a session."""

    @abstractmethod
    async def fetch(self, criteria: Optional[GenerationCriteria] = None) -> List[Question]:
        """
        Fetch questions matching the criteria.

        Raises:
            GenerationError: If questions are unavailable or malformed
        """

    async def close(self) -> None:
        """Release any resources held by the source."""
        pass


class StaticQuestionSource(QuestionSource):
    """Question source over a pre-assembled list (level or custom quizzes)."""

    def __init__(self, questions: Sequence[Union[Question, Dict[str, Any]]], time_per_question: int = DEFAULT_QUESTION_TIME):
        self._questions = list(questions)
        self._time_per_question = time_per_question

    async def fetch(self, criteria: Optional[GenerationCriteria] = None) -> List[Question]:
        questions = []
        raw_items = [item for item in self._questions if not isinstance(item, Question)]
        converted = iter(ingest_raw_questions(raw_items, self._time_per_question)) if raw_items else iter(())

        for item in self._questions:
            question = item if isinstance(item, Question) else next(converted)
            validate_question(question)
            questions.append(question)

        if criteria is not None and criteria.count > 0:
            questions = questions[:criteria.count]
        return questions


class GeminiQuestionSource(QuestionSource):
    """Generates questions through the generation proxy."""

    def __init__(
        self,
        proxy_url: str,
        request_timeout: float = 60.0,
        time_per_question: int = DEFAULT_QUESTION_TIME,
        session: Optional[aiohttp.ClientSession] = None
    ):
        """
        Initialize the generator client.

        Args:
            proxy_url: Full URL of the proxy's generate endpoint
            request_timeout: Total seconds allowed per request
            time_per_question: Time budget assigned to generated questions
            session: Optional shared aiohttp session
        """
        self.proxy_url = proxy_url
        self.request_timeout = request_timeout
        self.time_per_question = time_per_question
        self._session = session
        self._owns_session = session is None

    async def fetch(self, criteria: Optional[GenerationCriteria] = None) -> List[Question]:
        if criteria is None or criteria.count < 1:
            raise GenerationError("Generation criteria must request at least one question")

        prompt = build_prompt(
            criteria.difficulty,
            criteria.count,
            topic_title=criteria.topic_title,
            topic_description=criteria.topic_description
        )
        payload = {"contents": prompt, "config": build_generation_config()}

        logger.info(
            f"Requesting {criteria.count} questions "
            f"({'topic: ' + criteria.topic_title if criteria.is_themed else 'random'}, "
            f"difficulty: {criteria.difficulty.value})"
        )

        text = await self._post(payload)
        raw_questions = parse_generated_text(text)
        questions = ingest_raw_questions(raw_questions, self.time_per_question)
        logger.info(f"Generator returned {len(questions)} valid questions")
        return questions

    async def _post(self, payload: Dict[str, Any]) -> str:
        session = await self._get_session()
        try:
            async with session.post(
                self.proxy_url,
                json=payload,
                timeout=aiohttp.ClientTimeout(total=self.request_timeout),
            ) as resp:
                data = await resp.json(content_type=None)
                if resp.status != 200:
                    error = data.get("error") if isinstance(data, dict) else None
                    logger.error(f"Generation proxy returned HTTP {resp.status}: {error}")
                    raise GenerationError(f"Generation proxy returned HTTP {resp.status}: {error}")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Generation request failed: {e}")
            raise GenerationError(f"Generation request failed: {e}") from e
        except ValueError as e:
            logger.error(f"Generation proxy returned invalid JSON: {e}")
            raise GenerationError(f"Generation proxy returned invalid JSON: {e}") from e

        if not isinstance(data, dict) or not isinstance(data.get("text"), str):
            raise GenerationError("Generation proxy response has no 'text' field")
        return data["text"]

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
