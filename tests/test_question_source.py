"""
Unit tests for question parsing, validation and the question sources.
"""
import asyncio
import json
import unittest
from unittest.mock import Mock

import aiohttp

from quiz_journey.models import Difficulty, Level, Question
from quiz_journey.prompts import QUESTION_RESPONSE_SCHEMA, build_prompt
from quiz_journey.question_source import (
    GeminiQuestionSource,
    GenerationCriteria,
    GenerationError,
    StaticQuestionSource,
    ingest_raw_questions,
    parse_generated_text,
    validate_question,
)
from tests.test_fixtures import TestFixtures, async_test


class FakeResponse:
    """Stand-in for an aiohttp response."""

    def __init__(self, status=200, data=None, error=None):
        self.status = status
        self._data = data
        self._error = error

    async def json(self, content_type=None):
        if self._error is not None:
            raise self._error
        return self._data

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


def mock_session(response=None, error=None) -> Mock:
    session = Mock()
    session.closed = False
    if error is not None:
        session.post = Mock(side_effect=error)
    else:
        session.post = Mock(return_value=response)
    return session


class TestParseGeneratedText(unittest.TestCase):
    """Test cases for extracting the question array from generator output."""

    def test_plain_json_array(self):
        raw = TestFixtures.create_raw_questions(2)
        self.assertEqual(parse_generated_text(json.dumps(raw, ensure_ascii=False)), raw)

    def test_markdown_code_block(self):
        raw = TestFixtures.create_raw_questions(1)
        text = "إليك الأسئلة:\n```json\n" + json.dumps(raw, ensure_ascii=False) + "\n```"
        self.assertEqual(parse_generated_text(text), raw)

    def test_array_embedded_in_text(self):
        raw = TestFixtures.create_raw_questions(1)
        text = "Sure! " + json.dumps(raw) + " Good luck."
        self.assertEqual(parse_generated_text(text), raw)

    def test_empty_response_raises(self):
        for text in (None, "", "   "):
            with self.assertRaises(GenerationError):
                parse_generated_text(text)

    def test_non_array_raises(self):
        with self.assertRaises(GenerationError):
            parse_generated_text('{"question": "?"}')
        with self.assertRaises(GenerationError):
            parse_generated_text("no json here")


class TestIngestRawQuestions(unittest.TestCase):
    """Test cases for validating generated questions."""

    def test_valid_questions_become_question_objects(self):
        questions = ingest_raw_questions(TestFixtures.create_raw_questions(3), time_per_question=15)

        self.assertEqual(len(questions), 3)
        first = questions[0]
        self.assertIsInstance(first, Question)
        self.assertEqual(first.text, "السؤال رقم 1؟")
        self.assertEqual(first.options, ("خيار 1-1", "خيار 1-2", "خيار 1-3", "خيار 1-4"))
        self.assertEqual(first.answer, "خيار 1-2")
        self.assertEqual(first.time_limit, 15)
        self.assertEqual(len({q.id for q in questions}), 3)

    def test_three_options_rejects_batch(self):
        raw = TestFixtures.create_raw_questions(2)
        raw[1]["options"] = raw[1]["options"][:3]
        with self.assertRaises(GenerationError):
            ingest_raw_questions(raw)

    def test_answer_not_among_options_rejects_batch(self):
        raw = TestFixtures.create_raw_questions(1)
        raw[0]["correctAnswer"] = "غير موجود"
        with self.assertRaises(GenerationError):
            ingest_raw_questions(raw)

    def test_duplicate_options_rejected(self):
        raw = TestFixtures.create_raw_questions(1)
        raw[0]["options"] = ["أ", "أ", "ب", "ج"]
        raw[0]["correctAnswer"] = "أ"
        with self.assertRaises(GenerationError):
            ingest_raw_questions(raw)

    def test_missing_text_rejected(self):
        raw = TestFixtures.create_raw_questions(1)
        del raw[0]["question"]
        with self.assertRaises(GenerationError):
            ingest_raw_questions(raw)

    def test_empty_or_non_list_rejected(self):
        for raw in ([], None, {"question": "?"}):
            with self.assertRaises(GenerationError):
                ingest_raw_questions(raw)

    def test_letter_answer_not_among_options_is_rejected(self):
        raw = [{"question": "سؤال؟", "options": ["w", "x", "y", "z"], "correctAnswer": "B"}]
        with self.assertRaises(GenerationError):
            ingest_raw_questions(raw)

    def test_whitespace_is_trimmed(self):
        raw = [{
            "question": "  سؤال؟ ",
            "options": [" أ", "ب ", "ج", "د"],
            "correctAnswer": "ب "
        }]
        question = ingest_raw_questions(raw)[0]
        self.assertEqual(question.text, "سؤال؟")
        self.assertEqual(question.options, ("أ", "ب", "ج", "د"))
        self.assertEqual(question.answer, "ب")

    def test_item_time_is_clamped(self):
        raw = TestFixtures.create_raw_questions(2)
        raw[0]["time"] = 500
        raw[1]["time"] = 1
        questions = ingest_raw_questions(raw)
        self.assertEqual(questions[0].time, 120)
        self.assertEqual(questions[1].time, 5)


class TestValidateQuestion(unittest.TestCase):

    def test_valid_question_passes(self):
        validate_question(TestFixtures.create_question())

    def test_wrong_option_count_fails(self):
        with self.assertRaises(GenerationError):
            validate_question(Question("سؤال؟", ("أ", "ب", "ج"), "أ"))

    def test_answer_outside_options_fails(self):
        with self.assertRaises(GenerationError):
            validate_question(Question("سؤال؟", ("أ", "ب", "ج", "د"), "هـ"))


class TestStaticQuestionSource(unittest.TestCase):
    """Test cases for the pre-assembled question source."""

    @async_test
    async def test_returns_questions_in_order(self):
        questions = TestFixtures.create_sample_questions()
        fetched = await StaticQuestionSource(questions).fetch()
        self.assertEqual(fetched, questions)

    @async_test
    async def test_mixed_dicts_and_questions_keep_order(self):
        question = TestFixtures.create_question("سؤال جاهز؟")
        raw = TestFixtures.create_raw_questions(2)
        fetched = await StaticQuestionSource([raw[0], question, raw[1]], time_per_question=10).fetch()

        self.assertEqual([q.text for q in fetched], ["السؤال رقم 1؟", "سؤال جاهز؟", "السؤال رقم 2؟"])
        self.assertEqual(fetched[0].time_limit, 10)

    @async_test
    async def test_criteria_count_truncates(self):
        fetched = await StaticQuestionSource(TestFixtures.create_sample_questions()).fetch(
            GenerationCriteria(count=2)
        )
        self.assertEqual(len(fetched), 2)

    @async_test
    async def test_empty_list_is_returned_as_is(self):
        self.assertEqual(await StaticQuestionSource([]).fetch(), [])

    @async_test
    async def test_invalid_question_rejected(self):
        source = StaticQuestionSource([Question("سؤال؟", ("أ", "ب"), "أ")])
        with self.assertRaises(GenerationError):
            await source.fetch()


class TestGenerationCriteria(unittest.TestCase):

    def test_for_level_copies_topic(self):
        level = Level(7, "الزكاة", Difficulty.HARD, "أنصبة الزكاة")
        criteria = GenerationCriteria.for_level(level, 10)
        self.assertEqual(criteria.count, 10)
        self.assertEqual(criteria.difficulty, Difficulty.HARD)
        self.assertEqual(criteria.topic_title, "الزكاة")
        self.assertTrue(criteria.is_themed)
        self.assertFalse(GenerationCriteria(count=5).is_themed)

    def test_prompt_mentions_topic_only_when_themed(self):
        themed = build_prompt(Difficulty.EASY, 5, "الصلاة", "أركان الصلاة")
        unthemed = build_prompt(Difficulty.EASY, 5)
        self.assertIn("الصلاة", themed)
        self.assertIn("أركان الصلاة", themed)
        self.assertNotIn("الموضوع المحدد", unthemed)
        self.assertIn("سهل", unthemed)


class TestGeminiQuestionSource(unittest.TestCase):
    """Test cases for the generation proxy client."""

    def setUp(self):
        self.url = "http://proxy.test/api/generate"
        self.raw = TestFixtures.create_raw_questions(3)

    @async_test
    async def test_fetch_posts_prompt_and_parses_questions(self):
        session = mock_session(FakeResponse(200, {"text": json.dumps(self.raw, ensure_ascii=False)}))
        source = GeminiQuestionSource(self.url, time_per_question=30, session=session)

        questions = await source.fetch(GenerationCriteria(count=3, difficulty=Difficulty.HARD, topic_title="الحج"))

        self.assertEqual(len(questions), 3)
        self.assertEqual(questions[0].time_limit, 30)
        args, kwargs = session.post.call_args
        self.assertEqual(args[0], self.url)
        payload = kwargs["json"]
        self.assertIn("الحج", payload["contents"])
        self.assertIn("صعب", payload["contents"])
        self.assertEqual(payload["config"]["responseMimeType"], "application/json")
        self.assertEqual(payload["config"]["responseSchema"], QUESTION_RESPONSE_SCHEMA)

    @async_test
    async def test_http_error_raises_generation_error(self):
        session = mock_session(FakeResponse(500, {"error": "boom"}))
        source = GeminiQuestionSource(self.url, session=session)
        with self.assertRaises(GenerationError) as ctx:
            await source.fetch(GenerationCriteria(count=3))
        self.assertIn("500", str(ctx.exception))
        self.assertEqual(ctx.exception.user_message, "فشل في توليد الأسئلة. الرجاء المحاولة مرة أخرى.")

    @async_test
    async def test_connection_error_raises_generation_error(self):
        session = mock_session(error=aiohttp.ClientConnectionError("refused"))
        source = GeminiQuestionSource(self.url, session=session)
        with self.assertRaises(GenerationError):
            await source.fetch(GenerationCriteria(count=3))

    @async_test
    async def test_timeout_raises_generation_error(self):
        session = mock_session(error=asyncio.TimeoutError())
        source = GeminiQuestionSource(self.url, session=session)
        with self.assertRaises(GenerationError):
            await source.fetch(GenerationCriteria(count=3))

    @async_test
    async def test_invalid_json_body_raises_generation_error(self):
        session = mock_session(FakeResponse(200, error=ValueError("not json")))
        source = GeminiQuestionSource(self.url, session=session)
        with self.assertRaises(GenerationError):
            await source.fetch(GenerationCriteria(count=3))

    @async_test
    async def test_missing_text_field_raises_generation_error(self):
        session = mock_session(FakeResponse(200, {"result": "?"}))
        source = GeminiQuestionSource(self.url, session=session)
        with self.assertRaises(GenerationError):
            await source.fetch(GenerationCriteria(count=3))

    @async_test
    async def test_malformed_question_rejects_batch(self):
        self.raw[2]["options"] = self.raw[2]["options"][:3]
        session = mock_session(FakeResponse(200, {"text": json.dumps(self.raw)}))
        source = GeminiQuestionSource(self.url, session=session)
        with self.assertRaises(GenerationError):
            await source.fetch(GenerationCriteria(count=3))

    @async_test
    async def test_empty_array_raises_generation_error(self):
        session = mock_session(FakeResponse(200, {"text": "[]"}))
        source = GeminiQuestionSource(self.url, session=session)
        with self.assertRaises(GenerationError):
            await source.fetch(GenerationCriteria(count=3))

    @async_test
    async def test_fetch_requires_positive_count(self):
        source = GeminiQuestionSource(self.url, session=mock_session())
        with self.assertRaises(GenerationError):
            await source.fetch(None)
        with self.assertRaises(GenerationError):
            await source.fetch(GenerationCriteria(count=0))

    @async_test
    async def test_close_leaves_shared_session_open(self):
        session = mock_session()
        source = GeminiQuestionSource(self.url, session=session)
        await source.close()
        session.close.assert_not_called()


if __name__ == '__main__':
    unittest.main()
