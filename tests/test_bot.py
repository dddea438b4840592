"""
Unit tests for the Discord bot command handlers with mocked Discord objects.
"""
import os
import shutil
import tempfile
import unittest
from unittest.mock import AsyncMock, Mock, patch

from discord.ext import commands

from quiz_journey.bot import QuizBot, run_bot
from quiz_journey.config_manager import ConfigManager
from quiz_journey.question_bank import QuestionBank
from quiz_journey.question_source import GeminiQuestionSource, GenerationError
from quiz_journey.quiz_controller import QuizController
from quiz_journey.router import Screen
from tests.test_fixtures import (
    AsyncTestHelpers,
    FakeQuestionSource,
    MockDiscordObjects,
    TestFixtures,
    async_test,
    fast_engine_factory,
)


def sent_embed(mock_send):
    _, kwargs = mock_send.call_args
    return kwargs['embed']


class TestBotSetup(unittest.TestCase):
    """Test cases for wiring the bot components."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.config = {
            "bot": {"command_prefix": "?"},
            "quiz": {"question_bank_directory": self.temp_dir, "default_random_count": 12},
            "generator": {"proxy_url": "http://config-proxy/api/generate", "request_timeout": 15},
        }

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    @async_test
    async def test_setup_hook_builds_components_and_commands(self):
        bot = QuizBot(self.config)
        with patch.dict(os.environ, {}, clear=False):
            os.environ.pop('QUIZ_PROXY_URL', None)
            await bot.setup_hook()

        self.assertEqual(bot.command_prefix, "?")
        self.assertEqual(bot.config_manager.get_random_count(), 12)
        self.assertIsInstance(bot.quiz_controller, QuizController)
        self.assertIsInstance(bot.quiz_controller.generator, GeminiQuestionSource)
        self.assertEqual(bot.quiz_controller.generator.proxy_url, "http://config-proxy/api/generate")
        self.assertEqual(bot.quiz_controller.generator.request_timeout, 15.0)
        self.assertTrue(bot.question_bank.bank_exists("sample_bank"))

        names = {command.name for command in bot.tree.get_commands()}
        for expected in ("help", "levels", "level_quiz", "custom_quiz", "add_topic", "add_bank",
                         "banks", "draft", "edit_question", "delete_question", "question_time",
                         "move_question", "start_quiz", "cancel_setup", "random_quiz", "stop",
                         "status", "settings"):
            self.assertIn(expected, names)

    @async_test
    async def test_proxy_url_environment_override(self):
        bot = QuizBot(self.config)
        with patch.dict(os.environ, {'QUIZ_PROXY_URL': "https://env-proxy/api/generate"}):
            await bot.setup_hook()
        self.assertEqual(bot.quiz_controller.generator.proxy_url, "https://env-proxy/api/generate")

    @async_test
    async def test_close_shuts_down_controller(self):
        bot = QuizBot(self.config)
        bot.quiz_controller = Mock()
        bot.quiz_controller.shutdown = AsyncMock()
        with patch.object(commands.Bot, 'close', new_callable=AsyncMock) as parent_close:
            await bot.close()
        bot.quiz_controller.shutdown.assert_awaited_once()
        parent_close.assert_awaited_once()

    @async_test
    async def test_on_ready_syncs_commands(self):
        bot = QuizBot(self.config)
        bot.tree.sync = AsyncMock(return_value=[])
        await bot.on_ready()
        bot.tree.sync.assert_awaited_once()

    @async_test
    async def test_run_bot_without_token(self):
        with patch.dict(os.environ, {}, clear=True), patch("quiz_journey.bot.QuizBot") as bot_class:
            with self.assertLogs("quiz_journey.bot", level="ERROR"):
                await run_bot(None, self.config)
        bot_class.assert_not_called()


class BotHandlerTestCase(unittest.TestCase):
    """Shared set-up: a bot with a real controller over a fake generator."""

    def setUp(self):
        self.channel_id = 12345
        self.bot = QuizBot({})
        self.source = FakeQuestionSource()
        self.bot.config_manager = ConfigManager()
        self.bot.question_bank = Mock(spec=QuestionBank)
        self.bot.question_bank.bank_exists.side_effect = lambda name: name == "sample_bank"
        self.bot.question_bank.get_bank_questions.return_value = TestFixtures.create_sample_questions()
        self.bot.quiz_controller = QuizController(
            self.bot.config_manager,
            self.source,
            question_bank=self.bot.question_bank,
            engine_factory=fast_engine_factory
        )
        self.controller = self.bot.quiz_controller

    def interaction(self):
        return MockDiscordObjects.create_mock_interaction(self.channel_id)


class TestNavigationCommands(BotHandlerTestCase):

    @async_test
    async def test_help(self):
        interaction = self.interaction()
        await self.bot.handle_help(interaction)
        embed = sent_embed(interaction.response.send_message)
        self.assertIn("رحلة المعرفة", embed.title)
        self.assertTrue(any("/random_quiz" in field.value for field in embed.fields))

    @async_test
    async def test_levels_opens_map(self):
        interaction = self.interaction()
        await self.bot.handle_levels(interaction, None, None, 1)
        embed = sent_embed(interaction.response.send_message)
        self.assertIn("خريطة الرحلة", embed.title)
        self.assertEqual(self.controller.get_screen(self.channel_id), Screen.LEVEL_SELECTION)

    @async_test
    async def test_levels_search(self):
        interaction = self.interaction()
        await self.bot.handle_levels(interaction, None, "الزكاة", 1)
        embed = sent_embed(interaction.response.send_message)
        self.assertIn("الزكاة", embed.title)
        self.assertIn("الزكاة", embed.description)

    @async_test
    async def test_settings_and_status(self):
        interaction = self.interaction()
        await self.bot.handle_settings(interaction)
        _, kwargs = interaction.response.send_message.call_args
        self.assertIn("عدد الأسئلة", kwargs['embed'].description)
        self.assertTrue(kwargs['ephemeral'])

        interaction = self.interaction()
        await self.bot.handle_status(interaction)
        self.assertIn("/levels", sent_embed(interaction.response.send_message).description)

    @async_test
    async def test_banks_lists_loaded_banks(self):
        bank = Mock()
        bank.title = "أسئلة تجريبية"
        bank.questions = TestFixtures.create_sample_questions()
        self.bot.question_bank.get_loading_summary.return_value = {
            'available_banks': ["sample_bank"], 'fallback_active': True
        }
        self.bot.question_bank.get_bank.return_value = bank
        interaction = self.interaction()

        await self.bot.handle_banks(interaction)

        embed = sent_embed(interaction.response.send_message)
        self.assertIn("sample_bank", embed.description)
        self.assertIn("3 سؤال", embed.description)
        self.assertEqual(len(embed.fields), 1)


class TestSetupCommands(BotHandlerTestCase):

    @async_test
    async def test_level_quiz_shows_draft(self):
        interaction = self.interaction()
        await self.bot.handle_level_quiz(interaction, 5)

        interaction.response.defer.assert_awaited_once()
        embed = sent_embed(interaction.followup.send)
        self.assertIn(self.controller.level_catalog.get(5).title, embed.title)
        self.assertEqual(len(embed.fields), 3)

    @async_test
    async def test_level_quiz_generation_failure(self):
        self.source.error = GenerationError("proxy down")
        interaction = self.interaction()
        await self.bot.handle_level_quiz(interaction, 5)

        embed = sent_embed(interaction.followup.send)
        self.assertEqual(embed.description, "فشل في توليد الأسئلة. الرجاء المحاولة مرة أخرى.")

    @async_test
    async def test_custom_quiz_edit_flow(self):
        await self.bot.handle_custom_quiz(self.interaction(), "تحدي الأصدقاء")
        await self.bot.handle_add_bank(self.interaction(), "sample_bank")

        interaction = self.interaction()
        await self.bot.handle_edit_question(interaction, 1, None, ["5", None, None, None], 0)
        _, kwargs = interaction.response.send_message.call_args
        self.assertIn("تم تعديل السؤال 1", kwargs['content'])
        first = self.controller.get_draft(self.channel_id).editor.questions[0]
        self.assertEqual(first.options, ("5", "أربعة", "ستة", "ثلاثة"))
        self.assertEqual(first.answer, "5")

        interaction = self.interaction()
        await self.bot.handle_edit_question(interaction, 2, None, ["سورة الفاتحة", None, None, None], None)
        self.assertEqual(
            sent_embed(interaction.response.send_message).description,
            "الإجابة الصحيحة المحددة لم تعد موجودة في الخيارات. الرجاء تحديثها."
        )

        interaction = self.interaction()
        await self.bot.handle_question_time(interaction, 2, 3)
        _, kwargs = interaction.response.send_message.call_args
        self.assertIn("5 ثانية", kwargs['content'])

        await self.bot.handle_move_question(self.interaction(), 3, 1)
        await self.bot.handle_delete_question(self.interaction(), 2)
        texts = [q.text for q in self.controller.get_draft(self.channel_id).editor]
        self.assertEqual(texts, ["أين ولد النبي ﷺ؟", "ما أول سورة في المصحف؟"])

    @async_test
    async def test_invalid_question_number(self):
        await self.bot.handle_custom_quiz(self.interaction(), "تحدي")
        interaction = self.interaction()
        await self.bot.handle_delete_question(interaction, 1)
        self.assertEqual(sent_embed(interaction.response.send_message).description, "❌ رقم السؤال غير صالح")

    @async_test
    async def test_draft_without_setup(self):
        interaction = self.interaction()
        await self.bot.handle_draft(interaction)
        self.assertIn("لا يوجد تحدٍ قيد الإعداد", sent_embed(interaction.response.send_message).description)

    @async_test
    async def test_cancel_setup(self):
        await self.bot.handle_custom_quiz(self.interaction(), "تحدي")
        interaction = self.interaction()
        await self.bot.handle_cancel_setup(interaction)
        interaction.response.send_message.assert_awaited_once()
        self.assertIsNone(self.controller.get_draft(self.channel_id))


class TestQuizCommands(BotHandlerTestCase):

    @async_test
    async def test_start_and_stop_custom_quiz(self):
        await self.bot.handle_custom_quiz(self.interaction(), "تحدي")
        await self.bot.handle_add_bank(self.interaction(), "sample_bank")

        interaction = self.interaction()
        await self.bot.handle_start_quiz(interaction)

        interaction.followup.send.assert_awaited_once_with("🚀 بدأ التحدي!")
        question_embed = sent_embed(interaction.channel.send)
        self.assertIn("1/3", question_embed.title)
        self.assertTrue(self.controller.has_active_session(self.channel_id))

        stop = self.interaction()
        await self.bot.handle_stop(stop)
        embed = sent_embed(stop.response.send_message)
        self.assertIn("تم إيقاف التحدي", embed.title)
        self.assertFalse(self.controller.has_active_session(self.channel_id))

    @async_test
    async def test_start_without_draft(self):
        interaction = self.interaction()
        await self.bot.handle_start_quiz(interaction)
        embed = sent_embed(interaction.followup.send)
        self.assertEqual(embed.title, "❌ تعذر بدء التحدي")

    @async_test
    async def test_random_quiz_runs_to_stats(self):
        interaction = self.interaction()
        await self.bot.handle_random_quiz(interaction, 5, "EASY", 10)

        args, _ = interaction.followup.send.call_args
        self.assertIn("تحدي عشوائي (سهل)", args[0])

        engine = self.controller.get_engine(self.channel_id)
        handle = engine.handle
        tally = await AsyncTestHelpers.run_with_timeout(handle.wait_finished(), timeout=3.0)

        self.assertEqual(tally.incorrect, 3)
        stats_sent = await AsyncTestHelpers.wait_until(
            lambda: "انتهى التحدي" in sent_embed(interaction.channel.send).title
        )
        self.assertTrue(stats_sent)
        self.assertEqual(self.controller.get_screen(self.channel_id), Screen.STATS)
        stats_embed = sent_embed(interaction.channel.send)
        self.assertIn("انتهى التحدي", stats_embed.title)

    @async_test
    async def test_stop_without_quiz(self):
        interaction = self.interaction()
        await self.bot.handle_stop(interaction)
        embed = sent_embed(interaction.response.send_message)
        self.assertEqual(embed.title, "ℹ️ لا يوجد تحدٍ نشط")


if __name__ == '__main__':
    unittest.main()
