"""
Unit tests for ConfigManager quiz defaults and generator settings.
"""
import tempfile
import unittest
from pathlib import Path

from quiz_journey.config_manager import ConfigManager
from quiz_journey.models import Difficulty, RandomQuizSettings


class TestConfigManager(unittest.TestCase):
    """Test cases for ConfigManager functionality."""

    def setUp(self):
        """Set up test fixtures."""
        self.config_manager = ConfigManager()

    def test_default_settings(self):
        settings = self.config_manager.get_random_quiz_settings()
        self.assertIsInstance(settings, RandomQuizSettings)
        self.assertEqual(settings.count, 10)
        self.assertEqual(settings.difficulty, Difficulty.MEDIUM)
        self.assertEqual(settings.time_per_question, 20)
        self.assertEqual(self.config_manager.get_level_question_count(), 10)
        self.assertEqual(self.config_manager.get_custom_topic_question_count(), 5)
        self.assertEqual(self.config_manager.get_proxy_url(), "http://localhost:8080/api/generate")
        self.assertEqual(self.config_manager.get_request_timeout(), 60.0)

    def test_set_random_count_valid(self):
        for count in (5, 12, 20):
            result = self.config_manager.set_random_count(count)
            self.assertTrue(result['success'])
            self.assertEqual(self.config_manager.get_random_count(), count)

    def test_set_random_count_out_of_range(self):
        for count in (4, 21, 0, -1):
            result = self.config_manager.set_random_count(count)
            self.assertFalse(result['success'])
            self.assertIn('user_message', result)
        self.assertEqual(self.config_manager.get_random_count(), 10)

    def test_set_random_count_wrong_type(self):
        for value in ("10", 10.0, True, None):
            result = self.config_manager.set_random_count(value)
            self.assertFalse(result['success'])

    def test_set_difficulty_accepts_enum_value_and_name(self):
        self.assertTrue(self.config_manager.set_difficulty(Difficulty.HARD)['success'])
        self.assertEqual(self.config_manager.get_difficulty(), Difficulty.HARD)

        self.assertTrue(self.config_manager.set_difficulty("سهل")['success'])
        self.assertEqual(self.config_manager.get_difficulty(), Difficulty.EASY)

        self.assertTrue(self.config_manager.set_difficulty("medium")['success'])
        self.assertEqual(self.config_manager.get_difficulty(), Difficulty.MEDIUM)

    def test_set_difficulty_unknown(self):
        result = self.config_manager.set_difficulty("مستحيل")
        self.assertFalse(result['success'])
        self.assertEqual(self.config_manager.get_difficulty(), Difficulty.MEDIUM)

    def test_set_time_per_question_only_timer_options(self):
        for seconds in ConfigManager.TIMER_OPTIONS:
            self.assertTrue(self.config_manager.set_time_per_question(seconds)['success'])
        for seconds in (5, 25, 60, "20"):
            self.assertFalse(self.config_manager.set_time_per_question(seconds)['success'])
        self.assertEqual(self.config_manager.get_time_per_question(), 30)

    def test_set_level_question_count(self):
        self.assertTrue(self.config_manager.set_level_question_count(15)['success'])
        self.assertEqual(self.config_manager.get_level_question_count(), 15)
        self.assertFalse(self.config_manager.set_level_question_count(0)['success'])
        self.assertFalse(self.config_manager.set_level_question_count(31)['success'])

    def test_set_question_bank_directory_resolves_path(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            result = self.config_manager.set_question_bank_directory(temp_dir)
            self.assertTrue(result['success'])
            self.assertEqual(self.config_manager.get_question_bank_directory(), str(Path(temp_dir).resolve()))

    def test_set_question_bank_directory_invalid(self):
        for value in ("", "   ", None):
            self.assertFalse(self.config_manager.set_question_bank_directory(value)['success'])

    def test_set_proxy_url(self):
        self.assertTrue(self.config_manager.set_proxy_url("https://example.com/api/generate")['success'])
        self.assertEqual(self.config_manager.get_proxy_url(), "https://example.com/api/generate")
        self.assertFalse(self.config_manager.set_proxy_url("ftp://example.com")['success'])
        self.assertFalse(self.config_manager.set_proxy_url(None)['success'])

    def test_apply_config_sections(self):
        errors = self.config_manager.apply({
            "quiz": {
                "default_random_count": 15,
                "default_difficulty": "صعب",
                "default_time_per_question": 15,
                "level_question_count": 8,
            },
            "generator": {
                "proxy_url": "http://proxy:9000/api/generate",
                "request_timeout": 30,
            },
        })
        self.assertEqual(errors, [])
        settings = self.config_manager.get_random_quiz_settings()
        self.assertEqual(settings, RandomQuizSettings(15, Difficulty.HARD, 15))
        self.assertEqual(self.config_manager.get_level_question_count(), 8)
        self.assertEqual(self.config_manager.get_proxy_url(), "http://proxy:9000/api/generate")
        self.assertEqual(self.config_manager.get_request_timeout(), 30.0)

    def test_apply_skips_invalid_values(self):
        errors = self.config_manager.apply({
            "quiz": {"default_random_count": 100, "default_time_per_question": 15},
            "generator": {"request_timeout": -5},
        })
        self.assertEqual(len(errors), 2)
        self.assertEqual(self.config_manager.get_random_count(), 10)
        self.assertEqual(self.config_manager.get_time_per_question(), 15)
        self.assertEqual(self.config_manager.get_request_timeout(), 60.0)

    def test_constructor_applies_settings(self):
        manager = ConfigManager({"quiz": {"default_random_count": 7}})
        self.assertEqual(manager.get_random_count(), 7)

    def test_reset_to_defaults(self):
        self.config_manager.set_random_count(20)
        self.config_manager.set_difficulty(Difficulty.HARD)
        self.config_manager.reset_to_defaults()
        self.assertEqual(self.config_manager.get_random_quiz_settings(), RandomQuizSettings())

    def test_validate_settings(self):
        self.assertEqual(self.config_manager.validate_settings(), {"valid": True, "issues": []})

        self.config_manager._time_per_question = 7
        result = self.config_manager.validate_settings()
        self.assertFalse(result["valid"])
        self.assertEqual(len(result["issues"]), 1)

    def test_settings_summary_lists_values(self):
        summary = self.config_manager.get_settings_summary()
        self.assertIn("10", summary)
        self.assertIn("متوسط", summary)
        self.assertIn("20 ثانية", summary)

    def test_health_check_warns_on_missing_directory(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            self.config_manager.set_question_bank_directory(str(Path(temp_dir) / "missing"))
            health = self.config_manager.get_configuration_health_check()
        self.assertTrue(health['healthy'])
        self.assertEqual(len(health['warnings']), 1)
        self.assertEqual(health['errors'], [])


if __name__ == '__main__':
    unittest.main()
