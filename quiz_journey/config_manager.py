"""
Configuration manager for Quiz Journey bot settings and quiz defaults.
"""
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from .models import DEFAULT_QUESTION_TIME, Difficulty, RandomQuizSettings


class ConfigManager:
    """Manages quiz defaults and generator settings."""

    # Default configuration values
    DEFAULT_RANDOM_COUNT = 10
    DEFAULT_DIFFICULTY = Difficulty.MEDIUM
    DEFAULT_TIME_PER_QUESTION = DEFAULT_QUESTION_TIME
    DEFAULT_LEVEL_QUESTION_COUNT = 10
    DEFAULT_CUSTOM_TOPIC_QUESTION_COUNT = 5
    DEFAULT_QUESTION_BANK_DIRECTORY = "./question_banks/"
    DEFAULT_PROXY_URL = "http://localhost:8080/api/generate"
    DEFAULT_REQUEST_TIMEOUT = 60.0

    # Validation limits
    MIN_RANDOM_COUNT = 5
    MAX_RANDOM_COUNT = 20
    TIMER_OPTIONS = (10, 15, 20, 30)
    MIN_LEVEL_QUESTION_COUNT = 1
    MAX_LEVEL_QUESTION_COUNT = 30

    def __init__(self, settings: Optional[Dict[str, Any]] = None):
        """
        Initialize ConfigManager with default settings.

        Args:
            settings: Optional "quiz" and "generator" sections of config.json
        """
        self.logger = logging.getLogger(__name__)
        self._random_count = self.DEFAULT_RANDOM_COUNT
        self._difficulty = self.DEFAULT_DIFFICULTY
        self._time_per_question = self.DEFAULT_TIME_PER_QUESTION
        self._level_question_count = self.DEFAULT_LEVEL_QUESTION_COUNT
        self._question_bank_directory = self.DEFAULT_QUESTION_BANK_DIRECTORY
        self._proxy_url = self.DEFAULT_PROXY_URL
        self._request_timeout = self.DEFAULT_REQUEST_TIMEOUT

        if settings:
            self.apply(settings)

    def apply(self, settings: Dict[str, Any]) -> List[str]:
        """
        Apply values from a config dict, skipping any that fail validation.

        Args:
            settings: Dict with optional "quiz" and "generator" sections

        Returns:
            List of error messages for rejected values
        """
        errors = []
        quiz = settings.get("quiz", {}) or {}
        generator = settings.get("generator", {}) or {}

        setters = [
            (quiz, "default_random_count", self.set_random_count),
            (quiz, "default_difficulty", self.set_difficulty),
            (quiz, "default_time_per_question", self.set_time_per_question),
            (quiz, "level_question_count", self.set_level_question_count),
            (quiz, "question_bank_directory", self.set_question_bank_directory),
            (generator, "proxy_url", self.set_proxy_url),
        ]
        for section, key, setter in setters:
            if key in section:
                result = setter(section[key])
                if not result['success']:
                    errors.append(result['error'])

        if "request_timeout" in generator:
            timeout = generator["request_timeout"]
            if isinstance(timeout, (int, float)) and not isinstance(timeout, bool) and timeout > 0:
                self._request_timeout = float(timeout)
            else:
                errors.append(f"Invalid request timeout: {timeout}")

        for error in errors:
            self.logger.warning(f"Ignoring config value: {error}")
        return errors

    def get_random_quiz_settings(self) -> RandomQuizSettings:
        """
        Get the current random quiz defaults.

        Returns:
            RandomQuizSettings object with current configuration
        """
        return RandomQuizSettings(
            count=self._random_count,
            difficulty=self._difficulty,
            time_per_question=self._time_per_question
        )

    def set_random_count(self, count: int) -> Dict[str, Any]:
        """
        Set the default number of questions for random quizzes.

        Args:
            count: Number of questions

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if not isinstance(count, int) or isinstance(count, bool):
            error_msg = f"Question count must be an integer, got {type(count).__name__}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': "❌ عدد الأسئلة يجب أن يكون رقمًا"
            }

        if count < self.MIN_RANDOM_COUNT or count > self.MAX_RANDOM_COUNT:
            error_msg = (
                f"Question count must be between {self.MIN_RANDOM_COUNT} and {self.MAX_RANDOM_COUNT}, got {count}"
            )
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ عدد الأسئلة يجب أن يكون بين {self.MIN_RANDOM_COUNT} و{self.MAX_RANDOM_COUNT}"
            }

        self._random_count = count
        self.logger.info(f"Random quiz question count set to {count}")
        return {
            'success': True,
            'message': f"Random quiz question count set to {count}",
            'user_message': f"✅ عدد الأسئلة: {count}"
        }

    def get_random_count(self) -> int:
        return self._random_count

    def set_difficulty(self, difficulty: Any) -> Dict[str, Any]:
        """
        Set the default difficulty for random quizzes.

        Args:
            difficulty: A Difficulty, its Arabic value or its English name

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if isinstance(difficulty, Difficulty):
            resolved = difficulty
        else:
            try:
                resolved = Difficulty.from_value(str(difficulty))
            except ValueError as e:
                error_msg = str(e)
                self.logger.error(error_msg)
                choices = "، ".join(d.value for d in Difficulty)
                return {
                    'success': False,
                    'error': error_msg,
                    'user_message': f"❌ مستوى صعوبة غير معروف. الخيارات: {choices}"
                }

        self._difficulty = resolved
        self.logger.info(f"Random quiz difficulty set to {resolved.name}")
        return {
            'success': True,
            'message': f"Random quiz difficulty set to {resolved.name}",
            'user_message': f"✅ مستوى الصعوبة: {resolved.value}"
        }

    def get_difficulty(self) -> Difficulty:
        return self._difficulty

    def set_time_per_question(self, seconds: int) -> Dict[str, Any]:
        """
        Set the default time per question for random quizzes.

        Args:
            seconds: One of TIMER_OPTIONS

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if not isinstance(seconds, int) or isinstance(seconds, bool):
            error_msg = f"Time per question must be an integer, got {type(seconds).__name__}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': "❌ الوقت يجب أن يكون رقمًا"
            }

        if seconds not in self.TIMER_OPTIONS:
            options = ", ".join(str(option) for option in self.TIMER_OPTIONS)
            error_msg = f"Time per question must be one of {options}, got {seconds}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ الوقت لكل سؤال يجب أن يكون أحد القيم: {options} ثانية"
            }

        self._time_per_question = seconds
        self.logger.info(f"Random quiz time per question set to {seconds} seconds")
        return {
            'success': True,
            'message': f"Time per question set to {seconds} seconds",
            'user_message': f"✅ الوقت لكل سؤال: {seconds} ثانية"
        }

    def get_time_per_question(self) -> int:
        return self._time_per_question

    def set_level_question_count(self, count: int) -> Dict[str, Any]:
        """Set how many questions are generated for a level quiz."""
        if not isinstance(count, int) or isinstance(count, bool):
            error_msg = f"Level question count must be an integer, got {type(count).__name__}"
            self.logger.error(error_msg)
            return {'success': False, 'error': error_msg, 'user_message': "❌ عدد الأسئلة يجب أن يكون رقمًا"}

        if count < self.MIN_LEVEL_QUESTION_COUNT or count > self.MAX_LEVEL_QUESTION_COUNT:
            error_msg = (
                f"Level question count must be between {self.MIN_LEVEL_QUESTION_COUNT} "
                f"and {self.MAX_LEVEL_QUESTION_COUNT}, got {count}"
            )
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': (
                    f"❌ عدد أسئلة المستوى يجب أن يكون بين "
                    f"{self.MIN_LEVEL_QUESTION_COUNT} و{self.MAX_LEVEL_QUESTION_COUNT}"
                )
            }

        self._level_question_count = count
        self.logger.info(f"Level question count set to {count}")
        return {
            'success': True,
            'message': f"Level question count set to {count}",
            'user_message': f"✅ عدد أسئلة المستوى: {count}"
        }

    def get_level_question_count(self) -> int:
        return self._level_question_count

    def get_custom_topic_question_count(self) -> int:
        return self.DEFAULT_CUSTOM_TOPIC_QUESTION_COUNT

    def set_question_bank_directory(self, directory: str) -> Dict[str, Any]:
        """
        Set the directory path for question bank files.

        Args:
            directory: Path to question bank directory

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if not isinstance(directory, str) or not directory.strip():
            error_msg = f"Question bank directory must be a non-empty string, got {directory!r}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': "❌ مسار مجلد بنوك الأسئلة غير صالح"
            }

        try:
            normalized_path = str(Path(directory).resolve())
        except (OSError, ValueError) as e:
            error_msg = f"Invalid directory path format: {e}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ مسار غير صالح: {directory}"
            }

        self._question_bank_directory = normalized_path
        self.logger.info(f"Question bank directory set to {normalized_path}")
        return {
            'success': True,
            'message': f"Question bank directory set to {normalized_path}",
            'user_message': f"✅ مجلد بنوك الأسئلة: {normalized_path}"
        }

    def get_question_bank_directory(self) -> str:
        return self._question_bank_directory

    def set_proxy_url(self, url: str) -> Dict[str, Any]:
        """Set the URL of the generation proxy endpoint."""
        if not isinstance(url, str) or not url.startswith(("http://", "https://")):
            error_msg = f"Proxy URL must be an http(s) URL, got {url!r}"
            self.logger.error(error_msg)
            return {'success': False, 'error': error_msg, 'user_message': "❌ عنوان خادم التوليد غير صالح"}

        self._proxy_url = url
        self.logger.info(f"Generation proxy URL set to {url}")
        return {
            'success': True,
            'message': f"Generation proxy URL set to {url}",
            'user_message': f"✅ عنوان خادم التوليد: {url}"
        }

    def get_proxy_url(self) -> str:
        return self._proxy_url

    def get_request_timeout(self) -> float:
        return self._request_timeout

    def reset_to_defaults(self) -> None:
        """Reset all settings to their default values."""
        self._random_count = self.DEFAULT_RANDOM_COUNT
        self._difficulty = self.DEFAULT_DIFFICULTY
        self._time_per_question = self.DEFAULT_TIME_PER_QUESTION
        self._level_question_count = self.DEFAULT_LEVEL_QUESTION_COUNT
        self._question_bank_directory = self.DEFAULT_QUESTION_BANK_DIRECTORY
        self._proxy_url = self.DEFAULT_PROXY_URL
        self._request_timeout = self.DEFAULT_REQUEST_TIMEOUT
        self.logger.info("All settings reset to default values")

    def validate_settings(self) -> Dict[str, Any]:
        """
        Validate current settings and return validation results.

        Returns:
            Dictionary with validation results and any issues found
        """
        validation_result = {
            "valid": True,
            "issues": []
        }

        if not self.MIN_RANDOM_COUNT <= self._random_count <= self.MAX_RANDOM_COUNT:
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid question count: {self._random_count}")

        if not isinstance(self._difficulty, Difficulty):
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid difficulty: {self._difficulty}")

        if self._time_per_question not in self.TIMER_OPTIONS:
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid time per question: {self._time_per_question}")

        if not self.MIN_LEVEL_QUESTION_COUNT <= self._level_question_count <= self.MAX_LEVEL_QUESTION_COUNT:
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid level question count: {self._level_question_count}")

        if not isinstance(self._question_bank_directory, str) or not self._question_bank_directory.strip():
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid question bank directory: {self._question_bank_directory}")

        return validation_result

    def get_settings_summary(self) -> str:
        """
        Get a formatted summary of current settings.

        Returns:
            Human-readable string describing current settings
        """
        return (
            f"إعدادات الاختبار العشوائي:\n"
            f"• عدد الأسئلة: {self._random_count}\n"
            f"• مستوى الصعوبة: {self._difficulty.value}\n"
            f"• الوقت لكل سؤال: {self._time_per_question} ثانية\n"
            f"• أسئلة المستوى: {self._level_question_count}\n"
            f"• مجلد بنوك الأسئلة: {self._question_bank_directory}"
        )

    def get_configuration_health_check(self) -> Dict[str, Any]:
        """
        Check the configuration for problems that would surface at runtime.

        Returns:
            Dictionary with health status, warnings and errors
        """
        health_check = {
            'healthy': True,
            'warnings': [],
            'errors': []
        }

        validation_result = self.validate_settings()
        if not validation_result['valid']:
            health_check['healthy'] = False
            health_check['errors'].extend(validation_result['issues'])

        bank_dir = Path(self._question_bank_directory)
        if not bank_dir.exists():
            health_check['warnings'].append(
                f"Question bank directory does not exist: {self._question_bank_directory}"
            )
        elif not os.access(bank_dir, os.R_OK):
            health_check['healthy'] = False
            health_check['errors'].append(f"Cannot read question bank directory: {self._question_bank_directory}")

        return health_check
