"""
Question bank loading for offline custom quizzes.

A bank is a JSON file of the form
{"title": str, "questions": [{"question", "options", "correctAnswer", "time"?}]}
"""
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from .models import DEFAULT_QUESTION_TIME, Question, QuizSessionConfig
from .question_source import GenerationError, ingest_raw_questions

MAX_BANK_FILE_SIZE = 10 * 1024 * 1024

SAMPLE_BANK = {
    "title": "أسئلة تجريبية",
    "questions": [
        {
            "question": "كم عدد أركان الإسلام؟",
            "options": ["ثلاثة", "أربعة", "خمسة", "ستة"],
            "correctAnswer": "خمسة"
        },
        {
            "question": "ما هي أول سورة في المصحف الشريف؟",
            "options": ["البقرة", "الفاتحة", "الإخلاص", "الناس"],
            "correctAnswer": "الفاتحة"
        },
        {
            "question": "في أي مدينة ولد النبي ﷺ؟",
            "options": ["المدينة المنورة", "الطائف", "مكة المكرمة", "القدس"],
            "correctAnswer": "مكة المكرمة"
        }
    ]
}

FALLBACK_BANK_NAME = "fallback_bank"
SAMPLE_BANK_NAME = "sample_bank"


class QuestionBank:
    """Loads and validates JSON question bank files from a directory."""

    def __init__(self, bank_directory: str = "./question_banks/", time_per_question: int = DEFAULT_QUESTION_TIME):
        """
        Initialize QuestionBank with a directory path.

        Args:
            bank_directory: Path to directory containing JSON bank files
            time_per_question: Time budget for questions without their own "time"
        """
        self.bank_directory = Path(bank_directory)
        self.time_per_question = time_per_question
        self.loaded_banks: Dict[str, QuizSessionConfig] = {}
        self.logger = logging.getLogger(__name__)
        self.load_errors: List[str] = []
        self.fallback_bank_created = False

    def load_banks(self) -> Dict[str, QuizSessionConfig]:
        """
        Load all JSON files from the bank directory.

        Invalid files are skipped and recorded in load_errors. When nothing
        can be loaded a built-in bank is provided instead.

        Returns:
            Dictionary mapping bank names to quiz configs
        """
        self.loaded_banks.clear()
        self.load_errors.clear()
        self.fallback_bank_created = False

        directory_result = self._ensure_bank_directory()
        if not directory_result['success']:
            self.load_errors.append(directory_result['error'])
            return self._create_fallback_bank()

        try:
            json_files = sorted(self.bank_directory.glob("*.json"))
        except OSError as e:
            self.load_errors.append(f"System error scanning {self.bank_directory}: {e}")
            return self._create_fallback_bank()

        if not json_files:
            self.logger.warning(f"No JSON files found in {self.bank_directory}")
            self.load_errors.append(f"No question bank files found in {self.bank_directory}")
            return self._create_sample_bank()

        successful_loads = 0
        for json_file in json_files:
            load_result = self._load_bank_file_safely(json_file)
            if load_result['success']:
                successful_loads += 1
            else:
                self.load_errors.append(f"{json_file.name}: {load_result['error']}")

        if successful_loads == 0:
            self.logger.error("No question bank files could be loaded successfully")
            self.load_errors.append("All question bank files failed to load")
            return self._create_fallback_bank()

        self.logger.info(f"Successfully loaded {successful_loads} question banks")
        if self.load_errors:
            self.logger.warning(f"Encountered {len(self.load_errors)} loading errors")

        return self.loaded_banks

    def parse_bank(self, data: Any, default_title: str) -> QuizSessionConfig:
        """
        Validate bank data and turn it into a quiz config.

        Raises:
            GenerationError: If the structure or any question is invalid
        """
        if not isinstance(data, dict):
            raise GenerationError("Question bank must be a JSON object")
        if "questions" not in data:
            raise GenerationError("Question bank must contain a 'questions' key")

        title = data.get("title", default_title)
        if not isinstance(title, str) or not title.strip():
            raise GenerationError("Question bank 'title' must be a non-empty string")

        questions = ingest_raw_questions(data["questions"], self.time_per_question)
        return QuizSessionConfig(title=title.strip(), questions=questions)

    def _load_bank_file_safely(self, json_file: Path) -> Dict[str, Any]:
        try:
            if not os.access(json_file, os.R_OK):
                return {'success': False, 'error': "Permission denied: Cannot read file"}

            file_size = json_file.stat().st_size
            if file_size > MAX_BANK_FILE_SIZE:
                return {
                    'success': False,
                    'error': f"File too large ({file_size / 1024 / 1024:.1f}MB). "
                             f"Maximum size is {MAX_BANK_FILE_SIZE / 1024 / 1024}MB"
                }

            with open(json_file, 'r', encoding='utf-8') as f:
                data = json.load(f)

            config = self.parse_bank(data, default_title=json_file.stem)
            self.loaded_banks[json_file.stem] = config
            self.logger.info(f"Loaded question bank '{json_file.stem}' with {len(config.questions)} questions")
            return {'success': True}

        except json.JSONDecodeError as e:
            self.logger.error(f"Invalid JSON in {json_file}: {e}")
            return {'success': False, 'error': f"Invalid JSON: {e}"}
        except GenerationError as e:
            self.logger.error(f"Invalid question bank {json_file}: {e}")
            return {'success': False, 'error': str(e)}
        except OSError as e:
            return {'success': False, 'error': f"System error: {e}"}

    def _ensure_bank_directory(self) -> Dict[str, Any]:
        try:
            if not self.bank_directory.exists():
                self.bank_directory.mkdir(parents=True, exist_ok=True)
                self.logger.info(f"Created question bank directory: {self.bank_directory}")

            if not os.access(self.bank_directory, os.R_OK):
                return {'success': False, 'error': f"Permission denied: Cannot read from {self.bank_directory}"}

            return {'success': True}

        except PermissionError:
            return {'success': False, 'error': f"Permission denied: Cannot access {self.bank_directory}"}
        except OSError as e:
            return {'success': False, 'error': f"System error accessing {self.bank_directory}: {e}"}

    def _create_sample_bank(self) -> Dict[str, QuizSessionConfig]:
        """Write and load a sample bank when the directory is empty."""
        sample_file_path = self.bank_directory / f"{SAMPLE_BANK_NAME}.json"
        try:
            if not sample_file_path.exists():
                with open(sample_file_path, 'w', encoding='utf-8') as f:
                    json.dump(SAMPLE_BANK, f, indent=2, ensure_ascii=False)
                self.logger.info(f"Created sample question bank file: {sample_file_path}")
        except OSError as e:
            self.logger.error(f"Failed to write sample question bank: {e}")
            self.load_errors.append(f"Failed to write sample question bank: {e}")

        self.loaded_banks[SAMPLE_BANK_NAME] = self.parse_bank(SAMPLE_BANK, SAMPLE_BANK_NAME)
        return self.loaded_banks

    def _create_fallback_bank(self) -> Dict[str, QuizSessionConfig]:
        """Provide the sample questions in memory when no file can be used."""
        self.loaded_banks[FALLBACK_BANK_NAME] = self.parse_bank(SAMPLE_BANK, FALLBACK_BANK_NAME)
        self.fallback_bank_created = True
        self.logger.warning("Created fallback question bank due to file loading failures")
        return self.loaded_banks

    def get_available_banks(self) -> List[str]:
        return list(self.loaded_banks.keys())

    def get_bank(self, name: str) -> Optional[QuizSessionConfig]:
        return self.loaded_banks.get(name)

    def get_bank_questions(self, name: str) -> Optional[List[Question]]:
        bank = self.loaded_banks.get(name)
        return list(bank.questions) if bank else None

    def bank_exists(self, name: str) -> bool:
        return name in self.loaded_banks

    def get_load_errors(self) -> List[str]:
        return self.load_errors.copy()

    def has_load_errors(self) -> bool:
        return len(self.load_errors) > 0

    def is_fallback_bank_active(self) -> bool:
        return self.fallback_bank_created

    def get_loading_summary(self) -> Dict[str, Any]:
        """
        Get a summary of the last load operation.

        Returns:
            Dictionary with loading statistics and status
        """
        return {
            'total_banks': len(self.loaded_banks),
            'has_errors': self.has_load_errors(),
            'error_count': len(self.load_errors),
            'errors': self.get_load_errors(),
            'fallback_active': self.is_fallback_bank_active(),
            'bank_directory': str(self.bank_directory),
            'available_banks': self.get_available_banks()
        }
