"""
Configuration manager for Flag Quiz Bot settings.
"""
import logging
from typing import Optional, Dict, Any, List, Union
from pathlib import Path
import os

from .models import Difficulty, QuizSettings, MAX_OPTIONS_COUNT


class ConfigManager:
    """Manages quiz settings used when new game sessions are created."""

    # Default configuration values
    DEFAULT_DIFFICULTY = Difficulty.EASY
    DEFAULT_ADVANCE_DELAY_MS = 2000
    DEFAULT_CATALOG_PATH = "./countries.json"

    # Validation limits
    MIN_ADVANCE_DELAY_MS = 500
    MAX_ADVANCE_DELAY_MS = 30000

    def __init__(self):
        """Initialize ConfigManager with default settings."""
        self.logger = logging.getLogger(__name__)
        self._global_settings = QuizSettings(
            default_difficulty=self.DEFAULT_DIFFICULTY,
            advance_delay_ms=self.DEFAULT_ADVANCE_DELAY_MS,
            catalog_path=self.DEFAULT_CATALOG_PATH
        )

    def get_quiz_settings(self) -> QuizSettings:
        """
        Get current quiz settings.

        Returns:
            Copy of the current QuizSettings
        """
        return QuizSettings(
            default_difficulty=self._global_settings.default_difficulty,
            advance_delay_ms=self._global_settings.advance_delay_ms,
            catalog_path=self._global_settings.catalog_path
        )

    def set_default_difficulty(self, difficulty: Union[Difficulty, str]) -> Dict[str, Any]:
        """
        Set the difficulty new sessions start with.

        Args:
            difficulty: Difficulty member, or its value/label as a string

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if isinstance(difficulty, str):
            try:
                difficulty = Difficulty.from_string(difficulty)
            except ValueError as e:
                self.logger.error(str(e))
                labels = ", ".join(d.label for d in Difficulty)
                return {
                    'success': False,
                    'error': str(e),
                    'user_message': f"❌ Unknown difficulty. Choose one of: {labels}"
                }

        if not isinstance(difficulty, Difficulty):
            error_msg = f"Difficulty must be a Difficulty or string, got {type(difficulty).__name__}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid input: Expected a difficulty, got {type(difficulty).__name__}"
            }

        self._global_settings.default_difficulty = difficulty
        self.logger.info(f"Default difficulty set to {difficulty.label}")
        return {
            'success': True,
            'message': f"Default difficulty set to {difficulty.label}",
            'user_message': f"✅ New games start on {difficulty.label} ({difficulty.options_count} options)"
        }

    def get_default_difficulty(self) -> Difficulty:
        return self._global_settings.default_difficulty

    def set_advance_delay(self, delay_ms: int) -> Dict[str, Any]:
        """
        Set the pause between answering a round and the next round.

        Args:
            delay_ms: Delay in milliseconds

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        # bool is an int subclass but never a valid delay
        if not isinstance(delay_ms, int) or isinstance(delay_ms, bool):
            error_msg = f"Advance delay must be an integer, got {type(delay_ms).__name__}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid input: Expected a number, got {type(delay_ms).__name__}"
            }

        if delay_ms < self.MIN_ADVANCE_DELAY_MS:
            error_msg = f"Advance delay must be at least {self.MIN_ADVANCE_DELAY_MS} ms"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Delay too short: Minimum is {self.MIN_ADVANCE_DELAY_MS} ms"
            }

        if delay_ms > self.MAX_ADVANCE_DELAY_MS:
            error_msg = f"Advance delay cannot exceed {self.MAX_ADVANCE_DELAY_MS} ms"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Delay too long: Maximum is {self.MAX_ADVANCE_DELAY_MS} ms"
            }

        self._global_settings.advance_delay_ms = delay_ms
        self.logger.info(f"Advance delay set to {delay_ms} ms")
        return {
            'success': True,
            'message': f"Advance delay set to {delay_ms} ms",
            'user_message': f"✅ Next flag appears {delay_ms / 1000:g} seconds after each answer"
        }

    def get_advance_delay(self) -> int:
        return self._global_settings.advance_delay_ms

    def set_catalog_path(self, path: str) -> Dict[str, Any]:
        """
        Set the path of the country catalog JSON file.

        Args:
            path: Path to the catalog file

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if not isinstance(path, str):
            error_msg = f"Catalog path must be a string, got {type(path).__name__}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid input: Expected a path string, got {type(path).__name__}"
            }

        if not path.strip():
            error_msg = "Catalog path cannot be empty"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': "❌ Catalog path cannot be empty"
            }

        try:
            normalized_path = str(Path(path).resolve())
        except (OSError, ValueError) as e:
            error_msg = f"Invalid catalog path format: {e}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid path format: {path}"
            }

        self._global_settings.catalog_path = normalized_path
        self.logger.info(f"Catalog path set to {normalized_path}")
        return {
            'success': True,
            'message': f"Catalog path set to {normalized_path}",
            'user_message': f"✅ Country catalog path set to {normalized_path}"
        }

    def get_catalog_path(self) -> str:
        return self._global_settings.catalog_path

    def apply_config(self, quiz_config: Optional[Dict[str, Any]]) -> List[str]:
        """
        Apply the "quiz" section of config.json.

        Invalid entries are logged and skipped so the defaults stay in effect.

        Returns:
            Error messages for the entries that were rejected
        """
        errors = []
        if not quiz_config:
            return errors

        results = []
        if 'default_difficulty' in quiz_config:
            results.append(self.set_default_difficulty(quiz_config['default_difficulty']))
        if 'advance_delay_ms' in quiz_config:
            results.append(self.set_advance_delay(quiz_config['advance_delay_ms']))
        if 'catalog_path' in quiz_config:
            results.append(self.set_catalog_path(quiz_config['catalog_path']))

        for result in results:
            if not result['success']:
                errors.append(result['error'])

        if errors:
            self.logger.warning(f"Ignored {len(errors)} invalid configuration entries")
        return errors

    def reset_to_defaults(self) -> None:
        """Reset all settings to their default values."""
        self._global_settings = QuizSettings(
            default_difficulty=self.DEFAULT_DIFFICULTY,
            advance_delay_ms=self.DEFAULT_ADVANCE_DELAY_MS,
            catalog_path=self.DEFAULT_CATALOG_PATH
        )
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

        if not isinstance(self._global_settings.default_difficulty, Difficulty):
            validation_result["valid"] = False
            validation_result["issues"].append(
                f"Invalid default difficulty: {self._global_settings.default_difficulty}"
            )

        delay = self._global_settings.advance_delay_ms
        if (not isinstance(delay, int) or
            delay < self.MIN_ADVANCE_DELAY_MS or
            delay > self.MAX_ADVANCE_DELAY_MS):
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid advance delay: {delay}")

        catalog_path = self._global_settings.catalog_path
        if not isinstance(catalog_path, str) or not catalog_path.strip():
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid catalog path: {catalog_path}")

        return validation_result

    def get_settings_summary(self) -> str:
        """
        Get a formatted summary of current settings.

        Returns:
            Human-readable string describing current settings
        """
        difficulty = self._global_settings.default_difficulty
        return (
            f"Quiz Settings:\n"
            f"• Difficulty: {difficulty.label} ({difficulty.options_count} options)\n"
            f"• Next flag after: {self._global_settings.advance_delay_ms} ms\n"
            f"• Catalog: {Path(self._global_settings.catalog_path).name}"
        )

    def get_configuration_health_check(self, catalog_size: Optional[int] = None) -> Dict[str, Any]:
        """
        Perform a health check of the configuration.

        Args:
            catalog_size: Number of countries in the loaded catalog, if known

        Returns:
            Dictionary with health status and recommendations
        """
        health_check = {
            'healthy': True,
            'warnings': [],
            'errors': [],
            'recommendations': []
        }

        validation_result = self.validate_settings()
        if not validation_result['valid']:
            health_check['healthy'] = False
            health_check['errors'].extend(
                f"❌ Configuration Issue: {issue}" for issue in validation_result['issues']
            )

        catalog_path = Path(self._global_settings.catalog_path)
        if not catalog_path.exists():
            health_check['warnings'].append(
                f"⚠️ Catalog file does not exist: {self._global_settings.catalog_path}"
            )
            health_check['recommendations'].append(
                "The built-in country list will be used."
            )
        elif not os.access(catalog_path, os.R_OK):
            health_check['healthy'] = False
            health_check['errors'].append(
                f"❌ Cannot read catalog file: {self._global_settings.catalog_path}"
            )

        if catalog_size is not None and catalog_size < MAX_OPTIONS_COUNT:
            health_check['healthy'] = False
            health_check['errors'].append(
                f"❌ Catalog has {catalog_size} countries, at least {MAX_OPTIONS_COUNT} are needed"
            )
            health_check['recommendations'].append(
                "Add more countries to the catalog file."
            )

        if self._global_settings.advance_delay_ms < 1000:
            health_check['warnings'].append(
                f"⚠️ Short advance delay ({self._global_settings.advance_delay_ms} ms) may hide the feedback"
            )

        return health_check
