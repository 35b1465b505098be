"""
Configuration manager for Horror Trivia Bot settings and parameters.
"""
import logging
import os
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse


@dataclass
class GameSettings:
    """Timing profiles, batch sizes and collaborator endpoints."""
    api_base_url: str = "http://localhost:3000"
    request_timeout: float = 10.0
    user_agent: str = "horror-trivia-bot/1.0"
    casual_seconds: int = 30
    contest_seconds: int = 10
    casual_batch_size: int = 20
    contest_batch_size: int = 500
    refill_batch_size: int = 20
    low_water_mark: int = 5
    advance_delay: int = 10


class ConfigManager:
    """Manages bot configuration settings and game parameters."""

    # Default configuration values
    DEFAULT_API_BASE_URL = "http://localhost:3000"
    DEFAULT_CASUAL_SECONDS = 30
    DEFAULT_CONTEST_SECONDS = 10

    # Validation limits
    MIN_QUESTION_SECONDS = 5
    MAX_QUESTION_SECONDS = 300  # 5 minutes
    MIN_BATCH_SIZE = 1
    MAX_BATCH_SIZE = 1000
    MIN_ADVANCE_DELAY = 1
    MAX_ADVANCE_DELAY = 60
    MIN_REQUEST_TIMEOUT = 1.0
    MAX_REQUEST_TIMEOUT = 120.0

    BATCH_FIELDS = ('casual_batch_size', 'contest_batch_size', 'refill_batch_size')

    def __init__(self):
        """Initialize ConfigManager with default settings."""
        self.logger = logging.getLogger(__name__)
        self._settings = GameSettings()

    def get_game_settings(self) -> GameSettings:
        """
        Get a copy of the current game settings.

        Returns:
            GameSettings object with current configuration
        """
        return replace(self._settings)

    def _reject(self, error_msg: str, user_message: str) -> Dict[str, Any]:
        self.logger.error(error_msg)
        return {
            'success': False,
            'error': error_msg,
            'user_message': user_message
        }

    def _accept(self, message: str) -> Dict[str, Any]:
        self.logger.info(message)
        return {
            'success': True,
            'message': message,
            'user_message': f"✅ {message}"
        }

    def set_question_seconds(self, mode: str, seconds: int) -> Dict[str, Any]:
        """
        Set the countdown length for casual or contest questions.

        Args:
            mode: "casual" or "contest"
            seconds: Seconds allowed per question

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if mode not in ('casual', 'contest'):
            return self._reject(
                f"Unknown game mode: {mode}",
                f"❌ Unknown game mode '{mode}': expected casual or contest"
            )

        if not isinstance(seconds, int) or isinstance(seconds, bool):
            return self._reject(
                f"Question time must be an integer, got {type(seconds).__name__}",
                f"❌ Invalid input: Expected a number, got {type(seconds).__name__}"
            )

        if seconds < self.MIN_QUESTION_SECONDS:
            return self._reject(
                f"Question time must be at least {self.MIN_QUESTION_SECONDS} seconds",
                f"❌ Timer too short: Minimum is {self.MIN_QUESTION_SECONDS} seconds"
            )

        if seconds > self.MAX_QUESTION_SECONDS:
            return self._reject(
                f"Question time cannot exceed {self.MAX_QUESTION_SECONDS} seconds",
                f"❌ Timer too long: Maximum is {self.MAX_QUESTION_SECONDS} seconds"
            )

        setattr(self._settings, f"{mode}_seconds", seconds)
        return self._accept(f"{mode.capitalize()} question time set to {seconds} seconds")

    def set_batch_size(self, name: str, size: int) -> Dict[str, Any]:
        """
        Set one of the question batch sizes.

        Args:
            name: casual_batch_size, contest_batch_size or refill_batch_size
            size: Number of questions requested per fetch

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if name not in self.BATCH_FIELDS:
            return self._reject(
                f"Unknown batch setting: {name}",
                f"❌ Unknown batch setting '{name}'"
            )

        if not isinstance(size, int) or isinstance(size, bool):
            return self._reject(
                f"Batch size must be an integer, got {type(size).__name__}",
                f"❌ Invalid input: Expected a number, got {type(size).__name__}"
            )

        if not self.MIN_BATCH_SIZE <= size <= self.MAX_BATCH_SIZE:
            return self._reject(
                f"Batch size must be between {self.MIN_BATCH_SIZE} and {self.MAX_BATCH_SIZE}",
                f"❌ Batch size out of range: use {self.MIN_BATCH_SIZE}-{self.MAX_BATCH_SIZE}"
            )

        setattr(self._settings, name, size)
        return self._accept(f"{name.replace('_', ' ').capitalize()} set to {size}")

    def set_low_water_mark(self, mark: int) -> Dict[str, Any]:
        """Set how few unconsumed questions trigger a background refill."""
        if not isinstance(mark, int) or isinstance(mark, bool) or mark < 0:
            return self._reject(
                f"Low water mark must be a non-negative integer, got {mark!r}",
                "❌ Invalid input: Expected a whole number of questions"
            )

        self._settings.low_water_mark = mark
        return self._accept(f"Low water mark set to {mark}")

    def set_advance_delay(self, seconds: int) -> Dict[str, Any]:
        """Set the pause on the answer screen before the next question loads."""
        if not isinstance(seconds, int) or isinstance(seconds, bool):
            return self._reject(
                f"Advance delay must be an integer, got {type(seconds).__name__}",
                f"❌ Invalid input: Expected a number, got {type(seconds).__name__}"
            )

        if not self.MIN_ADVANCE_DELAY <= seconds <= self.MAX_ADVANCE_DELAY:
            return self._reject(
                f"Advance delay must be between {self.MIN_ADVANCE_DELAY} and {self.MAX_ADVANCE_DELAY} seconds",
                f"❌ Delay out of range: use {self.MIN_ADVANCE_DELAY}-{self.MAX_ADVANCE_DELAY} seconds"
            )

        self._settings.advance_delay = seconds
        return self._accept(f"Advance delay set to {seconds} seconds")

    def set_api_base_url(self, base_url: str) -> Dict[str, Any]:
        """
        Set the base URL of the trivia backend.

        Args:
            base_url: http(s) URL without a trailing path

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if not isinstance(base_url, str) or not base_url.strip():
            return self._reject(
                "API base URL cannot be empty",
                "❌ API base URL cannot be empty"
            )

        parsed = urlparse(base_url.strip())
        if parsed.scheme not in ('http', 'https') or not parsed.netloc:
            return self._reject(
                f"Invalid API base URL: {base_url}",
                f"❌ Invalid URL: {base_url}"
            )

        self._settings.api_base_url = base_url.strip().rstrip('/')
        return self._accept(f"API base URL set to {self._settings.api_base_url}")

    def set_request_timeout(self, timeout: float) -> Dict[str, Any]:
        """Set the HTTP timeout used for every backend call."""
        if not isinstance(timeout, (int, float)) or isinstance(timeout, bool):
            return self._reject(
                f"Request timeout must be a number, got {type(timeout).__name__}",
                f"❌ Invalid input: Expected a number, got {type(timeout).__name__}"
            )

        if not self.MIN_REQUEST_TIMEOUT <= timeout <= self.MAX_REQUEST_TIMEOUT:
            return self._reject(
                f"Request timeout must be between {self.MIN_REQUEST_TIMEOUT} and {self.MAX_REQUEST_TIMEOUT} seconds",
                "❌ Timeout out of range"
            )

        self._settings.request_timeout = float(timeout)
        return self._accept(f"Request timeout set to {float(timeout)} seconds")

    def apply_config(self, config: Dict[str, Any]) -> List[str]:
        """
        Apply the 'api' and 'game' sections of a loaded config.json.

        Environment variable TRIVIA_API_BASE_URL overrides the file.

        Returns:
            List of user-friendly messages for settings that were rejected
        """
        problems = []
        api_config = config.get('api', {}) or {}
        game_config = config.get('game', {}) or {}

        results = []
        base_url = os.getenv('TRIVIA_API_BASE_URL') or api_config.get('base_url')
        if base_url is not None:
            results.append(self.set_api_base_url(base_url))
        if 'request_timeout' in api_config:
            results.append(self.set_request_timeout(api_config['request_timeout']))
        if api_config.get('user_agent'):
            self._settings.user_agent = str(api_config['user_agent'])

        if 'casual_seconds' in game_config:
            results.append(self.set_question_seconds('casual', game_config['casual_seconds']))
        if 'contest_seconds' in game_config:
            results.append(self.set_question_seconds('contest', game_config['contest_seconds']))
        for name in self.BATCH_FIELDS:
            if name in game_config:
                results.append(self.set_batch_size(name, game_config[name]))
        if 'low_water_mark' in game_config:
            results.append(self.set_low_water_mark(game_config['low_water_mark']))
        if 'advance_delay' in game_config:
            results.append(self.set_advance_delay(game_config['advance_delay']))

        for result in results:
            if not result['success']:
                problems.append(result['user_message'])

        if problems:
            self.logger.warning(f"Configuration applied with {len(problems)} rejected settings")
        else:
            self.logger.info("Configuration applied successfully")
        return problems

    def reset_to_defaults(self) -> None:
        """Reset all settings to their default values."""
        self._settings = GameSettings()
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
        settings = self._settings

        for mode in ('casual', 'contest'):
            seconds = getattr(settings, f"{mode}_seconds")
            if not self.MIN_QUESTION_SECONDS <= seconds <= self.MAX_QUESTION_SECONDS:
                validation_result["valid"] = False
                validation_result["issues"].append(f"Invalid {mode} question time: {seconds}")

        for name in self.BATCH_FIELDS:
            size = getattr(settings, name)
            if not self.MIN_BATCH_SIZE <= size <= self.MAX_BATCH_SIZE:
                validation_result["valid"] = False
                validation_result["issues"].append(f"Invalid {name}: {size}")

        if settings.low_water_mark < 0:
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid low water mark: {settings.low_water_mark}")

        if not self.MIN_ADVANCE_DELAY <= settings.advance_delay <= self.MAX_ADVANCE_DELAY:
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid advance delay: {settings.advance_delay}")

        if not settings.api_base_url:
            validation_result["valid"] = False
            validation_result["issues"].append("Missing API base URL")

        return validation_result

    def get_settings_summary(self, mode: Optional[str] = None) -> str:
        """
        Get a formatted summary of current settings.

        Returns:
            Human-readable string describing current settings
        """
        settings = self._settings
        lines = ["Trivia Settings:"]
        if mode in (None, 'casual'):
            lines.append(
                f"• Casual: {settings.casual_seconds}s per question, "
                f"{settings.casual_batch_size} questions per batch"
            )
        if mode in (None, 'contest'):
            lines.append(
                f"• Contest: {settings.contest_seconds}s per question, "
                f"{settings.contest_batch_size} questions"
            )
        lines.append(f"• Next question after: {settings.advance_delay} seconds")
        lines.append(f"• Backend: {settings.api_base_url}")
        return "\n".join(lines)
