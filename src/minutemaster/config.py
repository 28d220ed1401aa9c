"""
Configuration management with three-tier precedence system:
1. Default values from codebase
2. Environment variables from .env
3. User settings from UI (stored in session state for Streamlit)

Precedence: UI Settings > Environment Variables > Defaults

The server additionally persists the encrypted OpenAI key in a small JSON
file (config.json) when it runs without user accounts.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)

_TRUE_VALUES = {"1", "true", "yes", "on"}


class ConfigManager:
    """Manages configuration with three-tier precedence."""

    # Default values (Tier 1 - Codebase defaults)
    DEFAULTS = {
        "API_BASE_URL": "http://localhost:3000",
        "HOST": "0.0.0.0",
        "PORT": "3000",
        "LLM_API_BASE_URL": "",
        "LLM_MODEL": "gpt-4",
        "TRANSCRIPTION_MODEL": "whisper-1",
        "OPENAI_API_KEY": "",
        "SECRET_KEY": "",
        "REQUIRE_AUTH": "true",
        "DATA_DIR": "data",
        "CONFIG_FILE": "config.json",
        "RECORDINGS_DIR": "recordings",
        "FIREBASE_CREDENTIALS": "firebase-config/serviceAccountKey.json",
        "FIREBASE_STORAGE_BUCKET": "minutemaster-ef8d3.firebasestorage.app",
        "LOG_LEVEL": "INFO",
        "MAX_UPLOAD_MB": "500",
        "FFMPEG_BINARY": "ffmpeg",
        "SOFFICE_BINARY": "soffice",
    }

    @staticmethod
    def get(key: str, ui_override: Optional[Any] = None) -> Any:
        """
        Get configuration value with three-tier precedence.

        Args:
            key: Configuration key
            ui_override: UI setting value (highest priority)

        Returns:
            Configuration value from highest priority source
        """
        value, _ = ConfigManager.get_display_value(key, ui_override)
        return value

    @staticmethod
    def get_display_value(key: str, ui_override: Optional[Any] = None) -> tuple[Any, str]:
        """
        Get configuration value and its source.

        Returns:
            Tuple of (value, source) where source is 'ui', 'env', or 'default'
        """
        if ui_override is not None and ui_override != "":
            return ui_override, "ui"

        env_value = os.getenv(key)
        if env_value is not None and env_value != "":
            return env_value, "env"

        return ConfigManager.DEFAULTS.get(key, ""), "default"

    @staticmethod
    def get_int(key: str, ui_override: Optional[Any] = None) -> int:
        """Get a configuration value as an integer, falling back to the default when unparsable."""
        value = ConfigManager.get(key, ui_override)
        try:
            return int(value)
        except (TypeError, ValueError):
            logger.warning(f"Invalid integer for {key}: {value!r}, using default")
            return int(ConfigManager.DEFAULTS.get(key, 0) or 0)

    @staticmethod
    def get_bool(key: str, ui_override: Optional[Any] = None) -> bool:
        """Get a configuration value as a boolean ("1", "true", "yes", "on")."""
        value = ConfigManager.get(key, ui_override)
        if isinstance(value, bool):
            return value
        return str(value).strip().lower() in _TRUE_VALUES

    @staticmethod
    def is_using_default(key: str, ui_override: Optional[Any] = None) -> bool:
        """Check if configuration is using default value."""
        _, source = ConfigManager.get_display_value(key, ui_override)
        return source == "default"

    @staticmethod
    def is_using_env(key: str, ui_override: Optional[Any] = None) -> bool:
        """Check if configuration is using environment variable."""
        _, source = ConfigManager.get_display_value(key, ui_override)
        return source == "env"

    @staticmethod
    def is_using_ui(key: str, ui_override: Optional[Any] = None) -> bool:
        """Check if configuration is using UI override."""
        _, source = ConfigManager.get_display_value(key, ui_override)
        return source == "ui"


class ConfigStore:
    """JSON file holding server-side settings that must survive restarts."""

    def __init__(self, path: Optional[str] = None):
        self.path = Path(path or ConfigManager.get("CONFIG_FILE"))

    def load(self) -> Dict[str, Any]:
        """Load the stored settings, or an empty dict if the file is missing or unreadable."""
        if not self.path.exists():
            return {}

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            logger.warning(f"Could not read {self.path}: {e}")
            return {}

        return data if isinstance(data, dict) else {}

    def save(self, data: Dict[str, Any]) -> None:
        """Write settings to disk, creating the parent directory if needed."""
        if self.path.parent and not self.path.parent.exists():
            self.path.parent.mkdir(parents=True, exist_ok=True)

        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)

    def get_encrypted_api_key(self) -> Optional[str]:
        return self.load().get("encryptedApiKey")

    def set_encrypted_api_key(self, value: Optional[str]) -> None:
        data = self.load()
        data["encryptedApiKey"] = value
        self.save(data)
