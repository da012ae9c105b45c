"""
Configuration management with three-tier precedence system:
1. Default values from codebase
2. Environment variables (and .env via python-dotenv)
3. Explicit overrides passed by the caller (tests, embedding code)

Precedence: Overrides > Environment Variables > Defaults

``Settings`` is the single configuration object the server, the pipeline and
the auth layer are parameterized by.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from dotenv import load_dotenv

from .errors import ConfigurationError

# Load environment variables from .env file
load_dotenv()

MIB = 1024 * 1024

AUTH_MODES = ("password", "none")
PROGRESS_MODES = ("none", "poll", "sse")


class ConfigManager:
    """Manages configuration with three-tier precedence."""

    # Default values (Tier 1 - Codebase defaults)
    DEFAULTS = {
        "OPENAI_API_KEY": "",
        "OPENAI_BASE_URL": "",
        "TRANSCRIPTION_MODEL": "whisper-1",
        "TRANSCRIPTION_TIMEOUT": "600",
        "ACCESS_PASSWORD": "changeme",
        "TOKEN_SECRET": "change-this-token-secret",
        "TOKEN_MAX_AGE": str(7 * 24 * 3600),
        "AUTH_MODE": "password",
        "PROGRESS_MODE": "poll",
        "HOST": "0.0.0.0",
        "PORT": "3000",
        "UPLOAD_DIR": "uploads",
        "MAX_UPLOAD_MB": "1536",
        "SEGMENT_CEILING_MB": "20",
        "REMOTE_CEILING_MB": "25",
        "FFMPEG_BIN": "ffmpeg",
        "FFPROBE_BIN": "ffprobe",
        "FFMPEG_TIMEOUT": "3600",
        "PROBE_TIMEOUT": "60",
        "ALLOWED_ORIGINS": "",
        "SECURITY_HEADERS": "true",
        "LOG_LEVEL": "INFO",
        "RATE_LIMIT_ENABLED": "true",
        "RATE_LIMIT_WINDOW_MS": str(15 * 60 * 1000),
        "RATE_LIMIT_MAX_REQUESTS": "100",
    }

    @staticmethod
    def get(key: str, override: Optional[Any] = None) -> Any:
        """
        Get configuration value with three-tier precedence.

        Args:
            key: Configuration key
            override: Explicit value (highest priority)

        Returns:
            Configuration value from highest priority source

        Priority:
            1. Override (if provided and not empty)
            2. Environment variable
            3. Default value
        """
        # Tier 3: explicit override (highest priority)
        if override is not None and override != "":
            return override

        # Tier 2: Environment variable
        env_value = os.getenv(key)
        if env_value is not None and env_value != "":
            return env_value

        # Tier 1: Default value
        return ConfigManager.DEFAULTS.get(key, "")

    @staticmethod
    def get_display_value(key: str, override: Optional[Any] = None) -> Tuple[Any, str]:
        """
        Get configuration value and its source.

        Returns:
            Tuple of (value, source) where source is 'override', 'env', or 'default'
        """
        if override is not None and override != "":
            return override, "override"

        env_value = os.getenv(key)
        if env_value is not None and env_value != "":
            return env_value, "env"

        return ConfigManager.DEFAULTS.get(key, ""), "default"

    @staticmethod
    def is_using_default(key: str, override: Optional[Any] = None) -> bool:
        """Check if configuration is using default value."""
        _, source = ConfigManager.get_display_value(key, override)
        return source == "default"


def _as_int(key: str, value: Any) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{key} must be an integer, got {value!r}")
    if number <= 0:
        raise ConfigurationError(f"{key} must be positive, got {number}")
    return number


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def _choice(key: str, value: Any, choices: Tuple[str, ...]) -> str:
    value = str(value).strip().lower()
    if value not in choices:
        raise ConfigurationError(f"{key} must be one of {', '.join(choices)}, got {value!r}")
    return value


@dataclass(frozen=True)
class Settings:
    """Resolved configuration for one server process."""

    openai_api_key: str
    openai_base_url: str
    transcription_model: str
    transcription_timeout: int
    access_password: str
    token_secret: str
    token_max_age: int
    auth_mode: str
    progress_mode: str
    host: str
    port: int
    upload_dir: Path
    max_upload_bytes: int
    segment_ceiling_bytes: int
    remote_ceiling_bytes: int
    ffmpeg_bin: str
    ffprobe_bin: str
    ffmpeg_timeout: int
    probe_timeout: int
    allowed_origins: Tuple[str, ...]
    security_headers: bool
    log_level: str
    rate_limit_enabled: bool
    rate_limit_window_seconds: int
    rate_limit_max_requests: int
    uses_default_password: bool = False
    uses_default_token_secret: bool = False

    @classmethod
    def from_env(cls, overrides: Optional[Dict[str, Any]] = None) -> "Settings":
        """
        Build settings from overrides, the environment and defaults.

        Args:
            overrides: Mapping of configuration keys (e.g. ``"UPLOAD_DIR"``) to values

        Raises:
            ConfigurationError: If a value cannot be parsed
        """
        overrides = overrides or {}

        def get(key: str) -> Any:
            return ConfigManager.get(key, overrides.get(key))

        origins = tuple(o.strip() for o in str(get("ALLOWED_ORIGINS")).split(",") if o.strip())

        return cls(
            openai_api_key=str(get("OPENAI_API_KEY")),
            openai_base_url=str(get("OPENAI_BASE_URL")),
            transcription_model=str(get("TRANSCRIPTION_MODEL")),
            transcription_timeout=_as_int("TRANSCRIPTION_TIMEOUT", get("TRANSCRIPTION_TIMEOUT")),
            access_password=str(get("ACCESS_PASSWORD")),
            token_secret=str(get("TOKEN_SECRET")),
            token_max_age=_as_int("TOKEN_MAX_AGE", get("TOKEN_MAX_AGE")),
            auth_mode=_choice("AUTH_MODE", get("AUTH_MODE"), AUTH_MODES),
            progress_mode=_choice("PROGRESS_MODE", get("PROGRESS_MODE"), PROGRESS_MODES),
            host=str(get("HOST")),
            port=_as_int("PORT", get("PORT")),
            upload_dir=Path(get("UPLOAD_DIR")),
            max_upload_bytes=_as_int("MAX_UPLOAD_MB", get("MAX_UPLOAD_MB")) * MIB,
            segment_ceiling_bytes=_as_int("SEGMENT_CEILING_MB", get("SEGMENT_CEILING_MB")) * MIB,
            remote_ceiling_bytes=_as_int("REMOTE_CEILING_MB", get("REMOTE_CEILING_MB")) * MIB,
            ffmpeg_bin=str(get("FFMPEG_BIN")),
            ffprobe_bin=str(get("FFPROBE_BIN")),
            ffmpeg_timeout=_as_int("FFMPEG_TIMEOUT", get("FFMPEG_TIMEOUT")),
            probe_timeout=_as_int("PROBE_TIMEOUT", get("PROBE_TIMEOUT")),
            allowed_origins=origins,
            security_headers=_as_bool(get("SECURITY_HEADERS")),
            log_level=str(get("LOG_LEVEL")).upper(),
            rate_limit_enabled=_as_bool(get("RATE_LIMIT_ENABLED")),
            rate_limit_window_seconds=max(1, _as_int("RATE_LIMIT_WINDOW_MS", get("RATE_LIMIT_WINDOW_MS")) // 1000),
            rate_limit_max_requests=_as_int("RATE_LIMIT_MAX_REQUESTS", get("RATE_LIMIT_MAX_REQUESTS")),
            uses_default_password=ConfigManager.is_using_default("ACCESS_PASSWORD", overrides.get("ACCESS_PASSWORD")),
            uses_default_token_secret=ConfigManager.is_using_default("TOKEN_SECRET", overrides.get("TOKEN_SECRET")),
        )

    @property
    def rate_limit(self) -> str:
        """Per-client limit for ``/api/`` routes in Flask-Limiter notation."""
        return f"{self.rate_limit_max_requests} per {self.rate_limit_window_seconds} second"

    @property
    def has_openai_key(self) -> bool:
        return bool(self.openai_api_key)

    def require_openai_key(self) -> str:
        """Return the OpenAI key or fail with ``ConfigurationError``."""
        if not self.openai_api_key:
            raise ConfigurationError("OpenAI API key not configured (set OPENAI_API_KEY)")
        return self.openai_api_key
