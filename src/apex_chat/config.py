"""Configuration loading and validation for the Apex chat client."""

from __future__ import annotations

from copy import deepcopy
import logging
import os
from pathlib import Path
import tomllib
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
)

from .exceptions import ConfigValidationError

LOGGER = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".config" / "apexchat"
CONFIG_PATH = CONFIG_DIR / "config.toml"

VALID_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}

APEX_SYSTEM_INSTRUCTION = (
    "You are Apex, a powerful and friendly AI assistant. Your personality is "
    "analytical, creative, concise, and pedagogical. You must always aim for the "
    "highest level of accuracy and relevance in your responses. Please incorporate "
    "relevant emojis naturally throughout your answers to make them more engaging "
    "and expressive. Format your answers clearly using markdown where appropriate, "
    "especially for code blocks."
)

CODE_SYSTEM_INSTRUCTION = (
    "You are an expert programmer. Provide only code in your responses, with brief "
    "explanations in comments. Use markdown for all code blocks."
)


def _non_empty_string(value: Any) -> str:
    if not isinstance(value, str):
        raise ValueError("Expected a string value.")
    normalized = value.strip()
    if not normalized:
        raise ValueError("String value must not be empty.")
    return normalized


class AppConfig(BaseModel):
    """Application metadata."""

    title: str = "Apex"
    export_directory: str = "~/Documents/apexchat"

    @field_validator("title", "export_directory", mode="before")
    @classmethod
    def _validate_non_empty_string(cls, value: Any) -> str:
        return _non_empty_string(value)


class GeminiConfig(BaseModel):
    """Gemini endpoint credentials and model names."""

    api_key: str = ""
    chat_model: str = "gemini-2.5-flash"
    search_model: str = "gemini-2.5-flash"
    title_model: str = "gemini-2.5-flash"
    image_model: str = "imagen-4.0-generate-001"
    video_model: str = "veo-2.0-generate-001"
    timeout: int = Field(default=120, ge=1, le=3600)

    @field_validator("api_key", mode="before")
    @classmethod
    def _normalize_api_key(cls, value: Any) -> str:
        if value is None:
            return ""
        if not isinstance(value, str):
            raise ValueError("api_key must be a string.")
        return value.strip()

    @field_validator(
        "chat_model", "search_model", "title_model", "image_model", "video_model",
        mode="before",
    )
    @classmethod
    def _validate_model_name(cls, value: Any) -> str:
        return _non_empty_string(value)


class GenerationConfig(BaseModel):
    """System instructions bound to chat sessions."""

    system_instruction: str = APEX_SYSTEM_INSTRUCTION
    code_system_instruction: str = CODE_SYSTEM_INSTRUCTION

    @field_validator("system_instruction", "code_system_instruction", mode="before")
    @classmethod
    def _validate_instruction(cls, value: Any) -> str:
        return _non_empty_string(value)


class VideoConfig(BaseModel):
    """Long-running video job polling schedule."""

    poll_intervals_seconds: list[float] = Field(
        default_factory=lambda: [10.0, 10.0, 15.0, 20.0]
    )
    download_timeout_seconds: int = Field(default=300, ge=1, le=3600)

    @field_validator("poll_intervals_seconds", mode="before")
    @classmethod
    def _validate_intervals(cls, value: Any) -> list[float]:
        if not isinstance(value, list) or not value:
            raise ValueError("poll_intervals_seconds must be a non-empty list.")
        intervals: list[float] = []
        for item in value:
            if isinstance(item, bool) or not isinstance(item, (int, float)):
                raise ValueError("Poll intervals must be numbers.")
            if item <= 0:
                raise ValueError("Poll intervals must be positive.")
            intervals.append(float(item))
        return intervals


class PersistenceConfig(BaseModel):
    """Conversation snapshot settings."""

    enabled: bool = True
    path: str = "~/.local/state/apexchat/conversations.json"

    @field_validator("path", mode="before")
    @classmethod
    def _validate_path_string(cls, value: Any) -> str:
        return _non_empty_string(value)


class LoggingConfig(BaseModel):
    """Logging behavior and output destinations."""

    level: str = "INFO"
    structured: bool = True
    log_to_file: bool = False
    log_file_path: str = "~/.local/state/apexchat/app.log"

    @field_validator("level", mode="before")
    @classmethod
    def _validate_level(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("Logging level must be a string.")
        normalized = value.strip().upper()
        if normalized not in VALID_LOG_LEVELS:
            raise ValueError(f"Unsupported log level {normalized!r}.")
        return normalized

    @field_validator("log_file_path", mode="before")
    @classmethod
    def _validate_log_file_path(cls, value: Any) -> str:
        return _non_empty_string(value)


class IdentityConfig(BaseModel):
    """Local identity used by the terminal front-end when signing in."""

    display_name: str = ""
    provider: str = "local"

    @field_validator("provider", mode="before")
    @classmethod
    def _validate_provider(cls, value: Any) -> str:
        normalized = _non_empty_string(value).lower()
        if normalized not in {"google", "github", "local"}:
            raise ValueError(f"Unsupported identity provider {normalized!r}.")
        return normalized


class Config(BaseModel):
    """Root configuration model for all sections."""

    model_config = ConfigDict(populate_by_name=True)
    app: AppConfig = AppConfig()
    gemini: GeminiConfig = GeminiConfig()
    generation: GenerationConfig = GenerationConfig()
    video: VideoConfig = VideoConfig()
    persistence: PersistenceConfig = PersistenceConfig()
    logging: LoggingConfig = LoggingConfig()
    identity: IdentityConfig = IdentityConfig()


DEFAULT_CONFIG: dict[str, dict[str, Any]] = Config().model_dump()


def ensure_config_dir(config_dir: Path | None = None) -> Path:
    """Ensure that the config directory exists and return its path."""
    directory = config_dir or CONFIG_DIR
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        LOGGER.warning("Unable to create config directory %s: %s", directory, exc)
    return directory


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override values onto base values."""
    merged: dict[str, Any] = deepcopy(base)
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _enforce_private_permissions(path: Path) -> None:
    """Best-effort enforcement of private file permissions; the file may hold an API key."""
    if os.name != "posix" or not path.exists():
        return
    try:
        path.chmod(0o600)
    except OSError as exc:
        LOGGER.warning("Unable to enforce 0600 permissions for %s: %s", path, exc)


def _safe_default_config() -> dict[str, dict[str, Any]]:
    """Return a deep copy of validated default config data."""
    return deepcopy(DEFAULT_CONFIG)


def _validate_config(raw: dict[str, Any]) -> dict[str, dict[str, Any]]:
    """Validate merged config and fallback to safe defaults when possible."""
    try:
        config = Config.model_validate(raw)
        return config.model_dump()
    except ValidationError as exc:
        LOGGER.warning("Configuration validation failed, using safe defaults: %s", exc)
        return _safe_default_config()
    except Exception as exc:  # noqa: BLE001 - unexpected model construction failure.
        raise ConfigValidationError(f"Unable to validate configuration: {exc}") from exc


def load_config(config_path: Path | None = None) -> dict[str, dict[str, Any]]:
    """
    Load configuration from TOML, merge with defaults, and validate.

    The optional ``config_path`` argument is intended for tests and tooling.
    """
    target_path = config_path or CONFIG_PATH
    ensure_config_dir(target_path.parent)

    raw_data: dict[str, Any] = {}
    if target_path.exists():
        _enforce_private_permissions(target_path)
        try:
            raw_data = tomllib.loads(target_path.read_text(encoding="utf-8"))
        except (
            Exception
        ) as exc:  # noqa: BLE001 - we must not crash on invalid user config.
            LOGGER.warning("Failed to parse config at %s: %s", target_path, exc)
            raw_data = {}

    merged = (
        _deep_merge(DEFAULT_CONFIG, raw_data)
        if isinstance(raw_data, dict)
        else _safe_default_config()
    )
    return _validate_config(merged)
