"""Configuration settings for SceneForge."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigError(RuntimeError):
    """Raised when a settings file cannot be loaded."""


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or overrides."""

    model_config = SettingsConfigDict(
        env_prefix="", case_sensitive=False, populate_by_name=True
    )

    openrouter_api_key: str | None = Field(default=None, validation_alias="OPENROUTER_API_KEY")
    openrouter_model: str = Field(
        default="moonshotai/kimi-k2:free", validation_alias="OPENROUTER_MODEL"
    )
    openrouter_base_url: str = Field(
        default="https://openrouter.ai/api/v1", validation_alias="OPENROUTER_BASE_URL"
    )
    openrouter_timeout_seconds: float = Field(
        default=30, validation_alias="OPENROUTER_TIMEOUT_SECONDS"
    )

    gemini_api_key: str | None = Field(default=None, validation_alias="GEMINI_API_KEY")
    gemini_model: str = Field(default="gemini-2.5-flash", validation_alias="GEMINI_MODEL")
    gemini_base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta/models",
        validation_alias="GEMINI_API_BASE_URL",
    )
    gemini_timeout_seconds: float = Field(default=30, validation_alias="GEMINI_TIMEOUT_SECONDS")

    nvidia_api_key: str | None = Field(default=None, validation_alias="NVIDIA_API_KEY")
    nvidia_model: str = Field(
        default="qwen3-coder-480b-a35b-instruct", validation_alias="NVIDIA_MODEL"
    )
    nvidia_base_url: str = Field(
        default="https://integrate.api.nvidia.com/v1", validation_alias="NVIDIA_API_BASE_URL"
    )
    nvidia_timeout_seconds: float = Field(default=30, validation_alias="NVIDIA_TIMEOUT_SECONDS")

    provider_max_retries: int = Field(default=3, validation_alias="SCENEFORGE_PROVIDER_MAX_RETRIES")
    provider_retry_delay: float = Field(
        default=1.0, validation_alias="SCENEFORGE_PROVIDER_RETRY_DELAY"
    )
    default_provider: str | None = Field(
        default=None, validation_alias="SCENEFORGE_DEFAULT_PROVIDER"
    )
    force_openrouter: bool = Field(default=False, validation_alias="SCENEFORGE_USE_OPENROUTER")

    ask_max_turns: int = Field(default=1, validation_alias="SCENEFORGE_ASK_MAX_TURNS")
    agent_max_turns: int = Field(default=4, validation_alias="SCENEFORGE_MAX_TURNS")
    validation_retry_limit: int = Field(
        default=2, validation_alias="SCENEFORGE_VALIDATION_RETRY_LIMIT"
    )
    unknown_action_retry_limit: int = Field(
        default=1, validation_alias="SCENEFORGE_UNKNOWN_ACTION_RETRY_LIMIT"
    )
    context_request_limit: int = Field(
        default=1, validation_alias="SCENEFORGE_CONTEXT_REQUEST_LIMIT"
    )
    pinned_no_call_limit: int = Field(
        default=2, validation_alias="SCENEFORGE_PINNED_NO_CALL_LIMIT"
    )

    enable_fallbacks: bool = Field(default=True, validation_alias="SCENEFORGE_ENABLE_FALLBACKS")
    require_plan: bool = Field(default=False, validation_alias="SCENEFORGE_REQUIRE_PLAN")
    allow_text_before_call: bool = Field(
        default=True, validation_alias="SCENEFORGE_ALLOW_TEXT_BEFORE_CALL"
    )

    max_edits: int = Field(default=20, validation_alias="SCENEFORGE_MAX_EDITS")
    max_inserted_chars: int = Field(default=2000, validation_alias="SCENEFORGE_MAX_INSERTED_CHARS")
    max_history: int = Field(default=40, validation_alias="SCENEFORGE_MAX_HISTORY")
    history_keep_recent: int = Field(default=20, validation_alias="SCENEFORGE_HISTORY_KEEP")

    data_dir: Path = Field(default=Path(".sceneforge"), validation_alias="SCENEFORGE_DATA_DIR")
    checkpoint_limit: int = Field(default=10, validation_alias="SCENEFORGE_CHECKPOINT_LIMIT")
    auto_checkpoint: bool = Field(default=False, validation_alias="SCENEFORGE_AUTO_CHECKPOINT")

    def max_turns_for(self, mode: str) -> int:
        return max(1, self.ask_max_turns if mode == "ask" else self.agent_max_turns)


def _read_settings_file(path: Path) -> dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() in {".yaml", ".yml"}:
        try:
            import yaml
        except ImportError as exc:
            raise ConfigError("Install sceneforge[yaml] to load YAML settings files.") from exc
        data = yaml.safe_load(text) or {}
    else:
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ConfigError(f"Invalid settings file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Settings file {path} must contain a mapping")
    return data


def load_settings(path: str | Path | None = None, **overrides: Any) -> Settings:
    """Build settings from the environment, an optional JSON/YAML file, then overrides."""
    values: dict[str, Any] = {}
    if path is not None:
        values.update(_read_settings_file(Path(path)))
    values.update({key: value for key, value in overrides.items() if value is not None})
    return Settings(**values)


DEFAULT_SETTINGS = Settings()
