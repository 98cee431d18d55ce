"""Configuration management for jobscout."""

from __future__ import annotations

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from jobscout.errors import InvalidModelFormatError, ModelNotConfiguredError

DEFAULT_MODEL = "anthropic:claude-haiku-4-5-20251001"
DEFAULT_CONTEXT_LIMIT = 200_000
DEFAULT_CONTEXT_THRESHOLD = 0.95


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_prefix="JOBSCOUT_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        protected_namespaces=(),
    )

    # Provider
    model: str = Field(default=DEFAULT_MODEL, description="Model in provider:model format")
    api_key: str | None = Field(default=None, description="API key for the LLM provider")
    api_base: str | None = Field(default=None, description="Optional API base URL")
    max_tokens: int = Field(default=4096, ge=1, description="Per-call output token limit")
    model_timeout_seconds: int | None = Field(default=None, ge=1, description="Timeout for one model call")

    # Budget
    context_limit: int = Field(default=DEFAULT_CONTEXT_LIMIT, ge=1, description="Provider context window")
    context_threshold: float = Field(
        default=DEFAULT_CONTEXT_THRESHOLD,
        description="Fraction of the context window at which a run stops",
    )

    # Agent
    system_prompt: str = Field(default="", description="Inline system prompt")
    system_prompt_path: Path | None = Field(default=None, description="File holding the system prompt")
    fallback_summary: bool = Field(default=True, description="Summarize tool results when the model stays silent")

    # Runtime
    home: Path = Field(default=Path.home() / ".jobscout", description="Directory for conversation history")
    log_level: str = Field(default="INFO", description="Log level")

    @field_validator("context_threshold")
    @classmethod
    def _check_threshold(cls, value: float) -> float:
        if not 0 < value <= 1:
            raise ValueError("context_threshold must be in (0, 1]")
        return value

    def require_model(self) -> str:
        """Return the configured model, validating its provider:model shape."""
        if not self.model.strip():
            raise ModelNotConfiguredError("Model not configured. Set JOBSCOUT_MODEL (e.g. 'openai:gpt-4o-mini').")
        provider, separator, name = self.model.partition(":")
        if not separator or not provider or not name:
            raise InvalidModelFormatError(f"Model must be provider:model, got {self.model!r}")
        return self.model

    def resolve_home(self) -> Path:
        home = self.home.expanduser()
        home.mkdir(parents=True, exist_ok=True)
        return home

    def resolve_system_prompt(self) -> str:
        blocks: list[str] = []
        if self.system_prompt.strip():
            blocks.append(self.system_prompt.strip())
        if self.system_prompt_path is not None and self.system_prompt_path.is_file():
            content = self.system_prompt_path.read_text(encoding="utf-8").strip()
            if content:
                blocks.append(content)
        return "\n\n".join(blocks)


def get_settings(**overrides: object) -> Settings:
    """Get application settings.

    Keyword overrides take precedence over environment and ``.env`` values.
    """
    return Settings(**overrides)  # type: ignore[arg-type]
