"""Application configuration using environment variables."""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import AliasChoices, AnyHttpUrl, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve the project root once so that `.env` is discovered regardless of CWD
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent

Effort = Literal["low", "medium", "high"]


class Settings(BaseSettings):
    """Load configuration from environment variables and `.env`."""

    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    provider_api_key: SecretStr = Field(
        ...,
        validation_alias=AliasChoices(
            "OPENAI_API_KEY", "PROVIDER_API_KEY", "provider_api_key"
        ),
    )
    provider_base_url: AnyHttpUrl = Field(
        default_factory=lambda: AnyHttpUrl("https://api.openai.com/v1"),
        validation_alias=AliasChoices("PROVIDER_BASE_URL", "provider_base_url"),
    )
    default_model: str = Field(
        default="gpt-5",
        validation_alias=AliasChoices("OPENAI_MODEL_NAME", "default_model"),
    )
    system_instructions: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("SYSTEM_INSTRUCTIONS", "system_instructions"),
    )
    request_timeout: float = Field(
        default=120.0,
        validation_alias=AliasChoices("PROVIDER_TIMEOUT", "request_timeout"),
        ge=1,
    )

    max_iterations: int = Field(
        default=10,
        ge=1,
        validation_alias=AliasChoices("MAX_ITERATIONS", "max_iterations"),
    )
    heartbeat_interval_seconds: float = Field(
        default=15.0,
        gt=0,
        validation_alias=AliasChoices(
            "HEARTBEAT_INTERVAL_SECONDS", "heartbeat_interval_seconds"
        ),
    )
    request_deadline_seconds: float = Field(
        default=300.0,
        gt=0,
        validation_alias=AliasChoices(
            "REQUEST_DEADLINE_SECONDS", "request_deadline_seconds"
        ),
    )
    reasoning_effort: Effort = Field(
        default="high",
        validation_alias=AliasChoices("REASONING_EFFORT", "reasoning_effort"),
    )
    verbosity: Effort = Field(
        default="medium",
        validation_alias=AliasChoices("VERBOSITY", "verbosity"),
    )
    temperature: float = Field(
        default=0.3,
        ge=0,
        le=2,
        validation_alias=AliasChoices("TEMPERATURE", "temperature"),
    )
    max_output_tokens: int = Field(
        default=16000,
        ge=1,
        validation_alias=AliasChoices("MAX_OUTPUT_TOKENS", "max_output_tokens"),
    )
    parallel_tool_calls: bool = Field(
        default=False,
        validation_alias=AliasChoices("PARALLEL_TOOL_CALLS", "parallel_tool_calls"),
    )

    # Built-in tools
    search_result_count: int = Field(
        default=5,
        ge=1,
        le=10,
        validation_alias=AliasChoices("SEARCH_RESULT_COUNT", "search_result_count"),
    )
    fetch_max_bytes: int = Field(
        default=500_000,
        ge=1,
        validation_alias=AliasChoices("FETCH_MAX_BYTES", "fetch_max_bytes"),
    )
    fetch_max_text_chars: int = Field(
        default=100_000,
        ge=1,
        validation_alias=AliasChoices("FETCH_MAX_TEXT_CHARS", "fetch_max_text_chars"),
    )
    tool_timeout_seconds: float = Field(
        default=15.0,
        gt=0,
        validation_alias=AliasChoices("TOOL_TIMEOUT_SECONDS", "tool_timeout_seconds"),
    )
    tool_max_retries: int = Field(
        default=2,
        ge=0,
        validation_alias=AliasChoices("TOOL_MAX_RETRIES", "tool_max_retries"),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached `Settings` instance."""

    return Settings()  # pyright: ignore[reportCallIssue]


__all__ = ["Effort", "Settings", "get_settings"]
