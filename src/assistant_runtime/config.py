"""Application configuration using environment variables."""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import AliasChoices, AnyHttpUrl, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve the project root once so that `.env` is discovered regardless of CWD
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


class Settings(BaseSettings):
    """Load configuration from environment variables and `.env`."""

    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    api_key: Optional[SecretStr] = Field(
        default=None,
        validation_alias=AliasChoices("OPENAI_API_KEY", "AI_ASSISTANT_API_KEY", "api_key"),
    )
    base_url: AnyHttpUrl = Field(
        default_factory=lambda: AnyHttpUrl("https://api.openai.com"),
        validation_alias=AliasChoices("OPENAI_BASE_URL", "base_url"),
    )
    api_base_path: str = Field(
        default="/v1",
        validation_alias=AliasChoices("OPENAI_API_BASE_PATH", "api_base_path"),
    )
    organization: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("OPENAI_ORGANIZATION", "organization"),
    )
    default_model: str = Field(
        default="gpt-4o-mini",
        validation_alias=AliasChoices("AI_ASSISTANT_DEFAULT_MODEL", "default_model"),
    )

    # Timeouts (seconds)
    request_timeout: float = Field(
        default=120.0,
        validation_alias=AliasChoices("AI_ASSISTANT_TIMEOUT", "timeout"),
        ge=1,
    )
    connect_timeout: float = Field(
        default=10.0,
        validation_alias=AliasChoices("AI_ASSISTANT_CONNECT_TIMEOUT", "connect_timeout"),
        gt=0,
    )
    sse_timeout: Optional[float] = Field(
        default=None,
        validation_alias=AliasChoices("AI_ASSISTANT_SSE_TIMEOUT", "sse_timeout"),
        gt=0,
    )

    # Retry
    retry_enabled: bool = Field(
        default=True,
        validation_alias=AliasChoices("AI_ASSISTANT_RETRY_ENABLED", "retry_enabled"),
    )
    retry_max_attempts: int = Field(
        default=3,
        validation_alias=AliasChoices("AI_ASSISTANT_RETRY_MAX_ATTEMPTS", "retry_max_attempts"),
        ge=1,
        le=10,
    )
    retry_initial_delay: float = Field(
        default=0.5,
        validation_alias=AliasChoices("AI_ASSISTANT_RETRY_INITIAL_DELAY", "retry_initial_delay"),
        ge=0,
    )
    retry_backoff_multiplier: float = Field(
        default=2.0,
        validation_alias=AliasChoices(
            "AI_ASSISTANT_RETRY_BACKOFF_MULTIPLIER", "retry_backoff_multiplier"
        ),
        ge=1,
    )
    retry_max_delay: float = Field(
        default=8.0,
        validation_alias=AliasChoices("AI_ASSISTANT_RETRY_MAX_DELAY", "retry_max_delay"),
        ge=0,
    )
    retry_jitter: bool = Field(
        default=True,
        validation_alias=AliasChoices("AI_ASSISTANT_RETRY_JITTER", "retry_jitter"),
    )

    # Idempotency
    idempotency_enabled: bool = Field(
        default=True,
        validation_alias=AliasChoices("AI_ASSISTANT_IDEMPOTENCY_ENABLED", "idempotency_enabled"),
    )
    idempotency_bucket_seconds: int = Field(
        default=60,
        validation_alias=AliasChoices(
            "AI_ASSISTANT_IDEMPOTENCY_BUCKET", "idempotency_bucket_seconds"
        ),
    )
    idempotency_header: str = Field(
        default="Idempotency-Key",
        validation_alias=AliasChoices("AI_ASSISTANT_IDEMPOTENCY_HEADER", "idempotency_header"),
    )

    # Tool calling
    tool_calling_max_rounds: int = Field(
        default=3,
        validation_alias=AliasChoices(
            "AI_ASSISTANT_TOOL_CALLING_MAX_ROUNDS", "tool_calling_max_rounds"
        ),
        ge=1,
    )
    tool_calling_parallel: bool = Field(
        default=False,
        validation_alias=AliasChoices("AI_ASSISTANT_TOOL_CALLING_PARALLEL", "tool_calling_parallel"),
    )

    # Webhooks
    webhooks_enabled: bool = Field(
        default=False,
        validation_alias=AliasChoices("AI_ASSISTANT_WEBHOOKS_ENABLED", "webhooks_enabled"),
    )
    webhooks_signing_secret: Optional[SecretStr] = Field(
        default=None,
        validation_alias=AliasChoices(
            "AI_ASSISTANT_WEBHOOK_SIGNING_SECRET", "webhooks_signing_secret"
        ),
    )
    webhooks_path: str = Field(
        default="/ai-assistant/webhook",
        validation_alias=AliasChoices("AI_ASSISTANT_WEBHOOKS_PATH", "webhooks_path"),
    )
    webhooks_signature_header: str = Field(
        default="X-OpenAI-Signature",
        validation_alias=AliasChoices(
            "AI_ASSISTANT_WEBHOOK_SIGNATURE_HEADER", "webhooks_signature_header"
        ),
    )
    webhooks_timestamp_header: str = Field(
        default="X-OpenAI-Timestamp",
        validation_alias=AliasChoices(
            "AI_ASSISTANT_WEBHOOK_TIMESTAMP_HEADER", "webhooks_timestamp_header"
        ),
    )
    webhooks_max_skew_seconds: int = Field(
        default=300,
        validation_alias=AliasChoices(
            "AI_ASSISTANT_WEBHOOK_MAX_SKEW_SECONDS", "webhooks_max_skew_seconds"
        ),
    )
    webhooks_allow_legacy_signatures: bool = Field(
        default=True,
        validation_alias=AliasChoices(
            "AI_ASSISTANT_WEBHOOK_ALLOW_LEGACY", "webhooks_allow_legacy_signatures"
        ),
    )
    response_status_ttl_seconds: int = Field(
        default=86400,
        validation_alias=AliasChoices(
            "AI_ASSISTANT_RESPONSE_STATUS_TTL", "response_status_ttl_seconds"
        ),
        ge=1,
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached `Settings` instance."""

    return Settings()  # pyright: ignore[reportCallIssue]


__all__ = ["PROJECT_ROOT", "Settings", "get_settings"]
