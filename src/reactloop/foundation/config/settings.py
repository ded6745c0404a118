"""Environment-based configuration using pydantic-settings.

Defaults live here and nowhere else: the loop, registry and invoker take explicit
values, and these settings are one way to produce them.

Example:
    >>> from reactloop.foundation.config import get_settings
    >>> settings = get_settings()
    >>> policy = settings.loop_policy()
    >>> policy.retry.max_attempts
    3

    # Or with environment variables:
    # REACTLOOP_RETRY_MAX_ATTEMPTS=5
    # REACTLOOP_LOOP_MAX_TURNS=20
    # REACTLOOP_BACKEND_URL=https://llm.internal/v1/messages
"""

from __future__ import annotations

from functools import lru_cache
from typing import TYPE_CHECKING, Annotated, Literal

from pydantic import Field, PositiveFloat, PositiveInt, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

if TYPE_CHECKING:
    from reactloop.runtime.loop import LoopPolicy


class RetrySettings(BaseSettings):
    """Backoff applied to backend calls."""

    model_config = SettingsConfigDict(env_prefix="REACTLOOP_RETRY_", extra="ignore")

    max_attempts: Annotated[int, Field(ge=1, le=20)] = 3
    base_delay: PositiveFloat = Field(default=0.5, description="Delay after the first failure in seconds")
    max_delay: PositiveFloat = Field(default=8.0, description="Cap on the un-jittered delay in seconds")
    jitter_fraction: Annotated[float, Field(ge=0.0, le=1.0)] = 0.2

    @model_validator(mode="after")
    def _check_delays(self) -> RetrySettings:
        if self.max_delay < self.base_delay:
            raise ValueError("max_delay must be >= base_delay")
        return self


class LoopSettings(BaseSettings):
    """Reasoning loop bounds."""

    model_config = SettingsConfigDict(env_prefix="REACTLOOP_LOOP_", extra="ignore")

    max_turns: PositiveInt = Field(default=10, description="Backend round trips per session")
    max_tokens: PositiveInt = Field(default=4096, description="Generation budget per backend call")
    tool_timeout: PositiveFloat = Field(default=30.0, description="Per-invocation tool timeout in seconds")
    max_concurrency: PositiveInt | None = Field(default=None, description="Parallel tool workers per turn (None = one per invocation)")


class BackendSettings(BaseSettings):
    """HTTP reasoning backend."""

    model_config = SettingsConfigDict(env_prefix="REACTLOOP_BACKEND_", extra="ignore")

    url: str | None = Field(default=None, description="Endpoint accepting the JSON request")
    api_key: SecretStr | None = None
    model: str | None = Field(default=None, description="Model identifier forwarded in the request")
    request_timeout: PositiveFloat = 60.0
    headers: dict[str, str] = Field(default_factory=dict)

    @field_validator("url", mode="before")
    @classmethod
    def _blank_is_none(cls, v: object) -> object:
        return None if isinstance(v, str) and not v.strip() else v


class LoggingSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="REACTLOOP_LOG_", extra="ignore")

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["console", "json", "none"] = "console"

    @field_validator("level", mode="before")
    @classmethod
    def _upper(cls, v: object) -> object:
        return v.upper() if isinstance(v, str) else v


class ReactLoopSettings(BaseSettings):
    """Root settings, loaded from ``REACTLOOP_*`` environment variables and ``.env``.

    Example environment variables:
        REACTLOOP_LOG_LEVEL=DEBUG
        REACTLOOP_RETRY_BASE_DELAY=1.0
        REACTLOOP_LOOP_TOOL_TIMEOUT=15
        REACTLOOP_BACKEND_API_KEY=sk-...
    """

    model_config = SettingsConfigDict(
        env_prefix="REACTLOOP_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        validate_default=True,
    )

    retry: RetrySettings = Field(default_factory=RetrySettings)
    loop: LoopSettings = Field(default_factory=LoopSettings)
    backend: BackendSettings = Field(default_factory=BackendSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    def loop_policy(self) -> LoopPolicy:
        """Explicit policy for ``ReasoningLoop`` / ``run_session``."""
        from reactloop.runtime.loop import LoopPolicy
        from reactloop.runtime.retry import RetryPolicy

        return LoopPolicy(
            max_turns=self.loop.max_turns,
            max_tokens=self.loop.max_tokens,
            tool_timeout=self.loop.tool_timeout,
            max_concurrency=self.loop.max_concurrency,
            retry=RetryPolicy(
                max_attempts=self.retry.max_attempts,
                base_delay=self.retry.base_delay,
                max_delay=self.retry.max_delay,
                jitter_fraction=self.retry.jitter_fraction,
            ),
        )


@lru_cache(maxsize=1)
def get_settings() -> ReactLoopSettings:
    """Cached settings instance."""
    return ReactLoopSettings()


def clear_settings_cache() -> None:
    """Force the next ``get_settings()`` to re-read the environment."""
    get_settings.cache_clear()
