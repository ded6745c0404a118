"""Configuration via pydantic-settings."""

from .settings import (
    BackendSettings,
    LoggingSettings,
    LoopSettings,
    ReactLoopSettings,
    RetrySettings,
    clear_settings_cache,
    get_settings,
)

__all__ = [
    "BackendSettings",
    "LoggingSettings",
    "LoopSettings",
    "ReactLoopSettings",
    "RetrySettings",
    "clear_settings_cache",
    "get_settings",
]
