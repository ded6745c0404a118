"""Shared fixtures."""

from __future__ import annotations

import pytest
from pydantic import BaseModel

from reactloop.foundation.config import clear_settings_cache
from reactloop.foundation.content import ToolDefinition
from reactloop.foundation.registry import ToolRegistry
from reactloop.runtime.loop import LoopPolicy
from reactloop.runtime.observability import CaptureRenderer, configure_logging
from reactloop.runtime.retry import RetryPolicy


class OrderQuery(BaseModel):
    order_id: str


@pytest.fixture(autouse=True)
def captured_logs() -> object:
    """Route log output into memory for every test."""
    renderer = configure_logging(level="DEBUG", renderer=CaptureRenderer())
    yield renderer
    configure_logging(format="none")


@pytest.fixture(autouse=True)
def clean_settings() -> object:
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def retry_policy() -> RetryPolicy:
    return RetryPolicy(max_attempts=3, base_delay=0.1, max_delay=1.0, jitter_fraction=0.0)


@pytest.fixture
def loop_policy(retry_policy: RetryPolicy) -> LoopPolicy:
    return LoopPolicy(max_turns=5, max_tokens=1024, tool_timeout=2.0, max_concurrency=None, retry=retry_policy)


@pytest.fixture
def order_registry() -> ToolRegistry:
    """Registry with a single check_order_status tool that reports every order shipped."""
    registry = ToolRegistry(default_timeout=5.0)
    registry.register(
        ToolDefinition(name="check_order_status", description="Look up an order's shipping status", input_schema=OrderQuery),
        lambda q: {"status": "shipped", "order_id": q.order_id},
    )
    return registry
