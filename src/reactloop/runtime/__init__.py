"""Runtime - Execution flow and monitoring.

Contains: reasoning loop, backend boundary, retry, concurrency, observability.
"""

from __future__ import annotations

__all__ = [
    # Loop
    "ReasoningLoop", "Session", "LoopPolicy", "Completed", "Failed", "MaxTurnsExceeded",
    "run_session", "run_session_sync",
    # Backend
    "Backend", "BackendInvoker", "HttpBackend", "StopReason",
    # Retry
    "RetryPolicy", "with_retry", "with_retry_sync",
    # Concurrency
    "map_async", "run_sync", "to_thread",
    # Observability
    "configure_logging", "get_logger",
]


def __getattr__(name: str):
    """Lazy imports to avoid circular dependencies."""
    if name in ("ReasoningLoop", "Session", "LoopPolicy", "Completed", "Failed", "MaxTurnsExceeded",
                "run_session", "run_session_sync"):
        from . import loop
        return getattr(loop, name)

    if name in ("Backend", "BackendInvoker", "HttpBackend", "StopReason"):
        from . import backend
        return getattr(backend, name)

    if name in ("RetryPolicy", "with_retry", "with_retry_sync"):
        from . import retry
        return getattr(retry, name)

    if name in ("map_async", "run_sync", "to_thread"):
        from . import concurrency
        return getattr(concurrency, name)

    if name in ("configure_logging", "get_logger"):
        from . import observability
        return getattr(observability, name)

    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
