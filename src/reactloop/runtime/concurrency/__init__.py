"""Concurrency helpers: ordered fan-out and sync/async interop. Pure asyncio."""

from .interop import run_sync, to_thread
from .wait import map_async

__all__ = ["map_async", "run_sync", "to_thread"]
