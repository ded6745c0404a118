"""Sync/async interop: blocking handlers from the loop, the loop from blocking callers."""

from __future__ import annotations

import asyncio
import contextvars
import functools
import threading
from collections.abc import Coroutine
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, TypeVar

T = TypeVar("T")

_default_executor: ThreadPoolExecutor | None = None
_executor_lock = threading.Lock()


def _get_default_executor() -> ThreadPoolExecutor:
    global _default_executor
    if _default_executor is None:
        with _executor_lock:
            if _default_executor is None:
                _default_executor = ThreadPoolExecutor(thread_name_prefix="reactloop-worker-")
    return _default_executor


async def to_thread(func: Callable[..., T], *args: object, **kwargs: object) -> T:
    """Run a blocking function in the worker pool, carrying the current context along.

    Awaiting this can be cancelled, but the thread itself runs to completion; its
    result is then dropped.
    """
    loop = asyncio.get_running_loop()
    ctx = contextvars.copy_context()
    if kwargs:
        func = functools.partial(func, **kwargs)
    return await loop.run_in_executor(_get_default_executor(), functools.partial(ctx.run, func, *args))


def run_sync(coro: Coroutine[object, object, T]) -> T:
    """Run a coroutine from synchronous code.

    With no running loop this is ``asyncio.run``. Called from inside a running loop
    (Jupyter, a sync callback in an async server) the coroutine runs on a fresh loop in
    a helper thread.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    return _run_in_thread_loop(coro)


def _run_in_thread_loop(coro: Coroutine[object, object, T]) -> T:
    result: T | None = None
    error: BaseException | None = None
    done = threading.Event()

    def runner() -> None:
        nonlocal result, error
        try:
            result = asyncio.run(coro)
        except BaseException as e:
            error = e
        finally:
            done.set()

    thread = threading.Thread(target=runner, daemon=True)
    thread.start()
    done.wait()

    if error is not None:
        raise error
    return result  # type: ignore[return-value]
