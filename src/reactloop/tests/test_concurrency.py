"""Tests for ordered fan-out and sync/async interop."""

from __future__ import annotations

import asyncio
import contextvars
import threading

import pytest

from reactloop.runtime.concurrency import map_async, run_sync, to_thread

_request_id: contextvars.ContextVar[str] = contextvars.ContextVar("request_id", default="-")


@pytest.mark.asyncio
async def test_map_async_preserves_order() -> None:
    async def slow_echo(n: int) -> int:
        await asyncio.sleep(0.01 * (5 - n))
        return n

    assert await map_async(slow_echo, [1, 2, 3, 4]) == [1, 2, 3, 4]
    assert await map_async(slow_echo, []) == []


@pytest.mark.asyncio
async def test_map_async_respects_limit() -> None:
    active = 0
    peak = 0

    async def work(_: int) -> None:
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0.01)
        active -= 1

    await map_async(work, list(range(6)), limit=2)
    assert peak == 2


@pytest.mark.asyncio
async def test_map_async_failure_cancels_siblings() -> None:
    cancelled = asyncio.Event()

    async def work(n: int) -> int:
        if n == 0:
            raise ValueError("bad item")
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            cancelled.set()
            raise
        return n

    with pytest.raises(ExceptionGroup):
        await map_async(work, [0, 1])
    assert cancelled.is_set()


@pytest.mark.asyncio
async def test_to_thread_carries_context() -> None:
    _request_id.set("req-7")
    seen = await to_thread(lambda: (_request_id.get(), threading.current_thread() is threading.main_thread()))
    assert seen == ("req-7", False)


def test_run_sync_without_loop() -> None:
    async def add(a: int, b: int) -> int:
        await asyncio.sleep(0)
        return a + b

    assert run_sync(add(2, 3)) == 5


@pytest.mark.asyncio
async def test_run_sync_inside_running_loop() -> None:
    async def value() -> str:
        return "from helper thread"

    assert run_sync(value()) == "from helper thread"


@pytest.mark.asyncio
async def test_map_async_raises_when_worker_cancels_itself() -> None:
    """A self-cancelled worker leaves no hole in the result list."""

    async def work(n: int) -> int:
        if n == 1:
            raise asyncio.CancelledError()
        return n

    with pytest.raises(RuntimeError, match=r"\[1\]"):
        await map_async(work, [0, 1, 2])
