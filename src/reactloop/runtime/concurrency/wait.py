"""Ordered fan-out over async callables.

Example:
    >>> # Dispatch every invocation, at most 4 at a time, results in request order
    >>> results = await map_async(registry.dispatch, invocations, limit=4)
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import Callable, TypeVar

T = TypeVar("T")
U = TypeVar("U")

_MISSING = object()


async def map_async(
    func: Callable[[T], Awaitable[U]],
    items: list[T] | tuple[T, ...],
    *,
    limit: int | None = None,
) -> list[U]:
    """Apply ``func`` to every item concurrently; results keep input order.

    Workers run inside a TaskGroup: the first failure, or cancellation of the caller,
    cancels every sibling still in flight and no partial result list is returned.

    Args:
        func: Async function to apply
        items: Items to process
        limit: Maximum concurrent calls (None = one worker per item)

    Returns:
        Results in the same order as ``items``, regardless of completion order

    Raises:
        RuntimeError: If a worker cancelled itself without producing a result
    """
    if not items:
        return []

    semaphore = asyncio.Semaphore(limit) if limit is not None and limit < len(items) else None
    results: list[object] = [_MISSING] * len(items)

    async def worker(idx: int, item: T) -> None:
        if semaphore is None:
            results[idx] = await func(item)
            return
        async with semaphore:
            results[idx] = await func(item)

    async with asyncio.TaskGroup() as tg:
        for i, item in enumerate(items):
            tg.create_task(worker(i, item))

    # TaskGroup ignores children that cancel themselves
    if missing := [i for i, r in enumerate(results) if r is _MISSING]:
        raise RuntimeError(f"map_async: worker(s) for item(s) {missing} cancelled without a result")
    return results  # type: ignore[return-value]
