"""
Bounded-concurrency dispatch for batches of provider calls.
"""

import asyncio
from typing import Awaitable, Callable, Iterable, List, TypeVar

T = TypeVar("T")
R = TypeVar("R")


async def run_bounded(func: Callable[[T], Awaitable[R]], items: Iterable[T], max_concurrency: int = 1) -> List[R]:
    """
    Apply ``func`` to every item with at most ``max_concurrency`` calls in flight.

    Results are returned in input order. With ``max_concurrency=1`` each item is
    awaited before the next one starts. The first failure propagates and the
    calls still pending are cancelled.
    """
    if max_concurrency < 1:
        raise ValueError("max_concurrency must be at least 1")

    items = list(items)
    if max_concurrency == 1:
        return [await func(item) for item in items]

    semaphore = asyncio.Semaphore(max_concurrency)

    async def bounded_task(item: T) -> R:
        async with semaphore:
            return await func(item)

    tasks = [asyncio.ensure_future(bounded_task(item)) for item in items]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            task.cancel()
        raise
