"""
Bounded Parallelism Helpers

Architectural Intent:
- Run many independent coroutines with at most ``n`` in flight at once
- Results are returned in input order
"""

from __future__ import annotations
import asyncio
from typing import Awaitable, Callable, Iterable, TypeVar

T = TypeVar("T")
R = TypeVar("R")


async def parallel_map(
    n: int, items: Iterable[T], fn: Callable[[T], Awaitable[R]]
) -> list[R]:
    """Apply ``fn`` to every item with at most ``n`` calls running concurrently.

    The first exception raised by ``fn`` propagates once every call has
    settled; calls already running are not cancelled.
    """
    if n < 1:
        raise ValueError(f"Parallelism must be at least 1, got {n}")
    semaphore = asyncio.Semaphore(n)

    async def run(item: T) -> R:
        async with semaphore:
            return await fn(item)

    results = await asyncio.gather(
        *(run(item) for item in items), return_exceptions=True
    )
    for result in results:
        if isinstance(result, BaseException):
            raise result
    return results
