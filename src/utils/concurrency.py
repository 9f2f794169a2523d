"""Shared concurrency primitives for the ingestion pipeline.

Two helpers are exposed:

1. **throttled_gather** -- ``asyncio.gather`` with every awaitable wrapped in
   a semaphore acquire/release.  The dual index writer uses it to cap the
   number of in-flight upserts per backend.

2. **batched** -- splits an ordered sequence into fixed-size slices while
   keeping order, used by the embedding stage to respect API batch limits.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from typing import Awaitable, TypeVar

_T = TypeVar("_T")

# Fallback concurrency for callers that do not bring their own semaphore.
_DEFAULT_CONCURRENCY = 8


async def throttled_gather(
    coros: list[Awaitable[_T]],
    semaphore: asyncio.Semaphore | None = None,
    return_exceptions: bool = True,
) -> list[_T | BaseException]:
    """Run awaitables concurrently with semaphore throttling.

    Parameters
    ----------
    coros:
        Awaitable objects to execute concurrently.
    semaphore:
        Semaphore bounding how many awaitables run at once.  A fresh
        semaphore of size 8 is used when omitted.
    return_exceptions:
        If ``True``, exceptions are returned in the results list rather
        than being raised.  Mirrors ``asyncio.gather`` semantics.

    Returns
    -------
    list[_T | BaseException]
        Results in the same order as the input coroutines.
    """
    if semaphore is None:
        semaphore = asyncio.Semaphore(_DEFAULT_CONCURRENCY)

    async def _wrapped(coro: Awaitable[_T]) -> _T:
        async with semaphore:
            return await coro

    tasks = [_wrapped(c) for c in coros]
    return await asyncio.gather(*tasks, return_exceptions=return_exceptions)


def batched(items: Sequence[_T], size: int) -> list[list[_T]]:
    """Split *items* into consecutive lists of at most *size* elements."""
    if size < 1:
        raise ValueError(f"batch size must be >= 1, got {size}")
    return [list(items[start : start + size]) for start in range(0, len(items), size)]
