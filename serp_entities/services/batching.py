from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Iterable, TypeVar

T = TypeVar("T")
R = TypeVar("R")


async def run_batched(
    items: Iterable[T],
    worker: Callable[[T], Awaitable[R]],
    batch_size: int = 3,
) -> list[R]:
    """Run ``worker`` over ``items`` in sequential batches of concurrent calls.

    Results keep input order. Workers are expected to handle their own
    per-item failures; an exception escaping a worker propagates.
    """
    pending = list(items)
    size = max(int(batch_size), 1)
    results: list[R] = []
    for start in range(0, len(pending), size):
        batch = pending[start : start + size]
        results.extend(await asyncio.gather(*(worker(item) for item in batch)))
    return results
