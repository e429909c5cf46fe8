"""Shared concurrency primitives for coordination and batch fan-out.

Two patterns are exposed:

1. **KeyedLock** -- a map of per-key ``asyncio.Lock`` objects so that all
   coordinator operations touching one document id (or one content hash)
   run one at a time, while operations on different keys never wait on
   each other.  Idle locks are discarded as soon as nobody holds or waits
   on them, so the map does not grow with the number of documents seen.

2. **gather_in_groups** -- the fan-out used by the batch dispatcher and
   the reprocess processor: split the work into fixed-size groups, run
   each group concurrently with ``asyncio.gather`` and only start group
   *i+1* after every task in group *i* has finished.  Peak in-flight work
   is therefore bounded by the group size.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Sequence, TypeVar

_T = TypeVar("_T")
_R = TypeVar("_R")


class KeyedLock:
    """Per-key mutual exclusion for coroutines sharing one event loop."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


def partition(items: Sequence[_T], size: int) -> list[list[_T]]:
    """Split *items* into consecutive groups of at most *size* elements."""
    if size < 1:
        raise ValueError("group size must be at least 1")
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


async def gather_in_groups(
    items: Sequence[_T],
    worker: Callable[[_T], Awaitable[_R]],
    group_size: int,
    *,
    delay_between_groups: float = 0.0,
    on_group_start: Callable[[int, list[_T]], None] | None = None,
) -> list[_R | BaseException]:
    """Run *worker* over *items* one fixed-size concurrent group at a time.

    Parameters
    ----------
    items:
        Work items, processed in order of their group.
    worker:
        Coroutine function applied to every item.
    group_size:
        Maximum number of items in flight at once.
    delay_between_groups:
        Seconds to sleep after a group drains before the next one starts.
        No delay follows the final group.
    on_group_start:
        Optional callback receiving ``(group_index, group_items)``.

    Returns
    -------
    list[_R | BaseException]
        One entry per input item, in input order.  Exceptions raised by
        *worker* are returned in place rather than propagated.
    """
    groups = partition(items, group_size)
    results: list[_R | BaseException] = []

    for index, group in enumerate(groups):
        if on_group_start is not None:
            on_group_start(index, group)

        group_results = await asyncio.gather(
            *(worker(item) for item in group),
            return_exceptions=True,
        )
        results.extend(group_results)

        if delay_between_groups > 0 and index < len(groups) - 1:
            await asyncio.sleep(delay_between_groups)

    return results
