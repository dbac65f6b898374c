"""
Concurrency primitives shared by every phase of a run.

``run_pool`` drains a fixed list of items with a bounded number of asyncio
workers.  Workers claim items through a shared cursor so no index is ever
processed twice, and each worker keeps its own result list; the lists are
merged only after the whole pool has joined.

``poll`` repeats a probe at a fixed interval until it reports completion,
stops making progress for a number of consecutive rounds, or a deadline
passes.  It never raises on timeout: the last probe value is returned with
the reason the loop ended.
"""

from __future__ import annotations

import asyncio
import itertools
import time
from dataclasses import dataclass
from enum import StrEnum
from typing import Awaitable, Callable, Generic, Optional, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")


class SharedCursor:
    """Hands out each index in ``range(limit)`` exactly once."""

    def __init__(self, limit: int) -> None:
        self.limit = limit
        self._counter = itertools.count()

    def claim(self) -> Optional[int]:
        index = next(self._counter)
        if index >= self.limit:
            return None
        return index


async def run_pool(
    items: Sequence[T],
    handler: Callable[[T], Awaitable[R]],
    concurrency: int,
) -> list[R]:
    """
    Process ``items`` with at most ``concurrency`` handlers in flight.

    Args:
        items: Work queue (not mutated)
        handler: Coroutine function applied to each item; it must handle
            its own per-item failures, an exception escaping it aborts the pool
        concurrency: Number of workers

    Returns:
        Handler results; order follows completion, not ``items``
    """
    if not items:
        return []

    cursor = SharedCursor(len(items))

    async def worker() -> list[R]:
        results: list[R] = []
        while (index := cursor.claim()) is not None:
            results.append(await handler(items[index]))
        return results

    worker_count = max(1, min(concurrency, len(items)))
    async with asyncio.TaskGroup() as tg:
        tasks = [tg.create_task(worker()) for _ in range(worker_count)]

    merged: list[R] = []
    for task in tasks:
        merged.extend(task.result())
    return merged


class PollExit(StrEnum):
    COMPLETE = "complete"
    STALLED = "stalled"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class PollResult(Generic[T]):
    value: Optional[T]
    exit: PollExit
    rounds: int
    elapsed: float

    @property
    def complete(self) -> bool:
        return self.exit is PollExit.COMPLETE


async def poll(
    probe: Callable[[], Awaitable[T]],
    *,
    is_done: Callable[[T], bool],
    progress: Optional[Callable[[T], int]] = None,
    interval: float = 0.5,
    timeout: float = 60.0,
    stall_rounds: Optional[int] = None,
) -> PollResult[T]:
    """
    Run ``probe`` until ``is_done`` accepts its value or the loop gives up.

    Args:
        probe: Coroutine function returning the current observation
        is_done: Completion test applied to each observation
        progress: Maps an observation to a progress count; required for
            stall detection
        interval: Sleep between rounds in seconds
        timeout: Overall budget in seconds, checked before each round
        stall_rounds: Give up after this many consecutive rounds without
            a change in ``progress`` (None disables stall detection)

    Returns:
        PollResult with the last observation and the exit reason
    """
    start = time.monotonic()
    value: Optional[T] = None
    rounds = 0
    last_progress: Optional[int] = None
    stable = 0

    while time.monotonic() - start < timeout:
        value = await probe()
        rounds += 1

        if is_done(value):
            return PollResult(value, PollExit.COMPLETE, rounds, time.monotonic() - start)

        if stall_rounds is not None and progress is not None:
            current = progress(value)
            if current == last_progress:
                stable += 1
                if stable >= stall_rounds:
                    return PollResult(value, PollExit.STALLED, rounds, time.monotonic() - start)
            else:
                stable = 0
            last_progress = current

        await asyncio.sleep(interval)

    return PollResult(value, PollExit.TIMEOUT, rounds, time.monotonic() - start)
