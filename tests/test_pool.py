"""Worker pool and polling primitive."""

from __future__ import annotations

import asyncio

import pytest

from volley.barrage.pool import PollExit, SharedCursor, poll, run_pool


class TestSharedCursor:
    def test_each_index_once(self) -> None:
        cursor = SharedCursor(3)
        assert [cursor.claim() for _ in range(5)] == [0, 1, 2, None, None]


class TestRunPool:
    def test_every_item_processed_once(self) -> None:
        seen: list[int] = []

        async def handler(item: int) -> int:
            seen.append(item)
            await asyncio.sleep(0)
            return item * 2

        results = asyncio.run(run_pool(list(range(250)), handler, concurrency=16))
        assert sorted(seen) == list(range(250))
        assert sorted(results) == [i * 2 for i in range(250)]

    def test_concurrency_is_bounded(self) -> None:
        active = 0
        peak = 0

        async def handler(item: int) -> None:
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.001)
            active -= 1

        asyncio.run(run_pool(list(range(50)), handler, concurrency=4))
        assert peak <= 4

    def test_empty(self) -> None:
        async def handler(item: int) -> int:
            return item

        assert asyncio.run(run_pool([], handler, concurrency=8)) == []


class TestPoll:
    def test_complete(self) -> None:
        state = {"n": 0}

        async def probe() -> int:
            state["n"] += 1
            return state["n"]

        result = asyncio.run(poll(probe, is_done=lambda n: n >= 3, interval=0.01, timeout=5))
        assert result.exit is PollExit.COMPLETE
        assert result.value == 3
        assert result.rounds == 3

    def test_stalled(self) -> None:
        async def probe() -> int:
            return 7

        result = asyncio.run(
            poll(
                probe,
                is_done=lambda n: n >= 10,
                progress=lambda n: n,
                interval=0.01,
                timeout=5,
                stall_rounds=5,
            )
        )
        assert result.exit is PollExit.STALLED
        # First round sets the baseline, five unchanged rounds follow.
        assert result.rounds == 6

    def test_timeout_returns_last_value(self) -> None:
        async def probe() -> str:
            return "pending"

        result = asyncio.run(poll(probe, is_done=lambda v: False, interval=0.05, timeout=0.2))
        assert result.exit is PollExit.TIMEOUT
        assert result.value == "pending"
        assert not result.complete
        assert result.elapsed == pytest.approx(0.2, abs=0.2)
