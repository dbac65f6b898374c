"""Transaction mix parsing, normalization and splitting."""

from __future__ import annotations

import pytest

from volley.barrage.mix import TxMix, interleave
from volley.barrage.models import TxKind


class TestParse:
    def test_default_when_empty(self) -> None:
        assert TxMix.parse("") == TxMix(100, 0, 0)
        assert TxMix.parse(None) == TxMix(100, 0, 0)

    def test_exact(self) -> None:
        assert TxMix.parse("70:20:10") == TxMix(70, 20, 10)

    def test_missing_parts(self) -> None:
        assert TxMix.parse("100") == TxMix(100, 0, 0)
        assert TxMix.parse("60:40") == TxMix(60, 40, 0)

    def test_non_numeric_counts_as_zero(self) -> None:
        assert TxMix.parse("abc:50:50") == TxMix(0, 50, 50)

    def test_all_zero_rejected(self) -> None:
        with pytest.raises(ValueError):
            TxMix.parse("0:0:0")


class TestNormalization:
    @pytest.mark.parametrize(
        "text", ["1:1:1", "50:30:30", "3:3:3", "10:0:1", "33:33:33", "7:5:1", "200:100:0"]
    )
    def test_sums_to_100(self, text: str) -> None:
        mix = TxMix.parse(text)
        assert sum(mix.as_list()) == 100

    def test_proportional(self) -> None:
        assert TxMix.parse("2:1:1") == TxMix(50, 25, 25)

    def test_zero_share_stays_zero(self) -> None:
        assert TxMix.parse("1:2:0").swap == 0


class TestSplit:
    @pytest.mark.parametrize("total", [1, 7, 99, 100, 101, 1000, 1333])
    @pytest.mark.parametrize("mix", [TxMix(34, 33, 33), TxMix(70, 20, 10), TxMix(1, 1, 98)])
    def test_counts_sum_to_total(self, mix: TxMix, total: int) -> None:
        assert sum(mix.split(total).values()) == total

    def test_exact_division(self) -> None:
        counts = TxMix(70, 20, 10).split(100)
        assert counts == {TxKind.TRANSFER: 70, TxKind.TOKEN_TRANSFER: 20, TxKind.SWAP: 10}

    def test_zero_percent_gets_nothing(self) -> None:
        counts = TxMix(50, 50, 0).split(7)
        assert counts[TxKind.SWAP] == 0

    def test_requirements(self) -> None:
        assert not TxMix(100, 0, 0).needs_token
        assert TxMix(90, 10, 0).needs_token
        assert not TxMix(90, 10, 0).needs_router
        assert TxMix(90, 0, 10).needs_token
        assert TxMix(90, 0, 10).needs_router


class TestInterleave:
    def test_round_robin_order(self) -> None:
        order = interleave({TxKind.TRANSFER: 3, TxKind.TOKEN_TRANSFER: 2, TxKind.SWAP: 1})
        assert order == [
            TxKind.TRANSFER, TxKind.TOKEN_TRANSFER, TxKind.SWAP,
            TxKind.TRANSFER, TxKind.TOKEN_TRANSFER,
            TxKind.TRANSFER,
        ]

    def test_preserves_counts(self) -> None:
        counts = {TxKind.TRANSFER: 70, TxKind.TOKEN_TRANSFER: 20, TxKind.SWAP: 10}
        order = interleave(counts)
        assert len(order) == 100
        for kind, count in counts.items():
            assert order.count(kind) == count
