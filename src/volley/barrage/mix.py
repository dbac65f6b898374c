"""Transaction-type mix: parsing, normalization and count splitting."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

from .models import TxKind

log = logging.getLogger("volley.mix")


def _largest_remainder(weights: list[int], total: int) -> list[int]:
    """Split ``total`` proportionally to ``weights`` so the parts sum exactly."""
    weight_sum = sum(weights)
    if weight_sum <= 0:
        raise ValueError("Transaction mix must contain a positive share")
    exact = [w * total / weight_sum for w in weights]
    parts = [math.floor(x) for x in exact]
    shortfall = total - sum(parts)
    # Earlier kinds win ties so the split is deterministic.
    order = sorted(range(len(weights)), key=lambda i: (-(exact[i] - parts[i]), i))
    for i in order[:shortfall]:
        parts[i] += 1
    return parts


@dataclass(frozen=True)
class TxMix:
    """Percentages for transfer / token-transfer / swap."""

    transfer: int = 100
    token_transfer: int = 0
    swap: int = 0

    @classmethod
    def parse(cls, text: str | None) -> "TxMix":
        """
        Parse ``"transfer:token:swap"`` percentages, e.g. ``"50:30:20"``.

        Missing parts default to 100:0:0 and non-numeric parts count as 0.
        The result is normalized to sum to 100.
        """
        if not text:
            return cls()
        values: list[int] = []
        for part in text.split(":")[:3]:
            try:
                values.append(max(0, int(part.strip())))
            except ValueError:
                values.append(0)
        defaults = [100, 0, 0]
        values += defaults[len(values):]
        return cls(*values).normalized()

    def as_list(self) -> list[int]:
        return [self.transfer, self.token_transfer, self.swap]

    def normalized(self) -> "TxMix":
        if sum(self.as_list()) == 100:
            return self
        log.warning(
            "Transaction mix sums to %s%%, normalizing to 100%%", sum(self.as_list())
        )
        return TxMix(*_largest_remainder(self.as_list(), 100))

    def split(self, total: int) -> dict[TxKind, int]:
        """Per-kind transaction counts summing exactly to ``total``."""
        transfer, token, swap = _largest_remainder(self.as_list(), total)
        return {
            TxKind.TRANSFER: transfer,
            TxKind.TOKEN_TRANSFER: token,
            TxKind.SWAP: swap,
        }

    @property
    def needs_token(self) -> bool:
        return self.token_transfer > 0 or self.swap > 0

    @property
    def needs_router(self) -> bool:
        return self.swap > 0

    def __str__(self) -> str:
        return f"{self.transfer}% transfer | {self.token_transfer}% token | {self.swap}% swap"


def interleave(counts: dict[TxKind, int]) -> list[TxKind]:
    """Kinds in round-robin order (T, K, S, T, K, S, ...) until each is used up."""
    remaining = {kind: counts.get(kind, 0) for kind in TxKind}
    order: list[TxKind] = []
    while any(remaining.values()):
        for kind in TxKind:
            if remaining[kind] > 0:
                order.append(kind)
                remaining[kind] -= 1
    return order
