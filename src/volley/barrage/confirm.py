"""Confirmation tracking: poll receipts until every hash has one or time runs out."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

import httpx

from ..pneuma.rpc import RpcClient, RpcError
from .models import Receipt
from .pool import poll, run_pool

log = logging.getLogger("volley.confirm")

DEFAULT_TIMEOUT = 60.0
DEFAULT_INTERVAL = 0.5
DEFAULT_PER_ROUND = 100


@dataclass(frozen=True)
class ConfirmationResult:
    receipts: dict[str, Receipt]
    pending: frozenset[str]
    duration: float
    timed_out: bool

    @property
    def confirmed(self) -> int:
        return len(self.receipts)

    @property
    def successful(self) -> int:
        return sum(1 for r in self.receipts.values() if r.succeeded)

    @property
    def reverted(self) -> int:
        return self.confirmed - self.successful


class ReceiptTracker:
    """Pending-set bookkeeping for one confirmation wait."""

    def __init__(self, client: RpcClient, hashes: Sequence[str], per_round: int, concurrency: int):
        self.client = client
        self.pending: dict[str, None] = dict.fromkeys(h.lower() for h in hashes)
        self.receipts: dict[str, Receipt] = {}
        self.per_round = per_round
        self.concurrency = concurrency

    async def fetch(self, tx_hash: str) -> tuple[str, Optional[Receipt]]:
        try:
            payload = await self.client.get_receipt(tx_hash)
        except (RpcError, httpx.HTTPError) as e:
            # Retried next round.
            log.debug("Receipt lookup for %s failed: %s", tx_hash, e)
            return tx_hash, None
        if not isinstance(payload, dict) or payload.get("blockNumber") is None:
            return tx_hash, None
        return tx_hash, Receipt.from_rpc(payload, tx_hash)

    async def round(self) -> int:
        """Check up to ``per_round`` pending hashes; returns the pending count."""
        batch = list(self.pending)[: self.per_round]
        found = await run_pool(batch, self.fetch, self.concurrency)
        for tx_hash, receipt in found:
            if receipt is not None:
                self.receipts[tx_hash] = receipt
                del self.pending[tx_hash]
        return len(self.pending)


async def wait_for_receipts(
    client: RpcClient,
    hashes: Sequence[str],
    *,
    timeout: float = DEFAULT_TIMEOUT,
    interval: float = DEFAULT_INTERVAL,
    per_round: int = DEFAULT_PER_ROUND,
    concurrency: int = DEFAULT_PER_ROUND,
    on_progress: Optional[Callable[[int, int], None]] = None,
) -> ConfirmationResult:
    """
    Poll receipts for ``hashes``.

    A timeout is not an error: whatever was found is returned and the rest
    stays in ``pending``.

    Args:
        client: RPC client
        hashes: Transaction hashes accepted by the endpoint
        timeout: Overall wait in seconds
        interval: Sleep between rounds
        per_round: Hashes checked per round
        concurrency: Concurrent receipt lookups within a round
        on_progress: Called with (confirmed, total) after each round
    """
    tracker = ReceiptTracker(client, hashes, per_round, concurrency)
    total = len(tracker.pending)
    log.info("Waiting for %d transactions to confirm", total)
    start = time.monotonic()

    if total:
        async def probe() -> int:
            remaining = await tracker.round()
            if on_progress:
                on_progress(len(tracker.receipts), total)
            return remaining

        outcome = await poll(
            probe,
            is_done=lambda remaining: remaining == 0,
            interval=interval,
            timeout=timeout,
        )
        timed_out = not outcome.complete
    else:
        timed_out = False

    result = ConfirmationResult(
        receipts=dict(tracker.receipts),
        pending=frozenset(tracker.pending),
        duration=time.monotonic() - start,
        timed_out=timed_out,
    )
    if result.timed_out:
        log.warning(
            "Confirmation timed out after %.0fs: %d/%d confirmed",
            timeout, result.confirmed, total,
        )
    else:
        log.info("Confirmed %d/%d in %.2fs", result.confirmed, total, result.duration)
    return result
