"""
Fire-and-forget broadcaster.

Signed envelopes are submitted with ``eth_sendRawTransaction`` by a bounded
pool of workers.  A submission either yields a hash or a classified error;
nothing is retried here and no failure stops the pool.
"""

from __future__ import annotations

import logging
import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence

import httpx

from ..pneuma.rpc import RpcClient, RpcError
from .errors import ErrorCategory, classify_error, describe_exception
from .models import AcceptedTx, BroadcastOutcome, SignedEnvelope
from .pool import run_pool

log = logging.getLogger("volley.broadcast")

PROGRESS_EVERY = 100


@dataclass
class BroadcastResult:
    accepted: list[AcceptedTx]
    success_count: int
    failure_count: int
    error_counts: dict[str, int]
    duration: float
    started_at: float
    ended_at: float
    first_error: Optional[str] = None
    error_examples: dict[str, str] = field(default_factory=dict)
    sender_failures: dict[str, Counter] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return self.success_count + self.failure_count

    @property
    def rate(self) -> float:
        return self.success_count / self.duration if self.duration > 0 else 0.0

    @property
    def hashes(self) -> list[str]:
        return [tx.tx_hash for tx in self.accepted]

    def senders_with(self, category: ErrorCategory) -> set[str]:
        return {s for s, counts in self.sender_failures.items() if counts.get(category)}


async def submit_envelope(client: RpcClient, envelope: SignedEnvelope) -> BroadcastOutcome:
    """
    Submit one envelope and classify any failure.

    Only RPC, transport and malformed-response errors are caught; they are
    expected outcomes of load testing and become part of the result.
    """
    try:
        tx_hash = await client.send_raw_transaction(envelope.raw_tx)
    except RpcError as e:
        return BroadcastOutcome(envelope, category=classify_error(e.message), message=e.message)
    except (httpx.HTTPError, ValueError) as e:
        message = describe_exception(e)
        return BroadcastOutcome(envelope, category=classify_error(message), message=message)

    if not tx_hash:
        return BroadcastOutcome(envelope, category=ErrorCategory.UNKNOWN, message="Empty result")
    return BroadcastOutcome(envelope, tx_hash=tx_hash.lower())


def summarize(
    outcomes: Sequence[BroadcastOutcome], started_at: float, ended_at: float
) -> BroadcastResult:
    """Fold per-envelope outcomes into counts, examples and accepted hashes."""
    accepted: list[AcceptedTx] = []
    error_counts: Counter = Counter()
    examples: dict[str, str] = {}
    sender_failures: dict[str, Counter] = {}
    first_error: Optional[str] = None

    # Index order makes first_error and examples independent of completion order.
    for outcome in sorted(outcomes, key=lambda o: o.envelope.index):
        env = outcome.envelope
        if outcome.ok:
            accepted.append(AcceptedTx(outcome.tx_hash, env.sender, env.index, env.kind))
            continue
        category = str(outcome.category or ErrorCategory.UNKNOWN)
        error_counts[category] += 1
        examples.setdefault(category, outcome.message or "")
        sender_failures.setdefault(env.sender, Counter())[category] += 1
        if first_error is None:
            first_error = outcome.message

    return BroadcastResult(
        accepted=accepted,
        success_count=len(accepted),
        failure_count=sum(error_counts.values()),
        error_counts=dict(error_counts),
        duration=ended_at - started_at,
        started_at=started_at,
        ended_at=ended_at,
        first_error=first_error,
        error_examples=examples,
        sender_failures=sender_failures,
    )


async def broadcast(
    client: RpcClient,
    envelopes: Sequence[SignedEnvelope],
    concurrency: int,
    on_progress: Optional[Callable[[int, int, int], None]] = None,
) -> BroadcastResult:
    """
    Broadcast every envelope once with ``concurrency`` workers.

    Args:
        client: Shared RPC client
        envelopes: Signed envelopes (each submitted exactly once)
        concurrency: Worker count
        on_progress: Called with (done, succeeded, failed) every 100 envelopes

    Returns:
        BroadcastResult; ``success_count + failure_count == len(envelopes)``
    """
    log.info("Broadcasting %d transactions (concurrency %d)", len(envelopes), concurrency)
    done = Counter()

    async def handle(envelope: SignedEnvelope) -> BroadcastOutcome:
        outcome = await submit_envelope(client, envelope)
        done["ok" if outcome.ok else "failed"] += 1
        total = done["ok"] + done["failed"]
        if on_progress and (total % PROGRESS_EVERY == 0 or total == len(envelopes)):
            on_progress(total, done["ok"], done["failed"])
        return outcome

    # Wall-clock bounds: they are compared with block timestamps later.
    started_at = time.time()
    outcomes = await run_pool(envelopes, handle, concurrency)
    ended_at = time.time()

    result = summarize(outcomes, started_at, ended_at)
    log.info(
        "Broadcast complete in %.2fs: %d accepted, %d failed",
        result.duration, result.success_count, result.failure_count,
    )
    if result.first_error:
        log.warning("First broadcast error: %s", result.first_error[:100])
    return result
