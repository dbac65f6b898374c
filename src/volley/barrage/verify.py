"""
On-chain verification and throughput analysis.

Fetching and computing are kept apart: ``fetch_blocks`` and the
transaction checks talk to the endpoint, while ``compute_inclusion`` and
``compute_throughput`` are pure functions of their inputs.  Given the same
receipts and blocks they always produce the same figures.

Throughput is reported on two time bases and never merged:

- block time: last minus first block timestamp (whole seconds, coarse);
- broadcast time: our own wall-clock broadcast window (sub-second).

Each base gives an "included" rate (any receipt status) and a "confirmed"
rate (successful receipts only).
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import asdict, dataclass
from typing import Any, Mapping, Optional, Sequence

import httpx
from eth_abi.exceptions import DecodingError

from ..pneuma.abi import ERC20_ABI, ROUTER_ABI, decode_call
from ..pneuma.rpc import RpcClient, RpcError
from ..pneuma.tx import same_address
from ..utils import hex_to_int
from .models import AcceptedTx, ExpectedTxDetails, Receipt, TxKind
from .pool import run_pool

log = logging.getLogger("volley.verify")

DEFAULT_SAMPLE_SIZE = 10

# Failure reasons of a per-transaction check
REASON_NOT_FOUND = "not_found"
REASON_FROM = "from"
REASON_TO = "to"
REASON_VALUE = "value"
REASON_DATA = "data"
REASON_STATUS = "status"
REASON_UNMINED = "unmined"


@dataclass(frozen=True)
class BlockSummary:
    number: int
    timestamp: int
    transactions: tuple[str, ...]
    gas_used: int

    @classmethod
    def from_rpc(cls, payload: Mapping[str, Any]) -> "BlockSummary":
        return cls(
            number=hex_to_int(payload.get("number")),
            timestamp=hex_to_int(payload.get("timestamp")),
            transactions=tuple(
                (tx if isinstance(tx, str) else tx["hash"]).lower()
                for tx in payload.get("transactions") or []
            ),
            gas_used=hex_to_int(payload.get("gasUsed")),
        )


@dataclass(frozen=True)
class BlockStat:
    number: int
    timestamp: int
    total_tx_count: int
    our_tx_count: int
    gas_used: int


@dataclass(frozen=True)
class InclusionResult:
    """Outcome of matching our hashes against block transaction lists."""

    included: int
    included_successful: int
    reverted: int
    our_tx_count: int
    total_tx_count: int
    verified_by_type: dict[str, int]
    block_stats: tuple[BlockStat, ...]


@dataclass(frozen=True)
class Throughput:
    block_time_span: float
    broadcast_time_span: float
    included_block_tps: float
    confirmed_block_tps: float
    included_broadcast_tps: float
    confirmed_broadcast_tps: float


@dataclass(frozen=True)
class TxCheck:
    tx_hash: str
    kind: Optional[TxKind]
    reasons: tuple[str, ...] = ()

    @property
    def passed(self) -> bool:
        return not self.reasons

    @property
    def included(self) -> bool:
        """Present and correct, whatever the execution status."""
        return all(reason == REASON_STATUS for reason in self.reasons)


@dataclass(frozen=True)
class CheckSummary:
    checked: int
    passed: int
    included: int
    failures: dict[str, int]
    failed: tuple[TxCheck, ...] = ()

    @classmethod
    def from_checks(cls, checks: Sequence[TxCheck]) -> "CheckSummary":
        failures: Counter = Counter()
        for check in checks:
            failures.update(check.reasons)
        return cls(
            checked=len(checks),
            passed=sum(1 for c in checks if c.passed),
            included=sum(1 for c in checks if c.included),
            failures=dict(failures),
            failed=tuple(c for c in checks if not c.passed),
        )


@dataclass(frozen=True)
class TpsAnalysis:
    block_count: int
    first_block: int
    last_block: int
    avg_block_time: float
    receipts_count: int
    inclusion: InclusionResult
    throughput: Throughput
    peak_block: Optional[BlockStat]
    sample: CheckSummary
    full: Optional[CheckSummary] = None

    @property
    def verified_count(self) -> int:
        """Included transactions; full verification supersedes block matching."""
        if self.full is not None:
            return self.full.included
        return self.inclusion.included

    @property
    def verified_successful(self) -> int:
        if self.full is not None:
            return self.full.passed
        return self.inclusion.included_successful

    def to_dict(self) -> dict[str, Any]:
        data = {
            "block_count": self.block_count,
            "first_block": self.first_block,
            "last_block": self.last_block,
            "avg_block_time": self.avg_block_time,
            "receipts_count": self.receipts_count,
            "verified_count": self.verified_count,
            "verified_successful": self.verified_successful,
            "reverted": self.inclusion.reverted,
            "our_tx_count": self.inclusion.our_tx_count,
            "total_tx_count": self.inclusion.total_tx_count,
            "verified_by_type": dict(self.inclusion.verified_by_type),
            "throughput": asdict(self.throughput),
            "peak_block": asdict(self.peak_block) if self.peak_block else None,
            "blocks": [asdict(b) for b in self.inclusion.block_stats],
            "sample": _summary_dict(self.sample),
            "full": _summary_dict(self.full) if self.full else None,
        }
        return data


def _summary_dict(summary: CheckSummary) -> dict[str, Any]:
    return {
        "checked": summary.checked,
        "passed": summary.passed,
        "included": summary.included,
        "failures": dict(summary.failures),
    }


# ---------------------------------------------------------------------------
# Pure computation
# ---------------------------------------------------------------------------

def compute_inclusion(
    blocks: Sequence[BlockSummary],
    receipts: Mapping[str, Receipt],
    kinds: Mapping[str, TxKind],
) -> InclusionResult:
    """
    Match block transaction lists against our claimed hashes.

    A hash counts as included when it appears in a block and we hold its
    receipt; it counts as successful only if that receipt succeeded.

    Args:
        blocks: Blocks in ascending order
        receipts: Receipts by lowercase hash
        kinds: Logical type by lowercase hash for every accepted transaction
    """
    included = successful = reverted = ours = total = 0
    by_type: Counter = Counter()
    stats: list[BlockStat] = []

    for block in blocks:
        block_ours = 0
        for tx_hash in block.transactions:
            if tx_hash not in kinds:
                continue
            block_ours += 1
            receipt = receipts.get(tx_hash)
            if receipt is None:
                continue
            included += 1
            if receipt.succeeded:
                successful += 1
                by_type[str(kinds[tx_hash])] += 1
            else:
                reverted += 1
        ours += block_ours
        total += len(block.transactions)
        stats.append(
            BlockStat(block.number, block.timestamp, len(block.transactions), block_ours, block.gas_used)
        )

    return InclusionResult(
        included=included,
        included_successful=successful,
        reverted=reverted,
        our_tx_count=ours,
        total_tx_count=total,
        verified_by_type=dict(by_type),
        block_stats=tuple(stats),
    )


def block_time_span(block_stats: Sequence[BlockStat]) -> float:
    """Seconds between first and last block; 1 when they share a timestamp."""
    if not block_stats:
        return 1.0
    span = block_stats[-1].timestamp - block_stats[0].timestamp
    return float(span) if span > 0 else 1.0


def compute_throughput(
    included: int,
    confirmed: int,
    block_span: float,
    broadcast_span: float,
) -> Throughput:
    def rate(count: int, span: float) -> float:
        return count / span if span > 0 else 0.0

    return Throughput(
        block_time_span=block_span,
        broadcast_time_span=broadcast_span,
        included_block_tps=rate(included, block_span),
        confirmed_block_tps=rate(confirmed, block_span),
        included_broadcast_tps=rate(included, broadcast_span),
        confirmed_broadcast_tps=rate(confirmed, broadcast_span),
    )


def peak_block(block_stats: Sequence[BlockStat]) -> Optional[BlockStat]:
    """Block holding most of our transactions (earliest on ties)."""
    peak: Optional[BlockStat] = None
    for stat in block_stats:
        if peak is None or stat.our_tx_count > peak.our_tx_count:
            peak = stat
    return peak


def sample_indices(count: int, size: int = DEFAULT_SAMPLE_SIZE) -> list[int]:
    """Up to ``size`` indices spread evenly over ``range(count)``."""
    if count <= 0 or size <= 0:
        return []
    if count <= size:
        return list(range(count))
    step = count / size
    return [int(i * step) for i in range(size)]


def check_transaction(
    tx: Optional[Mapping[str, Any]],
    receipt: Optional[Mapping[str, Any]],
    kind: TxKind,
    expected: ExpectedTxDetails,
) -> tuple[str, ...]:
    """
    Compare an on-chain transaction with what we generated.

    Returns:
        Failure reasons, empty when the transaction is correct
    """
    if not tx or not receipt:
        return (REASON_NOT_FOUND,)

    reasons: list[str] = []
    if not expected.is_sender(tx.get("from")):
        reasons.append(REASON_FROM)
    if not same_address(tx.get("to"), expected.destination(kind)):
        reasons.append(REASON_TO)
    if hex_to_int(tx.get("value")) != expected.values.get(kind, 0):
        reasons.append(REASON_VALUE)
    if not _calldata_matches(tx, kind, expected):
        reasons.append(REASON_DATA)
    if hex_to_int(receipt.get("status")) != 1:
        reasons.append(REASON_STATUS)
    if hex_to_int(receipt.get("blockNumber")) <= 0:
        reasons.append(REASON_UNMINED)
    return tuple(reasons)


def _calldata_matches(tx: Mapping[str, Any], kind: TxKind, expected: ExpectedTxDetails) -> bool:
    data = tx.get("input") or tx.get("data") or "0x"
    try:
        if kind == TxKind.TOKEN_TRANSFER:
            recipient, amount = decode_call(ERC20_ABI, "transfer", data)
            return (
                same_address(recipient, expected.recipients.get(TxKind.TOKEN_TRANSFER))
                and amount == expected.token_amount
            )
        if kind == TxKind.SWAP:
            _, path, recipient, _ = decode_call(ROUTER_ABI, "swapExactETHForTokens", data)
            contracts = expected.contracts
            return (
                len(path) == 2
                and same_address(path[0], contracts.weth)
                and same_address(path[1], contracts.token)
                and same_address(recipient, tx.get("from"))
            )
    except (ValueError, DecodingError):
        return False
    return data in ("0x", "")


# ---------------------------------------------------------------------------
# Fetching
# ---------------------------------------------------------------------------

async def fetch_blocks(
    client: RpcClient, first: int, last: int, concurrency: int = 50
) -> list[BlockSummary]:
    """
    Fetch blocks ``first..last`` inclusive, hashes only, ascending.

    Blocks the endpoint cannot return are skipped.
    """
    numbers = list(range(first, last + 1))

    async def fetch(number: int) -> Optional[BlockSummary]:
        try:
            payload = await client.get_block(number, full_transactions=False)
        except (RpcError, httpx.HTTPError) as e:
            log.warning("Failed to fetch block %d: %s", number, e)
            return None
        return BlockSummary.from_rpc(payload) if payload else None

    found = await run_pool(numbers, fetch, concurrency)
    return sorted((b for b in found if b is not None), key=lambda b: b.number)


async def verify_transaction(
    client: RpcClient, tx_hash: str, kind: TxKind, expected: ExpectedTxDetails
) -> TxCheck:
    """Fetch a transaction and its receipt by hash and check them."""
    try:
        tx = await client.get_transaction(tx_hash)
        receipt = await client.get_receipt(tx_hash)
    except (RpcError, httpx.HTTPError) as e:
        log.debug("Lookup of %s failed: %s", tx_hash, e)
        return TxCheck(tx_hash, kind, (REASON_NOT_FOUND,))
    return TxCheck(tx_hash, kind, check_transaction(tx, receipt, kind, expected))


async def verify_many(
    client: RpcClient,
    hashes: Sequence[str],
    kinds: Mapping[str, TxKind],
    expected: ExpectedTxDetails,
    concurrency: int,
) -> CheckSummary:
    checks = await run_pool(
        list(hashes),
        lambda h: verify_transaction(client, h, kinds[h], expected),
        concurrency,
    )
    return CheckSummary.from_checks(sorted(checks, key=lambda c: c.tx_hash))


async def analyze(
    client: RpcClient,
    receipts: Mapping[str, Receipt],
    accepted: Sequence[AcceptedTx],
    expected: ExpectedTxDetails,
    broadcast_started: float,
    broadcast_ended: float,
    *,
    sample_size: int = DEFAULT_SAMPLE_SIZE,
    verify_all: bool = False,
    concurrency: int = 50,
) -> Optional[TpsAnalysis]:
    """
    Verify confirmed transactions against chain data and compute throughput.

    Args:
        client: RPC client
        receipts: Confirmed receipts by lowercase hash
        accepted: Every transaction the endpoint accepted
        expected: Expected transaction details from payload generation
        broadcast_started: Wall-clock start of the broadcast (epoch seconds)
        broadcast_ended: Wall-clock end of the broadcast (epoch seconds)
        sample_size: Receipts fetched directly for the sample check
        verify_all: Check every receipt instead of only the sample
        concurrency: Concurrent lookups

    Returns:
        TpsAnalysis, or None when there are no receipts to analyze
    """
    if not receipts:
        log.warning("No receipts to analyze")
        return None

    kinds = {tx.tx_hash.lower(): tx.kind for tx in accepted}
    numbers = [r.block_number for r in receipts.values()]
    first, last = min(numbers), max(numbers)
    log.info("Analyzing blocks %d-%d", first, last)

    blocks = await fetch_blocks(client, first, last, concurrency)
    inclusion = compute_inclusion(blocks, receipts, kinds)

    ordered = sorted(receipts.values(), key=lambda r: (r.block_number, r.tx_hash))
    sample_hashes = [ordered[i].tx_hash for i in sample_indices(len(ordered), sample_size)]
    sample = await verify_many(client, sample_hashes, kinds, expected, concurrency)

    full = None
    if verify_all:
        log.info("Verifying all %d transactions", len(receipts))
        full = await verify_many(client, [r.tx_hash for r in ordered], kinds, expected, concurrency)

    block_span = block_time_span(inclusion.block_stats)
    included = full.included if full else inclusion.included
    confirmed = full.passed if full else inclusion.included_successful
    throughput = compute_throughput(
        included, confirmed, block_span, broadcast_ended - broadcast_started
    )

    return TpsAnalysis(
        block_count=len(inclusion.block_stats),
        first_block=first,
        last_block=last,
        avg_block_time=block_span / max(1, len(inclusion.block_stats) - 1),
        receipts_count=len(receipts),
        inclusion=inclusion,
        throughput=throughput,
        peak_block=peak_block(inclusion.block_stats),
        sample=sample,
        full=full,
    )
