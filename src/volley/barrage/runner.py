"""
Run driver: connectivity -> fund -> generate -> sign -> broadcast -> confirm -> verify.

Phases run one after another; each fans out internally.  Only three
conditions abort a run (endpoint unreachable, no funded sender, nothing
signed); every other failure is counted and ends up in the report.
"""

from __future__ import annotations

import dataclasses
import logging
import time
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from ..config import RunConfig
from ..pneuma.rpc import RpcClient, RpcError
from ..sigil.eth import get_account
from ..utils import to_wei
from .broadcast import BroadcastResult, broadcast
from .confirm import ConfirmationResult, wait_for_receipts
from .errors import (
    ConfigError,
    ConnectivityError,
    ErrorCategory,
    NoFundedSendersError,
    NothingSignedError,
)
from .funding import FundingResult, create_senders, fund_senders
from .models import Sender, SenderState
from .payload import PayloadParams, calculate_funding_needs, fetch_fees, generate_payload
from .signing import SigningResult, sign_descriptors
from .verify import TpsAnalysis, analyze

log = logging.getLogger("volley.runner")


@dataclass(frozen=True)
class ChainInfo:
    chain_id: int
    block_number: int
    funder: str
    funder_balance: int


@dataclass
class RunReport:
    config: RunConfig
    chain: ChainInfo
    funding: FundingResult
    counts: dict[str, int]
    signing: SigningResult
    broadcast: BroadcastResult
    confirmation: ConfirmationResult
    analysis: Optional[TpsAnalysis]
    exhausted_senders: int = 0
    duration: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        """JSON-serializable summary of the run."""
        funding = self.funding
        return {
            "config": self.config.summary(),
            "chain": dataclasses.asdict(self.chain),
            "funding": {
                "senders": len(funding.senders),
                "funded": len(funding.funded),
                "shortfall": funding.shortfall,
                "native_per_sender": funding.needs.native_per_sender,
                "tokens_per_sender": funding.needs.tokens_per_sender,
                "broadcast_ok": funding.broadcast_ok,
                "broadcast_failed": funding.broadcast_failed,
                "poll_exit": str(funding.poll_exit) if funding.poll_exit else None,
                "tokens": dataclasses.asdict(funding.tokens) if funding.tokens else None,
                "approvals": dataclasses.asdict(funding.approvals) if funding.approvals else None,
                "duration": funding.duration,
            },
            "counts": dict(self.counts),
            "signing": {
                "signed": len(self.signing.envelopes),
                "dropped": self.signing.dropped,
                "duration": self.signing.duration,
            },
            "broadcast": {
                "success": self.broadcast.success_count,
                "failed": self.broadcast.failure_count,
                "errors": dict(self.broadcast.error_counts),
                "first_error": self.broadcast.first_error,
                "duration": self.broadcast.duration,
                "rate": self.broadcast.rate,
            },
            "confirmation": {
                "confirmed": self.confirmation.confirmed,
                "successful": self.confirmation.successful,
                "reverted": self.confirmation.reverted,
                "pending": len(self.confirmation.pending),
                "timed_out": self.confirmation.timed_out,
                "duration": self.confirmation.duration,
            },
            "analysis": self.analysis.to_dict() if self.analysis else None,
            "exhausted_senders": self.exhausted_senders,
            "duration": self.duration,
        }


async def check_connectivity(client: RpcClient, funder_address: str) -> ChainInfo:
    """
    Raises:
        ConnectivityError: If the endpoint does not answer basic queries
    """
    try:
        chain_id = await client.chain_id()
        block_number = await client.block_number()
        balance = await client.get_balance(funder_address)
    except (RpcError, httpx.HTTPError) as e:
        raise ConnectivityError(f"Cannot reach RPC endpoint {client.url}: {e}") from e
    log.info("Connected to chain %d at block %d", chain_id, block_number)
    return ChainInfo(chain_id, block_number, funder_address, balance)


def mark_exhausted(senders: list[Sender], result: BroadcastResult) -> int:
    """Flag senders that ran out of funds during the broadcast."""
    broke = {a.lower() for a in result.senders_with(ErrorCategory.INSUFFICIENT_FUNDS)}
    count = 0
    for sender in senders:
        if sender.address.lower() in broke:
            sender.state = SenderState.EXHAUSTED
            count += 1
    return count


async def run_benchmark(config: RunConfig, client: Optional[RpcClient] = None) -> RunReport:
    """
    Execute one full run.

    Args:
        config: Validated run configuration
        client: RPC client to use; one is created (and closed) when None

    Returns:
        RunReport

    Raises:
        ConnectivityError: Endpoint unreachable
        NoFundedSendersError: No sender could be funded
        NothingSignedError: No transaction could be signed
        PayloadError: No funded sender answered its nonce lookup
    """
    if client is None:
        async with RpcClient(config.rpc_url, max_connections=config.concurrency) as owned:
            return await _run(config, owned)
    return await _run(config, client)


async def _run(config: RunConfig, client: RpcClient) -> RunReport:
    start = time.monotonic()
    try:
        funder = get_account(config.funder_private_key)
    except ValueError as e:
        raise ConfigError(f"Invalid funder private key: {e}") from e
    chain = await check_connectivity(client, funder.address)

    params = PayloadParams.from_config(config)
    needs = calculate_funding_needs(params, config.sender_count)
    if config.funding_amount is not None:
        needs = dataclasses.replace(needs, native_per_sender=to_wei(config.funding_amount))
    try:
        startup_fees = await fetch_fees(client, config.gas_multiplier)
    except (RpcError, httpx.HTTPError) as e:
        raise ConnectivityError(f"Cannot read fees from {client.url}: {e}") from e
    fees = startup_fees[0]

    # Phase 1: fund
    senders = create_senders(config.sender_count)
    funding = await fund_senders(
        client,
        funder,
        senders,
        needs,
        fees,
        chain.chain_id,
        contracts=config.contracts,
        distribute=config.tx_mix.token_transfer > 0,
        approve=config.tx_mix.swap > 0,
        timeout=config.resolved_funding_timeout,
        interval=config.poll_interval,
    )
    if not funding.funded:
        raise NoFundedSendersError("No sender accounts were funded")
    if funding.shortfall:
        log.warning(
            "%d accounts not funded, using %d senders", funding.shortfall, len(funding.funded)
        )

    # Phase 2: generate
    payload = await generate_payload(
        client,
        funding.funded,
        params,
        config.contracts,
        chain.chain_id,
        fallback_fees=startup_fees,
    )

    # Phase 3: sign
    signing = await sign_descriptors(payload.descriptors, config.sign_batch_size)
    if not signing.envelopes:
        raise NothingSignedError("No transactions could be signed")

    # Phase 4: broadcast
    sent = await broadcast(client, signing.envelopes, config.concurrency)
    exhausted = mark_exhausted(funding.funded, sent)

    # Phase 5: confirm
    confirmation = await wait_for_receipts(
        client,
        sent.hashes,
        timeout=config.confirm_timeout,
        interval=config.poll_interval,
    )

    # Phase 6: verify
    analysis = await analyze(
        client,
        confirmation.receipts,
        sent.accepted,
        payload.expected,
        sent.started_at,
        sent.ended_at,
        sample_size=config.sample_size,
        verify_all=config.verify_all,
        concurrency=min(config.concurrency, 50),
    )

    return RunReport(
        config=config,
        chain=chain,
        funding=funding,
        counts={str(kind): n for kind, n in payload.counts.items()},
        signing=signing,
        broadcast=sent,
        confirmation=confirmation,
        analysis=analysis,
        exhausted_senders=exhausted,
        duration=time.monotonic() - start,
    )
