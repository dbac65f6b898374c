"""
Sender creation and funding.

The funder reserves one nonce per recipient (``n0 .. n0+N-1``) and signs
every funding transfer before the first one is sent; the transfers are
then broadcast concurrently and the chain orders them by nonce.  Balances
are polled until every accepted transfer has landed, progress stalls, or
the timeout passes.  A partially funded sender set is a valid result.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Optional, Sequence

import httpx
from eth_account.signers.local import LocalAccount

from ..pneuma.abi import encode_erc20_approve, encode_erc20_transfer
from ..pneuma.rpc import RpcClient, RpcError
from ..pneuma.tx import FeeParams, build_tx, sign_tx
from ..sigil.eth import new_account
from ..utils import chunked, format_ether
from .broadcast import BroadcastResult, broadcast
from .confirm import ConfirmationResult, wait_for_receipts
from .models import (
    APPROVE_GAS,
    TOKEN_TRANSFER_GAS,
    ContractAddresses,
    Sender,
    SenderState,
    SignedEnvelope,
    TxKind,
)
from .payload import FundingNeeds
from .pool import PollExit, poll, run_pool

log = logging.getLogger("volley.funding")

FUNDING_GAS = 21_000
FUNDING_BATCH = 200
BALANCE_BATCH = 100
APPROVAL_BATCH = 50
STALL_ROUNDS = 5
TOKEN_CONFIRM_TIMEOUT = 30.0


@dataclass
class SideTransfers:
    """Token distribution or router approval round."""

    sent: int
    failed: int
    confirmed: int = 0
    successful: int = 0


@dataclass
class FundingResult:
    senders: list[Sender]
    funded: list[Sender]
    needs: FundingNeeds
    broadcast_ok: int
    broadcast_failed: int
    poll_exit: Optional[PollExit]
    duration: float
    tokens: Optional[SideTransfers] = None
    approvals: Optional[SideTransfers] = None
    errors: dict[str, int] = field(default_factory=dict)

    @property
    def shortfall(self) -> int:
        return len(self.senders) - len(self.funded)


def create_senders(count: int) -> list[Sender]:
    return [Sender(new_account()) for _ in range(count)]


def presign_from_funder(
    funder: LocalAccount,
    start_nonce: int,
    calls: Sequence[tuple[str, int, Optional[str], int]],
    fees: FeeParams,
    chain_id: int,
    kind: TxKind = TxKind.TRANSFER,
) -> list[SignedEnvelope]:
    """
    Sign one funder transaction per call with consecutive nonces.

    Args:
        funder: Funder account
        start_nonce: First nonce to use
        calls: (to, value, data, gas_limit) per transaction
        fees: Fee caps
        chain_id: Chain ID
        kind: Logical type recorded on the envelopes

    Returns:
        Envelopes in nonce order; envelope ``i`` has nonce ``start_nonce + i``
    """
    envelopes = []
    for i, (to, value, data, gas_limit) in enumerate(calls):
        tx = build_tx(
            to=to,
            value=value,
            nonce=start_nonce + i,
            gas_limit=gas_limit,
            fees=fees,
            chain_id=chain_id,
            data=data,
        )
        raw_tx, tx_hash = sign_tx(funder, tx)
        envelopes.append(SignedEnvelope(raw_tx, tx_hash, funder.address, i, kind))
    return envelopes


async def fetch_balances(client: RpcClient, senders: Sequence[Sender]) -> list[int]:
    """Balances in sender order, queried in batches; failed lookups read as 0."""

    async def balance(sender: Sender) -> int:
        try:
            return await client.get_balance(sender.address)
        except (RpcError, httpx.HTTPError) as e:
            log.debug("Balance lookup for %s failed: %s", sender.address, e)
            return 0

    balances: list[int] = []
    for batch in chunked(senders, BALANCE_BATCH):
        balances.extend(await asyncio.gather(*(balance(s) for s in batch)))
    return balances


def _summarize_side(result: BroadcastResult, confirmation: ConfirmationResult) -> SideTransfers:
    return SideTransfers(
        sent=result.success_count,
        failed=result.failure_count,
        confirmed=confirmation.confirmed,
        successful=confirmation.successful,
    )


async def distribute_tokens(
    client: RpcClient,
    funder: LocalAccount,
    senders: Sequence[Sender],
    token: str,
    amount: int,
    fees: FeeParams,
    chain_id: int,
    timeout: float = TOKEN_CONFIRM_TIMEOUT,
) -> SideTransfers:
    """Send ``amount`` tokens to each sender from the funder, nonces reserved up front."""
    log.info("Distributing tokens to %d senders", len(senders))
    try:
        nonce = await client.get_nonce(funder.address)
    except (RpcError, httpx.HTTPError) as e:
        log.error("Funder nonce lookup failed, skipping token distribution: %s", e)
        return SideTransfers(sent=0, failed=len(senders))
    envelopes = presign_from_funder(
        funder,
        nonce,
        [(token, 0, encode_erc20_transfer(s.address, amount), TOKEN_TRANSFER_GAS) for s in senders],
        fees,
        chain_id,
        TxKind.TOKEN_TRANSFER,
    )
    result = await broadcast(client, envelopes, min(FUNDING_BATCH, len(envelopes)))
    confirmation = await wait_for_receipts(client, result.hashes, timeout=timeout)
    side = _summarize_side(result, confirmation)
    log.info("Token distribution: %d sent, %d confirmed", side.sent, side.confirmed)
    return side


async def approve_router(
    client: RpcClient,
    senders: Sequence[Sender],
    token: str,
    router: str,
    fees: FeeParams,
    chain_id: int,
    timeout: float = TOKEN_CONFIRM_TIMEOUT,
) -> SideTransfers:
    """Each sender approves the router for the token, signing with its own nonce."""
    log.info("Approving router for %d senders", len(senders))
    data = encode_erc20_approve(router)

    async def sign_approval(indexed: tuple[int, Sender]) -> Optional[SignedEnvelope]:
        index, sender = indexed
        try:
            nonce = await client.get_nonce(sender.address)
        except (RpcError, httpx.HTTPError) as e:
            log.warning("Nonce lookup for %s failed, skipping approval: %s", sender.address, e)
            return None
        tx = build_tx(
            to=token, value=0, nonce=nonce, gas_limit=APPROVE_GAS,
            fees=fees, chain_id=chain_id, data=data,
        )
        raw_tx, tx_hash = sign_tx(sender.account, tx)
        return SignedEnvelope(raw_tx, tx_hash, sender.address, index, TxKind.TOKEN_TRANSFER)

    signed = await run_pool(list(enumerate(senders)), sign_approval, APPROVAL_BATCH)
    envelopes = [e for e in signed if e is not None]
    result = await broadcast(client, envelopes, APPROVAL_BATCH)
    confirmation = await wait_for_receipts(client, result.hashes, timeout=timeout)
    side = _summarize_side(result, confirmation)
    side.failed += len(senders) - len(envelopes)
    log.info("Router approvals: %d sent, %d confirmed", side.sent, side.confirmed)
    return side


async def fund_senders(
    client: RpcClient,
    funder: LocalAccount,
    senders: Sequence[Sender],
    needs: FundingNeeds,
    fees: FeeParams,
    chain_id: int,
    *,
    contracts: ContractAddresses = ContractAddresses(),
    distribute: bool = False,
    approve: bool = False,
    timeout: float = 30.0,
    interval: float = 0.5,
) -> FundingResult:
    """
    Fund ``senders`` from ``funder`` and return the subset that ended up funded.

    Args:
        client: RPC client
        funder: Funder account
        senders: Freshly created senders
        needs: Per-sender amounts
        fees: Fee caps for funder and approval transactions
        chain_id: Chain ID
        contracts: Token / router addresses for the side transfers
        distribute: Send tokens to each funded sender
        approve: Have each funded sender approve the router
        timeout: Balance polling budget in seconds
        interval: Balance polling interval

    Returns:
        FundingResult; ``funded`` may be empty, which callers treat as fatal
    """
    start = time.monotonic()
    log.info(
        "Funding %d senders with %s ETH each", len(senders), format_ether(needs.native_per_sender)
    )

    try:
        nonce = await client.get_nonce(funder.address)
    except (RpcError, httpx.HTTPError) as e:
        log.error("Funder nonce lookup failed, no senders funded: %s", e)
        return FundingResult(
            senders=list(senders),
            funded=[],
            needs=needs,
            broadcast_ok=0,
            broadcast_failed=0,
            poll_exit=None,
            duration=time.monotonic() - start,
        )
    envelopes = presign_from_funder(
        funder,
        nonce,
        [(s.address, needs.native_per_sender, None, FUNDING_GAS) for s in senders],
        fees,
        chain_id,
    )
    sent = await broadcast(client, envelopes, min(FUNDING_BATCH, len(envelopes)))

    poll_exit: Optional[PollExit] = None
    funded: list[Sender] = []
    if sent.success_count:
        outcome = await poll(
            lambda: fetch_balances(client, senders),
            is_done=lambda balances: sum(1 for b in balances if b > 0) >= sent.success_count,
            progress=lambda balances: sum(1 for b in balances if b > 0),
            interval=interval,
            timeout=timeout,
            stall_rounds=STALL_ROUNDS,
        )
        poll_exit = outcome.exit
        if outcome.exit is PollExit.STALLED:
            log.warning("Funding stalled; continuing with the funded subset")
        # Final sweep decides which senders are usable.
        balances = await fetch_balances(client, senders)
        for sender, balance in zip(senders, balances):
            if balance > 0:
                sender.state = SenderState.FUNDED
                funded.append(sender)
    else:
        log.error("All funding transactions failed to broadcast")

    log.info("Funded %d/%d senders", len(funded), len(senders))

    result = FundingResult(
        senders=list(senders),
        funded=funded,
        needs=needs,
        broadcast_ok=sent.success_count,
        broadcast_failed=sent.failure_count,
        poll_exit=poll_exit,
        duration=0.0,
        errors=dict(sent.error_counts),
    )

    if funded and distribute and contracts.token:
        result.tokens = await distribute_tokens(
            client, funder, funded, contracts.token, needs.tokens_per_sender, fees, chain_id
        )
    if funded and approve and contracts.token and contracts.router:
        result.approvals = await approve_router(
            client, funded, contracts.token, contracts.router, fees, chain_id
        )

    result.duration = time.monotonic() - start
    return result
