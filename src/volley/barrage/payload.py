"""
Payload generation: unsigned transaction descriptors for a run.

Every descriptor of a batch shares one fee snapshot.  Nonces are read once
per sender and then allocated locally, so each sender's descriptors carry
the gap-free sequence ``n0, n0+1, ...`` and can be broadcast without
waiting on the chain in between.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence

import httpx

from ..pneuma.rpc import RpcClient, RpcError
from ..pneuma.tx import FeeParams
from ..sigil.eth import generate_eoa
from ..utils import GWEI, format_units, to_base_units, to_wei
from .errors import PayloadError
from .mix import TxMix, interleave
from .models import (
    SWAP_GAS,
    TOKEN_TRANSFER_GAS,
    ContractAddresses,
    ExpectedTxDetails,
    Sender,
    SwapIntent,
    TokenTransferIntent,
    TransferIntent,
    TxDescriptor,
    TxIntent,
    TxKind,
)

log = logging.getLogger("volley.payload")

SWAP_DEADLINE_SECONDS = 3600
TOKEN_DECIMALS = 18

IntentFactory = Callable[[Sender], TxIntent]


@dataclass(frozen=True)
class PayloadParams:
    """Per-run inputs of the generator, already converted to base units."""

    tx_count: int
    mix: TxMix
    transfer_value: int
    token_amount: int
    swap_value: int
    gas_multiplier: float
    transfer_gas_limit: int = 21_000

    @classmethod
    def from_config(cls, config) -> "PayloadParams":
        return cls(
            tx_count=config.tx_count,
            mix=config.tx_mix,
            transfer_value=to_wei(config.tx_value),
            token_amount=to_base_units(config.token_tx_value, TOKEN_DECIMALS),
            swap_value=to_wei(config.swap_value),
            gas_multiplier=config.gas_multiplier,
            transfer_gas_limit=config.gas_limit,
        )


@dataclass
class Payload:
    descriptors: list[TxDescriptor]
    expected: ExpectedTxDetails
    fees: FeeParams
    base_gas_price: int
    counts: dict[TxKind, int] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.descriptors)


def check_contracts(counts: dict[TxKind, int], contracts: ContractAddresses) -> None:
    """
    Raises:
        PayloadError: If a requested kind has no contract to target
    """
    if counts.get(TxKind.TOKEN_TRANSFER, 0) > 0 and not contracts.token:
        raise PayloadError("Token address required for token transfers")
    if counts.get(TxKind.SWAP, 0) > 0 and not (
        contracts.router and contracts.weth and contracts.token
    ):
        raise PayloadError("Router, WETH, and Token addresses required for swaps")


async def fetch_fees(client: RpcClient, multiplier: float) -> tuple[FeeParams, int]:
    """
    Read the endpoint's fee estimate once and apply the buffer multiplier.

    Returns:
        Tuple of (fee params, observed gas price in wei)
    """
    gas_price = await client.gas_price()
    max_fee = gas_price * int(math.floor(multiplier * 100)) // 100
    try:
        priority = await client.max_priority_fee()
    except RpcError as e:
        # Legacy-fee chains do not implement eth_maxPriorityFeePerGas.
        log.debug("eth_maxPriorityFeePerGas unavailable: %s", e)
        priority = 0
    return FeeParams(max_fee, min(priority, max_fee)), gas_price


async def fetch_nonces(client: RpcClient, senders: Sequence[Sender]) -> dict[str, int]:
    """
    Pending nonce of every sender, queried concurrently, once.

    Senders whose lookup fails are logged and left out of the result.
    """
    results = await asyncio.gather(
        *(client.get_nonce(s.address) for s in senders), return_exceptions=True
    )
    nonces: dict[str, int] = {}
    for sender, result in zip(senders, results):
        if isinstance(result, (RpcError, httpx.HTTPError)):
            log.warning("Nonce lookup for %s failed, dropping sender: %s", sender.address, result)
        elif isinstance(result, BaseException):
            raise result
        else:
            nonces[sender.address] = result
    return nonces


def build_descriptors(
    senders: Sequence[Sender],
    kinds: Sequence[TxKind],
    nonces: dict[str, int],
    intents: dict[TxKind, IntentFactory],
    fees: FeeParams,
    chain_id: int,
    transfer_gas_limit: int = 21_000,
) -> list[TxDescriptor]:
    """
    Assign kinds to senders round-robin and allocate nonces locally.

    Descriptor ``i`` belongs to ``senders[i % len(senders)]``.  Kinds are
    taken in rounds of ``len(senders)``; round ``r`` is rotated by ``r`` so a
    sender does not see the same kind every round when the sender count is
    a multiple of the number of kinds.  ``nonces`` is not mutated.
    """
    n = len(senders)
    next_nonce = dict(nonces)
    descriptors: list[TxDescriptor] = []
    for i in range(len(kinds)):
        round_no, slot = divmod(i, n)
        start = round_no * n
        width = min(n, len(kinds) - start)
        kind = kinds[start + (slot + round_no) % width]
        sender = senders[slot]
        nonce = next_nonce[sender.address]
        next_nonce[sender.address] = nonce + 1
        descriptors.append(
            TxDescriptor(
                sender=sender,
                intent=intents[kind](sender),
                nonce=nonce,
                fees=fees,
                chain_id=chain_id,
                index=i,
                transfer_gas_limit=transfer_gas_limit,
            )
        )
    return descriptors


def _intent_factories(
    params: PayloadParams,
    contracts: ContractAddresses,
    transfer_recipient: str,
    token_recipient: str,
) -> dict[TxKind, IntentFactory]:
    deadline = int(time.time()) + SWAP_DEADLINE_SECONDS
    factories: dict[TxKind, IntentFactory] = {
        TxKind.TRANSFER: lambda s: TransferIntent(transfer_recipient, params.transfer_value),
    }
    if contracts.token:
        factories[TxKind.TOKEN_TRANSFER] = lambda s: TokenTransferIntent(
            contracts.token, token_recipient, params.token_amount
        )
    if contracts.router and contracts.weth and contracts.token:
        # Swapped tokens go back to the sender.
        factories[TxKind.SWAP] = lambda s: SwapIntent(
            contracts.router,
            (contracts.weth, contracts.token),
            s.address,
            params.swap_value,
            deadline,
        )
    return factories


async def generate_payload(
    client: RpcClient,
    senders: Sequence[Sender],
    params: PayloadParams,
    contracts: ContractAddresses,
    chain_id: int,
    *,
    transfer_recipient: Optional[str] = None,
    token_recipient: Optional[str] = None,
    fallback_fees: Optional[tuple[FeeParams, int]] = None,
) -> Payload:
    """
    Build exactly ``params.tx_count`` descriptors for ``senders``.

    Args:
        client: RPC client used for the nonce and fee reads
        senders: Funded senders (non-empty)
        params: Counts, mix and values
        contracts: Token / WETH / router addresses
        chain_id: Chain ID baked into every descriptor
        transfer_recipient: Destination of plain transfers (random if None)
        token_recipient: Recipient of token transfers (random if None)
        fallback_fees: (fees, gas price) used when the fee read fails

    Returns:
        Payload with descriptors in index order and the expected details

    Raises:
        PayloadError: If no senders are given, no sender nonce could be
            read, a contract is missing, or fees are unavailable
    """
    if not senders:
        raise PayloadError("No senders to generate transactions for")

    counts = params.mix.split(params.tx_count)
    check_contracts(counts, contracts)

    log.info(
        "Generating %d transactions (%s) across %d senders",
        params.tx_count, params.mix, len(senders),
    )

    nonces = await fetch_nonces(client, senders)
    senders = [s for s in senders if s.address in nonces]
    if not senders:
        raise PayloadError("No sender nonces could be read")

    try:
        fees, gas_price = await fetch_fees(client, params.gas_multiplier)
    except (RpcError, httpx.HTTPError) as e:
        if fallback_fees is None:
            raise PayloadError(f"Fee estimate unavailable: {e}") from e
        log.warning("Fee read failed, reusing the startup estimate: %s", e)
        fees, gas_price = fallback_fees
    log.info(
        "Gas price %s gwei, max fee %s gwei (%sx buffer)",
        format_units(gas_price, 9), format_units(fees.max_fee_per_gas, 9), params.gas_multiplier,
    )

    transfer_recipient = transfer_recipient or generate_eoa()[1]
    token_recipient = token_recipient or generate_eoa()[1]

    descriptors = build_descriptors(
        senders,
        interleave(counts),
        nonces,
        _intent_factories(params, contracts, transfer_recipient, token_recipient),
        fees,
        chain_id,
        params.transfer_gas_limit,
    )

    expected = ExpectedTxDetails(
        sender_addresses=frozenset(s.address.lower() for s in senders),
        recipients={
            TxKind.TRANSFER: transfer_recipient.lower(),
            TxKind.TOKEN_TRANSFER: token_recipient.lower(),
        },
        values={
            TxKind.TRANSFER: params.transfer_value,
            TxKind.TOKEN_TRANSFER: 0,
            TxKind.SWAP: params.swap_value,
        },
        token_amount=params.token_amount,
        contracts=ContractAddresses(
            token=contracts.token.lower() if contracts.token else None,
            weth=contracts.weth.lower() if contracts.weth else None,
            router=contracts.router.lower() if contracts.router else None,
        ),
        counts=dict(counts),
    )

    log.info("Generated %d transactions", len(descriptors))
    return Payload(descriptors, expected, fees, gas_price, dict(counts))


# ---------------------------------------------------------------------------
# Funding needs
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FundingNeeds:
    native_per_sender: int
    tokens_per_sender: int
    transfers_per_sender: int
    token_transfers_per_sender: int
    swaps_per_sender: int


FUNDING_BUFFER = to_wei("0.01")
TOKEN_BUFFER = to_base_units("1000", TOKEN_DECIMALS)


def calculate_funding_needs(params: PayloadParams, sender_count: int) -> FundingNeeds:
    """
    How much native currency and how many tokens each sender needs.

    Counts per sender are rounded up; gas is priced at 1 gwei times
    ``floor(2 * multiplier)`` so a fee spike does not strand a sender.
    """
    if sender_count <= 0:
        raise ValueError("sender_count must be positive")
    per_sender = math.ceil(params.tx_count / sender_count)
    transfers = math.ceil(per_sender * params.mix.transfer / 100)
    token_transfers = math.ceil(per_sender * params.mix.token_transfer / 100)
    swaps = math.ceil(per_sender * params.mix.swap / 100)

    gas_price = GWEI * int(math.floor(params.gas_multiplier * 2))
    gas_units = (
        params.transfer_gas_limit * transfers
        + TOKEN_TRANSFER_GAS * token_transfers
        + SWAP_GAS * swaps
    )
    native = (
        params.transfer_value * transfers
        + params.swap_value * swaps
        + gas_price * gas_units
        + FUNDING_BUFFER
    )
    tokens = params.token_amount * token_transfers + TOKEN_BUFFER
    return FundingNeeds(native, tokens, transfers, token_transfers, swaps)
