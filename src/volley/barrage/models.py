"""
Data model shared by the pipeline stages.

Descriptors are built once and signed once; envelopes, outcomes and
receipts are immutable after creation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Optional, Union

from eth_account.signers.local import LocalAccount

from ..pneuma.abi import encode_erc20_transfer, encode_swap_exact_eth_for_tokens
from ..pneuma.tx import FeeParams, build_tx
from ..utils import hex_to_int


class TxKind(StrEnum):
    TRANSFER = "transfer"
    TOKEN_TRANSFER = "token_transfer"
    SWAP = "swap"


class SenderState(StrEnum):
    UNFUNDED = "unfunded"
    FUNDED = "funded"
    EXHAUSTED = "exhausted"


class ReceiptStatus(StrEnum):
    SUCCESS = "success"
    REVERTED = "reverted"


# Gas limits per kind; plain transfers use the configured limit.
TOKEN_TRANSFER_GAS = 100_000
SWAP_GAS = 200_000
APPROVE_GAS = 100_000


@dataclass
class Sender:
    """Ephemeral sender account owning an independent nonce sequence."""

    account: LocalAccount
    state: SenderState = SenderState.UNFUNDED

    @property
    def address(self) -> str:
        return self.account.address


# ---------------------------------------------------------------------------
# Transaction intents (one variant per logical kind)
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TransferIntent:
    recipient: str
    value: int


@dataclass(frozen=True)
class TokenTransferIntent:
    token: str
    recipient: str
    amount: int


@dataclass(frozen=True)
class SwapIntent:
    router: str
    path: tuple[str, ...]
    recipient: str
    value: int
    deadline: int


TxIntent = Union[TransferIntent, TokenTransferIntent, SwapIntent]


@dataclass(frozen=True)
class ResolvedCall:
    to: str
    value: int
    data: Optional[str]
    gas_limit: int


def resolve_intent(intent: TxIntent, transfer_gas_limit: int = 21_000) -> ResolvedCall:
    """Turn an intent into destination, value, calldata and gas limit."""
    if isinstance(intent, TransferIntent):
        return ResolvedCall(intent.recipient, intent.value, None, transfer_gas_limit)
    if isinstance(intent, TokenTransferIntent):
        data = encode_erc20_transfer(intent.recipient, intent.amount)
        return ResolvedCall(intent.token, 0, data, TOKEN_TRANSFER_GAS)
    if isinstance(intent, SwapIntent):
        data = encode_swap_exact_eth_for_tokens(
            list(intent.path), intent.recipient, intent.deadline
        )
        return ResolvedCall(intent.router, intent.value, data, SWAP_GAS)
    raise TypeError(f"Unsupported intent: {type(intent).__name__}")


def intent_kind(intent: TxIntent) -> TxKind:
    if isinstance(intent, TransferIntent):
        return TxKind.TRANSFER
    if isinstance(intent, TokenTransferIntent):
        return TxKind.TOKEN_TRANSFER
    return TxKind.SWAP


@dataclass(frozen=True)
class TxDescriptor:
    """Unsigned transaction, nonce and fees already fixed."""

    sender: Sender
    intent: TxIntent
    nonce: int
    fees: FeeParams
    chain_id: int
    index: int
    transfer_gas_limit: int = 21_000

    @property
    def kind(self) -> TxKind:
        return intent_kind(self.intent)

    @property
    def gas_limit(self) -> int:
        return resolve_intent(self.intent, self.transfer_gas_limit).gas_limit

    def to_tx_dict(self) -> dict[str, Any]:
        call = resolve_intent(self.intent, self.transfer_gas_limit)
        return build_tx(
            to=call.to,
            value=call.value,
            nonce=self.nonce,
            gas_limit=call.gas_limit,
            fees=self.fees,
            chain_id=self.chain_id,
            data=call.data,
        )


@dataclass(frozen=True)
class SignedEnvelope:
    raw_tx: str
    tx_hash: str
    sender: str
    index: int
    kind: TxKind


@dataclass(frozen=True)
class AcceptedTx:
    """A transaction the endpoint accepted into its pool."""

    tx_hash: str
    sender: str
    index: int
    kind: TxKind


@dataclass(frozen=True)
class BroadcastOutcome:
    envelope: SignedEnvelope
    tx_hash: Optional[str] = None
    category: Optional[str] = None
    message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return bool(self.tx_hash)


@dataclass(frozen=True)
class Receipt:
    tx_hash: str
    block_number: int
    status: ReceiptStatus
    gas_used: int

    @property
    def succeeded(self) -> bool:
        return self.status is ReceiptStatus.SUCCESS

    @classmethod
    def from_rpc(cls, payload: dict, tx_hash: Optional[str] = None) -> "Receipt":
        """Build from an eth_getTransactionReceipt result, keyed by ``tx_hash`` when given."""
        status = ReceiptStatus.SUCCESS if hex_to_int(payload.get("status")) == 1 else ReceiptStatus.REVERTED
        return cls(
            tx_hash=str(tx_hash or payload.get("transactionHash") or "").lower(),
            block_number=hex_to_int(payload.get("blockNumber")),
            status=status,
            gas_used=hex_to_int(payload.get("gasUsed")),
        )


@dataclass(frozen=True)
class ContractAddresses:
    token: Optional[str] = None
    weth: Optional[str] = None
    router: Optional[str] = None

    def to_dict(self) -> dict[str, Optional[str]]:
        return {"token": self.token, "weth": self.weth, "router": self.router}


@dataclass(frozen=True)
class ExpectedTxDetails:
    """What a correct on-chain transaction of each kind looks like."""

    sender_addresses: frozenset[str]
    recipients: dict[TxKind, str] = field(default_factory=dict)
    values: dict[TxKind, int] = field(default_factory=dict)
    token_amount: int = 0
    contracts: ContractAddresses = field(default_factory=ContractAddresses)
    counts: dict[TxKind, int] = field(default_factory=dict)

    def is_sender(self, address: Optional[str]) -> bool:
        return bool(address) and address.lower() in self.sender_addresses

    def destination(self, kind: TxKind) -> Optional[str]:
        """Expected ``to`` field of the on-chain transaction."""
        if kind == TxKind.TRANSFER:
            return self.recipients.get(TxKind.TRANSFER)
        if kind == TxKind.TOKEN_TRANSFER:
            return self.contracts.token
        return self.contracts.router
