"""
Transaction Builder - Build and sign EIP-1559 transactions offline.

Uses eth-account for signing.  Nothing here touches the network: nonces and
fee parameters are supplied by the caller, which allocates them up front so
many transactions can be signed before any is broadcast.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from eth_account.signers.local import LocalAccount

from .rpc import _keccak256


def to_checksum_address(address: str) -> str:
    """Convert an address to EIP-55 checksummed format.

    eth-account rejects mixed-case addresses with a bad checksum, so every
    address that reaches a transaction dict goes through here.
    """
    addr = address.lower().replace("0x", "")
    if len(addr) != 40:
        raise ValueError(f"Invalid address: {address!r}")
    addr_hash = _keccak256(addr.encode("utf-8")).hex()
    result = "0x"
    for i, c in enumerate(addr):
        if c in "abcdef":
            result += c.upper() if int(addr_hash[i], 16) >= 8 else c
        else:
            result += c
    return result


def same_address(a: Optional[str], b: Optional[str]) -> bool:
    if not a or not b:
        return False
    return a.lower() == b.lower()


@dataclass(frozen=True)
class FeeParams:
    """EIP-1559 fee caps shared by every transaction of a batch (wei)."""

    max_fee_per_gas: int
    max_priority_fee_per_gas: int


def build_tx(
    *,
    to: str,
    value: int,
    nonce: int,
    gas_limit: int,
    fees: FeeParams,
    chain_id: int,
    data: Optional[str] = None,
) -> dict[str, Any]:
    """
    Build an unsigned type-2 transaction dict for eth-account.

    Args:
        to: Destination address
        value: Native value in wei
        nonce: Sender nonce
        gas_limit: Gas limit
        fees: Fee caps
        chain_id: Chain ID
        data: Optional 0x-prefixed calldata

    Returns:
        Unsigned transaction dict
    """
    tx: dict[str, Any] = {
        "type": 2,
        "chainId": chain_id,
        "nonce": nonce,
        "to": to_checksum_address(to),
        "value": value,
        "gas": gas_limit,
        "maxFeePerGas": fees.max_fee_per_gas,
        "maxPriorityFeePerGas": fees.max_priority_fee_per_gas,
    }
    if data:
        tx["data"] = data
    return tx


def sign_tx(account: LocalAccount, tx: dict[str, Any]) -> tuple[str, str]:
    """
    Sign a transaction dict.

    Returns:
        Tuple of (raw_tx, tx_hash), both 0x-prefixed hex
    """
    signed = account.sign_transaction(tx)
    raw_tx = "0x" + bytes(signed.raw_transaction).hex()
    tx_hash = "0x" + bytes(signed.hash).hex()
    return raw_tx, tx_hash
