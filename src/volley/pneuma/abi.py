"""
ABI fragments and call encoding for the contracts a run may target.

Only the handful of functions the load generator calls are described here:
ERC-20 ``transfer`` / ``approve`` and the Uniswap-V2 style router
swap.  Deployment is handled elsewhere; this module needs nothing
beyond an address and these fragments.
"""

from __future__ import annotations

from typing import Any

from eth_abi import decode, encode

from .rpc import _keccak256

# ---------------------------------------------------------------------------
# Minimal ERC-20 ABI
# ---------------------------------------------------------------------------
ERC20_ABI: list[dict[str, Any]] = [
    {
        "type": "function",
        "name": "transfer",
        "inputs": [
            {"name": "to", "type": "address"},
            {"name": "amount", "type": "uint256"},
        ],
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "nonpayable",
    },
    {
        "type": "function",
        "name": "approve",
        "inputs": [
            {"name": "spender", "type": "address"},
            {"name": "amount", "type": "uint256"},
        ],
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "nonpayable",
    },
]

# ---------------------------------------------------------------------------
# Uniswap-V2 router (swap only)
# ---------------------------------------------------------------------------
ROUTER_ABI: list[dict[str, Any]] = [
    {
        "type": "function",
        "name": "swapExactETHForTokens",
        "inputs": [
            {"name": "amountOutMin", "type": "uint256"},
            {"name": "path", "type": "address[]"},
            {"name": "to", "type": "address"},
            {"name": "deadline", "type": "uint256"},
        ],
        "outputs": [{"name": "amounts", "type": "uint256[]"}],
        "stateMutability": "payable",
    },
]

MAX_UINT256 = 2**256 - 1


def _find_function(abi: list, function_name: str) -> dict:
    for entry in abi:
        if entry.get("type") == "function" and entry.get("name") == function_name:
            return entry
    raise ValueError(f"Function {function_name} not found in ABI")


def function_selector(abi: list, function_name: str) -> bytes:
    """First 4 bytes of keccak256 over the canonical function signature."""
    func = _find_function(abi, function_name)
    input_types = [inp["type"] for inp in func.get("inputs", [])]
    sig = f"{function_name}({','.join(input_types)})"
    # NOTE: Keccak-256 != SHA3-256 (NIST). Never use hashlib.sha3_256 here.
    return _keccak256(sig.encode("utf-8"))[:4]


def encode_call(abi: list, function_name: str, args: list) -> str:
    """
    ABI-encode a function call.

    Args:
        abi: Contract ABI
        function_name: Function name to call
        args: Function arguments

    Returns:
        0x-prefixed hex encoded calldata
    """
    func = _find_function(abi, function_name)
    input_types = [inp["type"] for inp in func.get("inputs", [])]
    selector = function_selector(abi, function_name)
    encoded_args = encode(input_types, args) if args else b""
    return "0x" + selector.hex() + encoded_args.hex()


def decode_call(abi: list, function_name: str, data: str) -> tuple:
    """
    Decode calldata produced by :func:`encode_call`.

    Raises:
        ValueError: If the selector does not belong to ``function_name``
    """
    raw = bytes.fromhex(data[2:] if data.startswith("0x") else data)
    selector = function_selector(abi, function_name)
    if raw[:4] != selector:
        raise ValueError(f"Calldata is not a {function_name} call")
    func = _find_function(abi, function_name)
    input_types = [inp["type"] for inp in func.get("inputs", [])]
    return tuple(decode(input_types, raw[4:]))


def encode_erc20_transfer(recipient: str, amount: int) -> str:
    return encode_call(ERC20_ABI, "transfer", [recipient, amount])


def encode_erc20_approve(spender: str, amount: int = MAX_UINT256) -> str:
    return encode_call(ERC20_ABI, "approve", [spender, amount])


def encode_swap_exact_eth_for_tokens(
    path: list[str], recipient: str, deadline: int, amount_out_min: int = 0
) -> str:
    """Swap calldata; ``amount_out_min`` of 0 accepts any output for load tests."""
    return encode_call(
        ROUTER_ABI,
        "swapExactETHForTokens",
        [amount_out_min, path, recipient, deadline],
    )
