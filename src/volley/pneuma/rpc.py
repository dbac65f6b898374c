"""
Async JSON-RPC client for the endpoint under test.

Lightweight alternative to web3.py: uses httpx for HTTP and returns the
raw JSON-RPC ``result`` values, converting hex quantities where the caller
asks for a number.  One client instance is shared by every concurrent
worker of a run; connection pooling is bounded by ``max_connections``.
"""

from __future__ import annotations

import itertools
import os
from typing import Any, Optional

import httpx
from eth_hash.auto import keccak

from ..utils import hex_to_int

# Default RPC endpoint (local Nitro dev node)
DEFAULT_RPC_URL = "http://127.0.0.1:8547"
DEFAULT_TIMEOUT = 30.0


def _keccak256(data: bytes) -> bytes:
    """Compute Keccak-256 (NOT the same as hashlib.sha3_256 / NIST SHA-3)."""
    return keccak(data)


def get_rpc_url() -> str:
    """Get the RPC URL from environment or default."""
    return os.environ.get("RPC_URL", DEFAULT_RPC_URL)


class RpcError(RuntimeError):
    """JSON-RPC level error returned by the endpoint (HTTP succeeded)."""

    def __init__(self, message: str, code: Optional[int] = None, data: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.data = data

    def __str__(self) -> str:
        if self.code is None:
            return self.message
        return f"{self.message} (code {self.code})"


class RpcClient:
    """Async JSON-RPC client bound to one endpoint URL.

    Args:
        url: RPC endpoint URL
        timeout: Per-request timeout in seconds
        max_connections: Upper bound on pooled HTTP connections
        transport: Optional httpx transport (tests inject a MockTransport)
    """

    def __init__(
        self,
        url: Optional[str] = None,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        max_connections: int = 200,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.url = url or get_rpc_url()
        self._ids = itertools.count(1)
        limits = httpx.Limits(
            max_connections=max_connections,
            max_keepalive_connections=max_connections,
        )
        self._client = httpx.AsyncClient(timeout=timeout, limits=limits, transport=transport)

    async def __aenter__(self) -> "RpcClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def call(self, method: str, params: Optional[list] = None) -> Any:
        """
        Make a JSON-RPC call.

        Args:
            method: RPC method name (e.g., "eth_sendRawTransaction")
            params: RPC parameters

        Returns:
            Result field from the RPC response

        Raises:
            RpcError: If the endpoint answers with a JSON-RPC error or a
                body that is not a JSON-RPC object
            httpx.HTTPError: On transport failure or non-2xx status
        """
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params or [],
            "id": next(self._ids),
        }
        response = await self._client.post(self.url, json=payload)
        response.raise_for_status()
        data = response.json()
        if not isinstance(data, dict):
            raise RpcError(f"Malformed JSON-RPC response: {data!r}")

        error = data.get("error")
        if error:
            if isinstance(error, dict):
                raise RpcError(
                    str(error.get("message") or "Unknown error"),
                    code=error.get("code"),
                    data=error.get("data"),
                )
            raise RpcError(str(error))

        return data.get("result")

    # ------------------------------------------------------------------
    # Chain state
    # ------------------------------------------------------------------

    async def chain_id(self) -> int:
        return hex_to_int(await self.call("eth_chainId"))

    async def block_number(self) -> int:
        return hex_to_int(await self.call("eth_blockNumber"))

    async def get_balance(self, address: str, block: str = "latest") -> int:
        """
        Get native balance for an address.

        Returns:
            Balance in wei
        """
        return hex_to_int(await self.call("eth_getBalance", [address, block]))

    async def get_nonce(self, address: str, block: str = "pending") -> int:
        """
        Get the next usable nonce for an address.

        ``pending`` includes transactions the node has accepted but not yet
        mined, which is what sequential local allocation must start from.
        """
        return hex_to_int(await self.call("eth_getTransactionCount", [address, block]))

    async def gas_price(self) -> int:
        return hex_to_int(await self.call("eth_gasPrice"))

    async def max_priority_fee(self) -> int:
        return hex_to_int(await self.call("eth_maxPriorityFeePerGas"))

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    async def send_raw_transaction(self, raw_tx: str) -> str:
        """
        Submit a signed raw transaction without waiting for it to be mined.

        Args:
            raw_tx: 0x-prefixed hex encoded signed transaction

        Returns:
            Transaction hash (0x-prefixed hex), empty string if none returned
        """
        result = await self.call("eth_sendRawTransaction", [raw_tx])
        return str(result or "")

    async def get_receipt(self, tx_hash: str) -> Optional[dict]:
        return await self.call("eth_getTransactionReceipt", [tx_hash])

    async def get_transaction(self, tx_hash: str) -> Optional[dict]:
        return await self.call("eth_getTransactionByHash", [tx_hash])

    async def get_block(self, number: int, full_transactions: bool = False) -> Optional[dict]:
        """
        Fetch a block by number.

        With ``full_transactions=False`` the ``transactions`` field holds
        hashes only, which keeps responses small for busy blocks.
        """
        return await self.call("eth_getBlockByNumber", [hex(number), full_transactions])
