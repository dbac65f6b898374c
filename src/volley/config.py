"""
Run configuration.

Values come from built-in defaults, a ``.env`` file, the process
environment and finally CLI options, in that order of precedence.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv

from .barrage.errors import ConfigError
from .barrage.mix import TxMix
from .barrage.models import ContractAddresses
from .pneuma.rpc import DEFAULT_RPC_URL
from .sigil.eth import DEV_FUNDER_PRIVATE_KEY, load_funder_key

# ============ Defaults ============

DEFAULT_TX_COUNT = 1000
DEFAULT_SENDER_COUNT = 50
DEFAULT_CONCURRENCY = 200
DEFAULT_TX_VALUE = "0.00000001"
DEFAULT_TOKEN_TX_VALUE = "100"
DEFAULT_SWAP_VALUE = "0.0001"
DEFAULT_GAS_MULTIPLIER = 2.0
DEFAULT_GAS_LIMIT = 21_000
DEFAULT_CONFIRM_TIMEOUT = 60.0
DEFAULT_SIGN_BATCH_SIZE = 100
DEFAULT_SAMPLE_SIZE = 10


@dataclass(frozen=True)
class RunConfig:
    rpc_url: str = DEFAULT_RPC_URL
    funder_private_key: str = DEV_FUNDER_PRIVATE_KEY
    tx_count: int = DEFAULT_TX_COUNT
    sender_count: int = DEFAULT_SENDER_COUNT
    concurrency: int = DEFAULT_CONCURRENCY
    tx_value: str = DEFAULT_TX_VALUE
    funding_amount: Optional[str] = None  # ether per sender; computed when None
    token_tx_value: str = DEFAULT_TOKEN_TX_VALUE
    swap_value: str = DEFAULT_SWAP_VALUE
    gas_multiplier: float = DEFAULT_GAS_MULTIPLIER
    gas_limit: int = DEFAULT_GAS_LIMIT
    tx_mix: TxMix = field(default_factory=TxMix)
    verify_all: bool = False
    contracts: ContractAddresses = field(default_factory=ContractAddresses)
    confirm_timeout: float = DEFAULT_CONFIRM_TIMEOUT
    funding_timeout: Optional[float] = None
    poll_interval: float = 0.5
    sign_batch_size: int = DEFAULT_SIGN_BATCH_SIZE
    sample_size: int = DEFAULT_SAMPLE_SIZE

    @classmethod
    def from_env(cls, env_path: Optional[Path] = None, **overrides: Any) -> "RunConfig":
        """
        Build a config from the environment, then apply ``overrides``.

        ``None`` overrides are ignored so unset CLI options fall through to
        the environment and defaults.
        """
        env_path = env_path or Path.cwd() / ".env"
        if env_path.exists():
            load_dotenv(env_path, override=False)

        base = cls(
            rpc_url=os.environ.get("RPC_URL", DEFAULT_RPC_URL),
            funder_private_key=load_funder_key(env_path, default=DEV_FUNDER_PRIVATE_KEY),
            contracts=ContractAddresses(
                token=os.environ.get("TOKEN_ADDRESS") or None,
                weth=os.environ.get("WETH_ADDRESS") or None,
                router=os.environ.get("ROUTER_ADDRESS") or None,
            ),
        )
        return base.with_overrides(**overrides)

    def with_overrides(self, **overrides: Any) -> "RunConfig":
        contract_fields = {
            key: overrides.pop(key) for key in ("token", "weth", "router") if key in overrides
        }
        values = {k: v for k, v in overrides.items() if v is not None}
        contracts = {k: v for k, v in contract_fields.items() if v}
        if contracts:
            values["contracts"] = replace(self.contracts, **contracts)
        return replace(self, **values)

    @property
    def resolved_funding_timeout(self) -> float:
        if self.funding_timeout is not None:
            return self.funding_timeout
        return max(30.0, self.sender_count * 0.01)

    def validate(self) -> "RunConfig":
        """Reject configurations the pipeline cannot run.

        Raises:
            ConfigError: On the first problem found
        """
        if self.tx_count <= 0:
            raise ConfigError("Transaction count must be positive")
        if self.sender_count <= 0:
            raise ConfigError("Sender count must be positive")
        if self.concurrency <= 0:
            raise ConfigError("Concurrency must be positive")
        if self.gas_multiplier <= 1.0:
            raise ConfigError("Gas multiplier must be greater than 1.0")
        if self.sign_batch_size <= 0:
            raise ConfigError("Signing batch size must be positive")
        if self.tx_mix.needs_token and not self.contracts.token:
            raise ConfigError("Token address required for token transfers and swaps (--token)")
        if self.tx_mix.needs_router and not (self.contracts.router and self.contracts.weth):
            raise ConfigError("Router and WETH addresses required for swaps (--router, --weth)")
        return self

    def summary(self) -> dict[str, Any]:
        return {
            "rpc_url": self.rpc_url,
            "tx_count": self.tx_count,
            "sender_count": self.sender_count,
            "concurrency": self.concurrency,
            "gas_multiplier": self.gas_multiplier,
            "tx_mix": self.tx_mix.as_list(),
            "verify_all": self.verify_all,
            "contracts": self.contracts.to_dict(),
        }
