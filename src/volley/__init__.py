__version__ = "1.0.0"

__all__ = [
    # Configuration
    "RunConfig",
    "TxMix",
    "ContractAddresses",
    # Pipeline
    "run_benchmark",
    "RunReport",
    "generate_payload",
    "calculate_funding_needs",
    "fund_senders",
    "sign_descriptors",
    "broadcast",
    "wait_for_receipts",
    "analyze",
    # Errors
    "VolleyError",
    "ConfigError",
    "ConnectivityError",
    "NoFundedSendersError",
    "NothingSignedError",
    "PayloadError",
    "ErrorCategory",
    "classify_error",
    # RPC
    "RpcClient",
    "RpcError",
]

from .config import RunConfig
from .barrage.mix import TxMix
from .barrage.models import ContractAddresses
from .barrage.errors import (
    ConfigError,
    ConnectivityError,
    ErrorCategory,
    NoFundedSendersError,
    NothingSignedError,
    PayloadError,
    VolleyError,
    classify_error,
)
from .barrage.payload import calculate_funding_needs, generate_payload
from .barrage.funding import fund_senders
from .barrage.signing import sign_descriptors
from .barrage.broadcast import broadcast
from .barrage.confirm import wait_for_receipts
from .barrage.verify import analyze
from .barrage.runner import RunReport, run_benchmark
from .pneuma.rpc import RpcClient, RpcError
