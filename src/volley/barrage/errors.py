"""
Run-level exceptions and the broadcast error taxonomy.

Only a few conditions stop a run: the endpoint is unreachable, no sender
ended up funded, or nothing could be signed.  Everything else is counted
and reported.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Optional


class VolleyError(RuntimeError):
    exit_code: int = 1


class ConfigError(VolleyError):
    exit_code = 2


class ConnectivityError(VolleyError):
    exit_code = 3


class NoFundedSendersError(VolleyError):
    exit_code = 4


class NothingSignedError(VolleyError):
    exit_code = 5


class PayloadError(VolleyError):
    exit_code = 6


class ErrorCategory(StrEnum):
    GAS_PRICE_TOO_LOW = "gas_price_too_low"
    NONCE_TOO_LOW = "nonce_too_low"
    NONCE_TOO_HIGH = "nonce_too_high"
    ALREADY_KNOWN = "already_known"
    REPLACEMENT_UNDERPRICED = "replacement_underpriced"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    GAS_LIMIT_TOO_LOW = "gas_limit_too_low"
    EXECUTION_REVERTED = "execution_reverted"
    TIMEOUT = "timeout"
    CONNECTION_ERROR = "connection_error"
    OTHER = "other"
    UNKNOWN = "unknown"


# Evaluated top to bottom against the lowercased message; first match wins.
CLASSIFICATION_RULES: tuple[tuple[tuple[str, ...], ErrorCategory], ...] = (
    (("max fee per gas less than block base fee", "gas price too low"), ErrorCategory.GAS_PRICE_TOO_LOW),
    (("nonce too low",), ErrorCategory.NONCE_TOO_LOW),
    (("nonce too high",), ErrorCategory.NONCE_TOO_HIGH),
    (("already known",), ErrorCategory.ALREADY_KNOWN),
    (("replacement transaction underpriced",), ErrorCategory.REPLACEMENT_UNDERPRICED),
    (("insufficient funds",), ErrorCategory.INSUFFICIENT_FUNDS),
    (("intrinsic gas too low",), ErrorCategory.GAS_LIMIT_TOO_LOW),
    (("execution reverted",), ErrorCategory.EXECUTION_REVERTED),
    (("timeout", "timed out", "etimedout"), ErrorCategory.TIMEOUT),
    (("connection", "connecterror", "econnrefused"), ErrorCategory.CONNECTION_ERROR),
)

ERROR_LABELS: dict[ErrorCategory, str] = {
    ErrorCategory.GAS_PRICE_TOO_LOW: "Gas price too low",
    ErrorCategory.NONCE_TOO_LOW: "Nonce too low",
    ErrorCategory.NONCE_TOO_HIGH: "Nonce too high",
    ErrorCategory.ALREADY_KNOWN: "Already known",
    ErrorCategory.REPLACEMENT_UNDERPRICED: "Replacement underpriced",
    ErrorCategory.INSUFFICIENT_FUNDS: "Insufficient funds",
    ErrorCategory.GAS_LIMIT_TOO_LOW: "Gas limit too low",
    ErrorCategory.EXECUTION_REVERTED: "Execution reverted",
    ErrorCategory.TIMEOUT: "Timeout",
    ErrorCategory.CONNECTION_ERROR: "Connection error",
    ErrorCategory.OTHER: "Other",
    ErrorCategory.UNKNOWN: "Unknown",
}


def classify_error(message: Optional[str]) -> ErrorCategory:
    """Map an error message onto the broadcast error taxonomy."""
    if not message:
        return ErrorCategory.UNKNOWN
    text = message.lower()
    for needles, category in CLASSIFICATION_RULES:
        if any(needle in text for needle in needles):
            return category
    return ErrorCategory.OTHER


def describe_exception(exc: BaseException) -> str:
    """Message used for classifying transport failures.

    httpx exceptions often carry an empty message, so the class name is
    kept in front (``ReadTimeout: ...``, ``ConnectError: ...``).
    """
    detail = str(exc)
    name = type(exc).__name__
    return f"{name}: {detail}" if detail else name
