from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Iterator, Sequence, TypeVar

T = TypeVar("T")

ETHER_DECIMALS = 18
GWEI = 10**9


def to_base_units(amount: str | int | Decimal, decimals: int = ETHER_DECIMALS) -> int:
    """Convert a human-readable amount ("0.01") into integer base units."""
    try:
        value = Decimal(str(amount))
    except InvalidOperation as exc:
        raise ValueError(f"Invalid amount: {amount!r}") from exc
    if value < 0:
        raise ValueError(f"Amount must not be negative: {amount!r}")
    return int(value * (Decimal(10) ** decimals))


def to_wei(amount: str | int | Decimal) -> int:
    return to_base_units(amount, ETHER_DECIMALS)


def format_units(value: int, decimals: int = ETHER_DECIMALS) -> str:
    """Render integer base units as a decimal string without trailing zeros."""
    text = format(Decimal(value) / (Decimal(10) ** decimals), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def format_ether(value: int) -> str:
    return format_units(value, ETHER_DECIMALS)


def format_duration(seconds: float) -> str:
    if seconds < 1:
        return f"{seconds * 1000:.0f}ms"
    return f"{seconds:.2f}s"


def chunked(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    """Yield consecutive slices of at most ``size`` items."""
    if size <= 0:
        raise ValueError("chunk size must be positive")
    for start in range(0, len(items), size):
        yield items[start:start + size]


def hex_to_int(value: str | int | None) -> int:
    if value is None:
        return 0
    if isinstance(value, int):
        return value
    return int(value, 16)
