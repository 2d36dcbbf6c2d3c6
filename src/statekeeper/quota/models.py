"""
Quota results and arithmetic helpers shared by the quota managers.

ETH amounts are never stored as floats: they travel to the state service
as integer micro-ETH (1 ETH = 1,000,000 micro-ETH), rounded up so a spend
is never under-charged.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass
from decimal import ROUND_CEILING, Decimal, InvalidOperation
from typing import Any, Iterator, Literal, Sequence, TypeVar

from statekeeper.state.models import MAX_SAFE_INTEGER, QuotaWindow, ResetResult

T = TypeVar("T")

MICRO_ETH_SCALE = 1_000_000

CryptoDenialReason = Literal["global_exhausted", "user_exhausted"]


def now_seconds() -> int:
    return int(time.time())


def unlimited_window(duration: int) -> QuotaWindow:
    """Ephemeral window returned when enforcement is off or the store is unreachable."""
    return QuotaWindow(
        limit=MAX_SAFE_INTEGER,
        used=0,
        duration=duration,
        reset_at=now_seconds() + duration,
    )


def to_micro_eth(amount_eth: float | int | str | Decimal) -> int:
    """
    Convert ETH to integer micro-ETH, rounding up.

    Negative amounts clamp to 0.

    Raises:
        ValueError: If the amount is not a finite number
    """
    if isinstance(amount_eth, bool):
        raise ValueError(f"Invalid ETH amount: {amount_eth!r}")
    try:
        value = Decimal(str(amount_eth))
    except InvalidOperation as e:
        raise ValueError(f"Invalid ETH amount: {amount_eth!r}") from e
    if not value.is_finite():
        raise ValueError(f"Invalid ETH amount: {amount_eth!r}")

    micro = (value * MICRO_ETH_SCALE).to_integral_value(rounding=ROUND_CEILING)
    return max(0, int(micro))


def from_micro_eth(amount_micro: int) -> float:
    """Convert micro-ETH back to ETH for display and decisions."""
    return amount_micro / MICRO_ETH_SCALE


def is_positive_amount(amount: Any) -> bool:
    """True for finite numbers > 0; bools and non-numbers are rejected."""
    if isinstance(amount, bool) or not isinstance(amount, (int, float, Decimal)):
        return False
    try:
        return math.isfinite(amount) and amount > 0
    except (TypeError, ValueError):
        return False


def chunked(items: Sequence[T], size: int) -> Iterator[list[T]]:
    """Yield consecutive slices of at most ``size`` items."""
    for start in range(0, len(items), size):
        yield list(items[start : start + size])


@dataclass(frozen=True)
class QuotaCheck:
    """Result of an ensure-and-check on a token window."""

    allowed: bool
    remaining: int
    window: QuotaWindow

    def to_dict(self) -> dict[str, Any]:
        return {
            "allowed": self.allowed,
            "remaining": self.remaining,
            "window": self.window.to_dict(),
        }


@dataclass(frozen=True)
class CryptoPrecheck:
    """Read-only decision for a pending ETH spend."""

    allowed: bool
    remaining_global_eth: float
    remaining_user_eth: float
    reset_at: int
    network: str
    reason: CryptoDenialReason | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "allowed": self.allowed,
            "remainingGlobalEth": self.remaining_global_eth,
            "remainingUserEth": self.remaining_user_eth,
            "resetAt": self.reset_at,
            "network": self.network,
        }
        if self.reason is not None:
            data["reason"] = self.reason
        return data


@dataclass(frozen=True)
class NetworkResetResult(ResetResult):
    """Reset outcome scoped to one network."""

    network: str = "unknown"

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "network": self.network}
