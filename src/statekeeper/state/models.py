"""
Wire types exchanged with the durable state service.

The service speaks camelCase JSON; these dataclasses convert to and from
that shape so the rest of the package only deals with Python attributes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

MAX_SAFE_INTEGER = 2**53 - 1
"""Sentinel limit for an unlimited window (feature disabled or store unavailable)."""


@dataclass(frozen=True)
class QuotaWindow:
    """
    A time-boxed usage counter owned by the state service.

    Attributes:
        limit: Maximum usage allowed in the window
        used: Usage recorded so far
        duration: Window length in seconds
        reset_at: Unix timestamp (seconds) when the window expires
    """

    limit: int
    used: int
    duration: int
    reset_at: int

    @property
    def remaining(self) -> int:
        """Usage left before the limit is reached, never negative."""
        return max(0, self.limit - self.used)

    @property
    def is_unlimited(self) -> bool:
        return self.limit == MAX_SAFE_INTEGER

    def to_dict(self) -> dict[str, Any]:
        return {
            "limit": self.limit,
            "used": self.used,
            "duration": self.duration,
            "resetAt": self.reset_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> QuotaWindow:
        return cls(
            limit=int(data["limit"]),
            used=int(data["used"]),
            duration=int(data["duration"]),
            reset_at=int(data["resetAt"]),
        )


@dataclass(frozen=True)
class QuotaUsage:
    """Counter state returned by an increment."""

    used: int
    remaining: int

    def to_dict(self) -> dict[str, int]:
        return {"used": self.used, "remaining": self.remaining}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> QuotaUsage:
        return cls(used=int(data["used"]), remaining=int(data["remaining"]))


@dataclass(frozen=True)
class ResetResult:
    """Outcome of a key deletion: count deleted and the keys attempted."""

    deleted: int
    keys: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"deleted": self.deleted, "keys": list(self.keys)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ResetResult:
        return cls(
            deleted=int(data.get("deleted", 0)),
            keys=[str(k) for k in data.get("keys", [])],
        )


@dataclass(frozen=True)
class RateLimitCheckResult:
    """
    Result of a rate limit check.

    When ``success`` is False the call consumed nothing.
    """

    success: bool
    limit: int | None = None
    remaining: int | None = None
    reset: int | None = None
    nonce: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"success": self.success}
        for name in ("limit", "remaining", "reset", "nonce"):
            value = getattr(self, name)
            if value is not None:
                data[name] = value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RateLimitCheckResult:
        return cls(
            success=bool(data.get("success", False)),
            limit=data.get("limit"),
            remaining=data.get("remaining"),
            reset=data.get("reset"),
            nonce=data.get("nonce"),
        )
