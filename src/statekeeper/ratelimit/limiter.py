"""
Request-count rate limiting backed by the durable state service.

Each call site uses a limiter type with a fixed limit and window. A shared
global limiter is applied after the specific one. Every limiter fails open
when the state service errors.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from fastapi import Request

from statekeeper.config import Settings, get_settings
from statekeeper.ratelimit.identity import get_identifier
from statekeeper.state.client import Err, StateClient
from statekeeper.state.factory import get_state_client
from statekeeper.state.models import RateLimitCheckResult

logger = logging.getLogger(__name__)


class RateLimiterType(str, Enum):
    """Rate-limited call sites."""

    NONCE = "nonce"
    GATE_ACCESS = "gateAccess"
    FORM_SUBMISSION_GATE = "formSubmissionGate"
    TOKEN_STATUS = "tokenStatus"
    GLOBAL = "global"


@dataclass(frozen=True)
class RateLimiterConfig:
    """Static limit for one limiter type."""

    limit: int
    window_seconds: int
    key_prefix: str

    @property
    def window(self) -> str:
        return f"{self.window_seconds}s"

    def to_dict(self) -> dict[str, Any]:
        return {"limit": self.limit, "window": self.window, "prefix": self.key_prefix}


RATE_LIMITER_CONFIGS: dict[RateLimiterType, RateLimiterConfig] = {
    RateLimiterType.NONCE: RateLimiterConfig(30, 60, "rl:nonce:"),
    RateLimiterType.GATE_ACCESS: RateLimiterConfig(60, 60, "rl:gate-access:"),
    RateLimiterType.FORM_SUBMISSION_GATE: RateLimiterConfig(10, 60, "rl:form-submission:"),
    RateLimiterType.TOKEN_STATUS: RateLimiterConfig(60, 60, "rl:token-status:"),
    RateLimiterType.GLOBAL: RateLimiterConfig(200, 3600, "rl:global:"),
}

# Polling endpoints skip the global limiter.
GLOBAL_EXEMPT: frozenset[RateLimiterType] = frozenset({RateLimiterType.TOKEN_STATUS})


def get_rate_limiter_config(limiter_type: RateLimiterType | str) -> RateLimiterConfig:
    """Get rate limiter configuration for a specific type."""
    return RATE_LIMITER_CONFIGS[RateLimiterType(limiter_type)]


class RateLimiter:
    """Applies the limiter table to incoming requests."""

    def __init__(
        self,
        client: StateClient | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._client = client
        self._settings = settings or get_settings()

    def _get_client(self) -> StateClient:
        if self._client is None:
            self._client = get_state_client(self._settings)
        return self._client

    def is_rate_limit_enabled(self) -> bool:
        return self._settings.state_service_active

    async def _apply_limiter(
        self, limiter_type: RateLimiterType, identifier: str
    ) -> RateLimitCheckResult:
        config = RATE_LIMITER_CONFIGS.get(limiter_type)
        if config is None:
            return RateLimitCheckResult(success=True)

        result = await self._get_client().check_rate_limit(
            limiter=limiter_type.value,
            identifier=identifier,
            limit=config.limit,
            window_seconds=config.window_seconds,
        )
        if isinstance(result, Err):
            logger.error(
                f"Rate limit service error for {limiter_type.value}: {result.error.message}"
            )
            return RateLimitCheckResult(success=True)
        return result.value

    async def _lookup_nonce(self, identifier: str) -> str | None:
        result = await self._get_client().get_nonce(identifier)
        if isinstance(result, Err):
            logger.warning(f"Nonce lookup failed for {identifier}: {result.error.message}")
            return None
        return result.value if isinstance(result.value, str) else None

    async def check_rate_limit_with_nonce(
        self,
        request: Request,
        limiter_type: RateLimiterType | str,
        include_global: bool = True,
    ) -> RateLimitCheckResult:
        """
        Check the specific limiter, then the global one, stopping at the first failure.

        Args:
            request: Incoming request (identity is taken from its headers)
            limiter_type: Call-site limiter
            include_global: Also apply the global limiter unless the type is exempt

        Returns:
            The first failing result, or a success carrying the specific
            limiter's counters and any stored nonce for the caller
        """
        if not self.is_rate_limit_enabled():
            return RateLimitCheckResult(success=True)

        limiter_type = RateLimiterType(limiter_type)
        identifier = get_identifier(request, self._settings)

        specific = await self._apply_limiter(limiter_type, identifier)
        if not specific.success:
            return specific

        if include_global and limiter_type not in GLOBAL_EXEMPT:
            global_result = await self._apply_limiter(RateLimiterType.GLOBAL, identifier)
            if not global_result.success:
                return global_result

        return RateLimitCheckResult(
            success=True,
            limit=specific.limit,
            remaining=specific.remaining,
            reset=specific.reset,
            nonce=await self._lookup_nonce(identifier),
        )
