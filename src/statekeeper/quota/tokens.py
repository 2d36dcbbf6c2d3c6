"""
Token quota manager.

Enforces a heuristic per-caller token budget (chat usage) over a fixed
window held by the durable state service. Enforcement fails open: when the
feature is off or the store is unreachable, callers get an unlimited
window instead of an error.
"""

from __future__ import annotations

import logging
import math

from statekeeper.config import Settings, get_settings
from statekeeper.quota.models import (
    QuotaCheck,
    is_positive_amount,
    unlimited_window,
)
from statekeeper.quota.reset import (
    require_state_service,
    reset_keys,
    reset_prefix,
)
from statekeeper.state.client import Err, StateClient
from statekeeper.state.factory import get_state_client
from statekeeper.state.models import QuotaUsage, QuotaWindow, ResetResult

logger = logging.getLogger(__name__)

TOKEN_QUOTA_PREFIX = "chat:quota:"


def token_quota_key(token_id: str | int) -> str:
    return f"{TOKEN_QUOTA_PREFIX}{token_id}"


class TokenQuotaManager:
    """
    Per-caller token budget backed by the state service.

    The manager keeps no window state between calls; every read and
    mutation goes to the store, so any number of processes can share it.
    """

    def __init__(
        self,
        client: StateClient | None = None,
        settings: Settings | None = None,
    ) -> None:
        """
        Initialize the token quota manager.

        Args:
            client: State client (defaults to the shared process client)
            settings: Settings (defaults to the cached application settings)
        """
        self._client = client
        self._settings = settings or get_settings()

    @property
    def default_limit(self) -> int:
        return max(1, self._settings.chat_quota_tokens)

    @property
    def default_duration(self) -> int:
        return max(1, self._settings.chat_quota_window_sec)

    def _get_client(self) -> StateClient:
        if self._client is None:
            self._client = get_state_client(self._settings)
        return self._client

    def is_store_available(self) -> bool:
        return self._settings.state_service_active

    def is_quota_feature_active(self) -> bool:
        """Quota is enforced only when the flag is on and the store is available."""
        return bool(self._settings.chat_quota_enabled and self.is_store_available())

    async def ensure_window(
        self,
        token_id: str | int,
        limit: int | None = None,
        duration_sec: int | None = None,
    ) -> QuotaWindow:
        """
        Return the existing window for ``token_id`` or create it.

        Never raises on store failure; an unlimited window is returned instead.
        """
        limit = max(1, limit if limit is not None else self.default_limit)
        duration = max(1, duration_sec if duration_sec is not None else self.default_duration)

        if not self.is_quota_feature_active():
            return unlimited_window(duration)

        result = await self._get_client().ensure_quota_window(
            token_quota_key(token_id), limit, duration
        )
        if isinstance(result, Err):
            logger.warning(
                f"Token quota window fallback for {token_id}: {result.error.message}"
            )
            return unlimited_window(duration)
        return result.value

    async def ensure_and_check(
        self,
        token_id: str | int,
        limit: int | None = None,
        duration_sec: int | None = None,
    ) -> QuotaCheck:
        window = await self.ensure_window(token_id, limit, duration_sec)
        remaining = window.remaining
        return QuotaCheck(allowed=remaining > 0, remaining=remaining, window=window)

    async def add_usage(self, token_id: str | int, amount: float) -> QuotaUsage | None:
        """
        Record token usage, rounded up to a whole token.

        Returns:
            Updated counter, or None when disabled, unavailable, the amount
            is not a positive finite number, or the store call failed
        """
        if not self.is_quota_feature_active():
            return None
        if not is_positive_amount(amount):
            return None

        rounded = math.ceil(amount)
        result = await self._get_client().increment_quota_usage(
            token_quota_key(token_id), rounded
        )
        if isinstance(result, Err):
            logger.warning(
                f"Token quota usage not recorded for {token_id}: {result.error.message}"
            )
            return None

        logger.info(
            f"Token quota usage added for {token_id}: +{amount} "
            f"(used={result.value.used}, remaining={result.value.remaining})"
        )
        return result.value

    # --- Admin reset utilities ---

    async def reset_token_quota(self, token_id: str | int) -> bool:
        """
        Delete a single token's window.

        Returns:
            True if the key was deleted
        """
        require_state_service(self._settings)
        key = token_quota_key(token_id)
        result = await reset_keys(self._get_client(), [key])
        deleted = result.deleted > 0
        if deleted:
            logger.info(f"Reset token quota for {token_id} ({key})")
        return deleted

    async def reset_many_token_quotas(
        self, token_ids: list[str | int]
    ) -> ResetResult:
        require_state_service(self._settings)
        keys = [token_quota_key(token_id) for token_id in token_ids]
        result = await reset_keys(self._get_client(), keys)
        logger.info(
            f"Reset token quotas: {len(token_ids)} requested, {result.deleted} deleted"
        )
        return result

    async def reset_all_quotas(self, match_prefix: str | None = None) -> ResetResult:
        """Scan-delete every token window (or every key under ``match_prefix``)."""
        require_state_service(self._settings)
        result = await reset_prefix(
            self._get_client(), match_prefix or TOKEN_QUOTA_PREFIX
        )
        logger.warning(
            f"Reset all token quotas: scanned={len(result.keys)}, deleted={result.deleted}"
        )
        return result
