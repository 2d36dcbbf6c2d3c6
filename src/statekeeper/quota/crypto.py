"""
Crypto spend quota manager.

Each spend is checked against two windows on the active network: a global
cap shared by every address and a per-address cap. Amounts are tracked as
integer micro-ETH. ``precheck_crypto_spend`` only reads; the caller runs
its own decision logic and then commits with ``record_crypto_spend``.
"""

from __future__ import annotations

import logging

from statekeeper.chains import network_key
from statekeeper.config import Settings, get_settings
from statekeeper.quota.models import (
    CryptoDenialReason,
    CryptoPrecheck,
    NetworkResetResult,
    from_micro_eth,
    is_positive_amount,
    to_micro_eth,
    unlimited_window,
)
from statekeeper.quota.reset import (
    require_state_service,
    reset_keys,
    reset_prefix,
)
from statekeeper.state.client import Err, StateClient
from statekeeper.state.factory import get_state_client
from statekeeper.state.models import MAX_SAFE_INTEGER, QuotaWindow, ResetResult

logger = logging.getLogger(__name__)

CRYPTO_QUOTA_PREFIX = "crypto:quota"


def global_quota_key(network: str) -> str:
    return f"{CRYPTO_QUOTA_PREFIX}:{network}:all"


def address_quota_key(network: str, address: str) -> str:
    return f"{CRYPTO_QUOTA_PREFIX}:{network}:addr:{address.strip().lower()}"


class CryptoQuotaManager:
    """Global and per-address ETH spend budgets backed by the state service."""

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

    @property
    def duration(self) -> int:
        return max(1, self._settings.crypto_quota_duration_sec)

    @property
    def network(self) -> str:
        """Quota namespace of the active chain."""
        return network_key(
            self._settings.active_chain_id, self._settings.local_chain_id
        )

    def is_store_available(self) -> bool:
        return self._settings.state_service_active

    def is_crypto_quota_feature_active(self) -> bool:
        return bool(self._settings.crypto_quota_enabled and self.is_store_available())

    @staticmethod
    def _effective_limit(limit_eth: float) -> int:
        # A configured limit of 0 leaves that window uncapped.
        micro = to_micro_eth(max(0.0, limit_eth))
        return MAX_SAFE_INTEGER if micro == 0 else micro

    async def _ensure_window(self, key: str, limit_micro: int) -> QuotaWindow:
        duration = self.duration
        if not self.is_crypto_quota_feature_active():
            return unlimited_window(duration)

        result = await self._get_client().ensure_quota_window(key, limit_micro, duration)
        if isinstance(result, Err):
            logger.warning(
                f"Crypto quota window fallback for {key}: {result.error.message}"
            )
            return unlimited_window(duration)
        return result.value

    async def precheck_crypto_spend(
        self, address: str, amount_eth: float
    ) -> CryptoPrecheck:
        """
        Decide whether ``address`` may spend ``amount_eth`` without mutating anything.

        Args:
            address: Wallet address (case-insensitive)
            amount_eth: Amount to spend in ETH

        Returns:
            CryptoPrecheck with remaining budgets, the earliest reset and,
            when denied, which window is exhausted. A non-finite amount is
            denied as ``global_exhausted``.
        """
        network = self.network
        if not self.is_crypto_quota_feature_active():
            window = unlimited_window(self.duration)
            return CryptoPrecheck(
                allowed=True,
                remaining_global_eth=from_micro_eth(window.remaining),
                remaining_user_eth=from_micro_eth(window.remaining),
                reset_at=window.reset_at,
                network=network,
            )

        amount_micro: int | None
        try:
            amount_micro = to_micro_eth(amount_eth)
        except ValueError as e:
            logger.warning(f"Crypto precheck denied for {address.lower()}: {e}")
            amount_micro = None

        global_window = await self._ensure_window(
            global_quota_key(network),
            self._effective_limit(self._settings.crypto_quota_daily_limit_eth),
        )
        user_window = await self._ensure_window(
            address_quota_key(network, address),
            self._effective_limit(self._settings.crypto_quota_user_limit_eth),
        )

        remaining_global = global_window.remaining
        remaining_user = user_window.remaining
        allowed_global = amount_micro is not None and remaining_global >= amount_micro
        allowed_user = amount_micro is not None and remaining_user >= amount_micro

        reason: CryptoDenialReason | None = None
        if not allowed_global:
            reason = "global_exhausted"
        elif not allowed_user:
            reason = "user_exhausted"

        return CryptoPrecheck(
            allowed=allowed_global and allowed_user,
            remaining_global_eth=from_micro_eth(remaining_global),
            remaining_user_eth=from_micro_eth(remaining_user),
            reset_at=min(global_window.reset_at, user_window.reset_at),
            network=network,
            reason=reason,
        )

    async def record_crypto_spend(self, address: str, amount_eth: float) -> None:
        """
        Commit a spend against both windows in one batched increment.

        No-op when the feature is inactive or the amount is not a positive
        finite number. Store failures are logged, not raised.
        """
        if not self.is_crypto_quota_feature_active():
            return
        if not is_positive_amount(amount_eth):
            return

        network = self.network
        amount_micro = to_micro_eth(amount_eth)
        result = await self._get_client().increment_quota_batch(
            [
                (global_quota_key(network), amount_micro),
                (address_quota_key(network, address), amount_micro),
            ]
        )
        if isinstance(result, Err):
            logger.error(
                f"Crypto spend not recorded for {address.lower()} on {network}: "
                f"{result.error.message}"
            )
            return

        logger.info(
            f"Crypto quota usage added on {network} for {address.lower()}: "
            f"{amount_eth} ETH ({amount_micro} micro-ETH)"
        )

    # --- Admin reset utilities ---

    async def reset_all_crypto_quotas(
        self, match_prefix: str | None = None
    ) -> ResetResult:
        """Scan-delete every crypto window across all networks and addresses."""
        require_state_service(self._settings)
        result = await reset_prefix(
            self._get_client(), match_prefix or CRYPTO_QUOTA_PREFIX
        )
        logger.warning(
            f"Reset all crypto quotas: scanned={len(result.keys)}, deleted={result.deleted}"
        )
        return result

    async def reset_crypto_quotas_by_addresses(
        self, addresses: list[str]
    ) -> NetworkResetResult:
        """Delete per-address windows on the active network only."""
        require_state_service(self._settings)
        network = self.network
        keys = [
            address_quota_key(network, address)
            for address in addresses
            if address and address.strip()
        ]
        result = await reset_keys(self._get_client(), keys)
        logger.info(
            f"Reset crypto quotas on {network}: {len(addresses)} requested, "
            f"{result.deleted} deleted"
        )
        return NetworkResetResult(
            deleted=result.deleted, keys=result.keys, network=network
        )
