"""
Admin reset utilities shared by the quota managers.

Resets never fail open: an operator asking for a reset gets either a
definitive result or an exception.
"""

import logging

from statekeeper.config import Settings
from statekeeper.quota.models import chunked
from statekeeper.state.client import (
    StateClient,
    StateServiceInactiveError,
    unwrap,
)
from statekeeper.state.models import ResetResult

logger = logging.getLogger(__name__)

RESET_BATCH_SIZE = 512
"""Maximum keys per resetKeys call, bounding request size."""


def require_state_service(settings: Settings) -> None:
    """
    Raises:
        StateServiceInactiveError: If the state service is not configured
    """
    if not settings.state_service_active:
        raise StateServiceInactiveError()


def normalize_prefix(prefix: str) -> str:
    """Strip one trailing glob ``*`` so ``chat:quota:*`` and ``chat:quota:`` match alike."""
    return prefix[:-1] if prefix.endswith("*") else prefix


async def reset_keys(
    client: StateClient,
    keys: list[str],
    batch_size: int = RESET_BATCH_SIZE,
) -> ResetResult:
    """
    Delete an explicit list of keys in bounded batches.

    Returns:
        ResetResult with the total deleted and every key attempted

    Raises:
        StateServiceError: If any batch fails
    """
    deleted = 0
    for batch in chunked(keys, batch_size):
        result = unwrap(await client.reset_quota_keys(batch))
        deleted += result.deleted
    return ResetResult(deleted=deleted, keys=list(keys))


async def reset_prefix(client: StateClient, prefix: str) -> ResetResult:
    """
    Delete every key under a prefix; the state service performs the scan.

    Raises:
        StateServiceError: If the call fails
    """
    return unwrap(await client.reset_quota_prefix(normalize_prefix(prefix)))
