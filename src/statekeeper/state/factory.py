"""Process-wide state client handle."""

import logging

import httpx

from statekeeper.config import Settings, get_settings
from statekeeper.state.client import (
    StateClient,
    StateError,
    StateErrorKind,
    StateServiceError,
)

logger = logging.getLogger(__name__)

# Global client instance, one per process
_client_instance: StateClient | None = None


def is_state_service_enabled(settings: Settings | None = None) -> bool:
    """Whether the state service is switched on and configured."""
    return (settings or get_settings()).state_service_active


def create_state_client(settings: Settings | None = None) -> StateClient:
    """
    Build a new state client from settings.

    Raises:
        StateServiceError: If the state service is disabled or misconfigured
    """
    settings = settings or get_settings()
    if not settings.enable_state_worker:
        raise StateServiceError(
            StateError(StateErrorKind.DISABLED, "Durable state service is disabled")
        )
    if not settings.state_worker_url or not settings.state_worker_api_key:
        raise StateServiceError(
            StateError(
                StateErrorKind.DISABLED,
                "Durable state service configuration missing",
            )
        )

    return StateClient(
        url=settings.state_worker_url,
        api_key=settings.state_worker_api_key,
        timeout=httpx.Timeout(
            connect=settings.http_timeout_connect,
            read=settings.http_timeout_read,
            write=settings.http_timeout_connect,
            pool=settings.http_timeout_connect,
        ),
    )


def get_state_client(settings: Settings | None = None) -> StateClient:
    """
    Get the shared state client, creating it on first access.

    An instance installed with ``set_state_client`` is returned as-is.
    """
    global _client_instance

    if _client_instance is None:
        _client_instance = create_state_client(settings)
        logger.info(f"Initialized state client for {_client_instance.url}")

    return _client_instance


def set_state_client(client: StateClient | None) -> None:
    """Install (or clear with None) the shared client. Used by tests and app startup."""
    global _client_instance
    _client_instance = client


async def close_state_client() -> None:
    """Close and forget the shared client."""
    global _client_instance

    if _client_instance is not None:
        await _client_instance.close()
        _client_instance = None
