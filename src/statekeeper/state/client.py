"""HTTP client for the durable state service action endpoint."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Generic, TypeVar, Union

import httpx

from statekeeper.state.models import (
    QuotaUsage,
    QuotaWindow,
    RateLimitCheckResult,
    ResetResult,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")
U = TypeVar("U")


class StateErrorKind(str, Enum):
    """Failure classes of a state service call."""

    DISABLED = "disabled"
    TRANSPORT = "transport"
    INVALID_RESPONSE = "invalid_response"
    HTTP_STATUS = "http_status"
    APPLICATION = "application"


@dataclass(frozen=True)
class StateError:
    """A failed state service call."""

    kind: StateErrorKind
    message: str
    status: int | None = None


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class Err:
    error: StateError


StateResult = Union[Ok[T], Err]


class StateServiceError(Exception):
    """Raised when a state service failure must propagate to the caller."""

    def __init__(self, error: StateError) -> None:
        self.error = error
        super().__init__(error.message)


class StateServiceInactiveError(StateServiceError):
    """Raised by admin operations when the state service is not configured."""

    def __init__(self) -> None:
        super().__init__(
            StateError(StateErrorKind.DISABLED, "State service is not active")
        )


def unwrap(result: StateResult[T]) -> T:
    """Return the value of ``Ok`` or raise ``StateServiceError`` for ``Err``."""
    if isinstance(result, Err):
        raise StateServiceError(result.error)
    return result.value


def map_result(result: StateResult[T], fn: Callable[[T], U]) -> StateResult[U]:
    """Apply ``fn`` to an ``Ok`` value, passing ``Err`` through untouched."""
    if isinstance(result, Err):
        return result
    try:
        return Ok(fn(result.value))
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        return Err(
            StateError(
                StateErrorKind.INVALID_RESPONSE,
                f"State service returned invalid response: {e}",
            )
        )


class StateClient:
    """
    Client for the durable state service.

    Every operation is a single POST of a tagged ``{"action": ...}`` envelope
    to one URL, authenticated with a bearer key. The response envelope
    ``{ok, result}`` / ``{ok: false, error}`` is unwrapped into ``Ok``/``Err``.
    The client never retries; retry policy belongs to the caller.
    """

    DEFAULT_TIMEOUT = httpx.Timeout(
        connect=10.0,
        read=30.0,
        write=10.0,
        pool=10.0,
    )

    def __init__(
        self,
        url: str,
        api_key: str,
        timeout: httpx.Timeout | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the state client.

        Args:
            url: Action endpoint of the state service
            api_key: Bearer credential
            timeout: Request timeout configuration
            transport: Optional httpx transport (tests mount a fake store here)
        """
        self._url = url
        self._api_key = api_key
        self._timeout = timeout or self.DEFAULT_TIMEOUT
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def url(self) -> str:
        return self._url

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the async HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                transport=self._transport,
                headers={
                    "Content-Type": "application/json",
                    "Authorization": f"Bearer {self._api_key}",
                },
            )
        return self._client

    async def send(self, envelope: dict[str, Any]) -> StateResult[Any]:
        """
        Send one action envelope and unwrap the response.

        Args:
            envelope: JSON object with an ``action`` discriminator

        Returns:
            Ok(result) on success, Err describing the failure class otherwise
        """
        action = envelope.get("action")
        client = await self._get_client()

        try:
            response = await client.post(self._url, json=envelope)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.error(f"State service request failed for {action}: {e}")
            return Err(
                StateError(
                    StateErrorKind.TRANSPORT,
                    f"State service request failed: {e.__class__.__name__}",
                )
            )

        try:
            body = response.json()
        except ValueError:
            logger.error(f"State service returned invalid JSON for {action}")
            return Err(
                StateError(
                    StateErrorKind.INVALID_RESPONSE,
                    "State service returned invalid response",
                    status=response.status_code,
                )
            )

        if not response.is_success:
            logger.error(
                f"State service HTTP error for {action}: {response.status_code}"
            )
            return Err(
                StateError(
                    StateErrorKind.HTTP_STATUS,
                    f"State service HTTP {response.status_code}",
                    status=response.status_code,
                )
            )

        if not isinstance(body, dict) or "ok" not in body:
            logger.error(f"State service returned malformed envelope for {action}")
            return Err(
                StateError(
                    StateErrorKind.INVALID_RESPONSE,
                    "State service returned invalid response",
                    status=response.status_code,
                )
            )

        if not body["ok"]:
            message = body.get("error") or "State service error"
            logger.warning(f"State service application error for {action}: {message}")
            return Err(StateError(StateErrorKind.APPLICATION, str(message)))

        return Ok(body.get("result"))

    # --- nonce ---

    async def store_nonce(
        self, identifier: str, value: str, ttl_seconds: int
    ) -> StateResult[None]:
        result = await self.send(
            {
                "action": "nonce:set",
                "identifier": identifier,
                "value": value,
                "ttlSeconds": ttl_seconds,
            }
        )
        return map_result(result, lambda _: None)

    async def get_nonce(self, identifier: str) -> StateResult[str | None]:
        return await self.send({"action": "nonce:get", "identifier": identifier})

    async def consume_nonce(self, identifier: str) -> StateResult[str | None]:
        return await self.send({"action": "nonce:consume", "identifier": identifier})

    # --- rate limiting ---

    async def check_rate_limit(
        self,
        limiter: str,
        identifier: str,
        limit: int,
        window_seconds: int,
    ) -> StateResult[RateLimitCheckResult]:
        result = await self.send(
            {
                "action": "ratelimit:check",
                "limiter": limiter,
                "identifier": identifier,
                "limit": limit,
                "windowSeconds": window_seconds,
            }
        )
        return map_result(result, RateLimitCheckResult.from_dict)

    # --- quota windows ---

    async def ensure_quota_window(
        self, key: str, limit: int, duration_sec: int
    ) -> StateResult[QuotaWindow]:
        result = await self.send(
            {
                "action": "quota:ensure",
                "key": key,
                "limit": limit,
                "durationSec": duration_sec,
            }
        )
        return map_result(result, QuotaWindow.from_dict)

    async def increment_quota_usage(
        self, key: str, amount: int
    ) -> StateResult[QuotaUsage]:
        result = await self.send(
            {"action": "quota:increment", "key": key, "amount": amount}
        )
        return map_result(result, QuotaUsage.from_dict)

    async def increment_quota_batch(
        self, entries: list[tuple[str, int]]
    ) -> StateResult[None]:
        """Increment several windows in one call; the store applies all or none."""
        if not entries:
            return Ok(None)
        result = await self.send(
            {
                "action": "quota:incrementBatch",
                "entries": [{"key": key, "amount": amount} for key, amount in entries],
            }
        )
        return map_result(result, lambda _: None)

    async def reset_quota_keys(self, keys: list[str]) -> StateResult[ResetResult]:
        if not keys:
            return Ok(ResetResult(deleted=0, keys=[]))
        result = await self.send({"action": "quota:resetKeys", "keys": keys})
        return map_result(result, ResetResult.from_dict)

    async def reset_quota_prefix(self, prefix: str) -> StateResult[ResetResult]:
        result = await self.send({"action": "quota:resetPrefix", "prefix": prefix})
        return map_result(result, ResetResult.from_dict)

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None
            logger.info("State client closed")

    async def __aenter__(self) -> "StateClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
