"""Tests for rate limiting and caller identity."""

import pytest
from fastapi import Request

from statekeeper.ratelimit import (
    RateLimiter,
    RateLimiterType,
    get_identifier,
    get_rate_limiter_config,
)
from statekeeper.ratelimit.identity import LOOPBACK_IDENTIFIER

from tests.conftest import FakeStateStore

CLIENT_IP = "203.0.113.7"


def make_request(headers: dict[str, str] | None = None, client: str | None = CLIENT_IP) -> Request:
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/",
        "headers": [
            (k.lower().encode("latin-1"), v.encode("latin-1"))
            for k, v in (headers or {}).items()
        ],
    }
    if client is not None:
        scope["client"] = (client, 50000)
    return Request(scope)


@pytest.fixture
def limiter(make_settings, state_client) -> RateLimiter:
    return RateLimiter(client=state_client, settings=make_settings())


class TestLimiterTable:
    """Tests for the static limiter configuration."""

    @pytest.mark.parametrize(
        "limiter_type,limit,window,prefix",
        [
            ("nonce", 30, 60, "rl:nonce:"),
            ("gateAccess", 60, 60, "rl:gate-access:"),
            ("formSubmissionGate", 10, 60, "rl:form-submission:"),
            ("tokenStatus", 60, 60, "rl:token-status:"),
            ("global", 200, 3600, "rl:global:"),
        ],
    )
    def test_configs(self, limiter_type: str, limit: int, window: int, prefix: str) -> None:
        config = get_rate_limiter_config(limiter_type)

        assert (config.limit, config.window_seconds, config.key_prefix) == (limit, window, prefix)

    def test_window_label(self) -> None:
        assert get_rate_limiter_config(RateLimiterType.GLOBAL).to_dict() == {
            "limit": 200,
            "window": "3600s",
            "prefix": "rl:global:",
        }

    def test_unknown_type(self) -> None:
        with pytest.raises(ValueError):
            get_rate_limiter_config("bogus")


class TestCheckRateLimit:
    """Tests for specific + global limiting with nonce attachment."""

    @pytest.mark.asyncio
    async def test_specific_then_global(
        self, limiter: RateLimiter, store: FakeStateStore
    ) -> None:
        result = await limiter.check_rate_limit_with_nonce(make_request(), "gateAccess")

        checks = store.actions("ratelimit:check")
        assert [c["limiter"] for c in checks] == ["gateAccess", "global"]
        assert checks[1]["limit"] == 200
        assert checks[1]["windowSeconds"] == 3600
        assert all(c["identifier"] == CLIENT_IP for c in checks)
        assert result.success is True
        assert result.limit == 60
        assert result.remaining == 59

    @pytest.mark.asyncio
    async def test_specific_failure_short_circuits(
        self, limiter: RateLimiter, store: FakeStateStore
    ) -> None:
        store.rate_limit_results["nonce"] = {
            "success": False, "limit": 30, "remaining": 0, "reset": 1_700_000_000_000
        }

        result = await limiter.check_rate_limit_with_nonce(make_request(), RateLimiterType.NONCE)

        assert result.success is False
        assert result.reset == 1_700_000_000_000
        assert [c["limiter"] for c in store.actions("ratelimit:check")] == ["nonce"]
        assert store.actions("nonce:get") == []

    @pytest.mark.asyncio
    async def test_global_failure_returned(
        self, limiter: RateLimiter, store: FakeStateStore
    ) -> None:
        store.rate_limit_results["global"] = {
            "success": False, "limit": 200, "remaining": 0, "reset": 5
        }

        result = await limiter.check_rate_limit_with_nonce(make_request(), "formSubmissionGate")

        assert result.success is False
        assert result.limit == 200

    @pytest.mark.asyncio
    async def test_token_status_is_global_exempt(
        self, limiter: RateLimiter, store: FakeStateStore
    ) -> None:
        await limiter.check_rate_limit_with_nonce(make_request(), "tokenStatus")

        assert [c["limiter"] for c in store.actions("ratelimit:check")] == ["tokenStatus"]

    @pytest.mark.asyncio
    async def test_include_global_false(
        self, limiter: RateLimiter, store: FakeStateStore
    ) -> None:
        await limiter.check_rate_limit_with_nonce(
            make_request(), "gateAccess", include_global=False
        )

        assert [c["limiter"] for c in store.actions("ratelimit:check")] == ["gateAccess"]

    @pytest.mark.asyncio
    async def test_exhausts_after_limit(self, limiter: RateLimiter) -> None:
        request = make_request()
        for _ in range(10):
            assert (await limiter.check_rate_limit_with_nonce(request, "formSubmissionGate")).success

        result = await limiter.check_rate_limit_with_nonce(request, "formSubmissionGate")

        assert result.success is False

    @pytest.mark.asyncio
    async def test_attaches_nonce(self, limiter: RateLimiter, store: FakeStateStore) -> None:
        store.nonces[CLIENT_IP] = "n-123"

        result = await limiter.check_rate_limit_with_nonce(make_request(), "nonce")

        assert result.nonce == "n-123"
        assert result.to_dict()["nonce"] == "n-123"

    @pytest.mark.asyncio
    async def test_nonce_lookup_failure_is_ignored(
        self, limiter: RateLimiter, store: FakeStateStore
    ) -> None:
        store.app_errors["nonce:get"] = "nonce store down"

        result = await limiter.check_rate_limit_with_nonce(make_request(), "nonce")

        assert result.success is True
        assert result.nonce is None

    @pytest.mark.asyncio
    async def test_fails_open_on_service_error(
        self, limiter: RateLimiter, store: FakeStateStore
    ) -> None:
        store.fail_status = 500

        result = await limiter.check_rate_limit_with_nonce(make_request(), "gateAccess")

        assert result.success is True
        assert result.limit is None

    @pytest.mark.asyncio
    async def test_fails_open_on_null_result(
        self, limiter: RateLimiter, store: FakeStateStore
    ) -> None:
        store.rate_limit_results["nonce"] = None

        result = await limiter.check_rate_limit_with_nonce(make_request(), "nonce")

        assert result.success is True
        assert [c["limiter"] for c in store.actions("ratelimit:check")] == ["nonce", "global"]

    @pytest.mark.asyncio
    async def test_disabled_allows_without_calls(self, inactive_settings) -> None:
        limiter = RateLimiter(settings=inactive_settings)

        result = await limiter.check_rate_limit_with_nonce(make_request(), "gateAccess")

        assert result.success is True
        assert limiter.is_rate_limit_enabled() is False


class TestGetIdentifier:
    """Tests for caller identity extraction."""

    def test_forwarded_for_first_entry(self, make_settings) -> None:
        request = make_request({"X-Forwarded-For": " 198.51.100.1 , 10.0.0.1"})

        assert get_identifier(request, make_settings()) == "198.51.100.1"

    def test_real_ip(self, make_settings) -> None:
        request = make_request({"X-Real-IP": "198.51.100.2"})

        assert get_identifier(request, make_settings()) == "198.51.100.2"

    def test_loopback_in_development(self, make_settings) -> None:
        settings = make_settings(environment="development")

        assert get_identifier(make_request(), settings) == LOOPBACK_IDENTIFIER

    def test_platform_header_in_production(self, make_settings) -> None:
        settings = make_settings(environment="production")
        request = make_request({"X-Vercel-Forwarded-For": "198.51.100.3"})

        assert get_identifier(request, settings) == "198.51.100.3"

    def test_client_host(self, make_settings) -> None:
        settings = make_settings(environment="production")

        assert get_identifier(make_request(), settings) == CLIENT_IP

    def test_random_fallback_is_unique(self, make_settings) -> None:
        settings = make_settings(environment="production")

        first = get_identifier(make_request(client=None), settings)
        second = get_identifier(make_request(client=None), settings)

        assert first.startswith("unknown-")
        assert first != second
