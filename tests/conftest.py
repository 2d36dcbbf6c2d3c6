"""Pytest configuration and fixtures."""

import json
import time
from collections.abc import Callable, Generator
from typing import Any

import httpx
import pytest

from statekeeper.config import Settings
from statekeeper.state import StateClient, set_state_client

STATE_URL = "https://state.test/rpc"
STATE_API_KEY = "test-key"


class FakeStateStore:
    """
    In-process stand-in for the durable state service.

    Mounted behind ``httpx.MockTransport`` so tests exercise the real
    transport client end to end. Every decoded envelope is kept in ``calls``.
    """

    def __init__(self) -> None:
        self.windows: dict[str, dict[str, int]] = {}
        self.nonces: dict[str, str] = {}
        self.rate_hits: dict[str, list[float]] = {}
        self.calls: list[dict[str, Any]] = []
        self.fail_status: int | None = None
        self.fail_transport = False
        self.raw_body: bytes | None = None
        self.app_errors: dict[str, str] = {}
        self.rate_limit_results: dict[str, dict[str, Any]] = {}

    def actions(self, name: str | None = None) -> list[dict[str, Any]]:
        return [c for c in self.calls if name is None or c["action"] == name]

    def handle(self, request: httpx.Request) -> httpx.Response:
        if self.fail_transport:
            raise httpx.ConnectError("Connection refused", request=request)

        if request.headers.get("authorization") != f"Bearer {STATE_API_KEY}":
            return httpx.Response(401, json={"ok": False, "error": "Unauthorized"})

        payload = json.loads(request.content)
        self.calls.append(payload)

        if self.raw_body is not None:
            return httpx.Response(self.fail_status or 200, content=self.raw_body)
        if self.fail_status is not None:
            return httpx.Response(self.fail_status, json={"ok": False, "error": "boom"})

        action = payload["action"]
        if action in self.app_errors:
            return self._fail(self.app_errors[action])

        handler = getattr(self, "_" + action.replace(":", "_"), None)
        if handler is None:
            return self._fail("Unsupported action")
        return handler(payload)

    @staticmethod
    def _ok(result: Any) -> httpx.Response:
        return httpx.Response(200, json={"ok": True, "result": result})

    @staticmethod
    def _fail(message: str, status: int = 400) -> httpx.Response:
        return httpx.Response(status, json={"ok": False, "error": message})

    def _nonce_set(self, p: dict[str, Any]) -> httpx.Response:
        self.nonces[p["identifier"]] = p["value"]
        return self._ok(True)

    def _nonce_get(self, p: dict[str, Any]) -> httpx.Response:
        return self._ok(self.nonces.get(p["identifier"]))

    def _nonce_consume(self, p: dict[str, Any]) -> httpx.Response:
        return self._ok(self.nonces.pop(p["identifier"], None))

    def _ratelimit_check(self, p: dict[str, Any]) -> httpx.Response:
        if p["limiter"] in self.rate_limit_results:
            return self._ok(self.rate_limit_results[p["limiter"]])

        now = time.time()
        key = f"rate:{p['limiter']}:{p['identifier']}"
        hits = [t for t in self.rate_hits.get(key, []) if now - t < p["windowSeconds"]]
        success = len(hits) < p["limit"]
        if success:
            hits.append(now)
        self.rate_hits[key] = hits
        reset = int(((hits[0] if hits else now) + p["windowSeconds"]) * 1000)
        remaining = max(0, p["limit"] - len(hits)) if success else 0
        return self._ok(
            {"success": success, "limit": p["limit"], "remaining": remaining, "reset": reset}
        )

    def _quota_ensure(self, p: dict[str, Any]) -> httpx.Response:
        now = int(time.time())
        window = self.windows.get(p["key"])
        if window is None or window["resetAt"] <= now:
            duration = max(1, int(p["durationSec"]))
            window = {
                "limit": max(1, int(p["limit"])),
                "used": 0,
                "duration": duration,
                "resetAt": now + duration,
            }
            self.windows[p["key"]] = window
        return self._ok(dict(window))

    def _quota_increment(self, p: dict[str, Any]) -> httpx.Response:
        window = self.windows.get(p["key"])
        if window is None:
            return self._fail("Quota window not initialized", 404)
        window["used"] += max(0, int(p["amount"]))
        return self._ok(
            {"used": window["used"], "remaining": max(0, window["limit"] - window["used"])}
        )

    def _quota_incrementBatch(self, p: dict[str, Any]) -> httpx.Response:
        missing = [e["key"] for e in p["entries"] if e["key"] not in self.windows]
        if missing:
            return self._fail(f'Quota window "{missing[0]}" not initialized', 404)
        for entry in p["entries"]:
            self.windows[entry["key"]]["used"] += max(0, int(entry["amount"]))
        return self._ok(True)

    def _quota_resetKeys(self, p: dict[str, Any]) -> httpx.Response:
        deleted = sum(1 for k in p["keys"] if self.windows.pop(k, None) is not None)
        return self._ok({"deleted": deleted, "keys": p["keys"]})

    def _quota_resetPrefix(self, p: dict[str, Any]) -> httpx.Response:
        keys = [k for k in self.windows if k.startswith(p["prefix"])]
        for k in keys:
            del self.windows[k]
        return self._ok({"deleted": len(keys), "keys": keys})


@pytest.fixture
def store() -> FakeStateStore:
    """A fresh fake state service."""
    return FakeStateStore()


@pytest.fixture
def state_client(store: FakeStateStore) -> StateClient:
    """State client wired to the fake store."""
    return StateClient(
        url=STATE_URL,
        api_key=STATE_API_KEY,
        transport=httpx.MockTransport(store.handle),
    )


@pytest.fixture
def make_settings() -> Callable[..., Settings]:
    """Build Settings with the state service on, ignoring the process env file."""

    def factory(**overrides: Any) -> Settings:
        values: dict[str, Any] = {
            "enable_state_worker": True,
            "state_worker_url": STATE_URL,
            "state_worker_api_key": STATE_API_KEY,
            "environment": "test",
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)

    return factory


@pytest.fixture
def inactive_settings(make_settings: Callable[..., Settings]) -> Settings:
    return make_settings(
        enable_state_worker=False,
        state_worker_url=None,
        state_worker_api_key=None,
    )


@pytest.fixture(autouse=True)
def reset_shared_client() -> Generator[None, None, None]:
    """Keep the process-wide client handle from leaking between tests."""
    set_state_client(None)
    yield
    set_state_client(None)
