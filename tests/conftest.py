"""Shared fixtures for the gateway test suite."""

from datetime import datetime, timedelta, timezone
from typing import Any

import httpx
import pytest
from fastapi.testclient import TestClient

from src.config import _Config
from src.dependencies import GatewayServices, build_services
from src.main import create_app
from src.services.kv import MemoryKeyValueStore

MANAGED_KEY = "sk-or-v1-managed-test-key"
USER_KEY = "sk-or-v1-user-test-key"
SESSION_SECRET = "session-secret-for-tests-0123456789abcdef"
ALLOWED_ORIGIN = "https://app.example"

COMPLETION = {
    "id": "gen-123",
    "object": "chat.completion",
    "choices": [{"index": 0, "message": {"role": "assistant", "content": "Summary"}, "finish_reason": "stop"}],
}

VALID_BODY = {
    "model": "openai/gpt-oss-120b",
    "messages": [
        {"role": "system", "content": "You summarize privacy policies."},
        {"role": "user", "content": "We collect your email address."},
    ],
}


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------


class Clock:
    """Controllable clock, callable like utc_now()."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def timestamp(self) -> float:
        return self.now.timestamp()

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> Clock:
    return Clock(datetime(2026, 3, 10, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def store(clock) -> MemoryKeyValueStore:
    return MemoryKeyValueStore(clock=clock.timestamp)


# ---------------------------------------------------------------------------
# Outbound HTTP
# ---------------------------------------------------------------------------


class UpstreamStub:
    """
    Answers the gateway's outbound calls (OpenRouter and Turnstile) and records them.

    Each route is configured with (status, json_body), a raw bytes body, or an httpx exception class.
    """

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.key_info: Any = (200, {"data": {"limit": 10.0, "usage": 2.0, "limit_remaining": 8.0}})
        self.completion: Any = (200, COMPLETION)
        self.siteverify: Any = (200, {"success": True, "hostname": "app.example"})

    def calls(self, path_suffix: str) -> list[httpx.Request]:
        return [request for request in self.requests if request.url.path.endswith(path_suffix)]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path.endswith("/auth/key"):
            answer = self.key_info
        elif request.url.path.endswith("/chat/completions"):
            answer = self.completion
        elif request.url.path.endswith("/siteverify"):
            answer = self.siteverify
        else:
            return httpx.Response(404, json={"error": "unexpected call"})

        if isinstance(answer, type) and issubclass(answer, httpx.HTTPError):
            raise answer("simulated failure", request=request)
        status_code, body = answer
        if isinstance(body, bytes):
            return httpx.Response(status_code, content=body)
        return httpx.Response(status_code, json=body)


@pytest.fixture
def upstream() -> UpstreamStub:
    return UpstreamStub()


@pytest.fixture
def http_client(upstream) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(upstream.handler))


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------


@pytest.fixture
def make_config():
    def _make(**overrides) -> _Config:
        app_config = _Config()
        values = {
            "TURNSTILE_ENABLED": False,
            "TURNSTILE_SECRET_KEY": None,
            "GLOBAL_LIMIT_ENABLED": False,
            "GLOBAL_DAILY_LIMIT": 100,
            "ALLOWED_ORIGINS": [ALLOWED_ORIGIN],
            "FREE_API_KEY": MANAGED_KEY,
            "OPENROUTER_API_BASE_URL": "https://openrouter.test/api/v1",
            "TURNSTILE_VERIFY_URL": "https://turnstile.test/turnstile/v0/siteverify",
            "PAID_CENTRAL_MODEL": "openai/gpt-oss-120b",
            "FREE_MODEL": "openai/gpt-oss-120b:free",
            "FREE_TIER_FALLBACK_ENABLED": True,
            "SESSION_SECRET": SESSION_SECRET,
            "REDIS_URL": None,
        }
        values.update(overrides)
        for name, value in values.items():
            setattr(app_config, name, value)
        return app_config

    return _make


class Gateway:
    def __init__(self, client: TestClient, services: GatewayServices, upstream: UpstreamStub, store):
        self.client = client
        self.services = services
        self.upstream = upstream
        self.store = store


@pytest.fixture
def make_gateway(make_config, upstream, http_client):
    """Build a TestClient around a fully wired app with a memory store and stubbed upstreams."""

    def _make(**config_overrides) -> Gateway:
        app_config = make_config(**config_overrides)
        store = MemoryKeyValueStore()
        services = build_services(app_config, store=store, http_client=http_client)
        client = TestClient(create_app(app_config, services))
        return Gateway(client, services, upstream, store)

    return _make
