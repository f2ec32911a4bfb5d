from unittest.mock import AsyncMock

import httpx
import pytest

from src.interfaces.balance import OpenRouterKeyData
from src.interfaces.policy import FailurePolicy
from src.services.balance import BALANCE_CACHE_KEY, BalanceChecker
from src.services.kv import KeyValueStoreError
from src.services.openrouter import OpenRouterClient


def make_openrouter(remaining: float | None = 8.0) -> AsyncMock:
    openrouter = AsyncMock(spec=OpenRouterClient)
    openrouter.get_key_info.return_value = OpenRouterKeyData(limit=10.0, usage=2.0, limit_remaining=remaining)
    return openrouter


def make_checker(store, clock, openrouter, api_key="sk-managed", policy=FailurePolicy.fail_open) -> BalanceChecker:
    return BalanceChecker(
        store,
        openrouter,
        api_key=api_key,
        cache_ttl=300,
        stale_ttl=86400,
        safety_margin=0.3,
        failure_policy=policy,
        now=clock,
    )


class TestCaching:
    @pytest.mark.asyncio
    async def test_first_check_fetches_and_caches(self, store, clock):
        openrouter = make_openrouter(8.0)
        checker = make_checker(store, clock, openrouter)

        result = await checker.check()

        assert result.available is True
        assert result.remaining == 8.0
        assert result.limit == 10.0
        assert result.cached is False
        assert result.checked_at == clock()
        openrouter.get_key_info.assert_awaited_once_with("sk-managed")
        assert (await store.get_json(BALANCE_CACHE_KEY))["remaining"] == 8.0

    @pytest.mark.asyncio
    async def test_cache_hit_within_ttl_makes_no_call(self, store, clock):
        openrouter = make_openrouter()
        checker = make_checker(store, clock, openrouter)
        await checker.check()

        clock.advance(seconds=299)
        result = await checker.check()

        assert result.cached is True
        assert openrouter.get_key_info.await_count == 1

    @pytest.mark.asyncio
    async def test_expired_cache_triggers_refresh(self, store, clock):
        openrouter = make_openrouter()
        checker = make_checker(store, clock, openrouter)
        await checker.check()

        clock.advance(seconds=300)
        result = await checker.check()

        assert result.cached is False
        assert openrouter.get_key_info.await_count == 2

    @pytest.mark.asyncio
    async def test_get_cached_never_calls_upstream(self, store, clock):
        openrouter = make_openrouter()
        checker = make_checker(store, clock, openrouter)

        assert await checker.get_cached() is None
        openrouter.get_key_info.assert_not_awaited()


class TestSafetyMargin:
    @pytest.mark.parametrize(
        "remaining, available",
        [(0.0, False), (0.29, False), (0.3, False), (0.31, True), (5.0, True)],
    )
    @pytest.mark.asyncio
    async def test_margin_boundary(self, store, clock, remaining, available):
        checker = make_checker(store, clock, make_openrouter(remaining))

        result = await checker.check()

        assert result.available is available


class TestUpstreamFailures:
    @pytest.mark.asyncio
    async def test_stale_cache_is_used_when_upstream_fails(self, store, clock):
        openrouter = make_openrouter(4.0)
        checker = make_checker(store, clock, openrouter)
        await checker.check()

        clock.advance(hours=2)
        openrouter.get_key_info.side_effect = httpx.ConnectError("connection refused")
        result = await checker.check()

        assert result.cached is True
        assert result.remaining == 4.0
        assert result.assumed is False
        assert openrouter.get_key_info.await_count == 2

    @pytest.mark.asyncio
    async def test_no_cache_fails_open_with_placeholder(self, store, clock):
        openrouter = make_openrouter()
        openrouter.get_key_info.side_effect = httpx.ReadTimeout("timed out")
        checker = make_checker(store, clock, openrouter)

        result = await checker.check()

        assert result.available is True
        assert result.assumed is True
        assert result.remaining == 1.0
        assert result.limit == 10.0
        assert result.cached is False

    @pytest.mark.asyncio
    async def test_no_cache_fail_closed_reports_exhausted(self, store, clock):
        openrouter = make_openrouter()
        openrouter.get_key_info.side_effect = httpx.ConnectError("connection refused")
        checker = make_checker(store, clock, openrouter, policy=FailurePolicy.fail_closed)

        result = await checker.check()

        assert result.available is False
        assert result.assumed is True

    @pytest.mark.asyncio
    async def test_malformed_response_falls_back(self, store, clock):
        openrouter = make_openrouter()
        openrouter.get_key_info.side_effect = ValueError("Invalid response format from OpenRouter API")
        checker = make_checker(store, clock, openrouter)

        result = await checker.check()

        assert result.assumed is True

    @pytest.mark.asyncio
    async def test_uncapped_key_falls_back(self, store, clock):
        checker = make_checker(store, clock, make_openrouter(remaining=None))

        result = await checker.check()

        assert result.assumed is True
        assert await store.get_json(BALANCE_CACHE_KEY) is None

    @pytest.mark.asyncio
    async def test_missing_api_key_does_not_call_upstream(self, store, clock):
        openrouter = make_openrouter()
        checker = make_checker(store, clock, openrouter, api_key=None)

        result = await checker.check()

        assert result.assumed is True
        openrouter.get_key_info.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_store_failures_do_not_block_refresh(self, clock):
        broken = AsyncMock()
        broken.get_json.side_effect = KeyValueStoreError("down")
        broken.put_json.side_effect = KeyValueStoreError("down")
        checker = make_checker(broken, clock, make_openrouter(6.0))

        result = await checker.check()

        assert result.available is True
        assert result.remaining == 6.0
        assert result.assumed is False


class TestOpenRouterClient:
    @pytest.mark.asyncio
    async def test_key_info_request(self, upstream, http_client):
        client = OpenRouterClient(
            http_client,
            base_url="https://openrouter.test/api/v1",
            referer="https://app.example/",
            title="Test",
            completion_timeout=60.0,
            key_info_timeout=5.0,
        )

        data = await client.get_key_info("sk-managed")

        assert data.limit_remaining == 8.0
        request = upstream.calls("/auth/key")[0]
        assert request.method == "GET"
        assert str(request.url) == "https://openrouter.test/api/v1/auth/key"
        assert request.headers["Authorization"] == "Bearer sk-managed"

    @pytest.mark.asyncio
    async def test_key_info_errors(self, upstream, http_client):
        client = OpenRouterClient(http_client, "https://openrouter.test/api/v1", "r", "t", 60.0, 5.0)

        upstream.key_info = (401, {"error": {"message": "No auth credentials found"}})
        with pytest.raises(httpx.HTTPStatusError):
            await client.get_key_info("sk-managed")

        upstream.key_info = (200, b"<html>maintenance</html>")
        with pytest.raises(ValueError):
            await client.get_key_info("sk-managed")

        upstream.key_info = (200, {"unexpected": True})
        with pytest.raises(ValueError):
            await client.get_key_info("sk-managed")
