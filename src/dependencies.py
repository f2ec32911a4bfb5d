from dataclasses import dataclass

import httpx
from fastapi import Request

from src.config import _Config
from src.services.balance import BalanceChecker
from src.services.key_selector import KeySelector
from src.services.kv import KeyValueStore, create_store
from src.services.openrouter import OpenRouterClient
from src.services.rate_limit import RateLimiter
from src.services.session import SessionTokenIssuer
from src.services.turnstile import BotVerifier


@dataclass
class GatewayServices:
    """Everything a request handler needs, built once per application."""

    config: _Config
    store: KeyValueStore
    http_client: httpx.AsyncClient
    openrouter: OpenRouterClient
    rate_limiter: RateLimiter
    balance_checker: BalanceChecker
    bot_verifier: BotVerifier
    session_issuer: SessionTokenIssuer
    key_selector: KeySelector

    async def aclose(self) -> None:
        await self.http_client.aclose()
        await self.store.close()


def build_services(
    config: _Config,
    store: KeyValueStore | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> GatewayServices:
    store = store if store is not None else create_store(config.REDIS_URL)
    # Per-call timeouts are set by each service, this one only applies if a call doesn't set one
    http_client = http_client if http_client is not None else httpx.AsyncClient(timeout=httpx.Timeout(30.0))

    openrouter = OpenRouterClient(
        http_client,
        base_url=config.OPENROUTER_API_BASE_URL,
        referer=config.APP_REFERER,
        title=config.APP_TITLE,
        completion_timeout=config.UPSTREAM_TIMEOUT,
        key_info_timeout=config.BALANCE_TIMEOUT,
    )
    rate_limiter = RateLimiter(
        store,
        enabled=config.GLOBAL_LIMIT_ENABLED,
        daily_limit=config.GLOBAL_DAILY_LIMIT,
        failure_policy=config.RATE_LIMIT_FAILURE_POLICY,
    )
    balance_checker = BalanceChecker(
        store,
        openrouter,
        api_key=config.FREE_API_KEY,
        cache_ttl=config.BALANCE_CACHE_TTL,
        stale_ttl=config.BALANCE_STALE_TTL,
        safety_margin=config.BALANCE_SAFETY_MARGIN,
        failure_policy=config.BALANCE_FAILURE_POLICY,
    )
    bot_verifier = BotVerifier(
        http_client,
        enabled=config.TURNSTILE_ENABLED,
        secret_key=config.TURNSTILE_SECRET_KEY,
        verify_url=config.TURNSTILE_VERIFY_URL,
        timeout=config.TURNSTILE_TIMEOUT,
    )
    session_issuer = SessionTokenIssuer(config.SESSION_SECRET, lifetime_seconds=config.SESSION_TOKEN_TTL)
    key_selector = KeySelector(
        rate_limiter,
        balance_checker,
        managed_api_key=config.FREE_API_KEY,
        paid_central_model=config.PAID_CENTRAL_MODEL,
        free_model=config.FREE_MODEL,
        free_fallback_enabled=config.FREE_TIER_FALLBACK_ENABLED,
    )

    return GatewayServices(
        config=config,
        store=store,
        http_client=http_client,
        openrouter=openrouter,
        rate_limiter=rate_limiter,
        balance_checker=balance_checker,
        bot_verifier=bot_verifier,
        session_issuer=session_issuer,
        key_selector=key_selector,
    )


def get_services(request: Request) -> GatewayServices:
    return request.app.state.services
