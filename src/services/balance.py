from datetime import datetime
from typing import Callable

import httpx
from pydantic import ValidationError

from src.interfaces.balance import BalanceResult, BalanceSnapshot
from src.interfaces.policy import FailurePolicy
from src.services.kv import KeyValueStore, KeyValueStoreError
from src.services.openrouter import OpenRouterClient
from src.utils.logger import setup_logger
from src.utils.time import utc_now

logger = setup_logger(__name__)

BALANCE_CACHE_KEY = "balance:free_key"

# Reported when the balance is unknown and the policy is fail-open
PLACEHOLDER_REMAINING = 1.0
PLACEHOLDER_LIMIT = 10.0


class BalanceChecker:
    """
    Remaining spend on the managed OpenRouter key, cached in the key-value store.

    A snapshot younger than `cache_ttl` seconds is served from the cache. Older snapshots are kept
    for `stale_ttl` seconds so they can still be used when OpenRouter is unreachable.
    """

    def __init__(
        self,
        store: KeyValueStore,
        openrouter: OpenRouterClient,
        api_key: str | None,
        cache_ttl: int = 300,
        stale_ttl: int = 86400,
        safety_margin: float = 0.3,
        failure_policy: FailurePolicy = FailurePolicy.fail_open,
        now: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.openrouter = openrouter
        self.api_key = api_key
        self.cache_ttl = cache_ttl
        self.stale_ttl = max(stale_ttl, cache_ttl)
        self.safety_margin = safety_margin
        self.failure_policy = failure_policy
        self._now = now

    def is_available(self, remaining: float) -> bool:
        # At or below the margin counts as exhausted
        return remaining > self.safety_margin

    def __to_result(self, snapshot: BalanceSnapshot, cached: bool) -> BalanceResult:
        return BalanceResult(
            available=self.is_available(snapshot.remaining),
            remaining=snapshot.remaining,
            limit=snapshot.limit,
            cached=cached,
            checked_at=snapshot.checked_at,
        )

    async def __read_snapshot(self) -> BalanceSnapshot | None:
        try:
            value = await self.store.get_json(BALANCE_CACHE_KEY)
            if value is None:
                return None
            return BalanceSnapshot.model_validate(value)
        except (KeyValueStoreError, ValidationError) as e:
            logger.warning(f"Failed to read cached balance: {str(e)}")
            return None

    async def get_cached(self) -> BalanceResult | None:
        """Cached balance regardless of its age, without calling OpenRouter."""
        snapshot = await self.__read_snapshot()
        if snapshot is None:
            return None
        return self.__to_result(snapshot, cached=True)

    async def refresh(self) -> BalanceResult:
        """Fetch the balance from OpenRouter and update the cache, falling back to the cache on failure."""
        try:
            if not self.api_key:
                raise ValueError("FREE_API_KEY not configured")

            key_data = await self.openrouter.get_key_info(self.api_key)
            if key_data.limit_remaining is None:
                raise ValueError("OpenRouter key has no spending limit configured")

            snapshot = BalanceSnapshot(
                remaining=key_data.limit_remaining,
                limit=key_data.limit,
                usage=key_data.usage,
                checked_at=self._now(),
            )
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Failed to refresh balance from OpenRouter: {str(e)}")
            return await self.__fallback()

        try:
            await self.store.put_json(
                BALANCE_CACHE_KEY, snapshot.model_dump(mode="json"), ttl_seconds=self.stale_ttl
            )
        except KeyValueStoreError as e:
            logger.warning(f"Failed to cache balance: {str(e)}")

        return self.__to_result(snapshot, cached=False)

    async def __fallback(self) -> BalanceResult:
        cached = await self.get_cached()
        if cached is not None:
            logger.warning("Using stale cached balance after API failure")
            return cached

        if self.failure_policy == FailurePolicy.fail_closed:
            logger.warning("No cached balance available, reporting balance as exhausted")
            return BalanceResult(
                available=False, remaining=0.0, limit=None, cached=False, checked_at=self._now(), assumed=True
            )

        logger.warning("No cached balance available, failing open")
        return BalanceResult(
            available=True,
            remaining=PLACEHOLDER_REMAINING,
            limit=PLACEHOLDER_LIMIT,
            cached=False,
            checked_at=self._now(),
            assumed=True,
        )

    async def check(self) -> BalanceResult:
        """Balance from the cache when it is fresh, otherwise from OpenRouter."""
        snapshot = await self.__read_snapshot()
        if snapshot is not None:
            age = (self._now() - snapshot.checked_at).total_seconds()
            if age < self.cache_ttl:
                logger.debug("Using cached balance")
                return self.__to_result(snapshot, cached=True)

        return await self.refresh()
