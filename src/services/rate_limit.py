from datetime import datetime, timedelta, timezone
from typing import Callable

from pydantic import ValidationError

from src.interfaces.policy import FailurePolicy
from src.interfaces.rate_limit import DailyCounter, RateLimitResult
from src.services.kv import KeyValueStore, KeyValueStoreError
from src.utils.logger import setup_logger
from src.utils.time import utc_now

logger = setup_logger(__name__)

COUNTER_TTL_SECONDS = 86400  # 24 hours


def daily_key(moment: datetime) -> str:
    """Key of the counter for the UTC day containing `moment`: count:YYYY-MM-DD"""
    return f"count:{moment.astimezone(timezone.utc).strftime('%Y-%m-%d')}"


def next_midnight_utc(moment: datetime) -> datetime:
    day = moment.astimezone(timezone.utc).date()
    return datetime(day.year, day.month, day.day, tzinfo=timezone.utc) + timedelta(days=1)


class RateLimiter:
    """
    Global daily request counter for the managed key.

    The increment is a read-then-write, not an atomic operation: concurrent requests reading the
    same count can each write count+1, so up to N-1 extra requests may be admitted for N racers.
    """

    def __init__(
        self,
        store: KeyValueStore,
        enabled: bool,
        daily_limit: int,
        failure_policy: FailurePolicy = FailurePolicy.fail_open,
        now: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.enabled = enabled
        self.daily_limit = daily_limit
        self.failure_policy = failure_policy
        self._now = now

    async def __read_count(self, key: str) -> int:
        value = await self.store.get_json(key)
        if value is None:
            return 0
        try:
            return DailyCounter.model_validate(value).count
        except ValidationError as e:
            raise KeyValueStoreError(f"Invalid counter stored under {key}") from e

    def __unlimited(self, reset_at: datetime) -> RateLimitResult:
        return RateLimitResult(allowed=True, remaining=None, limit=None, reset_at=reset_at)

    def __on_store_error(self, reset_at: datetime, remaining_if_open: int) -> RateLimitResult:
        if self.failure_policy == FailurePolicy.fail_closed:
            return RateLimitResult(allowed=False, remaining=0, limit=self.daily_limit, reset_at=reset_at)
        return RateLimitResult(
            allowed=True, remaining=max(0, remaining_if_open), limit=self.daily_limit, reset_at=reset_at
        )

    async def check_and_consume(self) -> RateLimitResult:
        """Check the daily limit and count this request if it is allowed."""
        now = self._now()
        reset_at = next_midnight_utc(now)
        if not self.enabled:
            return self.__unlimited(reset_at)

        key = daily_key(now)
        try:
            current_count = await self.__read_count(key)

            if current_count >= self.daily_limit:
                logger.debug(f"Daily limit of {self.daily_limit} reached")
                return RateLimitResult(allowed=False, remaining=0, limit=self.daily_limit, reset_at=reset_at)

            new_count = current_count + 1
            entry = DailyCounter(count=new_count, date=key.split(":", 1)[1])
            await self.store.put_json(key, entry.model_dump(), ttl_seconds=COUNTER_TTL_SECONDS)

            return RateLimitResult(
                allowed=True,
                remaining=max(0, self.daily_limit - new_count),
                limit=self.daily_limit,
                reset_at=reset_at,
            )
        except KeyValueStoreError as e:
            logger.error(f"Rate limit check failed ({self.failure_policy.value}): {str(e)}")
            return self.__on_store_error(reset_at, self.daily_limit - 1)

    async def status(self) -> RateLimitResult:
        """Current quota, without counting a request."""
        now = self._now()
        reset_at = next_midnight_utc(now)
        if not self.enabled:
            return self.__unlimited(reset_at)

        try:
            count = await self.__read_count(daily_key(now))
        except KeyValueStoreError as e:
            logger.warning(f"Rate limit status check failed ({self.failure_policy.value}): {str(e)}")
            return self.__on_store_error(reset_at, self.daily_limit)

        remaining = max(0, self.daily_limit - count)
        return RateLimitResult(allowed=remaining > 0, remaining=remaining, limit=self.daily_limit, reset_at=reset_at)
