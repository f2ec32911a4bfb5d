from src.interfaces.errors import ErrorCode
from src.interfaces.key_selection import KeySelection, KeySource, ServiceTier
from src.services.balance import BalanceChecker
from src.services.rate_limit import RateLimiter
from src.utils.logger import setup_logger

logger = setup_logger(__name__)


class KeySelector:
    """
    Decide which credential and model tier serve a request.

    Priority:
    1. The caller's own key (BYOK), without touching the daily limit or the balance
    2. The managed key on the paid zero-retention model while its budget lasts
    3. The managed key on the free model once the paid budget is exhausted
    A fallback key supplied by the caller replaces 3, and is used instead of failing when the
    managed key can't serve the request.
    """

    def __init__(
        self,
        rate_limiter: RateLimiter,
        balance_checker: BalanceChecker,
        managed_api_key: str | None,
        paid_central_model: str,
        free_model: str,
        free_fallback_enabled: bool = True,
    ):
        self.rate_limiter = rate_limiter
        self.balance_checker = balance_checker
        self.managed_api_key = managed_api_key
        self.paid_central_model = paid_central_model
        self.free_model = free_model
        self.free_fallback_enabled = free_fallback_enabled

    @staticmethod
    def __user_supplied(api_key: str, requested_model: str | None) -> KeySelection:
        return KeySelection(
            credential=api_key,
            source=KeySource.user_supplied,
            tier=ServiceTier.user_supplied,
            model_id=requested_model or "",  # The caller picks the model with their own key
            zero_retention=False,  # Governed by the caller's own OpenRouter settings
        )

    def __failure(self, error: ErrorCode, remaining_today: int | None = None, reset_at=None) -> KeySelection:
        return KeySelection(
            credential=None,
            source=KeySource.none,
            tier=ServiceTier.free,
            model_id=self.free_model,
            remaining_today=remaining_today,
            reset_at=reset_at,
            failure=error,
        )

    async def select(
        self,
        user_api_key: str | None = None,
        fallback_api_key: str | None = None,
        requested_model: str | None = None,
    ) -> KeySelection:
        if user_api_key:
            return self.__user_supplied(user_api_key, requested_model)

        if not self.managed_api_key:
            if fallback_api_key:
                return self.__user_supplied(fallback_api_key, requested_model)
            return self.__failure(ErrorCode.no_api_key)

        # Rate limit first, it only needs the key-value store
        rate_limit = await self.rate_limiter.check_and_consume()
        if not rate_limit.allowed:
            if fallback_api_key:
                logger.debug("Daily limit reached, using caller's fallback key")
                return self.__user_supplied(fallback_api_key, requested_model)
            return self.__failure(ErrorCode.daily_limit_reached, remaining_today=0, reset_at=rate_limit.reset_at)

        balance = await self.balance_checker.check()
        if balance.available:
            return KeySelection(
                credential=self.managed_api_key,
                source=KeySource.managed,
                tier=ServiceTier.paid_central,
                model_id=self.paid_central_model,
                zero_retention=True,
                remaining_today=rate_limit.remaining,
                reset_at=rate_limit.reset_at,
            )

        if fallback_api_key:
            logger.debug("Paid budget exhausted, using caller's fallback key")
            return self.__user_supplied(fallback_api_key, requested_model)

        if not self.free_fallback_enabled:
            return self.__failure(ErrorCode.free_key_exhausted, reset_at=rate_limit.reset_at)

        logger.debug("Paid budget exhausted, falling back to the free model")
        return KeySelection(
            credential=self.managed_api_key,
            source=KeySource.managed,
            tier=ServiceTier.free,
            model_id=self.free_model,
            zero_retention=False,
            remaining_today=rate_limit.remaining,
            reset_at=rate_limit.reset_at,
        )
