from fastapi import Depends

from src.dependencies import GatewayServices, get_services
from src.interfaces.gateway import HealthResponse, StatusResponse
from src.interfaces.key_selection import ServiceTier
from src.routes.status import router
from src.services.rate_limit import next_midnight_utc
from src.utils.logger import setup_logger
from src.utils.time import utc_now

logger = setup_logger(__name__)


@router.get("/status")
async def get_free_tier_status(services: GatewayServices = Depends(get_services)) -> StatusResponse:
    """
    Read-only free tier availability for the frontend. Doesn't consume quota.

    Falls back to conservative defaults instead of failing.
    """
    turnstile_required = services.bot_verifier.enabled
    try:
        rate_limit = await services.rate_limiter.status()

        if not services.key_selector.managed_api_key:
            return StatusResponse(
                free_available=False,
                daily_remaining=rate_limit.remaining,
                daily_limit=rate_limit.limit,
                balance_known=False,
                reset_at=rate_limit.reset_at,
                tier=ServiceTier.free,
                zero_retention_enabled=False,
                turnstile_required=turnstile_required,
            )

        balance = await services.balance_checker.check()
        paid_budget_available = balance.available
        tier = ServiceTier.paid_central if paid_budget_available else ServiceTier.free

        return StatusResponse(
            free_available=rate_limit.allowed
            and (paid_budget_available or services.key_selector.free_fallback_enabled),
            daily_remaining=rate_limit.remaining,
            daily_limit=rate_limit.limit,
            balance_known=not balance.assumed,
            reset_at=rate_limit.reset_at,
            tier=tier,
            zero_retention_enabled=tier == ServiceTier.paid_central,
            turnstile_required=turnstile_required,
        )
    except Exception as e:
        logger.error(f"Status check error: {str(e)}", exc_info=True)
        return StatusResponse(
            free_available=False,
            daily_remaining=0,
            daily_limit=services.config.GLOBAL_DAILY_LIMIT if services.rate_limiter.enabled else None,
            balance_known=False,
            reset_at=next_midnight_utc(utc_now()),
            tier=ServiceTier.free,
            zero_retention_enabled=False,
            turnstile_required=turnstile_required,
        )


@router.get("/health")
async def health_check() -> HealthResponse:
    return HealthResponse(timestamp=utc_now())
