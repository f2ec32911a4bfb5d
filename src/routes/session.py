from fastapi import APIRouter, Depends, Header, status

from src.dependencies import GatewayServices, get_services
from src.interfaces.errors import ErrorCode
from src.interfaces.gateway import SessionRequest, SessionResponse
from src.services.session import WeakSecretError
from src.utils.logger import setup_logger
from src.utils.responses import error_response

logger = setup_logger(__name__)

router = APIRouter(tags=["Session"])


@router.post("/session", response_model=SessionResponse)
async def create_session(
    session_request: SessionRequest | None = None,
    services: GatewayServices = Depends(get_services),
    x_turnstile_token: str | None = Header(default=None),
):
    """
    Exchange a Turnstile token for a short-lived session token.

    The Turnstile token is consumed here; the session token can then be sent as `X-Session-Token`
    on every parallel /analyze call of one analysis. Doesn't consume daily quota.
    """
    turnstile_token = (x_turnstile_token or "").strip() or (
        session_request.turnstileToken if session_request is not None else None
    )

    result = await services.bot_verifier.verify(turnstile_token)
    if not result.success:
        return error_response("Bot verification failed", ErrorCode.turnstile_failed, status.HTTP_401_UNAUTHORIZED)

    try:
        session_token = services.session_issuer.mint()
    except WeakSecretError as e:
        logger.error(f"Cannot issue session tokens: {str(e)}")
        return error_response(
            "Session tokens are not available", ErrorCode.internal_error, status.HTTP_500_INTERNAL_SERVER_ERROR
        )

    return SessionResponse(session_token=session_token, expires_in=services.session_issuer.lifetime_seconds)
