from typing import Any

import httpx
from fastapi import Depends, Header, status
from fastapi.responses import JSONResponse

from src.dependencies import GatewayServices, get_services
from src.interfaces.errors import ErrorCode
from src.interfaces.gateway import AnalyzeRequest
from src.interfaces.key_selection import KeySource
from src.routes.analyze import router
from src.utils.logger import setup_logger
from src.utils.responses import error_response

logger = setup_logger(__name__)


def _first_present(header_value: str | None, body_value: str | None) -> str | None:
    """Header values take precedence over body fields."""
    if header_value and header_value.strip():
        return header_value.strip()
    return body_value or None


async def verify_human(services: GatewayServices, turnstile_token: str | None, session_token: str | None) -> bool:
    """
    Check the proof-of-human attached to a request.

    A session token, when present, is verified locally and replaces the Turnstile check, so that
    one Turnstile challenge can cover the parallel requests of one analysis.
    """
    if not services.bot_verifier.enabled:
        return True

    if session_token:
        verification = services.session_issuer.verify(session_token)
        if not verification.valid:
            logger.debug(f"Session token rejected: {verification.reason}")
        return verification.valid

    result = await services.bot_verifier.verify(turnstile_token)
    return result.success


@router.post("/analyze")
async def proxy_analyze_request(
    analyze_request: AnalyzeRequest,
    services: GatewayServices = Depends(get_services),
    x_turnstile_token: str | None = Header(default=None),
    x_session_token: str | None = Header(default=None),
    x_user_api_key: str | None = Header(default=None),
    x_fallback_api_key: str | None = Header(default=None),
):
    """
    Proxy a chat completion request to OpenRouter on the free tier or with the caller's own key.

    Responses carry `x-key-source` (free or byok) and, on the free tier, `x-free-remaining`.
    Upstream error bodies are never forwarded.
    """
    turnstile_token = _first_present(x_turnstile_token, analyze_request.turnstileToken)
    session_token = _first_present(x_session_token, analyze_request.sessionToken)
    user_api_key = _first_present(x_user_api_key, analyze_request.userApiKey)
    fallback_api_key = _first_present(x_fallback_api_key, analyze_request.fallbackApiKey)

    if not await verify_human(services, turnstile_token, session_token):
        return error_response("Bot verification failed", ErrorCode.turnstile_failed, status.HTTP_401_UNAUTHORIZED)

    # Fail fast without consuming quota, the request is counted once by the key selector
    if (
        services.rate_limiter.enabled
        and services.key_selector.managed_api_key
        and not user_api_key
        and not fallback_api_key
    ):
        rate_limit = await services.rate_limiter.status()
        if not rate_limit.allowed:
            return error_response(
                f"Daily rate limit exceeded. Resets at {rate_limit.reset_at.isoformat()}",
                ErrorCode.daily_limit_reached,
                status.HTTP_429_TOO_MANY_REQUESTS,
                reset_at=rate_limit.reset_at,
            )

    selection = await services.key_selector.select(
        user_api_key=user_api_key,
        fallback_api_key=fallback_api_key,
        requested_model=analyze_request.model,
    )

    if selection.failure == ErrorCode.daily_limit_reached:
        return error_response(
            "Daily free tier limit reached. Configure your own API key to continue.",
            ErrorCode.daily_limit_reached,
            status.HTTP_429_TOO_MANY_REQUESTS,
            reset_at=selection.reset_at,
        )
    if selection.failure == ErrorCode.free_key_exhausted:
        return error_response(
            "Free tier budget exhausted. Please provide your own API key.",
            ErrorCode.free_key_exhausted,
            status.HTTP_402_PAYMENT_REQUIRED,
        )
    if selection.failure is not None or not selection.credential:
        return error_response(
            "No API key available. Please provide your own API key.",
            ErrorCode.no_api_key,
            status.HTTP_402_PAYMENT_REQUIRED,
        )

    payload: dict[str, Any] = {
        "model": selection.model_id,
        "messages": [message.model_dump() for message in analyze_request.messages],
        "temperature": (
            analyze_request.temperature
            if analyze_request.temperature is not None
            else services.config.DEFAULT_TEMPERATURE
        ),
        "max_tokens": (
            analyze_request.max_tokens if analyze_request.max_tokens is not None else services.config.DEFAULT_MAX_TOKENS
        ),
    }
    if selection.zero_retention:
        payload["provider"] = {"data_collection": "deny"}

    logger.debug(f"Forwarding analysis on tier {selection.tier.value} with model {selection.model_id}")

    try:
        upstream = await services.openrouter.create_chat_completion(selection.credential, payload)
    except httpx.HTTPError as e:
        logger.error(f"Error forwarding request to OpenRouter: {type(e).__name__}: {str(e)}")
        return error_response("Failed to process request", ErrorCode.internal_error, status.HTTP_502_BAD_GATEWAY)

    if upstream.status_code == status.HTTP_429_TOO_MANY_REQUESTS:
        logger.warning("OpenRouter rate limit exceeded")
        return error_response(
            "LLM rate limit exceeded. Please try again later.",
            ErrorCode.daily_limit_reached,
            status.HTTP_429_TOO_MANY_REQUESTS,
        )
    if not upstream.is_success:
        logger.error(f"OpenRouter API error: {upstream.status_code}")
        return error_response("Failed to process request", ErrorCode.internal_error, status.HTTP_502_BAD_GATEWAY)

    try:
        completion = upstream.json()
    except ValueError:
        logger.error("OpenRouter returned a non-JSON completion")
        return error_response("Failed to process request", ErrorCode.internal_error, status.HTTP_502_BAD_GATEWAY)

    headers = {"x-key-source": selection.source.value}
    if selection.source == KeySource.managed and selection.remaining_today is not None:
        headers["x-free-remaining"] = str(selection.remaining_today)

    return JSONResponse(content=completion, status_code=status.HTTP_200_OK, headers=headers)
