from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from src.interfaces.errors import ErrorCode
from src.utils.logger import setup_logger
from src.utils.responses import error_response

logger = setup_logger(__name__)

ALLOWED_METHODS = "GET, POST, OPTIONS"
ALLOWED_HEADERS = (
    "Content-Type, Accept, Authorization, X-Turnstile-Token, X-Session-Token, X-User-Api-Key, X-Fallback-Api-Key"
)
EXPOSED_HEADERS = "x-key-source, x-free-remaining"


def is_origin_allowed(origin: str | None, allowed_origins: list[str]) -> bool:
    if not origin:
        return False
    return "*" in allowed_origins or origin in allowed_origins


def cors_headers(origin: str | None, allowed_origins: list[str]) -> dict[str, str]:
    headers = {
        "Access-Control-Allow-Methods": ALLOWED_METHODS,
        "Access-Control-Allow-Headers": ALLOWED_HEADERS,
        "Access-Control-Expose-Headers": EXPOSED_HEADERS,
        "Access-Control-Max-Age": "86400",
    }
    if origin and origin in allowed_origins:
        headers["Access-Control-Allow-Origin"] = origin
        headers["Vary"] = "Origin"
    elif "*" in allowed_origins:
        headers["Access-Control-Allow-Origin"] = "*"
    return headers


class OriginGuardMiddleware(BaseHTTPMiddleware):
    """
    Outermost boundary of the gateway:
    - answers CORS preflight requests on any path
    - rejects disallowed origins before any handler runs, so they never consume quota
    - turns unhandled exceptions into a generic INTERNAL_ERROR

    Requests without an Origin header (server-to-server calls, health probes) are let through.
    """

    def __init__(self, app, allowed_origins: list[str]):
        super().__init__(app)
        self.allowed_origins = allowed_origins

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        origin = request.headers.get("Origin")
        headers = cors_headers(origin, self.allowed_origins)

        if request.method == "OPTIONS":
            return Response(status_code=204, headers=headers)

        if origin and not is_origin_allowed(origin, self.allowed_origins):
            return error_response("Origin not allowed", ErrorCode.origin_not_allowed, 403, headers=headers)

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(f"Unhandled error on {request.method} {request.url.path}: {str(e)}", exc_info=True)
            return error_response("Internal server error", ErrorCode.internal_error, 500, headers=headers)

        for name, value in headers.items():
            response.headers[name] = value
        return response
