from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.config import _Config, config
from src.dependencies import GatewayServices, build_services
from src.interfaces.errors import ErrorCode
from src.middleware.cors import OriginGuardMiddleware
from src.routes.analyze import router as analyze_router
from src.routes.session import router as session_router
from src.routes.status import router as status_router
from src.utils.logger import setup_logger
from src.utils.responses import error_response

logger = setup_logger(__name__)

HTTP_ERROR_MESSAGES = {404: "Not found", 405: "Method not allowed"}


async def invalid_request_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.debug(f"Invalid request body: {exc.errors()}")
    return error_response("Invalid request body", ErrorCode.invalid_request, 400)


async def http_exception_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
    # 404 for unknown paths, 405 (with its Allow header) for unknown methods on known paths
    message = HTTP_ERROR_MESSAGES.get(exc.status_code, exc.detail)
    return JSONResponse(
        content={"success": False, "error": message},
        status_code=exc.status_code,
        headers=getattr(exc, "headers", None),
    )


def create_app(app_config: _Config = config, services: GatewayServices | None = None) -> FastAPI:
    """Build the gateway application. Tests pass their own config and services."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await app.state.services.aclose()

    app = FastAPI(title="Policy Analyzer free tier gateway", lifespan=lifespan)
    if services is None:
        services = build_services(app_config)
    app.state.services = services

    app.add_middleware(OriginGuardMiddleware, allowed_origins=services.config.ALLOWED_ORIGINS)
    app.add_exception_handler(RequestValidationError, invalid_request_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)

    app.include_router(analyze_router)
    app.include_router(session_router)
    app.include_router(status_router)

    return app


app = create_app()
