from datetime import datetime

from fastapi.responses import JSONResponse

from src.interfaces.errors import ErrorCode, ErrorResponse


def error_response(
    message: str,
    error_code: ErrorCode,
    status_code: int,
    reset_at: datetime | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """JSON error body shared by every route: {success: false, error, errorCode[, reset_at]}"""
    body = ErrorResponse(error=message, errorCode=error_code, reset_at=reset_at)
    return JSONResponse(
        content=body.model_dump(mode="json", exclude_none=True),
        status_code=status_code,
        headers=headers,
    )
