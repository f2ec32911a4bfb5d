from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel


class ErrorCode(str, Enum):
    turnstile_failed = "TURNSTILE_FAILED"
    daily_limit_reached = "DAILY_LIMIT_REACHED"
    free_key_exhausted = "FREE_KEY_EXHAUSTED"
    no_api_key = "NO_API_KEY"
    invalid_request = "INVALID_REQUEST"
    origin_not_allowed = "ORIGIN_NOT_ALLOWED"
    internal_error = "INTERNAL_ERROR"


class ErrorResponse(BaseModel):
    success: Literal[False] = False
    error: str
    errorCode: ErrorCode
    reset_at: datetime | None = None
