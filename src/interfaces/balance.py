from datetime import datetime

from pydantic import BaseModel


class BalanceSnapshot(BaseModel):
    """Managed key balance as cached in the key-value store."""

    remaining: float
    limit: float | None
    usage: float
    checked_at: datetime


class BalanceResult(BaseModel):
    available: bool
    remaining: float
    limit: float | None
    cached: bool
    checked_at: datetime
    # True when no real balance data was available and a placeholder was reported
    assumed: bool = False


class OpenRouterKeyData(BaseModel):
    limit: float | None = None
    usage: float = 0.0
    limit_remaining: float | None = None


class OpenRouterKeyResponse(BaseModel):
    data: OpenRouterKeyData
