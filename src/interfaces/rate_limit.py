from datetime import datetime

from pydantic import BaseModel


class DailyCounter(BaseModel):
    """Request tally stored in the key-value store, one entry per UTC day."""

    count: int
    date: str  # YYYY-MM-DD


class RateLimitResult(BaseModel):
    allowed: bool
    remaining: int | None  # None when limiting is disabled (unlimited)
    limit: int | None
    reset_at: datetime
