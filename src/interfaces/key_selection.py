from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from src.interfaces.errors import ErrorCode


class KeySource(str, Enum):
    """Origin of the credential, as reported in the x-key-source header."""

    managed = "free"
    user_supplied = "byok"
    none = "none"


class ServiceTier(str, Enum):
    paid_central = "paid-central"  # Managed key, zero data retention
    free = "free"  # Managed key, degraded model, telemetry may be collected
    user_supplied = "user-supplied"  # Caller's own key, no limits apply


class KeySelection(BaseModel):
    credential: str | None = Field(default=None, repr=False)
    source: KeySource
    tier: ServiceTier
    model_id: str
    zero_retention: bool = False
    remaining_today: int | None = None
    reset_at: datetime | None = None
    failure: ErrorCode | None = None
