from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from src.interfaces.key_selection import ServiceTier


class ChatMessage(BaseModel):
    role: Literal["user", "assistant", "system"]
    content: str = Field(strict=True)


class AnalyzeRequest(BaseModel):
    """Chat completion request sent by the browser, plus proofs and optional credentials."""

    model: str = Field(strict=True)
    messages: list[ChatMessage] = Field(min_length=1)
    temperature: float | None = None
    max_tokens: int | None = None
    turnstileToken: str | None = None
    sessionToken: str | None = None
    userApiKey: str | None = None
    fallbackApiKey: str | None = None

    @field_validator("model")
    def validate_model(cls, value: str):
        value = value.strip()
        if not value:
            raise ValueError("model must be a non-empty string")
        return value

    @field_validator("turnstileToken", "sessionToken", "userApiKey", "fallbackApiKey")
    def strip_optional(cls, value: str | None):
        if value is None:
            return None
        return value.strip() or None


class SessionRequest(BaseModel):
    turnstileToken: str | None = None


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SessionResponse(_CamelModel):
    success: bool = True
    session_token: str
    expires_in: int


class StatusResponse(_CamelModel):
    """Public free tier status, never carries dollar balances."""

    free_available: bool
    daily_remaining: int | None
    daily_limit: int | None
    balance_known: bool
    reset_at: datetime
    tier: ServiceTier
    zero_retention_enabled: bool
    turnstile_required: bool


class HealthResponse(BaseModel):
    status: Literal["ok"] = "ok"
    timestamp: datetime
