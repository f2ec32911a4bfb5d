from pydantic import BaseModel, Field


class TurnstileVerifyResponse(BaseModel):
    """Body returned by the Cloudflare siteverify endpoint."""

    success: bool
    error_codes: list[str] = Field(default_factory=list, alias="error-codes")
    challenge_ts: str | None = None
    hostname: str | None = None


class TurnstileResult(BaseModel):
    success: bool
    reasons: list[str] = Field(default_factory=list)
    hostname: str | None = None
