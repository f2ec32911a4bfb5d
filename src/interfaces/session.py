from pydantic import BaseModel


class SessionVerification(BaseModel):
    valid: bool
    reason: str | None = None
    issued_at: int | None = None
    expires_at: int | None = None
