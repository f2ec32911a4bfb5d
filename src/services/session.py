from datetime import datetime
from typing import Callable

import jwt

from src.interfaces.session import SessionVerification
from src.utils.logger import setup_logger
from src.utils.time import utc_now

logger = setup_logger(__name__)

SESSION_ALGORITHM = "HS256"
SESSION_LIFETIME_SECONDS = 180
CLOCK_SKEW_SECONDS = 30
MIN_SECRET_LENGTH = 32


class WeakSecretError(ValueError):
    pass


class SessionTokenIssuer:
    """
    Stateless session tokens letting one Turnstile verification cover all the parallel requests of
    an analysis.

    Tokens are HS256 JWTs whose payload only holds `iat` and `exp`. There is no server-side record
    and no revocation: a token is valid until it expires.
    """

    def __init__(
        self,
        secret: str | None,
        lifetime_seconds: int = SESSION_LIFETIME_SECONDS,
        clock_skew_seconds: int = CLOCK_SKEW_SECONDS,
        now: Callable[[], datetime] = utc_now,
    ):
        self.secret = secret or ""
        self.lifetime_seconds = lifetime_seconds
        self.clock_skew_seconds = clock_skew_seconds
        self._now = now

    @property
    def configured(self) -> bool:
        return len(self.secret) >= MIN_SECRET_LENGTH

    def __timestamp(self) -> int:
        return int(self._now().timestamp())

    def mint(self) -> str:
        """Create a signed session token valid for `lifetime_seconds`."""
        if not self.configured:
            raise WeakSecretError(f"Session secret must be at least {MIN_SECRET_LENGTH} characters")

        issued_at = self.__timestamp()
        payload = {"iat": issued_at, "exp": issued_at + self.lifetime_seconds}
        return jwt.encode(payload, self.secret, algorithm=SESSION_ALGORITHM)

    def verify(self, token: str) -> SessionVerification:
        if not self.configured:
            return SessionVerification(valid=False, reason="Session tokens are not configured")

        try:
            # Timestamps are checked below against the injected clock, with skew in both directions
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[SESSION_ALGORITHM],
                options={"verify_exp": False, "verify_iat": False, "require": ["iat", "exp"]},
            )
        except jwt.InvalidSignatureError:
            return SessionVerification(valid=False, reason="Invalid signature")
        except jwt.MissingRequiredClaimError:
            return SessionVerification(valid=False, reason="Invalid token payload")
        except jwt.DecodeError:
            return SessionVerification(valid=False, reason="Invalid token format")
        except jwt.InvalidTokenError as e:
            logger.debug(f"Session token verification error: {str(e)}")
            return SessionVerification(valid=False, reason="Token verification failed")

        issued_at = payload.get("iat")
        expires_at = payload.get("exp")
        if not isinstance(issued_at, int) or not isinstance(expires_at, int):
            return SessionVerification(valid=False, reason="Invalid token payload")

        now = self.__timestamp()
        if expires_at < now - self.clock_skew_seconds:
            return SessionVerification(
                valid=False, reason="Token expired", issued_at=issued_at, expires_at=expires_at
            )
        if issued_at > now + self.clock_skew_seconds:
            return SessionVerification(
                valid=False, reason="Token issued in the future", issued_at=issued_at, expires_at=expires_at
            )

        return SessionVerification(valid=True, issued_at=issued_at, expires_at=expires_at)
