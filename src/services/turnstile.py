import httpx

from src.interfaces.turnstile import TurnstileResult, TurnstileVerifyResponse
from src.utils.logger import setup_logger

logger = setup_logger(__name__)

TURNSTILE_VERIFY_URL = "https://challenges.cloudflare.com/turnstile/v0/siteverify"

# Same reason for a missing token and a rejected one
VERIFICATION_FAILED = "verification-failed"
INTERNAL_ERROR = "internal-error"


class BotVerifier:
    """
    Validates Cloudflare Turnstile tokens.

    The caller's IP address is never sent to Cloudflare (no `remoteip` field), and upstream error
    details only ever reach the logs.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        enabled: bool,
        secret_key: str | None,
        verify_url: str = TURNSTILE_VERIFY_URL,
        timeout: float = 10.0,
    ):
        self.http_client = http_client
        self.enabled = enabled
        self.secret_key = secret_key
        self.verify_url = verify_url
        self.timeout = timeout

    async def verify(self, token: str | None) -> TurnstileResult:
        if not self.enabled:
            return TurnstileResult(success=True)

        if not token:
            return TurnstileResult(success=False, reasons=[VERIFICATION_FAILED])

        if not self.secret_key:
            logger.error("Turnstile is enabled but TURNSTILE_SECRET_KEY is not configured")
            return TurnstileResult(success=False, reasons=[INTERNAL_ERROR])

        try:
            response = await self.http_client.post(
                self.verify_url,
                data={"secret": self.secret_key, "response": token},
                timeout=self.timeout,
            )
            if not response.is_success:
                logger.error(f"Turnstile verification failed with status: {response.status_code}")
                return TurnstileResult(success=False, reasons=[INTERNAL_ERROR])

            result = TurnstileVerifyResponse.model_validate(response.json())
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Turnstile verification error: {str(e)}")
            return TurnstileResult(success=False, reasons=[INTERNAL_ERROR])

        if not result.success:
            logger.debug(f"Turnstile token rejected: {result.error_codes}")
            return TurnstileResult(success=False, reasons=result.error_codes or [VERIFICATION_FAILED])

        return TurnstileResult(success=True, hostname=result.hostname)
