from typing import Any

import httpx

from src.interfaces.balance import OpenRouterKeyData, OpenRouterKeyResponse
from src.utils.logger import setup_logger

logger = setup_logger(__name__)


class OpenRouterClient:
    """Thin wrapper over the OpenRouter endpoints the gateway needs."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        base_url: str,
        referer: str,
        title: str,
        completion_timeout: float,
        key_info_timeout: float,
    ):
        self.http_client = http_client
        self.base_url = base_url.rstrip("/")
        self.referer = referer
        self.title = title
        self.completion_timeout = completion_timeout
        self.key_info_timeout = key_info_timeout

    async def get_key_info(self, api_key: str) -> OpenRouterKeyData:
        """
        Fetch spending information for an API key.

        Raises:
            httpx.HTTPError: on transport errors, timeouts and non-2xx responses
            ValueError: if the response body doesn't have the expected format
        """
        response = await self.http_client.get(
            f"{self.base_url}/auth/key",
            headers={"Authorization": f"Bearer {api_key}"},
            timeout=self.key_info_timeout,
        )
        response.raise_for_status()
        try:
            return OpenRouterKeyResponse.model_validate(response.json()).data
        except ValueError as e:
            # pydantic.ValidationError and json.JSONDecodeError are both ValueErrors
            raise ValueError("Invalid response format from OpenRouter API") from e

    async def create_chat_completion(self, api_key: str, payload: dict[str, Any]) -> httpx.Response:
        """
        Send a chat completion request and return the raw upstream response, whatever its status.

        Raises:
            httpx.HTTPError: on transport errors and timeouts
        """
        return await self.http_client.post(
            f"{self.base_url}/chat/completions",
            json=payload,
            headers={
                "Authorization": f"Bearer {api_key}",
                "HTTP-Referer": self.referer,
                "X-Title": self.title,
            },
            timeout=self.completion_timeout,
        )
