"""ChatAI backend: an OpenAI-compatible chat-completions endpoint called over HTTP."""

from collections.abc import Sequence
from typing import Any

import httpx

from app.core.config import settings
from app.core.logging import get_logger
from app.llm.config import AIRuntimeConfig
from app.llm.errors import ProviderError
from app.llm.providers.types import build_user_message, extract_message_text

logger = get_logger(module="chatai_provider")


class ChatAIProvider:
    """Calls the ChatAI endpoint with a bearer token."""

    name = "chatai"

    def __init__(
        self,
        api_url: str,
        api_token: str | None,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the provider

        Args:
            api_url: Full URL of the chat-completions endpoint
            api_token: Bearer token
            timeout: Request timeout in seconds
            transport: Optional transport, used to stub the network in tests
        """
        self.api_url = api_url
        self.api_token = api_token
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_config(cls, config: AIRuntimeConfig) -> "ChatAIProvider":
        return cls(
            api_url=settings.CHATAI_API_URL,
            api_token=settings.CHATAI_API_TOKEN,
            timeout=settings.AI_REQUEST_TIMEOUT,
        )

    def _headers(self) -> dict[str, str]:
        if not self.api_token:
            raise ProviderError("ChatAI API token is not configured")
        return {
            "Authorization": f"Bearer {self.api_token}",
            "Content-Type": "application/json",
        }

    async def analyze(self, prompt: str, images: Sequence[str], model: str) -> str:
        payload: dict[str, Any] = {
            "model": model,
            "messages": [build_user_message(prompt, images)],
        }
        headers = self._headers()

        logger.debug("chatai_request", model=model, image_count=len(images))
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.post(self.api_url, json=payload, headers=headers)
        except httpx.TimeoutException as e:
            raise ProviderError(f"ChatAI request timed out: {e}") from e
        except httpx.HTTPError as e:
            raise ProviderError(f"ChatAI request failed: {e}") from e

        if not response.is_success:
            logger.warning(
                "chatai_error_status",
                status_code=response.status_code,
                body=response.text[:500],
            )
            raise ProviderError(
                f"ChatAI returned status {response.status_code}: {response.text}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as e:
            raise ProviderError(f"ChatAI response is not valid JSON: {e}") from e

        return extract_message_text(body, "ChatAI")
