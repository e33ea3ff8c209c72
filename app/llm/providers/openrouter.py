"""OpenRouter backend, reached through the OpenAI SDK."""

import json
from collections.abc import Sequence
from typing import Any, cast

from openai import AsyncOpenAI, OpenAIError

from app.core.config import settings
from app.core.logging import get_logger
from app.llm.config import ALLOWED_MODELS, AIRuntimeConfig
from app.llm.errors import ProviderError
from app.llm.providers.types import build_user_message

logger = get_logger(module="openrouter_provider")

MODEL_NAMESPACE = "google/"
DEFAULT_OPENROUTER_MODEL = "google/gemini-2.5-flash"


def normalize_openrouter_model(model: str) -> str:
    """Map a bare model name to its OpenRouter identifier.

    Already namespaced names pass through; unknown bare names fall back to
    ``google/gemini-2.5-flash``.
    """
    if model.startswith(MODEL_NAMESPACE):
        return model
    if model in ALLOWED_MODELS:
        return f"{MODEL_NAMESPACE}{model}"
    logger.warning(
        "unknown_model_name", model=model, fallback=DEFAULT_OPENROUTER_MODEL
    )
    return DEFAULT_OPENROUTER_MODEL


def _extract_error_message(error: Any) -> str:
    """Extract a readable message from an OpenRouter error payload.

    OpenRouter nests the upstream provider's error as a JSON string under
    ``metadata.raw``; prefer that when present.
    """
    if not isinstance(error, dict):
        return str(error)

    metadata = error.get("metadata")
    if isinstance(metadata, dict) and "raw" in metadata:
        try:
            raw = json.loads(metadata["raw"])
            return str(raw["error"]["message"])
        except (json.JSONDecodeError, KeyError, TypeError):
            pass

    if "message" in error:
        return str(error["message"])
    nested = error.get("error")
    if isinstance(nested, dict) and "message" in nested:
        return str(nested["message"])
    return str(error)


class OpenRouterProvider:
    """Calls OpenRouter with a client built for each request."""

    name = "openrouter"

    def __init__(
        self,
        api_key: str | None,
        base_url: str = "https://openrouter.ai/api/v1",
        headers: dict[str, str] | None = None,
        timeout: float = 60.0,
    ) -> None:
        """Initialize the provider

        Args:
            api_key: OpenRouter API key
            base_url: Base URL for API endpoint
            headers: Additional HTTP headers
            timeout: Request timeout in seconds
        """
        self.api_key = api_key
        self.base_url = base_url
        self.headers = headers or {}
        self.timeout = timeout

    @classmethod
    def from_config(cls, config: AIRuntimeConfig) -> "OpenRouterProvider":
        return cls(
            api_key=config.openrouter_api_key,
            base_url=settings.OPENROUTER_BASE_URL,
            headers={
                "HTTP-Referer": settings.OPENROUTER_REFERER,
                "X-Title": settings.OPENROUTER_TITLE,
            },
            timeout=settings.AI_REQUEST_TIMEOUT,
        )

    def _client(self) -> AsyncOpenAI:
        if not self.api_key:
            raise ProviderError("OpenRouter API key is not configured")
        return AsyncOpenAI(
            api_key=self.api_key,
            base_url=self.base_url,
            default_headers=self.headers,
            timeout=self.timeout,
        )

    async def analyze(self, prompt: str, images: Sequence[str], model: str) -> str:
        openrouter_model = normalize_openrouter_model(model)
        messages = cast(Any, [build_user_message(prompt, images)])

        logger.debug(
            "openrouter_request", model=openrouter_model, image_count=len(images)
        )
        client = self._client()
        try:
            result = await client.chat.completions.create(
                model=openrouter_model,
                messages=messages,
            )
        except OpenAIError as e:
            logger.warning("openrouter_call_failed", error=str(e))
            raise ProviderError(
                f"OpenRouter request failed: {e}",
                status_code=getattr(e, "status_code", None),
            ) from e
        finally:
            await client.close()

        # OpenRouter can report upstream failures inside a 200 response
        error = getattr(result, "error", None)
        if error:
            raise ProviderError(f"OpenRouter error: {_extract_error_message(error)}")

        if not result.choices or not result.choices[0].message:
            raise ProviderError("OpenRouter returned no choices")

        return str(result.choices[0].message.content or "")
