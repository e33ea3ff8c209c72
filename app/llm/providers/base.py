"""Provider interface and lookup for the analysis backends."""

from collections.abc import Callable, Sequence
from typing import Protocol, runtime_checkable

from app.llm.config import AIRuntimeConfig


@runtime_checkable
class AnalysisProvider(Protocol):
    """A multimodal chat backend that turns one prompt into raw reply text.

    Implementations hold no state shared between calls. Any non-success
    outcome is reported by raising ``ProviderError``.
    """

    name: str

    async def analyze(self, prompt: str, images: Sequence[str], model: str) -> str:
        """Send one user turn (text followed by images) and return the reply text.

        Args:
            prompt: Instruction text
            images: Image or video URLs attached after the text
            model: Model identifier as configured (e.g. ``gemini-2.5-flash``)

        Returns:
            The raw text of the model reply

        Raises:
            ProviderError: If the backend call fails
        """
        ...


ProviderFactory = Callable[[AIRuntimeConfig], AnalysisProvider]


def _builtin_factories() -> dict[str, ProviderFactory]:
    from app.llm.providers.chatai import ChatAIProvider
    from app.llm.providers.openrouter import OpenRouterProvider

    return {
        ChatAIProvider.name: ChatAIProvider.from_config,
        OpenRouterProvider.name: OpenRouterProvider.from_config,
    }


def available_providers() -> list[str]:
    """Tags of the supported providers."""
    return sorted(_builtin_factories())


def get_provider(config: AIRuntimeConfig) -> AnalysisProvider:
    """Build the provider selected by ``config.provider``.

    Raises:
        ValueError: If no provider is known under that tag
    """
    factories = _builtin_factories()
    factory = factories.get(config.provider)
    if factory is None:
        raise ValueError(
            f"Unsupported AI provider: {config.provider}. "
            f"Supported providers: {', '.join(sorted(factories))}"
        )
    return factory(config)
