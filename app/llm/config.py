"""Runtime AI configuration stored in the ``system_config`` table."""

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.database.repositories import SystemConfigRepository


class CONFIG_KEYS:  # noqa: N801
    """Keys of the AI rows in ``system_config``."""

    AI_MODEL = "ai_model"
    AI_ANALYSIS_ENABLED = "ai_analysis_enabled"
    AI_PROVIDER = "ai_provider"
    OPENROUTER_API_KEY = "openrouter_api_key"


AI_CONFIG_KEYS: tuple[str, ...] = (
    CONFIG_KEYS.AI_MODEL,
    CONFIG_KEYS.AI_ANALYSIS_ENABLED,
    CONFIG_KEYS.AI_PROVIDER,
    CONFIG_KEYS.OPENROUTER_API_KEY,
)

ALLOWED_MODELS: tuple[str, ...] = (
    "gemini-2.0-flash",
    "gemini-2.5-flash",
    "gemini-2.5-pro",
)

ALLOWED_PROVIDERS: tuple[str, ...] = ("chatai", "openrouter")

OPENROUTER_KEY_PREFIX = "sk-or-v1-"


@dataclass(frozen=True)
class AIRuntimeConfig:
    """Snapshot of the AI configuration for one dispatch or analysis call."""

    enabled: bool
    provider: str
    model: str
    openrouter_api_key: str | None = None


def validate_config_value(key: str, value: str) -> None:
    """Validate a value before it is written to ``system_config``.

    Raises:
        KeyError: If ``key`` is not an editable AI key
        ValueError: If ``value`` is not acceptable for ``key``
    """
    if key not in AI_CONFIG_KEYS:
        raise KeyError(key)

    if key == CONFIG_KEYS.AI_MODEL and value not in ALLOWED_MODELS:
        raise ValueError(f"Unsupported AI model: {value}")
    if key == CONFIG_KEYS.AI_ANALYSIS_ENABLED and value not in ("true", "false"):
        raise ValueError("ai_analysis_enabled must be 'true' or 'false'")
    if key == CONFIG_KEYS.AI_PROVIDER and value not in ALLOWED_PROVIDERS:
        raise ValueError(f"Unsupported AI provider: {value}")
    # Empty clears the key
    if (
        key == CONFIG_KEYS.OPENROUTER_API_KEY
        and value
        and not value.startswith(OPENROUTER_KEY_PREFIX)
    ):
        raise ValueError(
            f"OpenRouter API key must start with {OPENROUTER_KEY_PREFIX}"
        )


def mask_config_value(key: str, value: str) -> str:
    """Return a loggable form of a config value."""
    if key == CONFIG_KEYS.OPENROUTER_API_KEY and value:
        return f"{value[:15]}..."
    return value


async def load_runtime_config(session: AsyncSession) -> AIRuntimeConfig:
    """Read the AI configuration, falling back to settings for missing rows."""
    values = await SystemConfigRepository(session).get_values(AI_CONFIG_KEYS)

    api_key = (values.get(CONFIG_KEYS.OPENROUTER_API_KEY) or "").strip()
    return AIRuntimeConfig(
        enabled=values.get(CONFIG_KEYS.AI_ANALYSIS_ENABLED, "false").strip() == "true",
        provider=values.get(CONFIG_KEYS.AI_PROVIDER) or settings.AI_DEFAULT_PROVIDER,
        model=values.get(CONFIG_KEYS.AI_MODEL) or settings.AI_DEFAULT_MODEL,
        openrouter_api_key=api_key or settings.OPENROUTER_API_KEY,
    )
