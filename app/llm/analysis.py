"""On-demand analysis entry points: one note, or one image."""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.logging import get_logger
from app.database.repositories import NoteRepository
from app.llm.config import AIRuntimeConfig, load_runtime_config
from app.llm.errors import (
    NoteNotClaimableError,
    NoteNotFoundError,
    ProviderError,
    ValidationError,
)
from app.llm.media import extract_image_id, normalize_url
from app.llm.parser import UNSAFE, parse_sensitivity_response
from app.llm.prompts import build_image_check_prompt
from app.llm.providers.base import get_provider
from app.llm.queue.metrics import JOBS_CLAIMED
from app.llm.queue.types import WorkerOutcome
from app.llm.queue.worker import AnalysisWorker, ProviderResolver

logger = get_logger(module="analysis")


async def analyze_note(
    session_factory: async_sessionmaker[AsyncSession],
    note_id: str,
    provider_resolver: ProviderResolver = get_provider,
) -> WorkerOutcome:
    """Claim one identified note and run its analysis inline.

    Pending and failed notes can be claimed; the enable flag is not consulted
    since the call is an explicit operator action.

    Raises:
        NoteNotFoundError: If the note does not exist
        ValidationError: If the note has no link
        NoteNotClaimableError: If the note is in any other status
    """
    async with session_factory() as session:
        repository = NoteRepository(session)
        existing = await repository.get_by_id(note_id)
        if existing is None:
            raise NoteNotFoundError(note_id)
        if not existing.has_link:
            raise ValidationError("Note has no link and cannot be analyzed")
        config = await load_runtime_config(session)

    async with session_factory() as session:
        note = await NoteRepository(session).claim_note(note_id)
    if note is None:
        raise NoteNotClaimableError(
            f"Note {note_id} is not pending or failed and cannot be claimed"
        )

    JOBS_CLAIMED.labels(source="single").inc()
    logger.info("job_claimed", note_id=note_id, source="single")
    worker = AnalysisWorker(session_factory, config, provider_resolver=provider_resolver)
    return await worker.run(note)


def _unsafe(response: dict[str, object], error: str) -> dict[str, object]:
    response.update(
        description=UNSAFE.description,
        is_sensitive=UNSAFE.is_sensitive,
        error=error,
    )
    return response


async def check_image_sensitive(
    image_url: str,
    config: AIRuntimeConfig,
    provider_resolver: ProviderResolver = get_provider,
) -> dict[str, object]:
    """Describe one image; anything other than a clean description is sensitive.

    Raises:
        ValueError: If ``image_url`` is not an http(s) URL
    """
    normalized = normalize_url(image_url)
    if normalized is None:
        raise ValueError("image_url must be an http(s) URL")

    response: dict[str, object] = {
        "image_url": normalized,
        "image_id": extract_image_id(normalized),
    }
    try:
        provider = provider_resolver(config)
        content = await provider.analyze(
            build_image_check_prompt(), [normalized], config.model
        )
    except (ProviderError, ValueError) as e:
        logger.warning("image_check_failed", image_url=normalized, error=str(e))
        return _unsafe(response, str(e))
    except Exception as e:
        logger.exception("image_check_unexpected_error", image_url=normalized)
        return _unsafe(response, str(e) or type(e).__name__)

    result = parse_sensitivity_response(content)
    response.update(description=result.description, is_sensitive=result.is_sensitive)
    logger.info(
        "image_checked", image_id=response["image_id"], is_sensitive=result.is_sensitive
    )
    return response
