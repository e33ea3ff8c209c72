"""Analysis worker: runs one claimed note to a terminal state."""

import time
from collections.abc import Callable
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import settings
from app.core.logging import get_logger
from app.database.models import NoteModel
from app.database.repositories import NoteRepository
from app.llm.config import AIRuntimeConfig
from app.llm.errors import AnalysisError, ValidationError
from app.llm.media import collect_media_urls
from app.llm.parser import AnalysisResult, parse_analysis_response
from app.llm.prompts import build_note_analysis_prompt
from app.llm.providers.base import AnalysisProvider, get_provider
from app.llm.queue.metrics import JOBS_COMPLETED, PROVIDER_LATENCY, WORKERS_RUNNING
from app.llm.queue.types import AnalysisStatus, WorkerOutcome

logger = get_logger(module="analysis_worker")

ProviderResolver = Callable[[AIRuntimeConfig], AnalysisProvider]


@dataclass
class _Attempt:
    outcome: WorkerOutcome
    raw_block: str | None = None


class AnalysisWorker:
    """Runs a single analysis attempt for a note already in ``in_progress``.

    Every call to :meth:`run` ends with exactly one terminal write, either the
    parsed result with status ``analyzed`` or a diagnostic with status
    ``failed``. There are no retries; a failed note is requeued by resetting it.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        config: AIRuntimeConfig,
        provider_resolver: ProviderResolver = get_provider,
        max_images: int | None = None,
    ) -> None:
        """Initialize worker.

        Args:
            session_factory: Factory for the session used by the terminal write
            config: AI configuration snapshot taken when the note was claimed
            provider_resolver: Builds the provider named in ``config``
            max_images: Image cap per note (default: ``AI_MAX_IMAGES``)
        """
        self.session_factory = session_factory
        self.config = config
        self.provider_resolver = provider_resolver
        self.max_images = (
            max_images if max_images is not None else settings.AI_MAX_IMAGES
        )

    async def _analyze(self, note: NoteModel) -> AnalysisResult:
        if not note.has_link:
            raise ValidationError("Note has no link and cannot be analyzed")

        prompt = build_note_analysis_prompt(note)
        media = collect_media_urls(note, self.max_images)
        provider = self.provider_resolver(self.config)

        logger.info(
            "worker_calling_provider",
            note_id=note.note_id,
            provider=provider.name,
            model=self.config.model,
            media_count=len(media),
        )
        started = time.perf_counter()
        try:
            content = await provider.analyze(prompt, media, self.config.model)
        finally:
            PROVIDER_LATENCY.labels(provider=provider.name).observe(
                time.perf_counter() - started
            )
        return parse_analysis_response(content)

    async def _attempt(self, note: NoteModel) -> _Attempt:
        try:
            result = await self._analyze(note)
        except AnalysisError as e:
            logger.warning(
                "worker_failed",
                note_id=note.note_id,
                error_type=type(e).__name__,
                error=str(e),
            )
            return _Attempt(
                WorkerOutcome(
                    note_id=note.note_id,
                    status=AnalysisStatus.FAILED,
                    error=str(e),
                    error_type=type(e).__name__,
                )
            )
        except Exception as e:
            logger.exception("worker_unexpected_error", note_id=note.note_id)
            return _Attempt(
                WorkerOutcome(
                    note_id=note.note_id,
                    status=AnalysisStatus.FAILED,
                    error=str(e) or type(e).__name__,
                    error_type=type(e).__name__,
                )
            )

        return _Attempt(
            WorkerOutcome(
                note_id=note.note_id,
                status=AnalysisStatus.ANALYZED,
                content_type=result.content_type,
                related_products=result.related_products,
                summary=result.summary,
            ),
            raw_block=result.raw_block,
        )

    async def _write(self, note: NoteModel, attempt: _Attempt) -> bool:
        outcome = attempt.outcome
        async with self.session_factory() as session:
            repository = NoteRepository(session)
            if outcome.succeeded:
                return await repository.mark_analyzed(
                    outcome.note_id,
                    content_type=outcome.content_type or "",
                    related_products=outcome.related_products or "",
                    summary=outcome.summary or "",
                    raw_block=attempt.raw_block,
                    claimed_at=note.updated_at,
                )
            return await repository.mark_failed(
                outcome.note_id,
                outcome.error or "",
                error_type=outcome.error_type,
                claimed_at=note.updated_at,
            )

    async def run(self, note: NoteModel) -> WorkerOutcome:
        """Analyze ``note`` and persist its terminal state.

        The write only lands while the note is still held by the claim that
        handed it to this worker; after a reset and a new claim the result is
        discarded.

        Returns:
            The outcome of the attempt

        Raises:
            Exception: Only when the terminal write itself fails
        """
        WORKERS_RUNNING.inc()
        try:
            attempt = await self._attempt(note)
            try:
                written = await self._write(note, attempt)
            except Exception:
                logger.exception(
                    "worker_terminal_write_failed",
                    note_id=note.note_id,
                    status=attempt.outcome.status.value,
                )
                raise
        finally:
            WORKERS_RUNNING.dec()

        if not written:
            JOBS_COMPLETED.labels(status="discarded").inc()
            logger.warning(
                "worker_result_discarded",
                note_id=note.note_id,
                status=attempt.outcome.status.value,
            )
            return attempt.outcome

        JOBS_COMPLETED.labels(status=attempt.outcome.status.value).inc()
        logger.info(
            "worker_finished",
            note_id=note.note_id,
            status=attempt.outcome.status.value,
        )
        return attempt.outcome
