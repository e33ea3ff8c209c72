"""Dispatcher: admits batches of pending notes under the concurrency ceiling."""

import asyncio
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import settings
from app.core.logging import get_logger
from app.database.models import NoteModel
from app.database.repositories import NoteRepository
from app.llm.config import AIRuntimeConfig, load_runtime_config
from app.llm.errors import DispatchTransientError
from app.llm.providers.base import get_provider
from app.llm.queue.metrics import DISPATCH_REQUESTS, JOBS_CLAIMED, JOBS_IN_PROGRESS
from app.llm.queue.types import AnalysisStatus, DispatchResult, DispatchStatus
from app.llm.queue.worker import AnalysisWorker, ProviderResolver

logger = get_logger(module="dispatcher")


class Dispatcher:
    """Starts analysis workers for pending notes.

    A trigger checks the enable flag, the ceiling and the backlog, then returns
    immediately while a detached batch loop claims up to ``batch_size`` notes,
    one every ``launch_interval`` seconds. Exclusivity between concurrent
    triggers comes from the atomic claim in the database, so a dispatcher keeps
    no lock of its own; the in-process task set only keeps detached tasks alive.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        max_concurrent: int | None = None,
        batch_size: int | None = None,
        launch_interval: float | None = None,
        provider_resolver: ProviderResolver = get_provider,
    ) -> None:
        self.session_factory = session_factory
        self.max_concurrent = (
            max_concurrent if max_concurrent is not None else settings.AI_MAX_CONCURRENT
        )
        self.batch_size = batch_size if batch_size is not None else settings.AI_BATCH_SIZE
        self.launch_interval = (
            launch_interval
            if launch_interval is not None
            else settings.AI_LAUNCH_INTERVAL_SECONDS
        )
        self.provider_resolver = provider_resolver
        self._tasks: set[asyncio.Task[Any]] = set()

    async def _count_in_progress(self) -> int:
        async with self.session_factory() as session:
            count = await NoteRepository(session).count_by_status(
                AnalysisStatus.IN_PROGRESS
            )
        JOBS_IN_PROGRESS.set(count)
        return count

    async def _has_pending(self) -> bool:
        async with self.session_factory() as session:
            return await NoteRepository(session).has_claimable()

    async def _claim(self) -> NoteModel | None:
        async with self.session_factory() as session:
            return await NoteRepository(session).claim_next_pending()

    async def _load_config(self) -> AIRuntimeConfig:
        async with self.session_factory() as session:
            return await load_runtime_config(session)

    def _track(self, task: asyncio.Task[Any]) -> None:
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    @staticmethod
    def _log_worker_result(task: asyncio.Task[Any]) -> None:
        if task.cancelled():
            logger.warning("worker_cancelled", task=task.get_name())
            return
        error = task.exception()
        if error is not None:
            logger.error(
                "worker_task_failed",
                task=task.get_name(),
                error=str(error),
                exc_info=error,
            )

    def _launch_worker(self, note: NoteModel, config: AIRuntimeConfig) -> None:
        worker = AnalysisWorker(
            self.session_factory, config, provider_resolver=self.provider_resolver
        )
        task = asyncio.create_task(
            worker.run(note), name=f"analysis-worker-{note.note_id}"
        )
        task.add_done_callback(self._log_worker_result)
        self._track(task)

    async def _iteration(self, index: int, config: AIRuntimeConfig) -> bool:
        """Run one launch step; False means the batch should stop."""
        try:
            in_progress = await self._count_in_progress()
        except Exception as e:
            raise DispatchTransientError(f"Counting in_progress notes failed: {e}") from e

        if in_progress >= self.max_concurrent:
            logger.info(
                "batch_ceiling_reached",
                iteration=index,
                in_progress=in_progress,
                ceiling=self.max_concurrent,
            )
            return False

        try:
            note = await self._claim()
        except Exception as e:
            raise DispatchTransientError(f"Claiming a note failed: {e}") from e

        if note is None:
            logger.info("batch_no_more_pending", iteration=index)
            return False

        JOBS_CLAIMED.labels(source="batch").inc()
        logger.info("job_claimed", note_id=note.note_id, iteration=index)
        self._launch_worker(note, config)
        return True

    async def _run_batch(self, config: AIRuntimeConfig) -> None:
        logger.info(
            "batch_started", batch_size=self.batch_size, interval=self.launch_interval
        )
        launched = 0
        for index in range(self.batch_size):
            try:
                if not await self._iteration(index, config):
                    break
                launched += 1
            except DispatchTransientError as e:
                logger.error("dispatch_iteration_failed", iteration=index, error=str(e))

            if index < self.batch_size - 1:
                await asyncio.sleep(self.launch_interval)
        logger.info("batch_finished", launched=launched)

    async def _evaluate(self) -> DispatchResult:
        config = await self._load_config()
        if not config.enabled:
            return DispatchResult(
                status=DispatchStatus.DISABLED,
                message="AI analysis is disabled",
            )

        in_progress = await self._count_in_progress()
        if in_progress >= self.max_concurrent:
            return DispatchResult(
                status=DispatchStatus.CEILING_REACHED,
                message="Concurrency ceiling reached",
                current_count=in_progress,
                ceiling=self.max_concurrent,
            )

        if not await self._has_pending():
            return DispatchResult(
                status=DispatchStatus.NOTHING_PENDING,
                message="No pending notes to analyze",
            )

        self._track(asyncio.create_task(self._run_batch(config), name="analysis-batch"))
        return DispatchResult(
            status=DispatchStatus.ACCEPTED,
            message="Batch accepted",
            batch_size=self.batch_size,
            current_in_progress=in_progress,
            ceiling=self.max_concurrent,
        )

    async def dispatch(self) -> DispatchResult:
        """Evaluate admission and start a batch when allowed. Never raises."""
        try:
            result = await self._evaluate()
        except Exception as e:
            logger.exception("dispatch_failed")
            result = DispatchResult(status=DispatchStatus.ERROR, message=str(e))

        DISPATCH_REQUESTS.labels(status=result.status.value).inc()
        logger.info(
            "dispatch_evaluated",
            status=result.status.value,
            current_in_progress=result.current_in_progress or result.current_count,
        )
        return result

    @property
    def active_tasks(self) -> int:
        """Number of batch loops and workers still running."""
        return len(self._tasks)

    async def wait_idle(self) -> None:
        """Wait until every batch loop and worker started here has finished.

        Workers launched by a batch that is still running are picked up too.
        """
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
