"""Manual recovery of stuck or failed analysis jobs."""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.logging import get_logger
from app.database.repositories import NoteRepository
from app.llm.queue.types import AnalysisStatus

logger = get_logger(module="recovery")


async def reset_jobs(
    session_factory: async_sessionmaker[AsyncSession], status: AnalysisStatus | str
) -> int:
    """Requeue every note in ``status`` (in_progress or failed) to pending.

    Running it twice is harmless: the second call matches no rows.

    Raises:
        ValueError: If ``status`` is not in_progress or failed
    """
    target = AnalysisStatus(status)
    async with session_factory() as session:
        count = await NoteRepository(session).reset_status(target)
    logger.info("jobs_reset", status=target.value, count=count)
    return count


async def reset_job(
    session_factory: async_sessionmaker[AsyncSession], note_id: str
) -> bool:
    """Requeue one in_progress or failed note; False if nothing was reset."""
    async with session_factory() as session:
        reset = await NoteRepository(session).reset_note(note_id)
    logger.info("job_reset", note_id=note_id, reset=reset)
    return reset
