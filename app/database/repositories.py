"""Repository pattern for database operations."""

from abc import ABC
from datetime import datetime
from typing import Any, Generic, Optional, Sequence, TypeVar

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

from app.llm.queue.types import RESETTABLE_STATUSES, AnalysisStats, AnalysisStatus

from .models import NoteModel, SystemConfigModel

ModelType = TypeVar("ModelType")


class BaseRepository(ABC, Generic[ModelType]):
    """Base repository for common database operations."""

    def __init__(self, session: AsyncSession, model: type[ModelType]):
        self.session = session
        self.model = model

    async def get_by_id(self, id: Any) -> Optional[ModelType]:
        """Get entity by primary key."""
        result = await self.session.get(self.model, id)
        return result

    async def get_all(
        self,
        skip: int = 0,
        limit: int = 100,
        filters: Optional[dict[str, Any]] = None,
    ) -> Sequence[ModelType]:
        """Get all entities with optional filtering."""
        query = select(self.model)

        # Apply filters
        if filters:
            for key, value in filters.items():
                if hasattr(self.model, key):
                    query = query.filter(getattr(self.model, key) == value)

        query = query.offset(skip).limit(limit)

        result = await self.session.execute(query)
        return result.scalars().all()

    async def count(self, filters: Optional[dict[str, Any]] = None) -> int:
        """Count entities with optional filtering."""
        query = select(func.count()).select_from(self.model)

        # Apply filters
        if filters:
            for key, value in filters.items():
                if hasattr(self.model, key):
                    query = query.filter(getattr(self.model, key) == value)

        result = await self.session.execute(query)
        return result.scalar() or 0

    async def create(self, **kwargs: Any) -> ModelType:
        """Create new entity."""
        instance = self.model(**kwargs)
        self.session.add(instance)
        await self.session.commit()
        await self.session.refresh(instance)
        return instance


def _has_link() -> ColumnElement[bool]:
    return and_(
        NoteModel.note_link.is_not(None),
        func.trim(NoteModel.note_link) != "",
    )


def _missing_link() -> ColumnElement[bool]:
    return or_(
        NoteModel.note_link.is_(None),
        func.trim(NoteModel.note_link) == "",
    )


# Result columns cleared whenever a note enters or leaves the in-progress state
_CLEARED_RESULT: dict[str, None] = {
    "ai_content_type": None,
    "ai_related_products": None,
    "ai_summary": None,
    "ai_json": None,
}


class NoteRepository(BaseRepository[NoteModel]):
    """Job store operations on the ``note_info`` table.

    Every status transition is a single conditional UPDATE so concurrent
    dispatch cycles never need an in-process lock.
    """

    def __init__(self, session: AsyncSession):
        super().__init__(session, NoteModel)

    async def count_by_status(self, status: AnalysisStatus) -> int:
        """Count notes currently in ``status``."""
        return await self.count({"ai_status": status.value})

    async def has_claimable(self) -> bool:
        """Whether at least one pending note with a link exists."""
        query = (
            select(NoteModel.note_id)
            .where(NoteModel.ai_status == AnalysisStatus.PENDING.value, _has_link())
            .limit(1)
        )
        result = await self.session.execute(query)
        return result.first() is not None

    async def claim_next_pending(self) -> Optional[NoteModel]:
        """Atomically move the oldest claimable note to ``in_progress``.

        Returns:
            The claimed note, or None when nothing is claimable or a concurrent
            caller won the row.
        """
        candidate = (
            select(NoteModel.note_id)
            .where(NoteModel.ai_status == AnalysisStatus.PENDING.value, _has_link())
            .order_by(NoteModel.created_at, NoteModel.note_id)
            .limit(1)
            .with_for_update(skip_locked=True)
            .scalar_subquery()
        )
        stmt = (
            update(NoteModel)
            .where(
                NoteModel.note_id == candidate,
                NoteModel.ai_status == AnalysisStatus.PENDING.value,
            )
            .values(
                ai_status=AnalysisStatus.IN_PROGRESS.value,
                ai_error=None,
                ai_error_type=None,
                updated_at=datetime.utcnow(),
                **_CLEARED_RESULT,
            )
            .returning(NoteModel)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        note = result.scalars().first()
        await self.session.commit()
        return note

    async def claim_note(self, note_id: str) -> Optional[NoteModel]:
        """Compare-and-swap one identified note into ``in_progress``.

        Only pending or failed notes that carry a link can be claimed this way.
        """
        stmt = (
            update(NoteModel)
            .where(
                NoteModel.note_id == note_id,
                NoteModel.ai_status.in_(
                    [AnalysisStatus.PENDING.value, AnalysisStatus.FAILED.value]
                ),
                _has_link(),
            )
            .values(
                ai_status=AnalysisStatus.IN_PROGRESS.value,
                ai_error=None,
                ai_error_type=None,
                updated_at=datetime.utcnow(),
                **_CLEARED_RESULT,
            )
            .returning(NoteModel)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        note = result.scalars().first()
        await self.session.commit()
        return note

    def _owned_by_claim(
        self, note_id: str, claimed_at: Optional[datetime]
    ) -> list[ColumnElement[bool]]:
        """Match a note still held by the claim that produced ``claimed_at``.

        A reset followed by a new claim moves ``updated_at`` on, so a worker
        left over from the earlier claim no longer matches.
        """
        conditions = [
            NoteModel.note_id == note_id,
            NoteModel.ai_status == AnalysisStatus.IN_PROGRESS.value,
        ]
        if claimed_at is not None:
            conditions.append(NoteModel.updated_at == claimed_at)
        return conditions

    async def mark_analyzed(
        self,
        note_id: str,
        *,
        content_type: str,
        related_products: str,
        summary: str,
        raw_block: str | None = None,
        claimed_at: Optional[datetime] = None,
    ) -> bool:
        """Write a successful analysis result.

        Returns:
            False when the note is no longer held by this claim
        """
        stmt = (
            update(NoteModel)
            .where(*self._owned_by_claim(note_id, claimed_at))
            .values(
                ai_status=AnalysisStatus.ANALYZED.value,
                ai_content_type=content_type,
                ai_related_products=related_products,
                ai_summary=summary,
                ai_json=raw_block,
                ai_error=None,
                ai_error_type=None,
                updated_at=datetime.utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        await self.session.commit()
        return bool(result.rowcount)

    async def mark_failed(
        self,
        note_id: str,
        error: str,
        error_type: Optional[str] = None,
        claimed_at: Optional[datetime] = None,
    ) -> bool:
        """Write a failure diagnostic and drop any partial result.

        Returns:
            False when the note is no longer held by this claim
        """
        stmt = (
            update(NoteModel)
            .where(*self._owned_by_claim(note_id, claimed_at))
            .values(
                ai_status=AnalysisStatus.FAILED.value,
                ai_error=error,
                ai_error_type=error_type,
                updated_at=datetime.utcnow(),
                **_CLEARED_RESULT,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        await self.session.commit()
        return bool(result.rowcount)

    async def update_filtered_media(
        self, note_id: str, media_ids: Sequence[str]
    ) -> Optional[str]:
        """Replace the flagged image ids of a note.

        Ids are stripped and de-duplicated in order; an empty list clears the
        column.

        Returns:
            The stored comma-separated ids (empty string when cleared), or
            None if the note does not exist
        """
        unique: list[str] = []
        for media_id in media_ids:
            cleaned = media_id.strip()
            if cleaned and cleaned not in unique:
                unique.append(cleaned)
        stored = ",".join(unique) or None

        stmt = (
            update(NoteModel)
            .where(NoteModel.note_id == note_id)
            .values(ai_filter_media_id=stored)
            .returning(NoteModel.note_id)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        matched = result.scalar_one_or_none()
        await self.session.commit()
        if matched is None:
            return None
        return stored or ""

    async def reset_status(self, status: AnalysisStatus) -> int:
        """Requeue every note in ``status`` to pending.

        Raises:
            ValueError: If ``status`` is not in_progress or failed

        Returns:
            Number of notes requeued
        """
        if status not in RESETTABLE_STATUSES:
            raise ValueError(
                f"Only in_progress or failed notes can be reset, got {status.value!r}"
            )
        stmt = (
            update(NoteModel)
            .where(NoteModel.ai_status == status.value)
            .values(
                ai_status=AnalysisStatus.PENDING.value,
                ai_error=None,
                ai_error_type=None,
                updated_at=datetime.utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        await self.session.commit()
        return int(result.rowcount or 0)

    async def reset_note(self, note_id: str) -> bool:
        """Requeue one in_progress or failed note; False if nothing matched."""
        stmt = (
            update(NoteModel)
            .where(
                NoteModel.note_id == note_id,
                NoteModel.ai_status.in_([s.value for s in RESETTABLE_STATUSES]),
            )
            .values(
                ai_status=AnalysisStatus.PENDING.value,
                ai_error=None,
                ai_error_type=None,
                updated_at=datetime.utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        await self.session.commit()
        return bool(result.rowcount)

    async def stats(self) -> AnalysisStats:
        """Count notes per status.

        Notes without a link are reported as ``no_content`` and left out of
        ``pending``, since they can never be claimed.
        """
        grouped = await self.session.execute(
            select(NoteModel.ai_status, func.count()).group_by(NoteModel.ai_status)
        )
        by_status = {str(status): int(count) for status, count in grouped.all()}

        claimable = await self.session.execute(
            select(func.count())
            .select_from(NoteModel)
            .where(NoteModel.ai_status == AnalysisStatus.PENDING.value, _has_link())
        )
        no_content = await self.session.execute(
            select(func.count()).select_from(NoteModel).where(_missing_link())
        )

        return AnalysisStats(
            pending=int(claimable.scalar() or 0),
            in_progress=by_status.get(AnalysisStatus.IN_PROGRESS.value, 0),
            failed=by_status.get(AnalysisStatus.FAILED.value, 0),
            analyzed=by_status.get(AnalysisStatus.ANALYZED.value, 0),
            no_content=int(no_content.scalar() or 0),
            total=sum(by_status.values()),
        )


class SystemConfigRepository(BaseRepository[SystemConfigModel]):
    """Repository for ``system_config`` key/value rows."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, SystemConfigModel)

    async def get_value(self, key: str) -> Optional[str]:
        """Get a config value, or None when the key has no row."""
        row = await self.get_by_id(key)
        return row.config_value if row is not None else None

    async def get_values(self, keys: Sequence[str]) -> dict[str, str]:
        """Get the values of ``keys`` that have rows."""
        result = await self.session.execute(
            select(SystemConfigModel).where(SystemConfigModel.config_key.in_(keys))
        )
        return {row.config_key: row.config_value for row in result.scalars().all()}

    async def set_value(
        self, key: str, value: str, updated_by: str | None = None
    ) -> SystemConfigModel:
        """Insert or update one config row."""
        row = await self.get_by_id(key)
        if row is None:
            row = SystemConfigModel(
                config_key=key, config_value=value, updated_by=updated_by
            )
            self.session.add(row)
        else:
            row.config_value = value
            row.updated_by = updated_by
            row.updated_at = datetime.utcnow()
        await self.session.commit()
        await self.session.refresh(row)
        return row
