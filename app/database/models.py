"""SQLAlchemy models for analyzed notes and system configuration."""

from datetime import datetime

from sqlalchemy import Column, DateTime, Index, String, Text

from app.llm.queue.types import AnalysisStatus

from .base import Base


class NoteModel(Base):
    """Content note queued for AI analysis.

    Rows are inserted by the ingestion side with ``ai_status = 'pending'``.
    The scheduler owns every status change after that.
    """

    __tablename__ = "note_info"

    note_id = Column(Text, primary_key=True, nullable=False)
    note_link = Column(Text, nullable=True)
    title = Column(Text, nullable=True)
    content = Column(Text, nullable=True)
    # Comma-separated image URLs
    images = Column(Text, nullable=True)
    video = Column(Text, nullable=True)

    ai_status = Column(
        String(32),
        nullable=False,
        default=AnalysisStatus.PENDING.value,
    )
    ai_content_type = Column(Text, nullable=True)
    ai_related_products = Column(Text, nullable=True)
    ai_summary = Column(Text, nullable=True)
    ai_json = Column(Text, nullable=True)
    ai_error = Column(Text, nullable=True)
    ai_error_type = Column(String(64), nullable=True)
    # Comma-separated ids of images flagged by the sensitivity check
    ai_filter_media_id = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    __table_args__ = (
        Index("ix_note_info_ai_status_created_at", "ai_status", "created_at"),
    )

    @property
    def has_link(self) -> bool:
        return bool(self.note_link and self.note_link.strip())

    @property
    def filtered_media_ids(self) -> set[str]:
        """Image ids excluded from analysis."""
        raw = self.ai_filter_media_id or ""
        return {i.strip() for i in raw.split(",") if i.strip()}

    @property
    def is_analyzed(self) -> bool:
        """Whether the note carries a written analysis result."""
        return self.ai_summary is not None and self.ai_content_type is not None

    def __repr__(self) -> str:
        return f"NoteModel(note_id={self.note_id!r}, ai_status={self.ai_status!r})"


class SystemConfigModel(Base):
    """Key/value runtime configuration edited from the dashboard."""

    __tablename__ = "system_config"

    config_key = Column(Text, primary_key=True, nullable=False)
    config_value = Column(Text, nullable=False, default="")
    config_desc = Column(Text, nullable=True)
    updated_at = Column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )
    updated_by = Column(Text, nullable=True)
