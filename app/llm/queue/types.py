"""Shared scheduler types and models."""

from enum import Enum

from pydantic import BaseModel


class AnalysisStatus(str, Enum):
    """Value of the ``ai_status`` column of a note."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    FAILED = "failed"
    NO_CONTENT = "no_content"
    ANALYZED = "analyzed"


# Statuses an operator may requeue to pending
RESETTABLE_STATUSES: frozenset[AnalysisStatus] = frozenset(
    {AnalysisStatus.IN_PROGRESS, AnalysisStatus.FAILED}
)


class DispatchStatus(str, Enum):
    """Outcome of one dispatch trigger."""

    DISABLED = "disabled"
    CEILING_REACHED = "ceiling_reached"
    NOTHING_PENDING = "nothing_pending"
    ACCEPTED = "accepted"
    ERROR = "error"


class DispatchResult(BaseModel):
    """Response of the dispatch trigger."""

    status: DispatchStatus
    message: str | None = None
    current_count: int | None = None
    batch_size: int | None = None
    current_in_progress: int | None = None
    ceiling: int | None = None


class WorkerOutcome(BaseModel):
    """Terminal state written by a worker for one note."""

    note_id: str
    status: AnalysisStatus
    content_type: str | None = None
    related_products: str | None = None
    summary: str | None = None
    error: str | None = None
    error_type: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == AnalysisStatus.ANALYZED


class AnalysisStats(BaseModel):
    """Counts of notes per analysis bucket."""

    pending: int = 0
    in_progress: int = 0
    failed: int = 0
    analyzed: int = 0
    no_content: int = 0
    total: int = 0
