"""Scheduler for AI analysis jobs stored in the note table."""

__version__ = "0.1.0"

from app.llm.queue.types import (
    AnalysisStats,
    AnalysisStatus,
    DispatchResult,
    DispatchStatus,
    WorkerOutcome,
)

__all__ = [
    "AnalysisStats",
    "AnalysisStatus",
    "DispatchResult",
    "DispatchStatus",
    "WorkerOutcome",
]
