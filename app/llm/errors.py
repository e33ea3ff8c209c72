"""Exceptions raised while analyzing a note."""


class AnalysisError(Exception):
    """Base class for failures that end a note's analysis attempt."""


class ValidationError(AnalysisError):
    """Raised when a note cannot be analyzed as stored (e.g. no link)."""


class ProviderError(AnalysisError):
    """Raised when an inference backend call does not succeed."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ParseError(AnalysisError):
    """Raised when a model reply does not carry the expected JSON block."""


class DispatchTransientError(Exception):
    """Raised when a count or claim query fails inside the batch loop."""


class NoteNotFoundError(LookupError):
    """Raised when a note id does not exist."""


class NoteNotClaimableError(Exception):
    """Raised when a note is not pending or failed and cannot be claimed."""
