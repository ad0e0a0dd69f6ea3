"""
Exceptions that halt or block the import pipeline.

Only parse and mapping problems stop a session. Validation issues, duplicate
flags and per-row persistence failures are data, carried on the records and
on the import outcome rather than raised.
"""
from typing import List, Optional


class ImportPipelineError(Exception):
    """Base class for pipeline errors surfaced to callers."""


class ParseError(ImportPipelineError):
    """Raised when an uploaded file cannot be turned into headers and rows."""

    def __init__(self, reason: str, message: str = None, file_name: Optional[str] = None):
        self.reason = reason
        self.file_name = file_name
        self.message = message or f"Could not parse file '{file_name or 'upload'}' ({reason})."
        super().__init__(self.message)


class MappingError(ImportPipelineError):
    """Raised when the column mapping cannot proceed."""

    def __init__(
        self,
        message: str = None,
        missing_required_fields: Optional[List[str]] = None,
        duplicate_columns: Optional[List[str]] = None,
    ):
        self.missing_required_fields = list(missing_required_fields or [])
        self.duplicate_columns = list(duplicate_columns or [])
        if message is None:
            parts = []
            if self.missing_required_fields:
                parts.append(f"Missing required fields: {', '.join(self.missing_required_fields)}")
            if self.duplicate_columns:
                parts.append(f"Duplicate column mappings detected: {', '.join(self.duplicate_columns)}")
            message = ". ".join(parts) or "Column mapping is incomplete"
        self.message = message
        super().__init__(self.message)


class InvalidTransitionError(ImportPipelineError):
    """Raised when a session is asked to move to a stage it cannot reach."""

    def __init__(self, current: str, attempted: str):
        self.current = current
        self.attempted = attempted
        self.message = f"Cannot {attempted} while import session is '{current}'."
        super().__init__(self.message)


class UnknownProfileError(ImportPipelineError, KeyError):
    """Raised when an import profile name is not registered."""

    def __init__(self, name: str, available: List[str]):
        self.name = name
        self.available = available
        self.message = f"Unknown import profile '{name}'. Available: {', '.join(available)}"
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message
