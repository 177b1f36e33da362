"""ClickHouse-specific exception types and error classification.

ClickHouse reports failures as free-form text in the HTTP response body.
The only signal available to decide whether a failure is benign, retryable
or fatal is a substring match on that text, so the substring table lives
here and nowhere else. Orchestration code branches on `ErrorKind`.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Classification of a failed statement."""

    BUSY = "busy"
    NOT_FOUND = "not_found"
    ALREADY_EXISTS = "already_exists"
    OTHER = "other"


# Checked in order; the first kind with a matching substring wins.
# BUSY comes first: a "still used" message can also mention the table name
# in a way that looks like an existence error.
ERROR_SIGNATURES: tuple[tuple[ErrorKind, tuple[str, ...]], ...] = (
    (ErrorKind.BUSY, ("still used by some query",)),
    (ErrorKind.NOT_FOUND, ("doesn't exist", "does not exist", "UNKNOWN_TABLE")),
    (ErrorKind.ALREADY_EXISTS, ("already exists", "TABLE_ALREADY_EXISTS")),
)


def classify_error(message: str) -> ErrorKind:
    """Map a raw ClickHouse diagnostic message to an ErrorKind.

    Args:
        message: Response body or transport error text.

    Returns:
        The first matching ErrorKind, or ErrorKind.OTHER.
    """
    for kind, needles in ERROR_SIGNATURES:
        if any(needle in message for needle in needles):
            return kind
    return ErrorKind.OTHER


class PipelineError(Exception):
    """Base exception for pipeline management errors."""


class ValidationError(PipelineError, ValueError):
    """Raised for conflicting flags or an invalid range, before any request."""


class ConnectivityError(PipelineError):
    """Raised when the initial probe query fails."""


class QueryError(PipelineError):
    """Raised by an execution client when a statement fails."""

    def __init__(self, message: str, kind: ErrorKind | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.kind = kind if kind is not None else classify_error(message)

    @property
    def is_busy(self) -> bool:
        return self.kind is ErrorKind.BUSY


class SchemaOperationError(PipelineError):
    """Raised when a pipeline step fails with a non-benign error."""

    def __init__(self, label: str, cause: QueryError) -> None:
        super().__init__(f"{label}: {cause.message}")
        self.label = label
        self.kind = cause.kind


class AttachTimeoutError(PipelineError):
    """Raised when an object stays busy for the whole retry budget."""

    def __init__(self, name: str, attempts: int) -> None:
        super().__init__(f"timed out waiting for ATTACH {name} after {attempts} attempts")
        self.name = name
        self.attempts = attempts


class ReattachError(PipelineError):
    """Raised when a view detached for maintenance could not be reattached.

    The pipeline is left broken until the operator runs `recovery_sql`.
    """

    def __init__(self, name: str, cause: Exception) -> None:
        self.name = name
        self.recovery_sql = f"ATTACH TABLE {name}"
        super().__init__(
            f"{name} not re-attached ({cause}). Run manually: {self.recovery_sql}"
        )
