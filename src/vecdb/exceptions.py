"""Error kinds raised by the vector search engine.

Callers drive retry logic from the exception class (or ``retryable``)
rather than from message text.
"""

from typing import Any, Dict, Optional


class VectorDBError(Exception):
    """Base exception for all engine errors."""

    retryable = False

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    @property
    def kind(self) -> str:
        return type(self).__name__

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.kind,
            "message": self.message,
            "details": self.details,
            "retryable": self.retryable,
        }


class ConfigurationError(VectorDBError, ValueError):
    """Raised when the engine configuration is invalid or conflicts with stored state."""

    pass


class DimensionMismatchError(VectorDBError, ValueError):
    """Raised when a vector's length disagrees with the index dimensionality."""

    def __init__(self, expected: int, actual: int, record_id: Optional[str] = None) -> None:
        message = f"Vector dimensionality {actual} does not match index dimensionality {expected}"
        if record_id is not None:
            message += f" (id={record_id})"
        super().__init__(message, {"expected": expected, "actual": actual, "id": record_id})
        self.expected = expected
        self.actual = actual


class DuplicateIdError(VectorDBError):
    """Raised when a create-path write collides with an existing id."""

    def __init__(self, record_id: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(f"Vector id already exists: {record_id}", {"id": record_id, **(details or {})})
        self.record_id = record_id


class NotFoundError(VectorDBError, KeyError):
    """Raised when an operation targets an unknown id."""

    def __init__(self, record_id: str) -> None:
        super().__init__(f"Vector id not found: {record_id}", {"id": record_id})
        self.record_id = record_id

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message
        return self.message


class InvalidSearchOptionsError(VectorDBError, ValueError):
    """Raised when search options are invalid (e.g. ``ef < top_k``)."""

    pass


class PartialWriteError(VectorDBError):
    """Raised when the store and the index may have diverged after a failed write."""

    def __init__(self, message: str, ids=None, cause: Optional[BaseException] = None) -> None:
        super().__init__(message, {"ids": list(ids or []), "cause": repr(cause) if cause else None})
        self.ids = list(ids or [])
        self.cause = cause


class BackendUnavailableError(VectorDBError):
    """Raised when a networked backend keeps failing after bounded retries."""

    retryable = True


class SnapshotFormatError(VectorDBError, ValueError):
    """Raised when a snapshot file is corrupt or incompatible."""

    pass
