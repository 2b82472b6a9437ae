"""Exceptions for soft deletion operations."""

from typing import Any, List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError

# Lower-layer failures (connection, constraint, timeout) propagate unchanged.
PersistenceFailure = SQLAlchemyError


def describe_record(record: Any) -> str:
    return f"{record.__class__.__name__} {getattr(record, 'id', 'unknown')}"


class SoftDeletionError(Exception):
    """Base exception for soft deletion operations."""

    def __init__(self, message: str, record: Optional[Any] = None):
        self.record = record
        super().__init__(message)


class ValidationFailed(SoftDeletionError):
    """Raised when a record (owner or cascaded dependent) fails validation."""

    def __init__(self, record: Any, errors: Sequence[str]):
        self.errors: List[str] = list(errors)
        detail = "; ".join(self.errors) or "record is invalid"
        super().__init__(f"Validation failed for {describe_record(record)}: {detail}", record)


class NotSoftDeletable(SoftDeletionError):
    """Raised when an operation targets a type with no deletion marker."""

    def __init__(self, model: type, record: Optional[Any] = None):
        self.model = model
        super().__init__(
            f"{model.__name__} has no deletion marker configured "
            "and cannot be soft deleted",
            record,
        )


class UnconfiguredType(SoftDeletionError):
    """Raised when descriptor data is requested for an unregistered type."""

    def __init__(self, model: type):
        self.model = model
        super().__init__(f"{model.__name__} is not registered for soft deletion")


class RecordNotFound(SoftDeletionError):
    """Raised when a bulk selector identifier does not resolve to a record."""

    def __init__(self, model: type, ident: Any):
        self.model = model
        self.ident = ident
        super().__init__(f"{model.__name__} with ID {ident!r} not found")


class HookFailed(SoftDeletionError):
    """Raised after commit when after-delete hooks failed.

    The transition itself is already committed and is not undone. ``record``
    is the record the transition was started on.
    """

    def __init__(self, record: Any, failures: Sequence[Any]):
        self.failures = list(failures)
        super().__init__(
            f"{len(self.failures)} after-soft-delete hook(s) failed "
            f"for {describe_record(record)}",
            record,
        )
