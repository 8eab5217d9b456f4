"""Error types raised by repository operations."""

from __future__ import annotations

from collections.abc import Sequence


class RepositoryError(Exception):
    """Base class for every repository failure."""

    default_message = "repository error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message if message is not None else self.default_message)


class NotFoundError(RepositoryError):
    """A requested resource does not exist."""

    default_message = "resource not found"

    def __init__(self, resource: str = "", id: str = "") -> None:
        self.resource = resource
        self.id = id
        super().__init__(f"{resource} with ID '{id}' not found")


class DuplicateKeyError(RepositoryError):
    """A unique constraint was violated."""

    default_message = "duplicate key violation"

    def __init__(self, resource: str = "", field: str = "", value: str = "") -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(f"{resource} with {field} '{value}' already exists")


class ValidationError(RepositoryError):
    """Input failed validation."""

    default_message = "invalid input"

    def __init__(self, resource: str = "", field: str = "", message: str = "") -> None:
        self.resource = resource
        self.field = field
        self.message = message
        super().__init__(f"{resource} validation failed: {field} - {message}")


class DatabaseConnectionError(RepositoryError):
    """The database connection failed."""

    default_message = "database connection error"


class TransactionError(RepositoryError):
    """A transaction operation failed."""

    default_message = "transaction error"


class BatchOperationError(RepositoryError):
    """Some items of a batch operation failed."""

    default_message = "batch operation error"

    def __init__(
        self,
        operation: str,
        total_items: int,
        failed_items: int,
        failed_indices: Sequence[int] = (),
        errors: Sequence[BaseException] = (),
    ) -> None:
        self.operation = operation
        self.total_items = total_items
        self.failed_items = failed_items
        self.failed_indices = list(failed_indices)
        self.errors = list(errors)
        super().__init__(
            f"batch {operation} failed: {failed_items}/{total_items} items failed"
        )


def _matches(err: BaseException | None, kind: type) -> bool:
    seen = set()
    while err is not None and id(err) not in seen:
        if isinstance(err, kind):
            return True
        if isinstance(err, BatchOperationError) and any(
            _matches(inner, kind) for inner in err.errors
        ):
            return True
        seen.add(id(err))
        err = err.__cause__ or err.__context__
    return False


def is_not_found(err: BaseException | None) -> bool:
    """True if the error, or one it was raised from, is a NotFoundError."""
    return _matches(err, NotFoundError)


def is_duplicate_key(err: BaseException | None) -> bool:
    """True if the error, or one it was raised from, is a DuplicateKeyError."""
    return _matches(err, DuplicateKeyError)


def is_validation_error(err: BaseException | None) -> bool:
    """True if the error, or one it was raised from, is a ValidationError."""
    return _matches(err, ValidationError)


def is_connection_error(err: BaseException | None) -> bool:
    """True if the error, or one it was raised from, is a connection error."""
    return _matches(err, DatabaseConnectionError)