"""Error types raised by the PostgreSQL repositories."""

from __future__ import annotations

from .errors import DuplicateKeyError, NotFoundError, RepositoryError, ValidationError


class PgNotFoundError(NotFoundError):
    """A row looked up by a PostgreSQL repository does not exist."""

    def __init__(self, resource: str = "", id: str = "") -> None:
        self.resource = resource
        self.id = id
        if id:
            text = f"{resource} with ID '{id}' not found"
        else:
            text = f"{resource} not found"
        RepositoryError.__init__(self, text)


class PgDuplicateKeyError(DuplicateKeyError):
    """A PostgreSQL unique constraint was violated."""

    def __init__(
        self, resource: str = "", field: str = "", value: str = "", message: str = ""
    ) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        self.message = message
        if field and value:
            text = f"{resource} with {field} '{value}' already exists"
        elif message:
            text = f"{resource} duplicate key: {message}"
        else:
            text = f"{resource} duplicate key violation"
        RepositoryError.__init__(self, text)


class PgValidationError(ValidationError):
    """PostgreSQL rejected the input as invalid."""