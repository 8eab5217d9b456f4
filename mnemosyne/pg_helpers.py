"""Mapping of PostgreSQL driver errors onto repository errors."""

from __future__ import annotations

from .errors import RepositoryError
from .pg_errors import PgDuplicateKeyError, PgNotFoundError, PgValidationError

UNIQUE_VIOLATION = "23505"
FOREIGN_KEY_VIOLATION = "23503"
INVALID_TEXT_REPRESENTATION = "22P02"


def _sqlstate(err: BaseException) -> str | None:
    for attr in ("pgcode", "sqlstate"):
        code = getattr(err, attr, None)
        if code:
            return str(code)
    return None


def _detail(err: BaseException) -> str:
    diag = getattr(err, "diag", None)
    return getattr(diag, "message_detail", None) or getattr(err, "detail", None) or ""


def _primary_message(err: BaseException) -> str:
    diag = getattr(err, "diag", None)
    return (
        getattr(diag, "message_primary", None)
        or getattr(err, "message_primary", None)
        or str(err)
    )


def handle_postgres_error(
    err: BaseException | None, resource: str
) -> RepositoryError | None:
    """Convert a driver error into the matching repository error.

    Errors with a known SQLSTATE become specific repository errors; anything
    else is wrapped in a RepositoryError whose cause is the original error.
    """
    if err is None:
        return None

    code = _sqlstate(err)
    converted: RepositoryError
    if code == UNIQUE_VIOLATION:
        converted = PgDuplicateKeyError(resource, message=_detail(err))
    elif code == FOREIGN_KEY_VIOLATION:
        converted = PgValidationError(resource, "foreign_key", _detail(err))
    elif code == INVALID_TEXT_REPRESENTATION:
        converted = PgValidationError(resource, "format", _primary_message(err))
    else:
        converted = RepositoryError(f"database operation failed for {resource}: {err}")
    converted.__cause__ = err
    return converted


def is_not_found(err: BaseException | None) -> bool:
    """True only if err itself is a PgNotFoundError."""
    return isinstance(err, PgNotFoundError)