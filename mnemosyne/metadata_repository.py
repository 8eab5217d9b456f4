"""Vault metadata and parse history stored in PostgreSQL."""

from __future__ import annotations

import json
import uuid
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from .errors import RepositoryError
from .executor import Executor
from .interfaces import MetadataRepository
from .models import ParseHistory, ParseStats, ParseStatus, VaultMetadata
from .pg_errors import PgNotFoundError
from .pg_helpers import handle_postgres_error

_PARSE_COLUMNS = "id, started_at, completed_at, status, stats, error"


def _to_datetime(value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    if isinstance(value, bytes):
        value = value.decode()
    return datetime.fromisoformat(str(value))


def _to_stats(value: Any) -> ParseStats:
    if isinstance(value, ParseStats):
        return value
    if isinstance(value, Mapping):
        return ParseStats.from_json(json.dumps(dict(value)))
    return ParseStats.from_json(value)


def _metadata_from_row(row: Mapping[str, Any]) -> VaultMetadata:
    return VaultMetadata(
        key=row["key"], value=row["value"], updated_at=_to_datetime(row["updated_at"])
    )


def _parse_from_row(row: Mapping[str, Any]) -> ParseHistory:
    return ParseHistory(
        id=row["id"],
        started_at=_to_datetime(row["started_at"]),
        completed_at=_to_datetime(row["completed_at"]),
        status=ParseStatus(row["status"]),
        stats=_to_stats(row["stats"]),
        error=row["error"],
    )


class PostgresMetadataRepository(MetadataRepository):
    """Stateless repository; every call receives the executor to run on."""

    def get_metadata(self, executor: Executor, key: str) -> VaultMetadata:
        row = executor.fetch_one(
            "SELECT key, value, updated_at FROM vault_metadata WHERE key = $1", key
        )
        if row is None:
            raise PgNotFoundError("metadata", key)
        return _metadata_from_row(row)

    def set_metadata(self, executor: Executor, metadata: VaultMetadata) -> None:
        """Insert or replace a value; stamps metadata.updated_at with now."""
        metadata.updated_at = datetime.now()
        query = """
            INSERT INTO vault_metadata (key, value, updated_at)
            VALUES (:key, :value, :updated_at)
            ON CONFLICT (key) DO UPDATE SET
                value = EXCLUDED.value,
                updated_at = EXCLUDED.updated_at
        """
        try:
            executor.execute_named(
                query,
                {"key": metadata.key, "value": metadata.value, "updated_at": metadata.updated_at},
            )
        except Exception as exc:
            raise handle_postgres_error(exc, "metadata") from exc

    def get_all_metadata(self, executor: Executor) -> list[VaultMetadata]:
        rows = executor.fetch_all(
            "SELECT key, value, updated_at FROM vault_metadata ORDER BY key"
        )
        return [_metadata_from_row(row) for row in rows]

    def create_parse_record(self, executor: Executor, record: ParseHistory) -> None:
        """Insert a parse record, assigning a UUID when it has no id."""
        if not record.id:
            record.id = str(uuid.uuid4())
        query = f"""
            INSERT INTO parse_history ({_PARSE_COLUMNS})
            VALUES (:id, :started_at, :completed_at, :status, :stats, :error)
        """
        params = {
            "id": record.id,
            "started_at": record.started_at,
            "completed_at": record.completed_at,
            "status": ParseStatus(record.status).value,
            "stats": record.stats.to_json(),
            "error": record.error,
        }
        try:
            executor.execute_named(query, params)
        except Exception as exc:
            raise handle_postgres_error(exc, "parse_history") from exc

    def get_latest_parse(self, executor: Executor) -> ParseHistory:
        row = executor.fetch_one(
            f"SELECT {_PARSE_COLUMNS} FROM parse_history ORDER BY started_at DESC LIMIT 1"
        )
        if row is None:
            raise PgNotFoundError("parse_history")
        return _parse_from_row(row)

    def get_parse_history(self, executor: Executor, limit: int) -> list[ParseHistory]:
        """Most recent records first; a limit of zero or less means 10."""
        if limit <= 0:
            limit = 10
        try:
            rows = executor.fetch_all(
                f"SELECT {_PARSE_COLUMNS} FROM parse_history ORDER BY started_at DESC LIMIT $1",
                limit,
            )
        except Exception as exc:
            raise RepositoryError(f"failed to get parse history: {exc}") from exc
        return [_parse_from_row(row) for row in rows]

    def update_parse_status(
        self, executor: Executor, record_id: str, status: ParseStatus
    ) -> None:
        """Set the status; finishing statuses also stamp completed_at."""
        status = ParseStatus(status)
        if status in (ParseStatus.COMPLETED, ParseStatus.FAILED):
            query = "UPDATE parse_history SET status = $1, completed_at = $2 WHERE id = $3"
            args: tuple[Any, ...] = (status.value, datetime.now(), record_id)
        else:
            query = "UPDATE parse_history SET status = $1 WHERE id = $2"
            args = (status.value, record_id)
        try:
            affected = executor.execute(query, *args)
        except Exception as exc:
            raise handle_postgres_error(exc, "parse_history") from exc
        if affected == 0:
            raise PgNotFoundError("parse_history", record_id)