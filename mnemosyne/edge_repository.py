"""Links between vault nodes stored in PostgreSQL."""

from __future__ import annotations

import uuid
from collections.abc import Mapping, Sequence
from dataclasses import replace
from datetime import datetime
from typing import Any

from .errors import RepositoryError
from .executor import Database, Executor, TransactionExecutor, run_in_transaction
from .interfaces import EdgeRepository
from .models import VaultEdge
from .pg_errors import PgNotFoundError
from .pg_helpers import handle_postgres_error, is_not_found

_COLUMNS = (
    "id",
    "source_id",
    "target_id",
    "edge_type",
    "display_text",
    "weight",
    "created_at",
)

_INSERT = """
    INSERT INTO edges (id, source_id, target_id, edge_type, display_text, weight, created_at)
    VALUES ($1, $2, $3, $4, $5, $6, $7)
"""

_UPSERT = (
    _INSERT
    + """
    ON CONFLICT (id) DO UPDATE SET
        source_id = EXCLUDED.source_id,
        target_id = EXCLUDED.target_id,
        edge_type = EXCLUDED.edge_type,
        display_text = EXCLUDED.display_text,
        weight = EXCLUDED.weight
"""
)

_UPDATE = """
    UPDATE edges
    SET source_id = $2, target_id = $3, edge_type = $4,
        display_text = $5, weight = $6
    WHERE id = $1
"""


def _to_datetime(value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    if isinstance(value, bytes):
        value = value.decode()
    return datetime.fromisoformat(str(value))


def _edge_from_row(row: Mapping[str, Any]) -> VaultEdge:
    return VaultEdge(
        id=row["id"],
        source_id=row["source_id"],
        target_id=row["target_id"],
        edge_type=row["edge_type"] or "",
        display_text=row["display_text"] or "",
        weight=float(row["weight"] or 0.0),
        created_at=_to_datetime(row["created_at"]),
    )


def _row_values(edge: VaultEdge, edge_id: str, created_at: Any) -> tuple[Any, ...]:
    return (
        edge_id,
        edge.source_id,
        edge.target_id,
        edge.edge_type,
        edge.display_text,
        edge.weight,
        created_at,
    )


class PostgresEdgeRepository(EdgeRepository):
    """Stateless repository; every call receives the executor to run on."""

    def create(self, executor: Executor, edge: VaultEdge) -> None:
        """Insert an edge, assigning a UUID when it has none and stamping created_at."""
        if not edge.id:
            edge.id = str(uuid.uuid4())
        edge.created_at = datetime.now()
        try:
            executor.execute(_INSERT, *_row_values(edge, edge.id, edge.created_at))
        except Exception as exc:
            raise handle_postgres_error(exc, "edge") from exc

    def get_by_id(self, executor: Executor, edge_id: str) -> VaultEdge:
        try:
            row = executor.fetch_one("SELECT * FROM edges WHERE id = $1", edge_id)
        except Exception as exc:
            raise RepositoryError(f"failed to get edge by ID: {exc}") from exc
        if row is None:
            raise PgNotFoundError("edge", edge_id)
        return _edge_from_row(row)

    def update(self, executor: Executor, edge: VaultEdge) -> None:
        """Rewrite a stored edge; raises PgNotFoundError when no row matches."""
        try:
            affected = executor.execute(_UPDATE, *_row_values(edge, edge.id, None)[:-1])
        except Exception as exc:
            raise handle_postgres_error(exc, "edge") from exc
        if affected == 0:
            raise PgNotFoundError("edge", edge.id)

    def delete(self, executor: Executor, edge_id: str) -> None:
        """Remove an edge; deleting a missing edge is not an error."""
        try:
            executor.execute("DELETE FROM edges WHERE id = $1", edge_id)
        except Exception as exc:
            raise handle_postgres_error(exc, "edge") from exc

    def create_batch(self, executor: Executor, edges: Sequence[VaultEdge]) -> None:
        """Insert many edges atomically; the caller's edges are left unchanged."""
        if not edges:
            return
        if isinstance(executor, TransactionExecutor):
            self._create_batch_with_copy(executor, edges)
        elif isinstance(executor, Database):
            run_in_transaction(
                executor, lambda tx: self._create_batch_with_copy(tx, edges)
            )
        else:
            self._create_batch_individual(executor, edges)

    def _create_batch_with_copy(
        self, executor: Executor, edges: Sequence[VaultEdge]
    ) -> None:
        now = datetime.now()
        rows = [_row_values(edge, edge.id or str(uuid.uuid4()), now) for edge in edges]
        try:
            executor.copy_rows("edges", _COLUMNS, rows)
        except Exception as exc:
            raise handle_postgres_error(exc, "edge") from exc

    def _create_batch_individual(
        self, executor: Executor, edges: Sequence[VaultEdge]
    ) -> None:
        for original in edges:
            edge = replace(original)
            try:
                self.create(executor, edge)
            except Exception as exc:
                raise RepositoryError(f"failed to create edge {edge.id}: {exc}") from exc

    def upsert_batch(self, executor: Executor, edges: Sequence[VaultEdge]) -> None:
        """Insert new edges and update existing ones, atomically where possible."""
        if not edges:
            return
        if isinstance(executor, TransactionExecutor):
            self._upsert_batch_in_tx(executor, edges)
        elif isinstance(executor, Database):
            run_in_transaction(executor, lambda tx: self._upsert_batch_in_tx(tx, edges))
        else:
            self._upsert_batch_individual(executor, edges)

    def _upsert_batch_in_tx(self, executor: Executor, edges: Sequence[VaultEdge]) -> None:
        now = datetime.now()
        for edge in edges:
            values = _row_values(edge, edge.id or str(uuid.uuid4()), edge.created_at or now)
            try:
                executor.execute(_UPSERT, *values)
            except Exception as exc:
                raise handle_postgres_error(exc, "edge") from exc

    def _upsert_batch_individual(
        self, executor: Executor, edges: Sequence[VaultEdge]
    ) -> None:
        for original in edges:
            edge = replace(original)
            try:
                self.get_by_id(executor, edge.id)
            except Exception as exc:
                if not is_not_found(exc):
                    raise RepositoryError(f"failed to check edge {edge.id}: {exc}") from exc
                try:
                    self.create(executor, edge)
                except Exception as create_exc:
                    raise RepositoryError(
                        f"failed to create edge {edge.id}: {create_exc}"
                    ) from create_exc
                continue
            try:
                self.update(executor, edge)
            except Exception as exc:
                raise RepositoryError(f"failed to update edge {edge.id}: {exc}") from exc

    def _select(self, executor: Executor, what: str, query: str, *args: Any) -> list[VaultEdge]:
        try:
            rows = executor.fetch_all(query, *args)
        except Exception as exc:
            raise RepositoryError(f"failed to get {what}: {exc}") from exc
        return [_edge_from_row(row) for row in rows]

    def get_by_node(self, executor: Executor, node_id: str) -> list[VaultEdge]:
        """Every edge that starts or ends at the node."""
        query = """
            SELECT * FROM edges WHERE source_id = $1
            UNION
            SELECT * FROM edges WHERE target_id = $2
        """
        return self._select(executor, "edges by node", query, node_id, node_id)

    def get_by_source_and_target(
        self, executor: Executor, source_id: str, target_id: str
    ) -> list[VaultEdge]:
        return self._select(
            executor,
            "edges by source and target",
            "SELECT * FROM edges WHERE source_id = $1 AND target_id = $2",
            source_id,
            target_id,
        )

    def get_all(self, executor: Executor, limit: int, offset: int) -> list[VaultEdge]:
        """Newest edges first, paginated."""
        return self._select(
            executor,
            "all edges",
            "SELECT * FROM edges ORDER BY created_at DESC LIMIT $1 OFFSET $2",
            limit,
            offset,
        )

    def count(self, executor: Executor) -> int:
        try:
            row = executor.fetch_one("SELECT COUNT(*) AS total FROM edges")
        except Exception as exc:
            raise RepositoryError(f"failed to count edges: {exc}") from exc
        if row is None:
            raise RepositoryError("failed to count edges: no result")
        return int(row["total"])

    def get_incoming_edges(self, executor: Executor, node_id: str) -> list[VaultEdge]:
        return self._select(
            executor, "incoming edges", "SELECT * FROM edges WHERE target_id = $1", node_id
        )

    def get_outgoing_edges(self, executor: Executor, node_id: str) -> list[VaultEdge]:
        return self._select(
            executor, "outgoing edges", "SELECT * FROM edges WHERE source_id = $1", node_id
        )

    def delete_all(self, executor: Executor) -> None:
        try:
            executor.execute("DELETE FROM edges")
        except Exception as exc:
            raise RepositoryError(f"failed to delete all edges: {exc}") from exc