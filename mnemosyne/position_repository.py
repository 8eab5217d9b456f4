"""Saved node layout positions stored in PostgreSQL."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import replace
from datetime import datetime
from typing import Any

from .errors import RepositoryError
from .executor import Database, Executor, TransactionExecutor, run_in_transaction
from .interfaces import PositionRepository
from .models import NodePosition
from .pg_errors import PgNotFoundError
from .pg_helpers import handle_postgres_error

_UPSERT = """
    INSERT INTO node_positions (node_id, x, y, z, locked, updated_at)
    VALUES (:node_id, :x, :y, :z, :locked, :updated_at)
    ON CONFLICT (node_id) DO UPDATE SET
        x = EXCLUDED.x,
        y = EXCLUDED.y,
        z = EXCLUDED.z,
        locked = EXCLUDED.locked,
        updated_at = EXCLUDED.updated_at
"""

_SELECT = "SELECT node_id, x, y, z, locked, updated_at FROM node_positions"


def _to_datetime(value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    if isinstance(value, bytes):
        value = value.decode()
    return datetime.fromisoformat(str(value))


def _position_from_row(row: Mapping[str, Any]) -> NodePosition:
    return NodePosition(
        node_id=row["node_id"],
        x=float(row["x"]),
        y=float(row["y"]),
        z=float(row["z"] or 0.0),
        locked=bool(row["locked"]),
        updated_at=_to_datetime(row["updated_at"]),
    )


def _params(position: NodePosition) -> dict[str, Any]:
    return {
        "node_id": position.node_id,
        "x": position.x,
        "y": position.y,
        "z": position.z,
        "locked": position.locked,
        "updated_at": position.updated_at,
    }


class PostgresPositionRepository(PositionRepository):
    """Stateless repository; every call receives the executor to run on."""

    def get_by_node_id(self, executor: Executor, node_id: str) -> NodePosition:
        row = executor.fetch_one(_SELECT + " WHERE node_id = $1", node_id)
        if row is None:
            raise PgNotFoundError("position", node_id)
        return _position_from_row(row)

    def upsert(self, executor: Executor, position: NodePosition) -> None:
        """Insert or replace a position; stamps position.updated_at with now."""
        position.updated_at = datetime.now()
        try:
            executor.execute_named(_UPSERT, _params(position))
        except Exception as exc:
            raise handle_postgres_error(exc, "position") from exc

    def upsert_batch(self, executor: Executor, positions: Sequence[NodePosition]) -> None:
        """Insert or replace many positions, atomically where possible."""
        if not positions:
            return
        if isinstance(executor, TransactionExecutor):
            self._upsert_batch_in_tx(executor, positions)
        elif isinstance(executor, Database):
            run_in_transaction(
                executor, lambda tx: self._upsert_batch_in_tx(tx, positions)
            )
        else:
            self._upsert_batch_individual(executor, positions)

    def _upsert_batch_in_tx(
        self, executor: Executor, positions: Sequence[NodePosition]
    ) -> None:
        now = datetime.now()
        for position in positions:
            position.updated_at = now
            try:
                executor.execute_named(_UPSERT, _params(position))
            except Exception as exc:
                raise handle_postgres_error(exc, "position") from exc

    def _upsert_batch_individual(
        self, executor: Executor, positions: Sequence[NodePosition]
    ) -> None:
        for original in positions:
            position = replace(original)
            try:
                self.upsert(executor, position)
            except Exception as exc:
                raise RepositoryError(
                    f"failed to upsert position for node {position.node_id}: {exc}"
                ) from exc

    def get_all(self, executor: Executor) -> list[NodePosition]:
        """Every stored position, ordered by node id."""
        try:
            rows = executor.fetch_all(_SELECT + " ORDER BY node_id")
        except Exception as exc:
            raise RepositoryError(f"failed to get all positions: {exc}") from exc
        return [_position_from_row(row) for row in rows]

    def delete_by_node_id(self, executor: Executor, node_id: str) -> None:
        """Remove a position; deleting a missing one is not an error."""
        try:
            executor.execute("DELETE FROM node_positions WHERE node_id = $1", node_id)
        except Exception as exc:
            raise handle_postgres_error(exc, "position") from exc