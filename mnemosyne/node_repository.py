"""Vault nodes stored in PostgreSQL."""

from __future__ import annotations

import json
import uuid
from collections.abc import Mapping, Sequence
from dataclasses import replace
from datetime import datetime
from typing import Any

from .errors import RepositoryError, ValidationError
from .executor import Database, Executor, TransactionExecutor, run_in_transaction
from .interfaces import NodeRepository
from .models import VaultNode
from .pg_errors import PgNotFoundError
from .pg_helpers import handle_postgres_error, is_not_found

_COLUMNS = (
    "id",
    "title",
    "node_type",
    "tags",
    "content",
    "frontmatter",
    "file_path",
    "in_degree",
    "out_degree",
    "centrality",
    "created_at",
    "updated_at",
)

_SELECT = """
    SELECT id, title, COALESCE(node_type, '') AS node_type, tags,
           COALESCE(content, '') AS content, frontmatter AS metadata, file_path,
           in_degree, out_degree, centrality, created_at, updated_at
    FROM nodes
"""

_INSERT = """
    INSERT INTO nodes (id, title, node_type, tags, content, frontmatter, file_path,
                       in_degree, out_degree, centrality, created_at, updated_at)
    VALUES ($1, $2, NULLIF($3, ''), $4, NULLIF($5, ''), $6, $7, $8, $9, $10, $11, $12)
"""

_UPSERT = (
    _INSERT
    + """
    ON CONFLICT (id) DO UPDATE SET
        title = EXCLUDED.title,
        node_type = EXCLUDED.node_type,
        tags = EXCLUDED.tags,
        content = EXCLUDED.content,
        frontmatter = EXCLUDED.frontmatter,
        file_path = EXCLUDED.file_path,
        in_degree = EXCLUDED.in_degree,
        out_degree = EXCLUDED.out_degree,
        centrality = EXCLUDED.centrality,
        updated_at = EXCLUDED.updated_at
"""
)

_UPDATE = """
    UPDATE nodes
    SET title = $2, node_type = NULLIF($3, ''), tags = $4, content = NULLIF($5, ''),
        frontmatter = $6, file_path = $7, in_degree = $8,
        out_degree = $9, centrality = $10, updated_at = $11
    WHERE id = $1
"""

_SEARCH = (
    _SELECT
    + """
    WHERE search_vector @@ plainto_tsquery('english', $1)
    ORDER BY ts_rank(search_vector, plainto_tsquery('english', $1)) DESC
    LIMIT 100
"""
)


def _to_datetime(value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    if isinstance(value, bytes):
        value = value.decode()
    return datetime.fromisoformat(str(value))


def _to_tags(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, bytes):
        value = value.decode()
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return []
        if text.startswith("["):
            return [str(tag) for tag in json.loads(text)]
        if text.startswith("{") and text.endswith("}"):
            inner = text[1:-1]
            if not inner:
                return []
            return [part.strip().strip('"') for part in inner.split(",")]
        return [text]
    return [str(tag) for tag in value]


def _to_metadata(value: Any) -> dict[str, Any]:
    if value is None:
        return {}
    if isinstance(value, bytes):
        value = value.decode()
    if isinstance(value, str):
        return dict(json.loads(value)) if value.strip() else {}
    if isinstance(value, Mapping):
        return dict(value)
    raise RepositoryError(f"unexpected node metadata value: {value!r}")


def _node_from_row(row: Mapping[str, Any]) -> VaultNode:
    return VaultNode(
        id=row["id"],
        title=row["title"],
        node_type=row["node_type"] or "",
        tags=_to_tags(row["tags"]),
        content=row["content"] or "",
        metadata=_to_metadata(row["metadata"]),
        file_path=row["file_path"] or "",
        in_degree=int(row["in_degree"] or 0),
        out_degree=int(row["out_degree"] or 0),
        centrality=float(row["centrality"] or 0.0),
        created_at=_to_datetime(row["created_at"]),
        updated_at=_to_datetime(row["updated_at"]),
    )


def _row_values(
    node: VaultNode, node_id: str, created_at: Any, updated_at: Any
) -> tuple[Any, ...]:
    return (
        node_id,
        node.title,
        node.node_type,
        list(node.tags),
        node.content,
        json.dumps(node.metadata or {}),
        node.file_path,
        node.in_degree,
        node.out_degree,
        node.centrality,
        created_at,
        updated_at,
    )


def _validate(node: VaultNode) -> None:
    if not node.title:
        raise ValidationError("node", "title", "node title is required")
    if not node.file_path:
        raise ValidationError("node", "file_path", "node file path is required")


class PostgresNodeRepository(NodeRepository):
    """Stateless repository; every call receives the executor to run on."""

    def create(self, executor: Executor, node: VaultNode) -> None:
        """Insert a node, assigning a UUID when it has none and stamping times."""
        if not node.id:
            node.id = str(uuid.uuid4())
        now = datetime.now()
        node.created_at = now
        node.updated_at = now
        try:
            executor.execute(_INSERT, *_row_values(node, node.id, now, now))
        except Exception as exc:
            raise handle_postgres_error(exc, "node") from exc

    def get_by_id(self, executor: Executor, node_id: str) -> VaultNode:
        try:
            row = executor.fetch_one(_SELECT + " WHERE id = $1", node_id)
        except Exception as exc:
            raise RepositoryError(f"failed to get node by ID: {exc}") from exc
        if row is None:
            raise PgNotFoundError("node", node_id)
        return _node_from_row(row)

    def update(self, executor: Executor, node: VaultNode) -> None:
        """Rewrite a stored node; raises PgNotFoundError when no row matches."""
        node.updated_at = datetime.now()
        values = _row_values(node, node.id, None, node.updated_at)[:-2] + (node.updated_at,)
        try:
            affected = executor.execute(_UPDATE, *values)
        except Exception as exc:
            raise handle_postgres_error(exc, "node") from exc
        if affected == 0:
            raise PgNotFoundError("node", node.id)

    def delete(self, executor: Executor, node_id: str) -> None:
        """Remove a node; deleting a missing node is not an error."""
        try:
            executor.execute("DELETE FROM nodes WHERE id = $1", node_id)
        except Exception as exc:
            raise handle_postgres_error(exc, "node") from exc

    def create_batch(self, executor: Executor, nodes: Sequence[VaultNode]) -> None:
        """Insert many nodes atomically; the caller's nodes are left unchanged."""
        if not nodes:
            return
        if isinstance(executor, TransactionExecutor):
            self._create_batch_with_copy(executor, nodes)
        elif isinstance(executor, Database):
            run_in_transaction(
                executor, lambda tx: self._create_batch_with_copy(tx, nodes)
            )
        else:
            self._create_batch_individual(executor, nodes)

    def _create_batch_with_copy(
        self, executor: Executor, nodes: Sequence[VaultNode]
    ) -> None:
        for index, node in enumerate(nodes):
            try:
                _validate(node)
            except ValidationError as exc:
                raise RepositoryError(
                    f"validation failed for node at index {index}: {exc}"
                ) from exc

        now = datetime.now()
        rows = [
            _row_values(node, node.id or str(uuid.uuid4()), now, now) for node in nodes
        ]
        try:
            executor.copy_rows("nodes", _COLUMNS, rows)
        except Exception as exc:
            raise handle_postgres_error(exc, "node") from exc

    def _create_batch_individual(
        self, executor: Executor, nodes: Sequence[VaultNode]
    ) -> None:
        for original in nodes:
            node = replace(original)
            try:
                self.create(executor, node)
            except Exception as exc:
                raise RepositoryError(f"failed to create node {node.id}: {exc}") from exc

    def upsert_batch(self, executor: Executor, nodes: Sequence[VaultNode]) -> None:
        """Insert new nodes and update existing ones, atomically where possible."""
        if not nodes:
            return
        if isinstance(executor, TransactionExecutor):
            self._upsert_batch_in_tx(executor, nodes)
        elif isinstance(executor, Database):
            run_in_transaction(executor, lambda tx: self._upsert_batch_in_tx(tx, nodes))
        else:
            self._upsert_batch_individual(executor, nodes)

    def _upsert_batch_in_tx(self, executor: Executor, nodes: Sequence[VaultNode]) -> None:
        now = datetime.now()
        for node in nodes:
            values = _row_values(
                node, node.id or str(uuid.uuid4()), node.created_at or now, now
            )
            try:
                executor.execute(_UPSERT, *values)
            except Exception as exc:
                raise handle_postgres_error(exc, "node") from exc

    def _upsert_batch_individual(
        self, executor: Executor, nodes: Sequence[VaultNode]
    ) -> None:
        for original in nodes:
            node = replace(original)
            try:
                self.update(executor, node)
            except Exception as exc:
                if not is_not_found(exc):
                    raise RepositoryError(
                        f"failed to update node {node.id}: {exc}"
                    ) from exc
                try:
                    self.create(executor, node)
                except Exception as create_exc:
                    raise RepositoryError(
                        f"failed to create node {node.id}: {create_exc}"
                    ) from create_exc

    def get_all(self, executor: Executor, limit: int, offset: int) -> list[VaultNode]:
        """Newest nodes first, paginated."""
        try:
            rows = executor.fetch_all(
                _SELECT + " ORDER BY created_at DESC LIMIT $1 OFFSET $2", limit, offset
            )
        except Exception as exc:
            raise RepositoryError(f"failed to get all nodes: {exc}") from exc
        return [_node_from_row(row) for row in rows]

    def get_by_ids(self, executor: Executor, ids: Sequence[str]) -> list[VaultNode]:
        """Nodes whose ids are listed; unknown ids are skipped."""
        if not ids:
            return []
        marks = ", ".join(f"${i}" for i in range(1, len(ids) + 1))
        try:
            rows = executor.fetch_all(_SELECT + f" WHERE id IN ({marks})", *ids)
        except Exception as exc:
            raise RepositoryError(f"failed to get nodes by IDs: {exc}") from exc
        return [_node_from_row(row) for row in rows]

    def get_by_type(self, executor: Executor, node_type: str) -> list[VaultNode]:
        try:
            rows = executor.fetch_all(
                _SELECT + " WHERE node_type = $1 ORDER BY created_at DESC", node_type
            )
        except Exception as exc:
            raise RepositoryError(f"failed to get nodes by type: {exc}") from exc
        return [_node_from_row(row) for row in rows]

    def get_by_path(self, executor: Executor, path: str) -> VaultNode:
        try:
            row = executor.fetch_one(_SELECT + " WHERE file_path = $1", path)
        except Exception as exc:
            raise RepositoryError(f"failed to get node by path: {exc}") from exc
        if row is None:
            raise PgNotFoundError("node", path)
        return _node_from_row(row)

    def search(self, executor: Executor, query: str) -> list[VaultNode]:
        """Full-text search, best matches first, at most 100 results."""
        if not query:
            return []
        try:
            rows = executor.fetch_all(_SEARCH, query)
        except Exception as exc:
            raise RepositoryError(f"failed to search nodes: {exc}") from exc
        return [_node_from_row(row) for row in rows]

    def count(self, executor: Executor) -> int:
        try:
            row = executor.fetch_one("SELECT COUNT(*) AS total FROM nodes")
        except Exception as exc:
            raise RepositoryError(f"failed to count nodes: {exc}") from exc
        if row is None:
            raise RepositoryError("failed to count nodes: no result")
        return int(row["total"])

    def delete_all(self, executor: Executor) -> None:
        try:
            executor.execute("DELETE FROM nodes")
        except Exception as exc:
            raise RepositoryError(f"failed to delete all nodes: {exc}") from exc