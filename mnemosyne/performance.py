"""Database tuning checks, maintenance and query sizing heuristics."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

from .errors import RepositoryError
from .executor import Executor

MAINTAINED_TABLES = ("nodes", "edges", "node_positions", "parse_history", "vault_metadata")

RECOMMENDED_SETTINGS = (
    ("work_mem", "256MB"),
    ("shared_buffers", "2GB"),
    ("random_page_cost", "1.1"),
)

REQUIRED_EXTENSIONS = ("uuid-ossp",)

_MATERIALIZED_VIEWS = (
    (
        "node_graph_metrics",
        """
        CREATE MATERIALIZED VIEW IF NOT EXISTS node_graph_metrics AS
        SELECT
            n.id,
            n.title,
            n.node_type,
            COUNT(DISTINCT e_out.id) as out_degree_calc,
            COUNT(DISTINCT e_in.id) as in_degree_calc,
            COUNT(DISTINCT e_out.id) + COUNT(DISTINCT e_in.id) as total_degree
        FROM nodes n
        LEFT JOIN edges e_out ON n.id = e_out.source_id
        LEFT JOIN edges e_in ON n.id = e_in.target_id
        GROUP BY n.id, n.title, n.node_type
        """,
    ),
    (
        "node_type_stats",
        """
        CREATE MATERIALIZED VIEW IF NOT EXISTS node_type_stats AS
        SELECT
            node_type,
            COUNT(*) as node_count,
            AVG(in_degree) as avg_in_degree,
            AVG(out_degree) as avg_out_degree,
            AVG(centrality) as avg_centrality
        FROM nodes
        GROUP BY node_type
        """,
    ),
)

_QUERY_STATS = """
    SELECT
        query,
        calls,
        total_time,
        mean_time,
        stddev_time,
        rows
    FROM pg_stat_statements
    WHERE query NOT LIKE '%pg_stat_statements%'
    ORDER BY mean_time DESC
    LIMIT 20
"""


@dataclass
class QueryStat:
    """Performance statistics of one recorded query."""

    query: str = ""
    calls: int = 0
    total_time: float = 0.0
    mean_time: float = 0.0
    stddev_time: float = 0.0
    rows: int = 0

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> QueryStat:
        return cls(
            query=str(row["query"]),
            calls=int(row["calls"]),
            total_time=float(row["total_time"]),
            mean_time=float(row["mean_time"]),
            stddev_time=float(row["stddev_time"]),
            rows=int(row["rows"]),
        )


def _scalar(row: Mapping[str, Any] | None) -> Any:
    if not row:
        raise LookupError("query returned no rows")
    return next(iter(row.values()))


class PerformanceOptimizer:
    """Checks and maintains a database holding a large vault."""

    def __init__(self, database: Executor) -> None:
        self._db = database

    def optimize_for_large_vault(self) -> None:
        """Warn about server settings and extensions unsuited to large vaults.

        Settings are only reported, never changed: they belong in the server
        configuration, not in a session.
        """
        for setting, recommended in RECOMMENDED_SETTINGS:
            try:
                current = str(_scalar(self._db.fetch_one(f"SHOW {setting}")))
            except Exception as exc:
                print(f"Warning: Could not check {setting} setting: {exc}")
                continue
            if current != recommended:
                print(
                    f"Performance warning: {setting} is set to '{current}', "
                    f"recommended: '{recommended}'"
                )
                print("See docs/postgresql-tuning.md for configuration instructions")

        for extension in REQUIRED_EXTENSIONS:
            try:
                exists = bool(
                    _scalar(
                        self._db.fetch_one(
                            "SELECT EXISTS(SELECT 1 FROM pg_extension WHERE extname = $1)",
                            extension,
                        )
                    )
                )
            except Exception as exc:
                raise RepositoryError(
                    f"failed to check for extension {extension}: {exc}"
                ) from exc
            if not exists:
                print(f"Warning: Required extension '{extension}' is not installed")

    def _run_per_table(self, statement: str, verb: str) -> None:
        for table in MAINTAINED_TABLES:
            try:
                self._db.execute(f"{statement} {table}")
            except Exception as exc:
                raise RepositoryError(f"failed to {verb} {table}: {exc}") from exc

    def analyze_tables(self) -> None:
        """Refresh planner statistics of every table."""
        self._run_per_table("ANALYZE", "analyze")

    def vacuum_tables(self) -> None:
        """Reclaim space and refresh statistics of every table."""
        self._run_per_table("VACUUM ANALYZE", "vacuum")

    def get_query_stats(self) -> list[QueryStat]:
        """Slowest recorded queries; empty when statement tracking is unavailable."""
        try:
            rows = self._db.fetch_all(_QUERY_STATS)
        except Exception:
            return []
        return [QueryStat.from_row(row) for row in rows]

    def create_materialized_views(self) -> None:
        """Create the metric views and an id index on each."""
        for name, query in _MATERIALIZED_VIEWS:
            try:
                self._db.execute(query)
            except Exception as exc:
                raise RepositoryError(f"failed to create view {name}: {exc}") from exc
            index = f"CREATE INDEX IF NOT EXISTS idx_{name}_id ON {name}(id)"
            try:
                self._db.execute(index)
            except Exception as exc:
                raise RepositoryError(
                    f"failed to create index on view {name}: {exc}"
                ) from exc

    def refresh_materialized_views(self) -> None:
        """Refresh every view, concurrently when the server allows it."""
        for name, _ in _MATERIALIZED_VIEWS:
            try:
                self._db.execute(f"REFRESH MATERIALIZED VIEW CONCURRENTLY {name}")
            except Exception:
                try:
                    self._db.execute(f"REFRESH MATERIALIZED VIEW {name}")
                except Exception as exc:
                    raise RepositoryError(
                        f"failed to refresh view {name}: {exc}"
                    ) from exc


class QueryOptimizer:
    """Heuristics for sizing batches and estimating query cost."""

    def __init__(self, batch_size: int = 1000) -> None:
        self.batch_size = batch_size

    def optimal_batch_size(self, total_items: int) -> int:
        if total_items < 100:
            return total_items
        if total_items < 1000:
            return 100
        if total_items < 10000:
            return 500
        return self.batch_size

    def should_use_transaction(self, operation_count: int) -> bool:
        return operation_count > 1

    def estimate_query_time(self, node_count: int, edge_count: int) -> timedelta:
        """Rough duration of a graph-wide query, growing with graph size."""
        return (
            timedelta(milliseconds=10)
            + timedelta(microseconds=10) * node_count
            + timedelta(microseconds=5) * edge_count
        )