from datetime import timedelta

import pytest

from mnemosyne.errors import RepositoryError
from mnemosyne.performance import (
    PerformanceOptimizer,
    QueryOptimizer,
    QueryStat,
)


class FakeExecutor:
    def __init__(self, responses=None, rows=None, fail=()):
        self.responses = responses or {}
        self.rows = rows or []
        self.fail = tuple(fail)
        self.queries = []

    def _record(self, query):
        self.queries.append(query)
        if any(marker in query for marker in self.fail):
            raise RuntimeError("boom")

    def fetch_one(self, query, *args):
        self._record(query)
        for key, row in self.responses.items():
            if key in query:
                return row
        return None

    def fetch_all(self, query, *args):
        self._record(query)
        return list(self.rows)

    def execute(self, query, *args):
        self._record(query)
        return 0


def _good_responses(**overrides):
    responses = {
        "SHOW work_mem": {"work_mem": "256MB"},
        "SHOW shared_buffers": {"shared_buffers": "2GB"},
        "SHOW random_page_cost": {"random_page_cost": "1.1"},
        "pg_extension": {"exists": True},
    }
    responses.update(overrides)
    return responses


def test_optimize_silent_when_settings_match(capsys):
    PerformanceOptimizer(FakeExecutor(_good_responses())).optimize_for_large_vault()
    assert capsys.readouterr().out == ""


def test_optimize_warns_on_differing_setting(capsys):
    responses = _good_responses(**{"SHOW work_mem": {"work_mem": "4MB"}})
    PerformanceOptimizer(FakeExecutor(responses)).optimize_for_large_vault()
    out = capsys.readouterr().out
    assert "work_mem is set to '4MB', recommended: '256MB'" in out
    assert "shared_buffers" not in out


def test_optimize_continues_after_failed_check(capsys):
    executor = FakeExecutor(_good_responses(), fail=("SHOW work_mem",))
    PerformanceOptimizer(executor).optimize_for_large_vault()
    out = capsys.readouterr().out
    assert "Warning: Could not check work_mem setting" in out
    assert "SHOW random_page_cost" in executor.queries


def test_optimize_warns_on_missing_extension(capsys):
    responses = _good_responses(pg_extension={"exists": False})
    PerformanceOptimizer(FakeExecutor(responses)).optimize_for_large_vault()
    assert "Required extension 'uuid-ossp' is not installed" in capsys.readouterr().out


def test_optimize_raises_when_extension_check_fails():
    executor = FakeExecutor(_good_responses(), fail=("pg_extension",))
    with pytest.raises(RepositoryError, match="failed to check for extension uuid-ossp"):
        PerformanceOptimizer(executor).optimize_for_large_vault()


def test_analyze_tables_runs_every_table_in_order():
    executor = FakeExecutor()
    PerformanceOptimizer(executor).analyze_tables()
    assert executor.queries == [
        "ANALYZE nodes",
        "ANALYZE edges",
        "ANALYZE node_positions",
        "ANALYZE parse_history",
        "ANALYZE vault_metadata",
    ]


def test_analyze_tables_stops_on_failure():
    executor = FakeExecutor(fail=("ANALYZE edges",))
    with pytest.raises(RepositoryError, match="failed to analyze edges"):
        PerformanceOptimizer(executor).analyze_tables()
    assert "ANALYZE node_positions" not in executor.queries


def test_vacuum_tables():
    executor = FakeExecutor()
    PerformanceOptimizer(executor).vacuum_tables()
    assert executor.queries[0] == "VACUUM ANALYZE nodes"
    assert len(executor.queries) == 5

    failing = FakeExecutor(fail=("vault_metadata",))
    with pytest.raises(RepositoryError, match="failed to vacuum vault_metadata"):
        PerformanceOptimizer(failing).vacuum_tables()


def test_get_query_stats_maps_rows():
    rows = [
        {
            "query": "SELECT 1",
            "calls": 3,
            "total_time": 1.5,
            "mean_time": 0.5,
            "stddev_time": 0.1,
            "rows": 3,
        }
    ]
    stats = PerformanceOptimizer(FakeExecutor(rows=rows)).get_query_stats()
    assert stats == [QueryStat("SELECT 1", 3, 1.5, 0.5, 0.1, 3)]


def test_get_query_stats_empty_when_unavailable():
    executor = FakeExecutor(fail=("pg_stat_statements",))
    assert PerformanceOptimizer(executor).get_query_stats() == []


def test_create_materialized_views_creates_indexes():
    executor = FakeExecutor()
    PerformanceOptimizer(executor).create_materialized_views()
    assert len(executor.queries) == 4
    assert "node_graph_metrics AS" in executor.queries[0]
    assert executor.queries[1] == (
        "CREATE INDEX IF NOT EXISTS idx_node_graph_metrics_id ON node_graph_metrics(id)"
    )
    assert executor.queries[3] == (
        "CREATE INDEX IF NOT EXISTS idx_node_type_stats_id ON node_type_stats(id)"
    )


def test_create_materialized_views_reports_failure():
    executor = FakeExecutor(fail=("idx_node_type_stats_id",))
    with pytest.raises(RepositoryError, match="failed to create index on view node_type_stats"):
        PerformanceOptimizer(executor).create_materialized_views()


def test_refresh_falls_back_without_concurrently():
    executor = FakeExecutor(fail=("CONCURRENTLY",))
    PerformanceOptimizer(executor).refresh_materialized_views()
    assert "REFRESH MATERIALIZED VIEW node_graph_metrics" in executor.queries
    assert "REFRESH MATERIALIZED VIEW node_type_stats" in executor.queries


def test_refresh_raises_when_both_fail():
    executor = FakeExecutor(fail=("REFRESH",))
    with pytest.raises(RepositoryError, match="failed to refresh view node_graph_metrics"):
        PerformanceOptimizer(executor).refresh_materialized_views()


@pytest.mark.parametrize(
    "total, expected",
    [(50, 50), (99, 99), (100, 100), (999, 100), (1000, 500), (9999, 500), (10000, 1000)],
)
def test_optimal_batch_size(total, expected):
    assert QueryOptimizer().optimal_batch_size(total) == expected


def test_optimal_batch_size_uses_configured_size_for_large_totals():
    assert QueryOptimizer(batch_size=2500).optimal_batch_size(50000) == 2500


def test_should_use_transaction():
    optimizer = QueryOptimizer()
    assert optimizer.should_use_transaction(0) is False
    assert optimizer.should_use_transaction(1) is False
    assert optimizer.should_use_transaction(2) is True


def test_estimate_query_time():
    optimizer = QueryOptimizer()
    base = optimizer.estimate_query_time(0, 0)
    assert base == timedelta(milliseconds=10)
    assert optimizer.estimate_query_time(1, 0) - base == timedelta(microseconds=10)
    assert optimizer.estimate_query_time(0, 1) - base == timedelta(microseconds=5)
    assert optimizer.estimate_query_time(100, 100) > optimizer.estimate_query_time(10, 10)