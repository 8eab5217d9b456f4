import sqlite3
import time
from datetime import datetime, timedelta

import pytest

from mnemosyne.errors import RepositoryError, is_duplicate_key, is_not_found
from mnemosyne.executor import Database
from mnemosyne.metadata_repository import PostgresMetadataRepository
from mnemosyne.models import ParseHistory, ParseStats, ParseStatus, VaultMetadata
from mnemosyne.transaction import PostgresTransactionManager

sqlite3.register_adapter(datetime, lambda value: value.isoformat(" "))


@pytest.fixture
def database(tmp_path):
    path = tmp_path / "meta.db"
    db = Database(lambda: sqlite3.connect(path))
    db.execute(
        "CREATE TABLE vault_metadata (key TEXT PRIMARY KEY, value TEXT NOT NULL, "
        "updated_at TEXT NOT NULL)"
    )
    db.execute(
        "CREATE TABLE parse_history (id TEXT PRIMARY KEY, started_at TEXT NOT NULL, "
        "completed_at TEXT, status TEXT NOT NULL, stats TEXT, error TEXT)"
    )
    yield db
    db.close()


@pytest.fixture
def repo():
    return PostgresMetadataRepository()


def test_set_metadata_create(repo, database):
    metadata = VaultMetadata(key="test.key", value="test value")
    repo.set_metadata(database, metadata)

    assert metadata.updated_at is not None
    retrieved = repo.get_metadata(database, "test.key")
    assert retrieved.key == "test.key"
    assert retrieved.value == "test value"
    assert retrieved.updated_at == metadata.updated_at


def test_set_metadata_update(repo, database):
    repo.set_metadata(database, VaultMetadata(key="update.test", value="initial value"))
    initial = repo.get_metadata(database, "update.test")

    time.sleep(0.01)
    repo.set_metadata(database, VaultMetadata(key="update.test", value="updated value"))

    retrieved = repo.get_metadata(database, "update.test")
    assert retrieved.value == "updated value"
    assert retrieved.updated_at > initial.updated_at


def test_get_metadata_not_found(repo, database):
    with pytest.raises(RepositoryError) as info:
        repo.get_metadata(database, "non.existent.key")
    assert is_not_found(info.value)


def test_get_all_metadata(repo, database):
    entries = [
        VaultMetadata(key="app.version", value="1.0.0"),
        VaultMetadata(key="app.environment", value="test"),
        VaultMetadata(key="vault.last_sync", value="2024-01-01T00:00:00Z"),
    ]
    for entry in entries:
        repo.set_metadata(database, entry)

    all_metadata = repo.get_all_metadata(database)
    assert len(all_metadata) == 3
    values = {meta.key: meta.value for meta in all_metadata}
    assert values["app.version"] == "1.0.0"
    assert values["app.environment"] == "test"
    assert values["vault.last_sync"] == "2024-01-01T00:00:00Z"
    assert [meta.key for meta in all_metadata] == sorted(values)


@pytest.mark.parametrize(
    "key, value",
    [
        ("special.chars!@#$", "value with spaces"),
        ("unicode.测试", "中文值"),
        ("json.data", '{"nested": {"key": "value"}}'),
        ("multiline", "line1\nline2\nline3"),
    ],
)
def test_special_characters(repo, database, key, value):
    repo.set_metadata(database, VaultMetadata(key=key, value=value))
    assert repo.get_metadata(database, key).value == value


def test_create_parse_record(repo, database):
    record = ParseHistory(
        started_at=datetime.now(),
        status=ParseStatus.RUNNING,
        stats=ParseStats(
            total_files=150,
            parsed_files=150,
            total_nodes=100,
            total_edges=200,
            duration_ms=5500,
            unresolved_links=5,
        ),
    )
    repo.create_parse_record(database, record)

    assert record.id
    stored = repo.get_latest_parse(database)
    assert stored.id == record.id
    assert stored.started_at == record.started_at
    assert stored.stats == record.stats


def test_create_parse_record_keeps_given_id_and_rejects_duplicates(repo, database):
    record = ParseHistory(id="fixed-id", started_at=datetime.now())
    repo.create_parse_record(database, record)
    assert record.id == "fixed-id"

    with pytest.raises(RepositoryError, match="parse_history") as info:
        repo.create_parse_record(database, ParseHistory(id="fixed-id", started_at=datetime.now()))
    assert not is_duplicate_key(info.value)


def test_get_latest_parse(repo, database):
    now = datetime.now()
    records = [
        ParseHistory(
            started_at=now - timedelta(hours=2),
            completed_at=now - timedelta(hours=1, minutes=50),
            status=ParseStatus.COMPLETED,
            stats=ParseStats(total_nodes=10, total_edges=20),
        ),
        ParseHistory(
            started_at=now - timedelta(hours=1),
            completed_at=now - timedelta(minutes=30),
            status=ParseStatus.COMPLETED,
            stats=ParseStats(total_nodes=15, total_edges=25),
        ),
        ParseHistory(
            started_at=now - timedelta(minutes=10),
            status=ParseStatus.RUNNING,
            stats=ParseStats(total_nodes=5, total_edges=10),
        ),
    ]
    for record in records:
        repo.create_parse_record(database, record)

    latest = repo.get_latest_parse(database)
    assert latest.status == ParseStatus.RUNNING
    assert latest.stats.total_nodes == 5
    assert latest.stats.total_edges == 10
    assert latest.completed_at is None


def test_get_latest_parse_no_records(repo, database):
    with pytest.raises(RepositoryError) as info:
        repo.get_latest_parse(database)
    assert is_not_found(info.value)


def test_get_parse_history(repo, database):
    now = datetime.now()
    for i in range(10):
        repo.create_parse_record(
            database,
            ParseHistory(
                started_at=now - timedelta(hours=i),
                completed_at=now - timedelta(hours=i) + timedelta(minutes=30),
                status=ParseStatus.COMPLETED,
                stats=ParseStats(total_nodes=i * 10, total_edges=i * 20, duration_ms=i * 1000),
            ),
        )

    history = repo.get_parse_history(database, 5)
    assert len(history) == 5
    for newer, older in zip(history, history[1:]):
        assert newer.started_at > older.started_at
    assert history[0].stats.total_nodes == 0


def test_get_parse_history_default_limit(repo, database):
    now = datetime.now()
    for i in range(12):
        repo.create_parse_record(
            database, ParseHistory(started_at=now - timedelta(minutes=i))
        )

    assert len(repo.get_parse_history(database, 0)) == 10
    assert len(repo.get_parse_history(database, -3)) == 10


def test_update_parse_status_completed(repo, database):
    record = ParseHistory(
        started_at=datetime.now(),
        status=ParseStatus.RUNNING,
        stats=ParseStats(total_nodes=50, total_edges=100),
    )
    repo.create_parse_record(database, record)

    repo.update_parse_status(database, record.id, ParseStatus.COMPLETED)

    latest = repo.get_latest_parse(database)
    assert latest.status == ParseStatus.COMPLETED
    assert latest.id == record.id
    assert latest.completed_at is not None


def test_update_parse_status_failed(repo, database):
    record = ParseHistory(
        started_at=datetime.now(),
        status=ParseStatus.RUNNING,
        stats=ParseStats(total_nodes=25, total_edges=50),
    )
    repo.create_parse_record(database, record)

    repo.update_parse_status(database, record.id, ParseStatus.FAILED)

    latest = repo.get_latest_parse(database)
    assert latest.status == ParseStatus.FAILED
    assert latest.completed_at is not None


def test_update_parse_status_running_leaves_completed_at(repo, database):
    record = ParseHistory(started_at=datetime.now(), status=ParseStatus.COMPLETED)
    repo.create_parse_record(database, record)

    repo.update_parse_status(database, record.id, ParseStatus.RUNNING)

    latest = repo.get_latest_parse(database)
    assert latest.status == ParseStatus.RUNNING
    assert latest.completed_at is None


def test_update_parse_status_not_found(repo, database):
    with pytest.raises(RepositoryError) as info:
        repo.update_parse_status(database, "non-existent-id", ParseStatus.COMPLETED)
    assert is_not_found(info.value)
    assert "non-existent-id" in str(info.value)


def test_parse_history_with_errors(repo, database):
    message = (
        "Failed to parse file: /path/to/file1.md; Invalid frontmatter in: "
        "/path/to/file2.md; Circular reference detected"
    )
    record = ParseHistory(
        started_at=datetime.now(),
        completed_at=datetime.now() + timedelta(minutes=1),
        status=ParseStatus.FAILED,
        stats=ParseStats(total_nodes=75, total_edges=150, duration_ms=60000, unresolved_links=3),
        error=message,
    )
    repo.create_parse_record(database, record)

    retrieved = repo.get_latest_parse(database)
    assert retrieved.status == ParseStatus.FAILED
    assert retrieved.error is not None
    assert "file1.md" in retrieved.error
    assert retrieved.stats.unresolved_links == 3


def test_with_transaction(repo, database):
    manager = PostgresTransactionManager(database)
    seen = {}

    def work(tx):
        repo.set_metadata(tx.executor, VaultMetadata(key="tx.test", value="transaction value"))
        repo.create_parse_record(
            tx.executor,
            ParseHistory(
                started_at=datetime.now(),
                stats=ParseStats(total_nodes=123, total_edges=456),
            ),
        )
        seen["inside"] = repo.get_metadata(tx.executor, "tx.test").value

    manager.with_transaction(work)

    assert seen["inside"] == "transaction value"
    assert repo.get_metadata(database, "tx.test").value == "transaction value"
    assert repo.get_latest_parse(database).stats.total_edges == 456


def test_with_transaction_rollback(repo, database):
    manager = PostgresTransactionManager(database)

    def work(tx):
        repo.set_metadata(
            tx.executor, VaultMetadata(key="rollback.test", value="should not persist")
        )
        raise RuntimeError("force rollback")

    with pytest.raises(RuntimeError, match="force rollback"):
        manager.with_transaction(work)

    with pytest.raises(RepositoryError) as info:
        repo.get_metadata(database, "rollback.test")
    assert is_not_found(info.value)


def test_large_values(repo, database):
    large_value = "".join(
        f"Line {i}: This is a test of large metadata values.\n" for i in range(1000)
    )
    repo.set_metadata(database, VaultMetadata(key="large.value", value=large_value))

    retrieved = repo.get_metadata(database, "large.value")
    assert retrieved.value == large_value
    assert len(retrieved.value) > 10000


def test_repeated_updates_keep_last_value(repo, database):
    for idx in range(10):
        repo.set_metadata(database, VaultMetadata(key="concurrent.key", value=f"value-{idx}"))

    final = repo.get_metadata(database, "concurrent.key")
    assert final.value == "value-9"
    assert len(repo.get_all_metadata(database)) == 1