# mnemosyne

A repository layer for a knowledge-graph vault. It stores vault nodes,
the edges between them, saved graph-layout positions, vault metadata and
parse history in PostgreSQL, and runs work inside transactions.

The repositories keep no state of their own: every method takes an
executor as its first argument. That executor can be a `Database`
(each statement committed on its own) or a `TransactionExecutor` (an
open transaction), so the same repository works in both settings.

## Installing

```
pip install .
```

The package has no runtime dependencies. To run the tests:

```
pip install ".[test]"
pytest
```

## Modules

- `mnemosyne.models`: the dataclasses `VaultNode`, `VaultEdge`,
  `NodePosition`, `VaultMetadata`, `ParseStats` (with `to_json` and
  `from_json`) and `ParseHistory`, and the `ParseStatus` enum
  (`RUNNING`, `COMPLETED`, `FAILED`).
- `mnemosyne.executor`: executors over any DB-API connection.
  - `Executor(connection, paramstyle="qmark")` offers `fetch_one`,
    `fetch_all` (rows come back as dicts), `execute` and `execute_named`
    (both return the affected row count) and `copy_rows` (insert many
    rows into a table). Queries are written with `$1`-style or
    `:name`-style placeholders and translated to the driver's
    paramstyle: `qmark`, `format`, `numeric`, `named` or `pyformat`.
  - `Database(connect, paramstyle="qmark")` takes a zero-argument
    function that opens a connection. It commits after every write,
    rolls back after a failed statement, and `begin()` opens a
    `TransactionExecutor` on a fresh connection. It is a context
    manager that closes its connection.
  - `TransactionExecutor` holds writes until `commit()` or
    `rollback()`; after either, further use raises `TransactionError`.
    As a context manager it commits on a clean exit and rolls back on
    an exception.
  - `run_in_transaction(database, fn)` calls `fn` with a transaction
    executor, commits on success, rolls back on error and returns
    `fn`'s result.
- `mnemosyne.interfaces`: abstract base classes `NodeRepository`,
  `EdgeRepository`, `PositionRepository`, `MetadataRepository`,
  `Transaction` and `TransactionManager`.
- `mnemosyne.node_repository.PostgresNodeRepository`: create, get by
  id / ids / type / path, update, delete, full-text `search` (at most
  100 results), `count`, `delete_all`, `get_all(limit, offset)` (newest
  first), `create_batch` and `upsert_batch`.
- `mnemosyne.edge_repository.PostgresEdgeRepository`: the same CRUD and
  batch operations for edges, plus `get_by_node`,
  `get_by_source_and_target`, `get_incoming_edges` and
  `get_outgoing_edges`.
- `mnemosyne.position_repository.PostgresPositionRepository`:
  `get_by_node_id`, `upsert`, `upsert_batch`, `get_all` (ordered by
  node id) and `delete_by_node_id`.
- `mnemosyne.metadata_repository.PostgresMetadataRepository`:
  `get_metadata`, `set_metadata`, `get_all_metadata` (ordered by key),
  `create_parse_record`, `get_latest_parse`, `get_parse_history(limit)`
  (newest first; a limit of zero or less means 10) and
  `update_parse_status` (finishing statuses also stamp `completed_at`).
- `mnemosyne.transaction`: `PostgresTransactionManager(database)` and
  `PostgresTransaction`, plus `with_transaction_stateless(database, fn)`.
- `mnemosyne.factory`: `create_repositories(...)` bundles the five
  repositories into a frozen `Repositories` dataclass and raises
  `ValidationError` if any is `None`.
- `mnemosyne.performance`: `PerformanceOptimizer(executor)` reports
  server settings and missing extensions (as printed warnings), runs
  `ANALYZE` / `VACUUM ANALYZE` on the vault tables, reads
  `pg_stat_statements` (returning an empty list when it is
  unavailable), and creates and refreshes two materialized views.
  `QueryOptimizer` gives batch sizes, whether to use a transaction,
  and a rough `timedelta` estimate of query time.
- `mnemosyne.errors`: `RepositoryError` and its subclasses
  `NotFoundError`, `DuplicateKeyError`, `ValidationError`,
  `DatabaseConnectionError`, `TransactionError` and
  `BatchOperationError`, with the predicates `is_not_found`,
  `is_duplicate_key`, `is_validation_error` and `is_connection_error`,
  which also look through the chain of causes.
- `mnemosyne.pg_errors` and `mnemosyne.pg_helpers`:
  `PgNotFoundError`, `PgDuplicateKeyError`, `PgValidationError`, and
  `handle_postgres_error(err, resource)`, which maps a driver error's
  SQLSTATE (read from its `pgcode` or `sqlstate` attribute) onto them:
  `23505` to a duplicate key, `23503` and `22P02` to validation errors,
  anything else to a plain `RepositoryError` raised from the original.

## Behaviour worth knowing

- `create` assigns a UUID when the record has no id and stamps its
  timestamps on the object passed in.
- `delete` and `delete_by_node_id` do nothing, without error, when the
  row does not exist; `update` raises `PgNotFoundError` when it does.
- Batch operations run inside the given transaction when passed a
  `TransactionExecutor`, open their own transaction when passed a
  `Database`, and fall back to one statement at a time for any other
  executor. With a transaction, a failure leaves nothing written.
- `PostgresNodeRepository.create_batch` checks every node for a title
  and a file path before writing anything, and raises
  `RepositoryError("validation failed for node at index N: ...")`.
- Inside `with_transaction`, the callback may call `commit()` or
  `rollback()` itself; the manager then leaves the transaction alone.
  An exception from the callback is re-raised unchanged after the
  rollback.

## Example

```python
import psycopg2

from mnemosyne.errors import is_not_found
from mnemosyne.executor import Database
from mnemosyne.factory import create_repositories
from mnemosyne.models import VaultEdge, VaultNode
from mnemosyne.node_repository import PostgresNodeRepository
from mnemosyne.edge_repository import PostgresEdgeRepository
from mnemosyne.position_repository import PostgresPositionRepository
from mnemosyne.metadata_repository import PostgresMetadataRepository
from mnemosyne.transaction import PostgresTransactionManager

database = Database(
    lambda: psycopg2.connect(dbname="mnemosyne", host="localhost"),
    paramstyle="pyformat",
)

repos = create_repositories(
    PostgresNodeRepository(),
    PostgresEdgeRepository(),
    PostgresPositionRepository(),
    PostgresMetadataRepository(),
    PostgresTransactionManager(database),
)

def build(tx):
    repos.nodes.create(tx.executor, VaultNode(id="a", title="A", file_path="/a.md"))
    repos.nodes.create(tx.executor, VaultNode(id="b", title="B", file_path="/b.md"))
    repos.edges.create(
        tx.executor, VaultEdge(source_id="a", target_id="b", edge_type="wikilink")
    )

repos.transactions.with_transaction(build)

try:
    repos.nodes.get_by_id(database, "missing")
except Exception as err:
    assert is_not_found(err)
```

## What this package does not do

- It ships no database driver; you supply a DB-API connection function.
- It does not create the database schema. The tables `nodes`, `edges`,
  `node_positions`, `vault_metadata` and `parse_history` (and the
  `search_vector` column that `search` relies on) must already exist.
- It has no command-line tool, server or user interface; it is a
  library to be called from your own code.