"""Database executors over DB-API connections.

Queries are written with ``$1``-style positional placeholders or ``:name``
named placeholders and translated to the driver's parameter style.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import Any, TypeVar

from .errors import TransactionError

T = TypeVar("T")

_POSITIONAL = re.compile(r"\$(\d+)")
_NAMED = re.compile(r"(?<![:\w]):([A-Za-z_]\w*)")
_STYLES = ("qmark", "format", "numeric", "named", "pyformat")


def _escape_percent(query: str, style: str) -> str:
    return query.replace("%", "%%") if style in ("format", "pyformat") else query


def _translate_positional(query: str, args: Sequence[Any], style: str):
    if not args:
        return query, ()
    query = _escape_percent(query, style)
    ordered: list[Any] = []
    named: dict[str, Any] = {}

    def repl(match: re.Match) -> str:
        index = int(match.group(1))
        if index < 1 or index > len(args):
            raise ValueError(f"placeholder ${index} has no argument")
        value = args[index - 1]
        if style == "qmark":
            ordered.append(value)
            return "?"
        if style == "format":
            ordered.append(value)
            return "%s"
        if style == "numeric":
            return f":{index}"
        named[f"p{index}"] = value
        return f":p{index}" if style == "named" else f"%(p{index})s"

    text = _POSITIONAL.sub(repl, query)
    if style == "numeric":
        return text, tuple(args)
    if style in ("named", "pyformat"):
        return text, named
    return text, tuple(ordered)


def _translate_named(query: str, params: Mapping[str, Any], style: str):
    query = _escape_percent(query, style)
    ordered: list[Any] = []
    positions: dict[str, int] = {}

    def repl(match: re.Match) -> str:
        name = match.group(1)
        if name not in params:
            raise ValueError(f"missing parameter :{name}")
        if style == "named":
            return f":{name}"
        if style == "pyformat":
            return f"%({name})s"
        if style == "numeric":
            if name not in positions:
                ordered.append(params[name])
                positions[name] = len(ordered)
            return f":{positions[name]}"
        ordered.append(params[name])
        return "?" if style == "qmark" else "%s"

    text = _NAMED.sub(repl, query)
    if style in ("named", "pyformat"):
        return text, dict(params)
    return text, tuple(ordered)


class Executor:
    """Runs queries on a DB-API connection."""

    def __init__(self, connection: Any, paramstyle: str = "qmark") -> None:
        if paramstyle not in _STYLES:
            raise ValueError(f"unsupported paramstyle {paramstyle!r}")
        self._connection = connection
        self.paramstyle = paramstyle

    def _check_usable(self) -> None:
        pass

    def _after_write(self) -> None:
        pass

    def _after_failure(self) -> None:
        pass

    def _run(self, query: str, params: Any, fetch: bool):
        self._check_usable()
        cursor = self._connection.cursor()
        try:
            cursor.execute(query, params)
            if fetch:
                columns = [d[0] for d in cursor.description or ()]
                return [dict(zip(columns, row)) for row in cursor.fetchall()]
            return cursor.rowcount
        except Exception:
            self._after_failure()
            raise
        finally:
            cursor.close()

    def fetch_one(self, query: str, *args: Any) -> dict[str, Any] | None:
        """Return the first row as a dict, or None when there is none."""
        rows = self.fetch_all(query, *args)
        return rows[0] if rows else None

    def fetch_all(self, query: str, *args: Any) -> list[dict[str, Any]]:
        """Return every row as a dict."""
        text, params = _translate_positional(query, args, self.paramstyle)
        return self._run(text, params, fetch=True)

    def execute(self, query: str, *args: Any) -> int:
        """Run a statement and return the number of rows affected."""
        text, params = _translate_positional(query, args, self.paramstyle)
        count = self._run(text, params, fetch=False)
        self._after_write()
        return count

    def execute_named(self, query: str, params: Mapping[str, Any]) -> int:
        """Run a statement with ``:name`` placeholders filled from a mapping."""
        text, values = _translate_named(query, params, self.paramstyle)
        count = self._run(text, values, fetch=False)
        self._after_write()
        return count

    def copy_rows(
        self, table: str, columns: Sequence[str], rows: Iterable[Sequence[Any]]
    ) -> int:
        """Insert many rows into a table; return how many were written."""
        marks = ", ".join(f"${i}" for i in range(1, len(columns) + 1))
        query = f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({marks})"
        count = 0
        for row in rows:
            text, params = _translate_positional(query, tuple(row), self.paramstyle)
            self._run(text, params, fetch=False)
            count += 1
        self._after_write()
        return count


class TransactionExecutor(Executor):
    """An executor whose writes stay pending until commit."""

    def __init__(
        self, connection: Any, paramstyle: str = "qmark", owns_connection: bool = True
    ) -> None:
        super().__init__(connection, paramstyle)
        self._owns_connection = owns_connection
        self.finished = False

    def _check_usable(self) -> None:
        if self.finished:
            raise TransactionError("transaction already finished")

    def _close(self) -> None:
        self.finished = True
        if self._owns_connection:
            self._connection.close()

    def commit(self) -> None:
        """Make the transaction's writes permanent."""
        self._check_usable()
        try:
            self._connection.commit()
        finally:
            self._close()

    def rollback(self) -> None:
        """Discard the transaction's writes."""
        self._check_usable()
        try:
            self._connection.rollback()
        finally:
            self._close()

    def __enter__(self) -> TransactionExecutor:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self.finished:
            return
        if exc_type is None:
            self.commit()
        else:
            self.rollback()


class Database(Executor):
    """A database handle that commits each statement and opens transactions."""

    def __init__(self, connect: Callable[[], Any], paramstyle: str = "qmark") -> None:
        self._connect = connect
        super().__init__(connect(), paramstyle)

    def _after_write(self) -> None:
        self._connection.commit()

    def _after_failure(self) -> None:
        self._connection.rollback()

    def begin(self) -> TransactionExecutor:
        """Start a transaction on a fresh connection."""
        return TransactionExecutor(self._connect(), self.paramstyle)

    def close(self) -> None:
        self._connection.close()

    def __enter__(self) -> Database:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def run_in_transaction(database: Database, fn: Callable[[TransactionExecutor], T]) -> T:
    """Call fn in a transaction; commit on success, roll back on error."""
    tx = database.begin()
    try:
        result = fn(tx)
    except BaseException:
        if not tx.finished:
            tx.rollback()
        raise
    if not tx.finished:
        tx.commit()
    return result