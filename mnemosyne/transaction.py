"""Transaction management for the PostgreSQL repositories."""

from __future__ import annotations

import sys
from collections.abc import Callable
from typing import Any, TypeVar

from .errors import TransactionError
from .executor import Database, TransactionExecutor, run_in_transaction
from .interfaces import Transaction, TransactionManager

T = TypeVar("T")


class PostgresTransaction(Transaction):
    """An open transaction that repositories can run statements in."""

    def __init__(self, executor: TransactionExecutor) -> None:
        self._executor = executor
        self._committed = False
        self._rolled_back = False

    @property
    def executor(self) -> TransactionExecutor:
        return self._executor

    @property
    def committed(self) -> bool:
        return self._committed

    @property
    def rolled_back(self) -> bool:
        return self._rolled_back

    @property
    def finished(self) -> bool:
        return self._committed or self._rolled_back

    def commit(self) -> None:
        """Commit; raises TransactionError if already finished or on failure."""
        if self.finished:
            raise TransactionError("transaction already finished")
        try:
            self._executor.commit()
        except Exception as exc:
            raise TransactionError(f"failed to commit transaction: {exc}") from exc
        self._committed = True

    def rollback(self) -> None:
        """Roll back; does nothing if the transaction is already finished."""
        if self.finished:
            return
        try:
            self._executor.rollback()
        except Exception as exc:
            raise TransactionError(f"failed to rollback transaction: {exc}") from exc
        self._rolled_back = True


class PostgresTransactionManager(TransactionManager):
    """Runs callables inside transactions opened on a Database."""

    def __init__(self, database: Database) -> None:
        self._database = database

    def with_transaction(self, fn: Callable[[Transaction], T]) -> T:
        """Run fn in a transaction, committing on success and rolling back on error.

        The error raised by fn is re-raised unchanged, unless the rollback
        also fails, in which case a TransactionError describing both is raised.
        """
        try:
            executor = self._database.begin()
        except Exception as exc:
            raise TransactionError(f"failed to begin transaction: {exc}") from exc

        transaction = PostgresTransaction(executor)
        try:
            result = fn(transaction)
        except Exception as exc:
            try:
                transaction.rollback()
            except Exception as rollback_exc:
                raise TransactionError(
                    f"transaction failed: {exc}; additionally, rollback failed: {rollback_exc}"
                ) from exc
            raise
        except BaseException:
            try:
                transaction.rollback()
            except Exception as rollback_exc:
                print(
                    f"Failed to rollback transaction during interruption: {rollback_exc}",
                    file=sys.stderr,
                )
            raise

        if not transaction.finished:
            try:
                transaction.commit()
            except TransactionError as exc:
                raise TransactionError(f"failed to commit transaction: {exc}") from exc
        return result


def with_transaction_stateless(
    database: Database, fn: Callable[[TransactionExecutor], Any]
) -> Any:
    """Call fn with a transaction executor; commit on success, roll back on error."""
    return run_in_transaction(database, fn)