"""Abstract contracts for the repositories and transactions."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from typing import Any

from .executor import Executor
from .models import (
    NodePosition,
    ParseHistory,
    ParseStatus,
    VaultEdge,
    VaultMetadata,
    VaultNode,
)


class NodeRepository(ABC):
    """Persistence of vault nodes."""

    @abstractmethod
    def create(self, executor: Executor, node: VaultNode) -> None: ...

    @abstractmethod
    def get_by_id(self, executor: Executor, node_id: str) -> VaultNode: ...

    @abstractmethod
    def update(self, executor: Executor, node: VaultNode) -> None: ...

    @abstractmethod
    def delete(self, executor: Executor, node_id: str) -> None: ...

    @abstractmethod
    def create_batch(self, executor: Executor, nodes: Sequence[VaultNode]) -> None: ...

    @abstractmethod
    def upsert_batch(self, executor: Executor, nodes: Sequence[VaultNode]) -> None: ...

    @abstractmethod
    def get_all(self, executor: Executor, limit: int, offset: int) -> list[VaultNode]: ...

    @abstractmethod
    def get_by_ids(self, executor: Executor, ids: Sequence[str]) -> list[VaultNode]: ...

    @abstractmethod
    def get_by_type(self, executor: Executor, node_type: str) -> list[VaultNode]: ...

    @abstractmethod
    def get_by_path(self, executor: Executor, path: str) -> VaultNode: ...

    @abstractmethod
    def search(self, executor: Executor, query: str) -> list[VaultNode]: ...

    @abstractmethod
    def count(self, executor: Executor) -> int: ...

    @abstractmethod
    def delete_all(self, executor: Executor) -> None: ...


class EdgeRepository(ABC):
    """Persistence of links between nodes."""

    @abstractmethod
    def create(self, executor: Executor, edge: VaultEdge) -> None: ...

    @abstractmethod
    def get_by_id(self, executor: Executor, edge_id: str) -> VaultEdge: ...

    @abstractmethod
    def delete(self, executor: Executor, edge_id: str) -> None: ...

    @abstractmethod
    def create_batch(self, executor: Executor, edges: Sequence[VaultEdge]) -> None: ...

    @abstractmethod
    def upsert_batch(self, executor: Executor, edges: Sequence[VaultEdge]) -> None: ...

    @abstractmethod
    def get_by_node(self, executor: Executor, node_id: str) -> list[VaultEdge]: ...

    @abstractmethod
    def get_by_source_and_target(
        self, executor: Executor, source_id: str, target_id: str
    ) -> list[VaultEdge]: ...

    @abstractmethod
    def get_all(self, executor: Executor, limit: int, offset: int) -> list[VaultEdge]: ...

    @abstractmethod
    def count(self, executor: Executor) -> int: ...

    @abstractmethod
    def get_incoming_edges(self, executor: Executor, node_id: str) -> list[VaultEdge]: ...

    @abstractmethod
    def get_outgoing_edges(self, executor: Executor, node_id: str) -> list[VaultEdge]: ...

    @abstractmethod
    def delete_all(self, executor: Executor) -> None: ...


class PositionRepository(ABC):
    """Persistence of saved node layout positions."""

    @abstractmethod
    def get_by_node_id(self, executor: Executor, node_id: str) -> NodePosition: ...

    @abstractmethod
    def upsert(self, executor: Executor, position: NodePosition) -> None: ...

    @abstractmethod
    def upsert_batch(self, executor: Executor, positions: Sequence[NodePosition]) -> None: ...

    @abstractmethod
    def get_all(self, executor: Executor) -> list[NodePosition]: ...

    @abstractmethod
    def delete_by_node_id(self, executor: Executor, node_id: str) -> None: ...


class MetadataRepository(ABC):
    """Vault metadata and parse history."""

    @abstractmethod
    def get_metadata(self, executor: Executor, key: str) -> VaultMetadata: ...

    @abstractmethod
    def set_metadata(self, executor: Executor, metadata: VaultMetadata) -> None: ...

    @abstractmethod
    def get_all_metadata(self, executor: Executor) -> list[VaultMetadata]: ...

    @abstractmethod
    def create_parse_record(self, executor: Executor, record: ParseHistory) -> None: ...

    @abstractmethod
    def get_latest_parse(self, executor: Executor) -> ParseHistory: ...

    @abstractmethod
    def get_parse_history(self, executor: Executor, limit: int) -> list[ParseHistory]: ...

    @abstractmethod
    def update_parse_status(
        self, executor: Executor, record_id: str, status: ParseStatus
    ) -> None: ...


class Transaction(ABC):
    """An open transaction with an executor for repositories."""

    @property
    @abstractmethod
    def executor(self) -> Executor: ...

    @abstractmethod
    def commit(self) -> None:
        """Commit the transaction."""

    @abstractmethod
    def rollback(self) -> None:
        """Roll the transaction back."""


class TransactionManager(ABC):
    """Runs callables inside transactions."""

    @abstractmethod
    def with_transaction(self, fn: Callable[[Transaction], Any]) -> Any:
        """Run fn in a transaction, committing on success and rolling back on error."""