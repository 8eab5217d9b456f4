"""Bundle of repository instances."""

from __future__ import annotations

from dataclasses import dataclass

from .errors import ValidationError
from .interfaces import (
    EdgeRepository,
    MetadataRepository,
    NodeRepository,
    PositionRepository,
    TransactionManager,
)


@dataclass(frozen=True)
class Repositories:
    """All repositories used by the application."""

    nodes: NodeRepository
    edges: EdgeRepository
    positions: PositionRepository
    metadata: MetadataRepository
    transactions: TransactionManager


def create_repositories(nodes, edges, positions, metadata, transactions) -> Repositories:
    """Build a Repositories bundle, rejecting any missing member."""
    for name, value, kind in (
        ("nodes", nodes, "NodeRepository"),
        ("edges", edges, "EdgeRepository"),
        ("positions", positions, "PositionRepository"),
        ("metadata", metadata, "MetadataRepository"),
        ("transactions", transactions, "TransactionManager"),
    ):
        if value is None:
            raise ValidationError(field=name, message=f"{kind} cannot be nil")
    return Repositories(nodes, edges, positions, metadata, transactions)