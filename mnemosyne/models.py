"""Records stored by the repositories."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime
from enum import Enum
from typing import Any


@dataclass
class VaultNode:
    """A note in the knowledge graph."""

    id: str = ""
    title: str = ""
    node_type: str = ""
    tags: list[str] = field(default_factory=list)
    content: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)
    file_path: str = ""
    in_degree: int = 0
    out_degree: int = 0
    centrality: float = 0.0
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class VaultEdge:
    """A link between two nodes."""

    id: str = ""
    source_id: str = ""
    target_id: str = ""
    edge_type: str = ""
    display_text: str = ""
    weight: float = 0.0
    created_at: datetime | None = None


@dataclass
class NodePosition:
    """Saved layout coordinates of a node."""

    node_id: str = ""
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    locked: bool = False
    updated_at: datetime | None = None


@dataclass
class VaultMetadata:
    """A key-value fact about the vault."""

    key: str = ""
    value: str = ""
    updated_at: datetime | None = None


class ParseStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class ParseStats:
    """Counters gathered during a vault parse."""

    total_files: int = 0
    parsed_files: int = 0
    total_nodes: int = 0
    total_edges: int = 0
    duration_ms: int = 0
    unresolved_links: int = 0

    def to_json(self) -> str:
        return json.dumps(asdict(self), sort_keys=True)

    @classmethod
    def from_json(cls, text: str | bytes | None) -> ParseStats:
        if not text:
            return cls()
        data = json.loads(text)
        known = {f.name for f in fields(cls)}
        return cls(**{k: int(v) for k, v in data.items() if k in known})


@dataclass
class ParseHistory:
    """One run of the vault parser."""

    id: str = ""
    started_at: datetime | None = None
    completed_at: datetime | None = None
    status: ParseStatus = ParseStatus.RUNNING
    stats: ParseStats = field(default_factory=ParseStats)
    error: str | None = None