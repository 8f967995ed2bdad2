"""Core data models shared by indexing, storage and impact analysis."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

METADATA_VERSION = 1


class NodeType(str, Enum):
    FILE = "FILE"
    FUNCTION = "FUNCTION"
    OTHER = "OTHER"

    @classmethod
    def parse(cls, value: str) -> "NodeType":
        try:
            return cls(value)
        except ValueError:
            return cls.OTHER


class EdgeType(str, Enum):
    DEFINES = "DEFINES"
    IMPORTS = "IMPORTS"
    OTHER = "OTHER"

    @classmethod
    def parse(cls, value: str) -> "EdgeType":
        try:
            return cls(value)
        except ValueError:
            return cls.OTHER


class Severity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


@dataclass
class NodeMetadata:
    """Typed node attributes with a version tag and an ``extra`` escape hatch."""
    repository_id: Optional[str] = None
    start_line: Optional[int] = None
    end_line: Optional[int] = None
    extra: Dict[str, Any] = field(default_factory=dict)
    version: int = METADATA_VERSION

    _KNOWN_KEYS = ("repoId", "startLine", "endLine", "version")

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = dict(self.extra)
        if self.repository_id is not None:
            payload["repoId"] = self.repository_id
        if self.start_line is not None:
            payload["startLine"] = self.start_line
        if self.end_line is not None:
            payload["endLine"] = self.end_line
        payload["version"] = self.version
        return payload

    @classmethod
    def from_dict(cls, payload: Optional[Dict[str, Any]]) -> "NodeMetadata":
        payload = payload or {}
        return cls(
            repository_id=payload.get("repoId"),
            start_line=payload.get("startLine"),
            end_line=payload.get("endLine"),
            extra={k: v for k, v in payload.items() if k not in cls._KNOWN_KEYS},
            version=int(payload.get("version", METADATA_VERSION)),
        )


@dataclass
class GraphNode:
    id: str
    type: NodeType
    label: str
    metadata: NodeMetadata = field(default_factory=NodeMetadata)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "label": self.label,
            "metadata": self.metadata.to_dict(),
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "GraphNode":
        return cls(
            id=payload["id"],
            type=NodeType.parse(payload.get("type", "")),
            label=payload.get("label", ""),
            metadata=NodeMetadata.from_dict(payload.get("metadata")),
        )


@dataclass
class GraphEdge:
    source: str
    target: str
    type: EdgeType

    def to_dict(self) -> Dict[str, str]:
        return {"source": self.source, "target": self.target, "type": self.type.value}

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "GraphEdge":
        return cls(
            source=payload["source"],
            target=payload["target"],
            type=EdgeType.parse(payload.get("type", "")),
        )


@dataclass
class Graph:
    """All nodes and edges of one project."""
    nodes: List[GraphNode] = field(default_factory=list)
    edges: List[GraphEdge] = field(default_factory=list)

    def node_ids(self) -> Set[str]:
        return {n.id for n in self.nodes}

    def find_node(self, node_id: str) -> Optional[GraphNode]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nodes": [n.to_dict() for n in self.nodes],
            "edges": [e.to_dict() for e in self.edges],
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "Graph":
        return cls(
            nodes=[GraphNode.from_dict(n) for n in payload.get("nodes", [])],
            edges=[GraphEdge.from_dict(e) for e in payload.get("edges", [])],
        )


@dataclass
class AffectedFile:
    repository_id: str
    file_path: str
    reason: str

    def to_dict(self) -> Dict[str, str]:
        return {"repoId": self.repository_id, "filePath": self.file_path, "reason": self.reason}


@dataclass
class ImpactResult:
    """Outcome of one impact analysis; built fresh per call."""
    project_id: str
    changed_repository: str
    changed_file: str
    affected_files: List[AffectedFile] = field(default_factory=list)
    is_breaking: bool = False
    severity: Severity = Severity.LOW
    explanation: str = ""
    timestamp: str = field(default_factory=lambda: utc_now())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "projectId": self.project_id,
            "changedRepo": self.changed_repository,
            "changedFile": self.changed_file,
            "affectedFiles": [f.to_dict() for f in self.affected_files],
            "isBreaking": self.is_breaking,
            "severity": self.severity.value,
            "explanation": self.explanation,
            "timestamp": self.timestamp,
        }


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def split_node_id(node_id: str) -> Tuple[str, str]:
    """Split ``repo:path[:symbol]`` into ``(repo, path[:symbol])``."""
    repository_id, _, rest = node_id.partition(":")
    return repository_id, rest


def dedupe_affected(files: Iterable[AffectedFile]) -> List[AffectedFile]:
    """Keep the first entry for each ``(repository, path)`` pair."""
    seen: Set[Tuple[str, str]] = set()
    unique: List[AffectedFile] = []
    for item in files:
        key = (item.repository_id, item.file_path)
        if key in seen:
            continue
        seen.add(key)
        unique.append(item)
    return unique
