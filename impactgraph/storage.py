"""Persistence layer for per-project dependency graphs.

Architecture:
- :class:`GraphStore` holds one project's graph in memory.  It is a flat,
  append-only store: no uniqueness checks and no query optimisation; graph
  algorithms run over the full snapshot returned by :meth:`GraphStore.get_graph`.
- :class:`GraphPersistence` implementations write whole snapshots to disk.
  SQLite is the default; a plain ``graph.json`` backend is also available.
- :class:`ProjectManager` manages project directories, the active project
  and the repository registry.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from . import config
from .config import PROJECTS_DIR, STATE_FILE
from .errors import GraphStoreError
from .models import EdgeType, Graph, GraphEdge, GraphNode, NodeMetadata, NodeType

logger = logging.getLogger(__name__)


# ===================================================================
# ProjectManager
# ===================================================================

class ProjectManager:
    """Manage project directories, active project state and repositories."""

    def __init__(self) -> None:
        PROJECTS_DIR.mkdir(parents=True, exist_ok=True)

    def list_projects(self) -> List[str]:
        if not PROJECTS_DIR.exists():
            return []
        return sorted([p.name for p in PROJECTS_DIR.iterdir() if p.is_dir()])

    def project_dir(self, project_id: str) -> Path:
        return PROJECTS_DIR / project_id

    def create_or_get_project(self, project_id: str) -> Path:
        path = self.project_dir(project_id)
        path.mkdir(parents=True, exist_ok=True)
        return path

    def set_current_project(self, project_id: str) -> None:
        STATE_FILE.parent.mkdir(parents=True, exist_ok=True)
        STATE_FILE.write_text(
            json.dumps({"current_project": project_id}, indent=2),
            encoding="utf-8",
        )

    def get_current_project(self) -> Optional[str]:
        if not STATE_FILE.exists():
            return None
        try:
            payload = json.loads(STATE_FILE.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            return None
        return payload.get("current_project")

    def delete_project(self, project_id: str) -> bool:
        path = self.project_dir(project_id)
        if not path.exists():
            return False
        for child in sorted(path.glob("**/*"), reverse=True):
            if child.is_file():
                child.unlink()
            elif child.is_dir():
                child.rmdir()
        path.rmdir()
        forget_store(project_id)
        if self.get_current_project() == project_id:
            self.unload_project()
        return True

    def unload_project(self) -> None:
        STATE_FILE.parent.mkdir(parents=True, exist_ok=True)
        STATE_FILE.write_text(
            json.dumps({"current_project": None}, indent=2),
            encoding="utf-8",
        )

    # ------------------------------------------------------------------
    # Repository registry (project.json)
    # ------------------------------------------------------------------

    def _meta_path(self, project_id: str) -> Path:
        return self.project_dir(project_id) / "project.json"

    def get_metadata(self, project_id: str) -> Dict:
        meta_path = self._meta_path(project_id)
        if not meta_path.exists():
            return {}
        try:
            return json.loads(meta_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            return {}

    def set_metadata(self, project_id: str, payload: Dict) -> None:
        self.create_or_get_project(project_id)
        self._meta_path(project_id).write_text(
            json.dumps(payload, indent=2), encoding="utf-8",
        )

    def register_repository(self, project_id: str, repository_id: str, path: Path) -> None:
        meta = self.get_metadata(project_id)
        repos = meta.setdefault("repositories", {})
        repos[repository_id] = str(Path(path).resolve())
        self.set_metadata(project_id, meta)

    def repositories(self, project_id: str) -> Dict[str, Path]:
        repos = self.get_metadata(project_id).get("repositories", {})
        return {repo_id: Path(path) for repo_id, path in repos.items()}


# ===================================================================
# Persistence backends
# ===================================================================

class GraphPersistence(ABC):
    """Full-snapshot load/store of a project graph."""

    @abstractmethod
    def load(self, project_id: str) -> Optional[Graph]:
        """Return the persisted graph, or ``None`` when nothing was saved yet."""

    @abstractmethod
    def store(self, project_id: str, graph: Graph) -> None:
        """Overwrite the persisted graph with *graph*."""


class SQLiteGraphPersistence(GraphPersistence):
    """One ``graph.db`` per project with ``nodes`` and ``edges`` tables."""

    def __init__(self, projects_dir: Optional[Path] = None) -> None:
        self.projects_dir = projects_dir or PROJECTS_DIR

    def db_path(self, project_id: str) -> Path:
        return self.projects_dir / project_id / "graph.db"

    def _connect(self, project_id: str) -> sqlite3.Connection:
        path = self.db_path(project_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(path))
        conn.row_factory = sqlite3.Row
        self._init_schema(conn)
        return conn

    @staticmethod
    def _init_schema(conn: sqlite3.Connection) -> None:
        cur = conn.cursor()
        cur.execute("""
            CREATE TABLE IF NOT EXISTS nodes (
                seq       INTEGER PRIMARY KEY AUTOINCREMENT,
                node_id   TEXT NOT NULL,
                node_type TEXT NOT NULL,
                label     TEXT NOT NULL,
                metadata  TEXT
            )
        """)
        # No uniqueness constraint: duplicate edges are kept as inserted
        cur.execute("""
            CREATE TABLE IF NOT EXISTS edges (
                seq       INTEGER PRIMARY KEY AUTOINCREMENT,
                src       TEXT NOT NULL,
                dst       TEXT NOT NULL,
                edge_type TEXT NOT NULL
            )
        """)
        cur.execute("CREATE INDEX IF NOT EXISTS idx_edges_dst ON edges(dst)")
        conn.commit()

    def load(self, project_id: str) -> Optional[Graph]:
        if not self.db_path(project_id).exists():
            return None
        try:
            conn = self._connect(project_id)
            try:
                node_rows = conn.execute("SELECT * FROM nodes ORDER BY seq").fetchall()
                edge_rows = conn.execute("SELECT * FROM edges ORDER BY seq").fetchall()
            finally:
                conn.close()
            nodes = [
                GraphNode(
                    id=row["node_id"],
                    type=NodeType.parse(row["node_type"]),
                    label=row["label"],
                    metadata=NodeMetadata.from_dict(json.loads(row["metadata"] or "{}")),
                )
                for row in node_rows
            ]
            edges = [
                GraphEdge(source=row["src"], target=row["dst"], type=EdgeType.parse(row["edge_type"]))
                for row in edge_rows
            ]
        except (sqlite3.Error, json.JSONDecodeError) as exc:
            raise GraphStoreError(f"Cannot load graph for project '{project_id}': {exc}") from exc
        return Graph(nodes=nodes, edges=edges)

    def store(self, project_id: str, graph: Graph) -> None:
        try:
            conn = self._connect(project_id)
            try:
                with conn:
                    conn.execute("DELETE FROM edges")
                    conn.execute("DELETE FROM nodes")
                    conn.executemany(
                        "INSERT INTO nodes (node_id, node_type, label, metadata) VALUES (?, ?, ?, ?)",
                        [
                            (n.id, n.type.value, n.label, json.dumps(n.metadata.to_dict()))
                            for n in graph.nodes
                        ],
                    )
                    conn.executemany(
                        "INSERT INTO edges (src, dst, edge_type) VALUES (?, ?, ?)",
                        [(e.source, e.target, e.type.value) for e in graph.edges],
                    )
            finally:
                conn.close()
        except (sqlite3.Error, OSError) as exc:
            raise GraphStoreError(f"Cannot save graph for project '{project_id}': {exc}") from exc


class JSONGraphPersistence(GraphPersistence):
    """One ``graph.json`` per project: ``{"nodes": [...], "edges": [...]}``."""

    def __init__(self, projects_dir: Optional[Path] = None) -> None:
        self.projects_dir = projects_dir or PROJECTS_DIR

    def graph_path(self, project_id: str) -> Path:
        return self.projects_dir / project_id / "graph.json"

    def load(self, project_id: str) -> Optional[Graph]:
        path = self.graph_path(project_id)
        if not path.exists():
            return None
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
            return Graph.from_dict(payload)
        except (OSError, json.JSONDecodeError, KeyError, TypeError) as exc:
            raise GraphStoreError(f"Cannot load graph for project '{project_id}': {exc}") from exc

    def store(self, project_id: str, graph: Graph) -> None:
        path = self.graph_path(project_id)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(graph.to_dict(), indent=2), encoding="utf-8")
        except OSError as exc:
            raise GraphStoreError(f"Cannot save graph for project '{project_id}': {exc}") from exc


def default_persistence() -> GraphPersistence:
    if config.STORAGE_BACKEND == "json":
        return JSONGraphPersistence()
    return SQLiteGraphPersistence()


# ===================================================================
# GraphStore
# ===================================================================

class GraphStore:
    """In-memory graph of one project, loaded lazily and written back on :meth:`save`."""

    def __init__(self, project_id: str, persistence: Optional[GraphPersistence] = None) -> None:
        self.project_id = project_id
        self.persistence = persistence or default_persistence()
        self._nodes: List[GraphNode] = []
        self._edges: List[GraphEdge] = []
        self._loaded = False
        self._lock = threading.RLock()

    def _ensure_loaded(self) -> None:
        if self._loaded:
            return
        graph = self.persistence.load(self.project_id)
        if graph is not None:
            self._nodes = list(graph.nodes)
            self._edges = list(graph.edges)
            logger.debug(
                "Loaded graph for %s: %d nodes, %d edges",
                self.project_id, len(self._nodes), len(self._edges),
            )
        self._loaded = True

    # ------------------------------------------------------------------
    # Insert
    # ------------------------------------------------------------------

    def add_node(self, node: GraphNode) -> None:
        with self._lock:
            self._ensure_loaded()
            self._nodes.append(node)

    def add_edge(self, edge: GraphEdge) -> None:
        with self._lock:
            self._ensure_loaded()
            self._edges.append(edge)

    def add_nodes(self, nodes: Iterable[GraphNode]) -> None:
        with self._lock:
            self._ensure_loaded()
            self._nodes.extend(nodes)

    def add_edges(self, edges: Iterable[GraphEdge]) -> None:
        with self._lock:
            self._ensure_loaded()
            self._edges.extend(edges)

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get_graph(self) -> Graph:
        """Snapshot copy of the current nodes and edges."""
        with self._lock:
            self._ensure_loaded()
            return Graph(nodes=list(self._nodes), edges=list(self._edges))

    def has_node(self, node_id: str) -> bool:
        with self._lock:
            self._ensure_loaded()
            return any(n.id == node_id for n in self._nodes)

    # ------------------------------------------------------------------
    # Persist
    # ------------------------------------------------------------------

    def save(self) -> None:
        with self._lock:
            self._ensure_loaded()
            snapshot = Graph(nodes=list(self._nodes), edges=list(self._edges))
            self.persistence.store(self.project_id, snapshot)
        logger.info(
            "Saved graph for %s: %d nodes, %d edges",
            self.project_id, len(snapshot.nodes), len(snapshot.edges),
        )


# ===================================================================
# Process-wide registry
# ===================================================================

_STORES: Dict[str, GraphStore] = {}
_STORES_LOCK = threading.Lock()


def open_store(project_id: str, persistence: Optional[GraphPersistence] = None) -> GraphStore:
    """Return the process-wide :class:`GraphStore` for *project_id*.

    *persistence* only applies when the store is first opened. Passing a
    different backend for an already open store raises :class:`GraphStoreError`;
    call :func:`forget_store` first to switch.
    """
    with _STORES_LOCK:
        store = _STORES.get(project_id)
        if store is None:
            store = GraphStore(project_id, persistence)
            _STORES[project_id] = store
        elif persistence is not None and persistence is not store.persistence:
            raise GraphStoreError(
                f"Store for project '{project_id}' is already open with "
                f"{type(store.persistence).__name__}"
            )
        return store


def forget_store(project_id: str) -> None:
    with _STORES_LOCK:
        _STORES.pop(project_id, None)
