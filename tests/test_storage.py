"""Tests for graph storage and project management."""

from pathlib import Path

import pytest

from conftest import file_node, imports
from impactgraph import storage
from impactgraph.errors import GraphStoreError
from impactgraph.models import EdgeType, GraphEdge, GraphNode, NodeMetadata, NodeType
from impactgraph.storage import (
    GraphStore,
    JSONGraphPersistence,
    ProjectManager,
    SQLiteGraphPersistence,
    forget_store,
    open_store,
)


def _sample_graph_into(store: GraphStore) -> None:
    store.add_node(file_node("shared", "src/api.ts"))
    store.add_node(GraphNode(
        id="shared:src/api.ts:fetchUser",
        type=NodeType.FUNCTION,
        label="fetchUser",
        metadata=NodeMetadata(start_line=3, end_line=9, extra={"exported": True}),
    ))
    store.add_node(file_node("web", "src/app.ts"))
    store.add_edge(GraphEdge("shared:src/api.ts", "shared:src/api.ts:fetchUser", EdgeType.DEFINES))
    store.add_edge(imports("web:src/app.ts", "shared:src/api.ts"))
    store.add_edge(imports("web:src/app.ts", "shared:src/api.ts"))


class TestProjectManager:
    """Tests for ProjectManager."""

    def test_create_and_list_projects(self, temp_project_manager: ProjectManager):
        """Created projects are listed alphabetically."""
        temp_project_manager.create_or_get_project("beta")
        temp_project_manager.create_or_get_project("alpha")

        assert temp_project_manager.list_projects() == ["alpha", "beta"]

    def test_current_project(self, temp_project_manager: ProjectManager):
        """The current project survives a new manager instance."""
        temp_project_manager.create_or_get_project("p1")
        temp_project_manager.set_current_project("p1")

        assert ProjectManager().get_current_project() == "p1"

    def test_no_current_project(self, temp_project_manager: ProjectManager):
        assert temp_project_manager.get_current_project() is None

    def test_delete_project(self, temp_project_manager: ProjectManager):
        """Deleting removes the directory, the cached store and the selection."""
        temp_project_manager.create_or_get_project("p1")
        temp_project_manager.set_current_project("p1")
        store = open_store("p1")
        _sample_graph_into(store)
        store.save()

        assert temp_project_manager.delete_project("p1") is True
        assert "p1" not in temp_project_manager.list_projects()
        assert "p1" not in storage._STORES
        assert temp_project_manager.get_current_project() is None

    def test_delete_missing_project(self, temp_project_manager: ProjectManager):
        assert temp_project_manager.delete_project("ghost") is False

    def test_repository_registry(self, temp_project_manager: ProjectManager, workspace_path: Path):
        """Registered repositories map ids to absolute checkout paths."""
        temp_project_manager.register_repository("p1", "shared", workspace_path / "shared")
        temp_project_manager.register_repository("p1", "web", workspace_path / "web")

        repos = temp_project_manager.repositories("p1")

        assert set(repos) == {"shared", "web"}
        assert repos["shared"] == (workspace_path / "shared").resolve()

    def test_corrupt_metadata_is_ignored(self, temp_project_manager: ProjectManager):
        path = temp_project_manager.create_or_get_project("p1") / "project.json"
        path.write_text("{not json", encoding="utf-8")

        assert temp_project_manager.repositories("p1") == {}


@pytest.mark.parametrize("backend", [SQLiteGraphPersistence, JSONGraphPersistence])
class TestPersistence:
    """Round trips through each persistence backend."""

    def test_round_trip(self, backend, temp_dir: Path):
        """Nodes, metadata and edges survive save and reload in order."""
        persistence = backend(temp_dir / "projects")
        store = GraphStore("p1", persistence)
        _sample_graph_into(store)
        store.save()

        graph = GraphStore("p1", persistence).get_graph()

        assert [n.id for n in graph.nodes] == [
            "shared:src/api.ts", "shared:src/api.ts:fetchUser", "web:src/app.ts",
        ]
        func = graph.find_node("shared:src/api.ts:fetchUser")
        assert func.type == NodeType.FUNCTION
        assert func.metadata.start_line == 3
        assert func.metadata.end_line == 9
        assert func.metadata.extra == {"exported": True}
        assert graph.find_node("web:src/app.ts").metadata.repository_id == "web"

    def test_duplicate_edges_are_preserved(self, backend, temp_dir: Path):
        """The store does not deduplicate edges."""
        persistence = backend(temp_dir / "projects")
        store = GraphStore("p1", persistence)
        _sample_graph_into(store)
        store.save()

        edges = GraphStore("p1", persistence).get_graph().edges

        assert [e.type for e in edges].count(EdgeType.IMPORTS) == 2

    def test_save_overwrites(self, backend, temp_dir: Path):
        """Saving twice does not duplicate previously saved rows."""
        persistence = backend(temp_dir / "projects")
        store = GraphStore("p1", persistence)
        _sample_graph_into(store)
        store.save()
        store.save()

        assert len(GraphStore("p1", persistence).get_graph().nodes) == 3

    def test_missing_graph_loads_empty(self, backend, temp_dir: Path):
        graph = GraphStore("nothing", backend(temp_dir / "projects")).get_graph()

        assert graph.nodes == []
        assert graph.edges == []


class TestGraphStore:
    """Tests for the in-memory GraphStore."""

    def test_unknown_types_map_to_other(self, temp_dir: Path):
        """Unrecognized node and edge types load as OTHER."""
        path = temp_dir / "projects" / "p1" / "graph.json"
        path.parent.mkdir(parents=True)
        path.write_text(
            '{"nodes": [{"id": "r:a", "type": "CLASS", "label": "a"}],'
            ' "edges": [{"source": "r:a", "target": "r:b", "type": "CALLS"}]}',
            encoding="utf-8",
        )

        graph = GraphStore("p1", JSONGraphPersistence(temp_dir / "projects")).get_graph()

        assert graph.nodes[0].type == NodeType.OTHER
        assert graph.edges[0].type == EdgeType.OTHER

    def test_corrupt_json_raises(self, temp_dir: Path):
        """An unreadable graph is reported as GraphStoreError."""
        path = temp_dir / "projects" / "p1" / "graph.json"
        path.parent.mkdir(parents=True)
        path.write_text("{broken", encoding="utf-8")

        with pytest.raises(GraphStoreError):
            GraphStore("p1", JSONGraphPersistence(temp_dir / "projects")).get_graph()

    def test_corrupt_sqlite_raises(self, temp_dir: Path):
        path = temp_dir / "projects" / "p1" / "graph.db"
        path.parent.mkdir(parents=True)
        path.write_bytes(b"this is not a database file at all" * 10)

        with pytest.raises(GraphStoreError):
            GraphStore("p1", SQLiteGraphPersistence(temp_dir / "projects")).get_graph()

    def test_snapshot_is_a_copy(self, temp_graph_store: GraphStore):
        """Mutating a snapshot does not change the store."""
        _sample_graph_into(temp_graph_store)
        snapshot = temp_graph_store.get_graph()
        snapshot.nodes.clear()

        assert len(temp_graph_store.get_graph().nodes) == 3

    def test_has_node(self, temp_graph_store: GraphStore):
        _sample_graph_into(temp_graph_store)

        assert temp_graph_store.has_node("web:src/app.ts")
        assert not temp_graph_store.has_node("web:src/missing.ts")

    def test_open_store_is_shared(self):
        """The registry returns one store per project until forgotten."""
        first = open_store("p1")

        assert open_store("p1") is first
        forget_store("p1")
        assert open_store("p1") is not first

    def test_open_store_rejects_other_backend(self, temp_dir: Path):
        """A cached store is not silently reused with a different backend."""
        backend = JSONGraphPersistence(temp_dir / "graphs")
        first = open_store("p1", backend)

        assert open_store("p1") is first
        assert open_store("p1", backend) is first
        with pytest.raises(GraphStoreError):
            open_store("p1", SQLiteGraphPersistence(temp_dir / "graphs"))

    def test_default_backend_is_sqlite(self):
        """Stores opened from the registry write graph.db under the projects dir."""
        store = open_store("p1")
        _sample_graph_into(store)
        store.save()

        assert (storage.PROJECTS_DIR / "p1" / "graph.db").exists()
