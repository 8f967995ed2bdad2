"""Tests for repository indexing into a project graph."""

from pathlib import Path

from impactgraph.indexer import Indexer
from impactgraph.models import EdgeType
from impactgraph.storage import GraphStore, JSONGraphPersistence


def _store(temp_dir: Path) -> GraphStore:
    return GraphStore("workspace", JSONGraphPersistence(temp_dir / "graphs"))


class TestIndexer:
    """Tests for Indexer."""

    def test_index_single_repository(self, temp_dir: Path, workspace_path: Path):
        """Counts match the stored graph and the graph is persisted."""
        store = _store(temp_dir)

        stats = Indexer(store).index_repository("shared", workspace_path / "shared")

        assert stats.nodes == 7
        assert stats.edges == 6
        assert stats.failures == 0
        reloaded = _store(temp_dir).get_graph()
        assert len(reloaded.nodes) == 7
        assert len(reloaded.edges) == 6

    def test_cross_repository_edge_kept_when_target_indexed(self, temp_dir: Path, workspace_path: Path):
        store = _store(temp_dir)
        Indexer(store).index_repository("shared", workspace_path / "shared")

        stats = Indexer(store).index_repository(
            "web", workspace_path / "web", linked_roots={"shared": workspace_path / "shared"},
        )

        imports = {
            (e.source, e.target) for e in store.get_graph().edges if e.type == EdgeType.IMPORTS
        }
        assert ("web:src/app.ts", "shared:src/api.ts") in imports
        assert stats.skipped_edges == 0
        assert stats.failures == 1

    def test_cross_repository_edge_dropped_when_target_missing(self, temp_dir: Path, workspace_path: Path):
        """Edges to a linked repository that was never indexed are dropped."""
        store = _store(temp_dir)

        stats = Indexer(store).index_repository(
            "web", workspace_path / "web", linked_roots={"shared": workspace_path / "shared"},
        )

        targets = {e.target for e in store.get_graph().edges}
        assert "shared:src/api.ts" not in targets
        assert stats.skipped_edges == 1

    def test_reindex_adds_nothing_twice(self, temp_dir: Path, workspace_path: Path):
        """Indexing the same repository again leaves the graph unchanged."""
        store = _store(temp_dir)
        Indexer(store).index_repository("shared", workspace_path / "shared")

        stats = Indexer(store).index_repository("shared", workspace_path / "shared")

        graph = store.get_graph()
        assert len(graph.nodes) == 7
        assert len(graph.edges) == 6
        assert stats.nodes == 0
        assert stats.edges == 0
        assert stats.existing_nodes == 7

    def test_dependent_reindexed_after_dependency(self, temp_dir: Path, workspace_path: Path):
        """web, then shared, then web again: ids stay unique and the link appears."""
        store = _store(temp_dir)
        links = {"shared": workspace_path / "shared"}
        Indexer(store).index_repository("web", workspace_path / "web", linked_roots=links)
        Indexer(store).index_repository("shared", workspace_path / "shared")

        stats = Indexer(store).index_repository("web", workspace_path / "web", linked_roots=links)

        graph = store.get_graph()
        ids = [n.id for n in graph.nodes]
        assert len(ids) == len(set(ids))
        imports = [
            (e.source, e.target) for e in graph.edges if e.type == EdgeType.IMPORTS
        ]
        assert imports.count(("web:src/app.ts", "shared:src/api.ts")) == 1
        assert stats.nodes == 0
        assert stats.edges == 1
