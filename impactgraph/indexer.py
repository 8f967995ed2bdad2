"""Indexing glue: build one repository and append it to the project graph."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from .models import EdgeType
from .parser import GraphBuilder
from .storage import GraphStore

logger = logging.getLogger(__name__)


@dataclass
class IndexStats:
    nodes: int
    edges: int
    failures: int = 0
    skipped_edges: int = 0
    existing_nodes: int = 0


class Indexer:
    """Responsible for parsing repositories into a project's graph store."""

    def __init__(self, store: GraphStore, builder: Optional[GraphBuilder] = None):
        self.store = store
        self.builder = builder or GraphBuilder()

    def index_repository(
        self,
        repository_id: str,
        root_dir: Path,
        linked_roots: Optional[Mapping[str, Path]] = None,
    ) -> IndexStats:
        """Parse *root_dir*, append its nodes and edges, and save the graph.

        IMPORTS edges into linked repositories are kept only when the target
        file already has a node in the project graph. Re-indexing appends only
        what is new: node ids and edges already in the graph are not added again,
        so a dependent indexed before its dependency picks up the missing
        cross-repository edges on its next run.
        """
        logger.info("Indexing repository %s from %s", repository_id, root_dir)
        started = time.perf_counter()

        nodes, edges = self.builder.build(Path(root_dir), repository_id, linked_roots)

        current = self.store.get_graph()
        existing_ids = current.node_ids()
        existing_edges = {(e.source, e.target, e.type) for e in current.edges}

        known_ids = existing_ids | {n.id for n in nodes}
        resolvable = [
            e for e in edges
            if e.type != EdgeType.IMPORTS or e.target in known_ids
        ]
        skipped = len(edges) - len(resolvable)
        if skipped:
            logger.info("Dropped %d cross-repository edges to unindexed files", skipped)

        new_nodes = [n for n in nodes if n.id not in existing_ids]
        kept = [e for e in resolvable if (e.source, e.target, e.type) not in existing_edges]
        if len(new_nodes) < len(nodes):
            logger.info(
                "%s already indexed: %d of %d nodes new",
                repository_id, len(new_nodes), len(nodes),
            )

        self.store.add_nodes(new_nodes)
        self.store.add_edges(kept)
        self.store.save()

        logger.info(
            "Indexed %s in %.2fs: %d nodes, %d edges",
            repository_id, time.perf_counter() - started, len(new_nodes), len(kept),
        )
        return IndexStats(
            nodes=len(new_nodes),
            edges=len(kept),
            failures=len(self.builder.failures),
            skipped_edges=skipped,
            existing_nodes=len(nodes) - len(new_nodes),
        )
