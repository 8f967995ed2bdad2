"""Graph export helpers for Graphviz DOT and JSON snapshots."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, List, Set

from .models import Graph, GraphEdge


def export_dot(graph: Graph, output_file: Path, focus: str = "") -> None:
    nodes = {n.id: n for n in graph.nodes}
    node_ids, edges = _focused_subgraph(graph, focus)

    lines = ["digraph ImpactGraph {"]
    lines.append("  rankdir=LR;")

    for node_id in sorted(node_ids):
        node = nodes.get(node_id)
        if node is None:
            continue
        label = f"{node.type.value}\\n{node.label}"
        lines.append(f'  "{_esc(node_id)}" [label="{_esc(label)}"];')

    for edge in edges:
        if edge.source not in nodes or edge.target not in nodes:
            continue
        lines.append(
            f'  "{_esc(edge.source)}" -> "{_esc(edge.target)}" [label="{edge.type.value}"];'
        )

    lines.append("}")
    output_file.write_text("\n".join(lines), encoding="utf-8")


def export_json(graph: Graph, output_file: Path) -> None:
    output_file.write_text(json.dumps(graph.to_dict(), indent=2), encoding="utf-8")


def _focused_subgraph(graph: Graph, focus: str):
    if not focus:
        return {n.id for n in graph.nodes}, list(graph.edges)

    selected: Set[str] = {focus}
    edges: List[GraphEdge] = []
    for edge in graph.edges:
        if focus in (edge.source, edge.target):
            edges.append(edge)
            selected.add(edge.source)
            selected.add(edge.target)
    return selected, edges


def _esc(value: str) -> str:
    # Keep the "\n" line break used in labels
    return value.replace('"', '\\"')


def summarize(graph: Graph) -> Dict[str, Dict[str, int]]:
    """Node counts per type and per repository, edge counts per type."""
    by_type: Dict[str, int] = {}
    by_repo: Dict[str, int] = {}
    for node in graph.nodes:
        by_type[node.type.value] = by_type.get(node.type.value, 0) + 1
        if node.metadata.repository_id:
            by_repo[node.metadata.repository_id] = by_repo.get(node.metadata.repository_id, 0) + 1
    edge_types: Dict[str, int] = {}
    for edge in graph.edges:
        edge_types[edge.type.value] = edge_types.get(edge.type.value, 0) + 1
    return {"nodes": by_type, "files_per_repository": by_repo, "edges": edge_types}
