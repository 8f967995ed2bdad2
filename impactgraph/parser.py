"""Tree-sitter based graph builder for TypeScript / JavaScript source trees.

Extraction is shallow: only top-level function declarations
and top-level ``import`` statements are considered.  There is no type
information, no re-export following and no dynamic ``import()`` tracking.
"""

from __future__ import annotations

import importlib
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .models import EdgeType, GraphEdge, GraphNode, NodeMetadata, NodeType
from .resolver import ImportResolver, relative_posix
from .scanner import SourceTreeScanner

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# File-extension -> (grammar package, function returning the language capsule)
# ---------------------------------------------------------------------------
GRAMMARS: Dict[str, Tuple[str, str]] = {
    ".ts": ("tree_sitter_typescript", "language_typescript"),
    ".tsx": ("tree_sitter_typescript", "language_tsx"),
    ".js": ("tree_sitter_javascript", "language"),
    ".jsx": ("tree_sitter_javascript", "language"),
}

_FUNCTION_TYPES = ("function_declaration", "generator_function_declaration")


@dataclass
class ParseFailure:
    """A file whose syntax tree could not be built."""
    path: str
    reason: str


class GraphBuilder:
    """Turn a repository checkout into FILE/FUNCTION nodes and DEFINES/IMPORTS edges."""

    def __init__(
        self,
        scanner: Optional[SourceTreeScanner] = None,
        resolver: Optional[ImportResolver] = None,
    ) -> None:
        self.scanner = scanner or SourceTreeScanner()
        self.resolver = resolver or ImportResolver()
        self.failures: List[ParseFailure] = []
        self._parsers: Dict[Tuple[str, str], Any] = {}

    # ------------------------------------------------------------------
    # Grammar loading
    # ------------------------------------------------------------------

    def _parser_for(self, suffix: str) -> Any:
        grammar = GRAMMARS.get(suffix)
        if grammar is None:
            raise ValueError(f"No grammar registered for '{suffix}' files")
        if grammar not in self._parsers:
            from tree_sitter import Language, Parser as TSParser

            module = importlib.import_module(grammar[0])
            language = Language(getattr(module, grammar[1])())
            self._parsers[grammar] = TSParser(language)
            logger.debug("Loaded tree-sitter grammar %s.%s", *grammar)
        return self._parsers[grammar]

    # ------------------------------------------------------------------
    # Build
    # ------------------------------------------------------------------

    def build(
        self,
        root_dir: Path,
        repository_id: str,
        linked_roots: Optional[Mapping[str, Path]] = None,
    ) -> Tuple[List[GraphNode], List[GraphEdge]]:
        """Build the graph contribution of one repository.

        *linked_roots* maps other repository ids of the same project to
        their checkout directories; relative imports that land inside one of
        them produce cross-repository IMPORTS edges.
        """
        root = Path(root_dir)
        files = self.scanner.enumerate(root)
        self.failures = []
        logger.info("Found %d source files in %s", len(files), root)

        nodes: List[GraphNode] = []
        edges: List[GraphEdge] = []
        file_map: Dict[str, str] = {}

        # -- Pass 1: one FILE node per source file --------------------------
        for path in files:
            rel_path = path.relative_to(root).as_posix()
            file_id = f"{repository_id}:{rel_path}"
            nodes.append(GraphNode(
                id=file_id,
                type=NodeType.FILE,
                label=rel_path,
                metadata=NodeMetadata(repository_id=repository_id),
            ))
            file_map[rel_path] = file_id

        # -- Pass 2: declarations and imports -------------------------------
        for path in files:
            rel_path = path.relative_to(root).as_posix()
            tree_root = self._parse(path, rel_path)
            if tree_root is None:
                continue
            self._extract(
                tree_root, path, root, file_map[rel_path], file_map,
                linked_roots or {}, nodes, edges,
            )

        logger.info(
            "Built %d nodes and %d edges for %s (%d parse failures)",
            len(nodes), len(edges), repository_id, len(self.failures),
        )
        return nodes, edges

    def _parse(self, path: Path, rel_path: str) -> Optional[Any]:
        try:
            source = path.read_bytes()
            source.decode("utf-8")
            tree = self._parser_for(path.suffix).parse(source)
        except (OSError, UnicodeDecodeError, ValueError) as exc:
            self._record_failure(rel_path, str(exc))
            return None
        if tree.root_node.has_error:
            self._record_failure(rel_path, "syntax error")
            return None
        return tree.root_node

    def _record_failure(self, rel_path: str, reason: str) -> None:
        logger.warning("Failed to parse %s: %s", rel_path, reason)
        self.failures.append(ParseFailure(path=rel_path, reason=reason))

    def _extract(
        self,
        root_node: Any,
        path: Path,
        root: Path,
        file_id: str,
        file_map: Dict[str, str],
        linked_roots: Mapping[str, Path],
        nodes: List[GraphNode],
        edges: List[GraphEdge],
    ) -> None:
        for child in root_node.children:
            if child.type in _FUNCTION_TYPES:
                self._add_function(child, file_id, nodes, edges)
            elif child.type == "export_statement":
                for inner in child.named_children:
                    if inner.type in _FUNCTION_TYPES:
                        self._add_function(inner, file_id, nodes, edges)
            elif child.type == "import_statement":
                specifier = _import_source(child)
                if specifier is None:
                    continue
                target_id = self._import_target(specifier, path, root, file_map, linked_roots)
                if target_id is not None:
                    edges.append(GraphEdge(source=file_id, target=target_id, type=EdgeType.IMPORTS))
                    logger.debug("%s IMPORTS %s", file_id, target_id)

    @staticmethod
    def _add_function(
        func_node: Any,
        file_id: str,
        nodes: List[GraphNode],
        edges: List[GraphEdge],
    ) -> None:
        name_node = func_node.child_by_field_name("name")
        if name_node is None:
            return
        name = name_node.text.decode("utf-8")
        func_id = f"{file_id}:{name}"
        nodes.append(GraphNode(
            id=func_id,
            type=NodeType.FUNCTION,
            label=name,
            metadata=NodeMetadata(
                start_line=func_node.start_point[0] + 1,
                end_line=func_node.end_point[0] + 1,
            ),
        ))
        edges.append(GraphEdge(source=file_id, target=func_id, type=EdgeType.DEFINES))

    def _import_target(
        self,
        specifier: str,
        path: Path,
        root: Path,
        file_map: Dict[str, str],
        linked_roots: Mapping[str, Path],
    ) -> Optional[str]:
        target = self.resolver.resolve_path(specifier, path, root)
        if target is None:
            return None

        rel_target = relative_posix(target, root)
        if rel_target is not None and rel_target in file_map:
            return file_map[rel_target]

        for linked_id, linked_root in linked_roots.items():
            linked_rel = relative_posix(target, linked_root)
            if linked_rel is not None:
                return f"{linked_id}:{linked_rel}"
        return None


def _import_source(import_node: Any) -> Optional[str]:
    """Return the unquoted module specifier of an ``import`` statement."""
    source = import_node.child_by_field_name("source")
    if source is None:
        return None
    raw = source.text.decode("utf-8")
    if len(raw) >= 2 and raw[0] == raw[-1] and raw[0] in ("'", '"'):
        return raw[1:-1]
    return raw or None
