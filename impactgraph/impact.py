"""Cross-repository impact analysis of a single file change."""

from __future__ import annotations

import logging
import posixpath
from collections import defaultdict, deque
from typing import Dict, List, Optional

from . import config
from .classifier import ChangeClassifier, ClassificationRequest, ClassificationVerdict
from .models import (
    AffectedFile,
    EdgeType,
    Graph,
    ImpactResult,
    NodeType,
    Severity,
    dedupe_affected,
    split_node_id,
)
from .source import LocalSourceRetriever, SourceRetriever
from .storage import GraphStore, open_store

logger = logging.getLogger(__name__)

NOT_FOUND_EXPLANATION = "file not found in dependency graph"
DEFAULT_EXPLANATION = "File modified"
NON_BREAKING_EXPLANATION = "Non-breaking change detected"


def determine_severity(affected_count: int, is_breaking: bool) -> Severity:
    """Fixed decision table, first matching row wins."""
    if is_breaking and affected_count > 5:
        return Severity.CRITICAL
    if is_breaking and affected_count > 0:
        return Severity.HIGH
    if affected_count > 10:
        return Severity.HIGH
    if affected_count > 5:
        return Severity.MEDIUM
    return Severity.LOW


def node_id_candidates(repository_id: str, file_path: str) -> List[str]:
    """Ids under which *file_path* may have been indexed, most likely first."""
    forward = file_path.replace("\\", "/")
    backward = file_path.replace("/", "\\")
    candidates = [
        f"{repository_id}:{forward}",
        f"{repository_id}:{file_path}",
        f"{repository_id}:{backward}",
    ]
    return list(dict.fromkeys(candidates))


class ImpactAnalyzer:
    """Combines reverse-import traversal with classifier-guided symbol search."""

    def __init__(
        self,
        classifier: Optional[ChangeClassifier] = None,
        source: Optional[SourceRetriever] = None,
        store_factory=open_store,
        sample_limit: Optional[int] = None,
        min_symbol_length: Optional[int] = None,
    ) -> None:
        self.classifier = classifier
        self.source = source or LocalSourceRetriever()
        self.store_factory = store_factory
        self.sample_limit = config.SEMANTIC_SCAN_SAMPLE if sample_limit is None else sample_limit
        self.min_symbol_length = config.MIN_SYMBOL_LENGTH if min_symbol_length is None else min_symbol_length

    def analyze(
        self,
        project_id: str,
        repository_id: str,
        file_path: str,
        old_content: Optional[str] = None,
        new_content: Optional[str] = None,
    ) -> ImpactResult:
        """Analyze the impact of changing *file_path* in *repository_id*.

        Raises:
            GraphStoreError: the project graph cannot be loaded.
        """
        logger.info("Analyzing impact for %s in repo %s", file_path, repository_id)
        store: GraphStore = self.store_factory(project_id)
        graph = store.get_graph()

        node_ids = graph.node_ids()
        changed_id = next(
            (c for c in node_id_candidates(repository_id, file_path) if c in node_ids),
            None,
        )
        if changed_id is None:
            logger.info("%s:%s not found in dependency graph", repository_id, file_path)
            return ImpactResult(
                project_id=project_id,
                changed_repository=repository_id,
                changed_file=file_path,
                explanation=NOT_FOUND_EXPLANATION,
            )

        structural = self.structural_impact(graph, changed_id, repository_id)

        verdict = ClassificationVerdict(is_breaking=False, explanation=DEFAULT_EXPLANATION)
        semantic: List[AffectedFile] = []
        if old_content is not None and new_content is not None:
            verdict = self._classify(old_content, new_content)
            if verdict.changed_functions:
                semantic = self.semantic_impact(graph, repository_id, verdict.changed_functions)

        affected = dedupe_affected(structural + semantic)

        if not verdict.is_breaking:
            logger.info("Change classified as non-breaking; suppressing %d affected files", len(affected))
            return ImpactResult(
                project_id=project_id,
                changed_repository=repository_id,
                changed_file=file_path,
                is_breaking=False,
                severity=Severity.LOW,
                explanation=verdict.explanation or NON_BREAKING_EXPLANATION,
            )

        severity = determine_severity(len(affected), True)
        logger.info(
            "Found %d affected files (%d structural + %d semantic), severity %s",
            len(affected), len(structural), len(semantic), severity.value,
        )
        for item in affected:
            logger.debug("  > Affected: %s:%s [%s]", item.repository_id, item.file_path, item.reason)

        return ImpactResult(
            project_id=project_id,
            changed_repository=repository_id,
            changed_file=file_path,
            affected_files=affected,
            is_breaking=True,
            severity=severity,
            explanation=verdict.explanation,
        )

    # ------------------------------------------------------------------
    # Structural impact
    # ------------------------------------------------------------------

    @staticmethod
    def structural_impact(graph: Graph, changed_id: str, source_repository: str) -> List[AffectedFile]:
        """Breadth-first walk over reverse IMPORTS edges.

        Same-repository dependents are traversed but not reported.
        """
        importers: Dict[str, List[str]] = defaultdict(list)
        for edge in graph.edges:
            if edge.type == EdgeType.IMPORTS:
                importers[edge.target].append(edge.source)

        changed_name = posixpath.basename(split_node_id(changed_id)[1].replace("\\", "/"))
        affected: List[AffectedFile] = []
        visited = {changed_id}
        queue = deque([changed_id])

        while queue:
            current = queue.popleft()
            for source_id in importers.get(current, []):
                if source_id in visited:
                    continue
                visited.add(source_id)
                queue.append(source_id)

                repo_id, path = split_node_id(source_id)
                if repo_id != source_repository:
                    affected.append(AffectedFile(
                        repository_id=repo_id,
                        file_path=path,
                        reason=f"imports {changed_name}",
                    ))
        return affected

    # ------------------------------------------------------------------
    # Semantic impact
    # ------------------------------------------------------------------

    def _classify(self, old_content: str, new_content: str) -> ClassificationVerdict:
        if self.classifier is None:
            return ClassificationVerdict(is_breaking=False, explanation=DEFAULT_EXPLANATION)
        try:
            return self.classifier.classify(ClassificationRequest.build(old_content, new_content))
        except Exception as exc:
            logger.warning("Classifier failed: %s", exc)
            return ClassificationVerdict.failed(DEFAULT_EXPLANATION)

    def semantic_impact(
        self,
        graph: Graph,
        source_repository: str,
        changed_functions: List[str],
    ) -> List[AffectedFile]:
        """Text search for changed symbol names in a sample of other repositories' files."""
        symbols = [s.strip() for s in changed_functions if len(s.strip()) >= self.min_symbol_length]
        if not symbols:
            return []
        logger.info("Scanning for usages of: %s", ", ".join(symbols))

        candidates = [
            n for n in graph.nodes
            if n.type == NodeType.FILE
            and split_node_id(n.id)[0] != source_repository
            and n.id.endswith(config.SUPPORTED_EXTENSIONS)
        ]

        affected: List[AffectedFile] = []
        for node in candidates[:self.sample_limit]:
            repo_id, path = split_node_id(node.id)
            try:
                content = self.source.read(repo_id, path)
            except (OSError, UnicodeDecodeError) as exc:
                logger.warning("Cannot read %s:%s: %s", repo_id, path, exc)
                continue
            if content is None:
                continue

            usages = _first_usages(content, symbols)
            if usages:
                affected.append(AffectedFile(
                    repository_id=repo_id,
                    file_path=path,
                    reason="uses modified functions: " + ", ".join(usages),
                ))
        return affected


def _first_usages(content: str, symbols: List[str]) -> List[str]:
    lines = content.split("\n")
    usages: List[str] = []
    for symbol in symbols:
        if symbol not in content:
            continue
        for number, line in enumerate(lines, 1):
            if symbol in line:
                usages.append(f"{symbol} (line {number})")
                break
    return usages
