"""Pytest configuration and fixtures for ImpactGraph tests."""

import shutil
import tempfile
from pathlib import Path
from typing import Dict, Generator, List, Optional

import pytest

from impactgraph import storage
from impactgraph.classifier import ChangeClassifier, ClassificationRequest, ClassificationVerdict
from impactgraph.models import EdgeType, GraphEdge, GraphNode, NodeMetadata, NodeType
from impactgraph.source import SourceRetriever
from impactgraph.storage import GraphStore, JSONGraphPersistence, ProjectManager


@pytest.fixture(autouse=True)
def _reset_store_registry():
    """Each test starts with an empty process-wide store registry."""
    storage._STORES.clear()
    yield
    storage._STORES.clear()


@pytest.fixture(autouse=True)
def _isolated_home(temp_dir: Path, monkeypatch):
    """Point every storage path at a temporary directory.

    storage imports PROJECTS_DIR / STATE_FILE by name, so both modules are patched.
    """
    projects_dir = temp_dir / "home" / "projects"
    state_file = temp_dir / "home" / "state.json"
    monkeypatch.setattr("impactgraph.config.PROJECTS_DIR", projects_dir)
    monkeypatch.setattr("impactgraph.config.STATE_FILE", state_file)
    monkeypatch.setattr("impactgraph.storage.PROJECTS_DIR", projects_dir)
    monkeypatch.setattr("impactgraph.storage.STATE_FILE", state_file)
    monkeypatch.setattr("impactgraph.config.STORAGE_BACKEND", "sqlite")
    monkeypatch.setattr("impactgraph.source.REPOS_DIR", temp_dir / "home" / "repos")
    monkeypatch.setattr("impactgraph.config_manager.CONFIG_FILE", temp_dir / "home" / "config.toml")


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def workspace_path() -> Path:
    """Checkouts of the sample repositories: shared, web and admin."""
    return Path(__file__).parent / "fixtures" / "workspace"


@pytest.fixture
def temp_project_manager() -> ProjectManager:
    return ProjectManager()


@pytest.fixture
def temp_graph_store(temp_dir: Path) -> GraphStore:
    """A JSON-backed store rooted in the temp directory."""
    return GraphStore("test_project", JSONGraphPersistence(temp_dir / "graphs"))


def file_node(repo: str, path: str) -> GraphNode:
    return GraphNode(
        id=f"{repo}:{path}",
        type=NodeType.FILE,
        label=path,
        metadata=NodeMetadata(repository_id=repo),
    )


def imports(source: str, target: str) -> GraphEdge:
    return GraphEdge(source=source, target=target, type=EdgeType.IMPORTS)


class FakeClassifier(ChangeClassifier):
    """Returns a fixed verdict and records what it was asked."""

    def __init__(
        self,
        is_breaking: bool = True,
        changed_functions: Optional[List[str]] = None,
        explanation: str = "Signature changed",
        error: Optional[Exception] = None,
    ) -> None:
        self.verdict = ClassificationVerdict(
            is_breaking=is_breaking,
            explanation=explanation,
            changed_functions=list(changed_functions or []),
        )
        self.error = error
        self.requests: List[ClassificationRequest] = []

    def classify(self, request: ClassificationRequest) -> ClassificationVerdict:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return self.verdict


class FakeSource(SourceRetriever):
    """In-memory file contents keyed by ``(repository, path)``."""

    def __init__(self, files: Optional[Dict[tuple, str]] = None) -> None:
        self.files = dict(files or {})
        self.reads: List[tuple] = []

    def read(self, repository_id: str, relative_path: str) -> Optional[str]:
        self.reads.append((repository_id, relative_path))
        return self.files.get((repository_id, relative_path))


class FakeLLM:
    """Stands in for LocalLLM with a canned reply."""

    def __init__(self, reply: str = "") -> None:
        self.reply = reply
        self.prompts: List[str] = []

    def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        return self.reply
