"""Local file access for repository checkouts."""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Mapping, Optional

from .config import REPOS_DIR


class SourceRetriever(ABC):
    """Read a repository file by ``(repository_id, relative_path)``."""

    @abstractmethod
    def read(self, repository_id: str, relative_path: str) -> Optional[str]:
        """Return the file content, or ``None`` when the file does not exist.

        Other I/O failures propagate as :class:`OSError` /
        :class:`UnicodeDecodeError`.
        """


class LocalSourceRetriever(SourceRetriever):
    """Reads from registered checkouts, falling back to ``REPOS_DIR/<repository_id>``."""

    def __init__(
        self,
        roots: Optional[Mapping[str, Path]] = None,
        base_dir: Optional[Path] = None,
    ) -> None:
        self.roots = dict(roots or {})
        self.base_dir = base_dir or REPOS_DIR

    def root_for(self, repository_id: str) -> Path:
        return Path(self.roots.get(repository_id, self.base_dir / repository_id))

    def read(self, repository_id: str, relative_path: str) -> Optional[str]:
        parts = [p for p in relative_path.replace("\\", "/").split("/") if p]
        path = self.root_for(repository_id).joinpath(*parts)
        if not path.is_file():
            return None
        return path.read_text(encoding="utf-8")
