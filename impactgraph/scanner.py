"""Source tree enumeration."""

from __future__ import annotations

import os
from pathlib import Path
from typing import AbstractSet, Iterable, List, Optional

from .config import SKIP_DIRS, SUPPORTED_EXTENSIONS


class SourceTreeScanner:
    """Depth-first enumeration of supported source files under a root."""

    def __init__(
        self,
        extensions: Optional[Iterable[str]] = None,
        skip_dirs: Optional[AbstractSet[str]] = None,
    ) -> None:
        self.extensions = tuple(extensions or SUPPORTED_EXTENSIONS)
        self.skip_dirs = frozenset(skip_dirs if skip_dirs is not None else SKIP_DIRS)

    def enumerate(self, root_dir: Path) -> List[Path]:
        """Return every supported file under *root_dir*.

        Raises:
            FileNotFoundError: *root_dir* does not exist.
            NotADirectoryError: *root_dir* is not a directory.
        """
        root = Path(root_dir)
        if not root.exists():
            raise FileNotFoundError(f"Source root does not exist: {root}")
        if not root.is_dir():
            raise NotADirectoryError(f"Source root is not a directory: {root}")

        files: List[Path] = []
        self._walk(root, files)
        return files

    def _walk(self, directory: Path, files: List[Path]) -> None:
        with os.scandir(directory) as it:
            entries = sorted(it, key=lambda e: e.name)
        for entry in entries:
            if entry.is_dir(follow_symlinks=False):
                if entry.name in self.skip_dirs:
                    continue
                self._walk(Path(entry.path), files)
            elif entry.is_file() and os.path.splitext(entry.name)[1] in self.extensions:
                files.append(Path(entry.path))
