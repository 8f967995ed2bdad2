"""Relative import specifier resolution."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable, Optional

from .config import SUPPORTED_EXTENSIONS


class ImportResolver:
    """Map a relative import specifier to a concrete file.

    Bare specifiers (``react``, ``@scope/pkg``) are never resolved; they
    belong to a package manager and are not tracked as internal dependencies.
    """

    def __init__(self, extensions: Optional[Iterable[str]] = None) -> None:
        self.extensions = tuple(extensions or SUPPORTED_EXTENSIONS)

    @staticmethod
    def is_relative(specifier: str) -> bool:
        return specifier.startswith(".") or specifier.startswith("/")

    def resolve_path(
        self,
        specifier: str,
        importing_file: Path,
        root_dir: Path,
    ) -> Optional[Path]:
        """Return the absolute path *specifier* points at, or ``None``."""
        if not specifier or not self.is_relative(specifier):
            return None

        if specifier.startswith("/"):
            base = Path(root_dir) / specifier.lstrip("/")
        else:
            base = Path(importing_file).parent / specifier
        base = Path(os.path.normpath(base))

        # Extension probing, then the specifier as written
        for suffix in self.extensions + ("",):
            candidate = Path(f"{base}{suffix}")
            if candidate.is_file():
                return candidate

        for suffix in self.extensions:
            candidate = base / f"index{suffix}"
            if candidate.is_file():
                return candidate

        return None

    def resolve(
        self,
        specifier: str,
        importing_file: Path,
        root_dir: Path,
    ) -> Optional[str]:
        """Return the POSIX path of the target relative to *root_dir*.

        Targets outside *root_dir* count as unresolved.
        """
        target = self.resolve_path(specifier, importing_file, root_dir)
        if target is None:
            return None
        return relative_posix(target, root_dir)


def relative_posix(path: Path, root_dir: Path) -> Optional[str]:
    """*path* relative to *root_dir* in forward-slash form, or ``None`` if outside."""
    root = Path(os.path.normpath(Path(root_dir).absolute()))
    target = Path(os.path.normpath(Path(path).absolute()))
    try:
        return target.relative_to(root).as_posix()
    except ValueError:
        return None
