"""Tests for relative import resolution."""

from pathlib import Path

from impactgraph.resolver import ImportResolver, relative_posix


def _touch(path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("", encoding="utf-8")
    return path


class TestImportResolver:
    """Tests for ImportResolver."""

    def test_bare_specifiers_are_ignored(self, temp_dir: Path):
        """Package imports are never resolved, even if a matching file exists."""
        _touch(temp_dir / "react.ts")
        importer = _touch(temp_dir / "app.ts")
        resolver = ImportResolver()

        assert resolver.resolve("react", importer, temp_dir) is None
        assert resolver.resolve("@scope/pkg", importer, temp_dir) is None

    def test_extension_probe_order(self, temp_dir: Path):
        """.ts wins over .js when both exist."""
        _touch(temp_dir / "util.ts")
        _touch(temp_dir / "util.js")
        importer = _touch(temp_dir / "app.ts")

        assert ImportResolver().resolve("./util", importer, temp_dir) == "util.ts"

    def test_file_preferred_over_directory_index(self, temp_dir: Path):
        """x.ts is chosen over x/index.ts."""
        _touch(temp_dir / "x.ts")
        _touch(temp_dir / "x" / "index.ts")
        importer = _touch(temp_dir / "app.ts")

        assert ImportResolver().resolve("./x", importer, temp_dir) == "x.ts"

    def test_directory_index(self, temp_dir: Path):
        """A directory import resolves to its index file."""
        _touch(temp_dir / "lib" / "utils" / "index.js")
        importer = _touch(temp_dir / "lib" / "main.ts")

        assert ImportResolver().resolve("./utils", importer, temp_dir) == "lib/utils/index.js"

    def test_exact_path_with_extension(self, temp_dir: Path):
        """A specifier that already names the file resolves to it."""
        _touch(temp_dir / "b.ts")
        importer = _touch(temp_dir / "a.ts")

        assert ImportResolver().resolve("./b.ts", importer, temp_dir) == "b.ts"

    def test_parent_directory(self, temp_dir: Path):
        """.. segments are normalized."""
        _touch(temp_dir / "shared" / "types.ts")
        importer = _touch(temp_dir / "features" / "auth" / "login.ts")

        assert ImportResolver().resolve("../../shared/types", importer, temp_dir) == "shared/types.ts"

    def test_missing_target(self, temp_dir: Path):
        """Unresolvable relative imports yield None."""
        importer = _touch(temp_dir / "a.ts")

        assert ImportResolver().resolve("./ghost", importer, temp_dir) is None

    def test_outside_root_is_unresolved(self, temp_dir: Path):
        """resolve() only reports targets inside the root, resolve_path() reports all."""
        root = temp_dir / "web"
        importer = _touch(root / "src" / "app.ts")
        target = _touch(temp_dir / "shared" / "api.ts")
        resolver = ImportResolver()

        assert resolver.resolve("../../shared/api", importer, root) is None
        assert resolver.resolve_path("../../shared/api", importer, root) == target

    def test_root_absolute_specifier(self, temp_dir: Path):
        """A leading slash is taken relative to the repository root."""
        _touch(temp_dir / "src" / "config.ts")
        importer = _touch(temp_dir / "src" / "deep" / "a.ts")

        assert ImportResolver().resolve("/src/config", importer, temp_dir) == "src/config.ts"

    def test_relative_posix(self, temp_dir: Path):
        """Paths are reported with forward slashes."""
        assert relative_posix(temp_dir / "a" / "b.ts", temp_dir) == "a/b.ts"
        assert relative_posix(temp_dir.parent / "x.ts", temp_dir) is None
