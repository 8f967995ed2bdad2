"""Configuration paths and tunables for local ImpactGraph storage."""

from __future__ import annotations

from typing import FrozenSet, Tuple

from .config_manager import BASE_DIR, load_analysis_config, load_config, load_storage_config

PROJECTS_DIR = BASE_DIR / "projects"
REPOS_DIR = BASE_DIR / "repos"
STATE_FILE = BASE_DIR / "state.json"

# Probe order matters: the resolver returns the first existing match.
SUPPORTED_EXTENSIONS: Tuple[str, ...] = (".ts", ".tsx", ".js", ".jsx")

SKIP_DIRS: FrozenSet[str] = frozenset({
    "node_modules", ".git", ".hg", ".svn",
    "dist", "build", "out", "coverage",
    ".next", ".turbo",
})

_toml_config = load_config()
_analysis_config = load_analysis_config()
_storage_config = load_storage_config()

# LLM provider configuration, set via `ig set-llm`
LLM_PROVIDER = _toml_config.get("provider", "ollama")
LLM_API_KEY = _toml_config.get("api_key", "")
LLM_MODEL = _toml_config.get("model", "qwen2.5-coder:7b")
LLM_ENDPOINT = _toml_config.get("endpoint", "http://127.0.0.1:11434/api/generate")

LLM_MAX_RETRIES = int(_analysis_config["llm_max_retries"])
LLM_BACKOFF_BASE = float(_analysis_config["llm_backoff_base"])

CONTENT_TRUNCATE_CHARS = int(_analysis_config["content_truncate_chars"])
SEMANTIC_SCAN_SAMPLE = int(_analysis_config["semantic_scan_sample"])
MIN_SYMBOL_LENGTH = int(_analysis_config["min_symbol_length"])

STORAGE_BACKEND = str(_storage_config.get("backend", "sqlite")).lower()
