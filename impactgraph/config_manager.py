"""Read and write ``config.toml`` for ImpactGraph.

The file has three optional sections::

    [llm]        provider, model, api_key, endpoint
    [analysis]   truncation, sampling and retry tunables
    [storage]    backend = "sqlite" | "json"

Anything missing or unreadable falls back to the defaults below.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping

import toml

logger = logging.getLogger(__name__)

BASE_DIR = Path(os.environ.get("IMPACTGRAPH_HOME", str(Path.home() / ".impactgraph"))).expanduser()
CONFIG_FILE = BASE_DIR / "config.toml"

# provider -> (default model, default endpoint or "" when the provider has a fixed URL)
_PROVIDER_TABLE = {
    "ollama": ("qwen2.5-coder:7b", "http://127.0.0.1:11434/api/generate"),
    "groq": ("llama-3.3-70b-versatile", ""),
    "openai": ("gpt-4o-mini", "https://api.openai.com/v1/chat/completions"),
    "anthropic": ("claude-3-5-sonnet-20241022", ""),
    "gemini": ("gemini-2.0-flash", ""),
    "openrouter": ("google/gemini-2.0-flash-exp:free", "https://openrouter.ai/api/v1/chat/completions"),
}

ALL_PROVIDERS = list(_PROVIDER_TABLE)
LOCAL_PROVIDERS = {"ollama"}

DEFAULT_ANALYSIS = {
    "content_truncate_chars": 2000,
    "semantic_scan_sample": 50,
    "min_symbol_length": 3,
    "llm_max_retries": 3,
    "llm_backoff_base": 2.0,
}

DEFAULT_STORAGE = {
    "backend": "sqlite",
}


def get_provider_config(provider: str) -> Dict[str, Any]:
    """Fresh default ``[llm]`` section for *provider* (unknown names map to Ollama)."""
    name = provider if provider in _PROVIDER_TABLE else "ollama"
    model, endpoint = _PROVIDER_TABLE[name]
    section: Dict[str, Any] = {"provider": name, "model": model}
    if endpoint:
        section["endpoint"] = endpoint
    if name not in LOCAL_PROVIDERS:
        section["api_key"] = ""
    return section


def load_full_config() -> Dict[str, Any]:
    if not CONFIG_FILE.exists():
        return {}
    try:
        return toml.loads(CONFIG_FILE.read_text(encoding="utf-8"))
    except (OSError, toml.TomlDecodeError) as exc:
        logger.warning("Ignoring unreadable config %s: %s", CONFIG_FILE, exc)
        return {}


def _write_full_config(document: Mapping[str, Any]) -> bool:
    try:
        CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
        CONFIG_FILE.write_text(toml.dumps(dict(document)), encoding="utf-8")
    except OSError as exc:
        logger.error("Cannot write config %s: %s", CONFIG_FILE, exc)
        return False
    return True


def _merged_section(name: str, defaults: Mapping[str, Any], known_only: bool = False) -> Dict[str, Any]:
    merged = dict(defaults)
    section = load_full_config().get(name)
    if isinstance(section, dict):
        merged.update(
            (k, v) for k, v in section.items()
            if not known_only or k in defaults
        )
    return merged


def load_config() -> Dict[str, Any]:
    """The ``[llm]`` section, or the Ollama defaults when there is none."""
    section = load_full_config().get("llm")
    if isinstance(section, dict):
        return section
    return get_provider_config("ollama")


def load_analysis_config() -> Dict[str, Any]:
    return _merged_section("analysis", DEFAULT_ANALYSIS, known_only=True)


def load_storage_config() -> Dict[str, Any]:
    return _merged_section("storage", DEFAULT_STORAGE)


def save_config(provider: str, model: str, api_key: str = "", endpoint: str = "") -> bool:
    """Replace the ``[llm]`` section, leaving ``[analysis]`` and ``[storage]`` alone.

    Empty ``api_key`` / ``endpoint`` values are not written.

    Returns:
        True if the file was written.
    """
    document = load_full_config()
    llm_section: Dict[str, Any] = {"provider": provider, "model": model}
    for key, value in (("api_key", api_key), ("endpoint", endpoint)):
        if value:
            llm_section[key] = value
    document["llm"] = llm_section
    return _write_full_config(document)
