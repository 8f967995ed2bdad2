"""Best-effort structured extraction from free-text model replies.

Generative models are asked to answer with JSON but routinely wrap it in
prose or markdown fences, or produce something that is not JSON at all.
Nothing in this module raises on bad input: callers get ``None`` or the
documented fallback for each field.
"""

from __future__ import annotations

import copy
import json
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional

_FENCE_RE = re.compile(r"```(?:json)?\s*(\{[\s\S]*?\})\s*```", re.IGNORECASE)


def extract_json_object(text: Optional[str]) -> Optional[Dict[str, Any]]:
    """Return the first JSON object embedded in *text*.

    Tried in order: a fenced ```json block, the first balanced top-level
    ``{...}`` span that parses, and the greedy first-``{``-to-last-``}``
    span.
    """
    if not text:
        return None

    fenced = _FENCE_RE.search(text)
    if fenced:
        parsed = _loads_object(fenced.group(1))
        if parsed is not None:
            return parsed

    start = text.find("{")
    while start != -1:
        end = _matching_brace(text, start)
        if end == -1:
            break
        parsed = _loads_object(text[start:end + 1])
        if parsed is not None:
            return parsed
        start = text.find("{", start + 1)

    first, last = text.find("{"), text.rfind("}")
    if first != -1 and last > first:
        return _loads_object(text[first:last + 1])
    return None


def _loads_object(candidate: str) -> Optional[Dict[str, Any]]:
    try:
        value = json.loads(candidate)
    except ValueError:
        return None
    return value if isinstance(value, dict) else None


def _matching_brace(text: str, start: int) -> int:
    """Index of the ``}`` closing the ``{`` at *start*, or -1."""
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i
    return -1


# ---------------------------------------------------------------------------
# Field coercion
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Field:
    """How to read one key: a coercion function and the value used when it fails."""
    coerce: Callable[[Any], Any]
    fallback: Any


def as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    raise ValueError(f"not a boolean: {value!r}")


def as_text(value: Any) -> str:
    if isinstance(value, str) and value.strip():
        return value
    raise ValueError(f"not a non-empty string: {value!r}")


def as_string_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        raise ValueError(f"not a list: {value!r}")
    return [item for item in value if isinstance(item, str)]


def lenient_fields(
    payload: Optional[Mapping[str, Any]],
    fields: Mapping[str, Field],
) -> Dict[str, Any]:
    """Read every key of *fields* from *payload*, substituting fallbacks."""
    payload = payload or {}
    result: Dict[str, Any] = {}
    for key, rule in fields.items():
        if key not in payload or payload[key] is None:
            result[key] = copy.copy(rule.fallback)
            continue
        try:
            result[key] = rule.coerce(payload[key])
        except (TypeError, ValueError):
            result[key] = copy.copy(rule.fallback)
    return result
