"""Run context values, merge semantics and ``{{expr}}`` template rendering."""

from __future__ import annotations

import json
import re
from typing import Any, Dict, List, Mapping, Optional

from pydantic import JsonValue
from pydantic_core import to_jsonable_python

ContextValue = JsonValue
RunContext = Dict[str, ContextValue]

TEMPLATE_PATTERN = re.compile(r"\{\{([^}]+)\}\}")


class _Missing:
    """Sentinel for a dot-path that does not resolve."""

    _instance: Optional["_Missing"] = None

    def __new__(cls) -> "_Missing":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:  # pragma: no cover - debugging aid
        return "MISSING"


MISSING = _Missing()


def coerce_value(value: Any) -> ContextValue:
    """Convert ``value`` into plain JSON-compatible data."""
    return to_jsonable_python(value, fallback=str)


def merge_context(base: Mapping[str, Any], *updates: Optional[Mapping[str, Any]]) -> RunContext:
    """Return a new context with ``updates`` applied over ``base``.

    The merge is shallow: a key present in a later mapping replaces the
    earlier value wholesale. ``None`` updates are ignored.
    """

    merged: RunContext = {key: coerce_value(value) for key, value in base.items()}
    for update in updates:
        if not update:
            continue
        for key, value in update.items():
            merged[key] = coerce_value(value)
    return merged


def lookup(context: Mapping[str, Any], path: str) -> Any:
    """Resolve a dot-path such as ``task.title`` against ``context``.

    Returns ``MISSING`` when a segment is absent. Numeric segments index
    into lists.
    """

    current: Any = context
    for key in path.split("."):
        if isinstance(current, Mapping):
            if key not in current:
                return MISSING
            current = current[key]
        elif isinstance(current, list) and key.isdigit():
            index = int(key)
            if index >= len(current):
                return MISSING
            current = current[index]
        else:
            return MISSING
    return current


def _stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (Mapping, list)):
        return json.dumps(value, default=str)
    return str(value)


def render_template(template: str, context: Mapping[str, Any]) -> str:
    """Replace every ``{{expr}}`` in ``template`` with its context value.

    Unresolvable expressions are left in place as ``{{expr}}``.
    """

    def _replace(match: re.Match) -> str:
        key = match.group(1).strip()
        value = lookup(context, key)
        if value is MISSING:
            return f"{{{{{key}}}}}"
        return _stringify(value)

    return TEMPLATE_PATTERN.sub(_replace, template or "")


def find_unresolved(text: str) -> List[str]:
    """Return template expressions still present in rendered ``text``."""
    return [match.group(1).strip() for match in TEMPLATE_PATTERN.finditer(text or "")]
