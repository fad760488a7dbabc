from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from taskrelay.core.errors import InvalidPayload

# Key paths tried in order; the first non-empty string wins.
TASK_ID_RULES: tuple[tuple[str, ...], ...] = (
    ("data", "id"),
    ("id",),
    ("page_id",),
)


def _lookup(payload: Mapping[str, Any], path: tuple[str, ...]) -> Any:
    current: Any = payload
    for key in path:
        if not isinstance(current, Mapping):
            return None
        current = current.get(key)
    return current


def extract_task_id(payload: Any, rules: tuple[tuple[str, ...], ...] = TASK_ID_RULES) -> str:
    if not isinstance(payload, Mapping):
        raise InvalidPayload("Payload must be a JSON object")
    for path in rules:
        value = _lookup(payload, path)
        if isinstance(value, str) and value.strip():
            return value.strip()
    raise InvalidPayload("No page ID")
