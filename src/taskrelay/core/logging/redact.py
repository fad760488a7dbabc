from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

_SENSITIVE_NAME_RE = re.compile(r"(token|key|secret|webhook|authorization|password)", re.IGNORECASE)
_INLINE_SECRET_RE = re.compile(r"(?i)(token|key|secret|webhook)(\"?\s*[=:]\s*\"?)([^\s,;\"]+)")
_BEARER_RE = re.compile(r"(?i)(bearer\s+)([^\s\"]+)")
_MASK = "***"


def redact_string(value: str) -> str:
    masked = _INLINE_SECRET_RE.sub(lambda m: f"{m.group(1)}{m.group(2)}{_MASK}", value)
    return _BEARER_RE.sub(lambda m: f"{m.group(1)}{_MASK}", masked)


def redact_value(name: str, value: Any) -> Any:
    """Mask a single structured log field, recursing into mappings."""
    if _SENSITIVE_NAME_RE.search(name) and isinstance(value, str):
        return _MASK
    if isinstance(value, str):
        return redact_string(value)
    if isinstance(value, Mapping):
        return redact_mapping(value)
    return value


def redact_mapping(values: Mapping[str, Any]) -> dict[str, Any]:
    return {str(key): redact_value(str(key), value) for key, value in values.items()}
