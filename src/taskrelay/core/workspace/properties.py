from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

RICH_TEXT_CHUNK = 2000


def _plain(segments: list[Mapping[str, Any]] | None) -> str:
    return "".join(str(segment.get("plain_text") or "") for segment in segments or [])


def rich_text_segments(prop: Mapping[str, Any] | None) -> list[Mapping[str, Any]]:
    if not prop:
        return []
    kind = prop.get("type")
    if kind in {"rich_text", "title"}:
        return list(prop.get(kind) or [])
    return []


def plain_text(prop: Mapping[str, Any] | None) -> str:
    if not prop:
        return ""
    kind = prop.get("type")
    segments = rich_text_segments(prop)
    if segments:
        return _plain(segments)
    if kind in {"select", "status"}:
        return str((prop.get(kind) or {}).get("name") or "")
    if kind == "multi_select":
        return ", ".join(str(option.get("name") or "") for option in prop.get("multi_select") or [])
    if kind == "url":
        return str(prop.get("url") or "")
    if kind == "number" and prop.get("number") is not None:
        return str(prop["number"])
    return ""


def relation_ids(prop: Mapping[str, Any] | None) -> list[str]:
    if not prop:
        return []
    return [str(item["id"]) for item in prop.get("relation") or [] if item.get("id")]


def page_title(page: Mapping[str, Any]) -> str:
    properties = page.get("properties") or {}
    for prop in properties.values():
        if isinstance(prop, dict) and prop.get("type") == "title":
            title = _plain(prop.get("title"))
            if title:
                return title
    for name in ("title", "Name"):
        title = _plain((properties.get(name) or {}).get("title"))
        if title:
            return title
    return "Untitled"


def first_non_empty(properties: Mapping[str, Any], names: tuple[str, ...]) -> tuple[str | None, str]:
    for name in names:
        text = plain_text(properties.get(name)).strip()
        if text:
            return name, text
    return None, ""


def rich_text_value(text: str, limit: int | None = None) -> dict[str, Any]:
    """Property payload for a rich_text field, split into API-sized segments."""
    value = text if limit is None else text[:limit]
    chunks = [value[i : i + RICH_TEXT_CHUNK] for i in range(0, len(value), RICH_TEXT_CHUNK)] or [""]
    return {"rich_text": [{"type": "text", "text": {"content": chunk}} for chunk in chunks]}


def status_value(name: str) -> dict[str, Any]:
    return {"status": {"name": name}}


def checkbox_value(checked: bool) -> dict[str, Any]:
    return {"checkbox": checked}


def url_value(url: str) -> dict[str, Any]:
    return {"url": url}


def date_value(moment: datetime | None = None) -> dict[str, Any]:
    current = moment or datetime.now(timezone.utc)
    return {"date": {"start": current.isoformat()}}
