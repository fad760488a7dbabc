"""Find references to other workspace records inside rich text.

Two sources are recognised: structured mention segments, which carry the
target id directly, and free text, which is scanned for URLs and bare ids.
Every id is reduced to one canonical form, so a record mentioned once and
linked once yields a single reference.
"""

from __future__ import annotations

import re
from itertools import chain
from collections.abc import Iterable, Mapping
from typing import Any

from taskrelay.core.tasks.schemas import DocumentReference

_HEX_ID = r"[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}|[0-9a-fA-F]{32}"
_ID_RE = re.compile(rf"(?<![0-9a-fA-F])(?:{_HEX_ID})(?![0-9a-fA-F])")
_TOKEN_RE = re.compile(rf"(?P<url>https?://[^\s)\"'<>\]]+)|(?P<id>(?<![0-9a-fA-F])(?:{_HEX_ID})(?![0-9a-fA-F]))")
_CANONICAL_RE = re.compile(r"^[0-9a-f]{32}$")
_MENTION_TYPES = ("page", "database")


def canonicalize_id(raw: str) -> str:
    """Return the lower-case 8-4-4-4-12 form of a 32-hex identifier."""
    compact = raw.strip().replace("-", "").lower()
    if not _CANONICAL_RE.match(compact):
        raise ValueError(f"not a record identifier: {raw!r}")
    return f"{compact[:8]}-{compact[8:12]}-{compact[12:16]}-{compact[16:20]}-{compact[20:]}"


def id_from_url(url: str) -> str | None:
    match = _ID_RE.search(url)
    if match is None:
        return None
    return canonicalize_id(match.group(0))


def _scan_text(text: str) -> Iterable[DocumentReference]:
    for match in _TOKEN_RE.finditer(text):
        if match.group("url"):
            found = id_from_url(match.group("url"))
            if found:
                yield DocumentReference(id=found, source="url")
        else:
            yield DocumentReference(id=canonicalize_id(match.group("id")), source="id")


def _mention_id(segment: Mapping[str, Any]) -> str | None:
    mention = segment.get("mention") or {}
    kind = mention.get("type")
    if kind in _MENTION_TYPES:
        raw = (mention.get(kind) or {}).get("id")
        if isinstance(raw, str):
            try:
                return canonicalize_id(raw)
            except ValueError:
                return None
    return None


def _segment_references(segment: Mapping[str, Any]) -> Iterable[DocumentReference]:
    if segment.get("type") == "mention":
        mention_id = _mention_id(segment)
        if mention_id:
            yield DocumentReference(id=mention_id, source="mention")

    text = segment.get("plain_text")
    if not isinstance(text, str):
        text = ((segment.get("text") or {}).get("content")) or ""
    yield from _scan_text(text)

    href = segment.get("href")
    if isinstance(href, str) and href and href not in text:
        yield from _scan_text(href)


def _dedupe(references: Iterable[DocumentReference]) -> list[DocumentReference]:
    seen: set[str] = set()
    ordered: list[DocumentReference] = []
    for reference in references:
        if reference.id in seen:
            continue
        seen.add(reference.id)
        ordered.append(reference)
    return ordered


def extract_references(segments: Iterable[Mapping[str, Any]], text: str = "") -> list[DocumentReference]:
    """References from rich-text segments, then from plain ``text``, deduplicated."""
    from_segments = (ref for segment in segments for ref in _segment_references(segment))
    return _dedupe(chain(from_segments, _scan_text(text)))


def extract_references_from_text(text: str) -> list[DocumentReference]:
    return _dedupe(_scan_text(text or ""))