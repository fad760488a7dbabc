"""Markdown to workspace block conversion."""

from __future__ import annotations

import re
from collections.abc import Sequence
from typing import Any

from markdown_it import MarkdownIt
from markdown_it.token import Token

Block = dict[str, Any]

BLOCK_CHAR_LIMIT = 2000
_BLANK_LINES_RE = re.compile(r"\n\s*\n")
_HEADING_TYPES = {"h1": "heading_1", "h2": "heading_2", "h3": "heading_3"}
# Notion's code block only accepts a fixed language list; anything else renders as plain text.
_CODE_LANGUAGES = {
    "bash", "c", "c#", "c++", "css", "diff", "go", "graphql", "html", "java", "javascript",
    "json", "kotlin", "markdown", "php", "python", "ruby", "rust", "shell", "sql", "swift",
    "typescript", "yaml",
}

_markdown: MarkdownIt | None = None


def _parser() -> MarkdownIt:
    global _markdown
    if _markdown is None:
        parser = MarkdownIt("commonmark", {"html": False, "linkify": False})
        parser.enable("table")
        parser.enable("strikethrough")
        _markdown = parser
    return _markdown


def _text_segment(content: str, annotations: dict[str, bool] | None = None, link: str | None = None) -> dict[str, Any]:
    segment: dict[str, Any] = {"type": "text", "text": {"content": content}}
    if link:
        segment["text"]["link"] = {"url": link}
    if annotations:
        segment["annotations"] = dict(annotations)
    return segment


def plain_rich_text(text: str, limit: int = BLOCK_CHAR_LIMIT) -> list[dict[str, Any]]:
    return [_text_segment(text[i : i + limit]) for i in range(0, len(text), limit)] or [_text_segment("")]


def _inline_rich_text(token: Token | None, limit: int) -> list[dict[str, Any]]:
    if token is None:
        return []
    segments: list[dict[str, Any]] = []
    state = {"bold": False, "italic": False, "strikethrough": False}
    link: str | None = None

    def push(content: str, code: bool = False) -> None:
        if not content:
            return
        annotations = {key: value for key, value in state.items() if value}
        if code:
            annotations["code"] = True
        for start in range(0, len(content), limit):
            segments.append(_text_segment(content[start : start + limit], annotations or None, link))

    for child in token.children or []:
        if child.type == "text":
            push(child.content)
        elif child.type == "code_inline":
            push(child.content, code=True)
        elif child.type in {"softbreak", "hardbreak"}:
            push("\n")
        elif child.type == "strong_open":
            state["bold"] = True
        elif child.type == "strong_close":
            state["bold"] = False
        elif child.type == "em_open":
            state["italic"] = True
        elif child.type == "em_close":
            state["italic"] = False
        elif child.type == "s_open":
            state["strikethrough"] = True
        elif child.type == "s_close":
            state["strikethrough"] = False
        elif child.type == "link_open":
            href = str(child.attrGet("href") or "")
            link = href if href.startswith(("http://", "https://")) else None
        elif child.type == "link_close":
            link = None
        elif child.type == "image":
            push(str(child.attrGet("src") or ""))
        elif child.content:
            push(child.content)
    return segments


def _text_block(kind: str, rich_text: list[dict[str, Any]]) -> Block:
    return {"object": "block", "type": kind, kind: {"rich_text": rich_text}}


def _code_block(content: str, language: str, limit: int) -> Block:
    normalized = language.strip().casefold()
    return {
        "object": "block",
        "type": "code",
        "code": {
            "rich_text": plain_rich_text(content.rstrip("\n"), limit),
            "language": normalized if normalized in _CODE_LANGUAGES else "plain text",
        },
    }


def _table_rows(tokens: Sequence[Token], index: int) -> tuple[list[list[str]], int]:
    rows: list[list[str]] = []
    current: list[str] | None = None
    while index < len(tokens):
        token = tokens[index]
        if token.type == "tr_open":
            current = []
        elif token.type == "inline" and current is not None:
            current.append(token.content)
        elif token.type == "tr_close" and current is not None:
            rows.append(current)
            current = None
        elif token.type == "table_close":
            return rows, index + 1
        index += 1
    return rows, index


def markdown_to_blocks(text: str, char_limit: int = BLOCK_CHAR_LIMIT) -> list[Block]:
    tokens = _parser().parse(text)
    blocks: list[Block] = []
    list_kinds: list[str] = []
    quote_depth = 0
    index = 0
    while index < len(tokens):
        token = tokens[index]
        if token.type == "heading_open":
            kind = _HEADING_TYPES.get(token.tag, "heading_3")
            blocks.append(_text_block(kind, _inline_rich_text(tokens[index + 1], char_limit)))
            index += 3
            continue
        if token.type == "bullet_list_open":
            list_kinds.append("bulleted_list_item")
        elif token.type == "ordered_list_open":
            list_kinds.append("numbered_list_item")
        elif token.type in {"bullet_list_close", "ordered_list_close"}:
            list_kinds.pop()
        elif token.type == "blockquote_open":
            quote_depth += 1
        elif token.type == "blockquote_close":
            quote_depth -= 1
        elif token.type == "paragraph_open":
            rich_text = _inline_rich_text(tokens[index + 1], char_limit)
            if list_kinds:
                kind = list_kinds[-1]
            elif quote_depth:
                kind = "quote"
            else:
                kind = "paragraph"
            if rich_text:
                blocks.append(_text_block(kind, rich_text))
            index += 3
            continue
        elif token.type in {"fence", "code_block"}:
            blocks.append(_code_block(token.content, token.info or "", char_limit))
        elif token.type == "hr":
            blocks.append({"object": "block", "type": "divider", "divider": {}})
        elif token.type == "table_open":
            rows, index = _table_rows(tokens, index + 1)
            for row in rows:
                blocks.append(_text_block("paragraph", plain_rich_text(" | ".join(row), char_limit)))
            continue
        index += 1
    return blocks


def split_paragraphs(text: str, char_limit: int = BLOCK_CHAR_LIMIT) -> list[Block]:
    """Paragraph per blank-line separated chunk, each cut at ``char_limit``."""
    blocks: list[Block] = []
    for chunk in _BLANK_LINES_RE.split(text):
        stripped = chunk.strip()
        if not stripped:
            continue
        blocks.append(_text_block("paragraph", [_text_segment(stripped[:char_limit])]))
    return blocks


def callout_block(text: str, emoji: str, color: str = "gray_background") -> Block:
    return {
        "object": "block",
        "type": "callout",
        "callout": {
            "icon": {"type": "emoji", "emoji": emoji},
            "color": color,
            "rich_text": plain_rich_text(text),
        },
    }


def image_block(url: str) -> Block:
    return {
        "object": "block",
        "type": "image",
        "image": {"type": "external", "external": {"url": url}},
    }
