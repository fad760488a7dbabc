from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

ChildLoader = Callable[[str], list[dict[str, Any]]]

_HEADINGS = {"heading_1": "#", "heading_2": "##", "heading_3": "###"}


def rich_text_to_markdown(rich: list[Mapping[str, Any]] | None) -> str:
    out: list[str] = []
    for part in rich or []:
        text = str(part.get("plain_text") or "")
        if not text:
            continue
        annotations = part.get("annotations") or {}
        if annotations.get("code"):
            text = f"`{text}`"
        if annotations.get("bold"):
            text = f"**{text}**"
        if annotations.get("italic"):
            text = f"*{text}*"
        if annotations.get("strikethrough"):
            text = f"~~{text}~~"
        href = part.get("href")
        if href and part.get("type") == "text":
            text = f"[{text}]({href})"
        out.append(text)
    return "".join(out)


def _media_url(body: Mapping[str, Any]) -> str:
    kind = body.get("type")
    if kind in {"external", "file"}:
        return str((body.get(kind) or {}).get("url") or "")
    return str(body.get("url") or "")


def _render_table(block: Mapping[str, Any], load_children: ChildLoader) -> list[str]:
    rows = load_children(str(block.get("id")))
    lines: list[str] = []
    for index, row in enumerate(rows):
        cells = (row.get("table_row") or {}).get("cells") or []
        rendered = [rich_text_to_markdown(cell).replace("|", "\\|") for cell in cells]
        lines.append("| " + " | ".join(rendered) + " |")
        if index == 0:
            lines.append("|" + "|".join(" --- " for _ in rendered) + "|")
    return lines


def render_block(
    block: Mapping[str, Any],
    load_children: ChildLoader,
    depth: int = 0,
    max_depth: int = 3,
) -> list[str]:
    kind = str(block.get("type") or "")
    body = block.get(kind) or {}
    indent = "  " * depth
    text = rich_text_to_markdown(body.get("rich_text"))
    lines: list[str] = []

    if kind in _HEADINGS:
        lines.append(f"{_HEADINGS[kind]} {text}")
    elif kind == "paragraph":
        lines.append(f"{indent}{text}" if text else "")
    elif kind == "bulleted_list_item":
        lines.append(f"{indent}- {text}")
    elif kind == "numbered_list_item":
        lines.append(f"{indent}1. {text}")
    elif kind == "to_do":
        mark = "x" if body.get("checked") else " "
        lines.append(f"{indent}- [{mark}] {text}")
    elif kind in {"quote", "callout"}:
        lines.append(f"{indent}> {text}")
    elif kind == "toggle":
        lines.append(f"{indent}<details><summary>{text}</summary></details>")
    elif kind == "code":
        language = body.get("language") or ""
        lines.extend([f"```{language}", rich_text_to_markdown(body.get("rich_text")), "```"])
    elif kind == "divider":
        lines.append("---")
    elif kind in {"child_page", "child_database"}:
        lines.append(f"{indent}[{body.get('title') or 'Untitled'}]")
    elif kind in {"image", "file", "pdf", "video"}:
        caption = rich_text_to_markdown(body.get("caption")) or kind
        url = _media_url(body)
        lines.append(f"![{caption}]({url})" if kind == "image" else f"[{caption}]({url})")
    elif kind in {"bookmark", "embed", "link_preview"}:
        url = str(body.get("url") or "")
        lines.append(f"[{url}]({url})")
    elif kind == "equation":
        lines.append(f"$$ {body.get('expression') or ''} $$")
    elif kind == "table":
        return _render_table(block, load_children)
    elif text:
        lines.append(f"{indent}{text}")

    if block.get("has_children") and kind not in {"child_page", "child_database"} and depth < max_depth:
        for child in load_children(str(block.get("id"))):
            lines.extend(render_block(child, load_children, depth + 1, max_depth))
    return lines


def blocks_to_markdown(
    blocks: list[Mapping[str, Any]],
    load_children: ChildLoader,
    max_depth: int = 3,
) -> str:
    lines: list[str] = []
    for block in blocks:
        lines.extend(render_block(block, load_children, 0, max_depth))
    return "\n".join(lines).strip()
