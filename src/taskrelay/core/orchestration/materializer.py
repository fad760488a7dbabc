from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from typing import Any

from taskrelay.core.errors import WorkspaceError, WritebackFailed
from taskrelay.core.tasks.schemas import WritebackReport
from taskrelay.core.workspace.base import WorkspaceConnector
from taskrelay.core.workspace.blocks import (
    BLOCK_CHAR_LIMIT,
    callout_block,
    image_block,
    markdown_to_blocks,
    split_paragraphs,
)

logger = logging.getLogger(__name__)

Block = dict[str, Any]


def append_in_batches(
    workspace: WorkspaceConnector,
    parent_id: str,
    blocks: Sequence[Block],
    batch_size: int = 100,
) -> int:
    """Append ``blocks`` under ``parent_id`` one batch at a time, preserving order."""
    size = max(1, batch_size)
    calls = 0
    for start in range(0, len(blocks), size):
        workspace.append_blocks(parent_id, list(blocks[start : start + size]))
        calls += 1
    return calls


def _created_block_id(results: list[Block]) -> str | None:
    if not results:
        return None
    block_id = results[0].get("id")
    return str(block_id) if block_id else None


class ResponseMaterializer:
    def __init__(
        self,
        workspace: WorkspaceConnector,
        block_char_limit: int = BLOCK_CHAR_LIMIT,
        batch_size: int = 100,
        converter: Callable[[str, int], list[Block]] = markdown_to_blocks,
    ) -> None:
        self.workspace = workspace
        self.block_char_limit = block_char_limit
        self.batch_size = batch_size
        self.converter = converter

    def convert(self, text: str) -> list[Block]:
        try:
            blocks = self.converter(text, self.block_char_limit)
        except Exception as exc:
            logger.warning("markdown_conversion_failed", extra={"extra_fields": {"error": str(exc)}})
            blocks = []
        if not blocks:
            return split_paragraphs(text, self.block_char_limit)
        return blocks

    def _write(self, destination_id: str, header: Block, children: list[Block]) -> None:
        results = self.workspace.append_blocks(destination_id, [header])
        # Children nest under the callout when the API returns its id, otherwise they follow it.
        parent_id = _created_block_id(results) or destination_id
        append_in_batches(self.workspace, parent_id, children, self.batch_size)

    def _write_all(self, destinations: Sequence[str], header: Block, children: list[Block]) -> WritebackReport:
        report = WritebackReport(block_count=len(children))
        for destination_id in destinations:
            try:
                self._write(destination_id, header, children)
            except (WorkspaceError, ValueError) as exc:
                failure = WritebackFailed(destination_id, str(exc))
                report.failures.append(failure)
                logger.warning(
                    "writeback_failed",
                    extra={"extra_fields": {"destination_id": destination_id, "error": str(exc)}},
                )
                continue
            report.written.append(destination_id)
        logger.info(
            "writeback_finished",
            extra={
                "extra_fields": {
                    "written": len(report.written),
                    "failed": len(report.failures),
                    "blocks": report.block_count,
                }
            },
        )
        return report

    def materialize(
        self,
        text: str,
        destinations: Sequence[str],
        *,
        marker: str = "Response",
        icon: str = "🤖",
    ) -> WritebackReport:
        return self._write_all(destinations, callout_block(marker, icon), self.convert(text))

    def materialize_image(self, url: str, prompt: str, destinations: Sequence[str]) -> WritebackReport:
        caption = prompt[:100] + ("..." if len(prompt) > 100 else "")
        header = callout_block(f"Generated: {caption}", "🖼️", color="purple_background")
        return self._write_all(destinations, header, [image_block(url)])
