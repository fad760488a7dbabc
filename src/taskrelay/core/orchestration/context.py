from __future__ import annotations

import logging
from collections.abc import Sequence

from taskrelay.core.errors import PartialContextFailure, WorkspaceError
from taskrelay.core.tasks.schemas import ContextBundle, ContextEntry, DocumentReference
from taskrelay.core.workspace.base import WorkspaceConnector

logger = logging.getLogger(__name__)

TRUNCATION_MARKER = "\n\n[Content truncated due to length...]"
SUPPORTING_HEADER = "\n\n---\n\n## Supporting Context\n\n"


def truncate_content(content: str, max_chars: int, marker: str = TRUNCATION_MARKER) -> tuple[str, bool]:
    """Hard tail cut so that the result, marker included, fits in ``max_chars``."""
    if len(content) <= max_chars:
        return content, False
    if max_chars < len(marker):
        raise ValueError(f"budget of {max_chars} chars cannot hold the truncation marker")
    return content[: max_chars - len(marker)] + marker, True


def render_context(primary: ContextEntry, supporting: Sequence[ContextEntry], primary_is_document: bool) -> str:
    text = f"# {primary.title}\n\n{primary.content}" if primary_is_document else primary.content
    if supporting:
        text += SUPPORTING_HEADER
        text += "".join(f"### {entry.title}\n\n{entry.content}\n\n" for entry in supporting)
    return text


class ContextAssembler:
    def __init__(self, workspace: WorkspaceConnector) -> None:
        self.workspace = workspace

    def _fetch_all(
        self, references: Sequence[DocumentReference]
    ) -> tuple[list[ContextEntry], list[PartialContextFailure]]:
        entries: list[ContextEntry] = []
        failures: list[PartialContextFailure] = []
        for reference in references:
            try:
                document = self.workspace.fetch_document(reference.id)
            except WorkspaceError as exc:
                failure = PartialContextFailure(reference.id, str(exc))
                failures.append(failure)
                logger.warning(
                    "reference_fetch_failed",
                    extra={"extra_fields": {"reference_id": reference.id, "error": str(exc)}},
                )
                continue
            entries.append(ContextEntry(title=document.title, content=document.content, reference_id=reference.id))
        return entries, failures

    def assemble(
        self,
        instruction: str,
        references: Sequence[DocumentReference],
        *,
        max_references: int,
        char_budget: int,
        primary_from_reference: bool = False,
        title: str = "Task",
    ) -> ContextBundle:
        requested = list(references)[: max(0, max_references)]
        entries, failures = self._fetch_all(requested)

        primary_is_document = primary_from_reference and bool(entries)
        if primary_is_document:
            primary, supporting = entries[0], entries[1:]
        else:
            primary, supporting = ContextEntry(title=title, content=instruction), entries

        text, truncated = truncate_content(render_context(primary, supporting, primary_is_document), char_budget)
        bundle = ContextBundle(
            primary=primary,
            supporting=supporting,
            text=text,
            truncated=truncated,
            requested=len(requested),
            resolved=len(entries),
            unresolved=[failure.reference_id for failure in failures],
        )
        logger.info(
            "context_assembled",
            extra={
                "extra_fields": {
                    "requested": bundle.requested,
                    "resolved": bundle.resolved,
                    "dropped": len(references) - len(requested),
                    "chars": len(text),
                    "truncated": truncated,
                }
            },
        )
        return bundle
