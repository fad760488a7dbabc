from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from taskrelay.core.config.settings import TaskFields
from taskrelay.core.errors import TaskNotFound, WorkspaceError
from taskrelay.core.references.extract import extract_references
from taskrelay.core.workspace.base import WorkspaceConnector
from taskrelay.core.workspace.properties import (
    first_non_empty,
    page_title,
    plain_text,
    relation_ids,
    rich_text_segments,
)

from .schemas import Destination, TaskRecord

logger = logging.getLogger(__name__)


@dataclass
class Resolution:
    task: TaskRecord
    page: dict[str, Any]
    skipped: bool = False
    skip_reason: str | None = None


class TaskResolver:
    def __init__(self, workspace: WorkspaceConnector, fields: TaskFields, identity: str | None = None) -> None:
        self.workspace = workspace
        self.fields = fields
        self.identity = identity

    def resolve(self, task_id: str) -> Resolution:
        try:
            page = self.workspace.retrieve_page(task_id)
        except WorkspaceError as exc:
            raise TaskNotFound(task_id, str(exc)) from exc

        task = self.parse(task_id, page)
        if self.identity and task.owner and not _owner_matches(task.owner, self.identity):
            reason = f"owned by {task.owner!r}, this pipeline is {self.identity!r}"
            logger.info("task_skipped", extra={"extra_fields": {"owner": task.owner, "identity": self.identity}})
            return Resolution(task=task, page=page, skipped=True, skip_reason=reason)
        return Resolution(task=task, page=page)

    def parse(self, task_id: str, page: dict[str, Any]) -> TaskRecord:
        properties = page.get("properties") or {}
        fields = self.fields

        _, instruction = first_non_empty(properties, fields.instruction)

        segments: list[dict[str, Any]] = []
        reference_texts: list[str] = []
        plain_fields: list[str] = []
        for name in fields.references:
            prop = properties.get(name)
            field_segments = rich_text_segments(prop)
            segments.extend(field_segments)
            text = plain_text(prop).strip()
            if text:
                reference_texts.append(text)
                # url, select and multi_select fields carry no segments to scan
                if not field_segments:
                    plain_fields.append(text)

        parents = relation_ids(properties.get(fields.parent))
        owner = plain_text(properties.get(fields.owner)).strip() or None
        status = plain_text(properties.get(fields.status)).strip() or None
        image_inputs = [
            url.strip()
            for url in plain_text(properties.get(fields.image_inputs)).split(",")
            if url.strip()
        ]

        return TaskRecord(
            task_id=task_id,
            title=page_title(page),
            instruction=instruction,
            reference_text="\n".join(reference_texts),
            references=extract_references(segments, "\n".join(plain_fields)),
            parent_id=parents[0] if parents else None,
            destination=Destination.parse(plain_text(properties.get(fields.destination))),
            status=status,
            owner=owner,
            image_prompt=plain_text(properties.get(fields.image_prompt)).strip(),
            image_inputs=image_inputs,
            aspect_ratio=plain_text(properties.get(fields.image_aspect_ratio)).strip() or "1:1",
            resolution=plain_text(properties.get(fields.image_resolution)).strip() or "1K",
        )


def _owner_matches(owner: str, identity: str) -> bool:
    tags = {tag.strip().casefold() for tag in owner.split(",") if tag.strip()}
    return identity.strip().casefold() in tags
