from __future__ import annotations

import logging
from typing import Any

from taskrelay.core.config.settings import TaskFields
from taskrelay.core.errors import StatusUpdateFailed, WorkspaceError
from taskrelay.core.tasks.schemas import TaskRecord, TaskStatus
from taskrelay.core.workspace.base import WorkspaceConnector
from taskrelay.core.workspace.properties import checkbox_value, date_value, rich_text_value, status_value

logger = logging.getLogger(__name__)


class StatusPropagator:
    """Best-effort status transitions on task records and callbacks to parents.

    Every write returns ``True`` when applied; failures are logged as
    ``StatusUpdateFailed`` and never raised.
    """

    def __init__(self, workspace: WorkspaceConnector, fields: TaskFields, error_char_limit: int = 2000) -> None:
        self.workspace = workspace
        self.fields = fields
        self.error_char_limit = error_char_limit

    def _update(self, page_id: str, label: str, properties: dict[str, Any]) -> bool:
        try:
            self.workspace.update_page(page_id, properties)
        except WorkspaceError as exc:
            failure = StatusUpdateFailed(page_id, label, str(exc))
            logger.warning(
                "status_update_failed",
                extra={"extra_fields": {"page_id": page_id, "status": label, "error": failure.reason}},
            )
            return False
        logger.info("status_updated", extra={"extra_fields": {"page_id": page_id, "status": label}})
        return True

    def record(self, task_id: str, properties: dict[str, Any]) -> bool:
        """Write result fields without touching the status property."""
        if not properties:
            return False
        return self._update(task_id, "fields", properties)

    def _transition(self, task_id: str, status: TaskStatus, properties: dict[str, Any]) -> bool:
        payload = {self.fields.status: status_value(status.value)}
        payload.update(properties)
        return self._update(task_id, status.value, payload)

    def mark_working(self, task: TaskRecord) -> bool:
        return self._transition(task.task_id, TaskStatus.WORKING, {self.fields.started_at: date_value()})

    def mark_done(self, task: TaskRecord, extra: dict[str, Any] | None = None) -> bool:
        properties = {self.fields.completed_at: date_value()}
        properties.update(extra or {})
        return self._transition(task.task_id, TaskStatus.DONE, properties)

    def mark_error(self, task_id: str, message: str) -> bool:
        properties = {
            self.fields.completed_at: date_value(),
            self.fields.error_log: rich_text_value(message, limit=self.error_char_limit),
        }
        return self._transition(task_id, TaskStatus.ERROR, properties)

    def notify_parent(self, task: TaskRecord, result_text: str = "") -> bool:
        if not task.parent_id:
            return False
        properties: dict[str, Any] = {self.fields.parent_trigger: checkbox_value(True)}
        if self.fields.parent_result and result_text:
            properties[self.fields.parent_result] = rich_text_value(result_text, limit=self.error_char_limit)
        triggered = self._update(task.parent_id, "parent_trigger", properties)
        if triggered:
            logger.info(
                "parent_notified",
                extra={"extra_fields": {"parent_id": task.parent_id, "child_id": task.task_id}},
            )
        return triggered
