from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from pydantic import BaseModel, Field


class TaskStatus(str, Enum):
    QUEUED = "Queued"
    WORKING = "Working"
    DONE = "Done"
    ERROR = "Error"


class Destination(str, Enum):
    TASK = "task"
    SOURCE = "source"
    BOTH = "both"

    @classmethod
    def parse(cls, raw: str | None) -> "Destination":
        normalized = (raw or "").strip().casefold()
        if normalized.startswith("both"):
            return cls.BOTH
        if normalized.startswith("source"):
            return cls.SOURCE
        return cls.TASK


class JobState(str, Enum):
    SUBMITTED = "submitted"
    POLLING = "polling"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


class DocumentReference(BaseModel):
    id: str
    source: str = "id"


class TaskRecord(BaseModel):
    task_id: str
    title: str = ""
    instruction: str = ""
    reference_text: str = ""
    references: list[DocumentReference] = Field(default_factory=list)
    parent_id: str | None = None
    destination: Destination = Destination.TASK
    status: str | None = None
    owner: str | None = None
    image_prompt: str = ""
    image_inputs: list[str] = Field(default_factory=list)
    aspect_ratio: str = "1:1"
    resolution: str = "1K"


class ContextEntry(BaseModel):
    title: str
    content: str
    reference_id: str | None = None


class ContextBundle(BaseModel):
    primary: ContextEntry
    supporting: list[ContextEntry] = Field(default_factory=list)
    text: str
    truncated: bool = False
    requested: int = 0
    resolved: int = 0
    unresolved: list[str] = Field(default_factory=list)

    @property
    def entries(self) -> list[ContextEntry]:
        return [self.primary, *self.supporting]


class JobResult(BaseModel):
    success: bool
    payload: str | None = None
    error: str | None = None
    model: str | None = None
    job_id: str | None = None
    state: JobState | None = None
    attempts: int = 0


@dataclass
class WritebackReport:
    written: list[str] = field(default_factory=list)
    failures: list[Warning] = field(default_factory=list)
    block_count: int = 0

    @property
    def ok(self) -> bool:
        return not self.failures


@dataclass
class PipelineOutcome:
    task_id: str
    pipeline: str
    skipped: bool = False
    skip_reason: str | None = None
    resolved_references: int = 0
    requested_references: int = 0
    response_length: int = 0
    destination: str | None = None
    parent_triggered: bool = False
    writeback_ok: bool = True
    writeback_errors: list[str] = field(default_factory=list)
    model: str | None = None
    job_id: str | None = None
    result_url: str | None = None
    extra: dict[str, object] = field(default_factory=dict)

    def to_response(self) -> dict[str, object]:
        if self.skipped:
            return {
                "success": True,
                "skipped": True,
                "reason": self.skip_reason,
                "task_id": self.task_id,
            }
        payload: dict[str, object] = {
            "success": True,
            "task_id": self.task_id,
            "pipeline": self.pipeline,
            "resolved_references": self.resolved_references,
            "requested_references": self.requested_references,
            "response_length": self.response_length,
            "destination": self.destination,
            "parent_triggered": self.parent_triggered,
            "writeback_ok": self.writeback_ok,
        }
        if self.writeback_errors:
            payload["writeback_errors"] = self.writeback_errors
        if self.model:
            payload["model"] = self.model
        if self.job_id:
            payload["job_id"] = self.job_id
        if self.result_url:
            payload["result_url"] = self.result_url
        payload.update(self.extra)
        return payload
