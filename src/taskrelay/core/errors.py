from __future__ import annotations


class TaskRelayError(RuntimeError):
    """Base error rendered to webhook callers as ``{"error": str(exc)}``."""

    status_code = 500


class Unauthorized(TaskRelayError):
    status_code = 401

    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(message)


class InvalidPayload(TaskRelayError):
    status_code = 400


class TaskNotFound(TaskRelayError):
    status_code = 404

    def __init__(self, task_id: str, reason: str | None = None) -> None:
        self.task_id = task_id
        self.reason = reason
        suffix = f": {reason}" if reason else ""
        super().__init__(f"Task {task_id} not found{suffix}")


class WorkspaceError(TaskRelayError):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.upstream_status = status_code


class GenerationExhausted(TaskRelayError):
    def __init__(self, attempted: list[str], last_error: Exception | None) -> None:
        self.attempted = attempted
        self.last_error = last_error
        super().__init__(f"All generation models failed ({', '.join(attempted)}): {last_error}")


class ImageJobFailed(TaskRelayError):
    def __init__(self, message: str, job_id: str | None = None) -> None:
        super().__init__(message)
        self.job_id = job_id


class PollTimedOut(ImageJobFailed):
    pass


class PipelineFailed(TaskRelayError):
    pass


class PartialContextFailure(Warning):
    """A referenced document could not be fetched; assembly continued without it."""

    def __init__(self, reference_id: str, reason: str) -> None:
        super().__init__(f"{reference_id}: {reason}")
        self.reference_id = reference_id
        self.reason = reason


class WritebackFailed(Warning):
    """Generated content could not be written to a destination."""

    def __init__(self, destination_id: str, reason: str) -> None:
        super().__init__(f"{destination_id}: {reason}")
        self.destination_id = destination_id
        self.reason = reason


class StatusUpdateFailed(Warning):
    def __init__(self, page_id: str, status: str, reason: str) -> None:
        super().__init__(f"{page_id} -> {status}: {reason}")
        self.page_id = page_id
        self.status = status
        self.reason = reason
