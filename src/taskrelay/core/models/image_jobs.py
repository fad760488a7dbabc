from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

from taskrelay.core.errors import ImageJobFailed
from taskrelay.core.http.client import request_with_retry
from taskrelay.core.http.errors import UpstreamError
from taskrelay.core.tasks.schemas import JobResult, JobState

logger = logging.getLogger(__name__)


@dataclass
class ImageJobParams:
    prompt: str
    image_inputs: list[str] = field(default_factory=list)
    aspect_ratio: str = "1:1"
    resolution: str = "1K"
    output_format: str = "png"


@dataclass
class JobStatus:
    state: str
    result_url: str | None = None
    fail_message: str | None = None


class AsyncJobProvider(Protocol):
    def create_job(self, params: ImageJobParams) -> str: ...

    def poll_job(self, job_id: str) -> JobStatus: ...


def _result_url(raw: Any) -> str | None:
    if isinstance(raw, str):
        try:
            raw = json.loads(raw or "{}")
        except ValueError:
            return None
    if not isinstance(raw, dict):
        return None
    urls = raw.get("resultUrls") or []
    return str(urls[0]) if urls else None


class KieJobClient:
    def __init__(self, api_key: str, base_url: str = "https://api.kie.ai/api/v1/jobs", model: str = "nano-banana-pro") -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model

    def _headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json", "Authorization": f"Bearer {self.api_key}"}

    def _envelope(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        if not self.api_key:
            raise ImageJobFailed("KIE_API_KEY is not configured")
        try:
            response = request_with_retry(method, f"{self.base_url}{path}", headers=self._headers(), **kwargs)
            data = response.json()
        except (UpstreamError, ValueError) as exc:
            raise ImageJobFailed(f"{path} request failed: {exc}") from exc
        if not isinstance(data, dict) or data.get("code") != 200:
            message = data.get("msg") if isinstance(data, dict) else None
            raise ImageJobFailed(f"{path} rejected: {message or json.dumps(data)[:300]}")
        return data.get("data") or {}

    def create_job(self, params: ImageJobParams) -> str:
        data = self._envelope(
            "POST",
            "/createTask",
            json={
                "model": self.model,
                "input": {
                    "prompt": params.prompt,
                    "image_input": params.image_inputs,
                    "aspect_ratio": params.aspect_ratio,
                    "resolution": params.resolution,
                    "output_format": params.output_format,
                },
            },
        )
        job_id = data.get("taskId")
        if not job_id:
            raise ImageJobFailed("createTask returned no taskId")
        return str(job_id)

    def poll_job(self, job_id: str) -> JobStatus:
        data = self._envelope("GET", "/recordInfo", params={"taskId": job_id})
        state = str(data.get("state") or "")
        if state == "success":
            return JobStatus(state=state, result_url=_result_url(data.get("resultJson")))
        if state == "fail":
            return JobStatus(state=state, fail_message=str(data.get("failMsg") or "Generation failed"))
        return JobStatus(state=state)


class JobPoller:
    """Fixed-interval polling of one async job until it settles or the attempt ceiling is hit."""

    def __init__(
        self,
        provider: AsyncJobProvider,
        interval_s: float = 5.0,
        max_attempts: int = 60,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.provider = provider
        self.interval_s = interval_s
        self.max_attempts = max(1, max_attempts)
        self.sleep = sleep

    def wait(self, job_id: str) -> JobResult:
        state = JobState.SUBMITTED
        for attempt in range(1, self.max_attempts + 1):
            status = self.provider.poll_job(job_id)
            logger.info("job_poll", extra={"extra_fields": {"job_id": job_id, "attempt": attempt, "state": status.state}})
            if status.state == "success":
                return JobResult(
                    success=True,
                    payload=status.result_url,
                    job_id=job_id,
                    state=JobState.SUCCEEDED,
                    attempts=attempt,
                )
            if status.state == "fail":
                return JobResult(
                    success=False,
                    error=status.fail_message or "Generation failed",
                    job_id=job_id,
                    state=JobState.FAILED,
                    attempts=attempt,
                )
            state = JobState.POLLING
            if attempt < self.max_attempts:
                self.sleep(self.interval_s)
        logger.warning("job_poll_timed_out", extra={"extra_fields": {"job_id": job_id, "attempts": self.max_attempts, "last_state": state.value}})
        return JobResult(
            success=False,
            error="Timeout waiting for image generation",
            job_id=job_id,
            state=JobState.TIMED_OUT,
            attempts=self.max_attempts,
        )
