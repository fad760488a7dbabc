from __future__ import annotations

import logging
from typing import Any

from taskrelay.core.cache.ttl import ContextSource
from taskrelay.core.config.settings import TaskFields
from taskrelay.core.errors import (
    ImageJobFailed,
    InvalidPayload,
    PipelineFailed,
    PollTimedOut,
    TaskNotFound,
    TaskRelayError,
)
from taskrelay.core.logging.context import log_context
from taskrelay.core.models.image_jobs import AsyncJobProvider, ImageJobParams, JobPoller
from taskrelay.core.models.llm_provider import FallbackChain, LLMInvoker
from taskrelay.core.references.extract import extract_references_from_text
from taskrelay.core.tasks.resolver import TaskResolver
from taskrelay.core.tasks.schemas import (
    ContextBundle,
    Destination,
    JobState,
    PipelineOutcome,
    TaskRecord,
    WritebackReport,
)
from taskrelay.core.workspace.properties import checkbox_value, rich_text_value, url_value

from .context import ContextAssembler
from .materializer import ResponseMaterializer
from .personas import build_system_prompt
from .profiles import PipelineProfile
from .status import StatusPropagator

logger = logging.getLogger(__name__)


def _skipped(task_id: str, profile: PipelineProfile, reason: str | None) -> PipelineOutcome:
    return PipelineOutcome(task_id=task_id, pipeline=profile.name, skipped=True, skip_reason=reason)


def _source_id(bundle: ContextBundle) -> str | None:
    for entry in bundle.entries:
        if entry.reference_id:
            return entry.reference_id
    return None


def _apply_report(outcome: PipelineOutcome, report: WritebackReport) -> None:
    outcome.writeback_ok = report.ok
    outcome.writeback_errors = [str(failure) for failure in report.failures]


def _require_chain(profile: PipelineProfile) -> FallbackChain:
    if profile.chain is None:
        raise ValueError(f"profile {profile.name!r} has no generation chain")
    return profile.chain


class _TaskPipeline:
    def __init__(self, profile: PipelineProfile, resolver: TaskResolver, status: StatusPropagator) -> None:
        self.profile = profile
        self.resolver = resolver
        self.status = status

    def run(self, task_id: str) -> PipelineOutcome:
        with log_context(task_id=task_id, pipeline=self.profile.name):
            resolution = self.resolver.resolve(task_id)
            if resolution.skipped:
                return _skipped(task_id, self.profile, resolution.skip_reason)
            task = resolution.task
            try:
                outcome = self._execute(task)
            except TaskRelayError as exc:
                self._fail(task, exc)
                raise
            except Exception as exc:
                logger.exception("pipeline_unexpected_error", extra={"extra_fields": {"error": str(exc)}})
                self._fail(task, exc)
                raise PipelineFailed(str(exc)) from exc
            logger.info(
                "pipeline_finished",
                extra={
                    "extra_fields": {
                        "response_length": outcome.response_length,
                        "resolved": outcome.resolved_references,
                        "requested": outcome.requested_references,
                        "parent_triggered": outcome.parent_triggered,
                        "writeback_ok": outcome.writeback_ok,
                    }
                },
            )
            return outcome

    def _fail(self, task: TaskRecord, exc: Exception) -> None:
        logger.warning("pipeline_failed", extra={"extra_fields": {"error": str(exc), "type": type(exc).__name__}})
        if self.profile.track_status:
            self.status.mark_error(task.task_id, str(exc))

    def _execute(self, task: TaskRecord) -> PipelineOutcome:
        raise NotImplementedError


class TextPipeline(_TaskPipeline):
    """Resolve, assemble, generate, write back and propagate for language-model tasks."""

    def __init__(
        self,
        profile: PipelineProfile,
        resolver: TaskResolver,
        assembler: ContextAssembler,
        invoker: LLMInvoker,
        materializer: ResponseMaterializer,
        status: StatusPropagator,
        system_context: ContextSource | None = None,
        response_char_limit: int = 2000,
    ) -> None:
        super().__init__(profile, resolver, status)
        self.assembler = assembler
        self.chain = _require_chain(profile)
        self.invoker = invoker
        self.materializer = materializer
        self.system_context = system_context
        self.response_char_limit = response_char_limit

    def _load_system_context(self) -> str:
        if not self.profile.include_system_context or self.system_context is None:
            return ""
        try:
            return self.system_context.get()
        except Exception as exc:
            logger.warning("system_context_unavailable", extra={"extra_fields": {"error": str(exc)}})
            return ""

    def _destinations(self, task: TaskRecord, bundle: ContextBundle) -> tuple[Destination, list[str]]:
        if not self.profile.respect_destination or task.destination == Destination.TASK:
            return Destination.TASK, [task.task_id]
        source_id = _source_id(bundle)
        if source_id is None:
            logger.warning("destination_source_missing", extra={"extra_fields": {"requested": task.destination.value}})
            return Destination.TASK, [task.task_id]
        if task.destination == Destination.SOURCE:
            return Destination.SOURCE, [source_id]
        targets = [task.task_id] if source_id == task.task_id else [task.task_id, source_id]
        return Destination.BOTH, targets

    def _result_fields(self, text: str) -> dict[str, Any]:
        properties: dict[str, Any] = {}
        if self.profile.response_property:
            properties[self.profile.response_property] = rich_text_value(text, limit=self.response_char_limit)
        if self.profile.reset_trigger_property:
            properties[self.profile.reset_trigger_property] = checkbox_value(False)
        return properties

    def _execute(self, task: TaskRecord) -> PipelineOutcome:
        profile = self.profile
        if not task.instruction.strip():
            raise InvalidPayload("No description found")
        if profile.track_status:
            self.status.mark_working(task)

        bundle = self.assembler.assemble(
            task.instruction,
            task.references,
            max_references=profile.max_references,
            char_budget=profile.char_budget,
            primary_from_reference=profile.primary_from_reference,
            title=task.title,
        )
        persona, system = build_system_prompt(profile.persona_strategy, bundle.text, self._load_system_context())
        logger.info("persona_selected", extra={"extra_fields": {"persona": persona.name}})

        result = self.invoker.invoke(self.chain, system, bundle.text)
        text = result.payload or ""

        destination, targets = self._destinations(task, bundle)
        report = self.materializer.materialize(text, targets, marker=profile.marker, icon=profile.icon)

        result_fields = self._result_fields(text)
        if profile.track_status:
            self.status.mark_done(task, result_fields)
        else:
            self.status.record(task.task_id, result_fields)

        parent_triggered = self.status.notify_parent(task, text) if profile.notify_parent else False

        outcome = PipelineOutcome(
            task_id=task.task_id,
            pipeline=profile.name,
            resolved_references=bundle.resolved,
            requested_references=bundle.requested,
            response_length=len(text),
            destination=destination.value,
            parent_triggered=parent_triggered,
            model=result.model,
        )
        _apply_report(outcome, report)
        if bundle.truncated:
            outcome.extra["truncated"] = True
        return outcome


class ImagePipeline(_TaskPipeline):
    """Submit an async image job for the task, wait for it and attach the result."""

    def __init__(
        self,
        profile: PipelineProfile,
        resolver: TaskResolver,
        job_client: AsyncJobProvider,
        poller: JobPoller,
        materializer: ResponseMaterializer,
        status: StatusPropagator,
        fields: TaskFields,
        model_label: str,
    ) -> None:
        super().__init__(profile, resolver, status)
        self.job_client = job_client
        self.poller = poller
        self.materializer = materializer
        self.fields = fields
        self.model_label = model_label

    def _execute(self, task: TaskRecord) -> PipelineOutcome:
        if self.profile.track_status:
            self.status.mark_working(task)
        prompt = task.image_prompt or task.instruction
        if not prompt.strip():
            raise InvalidPayload("No Image Prompt or Context provided")

        params = ImageJobParams(
            prompt=prompt,
            image_inputs=task.image_inputs,
            aspect_ratio=task.aspect_ratio,
            resolution=task.resolution,
        )
        job_id = self.job_client.create_job(params)
        with log_context(job_id=job_id):
            logger.info("image_job_created", extra={"extra_fields": {"aspect_ratio": params.aspect_ratio}})
            result = self.poller.wait(job_id)
            if result.state == JobState.TIMED_OUT:
                raise PollTimedOut(result.error or "Timeout waiting for image generation", job_id=job_id)
            if not result.success or not result.payload:
                raise ImageJobFailed(result.error or "No result URL returned", job_id=job_id)

        url = result.payload
        decisions = (
            f"Generated image via {self.model_label}. Aspect: {params.aspect_ratio}, "
            f"Resolution: {params.resolution}. Task ID: {job_id}"
        )
        self.status.mark_done(
            task,
            {
                self.fields.image_result_url: url_value(url),
                self.fields.decisions: rich_text_value(decisions),
            },
        )
        report = self.materializer.materialize_image(url, prompt, [task.task_id])
        parent_triggered = self.status.notify_parent(task, url) if self.profile.notify_parent else False

        outcome = PipelineOutcome(
            task_id=task.task_id,
            pipeline=self.profile.name,
            destination=Destination.TASK.value,
            parent_triggered=parent_triggered,
            job_id=job_id,
            result_url=url,
            model=self.model_label,
            extra={"aspect_ratio": params.aspect_ratio, "resolution": params.resolution},
        )
        _apply_report(outcome, report)
        return outcome


class AnalysisService:
    """Ad-hoc analysis of a workspace page and up to a few related pages."""

    def __init__(
        self,
        profile: PipelineProfile,
        assembler: ContextAssembler,
        invoker: LLMInvoker,
        max_related: int = 5,
    ) -> None:
        self.profile = profile
        self.assembler = assembler
        self.invoker = invoker
        self.max_related = max_related
        self.chain = _require_chain(profile)

    def ask(self, page_url: str, question: str = "", related_urls: list[str] | None = None) -> dict[str, Any]:
        if not (page_url or "").strip():
            raise InvalidPayload("Missing page_url")
        main = extract_references_from_text(page_url)
        if not main:
            raise InvalidPayload("Invalid Notion URL")
        primary = main[0]

        related = []
        seen = {primary.id}
        for url in related_urls or []:
            for reference in extract_references_from_text(url)[:1]:
                if reference.id not in seen:
                    seen.add(reference.id)
                    related.append(reference)
        related = related[: self.max_related]

        with log_context(pipeline=self.profile.name, task_id=primary.id):
            bundle = self.assembler.assemble(
                question,
                [primary, *related],
                max_references=1 + len(related),
                char_budget=self.profile.char_budget,
                primary_from_reference=True,
            )
            if bundle.primary.reference_id != primary.id:
                raise TaskNotFound(primary.id, "page could not be fetched")

            persona, system = build_system_prompt(self.profile.persona_strategy, bundle.text)
            if question.strip():
                user = f"{question}\n\n---\n\nDocument content:\n\n{bundle.text}"
            else:
                user = f"Analyze this document and provide key insights:\n\n{bundle.text}"
            result = self.invoker.invoke(self.chain, system, user)

        return {
            "analysis": result.payload or "",
            "page_title": bundle.primary.title,
            "related_pages_count": len(bundle.supporting),
            "persona": persona.name,
            "model": result.model,
        }
