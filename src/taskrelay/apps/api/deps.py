from __future__ import annotations

import time
from collections.abc import Callable
from functools import lru_cache

from taskrelay.core.cache.ttl import ContextSource, StaticContext, SystemContextCache
from taskrelay.core.config.settings import Settings, load_settings
from taskrelay.core.models.image_jobs import AsyncJobProvider, JobPoller, KieJobClient
from taskrelay.core.models.llm_provider import LLMInvoker, ProviderRegistry
from taskrelay.core.orchestration.context import ContextAssembler
from taskrelay.core.orchestration.materializer import ResponseMaterializer
from taskrelay.core.orchestration.pipeline import AnalysisService, ImagePipeline, TextPipeline
from taskrelay.core.orchestration.profiles import PipelineProfile, build_profiles
from taskrelay.core.orchestration.status import StatusPropagator
from taskrelay.core.tasks.resolver import TaskResolver
from taskrelay.core.workspace.base import WorkspaceConnector
from taskrelay.core.workspace.client import NotionClient


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()


@lru_cache(maxsize=1)
def get_workspace() -> WorkspaceConnector:
    settings = get_settings()
    return NotionClient(
        api_key=settings.notion_api_key,
        base_url=settings.notion_base_url,
        notion_version=settings.notion_version,
        render_max_depth=settings.render_max_depth,
    )


@lru_cache(maxsize=1)
def get_provider_registry() -> ProviderRegistry:
    return ProviderRegistry.from_settings(get_settings())


@lru_cache(maxsize=1)
def get_image_client() -> AsyncJobProvider:
    settings = get_settings()
    return KieJobClient(api_key=settings.kie_api_key, base_url=settings.kie_base_url, model=settings.kie_model)


@lru_cache(maxsize=1)
def get_system_context() -> ContextSource:
    settings = get_settings()
    page_id = settings.system_context_page_id
    if not page_id:
        return StaticContext("")
    workspace = get_workspace()
    return SystemContextCache(
        fetch=lambda: workspace.fetch_document(page_id).content,
        ttl_s=settings.system_context_ttl_s,
    )


def get_profiles() -> dict[str, PipelineProfile]:
    return build_profiles(get_settings())


def get_sleep() -> Callable[[float], None]:
    return time.sleep


def _status(settings: Settings, workspace: WorkspaceConnector) -> StatusPropagator:
    return StatusPropagator(workspace, settings.fields, error_char_limit=settings.error_char_limit)


def _materializer(settings: Settings, workspace: WorkspaceConnector) -> ResponseMaterializer:
    return ResponseMaterializer(
        workspace,
        block_char_limit=settings.block_char_limit,
        batch_size=settings.batch_size,
    )


def build_text_pipeline(name: str) -> TextPipeline:
    settings = get_settings()
    workspace = get_workspace()
    profile = get_profiles()[name]
    return TextPipeline(
        profile=profile,
        resolver=TaskResolver(workspace, settings.fields, identity=profile.identity),
        assembler=ContextAssembler(workspace),
        invoker=LLMInvoker(get_provider_registry()),
        materializer=_materializer(settings, workspace),
        status=_status(settings, workspace),
        system_context=get_system_context(),
        response_char_limit=settings.block_char_limit,
    )


def build_image_pipeline() -> ImagePipeline:
    settings = get_settings()
    workspace = get_workspace()
    profile = get_profiles()["image"]
    job_client = get_image_client()
    return ImagePipeline(
        profile=profile,
        resolver=TaskResolver(workspace, settings.fields, identity=profile.identity),
        job_client=job_client,
        poller=JobPoller(
            job_client,
            interval_s=settings.poll_interval_s,
            max_attempts=settings.poll_max_attempts,
            sleep=get_sleep(),
        ),
        materializer=_materializer(settings, workspace),
        status=_status(settings, workspace),
        fields=settings.fields,
        model_label=settings.kie_model,
    )


def build_analysis_service() -> AnalysisService:
    settings = get_settings()
    workspace = get_workspace()
    return AnalysisService(
        profile=get_profiles()["analysis"],
        assembler=ContextAssembler(workspace),
        invoker=LLMInvoker(get_provider_registry()),
        max_related=settings.analysis_max_references,
    )
