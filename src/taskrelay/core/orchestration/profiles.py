from __future__ import annotations

from dataclasses import dataclass

from taskrelay.core.config.settings import Settings
from taskrelay.core.models.llm_openai_compat import InvocationOptions
from taskrelay.core.models.llm_provider import ChainEntry, FallbackChain


@dataclass(frozen=True)
class PipelineProfile:
    """Per-entry-point policy for the shared task pipeline."""

    name: str
    identity: str | None
    secret_setting: str
    max_references: int
    char_budget: int
    chain: FallbackChain | None = None
    persona_strategy: str = "none"
    primary_from_reference: bool = False
    track_status: bool = False
    respect_destination: bool = False
    include_system_context: bool = False
    notify_parent: bool = False
    response_property: str | None = None
    reset_trigger_property: str | None = None
    marker: str = "Response"
    icon: str = "🤖"


def build_profiles(settings: Settings) -> dict[str, PipelineProfile]:
    fields = settings.fields
    primary, fallback = settings.primary_model, settings.fallback_model
    profiles = (
        PipelineProfile(
            name="kimi",
            identity=None,
            secret_setting="webhook_secret",
            max_references=settings.analysis_max_references,
            char_budget=settings.analysis_char_budget,
            chain=FallbackChain.of(
                ChainEntry(primary, InvocationOptions(reasoning=False)),
                ChainEntry(fallback),
            ),
            response_property=fields.response,
            reset_trigger_property=fields.trigger,
            marker="Kimi Response",
        ),
        PipelineProfile(
            name="agent",
            identity=settings.agent_identity or None,
            secret_setting="webhook_secret",
            max_references=settings.agent_max_references,
            char_budget=settings.agent_char_budget,
            chain=FallbackChain.of(
                ChainEntry(primary, InvocationOptions(reasoning=False)),
                ChainEntry(fallback),
            ),
            persona_strategy="keyword",
            track_status=True,
            respect_destination=True,
            include_system_context=True,
            notify_parent=True,
            marker="Agent Response",
        ),
        PipelineProfile(
            name="image",
            identity=None,
            secret_setting="image_webhook_secret",
            max_references=0,
            char_budget=settings.analysis_char_budget,
            track_status=True,
            notify_parent=True,
            icon="🖼️",
        ),
        PipelineProfile(
            name="analysis",
            identity=None,
            secret_setting="",
            max_references=settings.analysis_max_references,
            char_budget=settings.analysis_char_budget,
            chain=FallbackChain.of(
                ChainEntry(primary, InvocationOptions(temperature=1.0)),
                ChainEntry(fallback, InvocationOptions(temperature=0.7)),
            ),
            persona_strategy="keyword",
            primary_from_reference=True,
        ),
    )
    return {profile.name: profile for profile in profiles}
