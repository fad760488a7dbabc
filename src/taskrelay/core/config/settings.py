from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

# Smallest context budget that still fits the truncation marker.
MIN_CHAR_BUDGET = 64


def _get_int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _get_float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _get_list_env(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = os.getenv(name)
    if raw is None:
        return default
    return tuple(part.strip() for part in raw.split(",") if part.strip())


@dataclass(frozen=True)
class TaskFields:
    """Property names of the task database."""

    instruction: tuple[str, ...] = ("Description", "Description ", "Context")
    references: tuple[str, ...] = ("Links", "Context", "References")
    owner: str = "Agent"
    parent: str = "Parent Task"
    destination: str = "Output To"
    status: str = "Status"
    started_at: str = "Started At"
    completed_at: str = "Completed At"
    error_log: str = "Error Log"
    parent_trigger: str = "Supervisor Trigger"
    parent_result: str = ""
    response: str = "Response"
    trigger: str = "Checkbox"
    image_prompt: str = "Image Prompt"
    image_inputs: str = "Image Input URLs"
    image_aspect_ratio: str = "Image Aspect Ratio"
    image_resolution: str = "Image Resolution"
    image_result_url: str = "Image Result URL"
    decisions: str = "Decisions Made"


@dataclass(frozen=True)
class Settings:
    notion_api_key: str = ""
    notion_base_url: str = "https://api.notion.com/v1"
    notion_version: str = "2022-06-28"
    moonshot_api_key: str = ""
    moonshot_base_url: str = "https://api.moonshot.ai/v1"
    openai_api_key: str = ""
    openai_base_url: str = "https://api.openai.com/v1"
    http_llm_url: str = "http://127.0.0.1:8001/v1"
    kie_api_key: str = ""
    kie_base_url: str = "https://api.kie.ai/api/v1/jobs"
    kie_model: str = "nano-banana-pro"
    webhook_secret: str = ""
    image_webhook_secret: str = ""
    agent_identity: str = "kimi"
    system_context_page_id: str = ""
    system_context_ttl_s: int = 300
    analysis_char_budget: int = 480_000
    agent_char_budget: int = 800_000
    analysis_max_references: int = 5
    agent_max_references: int = 10
    primary_model: str = "moonshot/kimi-k2.5"
    fallback_model: str = "moonshot/kimi-k2-0905-preview"
    llm_timeout_s: float = 110.0
    poll_interval_s: float = 5.0
    poll_max_attempts: int = 60
    batch_size: int = 100
    block_char_limit: int = 2000
    error_char_limit: int = 2000
    render_max_depth: int = 3
    state_dir: Path = field(default_factory=lambda: Path.home() / ".taskrelay")
    fields: TaskFields = field(default_factory=TaskFields)


def _state_dir() -> Path:
    configured = os.getenv("TASKRELAY_STATE_DIR")
    if configured:
        return Path(configured).expanduser()
    return Path.home() / ".taskrelay"


def _load_fields() -> TaskFields:
    defaults = TaskFields()
    return TaskFields(
        instruction=_get_list_env("TASKRELAY_FIELD_INSTRUCTION", defaults.instruction),
        references=_get_list_env("TASKRELAY_FIELD_REFERENCES", defaults.references),
        owner=os.getenv("TASKRELAY_FIELD_OWNER", defaults.owner),
        parent=os.getenv("TASKRELAY_FIELD_PARENT", defaults.parent),
        destination=os.getenv("TASKRELAY_FIELD_DESTINATION", defaults.destination),
        status=os.getenv("TASKRELAY_FIELD_STATUS", defaults.status),
        error_log=os.getenv("TASKRELAY_FIELD_ERROR_LOG", defaults.error_log),
        parent_trigger=os.getenv("TASKRELAY_FIELD_PARENT_TRIGGER", defaults.parent_trigger),
        parent_result=os.getenv("TASKRELAY_FIELD_PARENT_RESULT", defaults.parent_result),
        response=os.getenv("TASKRELAY_FIELD_RESPONSE", defaults.response),
    )


def load_settings() -> Settings:
    block_char_limit = max(1, _get_int_env("TASKRELAY_BLOCK_CHAR_LIMIT", 2000))
    return Settings(
        notion_api_key=os.getenv("NOTION_API_KEY", ""),
        notion_base_url=os.getenv("TASKRELAY_NOTION_BASE_URL", "https://api.notion.com/v1").rstrip("/"),
        moonshot_api_key=os.getenv("MOONSHOT_API_KEY", ""),
        moonshot_base_url=os.getenv("TASKRELAY_MOONSHOT_BASE_URL", "https://api.moonshot.ai/v1").rstrip("/"),
        openai_api_key=os.getenv("OPENAI_API_KEY", ""),
        openai_base_url=os.getenv("TASKRELAY_OPENAI_BASE_URL", "https://api.openai.com/v1").rstrip("/"),
        http_llm_url=os.getenv("TASKRELAY_HTTP_LLM_URL", "http://127.0.0.1:8001/v1").rstrip("/"),
        kie_api_key=os.getenv("KIE_API_KEY", ""),
        kie_base_url=os.getenv("TASKRELAY_KIE_BASE_URL", "https://api.kie.ai/api/v1/jobs").rstrip("/"),
        kie_model=os.getenv("TASKRELAY_KIE_MODEL", "nano-banana-pro"),
        webhook_secret=os.getenv("TASKRELAY_WEBHOOK_SECRET", ""),
        image_webhook_secret=os.getenv("TASKRELAY_IMAGE_WEBHOOK_SECRET", ""),
        agent_identity=os.getenv("TASKRELAY_AGENT_IDENTITY", "kimi").strip(),
        system_context_page_id=os.getenv("TASKRELAY_SYSTEM_CONTEXT_PAGE_ID", "").strip(),
        system_context_ttl_s=max(1, _get_int_env("TASKRELAY_SYSTEM_CONTEXT_TTL_S", 300)),
        analysis_char_budget=max(MIN_CHAR_BUDGET, _get_int_env("TASKRELAY_ANALYSIS_CHAR_BUDGET", 480_000)),
        agent_char_budget=max(MIN_CHAR_BUDGET, _get_int_env("TASKRELAY_AGENT_CHAR_BUDGET", 800_000)),
        analysis_max_references=max(0, _get_int_env("TASKRELAY_ANALYSIS_MAX_REFERENCES", 5)),
        agent_max_references=max(0, _get_int_env("TASKRELAY_AGENT_MAX_REFERENCES", 10)),
        primary_model=os.getenv("TASKRELAY_PRIMARY_MODEL", "moonshot/kimi-k2.5"),
        fallback_model=os.getenv("TASKRELAY_FALLBACK_MODEL", "moonshot/kimi-k2-0905-preview"),
        llm_timeout_s=max(1.0, _get_float_env("TASKRELAY_LLM_TIMEOUT_S", 110.0)),
        poll_interval_s=max(0.0, _get_float_env("TASKRELAY_POLL_INTERVAL_S", 5.0)),
        poll_max_attempts=max(1, _get_int_env("TASKRELAY_POLL_MAX_ATTEMPTS", 60)),
        batch_size=min(100, max(1, _get_int_env("TASKRELAY_BATCH_SIZE", 100))),
        block_char_limit=min(2000, block_char_limit),
        error_char_limit=max(1, _get_int_env("TASKRELAY_ERROR_CHAR_LIMIT", 2000)),
        render_max_depth=max(0, _get_int_env("TASKRELAY_RENDER_MAX_DEPTH", 3)),
        state_dir=_state_dir(),
        fields=_load_fields(),
    )
