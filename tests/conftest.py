from __future__ import annotations

from typing import Any

import pytest

from taskrelay.core.errors import WorkspaceError
from taskrelay.core.models.image_jobs import ImageJobParams, JobStatus
from taskrelay.core.models.llm_openai_compat import InvocationOptions
from taskrelay.core.workspace.base import WorkspaceDocument

_ENV_KEYS = (
    "NOTION_API_KEY",
    "MOONSHOT_API_KEY",
    "OPENAI_API_KEY",
    "KIE_API_KEY",
    "TASKRELAY_WEBHOOK_SECRET",
    "TASKRELAY_IMAGE_WEBHOOK_SECRET",
    "TASKRELAY_SYSTEM_CONTEXT_PAGE_ID",
    "TASKRELAY_AGENT_IDENTITY",
    "TASKRELAY_PRIMARY_MODEL",
    "TASKRELAY_FALLBACK_MODEL",
    "TASKRELAY_AUTH_TOKEN",
)


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("TASKRELAY_AUTH_MODE", "off")
    monkeypatch.setenv("TASKRELAY_STATE_DIR", str(tmp_path))
    monkeypatch.setenv("TASKRELAY_LOG_TO_FILE", "off")


class FakeWorkspace:
    """In-memory stand-in for the Notion connector."""

    def __init__(self) -> None:
        self.pages: dict[str, dict[str, Any]] = {}
        self.documents: dict[str, WorkspaceDocument] = {}
        self.failing: set[str] = set()
        self.failing_updates: set[str] = set()
        self.failing_appends: set[str] = set()
        self.appends: list[tuple[str, list[dict[str, Any]]]] = []
        self.updates: list[tuple[str, dict[str, Any]]] = []
        self.calls = 0

    def add_document(self, page_id: str, title: str, content: str) -> None:
        self.documents[page_id] = WorkspaceDocument(id=page_id, title=title, content=content)

    def retrieve_page(self, page_id: str) -> dict[str, Any]:
        self.calls += 1
        if page_id in self.failing or page_id not in self.pages:
            raise WorkspaceError(f"GET /pages/{page_id} failed", status_code=404)
        return self.pages[page_id]

    def fetch_document(self, page_id: str) -> WorkspaceDocument:
        self.calls += 1
        if page_id in self.failing or page_id not in self.documents:
            raise WorkspaceError(f"GET /blocks/{page_id}/children failed", status_code=404)
        return self.documents[page_id]

    def append_blocks(self, block_id: str, blocks: list[dict[str, Any]]) -> list[dict[str, Any]]:
        self.calls += 1
        if block_id in self.failing_appends:
            raise WorkspaceError(f"PATCH /blocks/{block_id}/children failed", status_code=400)
        self.appends.append((block_id, list(blocks)))
        return [{"id": f"blk-{len(self.appends)}-{index}"} for index in range(len(blocks))]

    def update_page(self, page_id: str, properties: dict[str, Any]) -> dict[str, Any]:
        self.calls += 1
        if page_id in self.failing_updates:
            raise WorkspaceError(f"PATCH /pages/{page_id} failed", status_code=409)
        self.updates.append((page_id, properties))
        return {"id": page_id, "properties": properties}

    def updates_for(self, page_id: str) -> list[dict[str, Any]]:
        return [properties for target, properties in self.updates if target == page_id]


class FakeChatProvider:
    def __init__(self, responses: dict[str, str | Exception] | None = None, default: str = "## Answer\n\nAll good.") -> None:
        self.responses = dict(responses or {})
        self.default = default
        self.calls: list[dict[str, Any]] = []

    def chat_completion(self, model: str, system: str, user: str, options: InvocationOptions) -> str:
        self.calls.append({"model": model, "system": system, "user": user, "options": options})
        outcome = self.responses.get(model, self.default)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeJobProvider:
    def __init__(self, states: list[JobStatus] | None = None, job_id: str = "job-1") -> None:
        self.states = list(states or [JobStatus(state="success", result_url="https://cdn.example/img.png")])
        self.job_id = job_id
        self.created: list[ImageJobParams] = []
        self.polls = 0

    def create_job(self, params: ImageJobParams) -> str:
        self.created.append(params)
        return self.job_id

    def poll_job(self, job_id: str) -> JobStatus:
        self.polls += 1
        return self.states[min(self.polls, len(self.states)) - 1]


def rich_text(text: str) -> dict[str, Any]:
    return {"type": "rich_text", "rich_text": [{"type": "text", "plain_text": text, "text": {"content": text}}]}


def make_task_page(
    description: str = "",
    *,
    links: list[dict[str, Any]] | None = None,
    parent_id: str | None = None,
    owner: str | None = None,
    destination: str | None = None,
    title: str = "Task",
    extra: dict[str, Any] | None = None,
) -> dict[str, Any]:
    properties: dict[str, Any] = {
        "Name": {"type": "title", "title": [{"type": "text", "plain_text": title}]},
        "Description": rich_text(description),
        "Links": {"type": "rich_text", "rich_text": list(links or [])},
    }
    if parent_id:
        properties["Parent Task"] = {"type": "relation", "relation": [{"id": parent_id}]}
    if owner:
        properties["Agent"] = {"type": "select", "select": {"name": owner}}
    if destination:
        properties["Output To"] = {"type": "select", "select": {"name": destination}}
    properties.update(extra or {})
    return {"object": "page", "properties": properties}


@pytest.fixture
def workspace() -> FakeWorkspace:
    return FakeWorkspace()


@pytest.fixture
def chat_provider() -> FakeChatProvider:
    return FakeChatProvider()


@pytest.fixture
def job_provider() -> FakeJobProvider:
    return FakeJobProvider()


@pytest.fixture
def task_page():
    return make_task_page


@pytest.fixture
def api_client(monkeypatch: pytest.MonkeyPatch, workspace, chat_provider, job_provider):
    from fastapi.testclient import TestClient

    from taskrelay.apps.api import deps
    from taskrelay.apps.api.main import app
    from taskrelay.core.cache.ttl import StaticContext
    from taskrelay.core.models.llm_provider import ProviderRegistry

    monkeypatch.setenv("TASKRELAY_WEBHOOK_SECRET", "hook-secret")
    monkeypatch.setenv("TASKRELAY_POLL_INTERVAL_S", "0")
    deps.get_settings.cache_clear()

    monkeypatch.setattr(deps, "get_workspace", lambda: workspace)
    monkeypatch.setattr(deps, "get_provider_registry", lambda: ProviderRegistry({"moonshot": chat_provider}))
    monkeypatch.setattr(deps, "get_image_client", lambda: job_provider)
    monkeypatch.setattr(deps, "get_system_context", lambda: StaticContext(""))
    monkeypatch.setattr(deps, "get_sleep", lambda: (lambda _: None))

    with TestClient(app) as client:
        yield client
    deps.get_settings.cache_clear()
