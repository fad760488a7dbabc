from __future__ import annotations

from fastapi.testclient import TestClient

from taskrelay.apps.api.main import app

HEADERS = {"x-webhook-secret": "hook-secret"}
LINKED = "aaaabbbbccccddddeeeeffff00001111"
LINKED_ID = "aaaabbbb-cccc-dddd-eeee-ffff00001111"


def _link(url: str) -> dict:
    return {"type": "text", "plain_text": url, "text": {"content": url}, "href": url}


def test_agent_task_runs_to_done(api_client, workspace, chat_provider, task_page) -> None:
    workspace.pages["X"] = task_page("Draft the release notes")

    response = api_client.post("/webhooks/agent", json={"data": {"id": "X"}}, headers=HEADERS)

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["task_id"] == "X"
    assert body["destination"] == "task"
    assert body["parent_triggered"] is False
    assert chat_provider.calls[0]["user"] == "Draft the release notes"
    assert chat_provider.calls[0]["model"] == "kimi-k2.5"

    statuses = [props["Status"]["status"]["name"] for props in workspace.updates_for("X") if "Status" in props]
    assert statuses == ["Working", "Done"]
    assert workspace.appends[0][0] == "X"


def test_parent_trigger_is_set_exactly_once(api_client, workspace, task_page) -> None:
    workspace.pages["X"] = task_page("Summarise", parent_id="P")

    response = api_client.post("/webhooks/agent", json={"id": "X"}, headers=HEADERS)

    assert response.status_code == 200
    assert response.json()["parent_triggered"] is True
    parent_updates = workspace.updates_for("P")
    assert len(parent_updates) == 1
    assert parent_updates[0]["Supervisor Trigger"] == {"checkbox": True}


def test_linked_pages_become_supporting_context(api_client, workspace, chat_provider, task_page) -> None:
    url = f"https://www.notion.so/Design-{LINKED}"
    workspace.pages["X"] = task_page("Review the design", links=[_link(url)])
    workspace.add_document(LINKED_ID, "Design", "The design body")

    response = api_client.post("/webhooks/agent", json={"page_id": "X"}, headers=HEADERS)

    body = response.json()
    assert body["resolved_references"] == 1
    assert body["requested_references"] == 1
    assert "### Design\n\nThe design body" in chat_provider.calls[0]["user"]


def test_source_destination_writes_to_the_linked_record(api_client, workspace, task_page) -> None:
    url = f"https://www.notion.so/Design-{LINKED}"
    workspace.pages["X"] = task_page("Annotate", links=[_link(url)], destination="Source Page")
    workspace.add_document(LINKED_ID, "Design", "body")

    body = api_client.post("/webhooks/agent", json={"id": "X"}, headers=HEADERS).json()

    assert body["destination"] == "source"
    assert workspace.appends[0][0] == LINKED_ID


def test_task_owned_by_another_agent_is_skipped(api_client, workspace, chat_provider, task_page) -> None:
    workspace.pages["X"] = task_page("Do it", owner="claude")

    response = api_client.post("/webhooks/agent", json={"id": "X"}, headers=HEADERS)

    assert response.status_code == 200
    assert response.json()["skipped"] is True
    assert chat_provider.calls == []
    assert workspace.updates == []


def test_kimi_webhook_mirrors_response_and_resets_checkbox(api_client, workspace, chat_provider, task_page) -> None:
    chat_provider.default = "Short answer"
    workspace.pages["X"] = task_page("Question?")

    response = api_client.post("/webhooks/kimi", json={"data": {"id": "X"}}, headers=HEADERS)

    assert response.status_code == 200
    assert chat_provider.calls[0]["options"].reasoning is False
    properties = workspace.updates_for("X")[0]
    assert properties["Response"]["rich_text"][0]["text"]["content"] == "Short answer"
    assert properties["Checkbox"] == {"checkbox": False}
    assert "Status" not in properties


def test_exhausted_chain_records_error_and_returns_500(api_client, workspace, chat_provider, task_page) -> None:
    chat_provider.responses = {
        "kimi-k2.5": RuntimeError("primary down"),
        "kimi-k2-0905-preview": RuntimeError("fallback down"),
    }
    workspace.pages["X"] = task_page("Anything")

    response = api_client.post("/webhooks/agent", json={"id": "X"}, headers=HEADERS)

    assert response.status_code == 500
    assert "fallback down" in response.json()["error"]
    last = workspace.updates_for("X")[-1]
    assert last["Status"] == {"status": {"name": "Error"}}


def test_missing_description_is_a_bad_request(api_client, workspace, task_page) -> None:
    workspace.pages["X"] = task_page("")

    response = api_client.post("/webhooks/kimi", json={"id": "X"}, headers=HEADERS)

    assert response.status_code == 400
    assert response.json() == {"error": "No description found"}


def test_unknown_task_is_not_found(api_client) -> None:
    response = api_client.post("/webhooks/agent", json={"id": "missing"}, headers=HEADERS)

    assert response.status_code == 404
    assert "missing" in response.json()["error"]


def test_writeback_and_status_failures_do_not_mask_the_result(api_client, workspace, chat_provider, task_page) -> None:
    workspace.pages["X"] = task_page("Draft the release notes")
    workspace.failing_appends = {"X"}
    workspace.failing_updates = {"X"}

    response = api_client.post("/webhooks/agent", json={"id": "X"}, headers=HEADERS)

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["writeback_ok"] is False
    assert body["writeback_errors"]
    assert body["response_length"] == len(chat_provider.default)
    assert workspace.appends == []
    assert workspace.updates_for("X") == []


def test_unexpected_errors_render_as_json(api_client, workspace) -> None:
    workspace.pages["X"] = {"object": "page", "properties": ["not", "a", "mapping"]}

    with TestClient(app, raise_server_exceptions=False) as client:
        response = client.post("/webhooks/agent", json={"id": "X"}, headers=HEADERS)

    assert response.status_code == 500
    assert "error" in response.json()
