from __future__ import annotations


def test_missing_secret_is_rejected_before_any_external_call(api_client, workspace, chat_provider) -> None:
    response = api_client.post("/webhooks/agent", json={"data": {"id": "X"}})

    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorized"}
    assert workspace.calls == 0
    assert chat_provider.calls == []


def test_wrong_secret_is_rejected(api_client, workspace) -> None:
    response = api_client.post("/webhooks/kimi", json={"id": "X"}, headers={"x-webhook-secret": "nope"})

    assert response.status_code == 401
    assert workspace.calls == 0


def test_header_lookup_is_case_insensitive(api_client, workspace, task_page) -> None:
    workspace.pages["X"] = task_page("Hello")

    response = api_client.post("/webhooks/agent", json={"id": "X"}, headers={"X-Webhook-Secret": "hook-secret"})

    assert response.status_code == 200


def test_empty_configured_secret_rejects_everything(api_client, monkeypatch) -> None:
    from taskrelay.apps.api import deps

    monkeypatch.setenv("TASKRELAY_WEBHOOK_SECRET", "")
    deps.get_settings.cache_clear()

    response = api_client.post("/webhooks/agent", json={"id": "X"}, headers={"x-webhook-secret": ""})

    assert response.status_code == 401


def test_non_json_body_is_a_bad_request(api_client) -> None:
    response = api_client.post(
        "/webhooks/agent",
        content=b"not json",
        headers={"x-webhook-secret": "hook-secret", "Content-Type": "application/json"},
    )

    assert response.status_code == 400
    assert "error" in response.json()


def test_payload_without_id_is_a_bad_request(api_client) -> None:
    response = api_client.post("/webhooks/agent", json={"foo": "bar"}, headers={"x-webhook-secret": "hook-secret"})

    assert response.status_code == 400
    assert response.json() == {"error": "No page ID"}


def test_ask_requires_token_when_auth_enabled(api_client, monkeypatch) -> None:
    monkeypatch.setenv("TASKRELAY_AUTH_MODE", "token")
    monkeypatch.setenv("TASKRELAY_AUTH_TOKEN", "api-token")

    response = api_client.post("/ask", json={"page_url": "https://www.notion.so/x"})

    assert response.status_code == 401
