from __future__ import annotations

import json

import httpx
import pytest

from taskrelay.core.models.llm_openai_compat import InvocationOptions, LLMOutputError, OpenAICompatClient


def _install(monkeypatch, handler) -> None:
    client = httpx.Client(transport=httpx.MockTransport(handler))
    monkeypatch.setattr("taskrelay.core.http.client.get_http_client", lambda: client)
    monkeypatch.setattr("taskrelay.core.http.client.time.sleep", lambda _: None)


def _choice(content: str | None = None, tool_calls: list | None = None) -> dict:
    message: dict = {"role": "assistant", "content": content}
    if tool_calls:
        message["tool_calls"] = tool_calls
    return {"choices": [{"message": message, "finish_reason": "tool_calls" if tool_calls else "stop"}]}


def test_chat_completion_sends_options(monkeypatch) -> None:
    captured: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v1/chat/completions"
        assert request.headers["Authorization"] == "Bearer mk"
        captured.append(json.loads(request.content))
        return httpx.Response(200, json=_choice("hello"))

    _install(monkeypatch, handler)
    client = OpenAICompatClient("https://api.moonshot.ai/v1", api_key="mk")

    text = client.chat_completion("kimi-k2.5", "sys", "user", InvocationOptions(temperature=0.7, reasoning=False))

    assert text == "hello"
    assert captured[0]["model"] == "kimi-k2.5"
    assert captured[0]["temperature"] == 0.7
    assert captured[0]["thinking"] == {"type": "disabled"}
    assert captured[0]["messages"][0] == {"role": "system", "content": "sys"}
    assert "tools" not in captured[0]


def test_builtin_search_tool_calls_are_echoed_back(monkeypatch) -> None:
    captured: list[dict] = []
    call = {"id": "call-1", "type": "builtin_function", "function": {"name": "$web_search", "arguments": "{\"q\":\"x\"}"}}

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(json.loads(request.content))
        if len(captured) == 1:
            return httpx.Response(200, json=_choice(tool_calls=[call]))
        return httpx.Response(200, json=_choice("with search"))

    _install(monkeypatch, handler)
    client = OpenAICompatClient("https://api.moonshot.ai/v1", api_key="mk")

    text = client.chat_completion("kimi-k2.5", "sys", "user", InvocationOptions(web_search=True))

    assert text == "with search"
    assert captured[0]["tools"][0]["function"]["name"] == "$web_search"
    assert captured[1]["messages"][-1] == {
        "role": "tool",
        "tool_call_id": "call-1",
        "name": "$web_search",
        "content": "{\"q\":\"x\"}",
    }


def test_empty_content_is_an_output_error(monkeypatch) -> None:
    _install(monkeypatch, lambda request: httpx.Response(200, json=_choice("   ")))

    with pytest.raises(LLMOutputError):
        OpenAICompatClient("http://llm.local/v1").chat_completion("m", "s", "u", InvocationOptions())


@pytest.mark.parametrize("body", [{"choices": ["oops"]}, {"choices": [{"message": "text"}]}, {"choices": {}}])
def test_malformed_choices_raise_output_error(monkeypatch, body) -> None:
    _install(monkeypatch, lambda request: httpx.Response(200, request=request, json=body))
    client = OpenAICompatClient("https://llm.local/v1")

    with pytest.raises(LLMOutputError):
        client.chat_completion("m", "s", "u", InvocationOptions())
