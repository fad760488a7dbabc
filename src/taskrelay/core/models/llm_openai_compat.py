from __future__ import annotations

from dataclasses import dataclass

from taskrelay.core.http.client import request_with_retry

_MAX_TOOL_ROUNDS = 4


@dataclass(frozen=True)
class InvocationOptions:
    temperature: float | None = None
    reasoning: bool | None = None
    web_search: bool = False
    max_tokens: int | None = None


class LLMOutputError(RuntimeError):
    pass


class OpenAICompatClient:
    def __init__(self, base_url: str, api_key: str = "", timeout_s: float = 110.0, retries: int = 1) -> None:
        self.url = f"{base_url.rstrip('/')}/chat/completions"
        self.api_key = api_key
        self.timeout_s = timeout_s
        self.retries = retries

    def chat_completion(self, model: str, system: str, user: str, options: InvocationOptions) -> str:
        messages: list[dict] = [
            {"role": "system", "content": system},
            {"role": "user", "content": user},
        ]
        payload: dict[str, object] = {"model": model, "messages": messages}
        if options.temperature is not None:
            payload["temperature"] = options.temperature
        if options.max_tokens is not None:
            payload["max_tokens"] = options.max_tokens
        if options.reasoning is not None:
            payload["thinking"] = {"type": "enabled" if options.reasoning else "disabled"}
        if options.web_search:
            payload["tools"] = [{"type": "builtin_function", "function": {"name": "$web_search"}}]

        for _ in range(_MAX_TOOL_ROUNDS):
            choice = self._post(model, payload)
            message = choice.get("message") or {}
            tool_calls = message.get("tool_calls") or []
            if choice.get("finish_reason") == "tool_calls" and tool_calls:
                # Builtin search is executed server-side; echoing the arguments back resumes generation.
                messages.append(message)
                for call in tool_calls:
                    function = call.get("function") or {}
                    messages.append(
                        {
                            "role": "tool",
                            "tool_call_id": call.get("id"),
                            "name": function.get("name"),
                            "content": function.get("arguments") or "{}",
                        }
                    )
                continue
            content = str(message.get("content") or "")
            if not content.strip():
                raise LLMOutputError(f"{model} returned empty content")
            return content
        raise LLMOutputError(f"{model} did not finish after {_MAX_TOOL_ROUNDS} tool rounds")

    def _post(self, model: str, payload: dict[str, object]) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        response = request_with_retry(
            "POST",
            self.url,
            headers=headers,
            json=payload,
            timeout_override=self.timeout_s,
            retries=self.retries,
        )
        try:
            data = response.json()
        except ValueError as exc:
            raise LLMOutputError(f"{model} returned invalid JSON") from exc
        choices = data.get("choices") if isinstance(data, dict) else None
        if not isinstance(choices, list) or not choices:
            raise LLMOutputError(f"{model} returned no choices")
        choice = choices[0]
        if not isinstance(choice, dict) or not isinstance(choice.get("message") or {}, dict):
            raise LLMOutputError(f"{model} returned a malformed choice")
        return choice
