from __future__ import annotations

import logging
import time
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from typing import Protocol

from taskrelay.core.config.settings import Settings
from taskrelay.core.errors import GenerationExhausted
from taskrelay.core.tasks.schemas import JobResult

from .llm_openai_compat import InvocationOptions, OpenAICompatClient

logger = logging.getLogger(__name__)


class ProviderNotConfigured(RuntimeError):
    pass


class ChatProvider(Protocol):
    def chat_completion(self, model: str, system: str, user: str, options: InvocationOptions) -> str: ...


@dataclass(frozen=True)
class ChainEntry:
    model: str
    options: InvocationOptions = field(default_factory=InvocationOptions)

    @property
    def provider(self) -> str:
        return self.model.split("/", 1)[0] if "/" in self.model else ""

    @property
    def model_name(self) -> str:
        return self.model.split("/", 1)[1] if "/" in self.model else self.model


@dataclass(frozen=True)
class FallbackChain:
    entries: tuple[ChainEntry, ...]

    def __post_init__(self) -> None:
        if not self.entries:
            raise ValueError("a fallback chain needs at least one entry")

    @classmethod
    def of(cls, *entries: ChainEntry) -> "FallbackChain":
        return cls(entries=tuple(entries))

    def __iter__(self) -> Iterator[ChainEntry]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)


class ProviderRegistry:
    def __init__(self, providers: dict[str, ChatProvider] | None = None) -> None:
        self._providers: dict[str, ChatProvider] = dict(providers or {})

    def register(self, name: str, provider: ChatProvider) -> None:
        self._providers[name] = provider

    def get(self, name: str) -> ChatProvider:
        provider = self._providers.get(name)
        if provider is None:
            raise ProviderNotConfigured(f"no provider configured for {name!r}")
        return provider

    def names(self) -> list[str]:
        return sorted(self._providers)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ProviderRegistry":
        registry = cls()
        if settings.moonshot_api_key:
            registry.register(
                "moonshot",
                OpenAICompatClient(settings.moonshot_base_url, settings.moonshot_api_key, timeout_s=settings.llm_timeout_s),
            )
        if settings.openai_api_key:
            registry.register(
                "openai",
                OpenAICompatClient(settings.openai_base_url, settings.openai_api_key, timeout_s=settings.llm_timeout_s),
            )
        registry.register("http", OpenAICompatClient(settings.http_llm_url, timeout_s=settings.llm_timeout_s))
        return registry


class LLMInvoker:
    def __init__(self, registry: ProviderRegistry) -> None:
        self.registry = registry

    def invoke(self, chain: FallbackChain | Sequence[ChainEntry], system: str, user: str) -> JobResult:
        attempted: list[str] = []
        last_error: Exception | None = None
        for entry in chain:
            attempted.append(entry.model)
            start = time.perf_counter()
            try:
                provider = self.registry.get(entry.provider)
                text = provider.chat_completion(entry.model_name, system, user, entry.options)
            except Exception as exc:
                last_error = exc
                logger.warning(
                    "llm_chain_entry_failed",
                    extra={
                        "extra_fields": {
                            "model": entry.model,
                            "error": str(exc),
                            "duration_ms": int((time.perf_counter() - start) * 1000),
                        }
                    },
                )
                continue
            logger.info(
                "llm_call",
                extra={
                    "extra_fields": {
                        "model": entry.model,
                        "ok": True,
                        "attempt": len(attempted),
                        "duration_ms": int((time.perf_counter() - start) * 1000),
                        "system_len": len(system),
                        "user_len": len(user),
                        "response_len": len(text),
                    }
                },
            )
            return JobResult(success=True, payload=text, model=entry.model, attempts=len(attempted))
        raise GenerationExhausted(attempted, last_error)
