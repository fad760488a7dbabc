from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar, Token
from typing import Iterator

correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)
task_id_var: ContextVar[str | None] = ContextVar("task_id", default=None)
pipeline_var: ContextVar[str | None] = ContextVar("pipeline", default=None)
job_id_var: ContextVar[str | None] = ContextVar("job_id", default=None)

_CONTEXT_VARS: dict[str, ContextVar[str | None]] = {
    "correlation_id": correlation_id_var,
    "task_id": task_id_var,
    "pipeline": pipeline_var,
    "job_id": job_id_var,
}


def set_context(**kwargs: str | None) -> dict[str, Token[str | None]]:
    tokens: dict[str, Token[str | None]] = {}
    for key, value in kwargs.items():
        var = _CONTEXT_VARS.get(key)
        if var is None:
            continue
        tokens[key] = var.set(value)
    return tokens


def reset_context(tokens: dict[str, Token[str | None]]) -> None:
    for key, token in tokens.items():
        var = _CONTEXT_VARS.get(key)
        if var is not None:
            var.reset(token)


@contextmanager
def log_context(
    correlation_id: str | None = None,
    task_id: str | None = None,
    pipeline: str | None = None,
    job_id: str | None = None,
) -> Iterator[None]:
    # Only overrides the fields that were passed, so nested scopes keep the outer correlation id.
    values = {
        "correlation_id": correlation_id,
        "task_id": task_id,
        "pipeline": pipeline,
        "job_id": job_id,
    }
    tokens = set_context(**{key: value for key, value in values.items() if value is not None})
    try:
        yield
    finally:
        reset_context(tokens)


def get_log_context() -> dict[str, str]:
    values = {key: var.get() for key, var in _CONTEXT_VARS.items()}
    return {key: value for key, value in values.items() if value is not None}
