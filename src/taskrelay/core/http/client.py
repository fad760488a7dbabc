from __future__ import annotations

import logging
import os
import random
import threading
import time
from dataclasses import dataclass

import httpx

from .errors import RETRYABLE_STATUS_CODES, UpstreamStatusError, UpstreamUnavailable

logger = logging.getLogger(__name__)

_TRANSIENT_ERRORS = (httpx.ConnectError, httpx.ReadTimeout, httpx.WriteTimeout, httpx.RemoteProtocolError)
_USER_AGENT = "taskrelay/1.0"
_ERROR_BODY_CHARS = 500

_client: httpx.Client | None = None
_client_lock = threading.Lock()


def _env_number(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, default))
    except ValueError:
        return default


@dataclass(frozen=True)
class RetryPolicy:
    retries: int = 2
    backoff_base_s: float = 0.25
    backoff_max_s: float = 2.0

    @classmethod
    def from_env(cls) -> "RetryPolicy":
        return cls(
            retries=max(0, int(_env_number("TASKRELAY_HTTP_RETRIES", cls.retries))),
            backoff_base_s=max(0.01, _env_number("TASKRELAY_HTTP_BACKOFF_BASE_S", cls.backoff_base_s)),
            backoff_max_s=max(0.01, _env_number("TASKRELAY_HTTP_BACKOFF_MAX_S", cls.backoff_max_s)),
        )

    def delay(self, attempt: int) -> float:
        # Jittered exponential backoff, capped before jitter is applied.
        return min(self.backoff_max_s, self.backoff_base_s * (2**attempt)) * (0.5 + random.random())


def _timeout(total_s: float | None = None) -> httpx.Timeout:
    read_s = max(0.1, total_s if total_s is not None else _env_number("TASKRELAY_HTTP_TIMEOUT_S", 30.0))
    connect_s = max(0.1, _env_number("TASKRELAY_HTTP_CONNECT_TIMEOUT_S", 5.0))
    return httpx.Timeout(read_s, connect=min(connect_s, read_s))


def get_http_client() -> httpx.Client:
    global _client
    if _client is None:
        with _client_lock:
            if _client is None:
                _client = httpx.Client(
                    timeout=_timeout(),
                    headers={"User-Agent": os.getenv("TASKRELAY_HTTP_USER_AGENT", _USER_AGENT)},
                )
    return _client


def _body_excerpt(response: httpx.Response) -> str:
    try:
        return response.text[:_ERROR_BODY_CHARS]
    except (UnicodeDecodeError, httpx.ResponseNotRead):
        return ""


def _log_retry(method: str, label: str, attempt: int, reason: str) -> None:
    logger.warning(
        "http_retry",
        extra={"extra_fields": {"method": method, "url": label, "attempt": attempt + 1, "reason": reason}},
    )


def request_with_retry(
    method: str,
    url: str,
    *,
    headers: dict[str, str] | None = None,
    params: dict[str, object] | None = None,
    json: object | None = None,
    timeout_override: float | None = None,
    retries: int | None = None,
    allowed_statuses: set[int] | None = None,
    redact_url: bool = False,
) -> httpx.Response:
    """Send a request, retrying transient transport errors and retryable statuses.

    Non-retryable error statuses raise ``UpstreamStatusError`` on the first
    response. ``allowed_statuses`` are returned to the caller untouched.
    """
    policy = RetryPolicy.from_env()
    if retries is not None:
        policy = RetryPolicy(max(0, retries), policy.backoff_base_s, policy.backoff_max_s)

    client = get_http_client()
    label = "[redacted-url]" if redact_url else url
    timeout = _timeout(timeout_override) if timeout_override is not None else None

    attempt = 0
    while True:
        try:
            response = client.request(method, url, headers=headers or None, params=params, json=json, timeout=timeout)
        except _TRANSIENT_ERRORS as exc:
            if attempt >= policy.retries:
                raise UpstreamUnavailable(f"{method} {label} failed after {attempt + 1} attempts: {type(exc).__name__}") from exc
            _log_retry(method, label, attempt, type(exc).__name__)
            time.sleep(policy.delay(attempt))
            attempt += 1
            continue
        except httpx.HTTPError as exc:
            raise UpstreamUnavailable(f"{method} {label} failed: {type(exc).__name__}") from exc

        status = response.status_code
        if response.is_success or (allowed_statuses is not None and status in allowed_statuses):
            return response
        if status in RETRYABLE_STATUS_CODES and attempt < policy.retries:
            _log_retry(method, label, attempt, f"status {status}")
            time.sleep(policy.delay(attempt))
            attempt += 1
            continue
        raise UpstreamStatusError(f"{method} {label} returned HTTP {status}", status_code=status, body=_body_excerpt(response))
