from __future__ import annotations

RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})


class UpstreamError(RuntimeError):
    """Base error for calls made through the shared HTTP client."""


class UpstreamStatusError(UpstreamError):
    def __init__(self, message: str, status_code: int, body: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body

    @property
    def retryable(self) -> bool:
        return self.status_code in RETRYABLE_STATUS_CODES


class UpstreamUnavailable(UpstreamError):
    """Transport failures that outlasted the retry budget."""
