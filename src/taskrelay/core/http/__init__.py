from .client import get_http_client, request_with_retry
from .errors import UpstreamError, UpstreamStatusError, UpstreamUnavailable

__all__ = ["get_http_client", "request_with_retry", "UpstreamError", "UpstreamStatusError", "UpstreamUnavailable"]
