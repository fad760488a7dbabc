from __future__ import annotations

import hmac
import logging
import os
from collections.abc import Callable

from fastapi import Depends, Request

from taskrelay.core.config.settings import Settings
from taskrelay.core.errors import Unauthorized

from .deps import get_settings

logger = logging.getLogger(__name__)

AUTH_MODE_ENV = "TASKRELAY_AUTH_MODE"
AUTH_TOKEN_ENV = "TASKRELAY_AUTH_TOKEN"
AUTH_HEADER = "X-TASKRELAY-TOKEN"
WEBHOOK_SECRET_HEADER = "x-webhook-secret"


def get_auth_mode() -> str:
    return os.getenv(AUTH_MODE_ENV, "token").strip().casefold()


def is_auth_enabled() -> bool:
    return get_auth_mode() == "token"


def secrets_match(provided: str | None, expected: str | None) -> bool:
    if not provided or not expected:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


def webhook_secret_for(settings: Settings, secret_setting: str) -> str:
    specific = getattr(settings, secret_setting, "") if secret_setting else ""
    return specific or settings.webhook_secret


def require_webhook_secret(secret_setting: str = "webhook_secret") -> Callable[..., None]:
    def dependency(request: Request, settings: Settings = Depends(get_settings)) -> None:
        # Starlette header lookup is case-insensitive.
        provided = request.headers.get(WEBHOOK_SECRET_HEADER)
        if not secrets_match(provided, webhook_secret_for(settings, secret_setting)):
            logger.warning(
                "webhook_unauthorized",
                extra={"extra_fields": {"path": request.url.path, "header_present": provided is not None}},
            )
            raise Unauthorized()

    return dependency


def require_api_token(request: Request) -> None:
    if not is_auth_enabled():
        return
    if not secrets_match(request.headers.get(AUTH_HEADER), os.getenv(AUTH_TOKEN_ENV, "")):
        raise Unauthorized()
