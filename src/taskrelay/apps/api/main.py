from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from uuid import uuid4

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from taskrelay.core.config.settings import load_settings
from taskrelay.core.errors import TaskRelayError
from taskrelay.core.logging import configure_logging
from taskrelay.core.logging.context import log_context

from .auth import get_auth_mode
from . import deps
from .routes_ask import router as ask_router
from .routes_webhooks import router as webhooks_router

logger = logging.getLogger("taskrelay.api")


def _state_dir_writable(state_dir: Path) -> bool:
    try:
        state_dir.mkdir(parents=True, exist_ok=True)
        probe = state_dir / ".write-check"
        probe.write_text("ok", encoding="utf-8")
        probe.unlink(missing_ok=True)
        return True
    except OSError:
        return False


app = FastAPI(title="TaskRelay API")
configure_logging(load_settings().state_dir)

app.include_router(webhooks_router, prefix="/webhooks", tags=["webhooks"])
app.include_router(ask_router, prefix="/ask", tags=["ask"])


@app.middleware("http")
async def request_context_middleware(request, call_next):
    correlation_id = request.headers.get("X-Correlation-ID") or str(uuid4())
    with log_context(correlation_id=correlation_id):
        response = await call_next(request)
    response.headers["X-Correlation-ID"] = correlation_id
    return response


@app.exception_handler(TaskRelayError)
async def taskrelay_error_handler(request: Request, exc: TaskRelayError) -> JSONResponse:
    level = logging.WARNING if exc.status_code < 500 else logging.ERROR
    logger.log(
        level,
        "request_failed",
        extra={
            "extra_fields": {
                "path": request.url.path,
                "status_code": exc.status_code,
                "error_type": type(exc).__name__,
                "error": str(exc),
            }
        },
    )
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc)})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "request_crashed",
        exc_info=exc,
        extra={"extra_fields": {"path": request.url.path, "error_type": type(exc).__name__}},
    )
    return JSONResponse(status_code=500, content={"error": str(exc)})


@app.get("/healthz")
def healthz() -> dict[str, bool]:
    return {"ok": True}


@app.get("/healthz/full")
def healthz_full() -> dict[str, object]:
    settings = deps.get_settings()
    auth_mode = get_auth_mode()
    state_writable = _state_dir_writable(settings.state_dir)
    payload: dict[str, object] = {
        "ok": True,
        "python": {"version": sys.version.split()[0]},
        "state_dir": {"path": str(settings.state_dir), "writable": state_writable},
        "auth": {"mode": auth_mode, "enabled": auth_mode == "token"},
        "workspace": {"configured": bool(settings.notion_api_key), "version": settings.notion_version},
        "webhooks": {
            "secret_configured": bool(settings.webhook_secret),
            "image_secret_configured": bool(settings.image_webhook_secret or settings.webhook_secret),
        },
        "llm": {
            "providers": deps.get_provider_registry().names(),
            "chain": [settings.primary_model, settings.fallback_model],
        },
        "image_jobs": {"configured": bool(settings.kie_api_key), "model": settings.kie_model},
        "system_context": {"page_id": settings.system_context_page_id or None, "ttl_s": settings.system_context_ttl_s},
    }

    if not settings.notion_api_key or not settings.webhook_secret:
        payload["ok"] = False
    if auth_mode == "token" and not os.getenv("TASKRELAY_AUTH_TOKEN"):
        payload["ok"] = False
    if not state_writable:
        payload["ok"] = False

    return payload


def run() -> None:
    uvicorn.run(
        "taskrelay.apps.api.main:app",
        host=os.getenv("TASKRELAY_HOST", "127.0.0.1"),
        port=int(os.getenv("TASKRELAY_PORT", "8000")),
    )
