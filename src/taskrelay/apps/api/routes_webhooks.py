from __future__ import annotations

import json
import logging
from typing import Any

from fastapi import APIRouter, Depends, Request
from starlette.concurrency import run_in_threadpool

from taskrelay.core.errors import InvalidPayload
from taskrelay.core.logging.redact import redact_string
from taskrelay.core.orchestration.ingress import extract_task_id

from . import deps
from .auth import require_webhook_secret

logger = logging.getLogger(__name__)

router = APIRouter()

_PAYLOAD_LOG_CHARS = 2000


async def _read_payload(request: Request) -> Any:
    try:
        return await request.json()
    except ValueError as exc:
        raise InvalidPayload("Body must be valid JSON") from exc


def _log_payload(profile: str, payload: Any) -> None:
    rendered = redact_string(json.dumps(payload, default=str))[:_PAYLOAD_LOG_CHARS]
    logger.info("webhook_received", extra={"extra_fields": {"profile": profile, "payload": rendered}})


@router.post("/kimi", dependencies=[Depends(require_webhook_secret("webhook_secret"))])
async def kimi_webhook(request: Request) -> dict[str, object]:
    payload = await _read_payload(request)
    _log_payload("kimi", payload)
    task_id = extract_task_id(payload)
    outcome = await run_in_threadpool(deps.build_text_pipeline("kimi").run, task_id)
    return outcome.to_response()


@router.post("/agent", dependencies=[Depends(require_webhook_secret("webhook_secret"))])
async def agent_webhook(request: Request) -> dict[str, object]:
    payload = await _read_payload(request)
    _log_payload("agent", payload)
    task_id = extract_task_id(payload)
    outcome = await run_in_threadpool(deps.build_text_pipeline("agent").run, task_id)
    return outcome.to_response()


@router.post("/image-gen", dependencies=[Depends(require_webhook_secret("image_webhook_secret"))])
async def image_webhook(request: Request) -> dict[str, object]:
    payload = await _read_payload(request)
    _log_payload("image", payload)
    task_id = extract_task_id(payload)
    outcome = await run_in_threadpool(deps.build_image_pipeline().run, task_id)
    return outcome.to_response()
