from __future__ import annotations

import json
import logging
import traceback
from datetime import datetime, timezone

from .context import get_log_context
from .redact import redact_mapping, redact_string

SERVICE_NAME = "taskrelay"


def _timestamp(record: logging.LogRecord) -> str:
    moment = datetime.fromtimestamp(record.created, tz=timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class JSONFormatter(logging.Formatter):
    """One JSON object per line with the active request/task context merged in."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, object] = {
            "ts": _timestamp(record),
            "level": record.levelname,
            "service": SERVICE_NAME,
            "logger": record.name,
            "msg": redact_string(record.getMessage()),
        }
        payload.update(get_log_context())

        extra_fields = getattr(record, "extra_fields", None)
        if isinstance(extra_fields, dict):
            payload.update(redact_mapping(extra_fields))

        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc_value, exc_tb = record.exc_info
            payload["error"] = {
                "type": exc_type.__name__,
                "message": redact_string(str(exc_value)),
                "stack": "".join(traceback.format_exception(exc_type, exc_value, exc_tb)),
            }

        return json.dumps(payload, separators=(",", ":"), ensure_ascii=False, default=str)
