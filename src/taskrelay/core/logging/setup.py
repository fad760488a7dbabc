from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass
from logging.handlers import RotatingFileHandler
from pathlib import Path

from .json_formatter import SERVICE_NAME, JSONFormatter

_MARKER = "_taskrelay_handler"
_NOISY_LOGGERS = ("httpx", "httpcore")


@dataclass(frozen=True)
class LoggingOptions:
    level: int
    to_file: bool
    log_path: Path
    max_bytes: int
    backup_count: int

    @classmethod
    def from_env(cls, state_dir: Path) -> "LoggingOptions":
        level_name = os.getenv("TASKRELAY_LOG_LEVEL", "INFO").strip().upper()
        log_dir = Path(os.getenv("TASKRELAY_LOG_DIR") or (state_dir / "logs"))
        return cls(
            level=getattr(logging, level_name, logging.INFO),
            to_file=os.getenv("TASKRELAY_LOG_TO_FILE", "off").strip().casefold() == "on",
            log_path=log_dir / f"{SERVICE_NAME}.log",
            max_bytes=int(os.getenv("TASKRELAY_LOG_MAX_BYTES", "5000000")),
            backup_count=int(os.getenv("TASKRELAY_LOG_BACKUP_COUNT", "5")),
        )


def _marked(logger: logging.Logger) -> list[logging.Handler]:
    return [handler for handler in logger.handlers if getattr(handler, _MARKER, False)]


def _attach(logger: logging.Logger, handler: logging.Handler) -> None:
    handler.setFormatter(JSONFormatter())
    setattr(handler, _MARKER, True)
    logger.addHandler(handler)


def configure_logging(state_dir: Path) -> logging.Logger:
    """Install JSON handlers on the service logger. Safe to call repeatedly."""
    options = LoggingOptions.from_env(state_dir)
    logger = logging.getLogger(SERVICE_NAME)
    logger.setLevel(options.level)
    logger.propagate = False

    existing = _marked(logger)
    if not any(not isinstance(handler, RotatingFileHandler) for handler in existing):
        _attach(logger, logging.StreamHandler(stream=sys.stdout))

    if options.to_file:
        has_file = any(
            isinstance(handler, RotatingFileHandler) and Path(handler.baseFilename) == options.log_path
            for handler in existing
        )
        if not has_file:
            options.log_path.parent.mkdir(parents=True, exist_ok=True)
            _attach(
                logger,
                RotatingFileHandler(
                    filename=options.log_path,
                    maxBytes=options.max_bytes,
                    backupCount=options.backup_count,
                    encoding="utf-8",
                ),
            )

    # Transport loggers stay at WARNING or quieter.
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(options.level, logging.WARNING))

    return logger
