import logging
import os
from collections import deque
from logging.handlers import TimedRotatingFileHandler
from typing import List

import structlog
from storefront.core.config import settings

AUDIT_CHANNELS = ("login", "orders", "payments", "deliveries", "admin", "errors")
AUDIT_RETENTION_DAYS = {"errors": 60}
DEFAULT_AUDIT_RETENTION_DAYS = 30


def _audit_log_path(channel: str) -> str:
    return os.path.join(settings.LOG_DIR, f"{channel}.log")


def _configure_audit_files() -> None:
    """Attach a daily-rotating file to every audit channel when LOG_DIR is set."""
    if not settings.LOG_DIR:
        return

    os.makedirs(settings.LOG_DIR, exist_ok=True)
    for channel in AUDIT_CHANNELS:
        std_logger = logging.getLogger(f"audit.{channel}")
        path = _audit_log_path(channel)
        if any(getattr(h, "baseFilename", None) == os.path.abspath(path) for h in std_logger.handlers):
            continue
        handler = TimedRotatingFileHandler(
            path,
            when="midnight",
            backupCount=AUDIT_RETENTION_DAYS.get(channel, DEFAULT_AUDIT_RETENTION_DAYS),
            encoding="utf-8",
        )
        handler.setFormatter(logging.Formatter("%(message)s"))
        std_logger.addHandler(handler)


def configure_logging():
    """Configure structured logging"""

    # Console renderer for development
    renderer = structlog.dev.ConsoleRenderer() if settings.DEBUG else structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Standard logging config
    logging.basicConfig(
        format="%(message)s",
        level=logging.DEBUG if settings.DEBUG else getattr(logging, settings.LOG_LEVEL, logging.INFO),
    )
    _configure_audit_files()


def get_audit_logger(channel: str):
    if channel not in AUDIT_CHANNELS:
        raise ValueError(f"Unknown audit channel: {channel}")
    return structlog.get_logger(f"audit.{channel}")


def read_recent_log_lines(channel: str, lines: int = 100) -> List[str]:
    """Return the last `lines` entries of an audit channel's current file."""
    if channel not in AUDIT_CHANNELS or not settings.LOG_DIR:
        return []

    path = _audit_log_path(channel)
    if not os.path.exists(path):
        return []

    with open(path, encoding="utf-8") as handle:
        tail = deque((line.rstrip("\n") for line in handle if line.strip()), maxlen=lines)
    return list(tail)
