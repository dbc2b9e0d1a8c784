"""
Logging setup for the Lockpick server.

Two output styles share one set of context fields:
- production: one JSON object per line
- everything else: short coloured lines for a terminal

Context comes from two places. The WebSocket loop sets ``connection_id_var``
and handlers set ``room_code_var`` once a connection is in a room, so every
log line written while serving that socket is tagged. Code that knows more
(a player_id, or a room other than the current one) passes it through
``get_logger(__name__).with_context(...)``.
"""

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Optional, TextIO

connection_id_var: ContextVar[Optional[str]] = ContextVar("connection_id", default=None)
room_code_var: ContextVar[Optional[str]] = ContextVar("room_code", default=None)

CONTEXT_FIELDS = ("connection_id", "room_code", "player_id")

# Third-party loggers that are too chatty at INFO
QUIET_LOGGERS = ("uvicorn.access", "uvicorn.error", "websockets", "asyncio")


def record_context(record: logging.LogRecord) -> dict:
    """
    Collect context fields for a record.

    Values passed explicitly on the record win over the context variables.
    Empty values are left out.
    """
    fallbacks = {
        "connection_id": connection_id_var.get(),
        "room_code": room_code_var.get(),
    }
    context = {}
    for name in CONTEXT_FIELDS:
        value = getattr(record, name, None) or fallbacks.get(name)
        if value:
            context[name] = value
    return context


class JSONFormatter(logging.Formatter):
    """One JSON document per record, for log shipping."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **record_context(record),
        }

        if record.levelno >= logging.ERROR:
            entry["source"] = f"{record.pathname}:{record.lineno} in {record.funcName}"
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


class DevelopmentFormatter(logging.Formatter):
    """Compact coloured output with abbreviated connection ids."""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, "")
        level = f"{color}{record.levelname:8}{self.RESET if color else ''}"

        context = record_context(record)
        if "connection_id" in context:
            context["connection_id"] = context["connection_id"][:8]
        tags = " ".join(f"{key}={value}" for key, value in context.items())

        line = f"{datetime.now():%H:%M:%S.%f}"[:-3]
        line += f" {level} {record.name}"
        if tags:
            line += f" [{tags}]"
        line += f" - {record.getMessage()}"

        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def setup_logging(
    level: str = "INFO",
    environment: str = "development",
    stream: Optional[TextIO] = None,
) -> None:
    """
    Install a single root handler.

    Args:
        level: Log level name; unknown names fall back to INFO.
        environment: "production" selects JSON output.
        stream: Destination, stdout by default.
    """
    handler = logging.StreamHandler(stream or sys.stdout)
    formatter = JSONFormatter() if environment == "production" else DevelopmentFormatter()
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(f"Logging configured: level={level}, environment={environment}")


class ContextLogger(logging.LoggerAdapter):
    """
    LoggerAdapter carrying fixed context fields.

    Usage:
        logger = get_logger(__name__)
        logger.with_context(room_code="ABC123", player_id=pid).info("Player joined")
    """

    def __init__(self, logger: logging.Logger, extra: Optional[dict] = None):
        super().__init__(logger, extra or {})

    def with_context(self, **fields) -> "ContextLogger":
        """Return a copy with ``fields`` added to the context."""
        return ContextLogger(self.logger, {**self.extra, **fields})

    def process(self, msg, kwargs):
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def get_logger(name: str) -> ContextLogger:
    return ContextLogger(logging.getLogger(name))
