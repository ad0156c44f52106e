"""Logging setup for AgentBridge.

Two output formats:
  json  one object per line, ``extra=`` fields merged in (for log shipping)
  text  rich-rendered lines for an interactive ``agentbridge run``

Logs go to stderr so the CLI's own console output on stdout stays clean.
Values of token-bearing keys passed through ``extra=`` are masked.
"""

import json
import logging
from typing import Any

from rich.console import Console
from rich.logging import RichHandler

_RESERVED_ATTRS = frozenset(vars(logging.makeLogRecord({})).keys()) | {"message", "asctime"}

_SECRET_KEYS = frozenset(("auth_token", "authToken", "token", "x-claude-code-ide-authorization"))

# Loggers that would otherwise echo every bridge connection
_NOISY_LOGGERS = ("uvicorn", "uvicorn.access", "uvicorn.error", "websockets", "httpx", "httpcore", "asyncio")


def _mask(key: str, value: Any) -> Any:
    if key in _SECRET_KEYS and value:
        return "***"
    return value


class JSONFormatter(logging.Formatter):
    """Formats each record as one JSON object, merging ``extra=`` fields."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_data[key] = _mask(key, value)

        return json.dumps(log_data, default=str)


def setup_logging(level: str = "INFO", format_type: str = "json") -> None:
    """Configure the root logger for AgentBridge.

    Args:
        level: Log level name; unknown names fall back to INFO.
        format_type: "json" for structured output, anything else for rich text.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    root_logger.handlers.clear()

    handler: logging.Handler
    if format_type == "json":
        handler = logging.StreamHandler()
        handler.setFormatter(JSONFormatter())
    else:
        handler = RichHandler(
            console=Console(stderr=True),
            show_path=False,
            rich_tracebacks=True,
            log_time_format="%H:%M:%S",
        )
        handler.setFormatter(logging.Formatter("%(name)s | %(message)s"))

    root_logger.addHandler(handler)

    for logger_name in _NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Return the logger for ``name`` (usually ``__name__``)."""
    return logging.getLogger(name)
