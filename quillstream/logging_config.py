"""Structured logging configuration.

JSON or text output with a per-request correlation ID stamped on every
record. Call sites use ``get_logger(__name__)`` and pass structured fields
as keyword arguments; credential-like fields are masked before output.
"""

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any

# Correlation ID for the request being served
correlation_id_ctx: ContextVar[str | None] = ContextVar("correlation_id", default=None)

_NOISY_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "httpx", "httpcore")
_MASKED_FIELDS = frozenset({"api_key", "authorization", "token", "secret", "password"})
_MASK = "***"


def _fields_of(record: logging.LogRecord) -> dict[str, Any]:
    fields = getattr(record, "extra_fields", None) or {}
    return {
        key: _MASK if key.lower() in _MASKED_FIELDS else value
        for key, value in fields.items()
    }


class JsonFormatter(logging.Formatter):
    """One JSON object per line.

    Keys: timestamp, level, service, message, logger, correlation_id (when
    set), the structured fields, exception text, and source location for
    ERROR and above.
    """

    def __init__(self, service_name: str = "quillstream-api"):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "service": self.service_name,
            "message": record.getMessage(),
            "logger": record.name,
        }

        correlation_id = correlation_id_ctx.get()
        if correlation_id:
            log_data["correlation_id"] = correlation_id

        log_data.update(_fields_of(record))

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if record.levelno >= logging.ERROR:
            log_data["location"] = {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            }

        # Model output can contain any script; keep it readable
        return json.dumps(log_data, default=str, ensure_ascii=False)


class TextFormatter(logging.Formatter):
    """Human-readable lines for local development, fields as ``key=value``."""

    def __init__(self, service_name: str = "quillstream-api"):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
        line = (
            f"{timestamp} - {self.service_name} - {record.levelname} - "
            f"[{correlation_id_ctx.get() or '-'}] - {record.getMessage()}"
        )

        fields = _fields_of(record)
        if fields:
            line += " | " + " ".join(f"{key}={value}" for key, value in fields.items())

        if record.exc_info:
            line += f"\n{self.formatException(record.exc_info)}"
        return line


def setup_logging(
    log_format: str = "json",
    log_level: str = "INFO",
    service_name: str = "quillstream-api",
) -> None:
    """Install a single stdout handler on the root logger.

    Args:
        log_format: 'json' for structured logging, 'text' for human-readable
        log_level: Logging level name
        service_name: Service name to include in logs
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    formatter: logging.Formatter
    if log_format.lower() == "json":
        formatter = JsonFormatter(service_name=service_name)
    else:
        formatter = TextFormatter(service_name=service_name)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


class StructuredLogger:
    """Logger wrapper taking structured fields as keyword arguments."""

    def __init__(self, name: str):
        self._logger = logging.getLogger(name)

    def _log(
        self, level: int, msg: str, fields: dict[str, Any], exc_info: bool = False
    ) -> None:
        extra = {"extra_fields": fields} if fields else {}
        self._logger.log(level, msg, exc_info=exc_info, extra=extra, stacklevel=3)

    def debug(self, msg: str, **fields: Any) -> None:
        self._log(logging.DEBUG, msg, fields)

    def info(self, msg: str, **fields: Any) -> None:
        self._log(logging.INFO, msg, fields)

    def warning(self, msg: str, **fields: Any) -> None:
        self._log(logging.WARNING, msg, fields)

    def error(self, msg: str, **fields: Any) -> None:
        self._log(logging.ERROR, msg, fields)

    def exception(self, msg: str, **fields: Any) -> None:
        """ERROR with the active exception's traceback."""
        self._log(logging.ERROR, msg, fields, exc_info=True)


def get_logger(name: str) -> StructuredLogger:
    return StructuredLogger(name)
