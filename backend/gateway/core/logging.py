"""Structured logging configuration for the completion gateway."""

import json
import logging
import sys
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any, Dict, Optional

from gateway.core.redaction import redact_data, sanitize_error_message

# Context variables for request-scoped data
request_id_ctx: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
user_id_ctx: ContextVar[Optional[str]] = ContextVar("user_id", default=None)
stream_id_ctx: ContextVar[Optional[str]] = ContextVar("stream_id", default=None)


class SecretRedactionFilter(logging.Filter):
    """Mask credential-shaped substrings before a record is formatted."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = sanitize_error_message(record.getMessage())
        record.args = None
        data = getattr(record, "data", None)
        if data:
            record.data = redact_data(data)
        return True


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_id = request_id_ctx.get()
        if request_id:
            log_data["request_id"] = request_id
        user_id = user_id_ctx.get()
        if user_id:
            log_data["user_id"] = user_id
        stream_id = stream_id_ctx.get()
        if stream_id:
            log_data["stream_id"] = stream_id

        # Add extra data if provided
        if hasattr(record, "data") and record.data:
            log_data["data"] = record.data

        # Add exception info
        if record.exc_info:
            log_data["exception"] = sanitize_error_message(
                self.formatException(record.exc_info)
            )

        return json.dumps(log_data, default=str)


class ConsoleFormatter(logging.Formatter):
    """Human-readable formatter for console output."""

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",   # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        """Format log record for console."""
        color = self.COLORS.get(record.levelname, "")
        timestamp = datetime.now(UTC).strftime("%Y-%m-%d %H:%M:%S")

        request_id = (request_id_ctx.get() or "-")[:8]

        message = f"{timestamp} | {color}{record.levelname:8}{self.RESET} | {request_id} | {record.name} | {record.getMessage()}"

        if hasattr(record, "data") and record.data:
            message += f" | {record.data}"

        if record.exc_info:
            message += f"\n{sanitize_error_message(self.formatException(record.exc_info))}"

        return message


class ContextLogger(logging.LoggerAdapter):
    """Logger adapter that accepts a ``data`` payload for structured output."""

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        """Process log message with context."""
        extra = kwargs.get("extra", {})
        if "data" in kwargs:
            extra["data"] = kwargs.pop("data")
        kwargs["extra"] = extra
        return msg, kwargs


_loggers: Dict[str, ContextLogger] = {}


def get_logger(name: str) -> ContextLogger:
    """Get a context-aware logger."""
    if name not in _loggers:
        logger = logging.getLogger(name)
        _loggers[name] = ContextLogger(logger, {})
    return _loggers[name]


def setup_logging(
    level: str = "INFO",
    json_output: bool = False,
    log_file: Optional[str] = None,
) -> None:
    """Configure application logging."""
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    # Remove existing handlers
    root_logger.handlers.clear()

    redaction = SecretRedactionFilter()

    # Console handler
    console_handler = logging.StreamHandler(sys.stdout)
    if json_output:
        console_handler.setFormatter(StructuredFormatter())
    else:
        console_handler.setFormatter(ConsoleFormatter())
    console_handler.addFilter(redaction)
    root_logger.addHandler(console_handler)

    # File handler (always JSON)
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(StructuredFormatter())
        file_handler.addFilter(redaction)
        root_logger.addHandler(file_handler)

    # Quiet noisy loggers
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
