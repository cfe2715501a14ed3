"""
Structured logging configuration with correlation IDs.
"""

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime
from typing import Any, Dict, Iterator, Optional
from uuid import uuid4

from backend.src.core.config import settings

# Context variable for request correlation ID
request_id_ctx: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

# Attributes every LogRecord carries; anything else arrived through ``extra=``
_RESERVED_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__.keys()
) | {"message", "asctime", "extra"}


class StructuredFormatter(logging.Formatter):
    """Custom formatter for structured logging in JSON format."""

    def format(self, record: logging.LogRecord) -> str:
        """
        Format log record as structured JSON.

        Args:
            record: Log record to format

        Returns:
            JSON-formatted log string
        """
        log_data: Dict[str, Any] = {
            "timestamp": datetime.utcnow().isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        # Add correlation ID if available
        request_id = request_id_ctx.get()
        if request_id:
            log_data["request_id"] = request_id

        # Add exception info if present
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Context passed via logger.x(..., extra={...})
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                log_data[key] = value

        # Add standard fields
        log_data.update(
            {
                "module": record.module,
                "function": record.funcName,
                "line": record.lineno,
            }
        )

        if settings.LOG_FORMAT == "json":
            return json.dumps(log_data, default=str, ensure_ascii=False)
        else:
            # Text format for development
            request_id_str = f" [{request_id}]" if request_id else ""
            return (
                f"{log_data['timestamp']} - {record.levelname:8} - "
                f"{record.name}{request_id_str} - {record.getMessage()}"
            )


def setup_logging() -> None:
    """Configure application logging."""
    # Remove existing handlers
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    # Create console handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(StructuredFormatter())

    # Configure root logger
    root_logger.addHandler(console_handler)
    root_logger.setLevel(getattr(logging, settings.LOG_LEVEL))

    # Reduce noise from third-party libraries
    logging.getLogger("uvicorn").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance with the given name.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured logger instance
    """
    return logging.getLogger(name)


def set_request_id(request_id: Optional[str] = None) -> str:
    """
    Set correlation ID for current request context.

    Args:
        request_id: Request ID to set, or None to generate new one

    Returns:
        The request ID that was set
    """
    if request_id is None:
        request_id = str(uuid4())
    request_id_ctx.set(request_id)
    return request_id


def clear_request_id() -> None:
    """Clear correlation ID from current request context."""
    request_id_ctx.set(None)


@contextmanager
def job_context(prefix: str) -> Iterator[str]:
    """
    Correlation ID for work started by the scheduler instead of a request.

    Args:
        prefix: Job kind, e.g. ``crawl-women`` or ``monitor-12``

    Yields:
        The correlation ID attached to every log line inside the block
    """
    token = request_id_ctx.set(f"{prefix}-{uuid4().hex[:12]}")
    try:
        yield request_id_ctx.get()
    finally:
        request_id_ctx.reset(token)


# Initialize logging on module import
setup_logging()
