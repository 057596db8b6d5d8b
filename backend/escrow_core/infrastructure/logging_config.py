"""
Structured logging configuration
"""

import logging
import sys
from typing import Any, Dict, Optional
import json
from datetime import datetime, timezone
from contextvars import ContextVar

# Context variable for trace_id (per-request or per-sweep)
trace_id_context: ContextVar[Optional[str]] = ContextVar("trace_id", default=None)

_RESERVED_ATTRS = frozenset((
    "name",
    "msg",
    "args",
    "created",
    "filename",
    "funcName",
    "levelname",
    "levelno",
    "lineno",
    "module",
    "msecs",
    "message",
    "pathname",
    "process",
    "processName",
    "relativeCreated",
    "thread",
    "threadName",
    "taskName",
    "exc_info",
    "exc_text",
    "stack_info",
    "trace_id",
))


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logs"""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        trace_id = trace_id_context.get()
        if trace_id:
            log_data["trace_id"] = trace_id
        elif hasattr(record, "trace_id"):
            log_data["trace_id"] = record.trace_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Extra fields passed via logger.x(..., extra={...})
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_data[key] = value

        return json.dumps(log_data, default=str)


def setup_logging(log_level: str = "INFO") -> None:
    """Setup structured logging"""
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    # Avoid stacking handlers when the app module is imported more than once
    for existing in root_logger.handlers:
        if isinstance(existing.formatter, JSONFormatter):
            return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter())
    root_logger.addHandler(handler)
