"""JSON logging for the teledesk service.

One JSON object per line on stdout. Call sites attach structured fields with
``extra={"context": {...}}``.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Optional

NOISY_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


class JSONFormatter(logging.Formatter):
    """Format log records as JSON, stamped with fixed service fields."""

    def __init__(self, static_fields: Optional[dict] = None):
        super().__init__()
        self.static_fields = static_fields or {}

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **self.static_fields,
        }

        if record.levelno >= logging.WARNING:
            log_data["source"] = f"{record.module}:{record.lineno}"

        context = getattr(record, "context", None)
        if context:
            log_data["context"] = context

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO", env: Optional[str] = None) -> None:
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    static_fields = {"service": "teledesk"}
    if env:
        static_fields["env"] = env

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter(static_fields))
    root_logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"teledesk.{name}")
