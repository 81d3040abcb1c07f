"""
Structured logging configuration.

JSON in production, plain text otherwise. Structured context is passed as
``extra={"extra_fields": {...}}``; any field that could carry a session
credential (access/refresh tokens, cookies, Authorization headers, API keys)
is redacted before it is written.
"""
import logging
import sys
import json
from datetime import datetime, timezone
from typing import Any, Dict, Mapping
from core.config import settings

REDACTED = "[redacted]"
SENSITIVE_FIELD_MARKERS = ("token", "cookie", "authorization", "secret", "api_key", "password")


def is_sensitive_field(name: str) -> bool:
    lowered = name.lower()
    return any(marker in lowered for marker in SENSITIVE_FIELD_MARKERS)


def redact_fields(fields: Mapping[str, Any]) -> Dict[str, Any]:
    return {key: REDACTED if is_sensitive_field(key) else value for key, value in fields.items()}


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "environment": settings.ENVIRONMENT,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        extra_fields = getattr(record, "extra_fields", None)
        if isinstance(extra_fields, Mapping):
            log_data.update(redact_fields(extra_fields))

        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """Development format; structured context is appended as key=value."""

    def __init__(self):
        super().__init__("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        extra_fields = getattr(record, "extra_fields", None)
        if isinstance(extra_fields, Mapping) and extra_fields:
            context = " ".join(f"{k}={v}" for k, v in redact_fields(extra_fields).items())
            line = f"{line} [{context}]"
        return line


def setup_logging():
    """
    Configure application-wide logging.

    Uses JSON format in production, text format in development.
    """
    log_level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    if settings.LOG_FORMAT == "json" or settings.is_production:
        formatter = JSONFormatter()
    else:
        formatter = TextFormatter()

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # Quiet the libraries that log every statement or HTTP call
    for name in ("sqlalchemy.engine", "urllib3", "httpx", "anthropic"):
        logging.getLogger(name).setLevel(logging.WARNING)

    return root_logger
