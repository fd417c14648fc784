"""Logging configuration and PII redaction for webhook payloads."""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

REDACTED = "***"

# Payload keys whose values identify a person
_PII_KEYS = {"name", "phone", "line1", "line2", "postal_code"}


def setup_logging(level: str = "INFO", format_type: str = "standard") -> None:
    """Configure the root logger with a standard or JSON formatter."""
    log_level = getattr(logging, level.upper(), logging.INFO)

    if format_type == "json":
        formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(
            fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers[:] = [handler]
    root_logger.setLevel(log_level)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data, default=str)


def redact_email(email: str | None) -> str:
    """Mask the local part of an email address, keeping only the domain."""
    if not email:
        return ""
    if "@" not in email:
        return REDACTED
    return REDACTED + "@" + email.split("@", 1)[1]


def _is_email_key(key) -> bool:
    return isinstance(key, str) and (key == "email" or key.endswith("_email"))


def redact_payload(value: Any) -> Any:
    """Return a copy of a JSON-like payload with customer PII masked."""
    if isinstance(value, dict):
        redacted = {}
        for key, item in value.items():
            if _is_email_key(key) and isinstance(item, str):
                redacted[key] = redact_email(item)
            elif key in _PII_KEYS and item is not None:
                redacted[key] = REDACTED
            else:
                redacted[key] = redact_payload(item)
        return redacted
    if isinstance(value, list):
        return [redact_payload(item) for item in value]
    return value
