import contextvars
import json
import logging
import os
import re
import sys
from datetime import UTC, datetime

# Request-scoped correlation id, set by the HTTP middleware in main.py
correlation_id_cv: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "correlation_id", default=None
)

EMAIL_REGEX = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")

# Shopify access tokens and other common API key shapes
API_KEY_REGEX = re.compile(
    r"\b(sk|pk|rk|shpat|shpca|shppa|shpss)_([a-zA-Z0-9]{20,})\b"
)
MASK_STRING = "[REDACTED]"

# Field names in `extra["props"]` to always mask the value of
SENSITIVE_FIELD_NAMES = {
    "password",
    "token",
    "api_key",
    "secret",
    "access_token",
    "client_secret",
    "code",
    "hmac",
    "session_token",
}


def _mask(value: str) -> str:
    masked = EMAIL_REGEX.sub(MASK_STRING, value)
    return API_KEY_REGEX.sub(lambda m: m.group(1) + "_" + MASK_STRING, masked)


class PIIMaskingFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.masked_message = _mask(record.getMessage())

        if hasattr(record, "props") and isinstance(record.props, dict):
            masked_props = {}
            for key, value in record.props.items():
                if key.lower() in SENSITIVE_FIELD_NAMES and value is not None:
                    masked_props[key] = MASK_STRING
                elif isinstance(value, str):
                    masked_props[key] = _mask(value)
                else:
                    masked_props[key] = value
            # Copy so the caller's dict is left untouched
            record.props = masked_props
        return True


class CorrelationIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id_cv.get()
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "message": getattr(record, "masked_message", record.getMessage()),
            "logger_name": record.name,
            "func_name": record.funcName,
            "line_no": record.lineno,
        }
        correlation_id = getattr(record, "correlation_id", None)
        if correlation_id:
            log_entry["correlation_id"] = correlation_id
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        if hasattr(record, "props") and isinstance(record.props, dict):
            log_entry.update(record.props)
        return json.dumps(log_entry, default=str)


def setup_logging():
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    numeric_level = getattr(logging, log_level, None)
    if not isinstance(numeric_level, int):
        raise ValueError(f"Invalid log level: {log_level}")

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(JsonFormatter())
    console_handler.addFilter(CorrelationIdFilter())
    console_handler.addFilter(PIIMaskingFilter())
    root_logger.addHandler(console_handler)

    # Suppress verbose logging from libraries
    logging.getLogger("uvicorn.error").propagate = False
    logging.getLogger("uvicorn.access").propagate = False
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("alembic").setLevel(logging.INFO)

    # Structured fields go through extra props:
    # logger.info("Charge created", extra={"props": {"shop": shop, "charge_id": 1}})
