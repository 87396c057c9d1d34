import json
import logging
import logging.config
import os
from datetime import datetime, timezone

_REQUEST_KEYS = ("request_id", "path", "method", "status", "duration_ms")

# Stringified before encoding.
_ENTITY_KEYS = (
    "integration_id",
    "order_id",
    "verification_id",
    "webhook_id",
    "shop_domain",
)

# Client libraries that log every outbound call at INFO.
_NOISY_LOGGERS = ("httpx", "httpcore")


def _context(record: logging.LogRecord) -> dict:
    context = {}
    for key in _REQUEST_KEYS:
        value = getattr(record, key, None)
        if value is not None:
            context[key] = value
    for key in _ENTITY_KEYS:
        value = getattr(record, key, None)
        if value is not None:
            context[key] = str(value)
    return context


class JsonLogFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_context(record),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def configure_logging(level: str | None = None) -> None:
    root_level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"json": {"()": JsonLogFormatter}},
            "handlers": {
                "stdout": {
                    "class": "logging.StreamHandler",
                    "formatter": "json",
                    "stream": "ext://sys.stdout",
                }
            },
            "loggers": {name: {"level": "WARNING"} for name in _NOISY_LOGGERS},
            "root": {"handlers": ["stdout"], "level": root_level},
        }
    )
