"""
Structured Logging: one JSON object per line in production, short coloured lines locally.

Sync code tags its records with the transaction it is working on, e.g.
``logger.info("Order placed", extra={"trx_no": trx_no})`` or through a bound
logger from ``get_logger(__name__).bind(trx_no=trx_no)``.
"""
import logging
import sys
import json
from datetime import datetime, timezone
from typing import Any, Dict
from app.utils.config import settings

# Extra attributes copied into log lines when present on the record
CONTEXT_FIELDS = ("trx_no", "order_number", "job", "variant_id", "request_id", "duration_ms")

QUIET_LOGGERS = ("httpx", "httpcore", "apscheduler", "sqlalchemy.engine")


def record_context(record: logging.LogRecord) -> Dict[str, Any]:
    return {name: getattr(record, name) for name in CONTEXT_FIELDS if hasattr(record, name)}


class JSONFormatter(logging.Formatter):
    """Machine-parseable lines for the production log pipeline."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **record_context(record),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class ColoredFormatter(logging.Formatter):
    """Readable lines for a terminal; the transaction number leads the message."""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
    }
    RESET = "\033[0m"
    MAX_MESSAGE = 500

    def format(self, record: logging.LogRecord) -> str:
        context = record_context(record)
        trx_no = context.pop("trx_no", None)

        # POS request bodies can be long
        message = record.getMessage()
        if len(message) > self.MAX_MESSAGE:
            message = message[: self.MAX_MESSAGE - 3] + "..."
        if trx_no:
            message = f"[{trx_no}] {message}"
        if context:
            message += " " + " ".join(f"{key}={value}" for key, value in context.items())

        color = self.LEVEL_COLORS.get(record.levelno, "\033[35m")
        when = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        line = f"{color}{when} {record.levelname:<7} {record.name} | {message}{self.RESET}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging():
    """Install the environment's formatter on the root logger. Call once at startup."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter() if settings.ENVIRONMENT == "production" else ColoredFormatter())

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.LOG_LEVEL))
    root_logger.handlers = [handler]

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    root_logger.info(f"Logging configured: env={settings.ENVIRONMENT}, level={settings.LOG_LEVEL}")


class ContextLogger(logging.LoggerAdapter):
    """Adapter that stamps bound context (trx_no, job, ...) on every record."""

    def bind(self, **context) -> "ContextLogger":
        return ContextLogger(self.logger, {**self.extra, **context})

    def process(self, msg, kwargs):
        kwargs["extra"] = {**kwargs.get("extra", {}), **self.extra}
        return msg, kwargs


def get_logger(name: str) -> ContextLogger:
    return ContextLogger(logging.getLogger(name), {})
