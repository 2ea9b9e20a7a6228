"""Core logging configuration with structured JSON support."""

import json
import logging
import sys
import traceback
from datetime import datetime, timezone
from typing import Any

from .config import settings

# Extra fields that may carry credential material; never emitted verbatim.
SENSITIVE_EXTRA_KEYS = frozenset(
    {
        "challenge",
        "public_key",
        "signature",
        "client_data",
        "attestation_object",
        "authenticator_data",
        "token",
        "payload",
    }
)

MASK = "***MASKED***"


def _mask_extra(key: str, value: Any) -> Any:
    if key.lower() in SENSITIVE_EXTRA_KEYS:
        return MASK
    return value


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging.

    Emits one JSON object per record so log aggregation can filter on
    ``kind`` (ceremony failure reason), ``principal_id`` and friends.
    """

    # LogRecord attributes that never belong in "extra"
    _reserved_attrs = frozenset(
        {
            "args",
            "asctime",
            "created",
            "exc_info",
            "exc_text",
            "filename",
            "funcName",
            "levelname",
            "levelno",
            "lineno",
            "module",
            "msecs",
            "message",
            "msg",
            "name",
            "pathname",
            "process",
            "processName",
            "relativeCreated",
            "stack_info",
            "thread",
            "threadName",
            "taskName",
        }
    )

    def __init__(self, include_extra: bool = True) -> None:
        """Initialize JSON formatter.

        Args:
            include_extra: Whether to include ``extra`` fields in the output.
        """
        super().__init__()
        self.include_extra = include_extra

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": traceback.format_exception(*record.exc_info),
            }

        if record.stack_info:
            log_entry["stack_info"] = record.stack_info

        if self.include_extra:
            extra = self.extract_extra(record)
            if extra:
                log_entry["extra"] = extra

        return json.dumps(log_entry, default=str)

    def extract_extra(self, record: logging.LogRecord) -> dict[str, Any]:
        """Collect user-supplied ``extra`` fields, masking credential material.

        Args:
            record: The log record being formatted.

        Returns:
            JSON-serializable extra fields.
        """
        extra = {}
        for key, value in record.__dict__.items():
            if key in self._reserved_attrs or key.startswith("_"):
                continue
            value = _mask_extra(key, value)
            try:
                json.dumps(value)
                extra[key] = value
            except (TypeError, ValueError):
                extra[key] = str(value)
        return extra


class ConsoleFormatter(logging.Formatter):
    """Human-readable console formatter with colors for development."""

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, self.RESET)
        timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc).strftime(
            "%Y-%m-%d %H:%M:%S"
        )

        formatted = (
            f"{timestamp} - {color}{record.levelname:8}{self.RESET} - "
            f"{record.name} - {record.getMessage()}"
        )

        # Ceremony failures carry a kind; show it without switching to JSON
        kind = getattr(record, "kind", None)
        if kind:
            formatted += f" [kind={kind}]"

        if record.exc_info:
            formatted += "\n" + "".join(traceback.format_exception(*record.exc_info))

        return formatted


def setup_logging() -> None:
    """Setup application logging with environment-appropriate formatting.

    Production (ENVIRONMENT=production) logs JSON; development logs colored
    console lines. LOG_FORMAT=json|console overrides the choice.
    """
    log_level = getattr(logging, settings.log_level.upper())
    log_format = settings.log_format

    if log_format == "json":
        formatter: logging.Formatter = JSONFormatter()
    elif log_format == "console":
        formatter = ConsoleFormatter()
    elif settings.environment.lower() == "production":
        formatter = JSONFormatter()
    else:
        formatter = ConsoleFormatter()

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    handler.setLevel(log_level)
    root_logger.addHandler(handler)

    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("celery").setLevel(logging.INFO)


def get_logger(name: str) -> logging.Logger:
    """Get logger instance with the given name.

    Args:
        name: Logger name (typically ``__name__``).

    Returns:
        Configured logger instance.

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.warning("Ceremony failed", extra={"kind": "origin_mismatch"})
    """
    return logging.getLogger(name)


class LoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that adds ceremony context to all log messages.

    Example:
        >>> logger = LoggerAdapter(get_logger(__name__), {"ceremony": "authentication"})
        >>> logger.info("Options issued")
    """

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        """Merge the adapter's context into the record's ``extra``.

        Args:
            msg: Log message.
            kwargs: Keyword arguments of the logging call.

        Returns:
            The message and kwargs with context added to ``extra``.
        """
        extra = kwargs.get("extra", {})
        extra.update(self.extra)
        kwargs["extra"] = extra
        return msg, kwargs
