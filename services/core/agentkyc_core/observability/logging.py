"""Structured logging for AgentKYC services.

Every line carries keyword fields (application id, job id, actor, worker) so
a transition, the audit failure it may have swallowed, and the job that drove
it can be correlated in the log pipeline.

Usage:
    logger = get_logger(__name__)
    logger.info("Transition applied", application_id=app_id, after="verified")

    job_logger = logger.bind(job_id=job.id, worker_id=worker_id)
    job_logger.error("Job failed", exc_info=True)

``configure_logging`` picks the output format: one JSON object per line
(``LOG_JSON=true``, production) or ``key=value`` text for local runs.
"""

import json
import logging
import sys
import traceback
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from typing import Any, Optional

_loggers: dict[str, "StructuredLogger"] = {}

DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_SERVICE_NAME = "agentkyc"

# Third-party loggers that log every request at INFO
QUIET_LOGGERS = ("httpx", "httpcore")

# LogRecord attributes set by the logging module itself
_RECORD_ATTRIBUTES = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "asctime"}


def record_fields(record: logging.LogRecord) -> dict[str, Any]:
    """Keyword fields attached to ``record`` through ``extra``."""
    return {
        key: value
        for key, value in vars(record).items()
        if key not in _RECORD_ATTRIBUTES and not key.startswith("_")
    }


def _json_safe(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return str(value)
    return value


class JsonFormatter(logging.Formatter):
    """Format log records as single-line JSON."""

    def __init__(self, service_name: str = DEFAULT_SERVICE_NAME):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service_name,
        }

        # Source location for warnings and above
        if record.levelno >= logging.WARNING:
            entry["source"] = {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            }

        if record.exc_info:
            exc_type, exc_value, _ = record.exc_info
            entry["exception"] = {
                "type": exc_type.__name__ if exc_type else None,
                "message": str(exc_value),
                "traceback": "".join(traceback.format_exception(*record.exc_info)),
            }

        for key, value in record_fields(record).items():
            entry[key] = _json_safe(value)

        return json.dumps(entry)


class KeyValueFormatter(logging.Formatter):
    """Human-readable lines with the keyword fields appended as key=value."""

    def __init__(self):
        super().__init__("%(asctime)s %(levelname)-7s %(name)s: %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        extras = " ".join(f"{key}={value}" for key, value in sorted(record_fields(record).items()))
        if not extras:
            return line
        # Keep the traceback, if any, below the fields
        head, sep, tail = line.partition("\n")
        return f"{head} {extras}{sep}{tail}"


@dataclass
class LogContext:
    """Correlation fields for one unit of work.

    A unit of work is an HTTP request, a leased job, or one application in an
    auto-review pass. Unset fields are left out of the log line.
    """

    request_id: Optional[str] = None
    actor: Optional[str] = None
    application_id: Optional[str] = None
    job_id: Optional[int] = None
    worker_id: Optional[str] = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        result = {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if f.name != "extra" and getattr(self, f.name) not in (None, "")
        }
        result.update(self.extra)
        return result


class StructuredLogger:
    """Wrapper around a stdlib logger that accepts keyword fields.

    Fields come from three places, later ones winning: fields bound with
    ``bind``, an optional LogContext, and keyword arguments of the call.
    """

    def __init__(self, name: str, bound: Optional[dict[str, Any]] = None):
        self.name = name
        self._logger = logging.getLogger(name)
        self._bound = dict(bound or {})

    def bind(self, **values: Any) -> "StructuredLogger":
        """Return a logger that adds ``values`` to every line."""
        return StructuredLogger(self.name, {**self._bound, **values})

    def _log(
        self,
        level: int,
        msg: str,
        context: Optional[LogContext] = None,
        exc_info: bool = False,
        **kwargs: Any,
    ) -> None:
        if not self._logger.isEnabledFor(level):
            return

        extra = dict(self._bound)
        if context:
            extra.update(context.to_dict())
        extra.update(kwargs)

        self._logger.log(level, msg, exc_info=exc_info, extra=extra)

    def debug(self, msg: str, context: Optional[LogContext] = None, **kwargs: Any) -> None:
        self._log(logging.DEBUG, msg, context, **kwargs)

    def info(self, msg: str, context: Optional[LogContext] = None, **kwargs: Any) -> None:
        self._log(logging.INFO, msg, context, **kwargs)

    def warning(self, msg: str, context: Optional[LogContext] = None, **kwargs: Any) -> None:
        self._log(logging.WARNING, msg, context, **kwargs)

    def error(
        self,
        msg: str,
        context: Optional[LogContext] = None,
        exc_info: bool = False,
        **kwargs: Any,
    ) -> None:
        self._log(logging.ERROR, msg, context, exc_info=exc_info, **kwargs)


def get_logger(name: str) -> StructuredLogger:
    """Get or create the structured logger for ``name`` (usually ``__name__``)."""
    if name not in _loggers:
        _loggers[name] = StructuredLogger(name)
    return _loggers[name]


def configure_logging(
    level: str = DEFAULT_LOG_LEVEL,
    json_format: bool = True,
    service_name: str = DEFAULT_SERVICE_NAME,
) -> None:
    """Configure the root logger for a service process.

    Called once by the API lifespan and once when the worker imports its
    Celery app. Replaces any handlers installed earlier.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        json_format: JSON lines when True, key=value text otherwise.
        service_name: Value of the ``service`` field in JSON lines.
    """
    numeric_level = getattr(logging, level.upper())

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(numeric_level)
    if json_format:
        handler.setFormatter(JsonFormatter(service_name=service_name))
    else:
        handler.setFormatter(KeyValueFormatter())

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))
