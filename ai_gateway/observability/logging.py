"""
AI Gateway - Structured JSON Logging

Every log line is one JSON object. Lines written while a request is being
handled carry its request_id and caller_identity, and the provider of the
attempt in progress, so a single request can be followed through routing,
fallback and upstream calls. When an OpenTelemetry span is active its
trace_id is added as well.

Usage:
    from ai_gateway.observability.logging import get_logger, log_context

    logger = get_logger(__name__)

    with log_context(request_id=request.request_id, caller_identity="team-a"):
        logger.info("Provider selected", provider="openai-main", strategy="health_aware")

Output:
    {"timestamp": "2026-01-15T10:30:00.123+00:00", "level": "INFO",
     "logger": "ai_gateway.routing.router", "message": "Provider selected",
     "request_id": "req_xyz", "caller_identity": "team-a",
     "provider": "openai-main", "strategy": "health_aware"}
"""

import json
import logging
import logging.config
import os
import time
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional, Union

from opentelemetry import trace

_current: ContextVar[Optional["LogContext"]] = ContextVar("ai_gateway_log_context", default=None)

# Fields every LogRecord carries on its own
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}

_SENSITIVE_PARTS = frozenset({
    "password", "passwd", "secret", "token", "authorization", "auth",
    "credential", "credentials", "apikey",
})
_SENSITIVE_PAIRS = (("api", "key"), ("private", "key"))

_PASSTHROUGH_KWARGS = frozenset({"exc_info", "stack_info", "stacklevel", "extra"})


def is_sensitive_field(name: str) -> bool:
    """
    True when a field name looks like it holds a credential.

    Names are compared by underscore-separated parts, so ``max_tokens`` is
    kept while ``api_key`` and ``auth_header`` are not. A trailing ``_env``
    names an environment variable, not its value.
    """
    parts = name.lower().replace("-", "_").split("_")
    if parts[-1] == "env":
        return False
    if _SENSITIVE_PARTS.intersection(parts):
        return True
    return any(pair == tuple(parts[i:i + 2]) for pair in _SENSITIVE_PAIRS for i in range(len(parts) - 1))


@dataclass
class LogContext:
    """Correlation fields bound to the current request."""
    request_id: str = ""
    caller_identity: str = ""
    provider: str = ""
    fields: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def get_current(cls) -> Optional["LogContext"]:
        return _current.get()

    def child(self, **values) -> "LogContext":
        """Copy of this context with some values replaced or added."""
        ctx = LogContext(
            request_id=self.request_id,
            caller_identity=self.caller_identity,
            provider=self.provider,
            fields=dict(self.fields),
        )
        for key, value in values.items():
            if key in ("request_id", "caller_identity", "provider"):
                setattr(ctx, key, value)
            else:
                ctx.fields[key] = value
        return ctx

    def to_dict(self) -> Dict[str, Any]:
        data = {
            key: value
            for key, value in (
                ("request_id", self.request_id),
                ("caller_identity", self.caller_identity),
                ("provider", self.provider),
            )
            if value
        }
        data.update(self.fields)
        return data


@contextmanager
def log_context(**values) -> Iterator[LogContext]:
    """
    Bind correlation fields for the duration of a block.

    Blocks nest: an attempt bound inside a request sees both, and leaving
    it restores the request's context.
    """
    parent = _current.get() or LogContext()
    ctx = parent.child(**values)
    token = _current.set(ctx)
    try:
        yield ctx
    finally:
        _current.reset(token)


def _trace_id() -> Optional[str]:
    span_context = trace.get_current_span().get_span_context()
    if not span_context.is_valid:
        return None
    return format(span_context.trace_id, "032x")


class JSONFormatter(logging.Formatter):
    """Render a record, its extra fields and the bound context as JSON."""

    def __init__(self, include_location: bool = False, redact_sensitive: bool = True):
        super().__init__()
        self.include_location = include_location
        self.redact_sensitive = redact_sensitive

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if self.include_location:
            entry["location"] = f"{record.filename}:{record.lineno}"

        trace_id = _trace_id()
        if trace_id:
            entry["trace_id"] = trace_id

        ctx = _current.get()
        if ctx is not None:
            entry.update(ctx.to_dict())

        for key, value in vars(record).items():
            if key in _RECORD_ATTRS:
                continue
            if self.redact_sensitive and is_sensitive_field(key):
                value = "[REDACTED]"
            entry[key] = value

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str, ensure_ascii=False)


class StructuredLogger(logging.LoggerAdapter):
    """
    Logger adapter that turns keyword arguments into record fields.

        logger.warning("Circuit opened", provider="A", failures=5)

    The bound LogContext is copied onto each record, so handlers other than
    JSONFormatter (pytest's caplog, for one) see the same fields.
    """

    def __init__(self, logger: logging.Logger):
        super().__init__(logger, {})

    def process(self, msg, kwargs):
        extra = dict(kwargs.pop("extra", None) or {})
        for key in [k for k in kwargs if k not in _PASSTHROUGH_KWARGS]:
            extra[key] = kwargs.pop(key)

        ctx = _current.get()
        if ctx is not None:
            for key, value in ctx.to_dict().items():
                extra.setdefault(key, value)

        kwargs["extra"] = extra
        return msg, kwargs


_configured = False


def setup_logging(
    level: Union[str, int] = "INFO",
    json_output: bool = True,
    include_location: bool = False,
    redact_sensitive: bool = True,
) -> None:
    """Install a single stdout handler on the root logger."""
    global _configured

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    if json_output:
        formatter = {
            "()": JSONFormatter,
            "include_location": include_location,
            "redact_sensitive": redact_sensitive,
        }
    else:
        formatter = {"format": "%(asctime)s %(levelname)-8s %(name)s: %(message)s"}

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"gateway": formatter},
        "handlers": {
            "stdout": {
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stdout",
                "formatter": "gateway",
                "level": level,
            },
        },
        "loggers": {
            "httpx": {"level": "WARNING"},
            "httpcore": {"level": "WARNING"},
            "uvicorn.access": {"level": "WARNING"},
        },
        "root": {"level": level, "handlers": ["stdout"]},
    })
    _configured = True


def get_logger(name: str) -> StructuredLogger:
    """
    Get a structured logger.

    The first call configures logging from LOG_LEVEL and LOG_FORMAT unless
    setup_logging() already ran.
    """
    if not _configured:
        setup_logging(
            level=os.getenv("LOG_LEVEL", "INFO"),
            json_output=os.getenv("LOG_FORMAT", "json").lower() == "json",
        )
    return StructuredLogger(logging.getLogger(name))


class TimedOperation:
    """
    Log how long a block took.

        with TimedOperation("upstream_call", logger, extra={"provider": "A"}) as timer:
            ...
        timer.duration_ms

    A block that raises is logged at WARNING with the error; the exception
    still propagates.
    """

    def __init__(
        self,
        operation: str,
        logger: Optional[StructuredLogger] = None,
        log_level: int = logging.DEBUG,
        extra: Optional[Dict[str, Any]] = None,
    ):
        self.operation = operation
        self.logger = logger or get_logger(__name__)
        self.log_level = log_level
        self.extra = dict(extra or {})
        self.duration_ms: Optional[float] = None
        self._started = 0.0

    def __enter__(self) -> "TimedOperation":
        self._started = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration_ms = (time.perf_counter() - self._started) * 1000
        fields = dict(self.extra, operation=self.operation, duration_ms=round(self.duration_ms, 2))

        if exc_type is None:
            self.logger.log(self.log_level, "%s completed", self.operation, **fields)
        else:
            self.logger.log(logging.WARNING, "%s failed", self.operation, error=str(exc_val), **fields)
        return False
