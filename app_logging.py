"""JSON logging setup shared by the web layer and the data gateway.

Every record is rendered as a single JSON line on stdout. Request-scoped
values (correlation id, tenant id, request method/path, timings) are kept in
context variables so that any logger, including the ones inside the data
gateway, picks them up without having to pass them around. Guardian phone
numbers and similar personal data are redacted before they reach the output.
"""

from __future__ import annotations

import contextvars
import json
import logging
import os
import sys
import time
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, Mapping, Optional

_request_id_ctx: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "request_id", default=None
)
_log_context_ctx: contextvars.ContextVar[Optional[Dict[str, Any]]] = contextvars.ContextVar(
    "log_context", default=None
)

_REDACTED = "[REDACTED]"
_SENSITIVE_FIELDS = {
    field.strip().lower()
    for field in os.environ.get(
        "SENSITIVE_FIELDS", "password,token,email,phone,guardian_phone,sender_email,link"
    ).split(",")
    if field.strip()
}

_JSON_LOG_FIELDS = (
    "ts",
    "level",
    "logger",
    "msg",
    "request_id",
    "organization_id",
    "method",
    "path",
    "status",
    "duration_ms",
    "storage_time_ms",
    "error_type",
    "error",
    "stack",
    "extra_context",
)

# Values copied from the record itself when a caller passes them via ``extra``.
_PROMOTED_FIELDS = (
    "organization_id",
    "method",
    "path",
    "status",
    "duration_ms",
    "storage_time_ms",
    "error_type",
    "error",
)


def get_request_id() -> Optional[str]:
    """Return the correlation ID bound to the current context, if any."""

    return _request_id_ctx.get()


def set_request_id(request_id: str) -> None:
    _request_id_ctx.set(request_id)
    bind_log_context(request_id=request_id)


def clear_request_id() -> None:
    _request_id_ctx.set(None)


def get_log_context() -> Dict[str, Any]:
    ctx = _log_context_ctx.get()
    if ctx is None:
        ctx = {}
        _log_context_ctx.set(ctx)
    return ctx


def bind_log_context(**kwargs: Any) -> None:
    """Merge key/value pairs into the context attached to every log line.

    ``None`` values are ignored so callers can pass optional data blindly.
    """

    ctx = dict(get_log_context())
    for key, value in kwargs.items():
        if value is not None:
            ctx[key] = value
    _log_context_ctx.set(ctx)


def clear_log_context() -> None:
    _log_context_ctx.set({})


def redact_sensitive_data(data: Any, fields: Optional[Iterable[str]] = None) -> Any:
    """Replace values of sensitive keys with a marker, recursing into containers."""

    fields_set = {field.lower() for field in fields} if fields else _SENSITIVE_FIELDS

    if isinstance(data, Mapping):
        redacted: Dict[Any, Any] = {}
        for key, value in data.items():
            if str(key).lower() in fields_set:
                redacted[key] = _REDACTED
            else:
                redacted[key] = redact_sensitive_data(value, fields_set)
        return redacted
    if isinstance(data, (list, tuple, set)):
        return [redact_sensitive_data(item, fields_set) for item in data]
    return data


class JSONFormatter(logging.Formatter):
    """Formatter that renders log records as single-line JSON objects."""

    # Attributes every LogRecord carries; anything else came in through ``extra``.
    _RESERVED = set(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc)
        payload: Dict[str, Any] = {
            "ts": timestamp.isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "request_id": get_request_id(),
        }

        for key, value in get_log_context().items():
            if payload.get(key) is None:
                payload[key] = value

        for field in _PROMOTED_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                payload[field] = value

        if record.exc_info:
            payload["error_type"] = record.exc_info[0].__name__
            payload["error"] = str(record.exc_info[1])
            payload["stack"] = self.formatException(record.exc_info)
        elif record.stack_info:
            payload["stack"] = record.stack_info

        extra = {
            key: value
            for key, value in record.__dict__.items()
            if key not in self._RESERVED and key not in payload and not key.startswith("_")
        }
        if extra:
            payload["extra_context"] = redact_sensitive_data(extra)

        for field in _JSON_LOG_FIELDS:
            payload.setdefault(field, None)

        return json.dumps(payload, default=_json_default, separators=(",", ":"))


def _json_default(obj: Any) -> Any:
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    return str(obj)


_configured = False


def configure_logging() -> None:
    """Install the JSON handler on the root logger once per process."""

    global _configured
    if _configured:
        return

    level_name = os.environ.get("LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(JSONFormatter())

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = [handler]
    logging.captureWarnings(True)

    # The request middleware logs requests itself; keep server access logs quiet.
    for noisy_logger in ("werkzeug", "gunicorn.access", "sqlalchemy.engine"):
        log = logging.getLogger(noisy_logger)
        log.handlers = []
        log.propagate = True
        log.setLevel(logging.WARNING)

    _configured = True


def get_logger(name: str) -> logging.Logger:
    configure_logging()
    return logging.getLogger(name)


class StorageTimer:
    """Context manager that adds elapsed storage time to the log context."""

    def __enter__(self) -> "StorageTimer":
        self._start = time.perf_counter()
        self.elapsed_ms = 0.0
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.elapsed_ms = round((time.perf_counter() - self._start) * 1000, 2)
        previous = get_log_context().get("storage_time_ms") or 0.0
        bind_log_context(storage_time_ms=round(previous + self.elapsed_ms, 2))


__all__ = [
    "JSONFormatter",
    "StorageTimer",
    "bind_log_context",
    "clear_log_context",
    "clear_request_id",
    "configure_logging",
    "get_log_context",
    "get_logger",
    "get_request_id",
    "redact_sensitive_data",
    "set_request_id",
]
