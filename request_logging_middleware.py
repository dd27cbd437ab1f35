"""Request/response logging middleware for Flask."""

from __future__ import annotations

import json
import os
import random
import time
from typing import Any, Dict, Optional

from flask import Flask, Response, g, request

from app_logging import bind_log_context, get_logger, redact_sensitive_data
from correlation_id_middleware import HEADER_NAME

_DEFAULT_SAMPLE_RATE = 1.0
# Snapshot and export payloads can be large; only the head is logged.
_DEFAULT_MAX_BYTES = 2048

_request_logger = get_logger("app.request")


def _sample_rate() -> float:
    try:
        return max(0.0, min(1.0, float(os.environ.get("REQUEST_LOG_SAMPLE_RATE", _DEFAULT_SAMPLE_RATE))))
    except ValueError:
        return _DEFAULT_SAMPLE_RATE


def _max_response_bytes() -> int:
    try:
        return max(0, int(os.environ.get("RESPONSE_BODY_MAX_BYTES", _DEFAULT_MAX_BYTES)))
    except ValueError:
        return _DEFAULT_MAX_BYTES


def _client_ip() -> str:
    forwarded = request.headers.get("X-Forwarded-For", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.remote_addr or "unknown"


def _route() -> Optional[str]:
    return request.url_rule.rule if request.url_rule else None


def _should_log_request(path: str) -> bool:
    if path == "/health":
        return False
    sample_rate = _sample_rate()
    if sample_rate >= 1.0:
        return True
    return random.random() <= sample_rate


def _request_payload() -> Dict[str, Any]:
    payload: Dict[str, Any] = {}
    if request.args:
        payload["query"] = redact_sensitive_data(request.args.to_dict(flat=False))
    if request.method in {"POST", "PUT", "PATCH", "DELETE"}:
        json_body = request.get_json(silent=True)
        if json_body is not None:
            payload["json"] = redact_sensitive_data(json_body)
    return payload


def _response_excerpt(resp: Response) -> Optional[str]:
    limit = _max_response_bytes()
    if limit == 0 or resp.direct_passthrough:
        return None
    body = resp.get_data(as_text=True)
    if body and resp.is_json:
        try:
            body = json.dumps(redact_sensitive_data(json.loads(body)), ensure_ascii=False)
        except ValueError:
            pass
    if len(body) > limit:
        return body[:limit] + f"... truncated {len(body) - limit} bytes"
    return body


def init_request_logging(app: Flask) -> None:
    """Register Flask hooks that emit one structured log line per request and response."""

    @app.before_request
    def _log_request_start() -> None:
        g._log_request = _should_log_request(request.path)
        g._request_start = time.perf_counter()
        bind_log_context(method=request.method, path=request.path, route=_route())
        if not g._log_request:
            return
        _request_logger.info(
            "request_start",
            extra={
                "event": "request_start",
                "client_ip": _client_ip(),
                "user_agent": request.headers.get("User-Agent"),
                "request_payload": _request_payload(),
            },
        )

    @app.after_request
    def _log_request_end(response: Response) -> Response:
        duration_ms = None
        if hasattr(g, "_request_start"):
            duration_ms = round((time.perf_counter() - g._request_start) * 1000, 2)
        bind_log_context(status=response.status_code, duration_ms=duration_ms)
        if getattr(g, "_log_request", False):
            _request_logger.info(
                "request_end",
                extra={
                    "event": "request_end",
                    "status": response.status_code,
                    "duration_ms": duration_ms,
                    "response_body": _response_excerpt(response),
                },
            )
        response.headers.setdefault(HEADER_NAME, getattr(g, "request_id", ""))
        return response


__all__ = ["init_request_logging"]
