"""
Company Portal
Request timing middleware.

Every API call gets a correlation id (echoed from X-Request-ID when the
caller sends one) and an access-log line carrying the acting user and,
for per-request routes, the workflow request key. Mutations on workflow
requests are logged at INFO so the audit trail of an instance can be
followed in the logs alongside its stored history.
"""

import logging
import time
import uuid

from flask import Flask, g, request

logger = logging.getLogger(__name__)

_PROBE_PREFIX = "/api/v1/health/"
_MUTATING = frozenset({"POST", "PUT", "PATCH", "DELETE"})


def _access_extra(response, elapsed_ms: float) -> dict:
    view_args = request.view_args or {}
    return {
        "method": request.method,
        "path": request.path,
        "status": response.status_code,
        "duration_ms": round(elapsed_ms, 1),
        "request_id": g.get("request_id", ""),
        "actor_id": request.headers.get("X-User"),
        "request_key": view_args.get("key"),
    }


def _level_for(response, elapsed_ms: float, slow_ms: int) -> int:
    if response.status_code >= 500:
        return logging.ERROR
    if elapsed_ms > slow_ms:
        return logging.WARNING
    if request.method in _MUTATING and response.status_code < 400:
        return logging.INFO
    return logging.DEBUG


def init_request_timing(app: Flask):
    """Attach correlation ids and access logging to every request."""
    slow_ms = int(app.config.get("SLOW_REQUEST_MS", 1000))

    @app.before_request
    def _begin():
        g.request_started = time.perf_counter()
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]

    @app.after_request
    def _finish(response):
        started = g.get("request_started")
        if started is None:
            return response

        elapsed_ms = (time.perf_counter() - started) * 1000
        response.headers["X-Request-ID"] = g.request_id
        response.headers["X-Request-Duration-Ms"] = f"{elapsed_ms:.1f}"

        if request.path.startswith(_PROBE_PREFIX):
            return response

        level = _level_for(response, elapsed_ms, slow_ms)
        logger.log(
            level, "%s %s -> %d (%.0fms)",
            request.method, request.path, response.status_code, elapsed_ms,
            extra=_access_extra(response, elapsed_ms),
        )
        return response
