"""
Request correlation and timing.

Every response carries ``X-Request-ID`` (echoed from the caller when
present) and ``X-Request-Duration-Ms``.  Workflow calls are logged with
the acting user and case so a status change can be traced back to the
request that made it.
"""

import logging
import time
import uuid

from flask import Flask, g, request

logger = logging.getLogger(__name__)

# Probe endpoints polled by load balancers; never logged
QUIET_PATHS = frozenset({"/api/v1/health/ready", "/api/v1/health/live"})

DEFAULT_SLOW_REQUEST_MS = 1000


def current_request_id():
    """Request id of the active request, or None outside a request."""
    return getattr(g, "request_id", None)


def _request_extra(response, duration_ms):
    view_args = request.view_args or {}
    return {
        "method": request.method,
        "path": request.path,
        "status": response.status_code,
        "duration_ms": round(duration_ms, 1),
        "remote_addr": request.remote_addr,
        "request_id": current_request_id(),
        "actor_id": getattr(g, "jwt_user_id", None),
        "case_id": view_args.get("case_id"),
        "form_id": view_args.get("form_id"),
    }


def init_request_timing(app: Flask):
    """Register the before/after hooks on *app*."""
    slow_ms = app.config.get("SLOW_REQUEST_MS", DEFAULT_SLOW_REQUEST_MS)

    @app.before_request
    def _stamp_request():
        g.request_started = time.perf_counter()
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]

    @app.after_request
    def _finish_request(response):
        started = getattr(g, "request_started", None)
        if started is None:
            return response

        duration_ms = (time.perf_counter() - started) * 1000
        response.headers["X-Request-ID"] = current_request_id() or ""
        response.headers["X-Request-Duration-Ms"] = f"{duration_ms:.1f}"
        if request.path in QUIET_PATHS:
            return response

        extra = _request_extra(response, duration_ms)
        if response.status_code >= 500:
            level = logging.ERROR
        elif duration_ms > slow_ms:
            level = logging.WARNING
        else:
            level = logging.DEBUG
        logger.log(level, "%s %s -> %d in %.0fms",
                   request.method, request.path, response.status_code, duration_ms, extra=extra)
        return response
