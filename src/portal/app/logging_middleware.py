"""Structured logging and request correlation middleware.

Provides:
- Request-ID generation and propagation (X-Request-ID)
- One structured log record per request (method, path, status, latency, user)
- A JSON formatter for the root logger
"""

import json
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Callable

from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

HTTP_LOGGER_NAME = "portal.http"
QUIET_PATHS = frozenset({"/health"})

_STRUCTURED_FIELDS = ("request_id", "user_id", "method", "path", "status", "latency_ms")


class JSONFormatter(logging.Formatter):
    """Format logs as JSON with standard fields."""

    def format(self, record: logging.LogRecord) -> str:
        dt = datetime.fromtimestamp(record.created, tz=timezone.utc)
        timestamp = dt.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"

        log_data = {
            "timestamp": timestamp,
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in _STRUCTURED_FIELDS:
            value = getattr(record, name, None)
            if value:
                log_data[name] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def configure_structured_logging(level: int = logging.INFO) -> None:
    """Install the JSON formatter on the root logger.

    Leaves logging alone when a stream handler is already attached (uvicorn
    log config, pytest capture).
    """
    root = logging.getLogger()

    if any(isinstance(h, logging.StreamHandler) for h in root.handlers):
        return

    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter())
    root.addHandler(handler)
    root.setLevel(level)


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Generate or propagate X-Request-ID on every request.

    The id is stored on ``request.state.request_id`` and echoed in the
    response headers together with ``X-Process-Time``.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id

        start_time = time.time()
        response = await call_next(request)
        latency_ms = (time.time() - start_time) * 1000

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = f"{latency_ms:.2f}ms"
        return response


class StructuredLoggingMiddleware(BaseHTTPMiddleware):
    """Log every request with structured fields.

    INFO for normal requests, WARNING for 4xx, ERROR for 5xx. Health checks
    are not logged. The user id comes from ``request.state.auth_identity``,
    which the auth gate sets for page requests.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        logger = logging.getLogger(HTTP_LOGGER_NAME)
        start_time = time.time()

        response = await call_next(request)

        path = request.url.path
        if path in QUIET_PATHS:
            return response

        latency_ms = (time.time() - start_time) * 1000
        if response.status_code >= 500:
            level = logging.ERROR
        elif response.status_code >= 400:
            level = logging.WARNING
        else:
            level = logging.INFO

        identity = getattr(request.state, "auth_identity", None)
        logger.log(
            level,
            "%s %s -> %s",
            request.method,
            path,
            response.status_code,
            extra={
                "request_id": getattr(request.state, "request_id", None),
                "user_id": identity.user_id if identity else None,
                "method": request.method,
                "path": path,
                "status": response.status_code,
                "latency_ms": round(latency_ms, 2),
            },
        )
        return response


def add_logging_middleware(app: FastAPI, *, configure: bool = True) -> None:
    """Add structured logging and request correlation middleware to app.

    Call this after the other middleware has been added: Starlette runs the
    last-added middleware first, so the request id exists before the auth
    gate and route handlers log anything.
    """
    if configure:
        configure_structured_logging()

    app.add_middleware(StructuredLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)


def get_request_id(request: Request) -> str:
    """Return the current request's correlation id (a fresh one if unset)."""
    return getattr(request.state, "request_id", None) or str(uuid.uuid4())
