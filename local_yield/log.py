"""Logging and request tracing.

Every request is tagged with a short request id: the incoming
``X-Request-Id`` header when present, otherwise the first eight
characters of a fresh UUID. The id lives on ``flask.g``, is stamped on
every log record emitted while the request is active, and is echoed
back in the ``X-Request-Id`` response header so that clients can quote
it when reporting a problem.
"""
from __future__ import annotations

import logging
import time
import uuid
from typing import Optional

from flask import Flask, g, has_request_context, request

REQUEST_ID_HEADER = "X-Request-Id"

_LEVELS = {
    "CRITICAL": logging.CRITICAL,
    "ERROR": logging.ERROR,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
}

logger = logging.getLogger("local_yield.requests")


def _coerce_level(value) -> int:
    if isinstance(value, str):
        return _LEVELS.get(value.upper().strip(), logging.INFO)
    if isinstance(value, int):
        return value
    return logging.INFO


class RequestIdFilter(logging.Filter):
    """Inject the active request id (or ``-``) into log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        request_id = None
        if has_request_context():
            request_id = getattr(g, "request_id", None)
        record.request_id = request_id or "-"
        return True


def get_request_id() -> Optional[str]:
    return getattr(g, "request_id", None) if has_request_context() else None


def _incoming_request_id() -> str:
    incoming = request.headers.get(REQUEST_ID_HEADER)
    if incoming:
        return incoming[:64]
    return uuid.uuid4().hex[:8]


def configure_logging(app: Flask) -> None:
    """Attach a request-aware stream handler to the package logger.

    Honours the ``LOG_LEVEL`` config value. Calling this for several app
    instances (as the test-suite does) does not stack handlers.
    """
    level = _coerce_level(app.config.get("LOG_LEVEL", "INFO"))
    package_logger = logging.getLogger("local_yield")
    package_logger.setLevel(level)

    if not getattr(package_logger, "_local_yield_configured", False):
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter(
                fmt="%(asctime)s [%(name)s] %(levelname)s [%(request_id)s]: %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        handler.addFilter(RequestIdFilter())
        package_logger.addHandler(handler)
        package_logger.propagate = False
        setattr(package_logger, "_local_yield_configured", True)

    @app.before_request
    def _assign_request_id():
        g.request_id = _incoming_request_id()
        g.request_started = time.perf_counter()

    @app.after_request
    def _log_request(response):
        request_id = getattr(g, "request_id", None)
        if request_id:
            response.headers[REQUEST_ID_HEADER] = request_id
        started = getattr(g, "request_started", None)
        duration_ms = (time.perf_counter() - started) * 1000 if started else 0.0
        logger.info(
            "%s %s -> %s (%.1f ms)",
            request.method,
            request.path,
            response.status_code,
            duration_ms,
        )
        return response


def log_error(scope: str, error: BaseException, **meta) -> None:
    """Log an unexpected error with its scope and request metadata.

    The traceback goes to the log; callers return a generic message to
    the client.
    """
    details = {"scope": scope, **meta}
    if has_request_context():
        details.setdefault("path", request.path)
        details.setdefault("method", request.method)
    logging.getLogger("local_yield.errors").error(
        "%s: %s %s", scope, error, details, exc_info=(type(error), error, error.__traceback__)
    )
