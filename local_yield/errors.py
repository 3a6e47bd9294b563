"""Centralised error handling and custom exceptions.

This module defines the exception classes raised by the service layer
and the Flask error handlers that serialise them into the API's failure
envelope::

    {"ok": false, "error": "...", "code": "...", "request_id": "..."}

Services signal specific error conditions by raising these exceptions
without coupling themselves to response objects. The application
factory registers the handlers during initialisation.
"""
from __future__ import annotations

import logging

from flask import g, jsonify
from marshmallow import ValidationError as SchemaValidationError
from werkzeug.exceptions import HTTPException

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Base class for errors that map onto an HTTP failure response."""

    status_code = 500
    default_code = "INTERNAL_ERROR"

    def __init__(self, message: str, code: str | None = None, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        if status_code is not None:
            self.status_code = status_code

    def payload(self) -> dict:
        return {"ok": False, "error": self.message, "code": self.code}

    def to_response(self):
        return fail_response(self.payload(), self.status_code)


class ValidationError(ApiError):
    """Raised when input validation fails."""

    status_code = 400
    default_code = "VALIDATION_ERROR"

    def __init__(self, message: str, fields: dict | None = None, code: str | None = None) -> None:
        super().__init__(message, code=code)
        self.fields = fields or {}

    def payload(self) -> dict:
        body = super().payload()
        if self.fields:
            body["fields"] = self.fields
        return body


class UnauthorizedError(ApiError):
    """Raised when a request needs a signed-in user and has none."""

    status_code = 401
    default_code = "UNAUTHORIZED"

    def __init__(self, message: str = "Unauthorized", code: str | None = None) -> None:
        super().__init__(message, code=code)


class ForbiddenError(ApiError):
    """Raised when the current user may not perform the action."""

    status_code = 403
    default_code = "FORBIDDEN"

    def __init__(self, message: str = "Forbidden", code: str | None = None) -> None:
        super().__init__(message, code=code)


class NotFoundError(ApiError):
    """Raised when a requested resource cannot be found."""

    status_code = 404
    default_code = "NOT_FOUND"


class ConflictError(ApiError):
    """Raised when a uniqueness or resource conflict occurs."""

    status_code = 409
    default_code = "CONFLICT"


class RateLimitError(ApiError):
    """Raised when a client exceeds its request budget for the window."""

    status_code = 429
    default_code = "RATE_LIMIT"

    def __init__(self, retry_after: int, message: str = "Too many requests. Please try again in a moment.") -> None:
        super().__init__(message)
        self.retry_after = max(1, int(retry_after))

    def to_response(self):
        response, status = super().to_response()
        response.headers["Retry-After"] = str(self.retry_after)
        return response, status


def fail_response(body: dict, status_code: int):
    """Attach the request id to a failure body and build the response."""
    request_id = getattr(g, "request_id", None)
    if request_id:
        body["request_id"] = request_id
    return jsonify(body), status_code


def register_error_handlers(app) -> None:
    """Register custom error handlers on the given Flask app."""

    @app.errorhandler(ApiError)
    def handle_api_error(err: ApiError):
        return err.to_response()

    @app.errorhandler(SchemaValidationError)
    def handle_schema_error(err: SchemaValidationError):
        messages = err.normalized_messages()
        return ValidationError(_first_message(messages), fields=messages).to_response()

    @app.errorhandler(HTTPException)
    def handle_http_exception(err: HTTPException):
        code = (err.name or "ERROR").upper().replace(" ", "_")
        return fail_response({"ok": False, "error": err.description or err.name, "code": code}, err.code or 500)

    @app.errorhandler(Exception)
    def handle_unexpected(err: Exception):
        from .log import log_error
        log_error("unhandled", err)
        return fail_response({"ok": False, "error": "Something went wrong", "code": "INTERNAL_ERROR"}, 500)


def _first_message(messages) -> str:
    """Return the first human-readable message from marshmallow's error dict."""
    if isinstance(messages, dict):
        for field, value in messages.items():
            inner = _first_message(value)
            if field == "_schema":
                return inner
            return f"{field}: {inner}"
    if isinstance(messages, list) and messages:
        return _first_message(messages[0])
    return str(messages) if messages else "Invalid request"
