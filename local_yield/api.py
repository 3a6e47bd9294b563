"""Response and request helpers shared by every blueprint.

Successful responses use the envelope ``{"ok": true, "data": ...}``;
failures are produced by the handlers in :mod:`local_yield.errors`.
"""
from __future__ import annotations

from typing import Any

from flask import jsonify, request

from .errors import ValidationError


def ok(data: Any = None, status: int = 200):
    """Build a success envelope."""
    return jsonify({"ok": True, "data": data}), status


def parse_json_body() -> dict:
    """Return the request's JSON object body.

    Raises ``ValidationError`` with code ``INVALID_JSON`` when the body is
    missing, malformed or not an object.
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON", code="INVALID_JSON")
    return data


def int_arg(name: str, default: int, minimum: int | None = None, maximum: int | None = None) -> int:
    """Read an integer query parameter, clamped to ``[minimum, maximum]``.

    Non-numeric values fall back to ``default``.
    """
    raw = request.args.get(name)
    try:
        value = int(raw) if raw not in (None, "") else default
    except ValueError:
        value = default
    if minimum is not None:
        value = max(minimum, value)
    if maximum is not None:
        value = min(maximum, value)
    return value


def paginate(query, page: int, page_size: int):
    """Return ``(items, total)`` for a SQLAlchemy query page (1-based)."""
    total = query.order_by(None).count()
    items = query.limit(page_size).offset((page - 1) * page_size).all()
    return items, total
