"""Session helpers: who is making this request, and may they?

Accounts authenticate with a JWT bearer token issued by
``POST /api/auth/login``. For local development a stub login is also
available: when ``DEV_AUTH_ENABLED`` is set, a ``__dev_user`` cookie
naming ``BUYER``, ``PRODUCER`` or ``ADMIN`` selects one of the stub
accounts below, which are created on first use.

Route handlers call the ``require_*`` guards, which raise
``UnauthorizedError`` (401) or ``ForbiddenError`` (403).
"""
from __future__ import annotations

import logging
from typing import Optional

from flask import current_app, g, request
from flask_jwt_extended import JWTManager, get_jwt_identity, verify_jwt_in_request

from .db import db
from .errors import ForbiddenError, UnauthorizedError, fail_response
from .models import Role, User

logger = logging.getLogger(__name__)

DEV_USER_COOKIE = "__dev_user"

STUB_USERS = {
    Role.BUYER: {"email": "buyer@test.localyield.example", "name": "Test Buyer"},
    Role.PRODUCER: {"email": "producer@test.localyield.example", "name": "Test Producer"},
    Role.ADMIN: {"email": "admin@test.localyield.example", "name": "Test Admin"},
}
STUB_ZIP = "90210"

_UNSET = object()


def register_jwt_handlers(jwt: JWTManager) -> None:
    """Render JWT failures with the API failure envelope."""

    @jwt.unauthorized_loader
    def _missing_token(reason: str):
        return fail_response({"ok": False, "error": "Unauthorized", "code": "UNAUTHORIZED"}, 401)

    @jwt.invalid_token_loader
    def _invalid_token(reason: str):
        return fail_response({"ok": False, "error": "Invalid token", "code": "UNAUTHORIZED"}, 401)

    @jwt.expired_token_loader
    def _expired_token(jwt_header, jwt_payload):
        return fail_response({"ok": False, "error": "Token has expired", "code": "TOKEN_EXPIRED"}, 401)


def dev_auth_enabled() -> bool:
    return bool(current_app.config.get("DEV_AUTH_ENABLED"))


def get_stub_user(role: Role) -> User:
    """Return the stub account for ``role``, creating it if needed."""
    details = STUB_USERS[role]
    user = User.query.filter_by(email=details["email"]).first()
    if user is None:
        user = User(
            email=details["email"],
            name=details["name"],
            role=role,
            zip_code=STUB_ZIP,
            is_buyer=True,
            is_producer=role in (Role.PRODUCER, Role.ADMIN),
        )
        db.session.add(user)
        db.session.commit()
        logger.info("Created dev stub user %s", user.email)
    return user


def _user_from_token() -> Optional[User]:
    verify_jwt_in_request(optional=True)
    identity = get_jwt_identity()
    if identity is None:
        return None
    try:
        user_id = int(identity)
    except (TypeError, ValueError):
        return None
    return db.session.get(User, user_id)


def _user_from_dev_cookie() -> Optional[User]:
    if not dev_auth_enabled():
        return None
    raw = request.cookies.get(DEV_USER_COOKIE)
    if not raw:
        return None
    try:
        role = Role(raw.upper())
    except ValueError:
        return None
    return get_stub_user(role)


def get_current_user() -> Optional[User]:
    """Return the signed-in user, or ``None``. Cached per request."""
    cached = g.get("current_user", _UNSET)
    if cached is not _UNSET:
        return cached
    user = _user_from_token() or _user_from_dev_cookie()
    g.current_user = user
    return user


def require_auth() -> User:
    user = get_current_user()
    if user is None:
        raise UnauthorizedError()
    return user


def require_producer_or_admin() -> User:
    user = require_auth()
    if not user.can_sell:
        raise ForbiddenError()
    return user


def require_admin() -> User:
    user = require_auth()
    if not user.can_admin:
        raise ForbiddenError()
    return user


def capabilities(user: Optional[User]) -> dict:
    """Summarise what the user can do, for navigation and guards."""
    if user is None:
        return {"can_sell": False, "can_admin": False, "can_care": False, "is_multi_mode": False}
    modes = sum([bool(user.is_buyer or user.role == Role.BUYER), user.can_sell, user.can_care])
    return {
        "can_sell": user.can_sell,
        "can_admin": user.can_admin,
        "can_care": user.can_care,
        "is_multi_mode": modes > 1,
    }
