"""
Authentication routes for The Local Yield.

Provides endpoints for registering accounts and logging in to obtain
JSON Web Tokens (JWTs), plus the development stub login. Tokens are
sent as ``Authorization: Bearer <token>`` on every protected request.
"""

from __future__ import annotations

from flask import Blueprint, make_response
from flask_jwt_extended import create_access_token

from ..api import ok, parse_json_body
from ..auth import DEV_USER_COOKIE, capabilities, dev_auth_enabled, get_stub_user, require_auth
from ..errors import NotFoundError
from ..models import Role
from ..rate_limit import rate_limit
from ..schemas import DevLoginInput, LoginInput, ProducerProfileSchema, RegisterInput, UserSchema
from ..services.account_service import authenticate, register_user


auth_bp = Blueprint("auth", __name__)


def _token_for(user) -> str:
    return create_access_token(identity=str(user.id), additional_claims={"role": user.role.value})


@auth_bp.route("/auth/register", methods=["POST"])
@rate_limit("AUTH")
def register():
    """Register a new account.

    Expects JSON with ``email``, ``password`` (8+ characters), ``name``
    and ``zip_code``; ``roles`` lists the modes to enable (``BUYER``,
    ``PRODUCER``, ``CAREGIVER``, ``CARE_SEEKER``). Emails must be unique.
    """
    data = RegisterInput().load(parse_json_body())
    user = register_user(data)
    return ok({"access_token": _token_for(user), "user": UserSchema().dump(user)}, 201)


@auth_bp.route("/auth/login", methods=["POST"])
@rate_limit("AUTH")
def login():
    """Authenticate a user and return a JWT. Invalid credentials return 401."""
    data = LoginInput().load(parse_json_body())
    user = authenticate(data["email"], data["password"])
    return ok({"access_token": _token_for(user), "user": UserSchema().dump(user)})


@auth_bp.route("/auth/dev-login", methods=["POST"])
@rate_limit("AUTH")
def dev_login():
    """Sign in as a stub BUYER, PRODUCER or ADMIN (development only)."""
    if not dev_auth_enabled():
        raise NotFoundError("Not found")
    data = DevLoginInput().load(parse_json_body())
    user = get_stub_user(Role(data["role"]))
    body, status = ok({"user": UserSchema().dump(user), "access_token": _token_for(user)})
    response = make_response(body, status)
    response.set_cookie(DEV_USER_COOKIE, data["role"], httponly=True, samesite="Lax")
    return response


@auth_bp.route("/auth/dev-logout", methods=["POST"])
def dev_logout():
    if not dev_auth_enabled():
        raise NotFoundError("Not found")
    body, status = ok({"signed_out": True})
    response = make_response(body, status)
    response.delete_cookie(DEV_USER_COOKIE)
    return response


@auth_bp.route("/auth/me", methods=["GET"])
def me():
    """Return the signed-in user with their capabilities."""
    user = require_auth()
    profile = user.producer_profile
    return ok({
        "user": UserSchema().dump(user),
        "capabilities": capabilities(user),
        "producer_profile": ProducerProfileSchema().dump(profile) if profile else None,
    })
