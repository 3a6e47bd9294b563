"""
Application factory for The Local Yield.

This module provides a function to create and configure the Flask
application. All extensions (SQLAlchemy, Migrate, JWT) are initialised
here, together with request logging, rate limiting and the error
handlers. Individual blueprints for different parts of the API are
registered inside the factory to allow for modular development and
unit testing.

Environment variables control the database connection, secrets and the
marketplace rules (resolution window, search radius). A default
configuration is provided for development, using SQLite when no
database URL is available.
"""

from __future__ import annotations

import os
from datetime import timedelta

from flask import Flask
from flask_jwt_extended import JWTManager
from flask_migrate import Migrate

# Extensions are created unbound and attached to an app in create_app().
from .db import db
migrate = Migrate()
jwt = JWTManager()

_TRUTHY = ("1", "true", "yes", "on")


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUTHY


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, default))
    except (TypeError, ValueError):
        return default


def create_app(test_config: dict | None = None) -> Flask:
    """Create and configure a Flask application.

    Parameters
    ----------
    test_config: dict | None, optional
        Optional configuration overrides used when running tests.

    Returns
    -------
    Flask
        A configured Flask application instance.
    """
    app = Flask(__name__)

    # Default configuration. Override using environment variables or
    # by passing a ``test_config`` mapping.
    app.config.update(
        SQLALCHEMY_DATABASE_URI=os.environ.get("DATABASE_URL", "sqlite:///local_yield.db"),
        SQLALCHEMY_TRACK_MODIFICATIONS=False,
        JWT_SECRET_KEY=os.environ.get("JWT_SECRET_KEY", "please-change-this-secret-key"),
        JWT_ACCESS_TOKEN_EXPIRES=timedelta(days=1),
        DEV_AUTH_ENABLED=_env_flag("DEV_AUTH_ENABLED", default=_env_flag("FLASK_DEBUG")),
        RESOLUTION_WINDOW_HOURS=_env_int("RESOLUTION_WINDOW_HOURS", 48),
        NEGATIVE_RATING_THRESHOLD=_env_int("NEGATIVE_RATING_THRESHOLD", 2),
        DEFAULT_RADIUS_MILES=_env_int("DEFAULT_RADIUS_MILES", 25),
        MAX_RADIUS_MILES=_env_int("MAX_RADIUS_MILES", 150),
        LISTINGS_PAGE_SIZE=min(_env_int("LISTINGS_PAGE_SIZE", 24), 100),
        RATELIMIT_ENABLED=_env_flag("RATELIMIT_ENABLED", default=True),
        REDIS_URL=os.environ.get("REDIS_URL") or None,
        LOG_LEVEL=os.environ.get("LOG_LEVEL", "INFO"),
    )

    if test_config:
        app.config.update(test_config)

    from .log import configure_logging
    configure_logging(app)

    # Initialise extensions with the app
    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)

    from .auth import register_jwt_handlers
    register_jwt_handlers(jwt)

    from .rate_limit import init_rate_limiter
    init_rate_limiter(app)

    # Register custom error handlers
    from .errors import register_error_handlers
    register_error_handlers(app)

    # Register blueprints. Importing here avoids circular imports.
    from .routes.admin import admin_bp
    from .routes.auth import auth_bp
    from .routes.care import care_bp
    from .routes.cart import cart_bp
    from .routes.catalog import catalog_bp
    from .routes.conversations import conversations_bp
    from .routes.credits import credits_bp
    from .routes.dashboard import dashboard_bp
    from .routes.listings import listings_bp
    from .routes.notifications import notifications_bp
    from .routes.orders import orders_bp
    from .routes.products import products_bp
    from .routes.reports import reports_bp
    from .routes.reviews import reviews_bp

    for blueprint in (
        auth_bp,
        listings_bp,
        products_bp,
        catalog_bp,
        cart_bp,
        orders_bp,
        reviews_bp,
        dashboard_bp,
        care_bp,
        conversations_bp,
        reports_bp,
        credits_bp,
        notifications_bp,
        admin_bp,
    ):
        app.register_blueprint(blueprint, url_prefix="/api")

    # Provide a simple health check route
    @app.route("/api/health")
    def health_check() -> dict[str, str]:
        """Return a simple health check response.

        This endpoint can be used by deployment platforms to verify
        that the application has started correctly.
        """
        return {"status": "ok"}

    return app


__all__ = ["create_app", "db", "jwt", "migrate"]
