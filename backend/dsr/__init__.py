# backend/dsr/__init__.py
import logging
from datetime import timedelta

from flask import Flask, request

from .config import Config, REQUIRED_SETTINGS
from .extensions import db
from .errors import register_error_handlers
from .services.identity_provider import IdentityProvider
from .services.token_service import TokenIssuer


def create_app(config_object=None, *, identity_transport=None) -> Flask:
    """
    Build the API application.

    identity_transport is handed to the identity-provider client; tests pass
    an httpx.MockTransport here.
    """
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_object or Config)

    if not app.config.get("TESTING"):
        missing = [key for key in REQUIRED_SETTINGS if not app.config.get(key)]
        if missing:
            raise RuntimeError(f"Missing required configuration: {', '.join(missing)}")

    app.logger.setLevel(getattr(logging, str(app.config["LOG_LEVEL"]).upper(), logging.INFO))
    logging.getLogger("dsr").setLevel(app.logger.level)

    # Initialize extensions
    db.init_app(app)

    from . import models  # noqa: F401

    app.extensions["token_issuer"] = TokenIssuer(
        app.config["JWT_SECRET"],
        algorithm=app.config["JWT_ALGORITHM"],
        login_ttl=timedelta(hours=app.config["TOKEN_TTL_HOURS"]),
    )
    app.extensions["identity_provider"] = IdentityProvider(
        app.config["IDP_URL"],
        app.config["IDP_ANON_KEY"],
        timeout=app.config["IDP_TIMEOUT_SECONDS"],
        transport=identity_transport,
    )
    if not app.extensions["identity_provider"].configured:
        app.logger.warning("Identity provider not configured; external sign-in is disabled")

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.stores import stores_bp
    from .routes.sales import sales_bp
    from .routes.expenses import expenses_bp
    from .routes.vouchers import vouchers_bp
    from .routes.admin import admin_bp
    from .routes.reports import reports_bp, dashboard_bp
    from .routes.damage import damage_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(stores_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(expenses_bp)
    app.register_blueprint(vouchers_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(reports_bp)
    app.register_blueprint(dashboard_bp)
    app.register_blueprint(damage_bp)

    register_error_handlers(app)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origin = app.config.get("CORS_ORIGIN")
        if origin and origin == allowed_origin:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Credentials"] = "true"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
