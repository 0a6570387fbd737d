# backend/agroconsult/__init__.py
import logging

from flask import Flask, jsonify, request

from .config import Config
from .errors import ServiceError
from .extensions import db, migrate



def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    app.logger.setLevel(getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.notifications import notifications_bp
    from .routes.inventory_adjustments import inventory_adjustments_bp
    from .routes.inventory import inventory_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(notifications_bp)
    app.register_blueprint(inventory_adjustments_bp)
    app.register_blueprint(inventory_bp)

    @app.errorhandler(ServiceError)
    def handle_service_error(exc: ServiceError):
        return jsonify(exc.to_dict()), exc.status_code

    # Flask has already logged the traceback via app.logger by the time this runs
    @app.errorhandler(500)
    def handle_internal_error(exc):
        return jsonify({"success": False, "error": "INTERNAL_ERROR", "message": "Internal server error"}), 500

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin and origin.rstrip("/") == (app.config.get("FRONTEND_URL") or "").rstrip("/"):
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
