# backend/laundry/__init__.py
import logging

from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException

from .config import Config
from .errors import LaundryError
from .extensions import db, events, migrate


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    app.logger.setLevel(getattr(logging, str(app.config["LOG_LEVEL"]).upper(), logging.INFO))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    events.init_app(app)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.tenants import tenants_bp
    from .routes.items import items_bp
    from .routes.scan import scan_bp
    from .routes.pickups import pickups_bp
    from .routes.deliveries import deliveries_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(tenants_bp)
    app.register_blueprint(items_bp)
    app.register_blueprint(scan_bp)
    app.register_blueprint(pickups_bp)
    app.register_blueprint(deliveries_bp)

    @app.errorhandler(LaundryError)
    def handle_laundry_error(exc: LaundryError):
        db.session.rollback()
        return jsonify(exc.to_dict()), exc.status_code

    @app.errorhandler(Exception)
    def handle_unexpected_error(exc: Exception):
        if isinstance(exc, HTTPException):
            return exc
        db.session.rollback()
        app.logger.exception("Unhandled error on %s %s", request.method, request.path)
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500

    # Event subscribers (module-level bus, so register once)
    from .services.accounting_service import register_accounting_sync
    from .services.notification_service import register_transition_logging

    register_accounting_sync(events)
    register_transition_logging(events)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
