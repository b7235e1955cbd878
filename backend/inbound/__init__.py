# backend/inbound/__init__.py
from __future__ import annotations

from flask import Flask

from .config import Config
from .extensions import db, migrate



def create_app(config_overrides: dict | None = None, publisher=None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Event publisher is injected into the reconciler, never looked up globally
    from .services.broadcast_service import build_publisher
    app.extensions["event_publisher"] = publisher if publisher is not None else build_publisher(app.config)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.scans import scans_bp
    from .routes.location_trackers import location_trackers_bp
    from .routes.purchase_orders import purchase_orders_bp
    from .routes.epc_tracking import epc_tracking_bp
    from .routes.events import events_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(scans_bp)
    app.register_blueprint(location_trackers_bp)
    app.register_blueprint(purchase_orders_bp)
    app.register_blueprint(epc_tracking_bp)
    app.register_blueprint(events_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
