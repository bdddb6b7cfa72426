# backend/kasir/__init__.py
import logging

from flask import Flask

from .config import Config
from .extensions import db, migrate


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        # Applied before extensions bind so the engine uses the overridden URI
        app.config.update(test_config)

    app.logger.setLevel(getattr(logging, str(app.config["KASIR_LOG_LEVEL"]).upper(), logging.INFO))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.stock import stock_bp
    from .routes.shifts import shifts_bp
    from .routes.opnames import opnames_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(stock_bp)
    app.register_blueprint(shifts_bp)
    app.register_blueprint(opnames_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
