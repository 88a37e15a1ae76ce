# backend/stationops/__init__.py
from flask import Flask

from .config import Config
from .extensions import db, migrate


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.shifts import shifts_bp  # Shift lifecycle + reconciliation gate
    from .routes.transactions import transactions_bp
    from .routes.anomalies import anomalies_bp  # Daily anomalies (stations without shifts)

    app.register_blueprint(system_bp)
    app.register_blueprint(shifts_bp)
    app.register_blueprint(transactions_bp)
    app.register_blueprint(anomalies_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
