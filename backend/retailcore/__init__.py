# backend/retailcore/__init__.py
from flask import Flask

from .config import Config
from .extensions import db, migrate


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    # Overrides must land before extensions read the config
    if test_config:
        app.config.update(test_config)

    app.logger.setLevel(app.config["LOG_LEVEL"])

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    from .services.concurrency import configure_sqlite_transactions
    with app.app_context():
        if db.engine.dialect.name == "sqlite":
            configure_sqlite_transactions(db.engine)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.pos import pos_bp
    from .routes.sales import sales_bp
    from .routes.sync import sync_bp
    from .routes.stock import stock_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(pos_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(sync_bp)
    app.register_blueprint(stock_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
