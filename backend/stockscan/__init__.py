# backend/stockscan/__init__.py
from flask import Flask, request

from .config import Config
from .extensions import db, migrate
from .services.scan_session import SessionRegistry


def create_app(overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Open scanning sessions live in memory between requests
    app.extensions["scan_sessions"] = SessionRegistry(app.config.get("SCAN_SESSION_TTL_SECONDS"))

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.stores import stores_bp
    from .routes.products import products_bp
    from .routes.inventory import inventory_bp
    from .routes.scan_sessions import scan_sessions_bp
    from .routes.sales import sales_bp
    from .routes.debts import debts_bp
    from .routes.devices import devices_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(stores_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(scan_sessions_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(debts_bp)
    app.register_blueprint(devices_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = {
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        }
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
