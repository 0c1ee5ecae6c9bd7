# backend/salonerp/__init__.py
from flask import Flask, request

from .config import Config
from .extensions import db, migrate


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.locations import locations_bp
    from .routes.staff import staff_bp
    from .routes.clients import clients_bp
    from .routes.catalog import catalog_bp
    from .routes.products import products_bp
    from .routes.inventory import inventory_bp  # Stock ledger
    from .routes.appointments import appointments_bp  # Appointment lifecycle
    from .routes.client_portal import client_portal_bp
    from .routes.sales import sales_bp  # POS

    app.register_blueprint(system_bp)
    app.register_blueprint(locations_bp)
    app.register_blueprint(staff_bp)
    app.register_blueprint(clients_bp)
    app.register_blueprint(catalog_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(appointments_bp)
    app.register_blueprint(client_portal_bp)
    app.register_blueprint(sales_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = {
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        }
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = (
                "Content-Type, X-User-Id, X-User-Name, X-User-Role, X-User-Locations"
            )
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
