# backend/storefront/__init__.py
import logging
import os

from flask import Flask, request

from .config import Config
from .extensions import db, migrate


def create_app(test_config: dict | None = None) -> Flask:
    # Named after the package so storefront.* module loggers reach app.logger
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    if not app.config.get("SLIP_UPLOAD_DIR"):
        app.config["SLIP_UPLOAD_DIR"] = os.path.join(app.instance_path, "uploads", "slips")
    os.makedirs(app.config["SLIP_UPLOAD_DIR"], exist_ok=True)

    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.slips import slips_bp
    from .routes.admin_slips import admin_slips_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(slips_bp)
    app.register_blueprint(admin_slips_bp)

    allowed_origins = set(app.config.get("CORS_ALLOWED_ORIGINS", []))

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
