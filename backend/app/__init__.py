# backend/app/__init__.py
from __future__ import annotations

from typing import Mapping

from flask import Flask, current_app, request

from .config import Config
from .db_pool import ConnectionPool, engine_options_from_config
from .extensions import db, migrate
from .services.stocktake_service import StocktakeService


def create_app(test_config: Mapping | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))
    app.config.setdefault("SQLALCHEMY_ENGINE_OPTIONS", engine_options_from_config(app.config))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # The stocktake service gets its own pool handle over the Flask-SQLAlchemy engine
    with app.app_context():
        pool = ConnectionPool().init(engine=db.engine)
    app.extensions["stocktake_pool"] = pool
    app.extensions["stocktake_service"] = StocktakeService.from_config(pool, app.config)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.products import products_bp
    from .routes.stocktakes import stocktakes_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(stocktakes_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = {
            "http://localhost:3000",
            "http://127.0.0.1:3000",
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        }
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


def get_stocktake_service() -> StocktakeService:
    return current_app.extensions["stocktake_service"]


def get_pool() -> ConnectionPool:
    return current_app.extensions["stocktake_pool"]
