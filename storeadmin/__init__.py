from __future__ import annotations

from typing import Mapping

from flask import Flask, request

from .config import Config, parse_duration
from .errors import register_error_handlers
from .extensions import cors, db
from .routes import register_routes


def create_app(config_object=None):
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)

    if isinstance(config_object, Mapping):
        app.config.from_mapping(config_object)
    elif config_object:
        app.config.from_object(config_object)

    # Fail at startup on malformed token lifetimes.
    parse_duration(app.config["JWT_EXPIRES_IN"])
    parse_duration(app.config["JWT_REFRESH_EXPIRES_IN"])

    uri = app.config["SQLALCHEMY_DATABASE_URI"]
    if not uri.startswith("sqlite"):
        engine_options = dict(app.config.get("SQLALCHEMY_ENGINE_OPTIONS") or {})
        engine_options.setdefault("pool_size", app.config["DB_POOL_SIZE"])
        engine_options.setdefault("pool_pre_ping", True)
        app.config["SQLALCHEMY_ENGINE_OPTIONS"] = engine_options

    db.init_app(app)

    # Allow the admin frontend to talk to the API
    cors.init_app(
        app,
        origins=[app.config["FRONTEND_URL"]],
        supports_credentials=True,
        allow_headers=["Content-Type", "Authorization"],
        methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    )

    register_error_handlers(app)
    register_routes(app)

    if app.config.get("APP_ENV") == "development":

        @app.after_request
        def log_request(response):
            app.logger.info("%s %s -> %s", request.method, request.path, response.status_code)
            return response

    return app
