"""API error taxonomy and the JSON error envelope."""
from __future__ import annotations

import traceback
from contextlib import contextmanager
from typing import Iterator

from flask import Flask, current_app, jsonify
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError
from werkzeug.exceptions import HTTPException

from .extensions import db


class ApiError(Exception):
    """Base class for errors that map directly onto an HTTP status."""

    status_code = 500

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class BadRequest(ApiError):
    status_code = 400


class Unauthenticated(ApiError):
    status_code = 401


class Forbidden(ApiError):
    status_code = 403


class NotFound(ApiError):
    status_code = 404


class Conflict(ApiError):
    status_code = 409


def is_development() -> bool:
    return current_app.config.get("APP_ENV") == "development"


def error_response(message: str, status_code: int, exc: BaseException | None = None):
    body: dict[str, object] = {
        "status": "fail" if 400 <= status_code < 500 else "error",
        "message": message,
    }
    if exc is not None and is_development():
        body["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return jsonify(body), status_code


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(ApiError)
    def handle_api_error(exc: ApiError):
        return error_response(exc.message, exc.status_code, exc)

    @app.errorhandler(HTTPException)
    def handle_http_error(exc: HTTPException):
        return error_response(exc.description or exc.name, exc.code or 500, exc)

    @app.errorhandler(IntegrityError)
    def handle_integrity_error(exc: IntegrityError):
        db.session.rollback()
        current_app.logger.warning("Constraint violation: %s", exc.orig)
        return error_response("The request conflicts with existing data", 409, exc)

    @app.errorhandler(StaleDataError)
    def handle_stale_data(exc: StaleDataError):
        db.session.rollback()
        current_app.logger.warning("Concurrent update rejected: %s", exc)
        return error_response("The record was changed by another request, please retry", 409, exc)

    @app.errorhandler(SQLAlchemyError)
    def handle_database_error(exc: SQLAlchemyError):
        db.session.rollback()
        current_app.logger.exception("Database operation failed", exc_info=exc)
        return error_response("Database operation failed", 500, exc)

    @app.errorhandler(Exception)
    def handle_unexpected_error(exc: Exception):
        db.session.rollback()
        current_app.logger.exception("Unhandled error", exc_info=exc)
        return error_response("Internal server error", 500, exc)


@contextmanager
def conflict_on_duplicate(message: str) -> Iterator[None]:
    """Re-raise a constraint violation from the wrapped block as ``Conflict``."""
    try:
        yield
    except IntegrityError as exc:
        current_app.logger.info("Constraint violation: %s", exc.orig)
        raise Conflict(message) from exc
