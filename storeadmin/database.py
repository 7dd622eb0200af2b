"""Persistence gateway: single statements and scoped transactions.

Every statement goes through SQLAlchemy with bound parameters. Raw SQL is only
accepted as ``text()`` with ``:name`` placeholders; values are never formatted
into the statement.
"""
from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator, Mapping

from flask import current_app
from sqlalchemy import text
from sqlalchemy.orm import Session

from .extensions import db


def query(sql: str, params: Mapping[str, Any] | None = None) -> list[Mapping[str, Any]]:
    """Execute one statement outside an explicit transaction and return rows."""
    result = db.session.execute(text(sql), dict(params or {}))
    if not result.returns_rows:
        return []
    return [row._mapping for row in result]


class Transaction:
    """Handle over the request session while a transaction scope is open."""

    def __init__(self, session: Session) -> None:
        self.session = session
        self.finalized = False

    def execute(self, statement, params: Mapping[str, Any] | None = None):
        if isinstance(statement, str):
            statement = text(statement)
        if params is None:
            return self.session.execute(statement)
        return self.session.execute(statement, dict(params))

    def add(self, obj) -> None:
        self.session.add(obj)

    def add_all(self, objs) -> None:
        self.session.add_all(objs)

    def delete(self, obj) -> None:
        self.session.delete(obj)

    def flush(self) -> None:
        self.session.flush()

    def commit(self) -> None:
        if self.finalized:
            raise RuntimeError("transaction already finalized")
        self.session.commit()
        self.finalized = True

    def rollback(self) -> bool:
        """Roll back; returns ``False`` when the transaction was already finalized."""
        if self.finalized:
            return False
        self.session.rollback()
        self.finalized = True
        return True


@contextmanager
def transaction() -> Iterator[Transaction]:
    """Open a transaction scope that commits on success and rolls back otherwise."""
    tx = Transaction(db.session)
    try:
        yield tx
        if not tx.finalized:
            tx.commit()
    except BaseException:
        if tx.rollback():
            current_app.logger.debug("Transaction rolled back")
        raise


def close_pool() -> None:
    """Dispose of pooled connections; used during shutdown."""
    db.session.remove()
    db.engine.dispose()
