"""Tests for the persistence gateway."""
from __future__ import annotations

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from storeadmin.database import query, transaction
from storeadmin.extensions import db
from storeadmin.models import Category


def _category_names() -> list[str]:
    return list(db.session.execute(select(Category.name).order_by(Category.name)).scalars())


def test_query_binds_named_parameters(app) -> None:
    with app.app_context():
        db.session.add(Category(name="Phones"))
        db.session.commit()

        rows = query("SELECT name FROM categories WHERE name = :name", {"name": "Phones"})
        injected = query(
            "SELECT name FROM categories WHERE name = :name", {"name": "x' OR '1'='1"}
        )

    assert [row["name"] for row in rows] == ["Phones"]
    assert injected == []


def test_transaction_commits_on_success(app) -> None:
    with app.app_context():
        with transaction() as tx:
            tx.add(Category(name="Phones"))
            tx.add(Category(name="Tablets"))

        db.session.remove()
        assert _category_names() == ["Phones", "Tablets"]


def test_transaction_rolls_back_on_error(app) -> None:
    with app.app_context():
        with pytest.raises(RuntimeError):
            with transaction() as tx:
                tx.add(Category(name="Phones"))
                tx.flush()
                raise RuntimeError("boom")

        assert _category_names() == []


def test_transaction_rolls_back_constraint_violation(app) -> None:
    with app.app_context():
        db.session.add(Category(name="Phones"))
        db.session.commit()

        with pytest.raises(IntegrityError):
            with transaction() as tx:
                tx.add(Category(name="Laptops"))
                tx.add(Category(name="Phones"))

        assert _category_names() == ["Phones"]


def test_rollback_after_commit_is_benign(app) -> None:
    with app.app_context():
        with transaction() as tx:
            tx.add(Category(name="Phones"))
            tx.commit()
            assert tx.rollback() is False

        assert _category_names() == ["Phones"]


def test_commit_twice_is_rejected(app) -> None:
    with app.app_context():
        with pytest.raises(RuntimeError):
            with transaction() as tx:
                tx.commit()
                tx.commit()
