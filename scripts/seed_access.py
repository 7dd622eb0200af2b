#!/usr/bin/env python3
"""Seed default roles, permissions and an administrator account."""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

from sqlalchemy import select
from werkzeug.security import generate_password_hash

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from storeadmin import create_app
from storeadmin.database import transaction
from storeadmin.extensions import db
from storeadmin.models import Account, Manager, Permission, Role

DEFAULT_PERMISSIONS = (
    "manage_catalog",
    "manage_orders",
    "manage_discounts",
    "manage_feedback",
    "manage_accounts",
    "manage_roles",
    "view_reports",
)

DEFAULT_ROLES = {
    "admin": DEFAULT_PERMISSIONS,
    "manager": ("manage_catalog", "manage_orders", "manage_discounts", "manage_feedback"),
}


def _get_or_create(model, **fields):
    instance = db.session.execute(select(model).filter_by(**fields)).scalar_one_or_none()
    if instance is None:
        instance = model(**fields)
        db.session.add(instance)
        print(f"Created {model.__name__} {fields}")
    return instance


def seed(admin_email: str, admin_password: str, admin_name: str) -> None:
    app = create_app()
    with app.app_context():
        db.create_all()
        with transaction() as tx:
            permissions = {name: _get_or_create(Permission, name=name) for name in DEFAULT_PERMISSIONS}
            roles = {}
            for role_name, granted in DEFAULT_ROLES.items():
                role = _get_or_create(Role, name=role_name)
                role.permissions = [permissions[name] for name in granted]
                roles[role_name] = role
            tx.flush()

            account = db.session.execute(
                select(Account).where(Account.email == admin_email)
            ).scalar_one_or_none()
            if account is None:
                account = Account(
                    username=admin_email.split("@")[0],
                    email=admin_email,
                    full_name=admin_name,
                    password=generate_password_hash(admin_password),
                    status="Active",
                )
                tx.add(account)
                tx.flush()
                print(f"Created admin account: {admin_email}")
            if account.manager is None:
                tx.add(Manager(account_id=account.id, role_id=roles["admin"].id))
            else:
                account.manager.role_id = roles["admin"].id

        print("Access control data seeded successfully.")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Seed default roles, permissions and an admin.")
    parser.add_argument("--email", default="admin@example.com", help="Admin email address")
    parser.add_argument("--password", default="Admin123!", help="Admin password")
    parser.add_argument("--name", default="Administrator", help="Admin full name")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    seed(args.email.lower(), args.password, args.name)


if __name__ == "__main__":
    main()
