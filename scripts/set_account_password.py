"""Utility to reset an account password for local development."""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

from sqlalchemy import select
from werkzeug.security import generate_password_hash

# Ensure the project root is on sys.path so ``storeadmin`` can be imported when the script is executed directly.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from storeadmin import create_app
from storeadmin.database import transaction
from storeadmin.extensions import db
from storeadmin.models import Account


def set_password(email: str, password: str) -> bool:
    app = create_app()

    with app.app_context():
        account = db.session.execute(
            select(Account).where(Account.email == email.lower())
        ).scalar_one_or_none()
        if account is None:
            print(f"Error: no account found for '{email}'")
            return False

        with transaction():
            account.password = generate_password_hash(password)

        print(f"Password for '{email}' has been set successfully.")
        return True


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Set an account password for local testing.")
    parser.add_argument("email", help="Account email address")
    parser.add_argument("password", help="Plain-text password to hash and store")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    if not set_password(args.email, args.password):
        sys.exit(1)


if __name__ == "__main__":
    main()
