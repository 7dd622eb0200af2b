"""Environment-driven configuration."""
from __future__ import annotations

import os
import re

from dotenv import load_dotenv

load_dotenv()

_DURATION_RE = re.compile(r"^\s*(\d+)\s*([smhd]?)\s*$")
_UNIT_SECONDS = {"": 1, "s": 1, "m": 60, "h": 3600, "d": 86400}


def parse_duration(value: str | int) -> int:
    """Convert ``30d`` / ``12h`` / ``900`` style durations to seconds."""
    if isinstance(value, int):
        return value
    match = _DURATION_RE.match(value or "")
    if not match:
        raise ValueError(f"invalid duration: {value!r}")
    amount, unit = match.groups()
    return int(amount) * _UNIT_SECONDS[unit]


class Config:
    JWT_SECRET = os.environ.get("JWT_SECRET") or "change-me-in-production"
    JWT_EXPIRES_IN = os.environ.get("JWT_EXPIRES_IN", "30d")
    JWT_REFRESH_SECRET = os.environ.get("JWT_REFRESH_SECRET") or JWT_SECRET
    JWT_REFRESH_EXPIRES_IN = os.environ.get("JWT_REFRESH_EXPIRES_IN", "7d")

    SECRET_KEY = os.environ.get("SECRET_KEY") or JWT_SECRET

    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL") or "sqlite:///storeadmin.db"
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    DB_POOL_SIZE = int(os.environ.get("DB_POOL_SIZE", 10))

    FRONTEND_URL = os.environ.get("FRONTEND_URL") or "*"
    APP_ENV = os.environ.get("APP_ENV", "production")
    PORT = int(os.environ.get("PORT", 5000))
