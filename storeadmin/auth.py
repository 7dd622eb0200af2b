"""Bearer-token identity and role gates."""
from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import wraps

import jwt
from flask import current_app, g, request

from .config import parse_duration
from .errors import Forbidden, Unauthenticated
from .extensions import db
from .models import Account

ALGORITHM = "HS256"


class ActorRole(str, enum.Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    USER = "user"


STAFF = (ActorRole.ADMIN, ActorRole.MANAGER)


@dataclass(frozen=True)
class Actor:
    id: int
    email: str
    full_name: str
    role: ActorRole
    role_name: str | None = None
    manager_id: int | None = None
    customer_id: int | None = None

    @property
    def is_admin(self) -> bool:
        return self.role is ActorRole.ADMIN

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF


def resolve_role(account: Account) -> ActorRole:
    """Map an account onto the closed role set; no manager row means ``user``."""
    manager = account.manager
    if manager is None or manager.role is None:
        return ActorRole.USER
    if manager.role.name.strip().lower() == ActorRole.ADMIN.value:
        return ActorRole.ADMIN
    return ActorRole.MANAGER


def actor_for(account: Account) -> Actor:
    manager = account.manager
    return Actor(
        id=account.id,
        email=account.email,
        full_name=account.full_name,
        role=resolve_role(account),
        role_name=manager.role.name if manager and manager.role else None,
        manager_id=manager.id if manager else None,
        customer_id=account.customer.id if account.customer else None,
    )


def _encode(claims: dict[str, object], secret: str, ttl: str) -> str:
    payload = dict(claims)
    payload["exp"] = datetime.now(timezone.utc) + timedelta(seconds=parse_duration(ttl))
    return jwt.encode(payload, secret, algorithm=ALGORITHM)


def issue_access_token(actor: Actor) -> str:
    config = current_app.config
    return _encode(
        {"id": actor.id, "role": actor.role.value},
        config["JWT_SECRET"],
        config["JWT_EXPIRES_IN"],
    )


def issue_refresh_token(actor: Actor) -> str:
    config = current_app.config
    return _encode(
        {"id": actor.id, "type": "refresh"},
        config.get("JWT_REFRESH_SECRET") or config["JWT_SECRET"],
        config["JWT_REFRESH_EXPIRES_IN"],
    )


def decode_access_token(token: str) -> dict:
    try:
        return jwt.decode(token, current_app.config["JWT_SECRET"], algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError as exc:
        raise Unauthenticated("Token expired, please log in again") from exc
    except jwt.InvalidTokenError as exc:
        raise Unauthenticated("Not authorized, token failed") from exc


def decode_refresh_token(token: str) -> dict:
    config = current_app.config
    secret = config.get("JWT_REFRESH_SECRET") or config["JWT_SECRET"]
    try:
        payload = jwt.decode(token, secret, algorithms=[ALGORITHM])
    except jwt.InvalidTokenError as exc:
        raise Unauthenticated("Invalid or expired refresh token") from exc
    if payload.get("type") != "refresh":
        raise Unauthenticated("Invalid or expired refresh token")
    return payload


def load_actor(account_id) -> Actor:
    account = db.session.get(Account, account_id) if isinstance(account_id, int) else None
    if account is None:
        raise Unauthenticated("The user belonging to this token no longer exists")
    if account.status != "Active":
        raise Unauthenticated("Account is inactive")
    return actor_for(account)


def _bearer_token() -> str:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme != "Bearer" or not token.strip():
        raise Unauthenticated("Not authorized, no token")
    return token.strip()


def authenticate() -> Actor:
    """Resolve the request's bearer token into an Actor stored on ``g``."""
    payload = decode_access_token(_bearer_token())
    actor = load_actor(payload.get("id"))
    g.actor = actor
    current_app.logger.debug("Authenticated account %s as %s", actor.id, actor.role.value)
    return actor


def current_actor() -> Actor:
    return g.actor


def protect(view):
    @wraps(view)
    def wrapper(*args, **kwargs):
        authenticate()
        return view(*args, **kwargs)

    return wrapper


def restrict_to(*roles: ActorRole):
    """Allow the wrapped view only for actors whose role is in ``roles``."""
    allowed = frozenset(roles)

    def decorator(view):
        @wraps(view)
        @protect
        def wrapper(*args, **kwargs):
            if g.actor.role not in allowed:
                raise Forbidden("You do not have permission to perform this action")
            return view(*args, **kwargs)

        return wrapper

    return decorator


staff_only = restrict_to(*STAFF)
admin_only = restrict_to(ActorRole.ADMIN)
