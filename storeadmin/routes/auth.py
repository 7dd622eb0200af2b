"""Authentication endpoints: login, registration, tokens and own profile."""
from __future__ import annotations

from flask import Blueprint, current_app, jsonify
from sqlalchemy import select
from werkzeug.security import check_password_hash, generate_password_hash

from .. import validators
from ..auth import (
    Actor,
    ActorRole,
    actor_for,
    current_actor,
    decode_refresh_token,
    issue_access_token,
    issue_refresh_token,
    load_actor,
    protect,
)
from ..database import transaction
from ..errors import BadRequest, Conflict, NotFound, Unauthenticated, conflict_on_duplicate
from ..extensions import db
from ..models import Account, Customer

bp = Blueprint("auth", __name__)


def _session_payload(actor: Actor) -> dict[str, object]:
    return {
        "id": actor.id,
        "name": actor.full_name,
        "email": actor.email,
        "role": actor.role.value,
        "token": issue_access_token(actor),
        "refreshToken": issue_refresh_token(actor),
    }


@bp.post("/login")
def login() -> tuple[dict[str, object], int]:
    """Authenticate with email and password.
    ---
    tags:
      - Auth
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          required: [email, password]
          properties:
            email:
              type: string
            password:
              type: string
    responses:
      200:
        description: Access and refresh tokens for the account.
      400:
        description: Missing email or password.
      401:
        description: Invalid credentials.
    """
    payload = validators.json_body()
    email = (payload.get("email") or "").strip().lower()
    password = payload.get("password") or ""
    if not email or not password:
        raise BadRequest("Please provide email and password")

    account = db.session.execute(
        select(Account).where(Account.email == email)
    ).scalar_one_or_none()
    if account is None or not check_password_hash(account.password, password):
        raise Unauthenticated("Invalid credentials")
    if account.status != "Active":
        raise Unauthenticated("Account is inactive")

    actor = actor_for(account)
    current_app.logger.info("Account %s logged in as %s", actor.id, actor.role.value)
    return jsonify(_session_payload(actor)), 200


@bp.post("/register")
def register() -> tuple[dict[str, object], int]:
    """Create a customer account and sign it in.
    ---
    tags:
      - Auth
    responses:
      201:
        description: Account created.
      400:
        description: Missing fields.
      409:
        description: Email already registered.
    """
    payload = validators.json_body()
    if not payload.get("name") or not payload.get("email") or not payload.get("password"):
        raise BadRequest("Please provide all required fields")
    name = validators.required_str(payload, "name")
    email = validators.email(payload)
    password = validators.required_str(payload, "password")

    exists = db.session.execute(select(Account.id).where(Account.email == email)).first()
    if exists:
        raise Conflict("User already exists")

    account = Account(
        username=email.split("@")[0],
        email=email,
        password=generate_password_hash(password),
        full_name=name,
        status="Active",
    )
    with conflict_on_duplicate("User already exists"), transaction() as tx:
        tx.add(account)
        tx.flush()
        tx.add(Customer(account_id=account.id))

    actor = Actor(
        id=account.id,
        email=account.email,
        full_name=account.full_name,
        role=ActorRole.USER,
    )
    return jsonify(_session_payload(actor)), 201


@bp.post("/refresh")
def refresh() -> tuple[dict[str, str], int]:
    payload = validators.json_body()
    token = payload.get("refreshToken")
    if not token:
        raise BadRequest("Refresh token is required")

    claims = decode_refresh_token(token)
    try:
        actor = load_actor(claims.get("id"))
    except Unauthenticated as exc:
        raise Unauthenticated("Invalid refresh token") from exc
    return jsonify({"token": issue_access_token(actor)}), 200


@bp.get("/me")
@protect
def me() -> tuple[dict[str, object], int]:
    actor = current_actor()
    return (
        jsonify(
            {
                "id": actor.id,
                "email": actor.email,
                "full_name": actor.full_name,
                "role": actor.role.value,
            }
        ),
        200,
    )


@bp.put("/profile")
@protect
def update_profile() -> tuple[dict[str, object], int]:
    payload = validators.json_body()
    if not payload.get("fullName"):
        raise BadRequest("Full name is required")
    full_name = validators.required_str(payload, "fullName", "Full name")

    actor = current_actor()
    with transaction():
        account = db.session.get(Account, actor.id)
        account.full_name = full_name

    updated = actor_for(account)
    return (
        jsonify(
            {
                "id": updated.id,
                "name": updated.full_name,
                "email": updated.email,
                "role": updated.role.value,
            }
        ),
        200,
    )


@bp.put("/change-password")
@protect
def change_password() -> tuple[dict[str, str], int]:
    payload = validators.json_body()
    current_password = payload.get("currentPassword")
    new_password = payload.get("newPassword")
    if not current_password or not new_password:
        raise BadRequest("Current password and new password are required")

    account = db.session.get(Account, current_actor().id)
    if account is None:
        raise NotFound("User not found")
    if not check_password_hash(account.password, current_password):
        raise Unauthenticated("Current password is incorrect")

    with transaction():
        account.password = generate_password_hash(new_password)

    current_app.logger.info("Password changed for account %s", account.id)
    return jsonify({"message": "Password updated successfully"}), 200


@bp.post("/logout")
@protect
def logout() -> tuple[dict[str, str], int]:
    # Tokens are stateless; the client discards them.
    return jsonify({"message": "Logged out successfully"}), 200
