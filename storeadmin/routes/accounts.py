"""Account administration: users, roles and permissions."""
from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy import or_, select
from werkzeug.security import generate_password_hash

from .. import cascades, validators
from ..auth import admin_only, current_actor, protect
from ..database import transaction
from ..errors import BadRequest, Conflict, NotFound, conflict_on_duplicate
from ..extensions import db
from ..models import (
    ACCOUNT_STATUSES,
    ROLE_STATUSES,
    Account,
    Customer,
    Manager,
    Permission,
    Role,
)
from ..pagination import int_arg, like_pattern, list_params, paginate

users_bp = Blueprint("users", __name__)
roles_bp = Blueprint("roles", __name__)
permissions_bp = Blueprint("permissions", __name__)

ACCOUNT_TYPES = ("manager", "customer")

USER_SORTS = {
    "id": Account.id,
    "full_name": Account.full_name,
    "email": Account.email,
    "status": Account.status,
    "created_at": Account.created_at,
    "role": Role.name,
}

EMAIL_IN_USE = "Email already in use"


def _account_or_404(account_id: int) -> Account:
    account = db.session.get(Account, account_id)
    if account is None:
        raise NotFound("Account not found")
    return account


def _role_or_404(role_id) -> Role:
    role = db.session.get(Role, validators.integer(role_id, "role_id"))
    if role is None:
        raise NotFound("Role not found")
    return role


def _email_taken(email: str, exclude_id: int | None = None) -> bool:
    stmt = select(Account.id).where(Account.email == email)
    if exclude_id is not None:
        stmt = stmt.where(Account.id != exclude_id)
    return db.session.execute(stmt).first() is not None


# --- Own profile ----------------------------------------------------------


@users_bp.get("/profile")
@protect
def get_profile() -> tuple[dict[str, object], int]:
    return jsonify(_account_or_404(current_actor().id).to_dict()), 200


@users_bp.put("/profile")
@protect
def update_profile() -> tuple[dict[str, object], int]:
    account = _account_or_404(current_actor().id)
    payload = validators.json_body()

    email = None
    if payload.get("email"):
        email = validators.email(payload)
        if _email_taken(email, exclude_id=account.id):
            raise Conflict(EMAIL_IN_USE)

    with conflict_on_duplicate(EMAIL_IN_USE), transaction():
        if payload.get("full_name"):
            account.full_name = validators.required_str(payload, "full_name")
        if email:
            account.email = email
        if payload.get("password"):
            account.password = generate_password_hash(payload["password"])
    return jsonify(account.to_dict()), 200


# --- Users ----------------------------------------------------------------


@users_bp.get("")
@admin_only
def list_users() -> tuple[dict[str, object], int]:
    """Paginated accounts with type, status and role filters.
    ---
    tags:
      - Users
    parameters:
      - name: type
        in: query
        type: string
        enum: [manager, customer, all]
      - name: status
        in: query
        type: string
        enum: [Active, Inactive]
      - name: role_id
        in: query
        type: integer
      - name: sortBy
        in: query
        type: string
        enum: [id, full_name, email, status, created_at, role]
        default: id
    responses:
      200:
        description: One page of accounts.
      400:
        description: Invalid parameters.
      403:
        description: Caller is not an admin.
    """
    params = list_params(USER_SORTS, "id")
    stmt = (
        select(Account)
        .outerjoin(Manager, Manager.account_id == Account.id)
        .outerjoin(Role, Role.id == Manager.role_id)
        .outerjoin(Customer, Customer.account_id == Account.id)
    )

    account_type = request.args.get("type") or "all"
    validators.choice(account_type, "type", ACCOUNT_TYPES + ("all",))
    if account_type == "manager":
        stmt = stmt.where(Manager.id.is_not(None))
    elif account_type == "customer":
        stmt = stmt.where(Customer.id.is_not(None))

    status = request.args.get("status")
    if status:
        stmt = stmt.where(Account.status == validators.choice(status, "status", ACCOUNT_STATUSES))
    role_id = int_arg("role_id")
    if role_id is not None:
        stmt = stmt.where(Manager.role_id == role_id)

    if params.search:
        pattern = like_pattern(params.search)
        stmt = stmt.where(
            or_(
                Account.full_name.ilike(pattern, escape="\\"),
                Account.email.ilike(pattern, escape="\\"),
                Account.username.ilike(pattern, escape="\\"),
            )
        )

    return jsonify(paginate(stmt, params, USER_SORTS, Account.to_dict)), 200


@users_bp.get("/<int:account_id>")
@admin_only
def get_user(account_id: int) -> tuple[dict[str, object], int]:
    return jsonify(_account_or_404(account_id).to_dict()), 200


@users_bp.post("")
@admin_only
def create_user() -> tuple[dict[str, object], int]:
    payload = validators.json_body()
    required = ("full_name", "email", "password", "account_type")
    if any(not payload.get(key) for key in required):
        raise BadRequest("Please provide full name, email, password, and account type")
    account_type = payload["account_type"]
    if account_type not in ACCOUNT_TYPES:
        raise BadRequest("Invalid account type specified")
    if account_type == "manager" and payload.get("role_id") in (None, ""):
        raise BadRequest("Please provide role_id for manager accounts")

    email = validators.email(payload)
    if _email_taken(email):
        raise Conflict("Account with this email already exists")
    role = _role_or_404(payload["role_id"]) if account_type == "manager" else None

    account = Account(
        username=validators.optional_str(payload, "username") or email.split("@")[0],
        email=email,
        password=generate_password_hash(payload["password"]),
        full_name=validators.required_str(payload, "full_name"),
        status=validators.choice(payload.get("status", "Active"), "status", ACCOUNT_STATUSES),
    )
    with conflict_on_duplicate("Account with this email already exists"), transaction() as tx:
        tx.add(account)
        tx.flush()
        if role is not None:
            tx.add(Manager(account_id=account.id, role_id=role.id))
        else:
            tx.add(
                Customer(
                    account_id=account.id,
                    phone_number=validators.optional_str(payload, "phone_number"),
                    address=validators.optional_str(payload, "address"),
                )
            )

    current_app.logger.info("Account %s created as %s", account.id, account_type)
    db.session.refresh(account)
    return jsonify(account.to_dict()), 201


@users_bp.put("/<int:account_id>")
@admin_only
def update_user(account_id: int) -> tuple[dict[str, object], int]:
    account = _account_or_404(account_id)
    payload = validators.json_body()

    email = None
    if payload.get("email"):
        email = validators.email(payload)
        if _email_taken(email, exclude_id=account_id):
            raise Conflict(EMAIL_IN_USE)
    role = None
    if account.manager is not None and payload.get("role_id") not in (None, ""):
        role = _role_or_404(payload["role_id"])

    with conflict_on_duplicate(EMAIL_IN_USE), transaction():
        if payload.get("full_name"):
            account.full_name = validators.required_str(payload, "full_name")
        if email:
            account.email = email
        if payload.get("status"):
            account.status = validators.choice(payload["status"], "status", ACCOUNT_STATUSES)
        if role is not None:
            account.manager.role_id = role.id
        if account.customer is not None:
            for field in ("phone_number", "address"):
                if field in payload:
                    setattr(account.customer, field, validators.optional_str(payload, field))

    db.session.refresh(account)
    return jsonify(account.to_dict()), 200


@users_bp.delete("/<int:account_id>")
@admin_only
def delete_user(account_id: int):
    if account_id == current_actor().id:
        raise BadRequest("You cannot delete your own account")

    with transaction() as tx:
        cascades.delete_with_rules(tx, cascades.ACCOUNT, account_id)
    current_app.logger.info("Account %s deleted by %s", account_id, current_actor().id)
    return "", 204


# --- Roles ----------------------------------------------------------------


def _permissions(raw) -> list[Permission]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise BadRequest("permissionIds must be a list")
    ids = {validators.integer(value, "permissionIds") for value in raw}
    permissions = db.session.execute(
        select(Permission).where(Permission.id.in_(ids))
    ).scalars().all()
    missing = ids - {permission.id for permission in permissions}
    if missing:
        raise BadRequest(f"Unknown permission ids: {', '.join(map(str, sorted(missing)))}")
    return permissions


def _role_name_taken(name: str, exclude_id: int | None = None) -> bool:
    stmt = select(Role.id).where(Role.name == name)
    if exclude_id is not None:
        stmt = stmt.where(Role.id != exclude_id)
    return db.session.execute(stmt).first() is not None


@roles_bp.get("")
@admin_only
def list_roles() -> tuple[list[dict[str, object]], int]:
    roles = db.session.execute(select(Role).order_by(Role.id)).scalars()
    return jsonify([role.to_dict() for role in roles]), 200


@roles_bp.get("/<int:role_id>")
@admin_only
def get_role(role_id: int) -> tuple[dict[str, object], int]:
    return jsonify(_role_or_404(role_id).to_dict(with_permissions=True)), 200


@roles_bp.post("")
@admin_only
def create_role() -> tuple[dict[str, object], int]:
    payload = validators.json_body()
    name = validators.required_str(payload, "name", "Role name")
    status = validators.choice(payload.get("status", "Active"), "status", ROLE_STATUSES)
    permissions = _permissions(payload.get("permissionIds"))
    message = f"Role name '{name}' already exists."
    if _role_name_taken(name):
        raise Conflict(message)

    role = Role(name=name, status=status)
    with conflict_on_duplicate(message), transaction() as tx:
        role.permissions = permissions
        tx.add(role)
    return jsonify(role.to_dict(with_permissions=True)), 201


@roles_bp.put("/<int:role_id>")
@admin_only
def update_role(role_id: int) -> tuple[dict[str, object], int]:
    """Update a role; ``permissionIds`` replaces the whole permission set."""
    role = _role_or_404(role_id)
    payload = validators.json_body()

    name = None
    if "name" in payload:
        name = validators.required_str(payload, "name", "Role name")
        if _role_name_taken(name, exclude_id=role_id):
            raise Conflict(f"Role name '{name}' already exists.")
    status = None
    if "status" in payload:
        status = validators.choice(payload["status"], "status", ROLE_STATUSES)
    permissions = None
    if "permissionIds" in payload:
        permissions = _permissions(payload["permissionIds"])

    with conflict_on_duplicate(f"Role name '{name}' already exists."), transaction():
        if name is not None:
            role.name = name
        if status is not None:
            role.status = status
        if permissions is not None:
            role.permissions = permissions
    return jsonify(role.to_dict(with_permissions=True)), 200


@roles_bp.delete("/<int:role_id>")
@admin_only
def delete_role(role_id: int):
    with transaction() as tx:
        cascades.delete_with_rules(tx, cascades.ROLE, role_id)
    return "", 204


# --- Permissions ----------------------------------------------------------


@permissions_bp.get("")
@admin_only
def list_permissions() -> tuple[list[dict[str, object]], int]:
    permissions = db.session.execute(select(Permission).order_by(Permission.name)).scalars()
    return jsonify([permission.to_dict() for permission in permissions]), 200


@permissions_bp.get("/<int:permission_id>")
@admin_only
def get_permission(permission_id: int) -> tuple[dict[str, object], int]:
    permission = db.session.get(Permission, permission_id)
    if permission is None:
        raise NotFound("Permission not found")
    return jsonify(permission.to_dict()), 200
