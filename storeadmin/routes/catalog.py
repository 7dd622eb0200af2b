"""Category and attribute endpoints."""
from __future__ import annotations

from flask import Blueprint, jsonify
from sqlalchemy import select

from .. import cascades, validators
from ..auth import admin_only
from ..database import transaction
from ..errors import Conflict, NotFound, conflict_on_duplicate
from ..extensions import db
from ..models import Attribute, AttributeValue, Category
from ..pagination import like_pattern, list_params, paginate

categories_bp = Blueprint("categories", __name__)
attributes_bp = Blueprint("attributes", __name__)

CATEGORY_SORTS = {"id": Category.id, "name": Category.name}
ATTRIBUTE_SORTS = {"id": Attribute.id, "name": Attribute.name}


def _get_or_404(model, pk: int, label: str):
    instance = db.session.get(model, pk)
    if instance is None:
        raise NotFound(f"{label} not found")
    return instance


def _name_taken(model, name: str, exclude_id: int | None = None) -> bool:
    stmt = select(model.id).where(model.name == name)
    if exclude_id is not None:
        stmt = stmt.where(model.id != exclude_id)
    return db.session.execute(stmt).first() is not None


# --- Categories -----------------------------------------------------------


@categories_bp.get("")
def list_categories() -> tuple[dict[str, object], int]:
    """Paginated category list.
    ---
    tags:
      - Categories
    parameters:
      - name: search
        in: query
        type: string
      - name: sortBy
        in: query
        type: string
        enum: [id, name]
        default: name
      - name: sortOrder
        in: query
        type: string
        enum: [asc, desc]
      - name: page
        in: query
        type: integer
      - name: pageSize
        in: query
        type: integer
        maximum: 100
    responses:
      200:
        description: One page of categories.
      400:
        description: Invalid parameters.
    """
    params = list_params(CATEGORY_SORTS, "name")
    stmt = select(Category)
    if params.search:
        stmt = stmt.where(Category.name.ilike(like_pattern(params.search), escape="\\"))
    return jsonify(paginate(stmt, params, CATEGORY_SORTS, Category.to_dict)), 200


@categories_bp.get("/all")
def all_categories() -> tuple[list[dict[str, object]], int]:
    categories = db.session.execute(select(Category).order_by(Category.name)).scalars()
    return jsonify([category.to_dict() for category in categories]), 200


@categories_bp.get("/<int:category_id>")
def get_category(category_id: int) -> tuple[dict[str, object], int]:
    return jsonify(_get_or_404(Category, category_id, "Category").to_dict()), 200


@categories_bp.post("")
@admin_only
def create_category() -> tuple[dict[str, object], int]:
    payload = validators.json_body()
    name = validators.required_str(payload, "name", "Category name")
    if _name_taken(Category, name):
        raise Conflict("Category with this name already exists")

    category = Category(name=name)
    with conflict_on_duplicate("Category with this name already exists"), transaction() as tx:
        tx.add(category)
    return jsonify(category.to_dict()), 201


@categories_bp.put("/<int:category_id>")
@admin_only
def update_category(category_id: int) -> tuple[dict[str, object], int]:
    category = _get_or_404(Category, category_id, "Category")
    payload = validators.json_body()
    name = validators.required_str(payload, "name", "Category name")
    if _name_taken(Category, name, exclude_id=category_id):
        raise Conflict("Category with this name already exists")

    with conflict_on_duplicate("Category with this name already exists"), transaction():
        category.name = name
    return jsonify(category.to_dict()), 200


@categories_bp.delete("/<int:category_id>")
@admin_only
def delete_category(category_id: int):
    with transaction() as tx:
        cascades.delete_with_rules(tx, cascades.CATEGORY, category_id)
    return "", 204


# --- Attributes -----------------------------------------------------------


@attributes_bp.get("")
def list_attributes() -> tuple[dict[str, object], int]:
    params = list_params(ATTRIBUTE_SORTS, "name")
    stmt = select(Attribute)
    if params.search:
        stmt = stmt.where(Attribute.name.ilike(like_pattern(params.search), escape="\\"))
    body = paginate(
        stmt,
        params,
        ATTRIBUTE_SORTS,
        lambda attribute: attribute.to_dict(with_values=True),
    )
    return jsonify(body), 200


@attributes_bp.get("/<int:attribute_id>")
def get_attribute(attribute_id: int) -> tuple[dict[str, object], int]:
    attribute = _get_or_404(Attribute, attribute_id, "Attribute")
    return jsonify(attribute.to_dict(with_values=True)), 200


@attributes_bp.post("")
@admin_only
def create_attribute() -> tuple[dict[str, object], int]:
    payload = validators.json_body()
    name = validators.required_str(payload, "name", "Attribute name")
    if _name_taken(Attribute, name):
        raise Conflict("Attribute already exists")

    attribute = Attribute(name=name)
    with conflict_on_duplicate("Attribute already exists"), transaction() as tx:
        tx.add(attribute)
    return jsonify(attribute.to_dict()), 201


@attributes_bp.put("/<int:attribute_id>")
@admin_only
def update_attribute(attribute_id: int) -> tuple[dict[str, object], int]:
    attribute = _get_or_404(Attribute, attribute_id, "Attribute")
    payload = validators.json_body()
    name = validators.required_str(payload, "name", "Attribute name")
    if _name_taken(Attribute, name, exclude_id=attribute_id):
        raise Conflict("Attribute name already exists")

    with conflict_on_duplicate("Attribute name already exists"), transaction():
        attribute.name = name
    return jsonify(attribute.to_dict(with_values=True)), 200


@attributes_bp.delete("/<int:attribute_id>")
@admin_only
def delete_attribute(attribute_id: int):
    with transaction() as tx:
        cascades.delete_with_rules(tx, cascades.ATTRIBUTE, attribute_id)
    return "", 204


@attributes_bp.post("/<int:attribute_id>/values")
@admin_only
def add_attribute_value(attribute_id: int) -> tuple[dict[str, object], int]:
    payload = validators.json_body()
    value = validators.required_str(payload, "value", "Attribute value")
    _get_or_404(Attribute, attribute_id, "Attribute")

    duplicate = db.session.execute(
        select(AttributeValue.id).where(
            AttributeValue.attribute_id == attribute_id, AttributeValue.value == value
        )
    ).first()
    if duplicate:
        raise Conflict("Value already exists for this attribute")

    attribute_value = AttributeValue(attribute_id=attribute_id, value=value)
    with conflict_on_duplicate("Value already exists for this attribute"), transaction() as tx:
        tx.add(attribute_value)
    return jsonify(attribute_value.to_dict()), 201


@attributes_bp.delete("/<int:attribute_id>/values/<int:value_id>")
@admin_only
def delete_attribute_value(attribute_id: int, value_id: int):
    _get_or_404(Attribute, attribute_id, "Attribute")
    attribute_value = db.session.get(AttributeValue, value_id)
    if attribute_value is None or attribute_value.attribute_id != attribute_id:
        raise NotFound("Attribute value not found")

    with transaction() as tx:
        cascades.delete_with_rules(tx, cascades.ATTRIBUTE_VALUE, value_id)
    return "", 204
