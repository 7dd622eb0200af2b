"""Product and product variant endpoints."""
from __future__ import annotations

from flask import Blueprint, jsonify, request
from sqlalchemy import func, or_, select

from .. import cascades, validators
from ..auth import admin_only, protect
from ..database import transaction
from ..errors import BadRequest, Conflict, NotFound, conflict_on_duplicate
from ..extensions import db
from ..models import (
    Attribute,
    AttributeValue,
    AttributeVariant,
    Category,
    Product,
    ProductVariant,
)
from ..pagination import MAX_PAGE_SIZE, csv_arg, like_pattern, list_params, paginate

products_bp = Blueprint("products", __name__)
variants_bp = Blueprint("variants", __name__)

_sold_totals = (
    select(
        ProductVariant.product_id.label("product_id"),
        func.coalesce(func.sum(ProductVariant.sold_quantity), 0).label("total_sold_quantity"),
    )
    .group_by(ProductVariant.product_id)
    .subquery()
)
TOTAL_SOLD = func.coalesce(_sold_totals.c.total_sold_quantity, 0)

PRODUCT_SORTS = {
    "id": Product.id,
    "name": Product.name,
    "category_name": Category.name,
    "brand": Product.brand,
    "total_sold_quantity": TOTAL_SOLD,
}

PRODUCT_FIELDS = ("description", "specification", "image_url", "brand")


def _product_or_404(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFound("Product not found")
    return product


def _variant_or_404(variant_id: int) -> ProductVariant:
    variant = db.session.get(ProductVariant, variant_id)
    if variant is None:
        raise NotFound("Variant not found")
    return variant


def _category_or_404(category_id) -> Category:
    category = db.session.get(Category, validators.integer(category_id, "category_id"))
    if category is None:
        raise NotFound("Category not found")
    return category


def product_attribute_summary(product_id: int) -> list[dict[str, object]]:
    """Attributes used by any variant of the product, with the values in use."""
    rows = db.session.execute(
        select(Attribute.id, Attribute.name, AttributeValue.id, AttributeValue.value)
        .join(AttributeVariant, AttributeVariant.attribute_id == Attribute.id)
        .join(AttributeValue, AttributeValue.id == AttributeVariant.attribute_value_id)
        .join(ProductVariant, ProductVariant.id == AttributeVariant.product_variant_id)
        .where(ProductVariant.product_id == product_id)
        .distinct()
        .order_by(Attribute.id, AttributeValue.id)
    ).all()

    summary: dict[int, dict[str, object]] = {}
    for attribute_id, attribute_name, value_id, value in rows:
        entry = summary.setdefault(
            attribute_id, {"id": attribute_id, "name": attribute_name, "values": []}
        )
        entry["values"].append({"id": value_id, "value": value})
    return list(summary.values())


def product_detail(product: Product) -> dict[str, object]:
    data = product.to_dict()
    data["variants"] = [variant.to_dict(with_product=False) for variant in product.variants]
    data["attributes"] = product_attribute_summary(product.id)
    return data


def _list_row(row) -> dict[str, object]:
    product, total_sold = row
    data = product.to_dict()
    data["total_sold_quantity"] = int(total_sold or 0)
    return data


# --- Products -------------------------------------------------------------


@products_bp.get("")
def list_products() -> tuple[dict[str, object], int]:
    """Paginated products with category and brand filters.
    ---
    tags:
      - Products
    parameters:
      - name: search
        in: query
        type: string
        description: Matches product name, category name or brand
      - name: category_id
        in: query
        type: string
        description: Comma-separated category ids
      - name: brand
        in: query
        type: string
        description: Comma-separated brands
      - name: sortBy
        in: query
        type: string
        enum: [id, name, category_name, brand, total_sold_quantity]
        default: id
      - name: sortOrder
        in: query
        type: string
        enum: [asc, desc]
        default: desc
    responses:
      200:
        description: One page of products.
      400:
        description: Invalid parameters.
    """
    params = list_params(PRODUCT_SORTS, "id", "desc")
    stmt = (
        select(Product, TOTAL_SOLD.label("total_sold_quantity"))
        .outerjoin(Category, Category.id == Product.category_id)
        .outerjoin(_sold_totals, _sold_totals.c.product_id == Product.id)
    )
    if params.search:
        pattern = like_pattern(params.search)
        stmt = stmt.where(
            or_(
                Product.name.ilike(pattern, escape="\\"),
                Category.name.ilike(pattern, escape="\\"),
                Product.brand.ilike(pattern, escape="\\"),
            )
        )
    category_ids = [validators.integer(value, "category_id") for value in csv_arg("category_id")]
    if category_ids:
        stmt = stmt.where(Product.category_id.in_(category_ids))
    brands = csv_arg("brand")
    if brands:
        stmt = stmt.where(Product.brand.in_(brands))

    return jsonify(paginate(stmt, params, PRODUCT_SORTS, _list_row, scalars=False)), 200


@products_bp.get("/brands")
def list_brands() -> tuple[list[str], int]:
    brands = db.session.execute(
        select(Product.brand)
        .where(Product.brand.is_not(None), Product.brand != "")
        .distinct()
        .order_by(Product.brand)
    ).scalars()
    return jsonify(list(brands)), 200


@products_bp.get("/category/<int:category_id>")
def products_by_category(category_id: int) -> tuple[list[dict[str, object]], int]:
    _category_or_404(category_id)
    products = db.session.execute(
        select(Product).where(Product.category_id == category_id).order_by(Product.id.desc())
    ).scalars()
    return jsonify([product.to_dict() for product in products]), 200


@products_bp.get("/<int:product_id>")
def get_product(product_id: int) -> tuple[dict[str, object], int]:
    return jsonify(product_detail(_product_or_404(product_id))), 200


@products_bp.post("")
@admin_only
def create_product() -> tuple[dict[str, object], int]:
    payload = validators.json_body()
    name = validators.required_str(payload, "name", "Product name")
    if payload.get("category_id") in (None, ""):
        raise BadRequest("Please provide a category")
    category = _category_or_404(payload["category_id"])

    product = Product(name=name, category_id=category.id)
    for field in PRODUCT_FIELDS:
        setattr(product, field, validators.optional_str(payload, field))

    with transaction() as tx:
        tx.add(product)
    return jsonify(product_detail(product)), 201


@products_bp.put("/<int:product_id>")
@admin_only
def update_product(product_id: int) -> tuple[dict[str, object], int]:
    product = _product_or_404(product_id)
    payload = validators.json_body()

    with transaction():
        if "name" in payload:
            product.name = validators.required_str(payload, "name", "Product name")
        if payload.get("category_id") not in (None, ""):
            product.category_id = _category_or_404(payload["category_id"]).id
        for field in PRODUCT_FIELDS:
            if field in payload:
                setattr(product, field, validators.optional_str(payload, field))
    return jsonify(product_detail(product)), 200


@products_bp.delete("/<int:product_id>")
@admin_only
def delete_product(product_id: int):
    with transaction() as tx:
        cascades.delete_with_rules(tx, cascades.PRODUCT, product_id)
    return "", 204


# --- Variants -------------------------------------------------------------


def _attribute_value_ids(raw) -> list[int]:
    """Accept ``[3, 7]`` or ``[{"attribute_value_id": 3}, ...]``."""
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise BadRequest("attributes must be a list")
    ids = []
    for item in raw:
        if isinstance(item, dict):
            item = item.get("attribute_value_id", item.get("value_id"))
        ids.append(validators.integer(item, "attribute_value_id"))
    return ids


def _resolve_attribute_values(value_ids: list[int]) -> list[AttributeValue]:
    values = []
    seen_axes: set[int] = set()
    for value_id in value_ids:
        value = db.session.get(AttributeValue, value_id)
        if value is None:
            raise NotFound(f"Attribute value {value_id} not found")
        if value.attribute_id in seen_axes:
            raise BadRequest("A variant can have only one value per attribute")
        seen_axes.add(value.attribute_id)
        values.append(value)
    return values


def _sku_taken(sku: str, exclude_id: int | None = None) -> bool:
    stmt = select(ProductVariant.id).where(ProductVariant.sku == sku)
    if exclude_id is not None:
        stmt = stmt.where(ProductVariant.id != exclude_id)
    return db.session.execute(stmt).first() is not None


@variants_bp.get("")
def list_variants() -> tuple[list[dict[str, object]], int]:
    variants = db.session.execute(
        select(ProductVariant).order_by(ProductVariant.price, ProductVariant.id)
    ).scalars()
    return jsonify([variant.to_dict() for variant in variants]), 200


@variants_bp.get("/search")
@protect
def search_variants() -> tuple[list[dict[str, object]], int]:
    """Lookup used by the discount form: SKU or product name substring."""
    term = (request.args.get("q") or "").strip()
    limit = validators.integer(request.args.get("limit", 10), "limit", minimum=1)
    limit = min(limit, MAX_PAGE_SIZE)
    if not term:
        return jsonify([]), 200

    pattern = like_pattern(term)
    rows = db.session.execute(
        select(ProductVariant.id, ProductVariant.sku, Product.name.label("product_name"))
        .join(Product, Product.id == ProductVariant.product_id)
        .where(
            or_(
                ProductVariant.sku.ilike(pattern, escape="\\"),
                Product.name.ilike(pattern, escape="\\"),
            )
        )
        .order_by(Product.name, ProductVariant.sku)
        .limit(limit)
    ).all()
    return jsonify([dict(row._mapping) for row in rows]), 200


@variants_bp.get("/<int:variant_id>")
def get_variant(variant_id: int) -> tuple[dict[str, object], int]:
    return jsonify(_variant_or_404(variant_id).to_dict()), 200


@variants_bp.post("")
@admin_only
def create_variant() -> tuple[dict[str, object], int]:
    payload = validators.json_body()
    required = ("product_id", "sku", "price", "original_price", "stock_quantity")
    if any(payload.get(key) in (None, "") for key in required):
        raise BadRequest(
            "Please provide product_id, sku, price, original_price, and stock_quantity"
        )

    product = db.session.get(Product, validators.integer(payload["product_id"], "product_id"))
    if product is None:
        raise NotFound("Product not found")
    sku = validators.required_str(payload, "sku", "SKU")
    price = validators.money(payload["price"], "price")
    original_price = validators.money(payload["original_price"], "original_price")
    stock = validators.integer(payload["stock_quantity"], "stock_quantity", minimum=0)
    values = _resolve_attribute_values(_attribute_value_ids(payload.get("attributes")))

    if _sku_taken(sku):
        raise Conflict("SKU already exists")

    variant = ProductVariant(
        product_id=product.id,
        sku=sku,
        price=price,
        original_price=original_price,
        stock_quantity=stock,
        sold_quantity=0,
    )
    with conflict_on_duplicate("SKU already exists"), transaction() as tx:
        tx.add(variant)
        tx.flush()
        tx.add_all(
            AttributeVariant(
                product_variant_id=variant.id,
                attribute_id=value.attribute_id,
                attribute_value_id=value.id,
            )
            for value in values
        )
    db.session.refresh(variant)
    return jsonify(variant.to_dict()), 201


@variants_bp.put("/<int:variant_id>")
@admin_only
def update_variant(variant_id: int) -> tuple[dict[str, object], int]:
    variant = _variant_or_404(variant_id)
    payload = validators.json_body()

    if "sku" in payload:
        sku = validators.required_str(payload, "sku", "SKU")
        if _sku_taken(sku, exclude_id=variant_id):
            raise Conflict("SKU already exists")
    with conflict_on_duplicate("SKU already exists"), transaction():
        if "sku" in payload:
            variant.sku = sku
        if "price" in payload:
            variant.price = validators.money(payload["price"], "price")
        if "original_price" in payload:
            variant.original_price = validators.money(payload["original_price"], "original_price")
        if "stock_quantity" in payload:
            variant.stock_quantity = validators.integer(
                payload["stock_quantity"], "stock_quantity", minimum=0
            )
    return jsonify(variant.to_dict()), 200


@variants_bp.delete("/<int:variant_id>")
@admin_only
def delete_variant(variant_id: int):
    with transaction() as tx:
        cascades.delete_with_rules(tx, cascades.VARIANT, variant_id)
    return "", 204


@variants_bp.post("/<int:variant_id>/attributes")
@admin_only
def add_variant_attribute(variant_id: int) -> tuple[dict[str, object], int]:
    payload = validators.json_body()
    if payload.get("attribute_value_id") in (None, ""):
        raise BadRequest("Please provide attribute_value_id")
    value_id = validators.integer(payload["attribute_value_id"], "attribute_value_id")

    variant = _variant_or_404(variant_id)
    value = db.session.get(AttributeValue, value_id)
    if value is None:
        raise NotFound("Attribute value not found")

    assigned = {link.attribute_value_id: link for link in variant.attribute_links}
    if value_id in assigned:
        raise Conflict("This attribute value is already assigned to this variant")
    if any(link.attribute_id == value.attribute_id for link in assigned.values()):
        raise Conflict(
            "This variant already has a value for this attribute type. "
            "Update the existing value instead."
        )

    message = "This variant already has a value for this attribute type"
    with conflict_on_duplicate(message), transaction() as tx:
        tx.add(
            AttributeVariant(
                product_variant_id=variant.id,
                attribute_id=value.attribute_id,
                attribute_value_id=value.id,
            )
        )
    db.session.refresh(variant)
    return jsonify(variant.to_dict()), 201


@variants_bp.delete("/<int:variant_id>/attributes/<int:attribute_id>/<int:value_id>")
@admin_only
def remove_variant_attribute(variant_id: int, attribute_id: int, value_id: int):
    _variant_or_404(variant_id)
    link = db.session.execute(
        select(AttributeVariant).where(
            AttributeVariant.product_variant_id == variant_id,
            AttributeVariant.attribute_id == attribute_id,
            AttributeVariant.attribute_value_id == value_id,
        )
    ).scalar_one_or_none()
    if link is None:
        raise NotFound("Attribute not assigned to this variant")

    with transaction() as tx:
        tx.delete(link)
    return "", 204
