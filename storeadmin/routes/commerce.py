"""Order lifecycle and discount endpoints."""
from __future__ import annotations

from decimal import Decimal

from flask import Blueprint, current_app, jsonify
from sqlalchemy import String, cast, or_, select

from .. import validators
from ..auth import Actor, current_actor, protect, staff_only
from ..database import transaction
from ..errors import BadRequest, Conflict, Forbidden, NotFound, conflict_on_duplicate
from ..extensions import db
from ..models import (
    DISCOUNT_STATUSES,
    DISCOUNT_TYPES,
    ORDER_STATUSES,
    PAYMENT_STATUSES,
    Account,
    Customer,
    Discount,
    Order,
    OrderItem,
    Product,
    ProductVariant,
)
from ..orders import Event, open_order, transition
from ..pagination import csv_arg, like_pattern, list_params, paginate

orders_bp = Blueprint("orders", __name__)
discounts_bp = Blueprint("discounts", __name__)

DEFAULT_PAYMENT_METHOD = "Credit Card"

ORDER_SORTS = {
    "id": Order.id,
    "order_date": Order.order_date,
    "payment_amount": Order.payment_amount,
    "status": Order.status,
    "payment_status": Order.payment_status,
    "customer_name": Account.full_name,
}

DISCOUNT_SORTS = {
    "id": Discount.id,
    "name": Discount.name,
    "code": Discount.code,
    "type": Discount.type,
    "value": Discount.value,
    "status": Discount.status,
    "start_date": Discount.start_date,
    "end_date": Discount.end_date,
    "product_name": Product.name,
    "variant_sku": ProductVariant.sku,
}


# --- Orders ---------------------------------------------------------------


def _order_or_404(order_id: int, lock: bool = False) -> Order:
    order = db.session.get(Order, order_id, with_for_update=True if lock else None)
    if order is None:
        raise NotFound("Order not found")
    return order


def _owns(actor: Actor, order: Order) -> bool:
    return actor.customer_id is not None and order.customer_id == actor.customer_id


def _visible_order(order_id: int, actor: Actor) -> Order:
    order = _order_or_404(order_id)
    if not actor.is_staff and not _owns(actor, order):
        raise Forbidden("Not authorized to access this order")
    return order


@orders_bp.get("")
@protect
def list_orders() -> tuple[dict[str, object], int]:
    """Paginated orders; customers only see their own.
    ---
    tags:
      - Orders
    parameters:
      - name: search
        in: query
        type: string
        description: Matches order id, customer name or customer email
      - name: status
        in: query
        type: string
        description: Comma-separated order statuses
      - name: paymentStatus
        in: query
        type: string
        description: Comma-separated payment statuses
      - name: sortBy
        in: query
        type: string
        enum: [id, order_date, payment_amount, status, payment_status, customer_name]
        default: order_date
    responses:
      200:
        description: One page of orders.
      400:
        description: Invalid parameters.
      401:
        description: Missing or invalid token.
    """
    actor = current_actor()
    params = list_params(ORDER_SORTS, "order_date", "desc")
    stmt = (
        select(Order)
        .join(Customer, Customer.id == Order.customer_id)
        .join(Account, Account.id == Customer.account_id)
    )
    if not actor.is_staff:
        stmt = stmt.where(Account.id == actor.id)
    if params.search:
        pattern = like_pattern(params.search)
        stmt = stmt.where(
            or_(
                cast(Order.id, String).like(pattern, escape="\\"),
                Account.full_name.ilike(pattern, escape="\\"),
                Account.email.ilike(pattern, escape="\\"),
            )
        )
    statuses = csv_arg("status", ORDER_STATUSES)
    if statuses:
        stmt = stmt.where(Order.status.in_(statuses))
    payment_statuses = csv_arg("paymentStatus", PAYMENT_STATUSES)
    if payment_statuses:
        stmt = stmt.where(Order.payment_status.in_(payment_statuses))

    return jsonify(paginate(stmt, params, ORDER_SORTS, Order.to_dict)), 200


@orders_bp.get("/<int:order_id>")
@protect
def get_order(order_id: int) -> tuple[dict[str, object], int]:
    order = _visible_order(order_id, current_actor())
    return jsonify(order.to_detail_dict()), 200


def _order_items(raw) -> list[tuple[int, int, str | None]]:
    if not isinstance(raw, list) or not raw:
        raise BadRequest("Please provide customer ID and order items")
    items = []
    for item in raw:
        if not isinstance(item, dict) or item.get("product_variant_id") in (None, ""):
            raise BadRequest("Invalid item data. Provide product_variant_id and quantity > 0")
        variant_id = validators.integer(item["product_variant_id"], "product_variant_id")
        quantity = validators.integer(item.get("quantity"), "quantity")
        if quantity <= 0:
            raise BadRequest("Invalid item data. Provide product_variant_id and quantity > 0")
        items.append((variant_id, quantity, validators.optional_str(item, "note")))
    return items


@orders_bp.post("")
@protect
def create_order() -> tuple[dict[str, object], int]:
    """Place an order priced from the current variant prices.
    ---
    tags:
      - Orders
    responses:
      201:
        description: Order created in Pending state.
      400:
        description: Empty or invalid item list.
      403:
        description: Customer does not belong to the caller.
      404:
        description: Customer or variant not found.
    """
    actor = current_actor()
    payload = validators.json_body()
    items = _order_items(payload.get("items"))

    raw_customer = payload.get("customer_id")
    if raw_customer in (None, ""):
        if actor.customer_id is None:
            raise BadRequest("Please provide customer ID and order items")
        raw_customer = actor.customer_id
    customer = db.session.get(Customer, validators.integer(raw_customer, "customer_id"))
    if customer is None:
        raise NotFound("Customer not found")
    if customer.account_id != actor.id and not actor.is_admin:
        raise Forbidden("Customer not found or not authorized")

    shipping_address = validators.optional_str(payload, "shipping_address") or customer.address
    payment_method = validators.optional_str(payload, "payment_method") or DEFAULT_PAYMENT_METHOD

    with transaction() as tx:
        order = Order(
            customer_id=customer.id,
            shipping_address=shipping_address,
            payment_method=payment_method,
            payment_amount=Decimal("0.00"),
        )
        total = Decimal("0.00")
        for variant_id, quantity, note in items:
            variant = db.session.get(ProductVariant, variant_id)
            if variant is None:
                raise NotFound("Product variant not found")
            unit_price = Decimal(variant.price)
            total += unit_price * quantity
            order.items.append(
                OrderItem(
                    product_variant_id=variant.id,
                    quantity=quantity,
                    unit_price=unit_price,
                    note=note,
                )
            )
        order.payment_amount = total
        tx.add(order)
        open_order(tx, order, actor)

    current_app.logger.info("Order %s created for customer %s", order.id, customer.id)
    return jsonify(order.to_detail_dict()), 201


def _apply(order_id: int, event: Event, target: str | None = None) -> tuple[dict[str, object], int]:
    actor = current_actor()
    with transaction() as tx:
        order = _order_or_404(order_id, lock=True)
        if event is Event.CANCEL and not (actor.is_admin or _owns(actor, order)):
            raise Forbidden("Not authorized to cancel this order")
        previous = order.status
        transition(tx, order, event, actor, target)

    current_app.logger.info(
        "Order %s %s by account %s: %s -> %s",
        order.id,
        event.value,
        actor.id,
        previous,
        order.status,
    )
    return jsonify(order.to_detail_dict()), 200


@orders_bp.put("/<int:order_id>/pay")
@staff_only
def pay_order(order_id: int) -> tuple[dict[str, object], int]:
    return _apply(order_id, Event.PAY)


@orders_bp.put("/<int:order_id>/deliver")
@staff_only
def deliver_order(order_id: int) -> tuple[dict[str, object], int]:
    return _apply(order_id, Event.DELIVER)


@orders_bp.put("/<int:order_id>/cancel")
@protect
def cancel_order(order_id: int) -> tuple[dict[str, object], int]:
    return _apply(order_id, Event.CANCEL)


@orders_bp.put("/<int:order_id>/update-status")
@staff_only
def update_order_status(order_id: int) -> tuple[dict[str, object], int]:
    payload = validators.json_body()
    target = payload.get("newStatus", payload.get("status"))
    if target not in ORDER_STATUSES:
        raise BadRequest("Invalid new status provided")
    return _apply(order_id, Event.SET_STATUS, target)


# --- Discounts ------------------------------------------------------------


def _discount_or_404(discount_id: int) -> Discount:
    discount = db.session.get(Discount, discount_id)
    if discount is None:
        raise NotFound("Discount not found")
    return discount


def _validate_discount(discount: Discount) -> None:
    """Check the effective type/value/date combination of a discount."""
    value = Decimal(discount.value)
    if discount.type == "Percentage" and not Decimal(0) <= value <= Decimal(100):
        raise BadRequest("Percentage value must be between 0 and 100")
    if discount.type == "FixedAmount" and value < 0:
        raise BadRequest("Fixed amount value must be non-negative")
    if discount.start_date and discount.end_date and discount.start_date >= discount.end_date:
        raise BadRequest("Start date must be before end date")


def _discount_value(raw) -> Decimal:
    if isinstance(raw, bool) or raw in (None, ""):
        raise BadRequest("value must be a number")
    try:
        value = Decimal(str(raw))
    except ArithmeticError as exc:
        raise BadRequest("value must be a number") from exc
    if not value.is_finite():
        raise BadRequest("value must be a number")
    return value


def _variant_id(raw) -> int:
    variant_id = validators.integer(raw, "product_variant_id")
    if db.session.get(ProductVariant, variant_id) is None:
        raise NotFound("Product variant not found")
    return variant_id


def _code_taken(code: str, exclude_id: int | None = None) -> bool:
    stmt = select(Discount.id).where(Discount.code == code)
    if exclude_id is not None:
        stmt = stmt.where(Discount.id != exclude_id)
    return db.session.execute(stmt).first() is not None


@discounts_bp.get("")
@protect
def list_discounts() -> tuple[dict[str, object], int]:
    params = list_params(DISCOUNT_SORTS, "id", "desc")
    stmt = (
        select(Discount)
        .join(ProductVariant, ProductVariant.id == Discount.product_variant_id)
        .join(Product, Product.id == ProductVariant.product_id)
    )
    if params.search:
        pattern = like_pattern(params.search)
        stmt = stmt.where(
            or_(
                Discount.name.ilike(pattern, escape="\\"),
                Discount.code.ilike(pattern, escape="\\"),
                Product.name.ilike(pattern, escape="\\"),
                ProductVariant.sku.ilike(pattern, escape="\\"),
            )
        )
    statuses = csv_arg("status", DISCOUNT_STATUSES)
    if statuses:
        stmt = stmt.where(Discount.status.in_(statuses))
    types = csv_arg("type", DISCOUNT_TYPES)
    if types:
        stmt = stmt.where(Discount.type.in_(types))

    return jsonify(paginate(stmt, params, DISCOUNT_SORTS, Discount.to_dict)), 200


@discounts_bp.get("/<int:discount_id>")
@protect
def get_discount(discount_id: int) -> tuple[dict[str, object], int]:
    return jsonify(_discount_or_404(discount_id).to_dict()), 200


@discounts_bp.post("")
@staff_only
def create_discount() -> tuple[dict[str, object], int]:
    payload = validators.json_body()
    required = ("product_variant_id", "code", "type", "value")
    if any(payload.get(key) in (None, "") for key in required):
        raise BadRequest("Missing required fields: product_variant_id, code, type, value")

    discount = Discount(
        code=validators.required_str(payload, "code", "code"),
        name=validators.optional_str(payload, "name"),
        type=validators.choice(payload["type"], "type", DISCOUNT_TYPES),
        value=_discount_value(payload["value"]),
        status=validators.choice(payload.get("status", "Active"), "status", DISCOUNT_STATUSES),
        start_date=validators.timestamp(payload.get("start_date"), "start_date"),
        end_date=validators.timestamp(payload.get("end_date"), "end_date"),
    )
    _validate_discount(discount)
    discount.product_variant_id = _variant_id(payload["product_variant_id"])
    if _code_taken(discount.code):
        raise Conflict(f"Discount code '{discount.code}' already exists.")

    with conflict_on_duplicate(f"Discount code '{discount.code}' already exists."), transaction() as tx:
        tx.add(discount)
    return jsonify(discount.to_dict()), 201


@discounts_bp.put("/<int:discount_id>")
@staff_only
def update_discount(discount_id: int) -> tuple[dict[str, object], int]:
    discount = _discount_or_404(discount_id)
    payload = validators.json_body()
    editable = (
        "product_variant_id",
        "code",
        "name",
        "type",
        "value",
        "status",
        "start_date",
        "end_date",
    )
    if not any(key in payload for key in editable):
        raise BadRequest("No fields provided for update")

    changes: dict[str, object] = {}
    if "product_variant_id" in payload:
        changes["product_variant_id"] = _variant_id(payload["product_variant_id"])
    if "code" in payload:
        changes["code"] = validators.required_str(payload, "code", "code")
        if _code_taken(changes["code"], exclude_id=discount_id):
            raise Conflict(f"Discount code '{changes['code']}' already exists.")
    if "name" in payload:
        changes["name"] = validators.optional_str(payload, "name")
    if "type" in payload:
        changes["type"] = validators.choice(payload["type"], "type", DISCOUNT_TYPES)
    if "value" in payload:
        changes["value"] = _discount_value(payload["value"])
    if "status" in payload:
        changes["status"] = validators.choice(payload["status"], "status", DISCOUNT_STATUSES)
    for key in ("start_date", "end_date"):
        if key in payload:
            changes[key] = validators.timestamp(payload[key], key)

    code = changes.get("code", discount.code)
    with conflict_on_duplicate(f"Discount code '{code}' already exists."), transaction():
        for key, value in changes.items():
            setattr(discount, key, value)
        _validate_discount(discount)
    return jsonify(discount.to_dict()), 200


@discounts_bp.delete("/<int:discount_id>")
@staff_only
def delete_discount(discount_id: int):
    discount = _discount_or_404(discount_id)
    with transaction() as tx:
        tx.delete(discount)
    return "", 204
