"""Database models for the store administration backend."""
from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from .extensions import db


def utc_now() -> datetime:
    """Return a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _money(value: Decimal | None) -> float | None:
    return float(value) if value is not None else None


ACCOUNT_STATUSES = ("Active", "Inactive")
ROLE_STATUSES = ("Active", "Inactive")
ORDER_STATUSES = ("Pending", "Processing", "Completed", "Cancelled", "Rejected")
PAYMENT_STATUSES = ("Pending", "Paid")
DISCOUNT_TYPES = ("Percentage", "FixedAmount")
DISCOUNT_STATUSES = ("Active", "Inactive")


def _enum(*values: str, name: str) -> db.Enum:
    return db.Enum(*values, name=name, native_enum=False, validate_strings=True)


# --- Identity -------------------------------------------------------------


class Account(db.Model):
    __tablename__ = "accounts"

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False)
    password = db.Column(db.String(255), nullable=False)
    full_name = db.Column(db.String(150), nullable=False)
    status = db.Column(
        _enum(*ACCOUNT_STATUSES, name="account_status"),
        nullable=False,
        default="Active",
        server_default="Active",
    )
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    manager = db.relationship("Manager", back_populates="account", uselist=False)
    customer = db.relationship("Customer", back_populates="account", uselist=False)

    @property
    def account_type(self) -> str:
        if self.manager is not None:
            return "manager"
        if self.customer is not None:
            return "customer"
        return "unknown"

    def to_dict(self) -> dict[str, object]:
        role = self.manager.role if self.manager else None
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "full_name": self.full_name,
            "status": self.status,
            "account_type": self.account_type,
            "manager_id": self.manager.id if self.manager else None,
            "role_id": role.id if role else None,
            "role_name": role.name if role else None,
            "customer_id": self.customer.id if self.customer else None,
            "phone_number": self.customer.phone_number if self.customer else None,
            "address": self.customer.address if self.customer else None,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class Role(db.Model):
    __tablename__ = "roles"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), unique=True, nullable=False)
    status = db.Column(
        _enum(*ROLE_STATUSES, name="role_status"),
        nullable=False,
        default="Active",
        server_default="Active",
    )

    permissions = db.relationship(
        "Permission",
        secondary="role_permissions",
        order_by="Permission.id",
        lazy="selectin",
    )

    def to_dict(self, with_permissions: bool = False) -> dict[str, object]:
        data: dict[str, object] = {"id": self.id, "name": self.name, "status": self.status}
        if with_permissions:
            data["permissionIds"] = [permission.id for permission in self.permissions]
        return data


class Permission(db.Model):
    __tablename__ = "permissions"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), unique=True, nullable=False)

    def to_dict(self) -> dict[str, object]:
        return {"id": self.id, "name": self.name}


class RolePermission(db.Model):
    __tablename__ = "role_permissions"

    role_id = db.Column(db.Integer, db.ForeignKey("roles.id"), primary_key=True)
    permission_id = db.Column(db.Integer, db.ForeignKey("permissions.id"), primary_key=True)


class Manager(db.Model):
    __tablename__ = "managers"

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), unique=True, nullable=False)
    role_id = db.Column(db.Integer, db.ForeignKey("roles.id"), nullable=False)

    account = db.relationship("Account", back_populates="manager")
    role = db.relationship("Role")


class Customer(db.Model):
    __tablename__ = "customers"

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), unique=True, nullable=False)
    phone_number = db.Column(db.String(30))
    address = db.Column(db.String(255))

    account = db.relationship("Account", back_populates="customer")


# --- Catalog --------------------------------------------------------------


class Category(db.Model):
    __tablename__ = "categories"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), unique=True, nullable=False)

    def to_dict(self) -> dict[str, object]:
        return {"id": self.id, "name": self.name}


class Attribute(db.Model):
    """An attribute axis such as "Color" or "Storage"."""

    __tablename__ = "attributes"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), unique=True, nullable=False)

    values = db.relationship(
        "AttributeValue",
        back_populates="attribute",
        order_by="AttributeValue.id",
    )

    def to_dict(self, with_values: bool = False) -> dict[str, object]:
        data: dict[str, object] = {"id": self.id, "name": self.name}
        if with_values:
            data["values"] = [value.to_dict() for value in self.values]
        return data


class AttributeValue(db.Model):
    __tablename__ = "attribute_values"
    __table_args__ = (
        db.UniqueConstraint("attribute_id", "value", name="uq_attribute_values_attribute_value"),
        # Target of the composite key used by attribute_variants.
        db.UniqueConstraint("id", "attribute_id", name="uq_attribute_values_id_attribute"),
    )

    id = db.Column(db.Integer, primary_key=True)
    attribute_id = db.Column(db.Integer, db.ForeignKey("attributes.id"), nullable=False)
    value = db.Column(db.String(150), nullable=False)

    attribute = db.relationship("Attribute", back_populates="values")

    def to_dict(self) -> dict[str, object]:
        return {"id": self.id, "attribute_id": self.attribute_id, "value": self.value}


class Product(db.Model):
    __tablename__ = "products"

    id = db.Column(db.Integer, primary_key=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    specification = db.Column(db.Text)
    image_url = db.Column(db.String(500))
    brand = db.Column(db.String(100))

    category = db.relationship("Category")
    variants = db.relationship(
        "ProductVariant",
        back_populates="product",
        order_by="ProductVariant.id",
    )

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "category_id": self.category_id,
            "category_name": self.category.name if self.category else None,
            "name": self.name,
            "description": self.description,
            "specification": self.specification,
            "image_url": self.image_url,
            "brand": self.brand,
        }


class ProductVariant(db.Model):
    __tablename__ = "product_variants"
    __table_args__ = (
        db.CheckConstraint("price >= 0", name="ck_product_variants_price"),
        db.CheckConstraint("original_price >= 0", name="ck_product_variants_original_price"),
        db.CheckConstraint("stock_quantity >= 0", name="ck_product_variants_stock"),
        db.CheckConstraint("sold_quantity >= 0", name="ck_product_variants_sold"),
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    sku = db.Column(db.String(100), unique=True, nullable=False)
    price = db.Column(db.Numeric(12, 2), nullable=False)
    original_price = db.Column(db.Numeric(12, 2), nullable=False)
    stock_quantity = db.Column(db.Integer, nullable=False, default=0)
    sold_quantity = db.Column(db.Integer, nullable=False, default=0)

    product = db.relationship("Product", back_populates="variants")
    attribute_links = db.relationship(
        "AttributeVariant",
        back_populates="variant",
        order_by="AttributeVariant.attribute_id",
    )

    def attributes_payload(self) -> list[dict[str, object]]:
        return [link.to_dict() for link in self.attribute_links]

    def to_dict(self, with_product: bool = True) -> dict[str, object]:
        data: dict[str, object] = {
            "id": self.id,
            "product_id": self.product_id,
            "sku": self.sku,
            "price": _money(self.price),
            "original_price": _money(self.original_price),
            "stock_quantity": self.stock_quantity,
            "sold_quantity": self.sold_quantity,
            "attributes": self.attributes_payload(),
        }
        if with_product and self.product is not None:
            data.update(
                {
                    "product_name": self.product.name,
                    "product_description": self.product.description,
                    "product_image_url": self.product.image_url,
                    "product_brand": self.product.brand,
                    "product_specification": self.product.specification,
                }
            )
        return data


class AttributeVariant(db.Model):
    """Assignment of one attribute value to a variant, one per attribute axis."""

    __tablename__ = "attribute_variants"
    __table_args__ = (
        db.UniqueConstraint(
            "product_variant_id", "attribute_id", name="uq_attribute_variants_variant_axis"
        ),
        db.ForeignKeyConstraint(
            ["attribute_value_id", "attribute_id"],
            ["attribute_values.id", "attribute_values.attribute_id"],
            name="fk_attribute_variants_value_axis",
        ),
    )

    product_variant_id = db.Column(
        db.Integer, db.ForeignKey("product_variants.id"), primary_key=True
    )
    attribute_value_id = db.Column(db.Integer, primary_key=True)
    attribute_id = db.Column(db.Integer, db.ForeignKey("attributes.id"), nullable=False)

    variant = db.relationship("ProductVariant", back_populates="attribute_links")
    attribute = db.relationship("Attribute", viewonly=True)
    attribute_value = db.relationship(
        "AttributeValue",
        viewonly=True,
        primaryjoin="AttributeVariant.attribute_value_id == AttributeValue.id",
        foreign_keys="AttributeVariant.attribute_value_id",
    )

    def to_dict(self) -> dict[str, object]:
        return {
            "attribute_id": self.attribute_id,
            "attribute_name": self.attribute.name if self.attribute else None,
            "attribute_value_id": self.attribute_value_id,
            "value_id": self.attribute_value_id,
            "value": self.attribute_value.value if self.attribute_value else None,
        }


class CartItem(db.Model):
    __tablename__ = "cart_items"
    __table_args__ = (db.CheckConstraint("quantity > 0", name="ck_cart_items_quantity"),)

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False)
    product_variant_id = db.Column(
        db.Integer, db.ForeignKey("product_variants.id"), nullable=False
    )
    quantity = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)


# --- Commerce -------------------------------------------------------------


class Order(db.Model):
    __tablename__ = "orders"

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    order_date = db.Column(db.DateTime, nullable=False, default=utc_now, index=True)
    shipping_address = db.Column(db.String(255))
    status = db.Column(
        _enum(*ORDER_STATUSES, name="order_status"),
        nullable=False,
        default="Pending",
        index=True,
    )
    payment_method = db.Column(db.String(50), nullable=False, default="Credit Card")
    payment_status = db.Column(
        _enum(*PAYMENT_STATUSES, name="payment_status"),
        nullable=False,
        default="Pending",
        index=True,
    )
    payment_date = db.Column(db.DateTime)
    payment_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    # Bumped on every UPDATE; a flush from a stale snapshot matches no row.
    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer")
    items = db.relationship("OrderItem", back_populates="order", order_by="OrderItem.id")
    history = db.relationship(
        "OrderHistory",
        back_populates="order",
        order_by="OrderHistory.id",
    )

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict[str, object]:
        account = self.customer.account if self.customer else None
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "customer_name": account.full_name if account else None,
            "customer_email": account.email if account else None,
            "order_date": _iso(self.order_date),
            "shipping_address": self.shipping_address,
            "status": self.status,
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "payment_date": _iso(self.payment_date),
            "payment_amount": _money(self.payment_amount),
        }

    def to_detail_dict(self) -> dict[str, object]:
        data = self.to_dict()
        data["customer_phone"] = self.customer.phone_number if self.customer else None
        data["customer_address"] = self.customer.address if self.customer else None
        data["items"] = [item.to_dict() for item in self.items]
        # Newest first, as shown on the order detail page.
        data["history"] = [entry.to_dict() for entry in reversed(self.history)]
        return data


class OrderItem(db.Model):
    __tablename__ = "order_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_order_items_quantity"),
        db.CheckConstraint("unit_price >= 0", name="ck_order_items_unit_price"),
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_variant_id = db.Column(
        db.Integer, db.ForeignKey("product_variants.id"), nullable=False, index=True
    )
    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    note = db.Column(db.String(255))

    order = db.relationship("Order", back_populates="items")
    variant = db.relationship("ProductVariant")

    def to_dict(self) -> dict[str, object]:
        product = self.variant.product if self.variant else None
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_variant_id": self.product_variant_id,
            "quantity": self.quantity,
            "unit_price": _money(self.unit_price),
            "note": self.note,
            "product_name": product.name if product else None,
            "product_image": product.image_url if product else None,
            "variant_sku": self.variant.sku if self.variant else None,
        }


class OrderHistory(db.Model):
    """Append-only audit row for one order status transition."""

    __tablename__ = "order_history"

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    # Empty when the transition was made by the customer (placing or cancelling).
    manager_id = db.Column(db.Integer, db.ForeignKey("managers.id"), nullable=True)
    processing_time = db.Column(db.DateTime, nullable=False, default=utc_now)
    previous_status = db.Column(_enum(*ORDER_STATUSES, name="order_history_previous_status"))
    new_status = db.Column(
        _enum(*ORDER_STATUSES, name="order_history_new_status"), nullable=False
    )

    order = db.relationship("Order", back_populates="history")
    manager = db.relationship("Manager")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "manager_id": self.manager_id,
            "manager_name": self.manager.account.full_name if self.manager else None,
            "processing_time": _iso(self.processing_time),
            "previous_status": self.previous_status,
            "new_status": self.new_status,
        }


class Discount(db.Model):
    __tablename__ = "discounts"
    __table_args__ = (
        db.CheckConstraint(
            "type <> 'Percentage' OR (value >= 0 AND value <= 100)",
            name="ck_discounts_percentage_range",
        ),
        db.CheckConstraint(
            "type <> 'FixedAmount' OR value >= 0",
            name="ck_discounts_fixed_amount",
        ),
        db.CheckConstraint(
            "start_date IS NULL OR end_date IS NULL OR start_date < end_date",
            name="ck_discounts_date_window",
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    product_variant_id = db.Column(
        db.Integer, db.ForeignKey("product_variants.id"), nullable=False, index=True
    )
    code = db.Column(db.String(50), unique=True, nullable=False)
    name = db.Column(db.String(150))
    type = db.Column(_enum(*DISCOUNT_TYPES, name="discount_type"), nullable=False)
    value = db.Column(db.Numeric(12, 2), nullable=False)
    status = db.Column(
        _enum(*DISCOUNT_STATUSES, name="discount_status"),
        nullable=False,
        default="Active",
        index=True,
    )
    start_date = db.Column(db.DateTime)
    end_date = db.Column(db.DateTime)

    variant = db.relationship("ProductVariant")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "product_variant_id": self.product_variant_id,
            "variant_sku": self.variant.sku if self.variant else None,
            "product_name": self.variant.product.name if self.variant else None,
            "code": self.code,
            "name": self.name,
            "type": self.type,
            "value": _money(self.value),
            "status": self.status,
            "start_date": _iso(self.start_date),
            "end_date": _iso(self.end_date),
        }


# --- Feedback -------------------------------------------------------------


class Feedback(db.Model):
    __tablename__ = "feedback"
    __table_args__ = (db.CheckConstraint("rating BETWEEN 1 AND 5", name="ck_feedback_rating"),)

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    product_variant_id = db.Column(
        db.Integer, db.ForeignKey("product_variants.id"), nullable=False
    )
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False)
    rating = db.Column(db.Integer, nullable=False)
    comment = db.Column(db.Text)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    product = db.relationship("Product")
    variant = db.relationship("ProductVariant")
    customer = db.relationship("Customer")
    response = db.relationship("FeedbackResponse", back_populates="feedback", uselist=False)

    def to_dict(self) -> dict[str, object]:
        account = self.customer.account if self.customer else None
        response = self.response
        return {
            "feedback_id": self.id,
            "comment": self.comment,
            "rating": self.rating,
            "feedback_created_at": _iso(self.created_at),
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "product_variant_id": self.product_variant_id,
            "variant_sku": self.variant.sku if self.variant else None,
            "customer_id": self.customer_id,
            "customer_name": account.full_name if account else None,
            "customer_email": account.email if account else None,
            "response_id": response.id if response else None,
            "response_content": response.content if response else None,
            "response_created_at": _iso(response.created_at) if response else None,
            "manager_id": response.manager_id if response else None,
            "manager_name": response.manager.account.full_name if response else None,
        }


class FeedbackResponse(db.Model):
    __tablename__ = "feedback_responses"

    id = db.Column(db.Integer, primary_key=True)
    feedback_id = db.Column(db.Integer, db.ForeignKey("feedback.id"), unique=True, nullable=False)
    manager_id = db.Column(db.Integer, db.ForeignKey("managers.id"), nullable=False)
    content = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, onupdate=utc_now)

    feedback = db.relationship("Feedback", back_populates="response")
    manager = db.relationship("Manager")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "feedback_id": self.feedback_id,
            "manager_id": self.manager_id,
            "content": self.content,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
