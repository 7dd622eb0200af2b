"""Declarative deletion rules.

Each rule lists what blocks deleting an entity and what is removed along with
it, in dependency order. ``delete_with_rules`` applies a rule inside the
caller's transaction so a blocked deletion leaves nothing half-removed.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from sqlalchemy import delete, exists, or_, select

from .database import Transaction
from .errors import Conflict, NotFound
from .extensions import db
from .models import (
    Account,
    Attribute,
    AttributeValue,
    AttributeVariant,
    CartItem,
    Category,
    Customer,
    Discount,
    Feedback,
    FeedbackResponse,
    Manager,
    Order,
    OrderHistory,
    OrderItem,
    Product,
    ProductVariant,
    Role,
    RolePermission,
)

Criterion = Callable[[int], object]


@dataclass(frozen=True)
class Block:
    model: type
    where: Criterion
    message: str


@dataclass(frozen=True)
class Cascade:
    model: type
    where: Criterion


@dataclass(frozen=True)
class DeletionRule:
    model: type
    label: str
    blocks: tuple[Block, ...] = ()
    cascades: tuple[Cascade, ...] = ()


def _variants_of(product_id: int):
    return select(ProductVariant.id).where(ProductVariant.product_id == product_id)


def _product_feedback(product_id: int):
    return or_(
        Feedback.product_id == product_id,
        Feedback.product_variant_id.in_(_variants_of(product_id)),
    )


def _feedback_of_product(product_id: int):
    return select(Feedback.id).where(_product_feedback(product_id))


def _customer_of(account_id: int):
    return select(Customer.id).where(Customer.account_id == account_id)


def _manager_of(account_id: int):
    return select(Manager.id).where(Manager.account_id == account_id)


CATEGORY = DeletionRule(
    Category,
    "Category",
    blocks=(
        Block(
            Product,
            lambda pk: Product.category_id == pk,
            "Cannot delete category because it is used by existing products",
        ),
    ),
)

ATTRIBUTE = DeletionRule(
    Attribute,
    "Attribute",
    blocks=(
        Block(
            AttributeValue,
            lambda pk: AttributeValue.attribute_id == pk,
            "Cannot delete attribute because it still has values. Delete its values first",
        ),
    ),
)

ATTRIBUTE_VALUE = DeletionRule(
    AttributeValue,
    "Attribute value",
    blocks=(
        Block(
            AttributeVariant,
            lambda pk: AttributeVariant.attribute_value_id == pk,
            "Cannot delete attribute value because it is assigned to product variants",
        ),
    ),
)

VARIANT = DeletionRule(
    ProductVariant,
    "Product variant",
    blocks=(
        Block(
            OrderItem,
            lambda pk: OrderItem.product_variant_id == pk,
            "Cannot delete variant because it is referenced by existing orders",
        ),
        Block(
            Feedback,
            lambda pk: Feedback.product_variant_id == pk,
            "Cannot delete variant because customers have left feedback on it",
        ),
    ),
    cascades=(
        Cascade(AttributeVariant, lambda pk: AttributeVariant.product_variant_id == pk),
        Cascade(CartItem, lambda pk: CartItem.product_variant_id == pk),
        Cascade(Discount, lambda pk: Discount.product_variant_id == pk),
    ),
)

PRODUCT = DeletionRule(
    Product,
    "Product",
    blocks=(
        Block(
            OrderItem,
            lambda pk: OrderItem.product_variant_id.in_(_variants_of(pk)),
            "Cannot delete product because its variants are referenced by existing orders",
        ),
    ),
    cascades=(
        Cascade(
            FeedbackResponse,
            lambda pk: FeedbackResponse.feedback_id.in_(_feedback_of_product(pk)),
        ),
        # MySQL refuses a DELETE whose subquery reads the target table.
        Cascade(Feedback, _product_feedback),
        Cascade(Discount, lambda pk: Discount.product_variant_id.in_(_variants_of(pk))),
        Cascade(
            AttributeVariant,
            lambda pk: AttributeVariant.product_variant_id.in_(_variants_of(pk)),
        ),
        Cascade(CartItem, lambda pk: CartItem.product_variant_id.in_(_variants_of(pk))),
        Cascade(ProductVariant, lambda pk: ProductVariant.product_id == pk),
    ),
)

FEEDBACK = DeletionRule(
    Feedback,
    "Feedback",
    cascades=(Cascade(FeedbackResponse, lambda pk: FeedbackResponse.feedback_id == pk),),
)

ROLE = DeletionRule(
    Role,
    "Role",
    blocks=(
        Block(
            Manager,
            lambda pk: Manager.role_id == pk,
            "Cannot delete role because it is assigned to one or more managers",
        ),
    ),
    cascades=(Cascade(RolePermission, lambda pk: RolePermission.role_id == pk),),
)

ACCOUNT = DeletionRule(
    Account,
    "Account",
    blocks=(
        Block(
            Order,
            lambda pk: Order.customer_id.in_(_customer_of(pk)),
            "Cannot delete customer account because it has existing orders",
        ),
        Block(
            Feedback,
            lambda pk: Feedback.customer_id.in_(_customer_of(pk)),
            "Cannot delete customer account because it has submitted feedback",
        ),
        Block(
            FeedbackResponse,
            lambda pk: FeedbackResponse.manager_id.in_(_manager_of(pk)),
            "Cannot delete manager account because it has responded to feedback",
        ),
        Block(
            OrderHistory,
            lambda pk: OrderHistory.manager_id.in_(_manager_of(pk)),
            "Cannot delete manager account because it has processed orders",
        ),
    ),
    cascades=(
        Cascade(CartItem, lambda pk: CartItem.customer_id.in_(_customer_of(pk))),
        Cascade(Customer, lambda pk: Customer.account_id == pk),
        Cascade(Manager, lambda pk: Manager.account_id == pk),
    ),
)


def check_blocks(rule: DeletionRule, pk: int) -> None:
    for block in rule.blocks:
        if db.session.execute(select(exists().where(block.where(pk)))).scalar():
            raise Conflict(block.message)


def delete_with_rules(tx: Transaction, rule: DeletionRule, pk: int) -> None:
    """Delete ``rule.model`` row ``pk`` with its dependents, or raise.

    Raises ``NotFound`` when the row does not exist and ``Conflict`` when a
    blocking dependent exists.
    """
    instance = db.session.get(rule.model, pk)
    if instance is None:
        raise NotFound(f"{rule.label} not found")
    check_blocks(rule, pk)

    for cascade in rule.cascades:
        tx.execute(
            delete(cascade.model)
            .where(cascade.where(pk))
            .execution_options(synchronize_session="fetch")
        )
    tx.execute(
        delete(rule.model)
        .where(rule.model.id == pk)
        .execution_options(synchronize_session="fetch")
    )
