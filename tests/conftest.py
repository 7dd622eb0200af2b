"""pytest configuration: application fixtures and seeded accounts."""
from __future__ import annotations

import sys
from decimal import Decimal
from pathlib import Path
from types import SimpleNamespace

import pytest
from werkzeug.security import generate_password_hash

# Ensure the project root is available on sys.path so tests can import the app package.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from storeadmin import create_app  # noqa: E402
from storeadmin.auth import issue_access_token, issue_refresh_token, load_actor  # noqa: E402
from storeadmin.extensions import db  # noqa: E402
from storeadmin.models import (  # noqa: E402
    Account,
    Attribute,
    AttributeValue,
    AttributeVariant,
    Category,
    Customer,
    Discount,
    Feedback,
    FeedbackResponse,
    Manager,
    Order,
    OrderItem,
    Permission,
    Product,
    ProductVariant,
    Role,
)

PASSWORD = "Secret123!"

TEST_CONFIG = {
    "TESTING": True,
    "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
    "JWT_SECRET": "test-access-secret",
    "JWT_REFRESH_SECRET": "test-refresh-secret",
    "JWT_EXPIRES_IN": "1h",
    "JWT_REFRESH_EXPIRES_IN": "2h",
    "APP_ENV": "test",
}


@pytest.fixture
def app():
    flask_app = create_app(TEST_CONFIG)
    with flask_app.app_context():
        db.create_all()
    yield flask_app
    with flask_app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def create_account(email: str, full_name: str, password: str = PASSWORD) -> Account:
    account = Account(
        username=email.split("@")[0],
        email=email,
        full_name=full_name,
        password=generate_password_hash(password),
        status="Active",
    )
    db.session.add(account)
    db.session.flush()
    return account


def token_for(app, account_id: int) -> str:
    with app.app_context():
        return issue_access_token(load_actor(account_id))


def refresh_token_for(app, account_id: int) -> str:
    with app.app_context():
        return issue_refresh_token(load_actor(account_id))


@pytest.fixture
def seeded(app):
    """Admin, manager and two customers with ready-to-use auth headers."""
    with app.app_context():
        admin_role = Role(name="admin")
        manager_role = Role(name="manager")
        db.session.add_all([admin_role, manager_role])
        db.session.flush()

        admin = create_account("admin@example.com", "Ada Admin")
        manager = create_account("manager@example.com", "Max Manager")
        other_manager = create_account("manager2@example.com", "Mia Manager")
        alice = create_account("alice@example.com", "Alice Customer")
        bob = create_account("bob@example.com", "Bob Customer")

        admin_mgr = Manager(account_id=admin.id, role_id=admin_role.id)
        manager_mgr = Manager(account_id=manager.id, role_id=manager_role.id)
        other_mgr = Manager(account_id=other_manager.id, role_id=manager_role.id)
        alice_cust = Customer(account_id=alice.id, address="1 Main St", phone_number="555-0100")
        bob_cust = Customer(account_id=bob.id)
        db.session.add_all([admin_mgr, manager_mgr, other_mgr, alice_cust, bob_cust])
        db.session.commit()

        ids = SimpleNamespace(
            admin_role=admin_role.id,
            manager_role=manager_role.id,
            admin=admin.id,
            manager=manager.id,
            other_manager=other_manager.id,
            alice=alice.id,
            bob=bob.id,
            admin_manager=admin_mgr.id,
            manager_manager=manager_mgr.id,
            other_manager_manager=other_mgr.id,
            alice_customer=alice_cust.id,
            bob_customer=bob_cust.id,
        )

    headers = SimpleNamespace(
        admin=bearer(token_for(app, ids.admin)),
        manager=bearer(token_for(app, ids.manager)),
        other_manager=bearer(token_for(app, ids.other_manager)),
        alice=bearer(token_for(app, ids.alice)),
        bob=bearer(token_for(app, ids.bob)),
    )
    return SimpleNamespace(ids=ids, headers=headers)


@pytest.fixture
def catalog(app, seeded):
    """Category "Phones" with product P1 and variant P1-A (price 100, Red)."""
    with app.app_context():
        phones = Category(name="Phones")
        color = Attribute(name="Color")
        storage = Attribute(name="Storage")
        db.session.add_all([phones, color, storage])
        db.session.flush()

        red = AttributeValue(attribute_id=color.id, value="Red")
        blue = AttributeValue(attribute_id=color.id, value="Blue")
        gb64 = AttributeValue(attribute_id=storage.id, value="64GB")
        product = Product(category_id=phones.id, name="P1", brand="Acme", image_url="p1.png")
        db.session.add_all([red, blue, gb64, product])
        db.session.flush()

        variant = ProductVariant(
            product_id=product.id,
            sku="P1-A",
            price=Decimal("100.00"),
            original_price=Decimal("120.00"),
            stock_quantity=10,
            sold_quantity=3,
        )
        db.session.add(variant)
        db.session.flush()
        db.session.add(
            AttributeVariant(
                product_variant_id=variant.id,
                attribute_id=color.id,
                attribute_value_id=red.id,
            )
        )
        db.session.commit()

        return SimpleNamespace(
            category=phones.id,
            color=color.id,
            storage=storage.id,
            red=red.id,
            blue=blue.id,
            gb64=gb64.id,
            product=product.id,
            variant=variant.id,
        )


@pytest.fixture
def permissions(app):
    with app.app_context():
        names = ("view_orders", "edit_orders", "view_reports")
        rows = [Permission(name=name) for name in names]
        db.session.add_all(rows)
        db.session.commit()
        return [row.id for row in rows]


def place_order(app, customer_id: int, variant_id: int, quantity: int = 1, **fields) -> int:
    """Insert an order with one line directly, bypassing the API."""
    with app.app_context():
        variant = db.session.get(ProductVariant, variant_id)
        order = Order(
            customer_id=customer_id,
            status=fields.pop("status", "Pending"),
            payment_status=fields.pop("payment_status", "Pending"),
            payment_amount=variant.price * quantity,
            **fields,
        )
        order.items.append(
            OrderItem(product_variant_id=variant_id, quantity=quantity, unit_price=variant.price)
        )
        db.session.add(order)
        db.session.commit()
        return order.id


def leave_feedback(app, customer_id: int, variant_id: int, rating: int = 4, comment: str = "Nice") -> int:
    with app.app_context():
        variant = db.session.get(ProductVariant, variant_id)
        feedback = Feedback(
            product_id=variant.product_id,
            product_variant_id=variant_id,
            customer_id=customer_id,
            rating=rating,
            comment=comment,
        )
        db.session.add(feedback)
        db.session.commit()
        return feedback.id


def respond(app, feedback_id: int, manager_id: int, content: str = "Thanks!") -> int:
    with app.app_context():
        response = FeedbackResponse(feedback_id=feedback_id, manager_id=manager_id, content=content)
        db.session.add(response)
        db.session.commit()
        return response.id


def add_discount(app, variant_id: int, code: str = "SAVE10", **fields) -> int:
    with app.app_context():
        discount = Discount(
            product_variant_id=variant_id,
            code=code,
            name=fields.pop("name", code),
            type=fields.pop("type", "Percentage"),
            value=fields.pop("value", Decimal("10")),
            **fields,
        )
        db.session.add(discount)
        db.session.commit()
        return discount.id
