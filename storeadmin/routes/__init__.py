"""Blueprint registration for the ``/api`` surface."""
from __future__ import annotations

from flask import Flask

from . import accounts, auth, catalog, commerce, feedback, health, products

API_PREFIX = "/api"

BLUEPRINTS = (
    (health.bp, ""),
    (auth.bp, "/auth"),
    (catalog.categories_bp, "/categories"),
    (catalog.attributes_bp, "/attributes"),
    (products.products_bp, "/products"),
    (products.variants_bp, "/variants"),
    (commerce.orders_bp, "/orders"),
    (commerce.discounts_bp, "/discounts"),
    (feedback.bp, "/feedback"),
    (accounts.users_bp, "/users"),
    (accounts.roles_bp, "/roles"),
    (accounts.permissions_bp, "/permissions"),
)


def register_routes(app: Flask) -> None:
    for blueprint, prefix in BLUEPRINTS:
        app.register_blueprint(blueprint, url_prefix=f"{API_PREFIX}{prefix}")
