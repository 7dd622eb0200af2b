"""Tests for discount endpoints."""
from __future__ import annotations

from conftest import add_discount
from storeadmin.extensions import db
from storeadmin.models import Discount


def _payload(catalog, **overrides) -> dict[str, object]:
    payload = {
        "product_variant_id": catalog.variant,
        "code": "SPRING",
        "name": "Spring sale",
        "type": "Percentage",
        "value": 15,
        "start_date": "2026-03-01T00:00:00Z",
        "end_date": "2026-04-01T00:00:00Z",
    }
    payload.update(overrides)
    return payload


def test_create_discount(client, seeded, catalog) -> None:
    response = client.post("/api/discounts", json=_payload(catalog), headers=seeded.headers.manager)

    assert response.status_code == 201
    body = response.get_json()
    assert body["code"] == "SPRING"
    assert body["value"] == 15.0
    assert body["status"] == "Active"
    assert body["variant_sku"] == "P1-A"
    assert body["product_name"] == "P1"
    assert body["start_date"] == "2026-03-01T00:00:00"


def test_customers_cannot_manage_discounts(client, seeded, catalog) -> None:
    response = client.post("/api/discounts", json=_payload(catalog), headers=seeded.headers.alice)

    assert response.status_code == 403


def test_duplicate_code_conflicts(app, client, seeded, catalog) -> None:
    add_discount(app, catalog.variant, code="SPRING")

    response = client.post("/api/discounts", json=_payload(catalog), headers=seeded.headers.admin)

    assert response.status_code == 409
    assert response.get_json()["message"] == "Discount code 'SPRING' already exists."


def test_create_discount_validation(client, seeded, catalog) -> None:
    headers = seeded.headers.admin

    missing = client.post("/api/discounts", json={"code": "X"}, headers=headers)
    assert missing.status_code == 400

    too_big = client.post("/api/discounts", json=_payload(catalog, value=150), headers=headers)
    assert too_big.status_code == 400

    negative = client.post(
        "/api/discounts", json=_payload(catalog, type="FixedAmount", value=-5), headers=headers
    )
    assert negative.status_code == 400

    bad_type = client.post("/api/discounts", json=_payload(catalog, type="Bogus"), headers=headers)
    assert bad_type.status_code == 400

    window = client.post(
        "/api/discounts",
        json=_payload(catalog, start_date="2026-05-01", end_date="2026-04-01"),
        headers=headers,
    )
    assert window.status_code == 400

    bad_date = client.post(
        "/api/discounts", json=_payload(catalog, start_date="soon"), headers=headers
    )
    assert bad_date.status_code == 400

    unknown_variant = client.post(
        "/api/discounts", json=_payload(catalog, product_variant_id=999), headers=headers
    )
    assert unknown_variant.status_code == 404


def test_fixed_amount_above_hundred_is_allowed(client, seeded, catalog) -> None:
    response = client.post(
        "/api/discounts",
        json=_payload(catalog, type="FixedAmount", value=250),
        headers=seeded.headers.admin,
    )

    assert response.status_code == 201


def test_update_discount_revalidates_effective_values(app, client, seeded, catalog) -> None:
    discount_id = add_discount(app, catalog.variant, type="FixedAmount", value=250)

    switched = client.put(
        f"/api/discounts/{discount_id}", json={"type": "Percentage"}, headers=seeded.headers.admin
    )
    assert switched.status_code == 400

    response = client.put(
        f"/api/discounts/{discount_id}",
        json={"type": "Percentage", "value": 20, "status": "Inactive"},
        headers=seeded.headers.admin,
    )
    assert response.status_code == 200
    body = response.get_json()
    assert (body["type"], body["value"], body["status"]) == ("Percentage", 20.0, "Inactive")


def test_update_discount_requires_fields(app, client, seeded, catalog) -> None:
    discount_id = add_discount(app, catalog.variant)

    response = client.put(f"/api/discounts/{discount_id}", json={}, headers=seeded.headers.admin)

    assert response.status_code == 400
    assert response.get_json()["message"] == "No fields provided for update"


def test_update_discount_code_conflict(app, client, seeded, catalog) -> None:
    add_discount(app, catalog.variant, code="TAKEN")
    discount_id = add_discount(app, catalog.variant, code="MINE")

    response = client.put(
        f"/api/discounts/{discount_id}", json={"code": "TAKEN"}, headers=seeded.headers.admin
    )

    assert response.status_code == 409


def test_list_discounts_filters(app, client, seeded, catalog) -> None:
    add_discount(app, catalog.variant, code="PCT")
    add_discount(app, catalog.variant, code="FIXED", type="FixedAmount", status="Inactive")

    fixed = client.get("/api/discounts?type=FixedAmount", headers=seeded.headers.alice).get_json()
    assert [item["code"] for item in fixed["items"]] == ["FIXED"]

    active = client.get("/api/discounts?status=Active", headers=seeded.headers.alice).get_json()
    assert [item["code"] for item in active["items"]] == ["PCT"]

    by_sku = client.get(
        "/api/discounts?search=p1-a&sortBy=code&sortOrder=asc", headers=seeded.headers.alice
    ).get_json()
    assert [item["code"] for item in by_sku["items"]] == ["FIXED", "PCT"]

    assert client.get("/api/discounts?type=Bogus", headers=seeded.headers.alice).status_code == 400
    assert client.get("/api/discounts").status_code == 401


def test_get_and_delete_discount(app, client, seeded, catalog) -> None:
    discount_id = add_discount(app, catalog.variant)

    assert client.get(f"/api/discounts/{discount_id}", headers=seeded.headers.bob).status_code == 200
    response = client.delete(f"/api/discounts/{discount_id}", headers=seeded.headers.manager)

    assert response.status_code == 204
    with app.app_context():
        assert db.session.get(Discount, discount_id) is None
    assert client.get(f"/api/discounts/{discount_id}", headers=seeded.headers.bob).status_code == 404


def test_ties_on_sort_column_page_by_id(app, client, seeded, catalog) -> None:
    ids = [add_discount(app, catalog.variant, code=code) for code in ("A1", "A2", "A3")]

    def walk(order: str) -> list[int]:
        return [
            client.get(
                f"/api/discounts?sortBy=status&sortOrder={order}&pageSize=1&page={page}",
                headers=seeded.headers.alice,
            ).get_json()["items"][0]["id"]
            for page in (1, 2, 3)
        ]

    assert walk("asc") == ids
    assert walk("desc") == ids[::-1]
