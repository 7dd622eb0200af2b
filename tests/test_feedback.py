"""Tests for feedback and manager responses."""
from __future__ import annotations

from sqlalchemy import select

from conftest import leave_feedback, respond
from storeadmin.extensions import db
from storeadmin.models import Feedback, FeedbackResponse


def test_customer_leaves_feedback(client, seeded, catalog) -> None:
    response = client.post(
        "/api/feedback",
        json={"product_variant_id": catalog.variant, "rating": 5, "comment": "Great phone"},
        headers=seeded.headers.alice,
    )

    assert response.status_code == 201
    body = response.get_json()
    assert body["product_id"] == catalog.product
    assert body["customer_id"] == seeded.ids.alice_customer
    assert body["rating"] == 5
    assert body["response_id"] is None


def test_feedback_validation(client, seeded, catalog) -> None:
    headers = seeded.headers.alice
    out_of_range = client.post(
        "/api/feedback", json={"product_variant_id": catalog.variant, "rating": 6}, headers=headers
    )
    assert out_of_range.status_code == 400

    missing = client.post("/api/feedback", json={"rating": 3}, headers=headers)
    assert missing.status_code == 400

    unknown = client.post(
        "/api/feedback", json={"product_variant_id": 999, "rating": 3}, headers=headers
    )
    assert unknown.status_code == 404


def test_managers_cannot_leave_feedback(client, seeded, catalog) -> None:
    response = client.post(
        "/api/feedback",
        json={"product_variant_id": catalog.variant, "rating": 3},
        headers=seeded.headers.manager,
    )

    assert response.status_code == 403


def test_feedback_visibility(app, client, seeded, catalog) -> None:
    feedback_id = leave_feedback(app, seeded.ids.alice_customer, catalog.variant)

    assert client.get(f"/api/feedback/{feedback_id}", headers=seeded.headers.alice).status_code == 200
    assert client.get(f"/api/feedback/{feedback_id}", headers=seeded.headers.manager).status_code == 200
    assert client.get(f"/api/feedback/{feedback_id}", headers=seeded.headers.bob).status_code == 403
    assert client.get("/api/feedback", headers=seeded.headers.alice).status_code == 403


def test_author_updates_feedback(app, client, seeded, catalog) -> None:
    feedback_id = leave_feedback(app, seeded.ids.alice_customer, catalog.variant)

    other = client.put(f"/api/feedback/{feedback_id}", json={"rating": 1}, headers=seeded.headers.bob)
    assert other.status_code == 403

    empty = client.put(f"/api/feedback/{feedback_id}", json={}, headers=seeded.headers.alice)
    assert empty.status_code == 400

    response = client.put(
        f"/api/feedback/{feedback_id}", json={"rating": 2, "comment": "Changed my mind"},
        headers=seeded.headers.alice,
    )
    assert response.status_code == 200
    assert (response.get_json()["rating"], response.get_json()["comment"]) == (2, "Changed my mind")


def test_list_feedback_filters(app, client, seeded, catalog) -> None:
    answered = leave_feedback(app, seeded.ids.alice_customer, catalog.variant, rating=5, comment="Love it")
    leave_feedback(app, seeded.ids.bob_customer, catalog.variant, rating=2, comment="Battery is weak")
    respond(app, answered, seeded.ids.manager_manager)
    headers = seeded.headers.manager

    with_response = client.get("/api/feedback?hasResponse=true", headers=headers).get_json()
    assert [item["feedback_id"] for item in with_response["items"]] == [answered]
    assert with_response["items"][0]["manager_name"] == "Max Manager"

    without = client.get("/api/feedback?hasResponse=false", headers=headers).get_json()
    assert [item["rating"] for item in without["items"]] == [2]

    by_rating = client.get("/api/feedback?rating=5", headers=headers).get_json()
    assert by_rating["totalCount"] == 1

    by_customer = client.get(
        f"/api/feedback?customerId={seeded.ids.bob_customer}", headers=headers
    ).get_json()
    assert [item["customer_name"] for item in by_customer["items"]] == ["Bob Customer"]

    by_comment = client.get("/api/feedback?search=battery", headers=headers).get_json()
    assert by_comment["totalCount"] == 1

    by_product = client.get(f"/api/feedback?productId={catalog.product}", headers=headers).get_json()
    assert by_product["totalCount"] == 2

    assert client.get("/api/feedback?hasResponse=maybe", headers=headers).status_code == 400


def test_respond_to_feedback(app, client, seeded, catalog) -> None:
    feedback_id = leave_feedback(app, seeded.ids.alice_customer, catalog.variant)
    url = f"/api/feedback/{feedback_id}/responses"

    blank = client.post(url, json={"content": "  "}, headers=seeded.headers.manager)
    assert blank.status_code == 400

    created = client.post(url, json={"content": "Thank you!"}, headers=seeded.headers.manager)
    assert created.status_code == 201
    assert created.get_json()["manager_id"] == seeded.ids.manager_manager

    second = client.post(url, json={"content": "Again"}, headers=seeded.headers.admin)
    assert second.status_code == 409
    assert second.get_json()["message"] == "A response already exists for this feedback."

    assert client.post(url, json={"content": "Hi"}, headers=seeded.headers.alice).status_code == 403


def test_only_the_responding_manager_edits_response(app, client, seeded, catalog) -> None:
    feedback_id = leave_feedback(app, seeded.ids.alice_customer, catalog.variant)
    response_id = respond(app, feedback_id, seeded.ids.manager_manager)
    url = f"/api/feedback/responses/{response_id}"

    other = client.put(url, json={"content": "Hijack"}, headers=seeded.headers.other_manager)
    assert other.status_code == 403

    edited = client.put(url, json={"content": "Updated reply"}, headers=seeded.headers.manager)
    assert edited.status_code == 200
    assert edited.get_json()["content"] == "Updated reply"

    assert client.delete(url, headers=seeded.headers.other_manager).status_code == 403
    assert client.delete(url, headers=seeded.headers.manager).status_code == 204
    with app.app_context():
        assert db.session.get(FeedbackResponse, response_id) is None


def test_delete_feedback_removes_response(app, client, seeded, catalog) -> None:
    feedback_id = leave_feedback(app, seeded.ids.alice_customer, catalog.variant)
    respond(app, feedback_id, seeded.ids.manager_manager)

    assert client.delete(f"/api/feedback/{feedback_id}", headers=seeded.headers.bob).status_code == 403
    response = client.delete(f"/api/feedback/{feedback_id}", headers=seeded.headers.alice)

    assert response.status_code == 204
    with app.app_context():
        assert db.session.get(Feedback, feedback_id) is None
        assert db.session.execute(select(FeedbackResponse)).first() is None
