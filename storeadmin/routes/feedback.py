"""Customer feedback and manager responses."""
from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy import or_, select

from .. import cascades, validators
from ..auth import Actor, current_actor, protect, staff_only
from ..database import transaction
from ..errors import BadRequest, Conflict, Forbidden, NotFound, conflict_on_duplicate
from ..extensions import db
from ..models import Account, Customer, Feedback, FeedbackResponse, Product, ProductVariant
from ..pagination import int_arg, like_pattern, list_params, paginate

bp = Blueprint("feedback", __name__)

FEEDBACK_SORTS = {
    "feedback_created_at": Feedback.created_at,
    "created_at": Feedback.created_at,
    "rating": Feedback.rating,
    "product_name": Product.name,
    "customer_name": Account.full_name,
}


def _feedback_or_404(feedback_id: int) -> Feedback:
    feedback = db.session.get(Feedback, feedback_id)
    if feedback is None:
        raise NotFound("Feedback not found.")
    return feedback


def _response_or_404(response_id: int) -> FeedbackResponse:
    response = db.session.get(FeedbackResponse, response_id)
    if response is None:
        raise NotFound("Feedback response not found.")
    return response


def _is_author(actor: Actor, feedback: Feedback) -> bool:
    return actor.customer_id is not None and feedback.customer_id == actor.customer_id


def _require_manager(actor: Actor) -> int:
    if actor.manager_id is None:
        raise Forbidden("Manager profile not found for the logged-in user.")
    return actor.manager_id


def _rating(value) -> int:
    return validators.integer(value, "rating", minimum=1, maximum=5)


@bp.get("")
@staff_only
def list_feedback() -> tuple[dict[str, object], int]:
    """Paginated feedback with its response, for staff review.
    ---
    tags:
      - Feedback
    parameters:
      - name: productId
        in: query
        type: integer
      - name: customerId
        in: query
        type: integer
      - name: rating
        in: query
        type: integer
      - name: hasResponse
        in: query
        type: boolean
      - name: search
        in: query
        type: string
        description: Matches product name, customer name or comment
    responses:
      200:
        description: One page of feedback.
      400:
        description: Invalid parameters.
    """
    params = list_params(FEEDBACK_SORTS, "feedback_created_at", "desc")
    stmt = (
        select(Feedback)
        .join(Product, Product.id == Feedback.product_id)
        .join(Customer, Customer.id == Feedback.customer_id)
        .join(Account, Account.id == Customer.account_id)
        .outerjoin(FeedbackResponse, FeedbackResponse.feedback_id == Feedback.id)
    )

    product_id = int_arg("productId")
    if product_id is not None:
        stmt = stmt.where(Feedback.product_id == product_id)
    customer_id = int_arg("customerId")
    if customer_id is not None:
        stmt = stmt.where(Feedback.customer_id == customer_id)
    rating = int_arg("rating")
    if rating is not None:
        stmt = stmt.where(Feedback.rating == _rating(rating))

    has_response = request.args.get("hasResponse")
    if has_response not in (None, ""):
        if has_response.lower() not in ("true", "false"):
            raise BadRequest("hasResponse must be 'true' or 'false'")
        if has_response.lower() == "true":
            stmt = stmt.where(FeedbackResponse.id.is_not(None))
        else:
            stmt = stmt.where(FeedbackResponse.id.is_(None))

    if params.search:
        pattern = like_pattern(params.search)
        stmt = stmt.where(
            or_(
                Product.name.ilike(pattern, escape="\\"),
                Account.full_name.ilike(pattern, escape="\\"),
                Feedback.comment.ilike(pattern, escape="\\"),
            )
        )

    return jsonify(paginate(stmt, params, FEEDBACK_SORTS, Feedback.to_dict)), 200


@bp.get("/<int:feedback_id>")
@protect
def get_feedback(feedback_id: int) -> tuple[dict[str, object], int]:
    actor = current_actor()
    feedback = _feedback_or_404(feedback_id)
    if not actor.is_staff and not _is_author(actor, feedback):
        raise Forbidden("You are not authorized to view this feedback.")
    return jsonify(feedback.to_dict()), 200


@bp.post("")
@protect
def create_feedback() -> tuple[dict[str, object], int]:
    actor = current_actor()
    if actor.customer_id is None:
        raise Forbidden("Only customers can leave feedback.")

    payload = validators.json_body()
    if payload.get("product_variant_id") in (None, "") or payload.get("rating") in (None, ""):
        raise BadRequest("Please provide product_variant_id and rating")
    variant = db.session.get(
        ProductVariant, validators.integer(payload["product_variant_id"], "product_variant_id")
    )
    if variant is None:
        raise NotFound("Product variant not found")

    feedback = Feedback(
        product_id=variant.product_id,
        product_variant_id=variant.id,
        customer_id=actor.customer_id,
        rating=_rating(payload["rating"]),
        comment=validators.optional_str(payload, "comment"),
    )
    with transaction() as tx:
        tx.add(feedback)
    return jsonify(feedback.to_dict()), 201


@bp.put("/<int:feedback_id>")
@protect
def update_feedback(feedback_id: int) -> tuple[dict[str, object], int]:
    actor = current_actor()
    feedback = _feedback_or_404(feedback_id)
    if not _is_author(actor, feedback):
        raise Forbidden("You are not authorized to update this feedback.")

    payload = validators.json_body()
    if "rating" not in payload and "comment" not in payload:
        raise BadRequest("No fields provided for update")
    with transaction():
        if "rating" in payload:
            feedback.rating = _rating(payload["rating"])
        if "comment" in payload:
            feedback.comment = validators.optional_str(payload, "comment")
    return jsonify(feedback.to_dict()), 200


@bp.delete("/<int:feedback_id>")
@protect
def delete_feedback(feedback_id: int):
    actor = current_actor()
    feedback = _feedback_or_404(feedback_id)
    if not actor.is_staff and not _is_author(actor, feedback):
        raise Forbidden("You are not authorized to delete this feedback.")

    with transaction() as tx:
        cascades.delete_with_rules(tx, cascades.FEEDBACK, feedback_id)
    current_app.logger.info("Feedback %s deleted by account %s", feedback_id, actor.id)
    return "", 204


@bp.post("/<int:feedback_id>/responses")
@staff_only
def create_response(feedback_id: int) -> tuple[dict[str, object], int]:
    payload = validators.json_body()
    content = payload.get("content")
    if not isinstance(content, str) or not content.strip():
        raise BadRequest("Response content cannot be empty.")
    manager_id = _require_manager(current_actor())

    message = "A response already exists for this feedback."
    with conflict_on_duplicate(message), transaction() as tx:
        feedback = _feedback_or_404(feedback_id)
        if feedback.response is not None:
            raise Conflict(message)
        response = FeedbackResponse(
            feedback_id=feedback.id, manager_id=manager_id, content=content.strip()
        )
        tx.add(response)
    return jsonify(response.to_dict()), 201


def _owned_response(response_id: int) -> FeedbackResponse:
    manager_id = _require_manager(current_actor())
    response = _response_or_404(response_id)
    if response.manager_id != manager_id:
        raise Forbidden("You are not authorized to modify this response.")
    return response


@bp.put("/responses/<int:response_id>")
@staff_only
def update_response(response_id: int) -> tuple[dict[str, object], int]:
    payload = validators.json_body()
    content = payload.get("content")
    if not isinstance(content, str) or not content.strip():
        raise BadRequest("Response content cannot be empty.")

    response = _owned_response(response_id)
    with transaction():
        response.content = content.strip()
    return jsonify(response.to_dict()), 200


@bp.delete("/responses/<int:response_id>")
@staff_only
def delete_response(response_id: int):
    response = _owned_response(response_id)
    with transaction() as tx:
        tx.delete(response)
    return "", 204
