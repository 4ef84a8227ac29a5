import stripe
from flask import Blueprint, current_app, jsonify, request
from flask_jwt_extended import jwt_required

from .. import payments
from ..extensions import mongo
from ..helpers import error_response, to_object_id
from ..ordering import create_order, expire_order, mark_order_paid, parse_requested_items, price_items
from ..security import require_user

bp = Blueprint("checkout", __name__, url_prefix="/api/checkout")


@bp.route("/session", methods=["POST"])
@jwt_required()
def create_checkout_session():
    user, error = require_user()
    if error:
        return error

    payload = request.get_json(silent=True) or {}
    raw_items = payload.get("items")
    if not isinstance(raw_items, list) or not raw_items:
        return error_response("Items are required", 400, "VALIDATION_ERROR")

    requested, errors = parse_requested_items(raw_items)
    if not errors:
        items, errors = price_items(requested, check_stock=True)
    if errors:
        return error_response("Stock validation failed", 400, "VALIDATION_ERROR", errors)

    try:
        payments.require_stripe()
    except payments.PaymentConfigurationError as exc:
        current_app.logger.error("Checkout attempted without Stripe credentials")
        return error_response(str(exc), 500, "INTERNAL_ERROR")

    shipping_address = payload.get("shippingAddress")
    order_document = create_order(
        user,
        items,
        payment_method="stripe",
        shipping_address=shipping_address if isinstance(shipping_address, dict) else None,
    )

    try:
        session = payments.create_session(order_document, user.get("email", ""))
    except stripe.StripeError as exc:
        current_app.logger.error(
            "Stripe checkout failed for order %s: %s", order_document["order_number"], exc
        )
        mongo.db.orders.delete_one({"_id": order_document["_id"]})
        mongo.db.order_status_history.delete_many({"order_id": order_document["_id"]})
        return error_response("Failed to create payment session.", 502, "PAYMENT_ERROR")

    mongo.db.orders.update_one(
        {"_id": order_document["_id"]}, {"$set": {"checkout_session_id": session.id}}
    )
    current_app.logger.info(
        "Created Stripe session %s for order %s", session.id, order_document["order_number"]
    )
    return jsonify({"url": session.url, "orderId": str(order_document["_id"]), "sessionId": session.id})


@bp.route("/webhook", methods=["POST"])
def stripe_webhook():
    secret = current_app.config.get("STRIPE_WEBHOOK_SECRET")
    if not secret:
        current_app.logger.error("Stripe webhook received but no webhook secret is configured")
        return error_response("Webhook secret not configured", 500, "INTERNAL_ERROR")

    try:
        event = payments.parse_event(
            request.get_data(), request.headers.get("Stripe-Signature", ""), secret
        )
    except (stripe.SignatureVerificationError, ValueError) as exc:
        current_app.logger.warning("Rejected Stripe webhook: %s", exc)
        return error_response(f"Webhook Error: {exc}", 400, "VALIDATION_ERROR")

    event_type = event.get("type")
    session = (event.get("data") or {}).get("object") or {}
    metadata = session.get("metadata") or {}
    order_id = to_object_id(metadata.get("orderId")) if metadata.get("orderId") else None

    if event_type == "checkout.session.completed":
        if order_id is None:
            current_app.logger.warning("Stripe session %s has no order metadata", session.get("id"))
        elif not mark_order_paid(order_id, session.get("id")):
            current_app.logger.info("Stripe webhook: order %s already paid or missing", order_id)
    elif event_type == "checkout.session.expired":
        if order_id is not None and expire_order(order_id):
            current_app.logger.info("Stripe webhook: order %s expired", order_id)
    else:
        current_app.logger.info("Unhandled Stripe event type %s", event_type)

    return jsonify({"received": True})
