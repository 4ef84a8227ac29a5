from flask import Blueprint, Response, jsonify, request
from flask_jwt_extended import jwt_required

from ..extensions import mongo
from ..helpers import error_response, parse_bool, to_object_id, utcnow
from ..invoices import render_invoice_pdf
from ..ordering import (
    NON_CANCELLABLE_STATUSES,
    change_order_status,
    create_order,
    parse_requested_items,
    price_items,
    send_order_emails,
)
from ..security import get_user_role, require_user
from ..serializers import serialize_order, serialize_orders, serialize_return, serialize_status_history

bp = Blueprint("orders", __name__, url_prefix="/api")

RETURNABLE_STATUSES = {"shipped", "delivered"}


def fetch_accessible_order(user, order_id: str):
    object_id = to_object_id(order_id)
    if object_id is None:
        return None, error_response("Invalid order id", 400, "VALIDATION_ERROR")

    order_document = mongo.db.orders.find_one({"_id": object_id})
    if not order_document:
        return None, error_response("Order not found", 404, "NOT_FOUND")

    if order_document.get("user_id") != user["_id"] and get_user_role(user) != "admin":
        return None, error_response("Forbidden", 403, "FORBIDDEN")

    return order_document, None


@bp.route("/orders", methods=["GET"])
@jwt_required()
def list_orders():
    user, error = require_user()
    if error:
        return error
    cursor = mongo.db.orders.find({"user_id": user["_id"]}).sort([("created_at", -1), ("_id", -1)])
    return jsonify(serialize_orders(cursor))


@bp.route("/orders", methods=["POST"])
@jwt_required()
def place_order():
    user, error = require_user()
    if error:
        return error

    payload = request.get_json(silent=True) or {}
    raw_items = payload.get("items")
    if not isinstance(raw_items, list) or not raw_items:
        return error_response("Order must contain at least one item", 400, "VALIDATION_ERROR")

    requested, errors = parse_requested_items(raw_items)
    if not errors:
        items, errors = price_items(requested)
    if errors:
        return error_response("Invalid order items", 400, "VALIDATION_ERROR", errors)

    order_document = create_order(
        user,
        items,
        payment_method=str(payload.get("paymentMethod") or "manual"),
        shipping_address=payload.get("shippingAddress") if isinstance(payload.get("shippingAddress"), dict) else None,
    )

    body = serialize_order(order_document)
    sent, _ = send_order_emails(order_document)
    if not sent:
        body["emailWarning"] = "Order placed, but failed to send confirmation email."
    return jsonify(body), 201


@bp.route("/orders/<order_id>", methods=["GET"])
@jwt_required()
def get_order(order_id: str):
    user, error = require_user()
    if error:
        return error
    order_document, error = fetch_accessible_order(user, order_id)
    if error:
        return error

    order = serialize_orders([order_document])[0]
    if parse_bool(request.args.get("history")):
        history = mongo.db.order_status_history.find({"order_id": order_document["_id"]}).sort(
            [("created_at", 1), ("_id", 1)]
        )
        return jsonify({"order": order, "history": [serialize_status_history(entry) for entry in history]})
    return jsonify(order)


@bp.route("/orders/<order_id>", methods=["PATCH"])
@jwt_required()
def cancel_order(order_id: str):
    user, error = require_user()
    if error:
        return error
    order_document, error = fetch_accessible_order(user, order_id)
    if error:
        return error

    payload = request.get_json(silent=True) or {}
    if payload.get("status") != "cancelled":
        return error_response("Only cancellation is allowed", 400, "VALIDATION_ERROR")
    if order_document.get("status") in NON_CANCELLABLE_STATUSES:
        return error_response("Order cannot be cancelled", 400, "VALIDATION_ERROR")

    actor = "Admin" if get_user_role(user) == "admin" else "Customer"
    updated = change_order_status(order_document, "cancelled", f"Order cancelled by {actor}")
    return jsonify(serialize_order(updated))


@bp.route("/orders/<order_id>/invoice", methods=["GET"])
@jwt_required()
def download_invoice(order_id: str):
    user, error = require_user()
    if error:
        return error
    order_document, error = fetch_accessible_order(user, order_id)
    if error:
        return error

    order = serialize_order(order_document)
    filename = f"invoice-order-{order['orderNumber'] or order['id']}.pdf"
    return Response(
        render_invoice_pdf(order),
        mimetype="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@bp.route("/returns", methods=["GET"])
@jwt_required()
def list_returns():
    user, error = require_user()
    if error:
        return error
    returns = list(mongo.db.returns.find({"user_id": user["_id"]}).sort("return_date", -1))
    orders = {
        document["_id"]: document
        for document in mongo.db.orders.find({"_id": {"$in": [entry["order_id"] for entry in returns]}})
    }
    return jsonify([serialize_return(entry, orders.get(entry["order_id"], {})) for entry in returns])


@bp.route("/returns", methods=["POST"])
@jwt_required()
def request_return():
    user, error = require_user()
    if error:
        return error

    payload = request.get_json(silent=True) or {}
    order_id = payload.get("orderId") or payload.get("order_id")
    reason = str(payload.get("reason") or "").strip()
    if not order_id or not reason:
        return error_response("Order ID and reason are required", 400, "VALIDATION_ERROR")

    object_id = to_object_id(order_id)
    order_document = (
        mongo.db.orders.find_one({"_id": object_id, "user_id": user["_id"]}) if object_id else None
    )
    if not order_document:
        return error_response("Order not found", 404, "NOT_FOUND")
    if order_document.get("status") not in RETURNABLE_STATUSES:
        return error_response("Only shipped or delivered orders can be returned", 400, "VALIDATION_ERROR")
    if mongo.db.returns.find_one({"order_id": order_document["_id"]}):
        return error_response("Return already exists for this order", 400, "VALIDATION_ERROR")

    return_document = {
        "order_id": order_document["_id"],
        "user_id": user["_id"],
        "reason": reason,
        "status": "requested",
        "return_date": utcnow(),
    }
    insert_result = mongo.db.returns.insert_one(return_document)
    return_document["_id"] = insert_result.inserted_id
    return jsonify(serialize_return(return_document, order_document)), 201
