import csv
import io
import re
from datetime import datetime
from typing import Dict

from flask import Blueprint, Response, current_app, jsonify, request
from flask_jwt_extended import jwt_required

from ..analytics import build_dashboard
from ..audit import record_audit_log, serialize_audit_log
from ..extensions import mongo
from ..helpers import (
    client_ip,
    error_response,
    isoformat,
    normalize_email,
    pagination_args,
    pagination_meta,
    parse_iso_date,
    safe_float,
    to_object_id,
    utcnow,
)
from ..mailer import send_order_status_email
from ..notifications import create_notification
from ..ordering import ORDER_STATUSES, change_order_status
from ..ratelimit import rate_limit
from ..security import (
    ALLOWED_USER_ROLES,
    attach_token_cookie,
    check_password,
    default_admin_email,
    get_user_role,
    issue_token,
    require_admin_user,
)
from ..serializers import serialize_order, serialize_orders, serialize_return, serialize_user_profile

bp = Blueprint("admin_ops", __name__, url_prefix="/api")

RETURN_STATUSES = ("requested", "approved", "rejected", "completed")
EXPORT_TYPES = ("orders", "users", "gemstones")


@bp.route("/admin/login", methods=["POST"])
@rate_limit("admin-login", 8)
def admin_login():
    payload = request.get_json(silent=True) or {}
    email = normalize_email(payload.get("email"))
    password = str(payload.get("password") or "")
    if not email or not password:
        return error_response("Email and password are required", 400, "VALIDATION_ERROR")

    user = mongo.db.users.find_one({"email": email})
    if not user or get_user_role(user) != "admin" or not check_password(password, user.get("password")):
        current_app.logger.warning("Rejected admin login for %s from %s", email, client_ip())
        return error_response("Invalid credentials", 401, "AUTH_REQUIRED")

    lifetime = current_app.config["ADMIN_TOKEN_EXPIRES"]
    token = issue_token(user, expires_delta=lifetime)
    mongo.db.users.update_one({"_id": user["_id"]}, {"$set": {"last_login_at": utcnow()}})
    record_audit_log(email, "Admin signed in", {"ip": client_ip()})

    response = jsonify(
        {
            "success": True,
            "message": "Login successful",
            "user": {"id": str(user["_id"]), "email": email, "role": "admin"},
            "access_token": token,
        }
    )
    return attach_token_cookie(response, token, expires_delta=lifetime)


# --- Orders ---


@bp.route("/admin/orders", methods=["GET"])
@jwt_required()
def admin_list_orders():
    _, admin_error = require_admin_user()
    if admin_error:
        return admin_error
    cursor = mongo.db.orders.find().sort([("created_at", -1), ("_id", -1)])
    return jsonify(serialize_orders(cursor, include_users=True))


@bp.route("/admin/orders/<order_id>", methods=["PATCH", "PUT"])
@jwt_required()
def admin_update_order(order_id: str):
    admin_user, admin_error = require_admin_user()
    if admin_error:
        return admin_error

    payload = request.get_json(silent=True) or {}
    status = str(payload.get("status") or "").strip().lower()
    if status not in ORDER_STATUSES:
        return error_response(
            f"Status must be one of: {', '.join(ORDER_STATUSES)}", 400, "VALIDATION_ERROR"
        )

    object_id = to_object_id(order_id)
    order_document = mongo.db.orders.find_one({"_id": object_id}) if object_id else None
    if not order_document:
        return error_response("Order not found", 404, "NOT_FOUND")

    if order_document.get("status") == status:
        return jsonify(serialize_order(order_document))

    previous_status = order_document.get("status")
    comment = str(payload.get("comment") or "").strip() or f"Status changed to {status} by Admin"
    updated = change_order_status(order_document, status, comment)

    create_notification(
        updated.get("user_id"), f"Your order {updated.get('order_number')} is now {status}."
    )
    sent, send_error = send_order_status_email(updated)
    if not sent:
        current_app.logger.warning(
            "Status email for order %s was not sent: %s", updated.get("order_number"), send_error
        )

    record_audit_log(
        admin_user.get("email"),
        "Updated order status",
        {"order_number": updated.get("order_number"), "from": previous_status, "to": status},
    )
    return jsonify(serialize_order(updated))


# --- Returns ---


@bp.route("/admin/returns", methods=["GET"])
@jwt_required()
def admin_list_returns():
    _, admin_error = require_admin_user()
    if admin_error:
        return admin_error

    page, limit = pagination_args(default_limit=20)
    query: Dict[str, object] = {}
    status = (request.args.get("status") or "").strip()
    if status:
        query["status"] = status

    returns = list(
        mongo.db.returns.find(query).sort("return_date", -1).skip((page - 1) * limit).limit(limit)
    )
    orders = {
        document["_id"]: document
        for document in mongo.db.orders.find({"_id": {"$in": [entry["order_id"] for entry in returns]}})
    }
    return jsonify(
        {
            "returns": [serialize_return(entry, orders.get(entry["order_id"], {})) for entry in returns],
            "pagination": pagination_meta(page, limit, mongo.db.returns.count_documents(query)),
        }
    )


@bp.route("/admin/returns", methods=["PUT"])
@jwt_required()
def admin_update_return():
    admin_user, admin_error = require_admin_user()
    if admin_error:
        return admin_error

    payload = request.get_json(silent=True) or {}
    status = str(payload.get("status") or "").strip().lower()
    if not payload.get("id") or not status:
        return error_response("Return ID and status are required", 400, "VALIDATION_ERROR")
    if status not in RETURN_STATUSES:
        return error_response(
            f"Status must be one of: {', '.join(RETURN_STATUSES)}", 400, "VALIDATION_ERROR"
        )

    object_id = to_object_id(payload.get("id"))
    return_document = mongo.db.returns.find_one({"_id": object_id}) if object_id else None
    if not return_document:
        return error_response("Return not found", 404, "NOT_FOUND")

    updates: Dict[str, object] = {"status": status, "processed_at": utcnow()}
    refund_amount = None
    if payload.get("refundAmount") is not None:
        refund_amount = safe_float(payload.get("refundAmount"), None)
        if refund_amount is None or refund_amount < 0:
            return error_response("Refund amount must be a non-negative number", 400, "VALIDATION_ERROR")
        updates["refund_amount"] = round(refund_amount, 2)
    if payload.get("refundMethod"):
        updates["refund_method"] = str(payload.get("refundMethod")).strip()
    if payload.get("notes") is not None:
        updates["notes"] = str(payload.get("notes") or "").strip()

    mongo.db.returns.update_one({"_id": return_document["_id"]}, {"$set": updates})

    if status == "approved" and refund_amount:
        mongo.db.refunds.insert_one(
            {
                "return_id": return_document["_id"],
                "order_id": return_document["order_id"],
                "amount": round(refund_amount, 2),
                "method": updates.get("refund_method"),
                "status": "pending",
                "created_at": utcnow(),
            }
        )

    create_notification(return_document.get("user_id"), f"Your return request is now {status}.")
    record_audit_log(
        admin_user.get("email"),
        "Processed return",
        {"return_id": str(return_document["_id"]), "status": status, "refund_amount": refund_amount},
    )
    order_document = mongo.db.orders.find_one({"_id": return_document["order_id"]}) or {}
    return jsonify(
        serialize_return(mongo.db.returns.find_one({"_id": return_document["_id"]}), order_document)
    )


# --- Users ---


def fetch_user_for_admin(user_id: str):
    object_id = to_object_id(user_id)
    if object_id is None:
        return None, error_response("Invalid user identifier.", 400, "VALIDATION_ERROR")
    user_document = mongo.db.users.find_one({"_id": object_id})
    if not user_document:
        return None, error_response("User not found.", 404, "NOT_FOUND")
    return user_document, None


@bp.route("/admin/users", methods=["GET"])
@jwt_required()
def admin_list_users():
    _, admin_error = require_admin_user()
    if admin_error:
        return admin_error
    users = mongo.db.users.find().sort([("created_at", -1), ("_id", -1)])
    return jsonify([serialize_user_profile(user) for user in users])


@bp.route("/admin/users/<user_id>/role", methods=["PUT"])
@jwt_required()
def admin_update_user_role(user_id: str):
    admin_user, admin_error = require_admin_user()
    if admin_error:
        return admin_error

    payload = request.get_json(silent=True) or {}
    desired_role = str(payload.get("role", "")).strip().lower()
    if desired_role not in ALLOWED_USER_ROLES:
        return error_response("Role must be 'admin' or 'user'.", 400, "VALIDATION_ERROR")

    user_document, error = fetch_user_for_admin(user_id)
    if error:
        return error

    target_email = normalize_email(user_document.get("email"))
    if target_email == default_admin_email() and desired_role != "admin":
        return error_response("The default administrator must remain an admin.", 400, "VALIDATION_ERROR")

    mongo.db.users.update_one(
        {"_id": user_document["_id"]}, {"$set": {"role": desired_role, "updated_at": utcnow()}}
    )
    record_audit_log(
        admin_user.get("email"),
        "Updated user role",
        {"target_email": target_email, "new_role": desired_role},
    )
    return jsonify(
        {
            "message": f"Role updated to {desired_role}.",
            "user": serialize_user_profile(mongo.db.users.find_one({"_id": user_document["_id"]})),
        }
    )


@bp.route("/admin/users/<user_id>", methods=["DELETE"])
@jwt_required()
def admin_delete_user(user_id: str):
    admin_user, admin_error = require_admin_user()
    if admin_error:
        return admin_error

    user_document, error = fetch_user_for_admin(user_id)
    if error:
        return error

    target_email = normalize_email(user_document.get("email"))
    if user_document["_id"] == admin_user["_id"]:
        return error_response("You cannot delete your own account.", 400, "VALIDATION_ERROR")
    if target_email == default_admin_email():
        return error_response(
            "The default administrator account cannot be deleted.", 400, "VALIDATION_ERROR"
        )

    user_id_value = user_document["_id"]
    mongo.db.users.delete_one({"_id": user_id_value})
    for collection in ("wishlists", "addresses", "carts", "notifications"):
        mongo.db[collection].delete_many({"user_id": user_id_value})

    record_audit_log(
        admin_user.get("email"),
        "Deleted user",
        {"target_email": target_email, "display_name": user_document.get("name", "")},
    )
    display_name = user_document.get("name") or "User"
    return jsonify(
        {
            "message": f"{display_name} has been removed from the directory.",
            "user": {"id": str(user_id_value)},
        }
    )


# --- Analytics and exports ---


@bp.route("/admin/analytics", methods=["GET"])
@jwt_required()
def admin_analytics():
    _, admin_error = require_admin_user()
    if admin_error:
        return admin_error
    return jsonify(build_dashboard(current_app.config["LOW_STOCK_THRESHOLD"]))


def _csv_date(value) -> str:
    return isoformat(value) or ""


def export_orders(writer) -> None:
    writer.writerow(["Order ID", "User", "Total", "Status", "Items", "Date"])
    for order in serialize_orders(
        mongo.db.orders.find().sort([("created_at", -1), ("_id", -1)]), include_users=True
    ):
        user = order.get("user") or {}
        items = "; ".join(f"{item['name']} ({item['quantity']})" for item in order["items"])
        writer.writerow(
            [
                order["orderNumber"] or order["id"],
                user.get("name") or user.get("email") or order.get("email", ""),
                order["total"],
                order["status"],
                items,
                order["createdAt"] or "",
            ]
        )


def export_users(writer) -> None:
    writer.writerow(["User ID", "Name", "Email", "Total Orders", "Total Spent", "Join Date"])
    totals: Dict[object, Dict[str, float]] = {}
    for order in mongo.db.orders.find({}, {"user_id": 1, "total": 1}):
        entry = totals.setdefault(order.get("user_id"), {"count": 0, "spent": 0.0})
        entry["count"] += 1
        entry["spent"] += safe_float(order.get("total"), 0.0)
    for user in mongo.db.users.find().sort([("created_at", -1), ("_id", -1)]):
        entry = totals.get(user["_id"], {"count": 0, "spent": 0.0})
        writer.writerow(
            [
                str(user["_id"]),
                user.get("name", ""),
                user.get("email", ""),
                entry["count"],
                round(entry["spent"], 2),
                _csv_date(user.get("created_at")),
            ]
        )


def export_gemstones(writer) -> None:
    writer.writerow(["ID", "Name", "Type", "Category", "Price", "Certification", "Total Sold", "Images"])
    sold: Dict[object, int] = {}
    for order in mongo.db.orders.find({}, {"items": 1}):
        for item in order.get("items") or []:
            sold[item.get("gemstone_id")] = sold.get(item.get("gemstone_id"), 0) + int(item.get("quantity") or 0)
    categories = {category["_id"]: category.get("name", "") for category in mongo.db.categories.find()}
    for gemstone in mongo.db.gemstones.find().sort([("created_at", -1), ("_id", -1)]):
        writer.writerow(
            [
                str(gemstone["_id"]),
                gemstone.get("name", ""),
                gemstone.get("type", ""),
                categories.get(gemstone.get("category_id")) or "Uncategorized",
                gemstone.get("price", 0),
                gemstone.get("certification", ""),
                sold.get(gemstone["_id"], 0),
                ", ".join(gemstone.get("images") or []),
            ]
        )


EXPORTERS = {"orders": export_orders, "users": export_users, "gemstones": export_gemstones}


@bp.route("/admin/export/<export_type>", methods=["GET"])
@jwt_required()
def admin_export(export_type: str):
    admin_user, admin_error = require_admin_user()
    if admin_error:
        return admin_error

    exporter = EXPORTERS.get(export_type)
    if exporter is None:
        return error_response("Invalid export type", 400, "VALIDATION_ERROR")

    buffer = io.StringIO()
    exporter(csv.writer(buffer))
    record_audit_log(admin_user.get("email"), "Exported data", {"type": export_type})
    return Response(
        buffer.getvalue(),
        mimetype="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{export_type}.csv"'},
    )


# --- Audit logs ---


def created_at_filter(start_param, end_param) -> Dict[str, datetime]:
    start_date = parse_iso_date(start_param)
    end_date = parse_iso_date(end_param, end_of_day=True)
    created_filter: Dict[str, datetime] = {}
    if start_date:
        created_filter["$gte"] = start_date
    if end_date:
        created_filter["$lt"] = end_date
    return created_filter


@bp.route("/admin/logs", methods=["GET"])
@jwt_required()
def admin_list_logs():
    _, admin_error = require_admin_user()
    if admin_error:
        return admin_error

    page, limit = pagination_args(default_limit=50, max_limit=200)
    query: Dict[str, object] = {}
    search_term = (request.args.get("search") or "").strip()
    if search_term:
        regex = re.compile(re.escape(search_term), re.IGNORECASE)
        query["$or"] = [{"user_email": regex}, {"user_name": regex}, {"action": regex}]

    created_filter = created_at_filter(
        request.args.get("start") or request.args.get("from"),
        request.args.get("end") or request.args.get("to"),
    )
    if created_filter:
        query["created_at"] = created_filter

    cursor = mongo.db.audit_logs.find(query).sort("created_at", -1).skip((page - 1) * limit).limit(limit)
    return jsonify(
        {
            "logs": [serialize_audit_log(document) for document in cursor],
            "pagination": pagination_meta(page, limit, mongo.db.audit_logs.count_documents(query)),
        }
    )


@bp.route("/admin/logs", methods=["DELETE"])
@jwt_required()
def admin_delete_logs():
    admin_user, admin_error = require_admin_user()
    if admin_error:
        return admin_error

    payload = request.get_json(silent=True) or {}
    created_filter = created_at_filter(
        payload.get("from") or payload.get("start"), payload.get("to") or payload.get("end")
    )
    delete_query = {"created_at": created_filter} if created_filter else {}
    result = mongo.db.audit_logs.delete_many(delete_query)

    record_audit_log(
        admin_user.get("email"),
        "Deleted audit logs",
        {"count": result.deleted_count, "range": "filtered" if delete_query else "all"},
    )
    return jsonify(
        {
            "message": f"Removed {result.deleted_count} audit log entries.",
            "deleted": result.deleted_count,
        }
    )
