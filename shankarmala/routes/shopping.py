from flask import Blueprint, jsonify, request
from flask_jwt_extended import jwt_required
from pymongo.errors import DuplicateKeyError

from ..extensions import mongo
from ..helpers import error_response, isoformat, parse_bool, pick, safe_int, to_object_id, utcnow
from ..ordering import calculate_order_totals, parse_requested_items
from ..security import require_user
from ..serializers import (
    effective_price,
    fetch_gemstone_summaries,
    serialize_address,
    serialize_gemstone_summary,
)

bp = Blueprint("shopping", __name__, url_prefix="/api")

ADDRESS_FIELDS = ("type", "name", "street", "city", "state", "postal_code", "country", "phone")
ADDRESS_FIELD_ALIASES = {
    "type": ("type",),
    "name": ("name", "fullName", "full_name"),
    "street": ("street", "address", "line1", "addressLine1"),
    "city": ("city", "town"),
    "state": ("state", "region"),
    "postal_code": ("postalCode", "postal_code", "zipCode", "zip_code", "zip", "postcode"),
    "country": ("country",),
    "phone": ("phone",),
}
ADDRESS_REQUIRED_FIELDS = ("name", "street", "city")
ADDRESS_TYPES = {"shipping", "billing"}


# --- Wishlist ---


def wishlist_payload(user_id):
    entries = list(mongo.db.wishlists.find({"user_id": user_id}).sort("created_at", -1))
    summaries = fetch_gemstone_summaries([entry["gemstone_id"] for entry in entries])
    return [
        {
            "id": str(entry["_id"]),
            "gemstoneId": str(entry["gemstone_id"]),
            "createdAt": isoformat(entry.get("created_at")),
            "gemstone": summaries.get(entry["gemstone_id"]),
        }
        for entry in entries
    ]


@bp.route("/users/wishlist", methods=["GET"])
@jwt_required()
def get_wishlist():
    user, error = require_user()
    if error:
        return error
    return jsonify(wishlist_payload(user["_id"]))


@bp.route("/users/wishlist", methods=["POST"])
@jwt_required()
def add_to_wishlist():
    user, error = require_user()
    if error:
        return error

    payload = request.get_json(silent=True) or {}
    raw_id = pick(payload, "gemstoneId", "gemstone_id")
    if not raw_id:
        return error_response("gemstoneId is required", 400, "VALIDATION_ERROR")
    gemstone_id = to_object_id(raw_id)
    if gemstone_id is None or not mongo.db.gemstones.find_one({"_id": gemstone_id}):
        return error_response("Gemstone not found", 404, "NOT_FOUND")

    try:
        mongo.db.wishlists.insert_one(
            {"user_id": user["_id"], "gemstone_id": gemstone_id, "created_at": utcnow()}
        )
    except DuplicateKeyError:
        return error_response("Already in wishlist", 409, "CONFLICT")

    return jsonify(wishlist_payload(user["_id"]))


@bp.route("/users/wishlist", methods=["DELETE"])
@jwt_required()
def remove_from_wishlist():
    user, error = require_user()
    if error:
        return error

    payload = request.get_json(silent=True) or {}
    entry_id = payload.get("id") or request.args.get("id")
    if not entry_id:
        return error_response("id is required", 400, "VALIDATION_ERROR")

    object_id = to_object_id(entry_id)
    result = (
        mongo.db.wishlists.delete_one({"_id": object_id, "user_id": user["_id"]})
        if object_id
        else None
    )
    if not result or not result.deleted_count:
        return error_response("Wishlist item not found", 404, "NOT_FOUND")

    return jsonify(wishlist_payload(user["_id"]))


# --- Addresses ---


def normalize_address_payload(payload) -> dict:
    normalized = {}
    for field in ADDRESS_FIELDS:
        value = pick(payload, *ADDRESS_FIELD_ALIASES[field])
        if value is None:
            continue
        normalized[field] = str(value).strip()
    if "type" in normalized and normalized["type"] not in ADDRESS_TYPES:
        normalized["type"] = "shipping"
    return normalized


def clear_other_defaults(user_id, keep_id=None) -> None:
    query = {"user_id": user_id, "is_default": True}
    if keep_id is not None:
        query["_id"] = {"$ne": keep_id}
    mongo.db.addresses.update_many(query, {"$set": {"is_default": False}})


def fetch_owned_address(user, address_id):
    object_id = to_object_id(address_id)
    if object_id is None:
        return None, error_response("Invalid address identifier.", 400, "VALIDATION_ERROR")
    address = mongo.db.addresses.find_one({"_id": object_id})
    if not address:
        return None, error_response("Address not found", 404, "NOT_FOUND")
    if address.get("user_id") != user["_id"]:
        return None, error_response("Forbidden", 403, "FORBIDDEN")
    return address, None


@bp.route("/addresses", methods=["GET"])
@jwt_required()
def list_addresses():
    user, error = require_user()
    if error:
        return error
    addresses = mongo.db.addresses.find({"user_id": user["_id"]}).sort(
        [("is_default", -1), ("created_at", -1)]
    )
    return jsonify([serialize_address(address) for address in addresses])


@bp.route("/addresses", methods=["POST"])
@jwt_required()
def create_address():
    user, error = require_user()
    if error:
        return error

    payload = request.get_json(silent=True) or {}
    fields = normalize_address_payload(payload)
    missing = [field for field in ADDRESS_REQUIRED_FIELDS if not fields.get(field)]
    if missing:
        return error_response(
            f"Missing required fields: {', '.join(missing)}", 400, "VALIDATION_ERROR"
        )

    is_default = parse_bool(pick(payload, "isDefault", "is_default"))
    if is_default:
        clear_other_defaults(user["_id"])

    timestamp = utcnow()
    address = {
        "user_id": user["_id"],
        "type": "shipping",
        **fields,
        "is_default": is_default,
        "created_at": timestamp,
        "updated_at": timestamp,
    }
    insert_result = mongo.db.addresses.insert_one(address)
    address["_id"] = insert_result.inserted_id
    return jsonify(serialize_address(address)), 201


@bp.route("/addresses", methods=["PUT"])
@jwt_required()
def update_address():
    user, error = require_user()
    if error:
        return error

    payload = request.get_json(silent=True) or {}
    if not payload.get("id"):
        return error_response("Address id is required", 400, "VALIDATION_ERROR")
    address, error = fetch_owned_address(user, payload.get("id"))
    if error:
        return error

    updates = normalize_address_payload(payload)
    for field in ADDRESS_REQUIRED_FIELDS:
        if field in updates and not updates[field]:
            return error_response(f"{field} cannot be empty", 400, "VALIDATION_ERROR")

    default_flag = pick(payload, "isDefault", "is_default")
    if default_flag is not None:
        updates["is_default"] = parse_bool(default_flag)
        if updates["is_default"]:
            clear_other_defaults(user["_id"], keep_id=address["_id"])

    updates["updated_at"] = utcnow()
    mongo.db.addresses.update_one({"_id": address["_id"]}, {"$set": updates})
    return jsonify(serialize_address(mongo.db.addresses.find_one({"_id": address["_id"]})))


@bp.route("/addresses", methods=["DELETE"])
@jwt_required()
def delete_address():
    user, error = require_user()
    if error:
        return error

    address_id = request.args.get("id") or (request.get_json(silent=True) or {}).get("id")
    if not address_id:
        return error_response("Address id is required", 400, "VALIDATION_ERROR")
    address, error = fetch_owned_address(user, address_id)
    if error:
        return error

    mongo.db.addresses.delete_one({"_id": address["_id"]})
    return jsonify({"message": "Address deleted"})


# --- Cart ---


def keeps_item(entry) -> bool:
    # Quantities below one mean "remove"; malformed entries are left for validation.
    if not isinstance(entry, dict):
        return True
    quantity = safe_int(pick(entry, "quantity"))
    return quantity is None or quantity >= 1


def cart_payload(user_id):
    cart = mongo.db.carts.find_one({"user_id": user_id}) or {}
    entries = cart.get("items") or []
    gemstones = {
        document["_id"]: document
        for document in mongo.db.gemstones.find(
            {"_id": {"$in": [entry["gemstone_id"] for entry in entries]}, "active": True}
        )
    }

    items = []
    priced = []
    for entry in entries:
        gemstone = gemstones.get(entry["gemstone_id"])
        if not gemstone:
            continue
        price = effective_price(gemstone)
        priced.append({"price": price, "quantity": entry["quantity"]})
        items.append(
            {
                "gemstoneId": str(entry["gemstone_id"]),
                "quantity": entry["quantity"],
                "price": price,
                "gemstone": serialize_gemstone_summary(gemstone),
            }
        )

    totals = calculate_order_totals(priced)
    return {
        "items": items,
        "subtotal": totals["subtotal"],
        "totalItems": totals["total_items"],
        "updatedAt": isoformat(cart.get("updated_at")),
    }


@bp.route("/cart", methods=["GET"])
@jwt_required()
def get_cart():
    user, error = require_user()
    if error:
        return error
    return jsonify(cart_payload(user["_id"]))


@bp.route("/cart", methods=["PUT"])
@jwt_required()
def replace_cart():
    user, error = require_user()
    if error:
        return error

    payload = request.get_json(silent=True) or {}
    raw_items = payload.get("items")
    if not isinstance(raw_items, list):
        return error_response("items must be a list", 400, "VALIDATION_ERROR")

    requested, errors = parse_requested_items([entry for entry in raw_items if keeps_item(entry)])
    if errors:
        return error_response("Invalid cart items", 400, "VALIDATION_ERROR", errors)

    object_ids = [to_object_id(item["gemstone_id"]) for item in requested]
    known = {
        document["_id"]
        for document in mongo.db.gemstones.find({"_id": {"$in": [oid for oid in object_ids if oid]}})
    }
    unknown = [item["gemstone_id"] for item, oid in zip(requested, object_ids) if oid not in known]
    if unknown:
        return error_response(
            "Invalid cart items",
            400,
            "VALIDATION_ERROR",
            [f"Product {gemstone_id} not found" for gemstone_id in unknown],
        )

    mongo.db.carts.update_one(
        {"user_id": user["_id"]},
        {
            "$set": {
                "items": [
                    {"gemstone_id": oid, "quantity": item["quantity"]}
                    for item, oid in zip(requested, object_ids)
                ],
                "updated_at": utcnow(),
            }
        },
        upsert=True,
    )
    return jsonify(cart_payload(user["_id"]))


@bp.route("/cart", methods=["DELETE"])
@jwt_required()
def clear_cart():
    user, error = require_user()
    if error:
        return error
    mongo.db.carts.delete_one({"user_id": user["_id"]})
    return jsonify(cart_payload(user["_id"]))
