from flask import Blueprint, current_app, jsonify, request
from flask_jwt_extended import jwt_required
from pymongo import ASCENDING

from ..audit import record_audit_log
from ..extensions import mongo
from ..helpers import (
    error_response,
    normalize_name,
    normalize_object_id_list,
    pagination_args,
    pagination_meta,
    parse_bool,
    pick,
    safe_float,
    safe_int,
    slugify,
    to_object_id,
    utcnow,
)
from ..inventory import (
    BULK_ACTIONS,
    bulk_adjust_stock,
    inventory_stats,
    low_stock_filter,
    out_of_stock_filter,
)
from ..security import require_admin_user
from ..serializers import normalize_images, serialize_category, serialize_gemstone, serialize_gemstones
from ..uploads import build_upload_url, parse_crop_box, remove_product_image, save_product_image

bp = Blueprint("admin_catalog", __name__, url_prefix="/api")

MAX_DISCOUNT = 90


def validate_gemstone_payload(payload, partial: bool = False):
    """Map an admin gemstone payload to document fields; returns (fields, error message)."""
    fields = {}

    if not partial or "name" in payload:
        name = normalize_name(payload.get("name"))
        if not name:
            return None, "Name is required"
        fields["name"] = name

    if not partial or "type" in payload:
        gemstone_type = normalize_name(payload.get("type"))
        if not gemstone_type:
            return None, "Type is required"
        fields["type"] = gemstone_type

    if not partial or "price" in payload:
        price = safe_float(payload.get("price"), None)
        if price is None or price <= 0:
            return None, "Price must be a positive number"
        fields["price"] = round(price, 2)

    if "description" in payload:
        fields["description"] = str(payload.get("description") or "").strip()
    if "certification" in payload:
        fields["certification"] = str(payload.get("certification") or "").strip()
    if "sku" in payload:
        fields["sku"] = str(payload.get("sku") or "").strip() or None
    if "images" in payload:
        fields["images"] = normalize_images(payload.get("images"))

    for flag in ("active", "featured"):
        if flag in payload:
            fields[flag] = parse_bool(payload.get(flag))

    stock = pick(payload, "stockCount", "stock_count")
    if stock is not None:
        stock_count = safe_int(stock)
        if stock_count is None or stock_count < 0:
            return None, "Stock count must be a non-negative whole number"
        fields["stock_count"] = stock_count

    if "discount" in payload:
        discount = safe_float(payload.get("discount"), None)
        if discount is None or not 0 <= discount <= MAX_DISCOUNT:
            return None, f"Discount must be between 0 and {MAX_DISCOUNT}"
        fields["discount"] = discount

    category = pick(payload, "categoryId", "category_id", "category")
    if category is not None:
        if category in ("", None):
            fields["category_id"] = None
        else:
            category_id = to_object_id(category)
            if category_id is None or not mongo.db.categories.find_one({"_id": category_id}):
                return None, "Category not found"
            fields["category_id"] = category_id

    return fields, None


def fetch_gemstone_for_admin(gemstone_id: str):
    object_id = to_object_id(gemstone_id)
    if object_id is None:
        return None, error_response("Invalid gemstone identifier.", 400, "VALIDATION_ERROR")
    gemstone_document = mongo.db.gemstones.find_one({"_id": object_id})
    if not gemstone_document:
        return None, error_response("Gemstone not found", 404, "NOT_FOUND")
    return gemstone_document, None


# --- Gemstones ---


@bp.route("/admin/gemstones", methods=["GET"])
@jwt_required()
def admin_list_gemstones():
    _, admin_error = require_admin_user()
    if admin_error:
        return admin_error
    documents = mongo.db.gemstones.find().sort([("created_at", -1), ("_id", -1)])
    return jsonify(serialize_gemstones(documents))


@bp.route("/admin/gemstones", methods=["POST"])
@jwt_required()
def admin_create_gemstone():
    admin_user, admin_error = require_admin_user()
    if admin_error:
        return admin_error

    payload = request.get_json(silent=True) or {}
    fields, validation_error = validate_gemstone_payload(payload)
    if validation_error:
        return error_response(validation_error, 400, "VALIDATION_ERROR")

    timestamp = utcnow()
    gemstone_document = {
        "description": "",
        "images": [],
        "certification": "",
        "category_id": None,
        "active": True,
        "featured": False,
        "stock_count": 0,
        "discount": 0.0,
        "views": 0,
        "rating": 0.0,
        "review_count": 0,
        **fields,
        "created_at": timestamp,
        "updated_at": timestamp,
    }
    insert_result = mongo.db.gemstones.insert_one(gemstone_document)
    gemstone_document["_id"] = insert_result.inserted_id

    record_audit_log(
        admin_user.get("email"),
        "Created gemstone",
        {"gemstone_id": str(insert_result.inserted_id), "name": gemstone_document["name"]},
    )
    return jsonify(serialize_gemstone(gemstone_document)), 201


@bp.route("/admin/gemstones/<gemstone_id>", methods=["PATCH", "PUT"])
@jwt_required()
def admin_update_gemstone(gemstone_id: str):
    admin_user, admin_error = require_admin_user()
    if admin_error:
        return admin_error
    gemstone_document, error = fetch_gemstone_for_admin(gemstone_id)
    if error:
        return error

    payload = request.get_json(silent=True) or {}
    fields, validation_error = validate_gemstone_payload(payload, partial=True)
    if validation_error:
        return error_response(validation_error, 400, "VALIDATION_ERROR")

    fields["updated_at"] = utcnow()
    mongo.db.gemstones.update_one({"_id": gemstone_document["_id"]}, {"$set": fields})
    record_audit_log(
        admin_user.get("email"),
        "Updated gemstone",
        {"gemstone_id": gemstone_id, "fields": ",".join(sorted(fields))},
    )
    return jsonify(serialize_gemstone(mongo.db.gemstones.find_one({"_id": gemstone_document["_id"]})))


@bp.route("/admin/gemstones/<gemstone_id>", methods=["DELETE"])
@jwt_required()
def admin_delete_gemstone(gemstone_id: str):
    admin_user, admin_error = require_admin_user()
    if admin_error:
        return admin_error
    gemstone_document, error = fetch_gemstone_for_admin(gemstone_id)
    if error:
        return error

    if mongo.db.orders.count_documents({"items.gemstone_id": gemstone_document["_id"]}):
        return error_response(
            "Cannot delete gemstone that has been ordered. Consider marking it as inactive instead.",
            400,
            "VALIDATION_ERROR",
        )

    mongo.db.gemstones.delete_one({"_id": gemstone_document["_id"]})
    mongo.db.reviews.delete_many({"gemstone_id": gemstone_document["_id"]})
    mongo.db.wishlists.delete_many({"gemstone_id": gemstone_document["_id"]})
    remove_product_image(
        [image for image in normalize_images(gemstone_document.get("images")) if image.startswith("/uploads/")]
    )
    record_audit_log(
        admin_user.get("email"),
        "Deleted gemstone",
        {"gemstone_id": gemstone_id, "name": gemstone_document.get("name")},
    )
    return "", 204


# --- Featured ---


@bp.route("/admin/gemstones/featured", methods=["GET"])
@jwt_required()
def admin_list_featured():
    _, admin_error = require_admin_user()
    if admin_error:
        return admin_error
    documents = mongo.db.gemstones.find({"featured": True}).sort("name", ASCENDING)
    return jsonify(
        [
            {"id": str(document["_id"]), "name": document.get("name", ""), "featured": True}
            for document in documents
        ]
    )


@bp.route("/admin/gemstones/featured", methods=["PUT"])
@jwt_required()
def admin_update_featured():
    admin_user, admin_error = require_admin_user()
    if admin_error:
        return admin_error

    payload = request.get_json(silent=True) or {}
    if payload.get("action") == "toggle" and payload.get("productId"):
        gemstone_document, error = fetch_gemstone_for_admin(str(payload.get("productId")))
        if error:
            return error
        featured = not bool(gemstone_document.get("featured"))
        mongo.db.gemstones.update_one(
            {"_id": gemstone_document["_id"]},
            {"$set": {"featured": featured, "updated_at": utcnow()}},
        )
        record_audit_log(
            admin_user.get("email"),
            "Toggled featured gemstone",
            {"gemstone_id": str(gemstone_document["_id"]), "featured": featured},
        )
        state = "featured" if featured else "unfeatured"
        return jsonify({"message": f"Product {state} successfully", "featured": featured})

    if isinstance(payload.get("featuredIds"), list):
        featured_ids = normalize_object_id_list(payload["featuredIds"])
        timestamp = utcnow()
        mongo.db.gemstones.update_many(
            {"featured": True, "_id": {"$nin": featured_ids}},
            {"$set": {"featured": False, "updated_at": timestamp}},
        )
        result = mongo.db.gemstones.update_many(
            {"_id": {"$in": featured_ids}},
            {"$set": {"featured": True, "updated_at": timestamp}},
        )
        record_audit_log(
            admin_user.get("email"), "Updated featured gemstones", {"count": result.matched_count}
        )
        return jsonify(
            {"message": "Featured products updated successfully", "updatedCount": result.matched_count}
        )

    return error_response("Invalid request format", 400, "VALIDATION_ERROR")


# --- Inventory ---


@bp.route("/admin/inventory", methods=["GET"])
@jwt_required()
def admin_inventory():
    _, admin_error = require_admin_user()
    if admin_error:
        return admin_error

    page, limit = pagination_args(default_limit=20)
    threshold = current_app.config["LOW_STOCK_THRESHOLD"]
    query = {}
    if parse_bool(request.args.get("lowStock")):
        query = low_stock_filter(threshold)
    elif parse_bool(request.args.get("outOfStock")):
        query = out_of_stock_filter()

    documents = (
        mongo.db.gemstones.find(query)
        .sort([("stock_count", ASCENDING), ("name", ASCENDING)])
        .skip((page - 1) * limit)
        .limit(limit)
    )
    total = mongo.db.gemstones.count_documents(query)
    return jsonify(
        {
            "gemstones": serialize_gemstones(documents),
            "pagination": pagination_meta(page, limit, total),
            "stats": inventory_stats(threshold),
        }
    )


@bp.route("/admin/inventory", methods=["PUT"])
@jwt_required()
def admin_update_inventory():
    admin_user, admin_error = require_admin_user()
    if admin_error:
        return admin_error

    payload = request.get_json(silent=True) or {}
    if not payload.get("id"):
        return error_response("Gemstone ID is required", 400, "VALIDATION_ERROR")
    gemstone_document, error = fetch_gemstone_for_admin(str(payload.get("id")))
    if error:
        return error

    updates = {}
    stock = pick(payload, "stockCount", "stock_count")
    if stock is not None:
        stock_count = safe_int(stock)
        if stock_count is None or stock_count < 0:
            return error_response("Stock count must be a non-negative whole number", 400, "VALIDATION_ERROR")
        updates["stock_count"] = stock_count
    threshold = pick(payload, "lowStockThreshold", "low_stock_threshold")
    if threshold is not None:
        threshold_value = safe_int(threshold)
        if threshold_value is None or threshold_value < 0:
            return error_response("Low stock threshold must be a non-negative whole number", 400, "VALIDATION_ERROR")
        updates["low_stock_threshold"] = threshold_value
    if "sku" in payload:
        updates["sku"] = str(payload.get("sku") or "").strip() or None

    updates["updated_at"] = utcnow()
    mongo.db.gemstones.update_one({"_id": gemstone_document["_id"]}, {"$set": updates})
    record_audit_log(
        admin_user.get("email"),
        "Updated inventory",
        {"gemstone_id": str(gemstone_document["_id"]), "stock_count": updates.get("stock_count")},
    )
    return jsonify(
        {"gemstone": serialize_gemstone(mongo.db.gemstones.find_one({"_id": gemstone_document["_id"]}))}
    )


@bp.route("/admin/inventory", methods=["POST"])
@jwt_required()
def admin_bulk_inventory():
    admin_user, admin_error = require_admin_user()
    if admin_error:
        return admin_error

    payload = request.get_json(silent=True) or {}
    action = payload.get("action")
    if action not in BULK_ACTIONS:
        return error_response("Invalid action", 400, "VALIDATION_ERROR")

    gemstone_ids = normalize_object_id_list(payload.get("gemstoneIds"))
    if not gemstone_ids:
        return error_response("gemstoneIds must list at least one gemstone", 400, "VALIDATION_ERROR")

    default_quantity = 0 if action == "set" else 1
    quantity = safe_int(payload.get("quantity"), default_quantity)
    if quantity is None or quantity < 0:
        return error_response("Quantity must be a non-negative whole number", 400, "VALIDATION_ERROR")

    updated = bulk_adjust_stock(gemstone_ids, action, quantity)
    record_audit_log(
        admin_user.get("email"),
        "Bulk inventory update",
        {"action": action, "quantity": quantity, "count": updated},
    )
    return jsonify({"message": f"Updated {updated} gemstones", "updatedCount": updated})


# --- Categories ---


def validate_category_payload(payload, partial: bool = False):
    fields = {}
    if not partial or "name" in payload:
        name = normalize_name(payload.get("name"))
        if len(name) < 2:
            return None, "Category name must be at least 2 characters long."
        fields["name"] = name
        fields["slug"] = slugify(name)
    if "description" in payload:
        fields["description"] = str(payload.get("description") or "").strip()
    if "image" in payload:
        fields["image"] = str(payload.get("image") or "").strip()
    if "order" in payload:
        order = safe_int(payload.get("order"))
        if order is None:
            return None, "Order must be a whole number"
        fields["order"] = order
    if "active" in payload:
        fields["active"] = parse_bool(payload.get("active"))
    return fields, None


def build_category_gemstone_counts():
    pipeline = [{"$group": {"_id": "$category_id", "count": {"$sum": 1}}}]
    return {row["_id"]: row["count"] for row in mongo.db.gemstones.aggregate(pipeline) if row["_id"]}


def fetch_category(category_id: str):
    object_id = to_object_id(category_id)
    if object_id is None:
        return None, error_response("Invalid category identifier.", 400, "VALIDATION_ERROR")
    category_document = mongo.db.categories.find_one({"_id": object_id})
    if not category_document:
        return None, error_response("Category not found", 404, "NOT_FOUND")
    return category_document, None


@bp.route("/admin/categories", methods=["GET"])
@jwt_required()
def admin_list_categories():
    _, admin_error = require_admin_user()
    if admin_error:
        return admin_error
    counts = build_category_gemstone_counts()
    categories = mongo.db.categories.find().sort([("order", ASCENDING), ("name", ASCENDING)])
    return jsonify([serialize_category(category, counts) for category in categories])


@bp.route("/admin/categories", methods=["POST"])
@jwt_required()
def admin_create_category():
    admin_user, admin_error = require_admin_user()
    if admin_error:
        return admin_error

    payload = request.get_json(silent=True) or {}
    fields, validation_error = validate_category_payload(payload)
    if validation_error:
        return error_response(validation_error, 400, "VALIDATION_ERROR")
    if mongo.db.categories.find_one({"slug": fields["slug"]}):
        return error_response("A category with this name already exists.", 409, "CONFLICT")

    timestamp = utcnow()
    category_document = {
        "description": "",
        "image": "",
        "order": 0,
        "active": True,
        **fields,
        "created_at": timestamp,
        "updated_at": timestamp,
    }
    insert_result = mongo.db.categories.insert_one(category_document)
    category_document["_id"] = insert_result.inserted_id
    record_audit_log(admin_user.get("email"), "Created category", {"name": fields["name"]})
    return jsonify(serialize_category(category_document)), 201


@bp.route("/admin/categories/<category_id>", methods=["PATCH", "PUT"])
@jwt_required()
def admin_update_category(category_id: str):
    admin_user, admin_error = require_admin_user()
    if admin_error:
        return admin_error
    category_document, error = fetch_category(category_id)
    if error:
        return error

    payload = request.get_json(silent=True) or {}
    fields, validation_error = validate_category_payload(payload, partial=True)
    if validation_error:
        return error_response(validation_error, 400, "VALIDATION_ERROR")
    if "slug" in fields and mongo.db.categories.find_one(
        {"slug": fields["slug"], "_id": {"$ne": category_document["_id"]}}
    ):
        return error_response("A category with this name already exists.", 409, "CONFLICT")

    fields["updated_at"] = utcnow()
    mongo.db.categories.update_one({"_id": category_document["_id"]}, {"$set": fields})
    record_audit_log(admin_user.get("email"), "Updated category", {"category_id": category_id})
    return jsonify(
        serialize_category(
            mongo.db.categories.find_one({"_id": category_document["_id"]}),
            build_category_gemstone_counts(),
        )
    )


@bp.route("/admin/categories/<category_id>", methods=["DELETE"])
@jwt_required()
def admin_delete_category(category_id: str):
    admin_user, admin_error = require_admin_user()
    if admin_error:
        return admin_error
    category_document, error = fetch_category(category_id)
    if error:
        return error

    if mongo.db.gemstones.count_documents({"category_id": category_document["_id"]}):
        return error_response(
            "Cannot delete category that has gemstones. Move or delete them first.",
            400,
            "VALIDATION_ERROR",
        )

    mongo.db.categories.delete_one({"_id": category_document["_id"]})
    record_audit_log(
        admin_user.get("email"), "Deleted category", {"name": category_document.get("name")}
    )
    return "", 204


# --- Uploads ---


@bp.route("/upload", methods=["POST"])
@jwt_required()
def upload_image():
    admin_user, admin_error = require_admin_user()
    if admin_error:
        return admin_error

    crop_box, crop_error = parse_crop_box(request.form)
    if crop_error:
        return error_response(crop_error, 400, "VALIDATION_ERROR")

    filename, upload_error = save_product_image(request.files.get("file"), crop_box)
    if upload_error:
        return error_response(upload_error, 400, "VALIDATION_ERROR")

    record_audit_log(admin_user.get("email"), "Uploaded image", {"filename": filename})
    return jsonify({"url": build_upload_url(filename)})
