from flask import Blueprint, jsonify, request
from flask_jwt_extended import jwt_required
from pymongo import ASCENDING, DESCENDING

from ..extensions import mongo
from ..helpers import error_response, parse_bool, safe_int, to_object_id, utcnow
from ..search import contains, search_gemstones
from ..security import require_user
from ..serializers import serialize_gemstone, serialize_gemstones, serialize_review

bp = Blueprint("catalog", __name__, url_prefix="/api")

RELATED_LIMIT = 6
LIST_SORTS = {
    "price-low": [("price", ASCENDING)],
    "price-high": [("price", DESCENDING)],
}


def fetch_gemstone(gemstone_id: str):
    object_id = to_object_id(gemstone_id)
    if object_id is None:
        return None, error_response("Invalid gemstone identifier.", 400, "VALIDATION_ERROR")

    gemstone_document = mongo.db.gemstones.find_one({"_id": object_id})
    if not gemstone_document:
        return None, error_response("Gemstone not found", 404, "NOT_FOUND")

    return gemstone_document, None


def refresh_review_stats(gemstone_id) -> None:
    rows = list(
        mongo.db.reviews.aggregate(
            [
                {"$match": {"gemstone_id": gemstone_id}},
                {"$group": {"_id": None, "average": {"$avg": "$rating"}, "count": {"$sum": 1}}},
            ]
        )
    )
    average = round(float(rows[0]["average"] or 0), 2) if rows else 0.0
    count = rows[0]["count"] if rows else 0
    mongo.db.gemstones.update_one(
        {"_id": gemstone_id}, {"$set": {"rating": average, "review_count": count}}
    )


@bp.route("/gemstones", methods=["GET"])
def list_gemstones():
    query = {"active": True}

    category_id = request.args.get("category")
    if category_id:
        object_id = to_object_id(category_id)
        if object_id is None:
            return jsonify([])
        query["category_id"] = object_id

    term = (request.args.get("search") or "").strip()
    if term:
        pattern = contains(term)
        query["$or"] = [{"name": pattern}, {"type": pattern}, {"description": pattern}]

    if parse_bool(request.args.get("featured")):
        query["featured"] = True

    sort = LIST_SORTS.get(request.args.get("sort") or "", [("name", ASCENDING)])
    documents = mongo.db.gemstones.find(query).sort(sort)
    return jsonify(serialize_gemstones(documents))


@bp.route("/gemstones/search", methods=["GET"])
def search():
    return jsonify(search_gemstones(request.args))


@bp.route("/gemstones/<gemstone_id>", methods=["GET"])
def get_gemstone(gemstone_id: str):
    if parse_bool(request.args.get("related")):
        object_id = to_object_id(gemstone_id)
        current = mongo.db.gemstones.find_one({"_id": object_id}) if object_id else None
        if not current or not current.get("category_id"):
            return jsonify([])
        related = (
            mongo.db.gemstones.find(
                {"category_id": current["category_id"], "active": True, "_id": {"$ne": object_id}}
            )
            .sort("created_at", DESCENDING)
            .limit(RELATED_LIMIT)
        )
        return jsonify(serialize_gemstones(related))

    if parse_bool(request.args.get("recommended")):
        query = {"active": True, "featured": True}
        object_id = to_object_id(gemstone_id)
        if object_id is not None:
            query["_id"] = {"$ne": object_id}
        recommended = (
            mongo.db.gemstones.find(query).sort("created_at", DESCENDING).limit(RELATED_LIMIT)
        )
        return jsonify(serialize_gemstones(recommended))

    gemstone_document, error = fetch_gemstone(gemstone_id)
    if error:
        return error

    mongo.db.gemstones.update_one({"_id": gemstone_document["_id"]}, {"$inc": {"views": 1}})
    gemstone_document["views"] = (gemstone_document.get("views") or 0) + 1
    return jsonify(serialize_gemstone(gemstone_document))


@bp.route("/gemstones/<gemstone_id>/reviews", methods=["GET"])
def list_reviews(gemstone_id: str):
    object_id = to_object_id(gemstone_id)
    if object_id is None:
        return error_response("Invalid gemstone identifier.", 400, "VALIDATION_ERROR")
    reviews = mongo.db.reviews.find({"gemstone_id": object_id}).sort("created_at", DESCENDING)
    return jsonify([serialize_review(review) for review in reviews])


@bp.route("/gemstones/<gemstone_id>/reviews", methods=["POST"])
@jwt_required()
def create_review(gemstone_id: str):
    user, error = require_user()
    if error:
        return error

    gemstone_document, error = fetch_gemstone(gemstone_id)
    if error:
        return error

    payload = request.get_json(silent=True) or {}
    rating = safe_int(payload.get("rating"))
    comment = str(payload.get("comment") or "").strip()
    if rating is None or not 1 <= rating <= 5:
        return error_response("Rating must be a whole number between 1 and 5", 400, "VALIDATION_ERROR")
    if not comment:
        return error_response("Comment is required", 400, "VALIDATION_ERROR")

    review_document = {
        "gemstone_id": gemstone_document["_id"],
        "user_id": user["_id"],
        "user_name": user.get("name") or user.get("email", ""),
        "rating": rating,
        "comment": comment,
        "created_at": utcnow(),
    }
    insert_result = mongo.db.reviews.insert_one(review_document)
    review_document["_id"] = insert_result.inserted_id
    refresh_review_stats(gemstone_document["_id"])

    return jsonify(serialize_review(review_document)), 201


@bp.route("/categories", methods=["GET"])
def list_categories():
    categories = mongo.db.categories.find({"active": True}).sort([("order", ASCENDING), ("name", ASCENDING)])
    return jsonify(
        [
            {
                "id": str(category["_id"]),
                "name": category.get("name", ""),
                "slug": category.get("slug", ""),
                "description": category.get("description", ""),
                "image": category.get("image", ""),
                "order": category.get("order", 0),
            }
            for category in categories
        ]
    )
