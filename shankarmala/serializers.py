from typing import Dict, Iterable, List, Optional

from bson import ObjectId

from .extensions import mongo
from .helpers import isoformat, normalize_object_id_list, parse_json_list, safe_float, safe_positive_int
from .security import get_user_role


def camelize(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def _id(value) -> Optional[str]:
    return str(value) if value is not None else None


def normalize_images(value) -> List[str]:
    return [str(item) for item in parse_json_list(value) if item]


def effective_price(gemstone_document) -> float:
    price = safe_float(gemstone_document.get("price"), 0.0)
    discount = min(max(safe_float(gemstone_document.get("discount"), 0.0), 0.0), 90.0)
    return round(price * (1 - discount / 100), 2)


def fetch_categories_by_ids(category_ids) -> Dict[ObjectId, Dict]:
    normalized_ids = normalize_object_id_list(list(category_ids or []))
    if not normalized_ids:
        return {}
    category_documents = mongo.db.categories.find({"_id": {"$in": normalized_ids}})
    return {document["_id"]: document for document in category_documents}


def build_category_map(gemstone_documents: Iterable[Dict]) -> Dict[ObjectId, Dict]:
    return fetch_categories_by_ids(
        {document.get("category_id") for document in gemstone_documents if document.get("category_id")}
    )


def serialize_category_summary(category_document) -> Optional[Dict]:
    if not category_document:
        return None
    return {
        "id": str(category_document["_id"]),
        "name": category_document.get("name", ""),
        "description": category_document.get("description", ""),
    }


def serialize_category(category_document, gemstone_counts=None) -> Dict:
    category_id = category_document.get("_id")
    return {
        "id": _id(category_id),
        "name": category_document.get("name", ""),
        "slug": category_document.get("slug", ""),
        "description": category_document.get("description", ""),
        "image": category_document.get("image", ""),
        "order": category_document.get("order", 0),
        "active": bool(category_document.get("active", True)),
        "gemstoneCount": (gemstone_counts or {}).get(category_id, 0),
        "createdAt": isoformat(category_document.get("created_at")),
        "updatedAt": isoformat(category_document.get("updated_at")),
    }


def serialize_gemstone(gemstone_document, category_map=None) -> Dict:
    if not gemstone_document:
        return {}

    category_id = gemstone_document.get("category_id")
    category_document = None
    if category_id is not None:
        if category_map is not None:
            category_document = category_map.get(category_id)
        else:
            category_document = mongo.db.categories.find_one({"_id": category_id})

    return {
        "id": str(gemstone_document["_id"]),
        "name": gemstone_document.get("name", ""),
        "type": gemstone_document.get("type", ""),
        "description": gemstone_document.get("description", ""),
        "price": round(safe_float(gemstone_document.get("price"), 0.0), 2),
        "discount": safe_float(gemstone_document.get("discount"), 0.0),
        "finalPrice": effective_price(gemstone_document),
        "images": normalize_images(gemstone_document.get("images")),
        "certification": gemstone_document.get("certification", ""),
        "categoryId": _id(category_id),
        "category": serialize_category_summary(category_document),
        "active": bool(gemstone_document.get("active", True)),
        "featured": bool(gemstone_document.get("featured", False)),
        "stockCount": safe_positive_int(gemstone_document.get("stock_count"), 0),
        "lowStockThreshold": gemstone_document.get("low_stock_threshold"),
        "sku": gemstone_document.get("sku") or None,
        "views": safe_positive_int(gemstone_document.get("views"), 0),
        "rating": round(safe_float(gemstone_document.get("rating"), 0.0), 2),
        "reviewCount": safe_positive_int(gemstone_document.get("review_count"), 0),
        "createdAt": isoformat(gemstone_document.get("created_at")),
        "updatedAt": isoformat(gemstone_document.get("updated_at")),
    }


def serialize_gemstones(gemstone_documents) -> List[Dict]:
    documents = list(gemstone_documents)
    category_map = build_category_map(documents)
    return [serialize_gemstone(document, category_map) for document in documents]


def serialize_gemstone_summary(gemstone_document) -> Optional[Dict]:
    if not gemstone_document:
        return None
    return {
        "id": str(gemstone_document["_id"]),
        "name": gemstone_document.get("name", ""),
        "type": gemstone_document.get("type", ""),
        "images": normalize_images(gemstone_document.get("images")),
        "price": round(safe_float(gemstone_document.get("price"), 0.0), 2),
        "finalPrice": effective_price(gemstone_document),
        "active": bool(gemstone_document.get("active", True)),
        "stockCount": safe_positive_int(gemstone_document.get("stock_count"), 0),
    }


def fetch_gemstone_summaries(gemstone_ids) -> Dict[ObjectId, Dict]:
    normalized_ids = normalize_object_id_list(list(gemstone_ids or []))
    if not normalized_ids:
        return {}
    return {
        document["_id"]: serialize_gemstone_summary(document)
        for document in mongo.db.gemstones.find({"_id": {"$in": normalized_ids}})
    }


def serialize_user_profile(user_document) -> Dict:
    return {
        "id": str(user_document["_id"]),
        "name": user_document.get("name", ""),
        "email": user_document.get("email", ""),
        "role": get_user_role(user_document),
        "profileImage": user_document.get("profile_image") or None,
        "emailVerified": bool(user_document.get("email_verified", False)),
        "createdAt": isoformat(user_document.get("created_at")),
        "updatedAt": isoformat(user_document.get("updated_at")),
    }


def serialize_address(address_document) -> Dict:
    return {
        "id": str(address_document["_id"]),
        "type": address_document.get("type", "shipping"),
        "name": address_document.get("name", ""),
        "street": address_document.get("street", ""),
        "city": address_document.get("city", ""),
        "state": address_document.get("state", ""),
        "postalCode": address_document.get("postal_code", ""),
        "country": address_document.get("country", ""),
        "phone": address_document.get("phone", ""),
        "isDefault": bool(address_document.get("is_default", False)),
        "createdAt": isoformat(address_document.get("created_at")),
        "updatedAt": isoformat(address_document.get("updated_at")),
    }


def serialize_review(review_document) -> Dict:
    return {
        "id": str(review_document["_id"]),
        "gemstoneId": _id(review_document.get("gemstone_id")),
        "userId": _id(review_document.get("user_id")),
        "userName": review_document.get("user_name", ""),
        "rating": review_document.get("rating", 0),
        "comment": review_document.get("comment", ""),
        "createdAt": isoformat(review_document.get("created_at")),
    }


def serialize_notification(notification_document) -> Dict:
    return {
        "id": str(notification_document["_id"]),
        "message": notification_document.get("message", ""),
        "read": bool(notification_document.get("read", False)),
        "createdAt": isoformat(notification_document.get("created_at")),
    }


def serialize_order_item(item: Dict, gemstone_summaries=None) -> Dict:
    gemstone_id = item.get("gemstone_id")
    serialized = {
        "gemstoneId": _id(gemstone_id),
        "name": item.get("name", ""),
        "type": item.get("type", ""),
        "image": item.get("image", ""),
        "quantity": safe_positive_int(item.get("quantity"), 1) or 1,
        "price": round(safe_float(item.get("price"), 0.0), 2),
    }
    if gemstone_summaries is not None:
        serialized["gemstone"] = gemstone_summaries.get(gemstone_id) or {
            "id": _id(gemstone_id),
            "name": item.get("name", ""),
            "type": item.get("type", ""),
            "images": [item["image"]] if item.get("image") else [],
        }
    return serialized


def serialize_order(order_document, gemstone_summaries=None, user_document=None) -> Dict:
    if not order_document:
        return {}
    serialized = {
        "id": str(order_document["_id"]),
        "orderNumber": order_document.get("order_number", ""),
        "userId": _id(order_document.get("user_id")),
        "email": order_document.get("email", ""),
        "customerName": order_document.get("customer_name", ""),
        "items": [
            serialize_order_item(item, gemstone_summaries)
            for item in order_document.get("items") or []
            if isinstance(item, dict)
        ],
        "subtotal": round(safe_float(order_document.get("subtotal"), 0.0), 2),
        "total": round(safe_float(order_document.get("total"), 0.0), 2),
        "currency": str(order_document.get("currency") or "INR").upper(),
        "status": order_document.get("status", "pending"),
        "paymentStatus": order_document.get("payment_status", "pending"),
        "paymentMethod": order_document.get("payment_method", ""),
        "shippingAddress": order_document.get("shipping_address") or None,
        "createdAt": isoformat(order_document.get("created_at")),
        "updatedAt": isoformat(order_document.get("updated_at")),
    }
    if user_document is not None:
        serialized["user"] = {
            "id": str(user_document["_id"]),
            "name": user_document.get("name", ""),
            "email": user_document.get("email", ""),
        }
    return serialized


def serialize_orders(order_documents, include_users: bool = False) -> List[Dict]:
    documents = list(order_documents)
    gemstone_ids = {
        item.get("gemstone_id")
        for document in documents
        for item in document.get("items") or []
        if isinstance(item, dict) and item.get("gemstone_id")
    }
    summaries = fetch_gemstone_summaries(gemstone_ids)
    if not include_users:
        return [serialize_order(document, summaries) for document in documents]

    user_ids = normalize_object_id_list([document.get("user_id") for document in documents])
    users = {user["_id"]: user for user in mongo.db.users.find({"_id": {"$in": user_ids}})}
    serialized_orders = []
    for document in documents:
        user_document = users.get(document.get("user_id"))
        serialized = serialize_order(document, summaries, user_document)
        if user_document is None:
            serialized["user"] = None
        serialized_orders.append(serialized)
    return serialized_orders


def serialize_status_history(history_document) -> Dict:
    return {
        "id": str(history_document["_id"]),
        "orderId": _id(history_document.get("order_id")),
        "status": history_document.get("status", ""),
        "comment": history_document.get("comment", ""),
        "createdAt": isoformat(history_document.get("created_at")),
    }


def serialize_return(return_document, order_document=None) -> Dict:
    serialized = {
        "id": str(return_document["_id"]),
        "orderId": _id(return_document.get("order_id")),
        "userId": _id(return_document.get("user_id")),
        "reason": return_document.get("reason", ""),
        "status": return_document.get("status", "requested"),
        "refundAmount": return_document.get("refund_amount"),
        "refundMethod": return_document.get("refund_method"),
        "notes": return_document.get("notes"),
        "returnDate": isoformat(return_document.get("return_date")),
        "processedAt": isoformat(return_document.get("processed_at")),
    }
    if order_document is not None:
        serialized["order"] = serialize_order(order_document) if order_document else None
    return serialized


def serialize_content_entry(document, fields) -> Dict:
    serialized = {"id": str(document["_id"])}
    for field in fields:
        serialized[camelize(field)] = document.get(field)
    serialized["order"] = document.get("order", 0)
    serialized["active"] = bool(document.get("active", True))
    serialized["createdAt"] = isoformat(document.get("created_at"))
    serialized["updatedAt"] = isoformat(document.get("updated_at"))
    return serialized
