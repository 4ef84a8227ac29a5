"""Order lifecycle: pricing requested items, status history, payment and cancellation."""

from typing import Dict, List, Optional, Tuple

from flask import current_app

from .extensions import mongo
from .helpers import generate_order_number, pick, safe_int, to_object_id, utcnow
from .inventory import reserve_stock, restore_stock
from .mailer import send_admin_order_alert, send_order_confirmation_email
from .notifications import create_notification
from .serializers import effective_price, normalize_images

ORDER_STATUSES = ("pending", "paid", "processing", "shipped", "delivered", "cancelled")
NON_CANCELLABLE_STATUSES = {"delivered", "cancelled"}


def parse_requested_items(raw_items) -> Tuple[List[Dict], List[str]]:
    """Merge ``[{gemstoneId, quantity}]`` entries by gemstone; returns (items, errors)."""
    merged: Dict[str, Dict] = {}
    errors: List[str] = []
    for index, entry in enumerate(raw_items or [], start=1):
        if not isinstance(entry, dict):
            errors.append(f"Item {index} is invalid")
            continue
        raw_id = pick(entry, "gemstoneId", "gemstone_id", "productId", "id")
        gemstone_id = str(raw_id or "").strip()
        quantity = safe_int(pick(entry, "quantity"), None)
        if not gemstone_id:
            errors.append(f"Item {index} is missing gemstoneId")
            continue
        if quantity is None or quantity <= 0:
            errors.append(f"Item {index} must have a positive quantity")
            continue
        if gemstone_id in merged:
            merged[gemstone_id]["quantity"] += quantity
        else:
            merged[gemstone_id] = {"gemstone_id": gemstone_id, "quantity": quantity}
    return list(merged.values()), errors


def price_items(requested_items: List[Dict], check_stock: bool = False) -> Tuple[List[Dict], List[str]]:
    """Freeze catalog prices into order items and collect validation problems."""
    priced: List[Dict] = []
    errors: List[str] = []
    object_ids = [to_object_id(item["gemstone_id"]) for item in requested_items]
    gemstones = {
        document["_id"]: document
        for document in mongo.db.gemstones.find({"_id": {"$in": [oid for oid in object_ids if oid]}})
    }

    for item, object_id in zip(requested_items, object_ids):
        gemstone = gemstones.get(object_id) if object_id else None
        if not gemstone:
            errors.append(f"Product {item['gemstone_id']} not found")
            continue
        name = gemstone.get("name", "")
        if check_stock:
            if not gemstone.get("active", True):
                errors.append(f"{name} is not available")
                continue
            available = safe_int(gemstone.get("stock_count"), 0) or 0
            if available < item["quantity"]:
                errors.append(f"Only {available} units available for {name}")
                continue
        images = normalize_images(gemstone.get("images"))
        priced.append(
            {
                "gemstone_id": gemstone["_id"],
                "name": name,
                "type": gemstone.get("type", ""),
                "image": images[0] if images else "",
                "quantity": item["quantity"],
                "price": effective_price(gemstone),
            }
        )
    return priced, errors


def calculate_order_totals(items: List[Dict]) -> Dict[str, float]:
    subtotal = round(sum(item["price"] * item["quantity"] for item in items), 2)
    return {
        "subtotal": subtotal,
        "total_items": sum(item["quantity"] for item in items),
    }


def add_status_history(order_id, status: str, comment: str = "") -> None:
    mongo.db.order_status_history.insert_one(
        {"order_id": order_id, "status": status, "comment": comment, "created_at": utcnow()}
    )


def create_order(
    user_document,
    items: List[Dict],
    payment_method: str,
    shipping_address: Optional[Dict] = None,
) -> Dict:
    totals = calculate_order_totals(items)
    timestamp = utcnow()
    order_document = {
        "order_number": generate_order_number(),
        "user_id": user_document["_id"],
        "email": user_document.get("email", ""),
        "customer_name": user_document.get("name", ""),
        "items": items,
        "subtotal": totals["subtotal"],
        "total": totals["subtotal"],
        "currency": current_app.config["STRIPE_CURRENCY"].upper(),
        "status": "pending",
        "payment_status": "pending",
        "payment_method": payment_method,
        "stock_reserved": False,
        "created_at": timestamp,
        "updated_at": timestamp,
    }
    if shipping_address:
        order_document["shipping_address"] = shipping_address
    insert_result = mongo.db.orders.insert_one(order_document)
    order_document["_id"] = insert_result.inserted_id
    add_status_history(order_document["_id"], "pending", "Order placed")
    return order_document


def send_order_emails(order_document) -> Tuple[bool, Optional[str]]:
    sent, error = send_order_confirmation_email(order_document)
    send_admin_order_alert(order_document)
    return sent, error


def clear_cart(user_id) -> None:
    if user_id:
        mongo.db.carts.delete_one({"user_id": user_id})


def mark_order_paid(order_id, session_id: Optional[str] = None) -> bool:
    """Record a confirmed payment once; returns False when nothing changed."""
    update = {"status": "paid", "payment_status": "paid", "updated_at": utcnow()}
    if session_id:
        update["checkout_session_id"] = session_id
    order_document = mongo.db.orders.find_one_and_update(
        {"_id": order_id, "payment_status": {"$ne": "paid"}},
        {"$set": update},
    )
    if not order_document:
        return False

    order_document.update(update)
    add_status_history(order_id, "paid", "Payment confirmed")
    reserve_stock(order_document)
    clear_cart(order_document.get("user_id"))
    create_notification(
        order_document.get("user_id"),
        f"Payment received for order {order_document.get('order_number')}.",
    )
    send_order_emails(order_document)
    current_app.logger.info("Order %s marked paid", order_document.get("order_number"))
    return True


def expire_order(order_id) -> bool:
    order_document = mongo.db.orders.find_one_and_update(
        {"_id": order_id, "payment_status": "pending"},
        {"$set": {"status": "cancelled", "payment_status": "expired", "updated_at": utcnow()}},
    )
    if not order_document:
        return False
    add_status_history(order_id, "cancelled", "Checkout session expired")
    return True


def change_order_status(order_document, status: str, comment: str) -> Dict:
    update = {"status": status, "updated_at": utcnow()}
    if status == "paid":
        update["payment_status"] = "paid"
    mongo.db.orders.update_one({"_id": order_document["_id"]}, {"$set": update})
    add_status_history(order_document["_id"], status, comment)
    if status == "cancelled":
        restore_stock(order_document)
    elif status == "paid":
        reserve_stock(order_document)
    return mongo.db.orders.find_one({"_id": order_document["_id"]})
