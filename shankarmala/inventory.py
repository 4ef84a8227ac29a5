from typing import Dict, List

from flask import current_app

from .extensions import mongo
from .helpers import safe_positive_int, utcnow

BULK_ACTIONS = {"add", "subtract", "set"}


def reserve_stock(order_document) -> bool:
    """Take the order's quantities out of stock once; returns False if already taken."""
    claimed = mongo.db.orders.find_one_and_update(
        {"_id": order_document["_id"], "stock_reserved": {"$ne": True}},
        {"$set": {"stock_reserved": True}},
    )
    if not claimed:
        return False

    for item in order_document.get("items") or []:
        quantity = safe_positive_int(item.get("quantity"), 0)
        if not quantity or not item.get("gemstone_id"):
            continue
        result = mongo.db.gemstones.update_one(
            {"_id": item["gemstone_id"], "stock_count": {"$gte": quantity}},
            {"$inc": {"stock_count": -quantity}, "$set": {"updated_at": utcnow()}},
        )
        if not result.matched_count:
            current_app.logger.warning(
                "Stock for %s ran out before order %s was paid",
                item["gemstone_id"],
                order_document.get("order_number"),
            )
            mongo.db.gemstones.update_one(
                {"_id": item["gemstone_id"]},
                {"$set": {"stock_count": 0, "updated_at": utcnow()}},
            )
    return True


def restore_stock(order_document) -> bool:
    released = mongo.db.orders.find_one_and_update(
        {"_id": order_document["_id"], "stock_reserved": True},
        {"$set": {"stock_reserved": False}},
    )
    if not released:
        return False

    for item in order_document.get("items") or []:
        quantity = safe_positive_int(item.get("quantity"), 0)
        if quantity and item.get("gemstone_id"):
            mongo.db.gemstones.update_one(
                {"_id": item["gemstone_id"]},
                {"$inc": {"stock_count": quantity}, "$set": {"updated_at": utcnow()}},
            )
    return True


def bulk_adjust_stock(gemstone_ids: List, action: str, quantity: int) -> int:
    if action not in BULK_ACTIONS:
        raise ValueError(f"Unsupported inventory action: {action}")

    updated = 0
    timestamp = utcnow()
    for gemstone in mongo.db.gemstones.find({"_id": {"$in": gemstone_ids}}):
        current = safe_positive_int(gemstone.get("stock_count"), 0)
        if action == "add":
            new_stock = current + quantity
        elif action == "subtract":
            new_stock = max(0, current - quantity)
        else:
            new_stock = max(0, quantity)
        mongo.db.gemstones.update_one(
            {"_id": gemstone["_id"]},
            {"$set": {"stock_count": new_stock, "updated_at": timestamp}},
        )
        updated += 1
    return updated


def low_stock_filter(threshold: int) -> Dict:
    return {"stock_count": {"$gt": 0, "$lte": threshold}}


def out_of_stock_filter() -> Dict:
    return {"$or": [{"stock_count": {"$lte": 0}}, {"stock_count": None}]}


def inventory_stats(threshold: int) -> Dict[str, object]:
    total_products = mongo.db.gemstones.count_documents({})
    rows = list(
        mongo.db.gemstones.aggregate(
            [{"$group": {"_id": None, "total": {"$sum": "$stock_count"}}}]
        )
    )
    total_stock = int(rows[0]["total"] or 0) if rows else 0
    return {
        "totalProducts": total_products,
        "totalStock": total_stock,
        "averageStock": round(total_stock / total_products, 2) if total_products else 0,
        "lowStockCount": mongo.db.gemstones.count_documents(low_stock_filter(threshold)),
        "outOfStockCount": mongo.db.gemstones.count_documents(out_of_stock_filter()),
    }
