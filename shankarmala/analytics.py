"""Back-office dashboard figures computed from orders, users and the catalog."""

from collections import defaultdict
from datetime import datetime, timedelta
from typing import Dict, List

from .extensions import mongo
from .helpers import isoformat, safe_float, utcnow
from .inventory import low_stock_filter
from .serializers import serialize_orders

PAID_QUERY = {"payment_status": "paid"}
TREND_DAYS = 30
TOP_LIMIT = 5
RECENT_ORDERS_LIMIT = 10


def _sum_totals(query: Dict) -> float:
    pipeline = [{"$match": query}, {"$group": {"_id": None, "total": {"$sum": "$total"}}}]
    rows = list(mongo.db.orders.aggregate(pipeline))
    return round(safe_float(rows[0]["total"], 0.0), 2) if rows else 0.0


def _window(query: Dict, since: datetime) -> Dict:
    windowed = {**query, "created_at": {"$gte": since}}
    return {
        "orders": mongo.db.orders.count_documents({"created_at": {"$gte": since}}),
        "revenue": _sum_totals(windowed),
    }


def _day_keys(start: datetime, days: int) -> List[str]:
    return [(start + timedelta(days=offset)).strftime("%Y-%m-%d") for offset in range(days)]


def revenue_trend(now: datetime) -> List[Dict]:
    start = datetime(now.year, now.month, now.day) - timedelta(days=TREND_DAYS - 1)
    buckets: Dict[str, Dict] = {key: {"revenue": 0.0, "orders": 0} for key in _day_keys(start, TREND_DAYS)}
    for order in mongo.db.orders.find({**PAID_QUERY, "created_at": {"$gte": start}}):
        key = order["created_at"].strftime("%Y-%m-%d")
        if key in buckets:
            buckets[key]["revenue"] += safe_float(order.get("total"), 0.0)
            buckets[key]["orders"] += 1
    return [
        {"date": key, "revenue": round(bucket["revenue"], 2), "orders": bucket["orders"]}
        for key, bucket in buckets.items()
    ]


def user_growth(now: datetime) -> List[Dict]:
    start = datetime(now.year, now.month, now.day) - timedelta(days=TREND_DAYS - 1)
    counts = {key: 0 for key in _day_keys(start, TREND_DAYS)}
    for user in mongo.db.users.find({"created_at": {"$gte": start}}, {"created_at": 1}):
        key = user["created_at"].strftime("%Y-%m-%d")
        if key in counts:
            counts[key] += 1
    return [{"date": key, "users": count} for key, count in counts.items()]


def top_products_and_categories(paid_orders: List[Dict]):
    units = defaultdict(int)
    revenue = defaultdict(float)
    for order in paid_orders:
        for item in order.get("items") or []:
            gemstone_id = item.get("gemstone_id")
            if not gemstone_id:
                continue
            quantity = int(item.get("quantity") or 0)
            units[gemstone_id] += quantity
            revenue[gemstone_id] += safe_float(item.get("price"), 0.0) * quantity

    gemstones = {
        document["_id"]: document
        for document in mongo.db.gemstones.find({"_id": {"$in": list(units)}})
    }
    categories = {
        document["_id"]: document.get("name", "")
        for document in mongo.db.categories.find(
            {"_id": {"$in": [g.get("category_id") for g in gemstones.values() if g.get("category_id")]}}
        )
    }

    ranked = sorted(units, key=lambda gemstone_id: (-units[gemstone_id], str(gemstone_id)))
    top_products = [
        {
            "id": str(gemstone_id),
            "name": (gemstones.get(gemstone_id) or {}).get("name", "Removed gemstone"),
            "unitsSold": units[gemstone_id],
            "revenue": round(revenue[gemstone_id], 2),
        }
        for gemstone_id in ranked[:TOP_LIMIT]
    ]

    by_category = defaultdict(lambda: {"unitsSold": 0, "revenue": 0.0})
    for gemstone_id, quantity in units.items():
        category_id = (gemstones.get(gemstone_id) or {}).get("category_id")
        name = categories.get(category_id, "Uncategorized")
        by_category[name]["unitsSold"] += quantity
        by_category[name]["revenue"] += revenue[gemstone_id]
    sales_by_category = [
        {"category": name, "unitsSold": row["unitsSold"], "revenue": round(row["revenue"], 2)}
        for name, row in sorted(by_category.items(), key=lambda entry: -entry[1]["revenue"])
    ]
    return top_products, sales_by_category


def top_customers(paid_orders: List[Dict]) -> List[Dict]:
    spend = defaultdict(float)
    order_counts = defaultdict(int)
    for order in paid_orders:
        if order.get("user_id"):
            spend[order["user_id"]] += safe_float(order.get("total"), 0.0)
            order_counts[order["user_id"]] += 1

    ranked = sorted(spend, key=lambda user_id: -spend[user_id])[:TOP_LIMIT]
    users = {user["_id"]: user for user in mongo.db.users.find({"_id": {"$in": ranked}})}
    return [
        {
            "id": str(user_id),
            "name": (users.get(user_id) or {}).get("name", ""),
            "email": (users.get(user_id) or {}).get("email", ""),
            "orders": order_counts[user_id],
            "totalSpent": round(spend[user_id], 2),
        }
        for user_id in ranked
    ]


def build_dashboard(low_stock_threshold: int) -> Dict:
    now = utcnow()
    today = datetime(now.year, now.month, now.day)
    paid_orders = list(mongo.db.orders.find(PAID_QUERY))
    total_revenue = round(sum(safe_float(order.get("total"), 0.0) for order in paid_orders), 2)
    top_products, sales_by_category = top_products_and_categories(paid_orders)

    recent_orders = mongo.db.orders.find().sort([("created_at", -1), ("_id", -1)]).limit(RECENT_ORDERS_LIMIT)

    return {
        "totals": {
            "users": mongo.db.users.count_documents({}),
            "gemstones": mongo.db.gemstones.count_documents({}),
            "orders": mongo.db.orders.count_documents({}),
            "paidOrders": len(paid_orders),
            "pendingOrders": mongo.db.orders.count_documents({"status": "pending"}),
            "revenue": total_revenue,
            "featuredGemstones": mongo.db.gemstones.count_documents({"featured": True}),
            "activeCategories": mongo.db.categories.count_documents({"active": True}),
        },
        "windows": {
            "today": _window(PAID_QUERY, today),
            "week": _window(PAID_QUERY, now - timedelta(days=7)),
            "month": _window(PAID_QUERY, now - timedelta(days=30)),
        },
        "lowStockCount": mongo.db.gemstones.count_documents(low_stock_filter(low_stock_threshold)),
        "averageOrderValue": round(total_revenue / len(paid_orders), 2) if paid_orders else 0.0,
        "topProducts": top_products,
        "salesByCategory": sales_by_category,
        "topCustomers": top_customers(paid_orders),
        "recentOrders": serialize_orders(recent_orders, include_users=True),
        "revenueTrend": revenue_trend(now),
        "userGrowth": user_growth(now),
        "generatedAt": isoformat(now),
    }
