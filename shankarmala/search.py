"""Catalog search: filter building, sorting and facet counts over active gemstones."""

import re
from typing import Dict, List, Optional, Tuple

from pymongo import ASCENDING, DESCENDING

from .extensions import mongo
from .helpers import pagination_meta, parse_bool, safe_float, safe_int, to_object_id
from .serializers import serialize_gemstones

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100
SORT_FIELDS = {
    "price": "price",
    "rating": "rating",
    "name": "name",
}
FIXED_SORTS = {
    "newest": [("created_at", DESCENDING)],
    "popular": [("views", DESCENDING)],
    "featured": [("featured", DESCENDING)],
    "stock": [("stock_count", DESCENDING)],
}


def contains(term: str):
    return re.compile(re.escape(term), re.IGNORECASE)


def build_search_filter(args) -> Dict:
    query: Dict[str, object] = {"active": True}
    clauses: List[Dict] = []

    term = (args.get("q") or "").strip()
    if term:
        pattern = contains(term)
        clauses.append(
            {
                "$or": [
                    {"name": pattern},
                    {"description": pattern},
                    {"type": pattern},
                    {"certification": pattern},
                ]
            }
        )

    category_id = to_object_id(args.get("category")) if args.get("category") else None
    if category_id is not None:
        query["category_id"] = category_id

    price_range: Dict[str, float] = {}
    min_price = safe_float(args.get("minPrice"), None)
    max_price = safe_float(args.get("maxPrice"), None)
    if min_price is not None:
        price_range["$gte"] = min_price
    if max_price is not None:
        price_range["$lte"] = max_price
    if price_range:
        query["price"] = price_range

    in_stock = (args.get("inStock") or "").strip().lower()
    if in_stock == "true":
        query["stock_count"] = {"$gt": 0}
    elif in_stock == "false":
        clauses.append({"$or": [{"stock_count": {"$lte": 0}}, {"stock_count": None}]})

    min_rating = safe_float(args.get("rating"), None)
    if min_rating is not None:
        query["rating"] = {"$gte": min_rating}

    if parse_bool(args.get("featured")):
        query["featured"] = True

    if parse_bool(args.get("discount")):
        query["discount"] = {"$gt": 0}

    gemstone_type = (args.get("type") or "").strip()
    if gemstone_type:
        query["type"] = gemstone_type

    certification = (args.get("certification") or "").strip()
    if certification:
        query["certification"] = contains(certification)

    if clauses:
        query["$and"] = clauses
    return query


def build_sort(sort_by: Optional[str], sort_order: Optional[str]) -> List[Tuple[str, int]]:
    direction = DESCENDING if (sort_order or "").lower() == "desc" else ASCENDING
    key = (sort_by or "name").strip().lower()
    if key in FIXED_SORTS:
        sort = list(FIXED_SORTS[key])
    else:
        sort = [(SORT_FIELDS.get(key, "name"), direction)]
    if sort[0][0] != "name":
        sort.append(("name", ASCENDING))
    return sort


def _group_counts(query: Dict, field: str) -> List[Tuple[object, int]]:
    pipeline = [
        {"$match": query},
        {"$group": {"_id": f"${field}", "count": {"$sum": 1}}},
    ]
    counts = [
        (row["_id"], row["count"])
        for row in mongo.db.gemstones.aggregate(pipeline)
        if row.get("_id") not in (None, "")
    ]
    counts.sort(key=lambda entry: (-entry[1], str(entry[0])))
    return counts


def build_facets(query: Dict) -> Dict[str, List[Dict]]:
    category_counts = _group_counts(query, "category_id")
    category_names = {
        document["_id"]: document.get("name")
        for document in mongo.db.categories.find(
            {"_id": {"$in": [category_id for category_id, _ in category_counts]}}
        )
    }
    return {
        "categories": [
            {
                "id": str(category_id),
                "name": category_names.get(category_id) or "Unknown",
                "count": count,
            }
            for category_id, count in category_counts
        ],
        "types": [
            {"type": gemstone_type, "count": count}
            for gemstone_type, count in _group_counts(query, "type")
        ],
        "certifications": [
            {"certification": certification, "count": count}
            for certification, count in _group_counts(query, "certification")
        ],
    }


def review_statistics(gemstone_ids) -> Dict[object, Tuple[float, int]]:
    if not gemstone_ids:
        return {}
    pipeline = [
        {"$match": {"gemstone_id": {"$in": list(gemstone_ids)}}},
        {
            "$group": {
                "_id": "$gemstone_id",
                "average": {"$avg": "$rating"},
                "count": {"$sum": 1},
            }
        },
    ]
    return {
        row["_id"]: (round(float(row.get("average") or 0), 2), row["count"])
        for row in mongo.db.reviews.aggregate(pipeline)
    }


def search_gemstones(args) -> Dict[str, object]:
    page = max(safe_int(args.get("page"), 1) or 1, 1)
    limit = safe_int(args.get("limit"), DEFAULT_PAGE_SIZE) or DEFAULT_PAGE_SIZE
    limit = min(max(limit, 1), MAX_PAGE_SIZE)

    query = build_search_filter(args)
    sort = build_sort(args.get("sortBy"), args.get("sortOrder"))

    documents = list(
        mongo.db.gemstones.find(query).sort(sort).skip((page - 1) * limit).limit(limit)
    )
    total = mongo.db.gemstones.count_documents(query)

    statistics = review_statistics([document["_id"] for document in documents])
    gemstones = serialize_gemstones(documents)
    for document, serialized in zip(documents, gemstones):
        average, count = statistics.get(document["_id"], (0, 0))
        serialized["rating"] = average
        serialized["reviewCount"] = count

    return {
        "gemstones": gemstones,
        "pagination": pagination_meta(page, limit, total),
        "facets": build_facets(query),
    }
