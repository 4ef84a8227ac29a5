import json
import math
import re
import unicodedata
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple
from uuid import uuid4

from bson import ObjectId
from bson.errors import InvalidId
from flask import jsonify, request

email_regex = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
hex_color_regex = re.compile(r"^#(?:[0-9a-fA-F]{3}){1,2}$")
url_regex = re.compile(r"^https?://.+")


def utcnow() -> datetime:
    return datetime.utcnow()


def normalize_email(value: Optional[str]) -> str:
    return str(value or "").strip().lower()


def is_valid_email(value: Optional[str]) -> bool:
    normalized = normalize_email(value)
    return bool(normalized and email_regex.match(normalized))


def error_response(message: str, status: int = 400, code: Optional[str] = None, details=None):
    body: Dict[str, object] = {"error": message}
    if code:
        body["code"] = code
    if details is not None:
        body["details"] = details
    return jsonify(body), status


def safe_float(value, default=0.0):
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        return default
    if math.isfinite(numeric):
        return numeric
    return default


def safe_positive_int(value, default=0):
    try:
        numeric = int(float(value))
    except (TypeError, ValueError):
        return default
    return max(default, numeric)


def safe_int(value, default=None):
    """Parse an int, returning ``default`` for anything that is not a whole number."""
    if isinstance(value, bool):
        return default
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(numeric) or numeric != int(numeric):
        return default
    return int(numeric)


def parse_bool(value, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def pick(payload: Dict, *aliases, default=None):
    """Return the first alias present in ``payload`` (camelCase and snake_case inputs)."""
    if not isinstance(payload, dict):
        return default
    for alias in aliases:
        if alias in payload:
            return payload.get(alias)
    return default


def to_object_id(value) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return None


def normalize_object_id_list(values) -> List[ObjectId]:
    normalized_ids: List[ObjectId] = []
    if not values:
        return normalized_ids
    if not isinstance(values, (list, tuple, set)):
        values = [values]
    for value in values:
        object_id = to_object_id(value)
        if object_id is not None and object_id not in normalized_ids:
            normalized_ids.append(object_id)
    return normalized_ids


def parse_json_list(value):
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        return [item for item in value]
    if isinstance(value, (bytes, bytearray)):
        try:
            value = value.decode("utf-8")
        except UnicodeDecodeError:
            value = ""
    if isinstance(value, str):
        candidate = value.strip()
        if not candidate:
            return []
        try:
            parsed = json.loads(candidate)
            if isinstance(parsed, list):
                return parsed
            if isinstance(parsed, str) and parsed.strip():
                return [parsed.strip()]
        except (json.JSONDecodeError, ValueError):
            pass
        if candidate.startswith("/"):
            return [candidate]
        return []
    return []


def normalize_name(value: Optional[str]) -> str:
    if value is None:
        return ""
    return " ".join(str(value).split()).strip()


def slugify(value: Optional[str]) -> str:
    normalized_name = normalize_name(value).lower()
    ascii_name = (
        unicodedata.normalize("NFKD", normalized_name)
        .encode("ascii", "ignore")
        .decode("ascii")
    )
    slug = re.sub(r"[^a-z0-9]+", "-", ascii_name).strip("-")
    if not slug:
        slug = uuid4().hex
    return slug


def isoformat(value) -> Optional[str]:
    if isinstance(value, datetime):
        return value.isoformat() + "Z"
    return None


def parse_iso_date(value: Optional[str], *, end_of_day: bool = False):
    if not value:
        return None
    candidate = str(value).strip()
    if not candidate:
        return None
    normalized = candidate.replace("Z", "+00:00")
    if re.fullmatch(r"\d{4}-\d{2}-\d{2}", candidate):
        normalized = f"{candidate}T00:00:00"
    try:
        parsed = datetime.fromisoformat(normalized)
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.replace(tzinfo=None) - (parsed.utcoffset() or timedelta(0))
    if end_of_day and re.fullmatch(r"\d{4}-\d{2}-\d{2}", candidate):
        return parsed + timedelta(days=1)
    return parsed


def pagination_args(default_limit: int = 20, max_limit: int = 100) -> Tuple[int, int]:
    page = safe_int(request.args.get("page"), 1) or 1
    limit = safe_int(request.args.get("limit"), default_limit) or default_limit
    page = max(page, 1)
    limit = min(max(limit, 1), max_limit)
    return page, limit


def pagination_meta(page: int, limit: int, total: int) -> Dict[str, int]:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": math.ceil(total / limit) if total else 0,
    }


def client_ip() -> str:
    # ProxyFix rewrites remote_addr from the trusted X-Forwarded-For hops.
    return request.remote_addr or "unknown"


def generate_order_number() -> str:
    return f"SHK-{uuid4().hex[:10].upper()}"
