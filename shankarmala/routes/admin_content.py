from flask import Blueprint, jsonify, request
from flask_jwt_extended import jwt_required

from ..audit import record_audit_log
from ..content import (
    CONTENT_KINDS,
    DEFAULT_THEME,
    ensure_default_sections,
    get_or_create_hero,
    get_or_create_settings,
    hero_content,
    list_sections,
    save_settings,
    serialize_navigation,
    serialize_section,
    serialize_seo,
    serialize_site,
    serialize_theme,
)
from ..extensions import mongo
from ..helpers import (
    error_response,
    hex_color_regex,
    is_valid_email,
    isoformat,
    normalize_email,
    parse_bool,
    safe_int,
    to_object_id,
    url_regex,
    utcnow,
)
from ..security import require_admin_user
from ..serializers import camelize, serialize_content_entry

bp = Blueprint("admin_content", __name__, url_prefix="/api")

KIND_PATTERN = "any({}):kind".format(", ".join(sorted(CONTENT_KINDS)))
NAVIGATION_SECTIONS = {
    "mainMenu": "menu_items",
    "footerMenu": "footer_links",
    "socialLinks": "social_links",
}
SEO_SECTIONS = {
    "global": "global",
    "pages": "pages",
    "social": "social",
    "analytics": "analytics",
    "structuredData": "structured_data",
}
SITE_FIELDS = {
    "siteName": "site_name",
    "siteDescription": "site_description",
    "contactEmail": "contact_email",
    "contactPhone": "contact_phone",
    "address": "address",
    "socialMedia": "social_media",
}
THEME_SECTIONS = {
    "colors": "colors",
    "fonts": "fonts",
    "spacing": "spacing",
    "borderRadius": "border_radius",
    "shadows": "shadows",
    "animations": "animations",
}
THEME_REQUIRED = ("colors", "fonts", "spacing")


# --- Content lists (FAQs, testimonials, press, banners) ---


def validate_entry_payload(kind, payload, partial: bool = False):
    fields = {}
    for field in kind.fields:
        key = camelize(field)
        if key not in payload and field not in payload:
            continue
        value = payload.get(key, payload.get(field))
        if field == "rating":
            rating = safe_int(value)
            if rating is None or not 1 <= rating <= 5:
                return None, "Rating must be a whole number between 1 and 5"
            fields[field] = rating
        else:
            fields[field] = str(value or "").strip()

    for field in kind.required:
        if (not partial or field in fields) and not fields.get(field):
            return None, f"{camelize(field)} is required"

    if "order" in payload:
        order = safe_int(payload.get("order"))
        if order is None:
            return None, "Order must be a whole number"
        fields["order"] = order
    if "active" in payload:
        fields["active"] = parse_bool(payload.get("active"))
    return fields, None


def fetch_entry(kind, entry_id: str):
    object_id = to_object_id(entry_id)
    document = kind.documents.find_one({"_id": object_id}) if object_id else None
    if not document:
        return None, error_response(f"{kind.label} not found", 404, "NOT_FOUND")
    return document, None


@bp.route(f"/admin/<{KIND_PATTERN}>", methods=["GET"])
@jwt_required()
def admin_list_entries(kind: str):
    _, admin_error = require_admin_user()
    if admin_error:
        return admin_error
    content_kind = CONTENT_KINDS[kind]
    documents = content_kind.documents.find().sort([("order", 1), ("created_at", 1)])
    return jsonify([serialize_content_entry(document, content_kind.fields) for document in documents])


@bp.route(f"/admin/<{KIND_PATTERN}>", methods=["POST"])
@jwt_required()
def admin_create_entry(kind: str):
    admin_user, admin_error = require_admin_user()
    if admin_error:
        return admin_error
    content_kind = CONTENT_KINDS[kind]

    fields, validation_error = validate_entry_payload(content_kind, request.get_json(silent=True) or {})
    if validation_error:
        return error_response(validation_error, 400, "VALIDATION_ERROR")

    timestamp = utcnow()
    document = {
        "order": 0,
        "active": True,
        **fields,
        "created_at": timestamp,
        "updated_at": timestamp,
    }
    insert_result = content_kind.documents.insert_one(document)
    document["_id"] = insert_result.inserted_id
    record_audit_log(
        admin_user.get("email"), f"Created {content_kind.label}", {"id": str(insert_result.inserted_id)}
    )
    return jsonify(serialize_content_entry(document, content_kind.fields)), 201


@bp.route(f"/admin/<{KIND_PATTERN}>/<entry_id>", methods=["PUT", "PATCH"])
@jwt_required()
def admin_update_entry(kind: str, entry_id: str):
    admin_user, admin_error = require_admin_user()
    if admin_error:
        return admin_error
    content_kind = CONTENT_KINDS[kind]
    document, error = fetch_entry(content_kind, entry_id)
    if error:
        return error

    fields, validation_error = validate_entry_payload(
        content_kind, request.get_json(silent=True) or {}, partial=True
    )
    if validation_error:
        return error_response(validation_error, 400, "VALIDATION_ERROR")

    fields["updated_at"] = utcnow()
    content_kind.documents.update_one({"_id": document["_id"]}, {"$set": fields})
    record_audit_log(admin_user.get("email"), f"Updated {content_kind.label}", {"id": entry_id})
    return jsonify(
        serialize_content_entry(content_kind.documents.find_one({"_id": document["_id"]}), content_kind.fields)
    )


@bp.route(f"/admin/<{KIND_PATTERN}>/<entry_id>", methods=["DELETE"])
@jwt_required()
def admin_delete_entry(kind: str, entry_id: str):
    admin_user, admin_error = require_admin_user()
    if admin_error:
        return admin_error
    content_kind = CONTENT_KINDS[kind]
    document, error = fetch_entry(content_kind, entry_id)
    if error:
        return error

    content_kind.documents.delete_one({"_id": document["_id"]})
    record_audit_log(admin_user.get("email"), f"Deleted {content_kind.label}", {"id": entry_id})
    return "", 204


# --- Homepage ---


@bp.route("/admin/homepage/hero", methods=["GET"])
@jwt_required()
def admin_get_hero():
    _, admin_error = require_admin_user()
    if admin_error:
        return admin_error
    hero = get_or_create_hero()
    return jsonify({**hero_content(hero), "updatedAt": isoformat(hero.get("updated_at"))})


@bp.route("/admin/homepage/hero", methods=["PUT"])
@jwt_required()
def admin_update_hero():
    admin_user, admin_error = require_admin_user()
    if admin_error:
        return admin_error

    payload = request.get_json(silent=True) or {}
    if not str(payload.get("title") or "").strip() or not str(payload.get("subtitle") or "").strip():
        return error_response("Title and subtitle are required", 400, "VALIDATION_ERROR")

    hero = get_or_create_hero()
    content = hero_content(hero)
    for key in content:
        if key in payload:
            content[key] = str(payload.get(key) or "").strip()

    timestamp = utcnow()
    mongo.db.homepage_sections.update_one(
        {"_id": hero["_id"]}, {"$set": {"content": content, "updated_at": timestamp}}
    )
    record_audit_log(admin_user.get("email"), "Updated homepage hero")
    return jsonify({"message": "Hero section updated successfully", "updatedAt": isoformat(timestamp)})


@bp.route("/admin/homepage/sections", methods=["GET"])
@jwt_required()
def admin_get_sections():
    _, admin_error = require_admin_user()
    if admin_error:
        return admin_error
    ensure_default_sections()
    return jsonify([serialize_section(section) for section in list_sections()])


@bp.route("/admin/homepage/sections", methods=["PUT"])
@jwt_required()
def admin_update_sections():
    admin_user, admin_error = require_admin_user()
    if admin_error:
        return admin_error

    payload = request.get_json(silent=True)
    sections = payload.get("sections") if isinstance(payload, dict) else payload
    if not isinstance(sections, list):
        return error_response("Sections must be an array", 400, "VALIDATION_ERROR")
    for section in sections:
        if not isinstance(section, dict) or not section.get("key") or not section.get("title"):
            return error_response("Each section needs a key and a title", 400, "VALIDATION_ERROR")
        if section.get("key") == "hero":
            return error_response("Use the hero endpoint to edit the hero section", 400, "VALIDATION_ERROR")

    timestamp = utcnow()
    for position, section in enumerate(sections, start=1):
        content = {
            key: value for key, value in section.items() if key not in ("key", "order", "active")
        }
        mongo.db.homepage_sections.update_one(
            {"key": section["key"]},
            {
                "$set": {
                    "content": content,
                    "order": safe_int(section.get("order"), position),
                    "active": parse_bool(section.get("active"), True),
                    "updated_at": timestamp,
                }
            },
            upsert=True,
        )
    record_audit_log(admin_user.get("email"), "Updated homepage sections", {"count": len(sections)})
    return jsonify(
        {
            "message": "Sections updated successfully",
            "sections": [serialize_section(section) for section in list_sections()],
            "updatedAt": isoformat(timestamp),
        }
    )


# --- Navigation ---


def validate_menu(items, label: str):
    if not isinstance(items, list):
        return f"{label} must be an array"
    for item in items:
        if not isinstance(item, dict) or not all(item.get(key) for key in ("id", "label", "href")):
            return f"Each {label} item needs an id, label and href"
    return None


@bp.route("/admin/navigation", methods=["GET"])
@jwt_required()
def admin_get_navigation():
    _, admin_error = require_admin_user()
    if admin_error:
        return admin_error
    return jsonify(serialize_navigation(get_or_create_settings("navigation")))


@bp.route("/admin/navigation", methods=["PUT"])
@jwt_required()
def admin_update_navigation():
    admin_user, admin_error = require_admin_user()
    if admin_error:
        return admin_error

    payload = request.get_json(silent=True) or {}
    missing = [key for key in NAVIGATION_SECTIONS if key not in payload]
    if missing:
        return error_response(f"Missing required fields: {', '.join(missing)}", 400, "VALIDATION_ERROR")
    for key in NAVIGATION_SECTIONS:
        menu_error = validate_menu(payload[key], key)
        if menu_error:
            return error_response(menu_error, 400, "VALIDATION_ERROR")

    document = save_settings(
        "navigation", {field: payload[key] for key, field in NAVIGATION_SECTIONS.items()}
    )
    record_audit_log(admin_user.get("email"), "Updated navigation")
    return jsonify(serialize_navigation(document))


# --- SEO ---


@bp.route("/admin/seo", methods=["GET"])
@jwt_required()
def admin_get_seo():
    _, admin_error = require_admin_user()
    if admin_error:
        return admin_error
    return jsonify(serialize_seo(get_or_create_settings("seo")))


@bp.route("/admin/seo", methods=["PUT"])
@jwt_required()
def admin_update_seo():
    admin_user, admin_error = require_admin_user()
    if admin_error:
        return admin_error

    payload = request.get_json(silent=True) or {}
    missing = [key for key in SEO_SECTIONS if not isinstance(payload.get(key), dict)]
    if missing:
        return error_response(f"Missing required sections: {', '.join(missing)}", 400, "VALIDATION_ERROR")

    global_settings = payload["global"]
    if not global_settings.get("siteTitle") or not global_settings.get("siteDescription"):
        return error_response("Site title and description are required", 400, "VALIDATION_ERROR")
    site_url = str(global_settings.get("siteUrl") or "").strip()
    if not site_url:
        return error_response("Site URL is required", 400, "VALIDATION_ERROR")
    if not url_regex.match(site_url):
        return error_response("Site URL must be a valid http(s) URL", 400, "VALIDATION_ERROR")

    document = save_settings("seo", {field: payload[key] for key, field in SEO_SECTIONS.items()})
    record_audit_log(admin_user.get("email"), "Updated SEO settings")
    return jsonify(serialize_seo(document))


# --- Site settings ---


@bp.route("/admin/sitesettings", methods=["GET"])
@jwt_required()
def admin_get_site_settings():
    _, admin_error = require_admin_user()
    if admin_error:
        return admin_error
    return jsonify(serialize_site(get_or_create_settings("site")))


@bp.route("/admin/sitesettings", methods=["PATCH", "PUT"])
@jwt_required()
def admin_update_site_settings():
    admin_user, admin_error = require_admin_user()
    if admin_error:
        return admin_error

    payload = request.get_json(silent=True) or {}
    updates = {}
    for key, field in SITE_FIELDS.items():
        if key not in payload:
            continue
        if field == "social_media":
            if not isinstance(payload[key], dict):
                return error_response("socialMedia must be an object", 400, "VALIDATION_ERROR")
            updates[field] = payload[key]
        else:
            updates[field] = str(payload.get(key) or "").strip()

    if not updates:
        return error_response("No fields to update.", 400, "VALIDATION_ERROR")
    if "site_name" in updates and not updates["site_name"]:
        return error_response("Site name cannot be empty", 400, "VALIDATION_ERROR")
    if updates.get("contact_email"):
        updates["contact_email"] = normalize_email(updates["contact_email"])
        if not is_valid_email(updates["contact_email"]):
            return error_response("Invalid contact email", 400, "VALIDATION_ERROR")

    get_or_create_settings("site")
    document = save_settings("site", updates)
    record_audit_log(admin_user.get("email"), "Updated site settings", {"fields": ",".join(sorted(updates))})
    return jsonify(serialize_site(document))


# --- Theme ---


@bp.route("/admin/theme", methods=["GET"])
@jwt_required()
def admin_get_theme():
    _, admin_error = require_admin_user()
    if admin_error:
        return admin_error
    return jsonify(serialize_theme(get_or_create_settings("theme")))


@bp.route("/admin/theme", methods=["PUT"])
@jwt_required()
def admin_update_theme():
    admin_user, admin_error = require_admin_user()
    if admin_error:
        return admin_error

    payload = request.get_json(silent=True) or {}
    missing = [key for key in THEME_REQUIRED if not isinstance(payload.get(key), dict)]
    if missing:
        return error_response(f"Missing required fields: {', '.join(missing)}", 400, "VALIDATION_ERROR")

    invalid = [
        name
        for name, value in payload["colors"].items()
        if not isinstance(value, str) or not hex_color_regex.match(value)
    ]
    if invalid:
        return error_response(
            "Colors must be hex values", 400, "VALIDATION_ERROR", {"invalidColors": invalid}
        )

    current = get_or_create_settings("theme")
    updates = {}
    for key, field in THEME_SECTIONS.items():
        value = payload.get(key)
        updates[field] = value if isinstance(value, dict) else current.get(field) or DEFAULT_THEME[field]

    document = save_settings("theme", updates)
    record_audit_log(admin_user.get("email"), "Updated theme")
    return jsonify(serialize_theme(document))
