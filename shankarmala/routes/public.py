from flask import Blueprint, current_app, jsonify, request
from pymongo.errors import DuplicateKeyError

from ..content import (
    CONTENT_KINDS,
    get_hero_section,
    get_settings,
    hero_content,
    list_sections,
    serialize_navigation,
    serialize_section,
    serialize_seo,
    serialize_site,
    serialize_theme,
)
from ..extensions import mongo
from ..helpers import client_ip, error_response, is_valid_email, isoformat, normalize_email, utcnow
from ..ratelimit import rate_limit
from ..serializers import serialize_content_entry

bp = Blueprint("public", __name__, url_prefix="/api")


def list_active_entries(kind_name: str):
    kind = CONTENT_KINDS[kind_name]
    documents = kind.documents.find({"active": True}).sort([("order", 1), ("created_at", 1)])
    return jsonify([serialize_content_entry(document, kind.fields) for document in documents])


@bp.route("/faq", methods=["GET"])
def public_faqs():
    return list_active_entries("faqs")


@bp.route("/testimonials", methods=["GET"])
def public_testimonials():
    return list_active_entries("testimonials")


@bp.route("/press", methods=["GET"])
def public_press():
    return list_active_entries("press")


@bp.route("/banners", methods=["GET"])
def public_banners():
    return list_active_entries("banners")


@bp.route("/public/homepage", methods=["GET"])
def public_homepage():
    hero = get_hero_section()
    sections = list_sections(active_only=True)
    timestamps = [
        document.get("updated_at")
        for document in ([hero] if hero else []) + sections
        if document.get("updated_at")
    ]
    return jsonify(
        {
            "hero": hero_content(hero) if hero else None,
            "sections": [serialize_section(section) for section in sections],
            "updatedAt": isoformat(max(timestamps)) if timestamps else None,
        }
    )


@bp.route("/public/navigation", methods=["GET"])
def public_navigation():
    settings = get_settings("navigation")
    if not settings:
        return error_response("Navigation settings not found", 404, "NOT_FOUND")
    return jsonify(serialize_navigation(settings))


@bp.route("/public/seo", methods=["GET"])
def public_seo():
    settings = get_settings("seo")
    if not settings:
        return error_response("SEO settings not found", 404, "NOT_FOUND")
    return jsonify(serialize_seo(settings))


@bp.route("/public/site", methods=["GET"])
def public_site():
    settings = get_settings("site")
    if not settings:
        return error_response("Site settings not found", 404, "NOT_FOUND")
    return jsonify(serialize_site(settings))


@bp.route("/public/theme", methods=["GET"])
def public_theme():
    return jsonify(serialize_theme(get_settings("theme")))


@bp.route("/newsletter", methods=["POST"])
@rate_limit("newsletter", 10)
def subscribe_newsletter():
    payload = request.get_json(silent=True) or {}
    email = normalize_email(payload.get("email"))
    if not is_valid_email(email):
        return error_response("Please provide a valid email address.", 400, "VALIDATION_ERROR")

    try:
        mongo.db.newsletter_subscribers.insert_one(
            {"email": email, "created_at": utcnow(), "ip": client_ip()}
        )
    except DuplicateKeyError:
        current_app.logger.info("Repeat newsletter subscription for %s", email)
        return jsonify({"message": "You are already subscribed."}), 200

    current_app.logger.info("New newsletter subscriber %s", email)
    return jsonify({"message": "Thank you for subscribing!"}), 200
