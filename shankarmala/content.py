"""Storefront content singletons (hero, sections, navigation, SEO, site, theme) and their defaults."""

import copy
from typing import Dict, List

from pymongo import ReturnDocument

from .extensions import mongo
from .helpers import isoformat, utcnow

DEFAULT_HERO = {
    "title": "Timeless Elegance",
    "subtitle": "Discover the finest gemstones from Kolkata's heritage jewelry district",
    "primaryCTA": "Explore Collection",
    "secondaryCTA": "Learn Our Story",
    "backgroundImage": "/images/hero-gemstones.jpg",
    "primaryCTALink": "/shop",
    "secondaryCTALink": "/about",
}

DEFAULT_SECTIONS = [
    {
        "key": "categories",
        "title": "Explore Our Collections",
        "subtitle": "Discover gemstones from every corner of the world",
        "content": "Browse our curated collections of precious and semi-precious gemstones",
    },
    {
        "key": "featured",
        "title": "Featured Gemstones",
        "subtitle": "Handpicked treasures from our collection",
        "content": "Our most sought-after gemstones, carefully selected for their exceptional quality",
    },
    {
        "key": "testimonials",
        "title": "What Our Customers Say",
        "subtitle": "Trusted by gemstone enthusiasts worldwide",
        "content": "Read testimonials from our satisfied customers",
    },
    {
        "key": "newsletter",
        "title": "Stay in the Circle of Luxury",
        "subtitle": "Get exclusive access to new collections and insights",
        "content": "Join our connoisseur's list for exclusive updates",
    },
    {
        "key": "press",
        "title": "Press & Awards",
        "subtitle": "Recognition of our commitment to excellence",
        "content": "Featured in leading publications and industry awards",
    },
    {
        "key": "faq",
        "title": "Frequently Asked Questions",
        "subtitle": "Everything you need to know about our gemstones",
        "content": "Common questions about our products and services",
    },
    {
        "key": "cta",
        "title": "Ready to Find Your Perfect Gemstone?",
        "subtitle": "Start your journey with Shankarmala today",
        "content": "Explore our collection and find the gemstone that speaks to you",
    },
]


def _links(*entries) -> List[Dict]:
    links = []
    for order, (link_id, label, href) in enumerate(entries, start=1):
        links.append({"id": link_id, "label": label, "href": href, "order": order, "active": True})
    return links


DEFAULT_NAVIGATION = {
    "menu_items": _links(
        ("home", "Home", "/"),
        ("shop", "Shop", "/shop"),
        ("about", "About", "/about"),
        ("contact", "Contact", "/contact"),
    ),
    "footer_links": _links(
        ("privacy", "Privacy Policy", "/privacy"),
        ("terms", "Terms of Service", "/terms"),
        ("shipping", "Shipping Info", "/shipping"),
        ("returns", "Returns", "/returns"),
    ),
    "social_links": _links(
        ("facebook", "Facebook", "https://facebook.com"),
        ("instagram", "Instagram", "https://instagram.com"),
        ("twitter", "Twitter", "https://twitter.com"),
        ("linkedin", "LinkedIn", "https://linkedin.com"),
    ),
}

DEFAULT_SEO = {
    "global": {
        "siteTitle": "Shankarmala - Luxury Gemstone Collection",
        "siteDescription": (
            "Discover the finest gemstones from Shankarmala's heritage jewelry collection. "
            "GIA certified, worldwide shipping."
        ),
        "siteKeywords": "luxury gemstones, heritage jewelry, Shankarmala, precious stones, GIA certified",
        "siteUrl": "https://shankarmala.com",
        "siteLanguage": "en",
        "siteAuthor": "Shankarmala",
    },
    "pages": {},
    "social": {},
    "analytics": {},
    "structured_data": {},
}

DEFAULT_SITE = {
    "site_name": "Shankarmala",
    "site_description": "Luxury Gemstone Collection",
    "contact_email": "info@shankarmala.com",
    "contact_phone": "+91 98765 43210",
    "address": "Kolkata, West Bengal, India",
    "social_media": {
        "facebook": "https://facebook.com/shankarmala",
        "instagram": "https://instagram.com/shankarmala",
        "twitter": "https://twitter.com/shankarmala",
    },
}

DEFAULT_THEME = {
    "colors": {
        "primary": "#d97706",
        "secondary": "#f59e0b",
        "accent": "#fbbf24",
        "background": "#fefefe",
        "text": "#1f2937",
        "success": "#10b981",
        "warning": "#f59e0b",
        "error": "#ef4444",
    },
    "fonts": {"heading": "serif", "body": "system-ui", "accent": "cursive"},
    "spacing": {"container": "max-w-7xl", "section": "py-16", "element": "p-6"},
    "border_radius": {"small": "rounded-lg", "medium": "rounded-xl", "large": "rounded-2xl"},
    "shadows": {"small": "shadow-md", "medium": "shadow-lg", "large": "shadow-xl"},
    "animations": {"duration": "300ms", "easing": "ease-in-out"},
}

SETTINGS_DEFAULTS = {
    "navigation": DEFAULT_NAVIGATION,
    "seo": DEFAULT_SEO,
    "site": DEFAULT_SITE,
    "theme": DEFAULT_THEME,
}


def get_settings(name: str):
    return mongo.db.settings.find_one({"_id": name})


def get_or_create_settings(name: str) -> Dict:
    existing = get_settings(name)
    if existing:
        return existing
    document = {**copy.deepcopy(SETTINGS_DEFAULTS[name]), "updated_at": utcnow()}
    # Upsert so concurrent first reads settle on one document.
    return mongo.db.settings.find_one_and_update(
        {"_id": name},
        {"$setOnInsert": document},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )


def save_settings(name: str, fields: Dict) -> Dict:
    return mongo.db.settings.find_one_and_update(
        {"_id": name},
        {"$set": {**fields, "updated_at": utcnow()}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )


def serialize_navigation(document) -> Dict:
    return {
        "mainMenu": document.get("menu_items") or [],
        "footerMenu": document.get("footer_links") or [],
        "socialLinks": document.get("social_links") or [],
        "updatedAt": isoformat(document.get("updated_at")),
    }


def serialize_seo(document) -> Dict:
    return {
        "global": document.get("global") or {},
        "pages": document.get("pages") or {},
        "social": document.get("social") or {},
        "analytics": document.get("analytics") or {},
        "structuredData": document.get("structured_data") or {},
        "updatedAt": isoformat(document.get("updated_at")),
    }


def serialize_site(document) -> Dict:
    return {
        "siteName": document.get("site_name", ""),
        "siteDescription": document.get("site_description", ""),
        "contactEmail": document.get("contact_email", ""),
        "contactPhone": document.get("contact_phone", ""),
        "address": document.get("address", ""),
        "socialMedia": document.get("social_media") or {},
        "updatedAt": isoformat(document.get("updated_at")),
    }


def serialize_theme(document) -> Dict:
    theme = copy.deepcopy(DEFAULT_THEME)
    for key in theme:
        if isinstance((document or {}).get(key), dict):
            theme[key] = document[key]
    return {
        "colors": theme["colors"],
        "fonts": theme["fonts"],
        "spacing": theme["spacing"],
        "borderRadius": theme["border_radius"],
        "shadows": theme["shadows"],
        "animations": theme["animations"],
    }


def get_hero_section():
    return mongo.db.homepage_sections.find_one({"key": "hero"})


def hero_content(section_document) -> Dict:
    content = (section_document or {}).get("content") or {}
    return {key: content.get(key) or default for key, default in DEFAULT_HERO.items()}


def get_or_create_hero() -> Dict:
    section = get_hero_section()
    if section:
        return section
    return mongo.db.homepage_sections.find_one_and_update(
        {"key": "hero"},
        {
            "$setOnInsert": {
                "key": "hero",
                "content": dict(DEFAULT_HERO),
                "order": 0,
                "active": True,
                "updated_at": utcnow(),
            }
        },
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )


def ensure_default_sections() -> None:
    if mongo.db.homepage_sections.count_documents({"key": {"$ne": "hero"}}):
        return
    timestamp = utcnow()
    for order, section in enumerate(DEFAULT_SECTIONS, start=1):
        content = {field: value for field, value in section.items() if field != "key"}
        mongo.db.homepage_sections.update_one(
            {"key": section["key"]},
            {
                "$setOnInsert": {
                    "key": section["key"],
                    "content": content,
                    "order": order,
                    "active": True,
                    "updated_at": timestamp,
                }
            },
            upsert=True,
        )


def serialize_section(section_document) -> Dict:
    content = section_document.get("content")
    return {
        "key": section_document.get("key"),
        **(content if isinstance(content, dict) else {}),
        "order": section_document.get("order", 0),
        "active": bool(section_document.get("active", True)),
    }


def list_sections(include_hero: bool = False, active_only: bool = False) -> List[Dict]:
    query: Dict[str, object] = {} if include_hero else {"key": {"$ne": "hero"}}
    if active_only:
        query["active"] = True
    return list(mongo.db.homepage_sections.find(query).sort("order", 1))


class ContentKind:
    """An ordered, toggleable list of storefront entries (FAQs, testimonials, ...)."""

    def __init__(self, collection: str, fields, required, label: str):
        self.collection = collection
        self.fields = tuple(fields)
        self.required = tuple(required)
        self.label = label

    @property
    def documents(self):
        return mongo.db[self.collection]


CONTENT_KINDS = {
    "faqs": ContentKind("faqs", ("question", "answer", "category"), ("question", "answer"), "FAQ"),
    "testimonials": ContentKind(
        "testimonials",
        ("name", "content", "rating", "location", "image"),
        ("name", "content"),
        "Testimonial",
    ),
    "press": ContentKind(
        "press",
        ("title", "content", "publication", "link", "image", "date"),
        ("title", "content"),
        "Press entry",
    ),
    "banners": ContentKind(
        "banners", ("title", "subtitle", "image", "link"), ("title", "image"), "Banner"
    ),
}
