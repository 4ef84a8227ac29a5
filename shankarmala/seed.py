"""Demo catalog, default administrator and storefront content."""

from flask import current_app

from .content import SETTINGS_DEFAULTS, ensure_default_sections, get_or_create_hero, get_or_create_settings
from .extensions import mongo
from .helpers import slugify, utcnow
from .security import hash_password

SEED_CATEGORIES = [
    {"name": "Precious Stones", "description": "Ruby, sapphire, emerald and diamond", "order": 1},
    {"name": "Semi-Precious Stones", "description": "Amethyst, topaz, garnet and more", "order": 2},
    {"name": "Navaratna", "description": "The nine planetary gemstones of Vedic tradition", "order": 3},
]

SEED_GEMSTONES = [
    {
        "name": "Burmese Ruby",
        "type": "Ruby",
        "category": "Precious Stones",
        "price": 85000.0,
        "description": "Pigeon-blood red ruby from the Mogok valley, unheated.",
        "certification": "GIA",
        "stock_count": 3,
        "featured": True,
        "images": ["/images/gemstones/ruby.jpg"],
    },
    {
        "name": "Ceylon Blue Sapphire",
        "type": "Sapphire",
        "category": "Precious Stones",
        "price": 62000.0,
        "description": "Cornflower blue sapphire with excellent clarity.",
        "certification": "IGI",
        "stock_count": 5,
        "featured": True,
        "images": ["/images/gemstones/sapphire.jpg"],
    },
    {
        "name": "Colombian Emerald",
        "type": "Emerald",
        "category": "Precious Stones",
        "price": 74000.0,
        "description": "Vivid green emerald with a light jardin.",
        "certification": "GIA",
        "stock_count": 2,
        "discount": 10.0,
        "images": ["/images/gemstones/emerald.jpg"],
    },
    {
        "name": "Yellow Sapphire (Pukhraj)",
        "type": "Sapphire",
        "category": "Navaratna",
        "price": 28000.0,
        "description": "Golden yellow sapphire, traditionally worn for Jupiter.",
        "certification": "GII",
        "stock_count": 8,
        "images": ["/images/gemstones/pukhraj.jpg"],
    },
    {
        "name": "Hessonite Garnet (Gomed)",
        "type": "Garnet",
        "category": "Navaratna",
        "price": 6500.0,
        "description": "Honey-brown hessonite garnet from Sri Lanka.",
        "certification": "GII",
        "stock_count": 12,
        "images": ["/images/gemstones/gomed.jpg"],
    },
    {
        "name": "Uruguayan Amethyst",
        "type": "Amethyst",
        "category": "Semi-Precious Stones",
        "price": 3200.0,
        "description": "Deep purple amethyst with a violet flash.",
        "certification": "IGI",
        "stock_count": 20,
        "discount": 15.0,
        "images": ["/images/gemstones/amethyst.jpg"],
    },
]


def ensure_default_admin():
    """Create the default administrator when a password for it is configured."""
    email = current_app.config["DEFAULT_ADMIN_EMAIL"]
    password = current_app.config.get("DEFAULT_ADMIN_PASSWORD")
    if mongo.db.users.find_one({"email": email}):
        mongo.db.users.update_one({"email": email}, {"$set": {"role": "admin"}})
        return False
    if not password:
        current_app.logger.warning("DEFAULT_ADMIN_PASSWORD is not set; skipping admin account")
        return False

    timestamp = utcnow()
    mongo.db.users.insert_one(
        {
            "email": email,
            "name": current_app.config["DEFAULT_ADMIN_NAME"],
            "password": hash_password(password),
            "role": "admin",
            "email_verified": True,
            "created_at": timestamp,
            "updated_at": timestamp,
        }
    )
    return True


def ensure_seed_catalog():
    if mongo.db.gemstones.count_documents({}) > 0:
        return 0

    timestamp = utcnow()
    category_ids = {}
    for category in SEED_CATEGORIES:
        slug = slugify(category["name"])
        existing = mongo.db.categories.find_one({"slug": slug})
        if existing:
            category_ids[category["name"]] = existing["_id"]
            continue
        result = mongo.db.categories.insert_one(
            {
                **category,
                "slug": slug,
                "image": "",
                "active": True,
                "created_at": timestamp,
                "updated_at": timestamp,
            }
        )
        category_ids[category["name"]] = result.inserted_id

    documents = []
    for gemstone in SEED_GEMSTONES:
        fields = {key: value for key, value in gemstone.items() if key != "category"}
        documents.append(
            {
                "discount": 0.0,
                "featured": False,
                **fields,
                "category_id": category_ids.get(gemstone["category"]),
                "active": True,
                "views": 0,
                "rating": 0.0,
                "review_count": 0,
                "created_at": timestamp,
                "updated_at": timestamp,
            }
        )
    mongo.db.gemstones.insert_many(documents)
    return len(documents)


def ensure_default_content():
    get_or_create_hero()
    ensure_default_sections()
    for name in SETTINGS_DEFAULTS:
        get_or_create_settings(name)


def run_seed():
    """Seed everything; returns a short summary for the CLI."""
    admin_created = ensure_default_admin()
    gemstones_created = ensure_seed_catalog()
    ensure_default_content()
    return {"admin_created": admin_created, "gemstones_created": gemstones_created}
