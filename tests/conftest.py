from datetime import datetime
from uuid import uuid4

import flask_pymongo
import mongomock
import pytest
import resend

from shankarmala import create_app
from shankarmala.extensions import mongo
from shankarmala.security import hash_password, issue_token

ADMIN_EMAIL = "admin@shankarmala.test"
DEFAULT_PASSWORD = "secret123"


@pytest.fixture
def sent_emails(monkeypatch):
    """Capture outgoing Resend payloads instead of calling the API."""
    outbox = []

    def fake_send(payload):
        outbox.append(payload)
        return {"id": f"email_{len(outbox)}"}

    monkeypatch.setattr(resend.Emails, "send", fake_send)
    return outbox


@pytest.fixture
def app(monkeypatch, tmp_path, sent_emails):
    monkeypatch.setattr(flask_pymongo, "MongoClient", mongomock.MongoClient)
    # mongomock clients on one host share storage, so every test gets its own database.
    database_name = f"shankarmala_test_{uuid4().hex}"
    app = create_app(
        {
            "TESTING": True,
            "MONGO_URI": f"mongodb://localhost:27017/{database_name}",
            "JWT_SECRET_KEY": "test-secret-key-with-enough-length-for-hs256",
            "JWT_COOKIE_SECURE": False,
            "RATELIMIT_ENABLED": False,
            "STRIPE_SECRET_KEY": "sk_test_dummy",
            "STRIPE_WEBHOOK_SECRET": "whsec_test_secret",
            "RESEND_API_KEY": "re_test_dummy",
            "ADMIN_NOTIFICATION_EMAIL": "alerts@shankarmala.test",
            "DEFAULT_ADMIN_EMAIL": ADMIN_EMAIL,
            "UPLOAD_FOLDER": str(tmp_path / "uploads"),
            "PUBLIC_BASE_URL": "http://shop.test",
            "LOG_LEVEL": "WARNING",
            "SEED_CATALOG": False,
        }
    )
    yield app
    mongo.cx.drop_database(database_name)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def db(app):
    return mongo.db


@pytest.fixture
def make_user(app):
    def _make_user(email="buyer@example.com", name="Asha Buyer", role="user", password=DEFAULT_PASSWORD, **extra):
        timestamp = datetime.utcnow()
        document = {
            "email": email,
            "name": name,
            "password": hash_password(password),
            "role": role,
            "email_verified": True,
            "created_at": timestamp,
            "updated_at": timestamp,
            **extra,
        }
        document["_id"] = mongo.db.users.insert_one(document).inserted_id
        return document

    return _make_user


@pytest.fixture
def auth_headers(app):
    def _auth_headers(user):
        with app.app_context():
            token = issue_token(user)
        return {"Authorization": f"Bearer {token}"}

    return _auth_headers


@pytest.fixture
def user(make_user):
    return make_user()


@pytest.fixture
def user_headers(auth_headers, user):
    return auth_headers(user)


@pytest.fixture
def admin(make_user):
    return make_user(email=ADMIN_EMAIL, name="Store Admin", role="admin")


@pytest.fixture
def admin_headers(auth_headers, admin):
    return auth_headers(admin)


@pytest.fixture
def make_category(app):
    def _make_category(name="Precious Stones", **extra):
        timestamp = datetime.utcnow()
        document = {
            "name": name,
            "slug": name.lower().replace(" ", "-"),
            "description": "",
            "image": "",
            "order": 0,
            "active": True,
            "created_at": timestamp,
            "updated_at": timestamp,
            **extra,
        }
        document["_id"] = mongo.db.categories.insert_one(document).inserted_id
        return document

    return _make_category


@pytest.fixture
def make_gemstone(app):
    def _make_gemstone(name="Burmese Ruby", **extra):
        timestamp = datetime.utcnow()
        document = {
            "name": name,
            "type": "Ruby",
            "description": "Pigeon-blood red",
            "price": 1000.0,
            "discount": 0.0,
            "images": ["/images/ruby.jpg"],
            "certification": "GIA",
            "category_id": None,
            "active": True,
            "featured": False,
            "stock_count": 10,
            "views": 0,
            "rating": 0.0,
            "review_count": 0,
            "created_at": timestamp,
            "updated_at": timestamp,
            **extra,
        }
        document["_id"] = mongo.db.gemstones.insert_one(document).inserted_id
        return document

    return _make_gemstone
