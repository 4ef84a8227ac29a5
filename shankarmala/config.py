import os
from datetime import timedelta

from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: str = "false") -> bool:
    return str(os.getenv(name, default) or "").strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except (TypeError, ValueError):
        return default


class Config:
    """Default settings, read from the environment (and `.env`) once at import."""

    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me-in-production")
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(days=7)
    ADMIN_TOKEN_EXPIRES = timedelta(hours=24)
    JWT_TOKEN_LOCATION = ["headers", "cookies"]
    JWT_ACCESS_COOKIE_NAME = "token"
    JWT_COOKIE_SAMESITE = "Strict"
    JWT_COOKIE_SECURE = os.getenv("FLASK_ENV", "production") == "production"
    # SameSite=Strict already keeps the cookie off cross-site requests.
    JWT_COOKIE_CSRF_PROTECT = False

    MONGO_URI = os.getenv("MONGO_URI", "mongodb://localhost:27017/shankarmala")

    MAX_UPLOAD_SIZE_MB = _env_int("MAX_UPLOAD_SIZE_MB", 5)
    # Room for the multipart envelope around a full-size image.
    MAX_CONTENT_LENGTH = (MAX_UPLOAD_SIZE_MB + 1) * 1024 * 1024
    UPLOAD_FOLDER = os.getenv("UPLOAD_FOLDER", "")
    ALLOWED_IMAGE_EXTENSIONS = {"png", "jpg", "jpeg", "gif", "webp"}

    PUBLIC_BASE_URL = (os.getenv("PUBLIC_BASE_URL", "http://localhost:3000") or "").rstrip("/")
    FRONTEND_URL = os.getenv("FRONTEND_URL", "").strip()
    CORS_ALLOWED_ORIGINS = os.getenv("CORS_ALLOWED_ORIGINS", "")
    TRUSTED_PROXY_HOPS = _env_int("TRUSTED_PROXY_HOPS", 1)

    STRIPE_SECRET_KEY = (os.getenv("STRIPE_SECRET_KEY") or "").strip()
    STRIPE_WEBHOOK_SECRET = (os.getenv("STRIPE_WEBHOOK_SECRET") or "").strip()
    STRIPE_CURRENCY = (os.getenv("STRIPE_CURRENCY", "inr") or "inr").strip().lower()

    RESEND_API_KEY = (os.getenv("RESEND_API_KEY") or "").strip()
    MAIL_FROM = os.getenv("MAIL_FROM", "Shankarmala <orders@shankarmala.com>")
    ADMIN_NOTIFICATION_EMAIL = (os.getenv("ADMIN_NOTIFICATION_EMAIL") or "").strip().lower()

    DEFAULT_ADMIN_EMAIL = (
        os.getenv("DEFAULT_ADMIN_EMAIL", "admin@shankarmala.com") or "admin@shankarmala.com"
    ).strip().lower()
    DEFAULT_ADMIN_NAME = (os.getenv("DEFAULT_ADMIN_NAME", "Store Admin") or "Store Admin").strip()
    DEFAULT_ADMIN_PASSWORD = os.getenv("DEFAULT_ADMIN_PASSWORD", "")

    RATELIMIT_ENABLED = _env_flag("RATELIMIT_ENABLED", "true")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
    SEED_CATALOG = _env_flag("SEED_CATALOG", "false")
    LOW_STOCK_THRESHOLD = _env_int("LOW_STOCK_THRESHOLD", 5)
