from datetime import timedelta
from typing import Optional

import bcrypt
from flask import current_app
from flask_jwt_extended import (
    create_access_token,
    get_jwt_identity,
    set_access_cookies,
    unset_jwt_cookies,
)

from .extensions import jwt, mongo
from .helpers import error_response, normalize_email

ALLOWED_USER_ROLES = {"admin", "user"}
MIN_PASSWORD_LENGTH = 6


def hash_password(password: str) -> bytes:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt())


def check_password(password: str, hashed) -> bool:
    if not password or not hashed:
        return False
    if isinstance(hashed, str):
        hashed = hashed.encode("utf-8")
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed)
    except ValueError:
        return False


def normalize_role(value: Optional[str]) -> str:
    normalized = str(value or "").strip().lower()
    return normalized if normalized in ALLOWED_USER_ROLES else "user"


def default_admin_email() -> str:
    return normalize_email(current_app.config.get("DEFAULT_ADMIN_EMAIL"))


def get_user_role(user_document) -> str:
    if not user_document:
        return "user"

    if normalize_email(user_document.get("email")) == default_admin_email():
        return "admin"

    return normalize_role(user_document.get("role", "user"))


def get_current_user():
    current_email = normalize_email(get_jwt_identity())
    if not current_email:
        return None
    return mongo.db.users.find_one({"email": current_email})


def require_user():
    """Resolve the signed-in user document, or the 404 to return when it is gone."""
    user = get_current_user()
    if not user:
        return None, error_response("User not found", 404, "NOT_FOUND")
    return user, None


def require_role(*roles: str):
    allowed = {normalize_role(role) for role in roles if role}

    current_user = get_current_user()
    if not current_user:
        return None, error_response("Not authenticated", 401, "AUTH_REQUIRED")

    user_role = get_user_role(current_user)
    if user_role == "admin" or not allowed or user_role in allowed:
        return current_user, None

    return None, error_response("Forbidden: Admins only", 403, "FORBIDDEN")


def require_admin_user():
    return require_role("admin")


def issue_token(user_document, expires_delta: Optional[timedelta] = None) -> str:
    email = normalize_email(user_document.get("email"))
    return create_access_token(
        identity=email,
        additional_claims={"role": get_user_role(user_document)},
        expires_delta=expires_delta or current_app.config["JWT_ACCESS_TOKEN_EXPIRES"],
    )


def attach_token_cookie(response, token: str, expires_delta: Optional[timedelta] = None):
    lifetime = expires_delta or current_app.config["JWT_ACCESS_TOKEN_EXPIRES"]
    set_access_cookies(response, token, max_age=int(lifetime.total_seconds()))
    return response


def clear_token_cookie(response):
    unset_jwt_cookies(response)
    return response


@jwt.unauthorized_loader
def _missing_token(reason):
    return error_response("Not authenticated", 401, "AUTH_REQUIRED")


@jwt.invalid_token_loader
def _invalid_token(reason):
    return error_response("Invalid or expired token", 401, "AUTH_REQUIRED")


@jwt.expired_token_loader
def _expired_token(jwt_header, jwt_payload):
    return error_response("Invalid or expired token", 401, "AUTH_REQUIRED")
