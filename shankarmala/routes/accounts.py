import secrets
from datetime import timedelta

from flask import Blueprint, current_app, jsonify, request
from flask_jwt_extended import jwt_required
from pymongo.errors import DuplicateKeyError

from ..audit import record_audit_log
from ..extensions import mongo
from ..helpers import (
    client_ip,
    error_response,
    is_valid_email,
    isoformat,
    normalize_email,
    normalize_object_id_list,
    pick,
    utcnow,
)
from ..mailer import (
    PASSWORD_RESET_EXPIRATION_MINUTES,
    send_password_reset_email,
    send_verification_email,
)
from ..notifications import NOTIFICATION_FEED_LIMIT, create_notification
from ..ratelimit import rate_limit
from ..security import (
    MIN_PASSWORD_LENGTH,
    attach_token_cookie,
    check_password,
    clear_token_cookie,
    default_admin_email,
    get_user_role,
    hash_password,
    issue_token,
    require_user,
)
from ..serializers import serialize_notification, serialize_user_profile

bp = Blueprint("accounts", __name__, url_prefix="/api")


def generate_token() -> str:
    return secrets.token_urlsafe(32)


@bp.route("/users", methods=["POST"])
@rate_limit("signup", 5)
def signup():
    payload = request.get_json(silent=True) or {}
    name = str(payload.get("name") or "").strip()
    email = normalize_email(payload.get("email"))
    password = str(payload.get("password") or "")

    if not name or not email or not password:
        return error_response("Missing fields.", 400, "VALIDATION_ERROR")
    if not is_valid_email(email):
        return error_response("Invalid email format.", 400, "VALIDATION_ERROR")
    if len(password) < MIN_PASSWORD_LENGTH:
        return error_response(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters.", 400, "VALIDATION_ERROR"
        )
    if mongo.db.users.find_one({"email": email}):
        return error_response("Email already in use.", 409, "CONFLICT")

    verify_token = generate_token()
    timestamp = utcnow()
    user_document = {
        "email": email,
        "name": name,
        "password": hash_password(password),
        "role": "admin" if email == default_admin_email() else "user",
        "email_verified": False,
        "email_verify_token": verify_token,
        "created_at": timestamp,
        "updated_at": timestamp,
    }
    try:
        insert_result = mongo.db.users.insert_one(user_document)
    except DuplicateKeyError:
        return error_response("Email already in use.", 409, "CONFLICT")

    sent, error = send_verification_email(email, name, verify_token)
    if not sent:
        current_app.logger.warning("Verification email for %s was not sent: %s", email, error)

    record_audit_log(email, "Registered new account", {"user_id": str(insert_result.inserted_id)})

    return (
        jsonify(
            {
                "id": str(insert_result.inserted_id),
                "name": name,
                "email": email,
                "createdAt": isoformat(timestamp),
            }
        ),
        201,
    )


@bp.route("/users/login", methods=["POST"])
@rate_limit("login", 10)
def login():
    payload = request.get_json(silent=True) or {}
    email = normalize_email(payload.get("email"))
    password = str(payload.get("password") or "")

    if not email or not password:
        return error_response("Email and password are required.", 400, "VALIDATION_ERROR")

    user = mongo.db.users.find_one({"email": email})
    if not user or not check_password(password, user.get("password")):
        return error_response("Invalid email or password.", 401, "AUTH_REQUIRED")

    mongo.db.users.update_one({"_id": user["_id"]}, {"$set": {"last_login_at": utcnow()}})
    token = issue_token(user)
    record_audit_log(email, "Signed in", {"ip": client_ip()})

    response = jsonify(
        {
            "id": str(user["_id"]),
            "name": user.get("name", ""),
            "email": email,
            "role": get_user_role(user),
            "createdAt": isoformat(user.get("created_at")),
            "access_token": token,
        }
    )
    return attach_token_cookie(response, token)


@bp.route("/logout", methods=["POST"])
def logout():
    return clear_token_cookie(jsonify({"message": "Logged out"}))


@bp.route("/users/me", methods=["GET"])
@jwt_required()
def get_me():
    user, error = require_user()
    if error:
        return error
    return jsonify(serialize_user_profile(user))


@bp.route("/users/me", methods=["PATCH"])
@jwt_required()
def update_me():
    user, error = require_user()
    if error:
        return error

    payload = request.get_json(silent=True) or {}
    if not {"name", "email", "profileImage", "profile_image"} & set(payload):
        return error_response("No fields to update.", 400, "VALIDATION_ERROR")

    previous_email = user.get("email", "")
    updates = {}

    if "name" in payload:
        name = str(payload.get("name") or "").strip()
        if not name:
            return error_response("Name cannot be empty.", 400, "VALIDATION_ERROR")
        updates["name"] = name

    new_email = None
    if "email" in payload:
        new_email = normalize_email(payload.get("email"))
        if not is_valid_email(new_email):
            return error_response("Invalid email format.", 400, "VALIDATION_ERROR")
        if new_email == user.get("email"):
            new_email = None
        else:
            if mongo.db.users.find_one({"email": new_email, "_id": {"$ne": user["_id"]}}):
                return error_response("Email already in use.", 400, "VALIDATION_ERROR")
            updates["email"] = new_email
            updates["email_verified"] = False
            updates["email_verify_token"] = generate_token()

    profile_image = pick(payload, "profileImage", "profile_image")
    if profile_image is not None:
        updates["profile_image"] = str(profile_image).strip() or None

    if updates:
        updates["updated_at"] = utcnow()
        mongo.db.users.update_one({"_id": user["_id"]}, {"$set": updates})
    user = mongo.db.users.find_one({"_id": user["_id"]})

    body = serialize_user_profile(user)
    if new_email:
        record_audit_log(new_email, "Changed account email", {"previous_email": previous_email})
        sent, send_error = send_verification_email(new_email, user.get("name", ""), user["email_verify_token"])
        if not sent:
            current_app.logger.warning("Verification email for %s was not sent: %s", new_email, send_error)
        token = issue_token(user)
        body["access_token"] = token
        return attach_token_cookie(jsonify(body), token)

    return jsonify(body)


@bp.route("/users/change-password", methods=["POST"])
@jwt_required()
def change_password():
    user, error = require_user()
    if error:
        return error

    payload = request.get_json(silent=True) or {}
    current_password = str(pick(payload, "currentPassword", "current_password", default="") or "")
    new_password = str(pick(payload, "newPassword", "new_password", default="") or "")

    if not current_password or not new_password:
        return error_response("Current and new password are required.", 400, "VALIDATION_ERROR")
    if len(new_password) < MIN_PASSWORD_LENGTH:
        return error_response(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters.", 400, "VALIDATION_ERROR"
        )
    if not check_password(current_password, user.get("password")):
        return error_response("Current password is incorrect.", 401, "AUTH_REQUIRED")

    mongo.db.users.update_one(
        {"_id": user["_id"]},
        {"$set": {"password": hash_password(new_password), "updated_at": utcnow()}},
    )
    record_audit_log(user.get("email"), "Changed password")
    return jsonify({"message": "Password updated successfully."})


@bp.route("/users/verify-email", methods=["POST"])
@rate_limit("verify-email", 20)
def verify_email():
    payload = request.get_json(silent=True) or {}
    token = str(payload.get("token") or request.args.get("token") or "").strip()
    if not token:
        return error_response("Token is required.", 400, "VALIDATION_ERROR")

    user = mongo.db.users.find_one({"email_verify_token": token})
    if not user:
        return error_response("Invalid or expired token", 400, "VALIDATION_ERROR")

    mongo.db.users.update_one(
        {"_id": user["_id"]},
        {"$set": {"email_verified": True, "updated_at": utcnow()}, "$unset": {"email_verify_token": ""}},
    )
    record_audit_log(user.get("email"), "Verified email address")
    return jsonify({"message": "Email verified successfully."})


@bp.route("/users/request-password-reset", methods=["POST"])
@rate_limit("request-password-reset", 5)
def request_password_reset():
    payload = request.get_json(silent=True) or {}
    email = normalize_email(payload.get("email"))
    if not email:
        return error_response("Email is required.", 400, "VALIDATION_ERROR")

    generic_message = {"message": "If that email exists, a reset was sent."}
    user = mongo.db.users.find_one({"email": email})
    if not user:
        return jsonify(generic_message), 200

    reset_token = generate_token()
    mongo.db.users.update_one(
        {"_id": user["_id"]},
        {
            "$set": {
                "password_reset_token": reset_token,
                "password_reset_expires_at": utcnow()
                + timedelta(minutes=PASSWORD_RESET_EXPIRATION_MINUTES),
            }
        },
    )
    create_notification(user["_id"], "Password reset requested. Check your email for the link.")
    sent, error = send_password_reset_email(email, reset_token)
    if not sent:
        current_app.logger.error("Password reset email delivery failed for %s: %s", email, error)

    return jsonify(generic_message), 200


@bp.route("/users/reset-password", methods=["POST"])
@rate_limit("reset-password", 5)
def reset_password():
    payload = request.get_json(silent=True) or {}
    token = str(payload.get("token") or "").strip()
    password = str(payload.get("password") or "")

    if not token or not password:
        return error_response("Token and password are required.", 400, "VALIDATION_ERROR")
    if len(password) < MIN_PASSWORD_LENGTH:
        return error_response(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters.", 400, "VALIDATION_ERROR"
        )

    user = mongo.db.users.find_one({"password_reset_token": token})
    expires_at = (user or {}).get("password_reset_expires_at")
    if not user or not expires_at or expires_at < utcnow():
        if user:
            mongo.db.users.update_one(
                {"_id": user["_id"]},
                {"$unset": {"password_reset_token": "", "password_reset_expires_at": ""}},
            )
        return error_response("Invalid or expired token", 400, "VALIDATION_ERROR")

    mongo.db.users.update_one(
        {"_id": user["_id"]},
        {
            "$set": {"password": hash_password(password), "updated_at": utcnow()},
            "$unset": {"password_reset_token": "", "password_reset_expires_at": ""},
        },
    )
    record_audit_log(user.get("email"), "Reset password via email link", {"context": "password_reset"})
    return jsonify({"message": "Password reset successfully."})


@bp.route("/users/notifications", methods=["GET"])
@jwt_required()
def list_notifications():
    user, error = require_user()
    if error:
        return error
    notifications = (
        mongo.db.notifications.find({"user_id": user["_id"]})
        .sort("created_at", -1)
        .limit(NOTIFICATION_FEED_LIMIT)
    )
    return jsonify([serialize_notification(document) for document in notifications])


@bp.route("/users/notifications", methods=["PATCH"])
@jwt_required()
def mark_notifications_read():
    user, error = require_user()
    if error:
        return error
    payload = request.get_json(silent=True) or {}
    query = {"user_id": user["_id"], "read": False}
    if payload.get("ids"):
        query["_id"] = {"$in": normalize_object_id_list(payload.get("ids"))}
    result = mongo.db.notifications.update_many(query, {"$set": {"read": True}})
    return jsonify({"updated": result.modified_count})
