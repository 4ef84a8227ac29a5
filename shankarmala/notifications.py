from flask import current_app

from .extensions import mongo
from .helpers import utcnow

NOTIFICATION_FEED_LIMIT = 20


def create_notification(user_id, message: str) -> None:
    if not user_id or not message:
        return
    try:
        mongo.db.notifications.insert_one(
            {"user_id": user_id, "message": message, "read": False, "created_at": utcnow()}
        )
    except Exception as exc:
        current_app.logger.warning("Unable to store notification for %s: %s", user_id, exc)
