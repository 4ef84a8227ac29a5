import math
import threading
import time
from functools import wraps
from typing import Dict, Tuple

from flask import current_app, make_response

from .helpers import client_ip, error_response


class RateLimiter:
    """Fixed-window request counter kept in process memory."""

    def __init__(self):
        self._windows: Dict[str, Tuple[int, float]] = {}
        self._lock = threading.Lock()

    def hit(self, key: str, limit: int, window_seconds: int):
        now = time.time()
        with self._lock:
            expired = [name for name, (_, window_end) in self._windows.items() if window_end <= now]
            for name in expired:
                del self._windows[name]
            count, reset_at = self._windows.get(key, (0, 0.0))
            if reset_at <= now:
                count, reset_at = 0, now + window_seconds
            if count < limit:
                count += 1
                allowed = True
            else:
                allowed = False
            self._windows[key] = (count, reset_at)
        return allowed, max(limit - count, 0), reset_at

    def __len__(self):
        return len(self._windows)

    def reset(self):
        with self._lock:
            self._windows.clear()


def get_limiter() -> RateLimiter:
    return current_app.extensions.setdefault("rate_limiter", RateLimiter())


def rate_limit(key: str, limit: int, window_seconds: int = 60):
    def decorator(view):
        @wraps(view)
        def wrapped(*args, **kwargs):
            if not current_app.config.get("RATELIMIT_ENABLED", True):
                return view(*args, **kwargs)

            allowed, remaining, reset_at = get_limiter().hit(
                f"{key}:{client_ip()}", limit, window_seconds
            )
            if allowed:
                response = make_response(view(*args, **kwargs))
            else:
                current_app.logger.warning("Rate limit exceeded for %s from %s", key, client_ip())
                response = make_response(
                    error_response("Too many requests. Please try again later.", 429, "RATE_LIMITED")
                )
                response.headers["Retry-After"] = str(max(1, math.ceil(reset_at - time.time())))

            response.headers["X-RateLimit-Limit"] = str(limit)
            response.headers["X-RateLimit-Remaining"] = str(remaining)
            response.headers["X-RateLimit-Reset"] = str(int(math.ceil(reset_at)))
            return response

        return wrapped

    return decorator
