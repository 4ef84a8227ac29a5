import logging
from typing import Dict, Optional

import click
from flask import Flask, jsonify, send_from_directory
from flask_cors import CORS
from pymongo import ASCENDING, DESCENDING
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix

from . import security  # noqa: F401  registers the JWT error loaders
from .config import Config
from .extensions import jwt, mongo
from .routes import register_blueprints
from .uploads import upload_folder

DEV_ORIGINS = ["http://localhost:3000", "http://localhost:5173", "http://localhost:4173"]


def allowed_origins(config) -> list:
    origins = list(DEV_ORIGINS)
    origins.append(config.get("FRONTEND_URL") or "")
    origins.append(config.get("PUBLIC_BASE_URL") or "")
    for origin in (config.get("CORS_ALLOWED_ORIGINS") or "").split(","):
        origins.append(origin.strip())
    return [origin for origin in dict.fromkeys(origins) if origin]


def ensure_indexes(app: Flask) -> None:
    db = mongo.db
    index_specs = [
        (db.users, [("email", ASCENDING)], {"unique": True}),
        (db.wishlists, [("user_id", ASCENDING), ("gemstone_id", ASCENDING)], {"unique": True}),
        (db.homepage_sections, [("key", ASCENDING)], {"unique": True}),
        (db.newsletter_subscribers, [("email", ASCENDING)], {"unique": True}),
        (db.reviews, [("gemstone_id", ASCENDING)], {}),
        (db.orders, [("user_id", ASCENDING)], {}),
        (db.audit_logs, [("created_at", DESCENDING)], {}),
    ]
    for collection, keys, options in index_specs:
        try:
            collection.create_index(keys, **options)
        except Exception as exc:
            app.logger.warning("Unable to ensure index on %s: %s", collection.name, exc)


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(HTTPException)
    def handle_http_error(exc: HTTPException):
        if exc.code is None or exc.code < 400:
            return exc
        messages = {
            404: ("Not found", "NOT_FOUND"),
            405: ("Method not allowed", "METHOD_NOT_ALLOWED"),
            413: (f"File too large (max {app.config['MAX_UPLOAD_SIZE_MB']}MB)", "PAYLOAD_TOO_LARGE"),
        }
        message, code = messages.get(exc.code, (exc.description or exc.name, None))
        body: Dict[str, object] = {"error": message}
        if code:
            body["code"] = code
        return jsonify(body), exc.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(exc: Exception):
        app.logger.exception("Unhandled error: %s", exc)
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500


def register_commands(app: Flask) -> None:
    @app.cli.command("seed")
    def seed_command():
        """Seed the demo catalog, default content and the default admin."""
        from .seed import run_seed

        summary = run_seed()
        click.echo(
            f"Seeded {summary['gemstones_created']} gemstones"
            f"{' and the default admin' if summary['admin_created'] else ''}."
        )


def create_app(config_overrides: Optional[Dict] = None) -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    app.logger.setLevel(getattr(logging, str(app.config.get("LOG_LEVEL") or "INFO"), logging.INFO))

    # Honor proxy headers so generated links keep the public HTTPS origin.
    proxy_hops = max(0, int(app.config.get("TRUSTED_PROXY_HOPS") or 0))
    if proxy_hops:
        app.wsgi_app = ProxyFix(
            app.wsgi_app, x_for=proxy_hops, x_proto=proxy_hops, x_host=proxy_hops, x_port=proxy_hops
        )

    CORS(app, supports_credentials=True, origins=allowed_origins(app.config))
    mongo.init_app(app)
    jwt.init_app(app)

    register_blueprints(app)
    register_error_handlers(app)
    register_commands(app)

    @app.route("/health")
    def health():
        return {"status": "ok"}, 200

    @app.route("/uploads/<path:filename>")
    def serve_uploaded_file(filename: str):
        return send_from_directory(upload_folder(), filename)

    with app.app_context():
        ensure_indexes(app)
        if app.config.get("SEED_CATALOG"):
            from .seed import run_seed

            try:
                run_seed()
            except Exception as exc:
                app.logger.warning("Unable to seed the catalog: %s", exc)

    return app
