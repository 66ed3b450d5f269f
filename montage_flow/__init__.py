"""
Montage Workflow Service
Flask Application Factory.

Usage:
    from montage_flow import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask, request, send_from_directory
from flask_cors import CORS
from flask_migrate import Migrate

from montage_flow.auth import init_auth
from montage_flow.config import config
from montage_flow.middleware.logging_config import configure_logging
from montage_flow.middleware.timing import init_request_timing
from montage_flow.models import db

logger = logging.getLogger(__name__)

# ── SQLite FK enforcement (global engine event) ─────────────────────────
from sqlalchemy import event as _sa_event, engine as _sa_engine


@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()

# Multipart uploads go through the attachment endpoint only
_MULTIPART_SUFFIX = "/attachment"


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    cfg = config[config_name]
    app.config.from_object(cfg() if config_name == "production" else cfg)

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Caller identity ──────────────────────────────────────────────────
    init_auth(app)

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)

    # ── Request guards (input length + Content-Type) ─────────────────────
    json_limit = app.config.get("MAX_JSON_BODY_BYTES", 2 * 1024 * 1024)
    upload_limit = app.config.get("MAX_ATTACHMENT_SIZE_BYTES", 25 * 1024 * 1024)
    # Hard cap for werkzeug; JSON bodies get the tighter limit below
    app.config.setdefault("MAX_CONTENT_LENGTH", upload_limit + 1024 * 1024)

    @app.before_request
    def _guard_request():
        from flask import abort
        if request.method not in ("POST", "PUT", "PATCH") or not request.path.startswith("/api/"):
            return None
        is_upload = request.path.endswith(_MULTIPART_SUFFIX)
        if not is_upload and request.content_length and request.content_length > json_limit:
            abort(413, description="Request body too large")
        ct = request.content_type or ""
        if request.content_length and "json" not in ct and not (is_upload and "multipart/form-data" in ct):
            abort(415, description="Content-Type must be application/json")
        return None

    # ── Import all models so Alembic can detect them ─────────────────────
    from montage_flow.models import checklist as _checklist_models        # noqa: F401
    from montage_flow.models import montage as _montage_models            # noqa: F401
    from montage_flow.models import notification as _notification_models  # noqa: F401
    from montage_flow.models import settings as _settings_models          # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ──
    with app.app_context():
        try:
            db.create_all()
            app.logger.info("db.create_all() completed successfully")
        except Exception as e:
            app.logger.warning("db.create_all() failed: %s", e)

    # ── Blueprints ───────────────────────────────────────────────────────
    from montage_flow.blueprints.board_bp import board_bp
    from montage_flow.blueprints.health_bp import health_bp
    from montage_flow.blueprints.montage_bp import montage_bp
    from montage_flow.blueprints.settings_bp import settings_bp

    app.register_blueprint(montage_bp)
    app.register_blueprint(settings_bp)
    app.register_blueprint(board_bp)
    app.register_blueprint(health_bp)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("seed-checklist-templates")
    def seed_checklist_templates_cmd():
        """Seed the default checklist templates (missing ones only)."""
        from montage_flow.services.checklist_template_service import seed_default_templates
        count = seed_default_templates()
        db.session.commit()
        logger.info("Seeded %s new checklist templates.", count)

    # ── Attachment files (local blob storage) ────────────────────────────
    @app.route(f"{app.config.get('UPLOAD_BASE_URL', '/uploads')}/<path:filename>")
    def uploaded_file(filename):
        return send_from_directory(app.config["UPLOAD_FOLDER"], filename)

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found", "path": request.path}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(413)
    def too_large(e):
        return {"error": e.description or "Request body too large"}, 413

    @app.errorhandler(415)
    def unsupported_media_type(e):
        return {"error": e.description or "Unsupported media type"}, 415

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return {"error": "Internal server error"}, 500

    return app
