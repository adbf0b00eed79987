"""
Org Chart Planner
Flask Application Factory.

Usage:
    from orgplan import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate

from orgplan.config import PlannerSettings, config
from orgplan.models import db
from orgplan.middleware.identity import init_identity
from orgplan.middleware.logging_config import configure_logging
from orgplan.middleware.rate_limiter import init_rate_limits
from orgplan.middleware.timing import init_request_timing
from orgplan.services.context import build_permission_store, build_plan_repository, init_planner

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
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # no global limit, applied per blueprint
    storage_uri=os.getenv("REDIS_URL", "memory://"),
)


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.

    Raises:
        RuntimeError: required settings are missing or invalid.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    # Instantiated so environment checks in the config class run
    app.config.from_object(config[config_name]())

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

    # ── Planner collaborators ────────────────────────────────────────────
    settings = PlannerSettings.from_config(app.config)
    if settings.store_backend == "workbook":
        os.makedirs(os.path.dirname(os.path.abspath(settings.workbook_path)), exist_ok=True)
    init_planner(app, settings)

    # ── Request middleware ───────────────────────────────────────────────
    init_request_timing(app)
    init_identity(app)

    # Must follow init_identity: rate-limit keys read g.user_email
    limiter.init_app(app)

    app.config.setdefault("MAX_CONTENT_LENGTH", 2 * 1024 * 1024)  # 2 MB

    # ── Import all models so Alembic can detect them ─────────────────────
    from orgplan.models import property as _property_models   # noqa: F401
    from orgplan.models import sheet as _sheet_models         # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    with app.app_context():
        try:
            db.create_all()
            app.logger.info("db.create_all() completed successfully")
        except Exception as e:
            app.logger.warning("db.create_all() failed: %s", e)

    # ── Blueprints ───────────────────────────────────────────────────────
    from orgplan.blueprints.entry_bp import entry_bp
    from orgplan.blueprints.health_bp import health_bp
    from orgplan.blueprints.plan_bp import plan_bp
    from orgplan.blueprints.sharing_bp import sharing_bp

    app.register_blueprint(entry_bp)
    app.register_blueprint(health_bp)
    app.register_blueprint(plan_bp)
    app.register_blueprint(sharing_bp)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("init-store")
    def init_store_cmd():
        """Create the hidden plan template and permission tables."""
        build_plan_repository(app).ensure_template()
        entries = build_permission_store(app=app).list_entries()
        logger.info("Store initialised: template ready, %d permission entr%s.",
                    len(entries), "y" if len(entries) == 1 else "ies")

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        if request.path.startswith("/api/"):
            return {"success": False, "error": "Not found", "path": request.path}, 404
        return "<h1>404 — Not Found</h1>", 404

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        if request.path.startswith("/api/"):
            return {"success": False, "error": "Internal server error"}, 500
        return "<h1>500 — Internal Server Error</h1><p>An unexpected error occurred.</p>", 500

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"success": False, "error": "Method not allowed"}, 405

    @app.errorhandler(413)
    def payload_too_large(e):
        return {"success": False, "error": "Request body too large"}, 413

    @app.errorhandler(429)
    def rate_limited(e):
        return {"success": False, "error": "Too many requests", "retry_after": e.description}, 429

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
