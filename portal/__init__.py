"""
Energy Program Portal
Flask Application Factory.

Usage:
    from portal import create_app
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

from portal.config import config
from portal.models import db
from portal.middleware.logging_config import configure_logging
from portal.middleware.jwt_auth import init_jwt_middleware
from portal.middleware.rate_limiter import init_rate_limits

logger = logging.getLogger(__name__)

# ── SQLite FK enforcement (global engine event) ─────────────────────────
from sqlalchemy import event as _sa_event, engine as _sa_engine  # noqa: E402


@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def _ensure_sqlite_dir(uri):
    # sqlite:///path/to/file.db; the driver will not create missing folders
    if not uri.startswith("sqlite:///") or uri.endswith(":memory:"):
        return
    directory = os.path.dirname(uri[len("sqlite:///"):])
    if directory:
        os.makedirs(directory, exist_ok=True)


migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # no global limit — apply per-blueprint
    storage_uri=os.getenv("REDIS_URL") or "memory://",  # Redis in production, memory for dev
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
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    config_obj = config[config_name]
    # ProductionConfig validates its environment on instantiation
    app.config.from_object(config_obj() if config_name == "production" else config_obj)

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── JWT principal provider ───────────────────────────────────────────
    init_jwt_middleware(app)

    # ── Import all models so Alembic and create_all see them ─────────────
    from portal.models import application as _application_models  # noqa: F401
    from portal.models import archive as _archive_models          # noqa: F401
    from portal.models import ghost as _ghost_models              # noqa: F401
    from portal.models import registry as _registry_models        # noqa: F401

    _ensure_sqlite_dir(app.config["SQLALCHEMY_DATABASE_URI"])

    # ── Auto-create tables (CREATE IF NOT EXISTS) outside production ─────
    if config_name != "production":
        with app.app_context():
            db.create_all()

    # ── Blueprints ───────────────────────────────────────────────────────
    from portal.blueprints.applications_bp import applications_bp
    from portal.blueprints.archive_bp import archive_bp
    from portal.blueprints.registry_bp import registry_bp
    from portal.blueprints.team_bp import team_bp

    app.register_blueprint(applications_bp)
    app.register_blueprint(archive_bp)
    app.register_blueprint(registry_bp)
    app.register_blueprint(team_bp)

    # ── Health check ─────────────────────────────────────────────────────
    @app.route("/api/v1/health")
    def health():
        return {"status": "ok", "app": "Energy Program Portal"}

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found", "path": request.path}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "retry_after": e.description}, 429

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return {"error": "Internal server error"}, 500

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
