"""
Licensing Workflow Engine
Flask Application Factory.

Usage:
    from alms import create_app
    app = create_app()           # defaults to APP_ENV or "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event

from alms.config import config
from alms.middleware.jwt_auth import init_jwt_middleware
from alms.middleware.logging_config import configure_logging
from alms.middleware.rate_limiter import init_rate_limits
from alms.middleware.timing import init_request_timing
from alms.models import db
from alms.services.action_coordinator import init_coordinator
from alms.services.workflow_catalog import init_catalog
from alms.utils.errors import E, api_error

logger = logging.getLogger(__name__)


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
    default_limits=[],  # per-route limits only, see middleware/rate_limiter.py
    storage_uri=os.getenv("RATELIMIT_STORAGE_URI", "memory://"),
)


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: One of "development", "testing", "production".
                     Defaults to APP_ENV, or "development" if unset.
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
    limiter.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Middleware ───────────────────────────────────────────────────────
    init_request_timing(app)
    init_jwt_middleware(app)

    # ── Workflow engine components ───────────────────────────────────────
    init_catalog(app)
    init_coordinator(app)

    # ── Import all models so Alembic can detect them ─────────────────────
    from alms.models import application as _application_models  # noqa: F401
    from alms.models import auth as _auth_models  # noqa: F401

    with app.app_context():
        db_uri = app.config["SQLALCHEMY_DATABASE_URI"]
        if db_uri.startswith("sqlite:///") and ":memory:" not in db_uri:
            os.makedirs(app.instance_path, exist_ok=True)
        db.create_all()

    # ── Blueprints ───────────────────────────────────────────────────────
    from alms.blueprints import ALL_BLUEPRINTS

    for bp in ALL_BLUEPRINTS:
        app.register_blueprint(bp)

    init_rate_limits(app, limiter)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("seed-workflow")
    def seed_workflow_cmd():
        """Seed roles, forward hierarchy and one officer per role."""
        from alms.services.seed_service import seed_workflow_directory
        result = seed_workflow_directory()
        logger.info("Seeded workflow directory: %s", result)

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        return api_error(E.NOT_FOUND, "Not found", details={"path": request.path})

    @app.errorhandler(405)
    def method_not_allowed(e):
        return api_error(E.VALIDATION_INVALID, "Method not allowed", status=405)

    @app.errorhandler(429)
    def rate_limited(e):
        return api_error(E.RATE_LIMITED, f"Rate limit exceeded: {e.description}")

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return api_error(E.INTERNAL, "Internal server error")

    return app
