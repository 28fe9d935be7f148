"""
AgentCanvas
Flask Application Factory.

Usage:
    from agentcanvas import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

import click
from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate

from agentcanvas.config import config
from agentcanvas.models import db
from agentcanvas.middleware.logging_config import configure_logging
from agentcanvas.middleware.org_context import init_org_context
from agentcanvas.middleware.rate_limiter import init_rate_limits
from agentcanvas.middleware.timing import init_request_timing
from agentcanvas.utils.errors import E, api_error

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


migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # no global limit, apply per-route
    storage_uri=os.getenv("REDIS_URL", "memory://"),  # Redis in production, memory for dev
)

# Legacy import accepts raw YAML as well as JSON
_YAML_CONTENT_TYPES = ("yaml", "text/plain")


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
    # Instantiated so ProductionConfig can refuse to start without its env vars
    app.config.from_object(config[config_name]())

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

    # ── Request timing, then org scoping ─────────────────────────────────
    init_request_timing(app)
    init_org_context(app)

    # ── Request guards (input length + Content-Type) ─────────────────────
    @app.before_request
    def _guard_request():
        max_len = app.config.get("MAX_CONTENT_LENGTH")
        if max_len and request.content_length and request.content_length > max_len:
            return api_error(E.PAYLOAD_TOO_LARGE, "Request body too large")
        if request.method in ("POST", "PUT", "PATCH") and request.path.startswith("/api/"):
            ct = request.content_type or ""
            if request.path.startswith("/api/v1/canvases/import") and any(
                    t in ct for t in _YAML_CONTENT_TYPES):
                return None
            if request.get_data(cache=True) and "json" not in ct:
                return api_error(E.UNSUPPORTED_MEDIA, "Content-Type must be application/json")
        return None

    # ── Import all models so Alembic can detect them ─────────────────────
    from agentcanvas.models import canvas as _canvas_models  # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    with app.app_context():
        db.create_all()
        app.logger.debug("db.create_all() completed")

    # ── Blueprints ───────────────────────────────────────────────────────
    from agentcanvas.blueprints.canvas_bp import canvas_bp
    from agentcanvas.blueprints.health_bp import health_bp
    app.register_blueprint(canvas_bp)
    app.register_blueprint(health_bp)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("import-canvas")
    @click.argument("path", type=click.Path(exists=True, dir_okay=False))
    @click.option("--org", "org_id", required=True, help="Owning org id.")
    @click.option("--title", default=None, help="Override the document title.")
    def import_canvas_cmd(path, org_id, title):
        """Import a legacy YAML canvas file for an org."""
        from agentcanvas.services.canvas_service import import_canvas
        with open(path, encoding="utf-8") as fh:
            result = import_canvas(org_id, fh.read(), override_title=title, actor="cli")
        logger.info("Imported canvas %s '%s' (%d agents).",
                    result["canvasId"], result["slug"], result["agentCount"])

    # ── Health check (detailed version at /health/live) ──────────────────
    @app.route("/api/v1/health")
    def health():
        return {"status": "ok", "app": "AgentCanvas"}

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found", "code": E.NOT_FOUND, "path": request.path}, 404

    @app.errorhandler(413)
    def payload_too_large(e):
        return {"error": "Request body too large", "code": E.PAYLOAD_TOO_LARGE}, 413

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return {"error": "Internal server error", "code": E.INTERNAL}, 500

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed", "code": E.METHOD_NOT_ALLOWED}, 405

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "code": E.RATE_LIMITED,
                "retry_after": e.description}, 429

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
