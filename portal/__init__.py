"""
Company Portal
Flask application factory.

    from portal import create_app
    app = create_app()                    # APP_ENV, else "development"
    app = create_app("testing", {...})    # explicit config plus overrides
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
from portal.middleware.timing import init_request_timing
from portal.middleware.rate_limiter import init_rate_limits

logger = logging.getLogger(__name__)

migrate = Migrate()
# No global limit; init_rate_limits assigns limits per blueprint
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],
    storage_uri=os.getenv("REDIS_URL", "memory://"),
)


def create_app(config_name=None, overrides=None):
    """
    Build the portal API.

    Args:
        config_name: "development", "testing" or "production"
                     (defaults to the APP_ENV env var).
        overrides:   Mapping applied after the config class; tests use it
                     for file-backed databases and upload folders.
    """
    app = Flask(__name__, instance_relative_config=True)
    # Instantiated so ProductionConfig can refuse a missing DATABASE_URL/SECRET_KEY
    app.config.from_object(config[config_name or os.getenv("APP_ENV", "development")]())
    if overrides:
        app.config.update(overrides)

    configure_logging(app)
    _init_extensions(app)
    init_request_timing(app)
    _init_schema(app)
    _register_blueprints(app)
    init_rate_limits(app, limiter)
    _register_cli(app)
    _register_http_errors(app)
    return app


# ── Setup steps ─────────────────────────────────────────────────────────────


def _init_extensions(app):
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)

    origins = app.config.get("CORS_ORIGINS", "*")
    if origins and origins != "*":
        CORS(app, origins=[o.strip() for o in origins.split(",") if o.strip()])
    else:
        CORS(app)


def _init_schema(app):
    """Load every model, hook the read-model cache, and create missing tables."""
    from portal.models import collaborator, notification, workflow  # noqa: F401
    from portal.services.cache_service import init_read_model_cache

    init_read_model_cache(app)

    uri = app.config["SQLALCHEMY_DATABASE_URI"]
    with app.app_context():
        try:
            if uri.startswith("sqlite:///") and ":memory:" not in uri:
                os.makedirs(app.instance_path, exist_ok=True)
            db.create_all()
        except Exception as exc:
            # /health/live reports the database state
            app.logger.warning("create_all skipped: %s", exc)


def _register_blueprints(app):
    from portal.blueprints.collaborator_bp import collaborator_bp
    from portal.blueprints.definition_bp import definition_bp
    from portal.blueprints.health_bp import health_bp
    from portal.blueprints.notification_bp import notification_bp
    from portal.blueprints.workflow_bp import workflow_bp

    for bp in (workflow_bp, definition_bp, collaborator_bp, notification_bp, health_bp):
        app.register_blueprint(bp)


def _register_cli(app):
    @app.cli.command("seed-demo")
    def seed_demo_cmd():
        """Seed demo collaborators and sample workflow definitions."""
        from portal.services.demo_seed import seed_demo_data

        created = seed_demo_data()
        logger.info("Seeded demo data: %s", created)


def _register_http_errors(app):
    from portal.utils.errors import E, api_error

    @app.errorhandler(404)
    def _not_found(exc):
        return api_error(E.NOT_FOUND, f"No route for {request.path}")

    @app.errorhandler(405)
    def _method_not_allowed(exc):
        return api_error(E.METHOD_NOT_ALLOWED, f"{request.method} not allowed on {request.path}")

    @app.errorhandler(413)
    def _too_large(exc):
        limit = app.config.get("MAX_CONTENT_LENGTH")
        return api_error(E.PAYLOAD_TOO_LARGE, "Request body too large", details={"max_bytes": limit})

    @app.errorhandler(429)
    def _rate_limited(exc):
        return api_error(E.RATE_LIMITED, "Too many requests", details={"limit": exc.description})
