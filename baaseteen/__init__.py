"""
Baaseteen Case Workflow
Flask application factory.

Usage:
    from baaseteen import create_app
    app = create_app()           # APP_ENV, default "development"
    app = create_app("testing")
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
from sqlalchemy.exc import SQLAlchemyError

from baaseteen.config import config
from baaseteen.middleware.jwt_auth import init_jwt_middleware
from baaseteen.middleware.logging_config import configure_logging
from baaseteen.middleware.rate_limiter import init_rate_limits
from baaseteen.middleware.timing import init_request_timing
from baaseteen.models import db
from baaseteen.utils.errors import E, api_error, register_error_handlers

logger = logging.getLogger(__name__)

JSON_METHODS = ("POST", "PUT", "PATCH")


@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """SQLite ignores foreign keys unless asked per connection."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
# Limits are attached per blueprint by init_rate_limits
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],
    storage_uri=os.getenv("REDIS_URL", "memory://"),
)


def _import_models():
    # create_all and Alembic only see imported models
    from baaseteen.models import audit, auth, case, counseling, notification  # noqa: F401


def _register_blueprints(app):
    from baaseteen.blueprints.case_bp import case_bp
    from baaseteen.blueprints.case_identification_bp import case_identification_bp
    from baaseteen.blueprints.counseling_bp import counseling_bp
    from baaseteen.blueprints.cover_letter_bp import cover_letter_bp
    from baaseteen.blueprints.health_bp import health_bp
    from baaseteen.blueprints.notification_bp import notification_bp
    from baaseteen.blueprints.workflow_stage_bp import workflow_stage_bp

    for bp in (case_bp, case_identification_bp, counseling_bp, cover_letter_bp,
               health_bp, notification_bp, workflow_stage_bp):
        app.register_blueprint(bp)


def _register_http_errors(app):
    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found", "code": E.NOT_FOUND, "path": request.path}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "retry_after": e.description}, 429

    @app.errorhandler(500)
    def server_error(e):
        logger.error("Unhandled server error: %s", e, exc_info=True)
        return {"error": "Internal server error", "code": E.INTERNAL}, 500


def _register_cli(app):
    @app.cli.command("seed-workflow-defaults")
    def seed_workflow_defaults_cmd():
        """Insert missing default roles, grants, case types and workflow stages."""
        from baaseteen.services.seed_service import seed_workflow_defaults
        created = seed_workflow_defaults()
        print(f"Seeded: {created}")


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: "development", "testing" or "production";
                     defaults to the APP_ENV env var.
    """
    config_name = config_name or os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    # Instances so ProductionConfig can refuse to start without its secrets
    app.config.from_object(config[config_name]())
    app.config.setdefault("MAX_CONTENT_LENGTH", 2 * 1024 * 1024)

    configure_logging(app)

    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    origins = app.config.get("CORS_ORIGINS", "*")
    if origins and origins != "*":
        CORS(app, origins=[o.strip() for o in origins.split(",") if o.strip()])
    else:
        CORS(app)

    init_request_timing(app)
    init_jwt_middleware(app)

    @app.before_request
    def _require_json_body():
        if request.method in JSON_METHODS and request.path.startswith("/api/") and request.data:
            if "json" not in (request.content_type or ""):
                return api_error(
                    E.VALIDATION_INVALID, "Content-Type must be application/json", status=415,
                )
        return None

    _import_models()
    with app.app_context():
        try:
            db.create_all()
        except SQLAlchemyError as exc:
            app.logger.warning("db.create_all() failed: %s", exc)

    _register_blueprints(app)
    register_error_handlers(app)
    _register_http_errors(app)
    _register_cli(app)
    init_rate_limits(app, limiter)

    logger.debug("App created with config %r", config_name)
    return app
