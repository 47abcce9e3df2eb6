"""
Apparel PLM Approval Platform
Flask Application Factory.

Usage:
    from plm import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

import click
from flask import Flask, request
from flask_cors import CORS
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event

from plm.config import config
from plm.core.exceptions import ForbiddenError, NotFoundError, ValidationError
from plm.middleware.jwt_auth import init_jwt_middleware
from plm.middleware.logging_config import configure_logging
from plm.middleware.timing import init_request_timing
from plm.models import db
from plm.utils.errors import E, api_error

logger = logging.getLogger(__name__)


# ── SQLite FK enforcement (global engine event) ─────────────────────────
@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections (cascade deletes)."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()


def _register_error_handlers(app):
    """Map the service exception hierarchy onto distinct JSON responses."""

    @app.errorhandler(ForbiddenError)
    def _forbidden(e):
        db.session.rollback()
        code = E.ACTOR_INACTIVE if e.reason == "inactive" else E.FORBIDDEN
        return api_error(code, str(e), details={"required": e.capability})

    @app.errorhandler(NotFoundError)
    def _not_found(e):
        db.session.rollback()
        return api_error(E.NOT_FOUND, str(e), details={"resource": e.resource})

    @app.errorhandler(ValidationError)
    def _invalid(e):
        db.session.rollback()
        return api_error(E.VALIDATION_INVALID, str(e), details=e.details)

    @app.errorhandler(404)
    def _route_not_found(e):
        return {"error": "Not found", "path": request.path}, 404

    @app.errorhandler(405)
    def _method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(500)
    def _server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return {"error": "Internal server error", "code": E.INTERNAL}, 500


def create_app(config_name=None, permission_store=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.
        permission_store: Optional ``PermissionStore`` for the authorization
                     gate; the database-backed store is used when omitted.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name]())
    os.makedirs(app.instance_path, exist_ok=True)

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

    # ── Request middleware ───────────────────────────────────────────────
    init_request_timing(app)
    init_jwt_middleware(app)

    # ── Authorization gate + change-event dispatch ───────────────────────
    from plm.services import authorization, events
    from plm.services.notification import NotificationService

    authorization.init_app(app, store=permission_store)
    dispatcher = events.init_app(app)
    dispatcher.subscribe(NotificationService.handle_change)

    # ── Import all models so Alembic can detect them ─────────────────────
    from plm.models import audit as _audit_models                # noqa: F401
    from plm.models import auth as _auth_models                  # noqa: F401
    from plm.models import notification as _notification_models  # noqa: F401
    from plm.models import product as _product_models            # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    with app.app_context():
        db.create_all()

    # ── Blueprints ───────────────────────────────────────────────────────
    from plm.blueprints.model_bp import model_bp
    from plm.blueprints.notification_bp import notification_bp
    from plm.blueprints.user_bp import user_bp

    app.register_blueprint(model_bp)
    app.register_blueprint(user_bp)
    app.register_blueprint(notification_bp)

    _register_error_handlers(app)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("issue-token")
    @click.argument("user_id", type=int)
    def issue_token_cmd(user_id):
        """Print an access token for an existing user."""
        from plm.models.auth import User
        from plm.services.jwt_service import generate_access_token

        user = db.session.get(User, user_id)
        if user is None:
            raise click.ClickException(f"User {user_id} not found")
        click.echo(generate_access_token(user.id, user.role))

    @app.route("/api/v1/health")
    def health():
        return {"status": "ok", "app": "Apparel PLM Approval Platform"}

    return app
