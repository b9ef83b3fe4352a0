"""
QMS Compliance Tracker
Flask Application Factory.

Usage:
    from qms_tracker import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask, request
from flask_cors import CORS

from qms_tracker.config import config
from qms_tracker.core.exceptions import (
    NotFoundError,
    SourceUnavailableError,
    ValidationError,
    WriteFailureError,
)
from qms_tracker.middleware.logging_config import configure_logging
from qms_tracker.middleware.timing import init_request_timing
from qms_tracker.models import db
from qms_tracker.utils.errors import E, api_error

logger = logging.getLogger(__name__)


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
    config_cls = config[config_name]
    # ProductionConfig validates required env vars on instantiation
    app.config.from_object(config_cls())

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)

    # ── Google gateways (module singletons) ──────────────────────────────
    from qms_tracker.services.qms_service import configure_gateways
    configure_gateways(app)

    # ── Models + tables (CREATE IF NOT EXISTS) ───────────────────────────
    from qms_tracker.models import audit as _audit_models  # noqa: F401

    if app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite:///") and ":memory:" not in (
        app.config["SQLALCHEMY_DATABASE_URI"]
    ):
        os.makedirs(app.instance_path, exist_ok=True)

    with app.app_context():
        try:
            db.create_all()
            app.logger.info("db.create_all() completed successfully")
        except Exception as e:
            app.logger.warning("db.create_all() failed: %s", e)

    # ── Blueprints ───────────────────────────────────────────────────────
    from qms_tracker.blueprints.dashboard_bp import dashboard_bp
    from qms_tracker.blueprints.health_bp import health_bp
    from qms_tracker.blueprints.records_bp import records_bp

    app.register_blueprint(records_bp)
    app.register_blueprint(dashboard_bp)
    app.register_blueprint(health_bp)

    @app.route("/api/v1/health")
    def health():
        return {"status": "ok", "app": "QMS Compliance Tracker"}

    # ── Domain error handlers ────────────────────────────────────────────
    @app.errorhandler(NotFoundError)
    def handle_not_found(e):
        return api_error(E.NOT_FOUND, str(e))

    @app.errorhandler(ValidationError)
    def handle_validation(e):
        code = E.INVALID_STATUS if "allowed" in e.details else E.VALIDATION_INVALID
        return api_error(code, str(e), status=422, details=e.details)

    @app.errorhandler(SourceUnavailableError)
    def handle_source_unavailable(e):
        logger.error("Source unavailable: %s", e, extra={"source": e.source})
        return api_error(
            E.SOURCE_UNAVAILABLE, str(e),
            details={"source": e.source, "status_code": e.status_code},
        )

    @app.errorhandler(WriteFailureError)
    def handle_write_failure(e):
        logger.error("Write-back failed: %s", e, extra={"source": "sheets"})
        return api_error(
            E.WRITE_FAILED, str(e),
            details={"row_index": e.row_index, "column": e.column},
        )

    # ── HTTP error handlers ──────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found", "path": request.path}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return api_error(E.INTERNAL, "Internal server error")

    return app
