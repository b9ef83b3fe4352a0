"""
Health check blueprint.

Endpoints:
    GET /api/v1/health/ready  — simple 200 for load balancers
    GET /api/v1/health/live   — audit database + Google gateway configuration
"""

import logging
import time

from flask import Blueprint, current_app, jsonify

from qms_tracker.integrations import drive_gateway as drive_module
from qms_tracker.integrations import sheets_gateway as sheets_module
from qms_tracker.models import db

logger = logging.getLogger(__name__)

health_bp = Blueprint("health_bp", __name__, url_prefix="/api/v1/health")


@health_bp.route("/ready", methods=["GET"])
def ready():
    """Simple readiness probe — always 200 if app is running."""
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    """Liveness check with dependency status.

    The Google APIs are not called here: the check only reports whether the
    gateways have what they need to authenticate.
    """
    checks = {}
    overall = True

    # ── Database ─────────────────────────────────────────────────────
    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        db_ms = (time.perf_counter() - t0) * 1000
        checks["database"] = {"status": "ok", "latency_ms": round(db_ms, 1)}
    except Exception as exc:
        checks["database"] = {"status": "error", "detail": str(exc)}
        overall = False
        logger.error("Health check — database failed: %s", exc)

    # ── Google gateways ──────────────────────────────────────────────
    sheets = sheets_module.sheets_gateway
    drive = drive_module.drive_gateway
    tokens = getattr(sheets, "token_provider", None)
    checks["sheets"] = {
        "status": "ok" if getattr(sheets, "spreadsheet_id", None) else "not_configured",
        "sheet": getattr(sheets, "sheet_name", None),
        "writable": bool(tokens and tokens.configured),
    }
    checks["drive"] = {
        "status": "ok" if (getattr(drive, "api_key", None) or (tokens and tokens.configured))
        else "not_configured",
    }

    checks["app"] = {
        "name": "QMS Compliance Tracker",
        "debug": current_app.debug,
        "testing": current_app.testing,
    }

    status_code = 200 if overall else 503
    return jsonify({
        "status": "healthy" if overall else "degraded",
        "checks": checks,
    }), status_code
