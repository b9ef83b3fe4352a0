"""
Dashboard Blueprint — compliance read models.

Every endpoint computes from a fresh snapshot of the sheet and Drive; nothing
is cached between requests.

Endpoints:
    GET /api/v1/dashboard                    — all read models at once
    GET /api/v1/dashboard/modules            — module stats + readiness
    GET /api/v1/dashboard/audit-summary      — file-level compliance summary
    GET /api/v1/dashboard/review-summary     — reviewed vs pending files
    GET /api/v1/dashboard/monthly            — last 30 days vs previous 30
    GET /api/v1/dashboard/recent             — most recently active records
    GET /api/v1/dashboard/pending-actions    — overdue and due-soon records
    GET /api/v1/dashboard/review-queue       — every file bucketed by review
"""

from flask import Blueprint, current_app, jsonify, request

from qms_tracker.services import aggregator
from qms_tracker.services import qms_service as svc

dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/v1/dashboard")


def _recent_limit() -> int:
    default = current_app.config.get("RECENT_ACTIVITY_LIMIT", 5)
    limit = request.args.get("limit", default, type=int)
    return min(max(limit, 0), 100)


@dashboard_bp.route("", methods=["GET"])
def full_dashboard():
    """Get every dashboard read model from one snapshot."""
    return jsonify(svc.dashboard(recent_limit=_recent_limit())), 200


@dashboard_bp.route("/modules", methods=["GET"])
def modules():
    stats = aggregator.module_stats(svc.load_records())
    return jsonify({
        "modules": [s.to_dict() for s in stats],
        "readiness": aggregator.module_readiness(stats),
    }), 200


@dashboard_bp.route("/audit-summary", methods=["GET"])
def audit_summary():
    return jsonify(aggregator.audit_summary(svc.load_records()).to_dict()), 200


@dashboard_bp.route("/review-summary", methods=["GET"])
def review_summary():
    return jsonify(aggregator.review_summary(svc.load_records()).to_dict()), 200


@dashboard_bp.route("/monthly", methods=["GET"])
def monthly():
    """Activity comparison; percentageChange is unsigned, see isPositive."""
    return jsonify(aggregator.monthly_comparison(svc.load_records()).to_dict()), 200


@dashboard_bp.route("/recent", methods=["GET"])
def recent():
    """Most recently active records (?limit=, default RECENT_ACTIVITY_LIMIT)."""
    records = aggregator.recent_activity(svc.load_records(), _recent_limit())
    return jsonify({"records": [svc.record_summary(r) for r in records]}), 200


@dashboard_bp.route("/pending-actions", methods=["GET"])
def pending_actions():
    actions = aggregator.pending_actions(svc.load_records())
    return jsonify({
        "overdue": [svc.record_summary(r) for r in actions["overdue"]],
        "upcoming": [svc.record_summary(r) for r in actions["upcoming"]],
    }), 200


@dashboard_bp.route("/review-queue", methods=["GET"])
def review_queue():
    return jsonify(aggregator.review_queue(svc.load_records())), 200
