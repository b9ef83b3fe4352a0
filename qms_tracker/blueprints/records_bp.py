"""
QMS Compliance Tracker
Records blueprint — merged per-form records and their review actions.

Endpoints:
    GET  /api/v1/records                                   — snapshot (?module=)
    GET  /api/v1/records/<code>                            — one record with files
    GET  /api/v1/records/<code>/history                    — review audit trail
    POST /api/v1/records/<code>/files/<file_id>/review     — review one file
    POST /api/v1/records/<code>/status                     — record-level status
    POST /api/v1/records/<code>/reviewed                   — manual reviewed box
    POST /api/v1/records/<code>/reviewer                   — reviewed-by name

Form codes contain slashes ("F/12"), hence the ``path:`` converter.

The actor is taken from ``reviewer`` in the body, else the ``X-Actor-Name``
header, else "User". Domain errors are translated by the app-level handlers.
"""

from flask import Blueprint, current_app, jsonify, request

from qms_tracker.services import qms_service
from qms_tracker.services.status_mutator import DEFAULT_ACTOR
from qms_tracker.utils.errors import E, api_error

records_bp = Blueprint("records", __name__, url_prefix="/api/v1/records")


def _actor(data: dict) -> str:
    name = (data.get("reviewer") or request.headers.get("X-Actor-Name") or "").strip()
    return name or DEFAULT_ACTOR


def _body() -> dict | None:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else None


# ── Read ─────────────────────────────────────────────────────────────────────

@records_bp.route("", methods=["GET"])
def list_records():
    """
    Return every merged record, without file lists.

    Query params:
        module — module id filter (sales, operations, quality, …)
    """
    module = request.args.get("module")
    records = qms_service.list_records(module=module)
    return jsonify({
        "records": [qms_service.record_summary(r) for r in records],
        "total": len(records),
    })


@records_bp.route("/<path:code>/history", methods=["GET"])
def record_history(code):
    return jsonify({"code": code, "history": qms_service.record_history(code)})


# ── File review ──────────────────────────────────────────────────────────────

@records_bp.route("/<path:code>/files/<file_id>/review", methods=["POST"])
def review_file(code, file_id):
    """
    Set a file's review status and comment.

    Body: {status: pending_review|approved|rejected, comment?, reviewer?}
    Returns the updated record and whether it was auto-approved.
    """
    data = _body()
    if data is None:
        return api_error(E.VALIDATION_REQUIRED, "JSON body is required")
    if not data.get("status"):
        return api_error(E.VALIDATION_REQUIRED, "status is required")

    result = qms_service.update_file_review(
        code, file_id, data["status"],
        comment=data.get("comment"),
        actor=_actor(data),
    )
    return jsonify({
        "record": result["record"].to_dict(),
        "cascaded": result["cascaded"],
    })


# ── Record level ─────────────────────────────────────────────────────────────

@records_bp.route("/<path:code>/status", methods=["POST"])
def set_record_status(code):
    """Body: {status: Approved|Rejected|Pending, reviewer?}"""
    data = _body()
    if data is None:
        return api_error(E.VALIDATION_REQUIRED, "JSON body is required")
    if not data.get("status"):
        return api_error(E.VALIDATION_REQUIRED, "status is required")

    record = qms_service.update_record_status(code, data["status"], actor=_actor(data))
    return jsonify({"record": record.to_dict()})


@records_bp.route("/<path:code>/reviewed", methods=["POST"])
def set_reviewed(code):
    """Body: {reviewed: bool, reviewer?}"""
    data = _body()
    if data is None or "reviewed" not in data:
        return api_error(E.VALIDATION_REQUIRED, "reviewed is required")
    if not isinstance(data["reviewed"], bool):
        return api_error(E.VALIDATION_INVALID, "reviewed must be true or false")

    record = qms_service.update_reviewed(code, data["reviewed"], actor=_actor(data))
    return jsonify({"record": record.to_dict()})


@records_bp.route("/<path:code>/reviewer", methods=["POST"])
def set_reviewer(code):
    """Body: {name: str, reviewer?}"""
    data = _body()
    if data is None or "name" not in data:
        return api_error(E.VALIDATION_REQUIRED, "name is required")
    name = str(data.get("name") or "").strip()
    if len(name) > 150:
        return api_error(E.VALIDATION_INVALID, "name must be ≤ 150 characters")

    record = qms_service.update_reviewer_name(code, name, actor=_actor(data))
    return jsonify({"record": record.to_dict()})


# ── Detail ───────────────────────────────────────────────────────────────────

@records_bp.route("/<path:code>", methods=["GET"])
def get_record(code):
    record = qms_service.get_record(code)
    current_app.logger.debug("Record %s: %d files", record.code, len(record.files))
    return jsonify(record.to_dict())
