"""
QMS Compliance Tracker
Review audit model.

Models:
    - ReviewAuditLog: immutable, append-only trail of review write-backs.
"""

import json
from datetime import UTC, datetime

from qms_tracker.models import db

# ── Constants ────────────────────────────────────────────────────────────────

AUDIT_ENTITY_TYPES = {"file", "record"}

AUDIT_ACTIONS = {
    # File-level review
    "file.review",
    # Record-level status
    "record.set_status",
    "record.auto_approve",
    # Manual review fields
    "record.set_reviewed",
    "record.set_reviewer",
}


class ReviewAuditLog(db.Model):
    """
    Immutable audit trail for every confirmed write-back to the sheet.

    One row per action, written only after the sheet accepted the write.
    ``diff_json`` carries the old→new snapshot of the changed fields.
    """

    __tablename__ = "review_audit_logs"
    __table_args__ = (
        db.Index("idx_review_audit_entity", "entity_type", "entity_id"),
        db.Index("idx_review_audit_record", "record_code"),
        db.Index("idx_review_audit_ts", "timestamp"),
    )

    id = db.Column(db.Integer, primary_key=True)

    entity_type = db.Column(
        db.String(20), nullable=False,
        comment="file | record",
    )
    entity_id = db.Column(
        db.String(128), nullable=False,
        comment="Drive file id or record code",
    )
    record_code = db.Column(db.String(64), nullable=False)
    row_index = db.Column(db.Integer, nullable=True)

    action = db.Column(
        db.String(40), nullable=False,
        comment="file.review | record.set_status | record.auto_approve | …",
    )
    actor = db.Column(db.String(150), nullable=False, default="User")

    diff_json = db.Column(db.Text, default="{}")

    timestamp = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(UTC),
    )

    # ── Helpers ──────────────────────────────────────────────────────────

    @property
    def diff(self) -> dict:
        """Deserialise *diff_json* to a Python dict."""
        try:
            return json.loads(self.diff_json or "{}")
        except (json.JSONDecodeError, TypeError):
            return {}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "record_code": self.record_code,
            "row_index": self.row_index,
            "action": self.action,
            "actor": self.actor,
            "diff": self.diff,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }

    def __repr__(self):
        return f"<ReviewAuditLog {self.id}: {self.action} on {self.entity_type}/{self.entity_id}>"


# ── Convenience writer ───────────────────────────────────────────────────────

def write_audit(
    *,
    entity_type: str,
    entity_id: str,
    record_code: str,
    action: str,
    actor: str = "User",
    row_index: int | None = None,
    diff: dict | None = None,
) -> ReviewAuditLog:
    """
    Append a single audit row.  Uses ``flush`` so callers keep
    transaction control.

    Returns the (flushed) ReviewAuditLog instance.

    Raises:
        ValueError: If *action* or *entity_type* is not a known value.
    """
    if action not in AUDIT_ACTIONS:
        raise ValueError(f"Unknown audit action: {action}")
    if entity_type not in AUDIT_ENTITY_TYPES:
        raise ValueError(f"Unknown audit entity type: {entity_type}")

    log = ReviewAuditLog(
        entity_type=entity_type,
        entity_id=str(entity_id),
        record_code=record_code,
        row_index=row_index,
        action=action,
        actor=actor or "User",
        diff_json=json.dumps(diff or {}, default=str),
    )
    db.session.add(log)
    db.session.flush()
    return log


def history_for_record(record_code: str) -> list[dict]:
    """Return every audit row for a record and its files, oldest first."""
    rows = (
        ReviewAuditLog.query
        .filter_by(record_code=record_code)
        .order_by(ReviewAuditLog.timestamp.asc(), ReviewAuditLog.id.asc())
        .all()
    )
    return [r.to_dict() for r in rows]
