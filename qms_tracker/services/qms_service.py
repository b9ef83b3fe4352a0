"""
QMS Service — orchestration between the sheet, Drive, the engine and the
audit trail.

Read path:
    fetch sheet rows → list every linked Drive folder → merge_snapshot
Write path:
    load record → pure status change (status_mutator) → one sheet write
    → audit row(s) → commit

Only this module talks to the gateways. All outbound HTTP is delegated to
``qms_tracker.integrations.sheets_gateway.sheets_gateway`` and
``qms_tracker.integrations.drive_gateway.drive_gateway``; they are looked up
on the module at call time so tests can swap them.

A write that the sheet rejects raises ``WriteFailureError`` before any audit
row is added, so the trail only ever shows committed changes.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date, datetime

from qms_tracker.core.exceptions import NotFoundError, WriteFailureError
from qms_tracker.integrations import drive_gateway as drive_module
from qms_tracker.integrations import sheets_gateway as sheets_module
from qms_tracker.integrations.drive_gateway import DriveGateway
from qms_tracker.integrations.google_auth import TokenProvider
from qms_tracker.integrations.sheets_gateway import SheetsGateway
from qms_tracker.models import db
from qms_tracker.models.audit import history_for_record, write_audit
from qms_tracker.models.qms import QMSRecord, ReviewMap
from qms_tracker.services import aggregator, review_state, status_mutator, taxonomy
from qms_tracker.services.record_merger import COLUMNS, has_folder, merge_snapshot, parse_templates
from qms_tracker.utils.helpers import utc_now

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════════════
# Gateway wiring
# ═════════════════════════════════════════════════════════════════════════════


def configure_gateways(app) -> None:
    """Replace the module-level gateway singletons with configured ones."""
    cfg = app.config
    timeout = int(cfg.get("EXTERNAL_TIMEOUT_SECONDS", 30))
    tokens = TokenProvider(
        client_id=cfg.get("GOOGLE_CLIENT_ID"),
        client_secret=cfg.get("GOOGLE_CLIENT_SECRET"),
        refresh_token=cfg.get("GOOGLE_REFRESH_TOKEN"),
        token_url=cfg.get("GOOGLE_TOKEN_URL"),
        timeout=timeout,
    )
    api_key = cfg.get("GOOGLE_API_KEY")

    sheets_module.sheets_gateway = SheetsGateway(
        spreadsheet_id=cfg.get("SPREADSHEET_ID"),
        sheet_name=cfg.get("SHEET_NAME", "Data"),
        cell_range=cfg.get("SHEET_RANGE", "A:R"),
        api_key=api_key,
        token_provider=tokens,
        timeout=timeout,
    )
    drive_module.drive_gateway = DriveGateway(
        api_key=api_key,
        token_provider=tokens,
        timeout=timeout,
    )
    logger.info(
        "Google gateways configured: spreadsheet=%s oauth=%s api_key=%s",
        cfg.get("SPREADSHEET_ID") or "-", tokens.configured, bool(api_key),
    )


def _sheets() -> SheetsGateway:
    return sheets_module.sheets_gateway


def _drive() -> DriveGateway:
    return drive_module.drive_gateway


# ═════════════════════════════════════════════════════════════════════════════
# Read path
# ═════════════════════════════════════════════════════════════════════════════


def load_records(now: datetime | None = None) -> list[QMSRecord]:
    """Build a fresh snapshot of every catalog record.

    Raises:
        SourceUnavailableError: the sheet could not be read. Drive failures
            are per folder and fall back to the sheet's own count.
    """
    rows = _sheets().fetch_rows()
    links = [t.folder_link for t in parse_templates(rows) if has_folder(t.folder_link)]
    files_by_folder = _drive().batch_list_files(links) if links else {}
    records = merge_snapshot(rows, files_by_folder, now=now)
    logger.info("Loaded %d records (%d folders listed)", len(records), len(files_by_folder))
    return records


def list_records(module: str | None = None, now: datetime | None = None) -> list[QMSRecord]:
    """Snapshot, optionally restricted to one module id (e.g. "operations")."""
    records = load_records(now=now)
    if not module:
        return records
    wanted = module.strip().lower()
    return [r for r in records if _module_id(r) == wanted]


def _module_id(record: QMSRecord) -> str | None:
    module = taxonomy.normalize_category(record.category)
    return module.id if module else None


def get_record(code: str, now: datetime | None = None) -> QMSRecord:
    """Return one record by its form code.

    Raises:
        NotFoundError: no catalog row carries ``code``.
    """
    wanted = (code or "").strip()
    for record in load_records(now=now):
        if record.code.strip() == wanted:
            return record
    raise NotFoundError(resource="Record", resource_id=code)


def record_summary(record: QMSRecord, now: datetime | None = None) -> dict:
    """Compact record dict (no file list) plus a human-readable age."""
    out = record.to_dict(include_files=False)
    out["module"] = _module_id(record)
    out["moduleName"] = taxonomy.module_for_category(record.category)
    out["timeAgo"] = aggregator.format_time_ago(record.last_file_date, now=now)
    return out


def dashboard(now: datetime | None = None, recent_limit: int = 5) -> dict:
    """Every read model of the dashboard, computed from one snapshot."""
    now = now or utc_now()
    records = load_records(now=now)
    stats = aggregator.module_stats(records)
    actions = aggregator.pending_actions(records)
    return {
        "totalRecords": len(records),
        "moduleStats": [s.to_dict() for s in stats],
        "moduleReadiness": aggregator.module_readiness(stats),
        "auditSummary": aggregator.audit_summary(records).to_dict(),
        "reviewSummary": aggregator.review_summary(records).to_dict(),
        "monthlyComparison": aggregator.monthly_comparison(records, now=now).to_dict(),
        "recentActivity": [
            record_summary(r, now) for r in aggregator.recent_activity(records, recent_limit)
        ],
        "pendingActions": {
            "overdue": [record_summary(r, now) for r in actions["overdue"]],
            "upcoming": [record_summary(r, now) for r in actions["upcoming"]],
        },
    }


def record_history(code: str) -> list[dict]:
    """Audit rows for a record and its files, oldest first."""
    return history_for_record(code)


# ═════════════════════════════════════════════════════════════════════════════
# Write path
# ═════════════════════════════════════════════════════════════════════════════


def _write_review_blob(record: QMSRecord, review_map: ReviewMap) -> None:
    """Write the whole review map to the record's blob cell.

    Raises:
        WriteFailureError: the sheet rejected the write.
    """
    _sheets().update_cell(
        record.row_index,
        COLUMNS["review_blob"],
        review_state.encode_review_blob(review_map),
    )


def update_file_review(
    code: str,
    file_id: str,
    status,
    comment: str | None = None,
    actor: str | None = None,
    now: datetime | None = None,
) -> dict:
    """Review one file of a record and run the approval cascade.

    Returns:
        {"record": QMSRecord, "cascaded": bool}

    Raises:
        NotFoundError: unknown record code or file id.
        InvalidStatusError: status outside pending_review/approved/rejected.
        WriteFailureError: the sheet rejected the write; nothing is audited.
    """
    actor = actor or status_mutator.DEFAULT_ACTOR
    record = get_record(code, now=now)
    before = record.file_reviews.get(file_id)

    outcome = status_mutator.apply_file_review(record, file_id, status, comment, actor)
    _write_review_blob(record, outcome.review_map)

    after = outcome.review_map.get(file_id)
    write_audit(
        entity_type="file",
        entity_id=file_id,
        record_code=record.code,
        row_index=record.row_index,
        action="file.review",
        actor=actor,
        diff={
            "status": {"old": before.status.value, "new": after.status.value},
            "comment": {"old": before.comment, "new": after.comment},
        },
    )
    if outcome.cascaded:
        write_audit(
            entity_type="record",
            entity_id=record.code,
            record_code=record.code,
            row_index=record.row_index,
            action="record.auto_approve",
            actor=actor,
            diff={"auditStatus": {
                "old": record.audit_status.value,
                "new": outcome.record.audit_status.value,
            }},
        )
    db.session.commit()

    logger.info(
        "File %s of %s set to %s by %s%s",
        file_id, record.code, after.status.value, actor,
        " (record auto-approved)" if outcome.cascaded else "",
    )
    return {"record": outcome.record, "cascaded": outcome.cascaded}


def update_record_status(
    code: str,
    status,
    actor: str | None = None,
    now: datetime | None = None,
) -> QMSRecord:
    """Set the record-level status directly. File reviews are unchanged.

    Raises:
        NotFoundError, InvalidStatusError, WriteFailureError
    """
    actor = actor or status_mutator.DEFAULT_ACTOR
    record = get_record(code, now=now)
    updated = status_mutator.set_record_status(record, status, actor)
    _write_review_blob(record, updated.file_reviews)

    write_audit(
        entity_type="record",
        entity_id=record.code,
        record_code=record.code,
        row_index=record.row_index,
        action="record.set_status",
        actor=actor,
        diff={"auditStatus": {"old": record.audit_status.value, "new": updated.audit_status.value}},
    )
    db.session.commit()
    logger.info("Record %s set to %s by %s", record.code, updated.audit_status.value, actor)
    return updated


def update_reviewed(
    code: str,
    checked: bool,
    actor: str | None = None,
    today: date | None = None,
    now: datetime | None = None,
) -> QMSRecord:
    """Tick or untick the record's manual "reviewed" box.

    Writes the reviewed, reviewed-by and review-date cells in that order.
    A failure after the first cell leaves the earlier cells written; the
    cells already written are logged before the error propagates.

    Raises:
        NotFoundError, WriteFailureError
    """
    actor = actor or status_mutator.DEFAULT_ACTOR
    record = get_record(code, now=now)
    cells = status_mutator.set_reviewed(checked, actor, today=today)
    written = []
    for cell in cells:
        try:
            _sheets().update_cell(record.row_index, cell.column, cell.value)
        except WriteFailureError:
            if written:
                logger.error(
                    "Partial write on %s row %d: %s already written, %s failed",
                    record.code, record.row_index,
                    ", ".join(f"{c}{record.row_index}" for c in written),
                    f"{cell.column}{record.row_index}",
                    extra={"record_code": record.code, "actor": actor, "source": "sheets"},
                )
            raise
        written.append(cell.column)

    values = {cell.column: cell.value for cell in cells}
    updated = replace(
        record,
        reviewed=bool(checked),
        reviewed_by=values[COLUMNS["reviewed_by"]],
        review_date=values[COLUMNS["review_date"]],
    )
    write_audit(
        entity_type="record",
        entity_id=record.code,
        record_code=record.code,
        row_index=record.row_index,
        action="record.set_reviewed",
        actor=actor,
        diff={"reviewed": {"old": record.reviewed, "new": updated.reviewed}},
    )
    db.session.commit()
    return updated


def update_reviewer_name(
    code: str,
    name: str,
    actor: str | None = None,
    now: datetime | None = None,
) -> QMSRecord:
    """Overwrite the reviewed-by cell.

    Raises:
        NotFoundError, WriteFailureError
    """
    record = get_record(code, now=now)
    for cell in status_mutator.set_reviewer_name(name):
        _sheets().update_cell(record.row_index, cell.column, cell.value)

    updated = replace(record, reviewed_by=name or "")
    write_audit(
        entity_type="record",
        entity_id=record.code,
        record_code=record.code,
        row_index=record.row_index,
        action="record.set_reviewer",
        actor=actor or status_mutator.DEFAULT_ACTOR,
        diff={"reviewedBy": {"old": record.reviewed_by, "new": updated.reviewed_by}},
    )
    db.session.commit()
    return updated
