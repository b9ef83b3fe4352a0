"""
Tests for the QMS service: snapshot loading and audited write-back.

The Google gateways are replaced by the in-memory fakes from conftest.

Covers:
    - load_records(): Drive listing per folder, fallback when a folder fails
    - update_file_review(): one blob write, cascade, audit rows
    - Failed writes raise and leave no audit row
    - Record-level status, reviewed box, reviewer name
    - dashboard() shape
"""

import json
from datetime import date, datetime, timezone

import pytest

from qms_tracker.core.exceptions import (
    InvalidStatusError,
    NotFoundError,
    SourceUnavailableError,
    WriteFailureError,
)
from qms_tracker.models.audit import ReviewAuditLog
from qms_tracker.models.qms import AuditStatus, ReviewStatus
from qms_tracker.services import qms_service as svc

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)
FOLDER_OPS = "https://drive.google.com/drive/folders/opsFolder001"
FOLDER_HR = "https://drive.google.com/drive/folders/hrFolder0001"


@pytest.fixture()
def sources(fake_sheets, fake_drive, sheet_row, drive_file):
    """Two operations forms and one HR form; OP/1 has three files."""
    fake_sheets.rows.extend([
        sheet_row("OP/1", "02-Operations", "Calibration log", "Monthly", FOLDER_OPS,
                  reviews=json.dumps({"a": {"status": "approved"}, "b": {"status": "approved"}})),
        sheet_row("OP/2", "02-Operations", "Maintenance plan", "As needed", "No Files Yet",
                  audit_status="(2 files)", last_serial="OP/2-002"),
        sheet_row("HR/1", "05-HR", "Training matrix", "Annually", FOLDER_HR,
                  audit_status="(4 files)", last_date="2024-01-10"),
    ])
    fake_drive.folders[FOLDER_OPS] = [
        drive_file("a", "2024-06-01T08:00:00Z"),
        drive_file("b", "2024-06-05T08:00:00Z"),
        drive_file("c", "2024-06-10T08:00:00Z"),
    ]
    return fake_sheets, fake_drive


def _audit_actions():
    return [row.action for row in ReviewAuditLog.query.order_by(ReviewAuditLog.id).all()]


class TestLoad:
    def test_snapshot(self, sources):
        records = {r.code: r for r in svc.load_records(now=NOW)}
        assert set(records) == {"OP/1", "OP/2", "HR/1"}
        assert records["OP/1"].actual_record_count == 3
        assert records["OP/1"].last_file_date == "2024-06-10T08:00:00Z"
        assert records["OP/2"].actual_record_count == 2
        assert records["HR/1"].actual_record_count == 4  # empty listing keeps the sheet count

    def test_only_real_folders_are_listed(self, sources):
        _, drive = sources
        svc.load_records(now=NOW)
        assert drive.calls == [[FOLDER_OPS, FOLDER_HR]]

    def test_failed_folder_keeps_sheet_count(self, sources, drive_file):
        _, drive = sources
        drive.folders[FOLDER_HR] = [drive_file("h1", "2024-06-01T08:00:00Z")]
        assert svc.get_record("HR/1", now=NOW).actual_record_count == 1

        drive.failing.add(FOLDER_HR)
        record = svc.get_record("HR/1", now=NOW)
        assert record.actual_record_count == 4
        assert record.last_file_date == "2024-01-10"

    def test_sheet_failure_propagates(self, sources):
        sheets, _ = sources
        sheets.fail_reads = True
        with pytest.raises(SourceUnavailableError):
            svc.load_records()

    def test_list_by_module(self, sources):
        assert [r.code for r in svc.list_records("hr", now=NOW)] == ["HR/1"]
        assert len(svc.list_records(None, now=NOW)) == 3

    def test_unknown_code(self, sources):
        with pytest.raises(NotFoundError):
            svc.get_record("ZZ/9")


class TestFileReview:
    def test_last_approval_cascades_and_is_audited(self, sources):
        sheets, _ = sources
        result = svc.update_file_review("OP/1", "c", "approved", "ok", "Dana", now=NOW)

        assert result["cascaded"] is True
        assert result["record"].audit_status == AuditStatus.APPROVED

        # single write of the whole map to column P of row 2
        assert len(sheets.writes) == 1
        row_index, column, value = sheets.writes[0]
        assert (row_index, column) == (2, "P")
        stored = json.loads(value)
        assert stored["c"]["status"] == "approved"
        assert stored["c"]["reviewedBy"] == "Dana"
        assert stored["recordStatus"] == "approved"

        assert _audit_actions() == ["file.review", "record.auto_approve"]
        log = ReviewAuditLog.query.filter_by(action="file.review").one()
        assert log.actor == "Dana"
        assert log.diff["status"] == {"old": "pending_review", "new": "approved"}

    def test_reread_reflects_the_write(self, sources):
        svc.update_file_review("OP/1", "c", "approved", None, "Dana", now=NOW)
        record = svc.get_record("OP/1", now=NOW)
        assert record.audit_status == AuditStatus.APPROVED
        assert record.file_reviews.get("c").status == ReviewStatus.APPROVED

    def test_rejection_does_not_cascade(self, sources):
        result = svc.update_file_review("OP/1", "c", "rejected", "unsigned", None, now=NOW)
        assert result["cascaded"] is False
        assert _audit_actions() == ["file.review"]
        assert ReviewAuditLog.query.one().actor == "User"

    def test_write_failure_is_not_audited(self, sources):
        sheets, _ = sources
        sheets.fail_writes_with = "Protected range"
        with pytest.raises(WriteFailureError) as exc:
            svc.update_file_review("OP/1", "c", "approved", None, "Dana", now=NOW)
        assert "Protected range" in str(exc.value)
        assert ReviewAuditLog.query.count() == 0

    def test_invalid_status_writes_nothing(self, sources):
        sheets, _ = sources
        with pytest.raises(InvalidStatusError):
            svc.update_file_review("OP/1", "c", "archived", None, "Dana", now=NOW)
        assert sheets.writes == []

    def test_unknown_file(self, sources):
        with pytest.raises(NotFoundError):
            svc.update_file_review("OP/1", "zzz", "approved", None, "Dana", now=NOW)


class TestRecordLevel:
    def test_set_status(self, sources):
        sheets, _ = sources
        record = svc.update_record_status("HR/1", "Rejected", "Lee", now=NOW)
        assert record.audit_status == AuditStatus.REJECTED
        row_index, column, value = sheets.writes[0]
        assert (row_index, column) == (4, "P")
        assert json.loads(value)["recordStatus"] == "rejected"
        assert _audit_actions() == ["record.set_status"]

    def test_set_reviewed(self, sources):
        sheets, _ = sources
        record = svc.update_reviewed("OP/2", True, "Lee", today=date(2024, 6, 15), now=NOW)
        assert record.reviewed is True
        assert record.reviewed_by == "Lee"
        assert sheets.writes == [(3, "R", "TRUE"), (3, "N", "Lee"), (3, "O", "2024-06-15")]
        assert _audit_actions() == ["record.set_reviewed"]

    def test_partial_reviewed_write_is_logged(self, sources, monkeypatch, caplog):
        sheets, _ = sources
        original = sheets.update_cell

        def reject_reviewer_cell(row_index, column, value):
            if column == "N":
                raise WriteFailureError("Protected range", row_index=row_index, column=column)
            return original(row_index, column, value)

        monkeypatch.setattr(sheets, "update_cell", reject_reviewer_cell)
        with caplog.at_level("ERROR", logger="qms_tracker.services.qms_service"):
            with pytest.raises(WriteFailureError):
                svc.update_reviewed("OP/2", True, "Lee", today=date(2024, 6, 15), now=NOW)

        assert sheets.writes == [(3, "R", "TRUE")]
        assert ReviewAuditLog.query.count() == 0
        assert "R3 already written, N3 failed" in caplog.text

    def test_first_reviewed_write_failure_is_not_partial(self, sources, caplog):
        sheets, _ = sources
        sheets.fail_writes_with = "Protected range"
        with pytest.raises(WriteFailureError):
            svc.update_reviewed("OP/2", True, "Lee", now=NOW)
        assert "Partial write" not in caplog.text

    def test_set_reviewer_name(self, sources):
        sheets, _ = sources
        record = svc.update_reviewer_name("OP/2", "Kim", actor="Lee", now=NOW)
        assert record.reviewed_by == "Kim"
        assert sheets.writes == [(3, "N", "Kim")]
        assert svc.record_history("OP/2")[0]["actor"] == "Lee"


class TestDashboard:
    def test_shape(self, sources):
        data = svc.dashboard(now=NOW, recent_limit=2)
        assert data["totalRecords"] == 3
        assert [m["id"] for m in data["moduleStats"]] == ["operations", "hr"]
        assert data["auditSummary"]["compliant"] == 2
        assert data["auditSummary"]["pending"] == 1
        assert data["auditSummary"]["complianceRate"] == 67
        assert len(data["recentActivity"]) == 2
        assert data["recentActivity"][0]["code"] == "OP/1"
        assert data["recentActivity"][0]["timeAgo"] == "5 days ago"
        assert data["pendingActions"]["overdue"] == []
