"""
API tests for /api/v1/records and the app-level error envelope.

Covers:
    - GET list / detail (codes with slashes), module filter
    - POST file review: cascade flag, actor attribution, validation
    - POST record status / reviewed / reviewer
    - Error mapping: 404, 422, 502, 503
"""

import json

import pytest

from qms_tracker.models.audit import ReviewAuditLog

FOLDER = "https://drive.google.com/drive/folders/qualityFolder1"


@pytest.fixture()
def sources(fake_sheets, fake_drive, sheet_row, drive_file):
    fake_sheets.rows.extend([
        sheet_row("QA/7", "03-Quality", "Internal audit checklist", "Quarterly", FOLDER,
                  reviews=json.dumps({"f1": {"status": "approved"}})),
        sheet_row("S/1", "01-Sales", "Customer complaint log", "As needed"),
    ])
    fake_drive.folders[FOLDER] = [
        drive_file("f1", "2024-06-01T08:00:00Z"),
        drive_file("f2", "2024-06-02T08:00:00Z"),
    ]
    return fake_sheets, fake_drive


class TestRead:
    def test_list(self, client, sources):
        res = client.get("/api/v1/records")
        assert res.status_code == 200
        body = res.get_json()
        assert body["total"] == 2
        assert {r["code"] for r in body["records"]} == {"QA/7", "S/1"}
        assert "files" not in body["records"][0]

    def test_list_by_module(self, client, sources):
        body = client.get("/api/v1/records?module=sales").get_json()
        assert [r["code"] for r in body["records"]] == ["S/1"]
        assert body["records"][0]["module"] == "sales"
        assert body["records"][0]["moduleName"] == "Sales & Customer Service"

    def test_detail_with_slash_in_code(self, client, sources):
        res = client.get("/api/v1/records/QA/7")
        assert res.status_code == 200
        body = res.get_json()
        assert body["recordName"] == "Internal audit checklist"
        assert [f["id"] for f in body["files"]] == ["f1", "f2"]
        assert body["fileReviews"]["f1"]["status"] == "approved"

    def test_unknown_record(self, client, sources):
        res = client.get("/api/v1/records/NOPE/1")
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"

    def test_sheet_unavailable(self, client, sources):
        sheets, _ = sources
        sheets.fail_reads = True
        res = client.get("/api/v1/records")
        assert res.status_code == 503
        body = res.get_json()
        assert body["code"] == "SOURCE_UNAVAILABLE"
        assert body["details"]["source"] == "sheets"


class TestFileReview:
    URL = "/api/v1/records/QA/7/files/f2/review"

    def test_approval_cascades(self, client, sources):
        res = client.post(self.URL, json={"status": "approved", "comment": "ok", "reviewer": "Dana"})
        assert res.status_code == 200
        body = res.get_json()
        assert body["cascaded"] is True
        assert body["record"]["auditStatus"] == "Approved"
        assert body["record"]["fileReviews"]["f2"]["reviewedBy"] == "Dana"

    def test_actor_from_header(self, client, sources):
        client.post(self.URL, json={"status": "rejected"}, headers={"X-Actor-Name": "Lee"})
        assert ReviewAuditLog.query.one().actor == "Lee"

    def test_actor_defaults_to_user(self, client, sources):
        client.post(self.URL, json={"status": "pending_review"})
        assert ReviewAuditLog.query.one().actor == "User"

    def test_missing_status(self, client, sources):
        res = client.post(self.URL, json={"comment": "x"})
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_REQUIRED"

    def test_missing_body(self, client, sources):
        res = client.post(self.URL, data="status=approved", content_type="text/plain")
        assert res.status_code == 400

    def test_invalid_status(self, client, sources):
        sheets, _ = sources
        res = client.post(self.URL, json={"status": "draft"})
        assert res.status_code == 422
        body = res.get_json()
        assert body["code"] == "ERR_INVALID_STATUS"
        assert "approved" in body["details"]["allowed"]
        assert sheets.writes == []

    def test_unknown_file(self, client, sources):
        res = client.post("/api/v1/records/QA/7/files/zzz/review", json={"status": "approved"})
        assert res.status_code == 404

    def test_write_rejected(self, client, sources):
        sheets, _ = sources
        sheets.fail_writes_with = "You are trying to edit a protected cell"
        res = client.post(self.URL, json={"status": "approved"})
        assert res.status_code == 502
        body = res.get_json()
        assert body["code"] == "SOURCE_WRITE_FAILED"
        assert body["error"] == "Google Sheets rejected the write: You are trying to edit a protected cell"
        assert ReviewAuditLog.query.count() == 0


class TestRecordLevel:
    def test_status(self, client, sources):
        res = client.post("/api/v1/records/S/1/status", json={"status": "Rejected", "reviewer": "Lee"})
        assert res.status_code == 200
        assert res.get_json()["record"]["auditStatus"] == "Rejected"

    def test_status_invalid(self, client, sources):
        res = client.post("/api/v1/records/S/1/status", json={"status": "Closed"})
        assert res.status_code == 422

    def test_reviewed(self, client, sources):
        sheets, _ = sources
        res = client.post("/api/v1/records/S/1/reviewed", json={"reviewed": True, "reviewer": "Kim"})
        assert res.status_code == 200
        record = res.get_json()["record"]
        assert record["reviewed"] is True
        assert record["reviewedBy"] == "Kim"
        assert sheets.cell(3, "R") == "TRUE"

    def test_reviewed_must_be_bool(self, client, sources):
        res = client.post("/api/v1/records/S/1/reviewed", json={"reviewed": "yes"})
        assert res.status_code == 400

    def test_reviewer(self, client, sources):
        res = client.post("/api/v1/records/S/1/reviewer", json={"name": "Kim"})
        assert res.status_code == 200
        assert res.get_json()["record"]["reviewedBy"] == "Kim"

    def test_history(self, client, sources):
        client.post("/api/v1/records/QA/7/files/f2/review", json={"status": "approved"})
        res = client.get("/api/v1/records/QA/7/history")
        assert res.status_code == 200
        actions = [h["action"] for h in res.get_json()["history"]]
        assert actions == ["file.review", "record.auto_approve"]


def test_health_endpoints(client):
    assert client.get("/api/v1/health").get_json()["status"] == "ok"
    assert client.get("/api/v1/health/ready").status_code == 200
    live = client.get("/api/v1/health/live")
    assert live.status_code == 200
    assert live.get_json()["checks"]["database"]["status"] == "ok"


def test_unknown_route(client):
    res = client.get("/api/v1/nothing-here")
    assert res.status_code == 404
    assert res.get_json()["error"] == "Not found"
