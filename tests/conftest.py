"""
Shared pytest fixtures for the QMS Compliance Tracker test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - fake_sheets / fake_drive: in-memory stand-ins for the Google gateways,
      installed as the module-level singletons for the duration of a test
    - sheet_row / drive_file: factories for one A..R catalog row and one listed file
"""

import pytest

from qms_tracker import create_app
from qms_tracker.core.exceptions import SourceUnavailableError, WriteFailureError
from qms_tracker.integrations import drive_gateway as drive_module
from qms_tracker.integrations import sheets_gateway as sheets_module
from qms_tracker.models import db as _db
from qms_tracker.models.qms import FileArtifact
from qms_tracker.services.record_merger import COLUMNS

HEADER = [
    "Category", "Code", "Record Name", "Description", "When to Fill",
    "Template", "Folder", "Last Serial", "Last File Date", "Days Ago",
    "Next Serial", "Audit Status", "Notes", "Reviewed By", "Review Date",
    "Reviews", "", "Reviewed",
]


# ── Fake gateways ────────────────────────────────────────────────────────


class FakeSheets:
    """In-memory sheet. ``update_cell`` writes through to ``rows``."""

    def __init__(self, rows=None):
        self.rows = [list(HEADER)] + [list(r) for r in (rows or [])]
        self.writes = []
        self.fail_reads = False
        self.fail_writes_with = None

    def fetch_rows(self):
        if self.fail_reads:
            raise SourceUnavailableError("sheets", "The caller does not have permission", 403)
        return [list(r) for r in self.rows]

    def update_cell(self, row_index, column, value):
        if self.fail_writes_with:
            raise WriteFailureError(self.fail_writes_with, row_index=row_index, column=column)
        self.writes.append((row_index, column, value))
        row = self.rows[row_index - 1]
        idx = ord(column) - ord("A")
        if len(row) <= idx:
            row.extend([""] * (idx + 1 - len(row)))
        row[idx] = value
        return True

    def cell(self, row_index, column):
        row = self.rows[row_index - 1]
        idx = ord(column) - ord("A")
        return row[idx] if idx < len(row) else ""


class FakeDrive:
    """Folder link → list of FileArtifact. Links in ``failing`` are left out."""

    def __init__(self, folders=None):
        self.folders = dict(folders or {})
        self.failing = set()
        self.calls = []

    def batch_list_files(self, links):
        self.calls.append(list(links))
        return {
            link: list(self.folders.get(link, []))
            for link in links
            if link not in self.failing
        }


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Source fixtures ──────────────────────────────────────────────────────


@pytest.fixture()
def sheet_row():
    """Factory for one catalog row, as the Sheets API returns it (A..R)."""

    def _make(code, category="02-Operations", name="Record", frequency="Monthly",
              folder="", last_date="", audit_status="", reviews="", last_serial="",
              reviewed="FALSE", reviewed_by="", review_date=""):
        row = [""] * 18
        values = {
            "category": category,
            "code": code,
            "name": name,
            "frequency": frequency,
            "folder_link": folder,
            "last_serial": last_serial,
            "last_file_date": last_date,
            "audit_status": audit_status,
            "reviewed_by": reviewed_by,
            "review_date": review_date,
            "review_blob": reviews,
            "reviewed": reviewed,
        }
        for key, value in values.items():
            row[ord(COLUMNS[key]) - ord("A")] = value
        return row

    return _make


@pytest.fixture()
def drive_file():
    """Factory for one listed Drive file."""

    def _make(file_id, created_time="2024-01-01T09:00:00Z", name=None):
        return FileArtifact(
            id=file_id,
            name=name or f"{file_id}.pdf",
            view_link=f"https://drive.google.com/file/d/{file_id}/view",
            created_time=created_time,
            mime_type="application/pdf",
        )

    return _make


@pytest.fixture()
def fake_sheets(monkeypatch):
    fake = FakeSheets()
    monkeypatch.setattr(sheets_module, "sheets_gateway", fake)
    return fake


@pytest.fixture()
def fake_drive(monkeypatch):
    fake = FakeDrive()
    monkeypatch.setattr(drive_module, "drive_gateway", fake)
    return fake
