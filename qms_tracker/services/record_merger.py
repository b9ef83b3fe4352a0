"""
Record Merger

Combines a catalog row of the sheet with the Drive listing of its folder into
one ``QMSRecord``: file list, typed review map, record count, newest file
date, record-level status and fill schedule.

Column layout of the "Data" sheet (A..R, header on row 1):

    A category        B code            C record name     D description
    E when to fill    F template link   G folder link     H last serial
    I last file date  J days ago        K next serial     L audit status
    M notes           N reviewed by     O review date     P review JSON
    Q (unused)        R reviewed (TRUE/FALSE)

Usage:
    from qms_tracker.services.record_merger import merge_snapshot

    records = merge_snapshot(rows, files_by_folder)
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping, Sequence
from datetime import datetime

from qms_tracker.models.qms import (
    NO_FILES_SENTINEL,
    AuditStatus,
    FileArtifact,
    FormTemplate,
    QMSRecord,
    ReviewMap,
    ReviewStatus,
)
from qms_tracker.services.review_state import decode_review_blob
from qms_tracker.services.schedule import compute_schedule
from qms_tracker.utils.helpers import parse_timestamp

logger = logging.getLogger(__name__)

# Sheet column letters used for write-back.
COLUMNS = {
    "category": "A",
    "code": "B",
    "name": "C",
    "description": "D",
    "frequency": "E",
    "template_link": "F",
    "folder_link": "G",
    "last_serial": "H",
    "last_file_date": "I",
    "days_ago": "J",
    "next_serial": "K",
    "audit_status": "L",
    "notes": "M",
    "reviewed_by": "N",
    "review_date": "O",
    "review_blob": "P",
    "reviewed": "R",
}

_COLUMN_INDEX = {key: ord(letter) - ord("A") for key, letter in COLUMNS.items()}

_CODE_PATTERN = re.compile(r"^[A-Z]+/\d+", re.IGNORECASE)
_NUMERIC_CODE = re.compile(r"^\d+$")
_FILE_COUNT_PATTERN = re.compile(r"\((\d+)\s+files?\)", re.IGNORECASE)
_SKIP_MARKERS = ("No Code", "⚪", "📂", "Folder")


def _cell(row: Sequence, key: str) -> str:
    idx = _COLUMN_INDEX[key]
    if idx >= len(row) or row[idx] is None:
        return ""
    return str(row[idx])


def is_valid_code(code: str | None) -> bool:
    """True for catalog codes like ``F/12`` or ``7``; False for headers and blanks."""
    code = (code or "").strip()
    if not code:
        return False
    if any(marker in code for marker in _SKIP_MARKERS):
        return False
    return bool(_CODE_PATTERN.match(code) or _NUMERIC_CODE.match(code))


def has_folder(folder_link: str | None) -> bool:
    """False for empty links and the "No Files Yet" placeholder."""
    link = (folder_link or "").strip()
    return bool(link) and NO_FILES_SENTINEL not in link


def parse_sheet_count(audit_status_label: str, last_serial: str) -> int:
    """Record count already recorded in the sheet.

    "(N files)" in the audit-status cell gives N; otherwise a last serial
    other than the placeholder counts as one file.
    """
    match = _FILE_COUNT_PATTERN.search(audit_status_label or "")
    count = int(match.group(1)) if match else 0
    serial = (last_serial or "").strip()
    if count == 0 and serial and "no files" not in serial.lower():
        count = 1
    return count


def parse_template_row(row: Sequence, row_index: int) -> FormTemplate | None:
    """Build a ``FormTemplate`` from one sheet row; None for non-catalog rows.

    Args:
        row: Cell values of the row (may be shorter than A..R).
        row_index: 1-based sheet row number, used for write-back.
    """
    code = _cell(row, "code").strip()
    if not is_valid_code(code):
        if code:
            logger.debug("Skipping row %d: %r is not a form code", row_index, code)
        return None
    return FormTemplate(
        code=code,
        category=_cell(row, "category"),
        name=_cell(row, "name"),
        description=_cell(row, "description"),
        frequency_label=_cell(row, "frequency"),
        template_link=_cell(row, "template_link"),
        folder_link=_cell(row, "folder_link"),
        source_row_index=row_index,
        last_serial=_cell(row, "last_serial"),
        last_file_date=_cell(row, "last_file_date"),
        days_ago=_cell(row, "days_ago"),
        next_serial=_cell(row, "next_serial"),
        audit_status_label=_cell(row, "audit_status"),
        review_blob=_cell(row, "review_blob"),
        reviewed=_cell(row, "reviewed").strip().upper() == "TRUE",
        reviewed_by=_cell(row, "reviewed_by"),
        review_date=_cell(row, "review_date"),
    )


def record_audit_status(review_map: ReviewMap) -> AuditStatus:
    """Record-level status from the explicit record field; Pending by default."""
    if review_map.record_status == ReviewStatus.APPROVED:
        return AuditStatus.APPROVED
    if review_map.record_status == ReviewStatus.REJECTED:
        return AuditStatus.REJECTED
    return AuditStatus.PENDING


def newest_file(files: Sequence[FileArtifact]) -> FileArtifact | None:
    """File with the latest parseable ``created_time``; ties keep listing order."""
    best = None
    best_ts = None
    for f in files:
        ts = parse_timestamp(f.created_time)
        if ts is None:
            continue
        if best_ts is None or ts > best_ts:
            best, best_ts = f, ts
    return best


def merge(
    template: FormTemplate,
    files: Sequence[FileArtifact] | None,
    raw_review_blob=None,
    sheet_fallback_count: int | None = None,
    sheet_last_file_date: str | None = None,
    now: datetime | None = None,
) -> QMSRecord:
    """Merge one template with its folder listing.

    Args:
        template: Catalog row.
        files: Drive listing of ``template.folder_link``. ``None`` or empty
            means the listing is empty or was unavailable.
        raw_review_blob: Review cell (text or dict). Defaults to the
            template's own cell. Malformed content yields an empty map.
        sheet_fallback_count: Count to keep when there are no files.
            Defaults to the count parsed from the template's cells.
        sheet_last_file_date: Stored date used when there are no files.
            Defaults to the template's last-file-date cell.
        now: Reference time for the schedule.

    The result depends only on the arguments, so repeated calls with the
    same inputs produce equal records.
    """
    if raw_review_blob is None:
        raw_review_blob = template.review_blob
    if sheet_fallback_count is None:
        sheet_fallback_count = parse_sheet_count(template.audit_status_label, template.last_serial)
    if sheet_last_file_date is None:
        sheet_last_file_date = template.last_file_date

    file_list = list(files or [])
    review_map = decode_review_blob(raw_review_blob, record_code=template.code)

    if file_list:
        actual_count = len(file_list)
        newest = newest_file(file_list)
        last_file_date = newest.created_time if newest else (sheet_last_file_date or "")
    else:
        actual_count = max(int(sheet_fallback_count or 0), 0)
        last_file_date = sheet_last_file_date or ""

    schedule = compute_schedule(template.frequency_label, last_file_date, now=now)

    return QMSRecord(
        template=template,
        files=file_list,
        file_reviews=review_map,
        actual_record_count=actual_count,
        last_file_date=last_file_date,
        audit_status=record_audit_status(review_map),
        reviewed=template.reviewed,
        reviewed_by=template.reviewed_by,
        review_date=template.review_date,
        days_until_next_fill=schedule.days_until_next_fill,
        is_overdue=schedule.is_overdue,
    )


def parse_templates(rows: Sequence[Sequence]) -> list[FormTemplate]:
    """Parse all catalog rows, skipping the header row and non-catalog rows."""
    templates = []
    for offset, row in enumerate(rows[1:], start=2):
        template = parse_template_row(row or [], offset)
        if template is not None:
            templates.append(template)
    return templates


def merge_snapshot(
    rows: Sequence[Sequence],
    files_by_folder: Mapping[str, Sequence[FileArtifact]] | None = None,
    now: datetime | None = None,
) -> list[QMSRecord]:
    """Merge every catalog row with the listing of its folder.

    Folders missing from ``files_by_folder`` (not listed, or listing failed)
    keep the sheet's own count and date.
    """
    files_by_folder = files_by_folder or {}
    records = []
    for template in parse_templates(rows):
        files = files_by_folder.get(template.folder_link) if has_folder(template.folder_link) else None
        records.append(merge(template, files, now=now))
    logger.debug("Merged %d records from %d rows", len(records), max(len(rows) - 1, 0))
    return records
