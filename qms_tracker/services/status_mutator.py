"""
Status Mutator — review changes for one file or one whole record.

File-level transitions are unrestricted: any of pending_review, approved and
rejected may follow any other. After a file is approved the record is checked
by ``evaluate_cascade``; when every listed file is approved and the record is
not yet Approved, the record is promoted to Approved under the same actor.
Promotion is one-way: un-approving a file never demotes the record.

Every function here is pure. The caller writes the result back to the sheet
and only then treats it as committed.

Usage:
    from qms_tracker.services.status_mutator import apply_file_review

    outcome = apply_file_review(record, file_id, "approved", "", "Dana", "2024-03-01")
    outcome.cascaded       # True when the record was auto-approved
    outcome.record         # updated copy; the input record is untouched
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import date

from qms_tracker.core.exceptions import InvalidStatusError, NotFoundError
from qms_tracker.models.qms import AuditStatus, QMSRecord, ReviewMap, ReviewStatus
from qms_tracker.services import review_state
from qms_tracker.services.record_merger import COLUMNS, record_audit_status
from qms_tracker.utils.helpers import utc_now

logger = logging.getLogger(__name__)

DEFAULT_ACTOR = "User"

_RECORD_STATUS_ALIASES = {
    "approved": ReviewStatus.APPROVED,
    "rejected": ReviewStatus.REJECTED,
    "pending": ReviewStatus.PENDING_REVIEW,
    "pending_review": ReviewStatus.PENDING_REVIEW,
}


@dataclass(frozen=True)
class CellUpdate:
    """One sheet cell to write: column letter + string value."""
    column: str
    value: str


@dataclass(frozen=True)
class FileReviewOutcome:
    record: QMSRecord
    review_map: ReviewMap
    cascaded: bool


# ── File level ────────────────────────────────────────────────────────────


def set_file_review(
    review_map: ReviewMap,
    file_id: str,
    status,
    comment: str | None = None,
    reviewer_name: str | None = None,
    review_date: str | None = None,
) -> ReviewMap:
    """Return a new map with the review of ``file_id`` changed.

    Raises:
        InvalidStatusError: status outside pending_review/approved/rejected.
    """
    updated = review_state.set_review(
        review_map.reviews.get(file_id),
        status,
        comment=comment,
        reviewer_name=reviewer_name,
        review_date=review_date,
    )
    return review_map.with_review(file_id, updated)


def all_files_approved(record: QMSRecord, review_map: ReviewMap | None = None) -> bool:
    """True when the record has listed files and every one is approved."""
    reviews = review_map if review_map is not None else record.file_reviews
    if not record.files:
        return False
    return all(
        review_state.classify(reviews.get(f.id)) == review_state.APPROVED
        for f in record.files
    )


def evaluate_cascade(record: QMSRecord, review_map: ReviewMap | None = None) -> bool:
    """Decide whether the record must be promoted to Approved.

    ``review_map`` is the post-change map; defaults to the record's own.
    """
    if record.audit_status == AuditStatus.APPROVED:
        return False
    return all_files_approved(record, review_map)


def apply_file_review(
    record: QMSRecord,
    file_id: str,
    status,
    comment: str | None,
    actor: str | None,
    review_date: str | None = None,
) -> FileReviewOutcome:
    """Change one file's review, then run the approval cascade.

    Raises:
        NotFoundError: ``file_id`` is not among the record's listed files.
        InvalidStatusError: status outside the assignable set.
    """
    if not any(f.id == file_id for f in record.files):
        raise NotFoundError(resource="File", resource_id=file_id)

    actor = actor or DEFAULT_ACTOR
    review_date = review_date or utc_now().date().isoformat()
    new_map = set_file_review(
        record.file_reviews, file_id, status,
        comment=comment, reviewer_name=actor, review_date=review_date,
    )

    cascaded = False
    if review_state.classify(new_map.get(file_id)) == review_state.APPROVED:
        cascaded = evaluate_cascade(record, new_map)
    if cascaded:
        new_map = new_map.with_record_status(ReviewStatus.APPROVED, actor, review_date)
        logger.info("Record %s auto-approved: all %d files approved (by %s)",
                    record.code, len(record.files), actor)

    updated = replace(
        record,
        file_reviews=new_map,
        audit_status=record_audit_status(new_map),
    )
    return FileReviewOutcome(record=updated, review_map=new_map, cascaded=cascaded)


# ── Record level ──────────────────────────────────────────────────────────


def coerce_record_status(status) -> ReviewStatus:
    """Accept Approved/Rejected/Pending (any case) or the file-level values.

    Raises:
        InvalidStatusError: anything else.
    """
    if isinstance(status, AuditStatus):
        status = status.value
    if isinstance(status, ReviewStatus):
        status = status.value
    key = str(status or "").strip().lower()
    if key not in _RECORD_STATUS_ALIASES:
        raise InvalidStatusError(status, allowed=[s.value for s in AuditStatus])
    return _RECORD_STATUS_ALIASES[key]


def set_record_status(
    record: QMSRecord,
    status,
    actor: str | None,
    on: str | None = None,
) -> QMSRecord:
    """Set the record-level status directly. File reviews are not touched."""
    new_status = coerce_record_status(status)
    new_map = record.file_reviews.with_record_status(
        new_status, actor or DEFAULT_ACTOR, on or utc_now().date().isoformat(),
    )
    return replace(record, file_reviews=new_map, audit_status=record_audit_status(new_map))


# ── Manual review columns ─────────────────────────────────────────────────


def set_reviewed(
    checked: bool,
    actor: str | None,
    today: date | None = None,
) -> list[CellUpdate]:
    """Cells for ticking / unticking a record's "reviewed" box.

    The review date is the UTC calendar day unless ``today`` is given.
    """
    today = today or utc_now().date()
    return [
        CellUpdate(COLUMNS["reviewed"], "TRUE" if checked else "FALSE"),
        CellUpdate(COLUMNS["reviewed_by"], (actor or DEFAULT_ACTOR) if checked else ""),
        CellUpdate(COLUMNS["review_date"], today.isoformat() if checked else ""),
    ]


def set_reviewer_name(name: str) -> list[CellUpdate]:
    return [CellUpdate(COLUMNS["reviewed_by"], name or "")]
