"""
Review State Model — per-file review status, its classification, and the
encoding of the review map stored in the sheet.

The sheet keeps every file review of a template, plus the record-level
status, as one JSON object in a single cell:

    {"<fileId>": {"status": "approved", "comment": "", "reviewedBy": "A",
                  "reviewDate": "2024-02-01"},
     "recordStatus": "approved", "recordStatusBy": "A",
     "recordStatusDate": "2024-02-01"}

Inside the tracker this is always a typed ``ReviewMap``; the JSON form only
exists at the sheet boundary (``decode_review_blob`` / ``encode_review_blob``).
"""

from __future__ import annotations

import json
import logging

from qms_tracker.core.exceptions import InvalidStatusError
from qms_tracker.models.qms import DEFAULT_REVIEW, ReviewMap, ReviewState, ReviewStatus

logger = logging.getLogger(__name__)

# classify() buckets
APPROVED = "approved"
REJECTED = "rejected"
PENDING = "pending"

# Statuses an actor may assign. DRAFT exists in the type but is never set here.
ASSIGNABLE_STATUSES: tuple[ReviewStatus, ...] = (
    ReviewStatus.PENDING_REVIEW,
    ReviewStatus.APPROVED,
    ReviewStatus.REJECTED,
)

_RECORD_STATUS_KEY = "recordStatus"
_RECORD_STATUS_BY_KEY = "recordStatusBy"
_RECORD_STATUS_DATE_KEY = "recordStatusDate"
_RECORD_KEYS = frozenset({_RECORD_STATUS_KEY, _RECORD_STATUS_BY_KEY, _RECORD_STATUS_DATE_KEY})


def classify(review: ReviewState | None) -> str:
    """Bucket a review by its status alone; missing review → pending."""
    if review is None:
        return PENDING
    if review.status == ReviewStatus.APPROVED:
        return APPROVED
    if review.status == ReviewStatus.REJECTED:
        return REJECTED
    return PENDING


def coerce_status(status) -> ReviewStatus:
    """Validate a status supplied by an actor.

    Accepts a ``ReviewStatus`` or its string value (case-insensitive).

    Raises:
        InvalidStatusError: status is not pending_review, approved or rejected.
    """
    allowed = [s.value for s in ASSIGNABLE_STATUSES]
    if isinstance(status, ReviewStatus):
        candidate = status
    else:
        try:
            candidate = ReviewStatus(str(status or "").strip().lower())
        except ValueError:
            raise InvalidStatusError(status, allowed=allowed) from None
    if candidate not in ASSIGNABLE_STATUSES:
        raise InvalidStatusError(status, allowed=allowed)
    return candidate


def set_review(
    previous: ReviewState | None,
    status,
    comment: str | None = None,
    reviewer_name: str | None = None,
    review_date: str | None = None,
) -> ReviewState:
    """Merge a review change into the previous state.

    Fields passed as None keep their previous values. The comment is stored
    as given, without validation.
    """
    new_status = coerce_status(status)
    base = previous or DEFAULT_REVIEW
    return ReviewState(
        status=new_status,
        comment=base.comment if comment is None else comment,
        reviewed_by=base.reviewed_by if reviewer_name is None else reviewer_name,
        review_date=base.review_date if review_date is None else review_date,
    )


# ── Sheet boundary ────────────────────────────────────────────────────────


def _stored_status(value) -> ReviewStatus:
    try:
        return ReviewStatus(str(value or "").strip().lower())
    except ValueError:
        return ReviewStatus.PENDING_REVIEW


def _optional_str(value) -> str | None:
    if value is None:
        return None
    return str(value)


def decode_review_blob(raw, *, record_code: str = "") -> ReviewMap:
    """Parse the review cell into a ``ReviewMap``.

    ``raw`` may be the cell text or an already-decoded dict. Malformed JSON,
    non-object payloads and non-object entries are logged and dropped; they
    never raise. Unknown stored statuses read as pending_review.
    """
    if raw is None or raw == "":
        return ReviewMap()

    payload = raw
    if isinstance(raw, (bytes, str)):
        text = raw.decode("utf-8", "replace") if isinstance(raw, bytes) else raw
        if not text.strip():
            return ReviewMap()
        try:
            payload = json.loads(text)
        except (json.JSONDecodeError, ValueError) as exc:
            logger.warning(
                "Ignoring malformed review blob for %s: %s (%r)",
                record_code or "<unknown>", exc, text[:80],
            )
            return ReviewMap()

    if not isinstance(payload, dict):
        logger.warning(
            "Ignoring review blob for %s: expected object, got %s",
            record_code or "<unknown>", type(payload).__name__,
        )
        return ReviewMap()

    reviews: dict[str, ReviewState] = {}
    for key, entry in payload.items():
        if key in _RECORD_KEYS:
            continue
        if not isinstance(entry, dict):
            logger.debug("Skipping non-object review entry %s for %s", key, record_code)
            continue
        reviews[str(key)] = ReviewState(
            status=_stored_status(entry.get("status")),
            comment=str(entry.get("comment") or ""),
            reviewed_by=_optional_str(entry.get("reviewedBy")),
            review_date=_optional_str(entry.get("reviewDate")),
        )

    record_status = None
    if payload.get(_RECORD_STATUS_KEY):
        record_status = _stored_status(payload[_RECORD_STATUS_KEY])

    return ReviewMap(
        reviews=reviews,
        record_status=record_status,
        record_status_by=_optional_str(payload.get(_RECORD_STATUS_BY_KEY)),
        record_status_date=_optional_str(payload.get(_RECORD_STATUS_DATE_KEY)),
    )


def encode_review_blob(review_map: ReviewMap) -> str:
    """Serialise a ``ReviewMap`` to the compact JSON stored in the sheet."""
    payload: dict = review_map.to_dict()
    if review_map.record_status is not None:
        payload[_RECORD_STATUS_KEY] = review_map.record_status.value
        if review_map.record_status_by is not None:
            payload[_RECORD_STATUS_BY_KEY] = review_map.record_status_by
        if review_map.record_status_date is not None:
            payload[_RECORD_STATUS_DATE_KEY] = review_map.record_status_date
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))
