"""
Compliance Aggregator — module and system-level read models.

Pure folds over a snapshot of merged records; nothing here is stored.

Compliance rate = approved / (approved + pending) over all files. Rejected
files count toward neither side of the ratio.

Usage:
    from qms_tracker.services import aggregator

    stats = aggregator.module_stats(records)
    summary = aggregator.audit_summary(records)
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Sequence
from datetime import datetime, timedelta

from qms_tracker.models.qms import (
    AuditSummary,
    ModuleStats,
    MonthlyComparison,
    QMSRecord,
    ReviewSummary,
)
from qms_tracker.services import review_state, taxonomy
from qms_tracker.utils.helpers import parse_timestamp, utc_now

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════════════
# Helpers
# ═════════════════════════════════════════════════════════════════════════════

def _round_half_up(value: float) -> int:
    """Round halves toward +inf (12.5 -> 13, -87.5 -> -87)."""
    return math.floor(value + 0.5)


def _safe_pct(numerator: int, denominator: int) -> int:
    """Zero-safe whole-number percentage."""
    return _round_half_up(numerator / denominator * 100) if denominator else 0


def _file_buckets(record: QMSRecord) -> Iterable[tuple]:
    """Yield ``(file, review, bucket)`` for each listed file of a record."""
    for f in record.files:
        review = record.file_reviews.get(f.id)
        yield f, review, review_state.classify(review)


def _tally_files(records: Iterable[QMSRecord]) -> tuple[int, int]:
    """Return (approved, pending) file counts. Rejected files are skipped."""
    approved = pending = 0
    for record in records:
        for _f, _review, bucket in _file_buckets(record):
            if bucket == review_state.APPROVED:
                approved += 1
            elif bucket == review_state.PENDING:
                pending += 1
    return approved, pending


def is_issue(record: QMSRecord) -> bool:
    return taxonomy.normalize_audit_status(record.audit_status) == taxonomy.ISSUE


# ═════════════════════════════════════════════════════════════════════════════
# Module & system summaries
# ═════════════════════════════════════════════════════════════════════════════

def module_stats(records: Sequence[QMSRecord]) -> list[ModuleStats]:
    """Per-module counts, in module display order.

    Records whose category maps to no module are left out.
    """
    by_module: dict[str, ModuleStats] = {}
    for record in records:
        module = taxonomy.normalize_category(record.category)
        if module is None:
            continue
        stats = by_module.get(module.id)
        if stats is None:
            stats = by_module[module.id] = ModuleStats(id=module.id, name=module.name)

        stats.forms_count += 1
        stats.records_count += len(record.files)
        stats.pending_count += sum(
            1 for _f, _r, bucket in _file_buckets(record)
            if bucket == review_state.PENDING
        )
        if is_issue(record):
            stats.issues_count += 1

    return sorted(by_module.values(), key=lambda s: taxonomy.module_order(s.id))


def audit_summary(records: Sequence[QMSRecord]) -> AuditSummary:
    approved, pending = _tally_files(records)
    issues = sum(1 for r in records if is_issue(r))
    return AuditSummary(
        total=len(records),
        compliant=approved,
        pending=pending,
        issues=issues,
        compliance_rate=_safe_pct(approved, approved + pending),
    )


def review_summary(records: Sequence[QMSRecord]) -> ReviewSummary:
    approved, pending = _tally_files(records)
    return ReviewSummary(completed=approved, pending=pending, total=len(records))


def monthly_comparison(
    records: Sequence[QMSRecord],
    now: datetime | None = None,
) -> MonthlyComparison:
    """Records active in the last 30 days vs. 31–60 days ago (UTC).

    Records without a parseable last file date are ignored.
    """
    now = parse_timestamp(now) if now is not None else utc_now()
    thirty_days_ago = now - timedelta(days=30)
    sixty_days_ago = now - timedelta(days=60)

    current = previous = 0
    for record in records:
        last = parse_timestamp(record.last_file_date)
        if last is None:
            continue
        if last >= thirty_days_ago:
            current += 1
        elif last >= sixty_days_ago:
            previous += 1

    if previous > 0:
        change = _round_half_up((current - previous) / previous * 100)
    else:
        change = 100 if current > 0 else 0

    return MonthlyComparison(
        current_month=current,
        previous_month=previous,
        percentage_change=abs(change),
        is_positive=change >= 0,
    )


def recent_activity(records: Sequence[QMSRecord], limit: int = 5) -> list[QMSRecord]:
    """Most recently active records first; undated records sort last."""
    # sorted() is stable, so equal keys keep snapshot order.
    def _key(record: QMSRecord):
        last = parse_timestamp(record.last_file_date)
        return (0, -last.timestamp()) if last else (1, 0.0)

    ranked = sorted(records, key=_key)
    return ranked[:max(limit, 0)]


# ═════════════════════════════════════════════════════════════════════════════
# Review queue, readiness, pending actions
# ═════════════════════════════════════════════════════════════════════════════

def review_queue(records: Sequence[QMSRecord]) -> dict:
    """Every listed file as an audit item, bucketed by its review status.

    Returns:
        {"pending": [...], "compliant": [...], "issues": [...],
         "stats": {"pending": N, "compliant": N, "issues": N}}
    """
    buckets: dict[str, list[dict]] = {"pending": [], "compliant": [], "issues": []}
    target = {
        review_state.APPROVED: "compliant",
        review_state.REJECTED: "issues",
        review_state.PENDING: "pending",
    }
    for record in records:
        for f, review, bucket in _file_buckets(record):
            buckets[target[bucket]].append({
                "code": record.code,
                "recordName": record.name,
                "category": record.category,
                "rowIndex": record.row_index,
                "fileId": f.id,
                "fileName": f.name,
                "fileLink": f.view_link,
                "createdTime": f.created_time,
                "fileStatus": review.status.value,
                "fileComment": review.comment,
                "fileReviewedBy": review.reviewed_by or record.reviewed_by or "",
            })
    return {
        **buckets,
        "stats": {name: len(items) for name, items in buckets.items()},
    }


def module_readiness(stats: Sequence[ModuleStats]) -> list[dict]:
    """Readiness status and progress percentage for each module."""
    out = []
    for s in stats:
        if s.issues_count > 0:
            status = "attention"
        elif s.pending_count > 0:
            status = "pending"
        else:
            status = "compliant"

        if s.forms_count == 0 or s.records_count == 0:
            progress = 0
        else:
            ready = max(0, s.forms_count - s.issues_count - s.pending_count)
            progress = _safe_pct(ready, s.forms_count)

        out.append({**s.to_dict(), "status": status, "progress": progress})
    return out


def pending_actions(records: Sequence[QMSRecord], upcoming_days: int = 5) -> dict:
    """Overdue records, and records due within ``upcoming_days``."""
    overdue = [r for r in records if r.is_overdue]
    upcoming = [
        r for r in records
        if not r.is_overdue
        and r.days_until_next_fill is not None
        and 0 < r.days_until_next_fill <= upcoming_days
    ]
    return {"overdue": overdue, "upcoming": upcoming}


def format_time_ago(date_str, now: datetime | None = None) -> str:
    """Human-readable age of a date, "Unknown" when unparseable."""
    then = parse_timestamp(date_str)
    if then is None:
        return "Unknown"
    now = parse_timestamp(now) if now is not None else utc_now()
    days = (now - then) // timedelta(days=1)

    if days == 0:
        return "Today"
    if days == 1:
        return "Yesterday"
    if days < 7:
        return f"{days} days ago"
    if days < 30:
        return f"{days // 7} weeks ago"
    if days < 365:
        return f"{days // 30} months ago"
    return f"{days // 365} years ago"
