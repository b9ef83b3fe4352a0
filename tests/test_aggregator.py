"""
Tests for the compliance aggregator.

Covers:
    - module_stats(): bucketing by category, ordering, pending/issue counts
    - audit_summary() / review_summary(): compliance rate bounds, rejected files
    - monthly_comparison(), recent_activity()
    - review_queue(), module_readiness(), pending_actions(), format_time_ago()
"""

from datetime import datetime, timedelta, timezone

import pytest

from qms_tracker.models.qms import (
    AuditStatus,
    FileArtifact,
    FormTemplate,
    ModuleStats,
    QMSRecord,
    ReviewMap,
    ReviewState,
    ReviewStatus,
)
from qms_tracker.services import aggregator as agg

NOW = datetime(2024, 6, 30, 12, 0, tzinfo=timezone.utc)


def _make_record(code, category="02-Operations", statuses=(), audit_status=AuditStatus.PENDING,
                 last_file_date="", days_until=None, overdue=False):
    """Record with one file per entry of ``statuses`` (None → no review entry)."""
    files = [FileArtifact(id=f"{code}-{i}", name=f"{code}-{i}.pdf") for i in range(len(statuses))]
    reviews = {
        f.id: ReviewState(status=s)
        for f, s in zip(files, statuses)
        if s is not None
    }
    return QMSRecord(
        template=FormTemplate(code=code, category=category, name=f"Form {code}"),
        files=files,
        file_reviews=ReviewMap(reviews=reviews),
        actual_record_count=len(files),
        last_file_date=last_file_date,
        audit_status=audit_status,
        days_until_next_fill=days_until,
        is_overdue=overdue,
    )


A = ReviewStatus.APPROVED
R = ReviewStatus.REJECTED
P = ReviewStatus.PENDING_REVIEW


class TestModuleStats:
    def test_two_buckets_for_two_categories(self):
        records = [
            _make_record("OP/1", "02-Operations"),
            _make_record("OP/2", "02-Operations"),
            _make_record("HR/1", "05-HR"),
        ]
        stats = agg.module_stats(records)
        assert [(s.id, s.forms_count) for s in stats] == [("operations", 2), ("hr", 1)]

    def test_display_order_not_input_order(self):
        records = [_make_record("M/1", "07 Management"), _make_record("S/1", "01-Sales")]
        assert [s.id for s in agg.module_stats(records)] == ["sales", "management"]

    def test_unmapped_category_is_left_out(self):
        assert agg.module_stats([_make_record("X/1", "Miscellaneous")]) == []

    def test_counts(self):
        records = [
            _make_record("OP/1", statuses=(A, P, None, R)),
            _make_record("OP/2", statuses=(A,), audit_status=AuditStatus.REJECTED),
        ]
        (stats,) = agg.module_stats(records)
        assert stats.records_count == 5
        assert stats.pending_count == 2
        assert stats.issues_count == 1

    def test_empty_snapshot(self):
        assert agg.module_stats([]) == []


class TestSummaries:
    def test_audit_summary(self):
        records = [
            _make_record("OP/1", statuses=(A, A, P)),
            _make_record("OP/2", statuses=(R,), audit_status=AuditStatus.REJECTED),
        ]
        summary = agg.audit_summary(records)
        assert summary.total == 2
        assert summary.compliant == 2
        assert summary.pending == 1
        assert summary.issues == 1
        assert summary.compliance_rate == 67

    def test_rejected_files_are_outside_the_rate(self):
        records = [_make_record("OP/1", statuses=(A, R, R, R))]
        assert agg.audit_summary(records).compliance_rate == 100

    def test_rate_rounds_halves_up(self):
        records = [_make_record("OP/1", statuses=(A, P, P, P, P, P, P, P))]
        assert agg.audit_summary(records).compliance_rate == 13

    def test_no_files_means_zero_rate(self):
        assert agg.audit_summary([]).compliance_rate == 0
        assert agg.audit_summary([_make_record("OP/1", statuses=(R,))]).compliance_rate == 0

    @pytest.mark.parametrize("statuses", [(), (A,), (P,), (A, P, R, None), (P, P, P, A)])
    def test_rate_is_bounded(self, statuses):
        rate = agg.audit_summary([_make_record("OP/1", statuses=statuses)]).compliance_rate
        assert 0 <= rate <= 100

    def test_review_summary(self):
        records = [_make_record("OP/1", statuses=(A, P, None)), _make_record("OP/2")]
        assert agg.review_summary(records).to_dict() == {"completed": 1, "pending": 2, "total": 2}


class TestMonthly:
    def _dated(self, code, days_ago):
        return _make_record(code, last_file_date=(NOW - timedelta(days=days_ago)).isoformat())

    def test_growth(self):
        records = [self._dated("a", 1), self._dated("b", 10), self._dated("c", 45)]
        result = agg.monthly_comparison(records, now=NOW)
        assert (result.current_month, result.previous_month) == (2, 1)
        assert result.percentage_change == 100
        assert result.is_positive is True

    def test_decline_is_unsigned(self):
        records = [self._dated("a", 1), self._dated("b", 40), self._dated("c", 50),
                   self._dated("d", 59), self._dated("e", 61)]
        result = agg.monthly_comparison(records, now=NOW)
        assert (result.current_month, result.previous_month) == (1, 3)
        assert result.percentage_change == 67
        assert result.is_positive is False

    def test_half_percent_rounds_toward_positive(self):
        records = [self._dated("now", 2)] + [self._dated(f"p{i}", 35 + i) for i in range(8)]
        result = agg.monthly_comparison(records, now=NOW)
        assert (result.current_month, result.previous_month) == (1, 8)
        assert result.percentage_change == 87
        assert result.is_positive is False

    def test_no_previous_activity(self):
        assert agg.monthly_comparison([self._dated("a", 3)], now=NOW).percentage_change == 100
        empty = agg.monthly_comparison([_make_record("x")], now=NOW)
        assert empty.to_dict() == {
            "currentMonth": 0, "previousMonth": 0, "percentageChange": 0, "isPositive": True,
        }


class TestRecentActivity:
    def test_newest_first_undated_last(self):
        records = [
            _make_record("old", last_file_date="2024-01-01"),
            _make_record("none"),
            _make_record("new", last_file_date="2024-06-01T08:00:00Z"),
            _make_record("mid", last_file_date="01.03.2024"),
        ]
        assert [r.code for r in agg.recent_activity(records, limit=10)] == ["new", "mid", "old", "none"]

    def test_limit(self):
        records = [_make_record(str(i), last_file_date=f"2024-05-{i + 1:02d}") for i in range(8)]
        recent = agg.recent_activity(records)
        assert len(recent) == 5
        assert recent[0].code == "7"

    def test_ties_keep_snapshot_order(self):
        records = [_make_record(c, last_file_date="2024-05-01") for c in ("x", "y", "z")]
        assert [r.code for r in agg.recent_activity(records)] == ["x", "y", "z"]


class TestReviewQueue:
    def test_files_are_bucketed(self):
        records = [_make_record("OP/1", statuses=(A, R, P, None))]
        queue = agg.review_queue(records)
        assert queue["stats"] == {"pending": 2, "compliant": 1, "issues": 1}
        assert queue["compliant"][0]["fileId"] == "OP/1-0"
        assert queue["issues"][0]["fileStatus"] == "rejected"


class TestReadiness:
    def test_status_and_progress(self):
        stats = [
            ModuleStats("sales", "Sales", forms_count=4, records_count=10, pending_count=1, issues_count=1),
            ModuleStats("hr", "HR", forms_count=2, records_count=3, pending_count=1),
            ModuleStats("rnd", "R&D", forms_count=3, records_count=5),
            ModuleStats("quality", "Quality", forms_count=3, records_count=0),
        ]
        readiness = {r["id"]: r for r in agg.module_readiness(stats)}
        assert (readiness["sales"]["status"], readiness["sales"]["progress"]) == ("attention", 50)
        assert (readiness["hr"]["status"], readiness["hr"]["progress"]) == ("pending", 50)
        assert (readiness["rnd"]["status"], readiness["rnd"]["progress"]) == ("compliant", 100)
        assert readiness["quality"]["progress"] == 0

    def test_progress_rounds_halves_up(self):
        stats = [ModuleStats("ops", "Ops", forms_count=8, records_count=8, pending_count=7)]
        assert agg.module_readiness(stats)[0]["progress"] == 13


class TestPendingActions:
    def test_overdue_and_upcoming(self):
        records = [
            _make_record("late", days_until=-3, overdue=True),
            _make_record("soon", days_until=5),
            _make_record("today", days_until=0),
            _make_record("later", days_until=6),
            _make_record("adhoc"),
        ]
        actions = agg.pending_actions(records)
        assert [r.code for r in actions["overdue"]] == ["late"]
        assert [r.code for r in actions["upcoming"]] == ["soon"]


class TestTimeAgo:
    @pytest.mark.parametrize("days,text", [
        (0, "Today"), (1, "Yesterday"), (3, "3 days ago"), (14, "2 weeks ago"),
        (65, "2 months ago"), (800, "2 years ago"),
    ])
    def test_format(self, days, text):
        assert agg.format_time_ago((NOW - timedelta(days=days)).isoformat(), now=NOW) == text

    def test_unknown(self):
        assert agg.format_time_ago("", now=NOW) == "Unknown"
        assert agg.format_time_ago("yesterday-ish", now=NOW) == "Unknown"
