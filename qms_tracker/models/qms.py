"""
QMS Compliance Tracker — reconciliation domain types.

Types:
    - FormTemplate:  one catalog row of the sheet
    - FileArtifact:  one filled instance listed from a Drive folder
    - ReviewStatus / ReviewState / ReviewMap: per-file review workflow state
    - QMSRecord:     template + files + reviews + schedule (the merged view)
    - ModuleStats, AuditSummary, ReviewSummary, MonthlyComparison: read models

All of them are snapshots: built from the two sources on every refresh and
discarded afterwards. ``to_dict()`` produces the camelCase shape served by the
API.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum

# Placeholder the sheet uses for folders and serials with nothing in them.
NO_FILES_SENTINEL = "No Files Yet"


class ReviewStatus(str, Enum):
    """Review workflow status of one file. DRAFT is never assigned by the tracker."""
    DRAFT = "draft"
    PENDING_REVIEW = "pending_review"
    APPROVED = "approved"
    REJECTED = "rejected"


class AuditStatus(str, Enum):
    """Record-level status, independent of the per-file reviews."""
    APPROVED = "Approved"
    REJECTED = "Rejected"
    PENDING = "Pending"


@dataclass(frozen=True)
class FormTemplate:
    """One catalog entry, as read from a sheet row.

    Besides the catalog columns it carries the raw cells the merger needs:
    the stored last-file date, the audit-status label (holds the "(N files)"
    fallback count), the review blob and the manual review fields.
    """
    code: str
    category: str
    name: str
    description: str = ""
    frequency_label: str = ""
    template_link: str = ""
    folder_link: str = ""
    source_row_index: int = 0
    last_serial: str = ""
    last_file_date: str = ""
    days_ago: str = ""
    next_serial: str = ""
    audit_status_label: str = ""
    review_blob: str = ""
    reviewed: bool = False
    reviewed_by: str = ""
    review_date: str = ""


@dataclass(frozen=True)
class FileArtifact:
    """One file inside a template's Drive folder. Read-only."""
    id: str
    name: str
    view_link: str = ""
    created_time: str = ""
    mime_type: str = ""
    description: str = ""

    @classmethod
    def from_drive(cls, item: dict) -> "FileArtifact":
        return cls(
            id=item.get("id", ""),
            name=item.get("name", ""),
            view_link=item.get("webViewLink", ""),
            created_time=item.get("createdTime", ""),
            mime_type=item.get("mimeType", ""),
            description=item.get("description", "") or "",
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "webViewLink": self.view_link,
            "createdTime": self.created_time,
            "mimeType": self.mime_type,
            "description": self.description,
        }


@dataclass(frozen=True)
class ReviewState:
    """Review of one file. Absence of an entry means pending with no comment."""
    status: ReviewStatus = ReviewStatus.PENDING_REVIEW
    comment: str = ""
    reviewed_by: str | None = None
    review_date: str | None = None

    def to_dict(self) -> dict:
        out = {"status": self.status.value, "comment": self.comment}
        if self.reviewed_by is not None:
            out["reviewedBy"] = self.reviewed_by
        if self.review_date is not None:
            out["reviewDate"] = self.review_date
        return out


DEFAULT_REVIEW = ReviewState()


@dataclass(frozen=True)
class ReviewMap:
    """``file id → ReviewState`` plus the record-level status stored alongside.

    Both live in the same sheet cell; the map is the typed form of that cell.
    Mutators return a new map and never modify the receiver.
    """
    reviews: dict[str, ReviewState] = field(default_factory=dict)
    record_status: ReviewStatus | None = None
    record_status_by: str | None = None
    record_status_date: str | None = None

    def get(self, file_id: str) -> ReviewState:
        return self.reviews.get(file_id, DEFAULT_REVIEW)

    def __contains__(self, file_id) -> bool:
        return file_id in self.reviews

    def __len__(self) -> int:
        return len(self.reviews)

    def with_review(self, file_id: str, review: ReviewState) -> "ReviewMap":
        reviews = dict(self.reviews)
        reviews[file_id] = review
        return replace(self, reviews=reviews)

    def with_record_status(
        self, status: ReviewStatus, actor: str | None, on: str | None
    ) -> "ReviewMap":
        return replace(
            self,
            reviews=dict(self.reviews),
            record_status=status,
            record_status_by=actor,
            record_status_date=on,
        )

    def to_dict(self) -> dict:
        return {file_id: review.to_dict() for file_id, review in self.reviews.items()}


@dataclass
class QMSRecord:
    """Merged per-form view: template row + Drive listing + reviews + schedule.

    ``audit_status`` is the explicit record-level status. It is only changed
    by a record-level update or by the all-files-approved cascade.
    """
    template: FormTemplate
    files: list[FileArtifact] = field(default_factory=list)
    file_reviews: ReviewMap = field(default_factory=ReviewMap)
    actual_record_count: int = 0
    last_file_date: str = ""
    audit_status: AuditStatus = AuditStatus.PENDING
    reviewed: bool = False
    reviewed_by: str = ""
    review_date: str = ""
    days_until_next_fill: int | None = None
    is_overdue: bool = False

    @property
    def code(self) -> str:
        return self.template.code

    @property
    def category(self) -> str:
        return self.template.category

    @property
    def name(self) -> str:
        return self.template.name

    @property
    def row_index(self) -> int:
        return self.template.source_row_index

    @property
    def fill_frequency(self) -> str:
        return self.template.frequency_label

    def to_dict(self, include_files: bool = True) -> dict:
        t = self.template
        out = {
            "rowIndex": t.source_row_index,
            "category": t.category,
            "code": t.code,
            "recordName": t.name,
            "description": t.description,
            "whenToFill": t.frequency_label,
            "templateLink": t.template_link,
            "folderLink": t.folder_link,
            "lastSerial": t.last_serial,
            "lastFileDate": self.last_file_date,
            "daysAgo": t.days_ago,
            "nextSerial": t.next_serial,
            "auditStatus": self.audit_status.value,
            "reviewed": self.reviewed,
            "reviewedBy": self.reviewed_by,
            "reviewDate": self.review_date,
            "actualRecordCount": self.actual_record_count,
            "fileReviews": self.file_reviews.to_dict(),
            "daysUntilNextFill": self.days_until_next_fill,
            "fillFrequency": t.frequency_label,
            "isOverdue": self.is_overdue,
        }
        if include_files:
            out["files"] = [f.to_dict() for f in self.files]
        return out


@dataclass
class ModuleStats:
    id: str
    name: str
    forms_count: int = 0
    records_count: int = 0
    pending_count: int = 0
    issues_count: int = 0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "formsCount": self.forms_count,
            "recordsCount": self.records_count,
            "pendingCount": self.pending_count,
            "issuesCount": self.issues_count,
        }


@dataclass(frozen=True)
class AuditSummary:
    total: int
    compliant: int
    pending: int
    issues: int
    compliance_rate: int

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "compliant": self.compliant,
            "pending": self.pending,
            "issues": self.issues,
            "complianceRate": self.compliance_rate,
        }


@dataclass(frozen=True)
class ReviewSummary:
    completed: int
    pending: int
    total: int

    def to_dict(self) -> dict:
        return {"completed": self.completed, "pending": self.pending, "total": self.total}


@dataclass(frozen=True)
class MonthlyComparison:
    """Last 30 days vs. the 30 before. ``percentage_change`` is unsigned."""
    current_month: int
    previous_month: int
    percentage_change: int
    is_positive: bool

    def to_dict(self) -> dict:
        return {
            "currentMonth": self.current_month,
            "previousMonth": self.previous_month,
            "percentageChange": self.percentage_change,
            "isPositive": self.is_positive,
        }
