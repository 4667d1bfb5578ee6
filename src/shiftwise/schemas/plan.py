"""
@brief
Plan lifecycle models: plans, coverage, diffs, review data, approval and
commit requests/results, and audit records.

@details
A plan bundles assignments for a date range and carries its own approval
state. Plans are frozen like every other entity; the approval service
returns superseding copies rather than editing them in place. Diff and
review objects are computed artifacts and are never persisted.
"""

from __future__ import annotations

import datetime as _dt
from datetime import date, datetime, timedelta, timezone
from enum import StrEnum
from typing import Any

from pydantic import Field, model_validator

from shiftwise.constraints.violation import ConstraintViolation
from shiftwise.schemas.models import (
    Assignment,
    Priority,
    RiskLevel,
    Severity,
    ShiftDemand,
    Station,
    _FrozenModel,
)


class PlanStatus(StrEnum):
    DRAFT = "draft"
    PENDING_APPROVAL = "pending_approval"
    PARTIALLY_APPROVED = "partially_approved"
    APPROVED = "approved"
    COMMITTED = "committed"
    REJECTED = "rejected"
    ARCHIVED = "archived"


# Statuses from which no further lifecycle operation is legal
TERMINAL_PLAN_STATUSES = frozenset({PlanStatus.COMMITTED, PlanStatus.REJECTED, PlanStatus.ARCHIVED})
COMMITTABLE_PLAN_STATUSES = frozenset({PlanStatus.APPROVED, PlanStatus.PARTIALLY_APPROVED})


class ChangeType(StrEnum):
    ADDED = "added"
    REMOVED = "removed"
    MODIFIED = "modified"


class AuditAction(StrEnum):
    APPROVE = "approve"
    COMMIT = "commit"
    REJECT = "reject"


# ------------------------------------------------------------
# Coverage
# ------------------------------------------------------------
class DateRange(_FrozenModel):
    start: date
    end: date

    @model_validator(mode="after")
    def _check_order(self) -> DateRange:
        if self.start > self.end:
            raise ValueError("DateRange start must not be after end")
        return self

    def overlaps(self, other: DateRange) -> bool:
        return self.start <= other.end and other.start <= self.end

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end

    def days(self) -> list[date]:
        return [self.start + timedelta(days=i) for i in range((self.end - self.start).days + 1)]


class CoverageGap(_FrozenModel):
    """A demand left (partly) unfilled; criticality follows the demand priority."""

    demand_id: str
    station_id: str
    date: _dt.date
    shift_template_id: str | None = None
    required_count: int = Field(1, ge=1)
    assigned_count: int = Field(0, ge=0)
    criticality: Priority = Priority.MEDIUM
    reasons: list[str] = Field(default_factory=list)

    @property
    def missing(self) -> int:
        return max(0, self.required_count - self.assigned_count)


class CoverageStatus(_FrozenModel):
    total_demands: int = Field(0, ge=0)
    filled_demands: int = Field(0, ge=0)
    coverage_percentage: float = Field(0.0, ge=0, le=100)
    gaps: list[CoverageGap] = Field(default_factory=list)


# ------------------------------------------------------------
# Plan
# ------------------------------------------------------------
class Plan(_FrozenModel):
    """
    @brief
    Versioned bundle of assignments for a date range.

    @details
    `demands` and `stations` are optional context the repository may attach;
    when present, coverage and affected stations are derived from them.
    """

    id: str
    name: str = ""
    status: PlanStatus = PlanStatus.PENDING_APPROVAL
    date_range: DateRange
    assignments: list[Assignment] = Field(default_factory=list)
    coverage_status: CoverageStatus | None = None
    violations: list[ConstraintViolation] = Field(default_factory=list)
    demands: list[ShiftDemand] = Field(default_factory=list)
    stations: list[Station] = Field(default_factory=list)
    created_by: str = "system"
    created_at: datetime | None = None
    approved_by: str | None = None
    approved_at: datetime | None = None
    committed_by: str | None = None
    committed_at: datetime | None = None
    rejection_reason: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_PLAN_STATUSES

    def assignment(self, assignment_id: str) -> Assignment | None:
        return next((a for a in self.assignments if a.id == assignment_id), None)

    def with_updates(self, **changes: Any) -> Plan:
        return self.model_copy(update=changes)


# ------------------------------------------------------------
# Diff / review
# ------------------------------------------------------------
class FieldChange(_FrozenModel):
    field: str
    old: Any = None
    new: Any = None


class AssignmentChange(_FrozenModel):
    assignment_id: str
    change_type: ChangeType
    before: Assignment | None = None
    after: Assignment | None = None
    changes: list[FieldChange] = Field(default_factory=list)


class CoverageSnapshot(_FrozenModel):
    total_demands: int = 0
    filled_demands: int = 0
    coverage_percentage: float = 0.0


class CoverageDelta(_FrozenModel):
    old: CoverageSnapshot = Field(default_factory=CoverageSnapshot)
    new: CoverageSnapshot = Field(default_factory=CoverageSnapshot)

    @property
    def change(self) -> float:
        return round(self.new.coverage_percentage - self.old.coverage_percentage, 2)


class PlanDiffSummary(_FrozenModel):
    added: int = 0
    removed: int = 0
    modified: int = 0
    unchanged: int = 0

    @property
    def total_changes(self) -> int:
        return self.added + self.removed + self.modified


class PlanDiff(_FrozenModel):
    plan_id: str
    compared_plan_id: str | None = None
    changes: list[AssignmentChange] = Field(default_factory=list)
    coverage: CoverageDelta = Field(default_factory=CoverageDelta)
    summary: PlanDiffSummary = Field(default_factory=PlanDiffSummary)

    def of_type(self, change_type: ChangeType | str) -> list[AssignmentChange]:
        return [c for c in self.changes if c.change_type == change_type]

    @property
    def added(self) -> list[AssignmentChange]:
        return self.of_type(ChangeType.ADDED)

    @property
    def removed(self) -> list[AssignmentChange]:
        return self.of_type(ChangeType.REMOVED)

    @property
    def modified(self) -> list[AssignmentChange]:
        return self.of_type(ChangeType.MODIFIED)


class PlanImpactAnalysis(_FrozenModel):
    affected_employees: list[str] = Field(default_factory=list)
    affected_stations: list[str] = Field(default_factory=list)
    low_score_assignments: list[str] = Field(default_factory=list)
    risk_level: RiskLevel = RiskLevel.LOW
    recommendations: list[str] = Field(default_factory=list)


class PlanReviewData(_FrozenModel):
    plan: Plan
    committed_plan_id: str | None = None
    diff: PlanDiff | None = None
    impact: PlanImpactAnalysis


# ------------------------------------------------------------
# Approval / commit
# ------------------------------------------------------------
class PlanApprovalRequest(_FrozenModel):
    """
    `assignment_ids` of None approves every assignment; an explicit list
    approves only those. Ids listed in `rejected_assignment_ids` are rejected
    and never counted as approved.
    """

    plan_id: str
    approved_by: str
    assignment_ids: list[str] | None = None
    rejected_assignment_ids: list[str] = Field(default_factory=list)
    comments: str | None = None


class PlanCommitRequest(_FrozenModel):
    plan_id: str
    committed_by: str
    assignment_ids: list[str] | None = None
    effective_date: date | None = None


class PlanCommitError(_FrozenModel):
    assignment_id: str
    error: str
    severity: Severity = Severity.ERROR


class PlanCommitResult(_FrozenModel):
    plan_id: str
    success: bool
    committed: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    errors: list[PlanCommitError] = Field(default_factory=list)
    plan: Plan | None = None


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AuditRecord(_FrozenModel):
    action: AuditAction
    entity_type: str
    entity_id: str
    user_id: str
    changes: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=_utc_now)


__all__ = [
    "COMMITTABLE_PLAN_STATUSES",
    "TERMINAL_PLAN_STATUSES",
    "AssignmentChange",
    "AuditAction",
    "AuditRecord",
    "ChangeType",
    "CoverageDelta",
    "CoverageGap",
    "CoverageSnapshot",
    "CoverageStatus",
    "DateRange",
    "FieldChange",
    "Plan",
    "PlanApprovalRequest",
    "PlanCommitError",
    "PlanCommitRequest",
    "PlanCommitResult",
    "PlanDiff",
    "PlanDiffSummary",
    "PlanImpactAnalysis",
    "PlanReviewData",
    "PlanStatus",
]
