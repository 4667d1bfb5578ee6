# src/shiftwise/approval/service.py
from __future__ import annotations

import logging
from collections import Counter
from typing import Any

from shiftwise.approval.ports import (
    AssignmentRepository,
    AuditService,
    ConflictChecker,
    PlanRepository,
    no_conflicts,
)
from shiftwise.errors import NotFoundError, ShiftwiseError, StateTransitionError
from shiftwise.schemas.models import Assignment, AssignmentStatus, RiskLevel
from shiftwise.schemas.plan import (
    COMMITTABLE_PLAN_STATUSES,
    AssignmentChange,
    AuditAction,
    AuditRecord,
    ChangeType,
    CoverageDelta,
    CoverageSnapshot,
    FieldChange,
    Plan,
    PlanApprovalRequest,
    PlanCommitError,
    PlanCommitRequest,
    PlanCommitResult,
    PlanDiff,
    PlanDiffSummary,
    PlanImpactAnalysis,
    PlanReviewData,
    PlanStatus,
)

logger = logging.getLogger(__name__)

# Assignment fields compared when diffing two plan versions
DIFF_FIELDS: tuple[str, ...] = ("status", "score", "explanation")
LOW_COVERAGE_THRESHOLD = 90.0
LOW_SCORE_THRESHOLD = 50.0


def plan_coverage(plan: Plan) -> CoverageSnapshot:
    """
    @brief
    Coverage figures of a plan.

    @details
    Uses the stored `coverage_status` when the plan carries one; otherwise a
    demand counts as filled when it has at least `required_count` active
    assignments in the plan.
    """
    if plan.coverage_status is not None:
        status = plan.coverage_status
        return CoverageSnapshot(
            total_demands=status.total_demands,
            filled_demands=status.filled_demands,
            coverage_percentage=status.coverage_percentage,
        )
    active = Counter(a.demand_id for a in plan.assignments if a.is_active)
    total = len(plan.demands)
    filled = sum(1 for d in plan.demands if active[d.id] >= d.required_count)
    pct = round(filled / total * 100, 2) if total else 0.0
    return CoverageSnapshot(total_demands=total, filled_demands=filled, coverage_percentage=pct)


def assignment_changes(old: Assignment, new: Assignment) -> list[FieldChange]:
    return [
        FieldChange(field=name, old=getattr(old, name), new=getattr(new, name))
        for name in DIFF_FIELDS
        if getattr(old, name) != getattr(new, name)
    ]


def diff_assignments(
    current: list[Assignment], baseline: list[Assignment]
) -> tuple[list[AssignmentChange], int]:
    """Classify `current` against `baseline`; returns the changes and the unchanged count."""
    old_by_id = {a.id: a for a in baseline}
    new_ids = {a.id for a in current}
    changes: list[AssignmentChange] = []
    unchanged = 0

    # (1) Added and modified, in current order
    for new in current:
        old = old_by_id.get(new.id)
        if old is None:
            changes.append(
                AssignmentChange(assignment_id=new.id, change_type=ChangeType.ADDED, after=new)
            )
            continue
        fields = assignment_changes(old, new)
        if fields:
            changes.append(
                AssignmentChange(
                    assignment_id=new.id,
                    change_type=ChangeType.MODIFIED,
                    before=old,
                    after=new,
                    changes=fields,
                )
            )
        else:
            unchanged += 1

    # (2) Removed, in baseline order
    for old in baseline:
        if old.id not in new_ids:
            changes.append(
                AssignmentChange(assignment_id=old.id, change_type=ChangeType.REMOVED, before=old)
            )
    return changes, unchanged


class PlanApprovalService:
    """
    @brief
    Drives plans through review, approval, commit and rejection.

    @details
    Lifecycle: pending_approval -> {approved, partially_approved, rejected}
    -> committed. Committed, rejected and archived plans are terminal.
    Illegal transitions raise `StateTransitionError` before any repository
    write. Every state change emits exactly one audit record.

    @params
        plans : PlanRepository
            Loads and persists plans.
        assignments : AssignmentRepository
            Persists assignment status changes.
        audit : AuditService
            Receives one record per state-changing operation.
        conflict_checker : ConflictChecker
            Returns already committed assignments colliding with a candidate.
    """

    def __init__(
        self,
        plans: PlanRepository,
        assignments: AssignmentRepository,
        audit: AuditService,
        conflict_checker: ConflictChecker = no_conflicts,
    ) -> None:
        self.plans = plans
        self.assignments = assignments
        self.audit = audit
        self.conflict_checker = conflict_checker

    # ---------- Helpers ----------
    def _load(self, plan_id: str) -> Plan:
        plan = self.plans.find_with_assignments(plan_id)
        if plan is None:
            raise NotFoundError(
                f"Plan {plan_id} not found",
                source="PlanApprovalService",
                suggested_action="Check the plan id.",
                entity_type="plan",
                entity_id=plan_id,
            )
        return plan

    def _emit(
        self, action: AuditAction, plan_id: str, user_id: str, changes: dict[str, Any]
    ) -> None:
        self.audit.log_action(
            AuditRecord(
                action=action,
                entity_type="plan",
                entity_id=plan_id,
                user_id=user_id,
                changes=changes,
            )
        )

    @staticmethod
    def _status_change(old: PlanStatus | str, new: PlanStatus | str) -> dict[str, str]:
        return {"from": str(old), "to": str(new)}

    # ---------- Review ----------
    def review_plan(self, plan_id: str) -> PlanReviewData:
        """
        @brief
        Diff a plan against the committed plan it would replace and assess impact.

        @details
        The committed plan is the first one whose date range overlaps this
        plan's range. Without one, the diff runs against an empty baseline.
        """
        plan = self._load(plan_id)
        committed = next(
            (
                p
                for p in self.plans.find_by_status(PlanStatus.COMMITTED)
                if p.id != plan.id and p.date_range.overlaps(plan.date_range)
            ),
            None,
        )
        diff = self._diff(plan, committed)
        return PlanReviewData(
            plan=plan,
            committed_plan_id=committed.id if committed else None,
            diff=diff,
            impact=self.analyze_impact(plan),
        )

    @staticmethod
    def analyze_impact(plan: Plan) -> PlanImpactAnalysis:
        """
        Risk is high below 90% coverage, medium when the plan carries
        violations, low otherwise. Coverage is only judged when the plan
        knows its demands.
        """
        coverage = plan_coverage(plan)
        demand_station = {d.id: d.station_id for d in plan.demands}
        employees = list(dict.fromkeys(a.employee_id for a in plan.assignments))
        stations = list(
            dict.fromkeys(
                demand_station[a.demand_id]
                for a in plan.assignments
                if a.demand_id in demand_station
            )
        )
        low_scores = [a.id for a in plan.assignments if a.score < LOW_SCORE_THRESHOLD]

        risk = RiskLevel.LOW
        recommendations: list[str] = []
        if coverage.total_demands and coverage.coverage_percentage < LOW_COVERAGE_THRESHOLD:
            risk = RiskLevel.HIGH
            recommendations.append("Review coverage gaps and consider additional staffing")
        if plan.violations:
            if risk == RiskLevel.LOW:
                risk = RiskLevel.MEDIUM
            recommendations.append("Address constraint violations before committing")
        if low_scores:
            recommendations.append("Review low-scoring assignments for potential improvements")

        return PlanImpactAnalysis(
            affected_employees=employees,
            affected_stations=stations,
            low_score_assignments=low_scores,
            risk_level=risk,
            recommendations=recommendations,
        )

    # ---------- Approve ----------
    def approve_plan(self, request: PlanApprovalRequest) -> Plan:
        """
        @brief
        Confirm and reject assignments by id, then settle the plan status.

        @details
        Only proposed assignments change state. The plan becomes `approved`
        when every assignment is in the approved set, `partially_approved`
        when some are, and `rejected` when none are.

        @raises
            NotFoundError
                If the plan does not exist.
            StateTransitionError
                If the plan is committed, rejected or archived.
        """
        plan = self._load(request.plan_id)
        if plan.is_terminal:
            raise StateTransitionError(
                f"Cannot approve a {plan.status} plan",
                source="PlanApprovalService.approve_plan",
            )

        rejected_ids = set(request.rejected_assignment_ids)
        wanted = None if request.assignment_ids is None else set(request.assignment_ids)
        to_approve = [
            a
            for a in plan.assignments
            if (wanted is None or a.id in wanted) and a.id not in rejected_ids
        ]
        to_reject = [a for a in plan.assignments if a.id in rejected_ids]

        for a in to_approve:
            if a.is_proposed:
                self.assignments.update(a.id, status=AssignmentStatus.CONFIRMED)
        for a in to_reject:
            if a.is_proposed:
                self.assignments.update(a.id, status=AssignmentStatus.REJECTED)

        total = len(plan.assignments)
        if len(to_approve) == total:
            new_status = PlanStatus.APPROVED
        elif to_approve:
            new_status = PlanStatus.PARTIALLY_APPROVED
        else:
            new_status = PlanStatus.REJECTED

        updated = self.plans.update_status(plan.id, new_status, request.approved_by)
        self._emit(
            AuditAction.APPROVE,
            plan.id,
            request.approved_by,
            {
                "status": self._status_change(plan.status, new_status),
                "approved_assignments": [a.id for a in to_approve],
                "rejected_assignments": [a.id for a in to_reject],
                "comments": request.comments,
            },
        )
        logger.info(
            "Plan %s %s by %s (%d/%d approved, %d rejected)",
            plan.id,
            new_status,
            request.approved_by,
            len(to_approve),
            total,
            len(to_reject),
        )
        return updated

    # ---------- Commit ----------
    def commit_plan(self, request: PlanCommitRequest) -> PlanCommitResult:
        """
        @brief
        Commit the confirmed assignments of an approved plan.

        @details
        Each confirmed assignment (optionally filtered by id) is checked
        against already committed work. Conflicting assignments are skipped
        and reported as per-item errors; the commit itself still succeeds.

        @raises
            StateTransitionError
                Unless the plan is approved or partially approved. Nothing is
                committed in that case.
        """
        plan = self._load(request.plan_id)
        if plan.status not in COMMITTABLE_PLAN_STATUSES:
            raise StateTransitionError(
                f"Can only commit approved plans (plan {plan.id} is {plan.status})",
                source="PlanApprovalService.commit_plan",
                suggested_action="Approve the plan before committing it.",
            )

        wanted = None if request.assignment_ids is None else set(request.assignment_ids)
        candidates = [
            a for a in plan.assignments if a.is_confirmed and (wanted is None or a.id in wanted)
        ]

        committed: list[str] = []
        skipped: list[str] = []
        errors: list[PlanCommitError] = []
        for a in candidates:
            try:
                conflicts = self.conflict_checker(a)
            except Exception as e:
                # Any checker failure is recorded against its item
                logger.warning(
                    "Conflict check failed for assignment %s of plan %s: %s", a.id, plan.id, e
                )
                message = e.args[0] if isinstance(e, ShiftwiseError) and e.args else str(e)
                errors.append(PlanCommitError(assignment_id=a.id, error=str(message)))
                skipped.append(a.id)
                continue
            if conflicts:
                logger.warning(
                    "Skipping assignment %s of plan %s: %d conflict(s)",
                    a.id,
                    plan.id,
                    len(conflicts),
                )
                errors.append(
                    PlanCommitError(
                        assignment_id=a.id,
                        error="Conflicts with existing assignments: "
                        + ", ".join(c.id for c in conflicts),
                    )
                )
                skipped.append(a.id)
                continue
            committed.append(a.id)

        updated = self.plans.commit_plan(plan.id, request.committed_by, request.effective_date)
        self._emit(
            AuditAction.COMMIT,
            plan.id,
            request.committed_by,
            {
                "status": self._status_change(plan.status, PlanStatus.COMMITTED),
                "committed_assignments": committed,
                "skipped_assignments": skipped,
                "errors": [e.model_dump() for e in errors],
                "effective_date": (
                    request.effective_date.isoformat() if request.effective_date else None
                ),
            },
        )
        logger.info(
            "Plan %s committed by %s: %d committed, %d skipped",
            plan.id,
            request.committed_by,
            len(committed),
            len(skipped),
        )
        return PlanCommitResult(
            plan_id=plan.id,
            success=True,
            committed=committed,
            skipped=skipped,
            errors=errors,
            plan=updated,
        )

    # ---------- Reject ----------
    def reject_plan(self, plan_id: str, rejected_by: str, reason: str | None = None) -> Plan:
        plan = self._load(plan_id)
        if plan.is_terminal:
            raise StateTransitionError(
                f"Cannot reject a {plan.status} plan",
                source="PlanApprovalService.reject_plan",
            )

        for a in plan.assignments:
            if a.is_proposed:
                self.assignments.update(a.id, status=AssignmentStatus.REJECTED)

        updated = self.plans.update_status(plan.id, PlanStatus.REJECTED, rejected_by)
        if reason:
            updated = self.plans.save(updated.with_updates(rejection_reason=reason))
        self._emit(
            AuditAction.REJECT,
            plan.id,
            rejected_by,
            {"status": self._status_change(plan.status, PlanStatus.REJECTED), "reason": reason},
        )
        logger.info("Plan %s rejected by %s", plan.id, rejected_by)
        return updated

    # ---------- Compare ----------
    def compare_plans(self, plan_id: str, compared_plan_id: str | None = None) -> PlanDiff:
        """
        @brief
        Diff a plan against another version, or against an empty baseline.

        @raises
            NotFoundError
                If either plan does not exist.
        """
        plan = self._load(plan_id)
        baseline = self._load(compared_plan_id) if compared_plan_id else None
        return self._diff(plan, baseline)

    @staticmethod
    def _diff(plan: Plan, baseline: Plan | None) -> PlanDiff:
        changes, unchanged = diff_assignments(
            plan.assignments, baseline.assignments if baseline else []
        )
        counts = Counter(c.change_type for c in changes)
        return PlanDiff(
            plan_id=plan.id,
            compared_plan_id=baseline.id if baseline else None,
            changes=changes,
            coverage=CoverageDelta(
                old=plan_coverage(baseline) if baseline else CoverageSnapshot(),
                new=plan_coverage(plan),
            ),
            summary=PlanDiffSummary(
                added=counts[ChangeType.ADDED],
                removed=counts[ChangeType.REMOVED],
                modified=counts[ChangeType.MODIFIED],
                unchanged=unchanged,
            ),
        )

    def plan_history(self, plan_id: str) -> list[Plan]:
        """Known versions of a plan; the repository only keeps the current one."""
        return [self._load(plan_id)]


__all__ = [
    "PlanApprovalService",
    "assignment_changes",
    "diff_assignments",
    "plan_coverage",
]
