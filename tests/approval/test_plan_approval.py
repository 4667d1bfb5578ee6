# tests/approval/test_plan_approval.py
import logging
from datetime import date

import pytest

from shiftwise.approval.audit import AUDIT_LOGGER_NAME, LoggingAuditService
from shiftwise.approval.memory import InMemoryPlanRepository
from shiftwise.approval.service import PlanApprovalService, diff_assignments, plan_coverage
from shiftwise.constraints.violation import ConstraintViolation
from shiftwise.errors import NotFoundError, SimulationError, StateTransitionError
from shiftwise.schemas.models import AssignmentStatus, RiskLevel, Severity
from shiftwise.schemas.plan import (
    AuditAction,
    ChangeType,
    DateRange,
    Plan,
    PlanApprovalRequest,
    PlanCommitRequest,
    PlanStatus,
)
from tests.factories import MONDAY, assignment, day, demand

WEEK = DateRange(start=MONDAY, end=day(6))
DEMANDS = [
    demand("d-1", MONDAY, "st-asm"),
    demand("d-2", MONDAY, "st-weld"),
    demand("d-3", day(1), "st-asm"),
]


def _plan(
    plan_id="p-1",
    status=PlanStatus.PENDING_APPROVAL,
    assignments=None,
    date_range=WEEK,
    **kw,
) -> Plan:
    if assignments is None:
        assignments = [
            assignment("a-1", "d-1", "alice", score=80),
            assignment("a-2", "d-2", "bob", score=40),
            assignment("a-3", "d-3", "carol", score=70),
        ]
    kw.setdefault("demands", DEMANDS)
    return Plan(
        id=plan_id,
        name=plan_id,
        status=status,
        date_range=date_range,
        assignments=assignments,
        **kw,
    )


def _service(*plans, conflict_checker=None):
    repo = InMemoryPlanRepository(list(plans))
    audit = LoggingAuditService()
    kwargs = {"conflict_checker": conflict_checker} if conflict_checker else {}
    return PlanApprovalService(repo, repo, audit, **kwargs), repo, audit


def _statuses(plan: Plan) -> dict[str, str]:
    return {a.id: str(a.status) for a in plan.assignments}


# ----------------------------
# APPROVE
# ----------------------------
def test_approve_all_assignments_marks_plan_approved():
    """
    @brief
    Approving every assignment confirms them and settles the plan as approved.

    @details
    Exactly one audit record is written with the status transition.
    """
    # --- Arrange ---
    service, repo, audit = _service(_plan())

    # --- Act ---
    plan = service.approve_plan(PlanApprovalRequest(plan_id="p-1", approved_by="lead"))

    # --- Assert ---
    assert plan.status == PlanStatus.APPROVED
    assert plan.approved_by == "lead"
    assert set(_statuses(plan).values()) == {"confirmed"}
    assert len(audit.records) == 1
    record = audit.records[0]
    assert record.action == AuditAction.APPROVE
    assert record.changes["status"] == {"from": "pending_approval", "to": "approved"}
    assert record.changes["approved_assignments"] == ["a-1", "a-2", "a-3"]


def test_approve_subset_is_partial():
    service, repo, _ = _service(_plan())

    plan = service.approve_plan(
        PlanApprovalRequest(plan_id="p-1", approved_by="lead", assignment_ids=["a-1"])
    )

    assert plan.status == PlanStatus.PARTIALLY_APPROVED
    assert _statuses(plan) == {"a-1": "confirmed", "a-2": "proposed", "a-3": "proposed"}


def test_rejected_ids_are_never_approved():
    service, _, audit = _service(_plan())

    plan = service.approve_plan(
        PlanApprovalRequest(
            plan_id="p-1",
            approved_by="lead",
            assignment_ids=["a-1", "a-2"],
            rejected_assignment_ids=["a-2"],
            comments="bob is not certified",
        )
    )

    assert plan.status == PlanStatus.PARTIALLY_APPROVED
    assert _statuses(plan) == {"a-1": "confirmed", "a-2": "rejected", "a-3": "proposed"}
    assert audit.records[0].changes["rejected_assignments"] == ["a-2"]
    assert audit.records[0].changes["comments"] == "bob is not certified"


def test_rejecting_everything_rejects_plan():
    service, _, _ = _service(_plan())

    plan = service.approve_plan(
        PlanApprovalRequest(
            plan_id="p-1", approved_by="lead", rejected_assignment_ids=["a-1", "a-2", "a-3"]
        )
    )

    assert plan.status == PlanStatus.REJECTED
    assert set(_statuses(plan).values()) == {"rejected"}


@pytest.mark.parametrize(
    "status", [PlanStatus.COMMITTED, PlanStatus.REJECTED, PlanStatus.ARCHIVED]
)
def test_approve_terminal_plan_raises(status):
    service, _, audit = _service(_plan(status=status))
    with pytest.raises(StateTransitionError):
        service.approve_plan(PlanApprovalRequest(plan_id="p-1", approved_by="lead"))
    assert audit.records == []


def test_unknown_plan_raises_not_found():
    service, _, _ = _service()
    with pytest.raises(NotFoundError) as e:
        service.approve_plan(PlanApprovalRequest(plan_id="nope", approved_by="lead"))
    assert (e.value.entity_type, e.value.entity_id) == ("plan", "nope")


# ----------------------------
# COMMIT
# ----------------------------
def test_commit_pending_plan_raises_and_commits_nothing():
    """
    @brief
    A plan that was never approved cannot be committed.
    """
    # --- Arrange ---
    service, repo, audit = _service(_plan())

    # --- Act / Assert ---
    with pytest.raises(StateTransitionError) as e:
        service.commit_plan(PlanCommitRequest(plan_id="p-1", committed_by="ops"))

    assert "Can only commit approved plans" in str(e.value)
    stored = repo.find_with_assignments("p-1")
    assert stored.status == PlanStatus.PENDING_APPROVAL
    assert stored.committed_by is None
    assert audit.records == []


def test_commit_skips_conflicting_assignments():
    """
    @brief
    Conflicting assignments are skipped with a per-item error; the rest commit.
    """
    # --- Arrange ---
    existing = assignment("x-9", "d-2", "bob", status=AssignmentStatus.CONFIRMED)
    service, repo, audit = _service(
        _plan(), conflict_checker=lambda a: [existing] if a.id == "a-2" else []
    )
    service.approve_plan(PlanApprovalRequest(plan_id="p-1", approved_by="lead"))

    # --- Act ---
    result = service.commit_plan(
        PlanCommitRequest(plan_id="p-1", committed_by="ops", effective_date=MONDAY)
    )

    # --- Assert ---
    assert result.success
    assert result.committed == ["a-1", "a-3"]
    assert result.skipped == ["a-2"]
    assert [e.error for e in result.errors] == ["Conflicts with existing assignments: x-9"]
    assert result.plan.status == PlanStatus.COMMITTED
    assert result.plan.committed_by == "ops"
    assert [r.action for r in audit.records] == [AuditAction.APPROVE, AuditAction.COMMIT]
    assert audit.records[1].changes["effective_date"] == "2025-03-03"


def test_commit_only_confirmed_assignments():
    service, _, _ = _service(_plan())
    service.approve_plan(
        PlanApprovalRequest(plan_id="p-1", approved_by="lead", assignment_ids=["a-3"])
    )

    result = service.commit_plan(PlanCommitRequest(plan_id="p-1", committed_by="ops"))

    assert result.committed == ["a-3"]
    assert result.skipped == []


def test_commit_records_checker_errors_per_item():
    def checker(a):
        raise SimulationError("conflict store unavailable")

    service, _, _ = _service(_plan(), conflict_checker=checker)
    service.approve_plan(PlanApprovalRequest(plan_id="p-1", approved_by="lead"))

    result = service.commit_plan(
        PlanCommitRequest(plan_id="p-1", committed_by="ops", assignment_ids=["a-1"])
    )

    assert result.committed == []
    assert result.skipped == ["a-1"]
    assert result.errors[0].error == "conflict store unavailable"


def test_commit_survives_unexpected_checker_failure(caplog):
    """
    @brief
    A collaborator failure outside the Shiftwise hierarchy skips only that item.

    @details
    The remaining confirmed assignments are committed and the plan reaches
    COMMITTED; the failure is logged at WARNING.
    """

    # --- Arrange ---
    def checker(a):
        if a.id == "a-1":
            raise LookupError("collision service: employee record missing")
        return []

    service, _, _ = _service(_plan(), conflict_checker=checker)
    service.approve_plan(
        PlanApprovalRequest(plan_id="p-1", approved_by="lead", assignment_ids=["a-1", "a-2"])
    )

    # --- Act ---
    with caplog.at_level(logging.WARNING, logger="shiftwise.approval.service"):
        result = service.commit_plan(PlanCommitRequest(plan_id="p-1", committed_by="ops"))

    # --- Assert ---
    assert result.success
    assert result.committed == ["a-2"]
    assert result.skipped == ["a-1"]
    assert result.errors[0].error == "collision service: employee record missing"
    assert result.plan.status == PlanStatus.COMMITTED
    assert "Conflict check failed for assignment a-1" in caplog.text


def test_committed_plan_cannot_be_committed_again():
    service, _, _ = _service(_plan())
    service.approve_plan(PlanApprovalRequest(plan_id="p-1", approved_by="lead"))
    service.commit_plan(PlanCommitRequest(plan_id="p-1", committed_by="ops"))

    with pytest.raises(StateTransitionError):
        service.commit_plan(PlanCommitRequest(plan_id="p-1", committed_by="ops"))


# ----------------------------
# REJECT
# ----------------------------
def test_reject_plan_rejects_proposed_assignments_and_keeps_reason():
    service, _, audit = _service(_plan())

    plan = service.reject_plan("p-1", "lead", reason="Coverage too thin")

    assert plan.status == PlanStatus.REJECTED
    assert plan.rejection_reason == "Coverage too thin"
    assert set(_statuses(plan).values()) == {"rejected"}
    assert audit.records[0].action == AuditAction.REJECT
    assert audit.records[0].changes["reason"] == "Coverage too thin"


def test_reject_committed_plan_raises():
    service, _, _ = _service(_plan(status=PlanStatus.COMMITTED))
    with pytest.raises(StateTransitionError):
        service.reject_plan("p-1", "lead")


# ----------------------------
# DIFF / REVIEW
# ----------------------------
def test_plan_compared_with_itself_has_no_changes():
    service, _, _ = _service(_plan())

    diff = service.compare_plans("p-1", "p-1")

    assert diff.changes == []
    assert diff.summary.total_changes == 0
    assert diff.summary.unchanged == 3
    assert diff.coverage.change == 0


def test_compare_without_baseline_reports_everything_added():
    service, _, _ = _service(_plan())

    diff = service.compare_plans("p-1")

    assert diff.compared_plan_id is None
    assert [c.change_type for c in diff.changes] == [ChangeType.ADDED] * 3
    assert diff.summary.added == 3
    assert diff.coverage.old.coverage_percentage == 0
    assert diff.coverage.new.coverage_percentage == 100


def test_diff_classifies_added_removed_and_modified():
    """
    @brief
    Modified entries list the changed fields with old and new values.
    """
    # --- Arrange ---
    baseline = [assignment("a-1", "d-1", "alice", score=80), assignment("a-2", "d-2", "bob")]
    current = [assignment("a-1", "d-1", "alice", score=85), assignment("a-4", "d-3", "dave")]

    # --- Act ---
    changes, unchanged = diff_assignments(current, baseline)

    # --- Assert ---
    assert [(c.assignment_id, c.change_type) for c in changes] == [
        ("a-1", ChangeType.MODIFIED),
        ("a-4", ChangeType.ADDED),
        ("a-2", ChangeType.REMOVED),
    ]
    assert [(f.field, f.old, f.new) for f in changes[0].changes] == [("score", 80, 85)]
    assert unchanged == 0


def test_review_uses_overlapping_committed_plan_as_baseline():
    # --- Arrange ---
    committed = _plan(
        "p-0",
        status=PlanStatus.COMMITTED,
        assignments=[assignment("a-1", "d-1", "alice", score=80)],
    )
    unrelated = _plan(
        "p-old",
        status=PlanStatus.COMMITTED,
        date_range=DateRange(start=date(2025, 1, 6), end=date(2025, 1, 12)),
    )
    service, _, _ = _service(unrelated, committed, _plan())

    # --- Act ---
    review = service.review_plan("p-1")

    # --- Assert ---
    assert review.committed_plan_id == "p-0"
    assert review.diff.summary.added == 2
    assert review.diff.summary.unchanged == 1
    assert review.impact.affected_employees == ["alice", "bob", "carol"]
    assert review.impact.affected_stations == ["st-asm", "st-weld"]


def test_impact_low_coverage_is_high_risk():
    plan = _plan(assignments=[assignment("a-1", "d-1", "alice", score=80)])

    impact = PlanApprovalService.analyze_impact(plan)

    assert plan_coverage(plan).coverage_percentage == pytest.approx(33.33)
    assert impact.risk_level == RiskLevel.HIGH
    assert impact.recommendations == ["Review coverage gaps and consider additional staffing"]


def test_impact_with_violations_is_medium_and_flags_low_scores():
    plan = _plan(
        violations=[
            ConstraintViolation(
                constraint_id="fairness", severity=Severity.WARNING, message="imbalance"
            )
        ]
    )

    impact = PlanApprovalService.analyze_impact(plan)

    assert impact.risk_level == RiskLevel.MEDIUM
    assert impact.low_score_assignments == ["a-2"]
    assert impact.recommendations == [
        "Address constraint violations before committing",
        "Review low-scoring assignments for potential improvements",
    ]


def test_plan_history_returns_current_version():
    service, _, _ = _service(_plan())
    assert [p.id for p in service.plan_history("p-1")] == ["p-1"]
    with pytest.raises(NotFoundError):
        service.plan_history("missing")


def test_audit_service_logs_each_record(caplog):
    service, _, audit = _service(_plan())

    with caplog.at_level(logging.INFO, logger=AUDIT_LOGGER_NAME):
        service.reject_plan("p-1", "lead")

    assert any("plan/p-1 by lead" in r.getMessage() for r in caplog.records)
    assert [r.entity_id for r in audit.for_entity("p-1")] == ["p-1"]
