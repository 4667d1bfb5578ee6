# tests/constraints/test_report.py
from shiftwise.constraints.report import (
    ActionType,
    EffortLevel,
    ViolationReport,
    categorize_action,
    display_name,
    suggested_fixes,
)
from shiftwise.constraints.violation import ConstraintViolation
from shiftwise.schemas.models import Severity


def _v(cid, severity, actions=(), affected=("a-1",), message="m"):
    return ConstraintViolation(
        constraint_id=cid,
        severity=severity,
        message=message,
        affected_assignments=affected,
        suggested_actions=actions,
    )


def test_categorize_action_by_keyword():
    assert categorize_action("Reassign to employee with available weekly hours") == (
        ActionType.REASSIGNMENT
    )
    assert categorize_action("Remove conflicting assignments") == ActionType.REMOVAL
    assert categorize_action("Review constraint configuration") == ActionType.APPROVAL
    assert categorize_action("Adjust shift start time") == ActionType.MODIFICATION
    assert categorize_action("Provide refresher training") == ActionType.OTHER


def test_display_name_falls_back_to_title_case():
    assert display_name("labor-law") == "Labor Law Compliance"
    assert display_name("custom-rule") == "Custom Rule"


def test_suggested_fixes_order_by_severity_then_auto_resolvable():
    """
    @brief
    Most severe fixes come first; within a severity, auto-resolvable ones lead.
    """
    # --- Arrange ---
    violations = [
        _v("fairness", Severity.WARNING, ("Balance assignments over the week",)),
        _v("skill-matching", Severity.CRITICAL, ("Provide training",)),
        _v("availability", Severity.CRITICAL, ("Adjust shift times",)),
    ]

    # --- Act ---
    fixes = suggested_fixes(violations)

    # --- Assert ---
    assert [f.constraint_id for f in fixes] == ["availability", "skill-matching", "fairness"]
    adjust = fixes[0]
    assert adjust.can_auto_resolve
    assert adjust.actions[0].automated
    assert adjust.actions[0].priority == 5
    assert adjust.actions[0].id == "availability-action-0"
    assert adjust.estimated_effort == EffortLevel.LOW
    assert not fixes[1].can_auto_resolve
    assert fixes[1].actions[0].priority == 4


def test_effort_grows_with_affected_assignments():
    fix = suggested_fixes(
        [_v("double-booking", Severity.CRITICAL, ("a", "b", "c"), affected=("a-1", "a-2"))]
    )[0]
    assert fix.estimated_effort == EffortLevel.HIGH


def test_violation_report_summary_and_grouping():
    # --- Arrange ---
    report = ViolationReport(
        [
            _v("skill-matching", Severity.CRITICAL, affected=("a-1",)),
            _v("labor-law", Severity.ERROR, affected=("a-1", "a-2")),
            _v("fairness", Severity.WARNING, ("Reassign",), affected=("a-3",)),
            _v("fairness", Severity.INFO, ("Contact the team lead",), affected=("a-3",)),
        ]
    )

    # --- Act ---
    summary = report.summary()

    # --- Assert ---
    assert summary["total"] == 4
    assert summary["critical"] == 1
    assert summary["error"] == 1
    assert summary["blocking"] == 2
    assert summary["affected_assignment_count"] == 3
    assert summary["unique_constraint_count"] == 3
    assert summary["has_blocking_violations"] is True
    assert len(report.grouped_by_constraint()["fairness"]) == 2
    assert [v.constraint_id for v in report.for_assignments(["a-2"])] == ["labor-law"]
    assert [v.severity for v in report.auto_resolvable()] == [Severity.WARNING]
    assert [v.severity for v in report.manual_intervention()] == [Severity.INFO]


def test_user_messages_and_to_dict():
    report = ViolationReport([_v("labor-law", Severity.ERROR, message="Too many hours")])
    assert report.user_messages()[0]["title"] == "Error: Labor Law Compliance"
    data = report.to_dict()
    assert data["by_constraint"][0]["max_severity"] == 3
    assert data["violations"][0]["message"] == "Too many hours"
