# tests/constraints/test_violation.py
import pytest
from pydantic import ValidationError

from shiftwise.constraints.violation import ConstraintViolation, has_blocking
from shiftwise.schemas.models import Severity


def _violation(severity: Severity = Severity.WARNING) -> ConstraintViolation:
    return ConstraintViolation(
        constraint_id="fairness",
        severity=severity,
        message="Workload imbalance",
        affected_assignments=("a-1",),
        suggested_actions=("Reassign",),
    )


@pytest.mark.parametrize(
    "severity,blocking,level",
    [
        (Severity.CRITICAL, True, 4),
        (Severity.ERROR, True, 3),
        (Severity.WARNING, False, 2),
        (Severity.INFO, False, 1),
    ],
)
def test_severity_decides_blocking(severity, blocking, level):
    v = _violation(severity)
    assert v.is_blocking is blocking
    assert v.severity_level() == level


def test_formatted_message_and_summary():
    v = _violation(Severity.ERROR)
    assert v.formatted_message() == "[ERROR] Workload imbalance"
    summary = v.summary()
    assert summary["affected_count"] == 1
    assert summary["action_count"] == 1
    assert summary["severity"] == "error"


def test_violations_are_immutable_and_superseded_by_copies():
    """
    @brief
    `with_*` helpers return new violations; the original is unchanged.
    """
    # --- Arrange ---
    original = _violation()

    # --- Act ---
    escalated = original.with_severity(Severity.CRITICAL)
    extended = original.with_additional_actions(["Contact supervisor"])
    renamed = original.with_message("Other")

    # --- Assert ---
    assert original.severity == Severity.WARNING
    assert escalated.is_critical
    assert extended.suggested_actions == ("Reassign", "Contact supervisor")
    assert renamed.message == "Other" and original.message == "Workload imbalance"
    with pytest.raises(ValidationError):
        original.message = "changed"  # type: ignore[misc]


def test_has_blocking():
    assert not has_blocking([_violation(Severity.WARNING), _violation(Severity.INFO)])
    assert has_blocking([_violation(Severity.INFO), _violation(Severity.ERROR)])
    assert not has_blocking([])
