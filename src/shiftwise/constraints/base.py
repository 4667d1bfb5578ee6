# src/shiftwise/constraints/base.py
from __future__ import annotations

import dataclasses
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any, Protocol

from shiftwise.constraints.context import ValidationContext
from shiftwise.constraints.violation import ConstraintViolation
from shiftwise.schemas.models import Assignment, ConstraintType, Severity, ShiftTemplate


class ConstraintValidator(Protocol):
    """Capability every rule implements: inspect one assignment, report breaches."""

    def validate(
        self, assignment: Assignment, context: ValidationContext
    ) -> list[ConstraintViolation]: ...


@dataclass(frozen=True, slots=True)
class Constraint:
    """
    @brief
    Named, typed rule wrapping a validator.

    @details
    Constraints carry no state of their own beyond their metadata; disabling
    one produces a new instance through `with_enabled`. Hard constraints
    weigh 1.0, soft constraints weigh `priority / 100`.
    """

    id: str
    name: str
    type: ConstraintType
    priority: int
    severity: Severity
    validator: ConstraintValidator
    description: str = ""
    enabled: bool = True

    def __post_init__(self) -> None:
        if not 0 <= self.priority <= 100:
            raise ValueError(f"Constraint priority must be within 0..100, got {self.priority}")

    @property
    def is_hard(self) -> bool:
        return self.type == ConstraintType.HARD

    @property
    def is_soft(self) -> bool:
        return self.type == ConstraintType.SOFT

    @property
    def weight(self) -> float:
        return 1.0 if self.is_hard else self.priority / 100

    def is_enabled(self) -> bool:
        return self.enabled

    def validate(
        self, assignment: Assignment, context: ValidationContext
    ) -> list[ConstraintViolation]:
        return list(self.validator.validate(assignment, context))

    def with_enabled(self, enabled: bool) -> Constraint:
        return dataclasses.replace(self, enabled=enabled)

    def metadata(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": str(self.type),
            "priority": self.priority,
            "description": self.description,
            "severity": str(self.severity),
            "weight": self.weight,
            "enabled": self.enabled,
        }


# ----------------------------
# SHARED HELPERS
# ----------------------------
def format_hours(hours: float) -> str:
    """Render an hour count without a trailing `.0` (12.0 -> "12")."""
    return f"{round(hours, 2):g}"


def shift_window(template: ShiftTemplate, day: date) -> tuple[datetime, datetime]:
    """
    @brief
    Absolute start/end of a shift worked on `day`.

    @details
    Overnight shifts (end at or before start) end on the following day.
    """
    start = datetime.combine(day, time()) + timedelta(minutes=template.start_minutes)
    return start, start + timedelta(minutes=template.duration_minutes)


def windows_overlap(first: ShiftTemplate, second: ShiftTemplate) -> bool:
    """
    @brief
    Wall-clock overlap of two shifts on the same date.

    @details
    Start is inclusive and the adjusted end exclusive; an end at or before the
    start is moved to the next day (+24h) before comparing.
    """
    day = 24 * 60
    end1 = first.end_minutes
    if end1 <= first.start_minutes:
        end1 += day
    end2 = second.end_minutes
    if end2 <= second.start_minutes:
        end2 += day
    return first.start_minutes < end2 and second.start_minutes < end1


def week_start(day: date) -> date:
    """Monday of the ISO week containing `day`."""
    return day - timedelta(days=day.weekday())


def is_weekend(day: date) -> bool:
    return day.weekday() >= 5


def find_conflicting_assignments(
    employee_id: str,
    day: date,
    context: ValidationContext,
    exclude: Iterable[str] = (),
) -> list[Assignment]:
    """Active assignments of the employee on `day`, minus the excluded ids."""
    skip = set(exclude)
    return [
        a for a in context.employee_assignments_on_date(employee_id, day) if a.id not in skip
    ]


def missing_reference(
    constraint_id: str, constraint_name: str, what: str, assignment: Assignment
) -> ConstraintViolation:
    """Critical violation for a reference the validator cannot resolve."""
    return ConstraintViolation(
        constraint_id=constraint_id,
        severity=Severity.CRITICAL,
        message=f"Cannot validate {constraint_name.lower()}: {what} not found",
        affected_assignments=(assignment.id,),
        suggested_actions=(f"Verify {what.lower()} exists in the system",),
    )


__all__ = [
    "Constraint",
    "ConstraintValidator",
    "find_conflicting_assignments",
    "format_hours",
    "is_weekend",
    "missing_reference",
    "shift_window",
    "week_start",
    "windows_overlap",
]
