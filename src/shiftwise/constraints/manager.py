# src/shiftwise/constraints/manager.py
from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass, field
from typing import Any

from shiftwise.constraints.base import Constraint
from shiftwise.constraints.context import ValidationContext
from shiftwise.constraints.hard import (
    availability_constraint,
    labor_law_constraint,
    skill_matching_constraint,
)
from shiftwise.constraints.report import SuggestedFix, ViolationReport, suggested_fixes
from shiftwise.constraints.soft import (
    continuity_constraint,
    fairness_constraint,
    preference_constraint,
)
from shiftwise.constraints.violation import ConstraintViolation, has_blocking
from shiftwise.errors import ValidationError
from shiftwise.schemas.config import Config, EvaluationConfig
from shiftwise.schemas.models import Assignment, Severity

logger = logging.getLogger(__name__)

DOUBLE_BOOKING_ID = "double-booking"
# Cross-assignment check ranks alongside the strongest hard constraint
_DOUBLE_BOOKING_PRIORITY = 100


@dataclass(slots=True)
class ValidationSummary:
    """
    Outcome of validating a set of assignments.

    Fields:
        total_assignments / valid_assignments / invalid_assignments: counts,
            where an assignment is invalid if any blocking violation names it.
        violation_summary: `ViolationReport.summary()` of all violations.
        is_valid: no blocking violation at all.
        can_proceed: no critical violation (errors may be overridden).
    """

    total_assignments: int
    valid_assignments: int
    invalid_assignments: int
    violation_summary: dict[str, Any] = field(default_factory=dict)
    is_valid: bool = True
    can_proceed: bool = True

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def default_constraints(cfg: Config | None = None) -> list[Constraint]:
    """Standard rule set: three hard and three soft constraints, thresholds from config."""
    cfg = cfg or Config()
    return [
        skill_matching_constraint(cfg.labor_law),
        availability_constraint(),
        labor_law_constraint(cfg.labor_law),
        fairness_constraint(cfg.fairness),
        preference_constraint(cfg.preference),
        continuity_constraint(cfg.continuity),
    ]


class ConstraintManager:
    """
    @brief
    Orchestrates the constraint set against assignments.

    @details
    Evaluation order is deterministic: enabled hard constraints by descending
    priority, then enabled soft constraints by descending priority, with
    registration order breaking ties. Constraints are stateless, so the
    manager may evaluate a batch on a thread pool (`evaluation.num_workers`)
    and fan the results back in input order.

    A validator that raises is not allowed to abort the evaluation: the
    exception becomes an `error` violation for that constraint.
    """

    def __init__(
        self,
        constraints: Iterable[Constraint] | None = None,
        cfg: EvaluationConfig | None = None,
    ) -> None:
        self.cfg = cfg or EvaluationConfig()
        self._constraints: dict[str, Constraint] = {}
        for c in default_constraints() if constraints is None else constraints:
            self.add_constraint(c)

    @classmethod
    def from_config(cls, cfg: Config) -> ConstraintManager:
        return cls(default_constraints(cfg), cfg.evaluation)

    # ---------- Registry ----------
    def add_constraint(self, constraint: Constraint) -> None:
        """Register a constraint; an existing one with the same id is replaced."""
        self._constraints[constraint.id] = constraint

    def remove_constraint(self, constraint_id: str) -> bool:
        return self._constraints.pop(constraint_id, None) is not None

    def set_enabled(self, constraint_id: str, enabled: bool) -> bool:
        constraint = self._constraints.get(constraint_id)
        if constraint is None:
            return False
        self._constraints[constraint_id] = constraint.with_enabled(enabled)
        return True

    def get(self, constraint_id: str) -> Constraint | None:
        return self._constraints.get(constraint_id)

    @property
    def constraints(self) -> list[Constraint]:
        """All registered constraints in evaluation order (enabled or not)."""
        return sorted(self._constraints.values(), key=lambda c: (not c.is_hard, -c.priority))

    def enabled_constraints(self) -> list[Constraint]:
        return [c for c in self.constraints if c.is_enabled()]

    def hard_constraints(self) -> list[Constraint]:
        return [c for c in self.constraints if c.is_hard]

    def soft_constraints(self) -> list[Constraint]:
        return [c for c in self.constraints if c.is_soft]

    def metadata(self) -> list[dict[str, Any]]:
        return [c.metadata() for c in self.constraints]

    def statistics(self) -> dict[str, Any]:
        constraints = self.constraints
        by_priority: dict[int, int] = defaultdict(int)
        for c in constraints:
            by_priority[c.priority] += 1
        return {
            "total": len(constraints),
            "hard": sum(1 for c in constraints if c.is_hard),
            "soft": sum(1 for c in constraints if c.is_soft),
            "enabled": sum(1 for c in constraints if c.is_enabled()),
            "by_priority": dict(by_priority),
        }

    # ---------- Single assignment ----------
    def evaluate(
        self, assignment: Assignment, context: ValidationContext
    ) -> list[ConstraintViolation]:
        """
        @brief
        Run every enabled constraint against one assignment.

        @returns
            Concatenated violations, hard constraints first. Empty when the
            assignment satisfies every rule.
        """
        violations: list[ConstraintViolation] = []
        for constraint in self.enabled_constraints():
            try:
                found = constraint.validate(assignment, context)
            except Exception as e:
                logger.warning(
                    "Constraint %s raised on assignment %s: %s", constraint.id, assignment.id, e
                )
                found = [
                    ConstraintViolation(
                        constraint_id=constraint.id,
                        severity=Severity.ERROR,
                        message=f"Constraint validation failed: {e}",
                        affected_assignments=(assignment.id,),
                        suggested_actions=("Review constraint configuration and input data",),
                    )
                ]
            if found:
                logger.debug(
                    "%s: %d violation(s) for assignment %s",
                    constraint.id,
                    len(found),
                    assignment.id,
                )
            violations.extend(found)
        return violations

    @staticmethod
    def is_feasible(violations: Iterable[ConstraintViolation]) -> bool:
        """False iff any violation is critical or error."""
        return not has_blocking(violations)

    def _priority_of(self, constraint_id: str) -> int:
        if constraint_id == DOUBLE_BOOKING_ID:
            return _DOUBLE_BOOKING_PRIORITY
        constraint = self._constraints.get(constraint_id)
        return constraint.priority if constraint else 0

    def rank(self, violations: Iterable[ConstraintViolation]) -> list[ConstraintViolation]:
        """Order by severity level, then constraint priority, both descending."""
        return sorted(
            violations,
            key=lambda v: (-v.severity_level(), -self._priority_of(v.constraint_id)),
        )

    def most_material(
        self, violations: Iterable[ConstraintViolation]
    ) -> ConstraintViolation | None:
        ranked = self.rank(violations)
        return ranked[0] if ranked else None

    # ---------- Batch ----------
    def evaluate_each(
        self, assignments: Sequence[Assignment], context: ValidationContext
    ) -> dict[str, list[ConstraintViolation]]:
        """
        @brief
        Evaluate every assignment of a batch independently.

        @details
        Batch members not yet in the context are layered on top of it, so
        hour totals and conflicts see their siblings. Runs on a thread pool
        when `num_workers > 1`; results keep input order.
        """
        known = {a.id for a in context.assignments}
        batch_context = context.with_additional_assignments(
            a for a in assignments if a.id not in known
        )

        workers = min(self.cfg.num_workers, max(len(assignments), 1))
        if workers > 1:
            with ThreadPoolExecutor(max_workers=workers) as pool:
                results = list(pool.map(lambda a: self.evaluate(a, batch_context), assignments))
        else:
            results = [self.evaluate(a, batch_context) for a in assignments]
        return {a.id: found for a, found in zip(assignments, results)}

    def evaluate_batch(
        self, assignments: Sequence[Assignment], context: ValidationContext
    ) -> list[ConstraintViolation]:
        """Per-assignment violations in input order, followed by cross-assignment ones."""
        per_assignment = self.evaluate_each(assignments, context)
        violations = [v for found in per_assignment.values() for v in found]
        if self.cfg.detect_double_booking:
            violations.extend(self.detect_double_booking(assignments, context))
        logger.info(
            "Evaluated %d assignment(s): %d violation(s), %d blocking",
            len(assignments),
            len(violations),
            sum(1 for v in violations if v.is_blocking),
        )
        return violations

    @staticmethod
    def detect_double_booking(
        assignments: Iterable[Assignment], context: ValidationContext
    ) -> list[ConstraintViolation]:
        """One critical violation per employee and date with several active assignments."""
        groups: dict[tuple[str, Any], list[Assignment]] = defaultdict(list)
        for a in assignments:
            if not a.is_active:
                continue
            demand = context.demand(a.demand_id)
            if demand is None:
                continue
            groups[(a.employee_id, demand.date)].append(a)

        violations = []
        for (employee_id, day), booked in groups.items():
            if len(booked) <= 1:
                continue
            employee = context.employee(employee_id)
            violations.append(
                ConstraintViolation(
                    constraint_id=DOUBLE_BOOKING_ID,
                    severity=Severity.CRITICAL,
                    message=(
                        f"Employee {employee.name if employee else employee_id} has multiple "
                        f"assignments on {day.isoformat()}"
                    ),
                    affected_assignments=tuple(a.id for a in booked),
                    suggested_actions=(
                        "Remove conflicting assignments",
                        "Reassign one of the shifts to another employee",
                        "Split shifts if possible",
                    ),
                )
            )
        return violations

    def summarize(
        self,
        assignments: Sequence[Assignment],
        context: ValidationContext,
        violations: Sequence[ConstraintViolation] | None = None,
    ) -> ValidationSummary:
        """
        @brief
        Count valid and invalid assignments of a batch.

        @details
        Pass `violations` from a previous `evaluate_batch` call over the same
        batch to avoid evaluating twice.

        @raises
            ValidationError
                If `assignments` is not a sequence of Assignment objects.
        """
        if not all(isinstance(a, Assignment) for a in assignments):
            raise ValidationError(
                "summarize() expects Assignment objects",
                source="ConstraintManager.summarize",
                suggested_action="Parse raw records into Assignment models first.",
            )
        if violations is None:
            violations = self.evaluate_batch(assignments, context)
        report = ViolationReport(violations)
        summary = report.summary()
        invalid = {a for v in violations if v.is_blocking for a in v.affected_assignments}
        valid = sum(1 for a in assignments if a.id not in invalid)
        return ValidationSummary(
            total_assignments=len(assignments),
            valid_assignments=valid,
            invalid_assignments=len(assignments) - valid,
            violation_summary=summary,
            is_valid=summary["blocking"] == 0,
            can_proceed=summary["critical"] == 0,
        )

    # ---------- Reporting ----------
    @staticmethod
    def report(violations: Iterable[ConstraintViolation]) -> ViolationReport:
        return ViolationReport(violations)

    @staticmethod
    def suggested_fixes(violations: Iterable[ConstraintViolation]) -> list[SuggestedFix]:
        return suggested_fixes(violations)


__all__ = [
    "DOUBLE_BOOKING_ID",
    "ConstraintManager",
    "ValidationSummary",
    "default_constraints",
]
