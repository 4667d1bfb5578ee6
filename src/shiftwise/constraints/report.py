# src/shiftwise/constraints/report.py
from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from dataclasses import asdict, dataclass, field
from enum import StrEnum
from typing import Any

from shiftwise.constraints.violation import ConstraintViolation
from shiftwise.schemas.models import SEVERITY_LEVELS, Severity

# Display names used in titles; unknown ids are title-cased
CONSTRAINT_DISPLAY_NAMES: dict[str, str] = {
    "skill-matching": "Skill Requirements",
    "availability": "Employee Availability",
    "labor-law": "Labor Law Compliance",
    "fairness": "Workload Fairness",
    "preference": "Employee Preferences",
    "continuity": "Shift Continuity",
    "double-booking": "Double Booking",
}


class ActionType(StrEnum):
    REASSIGNMENT = "reassignment"
    REMOVAL = "removal"
    APPROVAL = "approval"
    COMMUNICATION = "communication"
    MODIFICATION = "modification"
    OTHER = "other"


class EffortLevel(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


_AUTOMATABLE_KEYWORDS = ("reassign", "swap", "adjust", "remove")
_CATEGORY_KEYWORDS: tuple[tuple[ActionType, tuple[str, ...]], ...] = (
    (ActionType.REASSIGNMENT, ("reassign", "swap")),
    (ActionType.REMOVAL, ("remove", "delete")),
    (ActionType.APPROVAL, ("approve", "review")),
    (ActionType.COMMUNICATION, ("contact", "notify")),
    (ActionType.MODIFICATION, ("adjust", "modify")),
)


def display_name(constraint_id: str) -> str:
    return CONSTRAINT_DISPLAY_NAMES.get(constraint_id) or constraint_id.replace("-", " ").title()


def categorize_action(action: str) -> ActionType:
    lowered = action.lower()
    for category, keywords in _CATEGORY_KEYWORDS:
        if any(k in lowered for k in keywords):
            return category
    return ActionType.OTHER


def is_automated_action(action: str) -> bool:
    lowered = action.lower()
    return any(k in lowered for k in _AUTOMATABLE_KEYWORDS)


# ----------------------------
# SUGGESTED FIXES
# ----------------------------
@dataclass(slots=True)
class FixAction:
    id: str
    description: str
    type: ActionType
    automated: bool
    priority: int


@dataclass(slots=True)
class SuggestedFix:
    constraint_id: str
    severity: Severity
    description: str
    actions: list[FixAction] = field(default_factory=list)
    affected_assignments: list[str] = field(default_factory=list)
    estimated_effort: EffortLevel = EffortLevel.MEDIUM
    can_auto_resolve: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _estimate_effort(violation: ConstraintViolation) -> EffortLevel:
    affected = len(violation.affected_assignments)
    actions = violation.suggested_actions
    if affected == 1 and len(actions) == 1 and is_automated_action(actions[0]):
        return EffortLevel.LOW
    if affected <= 3 and len(actions) <= 2:
        return EffortLevel.MEDIUM
    return EffortLevel.HIGH


def suggested_fixes(violations: Iterable[ConstraintViolation]) -> list[SuggestedFix]:
    """
    @brief
    Turn violations into actionable, prioritised fix proposals.

    @details
    Each suggested action is categorised by keyword and flagged automatable
    when it reassigns, swaps, adjusts or removes. Action priority is the
    violation severity level plus one for automatable actions. Fixes are
    ordered by severity (most severe first), then auto-resolvable first.
    """
    fixes: list[SuggestedFix] = []
    for v in violations:
        level = v.severity_level()
        actions = [
            FixAction(
                id=f"{v.constraint_id}-action-{i}",
                description=action,
                type=categorize_action(action),
                automated=is_automated_action(action),
                priority=level + (1 if is_automated_action(action) else 0),
            )
            for i, action in enumerate(v.suggested_actions)
        ]
        fixes.append(
            SuggestedFix(
                constraint_id=v.constraint_id,
                severity=v.severity,
                description=v.message,
                actions=actions,
                affected_assignments=list(v.affected_assignments),
                estimated_effort=_estimate_effort(v),
                can_auto_resolve=any(a.automated for a in actions),
            )
        )

    # Stable sort keeps input order among equal keys
    fixes.sort(key=lambda f: (-SEVERITY_LEVELS.get(f.severity, 0), not f.can_auto_resolve))
    return fixes


# ----------------------------
# VIOLATION REPORT
# ----------------------------
class ViolationReport:
    """
    @brief
    Read-only aggregation over a set of violations.

    @details
    Groups violations by severity and by constraint, filters them per
    assignment and computes summary counts for display and export.
    """

    def __init__(self, violations: Iterable[ConstraintViolation] = ()) -> None:
        self._violations: tuple[ConstraintViolation, ...] = tuple(violations)

    @property
    def violations(self) -> list[ConstraintViolation]:
        return list(self._violations)

    def by_severity(self, severity: Severity | str) -> list[ConstraintViolation]:
        return [v for v in self._violations if v.severity == severity]

    def blocking(self) -> list[ConstraintViolation]:
        return [v for v in self._violations if v.is_blocking]

    @property
    def has_blocking(self) -> bool:
        return any(v.is_blocking for v in self._violations)

    def sorted_by_severity(self) -> list[ConstraintViolation]:
        return sorted(self._violations, key=lambda v: -v.severity_level())

    def grouped_by_constraint(self) -> dict[str, list[ConstraintViolation]]:
        groups: dict[str, list[ConstraintViolation]] = defaultdict(list)
        for v in self._violations:
            groups[v.constraint_id].append(v)
        return dict(groups)

    def for_assignments(self, assignment_ids: Iterable[str]) -> list[ConstraintViolation]:
        wanted = set(assignment_ids)
        return [v for v in self._violations if wanted.intersection(v.affected_assignments)]

    def auto_resolvable(self) -> list[ConstraintViolation]:
        return [
            v
            for v in self._violations
            if any(
                k in a.lower() for a in v.suggested_actions for k in ("reassign", "swap", "adjust")
            )
        ]

    def manual_intervention(self) -> list[ConstraintViolation]:
        keywords = ("contact", "approve", "review")
        return [
            v
            for v in self._violations
            if any(k in a.lower() for a in v.suggested_actions for k in keywords)
        ]

    def summary(self) -> dict[str, Any]:
        affected = {a for v in self._violations for a in v.affected_assignments}
        blocking = len(self.blocking())
        return {
            "total": len(self._violations),
            "critical": len(self.by_severity(Severity.CRITICAL)),
            "error": len(self.by_severity(Severity.ERROR)),
            "warning": len(self.by_severity(Severity.WARNING)),
            "info": len(self.by_severity(Severity.INFO)),
            "blocking": blocking,
            "affected_assignment_count": len(affected),
            "unique_constraint_count": len({v.constraint_id for v in self._violations}),
            "has_blocking_violations": blocking > 0,
        }

    def user_messages(self) -> list[dict[str, Any]]:
        return [
            {
                "severity": str(v.severity),
                "title": f"{str(v.severity).capitalize()}: {display_name(v.constraint_id)}",
                "message": v.message,
                "suggested_actions": list(v.suggested_actions),
                "affected_count": len(v.affected_assignments),
            }
            for v in self._violations
        ]

    def to_dict(self) -> dict[str, Any]:
        return {
            "summary": self.summary(),
            "violations": [v.summary() for v in self.sorted_by_severity()],
            "by_constraint": [
                {
                    "constraint_id": cid,
                    "count": len(group),
                    "max_severity": max(v.severity_level() for v in group),
                    "violations": [v.summary() for v in group],
                }
                for cid, group in self.grouped_by_constraint().items()
            ],
        }


__all__ = [
    "ActionType",
    "EffortLevel",
    "FixAction",
    "SuggestedFix",
    "ViolationReport",
    "categorize_action",
    "display_name",
    "is_automated_action",
    "suggested_fixes",
]
