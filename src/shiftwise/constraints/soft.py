# src/shiftwise/constraints/soft.py
"""
@brief
Soft constraints: fairness, preference and continuity.

@details
Each soft rule compares an observed metric for the employee with a
contextual baseline (team mean, stated preference, station history) and
emits warning or info violations. They inform ranking only and never make
an assignment infeasible. Missing references are skipped silently; the hard
constraints already report them.
"""

from __future__ import annotations

from collections import Counter
from datetime import date, timedelta

from shiftwise.constraints.base import (
    Constraint,
    format_hours,
    is_weekend,
    week_start,
)
from shiftwise.constraints.context import ValidationContext
from shiftwise.constraints.violation import ConstraintViolation
from shiftwise.schemas.config import ContinuityConfig, FairnessConfig, PreferenceConfig
from shiftwise.schemas.models import (
    Assignment,
    ConstraintType,
    Employee,
    Priority,
    Severity,
    ShiftDemand,
)

FAIRNESS_ID = "fairness"
PREFERENCE_ID = "preference"
CONTINUITY_ID = "continuity"

_WEEKDAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")


def _history(
    context: ValidationContext,
    employee_id: str,
    since: date,
    until: date,
    exclude: str,
) -> list[tuple[Assignment, ShiftDemand]]:
    """Active assignments of an employee with demand dates in [since, until]."""
    rows = []
    for a in context.employee_assignments(employee_id):
        if a.id == exclude:
            continue
        demand = context.demand(a.demand_id)
        if demand is not None and since <= demand.date <= until:
            rows.append((a, demand))
    return rows


# ----------------------------
# FAIRNESS
# ----------------------------
class FairnessValidator:
    """
    @brief
    Workload, shift-type and weekend distribution across a team.

    @details
    Thresholds come from `FairnessConfig`:
        - workload  : projected weekly hours > workload_ratio x team mean (warning)
        - shift type: one type > shift_type_share of trailing shifts (info)
        - weekend   : weekend count > weekend_ratio x team mean (warning)
    """

    name = "Fairness"

    def __init__(self, cfg: FairnessConfig | None = None) -> None:
        self.cfg = cfg or FairnessConfig()

    def validate(
        self, assignment: Assignment, context: ValidationContext
    ) -> list[ConstraintViolation]:
        employee = context.employee(assignment.employee_id)
        demand = context.demand(assignment.demand_id)
        if employee is None or demand is None:
            return []

        violations: list[ConstraintViolation] = []
        violations.extend(self._check_workload(assignment, employee, demand, context))
        violations.extend(self._check_shift_types(assignment, employee, demand, context))
        violations.extend(self._check_weekends(assignment, employee, demand, context))
        return violations

    def _check_workload(self, assignment, employee, demand, context) -> list[ConstraintViolation]:
        team = context.team_members(employee.team)
        if len(team) <= 1:
            return []

        # (1) Weekly hours per member, excluding the assignment under validation
        monday = week_start(demand.date)
        sunday = monday + timedelta(days=6)
        hours = {
            m.id: sum(
                context.assignment_hours(a)
                for a, _ in _history(context, m.id, monday, sunday, exclude=assignment.id)
            )
            for m in team
        }

        # (2) Project the new shift onto the employee
        template = context.shift_template(demand.shift_template_id)
        if template is not None and employee.id in hours:
            hours[employee.id] += template.duration_hours

        mean = sum(hours.values()) / len(hours)
        own = hours.get(employee.id, 0.0)
        if own <= mean * self.cfg.workload_ratio:
            return []

        underloaded = [m.name for m in team if hours[m.id] < mean * self.cfg.underload_ratio]
        return [
            ConstraintViolation(
                constraint_id=FAIRNESS_ID,
                severity=Severity.WARNING,
                message=(
                    f"Workload imbalance: Employee {employee.name} ({format_hours(own)}h) "
                    f"significantly exceeds team average ({mean:.1f}h)"
                ),
                affected_assignments=(assignment.id,),
                suggested_actions=(
                    f"Consider assigning to underworked team members: {', '.join(underloaded)}",
                    "Review workload distribution across the team",
                    "Balance assignments over the week",
                ),
            )
        ]

    def _check_shift_types(
        self, assignment, employee, demand, context
    ) -> list[ConstraintViolation]:
        template = context.shift_template(demand.shift_template_id)
        if template is None:
            return []

        since = demand.date - timedelta(days=self.cfg.shift_type_window_days)
        counts: Counter[str] = Counter()
        for a, _ in _history(context, employee.id, since, demand.date, exclude=assignment.id):
            other = context.template_for(a)
            if other is not None:
                counts[str(other.shift_type)] += 1
        counts[str(template.shift_type)] += 1

        total = sum(counts.values())
        same = counts[str(template.shift_type)]
        share = same / total
        if share <= self.cfg.shift_type_share or total < self.cfg.shift_type_min_sample:
            return []
        return [
            ConstraintViolation(
                constraint_id=FAIRNESS_ID,
                severity=Severity.INFO,
                message=(
                    f"Shift type imbalance: Employee {employee.name} assigned {same}/{total} "
                    f"{template.shift_type} shifts ({share * 100:.1f}%)"
                ),
                affected_assignments=(assignment.id,),
                suggested_actions=(
                    "Rotate shift types more evenly",
                    "Consider employee preferences for shift variety",
                    "Balance shift types across team members",
                ),
            )
        ]

    def _check_weekends(self, assignment, employee, demand, context) -> list[ConstraintViolation]:
        if not is_weekend(demand.date):
            return []
        team = context.team_members(employee.team)
        if len(team) <= 1:
            return []

        since = demand.date - timedelta(days=self.cfg.weekend_window_days)
        counts = {
            m.id: sum(
                1
                for _, d in _history(context, m.id, since, demand.date, exclude=assignment.id)
                if is_weekend(d.date)
            )
            + (1 if m.id == employee.id else 0)
            for m in team
        }
        mean = sum(counts.values()) / len(counts)
        own = counts.get(employee.id, 0)
        if mean <= 0 or own <= mean * self.cfg.weekend_ratio:
            return []

        lighter = [m.name for m in team if counts[m.id] < mean * self.cfg.underload_ratio]
        return [
            ConstraintViolation(
                constraint_id=FAIRNESS_ID,
                severity=Severity.WARNING,
                message=(
                    f"Weekend assignment imbalance: Employee {employee.name} has {own} weekend "
                    f"assignments vs team average of {mean:.1f}"
                ),
                affected_assignments=(assignment.id,),
                suggested_actions=(
                    f"Consider assigning weekends to: {', '.join(lighter)}",
                    "Implement weekend rotation schedule",
                    "Review weekend assignment distribution",
                ),
            )
        ]


# ----------------------------
# PREFERENCE
# ----------------------------
class PreferenceValidator:
    """Deviation from the employee's stated days off, shift types and stations."""

    name = "Preference"

    def __init__(self, cfg: PreferenceConfig | None = None) -> None:
        self.cfg = cfg or PreferenceConfig()

    def validate(
        self, assignment: Assignment, context: ValidationContext
    ) -> list[ConstraintViolation]:
        employee = context.employee(assignment.employee_id)
        demand = context.demand(assignment.demand_id)
        if employee is None or demand is None or employee.preferences is None:
            return []
        prefs = employee.preferences
        violations: list[ConstraintViolation] = []

        # (1) Preferred day off
        weekday = demand.date.weekday()
        if weekday in prefs.preferred_days_off:
            violations.append(
                self._violation(
                    f"Employee {employee.name} prefers {_WEEKDAY_NAMES[weekday]} off",
                    assignment,
                    self.cfg.preferred_day_off_severity,
                    ("Assign to an employee available on this day", "Offer a swap of days"),
                )
            )

        # (2) Preferred shift types
        template = context.shift_template(demand.shift_template_id)
        if (
            template is not None
            and prefs.preferred_shifts
            and template.shift_type not in prefs.preferred_shifts
        ):
            preferred = ", ".join(str(s) for s in prefs.preferred_shifts)
            violations.append(
                self._violation(
                    f"Employee {employee.name} prefers {preferred} shifts, "
                    f"assigned {template.shift_type}",
                    assignment,
                    self.cfg.unpreferred_shift_severity,
                    ("Consider employee preferences for shift type",),
                )
            )

        # (3) Preferred stations
        if prefs.preferred_stations and demand.station_id not in prefs.preferred_stations:
            station = context.station(demand.station_id)
            label = station.name if station else demand.station_id
            violations.append(
                self._violation(
                    f"Employee {employee.name} is assigned outside preferred stations ({label})",
                    assignment,
                    self.cfg.unpreferred_station_severity,
                    ("Consider a preferred station for this employee",),
                )
            )
        return violations

    @staticmethod
    def _violation(
        message: str, assignment: Assignment, severity: Severity, actions: tuple[str, ...]
    ) -> ConstraintViolation:
        return ConstraintViolation(
            constraint_id=PREFERENCE_ID,
            severity=severity,
            message=message,
            affected_assignments=(assignment.id,),
            suggested_actions=actions,
        )


# ----------------------------
# CONTINUITY
# ----------------------------
def station_visits(
    context: ValidationContext,
    employee: Employee,
    station_id: str,
    until: date,
    window_days: int,
    exclude: str = "",
) -> list[date]:
    """Dates the employee worked `station_id` within the trailing window before `until`."""
    since = until - timedelta(days=window_days)
    return sorted(
        d.date
        for _, d in _history(context, employee.id, since, until - timedelta(days=1), exclude)
        if d.station_id == station_id
    )


class ContinuityValidator:
    """
    @brief
    Familiarity of the employee with the station.

    @details
    Counts visits to the station over the trailing history window. Too few
    visits is reported as info, escalated to warning for high or critical
    priority stations where unfamiliar staff carry more risk.
    """

    name = "Continuity"

    def __init__(self, cfg: ContinuityConfig | None = None) -> None:
        self.cfg = cfg or ContinuityConfig()

    def validate(
        self, assignment: Assignment, context: ValidationContext
    ) -> list[ConstraintViolation]:
        employee = context.employee(assignment.employee_id)
        demand = context.demand(assignment.demand_id)
        if employee is None or demand is None:
            return []
        station = context.station(demand.station_id)
        if station is None:
            return []

        visits = station_visits(
            context,
            employee,
            station.id,
            demand.date,
            self.cfg.history_window_days,
            exclude=assignment.id,
        )
        if len(visits) >= self.cfg.min_station_visits:
            return []

        severity = (
            Severity.WARNING
            if station.priority in (Priority.HIGH, Priority.CRITICAL)
            else Severity.INFO
        )
        return [
            ConstraintViolation(
                constraint_id=CONTINUITY_ID,
                severity=severity,
                message=(
                    f"Employee {employee.name} worked station {station.name} {len(visits)} "
                    f"time(s) in the last {self.cfg.history_window_days} days"
                ),
                affected_assignments=(assignment.id,),
                suggested_actions=(
                    "Prefer an employee familiar with the station",
                    "Pair with an experienced colleague",
                ),
            )
        ]


# ----------------------------
# FACTORIES
# ----------------------------
def fairness_constraint(cfg: FairnessConfig | None = None) -> Constraint:
    return Constraint(
        id=FAIRNESS_ID,
        name=FairnessValidator.name,
        type=ConstraintType.SOFT,
        priority=80,
        severity=Severity.WARNING,
        validator=FairnessValidator(cfg),
        description="Promotes fair distribution of workload, shift types and weekends",
    )


def preference_constraint(cfg: PreferenceConfig | None = None) -> Constraint:
    return Constraint(
        id=PREFERENCE_ID,
        name=PreferenceValidator.name,
        type=ConstraintType.SOFT,
        priority=60,
        severity=Severity.INFO,
        validator=PreferenceValidator(cfg),
        description="Respects stated shift, station and day-off preferences",
    )


def continuity_constraint(cfg: ContinuityConfig | None = None) -> Constraint:
    return Constraint(
        id=CONTINUITY_ID,
        name=ContinuityValidator.name,
        type=ConstraintType.SOFT,
        priority=40,
        severity=Severity.INFO,
        validator=ContinuityValidator(cfg),
        description="Favours employees familiar with the station",
    )


__all__ = [
    "CONTINUITY_ID",
    "FAIRNESS_ID",
    "PREFERENCE_ID",
    "ContinuityValidator",
    "FairnessValidator",
    "PreferenceValidator",
    "continuity_constraint",
    "fairness_constraint",
    "preference_constraint",
    "station_visits",
]
