# src/shiftwise/constraints/hard.py
"""
@brief
Hard constraints: skill matching, availability and labor law.

@details
Breaches are reported as critical or error violations and make an assignment
infeasible. Two findings stay at warning level and never block: a
certification that expires soon, and a run of consecutive working days above
the cap. Validators never raise for rule breaches; an unresolvable
reference becomes a critical "Cannot validate ..." violation.
"""

from __future__ import annotations

from datetime import timedelta

from shiftwise.constraints.base import (
    Constraint,
    find_conflicting_assignments,
    format_hours,
    missing_reference,
    shift_window,
    week_start,
    windows_overlap,
)
from shiftwise.constraints.context import ValidationContext
from shiftwise.constraints.violation import ConstraintViolation
from shiftwise.schemas.config import LaborLawConfig
from shiftwise.schemas.models import Assignment, ConstraintType, Severity


SKILL_MATCHING_ID = "skill-matching"
AVAILABILITY_ID = "availability"
LABOR_LAW_ID = "labor-law"


# ----------------------------
# SKILL MATCHING
# ----------------------------
class SkillMatchingValidator:
    """
    @brief
    Checks the employee's certifications against the station requirements.

    @details
    For every required skill of the station:
        - missing record on a mandatory skill       -> critical
        - level below minimum                       -> critical (mandatory) / error (optional)
        - `valid_until` before the as-of date       -> critical
        - expiring within the warning window        -> warning
    """

    name = "Skill Matching"

    def __init__(self, cfg: LaborLawConfig | None = None) -> None:
        self.cfg = cfg or LaborLawConfig()

    def validate(
        self, assignment: Assignment, context: ValidationContext
    ) -> list[ConstraintViolation]:
        # (1) Resolve employee, demand and station
        employee = context.employee(assignment.employee_id)
        if employee is None:
            return [missing_reference(SKILL_MATCHING_ID, self.name, "Employee", assignment)]
        demand = context.demand(assignment.demand_id)
        if demand is None:
            return [missing_reference(SKILL_MATCHING_ID, self.name, "Demand", assignment)]
        station = context.station(demand.station_id)
        if station is None:
            return [missing_reference(SKILL_MATCHING_ID, self.name, "Station", assignment)]

        held = {s.skill_id: s for s in context.employee_skills(employee.id)}
        violations: list[ConstraintViolation] = []

        # (2) Walk every requirement of the station
        for required in station.required_skills:
            record = held.get(required.skill_id)
            skill = context.skill(required.skill_id)
            skill_label = skill.name if skill else required.skill_id

            if record is None:
                if required.mandatory:
                    violations.append(
                        self._violation(
                            f"Employee {employee.name} lacks required skill {skill_label} "
                            f"for station {station.name}",
                            assignment,
                            Severity.CRITICAL,
                            (
                                "Assign employee with required skill",
                                "Provide training for employee to acquire skill",
                                "Consider alternative station assignment",
                            ),
                        )
                    )
                continue

            if record.level < required.min_level:
                violations.append(
                    self._violation(
                        f"Employee {employee.name} has insufficient {skill_label} level "
                        f"({record.level}) for station {station.name} "
                        f"(requires {required.min_level})",
                        assignment,
                        Severity.CRITICAL if required.mandatory else Severity.ERROR,
                        (
                            "Assign employee with higher skill level",
                            "Provide additional training to improve skill level",
                            "Consider supervised assignment with experienced colleague",
                        ),
                    )
                )

            # (3) Certification validity relative to the as-of date
            if record.valid_until is None:
                continue
            days_left = (record.valid_until - context.as_of).days
            if days_left < 0:
                violations.append(
                    self._violation(
                        f"Employee {employee.name} has expired {skill_label} certification "
                        f"for station {station.name}",
                        assignment,
                        Severity.CRITICAL,
                        (
                            "Renew skill certification",
                            "Assign employee with valid certification",
                            "Provide refresher training",
                        ),
                    )
                )
            elif 0 < days_left <= self.cfg.expiry_warning_days:
                violations.append(
                    self._violation(
                        f"Employee {employee.name} {skill_label} certification expires "
                        f"in {days_left} days",
                        assignment,
                        Severity.WARNING,
                        (
                            "Schedule certification renewal",
                            "Plan for alternative coverage",
                            "Consider training backup employees",
                        ),
                    )
                )

        return violations

    @staticmethod
    def _violation(
        message: str, assignment: Assignment, severity: Severity, actions: tuple[str, ...]
    ) -> ConstraintViolation:
        return ConstraintViolation(
            constraint_id=SKILL_MATCHING_ID,
            severity=severity,
            message=message,
            affected_assignments=(assignment.id,),
            suggested_actions=actions,
        )


# ----------------------------
# AVAILABILITY
# ----------------------------
class AvailabilityValidator:
    """Employee must be active, not on approved leave and not double-booked in time."""

    name = "Availability"

    def validate(
        self, assignment: Assignment, context: ValidationContext
    ) -> list[ConstraintViolation]:
        employee = context.employee(assignment.employee_id)
        if employee is None:
            return [missing_reference(AVAILABILITY_ID, self.name, "Employee", assignment)]
        demand = context.demand(assignment.demand_id)
        if demand is None:
            return [missing_reference(AVAILABILITY_ID, self.name, "Demand", assignment)]

        violations: list[ConstraintViolation] = []

        # (1) Active status
        if not employee.active:
            violations.append(
                ConstraintViolation(
                    constraint_id=AVAILABILITY_ID,
                    severity=Severity.CRITICAL,
                    message=f"Employee {employee.name} is not active and cannot be assigned",
                    affected_assignments=(assignment.id,),
                    suggested_actions=(
                        "Assign an active employee",
                        "Reactivate employee if appropriate",
                    ),
                )
            )

        # (2) Approved absences on the demand date
        absences = context.employee_absences_on_date(employee.id, demand.date)
        if absences:
            kinds = ", ".join(sorted({str(a.type) for a in absences}))
            violations.append(
                ConstraintViolation(
                    constraint_id=AVAILABILITY_ID,
                    severity=Severity.CRITICAL,
                    message=(
                        f"Employee {employee.name} has approved absence(s) on "
                        f"{demand.date.isoformat()}: {kinds}"
                    ),
                    affected_assignments=(assignment.id,),
                    suggested_actions=(
                        "Assign a different employee",
                        "Reschedule the shift if possible",
                        "Check if absence can be modified",
                    ),
                )
            )

        # (3) Time-overlapping assignments on the same date
        template = context.shift_template(demand.shift_template_id)
        if template is None:
            return violations
        for other in find_conflicting_assignments(
            employee.id, demand.date, context, exclude=(assignment.id,)
        ):
            other_template = context.template_for(other)
            if other_template is None or not windows_overlap(template, other_template):
                continue
            violations.append(
                ConstraintViolation(
                    constraint_id=AVAILABILITY_ID,
                    severity=Severity.CRITICAL,
                    message=(
                        f"Employee {employee.name} has conflicting assignment: "
                        f"{template.start_time}-{template.end_time} overlaps with "
                        f"{other_template.start_time}-{other_template.end_time}"
                    ),
                    affected_assignments=(assignment.id, other.id),
                    suggested_actions=(
                        "Assign a different employee to one of the shifts",
                        "Adjust shift times to eliminate overlap",
                        "Cancel one of the conflicting assignments",
                    ),
                )
            )
        return violations


# ----------------------------
# LABOR LAW
# ----------------------------
class LaborLawValidator:
    """
    @brief
    Working-time rules derived from the employee contract.

    @details
    Daily and weekly totals exclude the validated assignment itself, so the
    result is the same whether or not it is already part of the context.
    """

    name = "Labor Law"

    def __init__(self, cfg: LaborLawConfig | None = None) -> None:
        self.cfg = cfg or LaborLawConfig()

    def validate(
        self, assignment: Assignment, context: ValidationContext
    ) -> list[ConstraintViolation]:
        # (1) Resolve references
        employee = context.employee(assignment.employee_id)
        if employee is None:
            return [missing_reference(LABOR_LAW_ID, self.name, "Employee", assignment)]
        demand = context.demand(assignment.demand_id)
        if demand is None:
            return [missing_reference(LABOR_LAW_ID, self.name, "Demand", assignment)]
        template = context.shift_template(demand.shift_template_id)
        if template is None:
            return [missing_reference(LABOR_LAW_ID, self.name, "Shift template", assignment)]

        violations: list[ConstraintViolation] = []
        shift_hours = template.duration_hours

        # (2) Single shift longer than the daily limit
        if shift_hours > employee.max_hours_per_day:
            violations.append(
                self._violation(
                    f"Shift duration ({format_hours(shift_hours)}h) exceeds employee "
                    f"{employee.name}'s daily limit ({format_hours(employee.max_hours_per_day)}h)",
                    (assignment.id,),
                    Severity.CRITICAL,
                    (
                        "Assign to employee with higher daily limit",
                        "Split shift into shorter segments",
                        "Review employee contract terms",
                    ),
                )
            )

        # (3) Daily total including other shifts that day
        same_day = find_conflicting_assignments(
            employee.id, demand.date, context, exclude=(assignment.id,)
        )
        total_day = sum(context.assignment_hours(a) for a in same_day) + shift_hours
        if total_day > employee.max_hours_per_day:
            violations.append(
                self._violation(
                    f"Total daily hours ({format_hours(total_day)}h) would exceed employee "
                    f"{employee.name}'s limit ({format_hours(employee.max_hours_per_day)}h)",
                    (assignment.id,),
                    Severity.CRITICAL,
                    (
                        "Remove or reassign other shifts on the same day",
                        "Assign to a different employee",
                        "Reduce shift duration",
                    ),
                )
            )

        # (4) Weekly total over the ISO week (Monday start)
        monday = week_start(demand.date)
        total_week = shift_hours + sum(
            context.assignment_hours(a)
            for offset in range(7)
            for a in find_conflicting_assignments(
                employee.id, monday + timedelta(days=offset), context, exclude=(assignment.id,)
            )
        )
        if total_week > employee.weekly_hours:
            violations.append(
                self._violation(
                    f"Total weekly hours ({format_hours(total_week)}h) would exceed employee "
                    f"{employee.name}'s limit ({format_hours(employee.weekly_hours)}h)",
                    (assignment.id,),
                    Severity.ERROR,
                    (
                        "Reassign to employee with available weekly hours",
                        "Reduce shift duration",
                        "Spread assignments across multiple weeks",
                    ),
                )
            )

        # (5) Rest periods against the adjacent days
        violations.extend(self._check_rest(assignment, employee, demand, template, context))

        # (6) Consecutive working days
        violations.extend(self._check_consecutive_days(assignment, employee, demand, context))
        return violations

    def _check_rest(
        self, assignment, employee, demand, template, context
    ) -> list[ConstraintViolation]:
        start, end = shift_window(template, demand.date)
        violations: list[ConstraintViolation] = []

        for offset in (-1, 1):
            day = demand.date + timedelta(days=offset)
            for other in find_conflicting_assignments(
                employee.id, day, context, exclude=(assignment.id,)
            ):
                other_template = context.template_for(other)
                if other_template is None:
                    continue
                other_start, other_end = shift_window(other_template, day)
                # Gap runs from the earlier shift's end to the later shift's start
                gap = (start - other_end) if offset < 0 else (other_start - end)
                rest_hours = gap.total_seconds() / 3600.0
                if rest_hours >= employee.min_rest_hours:
                    continue
                violations.append(
                    self._violation(
                        f"Insufficient rest period ({format_hours(rest_hours)}h) between shifts "
                        f"for employee {employee.name} "
                        f"(minimum {format_hours(employee.min_rest_hours)}h required)",
                        (assignment.id, other.id),
                        Severity.CRITICAL,
                        (
                            "Adjust shift start time" if offset < 0 else "Adjust shift end time",
                            "Assign to different employee",
                            "Add rest day between shifts",
                        ),
                    )
                )
        return violations

    def _check_consecutive_days(
        self, assignment, employee, demand, context
    ) -> list[ConstraintViolation]:
        prefs = employee.preferences
        cap = (
            prefs.max_consecutive_days
            if prefs is not None and prefs.max_consecutive_days
            else self.cfg.default_max_consecutive_days
        )

        # Walk outwards from the demand date until a day without work
        streak = 1
        for step in (-1, 1):
            for i in range(1, cap + 2):
                day = demand.date + timedelta(days=step * i)
                if not find_conflicting_assignments(
                    employee.id, day, context, exclude=(assignment.id,)
                ):
                    break
                streak += 1

        if streak <= cap:
            return []
        return [
            self._violation(
                f"Employee {employee.name} would work {streak} consecutive days, "
                f"exceeding limit of {cap}",
                (assignment.id,),
                Severity.WARNING,
                (
                    "Provide rest day within the sequence",
                    "Assign to different employee",
                    "Adjust employee preferences if appropriate",
                ),
            )
        ]

    @staticmethod
    def _violation(
        message: str,
        affected: tuple[str, ...],
        severity: Severity,
        actions: tuple[str, ...],
    ) -> ConstraintViolation:
        return ConstraintViolation(
            constraint_id=LABOR_LAW_ID,
            severity=severity,
            message=message,
            affected_assignments=affected,
            suggested_actions=actions,
        )


# ----------------------------
# FACTORIES
# ----------------------------
def skill_matching_constraint(cfg: LaborLawConfig | None = None) -> Constraint:
    return Constraint(
        id=SKILL_MATCHING_ID,
        name=SkillMatchingValidator.name,
        type=ConstraintType.HARD,
        priority=100,
        severity=Severity.CRITICAL,
        validator=SkillMatchingValidator(cfg),
        description=(
            "Ensures employees have the required skills and certifications "
            "for their assigned stations"
        ),
    )


def availability_constraint() -> Constraint:
    return Constraint(
        id=AVAILABILITY_ID,
        name=AvailabilityValidator.name,
        type=ConstraintType.HARD,
        priority=95,
        severity=Severity.CRITICAL,
        validator=AvailabilityValidator(),
        description="Ensures employees are active, present and not double-booked",
    )


def labor_law_constraint(cfg: LaborLawConfig | None = None) -> Constraint:
    return Constraint(
        id=LABOR_LAW_ID,
        name=LaborLawValidator.name,
        type=ConstraintType.HARD,
        priority=90,
        severity=Severity.CRITICAL,
        validator=LaborLawValidator(cfg),
        description="Ensures compliance with working-time limits and rest periods",
    )


__all__ = [
    "AVAILABILITY_ID",
    "LABOR_LAW_ID",
    "SKILL_MATCHING_ID",
    "AvailabilityValidator",
    "LaborLawValidator",
    "SkillMatchingValidator",
    "availability_constraint",
    "labor_law_constraint",
    "skill_matching_constraint",
]
