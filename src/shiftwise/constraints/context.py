# src/shiftwise/constraints/context.py
from __future__ import annotations

import dataclasses
from collections import defaultdict
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date, timedelta
from types import MappingProxyType
from typing import Any

from shiftwise.schemas.models import (
    Absence,
    Assignment,
    Employee,
    EmployeeSkill,
    ShiftDemand,
    ShiftTemplate,
    Skill,
    Station,
)


@dataclass(frozen=True, slots=True)
class ValidationContext:
    """
    @brief
    Immutable in-memory snapshot of every fact the constraints read.

    @details
    Collections are stored as tuples and indexed once at construction, so
    lookups by id are O(1) and repeated derived queries stay cheap during
    batch evaluation. The context is never mutated: `with_*` methods return
    a new instance, which is how batch validation and what-if simulation
    layer speculative data on top of the source snapshot.

    Missing ids resolve to None; callers decide whether that is an error.
    """

    employees: tuple[Employee, ...] = ()
    demands: tuple[ShiftDemand, ...] = ()
    stations: tuple[Station, ...] = ()
    shift_templates: tuple[ShiftTemplate, ...] = ()
    absences: tuple[Absence, ...] = ()
    employee_skill_records: tuple[EmployeeSkill, ...] = ()
    assignments: tuple[Assignment, ...] = ()
    skills: tuple[Skill, ...] = ()
    as_of: date = field(default_factory=date.today)
    metadata: Mapping[str, Any] = field(default_factory=dict)

    _employees_by_id: dict[str, Employee] = field(init=False, repr=False, compare=False)
    _demands_by_id: dict[str, ShiftDemand] = field(init=False, repr=False, compare=False)
    _stations_by_id: dict[str, Station] = field(init=False, repr=False, compare=False)
    _templates_by_id: dict[str, ShiftTemplate] = field(init=False, repr=False, compare=False)
    _skills_by_id: dict[str, Skill] = field(init=False, repr=False, compare=False)
    _skills_by_employee: dict[str, list[EmployeeSkill]] = field(
        init=False, repr=False, compare=False
    )
    _active_by_employee: dict[str, list[Assignment]] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        # (1) Normalise collections to tuples so callers cannot alias lists
        for name in (
            "employees",
            "demands",
            "stations",
            "shift_templates",
            "absences",
            "employee_skill_records",
            "assignments",
            "skills",
        ):
            object.__setattr__(self, name, tuple(getattr(self, name)))
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))

        # (2) Build id indexes
        object.__setattr__(self, "_employees_by_id", {e.id: e for e in self.employees})
        object.__setattr__(self, "_demands_by_id", {d.id: d for d in self.demands})
        object.__setattr__(self, "_stations_by_id", {s.id: s for s in self.stations})
        object.__setattr__(self, "_templates_by_id", {t.id: t for t in self.shift_templates})
        object.__setattr__(self, "_skills_by_id", {s.id: s for s in self.skills})

        # (3) Group per-employee records
        by_employee: dict[str, list[EmployeeSkill]] = defaultdict(list)
        for record in self.employee_skill_records:
            by_employee[record.employee_id].append(record)
        object.__setattr__(self, "_skills_by_employee", dict(by_employee))

        active: dict[str, list[Assignment]] = defaultdict(list)
        for a in self.assignments:
            if a.is_active:
                active[a.employee_id].append(a)
        object.__setattr__(self, "_active_by_employee", dict(active))

    # ---------- Lookups ----------
    def employee(self, employee_id: str) -> Employee | None:
        return self._employees_by_id.get(employee_id)

    def demand(self, demand_id: str) -> ShiftDemand | None:
        return self._demands_by_id.get(demand_id)

    def station(self, station_id: str) -> Station | None:
        return self._stations_by_id.get(station_id)

    def shift_template(self, template_id: str) -> ShiftTemplate | None:
        return self._templates_by_id.get(template_id)

    def skill(self, skill_id: str) -> Skill | None:
        return self._skills_by_id.get(skill_id)

    def template_for(self, assignment: Assignment) -> ShiftTemplate | None:
        demand = self.demand(assignment.demand_id)
        return self.shift_template(demand.shift_template_id) if demand else None

    # ---------- Derived queries ----------
    def employee_skills(self, employee_id: str) -> list[EmployeeSkill]:
        return list(self._skills_by_employee.get(employee_id, ()))

    def employee_assignments(self, employee_id: str) -> list[Assignment]:
        """Active (proposed or confirmed) assignments of an employee."""
        return list(self._active_by_employee.get(employee_id, ()))

    def demand_assignments(self, demand_id: str) -> list[Assignment]:
        return [a for a in self.assignments if a.demand_id == demand_id and a.is_active]

    def employee_assignments_on_date(self, employee_id: str, day: date) -> list[Assignment]:
        result = []
        for a in self._active_by_employee.get(employee_id, ()):
            demand = self.demand(a.demand_id)
            if demand is not None and demand.date == day:
                result.append(a)
        return result

    def assignment_hours(self, assignment: Assignment) -> float:
        """Shift length of an assignment; 0 when its demand or template is unknown."""
        template = self.template_for(assignment)
        return template.duration_hours if template else 0.0

    def employee_hours_on_date(self, employee_id: str, day: date) -> float:
        return sum(
            self.assignment_hours(a) for a in self.employee_assignments_on_date(employee_id, day)
        )

    def employee_weekly_hours(self, employee_id: str, week_start: date) -> float:
        """Hours over the seven calendar days starting at `week_start`."""
        return sum(
            self.employee_hours_on_date(employee_id, week_start + timedelta(days=i))
            for i in range(7)
        )

    def employee_absences(self, employee_id: str) -> list[Absence]:
        """Approved absences only; pending requests never block."""
        return [a for a in self.absences if a.employee_id == employee_id and a.approved]

    def employee_absences_on_date(self, employee_id: str, day: date) -> list[Absence]:
        return [a for a in self.employee_absences(employee_id) if a.covers(day)]

    def is_employee_available(self, employee_id: str, day: date) -> bool:
        employee = self.employee(employee_id)
        if employee is None or not employee.active:
            return False
        return not self.employee_absences_on_date(employee_id, day)

    def team_members(self, team: str) -> list[Employee]:
        return [e for e in self.employees if e.team == team and e.active]

    # ---------- Copy-on-write ----------
    def with_additional_assignments(self, assignments: Iterable[Assignment]) -> ValidationContext:
        return self.replace(assignments=(*self.assignments, *assignments))

    def with_metadata(self, **metadata: Any) -> ValidationContext:
        return self.replace(metadata={**self.metadata, **metadata})

    def replace(self, **changes: Any) -> ValidationContext:
        """Return a new context with the given collections or fields swapped."""
        return dataclasses.replace(self, **changes)


__all__ = ["ValidationContext"]
