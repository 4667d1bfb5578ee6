"""
@brief
Result models produced by the explanation engine and the simulation service.

@details
Explanation side: reasoning steps, alternatives, per-constraint outcomes and
the decomposed score, plus the scoring inputs (workload, station history,
candidate pool). Simulation side: scenario modifications, coverage reports,
impact deltas, recommended actions, risk assessment and scenario comparison.
"""

from __future__ import annotations

import datetime as _dt
from datetime import date, datetime, timezone
from enum import StrEnum
from typing import Any

from pydantic import Field, model_validator

from shiftwise.constraints.violation import ConstraintViolation
from shiftwise.schemas.models import (
    AbsenceType,
    ConstraintType,
    Priority,
    RiskLevel,
    _FrozenModel,
)
from shiftwise.schemas.plan import CoverageGap, CoverageStatus


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ------------------------------------------------------------
# Explanation inputs
# ------------------------------------------------------------
class EmployeeWorkload(_FrozenModel):
    current_weekly_hours: float = Field(0.0, ge=0)
    contracted_hours: float = Field(40.0, gt=0)
    assignments_this_week: int = Field(0, ge=0)


class StationHistory(_FrozenModel):
    station_id: str
    times_worked: int = Field(0, ge=0)
    last_worked: date | None = None
    proficiency: float = Field(0.0, ge=0, le=1)


class ScoringContext(_FrozenModel):
    employee_workload: EmployeeWorkload | None = None
    station_history: StationHistory | None = None


class AvailabilityStatus(_FrozenModel):
    available: bool = True
    conflicts: list[str] = Field(default_factory=list)


class AssignmentCandidate(_FrozenModel):
    """A considered employee for a demand, scored by the caller's planner."""

    employee_id: str
    employee_name: str = ""
    score: float = Field(0.0, ge=0, le=100)
    availability: AvailabilityStatus = Field(default_factory=AvailabilityStatus)
    violations: list[ConstraintViolation] = Field(default_factory=list)


# ------------------------------------------------------------
# Explanation outputs
# ------------------------------------------------------------
class ReasoningStep(_FrozenModel):
    step: int = Field(..., ge=1)
    decision: str
    factors: list[str] = Field(default_factory=list)
    rationale: str


class AlternativeExplanation(_FrozenModel):
    employee_id: str
    employee_name: str = ""
    score: float
    reason: str


class ConstraintExplanation(_FrozenModel):
    constraint_id: str
    name: str
    type: ConstraintType
    satisfied: bool
    impact: str | None = None


class ScoreBreakdown(_FrozenModel):
    total: float = Field(..., ge=0, le=100)
    skill_match: float = Field(..., ge=0, le=100)
    availability: float = Field(..., ge=0, le=100)
    fairness: float = Field(..., ge=0, le=100)
    preferences: float = Field(..., ge=0, le=100)
    continuity: float = Field(..., ge=0, le=100)


class AssignmentExplanation(_FrozenModel):
    assignment_id: str
    employee_id: str
    demand_id: str
    category: str
    summary: str
    reasoning: list[ReasoningStep]
    alternatives: list[AlternativeExplanation] = Field(default_factory=list)
    constraints: list[ConstraintExplanation] = Field(default_factory=list)
    score: ScoreBreakdown
    generated_at: datetime = Field(default_factory=_utc_now)


# ------------------------------------------------------------
# Simulation
# ------------------------------------------------------------
class ModificationType(StrEnum):
    ADD_ABSENCE = "add_absence"
    REMOVE_ABSENCE = "remove_absence"
    CHANGE_DEMAND = "change_demand"
    MODIFY_SKILLS = "modify_skills"


class ScenarioModification(_FrozenModel):
    """
    @brief
    One hypothetical perturbation of the snapshot.

    @details
    Fields used per type:
        add_absence    : employee_id, date_start, date_end, absence_type
        remove_absence : absence_id
        change_demand  : demand_id, required_count and/or priority
        modify_skills  : employee_id, skill_id, new_level
    """

    type: ModificationType
    employee_id: str | None = None
    absence_id: str | None = None
    absence_type: AbsenceType = AbsenceType.SICK
    date_start: date | None = None
    date_end: date | None = None
    demand_id: str | None = None
    required_count: int | None = Field(None, ge=1)
    priority: Priority | None = None
    skill_id: str | None = None
    new_level: int | None = Field(None, ge=1, le=10)

    @model_validator(mode="after")
    def _check_fields(self) -> ScenarioModification:
        required: dict[str, tuple[str, ...]] = {
            ModificationType.ADD_ABSENCE: ("employee_id", "date_start", "date_end"),
            ModificationType.REMOVE_ABSENCE: ("absence_id",),
            ModificationType.CHANGE_DEMAND: ("demand_id",),
            ModificationType.MODIFY_SKILLS: ("employee_id", "skill_id", "new_level"),
        }
        missing = [name for name in required[self.type] if getattr(self, name) is None]
        if missing:
            raise ValueError(f"{self.type} modification requires: {', '.join(missing)}")
        return self


class WhatIfScenario(_FrozenModel):
    id: str
    name: str = ""
    description: str | None = None
    base_date: date
    modifications: list[ScenarioModification] = Field(default_factory=list)
    horizon_days: int | None = Field(None, ge=1)


class StationCoverage(_FrozenModel):
    station_id: str
    total_demands: int = 0
    filled_demands: int = 0
    coverage_percentage: float = 0.0


class CoverageReport(CoverageStatus):
    start: _dt.date | None = None
    end: _dt.date | None = None
    station_coverage: list[StationCoverage] = Field(default_factory=list)

    def critical_gaps(self) -> list[CoverageGap]:
        return [g for g in self.gaps if g.criticality == Priority.CRITICAL]

    def high_gaps(self) -> list[CoverageGap]:
        return [g for g in self.gaps if g.criticality == Priority.HIGH]


class RecommendedAction(_FrozenModel):
    type: str
    priority: Priority
    description: str
    estimated_impact: str = ""


class ScenarioImpact(_FrozenModel):
    coverage_change: float
    new_gaps: list[CoverageGap] = Field(default_factory=list)
    resolved_gaps: list[CoverageGap] = Field(default_factory=list)
    affected_stations: list[str] = Field(default_factory=list)
    baseline_risk: float = 0.0
    scenario_risk: float = 0.0

    @property
    def risk_increase(self) -> float:
        return self.scenario_risk - self.baseline_risk


class SimulationResult(_FrozenModel):
    scenario_id: str
    baseline: CoverageReport
    scenario: CoverageReport
    impact: ScenarioImpact
    recommended_actions: list[RecommendedAction] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    executed_at: datetime = Field(default_factory=_utc_now)


class RiskAssessment(_FrozenModel):
    level: RiskLevel
    score: float = Field(..., ge=0, le=100)
    critical_factors: list[str] = Field(default_factory=list)
    mitigation_strategies: list[str] = Field(default_factory=list)


class ScenarioDifference(_FrozenModel):
    metric: str
    scenario_a: float
    scenario_b: float
    difference: float
    significance: str


class ScenarioComparison(_FrozenModel):
    scenario_a: SimulationResult
    scenario_b: SimulationResult
    score_a: float
    score_b: float
    recommended_scenario_id: str
    reasoning: str
    confidence: str
    differences: list[ScenarioDifference] = Field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


__all__ = [
    "AlternativeExplanation",
    "AssignmentCandidate",
    "AssignmentExplanation",
    "AvailabilityStatus",
    "ConstraintExplanation",
    "CoverageReport",
    "EmployeeWorkload",
    "ModificationType",
    "ReasoningStep",
    "RecommendedAction",
    "RiskAssessment",
    "ScenarioComparison",
    "ScenarioDifference",
    "ScenarioImpact",
    "ScenarioModification",
    "ScoreBreakdown",
    "ScoringContext",
    "SimulationResult",
    "StationCoverage",
    "StationHistory",
    "WhatIfScenario",
]
