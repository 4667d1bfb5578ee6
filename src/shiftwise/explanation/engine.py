# src/shiftwise/explanation/engine.py
"""
@brief
Human-readable explanation of a scored assignment.

@details
Produces a fixed five-step reasoning chain, the alternatives that were not
chosen, a per-constraint outcome list and a decomposed score. Every piece is
derived from the same inputs, so the explanation is reproducible: the total
always equals the stored assignment score and the sub-scores can be
recomputed from the context alone.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import timedelta

from shiftwise.constraints.base import Constraint, format_hours, week_start
from shiftwise.constraints.context import ValidationContext
from shiftwise.constraints.hard import AVAILABILITY_ID, LABOR_LAW_ID, SKILL_MATCHING_ID
from shiftwise.constraints.manager import ConstraintManager, default_constraints
from shiftwise.constraints.soft import CONTINUITY_ID, FAIRNESS_ID, PREFERENCE_ID, station_visits
from shiftwise.constraints.violation import ConstraintViolation
from shiftwise.errors import NotFoundError
from shiftwise.schemas.config import ContinuityConfig, ExplanationConfig
from shiftwise.schemas.models import (
    Assignment,
    Employee,
    EmployeeSkill,
    ShiftDemand,
    ShiftTemplate,
    Skill,
    Station,
)
from shiftwise.schemas.results import (
    AlternativeExplanation,
    AssignmentCandidate,
    AssignmentExplanation,
    ConstraintExplanation,
    EmployeeWorkload,
    ReasoningStep,
    ScoreBreakdown,
    ScoringContext,
    StationHistory,
)

logger = logging.getLogger(__name__)

# Skill levels above this cap earn no extra skill-match credit
_SKILL_LEVEL_CAP = 3


@dataclass(frozen=True, slots=True)
class ExplanationContext:
    """Everything the engine reads to explain one assignment."""

    assignment: Assignment
    employee: Employee
    demand: ShiftDemand
    station: Station
    employee_skills: Sequence[EmployeeSkill] = ()
    skills: Sequence[Skill] = ()
    alternatives: Sequence[AssignmentCandidate] = ()
    violations: Sequence[ConstraintViolation] = ()
    scoring: ScoringContext = field(default_factory=ScoringContext)
    constraints: Sequence[Constraint] = ()
    shift_template: ShiftTemplate | None = None

    @classmethod
    def from_validation(
        cls,
        assignment: Assignment,
        context: ValidationContext,
        manager: ConstraintManager,
        alternatives: Sequence[AssignmentCandidate] = (),
        continuity: ContinuityConfig | None = None,
    ) -> ExplanationContext:
        """
        @brief
        Assemble an explanation context from a validation snapshot.

        @details
        Resolves the referenced entities, evaluates the assignment through
        the manager and derives workload and station history.

        @raises
            NotFoundError
                If the employee, demand or station is not in the context.
        """
        employee = context.employee(assignment.employee_id)
        demand = context.demand(assignment.demand_id)
        station = context.station(demand.station_id) if demand else None
        for label, value, ident in (
            ("Employee", employee, assignment.employee_id),
            ("Demand", demand, assignment.demand_id),
            ("Station", station, demand.station_id if demand else "?"),
        ):
            if value is None:
                raise NotFoundError(
                    f"{label} {ident} not found for assignment {assignment.id}",
                    source="ExplanationContext.from_validation",
                    suggested_action=f"Load the {label.lower()} into the validation context.",
                    entity_type=label.lower(),
                    entity_id=ident,
                )

        return cls(
            assignment=assignment,
            employee=employee,
            demand=demand,
            station=station,
            employee_skills=context.employee_skills(employee.id),
            skills=context.skills,
            alternatives=alternatives,
            violations=manager.evaluate(assignment, context),
            scoring=scoring_context_for(assignment, context, continuity),
            constraints=manager.enabled_constraints(),
            shift_template=context.shift_template(demand.shift_template_id),
        )


def scoring_context_for(
    assignment: Assignment,
    context: ValidationContext,
    continuity: ContinuityConfig | None = None,
) -> ScoringContext:
    """Current-week workload and trailing station history of the assigned employee."""
    continuity = continuity or ContinuityConfig()
    employee = context.employee(assignment.employee_id)
    demand = context.demand(assignment.demand_id)
    if employee is None or demand is None:
        return ScoringContext()

    monday = week_start(demand.date)
    week = [
        a
        for offset in range(7)
        for a in context.employee_assignments_on_date(employee.id, monday + timedelta(days=offset))
        if a.id != assignment.id
    ]
    workload = EmployeeWorkload(
        current_weekly_hours=sum(context.assignment_hours(a) for a in week),
        contracted_hours=employee.weekly_hours,
        assignments_this_week=len(week),
    )

    visits = station_visits(
        context,
        employee,
        demand.station_id,
        demand.date,
        continuity.history_window_days,
        exclude=assignment.id,
    )
    # Two visits a week over the window counts as full proficiency
    history = StationHistory(
        station_id=demand.station_id,
        times_worked=len(visits),
        last_worked=visits[-1] if visits else None,
        proficiency=min(len(visits) / (continuity.history_window_days / 7 * 2), 1.0),
    )
    return ScoringContext(employee_workload=workload, station_history=history)


def score_category(score: float) -> str:
    if score >= 90:
        return "excellent"
    if score >= 70:
        return "good"
    if score >= 50:
        return "acceptable"
    return "poor"


def _sentence(text: str) -> str:
    """Capitalise the first letter and make sure the text ends a sentence."""
    text = text.strip()
    if not text:
        return text
    text = text[0].upper() + text[1:]
    return text if text[-1] in ".!?" else text + "."


def _fmt(score: float) -> str:
    return format_hours(score)


def _other_candidates(ctx: ExplanationContext) -> list[AssignmentCandidate]:
    return [a for a in ctx.alternatives if a.employee_id != ctx.employee.id]


def _plural(count: int, word: str) -> str:
    return f"{count} {word}" + ("" if count == 1 else "s")


_SATISFIED_MESSAGES = {
    SKILL_MATCHING_ID: "Employee meets all required skill levels for {station}",
    AVAILABILITY_ID: "Employee is available during the requested shift time",
    LABOR_LAW_ID: "Assignment complies with maximum hours and rest period requirements",
    FAIRNESS_ID: "Assignment maintains fair workload distribution across the team",
    PREFERENCE_ID: "Assignment is consistent with the employee's stated preferences",
    CONTINUITY_ID: "Employee is familiar with {station}",
}


class ExplanationEngine:
    """
    @brief
    Builds `AssignmentExplanation` objects.

    @details
    Stateless apart from its configuration; safe to share across threads.
    """

    def __init__(self, cfg: ExplanationConfig | None = None) -> None:
        self.cfg = cfg or ExplanationConfig()

    def generate_explanation(self, ctx: ExplanationContext) -> AssignmentExplanation:
        """
        @brief
        Explain why `ctx.assignment` was made.

        @returns
            Explanation with exactly five reasoning steps, at most
            `max_alternatives` alternatives (never the assigned employee) and
            a score breakdown whose total equals the assignment score.
        """
        score = self.score_breakdown(ctx)
        category = score_category(ctx.assignment.score)
        explanation = AssignmentExplanation(
            assignment_id=ctx.assignment.id,
            employee_id=ctx.employee.id,
            demand_id=ctx.demand.id,
            category=category,
            summary=_sentence(
                f"{ctx.employee.name} assigned to {ctx.station.name} on "
                f"{ctx.demand.date.isoformat()} with a {category} score of "
                f"{_fmt(ctx.assignment.score)}/100"
            ),
            reasoning=self.reasoning_chain(ctx),
            alternatives=self.explain_alternatives(ctx),
            constraints=self.explain_constraints(ctx),
            score=score,
        )
        logger.debug(
            "Explained assignment %s (%s, %d alternatives)",
            ctx.assignment.id,
            category,
            len(explanation.alternatives),
        )
        return explanation

    # ---------- Reasoning chain ----------
    def reasoning_chain(self, ctx: ExplanationContext) -> list[ReasoningStep]:
        steps = [
            ("Analyzed shift demand requirements", self._demand_step(ctx)),
            ("Evaluated available candidates", self._candidate_step(ctx)),
            ("Assessed skill compatibility", self._skill_step(ctx)),
            ("Validated constraints and rules", self._constraint_step(ctx)),
            ("Made final assignment decision", self._final_step(ctx)),
        ]
        return [
            ReasoningStep(
                step=i, decision=decision, rationale=_sentence(rationale), factors=factors
            )
            for i, (decision, (rationale, factors)) in enumerate(steps, start=1)
        ]

    def _demand_step(self, ctx: ExplanationContext) -> tuple[str, list[str]]:
        required = len(ctx.station.required_skills)
        shift = f" ({ctx.shift_template.name})" if ctx.shift_template else ""
        rationale = (
            f"This {ctx.demand.priority} priority shift{shift} at {ctx.station.name} requires "
            f"{_plural(required, 'specific skill')} and needs "
            f"{_plural(ctx.demand.required_count, 'employee')} on {ctx.demand.date.isoformat()}"
        )
        factors = [
            f"Priority: {ctx.demand.priority}",
            f"Station: {ctx.station.name}",
            f"Required skills: {required}",
        ]
        if ctx.demand.notes:
            factors.append(f"Special notes: {ctx.demand.notes}")
        return rationale, factors

    def _candidate_step(self, ctx: ExplanationContext) -> tuple[str, list[str]]:
        # The selected employee counts once whether or not the caller listed them
        others = _other_candidates(ctx)
        total = len(others) + 1
        qualified = sum(1 for a in others if a.score >= self.cfg.qualified_score)
        if ctx.assignment.score >= self.cfg.qualified_score:
            qualified += 1
        rationale = (
            f"Out of {_plural(total, 'potential candidate')}, {qualified} met the minimum "
            f"qualification requirements. {ctx.employee.name} was selected based on the "
            f"highest combined score across all evaluation criteria"
        )
        factors = [
            f"Total candidates evaluated: {total}",
            f"Qualified candidates: {qualified}",
            f"Selected candidate: {ctx.employee.name}",
            f"Selection score: {_fmt(ctx.assignment.score)}/100",
        ]
        return rationale, factors

    def _skill_step(self, ctx: ExplanationContext) -> tuple[str, list[str]]:
        held = {s.skill_id: s for s in ctx.employee_skills}
        names = {s.id: s.name for s in ctx.skills}
        required = ctx.station.required_skills

        matched = [
            r for r in required if r.skill_id in held and held[r.skill_id].level >= r.min_level
        ]
        matched_names = ", ".join(names.get(r.skill_id, r.skill_id) for r in matched)
        rationale = (
            f"{ctx.employee.name} possesses {len(matched)} of {len(required)} required skills"
        )
        rationale += f": {matched_names}." if matched_names else "."
        if len(matched) == len(required):
            rationale += (
                " All skill levels meet or exceed the minimum requirements for this station"
            )
        else:
            missing = len(required) - len(matched)
            rationale += f" {_plural(missing, 'requirement')} at {ctx.station.name} not met"

        factors = []
        for r in required:
            label = names.get(r.skill_id, r.skill_id)
            record = held.get(r.skill_id)
            if record is None:
                factors.append(f"{label}: Not qualified (Level {r.min_level} required)")
            else:
                factors.append(f"{label}: Level {record.level} ({r.min_level} required)")
        return rationale, factors

    def _constraint_step(self, ctx: ExplanationContext) -> tuple[str, list[str]]:
        blocking = [v for v in ctx.violations if v.is_blocking]
        if blocking:
            details = "; ".join(v.message for v in blocking)
            found = _plural(len(blocking), "blocking constraint violation")
            rationale = f"{found} detected: {details}"
        elif ctx.violations:
            rationale = (
                "All hard constraints are satisfied. "
                f"{_plural(len(ctx.violations), 'non-blocking finding')} recorded for review"
            )
        else:
            rationale = (
                "All hard constraints are satisfied including availability, labor law "
                "compliance and skill requirements. No rule violations detected"
            )
        factors = ["Availability check", "Labor law compliance", "Skill requirements"]
        factors.extend(f"Violation: {v.constraint_id} ({v.severity})" for v in ctx.violations)
        return rationale, factors

    def _final_step(self, ctx: ExplanationContext) -> tuple[str, list[str]]:
        score = ctx.assignment.score
        category = score_category(score)
        rationale = (
            f"{ctx.employee.name} was assigned with a {category} score of {_fmt(score)}/100."
        )
        if score >= self.cfg.qualified_score:
            rationale += (
                " This assignment optimizes coverage while maintaining fairness and compliance"
            )
        else:
            rationale += " While not optimal, this assignment was necessary to maintain coverage"
        factors = [
            f"Final score: {_fmt(score)}/100",
            f"Status: {ctx.assignment.status}",
            f"Assignment quality: {category}",
        ]
        return rationale, factors

    # ---------- Alternatives ----------
    def explain_alternatives(self, ctx: ExplanationContext) -> list[AlternativeExplanation]:
        others = sorted(_other_candidates(ctx), key=lambda a: -a.score)
        return [
            AlternativeExplanation(
                employee_id=alt.employee_id,
                employee_name=alt.employee_name,
                score=alt.score,
                reason=self._alternative_reason(alt, ctx),
            )
            for alt in others[: self.cfg.max_alternatives]
        ]

    @staticmethod
    def _alternative_reason(alt: AssignmentCandidate, ctx: ExplanationContext) -> str:
        if alt.violations:
            return _sentence(f"Excluded due to constraint violation: {alt.violations[0].message}")
        if not alt.availability.available:
            conflicts = ", ".join(alt.availability.conflicts) or "scheduling conflict"
            return _sentence(f"Not available: {conflicts}")
        chosen = ctx.assignment.score
        if chosen - alt.score > 20:
            return (
                f"Lower overall score ({_fmt(alt.score)} vs {_fmt(chosen)}) due to skill "
                "match or fairness considerations."
            )
        return (
            f"Slightly lower score ({_fmt(alt.score)} vs {_fmt(chosen)}) in combined "
            "evaluation criteria."
        )

    # ---------- Constraints ----------
    def explain_constraints(self, ctx: ExplanationContext) -> list[ConstraintExplanation]:
        constraints = list(ctx.constraints) or default_constraints()
        explanations = []
        for c in constraints:
            hits = [v for v in ctx.violations if v.constraint_id == c.id]
            if hits:
                impact = "; ".join(v.message for v in hits)
            else:
                impact = _SATISFIED_MESSAGES.get(c.id, f"{c.name} constraint is satisfied")
                impact = impact.format(station=ctx.station.name)
            explanations.append(
                ConstraintExplanation(
                    constraint_id=c.id,
                    name=c.name,
                    type=c.type,
                    satisfied=not hits,
                    impact=impact,
                )
            )
        return explanations

    # ---------- Score ----------
    def score_breakdown(self, ctx: ExplanationContext) -> ScoreBreakdown:
        return ScoreBreakdown(
            total=ctx.assignment.score,
            skill_match=self._skill_match_score(ctx),
            availability=self._availability_score(ctx),
            fairness=self._fairness_score(ctx),
            preferences=self._preference_score(ctx),
            continuity=self._continuity_score(ctx),
        )

    @staticmethod
    def _skill_match_score(ctx: ExplanationContext) -> float:
        held = {s.skill_id: s for s in ctx.employee_skills}
        earned = 0
        possible = 0
        for r in ctx.station.required_skills:
            possible += r.min_level * 10
            record = held.get(r.skill_id)
            if record is not None:
                earned += min(record.level, _SKILL_LEVEL_CAP) * 10
        if possible == 0:
            return 0.0
        return float(min(round(earned / possible * 100), 100))

    @staticmethod
    def _availability_score(ctx: ExplanationContext) -> float:
        return 0.0 if any(v.constraint_id == AVAILABILITY_ID for v in ctx.violations) else 100.0

    @staticmethod
    def _fairness_score(ctx: ExplanationContext) -> float:
        """
        100 while projected weekly hours stay below the contract; from 80 at
        full utilisation it drops 20 points per 10% of overtime.
        """
        workload = ctx.scoring.employee_workload
        if workload is None:
            return 100.0
        shift = ctx.shift_template.duration_hours if ctx.shift_template else 0.0
        utilization = (workload.current_weekly_hours + shift) / workload.contracted_hours
        if utilization < 1.0:
            return 100.0
        return float(max(0, round(80 - (utilization - 1.0) * 200)))

    @staticmethod
    def _preference_score(ctx: ExplanationContext) -> float:
        prefs = ctx.employee.preferences
        score = 70
        if prefs is not None:
            if ctx.station.id in prefs.preferred_stations:
                score += 20
            template = ctx.shift_template
            if template is not None and template.shift_type in prefs.preferred_shifts:
                score += 10
            if ctx.demand.date.weekday() in prefs.preferred_days_off:
                score -= 30
        return float(min(max(score, 0), 100))

    @staticmethod
    def _continuity_score(ctx: ExplanationContext) -> float:
        history = ctx.scoring.station_history
        if (
            history is not None
            and history.station_id == ctx.station.id
            and history.times_worked > 0
        ):
            return float(min(70 + history.proficiency * 30, 100))
        return 50.0


__all__ = [
    "ExplanationContext",
    "ExplanationEngine",
    "score_category",
    "scoring_context_for",
]
