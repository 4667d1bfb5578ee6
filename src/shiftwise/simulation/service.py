# src/shiftwise/simulation/service.py
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import date, timedelta

from shiftwise.constraints.context import ValidationContext
from shiftwise.constraints.manager import ConstraintManager
from shiftwise.errors import SimulationError
from shiftwise.schemas.config import SimulationConfig
from shiftwise.schemas.models import (
    Absence,
    AbsenceType,
    EmployeeSkill,
    Priority,
    RiskLevel,
)
from shiftwise.schemas.plan import DateRange
from shiftwise.schemas.results import (
    CoverageReport,
    ModificationType,
    RecommendedAction,
    RiskAssessment,
    ScenarioComparison,
    ScenarioDifference,
    ScenarioImpact,
    ScenarioModification,
    SimulationResult,
    WhatIfScenario,
)
from shiftwise.simulation.pipeline import CoveragePipeline

logger = logging.getLogger(__name__)

_MULTI_STATION_THRESHOLD = 3


def risk_score(report: CoverageReport) -> float:
    """Weighted risk in 0..100: uncovered share, critical and high gaps."""
    score = (100 - report.coverage_percentage) * 0.8
    score += 15 * len(report.critical_gaps())
    score += 8 * len(report.high_gaps())
    return round(min(score, 100.0), 2)


def _risk_level(score: float) -> RiskLevel:
    if score >= 80:
        return RiskLevel.CRITICAL
    if score >= 60:
        return RiskLevel.HIGH
    if score >= 30:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def composite_score(result: SimulationResult) -> float:
    """Coverage minus half the risk increase minus weighted critical/high gap counts."""
    report = result.scenario
    score = report.coverage_percentage
    score -= 0.5 * result.impact.risk_increase
    score -= 10 * len(report.critical_gaps())
    score -= 5 * len(report.high_gaps())
    return round(max(0.0, score), 2)


class SimulationService:
    """
    @brief
    What-if analysis over a validation snapshot.

    @details
    A scenario is simulated by running the coverage pipeline twice over the
    same window: once on the untouched snapshot and once on a copy with the
    scenario's modifications overlaid (absences injected or removed, demands
    patched, skill levels changed). The source snapshot is never modified.
    Both runs are independent and share a thread pool when the manager is
    configured with more than one worker.

    @params
        manager : ConstraintManager
            Rule set used to decide which assignments still hold.
        context : ValidationContext
            Baseline snapshot.
        cfg : SimulationConfig
            Horizon and recommendation thresholds.
    """

    def __init__(
        self,
        manager: ConstraintManager,
        context: ValidationContext,
        cfg: SimulationConfig | None = None,
    ) -> None:
        self.manager = manager
        self.context = context
        self.cfg = cfg or SimulationConfig()
        self.pipeline = CoveragePipeline(manager)

    @property
    def _concurrent(self) -> bool:
        return self.manager.cfg.num_workers > 1

    def window(self, scenario: WhatIfScenario) -> tuple[date, date]:
        days = scenario.horizon_days or self.cfg.horizon_days
        return scenario.base_date, scenario.base_date + timedelta(days=days - 1)

    # ---------- Overlay ----------
    def apply_modifications(self, scenario: WhatIfScenario) -> ValidationContext:
        """
        @brief
        Return a copy of the snapshot with every modification applied in order.

        @raises
            SimulationError
                If a modification names an unknown employee, absence, demand
                or skill, or an absence ends before it starts.
        """
        ctx = self.context
        absences = list(ctx.absences)
        demands = list(ctx.demands)
        skill_records = list(ctx.employee_skill_records)

        for i, mod in enumerate(scenario.modifications):
            if mod.type == ModificationType.ADD_ABSENCE:
                self._require_employee(mod)
                if mod.date_start > mod.date_end:
                    raise SimulationError(
                        f"Absence for {mod.employee_id} ends before it starts",
                        source="SimulationService.apply_modifications",
                    )
                absences.append(
                    Absence(
                        id=f"sim-{scenario.id}-{i}",
                        employee_id=mod.employee_id,
                        type=mod.absence_type,
                        date_start=mod.date_start,
                        date_end=mod.date_end,
                        approved=True,
                        reason="Temporary absence for simulation",
                    )
                )
            elif mod.type == ModificationType.REMOVE_ABSENCE:
                if not any(a.id == mod.absence_id for a in absences):
                    raise self._unknown("Absence", mod.absence_id)
                absences = [a for a in absences if a.id != mod.absence_id]
            elif mod.type == ModificationType.CHANGE_DEMAND:
                index = next((j for j, d in enumerate(demands) if d.id == mod.demand_id), None)
                if index is None:
                    raise self._unknown("Demand", mod.demand_id)
                patch = {}
                if mod.required_count is not None:
                    patch["required_count"] = mod.required_count
                if mod.priority is not None:
                    patch["priority"] = mod.priority
                demands[index] = demands[index].model_copy(update=patch)
            elif mod.type == ModificationType.MODIFY_SKILLS:
                self._require_employee(mod)
                skill = ctx.skill(mod.skill_id)
                if skill is None:
                    raise self._unknown("Skill", mod.skill_id)
                if mod.new_level > skill.level_scale:
                    raise SimulationError(
                        f"Level {mod.new_level} exceeds the {skill.name} scale "
                        f"of {skill.level_scale}",
                        source="SimulationService.apply_modifications",
                        suggested_action=f"Use a level between 1 and {skill.level_scale}.",
                    )
                skill_records = self._with_skill_level(skill_records, mod, f"sim-{scenario.id}-{i}")

        logger.debug(
            "Applied %d modification(s) for scenario %s", len(scenario.modifications), scenario.id
        )
        return ctx.replace(
            absences=tuple(absences),
            demands=tuple(demands),
            employee_skill_records=tuple(skill_records),
        )

    def _require_employee(self, mod: ScenarioModification) -> None:
        if self.context.employee(mod.employee_id) is None:
            raise self._unknown("Employee", mod.employee_id)

    @staticmethod
    def _unknown(what: str, entity_id: str | None) -> SimulationError:
        return SimulationError(
            f"{what} {entity_id} not found",
            source="SimulationService.apply_modifications",
            suggested_action="Reference entities that exist in the snapshot.",
        )

    @staticmethod
    def _with_skill_level(
        records: list[EmployeeSkill], mod: ScenarioModification, new_id: str
    ) -> list[EmployeeSkill]:
        for j, record in enumerate(records):
            if record.employee_id == mod.employee_id and record.skill_id == mod.skill_id:
                records[j] = record.with_level(mod.new_level)
                return records
        records.append(
            EmployeeSkill(
                id=new_id,
                employee_id=mod.employee_id,
                skill_id=mod.skill_id,
                level=mod.new_level,
            )
        )
        return records

    # ---------- Simulation ----------
    def simulate_scenario(self, scenario: WhatIfScenario) -> SimulationResult:
        """
        @brief
        Compare baseline coverage with coverage under the scenario.

        @returns
            SimulationResult with both coverage reports, the impact (coverage
            change, new and resolved gaps, affected stations, risk before and
            after), prioritised actions and free-text recommendations.
        """
        start, end = self.window(scenario)
        modified = self.apply_modifications(scenario)

        if self._concurrent:
            with ThreadPoolExecutor(max_workers=2) as pool:
                baseline_future = pool.submit(self.pipeline.run, self.context, start, end)
                scenario_future = pool.submit(self.pipeline.run, modified, start, end)
                baseline, simulated = baseline_future.result(), scenario_future.result()
        else:
            baseline = self.pipeline.run(self.context, start, end)
            simulated = self.pipeline.run(modified, start, end)

        impact = self._impact(baseline, simulated)
        actions = self._recommended_actions(impact)
        result = SimulationResult(
            scenario_id=scenario.id,
            baseline=baseline,
            scenario=simulated,
            impact=impact,
            recommended_actions=actions,
            recommendations=self._recommendations(impact, actions),
        )
        logger.info(
            "Scenario %s: coverage %.2f%% -> %.2f%%, %d new gap(s), risk %+.2f",
            scenario.id,
            baseline.coverage_percentage,
            simulated.coverage_percentage,
            len(impact.new_gaps),
            impact.risk_increase,
        )
        return result

    def simulate_absence(
        self,
        employee_id: str,
        date_range: DateRange,
        absence_type: AbsenceType | str = AbsenceType.SICK,
    ) -> SimulationResult:
        """Shortcut: one temporary absence over `date_range`."""
        scenario = WhatIfScenario(
            id=f"absence-{employee_id}-{date_range.start.isoformat()}",
            name=f"Temporary {absence_type} absence simulation",
            base_date=date_range.start,
            horizon_days=max(len(date_range.days()), self.cfg.horizon_days),
            modifications=[
                ScenarioModification(
                    type=ModificationType.ADD_ABSENCE,
                    employee_id=employee_id,
                    absence_type=absence_type,
                    date_start=date_range.start,
                    date_end=date_range.end,
                )
            ],
        )
        return self.simulate_scenario(scenario)

    @staticmethod
    def _impact(baseline: CoverageReport, simulated: CoverageReport) -> ScenarioImpact:
        baseline_ids = {g.demand_id for g in baseline.gaps}
        simulated_ids = {g.demand_id for g in simulated.gaps}
        new_gaps = [g for g in simulated.gaps if g.demand_id not in baseline_ids]
        return ScenarioImpact(
            coverage_change=round(simulated.coverage_percentage - baseline.coverage_percentage, 2),
            new_gaps=new_gaps,
            resolved_gaps=[g for g in baseline.gaps if g.demand_id not in simulated_ids],
            affected_stations=list(dict.fromkeys(g.station_id for g in new_gaps)),
            baseline_risk=risk_score(baseline),
            scenario_risk=risk_score(simulated),
        )

    def _recommended_actions(self, impact: ScenarioImpact) -> list[RecommendedAction]:
        actions: list[RecommendedAction] = []
        if impact.coverage_change < -self.cfg.temp_hire_coverage_drop:
            actions.append(
                RecommendedAction(
                    type="hire_temp",
                    priority=Priority.HIGH,
                    description="Consider hiring temporary staff to maintain coverage",
                    estimated_impact="1-2 weeks",
                )
            )
        if any(g.criticality == Priority.CRITICAL for g in impact.new_gaps):
            actions.append(
                RecommendedAction(
                    type="overtime_approval",
                    priority=Priority.CRITICAL,
                    description="Approve overtime for critical station coverage",
                    estimated_impact="Immediate",
                )
            )
        if len(impact.affected_stations) > self.cfg.cross_training_station_count:
            actions.append(
                RecommendedAction(
                    type="skill_training",
                    priority=Priority.MEDIUM,
                    description="Implement cross-training program for affected stations",
                    estimated_impact="4-6 weeks",
                )
            )
        return actions

    def _recommendations(
        self, impact: ScenarioImpact, actions: list[RecommendedAction]
    ) -> list[str]:
        notes: list[str] = []
        if impact.coverage_change < -self.cfg.contingency_coverage_drop:
            notes.append("Significant coverage reduction detected. Consider contingency planning.")
        if impact.risk_increase > self.cfg.mitigation_risk_increase:
            notes.append("High risk increase identified. Immediate mitigation required.")
        if len(impact.affected_stations) > _MULTI_STATION_THRESHOLD:
            notes.append("Multiple stations affected. Consider cross-training initiatives.")
        notes.extend(
            a.description for a in actions if a.priority in (Priority.CRITICAL, Priority.HIGH)
        )
        if not notes:
            notes.append("Scenario impact is minimal. Current staffing appears resilient.")
        return notes

    # ---------- Risk ----------
    @staticmethod
    def calculate_risk_assessment(report: CoverageReport) -> RiskAssessment:
        """
        @brief
        Qualitative risk for one coverage report.

        @details
        The coverage band (>= 95 / 85 / 70 percent) sets a base score of
        10 / 30 / 60 / 90; each critical gap adds 20 and each high gap 10,
        capped at 100. The level is then read off the final score at the
        80 / 60 / 30 thresholds.
        """
        pct = report.coverage_percentage
        if pct >= 95:
            score = 10.0
        elif pct >= 85:
            score = 30.0
        elif pct >= 70:
            score = 60.0
        else:
            score = 90.0
        critical = len(report.critical_gaps())
        score = min(score + 20 * critical + 10 * len(report.high_gaps()), 100.0)

        factors: list[str] = []
        if pct < 80:
            factors.append("Low overall coverage percentage")
        if critical:
            factors.append(f"{critical} critical coverage gaps")
        if len({g.station_id for g in report.gaps}) > _MULTI_STATION_THRESHOLD:
            factors.append("Multiple stations affected")

        strategies: list[str] = []
        if pct < 85:
            strategies.append("Implement overtime policies for critical periods")
            strategies.append("Establish temporary staffing agreements")
        if critical:
            strategies.append("Cross-train employees for critical stations")
            strategies.append("Maintain on-call staff roster")
        strategies.append("Regular scenario planning and contingency updates")

        return RiskAssessment(
            level=_risk_level(score),
            score=score,
            critical_factors=factors,
            mitigation_strategies=strategies,
        )

    # ---------- Comparison ----------
    def compare_scenarios(
        self, scenario_a: WhatIfScenario, scenario_b: WhatIfScenario
    ) -> ScenarioComparison:
        """
        @brief
        Simulate two scenarios and recommend the one with the higher composite score.

        @details
        Ties go to `scenario_a`. Confidence is high when the composites differ
        by more than 20 points. Coverage differences above 1 point and risk
        differences above 5 points are listed.
        """
        if self._concurrent:
            with ThreadPoolExecutor(max_workers=2) as pool:
                result_a, result_b = pool.map(self.simulate_scenario, (scenario_a, scenario_b))
        else:
            result_a = self.simulate_scenario(scenario_a)
            result_b = self.simulate_scenario(scenario_b)

        score_a, score_b = composite_score(result_a), composite_score(result_b)
        winner, loser = (scenario_a, scenario_b) if score_a >= score_b else (scenario_b, scenario_a)
        return ScenarioComparison(
            scenario_a=result_a,
            scenario_b=result_b,
            score_a=score_a,
            score_b=score_b,
            recommended_scenario_id=winner.id,
            reasoning=(
                f"Scenario {winner.name or winner.id} provides better coverage with lower risk "
                f"than {loser.name or loser.id} (composite {max(score_a, score_b):.1f} "
                f"vs {min(score_a, score_b):.1f})"
            ),
            confidence="high" if abs(score_a - score_b) > 20 else "medium",
            differences=self._differences(result_a, result_b),
        )

    @staticmethod
    def _differences(
        result_a: SimulationResult, result_b: SimulationResult
    ) -> list[ScenarioDifference]:
        differences: list[ScenarioDifference] = []
        cov_a = result_a.scenario.coverage_percentage
        cov_b = result_b.scenario.coverage_percentage
        if abs(cov_b - cov_a) > 1:
            differences.append(
                ScenarioDifference(
                    metric="coverage",
                    scenario_a=cov_a,
                    scenario_b=cov_b,
                    difference=round(cov_b - cov_a, 2),
                    significance="high" if abs(cov_b - cov_a) > 10 else "medium",
                )
            )
        risk_a, risk_b = result_a.impact.risk_increase, result_b.impact.risk_increase
        if abs(risk_b - risk_a) > 5:
            differences.append(
                ScenarioDifference(
                    metric="risk",
                    scenario_a=risk_a,
                    scenario_b=risk_b,
                    difference=round(risk_b - risk_a, 2),
                    significance="high" if abs(risk_b - risk_a) > 20 else "medium",
                )
            )
        return differences


__all__ = ["SimulationService", "composite_score", "risk_score"]
