# tests/simulation/test_simulation.py
from datetime import date

import pytest

from shiftwise.constraints.context import ValidationContext
from shiftwise.constraints.manager import ConstraintManager
from shiftwise.errors import SimulationError
from shiftwise.schemas.config import EvaluationConfig, SimulationConfig
from shiftwise.schemas.models import AssignmentStatus, Priority, RiskLevel
from shiftwise.schemas.plan import CoverageGap, DateRange
from shiftwise.schemas.results import (
    CoverageReport,
    ModificationType,
    ScenarioModification,
    WhatIfScenario,
)
from shiftwise.simulation.pipeline import CoveragePipeline, station_coverage
from shiftwise.simulation.service import SimulationService, composite_score, risk_score
from tests.factories import MONDAY, absence, assignment, base_context, day, demand


@pytest.fixture()
def snapshot() -> ValidationContext:
    """Three demands over Monday/Tuesday, each filled by a qualified employee."""
    return base_context(
        demands=(
            demand("d-1", MONDAY, "st-asm", priority=Priority.HIGH),
            demand("d-2", MONDAY, "st-weld", priority=Priority.CRITICAL),
            demand("d-3", day(1), "st-asm", priority=Priority.MEDIUM),
        ),
        assignments=(
            assignment("a-1", "d-1", "bob", status=AssignmentStatus.CONFIRMED),
            assignment("a-2", "d-2", "carol"),
            assignment("a-3", "d-3", "alice"),
        ),
    )


def _carol_sick(scenario_id: str = "carol-sick") -> WhatIfScenario:
    return WhatIfScenario(
        id=scenario_id,
        name="Carol sick",
        base_date=MONDAY,
        horizon_days=2,
        modifications=[
            ScenarioModification(
                type=ModificationType.ADD_ABSENCE,
                employee_id="carol",
                date_start=MONDAY,
                date_end=day(1),
            )
        ],
    )


def _gap(priority: Priority, station_id: str = "st-asm") -> CoverageGap:
    return CoverageGap(
        demand_id=f"d-{priority}-{station_id}",
        station_id=station_id,
        date=MONDAY,
        criticality=priority,
    )


# ----------------------------
# PIPELINE
# ----------------------------
def test_pipeline_full_coverage_on_baseline(snapshot):
    report = CoveragePipeline(ConstraintManager()).run(snapshot, MONDAY, day(1))

    assert report.total_demands == 3
    assert report.filled_demands == 3
    assert report.coverage_percentage == 100
    assert report.gaps == []
    assert [(s.station_id, s.total_demands, s.filled_demands) for s in report.station_coverage] == [
        ("st-asm", 2, 2),
        ("st-weld", 1, 1),
    ]


def test_pipeline_reports_infeasible_and_missing_assignments(snapshot):
    """
    @brief
    Gaps explain why: the most material violation, or no assignment at all.
    """
    # --- Arrange ---
    ctx = snapshot.replace(
        demands=(*snapshot.demands, demand("d-4", day(1), "st-weld", priority=Priority.CRITICAL)),
        assignments=(*snapshot.assignments[:2], assignment("a-3", "d-3", "dave")),
    )

    # --- Act ---
    report = CoveragePipeline(ConstraintManager()).run(ctx, MONDAY, day(1))

    # --- Assert ---
    assert report.filled_demands == 2
    assert report.coverage_percentage == 50
    gaps = {g.demand_id: g for g in report.gaps}
    assert gaps["d-3"].reasons[0].startswith("Assignment a-3: Employee Dave has insufficient")
    assert gaps["d-3"].criticality == Priority.MEDIUM
    assert gaps["d-4"].reasons == ["No assignments", "1 of 1 position(s) unfilled"]
    assert [g.demand_id for g in report.critical_gaps()] == ["d-4"]


def test_empty_window_counts_as_covered(snapshot):
    report = CoveragePipeline(ConstraintManager()).run(snapshot, date(2025, 4, 1), date(2025, 4, 7))
    assert report.total_demands == 0
    assert report.coverage_percentage == 100
    assert report.station_coverage == []


def test_station_coverage_aggregates_rows():
    rows = [
        {"station_id": "b", "filled": True},
        {"station_id": "a", "filled": False},
        {"station_id": "b", "filled": False},
    ]
    result = station_coverage(rows)
    assert [(s.station_id, s.coverage_percentage) for s in result] == [("a", 0.0), ("b", 50.0)]
    assert station_coverage([]) == []


# ----------------------------
# SCENARIOS
# ----------------------------
def test_absence_scenario_opens_critical_gap(snapshot):
    """
    @brief
    Taking the only welder out opens a critical gap at the welding bay.

    @details
    Coverage drops from 100% to 66.67%; the critical gap triggers overtime
    approval and the drop above 15 points suggests temporary hires.
    """
    # --- Arrange ---
    service = SimulationService(ConstraintManager(), snapshot)

    # --- Act ---
    result = service.simulate_scenario(_carol_sick())

    # --- Assert ---
    assert result.baseline.coverage_percentage == 100
    assert result.scenario.coverage_percentage == pytest.approx(66.67)
    assert result.impact.coverage_change == pytest.approx(-33.33)
    assert [g.demand_id for g in result.impact.new_gaps] == ["d-2"]
    assert result.impact.affected_stations == ["st-weld"]
    assert "approved absence(s) on 2025-03-03: sick" in result.impact.new_gaps[0].reasons[0]
    assert [a.type for a in result.recommended_actions] == ["hire_temp", "overtime_approval"]
    assert result.recommendations[:2] == [
        "Significant coverage reduction detected. Consider contingency planning.",
        "High risk increase identified. Immediate mitigation required.",
    ]


def test_simulation_leaves_snapshot_untouched(snapshot):
    service = SimulationService(ConstraintManager(), snapshot)
    service.simulate_scenario(_carol_sick())
    assert snapshot.absences == ()
    assert service.context is snapshot


def test_scenario_without_modifications_is_resilient(snapshot):
    service = SimulationService(ConstraintManager(), snapshot)

    result = service.simulate_scenario(WhatIfScenario(id="noop", base_date=MONDAY))

    assert result.impact.coverage_change == 0
    assert result.recommended_actions == []
    assert result.recommendations == [
        "Scenario impact is minimal. Current staffing appears resilient."
    ]


def test_concurrent_simulation_matches_sequential(snapshot):
    sequential = SimulationService(ConstraintManager(), snapshot).simulate_scenario(_carol_sick())
    parallel = SimulationService(
        ConstraintManager(cfg=EvaluationConfig(num_workers=4)), snapshot
    ).simulate_scenario(_carol_sick())

    assert parallel.scenario.model_dump() == sequential.scenario.model_dump()
    assert parallel.impact.model_dump() == sequential.impact.model_dump()


def test_simulate_absence_shortcut(snapshot):
    service = SimulationService(ConstraintManager(), snapshot, SimulationConfig(horizon_days=7))

    result = service.simulate_absence("carol", DateRange(start=MONDAY, end=day(1)))

    assert result.scenario_id == "absence-carol-2025-03-03"
    assert result.scenario.end == day(6)
    assert [g.demand_id for g in result.impact.new_gaps] == ["d-2"]


def test_change_demand_and_skill_modifications(snapshot):
    # --- Arrange ---
    service = SimulationService(ConstraintManager(), snapshot)
    scenario = WhatIfScenario(
        id="more-demand",
        base_date=MONDAY,
        horizon_days=2,
        modifications=[
            ScenarioModification(
                type=ModificationType.CHANGE_DEMAND, demand_id="d-1", required_count=2
            ),
            ScenarioModification(
                type=ModificationType.MODIFY_SKILLS, employee_id="bob", skill_id="weld", new_level=2
            ),
            ScenarioModification(
                type=ModificationType.MODIFY_SKILLS,
                employee_id="carol",
                skill_id="weld",
                new_level=1,
            ),
        ],
    )

    # --- Act ---
    modified = service.apply_modifications(scenario)
    result = service.simulate_scenario(scenario)

    # --- Assert ---
    assert modified.demand("d-1").required_count == 2
    assert {(r.skill_id, r.level) for r in modified.employee_skills("bob")} == {
        ("asm", 2),
        ("weld", 2),
    }
    assert [r.level for r in modified.employee_skills("carol")] == [1]
    assert snapshot.demand("d-1").required_count == 1
    gaps = {g.demand_id: g for g in result.scenario.gaps}
    assert gaps["d-1"].reasons == ["1 of 2 position(s) unfilled"]
    assert "insufficient Welding level (1)" in gaps["d-2"].reasons[0]


def test_remove_absence_restores_coverage(snapshot):
    ctx = snapshot.replace(absences=(absence("ab-carol", "carol", MONDAY, day(1)),))
    service = SimulationService(ConstraintManager(), ctx)

    result = service.simulate_scenario(
        WhatIfScenario(
            id="back",
            base_date=MONDAY,
            horizon_days=2,
            modifications=[
                ScenarioModification(type=ModificationType.REMOVE_ABSENCE, absence_id="ab-carol")
            ],
        )
    )

    assert [g.demand_id for g in result.impact.resolved_gaps] == ["d-2"]
    assert result.impact.coverage_change == pytest.approx(33.33)


@pytest.mark.parametrize(
    "modification,message",
    [
        (
            ScenarioModification(
                type=ModificationType.ADD_ABSENCE,
                employee_id="ghost",
                date_start=MONDAY,
                date_end=MONDAY,
            ),
            "Employee ghost not found",
        ),
        (
            ScenarioModification(
                type=ModificationType.ADD_ABSENCE,
                employee_id="carol",
                date_start=day(2),
                date_end=MONDAY,
            ),
            "ends before it starts",
        ),
        (
            ScenarioModification(type=ModificationType.REMOVE_ABSENCE, absence_id="ab-x"),
            "Absence ab-x not found",
        ),
        (
            ScenarioModification(type=ModificationType.CHANGE_DEMAND, demand_id="d-x"),
            "Demand d-x not found",
        ),
        (
            ScenarioModification(
                type=ModificationType.MODIFY_SKILLS,
                employee_id="bob",
                skill_id="paint",
                new_level=1,
            ),
            "Skill paint not found",
        ),
    ],
)
def test_invalid_modifications_raise(snapshot, modification, message):
    service = SimulationService(ConstraintManager(), snapshot)
    scenario = WhatIfScenario(id="bad", base_date=MONDAY, modifications=[modification])

    with pytest.raises(SimulationError) as e:
        service.simulate_scenario(scenario)

    assert message in str(e.value)


def test_skill_level_above_scale_is_rejected(snapshot):
    """
    @brief
    A modify_skills level beyond the skill's level_scale cannot be simulated.
    """
    # --- Arrange ---
    service = SimulationService(ConstraintManager(), snapshot)
    scenario = WhatIfScenario(
        id="overqualified",
        base_date=MONDAY,
        modifications=[
            ScenarioModification(
                type=ModificationType.MODIFY_SKILLS,
                employee_id="bob",
                skill_id="weld",
                new_level=9,
            )
        ],
    )

    # --- Act / Assert ---
    with pytest.raises(SimulationError) as e:
        service.apply_modifications(scenario)

    assert "Level 9 exceeds the Welding scale of 3" in str(e.value)
    assert {(r.skill_id, r.level) for r in snapshot.employee_skills("bob")} == {("asm", 2)}


def test_modification_requires_type_specific_fields():
    with pytest.raises(ValueError):
        ScenarioModification(type=ModificationType.ADD_ABSENCE, employee_id="carol")


# ----------------------------
# RISK / COMPARISON
# ----------------------------
def test_risk_score_weights_coverage_and_gaps():
    report = CoverageReport(
        total_demands=10,
        filled_demands=8,
        coverage_percentage=80,
        gaps=[_gap(Priority.CRITICAL), _gap(Priority.HIGH)],
    )
    assert risk_score(report) == pytest.approx(16 + 15 + 8)


def test_risk_assessment_medium_band():
    report = CoverageReport(
        total_demands=10, filled_demands=9, coverage_percentage=90, gaps=[_gap(Priority.HIGH)]
    )

    risk = SimulationService.calculate_risk_assessment(report)

    assert risk.score == 40
    assert risk.level == RiskLevel.MEDIUM
    assert risk.critical_factors == []
    assert risk.mitigation_strategies == ["Regular scenario planning and contingency updates"]


def test_risk_assessment_caps_at_critical():
    report = CoverageReport(
        total_demands=3,
        filled_demands=2,
        coverage_percentage=66.67,
        gaps=[_gap(Priority.CRITICAL, "st-weld")],
    )

    risk = SimulationService.calculate_risk_assessment(report)

    assert risk.score == 100
    assert risk.level == RiskLevel.CRITICAL
    assert risk.critical_factors == [
        "Low overall coverage percentage",
        "1 critical coverage gaps",
    ]
    assert risk.mitigation_strategies[-1] == "Regular scenario planning and contingency updates"
    assert "Maintain on-call staff roster" in risk.mitigation_strategies


def test_compare_scenarios_prefers_higher_composite(snapshot):
    """
    @brief
    Doing nothing beats losing the only welder, with high confidence.
    """
    # --- Arrange ---
    service = SimulationService(ConstraintManager(), snapshot)
    sick = _carol_sick()
    noop = WhatIfScenario(id="noop", name="Business as usual", base_date=MONDAY, horizon_days=2)

    # --- Act ---
    comparison = service.compare_scenarios(sick, noop)

    # --- Assert ---
    assert comparison.recommended_scenario_id == "noop"
    assert comparison.score_b == 100
    assert comparison.score_a == composite_score(comparison.scenario_a)
    assert comparison.score_a < comparison.score_b
    assert comparison.confidence == "high"
    assert [(d.metric, d.significance) for d in comparison.differences] == [
        ("coverage", "high"),
        ("risk", "high"),
    ]
    assert comparison.reasoning.startswith("Scenario Business as usual provides better coverage")


def test_compare_identical_scenarios_prefers_first(snapshot):
    service = SimulationService(ConstraintManager(), snapshot)

    comparison = service.compare_scenarios(_carol_sick("first"), _carol_sick("second"))

    assert comparison.recommended_scenario_id == "first"
    assert comparison.confidence == "medium"
    assert comparison.differences == []
