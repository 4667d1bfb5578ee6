# src/shiftwise/simulation/pipeline.py
from __future__ import annotations

import logging
from datetime import date

import pandas as pd

from shiftwise.constraints.context import ValidationContext
from shiftwise.constraints.manager import ConstraintManager
from shiftwise.schemas.models import Assignment
from shiftwise.schemas.plan import CoverageGap
from shiftwise.schemas.results import CoverageReport, StationCoverage

logger = logging.getLogger(__name__)


def station_coverage(rows: list[dict[str, object]]) -> list[StationCoverage]:
    """
    @brief
    Aggregate per-demand fill flags into per-station coverage.

    @params
        rows : list[dict]
            One row per demand with keys `station_id` and `filled` (bool).

    @returns
        Station coverage sorted by station id; empty when there are no rows.
    """
    df = pd.DataFrame(rows, columns=["station_id", "filled"])
    if df.empty:
        return []
    df["filled"] = df["filled"].astype(bool)
    grouped = df.groupby("station_id", sort=True)["filled"].agg(["count", "sum"])
    return [
        StationCoverage(
            station_id=str(station_id),
            total_demands=int(row["count"]),
            filled_demands=int(row["sum"]),
            coverage_percentage=round(float(row["sum"]) / float(row["count"]) * 100, 2),
        )
        for station_id, row in grouped.iterrows()
    ]


class CoveragePipeline:
    """
    @brief
    Re-validation pipeline producing a coverage report for a date window.

    @details
    Every active assignment of a demand inside the window is evaluated by
    the constraint manager against the given context. Feasible assignments
    fill the demand; a demand with fewer feasible assignments than its
    `required_count` becomes a gap whose criticality is the demand priority.
    Running the same pipeline on a baseline and an overlaid context is how
    what-if scenarios measure their effect.
    """

    def __init__(self, manager: ConstraintManager) -> None:
        self.manager = manager

    def run(self, context: ValidationContext, start: date, end: date) -> CoverageReport:
        demands = sorted(
            (d for d in context.demands if start <= d.date <= end),
            key=lambda d: (d.date, d.station_id, d.id),
        )
        per_demand: dict[str, list[Assignment]] = {
            d.id: context.demand_assignments(d.id) for d in demands
        }
        batch = [a for found in per_demand.values() for a in found]
        results = self.manager.evaluate_each(batch, context)

        gaps: list[CoverageGap] = []
        rows: list[dict[str, object]] = []
        filled_total = 0
        for demand in demands:
            feasible = 0
            reasons: list[str] = []
            for a in per_demand[demand.id]:
                violations = results[a.id]
                if self.manager.is_feasible(violations):
                    feasible += 1
                    continue
                worst = self.manager.most_material(violations)
                reasons.append(f"Assignment {a.id}: {worst.message}" if worst else a.id)

            filled = feasible >= demand.required_count
            rows.append({"station_id": demand.station_id, "filled": filled})
            if filled:
                filled_total += 1
                continue
            if not per_demand[demand.id]:
                reasons.append("No assignments")
            missing = demand.required_count - feasible
            reasons.append(f"{missing} of {demand.required_count} position(s) unfilled")
            gaps.append(
                CoverageGap(
                    demand_id=demand.id,
                    station_id=demand.station_id,
                    date=demand.date,
                    shift_template_id=demand.shift_template_id,
                    required_count=demand.required_count,
                    assigned_count=feasible,
                    criticality=demand.priority,
                    reasons=reasons,
                )
            )

        total = len(demands)
        # An empty window has nothing left uncovered
        pct = round(filled_total / total * 100, 2) if total else 100.0
        logger.debug(
            "Coverage %s..%s: %d/%d demands filled (%.2f%%), %d gap(s)",
            start,
            end,
            filled_total,
            total,
            pct,
            len(gaps),
        )
        return CoverageReport(
            start=start,
            end=end,
            total_demands=total,
            filled_demands=filled_total,
            coverage_percentage=pct,
            gaps=gaps,
            station_coverage=station_coverage(rows),
        )


__all__ = ["CoveragePipeline", "station_coverage"]
