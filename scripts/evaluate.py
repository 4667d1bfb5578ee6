# scripts/evaluate.py
from __future__ import annotations

import argparse
import logging
import sys
import time
import traceback
from pathlib import Path
from typing import Any

from pydantic import ValidationError as SchemaError

from shiftwise.constraints.manager import ConstraintManager
from shiftwise.dataloader.config_loader import ConfigLoader
from shiftwise.dataloader.documents import JSON_SUFFIXES, YAML_SUFFIXES, read_mapping
from shiftwise.dataloader.snapshot_loader import SnapshotLoader
from shiftwise.errors import DataError, ShiftwiseError, SimulationError
from shiftwise.export.report_writer import build_validation_report, write_json_report
from shiftwise.schemas.results import WhatIfScenario
from shiftwise.simulation.service import SimulationService


def _setup_logging() -> None:
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="shiftwise-evaluate",
        description="Validate every assignment of a snapshot and optionally run a what-if scenario",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to config YAML (default: built-in defaults)",
    )
    parser.add_argument(
        "--snapshot",
        type=str,
        default="data/sample/snapshot.yaml",
        help="Snapshot document, YAML or JSON (default: data/sample/snapshot.yaml)",
    )
    parser.add_argument(
        "--scenario",
        type=str,
        default=None,
        help="Optional what-if scenario document, YAML or JSON",
    )
    parser.add_argument(
        "--output",
        type=str,
        default=None,
        help="Output directory for reports (default: output_dir from config)",
    )
    return parser.parse_args(argv)


def _load_scenario(path: Path) -> WhatIfScenario:
    doc = read_mapping(
        path,
        suffixes=YAML_SUFFIXES | JSON_SUFFIXES,
        error=SimulationError,
        what="Scenario file",
        source="scripts.evaluate",
    )
    try:
        return WhatIfScenario.model_validate(doc)
    except SchemaError as e:
        raise SimulationError(
            f"Invalid scenario document: {e}",
            source="scripts.evaluate",
            suggested_action="Check modification types and their required fields.",
        ) from e


def run_evaluation(
    config_path: Path | None,
    snapshot_path: Path,
    output_dir: Path | None = None,
    scenario_path: Path | None = None,
) -> dict[str, Any]:
    """
    @brief
    Load, validate, report and optionally simulate.

    @details
    (1) Load configuration and snapshot; a snapshot with row issues writes
        load_errors.json and stops with DataError.
    (2) Evaluate all snapshot assignments as one batch.
    (3) Write validation_report.json (unless write_report is off).
    (4) With a scenario, write simulation_report.json.

    @returns
        Dict with `valid`, `summary` and `artifacts` (paths or None).

    @raises
        ShiftwiseError
            On configuration, data or scenario problems.
    """
    t0 = time.perf_counter()

    # (1) Inputs
    cfg = ConfigLoader().load(config_path)
    out_dir = output_dir or Path(cfg.output_dir or "data/output")

    logging.info("Loading snapshot: %s", snapshot_path)
    loaded = SnapshotLoader().load(snapshot_path)
    if not loaded.success or loaded.context is None:
        errors_path = write_json_report(
            {"issues": loaded.issues, "counts": loaded.counts}, out_dir, "load_errors.json"
        )
        raise DataError(
            f"Snapshot load failed: {len(loaded.issues)} issue(s), see {errors_path.as_posix()}",
            source="scripts.evaluate",
            suggested_action="Fix the records listed in load_errors.json and rerun.",
        )
    context = loaded.context

    # (2) Batch evaluation
    manager = ConstraintManager.from_config(cfg)
    assignments = list(context.assignments)
    logging.info(
        "Evaluating %d assignment(s) against %d constraint(s)…",
        len(assignments),
        len(manager.enabled_constraints()),
    )
    violations = manager.rank(manager.evaluate_batch(assignments, context))
    summary = manager.summarize(assignments, context, violations)

    # (3) Validation report
    artifacts: dict[str, Path | None] = {"validation_report": None, "simulation_report": None}
    if cfg.write_report:
        payload = build_validation_report(
            summary,
            violations,
            manager.suggested_fixes(violations),
            as_of=context.as_of,
            constraints=manager.metadata(),
        )
        artifacts["validation_report"] = write_json_report(payload, out_dir)
        logging.info("Wrote %s", artifacts["validation_report"])

    # (4) Optional what-if scenario
    if scenario_path is not None:
        scenario = _load_scenario(scenario_path)
        service = SimulationService(manager, context, cfg.simulation)
        result = service.simulate_scenario(scenario)
        risk = service.calculate_risk_assessment(result.scenario)
        artifacts["simulation_report"] = write_json_report(
            {
                "result": result.model_dump(mode="json"),
                "risk": risk.model_dump(mode="json"),
            },
            out_dir,
            "simulation_report.json",
        )
        logging.info("Scenario %s risk: %s (%.1f)", scenario.id, risk.level, risk.score)

    logging.info("Evaluation finished in %.2f s", time.perf_counter() - t0)
    return {"valid": summary.is_valid, "summary": summary.to_dict(), "artifacts": artifacts}


def main(argv: list[str] | None = None) -> int:
    """
    @brief
    CLI entry point.

    @details
    Exit codes:
      0 – every assignment passes the hard rules
      1 – blocking violations found, or controlled failure (config/data/scenario)
      2 – unexpected crash
    """
    _setup_logging()
    args = _parse_args(argv)

    try:
        result = run_evaluation(
            Path(args.config) if args.config else None,
            Path(args.snapshot),
            Path(args.output) if args.output else None,
            Path(args.scenario) if args.scenario else None,
        )
        s = result["summary"]
        logging.info(
            "Assignments: %d valid, %d invalid (critical=%d, error=%d, warning=%d, info=%d)",
            s["valid_assignments"],
            s["invalid_assignments"],
            s["violation_summary"]["critical"],
            s["violation_summary"]["error"],
            s["violation_summary"]["warning"],
            s["violation_summary"]["info"],
        )
        return 0 if result["valid"] else 1

    except ShiftwiseError as e:
        logging.error(str(e))
        return 1
    except Exception:
        logging.error("Unexpected error occurred:")
        traceback.print_exc()
        return 2


if __name__ == "__main__":
    sys.exit(main())
