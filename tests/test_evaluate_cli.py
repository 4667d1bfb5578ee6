# tests/test_evaluate_cli.py

import json
from pathlib import Path

import pytest

from scripts.evaluate import main, run_evaluation
from shiftwise.errors import DataError

ROOT = Path(__file__).resolve().parents[1]
SAMPLE = ROOT / "data" / "sample"

CLEAN_SNAPSHOT = {
    "as_of": "2025-03-03",
    "skills": [{"id": "asm", "name": "Assembly"}],
    "stations": [
        {
            "id": "st-asm",
            "name": "Assembly Line",
            "required_skills": [{"skill_id": "asm", "min_level": 2}],
        }
    ],
    "shift_templates": [{"id": "day", "name": "Day", "start_time": "06:00", "end_time": "14:00"}],
    "employees": [{"id": "bob", "name": "Bob", "team": "line-1"}],
    "employee_skills": [{"id": "es-1", "employee_id": "bob", "skill_id": "asm", "level": 2}],
    "demands": [
        {"id": "d-1", "date": "2025-03-03", "station_id": "st-asm", "shift_template_id": "day"}
    ],
    "assignments": [{"id": "a-1", "demand_id": "d-1", "employee_id": "bob"}],
}


def test_run_evaluation_on_sample_reports_blocking_violation(tmp_path: Path):
    """
    @brief
    End-to-end run over the shipped sample snapshot.

    @details
    Dave's Assembly level is below the station minimum, so the batch is
    invalid and the report lists at least one critical violation.
    """
    # --- Act ---
    result = run_evaluation(None, SAMPLE / "snapshot.yaml", tmp_path)

    # --- Assert ---
    assert result["valid"] is False
    assert result["summary"]["total_assignments"] == 4
    assert result["summary"]["violation_summary"]["critical"] >= 1
    report_path = result["artifacts"]["validation_report"]
    assert report_path == tmp_path / "validation_report.json"
    report = json.loads(report_path.read_text(encoding="utf-8"))
    assert report["as_of"] == "2025-03-03"
    assert any("Dave" in v["message"] for v in report["report"]["violations"])
    assert result["artifacts"]["simulation_report"] is None


def test_run_evaluation_with_scenario_writes_simulation_report(tmp_path: Path):
    # --- Act ---
    result = run_evaluation(
        ROOT / "config" / "config.yaml",
        SAMPLE / "snapshot.yaml",
        tmp_path,
        SAMPLE / "scenario.yaml",
    )

    # --- Assert ---
    path = result["artifacts"]["simulation_report"]
    assert path == tmp_path / "simulation_report.json"
    doc = json.loads(path.read_text(encoding="utf-8"))
    assert doc["result"]["scenario_id"] == "carol-sick"
    assert doc["result"]["impact"]["coverage_change"] < 0
    assert doc["risk"]["level"] in {"low", "medium", "high", "critical"}


def test_failed_snapshot_load_writes_load_errors(tmp_path: Path):
    """
    @brief
    Row-level issues stop the run after load_errors.json is written.
    """
    # --- Arrange ---
    snapshot = tmp_path / "snapshot.json"
    snapshot.write_text(json.dumps({"employees": [{"id": "ghost"}]}), encoding="utf-8")
    out_dir = tmp_path / "out"

    # --- Act / Assert ---
    with pytest.raises(DataError) as e:
        run_evaluation(None, snapshot, out_dir)

    # --- Assert ---
    assert "1 issue(s)" in str(e.value)
    issues = json.loads((out_dir / "load_errors.json").read_text(encoding="utf-8"))["issues"]
    assert issues[0]["collection"] == "employees"


def test_main_exit_codes(tmp_path: Path):
    # --- Arrange ---
    clean = tmp_path / "clean.json"
    clean.write_text(json.dumps(CLEAN_SNAPSHOT), encoding="utf-8")
    out = ["--output", str(tmp_path / "out")]

    # --- Act / Assert ---
    assert main(["--snapshot", str(SAMPLE / "snapshot.yaml"), *out]) == 1
    assert main(["--snapshot", str(clean), *out]) == 0
    assert main(["--config", str(tmp_path / "missing.yaml"), "--snapshot", str(clean)]) == 1
