# src/shiftwise/export/report_writer.py
from __future__ import annotations

import json
import os
import tempfile
from collections.abc import Mapping, Sequence
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from shiftwise.constraints.manager import ValidationSummary
from shiftwise.constraints.report import SuggestedFix, ViolationReport
from shiftwise.constraints.violation import ConstraintViolation
from shiftwise.errors import DataError

DEFAULT_REPORT_NAME = "validation_report.json"


def build_validation_report(
    summary: ValidationSummary,
    violations: Sequence[ConstraintViolation],
    fixes: Sequence[SuggestedFix],
    *,
    as_of: Any = None,
    constraints: Sequence[Mapping[str, Any]] = (),
) -> dict[str, Any]:
    """
    @brief
    Assemble the JSON document describing one validation run.

    @details
    Sections: `generated_at` (UTC, ISO-8601), `as_of`, `summary` (counts and
    verdicts), `constraints` (metadata of the rule set), `report` (violations
    by severity and by constraint), `messages` (display-ready text) and
    `suggested_fixes`.
    """
    report = ViolationReport(violations)
    return {
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "as_of": as_of.isoformat() if hasattr(as_of, "isoformat") else as_of,
        "summary": summary.to_dict(),
        "constraints": [dict(c) for c in constraints],
        "report": report.to_dict(),
        "messages": report.user_messages(),
        "suggested_fixes": [f.to_dict() for f in fixes],
    }


def write_json_report(
    payload: Mapping[str, Any], out_dir: Path | str, filename: str = DEFAULT_REPORT_NAME
) -> Path:
    """
    @brief
    Serialize `payload` as indented JSON into `out_dir/filename` atomically.

    @returns
        Path of the written file.

    @raises
        DataError
            If the payload is not JSON-serializable or the write fails.
    """
    # (1) Serialize before touching the filesystem
    try:
        text = json.dumps(payload, indent=2, ensure_ascii=False, default=str) + "\n"
    except (TypeError, ValueError) as e:
        raise DataError(
            f"Report payload is not JSON-serializable: {e}",
            source="export.write_json_report",
            suggested_action="Convert models with model_dump(mode='json') before export.",
        ) from e

    # (2) Temp file in the target directory, then swap
    target = Path(out_dir) / filename
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(prefix=target.name + ".", dir=str(target.parent))
    except OSError as e:
        raise DataError(
            f"Cannot prepare output directory {target.parent}: {e}",
            source="export.write_json_report",
            suggested_action="Check output directory permissions.",
        ) from e
    try:
        with open(fd, "w", encoding="utf-8", newline="") as f:
            f.write(text)
        os.replace(tmp_path, target)
    except OSError as e:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise DataError(
            f"Atomic write failed for {target}: {e}",
            source="export.write_json_report",
            suggested_action="Check output directory permissions and disk space.",
        ) from e
    return target


__all__ = ["DEFAULT_REPORT_NAME", "build_validation_report", "write_json_report"]
