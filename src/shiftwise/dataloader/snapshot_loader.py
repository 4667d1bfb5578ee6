# src/shiftwise/dataloader/snapshot_loader.py
from __future__ import annotations

import logging
from collections import Counter
from datetime import date
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ValidationError

from shiftwise.constraints.context import ValidationContext
from shiftwise.dataloader.documents import JSON_SUFFIXES, YAML_SUFFIXES, read_mapping
from shiftwise.dataloader.types import LoadResult
from shiftwise.errors import DataError
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

logger = logging.getLogger(__name__)

# Document key -> (model, ValidationContext field)
COLLECTIONS: dict[str, tuple[type[BaseModel], str]] = {
    "employees": (Employee, "employees"),
    "skills": (Skill, "skills"),
    "employee_skills": (EmployeeSkill, "employee_skill_records"),
    "stations": (Station, "stations"),
    "shift_templates": (ShiftTemplate, "shift_templates"),
    "demands": (ShiftDemand, "demands"),
    "absences": (Absence, "absences"),
    "assignments": (Assignment, "assignments"),
}


class SnapshotLoader:
    """
    JSON/YAML snapshot -> LoadResult[ValidationContext].

    Rules:
      - Root is a mapping of collection name -> list of records, plus an
        optional `as_of` ISO date. Unknown top-level keys are fatal.
      - Row-level checks (collected, loading continues):
          * record that fails its schema -> schema_error
          * employee skill level above its skill's level_scale -> schema_error
          * id seen earlier in the same collection -> duplicate_id
            (first occurrence kept)
          * unparsable as_of -> invalid_as_of
      - If any issue was collected: success=False and no context.
      - References between collections are not checked here; constraint
        validators report dangling ids.

    Fatal errors (DataError): missing/unreadable file, unsupported extension,
    syntax error, non-mapping root, unknown key, collection that is not a list.
    """

    SUFFIXES = YAML_SUFFIXES | JSON_SUFFIXES

    def load(self, path: Path | str) -> LoadResult:
        doc = read_mapping(
            path,
            suffixes=self.SUFFIXES,
            error=DataError,
            what="Snapshot file",
            source="SnapshotLoader.load",
        )
        result = self.from_mapping(doc)
        self._report_summary(path, result)
        return result

    def from_mapping(self, doc: dict[str, Any]) -> LoadResult:
        unknown = sorted(set(doc) - set(COLLECTIONS) - {"as_of"})
        if unknown:
            raise DataError(
                f"Unknown snapshot key(s): {', '.join(unknown)}",
                source="SnapshotLoader.from_mapping",
                suggested_action=f"Allowed keys: as_of, {', '.join(COLLECTIONS)}.",
            )

        issues: list[dict[str, Any]] = []
        counts: dict[str, int] = {}
        fields: dict[str, tuple[Any, ...]] = {}
        for key, (model, field_name) in COLLECTIONS.items():
            rows = doc.get(key) or []
            if not isinstance(rows, list):
                raise DataError(
                    f"Snapshot collection '{key}' must be a list, got {type(rows).__name__}",
                    source="SnapshotLoader.from_mapping",
                )
            counts[key] = len(rows)
            fields[field_name] = tuple(self._parse_rows(key, model, rows, issues))

        self._check_skill_levels(
            fields["skills"],
            fields["employee_skill_records"],
            doc.get("employee_skills") or [],
            issues,
        )
        as_of = self._parse_as_of(doc.get("as_of"), issues)

        if issues:
            return LoadResult(success=False, issues=issues, counts=counts)
        return LoadResult(
            success=True,
            context=ValidationContext(**fields, as_of=as_of),
            counts=counts,
        )

    # ------------------------------
    # Internal helpers
    # ------------------------------
    @staticmethod
    def _parse_rows(
        key: str, model: type[BaseModel], rows: list[Any], issues: list[dict[str, Any]]
    ) -> list[BaseModel]:
        parsed: list[BaseModel] = []
        seen: set[str] = set()
        for index, row in enumerate(rows):
            row_id = row.get("id") if isinstance(row, dict) else None
            try:
                record = model.model_validate(row)
            except ValidationError as e:
                issues.append(
                    {
                        "kind": "schema_error",
                        "collection": key,
                        "index": index,
                        "id": row_id,
                        "message": f"{e.error_count()} validation error(s): "
                        + "; ".join(
                            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
                            for err in e.errors()
                        ),
                    }
                )
                continue

            record_id = getattr(record, "id", None)
            if record_id is not None and record_id in seen:
                issues.append(
                    {
                        "kind": "duplicate_id",
                        "collection": key,
                        "index": index,
                        "id": record_id,
                        "message": f"Duplicate id in {key} (later occurrence skipped)",
                    }
                )
                continue
            if record_id is not None:
                seen.add(record_id)
            parsed.append(record)
        return parsed

    @staticmethod
    def _check_skill_levels(
        skills: tuple[Any, ...],
        records: tuple[Any, ...],
        rows: list[Any],
        issues: list[dict[str, Any]],
    ) -> None:
        """Levels above the scale of a known skill are schema errors of their row."""
        scale = {s.id: s.level_scale for s in skills}
        first_index: dict[str, int] = {}
        for index, row in enumerate(rows):
            if isinstance(row, dict) and row.get("id") is not None:
                first_index.setdefault(row["id"], index)
        for record in records:
            limit = scale.get(record.skill_id)
            if limit is None or record.level <= limit:
                continue
            issues.append(
                {
                    "kind": "schema_error",
                    "collection": "employee_skills",
                    "index": first_index.get(record.id),
                    "id": record.id,
                    "message": f"level: {record.level} exceeds the scale of skill "
                    f"{record.skill_id} ({limit})",
                }
            )

    @staticmethod
    def _parse_as_of(raw: Any, issues: list[dict[str, Any]]) -> date:
        if raw is None:
            return date.today()
        if isinstance(raw, date):
            return raw
        try:
            return date.fromisoformat(str(raw))
        except ValueError as e:
            issues.append(
                {
                    "kind": "invalid_as_of",
                    "collection": None,
                    "index": None,
                    "id": None,
                    "message": f"Invalid as_of date: {e}",
                }
            )
            return date.today()

    @staticmethod
    def _report_summary(path: Path | str, result: LoadResult) -> None:
        if result.success:
            logger.info(
                "SnapshotLoader OK: %s from %s",
                ", ".join(f"{k}={v}" for k, v in result.counts.items() if v),
                path,
            )
            return
        kinds = Counter(issue["kind"] for issue in result.issues)
        logger.error(
            "SnapshotLoader failed: %d issue(s) in %s [%s]",
            len(result.issues),
            path,
            ", ".join(f"{k}={v}" for k, v in kinds.items()),
        )


__all__ = ["COLLECTIONS", "SnapshotLoader"]
