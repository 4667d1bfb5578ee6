# src/shiftwise/constraints/violation.py
from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field

from shiftwise.schemas.models import SEVERITY_LEVELS, Severity


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ConstraintViolation(BaseModel):
    """
    @brief
    Immutable record of a detected rule breach.

    @details
    Violations are results, not errors: validators return them alongside a
    successful evaluation. Severity alone decides whether a violation blocks
    a commit (critical and error do, warning and info do not).
    Instances are never mutated; the `with_*` helpers build a superseding copy.
    """

    model_config = {"frozen": True, "extra": "forbid", "use_enum_values": True}

    constraint_id: str
    severity: Severity
    message: str
    affected_assignments: tuple[str, ...] = ()
    suggested_actions: tuple[str, ...] = ()
    timestamp: datetime = Field(default_factory=_utc_now)

    # ---------- Severity predicates ----------
    @property
    def is_critical(self) -> bool:
        return self.severity == Severity.CRITICAL

    @property
    def is_error(self) -> bool:
        return self.severity == Severity.ERROR

    @property
    def is_warning(self) -> bool:
        return self.severity == Severity.WARNING

    @property
    def is_info(self) -> bool:
        return self.severity == Severity.INFO

    @property
    def is_blocking(self) -> bool:
        return self.severity in (Severity.CRITICAL, Severity.ERROR)

    def severity_level(self) -> int:
        """Numeric rank for sorting: critical=4, error=3, warning=2, info=1."""
        return SEVERITY_LEVELS.get(self.severity, 0)

    # ---------- Presentation ----------
    def formatted_message(self) -> str:
        return f"[{str(self.severity).upper()}] {self.message}"

    def summary(self) -> dict[str, Any]:
        return {
            "constraint_id": self.constraint_id,
            "severity": str(self.severity),
            "message": self.message,
            "affected_count": len(self.affected_assignments),
            "action_count": len(self.suggested_actions),
            "timestamp": self.timestamp.isoformat(),
        }

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")

    # ---------- Superseding copies ----------
    def with_message(self, message: str) -> ConstraintViolation:
        return self._supersede(message=message)

    def with_additional_actions(self, actions: Iterable[str]) -> ConstraintViolation:
        return self._supersede(suggested_actions=(*self.suggested_actions, *actions))

    def with_severity(self, severity: Severity | str) -> ConstraintViolation:
        return self._supersede(severity=severity)

    def _supersede(self, **changes: Any) -> ConstraintViolation:
        data = {
            "constraint_id": self.constraint_id,
            "severity": self.severity,
            "message": self.message,
            "affected_assignments": self.affected_assignments,
            "suggested_actions": self.suggested_actions,
        }
        data.update(changes)
        return ConstraintViolation(**data)


def has_blocking(violations: Iterable[ConstraintViolation]) -> bool:
    return any(v.is_blocking for v in violations)


__all__ = ["ConstraintViolation", "has_blocking"]
