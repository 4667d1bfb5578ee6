"""
@brief
Pydantic domain models for the Shiftwise assignment engine.

@details
Defines the immutable snapshot entities the constraint engine reads:
    - Employee / EmployeePreferences: workers and their contractual limits
    - Skill / EmployeeSkill / RequiredSkill: qualification records
    - Station / ShiftTemplate / ShiftDemand: where, when and how many
    - Absence: approved or pending time off
    - Assignment: a worker-to-demand binding with its score

All models are frozen. "Updates" go through the `with_*` helpers or
`model_copy(update=...)`, which return a new instance and leave the original
untouched. Entity invariants are enforced at construction time, so malformed
input fails before it can reach any validator.
"""

from __future__ import annotations

import datetime as _dt
from datetime import date, datetime, timezone
from enum import StrEnum

from pydantic import BaseModel, Field, field_validator, model_validator

from shiftwise.errors import StateTransitionError


class _FrozenModel(BaseModel):
    """
    @brief
    Base model enforcing strict, immutable defaults for domain entities.

    @details
    Forbids unknown fields, freezes instances after validation and exports
    raw enum values, mirroring the contract of the snapshot documents.
    """

    model_config = {
        "extra": "forbid",
        "frozen": True,
        "populate_by_name": True,
        "use_enum_values": True,
    }


# ------------------------------------------------------------
# Enumerations
# ------------------------------------------------------------
class ContractType(StrEnum):
    FULL_TIME = "full-time"
    PART_TIME = "part-time"
    TEMPORARY = "temporary"
    CONTRACT = "contract"


class ShiftType(StrEnum):
    DAY = "day"
    NIGHT = "night"
    SWING = "swing"
    WEEKEND = "weekend"


class Priority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AssignmentStatus(StrEnum):
    PROPOSED = "proposed"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"


class AbsenceType(StrEnum):
    VACATION = "vacation"
    SICK = "sick"
    TRAINING = "training"
    PERSONAL = "personal"


class SkillCategory(StrEnum):
    TECHNICAL = "technical"
    SAFETY = "safety"
    QUALITY = "quality"
    LEADERSHIP = "leadership"
    OPERATIONAL = "operational"
    ASSEMBLY = "assembly"
    WELDING = "welding"
    PAINTING = "painting"
    INSPECTION = "inspection"
    MACHINERY = "machinery"
    ELECTRICAL = "electrical"


class Severity(StrEnum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ConstraintType(StrEnum):
    HARD = "hard"
    SOFT = "soft"


class RiskLevel(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# Ranks used for ordering (higher = more severe / more urgent)
SEVERITY_LEVELS: dict[str, int] = {
    Severity.CRITICAL: 4,
    Severity.ERROR: 3,
    Severity.WARNING: 2,
    Severity.INFO: 1,
}

PRIORITY_LEVELS: dict[str, int] = {
    Priority.CRITICAL: 4,
    Priority.HIGH: 3,
    Priority.MEDIUM: 2,
    Priority.LOW: 1,
}

# Maximum absence length in calendar days, inclusive of both ends
ABSENCE_MAX_DAYS: dict[str, int] = {
    AbsenceType.VACATION: 30,
    AbsenceType.SICK: 90,
    AbsenceType.TRAINING: 14,
    AbsenceType.PERSONAL: 5,
}

ABSENCE_NOTICE_DAYS: dict[str, int] = {
    AbsenceType.VACATION: 14,
    AbsenceType.TRAINING: 7,
    AbsenceType.PERSONAL: 3,
    AbsenceType.SICK: 0,
}


def parse_hhmm(value: str) -> int:
    """
    @brief
    Convert an "HH:MM" clock string to minutes since midnight.

    @raises
        ValueError
            If the string is not a valid 24h clock time.
    """
    try:
        hours_raw, minutes_raw = value.split(":")
        hours, minutes = int(hours_raw), int(minutes_raw)
    except (AttributeError, ValueError) as e:
        raise ValueError(f"Invalid time '{value}', expected HH:MM") from e
    if not (0 <= hours <= 23 and 0 <= minutes <= 59):
        raise ValueError(f"Invalid time '{value}', expected HH:MM within 00:00-23:59")
    return hours * 60 + minutes


# ------------------------------------------------------------
# People and qualifications
# ------------------------------------------------------------
class EmployeePreferences(_FrozenModel):
    """
    @brief
    Stated scheduling preferences of an employee.

    @details
    `preferred_days_off` uses Python weekday numbers (0 = Monday .. 6 = Sunday).
    `max_consecutive_days` overrides the configured labor-law default.
    """

    preferred_shifts: list[ShiftType] = Field(default_factory=list)
    preferred_stations: list[str] = Field(default_factory=list)
    max_consecutive_days: int | None = Field(None, ge=1)
    preferred_days_off: list[int] = Field(default_factory=list)

    @field_validator("preferred_days_off")
    @classmethod
    def _check_weekdays(cls, value: list[int]) -> list[int]:
        if any(d < 0 or d > 6 for d in value):
            raise ValueError("preferred_days_off entries must be weekday numbers 0..6")
        return value


class Employee(_FrozenModel):
    """A worker and the contractual limits the labor-law rules enforce."""

    id: str
    name: str
    contract_type: ContractType = ContractType.FULL_TIME
    weekly_hours: float = Field(40.0, gt=0, le=80)
    max_hours_per_day: float = Field(8.0, gt=0, le=24)
    min_rest_hours: float = Field(11.0, ge=0, le=48)
    team: str = "default"
    active: bool = True
    preferences: EmployeePreferences | None = None

    @model_validator(mode="after")
    def _check_daily_limit(self) -> Employee:
        if self.max_hours_per_day > self.weekly_hours:
            raise ValueError("max_hours_per_day cannot exceed weekly_hours")
        return self


class Skill(_FrozenModel):
    id: str
    name: str
    description: str | None = None
    level_scale: int = Field(3, ge=1, le=10)
    category: SkillCategory = SkillCategory.TECHNICAL


class EmployeeSkill(_FrozenModel):
    """Certification record; `valid_until` of None means it never expires."""

    id: str
    employee_id: str
    skill_id: str
    level: int = Field(..., ge=1, le=10)
    valid_until: date | None = None
    certification_id: str | None = None

    def with_level(self, level: int, valid_until: date | None = None) -> EmployeeSkill:
        return EmployeeSkill.model_validate(
            {
                **self.model_dump(),
                "level": level,
                "valid_until": valid_until if valid_until is not None else self.valid_until,
            }
        )


class RequiredSkill(_FrozenModel):
    skill_id: str
    min_level: int = Field(1, ge=1, le=10)
    count: int = Field(1, ge=1)
    mandatory: bool = True


# ------------------------------------------------------------
# Work locations, shapes and demand
# ------------------------------------------------------------
class Station(_FrozenModel):
    id: str
    name: str
    line: str = ""
    required_skills: list[RequiredSkill] = Field(..., min_length=1)
    priority: Priority = Priority.MEDIUM
    capacity: int = Field(1, ge=1)
    active: bool = True


class BreakRule(_FrozenModel):
    duration: int = Field(..., gt=0, description="Break length in minutes")
    start_after: int = Field(0, ge=0, description="Minutes after shift start")
    paid: bool = False


class ShiftTemplate(_FrozenModel):
    """
    @brief
    Recurring shift shape defined by wall-clock start and end.

    @details
    An end time at or before the start time denotes an overnight shift
    that finishes on the following calendar day.
    """

    id: str
    name: str
    start_time: str = Field(..., description="HH:MM")
    end_time: str = Field(..., description="HH:MM")
    break_rules: list[BreakRule] = Field(default_factory=list)
    shift_type: ShiftType = ShiftType.DAY

    @field_validator("start_time", "end_time")
    @classmethod
    def _check_clock(cls, value: str) -> str:
        parse_hhmm(value)
        return value

    @model_validator(mode="after")
    def _check_duration(self) -> ShiftTemplate:
        minutes = self.duration_minutes
        if minutes < 120:
            raise ValueError("Shift duration must be at least 2 hours")
        if minutes > 16 * 60:
            raise ValueError("Shift duration cannot exceed 16 hours")
        total_break = sum(b.duration for b in self.break_rules)
        if total_break >= minutes:
            raise ValueError("Total break time must be shorter than the shift duration")
        for b in self.break_rules:
            if b.start_after + b.duration > minutes:
                raise ValueError("Break cannot extend beyond shift end time")
        return self

    @property
    def start_minutes(self) -> int:
        return parse_hhmm(self.start_time)

    @property
    def end_minutes(self) -> int:
        return parse_hhmm(self.end_time)

    @property
    def is_overnight(self) -> bool:
        return self.end_minutes <= self.start_minutes

    @property
    def duration_minutes(self) -> int:
        return (self.end_minutes - self.start_minutes) % (24 * 60) or 24 * 60

    @property
    def duration_hours(self) -> float:
        return self.duration_minutes / 60.0


class ShiftDemand(_FrozenModel):
    id: str
    date: _dt.date
    station_id: str
    shift_template_id: str
    required_count: int = Field(1, ge=1)
    priority: Priority = Priority.MEDIUM
    notes: str | None = None


class Absence(_FrozenModel):
    """Time off covering `date_start`..`date_end` inclusive."""

    id: str
    employee_id: str
    type: AbsenceType
    date_start: date
    date_end: date
    approved: bool = False
    reason: str | None = None
    requested_on: date | None = None

    @model_validator(mode="after")
    def _check_range(self) -> Absence:
        if self.date_start > self.date_end:
            raise ValueError("date_start must not be after date_end")
        limit = ABSENCE_MAX_DAYS[self.type]
        if self.duration_days > limit:
            raise ValueError(f"{self.type} absence cannot exceed {limit} days")
        return self

    @property
    def duration_days(self) -> int:
        return (self.date_end - self.date_start).days + 1

    def covers(self, day: date) -> bool:
        return self.date_start <= day <= self.date_end

    def notice_shortfall(self) -> int:
        """Days of advance notice missing for this absence type (0 when sufficient)."""
        if self.requested_on is None:
            return 0
        given = (self.date_start - self.requested_on).days
        return max(0, ABSENCE_NOTICE_DAYS[self.type] - given)


# ------------------------------------------------------------
# Assignments
# ------------------------------------------------------------
_ASSIGNMENT_TRANSITIONS: dict[str, set[str]] = {
    AssignmentStatus.PROPOSED: {AssignmentStatus.CONFIRMED, AssignmentStatus.REJECTED},
    AssignmentStatus.CONFIRMED: {AssignmentStatus.REJECTED},
    AssignmentStatus.REJECTED: set(),
}


class Assignment(_FrozenModel):
    """
    @brief
    Binding of one employee to one shift demand.

    @details
    Proposed and confirmed assignments are "active": they count towards hours,
    conflicts and coverage. Rejected assignments are kept for history only.
    """

    id: str
    demand_id: str
    employee_id: str
    status: AssignmentStatus = AssignmentStatus.PROPOSED
    score: float = Field(0.0, ge=0, le=100)
    explanation: str | None = None
    created_by: str = "system"
    updated_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.status in (AssignmentStatus.PROPOSED, AssignmentStatus.CONFIRMED)

    @property
    def is_confirmed(self) -> bool:
        return self.status == AssignmentStatus.CONFIRMED

    @property
    def is_proposed(self) -> bool:
        return self.status == AssignmentStatus.PROPOSED

    def with_status(self, status: AssignmentStatus | str) -> Assignment:
        """
        @brief
        Return a copy moved to a new lifecycle status.

        @raises
            StateTransitionError
                If the transition is not allowed (rejected is terminal).
        """
        if status == self.status:
            return self
        if status not in _ASSIGNMENT_TRANSITIONS[self.status]:
            raise StateTransitionError(
                f"Invalid assignment status transition from {self.status} to {status}",
                source="Assignment.with_status",
                suggested_action="Only proposed assignments can be confirmed; rejected is final.",
            )
        return self.model_copy(
            update={"status": AssignmentStatus(status), "updated_at": datetime.now(timezone.utc)}
        )

    def with_score(self, score: float, explanation: str | None = None) -> Assignment:
        return Assignment.model_validate(
            {
                **self.model_dump(),
                "score": score,
                "explanation": explanation or self.explanation,
                "updated_at": datetime.now(timezone.utc),
            }
        )


__all__ = [
    "ABSENCE_MAX_DAYS",
    "ABSENCE_NOTICE_DAYS",
    "PRIORITY_LEVELS",
    "SEVERITY_LEVELS",
    "Absence",
    "AbsenceType",
    "Assignment",
    "AssignmentStatus",
    "BreakRule",
    "ConstraintType",
    "ContractType",
    "Employee",
    "EmployeePreferences",
    "EmployeeSkill",
    "Priority",
    "RequiredSkill",
    "RiskLevel",
    "Severity",
    "ShiftDemand",
    "ShiftTemplate",
    "ShiftType",
    "Skill",
    "SkillCategory",
    "Station",
    "parse_hhmm",
]
