"""
@brief
Runtime configuration models for Shiftwise (config.yaml).

@details
Every rule threshold that would otherwise be a literal inside a validator
lives here, so rule sets can be tuned per site without touching the engine.
Defaults reproduce the reference behaviour of the scheduling rules.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from shiftwise.schemas.models import Severity


class _StrictBaseModel(BaseModel):
    """
    @brief
    Base model enforcing strict defaults for configuration contracts.

    @details
    Forbids unknown fields so that typos in config.yaml are reported
    instead of silently ignored.
    """

    model_config = {
        "extra": "forbid",
        "populate_by_name": True,
        "use_enum_values": True,
    }


class FairnessConfig(_StrictBaseModel):
    """
    @brief
    Thresholds of the fairness soft constraint.

    @details
    Ratios are relative to the same-team mean; windows are trailing
    calendar days counted back from the demand date.
    """

    workload_ratio: float = Field(
        1.3, gt=1.0, description="Flag projected weekly hours above this multiple of team mean"
    )
    underload_ratio: float = Field(
        0.8, gt=0.0, le=1.0, description="Members below this multiple of mean are suggested"
    )
    shift_type_share: float = Field(
        0.7, gt=0.0, le=1.0, description="Flag when one shift type exceeds this share"
    )
    shift_type_min_sample: int = Field(5, ge=1, description="Minimum shifts before share applies")
    shift_type_window_days: int = Field(30, ge=1)
    weekend_ratio: float = Field(
        1.5, gt=1.0, description="Flag weekend count above this multiple of team mean"
    )
    weekend_window_days: int = Field(60, ge=1)


class LaborLawConfig(_StrictBaseModel):
    default_max_consecutive_days: int = Field(
        6, ge=1, description="Used when the employee states no maxConsecutiveDays preference"
    )
    expiry_warning_days: int = Field(
        30, ge=0, description="Warn when a certification expires within this many days"
    )


class PreferenceConfig(_StrictBaseModel):
    preferred_day_off_severity: Severity = Severity.WARNING
    unpreferred_shift_severity: Severity = Severity.INFO
    unpreferred_station_severity: Severity = Severity.INFO


class ContinuityConfig(_StrictBaseModel):
    history_window_days: int = Field(30, ge=1, description="Trailing window for station history")
    min_station_visits: int = Field(
        1, ge=0, description="Visits within the window below which the station is unfamiliar"
    )


class EvaluationConfig(_StrictBaseModel):
    num_workers: int = Field(1, ge=1, description="Threads used for batch evaluation")
    detect_double_booking: bool = Field(
        True, description="Check same-day double bookings across a batch"
    )


class ExplanationConfig(_StrictBaseModel):
    max_alternatives: int = Field(5, ge=0)
    qualified_score: float = Field(50.0, ge=0, le=100)


class SimulationConfig(_StrictBaseModel):
    horizon_days: int = Field(7, ge=1, description="Days simulated from the scenario base date")
    temp_hire_coverage_drop: float = Field(15.0, ge=0)
    cross_training_station_count: int = Field(2, ge=0)
    contingency_coverage_drop: float = Field(10.0, ge=0)
    mitigation_risk_increase: float = Field(20.0, ge=0)


class Config(_StrictBaseModel):
    """
    @brief
    Represents the full runtime configuration loaded from config.yaml.

    @details
    Combines rule thresholds, evaluation fan-out, explanation limits,
    simulation parameters and artifact output settings.
    """

    fairness: FairnessConfig = Field(default_factory=FairnessConfig)
    labor_law: LaborLawConfig = Field(default_factory=LaborLawConfig)
    preference: PreferenceConfig = Field(default_factory=PreferenceConfig)
    continuity: ContinuityConfig = Field(default_factory=ContinuityConfig)
    evaluation: EvaluationConfig = Field(default_factory=EvaluationConfig)
    explanation: ExplanationConfig = Field(default_factory=ExplanationConfig)
    simulation: SimulationConfig = Field(default_factory=SimulationConfig)

    output_dir: str | None = "data/output"
    write_report: bool = True


__all__ = [
    "Config",
    "ContinuityConfig",
    "EvaluationConfig",
    "ExplanationConfig",
    "FairnessConfig",
    "LaborLawConfig",
    "PreferenceConfig",
    "SimulationConfig",
]
