# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Versioned risk scoring configuration.

RiskConfig is an immutable snapshot. Updating a key produces a new
snapshot with the next version number; a batch run reads the snapshot
once and scores every student against it.

Only the keys in ALLOWED_CONFIG_KEYS can be updated:
- score_weights: factor name to weight, summing to 1.0
- thresholds: score cutoffs (low < warning) plus trend and penalty tuning
- alert_triggers: per-trigger enable flag and parameters
- analysis_period_days: lookback window in days
"""

from typing import Any, Self

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from academy_insights.core.exceptions import AnalyticsValidationError
from academy_insights.domains.risk.models import RiskLevel

FACTOR_NAMES = ("attendance", "homework", "focus", "test_score", "missing_tests")

ALLOWED_CONFIG_KEYS = frozenset(
    {"score_weights", "thresholds", "alert_triggers", "analysis_period_days"}
)

WEIGHT_SUM_TOLERANCE = 0.001

DEFAULT_SCORE_WEIGHTS: dict[str, float] = {
    "attendance": 0.30,
    "homework": 0.20,
    "focus": 0.15,
    "test_score": 0.25,
    "missing_tests": 0.10,
}


class RiskThresholds(BaseModel):
    """Score cutoffs. score <= low is high risk, score <= warning is medium."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    low: float = Field(default=40.0, ge=0, le=100)
    warning: float = Field(default=70.0, ge=0, le=100)
    trend_noise_floor: float = Field(default=5.0, ge=0)
    missing_test_penalty: float = Field(default=25.0, gt=0)

    @model_validator(mode="after")
    def check_ordering(self) -> Self:
        if self.low >= self.warning:
            raise ValueError("thresholds.low must be below thresholds.warning")
        return self


class RiskLevelIncreasedTrigger(BaseModel):
    """Fires when the risk level rises into one of `levels`.

    A first computation is compared against a low-risk baseline.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    enabled: bool = True
    levels: tuple[RiskLevel, ...] = (RiskLevel.HIGH,)
    critical_below: float = Field(default=25.0, ge=0, le=100)


class RapidDeclineTrigger(BaseModel):
    """Fires when the score drops by at least min_drop points."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    enabled: bool = True
    min_drop: float = Field(default=15.0, gt=0)


class NoContactTrigger(BaseModel):
    """Fires when nobody consulted the student for `days` while at risk."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    enabled: bool = True
    days: int = Field(default=30, ge=1)
    levels: tuple[RiskLevel, ...] = (RiskLevel.MEDIUM, RiskLevel.HIGH)


class LowAttendanceTrigger(BaseModel):
    """Fires when the attendance rate is below `below`."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    enabled: bool = True
    below: float = Field(default=50.0, ge=0, le=100)
    critical_below: float = Field(default=30.0, ge=0, le=100)

    @model_validator(mode="after")
    def check_ordering(self) -> Self:
        if self.critical_below > self.below:
            raise ValueError("low_attendance.critical_below must not exceed below")
        return self


class AlertTriggers(BaseModel):
    """Declarative alert conditions evaluated after every score."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    risk_level_increased: RiskLevelIncreasedTrigger = Field(
        default_factory=RiskLevelIncreasedTrigger
    )
    rapid_decline: RapidDeclineTrigger = Field(default_factory=RapidDeclineTrigger)
    no_contact: NoContactTrigger = Field(default_factory=NoContactTrigger)
    low_attendance: LowAttendanceTrigger = Field(default_factory=LowAttendanceTrigger)


class RiskConfig(BaseModel):
    """Immutable risk configuration snapshot.

    Attributes:
        score_weights: Weight per factor; weights sum to 1.0.
        thresholds: Score cutoffs and scoring tuning values.
        alert_triggers: Alert trigger definitions.
        analysis_period_days: Lookback window for factor aggregation.
        version: Monotonic version; 0 means built-in defaults.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    score_weights: dict[str, float] = Field(default_factory=lambda: dict(DEFAULT_SCORE_WEIGHTS))
    thresholds: RiskThresholds = Field(default_factory=RiskThresholds)
    alert_triggers: AlertTriggers = Field(default_factory=AlertTriggers)
    analysis_period_days: int = Field(default=28, ge=1, le=365)
    version: int = Field(default=0, ge=0)

    @field_validator("score_weights")
    @classmethod
    def check_weights(cls, weights: dict[str, float]) -> dict[str, float]:
        unknown = sorted(set(weights) - set(FACTOR_NAMES))
        if unknown:
            raise ValueError(f"unknown score factors: {', '.join(unknown)}")
        if any(weight < 0 for weight in weights.values()):
            raise ValueError("score weights must be non-negative")
        total = sum(weights.values())
        if abs(total - 1.0) > WEIGHT_SUM_TOLERANCE:
            raise ValueError(f"score weights must sum to 1.0, got {total:.3f}")
        return weights

    @classmethod
    def defaults(cls) -> "RiskConfig":
        """Built-in configuration used before any update was stored."""
        return cls()

    @classmethod
    def from_values(cls, values: dict[str, Any], version: int) -> "RiskConfig":
        """Build a snapshot from stored values.

        Args:
            values: Mapping of config key to value, as stored.
            version: Version number of the stored snapshot.

        Returns:
            Validated RiskConfig.

        Raises:
            AnalyticsValidationError: If a key is unknown or a value is invalid.
        """
        unknown = sorted(set(values) - ALLOWED_CONFIG_KEYS)
        if unknown:
            raise AnalyticsValidationError(
                "Unknown risk config keys", {"keys": unknown}
            )
        try:
            return cls(**values, version=version)
        except ValidationError as e:
            raise AnalyticsValidationError(
                "Invalid risk config", {"errors": _error_messages(e)}
            ) from e

    def with_update(self, key: str, value: Any) -> "RiskConfig":
        """Return a new snapshot with one key replaced and the version bumped.

        Args:
            key: Config key, one of ALLOWED_CONFIG_KEYS.
            value: Complete new value for that key.

        Raises:
            AnalyticsValidationError: If the key is not allowed or the value
                is invalid. Nothing is applied in that case.
        """
        if key not in ALLOWED_CONFIG_KEYS:
            raise AnalyticsValidationError(
                f"Config key '{key}' is not updatable",
                {"allowed": sorted(ALLOWED_CONFIG_KEYS)},
            )
        values = self.to_values()
        values[key] = value
        return RiskConfig.from_values(values, version=self.version + 1)

    def to_values(self) -> dict[str, Any]:
        """Serialize to the stored JSON shape (without version)."""
        return self.model_dump(mode="json", exclude={"version"})

    def weight_for(self, factor: str) -> float:
        return self.score_weights.get(factor, 0.0)


def _error_messages(error: ValidationError) -> list[str]:
    return [
        f"{'.'.join(str(part) for part in err['loc']) or 'value'}: {err['msg']}"
        for err in error.errors()
    ]
