# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the versioned risk configuration."""

import pytest
from pydantic import ValidationError

from academy_insights.core.exceptions import AnalyticsValidationError
from academy_insights.domains.risk.config import (
    ALLOWED_CONFIG_KEYS,
    DEFAULT_SCORE_WEIGHTS,
    RiskConfig,
    RiskThresholds,
)
from academy_insights.domains.risk.models import RiskLevel


class TestRiskConfigDefaults:
    """Tests for the built-in configuration."""

    def test_default_weights_sum_to_one(self) -> None:
        config = RiskConfig.defaults()

        assert config.version == 0
        assert sum(config.score_weights.values()) == pytest.approx(1.0)
        assert config.score_weights == DEFAULT_SCORE_WEIGHTS

    def test_default_thresholds(self) -> None:
        thresholds = RiskConfig.defaults().thresholds

        assert thresholds.low == 40.0
        assert thresholds.warning == 70.0
        assert thresholds.trend_noise_floor == 5.0
        assert thresholds.missing_test_penalty == 25.0

    def test_default_triggers(self) -> None:
        triggers = RiskConfig.defaults().alert_triggers

        assert triggers.risk_level_increased.levels == (RiskLevel.HIGH,)
        assert triggers.no_contact.days == 30
        assert triggers.low_attendance.below == 50.0

    def test_is_frozen(self) -> None:
        config = RiskConfig.defaults()

        with pytest.raises(ValidationError):
            config.analysis_period_days = 7  # type: ignore[misc]


class TestRiskConfigValidation:
    """Tests for value validation."""

    def test_weights_must_sum_to_one(self) -> None:
        with pytest.raises(ValidationError, match="sum to 1.0"):
            RiskConfig(score_weights={"attendance": 0.5, "homework": 0.2})

    def test_weight_sum_tolerance(self) -> None:
        config = RiskConfig(score_weights={"attendance": 0.5005, "homework": 0.5})

        assert config.weight_for("attendance") == 0.5005

    def test_unknown_factor_rejected(self) -> None:
        with pytest.raises(ValidationError, match="unknown score factors"):
            RiskConfig(score_weights={"attendance": 0.5, "mood": 0.5})

    def test_negative_weight_rejected(self) -> None:
        with pytest.raises(ValidationError, match="non-negative"):
            RiskConfig(score_weights={"attendance": 1.2, "homework": -0.2})

    def test_thresholds_must_be_ordered(self) -> None:
        with pytest.raises(ValidationError, match="below thresholds.warning"):
            RiskThresholds(low=70, warning=40)

    def test_equal_thresholds_rejected(self) -> None:
        with pytest.raises(ValidationError):
            RiskThresholds(low=50, warning=50)

    def test_analysis_period_bounds(self) -> None:
        with pytest.raises(ValidationError):
            RiskConfig(analysis_period_days=0)
        with pytest.raises(ValidationError):
            RiskConfig(analysis_period_days=366)

    def test_from_values_unknown_key(self) -> None:
        with pytest.raises(AnalyticsValidationError) as exc_info:
            RiskConfig.from_values({"colour": "red"}, version=1)

        assert exc_info.value.details["keys"] == ["colour"]

    def test_from_values_invalid_value(self) -> None:
        with pytest.raises(AnalyticsValidationError) as exc_info:
            RiskConfig.from_values({"analysis_period_days": -1}, version=1)

        assert exc_info.value.details["errors"]

    def test_unknown_trigger_rejected(self) -> None:
        with pytest.raises(AnalyticsValidationError):
            RiskConfig.from_values({"alert_triggers": {"moon_phase": {"enabled": True}}}, 1)


class TestWithUpdate:
    """Tests for RiskConfig.with_update."""

    def test_returns_new_version(self) -> None:
        config = RiskConfig.defaults()

        updated = config.with_update("analysis_period_days", 14)

        assert updated.version == 1
        assert updated.analysis_period_days == 14
        assert config.analysis_period_days == 28
        assert config.version == 0

    def test_keeps_other_keys(self) -> None:
        config = RiskConfig.defaults().with_update(
            "thresholds", {"low": 30, "warning": 60}
        )

        updated = config.with_update("analysis_period_days", 7)

        assert updated.thresholds.low == 30
        assert updated.thresholds.warning == 60
        assert updated.version == 2

    def test_disallowed_key(self) -> None:
        with pytest.raises(AnalyticsValidationError) as exc_info:
            RiskConfig.defaults().with_update("version", 99)

        assert exc_info.value.details["allowed"] == sorted(ALLOWED_CONFIG_KEYS)

    def test_invalid_value_is_not_applied(self) -> None:
        config = RiskConfig.defaults()

        with pytest.raises(AnalyticsValidationError):
            config.with_update("thresholds", {"low": 80, "warning": 60})

        assert config.thresholds.low == 40.0

    def test_round_trips_stored_values(self) -> None:
        config = RiskConfig.defaults().with_update(
            "score_weights",
            {"attendance": 0.4, "homework": 0.1, "focus": 0.1, "test_score": 0.3, "missing_tests": 0.1},
        )

        restored = RiskConfig.from_values(config.to_values(), version=config.version)

        assert restored == config
