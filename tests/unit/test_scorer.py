# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for composite risk scoring."""

import pytest

from academy_insights.core.exceptions import InsufficientDataError
from academy_insights.domains.risk.config import RiskConfig, RiskThresholds
from academy_insights.domains.risk.models import (
    PreviousScore,
    RiskFactor,
    RiskLevel,
    ScoreTrend,
)
from academy_insights.domains.risk.scorer import (
    RiskScorer,
    classify,
    normalize_factors,
    trend_between,
)


def make_factors(**overrides) -> RiskFactor:
    values = {
        "attendance_rate": 100.0,
        "homework_avg": 5.0,
        "focus_avg": 5.0,
        "test_score_avg": 95.0,
        "missing_test_count": 0,
    }
    values.update(overrides)
    return RiskFactor(**values)


@pytest.fixture
def scorer() -> RiskScorer:
    return RiskScorer()


@pytest.fixture
def config() -> RiskConfig:
    return RiskConfig.defaults()


class TestNormalizeFactors:
    """Tests for factor normalization."""

    def test_ratings_scaled_to_percent(self) -> None:
        normalized = normalize_factors(
            make_factors(homework_avg=3.5, focus_avg=1.0), RiskThresholds()
        )

        assert normalized["homework"] == 70.0
        assert normalized["focus"] == 20.0

    def test_test_score_clamped(self) -> None:
        normalized = normalize_factors(make_factors(test_score_avg=104.0), RiskThresholds())

        assert normalized["test_score"] == 100.0

    @pytest.mark.parametrize(
        ("missing", "expected"),
        [(0, 100.0), (1, 75.0), (3, 25.0), (4, 0.0), (9, 0.0)],
    )
    def test_missing_test_penalty(self, missing: int, expected: float) -> None:
        normalized = normalize_factors(make_factors(missing_test_count=missing), RiskThresholds())

        assert normalized["missing_tests"] == expected

    def test_absent_factors_are_skipped(self) -> None:
        normalized = normalize_factors(
            make_factors(attendance_rate=None, test_score_avg=None), RiskThresholds()
        )

        assert set(normalized) == {"homework", "focus", "missing_tests"}


class TestClassify:
    """Tests for risk level classification."""

    @pytest.mark.parametrize(
        ("score", "level"),
        [
            (0.0, RiskLevel.HIGH),
            (40.0, RiskLevel.HIGH),
            (40.1, RiskLevel.MEDIUM),
            (70.0, RiskLevel.MEDIUM),
            (70.1, RiskLevel.LOW),
            (100.0, RiskLevel.LOW),
        ],
    )
    def test_threshold_boundaries(self, score: float, level: RiskLevel) -> None:
        assert classify(score, RiskThresholds()) is level


class TestTrend:
    """Tests for trend detection."""

    def test_first_computation_is_stable(self) -> None:
        assert trend_between(30.0, None, 5.0) is ScoreTrend.STABLE

    def test_change_within_noise_floor_is_stable(self) -> None:
        assert trend_between(65.0, 60.0, 5.0) is ScoreTrend.STABLE
        assert trend_between(55.0, 60.0, 5.0) is ScoreTrend.STABLE

    def test_improving_and_worsening(self) -> None:
        assert trend_between(65.1, 60.0, 5.0) is ScoreTrend.IMPROVING
        assert trend_between(54.9, 60.0, 5.0) is ScoreTrend.WORSENING


class TestRiskScorer:
    """Tests for RiskScorer.score."""

    def test_healthy_student_is_low_risk(self, scorer: RiskScorer, config: RiskConfig) -> None:
        result = scorer.score(make_factors(), config)

        # 0.30*100 + 0.20*100 + 0.15*100 + 0.25*95 + 0.10*100 = 98.75
        assert result.score == 98.8
        assert result.risk_level is RiskLevel.LOW
        assert result.trend is ScoreTrend.STABLE
        assert result.previous_score is None
        assert result.score_change is None
        assert result.config_version == 0

    def test_absent_attendance_renormalizes_weights(
        self, scorer: RiskScorer, config: RiskConfig
    ) -> None:
        factors = make_factors(
            attendance_rate=None, homework_avg=4.0, focus_avg=3.0, test_score_avg=70.0
        )

        result = scorer.score(factors, config)

        # (0.20*80 + 0.15*60 + 0.25*70 + 0.10*100) / 0.70
        assert result.score == 75.0
        assert "attendance" not in result.factor_scores
        assert "attendance" not in result.effective_weights
        assert sum(result.effective_weights.values()) == pytest.approx(1.0)
        assert result.effective_weights["test_score"] == pytest.approx(0.25 / 0.70)

    def test_zero_weight_factor_is_ignored(self, scorer: RiskScorer) -> None:
        config = RiskConfig(
            score_weights={"attendance": 0.5, "homework": 0.5, "focus": 0.0}
        )

        result = scorer.score(make_factors(attendance_rate=50.0, homework_avg=5.0), config)

        assert result.score == 75.0
        assert set(result.effective_weights) == {"attendance", "homework"}

    def test_no_weighted_factor_raises(self, scorer: RiskScorer) -> None:
        config = RiskConfig(score_weights={"attendance": 1.0})

        with pytest.raises(InsufficientDataError):
            scorer.score(make_factors(attendance_rate=None), config)

    def test_trend_against_previous(self, scorer: RiskScorer, config: RiskConfig) -> None:
        previous = PreviousScore(score=65.0, risk_level=RiskLevel.MEDIUM)

        result = scorer.score(
            make_factors(attendance_rate=20.0, homework_avg=1.0, focus_avg=1.0, test_score_avg=30.0),
            config,
            previous,
        )

        assert result.risk_level is RiskLevel.HIGH
        assert result.trend is ScoreTrend.WORSENING
        assert result.previous_score == 65.0
        assert result.score_change == pytest.approx(result.score - 65.0)

    def test_is_deterministic(self, scorer: RiskScorer, config: RiskConfig) -> None:
        factors = make_factors(attendance_rate=83.3, homework_avg=3.7, missing_test_count=1)

        assert scorer.score(factors, config) == scorer.score(factors, config)

    def test_carries_config_version(self, scorer: RiskScorer, config: RiskConfig) -> None:
        updated = config.with_update("analysis_period_days", 14)

        assert scorer.score(make_factors(), updated).config_version == 1
