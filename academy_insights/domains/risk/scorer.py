# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Composite risk scoring.

Each present factor is normalized to 0-100 (higher is healthier), then
combined as a weighted mean. Weights of absent factors are dropped and
the remaining weights re-normalized to sum to 1.

Risk levels come from RiskConfig.thresholds: a score at or below `low`
is high risk, at or below `warning` is medium risk, anything above is
low risk.
"""

from academy_insights.core.exceptions import InsufficientDataError
from academy_insights.domains.risk.config import FACTOR_NAMES, RiskConfig, RiskThresholds
from academy_insights.domains.risk.models import (
    PreviousScore,
    RiskFactor,
    RiskLevel,
    RiskScoreResult,
    ScoreTrend,
)
from academy_insights.utils.numbers import round_half_up

RATING_SCALE = 20.0  # 1-5 rating to 20-100


def _clamp(value: float) -> float:
    return max(0.0, min(100.0, value))


def normalize_factors(factors: RiskFactor, thresholds: RiskThresholds) -> dict[str, float]:
    """Normalized 0-100 value of every present factor."""
    normalized: dict[str, float] = {}
    if factors.attendance_rate is not None:
        normalized["attendance"] = _clamp(factors.attendance_rate)
    if factors.homework_avg is not None:
        normalized["homework"] = _clamp(factors.homework_avg * RATING_SCALE)
    if factors.focus_avg is not None:
        normalized["focus"] = _clamp(factors.focus_avg * RATING_SCALE)
    if factors.test_score_avg is not None:
        normalized["test_score"] = _clamp(factors.test_score_avg)
    normalized["missing_tests"] = _clamp(
        100.0 - factors.missing_test_count * thresholds.missing_test_penalty
    )
    return normalized


def effective_weights(config: RiskConfig, present: set[str]) -> dict[str, float]:
    """Configured weights restricted to present factors, summing to 1.

    Raises:
        InsufficientDataError: If the present factors carry no weight.
    """
    raw = {
        name: config.weight_for(name)
        for name in FACTOR_NAMES
        if name in present and config.weight_for(name) > 0
    }
    total = sum(raw.values())
    if total <= 0:
        raise InsufficientDataError(
            "No weighted factor is present", {"present": sorted(present)}
        )
    return {name: weight / total for name, weight in raw.items()}


def classify(score: float, thresholds: RiskThresholds) -> RiskLevel:
    """Map a score to a risk level."""
    if score <= thresholds.low:
        return RiskLevel.HIGH
    if score <= thresholds.warning:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def trend_between(score: float, previous: float | None, noise_floor: float) -> ScoreTrend:
    """Trend versus the previous score; the first computation is stable."""
    if previous is None:
        return ScoreTrend.STABLE
    delta = score - previous
    if delta > noise_floor:
        return ScoreTrend.IMPROVING
    if delta < -noise_floor:
        return ScoreTrend.WORSENING
    return ScoreTrend.STABLE


class RiskScorer:
    """Deterministic scorer: same snapshot and config, same result."""

    def score(
        self,
        factors: RiskFactor,
        config: RiskConfig,
        previous: PreviousScore | None = None,
    ) -> RiskScoreResult:
        """Score one factor snapshot.

        Args:
            factors: Snapshot produced by the aggregator.
            config: Config snapshot to score against.
            previous: Most recent persisted score of the student, if any.

        Returns:
            RiskScoreResult with level and trend.

        Raises:
            InsufficientDataError: If no weighted factor is present.
        """
        thresholds = config.thresholds
        normalized = normalize_factors(factors, thresholds)
        weights = effective_weights(config, set(normalized))

        composite = sum(normalized[name] * weight for name, weight in weights.items())
        score = round_half_up(composite, 1)

        previous_score = previous.score if previous is not None else None
        score_change = (
            round_half_up(score - previous_score, 1) if previous_score is not None else None
        )

        return RiskScoreResult(
            score=score,
            risk_level=classify(score, thresholds),
            trend=trend_between(score, previous_score, thresholds.trend_noise_floor),
            previous_score=previous_score,
            score_change=score_change,
            factor_scores={name: round_half_up(value, 1) for name, value in normalized.items()},
            effective_weights=weights,
            config_version=config.version,
        )
