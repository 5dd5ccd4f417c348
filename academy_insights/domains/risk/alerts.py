# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Risk alert engine and alert lifecycle.

The AlertStateMachine owns the allowed status transitions:

    active -> acknowledged -> resolved
    active -> dismissed

resolved and dismissed are terminal. Every transition is stamped with the
acting employee and a timestamp.

The AlertEngine evaluates the declarative triggers of RiskConfig after a
score is computed. Each trigger that fires yields a create decision, or an
update decision when the student already has an open alert of that type,
so a (student, alert type) pair never has two open alerts.

Usage:
    engine = AlertEngine()
    decisions = engine.evaluate(student_id, score, previous, factors, open_alerts, config)
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol, Sequence

from academy_insights.core.exceptions import (
    AlertAlreadyClosedError,
    AnalyticsValidationError,
    InvalidTransitionError,
)
from academy_insights.domains.risk.config import AlertTriggers, RiskConfig
from academy_insights.domains.risk.models import (
    AlertAction,
    AlertDecision,
    AlertSeverity,
    AlertStatus,
    AlertType,
    OpenAlert,
    PreviousScore,
    RiskFactor,
    RiskLevel,
    RiskScoreResult,
)
from academy_insights.utils.datetime import utc_now

logger = logging.getLogger(__name__)


# =============================================================================
# Lifecycle
# =============================================================================


class TransitionTarget(Protocol):
    """Anything carrying alert lifecycle fields, e.g. the RiskAlert row."""

    status: str
    note: str | None


_TRANSITIONS: dict[tuple[AlertStatus, AlertAction], AlertStatus] = {
    (AlertStatus.ACTIVE, AlertAction.ACKNOWLEDGE): AlertStatus.ACKNOWLEDGED,
    (AlertStatus.ACKNOWLEDGED, AlertAction.RESOLVE): AlertStatus.RESOLVED,
    (AlertStatus.ACTIVE, AlertAction.DISMISS): AlertStatus.DISMISSED,
}

_STAMP_PREFIX: dict[AlertAction, str] = {
    AlertAction.ACKNOWLEDGE: "acknowledged",
    AlertAction.RESOLVE: "resolved",
    AlertAction.DISMISS: "dismissed",
}


class AlertStateMachine:
    """Validates and applies alert status transitions."""

    @staticmethod
    def parse_action(action: str | AlertAction) -> AlertAction:
        """Parse an action name.

        Raises:
            AnalyticsValidationError: If the action is unknown.
        """
        try:
            return AlertAction(action)
        except ValueError as e:
            raise AnalyticsValidationError(
                f"Unknown alert action '{action}'",
                {"allowed": [a.value for a in AlertAction]},
            ) from e

    def next_status(self, current: str | AlertStatus, action: str | AlertAction) -> AlertStatus:
        """Status reached by applying `action` in state `current`.

        Raises:
            AnalyticsValidationError: If the action is unknown.
            AlertAlreadyClosedError: If the alert is resolved or dismissed.
            InvalidTransitionError: If the transition is not allowed.
        """
        parsed = self.parse_action(action)
        status = AlertStatus(current)
        if status.is_terminal:
            raise AlertAlreadyClosedError(
                f"Alert is already {status.value}",
                {"status": status.value, "action": parsed.value},
            )
        target = _TRANSITIONS.get((status, parsed))
        if target is None:
            raise InvalidTransitionError(
                f"Cannot {parsed.value} an alert that is {status.value}",
                {"status": status.value, "action": parsed.value},
            )
        return target

    def apply(
        self,
        alert: TransitionTarget,
        action: str | AlertAction,
        actor_id: str | None,
        note: str | None = None,
        at: datetime | None = None,
    ) -> AlertStatus:
        """Transition an alert in place.

        The alert is left untouched when the transition is rejected.

        Args:
            alert: Alert row or any object with lifecycle fields.
            action: acknowledge, resolve or dismiss.
            actor_id: Employee performing the transition.
            note: Optional free-text note stored on the alert.
            at: Transition time, defaults to now.

        Returns:
            The new status.

        Raises:
            AnalyticsValidationError: If the action is unknown or actor_id is missing.
            AlertAlreadyClosedError: If the alert is resolved or dismissed.
            InvalidTransitionError: If the transition is not allowed.
        """
        if not actor_id:
            raise AnalyticsValidationError("An acting employee is required for alert transitions")

        target = self.next_status(alert.status, action)
        prefix = _STAMP_PREFIX[self.parse_action(action)]

        alert.status = target.value
        setattr(alert, f"{prefix}_by", actor_id)
        setattr(alert, f"{prefix}_at", at or utc_now())
        if note is not None:
            alert.note = note
        return target


# =============================================================================
# Triggers
# =============================================================================


@dataclass(frozen=True)
class TriggerContext:
    """Inputs every trigger sees."""

    student_id: str
    score: RiskScoreResult
    previous: PreviousScore | None
    factors: RiskFactor


@dataclass(frozen=True)
class TriggerHit:
    """A fired trigger before deduplication."""

    severity: AlertSeverity
    title: str
    message: str
    trigger_data: dict[str, Any]


class AlertRule(ABC):
    """Evaluates one declarative trigger from RiskConfig.alert_triggers."""

    @property
    @abstractmethod
    def alert_type(self) -> AlertType:
        """Type of alert this trigger produces."""
        ...

    def enabled(self, triggers: AlertTriggers) -> bool:
        return getattr(triggers, self.alert_type.value).enabled

    @abstractmethod
    def check(self, context: TriggerContext, triggers: AlertTriggers) -> TriggerHit | None:
        """Return a hit when the condition holds."""
        ...


class LevelIncreaseRule(AlertRule):
    """Risk level rose into a watched level."""

    @property
    def alert_type(self) -> AlertType:
        return AlertType.RISK_LEVEL_INCREASED

    def check(self, context: TriggerContext, triggers: AlertTriggers) -> TriggerHit | None:
        params = triggers.risk_level_increased
        level = context.score.risk_level
        baseline = context.previous.risk_level if context.previous else RiskLevel.LOW
        if level not in params.levels or level.rank <= baseline.rank:
            return None

        if context.score.score < params.critical_below:
            severity = AlertSeverity.CRITICAL
        else:
            severity = AlertSeverity(level.value)

        return TriggerHit(
            severity=severity,
            title=f"Risk level increased to {level.value}",
            message=(
                f"Risk score is {context.score.score:.1f}, "
                f"moving from {baseline.value} to {level.value} risk."
            ),
            trigger_data={
                "score": context.score.score,
                "previous_score": context.score.previous_score,
                "from_level": baseline.value,
                "to_level": level.value,
            },
        )


class RapidDeclineRule(AlertRule):
    """Score dropped sharply since the previous run."""

    @property
    def alert_type(self) -> AlertType:
        return AlertType.RAPID_DECLINE

    def check(self, context: TriggerContext, triggers: AlertTriggers) -> TriggerHit | None:
        if context.previous is None:
            return None
        drop = context.previous.score - context.score.score
        if drop < triggers.rapid_decline.min_drop:
            return None
        return TriggerHit(
            severity=AlertSeverity.HIGH,
            title="Rapid risk score decline",
            message=(
                f"Risk score fell {drop:.1f} points "
                f"({context.previous.score:.1f} -> {context.score.score:.1f})."
            ),
            trigger_data={
                "previous_score": context.previous.score,
                "score": context.score.score,
                "drop": round(drop, 1),
            },
        )


class NoContactRule(AlertRule):
    """No consultation for too long while the student is at risk."""

    @property
    def alert_type(self) -> AlertType:
        return AlertType.NO_CONTACT

    def check(self, context: TriggerContext, triggers: AlertTriggers) -> TriggerHit | None:
        params = triggers.no_contact
        level = context.score.risk_level
        if level not in params.levels:
            return None
        days = context.factors.days_since_contact
        if days is not None and days < params.days:
            return None

        since = "never" if days is None else f"{days} days ago"
        return TriggerHit(
            severity=AlertSeverity.HIGH if level is RiskLevel.HIGH else AlertSeverity.MEDIUM,
            title=f"No contact in {params.days} days",
            message=f"Last consultation: {since}; student is at {level.value} risk.",
            trigger_data={"days_since_contact": days, "risk_level": level.value},
        )


class LowAttendanceRule(AlertRule):
    """Attendance rate under the configured floor."""

    @property
    def alert_type(self) -> AlertType:
        return AlertType.LOW_ATTENDANCE

    def check(self, context: TriggerContext, triggers: AlertTriggers) -> TriggerHit | None:
        params = triggers.low_attendance
        rate = context.factors.attendance_rate
        if rate is None or rate >= params.below:
            return None
        severity = AlertSeverity.CRITICAL if rate < params.critical_below else AlertSeverity.HIGH
        return TriggerHit(
            severity=severity,
            title="Low attendance",
            message=f"Attendance rate is {rate:.1f}% over the analysis window.",
            trigger_data={"attendance_rate": round(rate, 1)},
        )


DEFAULT_RULES: tuple[AlertRule, ...] = (
    LevelIncreaseRule(),
    RapidDeclineRule(),
    NoContactRule(),
    LowAttendanceRule(),
)


# =============================================================================
# Engine
# =============================================================================


class AlertEngine:
    """Turns trigger hits into create/update decisions."""

    def __init__(self, rules: Sequence[AlertRule] = DEFAULT_RULES) -> None:
        self.rules = tuple(rules)

    def evaluate(
        self,
        student_id: str,
        score: RiskScoreResult,
        previous: PreviousScore | None,
        factors: RiskFactor,
        open_alerts: Sequence[OpenAlert],
        config: RiskConfig,
    ) -> list[AlertDecision]:
        """Decide which alerts to create or update for one student.

        Args:
            student_id: Student the score belongs to.
            score: Newly computed score.
            previous: Previous persisted score, if any.
            factors: Factor snapshot behind the score.
            open_alerts: The student's non-terminal alerts.
            config: Config snapshot holding the trigger definitions.

        Returns:
            One decision per fired trigger; empty when nothing fired.
        """
        context = TriggerContext(
            student_id=student_id, score=score, previous=previous, factors=factors
        )
        open_by_type: dict[AlertType, OpenAlert] = {}
        for alert in open_alerts:
            if not alert.status.is_terminal:
                open_by_type.setdefault(alert.alert_type, alert)

        decisions: list[AlertDecision] = []
        for rule in self.rules:
            if not rule.enabled(config.alert_triggers):
                continue
            hit = rule.check(context, config.alert_triggers)
            if hit is None:
                continue

            existing = open_by_type.get(rule.alert_type)
            decisions.append(
                AlertDecision(
                    action=AlertDecision.UPDATE if existing else AlertDecision.CREATE,
                    student_id=student_id,
                    alert_type=rule.alert_type,
                    severity=hit.severity,
                    title=hit.title,
                    message=hit.message,
                    trigger_data=hit.trigger_data,
                    existing_alert_id=existing.alert_id if existing else None,
                )
            )
            logger.debug(
                "Alert %s for student %s: %s (%s)",
                "update" if existing else "create",
                student_id,
                rule.alert_type.value,
                hit.severity.value,
            )
        return decisions
