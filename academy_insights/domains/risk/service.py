# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Risk service behind the risk API.

This module provides the RiskService that handles:
- Latest score listing and per-student score history
- Alert listing and alert lifecycle actions
- Reading and updating the versioned risk config

Example:
    >>> service = RiskService(db)
    >>> scores = await service.list_scores(risk_level="high", limit=20)
    >>> alert = await service.update_alert_status(alert_id, "acknowledge", employee_id)
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from academy_insights.core.exceptions import NotFoundError
from academy_insights.domains.risk.alerts import AlertStateMachine
from academy_insights.domains.risk.repository import RiskRepository
from academy_insights.infrastructure.database.models import RiskAlert, StudentRiskScore
from academy_insights.infrastructure.database.reads import DEFAULT_READ_TIMEOUT
from academy_insights.models.risk import (
    RiskAlertListResponse,
    RiskAlertResponse,
    RiskConfigResponse,
    RiskScoreListResponse,
    RiskScoreResponse,
    StudentRiskResponse,
)
from academy_insights.utils.datetime import utc_now

logger = logging.getLogger(__name__)


def _score_response(row: StudentRiskScore, student_name: str | None = None) -> RiskScoreResponse:
    response = RiskScoreResponse.model_validate(row)
    response.student_name = student_name
    return response


def _alert_response(alert: RiskAlert, student_name: str | None = None) -> RiskAlertResponse:
    response = RiskAlertResponse.model_validate(alert)
    response.student_name = student_name
    return response


class RiskService:
    """Service for risk scores, alerts and the risk config.

    Attributes:
        _repository: Risk data access bound to the request session.
        _state_machine: Alert lifecycle rules.
    """

    def __init__(
        self,
        db: AsyncSession,
        read_timeout: float = DEFAULT_READ_TIMEOUT,
        history_limit: int = 12,
    ) -> None:
        """Initialize the risk service.

        Args:
            db: Async database session.
            read_timeout: Seconds allowed for each read.
            history_limit: Past scores returned with a student's score.
        """
        self._repository = RiskRepository(db, read_timeout=read_timeout)
        self._state_machine = AlertStateMachine()
        self._history_limit = history_limit

    # =========================================================================
    # Scores
    # =========================================================================

    async def list_scores(
        self,
        risk_level: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> RiskScoreListResponse:
        """List the latest score of each student, riskiest first.

        Args:
            risk_level: Optional level filter.
            limit: Page size.
            offset: Page offset.

        Returns:
            Paginated latest scores.
        """
        rows, total = await self._repository.list_latest_scores(
            risk_level=risk_level, limit=limit, offset=offset
        )
        return RiskScoreListResponse(
            items=[_score_response(row, name) for row, name in rows],
            total=total,
            limit=limit,
            offset=offset,
        )

    async def get_student_score(self, student_id: str) -> StudentRiskResponse:
        """Get a student's latest score and recent history.

        Raises:
            NotFoundError: If the student has never been scored.
        """
        rows = await self._repository.list_student_scores(student_id, self._history_limit)
        if not rows:
            raise NotFoundError("risk score", student_id)

        student = await self._repository.get_student(student_id)
        name = student.name if student else None
        history = [_score_response(row, name) for row in rows]
        return StudentRiskResponse(student_id=student_id, latest=history[0], history=history)

    # =========================================================================
    # Alerts
    # =========================================================================

    async def list_alerts(
        self,
        status: str | None = "active",
        severity: str | None = None,
        student_id: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> RiskAlertListResponse:
        """List alerts, newest first."""
        rows, total = await self._repository.list_alerts(
            status=status,
            severity=severity,
            student_id=student_id,
            limit=limit,
            offset=offset,
        )
        return RiskAlertListResponse(
            items=[_alert_response(alert, name) for alert, name in rows],
            total=total,
            limit=limit,
            offset=offset,
        )

    async def update_alert_status(
        self,
        alert_id: str,
        action: str,
        actor_id: str | None,
        note: str | None = None,
    ) -> RiskAlertResponse:
        """Apply a lifecycle action to an alert.

        Args:
            alert_id: Alert to transition.
            action: acknowledge, resolve or dismiss.
            actor_id: Employee performing the action.
            note: Optional note stored on the alert.

        Returns:
            The updated alert.

        Raises:
            AnalyticsValidationError: If the action is unknown or actor_id is missing.
            NotFoundError: If the alert does not exist.
            InvariantViolationError: If the transition is not allowed.
        """
        # Validate the request before touching the store
        self._state_machine.parse_action(action)

        alert = await self._repository.get_alert(alert_id, for_update=True)
        if alert is None:
            raise NotFoundError("risk alert", alert_id)

        now = utc_now()
        new_status = self._state_machine.apply(alert, action, actor_id, note, at=now)
        alert.updated_at = now
        await self._repository.session.flush()

        logger.info(
            "Alert %s moved to %s by employee %s",
            alert_id,
            new_status.value,
            actor_id,
        )
        return _alert_response(alert)

    # =========================================================================
    # Config
    # =========================================================================

    async def get_config(self) -> RiskConfigResponse:
        """Get the current risk config snapshot."""
        config = await self._repository.get_current_config()
        stored = None
        if config.version > 0:
            stored = await self._repository.get_config_version(config.version)
        return RiskConfigResponse(
            version=config.version,
            **config.to_values(),
            changed_key=stored.changed_key if stored else None,
            updated_by=stored.updated_by if stored else None,
            updated_at=stored.created_at if stored else None,
        )

    async def update_config(
        self, config_key: str, value: object, employee_id: str
    ) -> RiskConfigResponse:
        """Store a new config version with one key replaced.

        Args:
            config_key: One of the allowed config keys.
            value: Complete new value for the key.
            employee_id: Employee making the change.

        Returns:
            The new config snapshot.

        Raises:
            AnalyticsValidationError: If the key or value is invalid.
            ConfigConflictError: If another update stored the same version first.
        """
        current = await self._repository.get_current_config()
        updated = current.with_update(config_key, value)
        row = await self._repository.save_config(updated, config_key, employee_id)

        logger.info(
            "Risk config %s updated to v%d by employee %s",
            config_key,
            updated.version,
            employee_id,
        )
        return RiskConfigResponse(
            version=updated.version,
            **updated.to_values(),
            changed_key=config_key,
            updated_by=employee_id,
            updated_at=row.created_at,
        )
