# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Exception hierarchy for the analytics core.

This module defines the errors raised by the risk and funnel domains:
- AnalyticsError: Base exception for all analytics errors
- AnalyticsValidationError: Malformed input, rejected before anything is applied
- NotFoundError: Referenced student, alert or score does not exist
- InvariantViolationError: Request conflicts with a domain invariant
- ConfigConflictError: Concurrent risk config update lost the race
- TransientDataError: Data store read or write failed for one entity
- InsufficientDataError: No usable factor to compute a score from
"""


class AnalyticsError(Exception):
    """Base exception for all analytics errors.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional error context.
    """

    def __init__(self, message: str, details: dict | None = None):
        """Initialize analytics error.

        Args:
            message: Human-readable error description.
            details: Optional dictionary with additional error context.
        """
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        """Return string representation with details if available."""
        if self.details:
            return f"{self.message} - Details: {self.details}"
        return self.message


class AnalyticsValidationError(AnalyticsError):
    """Malformed input such as an unknown alert action or config key."""


class NotFoundError(AnalyticsError):
    """Referenced entity does not exist.

    Attributes:
        entity: Kind of entity that was looked up.
        entity_id: Identifier that was not found.
    """

    def __init__(self, entity: str, entity_id: object):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found: {entity_id}", {"entity": entity, "id": str(entity_id)})


class InvariantViolationError(AnalyticsError):
    """Request is well formed but breaks a domain invariant."""


class InvalidTransitionError(InvariantViolationError):
    """Alert transition is not one of the allowed paths."""


class AlertAlreadyClosedError(InvariantViolationError):
    """Alert is resolved or dismissed and accepts no further transitions."""


class ConfigConflictError(InvariantViolationError):
    """Another risk config version was written concurrently."""


class TransientDataError(AnalyticsError):
    """Data store call failed or timed out."""


class InsufficientDataError(AnalyticsError):
    """Every weighted factor is absent, so no score can be computed."""
