# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Translation of domain errors to HTTP errors.

    AnalyticsValidationError  -> 422
    NotFoundError             -> 404
    InvariantViolationError   -> 409
    TransientDataError        -> 503
    anything else             -> 500
"""

from fastapi import HTTPException, status

from academy_insights.core.exceptions import (
    AnalyticsError,
    AnalyticsValidationError,
    InvariantViolationError,
    NotFoundError,
    TransientDataError,
)

_STATUS_BY_ERROR: tuple[tuple[type[AnalyticsError], int], ...] = (
    (AnalyticsValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (InvariantViolationError, status.HTTP_409_CONFLICT),
    (TransientDataError, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def to_http_exception(error: AnalyticsError) -> HTTPException:
    """Build the HTTPException matching a domain error."""
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return HTTPException(
                status_code=status_code,
                detail={"message": error.message, **error.details},
            )
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={"message": error.message},
    )
