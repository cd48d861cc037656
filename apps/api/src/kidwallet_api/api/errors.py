"""Translate service exceptions into HTTP responses."""

from __future__ import annotations

from fastapi import HTTPException, status

from kidwallet_api.services.errors import (
    InsufficientBalanceError,
    InvalidTransitionError,
    LedgerValidationError,
    PointsLedgerError,
    RedemptionNotFoundError,
    StoreUnavailableError,
    UsageLimitExceededError,
)

_STATUS_BY_ERROR: tuple[tuple[type[PointsLedgerError], int], ...] = (
    (LedgerValidationError, status.HTTP_400_BAD_REQUEST),
    (InsufficientBalanceError, status.HTTP_409_CONFLICT),
    (InvalidTransitionError, status.HTTP_409_CONFLICT),
    (RedemptionNotFoundError, status.HTTP_404_NOT_FOUND),
    (UsageLimitExceededError, status.HTTP_429_TOO_MANY_REQUESTS),
    (StoreUnavailableError, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def to_http_exception(error: PointsLedgerError) -> HTTPException:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return HTTPException(status_code=status_code, detail=str(error))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(error))
