"""Exceptions raised by the points ledger services."""

from __future__ import annotations

from typing import Any


class PointsLedgerError(RuntimeError):
    """Base exception for ledger, wallet, and redemption failures."""


class StoreUnavailableError(PointsLedgerError):
    """Raised when the ledger store cannot be read or written."""


class LedgerValidationError(PointsLedgerError, ValueError):
    """Raised when an award request is rejected before touching the store."""


class InvalidAmountError(LedgerValidationError):
    def __init__(self, amount: Any) -> None:
        super().__init__(f"Award amount must be a non-zero integer, got {amount!r}")
        self.amount = amount


class InvalidReasonError(LedgerValidationError):
    def __init__(self) -> None:
        super().__init__("Award reason must not be blank")


class InvalidSubjectError(LedgerValidationError):
    def __init__(self, subject_key: Any) -> None:
        super().__init__(f"Subject key {subject_key!r} does not identify a child")
        self.subject_key = subject_key


class InsufficientBalanceError(PointsLedgerError):
    """Raised when a cash-out request cannot be covered by the wallet."""

    BELOW_MINIMUM = "requested points below minimum"
    EXCEEDS_AVAILABLE = "requested points exceed available balance"

    def __init__(self, reason: str, *, requested: int | None = None, limit: int | None = None) -> None:
        super().__init__(reason)
        self.reason = reason
        self.requested = requested
        self.limit = limit


class InvalidTransitionError(PointsLedgerError):
    """Raised when a redemption transition violates the workflow."""

    def __init__(self, current_status: Any, requested_status: Any) -> None:
        message = f"Cannot transition redemption from {current_status.value} to {requested_status.value}"
        super().__init__(message)
        self.current_status = current_status
        self.requested_status = requested_status


class RedemptionNotFoundError(PointsLedgerError):
    """Raised when attempting to mutate a missing redemption request."""


class UsageLimitExceededError(PointsLedgerError):
    """Raised when a monthly usage allowance is already spent."""

    def __init__(self, action_kind: str, limit: int) -> None:
        super().__init__(f"Monthly limit of {limit} reached for {action_kind}")
        self.action_kind = action_kind
        self.limit = limit


__all__ = [
    "PointsLedgerError",
    "StoreUnavailableError",
    "LedgerValidationError",
    "InvalidAmountError",
    "InvalidReasonError",
    "InvalidSubjectError",
    "InsufficientBalanceError",
    "InvalidTransitionError",
    "RedemptionNotFoundError",
    "UsageLimitExceededError",
]
