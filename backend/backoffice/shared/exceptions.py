from __future__ import annotations

from typing import Any


class AppError(Exception):
    """Base error for domain/application exceptions.

    ``details`` carries the values involved (expected vs. supplied amounts,
    current vs. requested status) so callers can correct input without
    re-deriving the math.
    """

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class NotFound(AppError):
    """Raised when a store, business date or entity id does not resolve."""


class ValidationFailed(AppError):
    """Raised for domain-level validation beyond schema validation."""


class AmountMismatch(ValidationFailed):
    """Deposit amount differs from the sum of the selected positions."""


class VarianceExceedsTolerance(ValidationFailed):
    """Counted cash is outside tolerance and no variance reason was given."""


class InvalidTransition(AppError):
    """Approval/reconciliation state machine violation."""


class AlreadyReconciled(InvalidTransition):
    """A second reconciliation attempt on an already reconciled transaction."""


class WouldUnderflow(AppError):
    """Completing the request would drive an account balance below zero."""


class PersistenceFailure(AppError):
    """Backing store unavailable or the transaction was aborted."""
