"""Exception taxonomy for the guided ledger engine.

Expected, data-driven problems are reported as rule hits and never raised.
The exceptions below cover configuration mistakes, store failures and
broken ledger invariants.
"""

from typing import Any


class GuidedLedgerError(Exception):
    """Base exception for all guided ledger errors."""

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ConfigurationError(GuidedLedgerError):
    """Malformed or missing configuration detected at the point of use."""


class TransientIOError(GuidedLedgerError):
    """Store or service unavailable. Callers may retry with backoff."""

    retryable = True


class ConflictError(GuidedLedgerError):
    """A conditional write found an existing record under the same key."""


class InvariantViolation(GuidedLedgerError):
    """A posted transaction broke the double-entry invariant.

    Indicates a bug in the posting code and must never be swallowed.
    """


class PeriodLockedError(GuidedLedgerError):
    """Write attempted into a locked accounting period."""

    def __init__(self, period: str, details: Any = None):
        super().__init__(f"Period {period} is locked", details=details)
        self.period = period


class ImmutableTransactionError(GuidedLedgerError):
    """Lines of a non-draft transaction cannot be changed."""


class InvalidTransitionError(GuidedLedgerError):
    """Transaction or period status change that the lifecycle does not allow."""


class DuplicatePayrollRunError(ConflictError):
    """A payroll run already exists for the target period."""

    def __init__(self, period: str, details: Any = None):
        super().__init__(f"Payroll run for {period} already exists", details=details)
        self.period = period


class SystemAccountError(GuidedLedgerError):
    """System accounts cannot be deleted and referenced accounts cannot change."""


class StoreRequestError(GuidedLedgerError):
    """Non-retryable error response from a remote store or service."""

    def __init__(self, message: str, status_code: int | None = None, details: Any = None):
        super().__init__(message, details=details)
        self.status_code = status_code
