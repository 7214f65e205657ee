"""
Error taxonomy for credit enforcement.

Quota denial is an ordinary outcome of ConsumptionGate.spend() and is
only raised as QuotaExceeded by the exception-style helpers.
"""


class CreditGuardError(Exception):
    """Base class for all credit_guard errors."""


class SyncFailure(CreditGuardError):
    """Raised when the authoritative balance could not be fetched."""


class StoreConflict(CreditGuardError):
    """Raised when a compare-and-swap update keeps losing to other writers."""


class QuotaExceeded(CreditGuardError):
    """Raised by require() and GuardedFeature when a spend is denied."""

    def __init__(self, message: str, resource, requested: int, remaining):
        super().__init__(message)
        self.resource = resource
        self.requested = requested
        self.remaining = remaining
