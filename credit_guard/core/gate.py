"""
Consumption gate.

The only code path that mutates ledger state. Every chargeable feature
asks the gate before acting, and the gate answers GRANTED or DENIED;
it never raises.

Order of checks for a spend:
1. Amount validation - non-positive or non-integer amounts are denied
2. Rollover - the search ledger is brought up to the current day
3. Unlimited bypass - unlimited entitlements are granted without mutation
4. Atomic check-and-consume on the resource's ledger
"""

import logging
import sqlite3
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Callable, Optional

from .errors import QuotaExceeded, StoreConflict
from .search_ledger import SearchQuotaLedger
from .tiers import UNLIMITED, Limit, TierEntitlement
from .verification_ledger import VerificationCreditLedger

logger = logging.getLogger(__name__)

# Corrupt cache entries surface as ValueError while decoding
STORE_ERRORS = (sqlite3.Error, StoreConflict, ValueError, KeyError)


class Resource(str, Enum):
    """Consumable resources gated by a subscription tier."""
    SEARCH = "search"
    VERIFICATION = "verification"


class SpendOutcome(Enum):
    """Result of a consumption attempt."""
    GRANTED = "granted"
    DENIED = "denied"


@dataclass(frozen=True)
class SpendResult:
    """Outcome of ConsumptionGate.spend()."""
    outcome: SpendOutcome
    resource: Resource
    amount: int
    remaining: Limit
    operation_id: Optional[str] = None

    @property
    def granted(self) -> bool:
        return self.outcome is SpendOutcome.GRANTED


class ConsumptionGate:
    """Single entry point for spending search and verification units."""

    def __init__(
        self,
        tier: Callable[[], TierEntitlement],
        search: SearchQuotaLedger,
        verification: VerificationCreditLedger,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """Initialize the gate.

        Args:
            tier: Returns the entitlement in force at call time
            search: Daily search ledger
            verification: Verification credit ledger
            clock: Device-local clock used for the daily rollover
        """
        self._tier = tier
        self.search = search
        self.verification = verification
        self.clock = clock

    def _today(self) -> date:
        return self.clock().date()

    def remaining(self, resource: Resource) -> Limit:
        """Units left for resource; 0 if the local store is unreadable."""
        tier = self._tier()
        try:
            if resource is Resource.SEARCH:
                return self.search.remaining(tier, self._today())
            if tier.verification_unlimited:
                return UNLIMITED
            return self.verification.remaining()
        except STORE_ERRORS as e:
            logger.error("Could not read %s balance: %s", resource.value, e, exc_info=True)
            return 0

    def spend(self, resource: Resource, n: int = 1) -> SpendResult:
        """Attempt to spend n units of resource.

        Denial is an expected outcome, not an error. Storage failures
        are logged and reported as DENIED.
        """
        if isinstance(n, bool) or not isinstance(n, int) or n <= 0:
            logger.warning("Rejecting %s spend with invalid amount %r", resource.value, n)
            return SpendResult(SpendOutcome.DENIED, resource, 0, self.remaining(resource))

        tier = self._tier()
        operation_id = None
        try:
            if resource is Resource.SEARCH:
                granted = self.search.try_consume(tier, self._today(), n)
            elif tier.verification_unlimited:
                granted = True
            else:
                granted, operation = self.verification.reserve(n)
                if operation is not None:
                    operation_id = operation.operation_id
        except STORE_ERRORS as e:
            logger.error("Failed to record %s spend of %d: %s", resource.value, n, e, exc_info=True)
            granted = False

        outcome = SpendOutcome.GRANTED if granted else SpendOutcome.DENIED
        if not granted:
            logger.info("Denied %s spend of %d on tier %s", resource.value, n, tier.tier_id)
        return SpendResult(outcome, resource, n, self.remaining(resource), operation_id)

    def require(self, resource: Resource, n: int = 1) -> SpendResult:
        """Spend n units or raise QuotaExceeded.

        Raises:
            QuotaExceeded: If the spend was denied
        """
        result = self.spend(resource, n)
        if not result.granted:
            raise QuotaExceeded(
                f"{resource.value} quota exceeded: requested {n}, remaining {result.remaining}",
                resource=resource,
                requested=n,
                remaining=result.remaining,
            )
        return result

    def settle(self, result: SpendResult, succeeded: bool) -> bool:
        """Confirm or roll back a granted verification spend.

        Search spends and unlimited grants carry no pending operation,
        so there is nothing to settle for them.
        """
        if result.operation_id is None:
            return False
        try:
            if succeeded:
                return self.verification.confirm(result.operation_id)
            return self.verification.rollback(result.operation_id)
        except STORE_ERRORS as e:
            logger.error("Failed to settle operation %s: %s", result.operation_id, e, exc_info=True)
            return False
