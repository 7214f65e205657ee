"""
Per-session credit account.

Owns the tier, both ledgers, the gate and the sync coordinator for one
authenticated user on one device. Features receive the account (or its
gate) explicitly; there is no module-level ledger state.
"""

import logging
from concurrent.futures import Future
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from credit_guard.storage.models import VerificationCreditState
from credit_guard.storage.repository import LedgerStore

from .gate import STORE_ERRORS, ConsumptionGate, Resource, SpendResult
from .search_ledger import SearchQuotaLedger
from .sync import SyncCoordinator
from .tiers import UNLIMITED, Limit, TierEntitlement, TierPolicy
from .verification_ledger import VerificationCreditLedger

logger = logging.getLogger(__name__)

DEFAULT_LOW_CREDIT_THRESHOLD = 50


@dataclass(frozen=True)
class AccountSnapshot:
    """Read-only view of an account for display widgets."""
    tier_id: str
    search_remaining: Limit
    verification_remaining: Limit
    is_low: bool
    is_out: bool
    is_unlimited: bool
    needs_reconciliation: bool
    last_synced_at: Optional[datetime]


class CreditAccount:
    """Search quota and verification credits for one user session."""

    def __init__(
        self,
        account_id: str,
        tier_id: Optional[str],
        store: LedgerStore,
        policy: Optional[TierPolicy] = None,
        client=None,
        clock: Callable[[], datetime] = datetime.now,
        low_credit_threshold: int = DEFAULT_LOW_CREDIT_THRESHOLD,
    ):
        if not account_id or not account_id.strip():
            raise ValueError("account_id is required and cannot be empty")
        if low_credit_threshold < 0:
            raise ValueError("low_credit_threshold cannot be negative")

        self.account_id = account_id
        self.policy = policy or TierPolicy()
        self.tier: TierEntitlement = self.policy.limits_for(tier_id)
        self.low_credit_threshold = low_credit_threshold
        self.search = SearchQuotaLedger(store, account_id)
        self.verification = VerificationCreditLedger(store, account_id, clock=clock)
        self.gate = ConsumptionGate(lambda: self.tier, self.search, self.verification, clock=clock)
        self.sync = SyncCoordinator(self.verification, client=client, clock=clock)

    @classmethod
    def open(cls, account_id: str, tier_id: Optional[str], store: LedgerStore, **kwargs) -> "CreditAccount":
        """Create an account and run the session-start sync."""
        account = cls(account_id, tier_id, store, **kwargs)
        account.sync.start_session(account.tier)
        return account

    def spend(self, resource: Resource, n: int = 1) -> SpendResult:
        return self.gate.spend(resource, n)

    def remaining(self, resource: Resource) -> Limit:
        return self.gate.remaining(resource)

    def change_tier(self, tier_id: Optional[str]) -> TierEntitlement:
        """Switch to a new tier and reconcile the verification balance."""
        previous = self.tier
        self.tier = self.policy.limits_for(tier_id)
        if self.tier != previous:
            logger.info("Account %s moved from %s to %s", self.account_id, previous.tier_id, self.tier.tier_id)
            self.sync.on_tier_change(self.tier)
        return self.tier

    def refresh_in_background(self) -> "Future[Optional[VerificationCreditState]]":
        return self.sync.refresh_in_background()

    def close(self) -> None:
        """End the session, waiting for any background sync to finish."""
        self.sync.close()

    def __enter__(self) -> "CreditAccount":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def snapshot(self) -> AccountSnapshot:
        search_remaining = self.remaining(Resource.SEARCH)
        verification_remaining = self.remaining(Resource.VERIFICATION)
        try:
            state = self.verification.state()
        except STORE_ERRORS as e:
            logger.error("Could not read verification state for %s: %s", self.account_id, e)
            state = None
        unlimited = verification_remaining is UNLIMITED
        return AccountSnapshot(
            tier_id=self.tier.tier_id,
            search_remaining=search_remaining,
            verification_remaining=verification_remaining,
            is_low=not unlimited and verification_remaining <= self.low_credit_threshold,
            is_out=not unlimited and verification_remaining <= 0,
            is_unlimited=self.tier.is_unlimited or (search_remaining is UNLIMITED and unlimited),
            needs_reconciliation=bool(state and state.pending),
            last_synced_at=state.last_synced_at if state else None,
        )
