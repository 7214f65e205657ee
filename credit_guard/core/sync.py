"""
Balance synchronisation.

Pulls the authoritative verification balance from the backend and
reconciles the local cache with it. Nothing is ever pushed back: the
server is the writer of record for purchases, grants and rollovers.
"""

import logging
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from datetime import datetime
from typing import Callable, Optional

from credit_guard.storage.models import VerificationCreditState

from .errors import SyncFailure
from .tiers import TierEntitlement
from .verification_ledger import VerificationCreditLedger

logger = logging.getLogger(__name__)


class SyncCoordinator:
    """Keeps a VerificationCreditLedger close to the remote balance."""

    def __init__(
        self,
        ledger: VerificationCreditLedger,
        client=None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """Initialize the coordinator.

        Args:
            ledger: Ledger to reconcile
            client: Object with fetch_balance() -> RemoteBalance, or None
                to run purely on the local cache
            clock: Clock used to stamp fetch snapshots
        """
        self.ledger = ledger
        self.client = client
        self.clock = clock
        self._executor: Optional[Executor] = None

    def start_session(self, tier: TierEntitlement) -> VerificationCreditState:
        """Load the cached balance, then reconcile once with the server.

        The cached (or tier-default) balance is usable before the fetch
        completes; a failed fetch leaves it in place.
        """
        cached = self.seed_from_tier(tier)
        synced = self.refresh()
        return synced or cached

    def seed_from_tier(self, tier: TierEntitlement) -> VerificationCreditState:
        if tier.verification_unlimited:
            return self.ledger.seed(0, is_unlimited=True)
        return self.ledger.seed(tier.monthly_verification_limit)

    def refresh(self) -> Optional[VerificationCreditState]:
        """Fetch the remote balance and apply it.

        A sync is never fatal: whatever the client or the local store
        raises is logged and the cached balance stays in force.

        Returns:
            The reconciled state, or None if no fetch could be made
        """
        if self.client is None:
            logger.debug("No credits client configured, keeping cached balance")
            return None

        snapshot_at = self.clock()
        try:
            remote = self.client.fetch_balance()
        except SyncFailure as e:
            logger.warning("Credit sync failed, keeping cached balance: %s", e)
            return None
        except Exception as e:
            failure = SyncFailure(f"Unexpected error fetching credits: {e}")
            logger.warning("Credit sync failed, keeping cached balance: %s", failure, exc_info=True)
            return None

        try:
            return self.ledger.apply_remote_balance(
                remote.credits_remaining,
                remote.is_unlimited,
                snapshot_at=snapshot_at,
            )
        except Exception as e:
            logger.error("Could not apply remote balance, keeping cached balance: %s", e, exc_info=True)
            return None

    def refresh_in_background(self) -> "Future[Optional[VerificationCreditState]]":
        """Run refresh() on a worker thread so callers are not blocked."""
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="credit-sync")
        return self._executor.submit(self.refresh)

    def on_tier_change(self, tier: TierEntitlement) -> Optional[VerificationCreditState]:
        """React to a subscription change.

        Unlimited tiers take effect locally at once, with no network
        round-trip. Otherwise the server is asked for the new balance;
        if that fails, a cached unlimited flag is revoked rather than
        left granting access the tier no longer has.
        """
        if tier.verification_unlimited:
            current = self.ledger.state()
            balance = current.balance if current else 0
            return self.ledger.apply_remote_balance(balance, True)

        synced = self.refresh()
        if synced is not None:
            return synced
        return self.ledger.revoke_unlimited(tier.monthly_verification_limit)

    def close(self) -> None:
        """Wait for any background refresh and release its worker thread."""
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
