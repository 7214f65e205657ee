"""
Verification credit ledger.

Local cache of a server-held balance. Consumption is applied locally
right away and recorded as a pending operation; the next successful
sync replaces the balance level with the server's figure.

Two-phase consumption:
1. reserve() - decrement locally and log a PendingConsumption
2. confirm() - the server has accounted for it, drop the log entry
   rollback() - the chargeable action failed, restore the credits
"""

import logging
import uuid
from datetime import datetime
from typing import Callable, Optional, Tuple

from credit_guard.storage.models import PendingConsumption, VerificationCreditState
from credit_guard.storage.repository import LedgerStore

from .tiers import UNLIMITED, Limit

logger = logging.getLogger(__name__)


def _validate_amount(n: int) -> None:
    if isinstance(n, bool) or not isinstance(n, int) or n <= 0:
        raise ValueError("amount must be a positive integer")


class VerificationCreditLedger:
    """Tracks the verification-credit balance for one account."""

    def __init__(
        self,
        store: LedgerStore,
        account_id: str,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.key = f"{account_id}:verification"
        self.clock = clock

    def _decode(self, raw: Optional[str]) -> Optional[VerificationCreditState]:
        return VerificationCreditState.from_json(raw) if raw is not None else None

    def state(self) -> Optional[VerificationCreditState]:
        """Return the cached state, or None if the ledger was never seeded."""
        record = self.store.read(self.key)
        return self._decode(record.value) if record else None

    def seed(self, balance: int, is_unlimited: bool = False) -> VerificationCreditState:
        """Create the cache entry if it doesn't exist yet.

        An existing entry is returned untouched, so seeding never
        overwrites a cached or synced balance.
        """
        if balance < 0:
            raise ValueError("balance cannot be negative")

        def mutate(raw: Optional[str]) -> Tuple[Optional[str], VerificationCreditState]:
            current = self._decode(raw)
            if current is not None:
                return None, current
            seeded = VerificationCreditState(balance=balance, is_unlimited=is_unlimited)
            return seeded.to_json(), seeded

        return self.store.update(self.key, mutate)

    def remaining(self) -> Limit:
        current = self.state()
        if current is None:
            return 0
        if current.is_unlimited:
            return UNLIMITED
        return current.balance

    def reserve(self, n: int = 1) -> Tuple[bool, Optional[PendingConsumption]]:
        """Consume n credits and log the consumption as pending.

        Returns:
            (granted, pending operation). Unlimited balances are granted
            with no operation and no change to the stored balance.
        """
        _validate_amount(n)
        operation = PendingConsumption(
            operation_id=uuid.uuid4().hex,
            amount=n,
            created_at=self.clock(),
        )

        def mutate(raw: Optional[str]) -> Tuple[Optional[str], Tuple[bool, Optional[PendingConsumption]]]:
            current = self._decode(raw)
            if current is None:
                return None, (False, None)
            if current.is_unlimited:
                return None, (True, None)
            if current.balance < n:
                return None, (False, None)
            updated = current.with_changes(
                balance=current.balance - n,
                pending=current.pending + (operation,),
            )
            return updated.to_json(), (True, operation)

        granted, op = self.store.update(self.key, mutate)
        logger.debug("Verification spend of %d for %s: %s", n, self.key, "granted" if granted else "denied")
        return granted, op

    def try_consume(self, n: int = 1) -> bool:
        granted, _ = self.reserve(n)
        return granted

    def confirm(self, operation_id: str) -> bool:
        """Mark a pending consumption as accounted for by the server."""
        return self._settle(operation_id, restore=False)

    def rollback(self, operation_id: str) -> bool:
        """Undo a pending consumption whose chargeable action failed."""
        return self._settle(operation_id, restore=True)

    def _settle(self, operation_id: str, restore: bool) -> bool:
        def mutate(raw: Optional[str]) -> Tuple[Optional[str], bool]:
            current = self._decode(raw)
            if current is None:
                return None, False
            match = next((op for op in current.pending if op.operation_id == operation_id), None)
            if match is None:
                return None, False
            remaining_ops = tuple(op for op in current.pending if op.operation_id != operation_id)
            balance = current.balance + match.amount if restore else current.balance
            updated = current.with_changes(balance=balance, pending=remaining_ops)
            return updated.to_json(), True

        return self.store.update(self.key, mutate)

    def credit(self, n: int) -> VerificationCreditState:
        """Optimistically add credits ahead of server confirmation.

        The next sync overrides this value if the server disagrees.
        """
        _validate_amount(n)

        def mutate(raw: Optional[str]) -> Tuple[Optional[str], VerificationCreditState]:
            current = self._decode(raw) or VerificationCreditState(balance=0)
            updated = current.with_changes(balance=current.balance + n)
            return updated.to_json(), updated

        return self.store.update(self.key, mutate)

    def apply_remote_balance(
        self,
        server_balance: int,
        server_unlimited: bool,
        snapshot_at: Optional[datetime] = None,
    ) -> VerificationCreditState:
        """Overwrite the cached balance with the authoritative one.

        Without snapshot_at the server figure wins outright and the
        pending log is cleared. With snapshot_at (when the fetch was
        issued), consumptions logged after it are not yet reflected in
        the server figure, so they stay pending and are subtracted again.
        """
        if server_balance < 0:
            logger.warning("Server reported negative balance %d for %s, clamping to 0", server_balance, self.key)
            server_balance = 0
        synced_at = self.clock()

        def mutate(raw: Optional[str]) -> Tuple[Optional[str], VerificationCreditState]:
            current = self._decode(raw)
            if current is None or snapshot_at is None:
                carried = ()
            else:
                carried = tuple(op for op in current.pending if op.created_at > snapshot_at)
            balance = max(0, server_balance - sum(op.amount for op in carried))
            updated = VerificationCreditState(
                balance=balance,
                is_unlimited=server_unlimited,
                last_synced_at=synced_at,
                pending=carried,
            )
            return updated.to_json(), updated

        state = self.store.update(self.key, mutate)
        logger.info(
            "Applied remote balance for %s: %s (%d pending carried)",
            self.key, "unlimited" if server_unlimited else state.balance, len(state.pending),
        )
        return state

    def revoke_unlimited(self, ceiling: int) -> Optional[VerificationCreditState]:
        """Drop a cached unlimited flag, capping the balance at ceiling.

        Used when the tier loses its unlimited entitlement and the server
        could not be asked for the new balance.
        """
        def mutate(raw: Optional[str]) -> Tuple[Optional[str], Optional[VerificationCreditState]]:
            current = self._decode(raw)
            if current is None or not current.is_unlimited:
                return None, current
            updated = current.with_changes(is_unlimited=False, balance=min(current.balance, ceiling))
            return updated.to_json(), updated

        return self.store.update(self.key, mutate)

    @property
    def needs_reconciliation(self) -> bool:
        current = self.state()
        return bool(current and current.pending)
