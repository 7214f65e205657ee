"""
Daily search quota ledger.

The device-local store is the source of truth for search consumption.
Every access first rolls the ledger over to the current day.
"""

import logging
from datetime import date
from typing import Optional, Tuple

from credit_guard.storage.models import SearchQuotaState
from credit_guard.storage.repository import LedgerStore

from .reset import ResetScheduler
from .tiers import UNLIMITED, Limit, TierEntitlement

logger = logging.getLogger(__name__)


def _validate_amount(n: int) -> None:
    if isinstance(n, bool) or not isinstance(n, int) or n <= 0:
        raise ValueError("amount must be a positive integer")


class SearchQuotaLedger:
    """Tracks searches used today for one account."""

    def __init__(self, store: LedgerStore, account_id: str):
        self.store = store
        self.key = f"{account_id}:search"

    def _decode(self, raw: Optional[str]) -> Optional[SearchQuotaState]:
        return SearchQuotaState.from_json(raw) if raw is not None else None

    def ensure_current_day(self, today: date) -> SearchQuotaState:
        """Reset the ledger if the stored day is not today.

        Idempotent: a second call on the same day writes nothing.
        """
        def mutate(raw: Optional[str]) -> Tuple[Optional[str], SearchQuotaState]:
            current, changed = ResetScheduler.roll(self._decode(raw), today)
            return (current.to_json() if changed else None), current

        return self.store.update(self.key, mutate)

    def remaining(self, tier: TierEntitlement, today: date) -> Limit:
        if tier.search_unlimited:
            return UNLIMITED
        used = self.ensure_current_day(today).used
        return max(0, tier.daily_search_limit - used)

    def try_consume(self, tier: TierEntitlement, today: date, n: int = 1) -> bool:
        """Consume n searches if today's allowance covers them.

        Rollover, check and increment happen in one compare-and-swap, so
        concurrent callers cannot both spend the last unit.
        """
        _validate_amount(n)
        if tier.search_unlimited:
            return True

        limit = tier.daily_search_limit

        def mutate(raw: Optional[str]) -> Tuple[Optional[str], bool]:
            current, changed = ResetScheduler.roll(self._decode(raw), today)
            if current.used + n > limit:
                return (current.to_json() if changed else None), False
            updated = SearchQuotaState(day=current.day, used=current.used + n)
            return updated.to_json(), True

        granted = self.store.update(self.key, mutate)
        logger.debug("Search spend of %d for %s: %s", n, self.key, "granted" if granted else "denied")
        return granted
