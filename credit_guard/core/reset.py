"""
Daily rollover for the search ledger.

Rollover is detected on access by comparing the stored day with the
caller's current local date; no timers are involved.
"""

import logging
from datetime import date
from typing import Optional, Tuple

from credit_guard.storage.models import SearchQuotaState

logger = logging.getLogger(__name__)


class ResetScheduler:
    """Decides whether a search quota state belongs to an earlier day."""

    @staticmethod
    def roll(state: Optional[SearchQuotaState], today: date) -> Tuple[SearchQuotaState, bool]:
        """Bring state up to today.

        Args:
            state: Stored state, or None if nothing has been recorded yet
            today: Device-local calendar date

        Returns:
            (state for today, whether it differs from the stored state)
        """
        if state is None:
            return SearchQuotaState(day=today, used=0), True

        if state.day == today:
            return state, False

        if state.day > today:
            # Device clock went backwards; keep counting against the later day
            logger.warning(
                "Stored search day %s is after local date %s, not resetting",
                state.day, today,
            )
            return state, False

        logger.info("Search quota rolled over from %s to %s (was %d used)", state.day, today, state.used)
        return SearchQuotaState(day=today, used=0), True
