"""
Subscription tier entitlements.

Maps plan identifiers to the daily search and monthly verification
ceilings they grant. Lookups never fail: anything unrecognised gets the
free tier.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Union

logger = logging.getLogger(__name__)


class _Unlimited:
    """Sentinel for a limit that does not exist."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNLIMITED"

    def __str__(self) -> str:
        return "unlimited"

    def __reduce__(self):
        return (_Unlimited, ())


UNLIMITED = _Unlimited()

Limit = Union[int, _Unlimited]

FREE_TIER = "free"


def is_unlimited(value) -> bool:
    return value is UNLIMITED


@dataclass(frozen=True)
class TierEntitlement:
    """Entitlement ceilings for one subscription tier."""
    tier_id: str
    daily_search_limit: Limit
    monthly_verification_limit: Limit

    def __post_init__(self):
        """Validate limits are non-negative integers or UNLIMITED."""
        for name in ("daily_search_limit", "monthly_verification_limit"):
            value = getattr(self, name)
            if value is UNLIMITED:
                continue
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"{name} must be an int or UNLIMITED")
            if value < 0:
                raise ValueError(f"{name} cannot be negative")

    @property
    def search_unlimited(self) -> bool:
        return self.daily_search_limit is UNLIMITED

    @property
    def verification_unlimited(self) -> bool:
        return self.monthly_verification_limit is UNLIMITED

    @property
    def is_unlimited(self) -> bool:
        return self.search_unlimited and self.verification_unlimited


# Plan matrix as sold; free must always be present
DEFAULT_TIERS: Dict[str, TierEntitlement] = {
    "free": TierEntitlement("free", 8, 25),
    "basic": TierEntitlement("basic", 30, 200),
    "pro": TierEntitlement("pro", 200, 500),
    "autopilot": TierEntitlement("autopilot", UNLIMITED, 2000),
    "unlimited": TierEntitlement("unlimited", UNLIMITED, UNLIMITED),
}

# Billing plan names that are sold under another tier
DEFAULT_ALIASES: Dict[str, str] = {
    "agency": "autopilot",
}


class TierPolicy:
    """Resolves tier identifiers to entitlements."""

    def __init__(
        self,
        tiers: Optional[Mapping[str, TierEntitlement]] = None,
        aliases: Optional[Mapping[str, str]] = None,
    ):
        table = dict(DEFAULT_TIERS if tiers is None else tiers)
        if FREE_TIER not in table:
            raise ValueError("tier table must define the 'free' tier")
        alias_table = dict(DEFAULT_ALIASES if aliases is None else aliases)
        for alias, target in alias_table.items():
            if target not in table:
                raise ValueError(f"alias '{alias}' points at unknown tier '{target}'")
        self._tiers = table
        self._aliases = alias_table

    @property
    def tier_ids(self):
        return sorted(self._tiers)

    def resolve(self, tier_id: Optional[str]) -> str:
        """Return the canonical tier id for tier_id, falling back to free."""
        key = (tier_id or "").strip().lower()
        key = self._aliases.get(key, key)
        if key in self._tiers:
            return key
        logger.warning("Unknown tier %r, applying free-tier limits", tier_id)
        return FREE_TIER

    def limits_for(self, tier_id: Optional[str]) -> TierEntitlement:
        """Get the entitlement for a tier.

        Total: unknown, empty or None identifiers resolve to the free
        tier, so a failed plan lookup can never grant extra access.
        """
        return self._tiers[self.resolve(tier_id)]
