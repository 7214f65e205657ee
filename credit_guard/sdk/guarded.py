"""
Guarded feature wrapper.

Runs a chargeable feature only after the consumption gate grants the
spend, and settles verification spends with the feature's outcome.
"""

from dataclasses import dataclass
from typing import Any, Callable, Optional

from ..core.errors import QuotaExceeded
from ..core.gate import ConsumptionGate, Resource, SpendResult


@dataclass(frozen=True)
class GuardedResult:
    """Spend outcome and, when granted, the feature's return value."""
    spend: SpendResult
    value: Optional[Any] = None

    @property
    def granted(self) -> bool:
        return self.spend.granted


class GuardedFeature:
    """Wraps a feature call so it can only run against granted credit.

    Failures of the wrapped call are loud: the exception propagates after
    any pending verification spend has been rolled back.
    """

    def __init__(self, gate: ConsumptionGate, resource: Resource, amount: int = 1):
        """Initialize the wrapper.

        Args:
            gate: Gate owned by the caller's CreditAccount
            resource: Resource charged per call
            amount: Units charged per call

        Raises:
            ValueError: If amount is not a positive integer
        """
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise ValueError("amount must be a positive integer")
        self.gate = gate
        self.resource = resource
        self.amount = amount

    def call(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> GuardedResult:
        """Spend, then run fn if the spend was granted."""
        spend = self.gate.spend(self.resource, self.amount)
        if not spend.granted:
            return GuardedResult(spend=spend)

        try:
            value = fn(*args, **kwargs)
        except Exception:
            self.gate.settle(spend, succeeded=False)
            raise
        return GuardedResult(spend=spend, value=value)

    def require(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Like call(), but raise QuotaExceeded on denial and return fn's value.

        Raises:
            QuotaExceeded: If the spend was denied
        """
        result = self.call(fn, *args, **kwargs)
        if not result.granted:
            raise QuotaExceeded(
                f"{self.resource.value} quota exceeded: requested {self.amount}, "
                f"remaining {result.spend.remaining}",
                resource=self.resource,
                requested=self.amount,
                remaining=result.spend.remaining,
            )
        return result.value
