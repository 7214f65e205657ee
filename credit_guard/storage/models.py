"""
Data models for storage layer.

Defines the persisted ledger records and their JSON encoding. Decoding
is strict: any payload of the wrong shape raises ValueError so callers
can treat it as a corrupt cache entry.
"""

import json
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Any, Dict, Optional, Tuple


def _load_object(raw: str, kind: str) -> Dict[str, Any]:
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError(f"{kind} record must be a JSON object, got {type(data).__name__}")
    return data


def _require_int(data: Dict[str, Any], key: str, kind: str) -> int:
    value = data.get(key)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{kind}.{key} must be an integer, got {value!r}")
    return value


def _require_str(data: Dict[str, Any], key: str, kind: str) -> str:
    value = data.get(key)
    if not isinstance(value, str):
        raise ValueError(f"{kind}.{key} must be a string, got {value!r}")
    return value


@dataclass(frozen=True)
class VersionedRecord:
    """Raw value stored under a key, with its optimistic-concurrency version."""
    key: str
    value: str
    version: int


@dataclass(frozen=True)
class SearchQuotaState:
    """Daily search consumption for one account on one device."""
    day: date
    used: int = 0

    def __post_init__(self):
        if self.used < 0:
            raise ValueError("used cannot be negative")

    def to_json(self) -> str:
        return json.dumps({"day": self.day.isoformat(), "used": self.used})

    @classmethod
    def from_json(cls, raw: str) -> "SearchQuotaState":
        data = _load_object(raw, "search")
        return cls(
            day=date.fromisoformat(_require_str(data, "day", "search")),
            used=_require_int(data, "used", "search"),
        )


@dataclass(frozen=True)
class PendingConsumption:
    """A local decrement that the server has not yet confirmed."""
    operation_id: str
    amount: int
    created_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operation_id": self.operation_id,
            "amount": self.amount,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PendingConsumption":
        if not isinstance(data, dict):
            raise ValueError(f"pending operation must be an object, got {data!r}")
        amount = _require_int(data, "amount", "pending")
        if amount <= 0:
            raise ValueError(f"pending.amount must be positive, got {amount}")
        return cls(
            operation_id=_require_str(data, "operation_id", "pending"),
            amount=amount,
            created_at=datetime.fromisoformat(_require_str(data, "created_at", "pending")),
        )


@dataclass(frozen=True)
class VerificationCreditState:
    """Local cache of the remote verification-credit balance.

    When is_unlimited is set the balance is informational only and
    must not gate consumption.
    """
    balance: int
    is_unlimited: bool = False
    last_synced_at: Optional[datetime] = None
    pending: Tuple[PendingConsumption, ...] = field(default_factory=tuple)

    def __post_init__(self):
        if self.balance < 0:
            raise ValueError("balance cannot be negative")

    @property
    def pending_total(self) -> int:
        return sum(op.amount for op in self.pending)

    def with_changes(self, **changes: Any) -> "VerificationCreditState":
        return replace(self, **changes)

    def to_json(self) -> str:
        return json.dumps({
            "balance": self.balance,
            "is_unlimited": self.is_unlimited,
            "last_synced_at": self.last_synced_at.isoformat() if self.last_synced_at else None,
            "pending": [op.to_dict() for op in self.pending],
        })

    @classmethod
    def from_json(cls, raw: str) -> "VerificationCreditState":
        data = _load_object(raw, "verification")
        is_unlimited = data.get("is_unlimited", False)
        if not isinstance(is_unlimited, bool):
            raise ValueError(f"verification.is_unlimited must be a boolean, got {is_unlimited!r}")
        synced = data.get("last_synced_at")
        if synced is not None and not isinstance(synced, str):
            raise ValueError(f"verification.last_synced_at must be a string, got {synced!r}")
        pending = data.get("pending", [])
        if not isinstance(pending, list):
            raise ValueError(f"verification.pending must be a list, got {pending!r}")
        return cls(
            balance=_require_int(data, "balance", "verification"),
            is_unlimited=is_unlimited,
            last_synced_at=datetime.fromisoformat(synced) if synced else None,
            pending=tuple(PendingConsumption.from_dict(op) for op in pending),
        )
