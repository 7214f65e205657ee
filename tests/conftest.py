"""
Shared fixtures for ledger tests.
"""

import os
from datetime import datetime, timedelta

import pytest

from credit_guard.storage.repository import LedgerStore


class FakeClock:
    """Settable clock standing in for datetime.now."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 3, 14, 9, 30, 0))


@pytest.fixture
def db_path(tmp_path):
    return os.path.join(str(tmp_path), "ledger.db")


@pytest.fixture
def store(db_path):
    return LedgerStore(db_path)
