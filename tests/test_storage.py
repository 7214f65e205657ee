"""
Unit tests for storage layer.

Tests schema creation, versioned writes and compare-and-swap updates.
"""

import os
import tempfile
from datetime import date, datetime

import pytest

from credit_guard.core.errors import StoreConflict
from credit_guard.storage.db import get_connection
from credit_guard.storage.models import (
    PendingConsumption,
    SearchQuotaState,
    VerificationCreditState,
)
from credit_guard.storage.repository import LedgerStore, initialize_schema


class TestStorageSchema:
    """Test database schema creation and structure."""

    def test_schema_creation(self):
        """Verify table is created correctly."""
        with tempfile.TemporaryDirectory() as temp_dir:
            db_path = os.path.join(temp_dir, "test.db")
            initialize_schema(db_path)

            conn = get_connection(db_path)
            try:
                cursor = conn.execute("""
                    SELECT name FROM sqlite_master
                    WHERE type='table' AND name='ledger_record'
                """)
                tables = cursor.fetchall()
                assert len(tables) == 1

                cursor = conn.execute("PRAGMA table_info(ledger_record)")
                column_names = [col[1] for col in cursor.fetchall()]
                assert column_names == ['key', 'value', 'version', 'updated_at']
            finally:
                conn.close()

    def test_schema_creation_is_idempotent(self):
        """Initializing twice keeps existing records."""
        with tempfile.TemporaryDirectory() as temp_dir:
            db_path = os.path.join(temp_dir, "test.db")
            store = LedgerStore(db_path)
            store.write("a", "1")
            initialize_schema(db_path)
            assert store.read("a").value == "1"


class TestKeyValueContract:
    """Test read/write/compare-and-swap semantics."""

    def test_read_missing_key(self, store):
        assert store.read("missing") is None

    def test_write_creates_and_bumps_version(self, store):
        store.write("k", "first")
        record = store.read("k")
        assert record.value == "first"
        assert record.version == 1

        store.write("k", "second")
        record = store.read("k")
        assert record.value == "second"
        assert record.version == 2

    def test_cas_create_only_when_absent(self, store):
        assert store.compare_and_swap("k", "v1", 0) is True
        assert store.compare_and_swap("k", "v2", 0) is False
        assert store.read("k").value == "v1"

    def test_cas_rejects_stale_version(self, store):
        store.write("k", "v1")
        store.write("k", "v2")
        assert store.compare_and_swap("k", "stale", 1) is False
        assert store.compare_and_swap("k", "fresh", 2) is True
        record = store.read("k")
        assert record.value == "fresh"
        assert record.version == 3

    def test_persistence_across_instances(self, db_path):
        LedgerStore(db_path).write("k", "kept")
        assert LedgerStore(db_path).read("k").value == "kept"

    def test_invalid_max_attempts(self, db_path):
        with pytest.raises(ValueError, match="max_attempts"):
            LedgerStore(db_path, max_attempts=0)


class TestAtomicUpdate:
    """Test the retrying update helper."""

    def test_update_writes_new_value(self, store):
        result = store.update("k", lambda raw: ("x", "done"))
        assert result == "done"
        assert store.read("k").value == "x"

    def test_update_skips_write_when_unchanged(self, store):
        store.write("k", "same")
        store.update("k", lambda raw: (raw, None))
        assert store.read("k").version == 1

    def test_update_retries_after_conflict(self, store):
        """A concurrent write between read and swap forces a retry."""
        store.write("k", "0")
        calls = []

        def mutate(raw):
            calls.append(raw)
            if len(calls) == 1:
                store.write("k", "interloper")
            return raw + "+", len(calls)

        attempts = store.update("k", mutate)
        assert attempts == 2
        assert calls == ["0", "interloper"]
        assert store.read("k").value == "interloper+"

    def test_update_gives_up_after_max_attempts(self, db_path):
        store = LedgerStore(db_path, max_attempts=3)
        store.write("k", "0")

        def always_conflict(raw):
            store.write("k", raw + "!")
            return "mine", None

        with pytest.raises(StoreConflict):
            store.update("k", always_conflict)


class TestRecordEncoding:
    """Test JSON encoding of ledger records."""

    def test_search_state_round_trip(self):
        state = SearchQuotaState(day=date(2024, 3, 14), used=7)
        assert SearchQuotaState.from_json(state.to_json()) == state

    def test_verification_state_with_pending(self):
        op = PendingConsumption("op1", 3, datetime(2024, 3, 14, 10, 0, 0))
        state = VerificationCreditState(
            balance=12,
            is_unlimited=False,
            last_synced_at=datetime(2024, 3, 14, 9, 0, 0),
            pending=(op,),
        )
        decoded = VerificationCreditState.from_json(state.to_json())
        assert decoded == state
        assert decoded.pending_total == 3

    @pytest.mark.parametrize("raw", ["null", "[]", '{"day": 5, "used": 1}', '{"day": "2024-03-14"}'])
    def test_search_state_rejects_wrong_shape(self, raw):
        with pytest.raises(ValueError):
            SearchQuotaState.from_json(raw)

    @pytest.mark.parametrize("raw", [
        '"x"',
        '{"balance": null}',
        '{"balance": true}',
        '{"balance": 1, "pending": {}}',
        '{"balance": 1, "pending": [{"operation_id": "op1", "amount": 0, "created_at": "2024-03-14T10:00:00"}]}',
    ])
    def test_verification_state_rejects_wrong_shape(self, raw):
        with pytest.raises(ValueError):
            VerificationCreditState.from_json(raw)

    def test_negative_values_rejected(self):
        with pytest.raises(ValueError, match="used cannot be negative"):
            SearchQuotaState(day=date(2024, 3, 14), used=-1)
        with pytest.raises(ValueError, match="balance cannot be negative"):
            VerificationCreditState(balance=-1)
