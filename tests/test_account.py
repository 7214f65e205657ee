"""
Tests for the per-session credit account.
"""
from unittest.mock import Mock

import pytest

from credit_guard.core.account import CreditAccount
from credit_guard.core.errors import SyncFailure
from credit_guard.core.gate import Resource
from credit_guard.core.tiers import UNLIMITED
from credit_guard.sdk.credits_client import RemoteBalance


class TestCreditAccount:
    """Test the account aggregate."""

    def test_open_runs_session_sync(self, store, clock):
        client = Mock()
        client.fetch_balance.return_value = RemoteBalance(credits_remaining=7, is_unlimited=False)
        account = CreditAccount.open("user-1", "basic", store, client=client, clock=clock)

        assert account.tier.tier_id == "basic"
        assert account.remaining(Resource.VERIFICATION) == 7
        assert account.remaining(Resource.SEARCH) == 30

    def test_unknown_tier_gets_free_limits(self, store, clock):
        account = CreditAccount.open("user-1", "enterprise-gold", store, clock=clock)
        assert account.tier.tier_id == "free"
        assert account.remaining(Resource.SEARCH) == 8
        assert account.remaining(Resource.VERIFICATION) == 25

    def test_tier_change_to_unlimited_mid_session(self, store, clock):
        """Both ledgers report unlimited at once, with no network call."""
        client = Mock()
        client.fetch_balance.return_value = RemoteBalance(credits_remaining=7, is_unlimited=False)
        account = CreditAccount.open("user-1", "basic", store, client=client, clock=clock)
        client.fetch_balance.reset_mock()

        account.change_tier("unlimited")

        client.fetch_balance.assert_not_called()
        assert account.remaining(Resource.SEARCH) is UNLIMITED
        assert account.remaining(Resource.VERIFICATION) is UNLIMITED
        assert account.snapshot().is_unlimited

    def test_same_tier_change_is_noop(self, store, clock):
        client = Mock()
        client.fetch_balance.return_value = RemoteBalance(credits_remaining=7, is_unlimited=False)
        account = CreditAccount.open("user-1", "pro", store, client=client, clock=clock)
        client.fetch_balance.reset_mock()

        account.change_tier("PRO")
        client.fetch_balance.assert_not_called()

    def test_spend_against_cache_when_offline(self, store, clock):
        client = Mock()
        client.fetch_balance.side_effect = SyncFailure("offline")
        account = CreditAccount.open("user-1", "free", store, client=client, clock=clock)

        assert account.spend(Resource.VERIFICATION, 5).granted
        snapshot = account.snapshot()
        assert snapshot.verification_remaining == 20
        assert snapshot.needs_reconciliation
        assert snapshot.last_synced_at is None

    def test_snapshot_low_and_out(self, store, clock):
        account = CreditAccount.open("user-1", "free", store, clock=clock, low_credit_threshold=10)
        assert not account.snapshot().is_low

        account.spend(Resource.VERIFICATION, 15)
        snapshot = account.snapshot()
        assert snapshot.is_low
        assert not snapshot.is_out

        account.spend(Resource.VERIFICATION, 10)
        snapshot = account.snapshot()
        assert snapshot.is_out
        assert snapshot.verification_remaining == 0

    def test_accounts_share_store_without_interference(self, store, clock):
        first = CreditAccount.open("a", "free", store, clock=clock)
        second = CreditAccount.open("b", "free", store, clock=clock)
        first.spend(Resource.SEARCH, 8)
        assert second.remaining(Resource.SEARCH) == 8

    def test_open_survives_unexpected_client_error(self, store, clock):
        client = Mock()
        client.fetch_balance.side_effect = TimeoutError("timed out")

        account = CreditAccount.open("user-1", "basic", store, client=client, clock=clock)

        assert account.remaining(Resource.VERIFICATION) == 200
        assert account.spend(Resource.VERIFICATION, 1).granted

    def test_snapshot_with_corrupt_cache(self, store, clock):
        account = CreditAccount.open("user-1", "free", store, clock=clock)
        store.write(account.verification.key, '{"balance": null}')

        snapshot = account.snapshot()

        assert snapshot.verification_remaining == 0
        assert snapshot.is_out
        assert snapshot.last_synced_at is None

    def test_close_waits_for_background_refresh(self, store, clock):
        client = Mock()
        client.fetch_balance.return_value = RemoteBalance(credits_remaining=11, is_unlimited=False)
        with CreditAccount("user-1", "basic", store, client=client, clock=clock) as account:
            future = account.refresh_in_background()

        assert future.done()
        assert future.result().balance == 11
        assert account.sync._executor is None

    def test_account_id_required(self, store):
        with pytest.raises(ValueError, match="account_id"):
            CreditAccount("", "free", store)
