"""
Unit tests for SDK layer.

Tests the credits client and the guarded feature wrapper.
"""

from unittest.mock import Mock

import pytest
import requests

from credit_guard.core.account import CreditAccount
from credit_guard.core.errors import QuotaExceeded, SyncFailure
from credit_guard.core.gate import Resource
from credit_guard.sdk.credits_client import CreditsClient, RemoteBalance
from credit_guard.sdk.guarded import GuardedFeature


def _response(payload=None, status_error=None, json_error=None):
    response = Mock()
    if status_error:
        response.raise_for_status.side_effect = status_error
    if json_error:
        response.json.side_effect = json_error
    else:
        response.json.return_value = payload
    return response


class TestCreditsClient:
    """Test CreditsClient behaviour."""

    def test_init_missing_base_url(self):
        with pytest.raises(ValueError, match="base_url is required"):
            CreditsClient("")

    def test_init_invalid_timeout(self):
        with pytest.raises(ValueError, match="timeout"):
            CreditsClient("https://api.example.com", timeout=0)

    def test_fetch_balance_success(self):
        session = Mock()
        session.get.return_value = _response({"credits_remaining": 42, "is_unlimited": False})
        client = CreditsClient(
            "https://api.example.com/",
            timeout=3,
            session=session,
            headers={"Authorization": "Bearer t"},
        )

        balance = client.fetch_balance()

        assert balance == RemoteBalance(credits_remaining=42, is_unlimited=False)
        session.get.assert_called_once_with(
            "https://api.example.com/credits",
            headers={"Authorization": "Bearer t"},
            timeout=3,
        )

    def test_fetch_unlimited_without_count(self):
        session = Mock()
        session.get.return_value = _response({"is_unlimited": True})
        balance = CreditsClient("https://api.example.com", session=session).fetch_balance()
        assert balance.is_unlimited
        assert balance.credits_remaining == 0

    def test_timeout_raises_sync_failure(self):
        session = Mock()
        session.get.side_effect = requests.Timeout("too slow")
        with pytest.raises(SyncFailure, match="Failed to fetch credits"):
            CreditsClient("https://api.example.com", session=session).fetch_balance()

    def test_http_error_raises_sync_failure(self):
        session = Mock()
        session.get.return_value = _response(status_error=requests.HTTPError("500"))
        with pytest.raises(SyncFailure):
            CreditsClient("https://api.example.com", session=session).fetch_balance()

    def test_invalid_json_raises_sync_failure(self):
        session = Mock()
        session.get.return_value = _response(json_error=ValueError("no json"))
        with pytest.raises(SyncFailure, match="Invalid JSON"):
            CreditsClient("https://api.example.com", session=session).fetch_balance()

    @pytest.mark.parametrize("payload", [
        [],
        {"credits_remaining": "12", "is_unlimited": False},
        {"credits_remaining": 12, "is_unlimited": "no"},
        {"is_unlimited": False},
    ])
    def test_malformed_payload_raises_sync_failure(self, payload):
        session = Mock()
        session.get.return_value = _response(payload)
        with pytest.raises(SyncFailure):
            CreditsClient("https://api.example.com", session=session).fetch_balance()


class TestGuardedFeature:
    """Test running features behind the gate."""

    def test_granted_call_runs_feature(self, store, clock):
        account = CreditAccount.open("user-1", "free", store, clock=clock)
        feature = Mock(return_value=["lead"])

        result = GuardedFeature(account.gate, Resource.SEARCH).call(feature, "plumbers", city="Austin")

        assert result.granted
        assert result.value == ["lead"]
        feature.assert_called_once_with("plumbers", city="Austin")

    def test_denied_call_skips_feature(self, store, clock):
        account = CreditAccount.open("user-1", "free", store, clock=clock)
        account.spend(Resource.SEARCH, 8)
        feature = Mock()

        result = GuardedFeature(account.gate, Resource.SEARCH).call(feature)

        assert not result.granted
        assert result.value is None
        feature.assert_not_called()

    def test_failing_feature_rolls_back_verification(self, store, clock):
        account = CreditAccount.open("user-1", "free", store, clock=clock)
        feature = Mock(side_effect=RuntimeError("verifier down"))

        with pytest.raises(RuntimeError, match="verifier down"):
            GuardedFeature(account.gate, Resource.VERIFICATION, amount=3).call(feature)

        assert account.remaining(Resource.VERIFICATION) == 25
        assert not account.verification.needs_reconciliation

    def test_require_raises_quota_exceeded(self, store, clock):
        account = CreditAccount.open("user-1", "free", store, clock=clock)
        guarded = GuardedFeature(account.gate, Resource.VERIFICATION, amount=30)
        with pytest.raises(QuotaExceeded) as excinfo:
            guarded.require(Mock())
        assert excinfo.value.requested == 30
        assert excinfo.value.remaining == 25

    def test_require_returns_value(self, store, clock):
        account = CreditAccount.open("user-1", "free", store, clock=clock)
        assert GuardedFeature(account.gate, Resource.SEARCH).require(lambda: "ok") == "ok"

    def test_invalid_amount(self, store, clock):
        account = CreditAccount.open("user-1", "free", store, clock=clock)
        with pytest.raises(ValueError, match="positive integer"):
            GuardedFeature(account.gate, Resource.SEARCH, amount=0)
