"""
Client for the remote credits endpoint.

Fetches the authoritative verification balance. Every failure mode is
reported as SyncFailure so callers can fall back to the cached value.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional

import requests

from ..core.errors import SyncFailure

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


@dataclass(frozen=True)
class RemoteBalance:
    """Balance as reported by GET /credits."""
    credits_remaining: int
    is_unlimited: bool


class CreditsClient:
    """Reads the account's credit balance from the backend."""

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        """Initialize the client.

        Args:
            base_url: Backend base URL (required)
            timeout: Seconds before a request counts as failed
            session: Optional requests session to reuse
            headers: Extra headers sent with every request

        Raises:
            ValueError: If base_url is missing or timeout is not positive
        """
        if not base_url or not base_url.strip():
            raise ValueError("base_url is required and cannot be empty")
        if timeout <= 0:
            raise ValueError("timeout must be > 0")

        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.headers = dict(headers or {})

    @property
    def credits_url(self) -> str:
        return f"{self.base_url}/credits"

    def fetch_balance(self) -> RemoteBalance:
        """Fetch the authoritative balance.

        Returns:
            RemoteBalance parsed from the response

        Raises:
            SyncFailure: On network errors, timeouts, non-2xx responses
                or a malformed payload
        """
        try:
            response = self.session.get(self.credits_url, headers=self.headers, timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
        except requests.RequestException as e:
            raise SyncFailure(f"Failed to fetch credits from {self.credits_url}: {e}") from e
        except ValueError as e:
            raise SyncFailure(f"Invalid JSON from {self.credits_url}: {e}") from e

        return _parse_balance(payload)


def _parse_balance(payload) -> RemoteBalance:
    if not isinstance(payload, dict):
        raise SyncFailure("credits response must be a JSON object")

    is_unlimited = payload.get("is_unlimited", False)
    if not isinstance(is_unlimited, bool):
        raise SyncFailure("'is_unlimited' must be a boolean")

    remaining = payload.get("credits_remaining")
    if remaining is None and is_unlimited:
        remaining = 0
    if isinstance(remaining, bool) or not isinstance(remaining, int):
        raise SyncFailure("'credits_remaining' must be an integer")

    return RemoteBalance(credits_remaining=remaining, is_unlimited=is_unlimited)
