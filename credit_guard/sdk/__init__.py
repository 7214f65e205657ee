"""
SDK for Credit Guard.

Provides the backend credits client and the guarded feature wrapper.
"""

from .credits_client import CreditsClient, RemoteBalance
from .guarded import GuardedFeature, GuardedResult

__all__ = ["CreditsClient", "RemoteBalance", "GuardedFeature", "GuardedResult"]
