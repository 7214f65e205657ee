"""
Credit Guard.

Usage-quota and credit ledger for tiered subscriptions.
"""

__version__ = "0.1.0"
