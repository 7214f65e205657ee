"""
Core modules for Credit Guard.

This package contains tier entitlements, the search and verification
ledgers, the consumption gate and balance synchronisation.
"""
