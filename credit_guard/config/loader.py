"""
Configuration management and loading.

Handles storage, backend and tier-table settings.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

import yaml

from credit_guard.core.account import DEFAULT_LOW_CREDIT_THRESHOLD
from credit_guard.core.tiers import (
    DEFAULT_ALIASES,
    DEFAULT_TIERS,
    UNLIMITED,
    Limit,
    TierEntitlement,
    TierPolicy,
)
from credit_guard.sdk.credits_client import DEFAULT_TIMEOUT
from credit_guard.storage.db import DEFAULT_DB_PATH


@dataclass(frozen=True)
class StorageConfig:
    """Local ledger cache settings."""
    path: str = DEFAULT_DB_PATH


@dataclass(frozen=True)
class RemoteConfig:
    """Backend endpoint for the authoritative balance."""
    base_url: str
    timeout_seconds: float = DEFAULT_TIMEOUT

    def __post_init__(self):
        """Validate remote settings."""
        if not self.base_url.strip():
            raise ValueError("remote base_url cannot be empty")
        if self.timeout_seconds <= 0:
            raise ValueError("remote timeout_seconds must be > 0")


@dataclass(frozen=True)
class CreditGuardConfig:
    """Complete credit guard configuration."""
    storage: StorageConfig
    remote: Optional[RemoteConfig] = None
    low_credit_threshold: int = DEFAULT_LOW_CREDIT_THRESHOLD
    tiers: Dict[str, TierEntitlement] = field(default_factory=lambda: dict(DEFAULT_TIERS))
    aliases: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_ALIASES))

    def tier_policy(self) -> TierPolicy:
        return TierPolicy(self.tiers, self.aliases)


def load_credit_config(path: str) -> CreditGuardConfig:
    """Load and validate credit guard configuration from YAML file.

    Strict validation ensures a typo in the tier table can never
    silently hand out different limits than intended.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated CreditGuardConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Credit guard config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if not raw_config:
        raise ValueError("Configuration file is empty")
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration must be a dictionary")

    allowed_top_keys = {'storage', 'remote', 'credits', 'tiers', 'aliases'}
    unknown_keys = set(raw_config.keys()) - allowed_top_keys
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    # Storage
    if 'storage' not in raw_config:
        raise ValueError("Missing required 'storage' section")
    storage_data = _require_dict(raw_config['storage'], 'storage')
    _reject_unknown(storage_data, {'path'}, 'storage')
    storage_path = storage_data.get('path', DEFAULT_DB_PATH)
    if not isinstance(storage_path, str) or not storage_path.strip():
        raise ValueError("'storage.path' must be a non-empty string")
    storage = StorageConfig(path=storage_path)

    # Remote (optional: without it the account runs on the local cache)
    remote = None
    if raw_config.get('remote') is not None:
        remote_data = _require_dict(raw_config['remote'], 'remote')
        _reject_unknown(remote_data, {'base_url', 'timeout_seconds'}, 'remote')
        if 'base_url' not in remote_data:
            raise ValueError("Missing required 'base_url' in remote")
        base_url = remote_data['base_url']
        if not isinstance(base_url, str):
            raise ValueError("'remote.base_url' must be a string")
        timeout = remote_data.get('timeout_seconds', DEFAULT_TIMEOUT)
        if isinstance(timeout, bool) or not isinstance(timeout, (int, float)):
            raise ValueError("'remote.timeout_seconds' must be a number")
        remote = RemoteConfig(base_url=base_url, timeout_seconds=float(timeout))

    # Credits
    low_threshold = DEFAULT_LOW_CREDIT_THRESHOLD
    if raw_config.get('credits') is not None:
        credits_data = _require_dict(raw_config['credits'], 'credits')
        _reject_unknown(credits_data, {'low_threshold'}, 'credits')
        low_threshold = credits_data.get('low_threshold', DEFAULT_LOW_CREDIT_THRESHOLD)
        if isinstance(low_threshold, bool) or not isinstance(low_threshold, int) or low_threshold < 0:
            raise ValueError("'credits.low_threshold' must be an integer >= 0")

    # Tier overrides are merged over the built-in plan matrix
    tiers = dict(DEFAULT_TIERS)
    tiers_data = raw_config.get('tiers') or {}
    tiers_data = _require_dict(tiers_data, 'tiers')
    for tier_name, tier_data in tiers_data.items():
        tier_id = str(tier_name).strip().lower()
        tiers[tier_id] = _parse_tier(tier_id, _require_dict(tier_data, f"tiers.{tier_name}"))

    aliases = dict(DEFAULT_ALIASES)
    aliases_data = raw_config.get('aliases') or {}
    aliases_data = _require_dict(aliases_data, 'aliases')
    for alias, target in aliases_data.items():
        if not isinstance(target, str):
            raise ValueError(f"Alias '{alias}' must map to a tier name")
        target_id = target.strip().lower()
        if target_id not in tiers:
            raise ValueError(f"Alias '{alias}' points at unknown tier '{target}'")
        aliases[str(alias).strip().lower()] = target_id

    return CreditGuardConfig(
        storage=storage,
        remote=remote,
        low_credit_threshold=low_threshold,
        tiers=tiers,
        aliases=aliases,
    )


def _require_dict(data, path: str) -> Dict:
    if not isinstance(data, dict):
        raise ValueError(f"'{path}' must be a dictionary")
    return data


def _reject_unknown(data: Dict, allowed: set, path: str) -> None:
    unknown_keys = set(data.keys()) - allowed
    if unknown_keys:
        raise ValueError(f"Unknown keys in {path}: {unknown_keys}")


def _parse_tier(tier_id: str, data: Dict) -> TierEntitlement:
    """Parse and validate one tier override.

    Args:
        tier_id: Normalised tier identifier
        data: Tier configuration data

    Returns:
        Validated TierEntitlement

    Raises:
        ValueError: If configuration is invalid
    """
    path = f"tiers.{tier_id}"
    _reject_unknown(data, {'daily_searches', 'monthly_verifications'}, path)
    for key in ('daily_searches', 'monthly_verifications'):
        if key not in data:
            raise ValueError(f"Missing required '{key}' in {path}")

    return TierEntitlement(
        tier_id=tier_id,
        daily_search_limit=_parse_limit(data['daily_searches'], f"{path}.daily_searches"),
        monthly_verification_limit=_parse_limit(data['monthly_verifications'], f"{path}.monthly_verifications"),
    )


def _parse_limit(value, path: str) -> Limit:
    if isinstance(value, str) and value.strip().lower() == "unlimited":
        return UNLIMITED
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"'{path}' must be an integer >= 0 or 'unlimited'")
    return value
