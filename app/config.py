"""
app/config.py

Application-level configuration helpers.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache

from db.config import load_env_files

MAX_BATCH_EVENTS = 10_000


@lru_cache(maxsize=1)
def _load_env_once() -> None:
    """
    Ensure project `.env` files are loaded once before reading app settings.
    """

    load_env_files()


def _get_bool_env(name: str, default: bool) -> bool:
    """
    Read a boolean from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    return raw_value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int_env(name: str, default: int) -> int:
    """
    Read an integer from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return int(raw_value)
    except ValueError:
        return default


def _get_optional_int_env(name: str) -> int | None:
    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None or not raw_value.strip():
        return None
    try:
        return int(raw_value)
    except ValueError:
        return None


@dataclass(frozen=True)
class ImportSettings:
    """
    Runtime settings for site imports.
    """

    max_concurrent_per_org: int = 1
    fail_fast_first_batch: bool = True
    stale_after_hours: int = 24
    reaper_interval_minutes: int = 15
    max_batch_events: int = MAX_BATCH_EVENTS


@dataclass(frozen=True)
class TierPolicy:
    """
    Import quota for one subscription tier.
    """

    historical_window_months: int
    monthly_event_limit: int


_DEFAULT_TIER_POLICIES: dict[str, TierPolicy] = {
    "free": TierPolicy(historical_window_months=6, monthly_event_limit=10_000),
    "standard": TierPolicy(historical_window_months=24, monthly_event_limit=1_000_000),
    "pro": TierPolicy(historical_window_months=60, monthly_event_limit=5_000_000),
}


@dataclass(frozen=True)
class QuotaSettings:
    tiers: dict[str, TierPolicy] = field(default_factory=lambda: dict(_DEFAULT_TIER_POLICIES))
    default_tier: str = "free"

    def policy_for(self, tier: str | None) -> TierPolicy:
        """
        Return the policy for ``tier``; unknown tiers fall back to the default tier.
        """

        key = (tier or "").strip().lower()
        return self.tiers.get(key, self.tiers[self.default_tier])


@lru_cache(maxsize=1)
def get_import_settings() -> ImportSettings:
    """
    Return cached import settings from environment variables.
    """

    return ImportSettings(
        max_concurrent_per_org=max(1, _get_int_env("IMPORT_MAX_CONCURRENT_PER_ORG", 1)),
        fail_fast_first_batch=_get_bool_env("IMPORT_FAIL_FAST_FIRST_BATCH", True),
        stale_after_hours=max(1, _get_int_env("IMPORT_STALE_AFTER_HOURS", 24)),
        reaper_interval_minutes=max(1, _get_int_env("IMPORT_REAPER_INTERVAL_MINUTES", 15)),
        max_batch_events=min(
            MAX_BATCH_EVENTS,
            max(1, _get_int_env("IMPORT_MAX_BATCH_EVENTS", MAX_BATCH_EVENTS)),
        ),
    )


@lru_cache(maxsize=1)
def get_quota_settings() -> QuotaSettings:
    """
    Return tier quota policies, applying IMPORT_QUOTA_<TIER>_MONTHLY_LIMIT overrides.
    """

    tiers: dict[str, TierPolicy] = {}
    for name, policy in _DEFAULT_TIER_POLICIES.items():
        override = _get_optional_int_env(f"IMPORT_QUOTA_{name.upper()}_MONTHLY_LIMIT")
        limit = policy.monthly_event_limit if override is None else max(0, override)
        tiers[name] = TierPolicy(
            historical_window_months=policy.historical_window_months,
            monthly_event_limit=limit,
        )
    return QuotaSettings(tiers=tiers)
