"""
Application settings.

Typed view over environment configuration: storage URL, logging, tier
thresholds, fraud thresholds, and business hours. Engines never read the
environment themselves; build_pipeline() turns Settings into engine configs.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache

from backend_trustrisk.config.env import (
    env_float,
    env_int,
    env_str,
    get_database_url,
    load_trustrisk_env,
)


@dataclass(frozen=True)
class Settings:
    """Runtime settings for the trust and risk pipeline."""

    database_url: str
    log_level: str = "INFO"
    log_format: str = "json"

    # Access tier thresholds: (min score, min verifications, min account age days)
    tier_full_min_score: float = 50.0
    tier_full_min_verifications: int = 2
    tier_full_min_age_days: int = 30
    tier_standard_min_score: float = 25.0
    tier_standard_min_verifications: int = 1
    tier_standard_min_age_days: int = 15

    fraud_new_user_amount_threshold: float = 50.0

    business_hours_start: int = 9
    business_hours_end: int = 17
    """Inclusive hour (UTC); 17 means 17:00-17:59 still counts as business hours."""


def load_settings() -> Settings:
    """Build Settings from the current environment (no caching)."""
    load_trustrisk_env()
    return Settings(
        database_url=get_database_url(),
        log_level=env_str("LOG_LEVEL", "INFO").upper(),
        log_format=env_str("LOG_FORMAT", "json").lower(),
        tier_full_min_score=env_float("TIER_FULL_MIN_SCORE", 50.0),
        tier_full_min_verifications=env_int("TIER_FULL_MIN_VERIFICATIONS", 2),
        tier_full_min_age_days=env_int("TIER_FULL_MIN_AGE_DAYS", 30),
        tier_standard_min_score=env_float("TIER_STANDARD_MIN_SCORE", 25.0),
        tier_standard_min_verifications=env_int("TIER_STANDARD_MIN_VERIFICATIONS", 1),
        tier_standard_min_age_days=env_int("TIER_STANDARD_MIN_AGE_DAYS", 15),
        fraud_new_user_amount_threshold=env_float("FRAUD_NEW_USER_AMOUNT_THRESHOLD", 50.0),
        business_hours_start=env_int("BUSINESS_HOURS_START", 9),
        business_hours_end=env_int("BUSINESS_HOURS_END", 17),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Return the current application settings (cached).

    Tests that change the environment should call get_settings.cache_clear().
    """
    return load_settings()
