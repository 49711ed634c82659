"""
Environment variable loading for TrustRisk.

- TRUSTRISK_DB_URL / DATABASE_URL: storage URL (default: memory://)
- LOG_LEVEL, LOG_FORMAT: logging
- TIER_*: access tier thresholds
- FRAUD_NEW_USER_AMOUNT_THRESHOLD: small-transaction threshold for new users
- BUSINESS_HOURS_START / BUSINESS_HOURS_END: time-of-day risk window (UTC hours)
- Loads .env from project root when available.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

# Project root: config is backend_trustrisk/config/, root is 2 levels up
_CONFIG_DIR = Path(__file__).resolve().parent
_BACKEND_DIR = _CONFIG_DIR.parent
_ROOT = _BACKEND_DIR.parent
_ENV_PATH = _ROOT / ".env"

DEFAULT_DATABASE_URL = "memory://"


def load_trustrisk_env() -> None:
    """Load .env from project root. Safe to call multiple times; existing env wins."""
    if _ENV_PATH.is_file():
        load_dotenv(_ENV_PATH, override=False)


def env_str(name: str, default: str = "") -> str:
    return (os.getenv(name) or "").strip() or default


def env_float(name: str, default: float) -> float:
    """Return float env value; fall back to default when unset or unparsable."""
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def get_database_url() -> str:
    """
    Resolve storage URL from env.
    Order: TRUSTRISK_DB_URL > DATABASE_URL > memory://.
    """
    load_trustrisk_env()
    return env_str("TRUSTRISK_DB_URL") or env_str("DATABASE_URL") or DEFAULT_DATABASE_URL
