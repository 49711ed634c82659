"""
Configuration management for Backend TrustRisk.

Loads settings from environment variables and an optional .env file.
Exposes a single source of truth for storage, logging, and policy thresholds.
"""

from backend_trustrisk.config.settings import Settings, get_settings  # noqa: F401

__all__ = ["Settings", "get_settings"]
