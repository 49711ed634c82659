"""
Pytest fixtures for TrustRisk tests. In-memory storage by default; temporary SQLite DB for SQLAlchemy tests.
"""

from __future__ import annotations

import pytest

# Wednesday 2024-03-13 12:00:00 UTC (inside business hours)
FIXED_NOW = 1710331200
DAY = 86400


class FakeClock:
    """Callable clock returning a settable Unix timestamp."""

    def __init__(self, now: float = FIXED_NOW) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    """Unset storage URLs, clear cached settings, and reset logging after each test."""
    monkeypatch.delenv("TRUSTRISK_DB_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)

    from backend_trustrisk.config.settings import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()

    from backend_trustrisk.trustrisk_logging import configure_structlog

    configure_structlog()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def memory_db():
    from backend_trustrisk.database.database import MemoryBackend

    return MemoryBackend()


@pytest.fixture
def sql_db(tmp_path):
    """SQLAlchemy backend on a temporary SQLite file with tables created."""
    from backend_trustrisk.database.sql_backend import init_db

    backend = init_db(f"sqlite:///{tmp_path / 'trustrisk.db'}")
    yield backend
    backend.dispose()


@pytest.fixture
def tracker(memory_db, clock):
    from backend_trustrisk.analytics.trust_profile import TrustProfileTracker

    return TrustProfileTracker(memory_db, clock=clock)


@pytest.fixture
def pipeline(memory_db, clock):
    from backend_trustrisk.analytics.pipeline import TrustRiskPipeline

    return TrustRiskPipeline(memory_db, clock=clock)


def make_profile(
    score: float = 0.0,
    *,
    user_id: int = 1,
    tier=None,
    positive: int = 0,
    total: int = 0,
    verifications: int = 0,
    age_days: int = 0,
):
    """Build a TrustProfile directly, bypassing the tracker."""
    from backend_trustrisk.analytics.models import AccessTier, TrustProfile

    return TrustProfile(
        user_id=user_id,
        score=score,
        positive_transactions=positive,
        total_transactions=total,
        verification_count=verifications,
        account_age_days=age_days,
        tier=tier or AccessTier.BASIC,
    )


def make_transaction(
    amount: float,
    *,
    tx_id: int = 1000,
    user_id: int = 1,
    recipient_id: str | None = None,
    status=None,
    created_at: int = FIXED_NOW,
):
    """Build a TransactionRecord without storing it."""
    from backend_trustrisk.database.models import TransactionRecord, TransactionStatus

    return TransactionRecord(
        id=tx_id,
        user_id=user_id,
        amount=amount,
        status=status or TransactionStatus.PENDING,
        created_at=created_at,
        recipient_id=recipient_id,
    )
