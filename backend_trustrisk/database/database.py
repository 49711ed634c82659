"""
Storage abstraction for trust profiles, transactions, risk assessments, and claims.

The decision pipeline only talks to DatabaseBackend. MemoryBackend is the
default (single process, thread-safe per call); SQLAlchemyBackend in
sql_backend.py targets SQLite or PostgreSQL. Each call is atomic per entity;
no cross-entity transactions are assumed by callers.
"""

from __future__ import annotations

import copy
import threading
import time
from abc import ABC, abstractmethod
from typing import Any

from backend_trustrisk.core.exceptions import DuplicateClaimError
from backend_trustrisk.database.models import (
    ClaimRecord,
    ClaimStatus,
    RiskAssessmentRecord,
    TransactionRecord,
    TransactionStatus,
    TrustProfileRecord,
)
from backend_trustrisk.trustrisk_logging import get_logger

logger = get_logger(__name__)

MEMORY_URL = "memory://"

# Fields callers may change on a trust profile
PROFILE_MUTABLE_FIELDS = (
    "score",
    "positive_transactions",
    "total_transactions",
    "verification_count",
)


# -----------------------------------------------------------------------------
# Abstract backend
# -----------------------------------------------------------------------------


class DatabaseBackend(ABC):
    """Abstract storage interface; implement for memory, SQLite or PostgreSQL."""

    def ensure_schema(self) -> None:
        """Create tables if the backend needs them. No-op by default."""

    # --- Trust profiles ---

    @abstractmethod
    def create_trust_profile(
        self,
        user_id: int,
        account_created_at: int,
        *,
        updated_at: int | None = None,
    ) -> TrustProfileRecord:
        """Create a zeroed profile; returns the existing one if already present."""
        ...

    @abstractmethod
    def get_trust_profile(self, user_id: int) -> TrustProfileRecord | None:
        ...

    @abstractmethod
    def update_trust_profile(
        self,
        user_id: int,
        *,
        updated_at: int | None = None,
        **updates: Any,
    ) -> TrustProfileRecord | None:
        """Apply updates (see PROFILE_MUTABLE_FIELDS) and stamp updated_at; None if the profile is missing."""
        ...

    # --- Transactions ---

    @abstractmethod
    def create_transaction(
        self,
        user_id: int,
        amount: float,
        *,
        recipient_id: str | None = None,
        status: TransactionStatus = TransactionStatus.PENDING,
        created_at: int | None = None,
    ) -> TransactionRecord:
        ...

    @abstractmethod
    def get_transaction(self, transaction_id: int) -> TransactionRecord | None:
        ...

    @abstractmethod
    def list_transactions(self, user_id: int, *, limit: int = 100) -> list[TransactionRecord]:
        """Return the user's transactions, newest first."""
        ...

    @abstractmethod
    def update_transaction(
        self,
        transaction_id: int,
        *,
        status: TransactionStatus | None = None,
        risk_score: float | None = None,
        updated_at: int | None = None,
    ) -> TransactionRecord | None:
        """Update status and/or risk score. Sets completed_at on first completion."""
        ...

    # --- Risk assessments ---

    @abstractmethod
    def create_risk_assessment(
        self,
        transaction_id: int,
        *,
        allowed: bool,
        risk_score: float,
        restrictions: dict[str, Any],
        reason: str,
        created_at: int | None = None,
    ) -> RiskAssessmentRecord:
        ...

    @abstractmethod
    def get_risk_assessment(self, transaction_id: int) -> RiskAssessmentRecord | None:
        ...

    # --- Claims ---

    @abstractmethod
    def create_claim(
        self,
        user_id: int,
        transaction_id: int,
        *,
        description: str,
        amount: float,
        created_at: int | None = None,
    ) -> ClaimRecord:
        """Insert a pending claim. Raises DuplicateClaimError if the transaction already has one."""
        ...

    @abstractmethod
    def get_claim(self, claim_id: int) -> ClaimRecord | None:
        ...

    @abstractmethod
    def get_claim_by_transaction(self, transaction_id: int) -> ClaimRecord | None:
        ...

    @abstractmethod
    def list_claims(self, user_id: int) -> list[ClaimRecord]:
        """Return the user's claims, newest first."""
        ...

    @abstractmethod
    def update_claim(
        self,
        claim_id: int,
        *,
        status: ClaimStatus,
        settlement_amount: float | None = None,
        resolved_at: int | None = None,
    ) -> ClaimRecord | None:
        ...


# -----------------------------------------------------------------------------
# In-memory backend
# -----------------------------------------------------------------------------


class MemoryBackend(DatabaseBackend):
    """
    Dict-backed storage for tests and single-process deployments.

    Every call holds one RLock, so each call is atomic. Returned records are
    copies; mutating them does not change stored state.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._profiles: dict[int, TrustProfileRecord] = {}
        self._transactions: dict[int, TransactionRecord] = {}
        self._assessments: dict[int, RiskAssessmentRecord] = {}
        self._claims: dict[int, ClaimRecord] = {}
        self._claim_by_tx: dict[int, int] = {}
        self._next_tx_id = 1
        self._next_assessment_id = 1
        self._next_claim_id = 1

    def create_trust_profile(
        self,
        user_id: int,
        account_created_at: int,
        *,
        updated_at: int | None = None,
    ) -> TrustProfileRecord:
        with self._lock:
            existing = self._profiles.get(user_id)
            if existing is not None:
                return copy.copy(existing)
            record = TrustProfileRecord(
                user_id=user_id,
                account_created_at=account_created_at,
                updated_at=updated_at if updated_at is not None else int(time.time()),
            )
            self._profiles[user_id] = record
            logger.debug("trust_profile_created", user_id=user_id)
            return copy.copy(record)

    def get_trust_profile(self, user_id: int) -> TrustProfileRecord | None:
        with self._lock:
            record = self._profiles.get(user_id)
            return copy.copy(record) if record else None

    def update_trust_profile(
        self,
        user_id: int,
        *,
        updated_at: int | None = None,
        **updates: Any,
    ) -> TrustProfileRecord | None:
        unknown = set(updates) - set(PROFILE_MUTABLE_FIELDS)
        if unknown:
            raise ValueError(f"Unknown trust profile fields: {sorted(unknown)}")
        with self._lock:
            record = self._profiles.get(user_id)
            if record is None:
                return None
            for key, value in updates.items():
                setattr(record, key, value)
            record.updated_at = updated_at if updated_at is not None else int(time.time())
            return copy.copy(record)

    def create_transaction(
        self,
        user_id: int,
        amount: float,
        *,
        recipient_id: str | None = None,
        status: TransactionStatus = TransactionStatus.PENDING,
        created_at: int | None = None,
    ) -> TransactionRecord:
        now = created_at if created_at is not None else int(time.time())
        with self._lock:
            tx_id = self._next_tx_id
            self._next_tx_id += 1
            record = TransactionRecord(
                id=tx_id,
                user_id=user_id,
                amount=float(amount),
                recipient_id=recipient_id,
                status=TransactionStatus(status),
                created_at=now,
                updated_at=now,
                completed_at=now if status == TransactionStatus.COMPLETED else None,
            )
            self._transactions[tx_id] = record
            return copy.copy(record)

    def get_transaction(self, transaction_id: int) -> TransactionRecord | None:
        with self._lock:
            record = self._transactions.get(transaction_id)
            return copy.copy(record) if record else None

    def list_transactions(self, user_id: int, *, limit: int = 100) -> list[TransactionRecord]:
        with self._lock:
            rows = [copy.copy(t) for t in self._transactions.values() if t.user_id == user_id]
        rows.sort(key=lambda t: (t.created_at, t.id), reverse=True)
        return rows[:limit]

    def update_transaction(
        self,
        transaction_id: int,
        *,
        status: TransactionStatus | None = None,
        risk_score: float | None = None,
        updated_at: int | None = None,
    ) -> TransactionRecord | None:
        now = updated_at if updated_at is not None else int(time.time())
        with self._lock:
            record = self._transactions.get(transaction_id)
            if record is None:
                return None
            if status is not None:
                record.status = TransactionStatus(status)
                if record.status == TransactionStatus.COMPLETED and record.completed_at is None:
                    record.completed_at = now
            if risk_score is not None:
                record.risk_score = risk_score
            record.updated_at = now
            return copy.copy(record)

    def create_risk_assessment(
        self,
        transaction_id: int,
        *,
        allowed: bool,
        risk_score: float,
        restrictions: dict[str, Any],
        reason: str,
        created_at: int | None = None,
    ) -> RiskAssessmentRecord:
        with self._lock:
            record = RiskAssessmentRecord(
                id=self._next_assessment_id,
                transaction_id=transaction_id,
                allowed=allowed,
                risk_score=risk_score,
                restrictions=dict(restrictions),
                reason=reason,
                created_at=created_at if created_at is not None else int(time.time()),
            )
            self._next_assessment_id += 1
            self._assessments[transaction_id] = record
            return copy.copy(record)

    def get_risk_assessment(self, transaction_id: int) -> RiskAssessmentRecord | None:
        with self._lock:
            record = self._assessments.get(transaction_id)
            return copy.copy(record) if record else None

    def create_claim(
        self,
        user_id: int,
        transaction_id: int,
        *,
        description: str,
        amount: float,
        created_at: int | None = None,
    ) -> ClaimRecord:
        with self._lock:
            if transaction_id in self._claim_by_tx:
                raise DuplicateClaimError(transaction_id)
            record = ClaimRecord(
                id=self._next_claim_id,
                user_id=user_id,
                transaction_id=transaction_id,
                description=description,
                amount=float(amount),
                status=ClaimStatus.PENDING,
                created_at=created_at if created_at is not None else int(time.time()),
            )
            self._next_claim_id += 1
            self._claims[record.id] = record
            self._claim_by_tx[transaction_id] = record.id
            return copy.copy(record)

    def get_claim(self, claim_id: int) -> ClaimRecord | None:
        with self._lock:
            record = self._claims.get(claim_id)
            return copy.copy(record) if record else None

    def get_claim_by_transaction(self, transaction_id: int) -> ClaimRecord | None:
        with self._lock:
            claim_id = self._claim_by_tx.get(transaction_id)
            if claim_id is None:
                return None
            return copy.copy(self._claims[claim_id])

    def list_claims(self, user_id: int) -> list[ClaimRecord]:
        with self._lock:
            rows = [copy.copy(c) for c in self._claims.values() if c.user_id == user_id]
        rows.sort(key=lambda c: (c.created_at, c.id), reverse=True)
        return rows

    def update_claim(
        self,
        claim_id: int,
        *,
        status: ClaimStatus,
        settlement_amount: float | None = None,
        resolved_at: int | None = None,
    ) -> ClaimRecord | None:
        with self._lock:
            record = self._claims.get(claim_id)
            if record is None:
                return None
            record.status = ClaimStatus(status)
            if settlement_amount is not None:
                record.settlement_amount = settlement_amount
            if resolved_at is not None:
                record.resolved_at = resolved_at
            return copy.copy(record)


def get_database(url: str | None = None) -> DatabaseBackend:
    """
    Return a storage backend for the given URL.

    url: "memory://" (default) for MemoryBackend; any SQLAlchemy URL
    (e.g. "sqlite:///trustrisk.db", "postgresql+psycopg://...") for SQLAlchemyBackend.
    When url is None, TRUSTRISK_DB_URL / DATABASE_URL from settings is used.
    """
    if url is None:
        from backend_trustrisk.config import get_settings

        url = get_settings().database_url
    url = (url or MEMORY_URL).strip()
    if url == MEMORY_URL:
        return MemoryBackend()
    from backend_trustrisk.database.sql_backend import init_db

    return init_db(url)
