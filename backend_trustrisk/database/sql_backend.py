"""
SQLAlchemy storage backend: trust profiles, transactions, risk assessments, claims.

Works with any SQLAlchemy URL (SQLite file for local runs and tests, PostgreSQL
in production). Claim uniqueness per transaction is a unique index, so two
concurrent claims against one transaction cannot both be inserted.
"""

from __future__ import annotations

import json
import time
from contextlib import contextmanager
from typing import Any, Iterator

from sqlalchemy import (
    Boolean,
    Column,
    Float,
    Integer,
    String,
    Text,
    create_engine,
)
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from backend_trustrisk.core.exceptions import DuplicateClaimError, StorageError
from backend_trustrisk.database.database import PROFILE_MUTABLE_FIELDS, DatabaseBackend
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

Base = declarative_base()

# -----------------------------------------------------------------------------
# SQLAlchemy models
# -----------------------------------------------------------------------------


class TrustProfileRow(Base):
    __tablename__ = "trust_profiles"

    user_id = Column(Integer, primary_key=True)
    account_created_at = Column(Integer, nullable=False)  # Unix
    score = Column(Float, nullable=False, default=0.0)
    positive_transactions = Column(Integer, nullable=False, default=0)
    total_transactions = Column(Integer, nullable=False, default=0)
    verification_count = Column(Integer, nullable=False, default=0)
    updated_at = Column(Integer, nullable=True)

    def to_record(self) -> TrustProfileRecord:
        return TrustProfileRecord(
            user_id=self.user_id,
            account_created_at=self.account_created_at,
            score=self.score,
            positive_transactions=self.positive_transactions,
            total_transactions=self.total_transactions,
            verification_count=self.verification_count,
            updated_at=self.updated_at,
        )


class TransactionRow(Base):
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=False, index=True)
    amount = Column(Float, nullable=False)
    recipient_id = Column(String(128), nullable=True, index=True)
    status = Column(String(16), nullable=False)
    risk_score = Column(Float, nullable=True)
    created_at = Column(Integer, nullable=False, index=True)
    updated_at = Column(Integer, nullable=True)
    completed_at = Column(Integer, nullable=True)

    def to_record(self) -> TransactionRecord:
        return TransactionRecord(
            id=self.id,
            user_id=self.user_id,
            amount=self.amount,
            recipient_id=self.recipient_id,
            status=TransactionStatus(self.status),
            risk_score=self.risk_score,
            created_at=self.created_at,
            updated_at=self.updated_at,
            completed_at=self.completed_at,
        )


class RiskAssessmentRow(Base):
    __tablename__ = "risk_assessments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    transaction_id = Column(Integer, nullable=False, index=True)
    allowed = Column(Boolean, nullable=False)
    risk_score = Column(Float, nullable=False)
    restrictions = Column(Text, nullable=True)  # JSON object
    reason = Column(String(512), nullable=True)
    created_at = Column(Integer, nullable=True)

    def to_record(self) -> RiskAssessmentRecord:
        return RiskAssessmentRecord(
            id=self.id,
            transaction_id=self.transaction_id,
            allowed=self.allowed,
            risk_score=self.risk_score,
            restrictions=json.loads(self.restrictions) if self.restrictions else {},
            reason=self.reason or "",
            created_at=self.created_at,
        )


class ClaimRow(Base):
    __tablename__ = "claims"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=False, index=True)
    transaction_id = Column(Integer, nullable=False, unique=True, index=True)
    description = Column(String(1024), nullable=False)
    amount = Column(Float, nullable=False)
    status = Column(String(16), nullable=False)
    settlement_amount = Column(Float, nullable=True)
    created_at = Column(Integer, nullable=False)
    resolved_at = Column(Integer, nullable=True)

    def to_record(self) -> ClaimRecord:
        return ClaimRecord(
            id=self.id,
            user_id=self.user_id,
            transaction_id=self.transaction_id,
            description=self.description,
            amount=self.amount,
            status=ClaimStatus(self.status),
            settlement_amount=self.settlement_amount,
            created_at=self.created_at,
            resolved_at=self.resolved_at,
        )


# -----------------------------------------------------------------------------
# Backend
# -----------------------------------------------------------------------------


class SQLAlchemyBackend(DatabaseBackend):
    """SQLAlchemy implementation; one short session per call."""

    def __init__(self, url: str) -> None:
        self._url = url
        connect_args: dict[str, Any] = {}
        if url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
            connect_args["timeout"] = 30
        self._engine = create_engine(url, connect_args=connect_args, pool_pre_ping=True)
        self._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=self._engine)
        logger.info("storage_engine_created", url=url.split("?")[0].split("//")[-1])

    @property
    def engine(self):
        return self._engine

    @contextmanager
    def _session_scope(self) -> Iterator[Session]:
        """Single session. Commits on success, rolls back on error, wraps driver errors."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except IntegrityError:
            session.rollback()
            raise
        except SQLAlchemyError as e:
            session.rollback()
            logger.exception("storage_operation_failed", error=str(e))
            raise StorageError(f"Storage operation failed: {e}") from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def ensure_schema(self) -> None:
        """Create tables if they do not exist. Safe to call on every startup."""
        try:
            Base.metadata.create_all(bind=self._engine)
        except SQLAlchemyError as e:
            logger.exception("storage_init_failed", error=str(e))
            raise StorageError(f"Could not create schema: {e}") from e
        logger.info("storage_schema_ready", url=self._url.split("?")[0].split("//")[-1])

    def dispose(self) -> None:
        self._engine.dispose()

    # --- Trust profiles ---

    def create_trust_profile(
        self,
        user_id: int,
        account_created_at: int,
        *,
        updated_at: int | None = None,
    ) -> TrustProfileRecord:
        try:
            with self._session_scope() as session:
                row = TrustProfileRow(
                    user_id=user_id,
                    account_created_at=account_created_at,
                    score=0.0,
                    positive_transactions=0,
                    total_transactions=0,
                    verification_count=0,
                    updated_at=updated_at if updated_at is not None else int(time.time()),
                )
                session.add(row)
                session.flush()
                return row.to_record()
        except IntegrityError:
            existing = self.get_trust_profile(user_id)
            if existing is None:
                raise StorageError(f"Could not create trust profile for user {user_id}")
            return existing

    def get_trust_profile(self, user_id: int) -> TrustProfileRecord | None:
        with self._session_scope() as session:
            row = session.get(TrustProfileRow, user_id)
            return row.to_record() if row else None

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
        with self._session_scope() as session:
            row = session.get(TrustProfileRow, user_id)
            if row is None:
                return None
            for key, value in updates.items():
                setattr(row, key, value)
            row.updated_at = updated_at if updated_at is not None else int(time.time())
            session.flush()
            return row.to_record()

    # --- Transactions ---

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
        status = TransactionStatus(status)
        with self._session_scope() as session:
            row = TransactionRow(
                user_id=user_id,
                amount=float(amount),
                recipient_id=recipient_id,
                status=status.value,
                created_at=now,
                updated_at=now,
                completed_at=now if status == TransactionStatus.COMPLETED else None,
            )
            session.add(row)
            session.flush()
            return row.to_record()

    def get_transaction(self, transaction_id: int) -> TransactionRecord | None:
        with self._session_scope() as session:
            row = session.get(TransactionRow, transaction_id)
            return row.to_record() if row else None

    def list_transactions(self, user_id: int, *, limit: int = 100) -> list[TransactionRecord]:
        with self._session_scope() as session:
            rows = (
                session.query(TransactionRow)
                .filter(TransactionRow.user_id == user_id)
                .order_by(TransactionRow.created_at.desc(), TransactionRow.id.desc())
                .limit(limit)
                .all()
            )
            return [r.to_record() for r in rows]

    def update_transaction(
        self,
        transaction_id: int,
        *,
        status: TransactionStatus | None = None,
        risk_score: float | None = None,
        updated_at: int | None = None,
    ) -> TransactionRecord | None:
        now = updated_at if updated_at is not None else int(time.time())
        with self._session_scope() as session:
            row = session.get(TransactionRow, transaction_id)
            if row is None:
                return None
            if status is not None:
                status = TransactionStatus(status)
                row.status = status.value
                if status == TransactionStatus.COMPLETED and row.completed_at is None:
                    row.completed_at = now
            if risk_score is not None:
                row.risk_score = risk_score
            row.updated_at = now
            session.flush()
            return row.to_record()

    # --- Risk assessments ---

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
        with self._session_scope() as session:
            row = RiskAssessmentRow(
                transaction_id=transaction_id,
                allowed=allowed,
                risk_score=risk_score,
                restrictions=json.dumps(restrictions) if restrictions else None,
                reason=reason,
                created_at=created_at if created_at is not None else int(time.time()),
            )
            session.add(row)
            session.flush()
            return row.to_record()

    def get_risk_assessment(self, transaction_id: int) -> RiskAssessmentRecord | None:
        with self._session_scope() as session:
            row = (
                session.query(RiskAssessmentRow)
                .filter(RiskAssessmentRow.transaction_id == transaction_id)
                .order_by(RiskAssessmentRow.id.desc())
                .first()
            )
            return row.to_record() if row else None

    # --- Claims ---

    def create_claim(
        self,
        user_id: int,
        transaction_id: int,
        *,
        description: str,
        amount: float,
        created_at: int | None = None,
    ) -> ClaimRecord:
        try:
            with self._session_scope() as session:
                row = ClaimRow(
                    user_id=user_id,
                    transaction_id=transaction_id,
                    description=description,
                    amount=float(amount),
                    status=ClaimStatus.PENDING.value,
                    created_at=created_at if created_at is not None else int(time.time()),
                )
                session.add(row)
                session.flush()
                return row.to_record()
        except IntegrityError as e:
            logger.info("claim_duplicate_rejected", transaction_id=transaction_id)
            raise DuplicateClaimError(transaction_id) from e

    def get_claim(self, claim_id: int) -> ClaimRecord | None:
        with self._session_scope() as session:
            row = session.get(ClaimRow, claim_id)
            return row.to_record() if row else None

    def get_claim_by_transaction(self, transaction_id: int) -> ClaimRecord | None:
        with self._session_scope() as session:
            row = session.query(ClaimRow).filter(ClaimRow.transaction_id == transaction_id).first()
            return row.to_record() if row else None

    def list_claims(self, user_id: int) -> list[ClaimRecord]:
        with self._session_scope() as session:
            rows = (
                session.query(ClaimRow)
                .filter(ClaimRow.user_id == user_id)
                .order_by(ClaimRow.created_at.desc(), ClaimRow.id.desc())
                .all()
            )
            return [r.to_record() for r in rows]

    def update_claim(
        self,
        claim_id: int,
        *,
        status: ClaimStatus,
        settlement_amount: float | None = None,
        resolved_at: int | None = None,
    ) -> ClaimRecord | None:
        with self._session_scope() as session:
            row = session.get(ClaimRow, claim_id)
            if row is None:
                return None
            row.status = ClaimStatus(status).value
            if settlement_amount is not None:
                row.settlement_amount = settlement_amount
            if resolved_at is not None:
                row.resolved_at = resolved_at
            session.flush()
            return row.to_record()


def init_db(url: str) -> SQLAlchemyBackend:
    """Create a backend for url and make sure its tables exist."""
    backend = SQLAlchemyBackend(url)
    backend.ensure_schema()
    return backend
