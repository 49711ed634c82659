"""
Domain models for stored entities.

Trust profiles, transactions, risk assessments, and claims.
Used by the storage backends; no ORM coupling so backends stay swappable.
All timestamps are Unix seconds.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class TransactionStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    FLAGGED = "flagged"


class ClaimStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass
class TrustProfileRecord:
    """Stored reputation counters for one user."""

    user_id: int
    account_created_at: int
    """Unix timestamp (seconds) the account was opened; account age is derived from it."""
    score: float = 0.0
    positive_transactions: int = 0
    total_transactions: int = 0
    verification_count: int = 0
    updated_at: int | None = None


@dataclass
class TransactionRecord:
    """Single transaction. Amount and recipient never change after creation."""

    id: int
    user_id: int
    amount: float
    status: TransactionStatus
    created_at: int
    recipient_id: str | None = None
    risk_score: float | None = None
    updated_at: int | None = None
    completed_at: int | None = None
    """Set when the status first becomes completed; claim windows are measured from it."""

    @property
    def is_completed(self) -> bool:
        return self.status == TransactionStatus.COMPLETED

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "amount": self.amount,
            "recipient_id": self.recipient_id,
            "status": self.status.value,
            "risk_score": self.risk_score,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "completed_at": self.completed_at,
        }


@dataclass
class RiskAssessmentRecord:
    """Recorded risk verdict for a transaction (one per transaction)."""

    id: int
    transaction_id: int
    allowed: bool
    risk_score: float
    restrictions: dict[str, Any] = field(default_factory=dict)
    reason: str = ""
    created_at: int | None = None


@dataclass
class ClaimRecord:
    """Coverage claim against exactly one transaction."""

    id: int
    user_id: int
    transaction_id: int
    description: str
    amount: float
    status: ClaimStatus
    created_at: int
    settlement_amount: float | None = None
    resolved_at: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "transaction_id": self.transaction_id,
            "description": self.description,
            "amount": self.amount,
            "status": self.status.value,
            "settlement_amount": self.settlement_amount,
            "created_at": self.created_at,
            "resolved_at": self.resolved_at,
        }
