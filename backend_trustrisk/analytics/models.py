"""
Decision models for the trust and risk pipeline.

Profiles, limits, and the three verdict types (risk, fraud, coverage) plus
claim results. Verdicts are tagged variants: __post_init__ checks that exactly
the fields meaningful for the tag are set, so a fraud verdict cannot carry
limits unless its action is apply_limits, a declined coverage decision always
has a reason, and so on.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from backend_trustrisk.database.models import TransactionRecord


class AccessTier(str, Enum):
    BASIC = "basic"
    STANDARD = "standard"
    FULL = "full"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class FraudAction(str, Enum):
    ALLOW = "allow"
    APPLY_LIMITS = "apply_limits"
    ADDITIONAL_VERIFICATION = "additional_verification"
    BLOCK = "block"


@dataclass(frozen=True)
class TrustProfile:
    """
    Read view of a user's reputation.

    account_age_days is derived from the account creation time at read time;
    score is always in [0, 100].
    """

    user_id: int
    score: float
    positive_transactions: int
    total_transactions: int
    verification_count: int
    account_age_days: int
    tier: AccessTier = AccessTier.BASIC

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "score": self.score,
            "positive_transactions": self.positive_transactions,
            "total_transactions": self.total_transactions,
            "verification_count": self.verification_count,
            "account_age_days": self.account_age_days,
            "tier": self.tier.value,
        }


@dataclass(frozen=True)
class TransactionLimits:
    single: float
    daily: float
    monthly: float

    def to_dict(self) -> dict[str, float]:
        return {"single": self.single, "daily": self.daily, "monthly": self.monthly}


# -----------------------------------------------------------------------------
# Risk
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class RiskFactor:
    """One weighted input to the risk score; score is normalized to 0-100."""

    name: str
    score: float
    weight: float
    level: RiskLevel

    @property
    def contribution(self) -> float:
        return self.score * self.weight

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "score": self.score,
            "weight": self.weight,
            "level": self.level.value,
        }


@dataclass(frozen=True)
class Restrictions:
    max_amount: float | None = None
    requires_additional_verification: bool = False
    delayed_settlement: bool = False
    limited_recipients: bool = False

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        if self.max_amount is not None:
            out["max_amount"] = self.max_amount
        if self.requires_additional_verification:
            out["requires_additional_verification"] = True
        if self.delayed_settlement:
            out["delayed_settlement"] = True
        if self.limited_recipients:
            out["limited_recipients"] = True
        return out


@dataclass(frozen=True)
class RiskVerdict:
    """
    Restrict-not-deny decision for one transaction.

    allowed is always True in this engine; enforcement happens through
    restrictions. HIGH verdicts always carry restrictions.
    """

    risk_score: float
    level: RiskLevel
    reason: str
    restrictions: Restrictions | None = None
    factors: tuple[RiskFactor, ...] = ()
    allowed: bool = True

    def __post_init__(self) -> None:
        if not 5.0 <= self.risk_score <= 95.0:
            raise ValueError(f"risk_score out of range: {self.risk_score}")
        if self.level == RiskLevel.HIGH and self.restrictions is None:
            raise ValueError("high risk verdicts must carry restrictions")

    def to_dict(self) -> dict[str, Any]:
        return {
            "allowed": self.allowed,
            "risk_score": self.risk_score,
            "level": self.level.value,
            "restrictions": self.restrictions.to_dict() if self.restrictions else {},
            "reason": self.reason,
            "factors": [f.to_dict() for f in self.factors],
        }


# -----------------------------------------------------------------------------
# Fraud
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class UserHistory:
    """
    Caller-supplied history for fraud analysis.

    recent_activity is newest first and excludes the transaction under analysis.
    """

    transaction_count: int
    successful_transaction_ratio: float
    account_age_days: int
    has_successful_verifications: bool
    recent_activity: tuple[TransactionRecord, ...] = ()
    improvement_trend: bool = False
    verification_count: int = 0


@dataclass(frozen=True)
class FraudLimits:
    max_amount: float
    delay_settlement: bool
    require_additional_verification: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "max_amount": self.max_amount,
            "delay_settlement": self.delay_settlement,
            "require_additional_verification": self.require_additional_verification,
        }


@dataclass(frozen=True)
class FraudVerdict:
    probability: float
    action: FraudAction
    base_probability: float
    limits: FraudLimits | None = None
    reason: str | None = None
    signals: tuple[str, ...] = ()
    """Names of the heuristics that raised the base probability."""

    def __post_init__(self) -> None:
        if not 0.0 <= self.probability <= 0.95:
            raise ValueError(f"probability out of range: {self.probability}")
        if (self.action == FraudAction.APPLY_LIMITS) != (self.limits is not None):
            raise ValueError("limits are set exactly when action is apply_limits")
        if self.action != FraudAction.ALLOW and not self.reason:
            raise ValueError(f"{self.action.value} verdicts must carry a reason")

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "probability": self.probability,
            "action": self.action.value,
            "base_probability": self.base_probability,
            "signals": list(self.signals),
        }
        if self.limits is not None:
            out["limits"] = self.limits.to_dict()
        if self.reason:
            out["reason"] = self.reason
        return out


# -----------------------------------------------------------------------------
# Coverage and claims
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class CoverageDecision:
    covered: bool
    coverage_limit: float | None = None
    premium: float | None = None
    reason: str | None = None

    def __post_init__(self) -> None:
        if self.covered and (self.coverage_limit is None or self.premium is None):
            raise ValueError("covered decisions need coverage_limit and premium")
        if not self.covered and not self.reason:
            raise ValueError("declined coverage must carry a reason")

    @classmethod
    def declined(cls, reason: str) -> CoverageDecision:
        return cls(covered=False, reason=reason)

    def to_dict(self) -> dict[str, Any]:
        if self.covered:
            return {"covered": True, "coverage_limit": self.coverage_limit, "premium": self.premium}
        return {"covered": False, "reason": self.reason}


@dataclass(frozen=True)
class ClaimRequest:
    """User-filed claim before validation."""

    user_id: int
    transaction_id: int
    amount: float
    description: str = ""


@dataclass(frozen=True)
class Settlement:
    id: str
    amount: float
    date: int
    """Unix timestamp (seconds) of resolution."""
    notes: str

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "amount": self.amount, "date": self.date, "notes": self.notes}


@dataclass(frozen=True)
class ClaimResult:
    approved: bool
    settlement_amount: float | None = None
    settlement: Settlement | None = None
    reason: str | None = None
    claim_id: int | None = None

    def __post_init__(self) -> None:
        if self.approved and (self.settlement is None or self.settlement_amount is None):
            raise ValueError("approved claims need a settlement")
        if not self.approved and not self.reason:
            raise ValueError("rejected claims must carry a reason")

    @classmethod
    def rejected(cls, reason: str, claim_id: int | None = None) -> ClaimResult:
        return cls(approved=False, reason=reason, claim_id=claim_id)

    def to_dict(self) -> dict[str, Any]:
        if self.approved:
            return {
                "approved": True,
                "claim_id": self.claim_id,
                "settlement_amount": self.settlement_amount,
                "settlement": self.settlement.to_dict() if self.settlement else None,
            }
        return {"approved": False, "reason": self.reason}


@dataclass
class TransactionDecision:
    """Outcome of submit_transaction: both verdicts, final status, optional coverage."""

    transaction: TransactionRecord
    risk: RiskVerdict
    fraud: FraudVerdict
    coverage: CoverageDecision | None = None
    notes: list[str] = field(default_factory=list)

    @property
    def status(self):
        return self.transaction.status

    def to_dict(self) -> dict[str, Any]:
        return {
            "transaction": self.transaction.to_dict(),
            "risk": self.risk.to_dict(),
            "fraud": self.fraud.to_dict(),
            "coverage": self.coverage.to_dict() if self.coverage else None,
            "notes": list(self.notes),
        }
