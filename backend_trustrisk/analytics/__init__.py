"""
Trust and risk analytics.

Reputation tracking, transaction limits, risk scoring, fraud heuristics, and
coverage underwriting, wired together by TrustRiskPipeline.
Modules: trust_profile, limits, risk_engine, fraud_engine, coverage, history, pipeline.
"""

from backend_trustrisk.analytics.coverage import CoverageUnderwriter
from backend_trustrisk.analytics.fraud_engine import FraudHeuristicEngine
from backend_trustrisk.analytics.history import HistorySupplier
from backend_trustrisk.analytics.limits import ThresholdTierPolicy, TransactionLimitPolicy
from backend_trustrisk.analytics.pipeline import TrustRiskPipeline, build_pipeline, merge_verdicts
from backend_trustrisk.analytics.risk_engine import RiskEngine
from backend_trustrisk.analytics.trust_profile import TrustProfileTracker

__all__ = [
    "CoverageUnderwriter",
    "FraudHeuristicEngine",
    "HistorySupplier",
    "ThresholdTierPolicy",
    "TransactionLimitPolicy",
    "TrustRiskPipeline",
    "build_pipeline",
    "merge_verdicts",
    "RiskEngine",
    "TrustProfileTracker",
]
