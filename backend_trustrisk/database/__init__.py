"""
Storage layer: trust profiles, transactions, risk assessments, claims.

MemoryBackend by default; SQLAlchemyBackend for SQLite/PostgreSQL via get_database(url).
"""

from backend_trustrisk.database.database import (
    DatabaseBackend,
    MemoryBackend,
    get_database,
)
from backend_trustrisk.database.models import (
    ClaimRecord,
    ClaimStatus,
    RiskAssessmentRecord,
    TransactionRecord,
    TransactionStatus,
    TrustProfileRecord,
)

__all__ = [
    "DatabaseBackend",
    "MemoryBackend",
    "get_database",
    "ClaimRecord",
    "ClaimStatus",
    "RiskAssessmentRecord",
    "TransactionRecord",
    "TransactionStatus",
    "TrustProfileRecord",
]
