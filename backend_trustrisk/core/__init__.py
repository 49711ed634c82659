"""
Core utilities: domain exceptions and per-user serialization.

Shared by the tracker, engines, underwriter, and storage backends.
"""

from backend_trustrisk.core.exceptions import (
    ClaimNotFound,
    DuplicateClaimError,
    NotFoundError,
    StorageError,
    TransactionNotFound,
    TrustProfileNotFound,
    TrustRiskError,
)
from backend_trustrisk.core.locks import KeyedLock

__all__ = [
    "ClaimNotFound",
    "DuplicateClaimError",
    "KeyedLock",
    "NotFoundError",
    "StorageError",
    "TransactionNotFound",
    "TrustProfileNotFound",
    "TrustRiskError",
]
