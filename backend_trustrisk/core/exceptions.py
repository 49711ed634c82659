"""
Application-level exceptions.

Three families: not-found (unknown user / transaction / claim), storage
failures (propagated, never retried here), and storage-level uniqueness
violations. Policy rejections (e.g. a stale claim) are results, not exceptions.
"""

from __future__ import annotations


class TrustRiskError(Exception):
    """Base error with a stable code for API and log consumers."""

    code = "trustrisk_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {"code": self.code, "message": self.message}


class NotFoundError(TrustRiskError):
    code = "not_found"


class TrustProfileNotFound(NotFoundError):
    code = "trust_profile_not_found"

    def __init__(self, user_id: int) -> None:
        super().__init__(f"No trust profile found for user {user_id}")
        self.user_id = user_id


class TransactionNotFound(NotFoundError):
    code = "transaction_not_found"

    def __init__(self, transaction_id: int) -> None:
        super().__init__(f"Transaction {transaction_id} not found")
        self.transaction_id = transaction_id


class ClaimNotFound(NotFoundError):
    code = "claim_not_found"

    def __init__(self, claim_id: int) -> None:
        super().__init__(f"Claim {claim_id} not found")
        self.claim_id = claim_id


class StorageError(TrustRiskError):
    """Storage collaborator failed; the caller decides whether to retry."""

    code = "storage_error"


class DuplicateClaimError(TrustRiskError):
    """A claim already exists for the transaction (unique per transaction)."""

    code = "duplicate_claim"

    def __init__(self, transaction_id: int) -> None:
        super().__init__(f"A claim already exists for transaction {transaction_id}")
        self.transaction_id = transaction_id
