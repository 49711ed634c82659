"""
Backend TrustRisk: trust and risk decision pipeline for second-chance finance.

Scores user reputation, evaluates transaction risk and fraud likelihood, and
underwrites coverage for completed transactions. Restriction is preferred over
denial: risky transactions are capped, delayed, or sent to extra verification.
"""

__version__ = "0.1.0"
