"""Pydantic schemas package."""

from studybuddy.schemas.quota import (
    AdmissionDecision,
    QuotaSummary,
    UsageOutcome,
)
from studybuddy.schemas.consistency import (
    CleanupResult,
    ConsistencyHealth,
    ConsistencyReport,
    Recommendation,
)

__all__ = [
    "AdmissionDecision",
    "QuotaSummary",
    "UsageOutcome",
    "CleanupResult",
    "ConsistencyHealth",
    "ConsistencyReport",
    "Recommendation",
]
