"""Consistency check schemas."""

from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field


class Recommendation(str, Enum):
    """Severity of a content/vector divergence."""

    OK = "OK"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"


class ConsistencyReport(BaseModel):
    """Expected vs actual vector state for one content item. Never persisted."""

    content_id: UUID
    expected_vector_count: int
    actual_vector_count: int
    missing: int
    orphaned: int
    recommendation: Recommendation
    error: str | None = None


class ScanResponse(BaseModel):
    inconsistencies_found: int
    reports: list[ConsistencyReport]
    message: str


class ConsistencyHealth(BaseModel):
    """Health score over a sample of a user's content."""

    healthy: bool
    sample_size: int
    inconsistencies_found: int
    consistency_rate: str  # e.g. "94.00%"
    critical_issues: int
    warnings: int
    details: list[ConsistencyReport] = Field(default_factory=list)


class CleanupRequest(BaseModel):
    # Parsed by the service so malformed ids surface as ValidationError
    content_ids: list[str]


class CleanupResult(BaseModel):
    """Outcome of an orphan cleanup batch."""

    success: bool
    cleaned_count: int
    errors: list[str] = Field(default_factory=list)
