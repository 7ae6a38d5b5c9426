"""Quota schemas."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from studybuddy.models.request_log import RequestStatus, RequestType


class AdmissionDecision(BaseModel):
    """Result of an admission check. A denial is a decision, not an error."""

    allowed: bool
    remaining: int
    reset_at: datetime
    reason: str | None = None


class UsageOutcome(BaseModel):
    """Outcome of one AI call attempt, as reported to the ledger."""

    status: RequestStatus
    endpoint: str
    request_type: RequestType = RequestType.OTHER
    content_id: UUID | None = None
    tokens_used: int | None = None
    duration_ms: int | None = None
    error_code: str | None = None
    error_message: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class WindowUsage(BaseModel):
    """Current window usage for one provider."""

    used: int
    limit: int
    remaining: int
    reset_at: datetime


class WeeklyQaUsage(BaseModel):
    """Weekly Q&A counter."""

    used: int
    limit: int
    remaining: int
    reset_at: datetime


class RequestTypeCount(BaseModel):
    type: str
    count: int


class ProviderStats(BaseModel):
    """Ledger-derived statistics for one provider."""

    provider: str
    hourly_count: int
    last_24_hours: int
    percent_used: float
    requests_by_type: list[RequestTypeCount]
    recent_failures: int
    quota_exceeded_count: int
    avg_response_time: float | None = None


class PeakHour(BaseModel):
    hour: int
    count: int


class OverallStats(BaseModel):
    """Ledger-derived statistics across providers (last 24 hours)."""

    total_requests: int
    success_rate: float
    avg_response_time: float
    peak_hour: PeakHour


class RecentError(BaseModel):
    timestamp: datetime
    request_type: str
    error_message: str


class QuotaSummary(BaseModel):
    """Quota usage for display."""

    tier: str
    windows: dict[str, WindowUsage]
    weekly_qa_usage: WeeklyQaUsage
    providers: dict[str, ProviderStats]
    overall: OverallStats
    recent_errors: list[RecentError]
    recommendations: list[str]
    paused_content: int


class PausedContentCount(BaseModel):
    paused_count: int


class ResumeResult(BaseModel):
    content_id: UUID
    resumed: bool
