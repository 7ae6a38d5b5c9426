"""Quota endpoints."""

from uuid import UUID

from fastapi import APIRouter

from studybuddy.deps import DbSession, UserId
from studybuddy.schemas.quota import (
    AdmissionDecision,
    PausedContentCount,
    QuotaSummary,
    ResumeResult,
)
from studybuddy.services.pause import pause_service
from studybuddy.services.quota import quota_service

router = APIRouter()


@router.get("/usage", response_model=QuotaSummary)
async def get_quota_usage(
    user_id: UserId,
    db: DbSession,
) -> QuotaSummary:
    """Get quota usage, ledger statistics and paused content for the user."""
    return await quota_service.get_quota_usage(db, user_id)


@router.get("/check", response_model=AdmissionDecision)
async def check_quota(
    user_id: UserId,
    db: DbSession,
    provider: str = "gemini",
) -> AdmissionDecision:
    """Check if the user can make another request to a provider."""
    return await quota_service.can_make_request(db, user_id, provider)


@router.get("/paused-content", response_model=PausedContentCount)
async def get_paused_content(
    user_id: UserId,
    db: DbSession,
) -> PausedContentCount:
    """Get count of content paused by quota exhaustion."""
    count = await pause_service.get_paused_content_count(db, user_id)
    return PausedContentCount(paused_count=count)


@router.post("/paused-content/{content_id}/resume", response_model=ResumeResult)
async def resume_paused_content(
    content_id: UUID,
    user_id: UserId,
    db: DbSession,
) -> ResumeResult:
    """Clear a pause marker so the content can be reprocessed."""
    resumed = await pause_service.clear_paused(db, user_id, content_id)
    return ResumeResult(content_id=content_id, resumed=resumed)
