"""Consistency admin endpoints.

Authorization for these operator actions is enforced upstream.
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Query

from studybuddy.config import get_settings
from studybuddy.deps import DbSession, UserId
from studybuddy.schemas.consistency import (
    CleanupRequest,
    CleanupResult,
    ConsistencyHealth,
    ConsistencyReport,
    ScanResponse,
)
from studybuddy.services.consistency import consistency_service

settings = get_settings()
router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/check/{content_id}", response_model=ConsistencyReport)
async def check_content(
    content_id: UUID,
    user_id: UserId,
    db: DbSession,
) -> ConsistencyReport:
    """Check consistency for a specific content."""
    return await consistency_service.check_content_consistency(db, content_id)


@router.get("/scan", response_model=ScanResponse)
async def scan(
    user_id: UserId,
    db: DbSession,
    limit: int | None = Query(None, ge=0, le=settings.consistency_scan_max_limit),
) -> ScanResponse:
    """Scan the user's newest contents for inconsistencies.

    Without ``limit`` the configured default batch size is used.
    """
    reports = await consistency_service.scan_for_inconsistencies(db, user_id, limit=limit)
    return ScanResponse(
        inconsistencies_found=len(reports),
        reports=reports,
        message=(
            "No inconsistencies found"
            if not reports
            else f"Found {len(reports)} inconsistencies"
        ),
    )


@router.get("/health", response_model=ConsistencyHealth)
async def health(
    user_id: UserId,
    db: DbSession,
) -> ConsistencyHealth:
    """Consistency health over a sample of recent contents."""
    return await consistency_service.get_consistency_health(db, user_id)


@router.post("/cleanup", response_model=CleanupResult)
async def cleanup(
    body: CleanupRequest,
    user_id: UserId,
    db: DbSession,
) -> CleanupResult:
    """Delete orphaned vectors for the given content IDs (1-50)."""
    logger.info("User %s requested cleanup of %d content IDs", user_id, len(body.content_ids))
    return await consistency_service.cleanup_orphaned_vectors(db, body.content_ids)
