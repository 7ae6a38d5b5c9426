"""Arq task definitions for consistency scans."""

import logging
from uuid import UUID

from arq import cron
from arq.connections import RedisSettings
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from studybuddy.config import get_settings
from studybuddy.core.vector_store import vector_store
from studybuddy.database import async_session_maker, engine
from studybuddy.models.content import Content
from studybuddy.schemas.consistency import Recommendation
from studybuddy.services.consistency import consistency_service

settings = get_settings()
logger = logging.getLogger(__name__)


async def get_db() -> AsyncSession:
    """Get database session for worker."""
    return async_session_maker()


async def scan_user_consistency(ctx: dict, user_id: str, limit: int | None = None) -> dict:
    """
    Scan one user's newest contents for vector inconsistencies.

    Args:
        ctx: Arq context
        user_id: UUID of the user to scan
        limit: Max contents to audit (defaults to settings)

    Returns:
        Dict with scan counts
    """
    db = await get_db()

    try:
        reports = await consistency_service.scan_for_inconsistencies(
            db, UUID(user_id), limit=limit
        )
        critical = sum(1 for r in reports if r.recommendation == Recommendation.CRITICAL)
        logger.info(
            "Consistency scan for user %s: %d inconsistencies (%d critical)",
            user_id,
            len(reports),
            critical,
        )
        return {
            "user_id": user_id,
            "inconsistencies": len(reports),
            "critical": critical,
            "warnings": len(reports) - critical,
        }
    finally:
        await db.close()


async def scheduled_consistency_scan(ctx: dict) -> dict:
    """Cron job: enqueue a consistency scan for every user with content."""
    db = await get_db()

    try:
        redis = ctx.get("redis")
        if not redis:
            logger.error("No Redis in ctx for cron job")
            return {"error": "No Redis"}

        result = await db.execute(select(Content.user_id).distinct())
        user_ids = list(result.scalars().all())

        for user_id in user_ids:
            await redis.enqueue_job("scan_user_consistency", str(user_id))

        logger.info("Cron: enqueued consistency scan for %d users", len(user_ids))
        return {"enqueued": len(user_ids)}

    finally:
        await db.close()


# ── Lifecycle ───────────────────────────────────────────────────────


async def startup(ctx: dict) -> None:
    """Worker startup hook."""
    logger.info("Worker starting up...")
    await vector_store.ensure_collection()


async def shutdown(ctx: dict) -> None:
    """Worker shutdown hook."""
    logger.info("Worker shutting down...")
    await engine.dispose()


class WorkerSettings:
    """Arq worker settings."""

    functions = [scan_user_consistency]
    cron_jobs = [
        cron(scheduled_consistency_scan, hour={3}, minute={0}),
    ]
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = RedisSettings.from_dsn(settings.redis_url)
    max_jobs = 10
    job_timeout = 600  # 10 minutes max per job
    keep_result = 3600  # Keep results for 1 hour
