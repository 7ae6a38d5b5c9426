"""Tracking of content paused by quota exhaustion."""

import logging
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from studybuddy.core.errors import NotFoundError
from studybuddy.database import upsert_insert
from studybuddy.models.content import Content, ContentStatus
from studybuddy.models.paused_content import PausedContent

logger = logging.getLogger(__name__)


class PauseService:
    """Service for paused-content markers.

    Markers are created by callers that received a quota denial; the quota
    service itself never pauses anything.
    """

    async def get_paused_content_count(self, db: AsyncSession, user_id: UUID) -> int:
        """Get number of paused content items for a user."""
        result = await db.execute(
            select(func.count(PausedContent.id)).where(PausedContent.user_id == user_id)
        )
        return result.scalar_one() or 0

    async def mark_paused(
        self,
        db: AsyncSession,
        user_id: UUID,
        content_id: UUID,
        reason: str,
        now: datetime | None = None,
    ) -> None:
        """Pause a content item. Pausing an already paused item is a no-op."""
        now = now or datetime.now(timezone.utc)

        result = await db.execute(
            update(Content)
            .where(Content.id == content_id)
            .where(Content.user_id == user_id)
            .values(status=ContentStatus.PAUSED.value)
            .returning(Content.id)
            .execution_options(synchronize_session=False)
        )
        if result.scalar_one_or_none() is None:
            raise NotFoundError(f"Content {content_id} not found")

        stmt = upsert_insert(db, PausedContent).values(
            user_id=user_id,
            content_id=content_id,
            reason=reason[:500],
            paused_at=now,
        )
        await db.execute(
            stmt.on_conflict_do_nothing(index_elements=["user_id", "content_id"])
        )
        await db.commit()

        logger.info("Paused content %s for user %s: %s", content_id, user_id, reason)

    async def clear_paused(self, db: AsyncSession, user_id: UUID, content_id: UUID) -> bool:
        """Remove the pause marker so the content can be processed again.

        Content still marked paused goes back to pending in the same
        transaction.

        Returns:
            True if a marker was removed
        """
        result = await db.execute(
            delete(PausedContent)
            .where(PausedContent.user_id == user_id)
            .where(PausedContent.content_id == content_id)
            .returning(PausedContent.id)
            .execution_options(synchronize_session=False)
        )
        removed = result.scalar_one_or_none() is not None

        await db.execute(
            update(Content)
            .where(Content.id == content_id)
            .where(Content.user_id == user_id)
            .where(Content.status == ContentStatus.PAUSED.value)
            .values(status=ContentStatus.PENDING.value)
            .execution_options(synchronize_session=False)
        )
        await db.commit()

        if removed:
            logger.info("Resumed content %s for user %s", content_id, user_id)
        return removed


# Singleton instance
pause_service = PauseService()
