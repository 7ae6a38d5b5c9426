"""Consistency checks between content records and the vector store."""

import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from studybuddy.config import get_settings
from studybuddy.core.errors import NotFoundError, ValidationError
from studybuddy.core.vector_store import VectorStore, vector_store
from studybuddy.database import store_errors
from studybuddy.models.content import Content
from studybuddy.schemas.consistency import (
    CleanupResult,
    ConsistencyHealth,
    ConsistencyReport,
    Recommendation,
)

logger = logging.getLogger(__name__)


def classify(content_id: UUID, expected: int, actual: int) -> ConsistencyReport:
    """Build a report from expected and actual vector counts.

    Missing vectors are critical (Q&A over the content is incomplete);
    orphaned vectors only waste storage.
    """
    missing = max(expected - actual, 0)
    orphaned = max(actual - expected, 0)

    if missing > 0:
        recommendation = Recommendation.CRITICAL
    elif orphaned > 0:
        recommendation = Recommendation.WARNING
    else:
        recommendation = Recommendation.OK

    return ConsistencyReport(
        content_id=content_id,
        expected_vector_count=expected,
        actual_vector_count=actual,
        missing=missing,
        orphaned=orphaned,
        recommendation=recommendation,
    )


class ConsistencyService:
    """Audits, scans and orphan cleanup for derived vector data.

    The content store and the vector store are only eventually consistent.
    No lock is held between the two lookups; a concurrent write may produce a
    stale report that the next scan corrects.
    """

    def __init__(self, store: VectorStore | None = None) -> None:
        self.settings = get_settings()
        self.vector_store = store or vector_store

    async def check_content_consistency(
        self,
        db: AsyncSession,
        content_id: UUID,
        timeout: float | None = None,
    ) -> ConsistencyReport:
        """Compare a content item's expected vector count with the store.

        Raises:
            NotFoundError: content id does not resolve to a record
            UpstreamFailure: either store unreachable or timed out
        """
        async with store_errors("content lookup"):
            result = await db.execute(select(Content).where(Content.id == content_id))
        content = result.scalar_one_or_none()
        if content is None:
            raise NotFoundError(f"Content {content_id} not found")

        actual = await self.vector_store.count_by_content(content_id, timeout=timeout)
        return classify(content_id, content.expected_vector_count, actual)

    async def _scan(
        self,
        db: AsyncSession,
        user_id: UUID,
        limit: int,
        timeout: float | None,
    ) -> tuple[int, list[ConsistencyReport]]:
        """Audit up to ``limit`` of a user's newest contents.

        Returns:
            Tuple of (contents scanned, non-OK reports)
        """
        if limit <= 0:
            return 0, []

        async with store_errors("content scan"):
            result = await db.execute(
                select(Content.id)
                .where(Content.user_id == user_id)
                .order_by(Content.created_at.desc(), Content.id.desc())
                .limit(limit)
            )
        content_ids = list(result.scalars().all())

        logger.info("Scanning %d contents for consistency...", len(content_ids))

        reports: list[ConsistencyReport] = []
        for content_id in content_ids:
            try:
                # Savepoint per item: a failed statement must not abort the batch
                async with db.begin_nested():
                    report = await self.check_content_consistency(db, content_id, timeout=timeout)
            except Exception as e:
                logger.exception("Consistency check failed for content %s", content_id)
                report = ConsistencyReport(
                    content_id=content_id,
                    expected_vector_count=0,
                    actual_vector_count=0,
                    missing=0,
                    orphaned=0,
                    recommendation=Recommendation.WARNING,
                    error=f"Error during check: {e}",
                )

            if report.recommendation != Recommendation.OK:
                logger.warning(
                    "Inconsistency found for content %s: %s (missing=%d, orphaned=%d)",
                    content_id,
                    report.recommendation.value,
                    report.missing,
                    report.orphaned,
                )
                reports.append(report)

        logger.info(
            "Consistency scan complete. Found %d inconsistencies out of %d contents.",
            len(reports),
            len(content_ids),
        )
        return len(content_ids), reports

    async def scan_for_inconsistencies(
        self,
        db: AsyncSession,
        user_id: UUID,
        limit: int | None = None,
        timeout: float | None = None,
    ) -> list[ConsistencyReport]:
        """Audit a user's newest contents and return the non-OK reports.

        A failing item becomes a report carrying its error; the rest of the
        batch still runs.
        """
        if limit is None:
            limit = self.settings.consistency_scan_default_limit
        _, reports = await self._scan(db, user_id, limit, timeout)
        return reports

    async def get_consistency_health(
        self,
        db: AsyncSession,
        user_id: UUID,
        sample_size: int | None = None,
        timeout: float | None = None,
    ) -> ConsistencyHealth:
        """Health score over a sample of a user's newest contents."""
        if sample_size is None:
            sample_size = self.settings.consistency_health_sample_size
        scanned, reports = await self._scan(db, user_id, sample_size, timeout)

        inconsistent = len(reports)
        rate = (scanned - inconsistent) / scanned * 100 if scanned > 0 else 100.0

        return ConsistencyHealth(
            healthy=inconsistent == 0,
            sample_size=scanned,
            inconsistencies_found=inconsistent,
            consistency_rate=f"{rate:.2f}%",
            critical_issues=sum(1 for r in reports if r.recommendation == Recommendation.CRITICAL),
            warnings=sum(1 for r in reports if r.recommendation == Recommendation.WARNING),
            details=reports[:10],
        )

    def _validate_content_ids(self, content_ids: list[UUID | str]) -> list[UUID]:
        max_ids = self.settings.cleanup_max_content_ids
        if not content_ids:
            raise ValidationError("content_ids must not be empty")
        if len(content_ids) > max_ids:
            raise ValidationError(f"Cannot cleanup more than {max_ids} content IDs at once")

        parsed: list[UUID] = []
        for content_id in content_ids:
            if isinstance(content_id, UUID):
                parsed.append(content_id)
                continue
            try:
                parsed.append(UUID(str(content_id)))
            except ValueError as e:
                raise ValidationError(f"Invalid content ID: {content_id}") from e
        return list(dict.fromkeys(parsed))

    async def cleanup_orphaned_vectors(
        self,
        db: AsyncSession,
        content_ids: list[UUID | str],
        timeout: float | None = None,
    ) -> CleanupResult:
        """Delete vectors whose content record no longer exists.

        Content that still exists is skipped. Ids with no vectors left are a
        no-op, so repeating a cleanup cleans nothing. Per-id failures are
        collected and do not stop the batch.
        """
        ids = self._validate_content_ids(content_ids)

        errors: list[str] = []
        cleaned_count = 0

        for content_id in ids:
            try:
                async with db.begin_nested():
                    if await self._cleanup_one(db, content_id, timeout):
                        cleaned_count += 1
            except Exception as e:
                error_msg = f"Failed to cleanup vectors for {content_id}: {e}"
                errors.append(error_msg)
                logger.exception(error_msg)

        return CleanupResult(
            success=not errors,
            cleaned_count=cleaned_count,
            errors=errors,
        )

    async def _cleanup_one(
        self,
        db: AsyncSession,
        content_id: UUID,
        timeout: float | None,
    ) -> bool:
        """Delete one content id's orphaned vectors. Returns True if any were removed."""
        async with store_errors("content lookup"):
            result = await db.execute(select(Content.id).where(Content.id == content_id))
        if result.scalar_one_or_none() is not None:
            logger.warning("Content %s still exists - skipping cleanup", content_id)
            return False

        if await self.vector_store.count_by_content(content_id, timeout=timeout) == 0:
            return False

        await self.vector_store.delete_by_content(content_id, timeout=timeout)
        logger.info("Cleaned up orphaned vectors for content %s", content_id)
        return True


# Singleton instance
consistency_service = ConsistencyService()
