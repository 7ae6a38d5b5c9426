"""Request ledger: append-only audit trail of AI call attempts."""

import logging
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import extract, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from studybuddy.models.request_log import ApiRequestLog, RequestStatus
from studybuddy.schemas.quota import UsageOutcome

logger = logging.getLogger(__name__)


class RequestLedger:
    """Writes and aggregates ``ApiRequestLog`` rows.

    Rows are only ever inserted. All aggregate queries filter on
    ``user_id`` (and optionally ``provider``/``status``) plus a timestamp
    lower bound so they are served by the composite indexes.
    """

    async def append(
        self,
        db: AsyncSession,
        user_id: UUID,
        provider: str,
        outcome: UsageOutcome,
        timestamp: datetime | None = None,
    ) -> ApiRequestLog:
        """Insert one immutable log entry. The caller commits."""
        entry = ApiRequestLog(
            user_id=user_id,
            content_id=outcome.content_id,
            provider=provider,
            endpoint=outcome.endpoint,
            request_type=outcome.request_type.value,
            status=outcome.status.value,
            tokens_used=outcome.tokens_used,
            duration_ms=outcome.duration_ms,
            error_code=outcome.error_code,
            error_message=outcome.error_message[:2000] if outcome.error_message else None,
            timestamp=timestamp or datetime.now(timezone.utc),
            request_metadata=outcome.metadata,
        )
        db.add(entry)
        await db.flush()

        if outcome.status != RequestStatus.SUCCESS:
            logger.info(
                "Logged %s %s call for user %s (%s)",
                outcome.status.value,
                provider,
                user_id,
                outcome.error_code or "no error code",
            )
        return entry

    async def count_since(
        self,
        db: AsyncSession,
        user_id: UUID,
        since: datetime,
        provider: str | None = None,
        status: RequestStatus | None = None,
    ) -> int:
        """Count entries for a user since a point in time."""
        query = (
            select(func.count(ApiRequestLog.id))
            .where(ApiRequestLog.user_id == user_id)
            .where(ApiRequestLog.timestamp >= since)
        )
        if provider is not None:
            query = query.where(ApiRequestLog.provider == provider)
        if status is not None:
            query = query.where(ApiRequestLog.status == status.value)

        result = await db.execute(query)
        return result.scalar_one() or 0

    async def requests_by_type(
        self,
        db: AsyncSession,
        user_id: UUID,
        provider: str,
        since: datetime,
    ) -> list[dict]:
        """Entry counts grouped by request type."""
        result = await db.execute(
            select(ApiRequestLog.request_type, func.count(ApiRequestLog.id))
            .where(ApiRequestLog.user_id == user_id)
            .where(ApiRequestLog.provider == provider)
            .where(ApiRequestLog.timestamp >= since)
            .group_by(ApiRequestLog.request_type)
            .order_by(func.count(ApiRequestLog.id).desc(), ApiRequestLog.request_type)
        )
        return [{"type": request_type, "count": count} for request_type, count in result.all()]

    async def average_duration(
        self,
        db: AsyncSession,
        user_id: UUID,
        since: datetime,
        provider: str | None = None,
    ) -> float | None:
        """Mean duration in ms over entries that recorded one."""
        query = (
            select(func.avg(ApiRequestLog.duration_ms))
            .where(ApiRequestLog.user_id == user_id)
            .where(ApiRequestLog.timestamp >= since)
            .where(ApiRequestLog.duration_ms.is_not(None))
        )
        if provider is not None:
            query = query.where(ApiRequestLog.provider == provider)

        result = await db.execute(query)
        avg = result.scalar_one_or_none()
        return float(avg) if avg is not None else None

    async def recent_errors(
        self,
        db: AsyncSession,
        user_id: UUID,
        limit: int = 5,
    ) -> list[dict]:
        """Newest failed or quota-denied entries."""
        result = await db.execute(
            select(
                ApiRequestLog.timestamp,
                ApiRequestLog.request_type,
                ApiRequestLog.error_message,
            )
            .where(ApiRequestLog.user_id == user_id)
            .where(
                ApiRequestLog.status.in_(
                    [RequestStatus.FAILURE.value, RequestStatus.QUOTA_EXCEEDED.value]
                )
            )
            .order_by(ApiRequestLog.timestamp.desc())
            .limit(limit)
        )
        return [
            {
                "timestamp": timestamp,
                "request_type": request_type,
                "error_message": error_message or "Unknown error",
            }
            for timestamp, request_type, error_message in result.all()
        ]

    async def peak_hour(
        self,
        db: AsyncSession,
        user_id: UUID,
        since: datetime,
    ) -> dict:
        """Hour of day (UTC) with the most entries."""
        hour = extract("hour", ApiRequestLog.timestamp)
        result = await db.execute(
            select(hour.label("hour"), func.count(ApiRequestLog.id).label("count"))
            .where(ApiRequestLog.user_id == user_id)
            .where(ApiRequestLog.timestamp >= since)
            .group_by(hour)
            .order_by(func.count(ApiRequestLog.id).desc(), hour)
            .limit(1)
        )
        row = result.first()
        if row is None:
            return {"hour": 0, "count": 0}
        return {"hour": int(row.hour), "count": row.count}


# Singleton instance
request_ledger = RequestLedger()
