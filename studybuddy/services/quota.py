"""Quota service: per-provider request windows and the weekly Q&A allowance."""

import logging
from datetime import datetime, timedelta, timezone
from uuid import UUID

from sqlalchemy import case, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from studybuddy.config import get_settings
from studybuddy.core.errors import NotFoundError, ValidationError
from studybuddy.core.quota_tiers import QuotaTier, get_quota_tier
from studybuddy.database import upsert_insert
from studybuddy.models.request_log import ApiRequestLog, RequestStatus
from studybuddy.models.usage_window import UsageWindow
from studybuddy.models.user import User
from studybuddy.schemas.quota import (
    AdmissionDecision,
    OverallStats,
    PeakHour,
    ProviderStats,
    QuotaSummary,
    RecentError,
    RequestTypeCount,
    UsageOutcome,
    WeeklyQaUsage,
    WindowUsage,
)
from studybuddy.services.ledger import RequestLedger, request_ledger
from studybuddy.services.pause import PauseService, pause_service

logger = logging.getLogger(__name__)

WEEK = timedelta(days=7)


def roll_window(
    window_start: datetime,
    window_end: datetime,
    length_seconds: int,
    now: datetime,
) -> tuple[datetime, datetime]:
    """Return the window containing ``now``.

    Windows are half-open ``[start, end)``; an expired window is shifted
    forward by whole periods so ``start <= now < end`` holds again.
    """
    if now < window_end:
        return window_start, window_end
    periods = int((now - window_start).total_seconds() // length_seconds)
    start = window_start + timedelta(seconds=periods * length_seconds)
    return start, start + timedelta(seconds=length_seconds)


class QuotaService:
    """Service for checking and tracking AI request quotas.

    Counters live in the database and every check-and-increment is a single
    conditional UPDATE, so concurrent workers in separate processes can
    never both take the last slot of a window.
    """

    def __init__(
        self,
        ledger: RequestLedger | None = None,
        pauses: PauseService | None = None,
    ) -> None:
        self.settings = get_settings()
        self.ledger = ledger or request_ledger
        self.pauses = pauses or pause_service

    # ── Lookups ──────────────────────────────────────────────────────

    def _validate_provider(self, provider: str) -> None:
        if provider not in self.settings.quota_providers:
            raise ValidationError(f"Unknown provider: {provider}")

    async def get_user(self, db: AsyncSession, user_id: UUID) -> User:
        """Get user or raise NotFoundError."""
        result = await db.execute(select(User).where(User.id == user_id))
        user = result.scalar_one_or_none()
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        return user

    async def _read_window(
        self,
        db: AsyncSession,
        user_id: UUID,
        provider: str,
    ) -> tuple[int, datetime, datetime] | None:
        result = await db.execute(
            select(UsageWindow.count, UsageWindow.window_start, UsageWindow.window_end)
            .where(UsageWindow.user_id == user_id)
            .where(UsageWindow.provider == provider)
        )
        row = result.first()
        return tuple(row) if row is not None else None

    async def _effective_window(
        self,
        db: AsyncSession,
        user_id: UUID,
        provider: str,
        tier: QuotaTier,
        now: datetime,
    ) -> tuple[int, datetime, datetime]:
        """Current (count, start, end) without writing anything."""
        row = await self._read_window(db, user_id, provider)
        if row is None:
            return 0, now, now + timedelta(seconds=tier.window_length_seconds)

        count, window_start, window_end = row
        if now >= window_end:
            start, end = roll_window(window_start, window_end, tier.window_length_seconds, now)
            return 0, start, end
        return count, window_start, window_end

    async def _prepare_window(
        self,
        db: AsyncSession,
        user_id: UUID,
        provider: str,
        tier: QuotaTier,
        now: datetime,
    ) -> None:
        """Make sure an active window row exists for (user, provider).

        Creation uses INSERT ... ON CONFLICT DO NOTHING; an expired window is
        reset with a compare-and-swap on ``window_start`` so only one of
        several concurrent resets takes effect.
        """
        length = timedelta(seconds=tier.window_length_seconds)
        stmt = upsert_insert(db, UsageWindow).values(
            user_id=user_id,
            provider=provider,
            count=0,
            window_start=now,
            window_end=now + length,
        )
        await db.execute(
            stmt.on_conflict_do_nothing(index_elements=["user_id", "provider"])
        )

        row = await self._read_window(db, user_id, provider)
        _, window_start, window_end = row
        if now < window_end:
            return

        new_start, new_end = roll_window(
            window_start, window_end, tier.window_length_seconds, now
        )
        await db.execute(
            update(UsageWindow)
            .where(UsageWindow.user_id == user_id)
            .where(UsageWindow.provider == provider)
            .where(UsageWindow.window_start == window_start)
            .values(count=0, window_start=new_start, window_end=new_end)
            .execution_options(synchronize_session=False)
        )
        logger.debug("Reset %s window for user %s", provider, user_id)

    # ── Admission ────────────────────────────────────────────────────

    async def can_make_request(
        self,
        db: AsyncSession,
        user_id: UUID,
        provider: str,
        now: datetime | None = None,
    ) -> AdmissionDecision:
        """Check if user can make another request to a provider.

        Read-only: an expired window is evaluated as if it had been reset.
        """
        self._validate_provider(provider)
        now = now or datetime.now(timezone.utc)
        user = await self.get_user(db, user_id)
        tier = get_quota_tier(user.tier)

        count, _, window_end = await self._effective_window(db, user_id, provider, tier, now)
        limit = tier.requests_per_window

        if count >= limit:
            return AdmissionDecision(
                allowed=False,
                remaining=0,
                reset_at=window_end,
                reason=(
                    f"Request limit of {limit} per window reached for {provider}. "
                    f"Resets at {window_end.isoformat()}."
                ),
            )

        return AdmissionDecision(allowed=True, remaining=limit - count, reset_at=window_end)

    async def reserve_request(
        self,
        db: AsyncSession,
        user_id: UUID,
        provider: str,
        now: datetime | None = None,
    ) -> AdmissionDecision:
        """Atomically admit a request and take its slot in the window.

        Returns:
            AdmissionDecision; ``remaining`` is what is left after this request
        """
        self._validate_provider(provider)
        now = now or datetime.now(timezone.utc)
        user = await self.get_user(db, user_id)
        tier = get_quota_tier(user.tier)
        limit = tier.requests_per_window

        await self._prepare_window(db, user_id, provider, tier, now)

        result = await db.execute(
            update(UsageWindow)
            .where(UsageWindow.user_id == user_id)
            .where(UsageWindow.provider == provider)
            .where(UsageWindow.count < limit)
            .where(UsageWindow.window_end > now)
            .values(count=UsageWindow.count + 1)
            .returning(UsageWindow.count, UsageWindow.window_end)
            .execution_options(synchronize_session=False)
        )
        row = result.first()
        await db.commit()

        if row is not None:
            count, window_end = row
            return AdmissionDecision(
                allowed=True,
                remaining=max(0, limit - count),
                reset_at=window_end,
            )

        _, _, window_end = await self._effective_window(db, user_id, provider, tier, now)
        logger.info("Denied %s request for user %s: window full", provider, user_id)
        return AdmissionDecision(
            allowed=False,
            remaining=0,
            reset_at=window_end,
            reason=(
                f"Request limit of {limit} per window reached for {provider}. "
                f"Resets at {window_end.isoformat()}."
            ),
        )

    async def record_usage(
        self,
        db: AsyncSession,
        user_id: UUID,
        provider: str,
        outcome: UsageOutcome,
        now: datetime | None = None,
        slot_reserved: bool = False,
    ) -> ApiRequestLog:
        """Record a completed call attempt.

        Every attempt is logged. Attempts that reached the provider (success
        or failure) count toward the window unless their slot was already
        taken by ``reserve_request``; quota denials never count.
        """
        self._validate_provider(provider)
        now = now or datetime.now(timezone.utc)
        user = await self.get_user(db, user_id)
        tier = get_quota_tier(user.tier)

        entry = await self.ledger.append(db, user_id, provider, outcome, timestamp=now)

        if outcome.status != RequestStatus.QUOTA_EXCEEDED and not slot_reserved:
            await self._prepare_window(db, user_id, provider, tier, now)
            await db.execute(
                update(UsageWindow)
                .where(UsageWindow.user_id == user_id)
                .where(UsageWindow.provider == provider)
                .values(count=UsageWindow.count + 1)
                .execution_options(synchronize_session=False)
            )

        await db.commit()
        return entry

    # ── Weekly Q&A ───────────────────────────────────────────────────

    async def consume_qa_question(
        self,
        db: AsyncSession,
        user_id: UUID,
        now: datetime | None = None,
    ) -> AdmissionDecision:
        """Count one Q&A question against the weekly allowance.

        Reset and increment happen in one conditional UPDATE. A reset moves
        the reset date to ``now + 7 days``.
        """
        now = now or datetime.now(timezone.utc)
        user = await self.get_user(db, user_id)
        limit = get_quota_tier(user.tier).weekly_qa_limit
        expired = User.week_reset_date < now
        admit = User.qa_questions_this_week < limit
        if limit > 0:
            admit = or_(expired, admit)

        result = await db.execute(
            update(User)
            .where(User.id == user_id)
            .where(admit)
            .values(
                qa_questions_this_week=case(
                    (expired, 1),
                    else_=User.qa_questions_this_week + 1,
                ),
                week_reset_date=case(
                    (expired, now + WEEK),
                    else_=User.week_reset_date,
                ),
            )
            .returning(User.qa_questions_this_week, User.week_reset_date)
            .execution_options(synchronize_session=False)
        )
        row = result.first()
        await db.commit()

        if row is not None:
            used, reset_at = row
            return AdmissionDecision(
                allowed=True,
                remaining=max(0, limit - used),
                reset_at=reset_at,
            )

        await self._reset_weekly_if_due(db, user_id, now)
        _, reset_at = await self._read_weekly(db, user_id)
        return AdmissionDecision(
            allowed=False,
            remaining=0,
            reset_at=reset_at,
            reason=f"Weekly Q&A limit of {limit} questions reached. Resets at {reset_at.isoformat()}.",
        )

    async def _read_weekly(self, db: AsyncSession, user_id: UUID) -> tuple[int, datetime]:
        result = await db.execute(
            select(User.qa_questions_this_week, User.week_reset_date).where(User.id == user_id)
        )
        used, reset_at = result.one()
        return used, reset_at

    async def _reset_weekly_if_due(
        self,
        db: AsyncSession,
        user_id: UUID,
        now: datetime,
    ) -> None:
        await db.execute(
            update(User)
            .where(User.id == user_id)
            .where(User.week_reset_date < now)
            .values(qa_questions_this_week=0, week_reset_date=now + WEEK)
            .execution_options(synchronize_session=False)
        )
        await db.commit()

    # ── Reporting ────────────────────────────────────────────────────

    async def get_quota_usage(
        self,
        db: AsyncSession,
        user_id: UUID,
        now: datetime | None = None,
    ) -> QuotaSummary:
        """Get current usage information for display."""
        now = now or datetime.now(timezone.utc)
        user = await self.get_user(db, user_id)
        tier = get_quota_tier(user.tier)
        limit = tier.requests_per_window

        await self._reset_weekly_if_due(db, user_id, now)
        qa_used, qa_reset_at = await self._read_weekly(db, user_id)

        one_hour_ago = now - timedelta(hours=1)
        one_day_ago = now - timedelta(hours=24)

        windows: dict[str, WindowUsage] = {}
        providers: dict[str, ProviderStats] = {}
        for provider in self.settings.quota_providers:
            used, window_start, window_end = await self._effective_window(
                db, user_id, provider, tier, now
            )
            windows[provider] = WindowUsage(
                used=used,
                limit=limit,
                remaining=max(0, limit - used),
                reset_at=window_end,
            )
            providers[provider] = await self._provider_stats(
                db, user_id, provider, used, limit, window_start, one_hour_ago, one_day_ago
            )

        overall = await self._overall_stats(db, user_id, one_day_ago)
        recent_errors = await self.ledger.recent_errors(
            db, user_id, limit=self.settings.recent_errors_limit
        )
        paused = await self.pauses.get_paused_content_count(db, user_id)

        return QuotaSummary(
            tier=tier.name,
            windows=windows,
            weekly_qa_usage=WeeklyQaUsage(
                used=qa_used,
                limit=tier.weekly_qa_limit,
                remaining=max(0, tier.weekly_qa_limit - qa_used),
                reset_at=qa_reset_at,
            ),
            providers=providers,
            overall=overall,
            recent_errors=[RecentError(**e) for e in recent_errors],
            recommendations=self.generate_recommendations(
                percent_used=max((p.percent_used for p in providers.values()), default=0.0),
                hourly_count=sum(p.hourly_count for p in providers.values()),
                quota_exceeded_count=sum(p.quota_exceeded_count for p in providers.values()),
                total_requests=overall.total_requests,
            ),
            paused_content=paused,
        )

    async def _provider_stats(
        self,
        db: AsyncSession,
        user_id: UUID,
        provider: str,
        used: int,
        limit: int,
        window_start: datetime,
        one_hour_ago: datetime,
        one_day_ago: datetime,
    ) -> ProviderStats:
        by_type = await self.ledger.requests_by_type(db, user_id, provider, window_start)
        return ProviderStats(
            provider=provider,
            hourly_count=await self.ledger.count_since(db, user_id, one_hour_ago, provider=provider),
            last_24_hours=await self.ledger.count_since(db, user_id, one_day_ago, provider=provider),
            percent_used=round(used / limit * 100, 2) if limit > 0 else 0.0,
            requests_by_type=[RequestTypeCount(**t) for t in by_type],
            recent_failures=await self.ledger.count_since(
                db, user_id, one_day_ago, provider=provider, status=RequestStatus.FAILURE
            ),
            quota_exceeded_count=await self.ledger.count_since(
                db, user_id, window_start, provider=provider, status=RequestStatus.QUOTA_EXCEEDED
            ),
            avg_response_time=await self.ledger.average_duration(
                db, user_id, one_day_ago, provider=provider
            ),
        )

    async def _overall_stats(
        self,
        db: AsyncSession,
        user_id: UUID,
        since: datetime,
    ) -> OverallStats:
        total = await self.ledger.count_since(db, user_id, since)
        successes = await self.ledger.count_since(
            db, user_id, since, status=RequestStatus.SUCCESS
        )
        success_rate = successes / total * 100 if total > 0 else 100.0
        avg = await self.ledger.average_duration(db, user_id, since)

        return OverallStats(
            total_requests=total,
            success_rate=round(success_rate, 2),
            avg_response_time=avg or 0.0,
            peak_hour=PeakHour(**await self.ledger.peak_hour(db, user_id, since)),
        )

    @staticmethod
    def generate_recommendations(
        percent_used: float,
        hourly_count: int,
        quota_exceeded_count: int,
        total_requests: int,
    ) -> list[str]:
        """Plain-text usage hints for the quota dashboard."""
        recommendations: list[str] = []

        if percent_used >= 90:
            recommendations.append(
                "You're near your request limit. Consider upgrading your plan."
            )
            recommendations.append("Batch process multiple documents to optimize API usage.")
        elif percent_used >= 70:
            recommendations.append(
                "You've used 70%+ of your request quota. Monitor usage carefully."
            )
        elif percent_used < 30:
            recommendations.append("You have plenty of quota remaining.")

        if hourly_count >= 5:
            recommendations.append(
                "High hourly usage detected. Spread out processing to avoid rate limits."
            )

        if quota_exceeded_count > 0:
            recommendations.append(
                "Quota exceeded errors detected. Processing has been paused and "
                "will resume once the window resets."
            )

        if total_requests == 0:
            recommendations.append("No API requests yet. Upload content to start learning!")

        return recommendations


# Global instance
quota_service = QuotaService()
