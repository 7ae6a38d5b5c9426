"""Quota tier reference data."""

from dataclasses import dataclass

from studybuddy.config import Settings, get_settings
from studybuddy.models.user import SubscriptionTier


@dataclass(frozen=True)
class QuotaTier:
    """Limits granted by a subscription tier."""

    name: str
    requests_per_window: int
    window_length_seconds: int
    weekly_qa_limit: int


def build_quota_tiers(settings: Settings) -> dict[str, QuotaTier]:
    """Build the tier table from settings."""
    return {
        SubscriptionTier.FREE.value: QuotaTier(
            name=SubscriptionTier.FREE.value,
            requests_per_window=settings.quota_free_requests_per_window,
            window_length_seconds=settings.quota_window_seconds,
            weekly_qa_limit=settings.quota_free_weekly_qa_limit,
        ),
        SubscriptionTier.PREMIUM.value: QuotaTier(
            name=SubscriptionTier.PREMIUM.value,
            requests_per_window=settings.quota_premium_requests_per_window,
            window_length_seconds=settings.quota_window_seconds,
            weekly_qa_limit=settings.quota_premium_weekly_qa_limit,
        ),
        SubscriptionTier.INSTITUTIONAL.value: QuotaTier(
            name=SubscriptionTier.INSTITUTIONAL.value,
            requests_per_window=settings.quota_institutional_requests_per_window,
            window_length_seconds=settings.quota_window_seconds,
            weekly_qa_limit=settings.quota_institutional_weekly_qa_limit,
        ),
    }


QUOTA_TIERS = build_quota_tiers(get_settings())


def get_quota_tier(tier: str | None) -> QuotaTier:
    """Look up a tier, falling back to free for unknown values."""
    return QUOTA_TIERS.get(tier or "", QUOTA_TIERS[SubscriptionTier.FREE.value])
