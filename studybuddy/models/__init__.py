"""SQLAlchemy models package."""

from studybuddy.models.user import User, SubscriptionTier
from studybuddy.models.content import Content, ContentStatus
from studybuddy.models.usage_window import UsageWindow
from studybuddy.models.request_log import ApiRequestLog, RequestStatus, RequestType
from studybuddy.models.paused_content import PausedContent

__all__ = [
    "User",
    "SubscriptionTier",
    "Content",
    "ContentStatus",
    "UsageWindow",
    "ApiRequestLog",
    "RequestStatus",
    "RequestType",
    "PausedContent",
]
