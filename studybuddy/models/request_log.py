"""API request log model (append-only audit trail)."""

from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import JSON, ForeignKey, Index, Integer, String, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from studybuddy.database import Base, UTCDateTime


class RequestStatus(str, Enum):
    """Outcome of an AI call attempt."""

    SUCCESS = "success"
    FAILURE = "failure"
    QUOTA_EXCEEDED = "quota_exceeded"


class RequestType(str, Enum):
    """Kind of AI work requested."""

    EMBEDDING = "embedding"
    COMPLETION = "completion"
    SUMMARIZATION = "summarization"
    FLASHCARD = "flashcard"
    QUIZ = "quiz"
    QA = "qa"
    OTHER = "other"


class ApiRequestLog(Base):
    """One row per AI call attempt. Never updated or deleted."""

    __tablename__ = "api_request_logs"
    __table_args__ = (
        Index("ix_api_request_logs_user_ts", "user_id", "timestamp"),
        Index("ix_api_request_logs_user_provider_ts", "user_id", "provider", "timestamp"),
        Index("ix_api_request_logs_status_ts", "status", "timestamp"),
    )

    id: Mapped[UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid4,
    )
    user_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    # No FK: the audit trail outlives deleted content
    content_id: Mapped[UUID | None] = mapped_column(Uuid, index=True)

    provider: Mapped[str] = mapped_column(String(50), nullable=False)
    endpoint: Mapped[str] = mapped_column(String(255), nullable=False)
    request_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False)

    tokens_used: Mapped[int | None] = mapped_column(Integer)
    duration_ms: Mapped[int | None] = mapped_column(Integer)
    error_code: Mapped[str | None] = mapped_column(String(100))
    error_message: Mapped[str | None] = mapped_column(String(2000))

    timestamp: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    request_metadata: Mapped[dict | None] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"),
        default=dict,
    )
