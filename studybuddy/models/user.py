"""User model - subscription tier and weekly Q&A allowance."""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import Integer, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from studybuddy.database import Base, UTCDateTime

if TYPE_CHECKING:
    from studybuddy.models.content import Content
    from studybuddy.models.usage_window import UsageWindow


class SubscriptionTier(str, Enum):
    """Available subscription tiers."""

    FREE = "free"
    PREMIUM = "premium"
    INSTITUTIONAL = "institutional"


class User(Base):
    """User owns content and consumes AI quota."""

    __tablename__ = "users"

    id: Mapped[UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid4,
    )
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        index=True,
        nullable=False,
    )
    tier: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default=SubscriptionTier.FREE.value,
    )

    # Weekly Q&A counter, reset lazily on access
    qa_questions_this_week: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )
    week_reset_date: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        default=lambda: datetime.now(timezone.utc) + timedelta(days=7),
    )

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        server_default=func.now(),
        onupdate=func.now(),
    )

    # Relationships
    contents: Mapped[list["Content"]] = relationship(
        "Content",
        back_populates="user",
        cascade="all, delete-orphan",
    )
    usage_windows: Mapped[list["UsageWindow"]] = relationship(
        "UsageWindow",
        back_populates="user",
        cascade="all, delete-orphan",
    )
