"""Paused content marker model."""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from studybuddy.database import Base, UTCDateTime


class PausedContent(Base):
    """Content whose derived-data generation was halted by quota exhaustion."""

    __tablename__ = "paused_contents"
    __table_args__ = (
        UniqueConstraint("user_id", "content_id", name="uq_paused_content_user_content"),
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
        index=True,
    )
    content_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("contents.id", ondelete="CASCADE"),
        nullable=False,
    )
    reason: Mapped[str] = mapped_column(String(500), nullable=False)
    paused_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
