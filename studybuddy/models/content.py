"""Content model."""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import ForeignKey, Index, Integer, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from studybuddy.database import Base, UTCDateTime

if TYPE_CHECKING:
    from studybuddy.models.user import User


class ContentStatus(str, Enum):
    """Content processing status."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    PAUSED = "paused"


class Content(Base):
    """Content represents an uploaded learning item and its processing state."""

    __tablename__ = "contents"
    __table_args__ = (
        Index("ix_contents_user_created", "user_id", "created_at"),
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

    title: Mapped[str] = mapped_column(String(500), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        default=ContentStatus.PENDING.value,
        index=True,
    )
    error_message: Mapped[str | None] = mapped_column(String(2000))

    # Number of processed segments; one embedding per segment
    chunk_count: Mapped[int | None] = mapped_column(Integer)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        server_default=func.now(),
        onupdate=func.now(),
    )
    processed_at: Mapped[datetime | None] = mapped_column(UTCDateTime)

    # Relationships
    user: Mapped["User"] = relationship("User", back_populates="contents")

    @property
    def expected_vector_count(self) -> int:
        """Embeddings the vector store should hold for this content."""
        return self.chunk_count or 0
