"""Initial schema: users, contents, usage windows and the request ledger.

Revision ID: 001
Revises: 
Create Date: 2026-09-14

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Users
    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("tier", sa.String(50), nullable=False, server_default="free"),
        sa.Column("qa_questions_this_week", sa.Integer, nullable=False, server_default="0"),
        sa.Column("week_reset_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    # Contents
    op.create_table(
        "contents",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("status", sa.String(20), server_default="pending"),
        sa.Column("error_message", sa.String(2000)),
        sa.Column("chunk_count", sa.Integer),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("processed_at", sa.DateTime(timezone=True)),
    )
    op.create_index("ix_contents_user_id", "contents", ["user_id"])
    op.create_index("ix_contents_status", "contents", ["status"])
    op.create_index("ix_contents_user_created", "contents", ["user_id", "created_at"])

    # Usage windows
    op.create_table(
        "usage_windows",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("provider", sa.String(50), nullable=False),
        sa.Column("count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("window_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("window_end", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("user_id", "provider", name="uq_usage_window_user_provider"),
    )
    op.create_index("ix_usage_windows_user_id", "usage_windows", ["user_id"])

    # API request logs (append-only)
    op.create_table(
        "api_request_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("content_id", postgresql.UUID(as_uuid=True)),
        sa.Column("provider", sa.String(50), nullable=False),
        sa.Column("endpoint", sa.String(255), nullable=False),
        sa.Column("request_type", sa.String(50), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("tokens_used", sa.Integer),
        sa.Column("duration_ms", sa.Integer),
        sa.Column("error_code", sa.String(100)),
        sa.Column("error_message", sa.String(2000)),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("request_metadata", postgresql.JSONB, server_default="{}"),
    )
    op.create_index("ix_api_request_logs_content_id", "api_request_logs", ["content_id"])
    op.create_index("ix_api_request_logs_request_type", "api_request_logs", ["request_type"])
    op.create_index("ix_api_request_logs_user_ts", "api_request_logs", ["user_id", "timestamp"])
    op.create_index(
        "ix_api_request_logs_user_provider_ts",
        "api_request_logs",
        ["user_id", "provider", "timestamp"],
    )
    op.create_index("ix_api_request_logs_status_ts", "api_request_logs", ["status", "timestamp"])


def downgrade() -> None:
    op.drop_table("api_request_logs")
    op.drop_table("usage_windows")
    op.drop_table("contents")
    op.drop_table("users")
