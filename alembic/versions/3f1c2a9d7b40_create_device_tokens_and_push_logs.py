"""Create device token and push dispatch log tables.

Revision ID: 3f1c2a9d7b40
Revises:
Create Date: 2026-10-17 09:12:41.208114
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

from flockpush.core.migration_guards import guarded_create_index, guarded_create_table, guarded_drop_index, guarded_drop_table

revision = "3f1c2a9d7b40"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
  """Upgrade schema."""
  guarded_create_table(
    "device_tokens",
    sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
    sa.Column("tenant_id", sa.Text(), nullable=False),
    sa.Column("user_id", sa.Text(), nullable=False),
    sa.Column("token", sa.Text(), nullable=False),
    sa.Column("platform", sa.Text(), nullable=False),
    sa.Column("last_used_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
    sa.PrimaryKeyConstraint("id"),
    sa.UniqueConstraint("tenant_id", "token", name="ux_device_tokens_tenant_token"),
  )
  guarded_create_index("ix_device_tokens_tenant_user", "device_tokens", ["tenant_id", "user_id"], unique=False)

  guarded_create_table(
    "push_notification_logs",
    sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
    sa.Column("tenant_id", sa.Text(), nullable=False),
    sa.Column("notification_type", sa.Text(), nullable=False),
    sa.Column("recipient_count", sa.Integer(), nullable=False),
    sa.Column("sent_count", sa.Integer(), nullable=False),
    sa.Column("failed_count", sa.Integer(), nullable=False),
    sa.Column("error_summary", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.PrimaryKeyConstraint("id"),
  )
  guarded_create_index(op.f("ix_push_notification_logs_tenant_id"), "push_notification_logs", ["tenant_id"], unique=False)


def downgrade() -> None:
  """Downgrade schema."""
  guarded_drop_index(op.f("ix_push_notification_logs_tenant_id"), table_name="push_notification_logs")
  guarded_drop_table("push_notification_logs")
  guarded_drop_index("ix_device_tokens_tenant_user", table_name="device_tokens")
  guarded_drop_table("device_tokens")
