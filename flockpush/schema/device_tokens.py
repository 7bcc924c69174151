"""SQLAlchemy model for mobile device push tokens."""

from __future__ import annotations

import datetime
import uuid

from sqlalchemy import DateTime, Index, Text, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from flockpush.core.database import Base


class DeviceTokenRow(Base):
  """Persist one installation's push token inside a tenant."""

  __tablename__ = "device_tokens"
  __table_args__ = (UniqueConstraint("tenant_id", "token", name="ux_device_tokens_tenant_token"), Index("ix_device_tokens_tenant_user", "tenant_id", "user_id"))

  id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
  tenant_id: Mapped[str] = mapped_column(Text, nullable=False)
  user_id: Mapped[str] = mapped_column(Text, nullable=False)
  token: Mapped[str] = mapped_column(Text, nullable=False)
  platform: Mapped[str] = mapped_column(Text, nullable=False)
  last_used_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
  revoked_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
