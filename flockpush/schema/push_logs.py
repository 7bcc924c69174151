"""SQLAlchemy model for the push dispatch audit trail."""

from __future__ import annotations

import datetime
import uuid

from sqlalchemy import DateTime, Integer, Text, func
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from flockpush.core.database import Base


class PushNotificationLog(Base):
  """Summary row written after each dispatch call."""

  __tablename__ = "push_notification_logs"

  id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
  tenant_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
  notification_type: Mapped[str] = mapped_column(Text, nullable=False)
  recipient_count: Mapped[int] = mapped_column(Integer, nullable=False)
  sent_count: Mapped[int] = mapped_column(Integer, nullable=False)
  failed_count: Mapped[int] = mapped_column(Integer, nullable=False)
  error_summary: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
