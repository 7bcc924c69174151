"""Repository helpers for push dispatch audit rows."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from flockpush.core.database import get_session_factory
from flockpush.schema.push_logs import PushNotificationLog

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DispatchLogEntry:
  """Summary of one dispatch call for auditing."""

  tenant_id: str
  notification_type: str
  recipient_count: int
  sent_count: int
  failed_count: int
  error_summary: dict | None


class DispatchLogRepository:
  """Persist dispatch summaries to Postgres using SQLAlchemy."""

  async def insert(self, entry: DispatchLogEntry) -> None:
    """Insert a new dispatch log row."""
    session_factory = get_session_factory()
    if session_factory is None:
      return

    async with session_factory() as session:
      await self._insert_with_session(session=session, entry=entry)

  async def _insert_with_session(self, *, session: AsyncSession, entry: DispatchLogEntry) -> None:
    record = PushNotificationLog(
      tenant_id=entry.tenant_id,
      notification_type=entry.notification_type,
      recipient_count=entry.recipient_count,
      sent_count=entry.sent_count,
      failed_count=entry.failed_count,
      error_summary=entry.error_summary,
    )
    session.add(record)
    await session.commit()


class NullDispatchLogRepository(DispatchLogRepository):
  """No-op repository used when persistence is unavailable."""

  async def insert(self, entry: DispatchLogEntry) -> None:
    logger.debug("Dispatch log persistence disabled; dropping tenant_id=%s type=%s sent=%d failed=%d", entry.tenant_id, entry.notification_type, entry.sent_count, entry.failed_count)
