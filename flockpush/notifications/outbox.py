"""In-process outbox decoupling write paths from notification delivery."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from enum import StrEnum

from flockpush.notifications.models import JournalStatus, MessageEvent
from flockpush.notifications.trigger import NotificationTrigger

logger = logging.getLogger(__name__)


class OutboxKind(StrEnum):
  MESSAGE_SENT = "message_sent"
  PRAYER_ANSWERED = "prayer_answered"
  JOURNAL_CHANGED = "journal_changed"


@dataclass(frozen=True)
class PrayerAnswered:
  tenant_id: str
  prayer_card_id: str


@dataclass(frozen=True)
class JournalStatusChanged:
  tenant_id: str
  journal_id: str
  old_status: JournalStatus
  new_status: JournalStatus


@dataclass(frozen=True)
class OutboxItem:
  kind: OutboxKind
  payload: MessageEvent | PrayerAnswered | JournalStatusChanged


class NotificationOutbox:
  """Bounded queue drained by a single background worker.

  ``submit`` never blocks and never raises, so the write path that produced
  the event cannot be slowed down or rolled back by delivery.
  """

  def __init__(self, trigger: NotificationTrigger, *, max_size: int = 1000) -> None:
    self._trigger = trigger
    self._queue: asyncio.Queue[OutboxItem] = asyncio.Queue(maxsize=max_size)
    self._worker: asyncio.Task[None] | None = None

  @property
  def pending(self) -> int:
    return self._queue.qsize()

  @property
  def running(self) -> bool:
    return self._worker is not None and not self._worker.done()

  def submit(self, item: OutboxItem) -> bool:
    try:
      self._queue.put_nowait(item)
    except asyncio.QueueFull:
      logger.warning("Notification outbox full; dropping kind=%s pending=%d", item.kind.value, self._queue.qsize())
      return False
    return True

  def submit_message(self, event: MessageEvent) -> bool:
    return self.submit(OutboxItem(kind=OutboxKind.MESSAGE_SENT, payload=event))

  def submit_prayer_answered(self, tenant_id: str, prayer_card_id: str) -> bool:
    return self.submit(OutboxItem(kind=OutboxKind.PRAYER_ANSWERED, payload=PrayerAnswered(tenant_id=tenant_id, prayer_card_id=prayer_card_id)))

  def submit_journal_change(self, tenant_id: str, journal_id: str, old_status: JournalStatus, new_status: JournalStatus) -> bool:
    payload = JournalStatusChanged(tenant_id=tenant_id, journal_id=journal_id, old_status=old_status, new_status=new_status)
    return self.submit(OutboxItem(kind=OutboxKind.JOURNAL_CHANGED, payload=payload))

  def start(self) -> None:
    """Start the background worker on the running loop."""
    if self.running:
      return
    self._worker = asyncio.create_task(self._run())
    self._worker.add_done_callback(self._log_task_error)
    logger.info("Notification outbox worker started")

  async def stop(self) -> None:
    """Flush queued items, wait for the item the worker holds, then cancel it."""
    await self.drain()
    worker = self._worker
    self._worker = None
    if worker is None:
      return
    if not worker.done():
      # task_done() for the in-flight item only runs once its delivery has finished.
      await self._queue.join()
    worker.cancel()
    with contextlib.suppress(asyncio.CancelledError):
      await worker
    logger.info("Notification outbox worker stopped")

  async def drain(self) -> int:
    """Process everything currently queued and return how many items ran."""
    processed = 0
    while True:
      try:
        item = self._queue.get_nowait()
      except asyncio.QueueEmpty:
        return processed
      try:
        await self._process(item)
      finally:
        self._queue.task_done()
      processed += 1

  async def _run(self) -> None:
    while True:
      item = await self._queue.get()
      try:
        await self._process(item)
      finally:
        self._queue.task_done()

  async def _process(self, item: OutboxItem) -> None:
    try:
      payload = item.payload
      if isinstance(payload, MessageEvent):
        await self._trigger.on_message(payload)
      elif isinstance(payload, PrayerAnswered):
        await self._trigger.on_prayer_answered(payload.tenant_id, payload.prayer_card_id)
      elif isinstance(payload, JournalStatusChanged):
        await self._trigger.on_pastoral_journal_change(payload.tenant_id, payload.journal_id, payload.old_status, payload.new_status)
      else:
        logger.error("Unknown outbox item kind=%s", item.kind)
    except Exception as exc:  # noqa: BLE001
      logger.error("Outbox item failed kind=%s error=%s", item.kind.value, exc, exc_info=True)

  @staticmethod
  def _log_task_error(task: asyncio.Task[None]) -> None:
    """Log a worker crash so delivery does not stop silently."""
    if task.cancelled():
      return
    try:
      _ = task.result()
    except Exception as exc:  # noqa: BLE001
      logger.error("Notification outbox worker crashed: %s", exc, exc_info=True)
