"""Internal endpoints through which write paths hand events to the notification outbox."""

from __future__ import annotations

import datetime
import logging

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_core import PydanticCustomError

from flockpush.core.security import require_service_secret
from flockpush.notifications.models import ContentKind, JournalStatus, MessageEvent
from flockpush.notifications.outbox import NotificationOutbox

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_service_secret)])

_ACCEPTED = {"status": "accepted"}


class MessageSentRequest(BaseModel):
  """A chat message that was committed by the write path."""

  id: str = Field(min_length=1, max_length=128)
  conversation_id: str = Field(min_length=1, max_length=128)
  tenant_id: str = Field(min_length=1, max_length=128)
  sender_id: str = Field(min_length=1, max_length=128)
  content: str | None = None
  created_at: datetime.datetime
  thread_id: str | None = None
  message_type: ContentKind = ContentKind.TEXT
  media_type: str | None = None
  mentioned_user_ids: list[str] = Field(default_factory=list, max_length=1000)
  model_config = ConfigDict(extra="forbid")

  @field_validator("mentioned_user_ids")
  @classmethod
  def validate_mentions(cls, value: list[str]) -> list[str]:
    """Reject blank mention targets."""
    if any(not item.strip() for item in value):
      raise PydanticCustomError("mention_blank", "mentioned_user_ids must not contain blank ids.")
    return value

  def to_event(self) -> MessageEvent:
    return MessageEvent(
      id=self.id,
      tenant_id=self.tenant_id,
      conversation_id=self.conversation_id,
      sender_id=self.sender_id,
      content=self.content,
      created_at=self.created_at,
      content_kind=self.message_type,
      thread_id=self.thread_id,
      media_type=self.media_type,
      mentioned_user_ids=frozenset(self.mentioned_user_ids),
    )


class PrayerAnsweredRequest(BaseModel):
  tenant_id: str = Field(min_length=1, max_length=128)
  prayer_card_id: str = Field(min_length=1, max_length=128)
  model_config = ConfigDict(extra="forbid")


class JournalChangedRequest(BaseModel):
  tenant_id: str = Field(min_length=1, max_length=128)
  journal_id: str = Field(min_length=1, max_length=128)
  old_status: JournalStatus
  new_status: JournalStatus
  model_config = ConfigDict(extra="forbid")


def get_outbox(request: Request) -> NotificationOutbox:
  """Resolve the outbox wired by the application lifespan."""
  return request.app.state.pipeline.outbox


def _accepted_or_busy(accepted: bool, *, kind: str) -> JSONResponse:
  if accepted:
    return JSONResponse(status_code=status.HTTP_202_ACCEPTED, content=_ACCEPTED)
  logger.warning("Rejecting %s event; notification outbox is full", kind)
  return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content={"detail": "Notification outbox is full."})


@router.post("/message-sent", status_code=status.HTTP_202_ACCEPTED)
async def message_sent(payload: MessageSentRequest, outbox: NotificationOutbox = Depends(get_outbox)) -> JSONResponse:  # noqa: B008
  """Queue a message notification; delivery happens after the response."""
  return _accepted_or_busy(outbox.submit_message(payload.to_event()), kind="message_sent")


@router.post("/prayer-answered", status_code=status.HTTP_202_ACCEPTED)
async def prayer_answered(payload: PrayerAnsweredRequest, outbox: NotificationOutbox = Depends(get_outbox)) -> JSONResponse:  # noqa: B008
  return _accepted_or_busy(outbox.submit_prayer_answered(payload.tenant_id, payload.prayer_card_id), kind="prayer_answered")


@router.post("/pastoral-journal-changed", status_code=status.HTTP_202_ACCEPTED)
async def pastoral_journal_changed(payload: JournalChangedRequest, outbox: NotificationOutbox = Depends(get_outbox)) -> JSONResponse:  # noqa: B008
  return _accepted_or_busy(outbox.submit_journal_change(payload.tenant_id, payload.journal_id, payload.old_status, payload.new_status), kind="pastoral_journal_changed")
