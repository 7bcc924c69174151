"""Value objects flowing through the notification pipeline."""

from __future__ import annotations

import datetime
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum


class Platform(StrEnum):
  IOS = "ios"
  ANDROID = "android"
  OTHER = "other"


class NotificationType(StrEnum):
  NEW_MESSAGE = "new_message"
  MENTION = "mention"
  PRAYER_ANSWERED = "prayer_answered"
  PASTORAL_JOURNAL_SUBMITTED = "pastoral_journal_submitted"
  PASTORAL_JOURNAL_FORWARDED = "pastoral_journal_forwarded"
  PASTORAL_JOURNAL_CONFIRMED = "pastoral_journal_confirmed"


class ContentKind(StrEnum):
  TEXT = "text"
  MEDIA = "media"
  PRAYER_CARD = "prayer_card"
  SYSTEM = "system"


class ConversationKind(StrEnum):
  DIRECT = "direct"
  SMALL_GROUP = "small_group"
  MINISTRY = "ministry"
  CHURCH_WIDE = "church_wide"
  EVENT = "event"


class RecipientPriority(StrEnum):
  MENTION = "mention"
  REGULAR = "regular"


class PushPriority(StrEnum):
  NORMAL = "normal"
  HIGH = "high"


class PrayerScope(StrEnum):
  INDIVIDUAL = "individual"
  SMALL_GROUP = "small_group"
  CHURCH_WIDE = "church_wide"


class JournalStatus(StrEnum):
  DRAFT = "draft"
  SUBMITTED = "submitted"
  ZONE_REVIEWED = "zone_reviewed"
  PASTOR_CONFIRMED = "pastor_confirmed"
  ARCHIVED = "archived"


@dataclass(frozen=True)
class DeviceToken:
  """One app installation's push token inside a tenant."""

  tenant_id: str
  user_id: str
  token: str
  platform: Platform
  last_used_at: datetime.datetime
  revoked_at: datetime.datetime | None = None

  @property
  def is_active(self) -> bool:
    return self.revoked_at is None


@dataclass(frozen=True)
class MessageEvent:
  """A chat message that was successfully written."""

  id: str
  tenant_id: str
  conversation_id: str
  sender_id: str
  content: str | None
  created_at: datetime.datetime
  content_kind: ContentKind = ContentKind.TEXT
  thread_id: str | None = None
  media_type: str | None = None
  mentioned_user_ids: frozenset[str] = frozenset()


@dataclass(frozen=True)
class Conversation:
  id: str
  tenant_id: str
  kind: ConversationKind
  name: str | None = None

  @property
  def is_exclusion_bearing(self) -> bool:
    """Only event chats honour per-user notification opt-outs."""
    return self.kind == ConversationKind.EVENT


@dataclass(frozen=True)
class ConversationMembership:
  conversation_id: str
  user_id: str
  joined_at: datetime.datetime
  left_at: datetime.datetime | None = None


@dataclass(frozen=True)
class ExclusionRecord:
  conversation_id: str
  user_id: str


@dataclass(frozen=True)
class Recipient:
  user_id: str
  priority: RecipientPriority


@dataclass(frozen=True)
class PrayerCard:
  id: str
  tenant_id: str
  author_id: str
  scope: PrayerScope
  small_group_id: str | None = None
  answered_at: datetime.datetime | None = None


@dataclass(frozen=True)
class SmallGroup:
  id: str
  tenant_id: str
  name: str
  zone_id: str | None = None


@dataclass(frozen=True)
class PastoralJournal:
  id: str
  tenant_id: str
  small_group_id: str
  author_id: str
  status: JournalStatus


@dataclass(frozen=True)
class PushRequest:
  """Content addressed to one user; the dispatcher expands it to that user's tokens."""

  user_id: str
  title: str
  body: str
  data: Mapping[str, str] = field(default_factory=dict)
  sound: str | None = "default"
  priority: PushPriority = PushPriority.NORMAL


@dataclass(frozen=True)
class PushMessage:
  """A single gateway message addressed to one device token."""

  to: str
  title: str
  body: str
  data: Mapping[str, str] = field(default_factory=dict)
  sound: str | None = "default"
  priority: PushPriority = PushPriority.NORMAL

  def to_payload(self) -> dict[str, object]:
    return {"to": self.to, "title": self.title, "body": self.body, "data": dict(self.data), "sound": self.sound, "priority": self.priority.value}


@dataclass(frozen=True)
class PushTicket:
  """Per-message outcome reported by the gateway, aligned with the request order."""

  status: str
  message: str | None = None
  error_code: str | None = None

  @property
  def ok(self) -> bool:
    return self.status == "ok"

  @property
  def is_device_not_registered(self) -> bool:
    """True when the target installation no longer exists."""
    return "DeviceNotRegistered" in {self.error_code, self.message}

  @property
  def error_text(self) -> str:
    return self.error_code or self.message or "unknown gateway error"


@dataclass(frozen=True)
class DispatchResult:
  sent_count: int = 0
  failed_count: int = 0
  errors: tuple[str, ...] = ()
  pruned_tokens: tuple[str, ...] = ()
