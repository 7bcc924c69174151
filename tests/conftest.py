"""Shared fixtures and in-memory collaborators for the notification pipeline tests."""

from __future__ import annotations

import datetime
from collections.abc import Callable, Sequence

import pytest

from flockpush.notifications.models import Conversation, ConversationMembership, DeviceToken, ExclusionRecord, PastoralJournal, Platform, PrayerCard, PushMessage, PushTicket, SmallGroup
from flockpush.notifications.token_store import InMemoryTokenStore

NOW = datetime.datetime(2026, 10, 1, 12, 0, tzinfo=datetime.UTC)


@pytest.fixture
def anyio_backend():
  return "asyncio"


@pytest.fixture
def now() -> datetime.datetime:
  return NOW


def _make_token(user_id: str, token: str | None = None, *, tenant_id: str = "t1", platform: Platform = Platform.IOS, last_used_at: datetime.datetime = NOW, revoked_at: datetime.datetime | None = None) -> DeviceToken:
  return DeviceToken(tenant_id=tenant_id, user_id=user_id, token=token or f"ExponentPushToken[{user_id}]", platform=platform, last_used_at=last_used_at, revoked_at=revoked_at)


def _member(conversation_id: str, user_id: str, *, left: bool = False) -> ConversationMembership:
  return ConversationMembership(conversation_id=conversation_id, user_id=user_id, joined_at=NOW - datetime.timedelta(days=30), left_at=NOW if left else None)


@pytest.fixture
def token_store() -> InMemoryTokenStore:
  return InMemoryTokenStore()


class RecordingGateway:
  """Gateway double that records every batch and answers through a responder."""

  def __init__(self, responder: Callable[[Sequence[PushMessage]], list[PushTicket]] | None = None, *, error: Exception | None = None) -> None:
    self.batches: list[list[PushMessage]] = []
    self._responder = responder or (lambda messages: [PushTicket(status="ok") for _ in messages])
    self._error = error
    self.closed = False

  async def send(self, messages: Sequence[PushMessage]) -> list[PushTicket]:
    self.batches.append(list(messages))
    if self._error is not None:
      raise self._error
    return self._responder(messages)

  async def aclose(self) -> None:
    self.closed = True

  @property
  def sent_messages(self) -> list[PushMessage]:
    return [message for batch in self.batches for message in batch]


@pytest.fixture
def gateway() -> RecordingGateway:
  return RecordingGateway()


class FakeDirectory:
  """In-memory community directory keyed by tenant."""

  def __init__(self) -> None:
    self.conversations: dict[str, Conversation] = {}
    self.participants: dict[str, list[ConversationMembership]] = {}
    self.exclusions: dict[str, list[ExclusionRecord]] = {}
    self.names: dict[str, str] = {}
    self.prayer_cards: dict[str, PrayerCard] = {}
    self.group_members: dict[str, list[str]] = {}
    self.tenant_members: dict[str, list[str]] = {}
    self.journals: dict[str, PastoralJournal] = {}
    self.groups: dict[str, SmallGroup] = {}
    self.zone_leaders: dict[str, str] = {}
    self.pastors: dict[str, list[str]] = {}

  async def get_conversation(self, *, tenant_id: str, conversation_id: str) -> Conversation | None:
    conversation = self.conversations.get(conversation_id)
    if conversation is None or conversation.tenant_id != tenant_id:
      return None
    return conversation

  async def list_participants(self, *, conversation_id: str) -> list[ConversationMembership]:
    return list(self.participants.get(conversation_id, []))

  async def list_exclusions(self, *, conversation_id: str) -> list[ExclusionRecord]:
    return list(self.exclusions.get(conversation_id, []))

  async def get_display_name(self, *, tenant_id: str, user_id: str) -> str | None:
    return self.names.get(user_id)

  async def get_prayer_card(self, *, tenant_id: str, prayer_card_id: str) -> PrayerCard | None:
    card = self.prayer_cards.get(prayer_card_id)
    return card if card is not None and card.tenant_id == tenant_id else None

  async def list_small_group_members(self, *, tenant_id: str, small_group_id: str) -> list[str]:
    return list(self.group_members.get(small_group_id, []))

  async def list_tenant_members(self, *, tenant_id: str) -> list[str]:
    return list(self.tenant_members.get(tenant_id, []))

  async def get_pastoral_journal(self, *, tenant_id: str, journal_id: str) -> PastoralJournal | None:
    journal = self.journals.get(journal_id)
    return journal if journal is not None and journal.tenant_id == tenant_id else None

  async def get_small_group(self, *, tenant_id: str, small_group_id: str) -> SmallGroup | None:
    return self.groups.get(small_group_id)

  async def get_zone_leader(self, *, tenant_id: str, zone_id: str) -> str | None:
    return self.zone_leaders.get(zone_id)

  async def list_pastors(self, *, tenant_id: str) -> list[str]:
    return list(self.pastors.get(tenant_id, []))


@pytest.fixture
def directory() -> FakeDirectory:
  return FakeDirectory()


class FakeBridge:
  """Scriptable platform capability."""

  def __init__(self, *, platform_kind: Platform = Platform.ANDROID, granted: bool = True, grant_on_request: bool = True, tokens: list[str] | None = None) -> None:
    self.platform_kind = platform_kind
    self.granted = granted
    self.grant_on_request = grant_on_request
    self.tokens = list(tokens or ["ExponentPushToken[device-1]"])
    self.token_failures = 0
    self.channel_error: Exception | None = None
    self.get_token_calls = 0
    self.permission_requests = 0
    self.channel_calls = 0

  async def ensure_channel(self) -> None:
    self.channel_calls += 1
    if self.channel_error is not None:
      raise self.channel_error

  async def is_permission_granted(self) -> bool:
    return self.granted

  async def request_permission(self) -> bool:
    self.permission_requests += 1
    self.granted = self.grant_on_request
    return self.granted

  async def get_token(self) -> str:
    self.get_token_calls += 1
    if self.token_failures > 0:
      self.token_failures -= 1
      raise RuntimeError("token service unavailable")
    if len(self.tokens) > 1:
      return self.tokens.pop(0)
    return self.tokens[0]


@pytest.fixture
def bridge() -> FakeBridge:
  return FakeBridge()


@pytest.fixture
def make_token():
  return _make_token


@pytest.fixture
def member():
  return _member


@pytest.fixture
def make_gateway():
  return RecordingGateway


@pytest.fixture
def make_bridge():
  return FakeBridge
