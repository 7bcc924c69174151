from __future__ import annotations

import datetime
from unittest.mock import AsyncMock

import pytest

from flockpush.notifications.contracts import RateLimitExceeded
from flockpush.notifications.dispatcher import PushDispatcher
from flockpush.notifications.models import (
  ContentKind,
  Conversation,
  ConversationKind,
  DispatchResult,
  ExclusionRecord,
  JournalStatus,
  MessageEvent,
  NotificationType,
  PastoralJournal,
  PrayerCard,
  PrayerScope,
  PushPriority,
  SmallGroup,
)
from flockpush.notifications.rate_limit import TenantRateLimiter
from flockpush.notifications.token_store import InMemoryTokenStore
from flockpush.notifications.trigger import NotificationTrigger

NOW = datetime.datetime(2026, 10, 1, 12, 0, tzinfo=datetime.UTC)


def _event(**overrides) -> MessageEvent:
  values = {"id": "m1", "tenant_id": "t1", "conversation_id": "c1", "sender_id": "alice", "content": "Hello team", "created_at": NOW}
  values.update(overrides)
  return MessageEvent(**values)


def _trigger(directory, dispatcher) -> NotificationTrigger:
  return NotificationTrigger(directory=directory, dispatcher=dispatcher)


def _recording_dispatcher() -> AsyncMock:
  dispatcher = AsyncMock(spec=PushDispatcher)
  dispatcher.dispatch.return_value = DispatchResult(sent_count=1)
  return dispatcher


@pytest.fixture
def chat(directory, member):
  directory.conversations["c1"] = Conversation(id="c1", tenant_id="t1", kind=ConversationKind.SMALL_GROUP, name="Tuesday group")
  directory.participants["c1"] = [member("c1", "alice"), member("c1", "bob"), member("c1", "carol")]
  directory.names["alice"] = "Alice"
  return directory


@pytest.mark.anyio
async def test_message_mention_and_regular_requests(chat):
  dispatcher = _recording_dispatcher()

  await _trigger(chat, dispatcher).on_message(_event(mentioned_user_ids=frozenset({"bob"}), thread_id="th1"))

  tenant_id, requests = dispatcher.dispatch.await_args.args
  assert tenant_id == "t1"
  assert dispatcher.dispatch.await_args.kwargs["notification_type"] == NotificationType.NEW_MESSAGE
  by_user = {request.user_id: request for request in requests}
  assert set(by_user) == {"bob", "carol"}
  assert by_user["bob"].title == "Mentioned by Alice"
  assert by_user["bob"].priority == PushPriority.HIGH
  assert by_user["bob"].data["type"] == "mention"
  assert by_user["carol"].title == "Alice"
  assert by_user["carol"].priority == PushPriority.NORMAL
  assert by_user["carol"].body == "Hello team"
  assert by_user["carol"].data == {"type": "new_message", "conversation_id": "c1", "tenant_id": "t1", "message_id": "m1", "thread_id": "th1"}


@pytest.mark.anyio
async def test_message_with_only_mentions_is_a_mention_dispatch(chat):
  chat.participants["c1"] = [chat.participants["c1"][0], chat.participants["c1"][1]]
  dispatcher = _recording_dispatcher()

  await _trigger(chat, dispatcher).on_message(_event(mentioned_user_ids=frozenset({"bob"})))

  assert dispatcher.dispatch.await_args.kwargs["notification_type"] == NotificationType.MENTION
  assert "thread_id" not in dispatcher.dispatch.await_args.args[1][0].data


@pytest.mark.anyio
async def test_unknown_sender_name_defaults(chat):
  del chat.names["alice"]
  dispatcher = _recording_dispatcher()

  await _trigger(chat, dispatcher).on_message(_event(content_kind=ContentKind.MEDIA, content=None))

  request = dispatcher.dispatch.await_args.args[1][0]
  assert request.title == "Someone"
  assert request.body == "[Attachment]"


@pytest.mark.anyio
async def test_event_chat_exclusions_are_loaded(directory, member):
  directory.conversations["c1"] = Conversation(id="c1", tenant_id="t1", kind=ConversationKind.EVENT)
  directory.participants["c1"] = [member("c1", "alice"), member("c1", "bob"), member("c1", "carol")]
  directory.exclusions["c1"] = [ExclusionRecord(conversation_id="c1", user_id="carol")]
  dispatcher = _recording_dispatcher()

  await _trigger(directory, dispatcher).on_message(_event())

  assert [request.user_id for request in dispatcher.dispatch.await_args.args[1]] == ["bob"]


@pytest.mark.anyio
async def test_missing_conversation_is_not_dispatched(directory):
  dispatcher = _recording_dispatcher()

  assert await _trigger(directory, dispatcher).on_message(_event()) is None
  dispatcher.dispatch.assert_not_awaited()


@pytest.mark.anyio
async def test_conversation_in_other_tenant_is_not_dispatched(chat):
  dispatcher = _recording_dispatcher()

  assert await _trigger(chat, dispatcher).on_message(_event(tenant_id="t2")) is None
  dispatcher.dispatch.assert_not_awaited()


@pytest.mark.anyio
async def test_sender_alone_in_conversation_is_not_dispatched(directory, member):
  directory.conversations["c1"] = Conversation(id="c1", tenant_id="t1", kind=ConversationKind.DIRECT)
  directory.participants["c1"] = [member("c1", "alice"), member("c1", "bob", left=True)]
  dispatcher = _recording_dispatcher()

  assert await _trigger(directory, dispatcher).on_message(_event()) is None
  dispatcher.dispatch.assert_not_awaited()


@pytest.mark.anyio
async def test_rate_limit_is_swallowed(chat):
  dispatcher = _recording_dispatcher()
  dispatcher.dispatch.side_effect = RateLimitExceeded("t1", 30)

  assert await _trigger(chat, dispatcher).on_message(_event()) is None


@pytest.mark.anyio
async def test_directory_failure_is_swallowed(chat):
  chat.list_participants = AsyncMock(side_effect=RuntimeError("db down"))
  dispatcher = _recording_dispatcher()

  assert await _trigger(chat, dispatcher).on_message(_event()) is None
  dispatcher.dispatch.assert_not_awaited()


@pytest.mark.anyio
async def test_message_end_to_end_through_dispatcher(chat, make_token, gateway):
  store = InMemoryTokenStore([make_token("bob"), make_token("carol")])
  dispatcher = PushDispatcher(store=store, gateway=gateway, rate_limiter=TenantRateLimiter(), clock=lambda: NOW)

  result = await _trigger(chat, dispatcher).on_message(_event())

  assert result is not None
  assert result.sent_count == 2
  assert {message.to for message in gateway.sent_messages} == {"ExponentPushToken[bob]", "ExponentPushToken[carol]"}


@pytest.fixture
def prayers(directory):
  directory.names["alice"] = "Alice"
  directory.group_members["g1"] = ["alice", "bob", "carol"]
  directory.tenant_members["t1"] = ["alice", "bob", "carol", "dave"]
  return directory


@pytest.mark.anyio
@pytest.mark.parametrize(
  ("scope", "small_group_id", "expected"),
  [
    (PrayerScope.INDIVIDUAL, None, ["alice"]),
    (PrayerScope.SMALL_GROUP, "g1", ["alice", "bob", "carol"]),
    (PrayerScope.CHURCH_WIDE, None, ["alice", "bob", "carol", "dave"]),
  ],
)
async def test_prayer_answered_audience_by_scope(prayers, scope, small_group_id, expected):
  prayers.prayer_cards["p1"] = PrayerCard(id="p1", tenant_id="t1", author_id="alice", scope=scope, small_group_id=small_group_id, answered_at=NOW)
  dispatcher = _recording_dispatcher()

  await _trigger(prayers, dispatcher).on_prayer_answered("t1", "p1")

  requests = dispatcher.dispatch.await_args.args[1]
  assert [request.user_id for request in requests] == expected
  assert requests[0].title == "Prayer Answered"
  assert requests[0].body == "Alice's prayer has been answered"
  assert requests[0].data == {"type": "prayer_answered", "prayer_card_id": "p1", "tenant_id": "t1"}
  assert dispatcher.dispatch.await_args.kwargs["notification_type"] == NotificationType.PRAYER_ANSWERED


@pytest.mark.anyio
async def test_unanswered_or_missing_prayer_is_skipped(prayers):
  prayers.prayer_cards["p1"] = PrayerCard(id="p1", tenant_id="t1", author_id="alice", scope=PrayerScope.INDIVIDUAL)
  dispatcher = _recording_dispatcher()
  trigger = _trigger(prayers, dispatcher)

  assert await trigger.on_prayer_answered("t1", "p1") is None
  assert await trigger.on_prayer_answered("t1", "missing") is None
  assert await trigger.on_prayer_answered("t2", "p1") is None
  dispatcher.dispatch.assert_not_awaited()


@pytest.fixture
def journals(directory):
  directory.journals["j1"] = PastoralJournal(id="j1", tenant_id="t1", small_group_id="g1", author_id="leader", status=JournalStatus.SUBMITTED)
  directory.groups["g1"] = SmallGroup(id="g1", tenant_id="t1", name="Grace Group", zone_id="z1")
  directory.zone_leaders["z1"] = "zoner"
  directory.pastors["t1"] = ["pastor-1", "pastor-2"]
  directory.names.update({"leader": "Lee", "zoner": "Zoe"})
  return directory


@pytest.mark.anyio
async def test_journal_submitted_notifies_zone_leader(journals):
  dispatcher = _recording_dispatcher()

  await _trigger(journals, dispatcher).on_pastoral_journal_change("t1", "j1", "draft", "submitted")

  requests = dispatcher.dispatch.await_args.args[1]
  assert [request.user_id for request in requests] == ["zoner"]
  assert requests[0].title == "Pastoral Journal Submitted"
  assert requests[0].body == "Lee submitted a journal for Grace Group"
  assert requests[0].data == {"type": "pastoral_journal_submitted", "journal_id": "j1", "tenant_id": "t1", "small_group_id": "g1"}


@pytest.mark.anyio
async def test_journal_forwarded_notifies_pastors(journals):
  dispatcher = _recording_dispatcher()

  await _trigger(journals, dispatcher).on_pastoral_journal_change("t1", "j1", JournalStatus.SUBMITTED, JournalStatus.ZONE_REVIEWED)

  requests = dispatcher.dispatch.await_args.args[1]
  assert [request.user_id for request in requests] == ["pastor-1", "pastor-2"]
  assert requests[0].title == "Journal Ready for Review"
  assert requests[0].body == "Zoe forwarded Grace Group's journal"


@pytest.mark.anyio
async def test_journal_forwarded_without_zone_uses_default_name(journals):
  journals.groups["g1"] = SmallGroup(id="g1", tenant_id="t1", name="Grace Group")
  dispatcher = _recording_dispatcher()

  await _trigger(journals, dispatcher).on_pastoral_journal_change("t1", "j1", "submitted", "zone_reviewed")

  assert dispatcher.dispatch.await_args.args[1][0].body == "A zone leader forwarded Grace Group's journal"


@pytest.mark.anyio
async def test_journal_confirmed_notifies_author(journals):
  dispatcher = _recording_dispatcher()

  await _trigger(journals, dispatcher).on_pastoral_journal_change("t1", "j1", "zone_reviewed", "pastor_confirmed")

  requests = dispatcher.dispatch.await_args.args[1]
  assert [request.user_id for request in requests] == ["leader"]
  assert requests[0].title == "Pastoral Journal Confirmed"
  assert requests[0].body == "Pastor has reviewed your journal"


@pytest.mark.anyio
async def test_submitted_without_zone_leader_is_skipped(journals):
  journals.zone_leaders.clear()
  dispatcher = _recording_dispatcher()

  assert await _trigger(journals, dispatcher).on_pastoral_journal_change("t1", "j1", "draft", "submitted") is None
  dispatcher.dispatch.assert_not_awaited()


@pytest.mark.anyio
@pytest.mark.parametrize(("old_status", "new_status"), [("submitted", "draft"), ("pastor_confirmed", "archived"), ("draft", "bogus")])
async def test_other_transitions_are_ignored(journals, old_status, new_status):
  dispatcher = _recording_dispatcher()

  assert await _trigger(journals, dispatcher).on_pastoral_journal_change("t1", "j1", old_status, new_status) is None
  dispatcher.dispatch.assert_not_awaited()
