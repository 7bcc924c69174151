"""Turn domain events into push dispatch requests."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from flockpush.notifications.contracts import CommunityDirectory, NotFoundError, RateLimitExceeded
from flockpush.notifications.dispatcher import PushDispatcher
from flockpush.notifications.models import DispatchResult, JournalStatus, MessageEvent, NotificationType, PrayerScope, PushPriority, PushRequest
from flockpush.notifications.recipients import preview, resolve_recipients

logger = logging.getLogger(__name__)

DEFAULT_SENDER_NAME = "Someone"
DEFAULT_LEADER_NAME = "A leader"
DEFAULT_ZONE_LEADER_NAME = "A zone leader"
DEFAULT_GROUP_NAME = "your small group"


class NotificationTrigger:
  """Entry point for write paths; every public method is best-effort and never raises."""

  def __init__(self, *, directory: CommunityDirectory, dispatcher: PushDispatcher) -> None:
    self._directory = directory
    self._dispatcher = dispatcher

  async def on_message(self, event: MessageEvent) -> DispatchResult | None:
    """Notify conversation members about a new message.

    Returns the dispatch result, or None when nothing was dispatched.
    """
    logger.info("Message notification received tenant_id=%s conversation_id=%s message_id=%s", event.tenant_id, event.conversation_id, event.id)
    try:
      conversation = await self._directory.get_conversation(tenant_id=event.tenant_id, conversation_id=event.conversation_id)
      participants = await self._directory.list_participants(conversation_id=event.conversation_id) if conversation is not None else []
      exclusions = await self._directory.list_exclusions(conversation_id=event.conversation_id) if conversation is not None and conversation.is_exclusion_bearing else []
      recipients = resolve_recipients(event, conversation, participants, exclusions)
    except NotFoundError as exc:
      logger.warning("Skipping message notification: %s", exc)
      return None
    except Exception as exc:  # noqa: BLE001
      logger.error("Recipient lookup failed message_id=%s error=%s", event.id, exc, exc_info=True)
      return None

    logger.info("Recipients resolved message_id=%s mention=%d regular=%d", event.id, len(recipients.mention), len(recipients.regular))
    if recipients.is_empty:
      return None

    sender_name = await self._display_name(tenant_id=event.tenant_id, user_id=event.sender_id, default=DEFAULT_SENDER_NAME)
    body = preview(event)

    # Each recipient lands in exactly one set, so nobody gets both kinds.
    requests = [PushRequest(user_id=user_id, title=f"Mentioned by {sender_name}", body=body, data=_message_data(event, NotificationType.MENTION), priority=PushPriority.HIGH) for user_id in sorted(recipients.mention)]
    requests += [PushRequest(user_id=user_id, title=sender_name, body=body, data=_message_data(event, NotificationType.NEW_MESSAGE), priority=PushPriority.NORMAL) for user_id in sorted(recipients.regular)]

    kind = NotificationType.MENTION if not recipients.regular else NotificationType.NEW_MESSAGE
    return await self._dispatch(tenant_id=event.tenant_id, requests=requests, kind=kind)

  async def on_prayer_answered(self, tenant_id: str, prayer_card_id: str) -> DispatchResult | None:
    """Tell the prayer card's audience that the prayer was answered."""
    logger.info("Prayer answered notification received tenant_id=%s prayer_card_id=%s", tenant_id, prayer_card_id)
    try:
      card = await self._directory.get_prayer_card(tenant_id=tenant_id, prayer_card_id=prayer_card_id)
      if card is None:
        logger.warning("Skipping prayer notification: prayer card %s not found for tenant %s", prayer_card_id, tenant_id)
        return None
      if card.answered_at is None:
        logger.info("Skipping prayer notification: prayer card %s is not answered", prayer_card_id)
        return None

      if card.scope == PrayerScope.INDIVIDUAL:
        audience = {card.author_id}
      elif card.scope == PrayerScope.SMALL_GROUP:
        audience = {card.author_id}
        if card.small_group_id:
          audience.update(await self._directory.list_small_group_members(tenant_id=tenant_id, small_group_id=card.small_group_id))
      else:
        audience = set(await self._directory.list_tenant_members(tenant_id=tenant_id))
    except Exception as exc:  # noqa: BLE001
      logger.error("Prayer audience lookup failed prayer_card_id=%s error=%s", prayer_card_id, exc, exc_info=True)
      return None

    if not audience:
      return None

    author_name = await self._display_name(tenant_id=tenant_id, user_id=card.author_id, default=DEFAULT_SENDER_NAME)
    data = {"type": NotificationType.PRAYER_ANSWERED.value, "prayer_card_id": card.id, "tenant_id": tenant_id}
    requests = [PushRequest(user_id=user_id, title="Prayer Answered", body=f"{author_name}'s prayer has been answered", data=data) for user_id in sorted(audience)]
    return await self._dispatch(tenant_id=tenant_id, requests=requests, kind=NotificationType.PRAYER_ANSWERED)

  async def on_pastoral_journal_change(self, tenant_id: str, journal_id: str, old_status: JournalStatus | str, new_status: JournalStatus | str) -> DispatchResult | None:
    """Notify the next reviewer (or the author) when a journal moves along its workflow."""
    try:
      transition = (JournalStatus(old_status), JournalStatus(new_status))
    except ValueError:
      logger.warning("Skipping journal notification: unknown status transition %s->%s", old_status, new_status)
      return None
    logger.info("Journal notification received tenant_id=%s journal_id=%s transition=%s->%s", tenant_id, journal_id, transition[0].value, transition[1].value)
    if transition not in _JOURNAL_TRANSITIONS:
      logger.debug("No notification for journal transition %s->%s", transition[0].value, transition[1].value)
      return None

    try:
      journal = await self._directory.get_pastoral_journal(tenant_id=tenant_id, journal_id=journal_id)
      if journal is None:
        logger.warning("Skipping journal notification: journal %s not found for tenant %s", journal_id, tenant_id)
        return None
      group = await self._directory.get_small_group(tenant_id=tenant_id, small_group_id=journal.small_group_id)
      zone_leader_id = None
      if group is not None and group.zone_id:
        zone_leader_id = await self._directory.get_zone_leader(tenant_id=tenant_id, zone_id=group.zone_id)

      group_name = group.name if group is not None else DEFAULT_GROUP_NAME
      kind = _JOURNAL_TRANSITIONS[transition]
      if kind == NotificationType.PASTORAL_JOURNAL_SUBMITTED:
        if zone_leader_id is None:
          logger.info("Skipping journal notification: no zone leader for journal %s", journal_id)
          return None
        audience = [zone_leader_id]
        leader_name = await self._display_name(tenant_id=tenant_id, user_id=journal.author_id, default=DEFAULT_LEADER_NAME)
        title, body = "Pastoral Journal Submitted", f"{leader_name} submitted a journal for {group_name}"
      elif kind == NotificationType.PASTORAL_JOURNAL_FORWARDED:
        audience = await self._directory.list_pastors(tenant_id=tenant_id)
        zone_leader_name = DEFAULT_ZONE_LEADER_NAME
        if zone_leader_id is not None:
          zone_leader_name = await self._display_name(tenant_id=tenant_id, user_id=zone_leader_id, default=DEFAULT_ZONE_LEADER_NAME)
        title, body = "Journal Ready for Review", f"{zone_leader_name} forwarded {group_name}'s journal"
      else:
        audience = [journal.author_id]
        title, body = "Pastoral Journal Confirmed", "Pastor has reviewed your journal"
    except Exception as exc:  # noqa: BLE001
      logger.error("Journal audience lookup failed journal_id=%s error=%s", journal_id, exc, exc_info=True)
      return None

    if not audience:
      return None

    data = {"type": kind.value, "journal_id": journal.id, "tenant_id": tenant_id, "small_group_id": journal.small_group_id}
    requests = [PushRequest(user_id=user_id, title=title, body=body, data=data) for user_id in sorted(set(audience))]
    return await self._dispatch(tenant_id=tenant_id, requests=requests, kind=kind)

  async def _display_name(self, *, tenant_id: str, user_id: str, default: str) -> str:
    try:
      name = await self._directory.get_display_name(tenant_id=tenant_id, user_id=user_id)
    except Exception as exc:  # noqa: BLE001
      logger.warning("Display name lookup failed user_id=%s error=%s", user_id, exc)
      return default
    return name or default

  async def _dispatch(self, *, tenant_id: str, requests: Sequence[PushRequest], kind: NotificationType) -> DispatchResult | None:
    try:
      result = await self._dispatcher.dispatch(tenant_id, requests, notification_type=kind)
    except RateLimitExceeded as exc:
      logger.warning("Dropping %s notification: %s", kind.value, exc)
      return None
    except Exception as exc:  # noqa: BLE001
      logger.error("Push dispatch failed tenant_id=%s type=%s error=%s", tenant_id, kind.value, exc, exc_info=True)
      return None

    if result.errors:
      logger.warning("Push dispatch finished with errors tenant_id=%s type=%s sent=%d failed=%d first_error=%s", tenant_id, kind.value, result.sent_count, result.failed_count, result.errors[0])
    return result


_JOURNAL_TRANSITIONS = {
  (JournalStatus.DRAFT, JournalStatus.SUBMITTED): NotificationType.PASTORAL_JOURNAL_SUBMITTED,
  (JournalStatus.SUBMITTED, JournalStatus.ZONE_REVIEWED): NotificationType.PASTORAL_JOURNAL_FORWARDED,
  (JournalStatus.ZONE_REVIEWED, JournalStatus.PASTOR_CONFIRMED): NotificationType.PASTORAL_JOURNAL_CONFIRMED,
}


def _message_data(event: MessageEvent, kind: NotificationType) -> dict[str, str]:
  data = {"type": kind.value, "conversation_id": event.conversation_id, "tenant_id": event.tenant_id, "message_id": event.id}
  if event.thread_id:
    data["thread_id"] = event.thread_id
  return data
