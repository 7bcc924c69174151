"""Recipient resolution and message preview shaping for chat events."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from flockpush.notifications.contracts import NotFoundError
from flockpush.notifications.models import ContentKind, Conversation, ConversationMembership, ExclusionRecord, MessageEvent, Recipient, RecipientPriority

PREVIEW_MAX_CHARS = 100
MEDIA_PLACEHOLDER = "[Attachment]"
PRAYER_CARD_PLACEHOLDER = "[Prayer Card]"
SYSTEM_PLACEHOLDER = "[System]"

_PLACEHOLDERS = {ContentKind.MEDIA: MEDIA_PLACEHOLDER, ContentKind.PRAYER_CARD: PRAYER_CARD_PLACEHOLDER, ContentKind.SYSTEM: SYSTEM_PLACEHOLDER}


@dataclass(frozen=True)
class RecipientSets:
  """Disjoint audiences for one message."""

  mention: frozenset[str] = frozenset()
  regular: frozenset[str] = frozenset()

  @property
  def is_empty(self) -> bool:
    return not self.mention and not self.regular

  def recipients(self) -> list[Recipient]:
    mention = [Recipient(user_id=user_id, priority=RecipientPriority.MENTION) for user_id in sorted(self.mention)]
    regular = [Recipient(user_id=user_id, priority=RecipientPriority.REGULAR) for user_id in sorted(self.regular)]
    return mention + regular


def resolve_recipients(event: MessageEvent, conversation: Conversation | None, participants: Iterable[ConversationMembership], exclusions: Iterable[ExclusionRecord]) -> RecipientSets:
  """Split the active, non-sender participants into mention and regular sets.

  Raises NotFoundError when the conversation does not exist for the event's
  tenant. An empty result means there is nobody to notify and the caller
  must not dispatch.
  """
  if conversation is None or conversation.id != event.conversation_id or conversation.tenant_id != event.tenant_id:
    raise NotFoundError(f"Conversation {event.conversation_id} not found for tenant {event.tenant_id}")

  active = {member.user_id for member in participants if member.conversation_id == conversation.id and member.left_at is None and member.user_id != event.sender_id}

  # Opt-outs only apply to event chats; other conversation kinds ignore them.
  if conversation.is_exclusion_bearing:
    active -= {record.user_id for record in exclusions if record.conversation_id == conversation.id}

  mention = frozenset(active & set(event.mentioned_user_ids))
  regular = frozenset(active - mention)
  return RecipientSets(mention=mention, regular=regular)


def preview(event: MessageEvent) -> str:
  """Notification body for a message: placeholder for non-text, else truncated text."""
  placeholder = _PLACEHOLDERS.get(event.content_kind)
  if placeholder is not None:
    return placeholder

  content = event.content or ""
  if len(content) > PREVIEW_MAX_CHARS:
    return content[:PREVIEW_MAX_CHARS] + "..."
  return content
