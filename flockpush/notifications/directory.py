"""Read-only access to community data owned by the main application."""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from flockpush.core.database import get_session_factory
from flockpush.notifications.models import Conversation, ConversationKind, ConversationMembership, ExclusionRecord, JournalStatus, PastoralJournal, PrayerCard, PrayerScope, SmallGroup
from flockpush.schema.community import conversation_members, conversations, event_chat_exclusions, memberships, pastoral_journals, prayer_cards, small_groups, users, zones

logger = logging.getLogger(__name__)

_ACTIVE = "active"
_PASTOR_ROLE = "pastor"


class SqlCommunityDirectory:
  """Query the shared Postgres schema; returns empty results when no database is configured."""

  async def get_conversation(self, *, tenant_id: str, conversation_id: str) -> Conversation | None:
    session_factory = get_session_factory()
    if session_factory is None:
      return None

    async with session_factory() as session:
      stmt = select(conversations.c.id, conversations.c.tenant_id, conversations.c.type, conversations.c.name).where(conversations.c.id == conversation_id, conversations.c.tenant_id == tenant_id)
      row = (await session.execute(stmt)).first()
    if row is None:
      return None
    return Conversation(id=str(row.id), tenant_id=str(row.tenant_id), kind=ConversationKind(row.type), name=row.name)

  async def list_participants(self, *, conversation_id: str) -> list[ConversationMembership]:
    session_factory = get_session_factory()
    if session_factory is None:
      return []

    async with session_factory() as session:
      stmt = select(conversation_members.c.conversation_id, conversation_members.c.user_id, conversation_members.c.joined_at, conversation_members.c.left_at).where(conversation_members.c.conversation_id == conversation_id)
      rows = (await session.execute(stmt)).all()
    return [ConversationMembership(conversation_id=str(row.conversation_id), user_id=str(row.user_id), joined_at=row.joined_at, left_at=row.left_at) for row in rows]

  async def list_exclusions(self, *, conversation_id: str) -> list[ExclusionRecord]:
    session_factory = get_session_factory()
    if session_factory is None:
      return []

    async with session_factory() as session:
      stmt = select(event_chat_exclusions.c.conversation_id, event_chat_exclusions.c.user_id).where(event_chat_exclusions.c.conversation_id == conversation_id)
      rows = (await session.execute(stmt)).all()
    return [ExclusionRecord(conversation_id=str(row.conversation_id), user_id=str(row.user_id)) for row in rows]

  async def get_display_name(self, *, tenant_id: str, user_id: str) -> str | None:
    session_factory = get_session_factory()
    if session_factory is None:
      return None

    async with session_factory() as session:
      # Join through memberships so a name is only returned for members of the tenant.
      stmt = select(users.c.display_name).join(memberships, memberships.c.user_id == users.c.id).where(users.c.id == user_id, memberships.c.tenant_id == tenant_id).limit(1)
      return (await session.execute(stmt)).scalar_one_or_none()

  async def get_prayer_card(self, *, tenant_id: str, prayer_card_id: str) -> PrayerCard | None:
    session_factory = get_session_factory()
    if session_factory is None:
      return None

    async with session_factory() as session:
      stmt = select(prayer_cards).where(prayer_cards.c.id == prayer_card_id, prayer_cards.c.tenant_id == tenant_id)
      row = (await session.execute(stmt)).first()
    if row is None:
      return None
    return PrayerCard(
      id=str(row.id),
      tenant_id=str(row.tenant_id),
      author_id=str(row.author_id),
      scope=PrayerScope(row.recipient_scope),
      small_group_id=str(row.small_group_id) if row.small_group_id else None,
      answered_at=row.answered_at,
    )

  async def list_small_group_members(self, *, tenant_id: str, small_group_id: str) -> list[str]:
    return await self._list_member_ids(tenant_id=tenant_id, small_group_id=small_group_id)

  async def list_tenant_members(self, *, tenant_id: str) -> list[str]:
    return await self._list_member_ids(tenant_id=tenant_id)

  async def list_pastors(self, *, tenant_id: str) -> list[str]:
    return await self._list_member_ids(tenant_id=tenant_id, role=_PASTOR_ROLE)

  async def _list_member_ids(self, *, tenant_id: str, small_group_id: str | None = None, role: str | None = None) -> list[str]:
    session_factory = get_session_factory()
    if session_factory is None:
      return []

    async with session_factory() as session:
      return await self._list_member_ids_with_session(session=session, tenant_id=tenant_id, small_group_id=small_group_id, role=role)

  async def _list_member_ids_with_session(self, *, session: AsyncSession, tenant_id: str, small_group_id: str | None, role: str | None) -> list[str]:
    stmt = select(memberships.c.user_id).where(memberships.c.tenant_id == tenant_id, memberships.c.status == _ACTIVE)
    if small_group_id is not None:
      stmt = stmt.where(memberships.c.small_group_id == small_group_id)
    if role is not None:
      stmt = stmt.where(memberships.c.role == role)
    rows = (await session.execute(stmt)).scalars().all()
    return sorted({str(user_id) for user_id in rows})

  async def get_pastoral_journal(self, *, tenant_id: str, journal_id: str) -> PastoralJournal | None:
    session_factory = get_session_factory()
    if session_factory is None:
      return None

    async with session_factory() as session:
      stmt = select(pastoral_journals).where(pastoral_journals.c.id == journal_id, pastoral_journals.c.tenant_id == tenant_id)
      row = (await session.execute(stmt)).first()
    if row is None:
      return None
    return PastoralJournal(id=str(row.id), tenant_id=str(row.tenant_id), small_group_id=str(row.small_group_id), author_id=str(row.author_id), status=JournalStatus(row.status))

  async def get_small_group(self, *, tenant_id: str, small_group_id: str) -> SmallGroup | None:
    session_factory = get_session_factory()
    if session_factory is None:
      return None

    async with session_factory() as session:
      stmt = select(small_groups).where(small_groups.c.id == small_group_id, small_groups.c.tenant_id == tenant_id)
      row = (await session.execute(stmt)).first()
    if row is None:
      return None
    return SmallGroup(id=str(row.id), tenant_id=str(row.tenant_id), name=row.name, zone_id=str(row.zone_id) if row.zone_id else None)

  async def get_zone_leader(self, *, tenant_id: str, zone_id: str) -> str | None:
    session_factory = get_session_factory()
    if session_factory is None:
      return None

    async with session_factory() as session:
      stmt = select(zones.c.zone_leader_id).where(zones.c.id == zone_id, zones.c.tenant_id == tenant_id)
      leader_id = (await session.execute(stmt)).scalar_one_or_none()
    if leader_id is None:
      logger.debug("Zone has no leader tenant_id=%s zone_id=%s", tenant_id, zone_id)
      return None
    return str(leader_id)
