"""Token store implementations for device push tokens."""

from __future__ import annotations

import datetime
import logging
from collections.abc import Iterable
from dataclasses import replace

from sqlalchemy import delete, select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from flockpush.core.database import get_session_factory
from flockpush.notifications.models import DeviceToken, Platform
from flockpush.schema.device_tokens import DeviceTokenRow

logger = logging.getLogger(__name__)


def _utc_now() -> datetime.datetime:
  return datetime.datetime.now(datetime.UTC)


def _to_device_token(row: DeviceTokenRow) -> DeviceToken:
  return DeviceToken(tenant_id=row.tenant_id, user_id=row.user_id, token=row.token, platform=Platform(row.platform), last_used_at=row.last_used_at, revoked_at=row.revoked_at)


class SqlTokenStore:
  """Persist device tokens in Postgres; every query is filtered by tenant."""

  def _session_factory(self):  # type: ignore
    session_factory = get_session_factory()
    if session_factory is None:
      raise RuntimeError("Database connection is not configured (FLOCKPUSH_PG_DSN is missing).")
    return session_factory

  async def upsert_token(self, token: DeviceToken) -> None:
    """Insert or refresh a token row keyed by (tenant_id, token)."""
    async with self._session_factory()() as session:
      await self._upsert_with_session(session=session, token=token)

  async def _upsert_with_session(self, *, session: AsyncSession, token: DeviceToken) -> None:
    # Re-registering a rotated or re-installed token clears any earlier revocation.
    values = {"tenant_id": token.tenant_id, "user_id": token.user_id, "token": token.token, "platform": token.platform.value, "last_used_at": token.last_used_at, "revoked_at": None}
    stmt = insert(DeviceTokenRow).values(**values)
    stmt = stmt.on_conflict_do_update(index_elements=["tenant_id", "token"], set_={"user_id": token.user_id, "platform": token.platform.value, "last_used_at": token.last_used_at, "revoked_at": None})
    await session.execute(stmt)
    await session.commit()

  async def revoke_token(self, *, tenant_id: str, user_id: str, token: str, revoked_at: datetime.datetime) -> bool:
    """Set revoked_at on the matching active row."""
    async with self._session_factory()() as session:
      return await self._revoke_with_session(session=session, tenant_id=tenant_id, user_id=user_id, token=token, revoked_at=revoked_at)

  async def _revoke_with_session(self, *, session: AsyncSession, tenant_id: str, user_id: str, token: str, revoked_at: datetime.datetime) -> bool:
    # Already revoked rows keep their original timestamp.
    stmt = update(DeviceTokenRow).where(DeviceTokenRow.tenant_id == tenant_id, DeviceTokenRow.user_id == user_id, DeviceTokenRow.token == token, DeviceTokenRow.revoked_at.is_(None)).values(revoked_at=revoked_at)
    result = await session.execute(stmt)
    await session.commit()
    return bool(result.rowcount)

  async def list_active_tokens(self, *, tenant_id: str, user_ids: Iterable[str], active_since: datetime.datetime | None = None) -> list[DeviceToken]:
    """List unrevoked tokens for the given users inside one tenant."""
    wanted = sorted(set(user_ids))
    if not wanted:
      return []

    async with self._session_factory()() as session:
      return await self._list_active_with_session(session=session, tenant_id=tenant_id, user_ids=wanted, active_since=active_since)

  async def _list_active_with_session(self, *, session: AsyncSession, tenant_id: str, user_ids: list[str], active_since: datetime.datetime | None) -> list[DeviceToken]:
    stmt = select(DeviceTokenRow).where(DeviceTokenRow.tenant_id == tenant_id, DeviceTokenRow.user_id.in_(user_ids), DeviceTokenRow.revoked_at.is_(None))
    if active_since is not None:
      stmt = stmt.where(DeviceTokenRow.last_used_at >= active_since)
    result = await session.execute(stmt)
    return [_to_device_token(row) for row in result.scalars().all()]

  async def delete_token(self, *, tenant_id: str, token: str) -> None:
    """Delete a token reported invalid by the gateway."""
    async with self._session_factory()() as session:
      await session.execute(delete(DeviceTokenRow).where(DeviceTokenRow.tenant_id == tenant_id, DeviceTokenRow.token == token))
      await session.commit()

  async def delete_stale_tokens(self, *, tenant_id: str, older_than: datetime.datetime) -> int:
    """Remove tokens that have not been refreshed since older_than."""
    async with self._session_factory()() as session:
      result = await session.execute(delete(DeviceTokenRow).where(DeviceTokenRow.tenant_id == tenant_id, DeviceTokenRow.last_used_at < older_than))
      await session.commit()
      return int(result.rowcount or 0)


class InMemoryTokenStore:
  """Process-local token store with the same semantics as SqlTokenStore."""

  def __init__(self, tokens: Iterable[DeviceToken] = ()) -> None:
    self._rows: dict[tuple[str, str], DeviceToken] = {}
    for token in tokens:
      self._rows[(token.tenant_id, token.token)] = token

  async def upsert_token(self, token: DeviceToken) -> None:
    self._rows[(token.tenant_id, token.token)] = replace(token, revoked_at=None)

  async def revoke_token(self, *, tenant_id: str, user_id: str, token: str, revoked_at: datetime.datetime) -> bool:
    row = self._rows.get((tenant_id, token))
    if row is None or row.user_id != user_id or row.revoked_at is not None:
      return False
    self._rows[(tenant_id, token)] = replace(row, revoked_at=revoked_at)
    return True

  async def list_active_tokens(self, *, tenant_id: str, user_ids: Iterable[str], active_since: datetime.datetime | None = None) -> list[DeviceToken]:
    wanted = set(user_ids)
    rows = [row for (row_tenant, _), row in self._rows.items() if row_tenant == tenant_id and row.user_id in wanted and row.is_active]
    if active_since is not None:
      rows = [row for row in rows if row.last_used_at >= active_since]
    return rows

  async def delete_token(self, *, tenant_id: str, token: str) -> None:
    self._rows.pop((tenant_id, token), None)

  async def delete_stale_tokens(self, *, tenant_id: str, older_than: datetime.datetime) -> int:
    stale = [key for key, row in self._rows.items() if key[0] == tenant_id and row.last_used_at < older_than]
    for key in stale:
      del self._rows[key]
    return len(stale)

  def get(self, *, tenant_id: str, token: str) -> DeviceToken | None:
    """Return the stored row, revoked or not."""
    return self._rows.get((tenant_id, token))

  def all_tokens(self) -> list[DeviceToken]:
    return list(self._rows.values())


async def sweep_stale_tokens(store: SqlTokenStore | InMemoryTokenStore, *, tenant_id: str, stale_days: int, now: datetime.datetime | None = None) -> int:
  """Out-of-band cleanup of tokens nobody has refreshed within stale_days."""
  cutoff = (now or _utc_now()) - datetime.timedelta(days=stale_days)
  removed = await store.delete_stale_tokens(tenant_id=tenant_id, older_than=cutoff)
  logger.info("Stale token sweep tenant_id=%s removed=%d cutoff=%s", tenant_id, removed, cutoff.isoformat())
  return removed
