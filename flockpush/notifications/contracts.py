"""Contracts for the push notification pipeline and its collaborators."""

from __future__ import annotations

import datetime
from collections.abc import Iterable, Sequence
from typing import Protocol

from flockpush.notifications.models import Conversation, ConversationMembership, DeviceToken, ExclusionRecord, PastoralJournal, PrayerCard, PushMessage, PushTicket, SmallGroup


class NotificationError(Exception):
  """Base class for all notification pipeline failures."""


class PermissionDenied(NotificationError):
  """Raised when the user declines notification permission."""


class TransientFetchError(NotificationError):
  """Raised when the platform could not hand out a push token."""


class BackendWriteError(NotificationError):
  """Raised when the token store rejects a write."""


class NotFoundError(NotificationError):
  """Raised when the conversation or event behind a trigger does not exist."""


class GatewayUnavailable(NotificationError):
  """Raised when a whole gateway batch call fails at the transport level."""


class RateLimitExceeded(NotificationError):
  """Raised when a tenant has exhausted its dispatch budget for the current window."""

  def __init__(self, tenant_id: str, retry_after_seconds: int) -> None:
    super().__init__(f"Rate limit exceeded for tenant {tenant_id}. Retry after {retry_after_seconds} seconds.")
    self.tenant_id = tenant_id
    self.retry_after_seconds = retry_after_seconds


class TokenStore(Protocol):
  """Tenant-scoped persistence for device push tokens."""

  async def upsert_token(self, token: DeviceToken) -> None:
    """Insert or refresh a token keyed by (tenant_id, token), clearing any revocation."""

  async def revoke_token(self, *, tenant_id: str, user_id: str, token: str, revoked_at: datetime.datetime) -> bool:
    """Mark a token revoked; return False when nothing active matched."""

  async def list_active_tokens(self, *, tenant_id: str, user_ids: Iterable[str], active_since: datetime.datetime | None = None) -> list[DeviceToken]:
    """List unrevoked tokens for users inside one tenant."""

  async def delete_token(self, *, tenant_id: str, token: str) -> None:
    """Delete a token inside one tenant."""

  async def delete_stale_tokens(self, *, tenant_id: str, older_than: datetime.datetime) -> int:
    """Delete tokens not used since older_than and return how many were removed."""


class PushGateway(Protocol):
  """Delivery contract for the batch push gateway."""

  async def send(self, messages: Sequence[PushMessage]) -> list[PushTicket]:
    """Send one batch and return tickets aligned with the input order."""

  async def aclose(self) -> None:
    """Release transport resources."""


class CommunityDirectory(Protocol):
  """Read-only view of the community data the triggers need."""

  async def get_conversation(self, *, tenant_id: str, conversation_id: str) -> Conversation | None: ...

  async def list_participants(self, *, conversation_id: str) -> list[ConversationMembership]: ...

  async def list_exclusions(self, *, conversation_id: str) -> list[ExclusionRecord]: ...

  async def get_display_name(self, *, tenant_id: str, user_id: str) -> str | None: ...

  async def get_prayer_card(self, *, tenant_id: str, prayer_card_id: str) -> PrayerCard | None: ...

  async def list_small_group_members(self, *, tenant_id: str, small_group_id: str) -> list[str]: ...

  async def list_tenant_members(self, *, tenant_id: str) -> list[str]: ...

  async def get_pastoral_journal(self, *, tenant_id: str, journal_id: str) -> PastoralJournal | None: ...

  async def get_small_group(self, *, tenant_id: str, small_group_id: str) -> SmallGroup | None: ...

  async def get_zone_leader(self, *, tenant_id: str, zone_id: str) -> str | None: ...

  async def list_pastors(self, *, tenant_id: str) -> list[str]: ...
