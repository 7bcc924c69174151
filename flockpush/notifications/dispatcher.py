"""Batched push delivery with invalid-token pruning."""

from __future__ import annotations

import datetime
import logging
from collections.abc import Callable, Sequence
from typing import TypeVar

from flockpush.config import GATEWAY_MAX_BATCH_SIZE
from flockpush.notifications.contracts import GatewayUnavailable, PushGateway, TokenStore
from flockpush.notifications.dispatch_log_repo import DispatchLogEntry, DispatchLogRepository, NullDispatchLogRepository
from flockpush.notifications.models import DeviceToken, DispatchResult, NotificationType, PushMessage, PushRequest, PushTicket
from flockpush.notifications.rate_limit import TenantRateLimiter

logger = logging.getLogger(__name__)

# Upper bound on errors persisted per audit row.
_MAX_LOGGED_ERRORS = 20

T = TypeVar("T")


def _utc_now() -> datetime.datetime:
  return datetime.datetime.now(datetime.UTC)


def chunked(items: Sequence[T], size: int) -> list[Sequence[T]]:
  """Split items into consecutive chunks of at most size entries."""
  if size < 1:
    raise ValueError("size must be >= 1")
  return [items[start : start + size] for start in range(0, len(items), size)]


class PushDispatcher:
  """Resolve tenant-scoped tokens for push requests and deliver them in batches."""

  def __init__(
    self,
    *,
    store: TokenStore,
    gateway: PushGateway,
    rate_limiter: TenantRateLimiter,
    dispatch_log: DispatchLogRepository | None = None,
    batch_size: int = GATEWAY_MAX_BATCH_SIZE,
    token_stale_days: int | None = 90,
    clock: Callable[[], datetime.datetime] = _utc_now,
  ) -> None:
    if not 1 <= batch_size <= GATEWAY_MAX_BATCH_SIZE:
      raise ValueError(f"batch_size must be between 1 and {GATEWAY_MAX_BATCH_SIZE}")
    self._store = store
    self._gateway = gateway
    self._rate_limiter = rate_limiter
    self._dispatch_log = dispatch_log or NullDispatchLogRepository()
    self._batch_size = batch_size
    self._token_stale_days = token_stale_days
    self._clock = clock

  async def dispatch(self, tenant_id: str, requests: Sequence[PushRequest], *, notification_type: NotificationType | str = NotificationType.NEW_MESSAGE) -> DispatchResult:
    """Deliver requests to every active device of their users inside tenant_id.

    Raises RateLimitExceeded when the tenant's budget is spent and ValueError
    for an unknown notification type; per-message and per-batch gateway
    failures are reported in the result instead.
    """
    kind = NotificationType(notification_type)
    if not requests:
      return DispatchResult()

    self._rate_limiter.acquire(tenant_id)

    pairs = await self._build_messages(tenant_id=tenant_id, requests=requests)
    if not pairs:
      logger.info("No active device tokens tenant_id=%s type=%s users=%d", tenant_id, kind.value, len(requests))
      result = DispatchResult()
      await self._record(tenant_id=tenant_id, kind=kind, recipient_count=0, result=result)
      return result

    sent = 0
    failed = 0
    errors: list[str] = []
    invalid_tokens: list[str] = []

    for batch in chunked(pairs, self._batch_size):
      messages = [message for message, _ in batch]
      try:
        tickets = await self._gateway.send(messages)
      except GatewayUnavailable as exc:
        # The whole batch is lost; the next triggering event is the retry.
        failed += len(batch)
        errors.append(f"Batch of {len(batch)} failed: {exc}")
        logger.error("Push gateway batch failed tenant_id=%s size=%d error=%s", tenant_id, len(batch), exc)
        continue
      except Exception as exc:  # noqa: BLE001
        failed += len(batch)
        errors.append(f"Batch of {len(batch)} failed: {exc}")
        logger.error("Push gateway batch raised tenant_id=%s size=%d error=%s", tenant_id, len(batch), exc, exc_info=True)
        continue

      for index, (_, token) in enumerate(batch):
        ticket: PushTicket | None = tickets[index] if index < len(tickets) else None
        if ticket is None:
          failed += 1
          errors.append("Gateway returned no ticket for message")
          continue
        if ticket.ok:
          sent += 1
          continue

        failed += 1
        errors.append(ticket.error_text)
        if ticket.is_device_not_registered:
          invalid_tokens.append(token.token)

    pruned = await self._prune(tenant_id=tenant_id, tokens=invalid_tokens)
    result = DispatchResult(sent_count=sent, failed_count=failed, errors=tuple(errors), pruned_tokens=tuple(pruned))
    logger.info("Push dispatch complete tenant_id=%s type=%s messages=%d sent=%d failed=%d pruned=%d", tenant_id, kind.value, len(pairs), sent, failed, len(pruned))
    await self._record(tenant_id=tenant_id, kind=kind, recipient_count=len(pairs), result=result)
    return result

  async def _build_messages(self, *, tenant_id: str, requests: Sequence[PushRequest]) -> list[tuple[PushMessage, DeviceToken]]:
    """Expand per-user requests into one message per active device token."""
    by_user: dict[str, PushRequest] = {}
    for request in requests:
      if request.user_id in by_user:
        logger.debug("Dropping duplicate push request tenant_id=%s user_id=%s", tenant_id, request.user_id)
        continue
      by_user[request.user_id] = request

    active_since = None
    if self._token_stale_days is not None:
      active_since = self._clock() - datetime.timedelta(days=self._token_stale_days)

    tokens = await self._store.list_active_tokens(tenant_id=tenant_id, user_ids=list(by_user), active_since=active_since)

    pairs: list[tuple[PushMessage, DeviceToken]] = []
    seen: set[str] = set()
    for token in tokens:
      # Store implementations filter by tenant; re-check so a faulty one cannot leak across tenants.
      if token.tenant_id != tenant_id or not token.is_active or token.token in seen:
        continue
      request = by_user.get(token.user_id)
      if request is None:
        continue
      seen.add(token.token)
      message = PushMessage(to=token.token, title=request.title, body=request.body, data=request.data, sound=request.sound, priority=request.priority)
      pairs.append((message, token))
    return pairs

  async def _prune(self, *, tenant_id: str, tokens: list[str]) -> list[str]:
    pruned: list[str] = []
    for token in tokens:
      try:
        await self._store.delete_token(tenant_id=tenant_id, token=token)
      except Exception as exc:  # noqa: BLE001
        logger.error("Failed deleting invalid push token tenant_id=%s token=%s... error=%s", tenant_id, token[:12], exc, exc_info=True)
        continue
      logger.info("Pruned unregistered push token tenant_id=%s token=%s...", tenant_id, token[:12])
      pruned.append(token)
    return pruned

  async def _record(self, *, tenant_id: str, kind: NotificationType, recipient_count: int, result: DispatchResult) -> None:
    error_summary = {"errors": list(result.errors[:_MAX_LOGGED_ERRORS]), "pruned": len(result.pruned_tokens)} if result.errors else None
    entry = DispatchLogEntry(tenant_id=tenant_id, notification_type=kind.value, recipient_count=recipient_count, sent_count=result.sent_count, failed_count=result.failed_count, error_summary=error_summary)
    try:
      await self._dispatch_log.insert(entry)
    except Exception as exc:  # noqa: BLE001
      logger.error("Dispatch log insert failed tenant_id=%s error=%s", tenant_id, exc, exc_info=True)
