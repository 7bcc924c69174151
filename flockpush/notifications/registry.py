"""Device token registration state machine.

The registry owns one device session. State transitions are plain functions
over ``RegistrationState`` so they can be tested without any I/O; the
``DeviceTokenRegistry`` class performs the platform and store calls and feeds
their outcomes through those functions.
"""

from __future__ import annotations

import asyncio
import datetime
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from enum import StrEnum

from flockpush.notifications.contracts import BackendWriteError, NotificationError, PermissionDenied, TokenStore, TransientFetchError
from flockpush.notifications.models import DeviceToken
from flockpush.notifications.platform import NotificationBridge

logger = logging.getLogger(__name__)

MAX_RETRY_ATTEMPTS = 3
RETRY_BASE_DELAY_MS = 1000


class RegistrationStatus(StrEnum):
  IDLE = "idle"
  REQUESTING = "requesting"
  REGISTERING = "registering"
  REGISTERED = "registered"
  FAILED = "failed"


@dataclass(frozen=True)
class RegistrationState:
  status: RegistrationStatus = RegistrationStatus.IDLE
  retry_count: int = 0
  last_error: str | None = None


@dataclass(frozen=True)
class PendingRevocation:
  """A revocation the store rejected; kept so it can be retried later."""

  tenant_id: str
  user_id: str
  token: str


def registration_started(state: RegistrationState) -> RegistrationState:
  """A fresh register() run starts with a clean retry budget."""
  return RegistrationState(status=RegistrationStatus.REQUESTING, retry_count=0, last_error=None)


def registration_permission_granted(state: RegistrationState) -> RegistrationState:
  return replace(state, status=RegistrationStatus.REGISTERING)


def registration_succeeded(state: RegistrationState) -> RegistrationState:
  return RegistrationState(status=RegistrationStatus.REGISTERED, retry_count=0, last_error=None)


def registration_failed(state: RegistrationState, error: str, *, retryable: bool, max_retries: int = MAX_RETRY_ATTEMPTS) -> RegistrationState:
  """Return the next state after a failed attempt.

  A retryable failure with budget left moves back to ``requesting`` and bumps
  ``retry_count``; anything else settles in ``failed``.
  """
  if retryable and state.retry_count < max_retries:
    return RegistrationState(status=RegistrationStatus.REQUESTING, retry_count=state.retry_count + 1, last_error=error)
  return RegistrationState(status=RegistrationStatus.FAILED, retry_count=state.retry_count, last_error=error)


def registration_reset(state: RegistrationState) -> RegistrationState:
  return RegistrationState()


def backoff_delay_ms(attempt: int, *, base_delay_ms: int = RETRY_BASE_DELAY_MS) -> int:
  """Delay before retry number ``attempt`` (1-based): base * 2^(attempt - 1)."""
  if attempt < 1:
    raise ValueError("attempt must be >= 1")
  return base_delay_ms * (2 ** (attempt - 1))


def _utc_now() -> datetime.datetime:
  return datetime.datetime.now(datetime.UTC)


def _token_prefix(token: str | None) -> str:
  if not token:
    return "-"
  return f"{token[:12]}..."


class DeviceTokenRegistry:
  """Acquire, rotate and revoke the push token of one device session."""

  def __init__(
    self,
    *,
    store: TokenStore,
    bridge: NotificationBridge,
    max_retries: int = MAX_RETRY_ATTEMPTS,
    base_delay_ms: int = RETRY_BASE_DELAY_MS,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    clock: Callable[[], datetime.datetime] = _utc_now,
  ) -> None:
    self._store = store
    self._bridge = bridge
    self._max_retries = max_retries
    self._base_delay_ms = base_delay_ms
    self._sleep = sleep
    self._clock = clock
    self._state = RegistrationState()
    self._in_progress = False
    self._tenant_id: str | None = None
    self._user_id: str | None = None
    self._last_token: str | None = None
    self._pending_revocation: PendingRevocation | None = None
    self._foreground_seq = 0

  @property
  def state(self) -> RegistrationState:
    return self._state

  @property
  def current_token(self) -> str | None:
    return self._last_token

  @property
  def pending_revocation(self) -> PendingRevocation | None:
    return self._pending_revocation

  @property
  def in_progress(self) -> bool:
    return self._in_progress

  async def register(self, tenant_id: str | None, user_id: str | None) -> RegistrationState:
    """Run the registration sequence unless one is already in flight."""
    if not tenant_id or not user_id:
      logger.info("Skipping push registration; identity incomplete tenant_present=%s user_present=%s", bool(tenant_id), bool(user_id))
      return self._state

    # Check-and-set with no await in between is atomic on the event loop.
    if self._in_progress:
      logger.debug("Push registration already in progress tenant_id=%s user_id=%s", tenant_id, user_id)
      return self._state
    self._in_progress = True

    try:
      self._tenant_id = tenant_id
      self._user_id = user_id
      return await self._run_with_retries(tenant_id=tenant_id, user_id=user_id)
    finally:
      self._in_progress = False

  async def _run_with_retries(self, *, tenant_id: str, user_id: str) -> RegistrationState:
    self._state = registration_started(self._state)
    while True:
      try:
        await self._attempt(tenant_id=tenant_id, user_id=user_id)
      except PermissionDenied as exc:
        self._state = registration_failed(self._state, str(exc), retryable=False, max_retries=self._max_retries)
        logger.info("Push permission denied tenant_id=%s user_id=%s", tenant_id, user_id)
        return self._state
      except NotificationError as exc:
        self._state = registration_failed(self._state, str(exc), retryable=True, max_retries=self._max_retries)
        if self._state.status == RegistrationStatus.FAILED:
          logger.error("Push registration failed after %d retries tenant_id=%s user_id=%s error=%s", self._state.retry_count, tenant_id, user_id, exc)
          return self._state

        delay_ms = backoff_delay_ms(self._state.retry_count, base_delay_ms=self._base_delay_ms)
        logger.warning("Push registration attempt failed; retrying retry=%d delay_ms=%d error=%s", self._state.retry_count, delay_ms, exc)
        await self._sleep(delay_ms / 1000)
        continue

      self._state = registration_succeeded(self._state)
      logger.info("Push token registered tenant_id=%s user_id=%s platform=%s token=%s", tenant_id, user_id, self._bridge.platform_kind.value, _token_prefix(self._last_token))
      return self._state

  async def _attempt(self, *, tenant_id: str, user_id: str) -> None:
    try:
      await self._bridge.ensure_channel()
    except Exception as exc:  # noqa: BLE001
      logger.warning("Notification channel setup failed platform=%s error=%s", self._bridge.platform_kind.value, exc)

    try:
      granted = await self._bridge.is_permission_granted()
      if not granted:
        granted = await self._bridge.request_permission()
    except Exception as exc:  # noqa: BLE001
      # A broken permission query is not a denial; it goes through the retry budget.
      raise TransientFetchError(f"Permission check failed: {exc}") from exc

    if not granted:
      raise PermissionDenied("Notification permission denied")

    self._state = registration_permission_granted(self._state)

    try:
      token = await self._bridge.get_token()
    except Exception as exc:  # noqa: BLE001
      raise TransientFetchError(f"Push token fetch failed: {exc}") from exc
    if not token:
      raise TransientFetchError("Platform returned an empty push token")

    record = DeviceToken(tenant_id=tenant_id, user_id=user_id, token=token, platform=self._bridge.platform_kind, last_used_at=self._clock())
    try:
      await self._store.upsert_token(record)
    except Exception as exc:  # noqa: BLE001
      raise BackendWriteError(f"Push token upsert failed: {exc}") from exc

    self._last_token = token

  async def revoke(self, tenant_id: str, user_id: str, token: str | None = None) -> bool:
    """Revoke a token for logout or tenant switch.

    Never raises. Returns False when the store write failed; the failure is
    kept in ``last_error`` and ``pending_revocation`` so the caller can surface
    it and ``retry_pending_revocation`` can finish the job later.
    """
    target = token or self._last_token
    if not target:
      self._reset_session()
      return True

    try:
      revoked = await self._store.revoke_token(tenant_id=tenant_id, user_id=user_id, token=target, revoked_at=self._clock())
    except Exception as exc:  # noqa: BLE001
      self._pending_revocation = PendingRevocation(tenant_id=tenant_id, user_id=user_id, token=target)
      self._state = replace(self._state, last_error=f"Token revocation failed: {exc}")
      logger.error("Push token revocation failed tenant_id=%s user_id=%s token=%s error=%s", tenant_id, user_id, _token_prefix(target), exc)
      return False

    if revoked:
      logger.info("Push token revoked tenant_id=%s user_id=%s token=%s", tenant_id, user_id, _token_prefix(target))
    else:
      logger.debug("Push token already revoked or absent tenant_id=%s token=%s", tenant_id, _token_prefix(target))

    if self._pending_revocation is not None and self._pending_revocation.token == target:
      self._pending_revocation = None
    self._reset_session()
    return True

  async def retry_pending_revocation(self) -> bool:
    pending = self._pending_revocation
    if pending is None:
      return True
    return await self.revoke(pending.tenant_id, pending.user_id, pending.token)

  def _reset_session(self) -> None:
    self._state = registration_reset(self._state)
    self._last_token = None
    self._tenant_id = None
    self._user_id = None

  async def refresh_permissions(self, tenant_id: str | None = None, user_id: str | None = None) -> bool:
    """Ask for permission again and register when it is granted.

    Returns True only when the session ends up registered.
    """
    tenant_id = tenant_id or self._tenant_id
    user_id = user_id or self._user_id
    try:
      granted = await self._bridge.request_permission()
    except Exception as exc:  # noqa: BLE001
      logger.warning("Permission refresh failed platform=%s error=%s", self._bridge.platform_kind.value, exc)
      return False

    if not granted:
      self._state = registration_failed(self._state, "Notification permission denied", retryable=False, max_retries=self._max_retries)
      return False

    state = await self.register(tenant_id, user_id)
    return state.status == RegistrationStatus.REGISTERED

  async def retry_registration(self) -> RegistrationState:
    """Manual retry after the automatic budget is exhausted."""
    if not self._tenant_id or not self._user_id:
      logger.info("No bound identity; nothing to retry")
      return self._state
    return await self.register(self._tenant_id, self._user_id)

  async def on_foreground(self) -> bool:
    """Re-check the platform token and re-register when it rotated.

    Returns True when a rotation triggered a new registration.
    """
    if not self._tenant_id or not self._user_id:
      return False

    self._foreground_seq += 1
    seq = self._foreground_seq
    try:
      token = await self._bridge.get_token()
    except Exception as exc:  # noqa: BLE001
      logger.warning("Foreground token check failed error=%s", exc)
      return False

    if seq != self._foreground_seq:
      logger.debug("Ignoring stale foreground token check seq=%d latest=%d", seq, self._foreground_seq)
      return False

    # Compare with the token known now, not the one known when the check began.
    if not token or token == self._last_token:
      return False

    logger.info("Push token rotated old=%s new=%s", _token_prefix(self._last_token), _token_prefix(token))
    await self.register(self._tenant_id, self._user_id)
    return True
