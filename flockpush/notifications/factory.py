"""Factory helpers for the notification pipeline."""

from __future__ import annotations

from dataclasses import dataclass

from flockpush.config import Settings
from flockpush.notifications.contracts import CommunityDirectory, PushGateway, TokenStore
from flockpush.notifications.directory import SqlCommunityDirectory
from flockpush.notifications.dispatch_log_repo import DispatchLogRepository, NullDispatchLogRepository
from flockpush.notifications.dispatcher import PushDispatcher
from flockpush.notifications.gateway import ExpoPushGateway, NullPushGateway
from flockpush.notifications.outbox import NotificationOutbox
from flockpush.notifications.platform import NativePushClient, build_platform
from flockpush.notifications.rate_limit import TenantRateLimiter
from flockpush.notifications.registry import DeviceTokenRegistry
from flockpush.notifications.token_store import InMemoryTokenStore, SqlTokenStore
from flockpush.notifications.trigger import NotificationTrigger


@dataclass(frozen=True)
class NotificationPipeline:
  """Wired components shared by the HTTP surface and the outbox worker."""

  store: TokenStore
  gateway: PushGateway
  dispatcher: PushDispatcher
  trigger: NotificationTrigger
  outbox: NotificationOutbox


def build_token_store(settings: Settings) -> TokenStore:
  # Fall back to process memory when Postgres is not configured.
  if settings.pg_dsn:
    return SqlTokenStore()
  return InMemoryTokenStore()


def build_gateway(settings: Settings) -> PushGateway:
  # Delivery is disabled by default to avoid accidental pushes in dev/test.
  if settings.push_enabled:
    return ExpoPushGateway(url=settings.push_gateway_url, access_token=settings.push_access_token, project_id=settings.push_project_id, timeout_seconds=settings.push_timeout_seconds)
  return NullPushGateway()


def build_notification_pipeline(settings: Settings, *, store: TokenStore | None = None, gateway: PushGateway | None = None, directory: CommunityDirectory | None = None) -> NotificationPipeline:
  """Construct the dispatch pipeline based on environment configuration."""
  store = store or build_token_store(settings)
  gateway = gateway or build_gateway(settings)
  if settings.pg_dsn:
    dispatch_log: DispatchLogRepository = DispatchLogRepository()
  else:
    dispatch_log = NullDispatchLogRepository()

  rate_limiter = TenantRateLimiter(limit=settings.rate_limit_per_minute, window_seconds=60.0)
  dispatcher = PushDispatcher(store=store, gateway=gateway, rate_limiter=rate_limiter, dispatch_log=dispatch_log, batch_size=settings.push_batch_size, token_stale_days=settings.token_stale_days)
  trigger = NotificationTrigger(directory=directory or SqlCommunityDirectory(), dispatcher=dispatcher)
  outbox = NotificationOutbox(trigger, max_size=settings.outbox_max_size)
  return NotificationPipeline(store=store, gateway=gateway, dispatcher=dispatcher, trigger=trigger, outbox=outbox)


def build_device_registry(*, store: TokenStore, platform_kind: str, client: NativePushClient) -> DeviceTokenRegistry:
  """Construct a registry for one device session with the platform selected by kind."""
  return DeviceTokenRegistry(store=store, bridge=build_platform(platform_kind, client))
