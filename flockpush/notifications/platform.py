"""Platform capabilities used by the device token registry."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

from flockpush.notifications.models import Platform

logger = logging.getLogger(__name__)

DEFAULT_CHANNEL_ID = "default"


@dataclass(frozen=True)
class PermissionSnapshot:
  """Permission state as reported by the device SDK."""

  granted: bool
  ios_status: str | None = None


@dataclass(frozen=True)
class AndroidChannel:
  name: str
  importance: str = "max"
  vibration_pattern: tuple[int, ...] = (0, 250, 250, 250)
  light_color: str = "#FF231F70"


class NativePushClient(Protocol):
  """Thin wrapper around the device notification SDK."""

  async def get_permissions(self) -> PermissionSnapshot: ...

  async def request_permissions(self) -> PermissionSnapshot: ...

  async def get_push_token(self) -> str: ...

  async def set_notification_channel(self, channel_id: str, channel: AndroidChannel) -> None: ...


class NotificationBridge(Protocol):
  """Capability interface hiding per-platform notification quirks."""

  platform_kind: Platform

  async def ensure_channel(self) -> None: ...

  async def is_permission_granted(self) -> bool: ...

  async def request_permission(self) -> bool: ...

  async def get_token(self) -> str: ...


class AndroidPlatform:
  """Android requires a notification channel before anything can be shown."""

  platform_kind = Platform.ANDROID

  def __init__(self, client: NativePushClient, *, channel: AndroidChannel | None = None) -> None:
    self._client = client
    self._channel = channel or AndroidChannel(name=DEFAULT_CHANNEL_ID)

  async def ensure_channel(self) -> None:
    await self._client.set_notification_channel(DEFAULT_CHANNEL_ID, self._channel)

  async def is_permission_granted(self) -> bool:
    snapshot = await self._client.get_permissions()
    return snapshot.granted

  async def request_permission(self) -> bool:
    snapshot = await self._client.request_permissions()
    return snapshot.granted

  async def get_token(self) -> str:
    return await self._client.get_push_token()


class IOSPlatform:
  """iOS has no channels; only an explicit authorized status counts as granted."""

  platform_kind = Platform.IOS

  def __init__(self, client: NativePushClient) -> None:
    self._client = client

  async def ensure_channel(self) -> None:
    return None

  async def is_permission_granted(self) -> bool:
    return _ios_granted(await self._client.get_permissions())

  async def request_permission(self) -> bool:
    return _ios_granted(await self._client.request_permissions())

  async def get_token(self) -> str:
    return await self._client.get_push_token()


class OtherPlatform(AndroidPlatform):
  """Fallback for platforms without notification channels."""

  platform_kind = Platform.OTHER

  async def ensure_channel(self) -> None:
    return None


def _ios_granted(snapshot: PermissionSnapshot) -> bool:
  # Provisional and ephemeral grants do not allow alert delivery.
  return snapshot.granted and snapshot.ios_status == "authorized"


def build_platform(kind: Platform | str, client: NativePushClient) -> NotificationBridge:
  """Select the capability implementation for a platform kind."""
  platform = Platform(kind)
  if platform == Platform.IOS:
    return IOSPlatform(client)
  if platform == Platform.ANDROID:
    return AndroidPlatform(client)
  logger.debug("Using generic notification platform kind=%s", platform.value)
  return OtherPlatform(client)
