"""Database models owned by the notification service."""

from flockpush.schema.device_tokens import DeviceTokenRow
from flockpush.schema.push_logs import PushNotificationLog

__all__ = ["DeviceTokenRow", "PushNotificationLog"]
