"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

_DEFAULT_GATEWAY_URL = "https://exp.host/--/api/v2/push/send"
GATEWAY_MAX_BATCH_SIZE = 100


@dataclass(frozen=True)
class Settings:
  """Typed settings for the flockpush service."""

  environment: str
  debug: bool
  pg_dsn: str | None
  pg_connect_timeout: int
  log_max_bytes: int
  log_backup_count: int
  push_enabled: bool
  push_gateway_url: str
  push_access_token: str | None
  push_project_id: str | None
  push_timeout_seconds: float
  push_batch_size: int
  rate_limit_per_minute: int
  token_stale_days: int
  outbox_max_size: int
  service_secret: str | None


@dataclass(frozen=True)
class DatabaseSettings:
  """Typed settings for database connectivity."""

  debug: bool
  pg_dsn: str | None
  pg_connect_timeout: int


def _parse_bool(raw: str | None) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return False

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  return value or None


def _parse_int(name: str, default: str, *, minimum: int = 1) -> int:
  """Parse an integer env var and enforce a lower bound."""
  raw = os.getenv(name, default)
  try:
    value = int(raw)
  except ValueError as exc:
    raise ValueError(f"{name} must be an integer.") from exc

  if value < minimum:
    raise ValueError(f"{name} must be >= {minimum}.")

  return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("FLOCKPUSH_ENV", "development").lower()
  debug = _parse_bool(os.getenv("FLOCKPUSH_DEBUG"))

  log_max_bytes = _parse_int("FLOCKPUSH_LOG_MAX_BYTES", "5242880")  # 5MB default
  log_backup_count = _parse_int("FLOCKPUSH_LOG_BACKUP_COUNT", "10", minimum=0)

  push_enabled = _parse_bool(os.getenv("FLOCKPUSH_PUSH_ENABLED"))
  push_gateway_url = (os.getenv("FLOCKPUSH_PUSH_GATEWAY_URL") or _DEFAULT_GATEWAY_URL).strip()
  push_access_token = _optional_str(os.getenv("FLOCKPUSH_PUSH_ACCESS_TOKEN"))
  push_project_id = _optional_str(os.getenv("FLOCKPUSH_PUSH_PROJECT_ID"))
  push_timeout_seconds = float(_parse_int("FLOCKPUSH_PUSH_TIMEOUT_SECONDS", "10"))

  # The gateway rejects requests with more than 100 messages.
  push_batch_size = _parse_int("FLOCKPUSH_PUSH_BATCH_SIZE", str(GATEWAY_MAX_BATCH_SIZE))
  if push_batch_size > GATEWAY_MAX_BATCH_SIZE:
    raise ValueError(f"FLOCKPUSH_PUSH_BATCH_SIZE must be <= {GATEWAY_MAX_BATCH_SIZE}.")

  # Validate gateway credentials only when delivery is enabled.
  if push_enabled:
    if not push_access_token:
      raise ValueError("FLOCKPUSH_PUSH_ACCESS_TOKEN must be set when push notifications are enabled.")

    if not push_gateway_url.startswith("https://"):
      raise ValueError("FLOCKPUSH_PUSH_GATEWAY_URL must use https.")

  return Settings(
    environment=environment,
    debug=debug,
    pg_dsn=_optional_str(os.getenv("FLOCKPUSH_PG_DSN")),
    pg_connect_timeout=_parse_int("FLOCKPUSH_PG_CONNECT_TIMEOUT", "10"),
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    push_enabled=push_enabled,
    push_gateway_url=push_gateway_url,
    push_access_token=push_access_token,
    push_project_id=push_project_id,
    push_timeout_seconds=push_timeout_seconds,
    push_batch_size=push_batch_size,
    rate_limit_per_minute=_parse_int("FLOCKPUSH_RATE_LIMIT_PER_MINUTE", "1000"),
    token_stale_days=_parse_int("FLOCKPUSH_TOKEN_STALE_DAYS", "90"),
    outbox_max_size=_parse_int("FLOCKPUSH_OUTBOX_MAX_SIZE", "1000"),
    service_secret=_optional_str(os.getenv("FLOCKPUSH_SERVICE_SECRET")),
  )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
  """Load database settings without validating unrelated service configuration."""
  return DatabaseSettings(debug=_parse_bool(os.getenv("FLOCKPUSH_DEBUG")), pg_dsn=_optional_str(os.getenv("FLOCKPUSH_PG_DSN")), pg_connect_timeout=_parse_int("FLOCKPUSH_PG_CONNECT_TIMEOUT", "10"))
