from __future__ import annotations

import pytest

from flockpush.config import get_settings

_ENV_VARS = (
  "FLOCKPUSH_PUSH_ENABLED",
  "FLOCKPUSH_PUSH_ACCESS_TOKEN",
  "FLOCKPUSH_PUSH_GATEWAY_URL",
  "FLOCKPUSH_PUSH_BATCH_SIZE",
  "FLOCKPUSH_RATE_LIMIT_PER_MINUTE",
  "FLOCKPUSH_PG_DSN",
  "FLOCKPUSH_SERVICE_SECRET",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
  for name in _ENV_VARS:
    monkeypatch.delenv(name, raising=False)
  get_settings.cache_clear()
  yield
  get_settings.cache_clear()


def test_defaults():
  settings = get_settings()

  assert settings.push_enabled is False
  assert settings.push_batch_size == 100
  assert settings.rate_limit_per_minute == 1000
  assert settings.token_stale_days == 90
  assert settings.pg_dsn is None
  assert settings.service_secret is None


def test_batch_size_above_gateway_limit_is_rejected(monkeypatch):
  monkeypatch.setenv("FLOCKPUSH_PUSH_BATCH_SIZE", "101")

  with pytest.raises(ValueError, match="<= 100"):
    get_settings()


def test_enabled_push_requires_access_token(monkeypatch):
  monkeypatch.setenv("FLOCKPUSH_PUSH_ENABLED", "true")

  with pytest.raises(ValueError, match="ACCESS_TOKEN"):
    get_settings()


def test_enabled_push_requires_https_gateway(monkeypatch):
  monkeypatch.setenv("FLOCKPUSH_PUSH_ENABLED", "1")
  monkeypatch.setenv("FLOCKPUSH_PUSH_ACCESS_TOKEN", "token")
  monkeypatch.setenv("FLOCKPUSH_PUSH_GATEWAY_URL", "http://push.example.test/send")

  with pytest.raises(ValueError, match="https"):
    get_settings()


def test_non_integer_rate_limit_is_rejected(monkeypatch):
  monkeypatch.setenv("FLOCKPUSH_RATE_LIMIT_PER_MINUTE", "lots")

  with pytest.raises(ValueError, match="integer"):
    get_settings()


def test_blank_secret_is_treated_as_unset(monkeypatch):
  monkeypatch.setenv("FLOCKPUSH_SERVICE_SECRET", "   ")

  assert get_settings().service_secret is None
