"""Per-tenant fixed-window rate limiting for dispatch calls."""

from __future__ import annotations

import logging
import math
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from flockpush.notifications.contracts import RateLimitExceeded

logger = logging.getLogger(__name__)


@dataclass
class _Window:
  count: int
  reset_at: float


class TenantRateLimiter:
  """Shared counter per tenant; one instance must serve every dispatcher in the process."""

  def __init__(self, *, limit: int = 1000, window_seconds: float = 60.0, clock: Callable[[], float] = time.monotonic) -> None:
    if limit < 1:
      raise ValueError("limit must be >= 1")
    self._limit = limit
    self._window_seconds = window_seconds
    self._clock = clock
    self._windows: dict[str, _Window] = {}
    self._lock = threading.Lock()

  def acquire(self, tenant_id: str) -> None:
    """Consume one unit of the tenant's budget or raise RateLimitExceeded."""
    with self._lock:
      now = self._clock()
      window = self._windows.get(tenant_id)
      if window is None or now >= window.reset_at:
        self._windows[tenant_id] = _Window(count=1, reset_at=now + self._window_seconds)
        return

      if window.count >= self._limit:
        retry_after = max(1, math.ceil(window.reset_at - now))
        logger.warning("Dispatch rate limit exceeded tenant_id=%s limit=%d retry_after=%d", tenant_id, self._limit, retry_after)
        raise RateLimitExceeded(tenant_id, retry_after)

      window.count += 1

  def remaining(self, tenant_id: str) -> int:
    with self._lock:
      window = self._windows.get(tenant_id)
      if window is None or self._clock() >= window.reset_at:
        return self._limit
      return max(0, self._limit - window.count)
