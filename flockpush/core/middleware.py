import logging
import time
import uuid

from starlette.datastructures import MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

logger = logging.getLogger("flockpush.core.middleware")


class RequestIdMiddleware:
  """Assign a request id, echo it in the response, and log one line per request."""

  def __init__(self, app: ASGIApp) -> None:
    self.app = app

  async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
    if scope["type"] != "http":
      await self.app(scope, receive, send)
      return

    headers = {key.decode("latin-1").lower(): value.decode("latin-1") for key, value in scope.get("headers", [])}
    request_id = headers.get("x-request-id") or str(uuid.uuid4())
    scope.setdefault("state", {})["request_id"] = request_id
    started = time.perf_counter()
    status_code = 500

    async def send_wrapper(message: Message) -> None:
      nonlocal status_code
      if message["type"] == "http.response.start":
        status_code = int(message["status"])
        response_headers = MutableHeaders(scope=message)
        response_headers["x-request-id"] = request_id
      await send(message)

    try:
      await self.app(scope, receive, send_wrapper)
    finally:
      duration_ms = (time.perf_counter() - started) * 1000
      logger.info("Request completed request_id=%s method=%s path=%s status=%d duration_ms=%.1f", request_id, scope.get("method"), scope.get("path"), status_code, duration_ms)
