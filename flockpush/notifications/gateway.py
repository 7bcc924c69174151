"""Push gateway clients."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import httpx

from flockpush.config import GATEWAY_MAX_BATCH_SIZE
from flockpush.notifications.contracts import GatewayUnavailable, PushGateway
from flockpush.notifications.models import PushMessage, PushTicket

logger = logging.getLogger(__name__)

DEVICE_NOT_REGISTERED = "DeviceNotRegistered"


class ExpoPushGateway(PushGateway):
  """httpx-backed client for the batch push HTTP API."""

  def __init__(self, *, url: str, access_token: str | None, project_id: str | None = None, timeout_seconds: float = 10.0, client: httpx.AsyncClient | None = None) -> None:
    self._url = url
    self._access_token = access_token
    self._project_id = project_id
    self._timeout_seconds = timeout_seconds
    # Never trust environment proxy variables for outbound gateway calls.
    self._client = client or httpx.AsyncClient(trust_env=False)
    self._owns_client = client is None

  def _headers(self) -> dict[str, str]:
    headers = {"accept": "application/json", "content-type": "application/json"}
    if self._access_token:
      headers["authorization"] = f"Bearer {self._access_token}"
    if self._project_id:
      headers["expo-project-id"] = self._project_id
    return headers

  async def send(self, messages: Sequence[PushMessage]) -> list[PushTicket]:
    """POST one batch and map the positional response to tickets."""
    if not messages:
      return []
    if len(messages) > GATEWAY_MAX_BATCH_SIZE:
      raise ValueError(f"Gateway batches are limited to {GATEWAY_MAX_BATCH_SIZE} messages, got {len(messages)}.")

    try:
      response = await self._client.post(self._url, json=[message.to_payload() for message in messages], headers=self._headers(), timeout=self._timeout_seconds)
    except httpx.HTTPError as exc:
      raise GatewayUnavailable(f"Push gateway request failed: {exc.__class__.__name__}: {exc}") from exc

    if response.status_code >= 400:
      raise GatewayUnavailable(f"Push gateway returned {response.status_code}: {response.text[:200]}")

    try:
      body = response.json()
    except ValueError as exc:
      raise GatewayUnavailable("Push gateway returned a non-JSON body") from exc

    data = body.get("data") if isinstance(body, dict) else None
    if not isinstance(data, list):
      raise GatewayUnavailable("Push gateway response is missing the ticket list")

    return [_parse_ticket(item) for item in data]

  async def aclose(self) -> None:
    if self._owns_client:
      await self._client.aclose()


class NullPushGateway(PushGateway):
  """Gateway used when push delivery is disabled; every message is reported undelivered."""

  async def send(self, messages: Sequence[PushMessage]) -> list[PushTicket]:
    logger.debug("Push notifications disabled; dropping batch size=%d", len(messages))
    return [PushTicket(status="error", message="Push delivery disabled") for _ in messages]

  async def aclose(self) -> None:
    return None


def _parse_ticket(item: Any) -> PushTicket:
  """Convert one gateway ticket object into a PushTicket."""
  if not isinstance(item, dict):
    return PushTicket(status="error", message="Malformed gateway ticket")

  status = str(item.get("status") or "error")
  message = item.get("message")
  details = item.get("details") if isinstance(item.get("details"), dict) else {}
  error_code = details.get("error")
  if details.get("deviceNotRegistered") or (isinstance(message, str) and DEVICE_NOT_REGISTERED in message):
    error_code = DEVICE_NOT_REGISTERED
  return PushTicket(status=status, message=str(message) if message is not None else None, error_code=str(error_code) if error_code else None)
