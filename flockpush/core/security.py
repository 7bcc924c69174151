from __future__ import annotations

import logging
import secrets
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status

from flockpush.config import Settings, get_settings

logger = logging.getLogger(__name__)


async def require_service_secret(request: Request, settings: Annotated[Settings, Depends(get_settings)], authorization: str | None = Header(default=None)) -> None:
  """Authenticate internal callers with the shared service secret (deny-by-default)."""
  if not settings.service_secret:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Service authentication is not configured.")

  expected = f"Bearer {settings.service_secret}"
  if not secrets.compare_digest((authorization or "").encode(), expected.encode()):
    logger.warning("Unauthorized internal call path=%s", request.url.path)
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid service secret.")
