import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from flockpush.core.database import dispose_engine
from flockpush.core.logging import initialize_logging
from flockpush.notifications.factory import build_notification_pipeline


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Wire the notification pipeline and run the outbox worker for the app's lifetime."""
  from flockpush.config import get_settings

  # Invalid configuration raises here so the service refuses to start.
  settings = get_settings()
  logger = logging.getLogger("flockpush.core.lifespan")

  try:
    initialize_logging(settings)
  except Exception:  # noqa: BLE001
    logger.warning("File logging setup failed; continuing with default handlers.", exc_info=True)

  pipeline = build_notification_pipeline(settings)
  app.state.pipeline = pipeline
  pipeline.outbox.start()
  logger.info("Startup complete environment=%s push_enabled=%s persistence=%s", settings.environment, settings.push_enabled, "postgres" if settings.pg_dsn else "memory")

  try:
    yield
  finally:
    await pipeline.outbox.stop()
    await pipeline.gateway.aclose()
    await dispose_engine()
    logger.info("Shutdown complete")
