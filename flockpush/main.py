from __future__ import annotations

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError

from flockpush.api.routes import events
from flockpush.core.exceptions import global_exception_handler, http_exception_handler, request_validation_exception_handler
from flockpush.core.lifespan import lifespan
from flockpush.core.middleware import RequestIdMiddleware


def create_app() -> FastAPI:
  app = FastAPI(lifespan=lifespan, docs_url=None, redoc_url=None, openapi_url=None)

  app.add_exception_handler(Exception, global_exception_handler)
  app.add_exception_handler(HTTPException, http_exception_handler)
  app.add_exception_handler(RequestValidationError, request_validation_exception_handler)

  app.add_middleware(RequestIdMiddleware)

  @app.get("/health", include_in_schema=False)
  async def health_check() -> dict[str, str]:
    """Return a simple health status."""
    return {"status": "ok"}

  app.include_router(events.router, prefix="/internal/events", tags=["events"])
  return app


app = create_app()
