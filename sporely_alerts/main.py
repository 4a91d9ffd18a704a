from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from sporely_alerts.api.routes import notifications
from sporely_alerts.config import get_settings
from sporely_alerts.core.exceptions import EXCEPTION_HANDLERS
from sporely_alerts.core.lifespan import lifespan

settings = get_settings()

app = FastAPI(lifespan=lifespan, docs_url="/docs" if settings.debug else None, redoc_url=None)

app.add_middleware(
  CORSMiddleware, allow_origins=settings.allowed_origins, allow_credentials=True, allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"], allow_headers=["content-type", "authorization"], expose_headers=["content-length"]
)

for exc_class, handler in EXCEPTION_HANDLERS.items():
  app.add_exception_handler(exc_class, handler)


@app.get("/health", include_in_schema=False)
async def health_check() -> dict[str, str]:
  """Return a simple health status."""
  return {"status": "ok", "version": "0.1.0"}


app.include_router(notifications.router, prefix="/v1/notifications", tags=["notifications"])
