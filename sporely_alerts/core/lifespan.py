import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from urllib.parse import urlparse

from fastapi import FastAPI

from sporely_alerts.core.database import create_tables, dispose_engine
from sporely_alerts.core.logging import initialize_logging
from sporely_alerts.notifications.factory import build_alert_service


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Set up logging and storage, build the alert service, and tear it down on exit."""
  from sporely_alerts.config import get_settings

  settings = get_settings()
  logger = logging.getLogger("sporely_alerts.core.lifespan")

  try:
    initialize_logging(settings)
  except RuntimeError:
    # Keep serving with stdout logging when the log directory is unwritable.
    logger.warning("Logging setup failed; continuing with default handlers.", exc_info=True)

  if create_tables():
    logger.info("Alert tables ensured on %s", _redact_dsn(settings.db_dsn))
  else:
    logger.info("No database configured; notification state is kept in memory.")

  app.state.alert_service = build_alert_service(settings)
  logger.info("Startup complete environment=%s", settings.environment)

  try:
    yield
  finally:
    await app.state.alert_service.shutdown()
    dispose_engine()
    logger.info("Shutdown complete.")


def _redact_dsn(raw: str | None) -> str:
  """Redact credentials from a DSN while keeping host/db visible."""
  if not raw:
    return "<unset>"

  parsed = urlparse(raw)
  if not parsed.scheme:
    return "<invalid>"

  user = parsed.username or ""
  host = parsed.hostname or ""
  port = f":{parsed.port}" if parsed.port else ""
  netloc = f"{user}@{host}{port}" if user else f"{host}{port}"
  database = parsed.path.lstrip("/")
  path = f"/{database}" if database else ""
  return f"{parsed.scheme}://{netloc}{path}"
