"""Shared FastAPI dependencies."""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from sporely_alerts.notifications.service import AlertService


def get_alert_service(request: Request) -> AlertService:
  """Return the alert service built during application startup."""
  service = getattr(request.app.state, "alert_service", None)
  if service is None:
    raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Alert service is not ready")
  return service
