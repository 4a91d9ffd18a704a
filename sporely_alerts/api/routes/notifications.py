"""Routes backing the notification bell, settings panel and delivery history."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from sporely_alerts.api.deps import get_alert_service
from sporely_alerts.api.models import CountResponse, EventPreferencePatch, PreferencesPatch, RulePatch, UnreadCountResponse
from sporely_alerts.api.msgspec_utils import encode_msgspec_response
from sporely_alerts.notifications.contracts import NotificationNotFoundError
from sporely_alerts.notifications.models import NotificationCategory
from sporely_alerts.notifications.service import AlertService

router = APIRouter()


@router.get("/")
async def list_notifications(include_dismissed: bool = Query(False), service: AlertService = Depends(get_alert_service)) -> Response:  # noqa: B008
  """
  List notifications newest first.

  - **include_dismissed**: also return dismissed entries kept for history.
  """
  notifications = service.store.notifications if include_dismissed else service.store.active_notifications()
  return encode_msgspec_response(notifications)


@router.get("/unread-count", response_model=UnreadCountResponse)
async def unread_count(service: AlertService = Depends(get_alert_service)) -> UnreadCountResponse:  # noqa: B008
  return UnreadCountResponse(unread_count=service.store.unread_count)


@router.post("/read-all", response_model=CountResponse)
def mark_all_as_read(service: AlertService = Depends(get_alert_service)) -> CountResponse:  # noqa: B008
  return CountResponse(count=service.store.mark_all_as_read())


@router.post("/{notification_id}/read")
def mark_as_read(notification_id: str, service: AlertService = Depends(get_alert_service)) -> Response:  # noqa: B008
  notification = service.store.mark_as_read(notification_id)
  if notification is None:
    raise NotificationNotFoundError(notification_id)
  return encode_msgspec_response(notification)


@router.post("/{notification_id}/dismiss")
def dismiss_notification(notification_id: str, service: AlertService = Depends(get_alert_service)) -> Response:  # noqa: B008
  notification = service.store.dismiss_notification(notification_id)
  if notification is None:
    raise NotificationNotFoundError(notification_id)
  return encode_msgspec_response(notification)


@router.delete("/", response_model=CountResponse)
def clear_all_notifications(service: AlertService = Depends(get_alert_service)) -> CountResponse:  # noqa: B008
  """Permanently delete every notification, including dismissed history."""
  return CountResponse(count=service.store.clear_all_notifications())


@router.get("/toasts")
async def list_toasts(service: AlertService = Depends(get_alert_service)) -> list[dict[str, Any]]:  # noqa: B008
  return [toast.to_dict() for toast in service.toasts.active_toasts]


@router.delete("/toasts/{toast_id}", status_code=status.HTTP_204_NO_CONTENT)
async def dismiss_toast(toast_id: str, service: AlertService = Depends(get_alert_service)) -> Response:  # noqa: B008
  if not service.toasts.dismiss_toast(toast_id):
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Toast not found")
  return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/preferences")
async def get_preferences(service: AlertService = Depends(get_alert_service)) -> Response:  # noqa: B008
  return encode_msgspec_response(service.preferences.preferences)


@router.patch("/preferences")
def update_preferences(request: PreferencesPatch, service: AlertService = Depends(get_alert_service)) -> Response:  # noqa: B008
  return encode_msgspec_response(service.preferences.update_preferences(request.to_patch()))


@router.get("/event-preferences")
async def list_event_preferences(service: AlertService = Depends(get_alert_service)) -> Response:  # noqa: B008
  """Resolved channel preferences for every category, defaults included."""
  return encode_msgspec_response(service.preferences.list_event_preferences())


@router.put("/event-preferences/{category}")
def set_event_preference(category: NotificationCategory, request: EventPreferencePatch, service: AlertService = Depends(get_alert_service)) -> Response:  # noqa: B008
  return encode_msgspec_response(service.preferences.set_event_preference(category, request.to_patch()))


@router.get("/rules")
async def list_rules(service: AlertService = Depends(get_alert_service)) -> Response:  # noqa: B008
  return encode_msgspec_response(service.rules.rules)


@router.patch("/rules/{rule_id}")
def update_rule(rule_id: str, request: RulePatch, service: AlertService = Depends(get_alert_service)) -> Response:  # noqa: B008
  return encode_msgspec_response(service.rules.update_rule(rule_id, request.to_patch()))


@router.get("/deliveries")
async def delivery_history(limit: int = Query(50, ge=1, le=200), service: AlertService = Depends(get_alert_service)) -> Response:  # noqa: B008
  """Newest delivery attempts for the current user."""
  return encode_msgspec_response(await service.dispatcher.get_delivery_history(limit=limit))
