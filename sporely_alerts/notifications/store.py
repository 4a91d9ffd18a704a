"""Persisted notification collection and its read/dismiss lifecycle."""

from __future__ import annotations

import datetime
import logging
import threading
from collections.abc import Callable

import msgspec

from sporely_alerts.notifications.models import Notification, NotificationPayload
from sporely_alerts.notifications.preferences import PreferenceStore
from sporely_alerts.notifications.toasts import ToastScheduler
from sporely_alerts.storage.kv_store import NOTIFICATIONS_KEY, KeyValueStore, load_blob, save_blob
from sporely_alerts.utils.clock import utc_now
from sporely_alerts.utils.ids import generate_notification_id

logger = logging.getLogger(__name__)


class NotificationStore:
  """Owns user-facing notifications, newest first.

  Every mutation writes the whole collection back to the key-value store. Timestamps for
  ``read_at`` and ``dismissed_at`` are set once and never cleared.
  """

  def __init__(self, store: KeyValueStore, *, preferences: PreferenceStore, toasts: ToastScheduler | None = None, clock: Callable[[], datetime.datetime] = utc_now) -> None:
    self._store = store
    self._preferences = preferences
    self._toasts = toasts
    self._clock = clock
    self._lock = threading.RLock()
    self._notifications: list[Notification] = load_blob(store, NOTIFICATIONS_KEY, list[Notification], [])

  def _persist(self) -> None:
    save_blob(self._store, NOTIFICATIONS_KEY, self._notifications)

  @property
  def notifications(self) -> list[Notification]:
    with self._lock:
      return list(self._notifications)

  def active_notifications(self) -> list[Notification]:
    with self._lock:
      return [notification for notification in self._notifications if notification.is_active]

  @property
  def unread_count(self) -> int:
    with self._lock:
      return sum(1 for notification in self._notifications if notification.is_unread)

  def get(self, notification_id: str) -> Notification | None:
    with self._lock:
      return next((notification for notification in self._notifications if notification.id == notification_id), None)

  def add_notification(self, payload: NotificationPayload) -> Notification | None:
    """Create a notification unless preferences switch its category off."""
    if not self._preferences.is_category_enabled(payload.category):
      logger.debug("Notification suppressed by preferences category=%s", payload.category.value)
      return None

    notification = Notification(
      id=generate_notification_id(),
      category=payload.category,
      type=payload.type,
      priority=payload.effective_priority,
      title=payload.title,
      message=payload.message,
      created_at=self._clock(),
      entity_type=payload.entity_type,
      entity_id=payload.entity_id,
      entity_name=payload.entity_name,
      action_label=payload.action_label,
      action_page=payload.action_page,
      metadata=dict(payload.metadata),
      auto_dismiss=payload.auto_dismiss,
      auto_dismiss_ms=payload.auto_dismiss_ms,
    )

    with self._lock:
      self._notifications.insert(0, notification)
      self._persist()

    if self._toasts is not None and self._preferences.preferences.show_toasts and payload.auto_dismiss:
      self._toasts.show_toast(payload.type, payload.title, payload.message, action_label=payload.action_label, auto_dismiss_ms=payload.auto_dismiss_ms)

    logger.info("Notification created id=%s category=%s type=%s", notification.id, notification.category.value, notification.type.value)
    return notification

  def _stamp(self, notification_id: str, field_name: str) -> Notification | None:
    with self._lock:
      for index, notification in enumerate(self._notifications):
        if notification.id != notification_id:
          continue
        if getattr(notification, field_name) is not None:
          return notification

        updated = msgspec.structs.replace(notification, **{field_name: self._clock()})
        self._notifications[index] = updated
        self._persist()
        return updated
    return None

  def mark_as_read(self, notification_id: str) -> Notification | None:
    """Set ``read_at`` once; unknown ids return None."""
    return self._stamp(notification_id, "read_at")

  def dismiss_notification(self, notification_id: str) -> Notification | None:
    """Set ``dismissed_at`` once; the entry stays in history until cleared."""
    return self._stamp(notification_id, "dismissed_at")

  def mark_all_as_read(self) -> int:
    """Mark every unread-by-timestamp notification as read and return how many changed."""
    with self._lock:
      now = self._clock()
      changed = 0
      updated: list[Notification] = []
      for notification in self._notifications:
        if notification.read_at is None:
          notification = msgspec.structs.replace(notification, read_at=now)
          changed += 1
        updated.append(notification)

      if changed:
        self._notifications = updated
        self._persist()
      return changed

  def clear_all_notifications(self) -> int:
    """Purge the whole collection, history included."""
    with self._lock:
      removed = len(self._notifications)
      self._notifications = []
      self._persist()

    logger.info("Cleared %s notifications", removed)
    return removed
