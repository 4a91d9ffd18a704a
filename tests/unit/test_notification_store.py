from __future__ import annotations

import datetime

from sporely_alerts.notifications.models import NotificationCategory, NotificationPayload, NotificationPriority, NotificationType
from sporely_alerts.notifications.store import NotificationStore
from sporely_alerts.storage.kv_store import NOTIFICATIONS_KEY, InMemoryKeyValueStore


def _payload(**overrides) -> NotificationPayload:
  values = {"category": NotificationCategory.HARVEST_READY, "type": NotificationType.SUCCESS, "title": "Harvest Ready", "message": "Tray 4 is ready for harvest!"}
  values.update(overrides)
  return NotificationPayload(**values)


def test_add_notification_inserts_newest_first(notification_store, clock):
  first = notification_store.add_notification(_payload(title="first"))
  clock.advance(minutes=1)
  second = notification_store.add_notification(_payload(title="second"))

  assert [n.id for n in notification_store.notifications] == [second.id, first.id]
  assert first.id.startswith("notif-")
  assert first.created_at == datetime.datetime(2024, 6, 1, 12, 0, tzinfo=datetime.UTC)
  assert notification_store.unread_count == 2


def test_priority_derives_from_severity_when_absent(notification_store):
  urgent = notification_store.add_notification(_payload(type=NotificationType.ERROR, category=NotificationCategory.CONTAMINATION))
  explicit = notification_store.add_notification(_payload(priority=NotificationPriority.HIGH))

  assert urgent.priority is NotificationPriority.URGENT
  assert explicit.priority is NotificationPriority.HIGH


def test_master_switch_makes_add_a_no_op(notification_store, preference_store, toast_scheduler):
  preference_store.update_preferences({"enabled": False})

  assert notification_store.add_notification(_payload()) is None
  assert notification_store.notifications == []
  assert toast_scheduler.active_toasts == []


def test_category_toggle_gates_creation(notification_store, preference_store):
  preference_store.update_preferences({"harvest_ready": False})

  assert notification_store.add_notification(_payload()) is None
  assert notification_store.add_notification(_payload(category=NotificationCategory.LOW_INVENTORY)) is not None


def test_toast_follows_preferences_and_auto_dismiss(notification_store, preference_store, toast_scheduler):
  notification_store.add_notification(_payload(title="toasted"))
  notification_store.add_notification(_payload(title="quiet", auto_dismiss=False))
  assert [toast.title for toast in toast_scheduler.active_toasts] == ["toasted"]

  preference_store.update_preferences({"show_toasts": False})
  notification_store.add_notification(_payload(title="no toast"))
  assert len(toast_scheduler.active_toasts) == 1


def test_mark_as_read_is_idempotent(notification_store, clock):
  created = notification_store.add_notification(_payload())
  first = notification_store.mark_as_read(created.id)
  clock.advance(hours=1)
  second = notification_store.mark_as_read(created.id)

  assert first.read_at == second.read_at == datetime.datetime(2024, 6, 1, 12, 0, tzinfo=datetime.UTC)
  assert notification_store.unread_count == 0


def test_dismiss_excludes_from_active_and_unread_but_keeps_history(notification_store, clock):
  kept = notification_store.add_notification(_payload(title="kept"))
  dismissed = notification_store.add_notification(_payload(title="dismissed"))

  first = notification_store.dismiss_notification(dismissed.id)
  clock.advance(hours=2)
  again = notification_store.dismiss_notification(dismissed.id)

  assert first.dismissed_at == again.dismissed_at
  assert [n.id for n in notification_store.active_notifications()] == [kept.id]
  assert notification_store.unread_count == 1
  assert len(notification_store.notifications) == 2

  notification_store.clear_all_notifications()
  assert notification_store.notifications == []


def test_unknown_id_is_a_no_op(notification_store):
  notification_store.add_notification(_payload())
  assert notification_store.mark_as_read("notif-missing") is None
  assert notification_store.dismiss_notification("notif-missing") is None
  assert notification_store.unread_count == 1


def test_mark_all_as_read_leaves_existing_read_timestamps(notification_store, clock):
  older = notification_store.add_notification(_payload(title="older"))
  notification_store.add_notification(_payload(title="newer"))
  notification_store.mark_as_read(older.id)

  clock.advance(hours=3)
  assert notification_store.mark_all_as_read() == 1

  by_title = {n.title: n for n in notification_store.notifications}
  assert by_title["older"].read_at == datetime.datetime(2024, 6, 1, 12, 0, tzinfo=datetime.UTC)
  assert by_title["newer"].read_at == datetime.datetime(2024, 6, 1, 15, 0, tzinfo=datetime.UTC)
  assert notification_store.mark_all_as_read() == 0


def test_collection_rehydrates_with_dates(kv_store, preference_store, notification_store):
  created = notification_store.add_notification(_payload(metadata={"grow_name": "Tray 4"}))
  notification_store.mark_as_read(created.id)

  reloaded = NotificationStore(kv_store, preferences=preference_store)

  restored = reloaded.get(created.id)
  assert restored == notification_store.get(created.id)
  assert isinstance(restored.read_at, datetime.datetime)
  assert restored.category is NotificationCategory.HARVEST_READY


def test_corrupt_blob_starts_empty(preference_store, caplog):
  store = NotificationStore(InMemoryKeyValueStore({NOTIFICATIONS_KEY: "[{\"id\": 12}"}), preferences=preference_store)

  assert store.notifications == []
  assert "Discarding corrupt persisted blob" in caplog.text
