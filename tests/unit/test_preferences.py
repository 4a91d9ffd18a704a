from __future__ import annotations

import pytest

from sporely_alerts.notifications.models import NotificationCategory, NotificationEventPreference, NotificationPriority
from sporely_alerts.notifications.preferences import PreferenceStore, default_event_preference
from sporely_alerts.storage.kv_store import PREFERENCES_KEY, InMemoryKeyValueStore


def test_defaults(preference_store):
  prefs = preference_store.preferences
  assert prefs.enabled is True
  assert prefs.show_toasts is True
  assert prefs.toast_duration_ms == 5000
  assert prefs.sound_enabled is False
  assert prefs.push_enabled is False


@pytest.mark.parametrize("category", list(NotificationCategory))
def test_default_event_preference_table(category):
  pref = default_event_preference(category)
  assert pref.email_enabled is True
  assert pref.push_enabled is True
  assert pref.sms_urgent_only is True
  assert pref.priority is NotificationPriority.NORMAL
  assert pref.batch_interval_minutes == 0
  assert pref.sms_enabled is (category is NotificationCategory.CONTAMINATION)


def test_stored_override_wins_over_default(preference_store):
  assert preference_store.stored_event_preference(NotificationCategory.LOW_INVENTORY) is None

  stored = preference_store.set_event_preference(NotificationCategory.LOW_INVENTORY, {"email_enabled": False, "priority": "high"})

  assert stored.updated_at is not None
  resolved = preference_store.get_event_preference(NotificationCategory.LOW_INVENTORY)
  assert resolved == stored
  assert resolved.email_enabled is False
  assert resolved.priority is NotificationPriority.HIGH
  # Other categories still resolve from the default table.
  assert preference_store.get_event_preference(NotificationCategory.LC_AGE) == default_event_preference(NotificationCategory.LC_AGE)


def test_event_preferences_survive_reload(kv_store, preference_store):
  preference_store.set_event_preference(NotificationCategory.HARVEST_READY, {"sms_enabled": True})

  reloaded = PreferenceStore(kv_store)

  assert reloaded.get_event_preference(NotificationCategory.HARVEST_READY).sms_enabled is True
  assert len(reloaded.list_event_preferences()) == len(NotificationCategory)
  assert isinstance(reloaded.stored_event_preference(NotificationCategory.HARVEST_READY), NotificationEventPreference)


def test_event_preference_rejects_category_change(preference_store):
  with pytest.raises(ValueError):
    preference_store.set_event_preference(NotificationCategory.HARVEST_READY, {"event_category": "contamination"})


def test_update_preferences_persists_partial_patch(kv_store, preference_store):
  preference_store.update_preferences({"show_toasts": False, "toast_duration_ms": 0})

  reloaded = PreferenceStore(kv_store)
  assert reloaded.preferences.show_toasts is False
  assert reloaded.preferences.toast_duration_ms == 0
  assert reloaded.preferences.enabled is True


@pytest.mark.parametrize("patch", [{"volume": 11}, {"enabled": "definitely"}, {"toast_duration_ms": -5}])
def test_update_preferences_rejects_invalid_patch(preference_store, patch):
  with pytest.raises(ValueError):
    preference_store.update_preferences(patch)
  assert preference_store.preferences.enabled is True


def test_category_toggles(preference_store):
  assert preference_store.is_category_enabled(NotificationCategory.STAGE_TRANSITION) is True

  preference_store.update_preferences({"stage_transitions": False})
  assert preference_store.is_category_enabled(NotificationCategory.STAGE_TRANSITION) is False
  assert preference_store.is_category_enabled(NotificationCategory.SLOW_GROWTH) is True

  preference_store.update_preferences({"enabled": False})
  assert preference_store.is_category_enabled(NotificationCategory.SLOW_GROWTH) is False


def test_corrupt_preferences_blob_uses_defaults():
  store = PreferenceStore(InMemoryKeyValueStore({PREFERENCES_KEY: "\"not an object\""}))
  assert store.preferences.enabled is True
