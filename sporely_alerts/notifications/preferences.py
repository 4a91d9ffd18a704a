"""Global notification toggles and per-category channel preferences."""

from __future__ import annotations

import logging
from typing import Any

import msgspec

from sporely_alerts.notifications.models import NotificationCategory, NotificationEventPreference, NotificationPreferences, apply_patch
from sporely_alerts.storage.kv_store import EVENT_PREFERENCES_KEY, PREFERENCES_KEY, KeyValueStore, load_blob, save_blob
from sporely_alerts.utils.clock import utc_now

logger = logging.getLogger(__name__)

# Maps each category onto the global preference toggle that gates it.
CATEGORY_TOGGLES: dict[NotificationCategory, str] = {
  NotificationCategory.CULTURE_EXPIRING: "culture_expiring",
  NotificationCategory.LC_AGE: "lc_age",
  NotificationCategory.LOW_INVENTORY: "low_inventory",
  NotificationCategory.HARVEST_READY: "harvest_ready",
  NotificationCategory.CONTAMINATION: "contamination",
  NotificationCategory.STAGE_TRANSITION: "stage_transitions",
  NotificationCategory.SLOW_GROWTH: "slow_growth",
}


def default_event_preference(category: NotificationCategory) -> NotificationEventPreference:
  """The built-in channel preference used when nothing is stored for a category."""
  return NotificationEventPreference(event_category=category, email_enabled=True, sms_enabled=category is NotificationCategory.CONTAMINATION, push_enabled=True, sms_urgent_only=True)


class PreferenceStore:
  """Holds global toggles and stored per-category overrides, persisted on every change."""

  def __init__(self, store: KeyValueStore) -> None:
    self._store = store
    self._preferences: NotificationPreferences = load_blob(store, PREFERENCES_KEY, NotificationPreferences, NotificationPreferences())
    stored: list[NotificationEventPreference] = load_blob(store, EVENT_PREFERENCES_KEY, list[NotificationEventPreference], [])
    self._event_overrides: dict[NotificationCategory, NotificationEventPreference] = {pref.event_category: pref for pref in stored}

  @property
  def preferences(self) -> NotificationPreferences:
    return self._preferences

  def replace_preferences(self, preferences: NotificationPreferences) -> NotificationPreferences:
    self._preferences = preferences
    save_blob(self._store, PREFERENCES_KEY, preferences)
    return preferences

  def update_preferences(self, patch: dict[str, Any]) -> NotificationPreferences:
    """Apply a partial update; raises ValueError for unknown fields or bad values."""
    updated = apply_patch(self._preferences, patch)
    if updated.toast_duration_ms < 0:
      raise ValueError("toast_duration_ms must be zero or positive")
    return self.replace_preferences(updated)

  def is_category_enabled(self, category: NotificationCategory) -> bool:
    """True when the master switch and the category toggle both allow notifications."""
    if not self._preferences.enabled:
      return False
    return bool(getattr(self._preferences, CATEGORY_TOGGLES[category]))

  def stored_event_preference(self, category: NotificationCategory) -> NotificationEventPreference | None:
    return self._event_overrides.get(category)

  def get_event_preference(self, category: NotificationCategory) -> NotificationEventPreference:
    """Resolve the channel preference: stored override first, then the default table."""
    stored = self.stored_event_preference(category)
    if stored is not None:
      return stored
    return default_event_preference(category)

  def list_event_preferences(self) -> list[NotificationEventPreference]:
    return [self.get_event_preference(category) for category in NotificationCategory]

  def set_event_preference(self, category: NotificationCategory, patch: dict[str, Any]) -> NotificationEventPreference:
    """Store an override for ``category`` built from its current resolved preference."""
    current = self.get_event_preference(category)
    updated = apply_patch(current, patch, immutable=frozenset({"event_category", "updated_at"}))
    if updated.batch_interval_minutes < 0:
      raise ValueError("batch_interval_minutes must be zero or positive")

    updated = msgspec.structs.replace(updated, updated_at=utc_now())
    self._event_overrides[category] = updated
    save_blob(self._store, EVENT_PREFERENCES_KEY, list(self._event_overrides.values()))
    logger.info("Event preference updated category=%s", category.value)
    return updated
