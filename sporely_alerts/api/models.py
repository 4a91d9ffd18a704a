from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from sporely_alerts.notifications.models import NotificationPriority, NotificationType


class PatchModel(BaseModel):
  """Base for partial updates: only fields the client sent are applied."""

  model_config = ConfigDict(extra="forbid")

  def to_patch(self) -> dict[str, Any]:
    return self.model_dump(exclude_unset=True, mode="json")


class PreferencesPatch(PatchModel):
  """Partial update of the global notification toggles."""

  enabled: bool | None = None
  culture_expiring: bool | None = None
  stage_transitions: bool | None = None
  low_inventory: bool | None = None
  harvest_ready: bool | None = None
  contamination: bool | None = None
  lc_age: bool | None = None
  slow_growth: bool | None = None
  show_toasts: bool | None = None
  toast_duration_ms: int | None = Field(default=None, ge=0, le=600_000)
  sound_enabled: bool | None = None
  push_enabled: bool | None = None


class EventPreferencePatch(PatchModel):
  """Channel settings for one category."""

  email_enabled: bool | None = None
  sms_enabled: bool | None = None
  push_enabled: bool | None = None
  sms_urgent_only: bool | None = None
  priority: NotificationPriority | None = None
  batch_interval_minutes: int | None = Field(default=None, ge=0)


class RulePatch(PatchModel):
  """Editable rule fields; id and category are fixed."""

  name: str | None = Field(default=None, min_length=1, max_length=120)
  enabled: bool | None = None
  is_active: bool | None = None
  threshold_days: float | None = Field(default=None, ge=0)
  notify_type: NotificationType | None = None
  repeat_interval_hours: float | None = Field(default=None, ge=0)
  description: str | None = Field(default=None, max_length=500)


class UnreadCountResponse(BaseModel):
  unread_count: int


class CountResponse(BaseModel):
  count: int
