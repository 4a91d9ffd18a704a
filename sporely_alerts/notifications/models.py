"""Domain records for notifications, rules, preferences and delivery history.

Persisted records are frozen msgspec structs so they round-trip through the key-value store
with ISO-8601 datetimes; state changes build new instances with ``msgspec.structs.replace``.
"""

from __future__ import annotations

import datetime
from dataclasses import dataclass
from enum import Enum
from typing import Any, TypeVar

import msgspec


class NotificationCategory(str, Enum):
  CULTURE_EXPIRING = "culture_expiring"
  LC_AGE = "lc_age"
  LOW_INVENTORY = "low_inventory"
  HARVEST_READY = "harvest_ready"
  CONTAMINATION = "contamination"
  STAGE_TRANSITION = "stage_transition"
  SLOW_GROWTH = "slow_growth"


class NotificationType(str, Enum):
  SUCCESS = "success"
  WARNING = "warning"
  ERROR = "error"
  INFO = "info"


class NotificationPriority(str, Enum):
  LOW = "low"
  NORMAL = "normal"
  HIGH = "high"
  URGENT = "urgent"


class ChannelType(str, Enum):
  EMAIL = "email"
  SMS = "sms"


class DeliveryStatus(str, Enum):
  SENT = "sent"
  FAILED = "failed"
  PENDING = "pending"
  RETRYING = "retrying"


class EntityType(str, Enum):
  CULTURE = "culture"
  GROW = "grow"
  INVENTORY = "inventory"
  RECIPE = "recipe"
  STRAIN = "strain"


# Categories that warrant out-of-band delivery in addition to the in-app notification.
DELIVERY_CATEGORIES: frozenset[NotificationCategory] = frozenset(
  {
    NotificationCategory.CULTURE_EXPIRING,
    NotificationCategory.LC_AGE,
    NotificationCategory.LOW_INVENTORY,
    NotificationCategory.HARVEST_READY,
    NotificationCategory.CONTAMINATION,
    NotificationCategory.STAGE_TRANSITION,
  }
)

URGENT_PRIORITIES: frozenset[NotificationPriority] = frozenset({NotificationPriority.HIGH, NotificationPriority.URGENT})

_PRIORITY_BY_TYPE: dict[NotificationType, NotificationPriority] = {
  NotificationType.ERROR: NotificationPriority.URGENT,
  NotificationType.WARNING: NotificationPriority.NORMAL,
  NotificationType.SUCCESS: NotificationPriority.NORMAL,
  NotificationType.INFO: NotificationPriority.LOW,
}


def priority_for_type(notification_type: NotificationType) -> NotificationPriority:
  """Derive the delivery priority for a severity when the caller supplies none."""
  return _PRIORITY_BY_TYPE[notification_type]


class NotificationPayload(msgspec.Struct, frozen=True, kw_only=True):
  """Caller-supplied description of a notification to create."""

  category: NotificationCategory
  type: NotificationType
  title: str
  message: str
  priority: NotificationPriority | None = None
  entity_type: EntityType | None = None
  entity_id: str | None = None
  entity_name: str | None = None
  action_label: str | None = None
  action_page: str | None = None
  metadata: dict[str, Any] = {}
  auto_dismiss: bool = True
  auto_dismiss_ms: int | None = None

  @property
  def effective_priority(self) -> NotificationPriority:
    """The single canonical priority: explicit value first, severity-derived otherwise."""
    return self.priority or priority_for_type(self.type)


class Notification(msgspec.Struct, frozen=True, kw_only=True):
  """A persisted, user-facing notification."""

  id: str
  category: NotificationCategory
  type: NotificationType
  priority: NotificationPriority
  title: str
  message: str
  created_at: datetime.datetime
  entity_type: EntityType | None = None
  entity_id: str | None = None
  entity_name: str | None = None
  action_label: str | None = None
  action_page: str | None = None
  metadata: dict[str, Any] = {}
  read_at: datetime.datetime | None = None
  dismissed_at: datetime.datetime | None = None
  auto_dismiss: bool = True
  auto_dismiss_ms: int | None = None

  @property
  def is_unread(self) -> bool:
    return self.read_at is None and self.dismissed_at is None

  @property
  def is_active(self) -> bool:
    return self.dismissed_at is None


class NotificationRule(msgspec.Struct, frozen=True, kw_only=True):
  """Alerting rule configuration for one category."""

  id: str
  name: str
  category: NotificationCategory
  enabled: bool = True
  is_active: bool = True
  threshold_days: float | None = None
  notify_type: NotificationType = NotificationType.INFO
  repeat_interval_hours: float = 24
  description: str | None = None

  @property
  def is_enabled(self) -> bool:
    return self.enabled and self.is_active


class NotificationPreferences(msgspec.Struct, frozen=True, kw_only=True):
  """Global in-app notification toggles."""

  enabled: bool = True
  culture_expiring: bool = True
  stage_transitions: bool = True
  low_inventory: bool = True
  harvest_ready: bool = True
  contamination: bool = True
  lc_age: bool = True
  slow_growth: bool = True
  show_toasts: bool = True
  toast_duration_ms: int = 5000
  sound_enabled: bool = False
  push_enabled: bool = False


class NotificationEventPreference(msgspec.Struct, frozen=True, kw_only=True):
  """Per-category out-of-band channel preference."""

  event_category: NotificationCategory
  email_enabled: bool = True
  sms_enabled: bool = False
  push_enabled: bool = True
  sms_urgent_only: bool = True
  priority: NotificationPriority = NotificationPriority.NORMAL
  batch_interval_minutes: int = 0
  updated_at: datetime.datetime | None = None


class DeliveryLogEntry(msgspec.Struct, frozen=True, kw_only=True):
  """One delivery attempt on one channel for one notification."""

  id: str
  delivery_id: str
  user_id: str
  channel_type: ChannelType
  event_category: NotificationCategory
  title: str
  message: str
  priority: NotificationPriority
  status: DeliveryStatus
  created_at: datetime.datetime
  entity_type: str | None = None
  entity_id: str | None = None
  entity_name: str | None = None
  recipient: str | None = None
  provider: str | None = None
  provider_message_id: str | None = None
  sent_at: datetime.datetime | None = None
  error_code: str | None = None
  error_message: str | None = None
  retry_count: int = 0
  next_retry_at: datetime.datetime | None = None
  metadata: dict[str, Any] = {}


S = TypeVar("S", bound=msgspec.Struct)


def apply_patch(record: S, patch: dict[str, Any], *, immutable: frozenset[str] = frozenset()) -> S:
  """Return a copy of ``record`` with ``patch`` applied and re-validated.

  Raises ``ValueError`` for unknown or immutable fields and for values of the wrong type.
  """
  record_type = type(record)
  unknown = sorted(set(patch) - set(record_type.__struct_fields__))
  if unknown:
    raise ValueError(f"Unknown fields for {record_type.__name__}: {', '.join(unknown)}")

  locked = sorted(set(patch) & immutable)
  if locked:
    raise ValueError(f"Fields cannot be changed: {', '.join(locked)}")

  merged = msgspec.to_builtins(record)
  merged.update(msgspec.to_builtins(patch))
  try:
    return msgspec.convert(merged, type=record_type)
  except msgspec.ValidationError as exc:
    raise ValueError(str(exc)) from exc


@dataclass(frozen=True)
class AppSettings:
  """User-level delivery settings read by the dispatcher."""

  email_notifications_enabled: bool = False
  sms_notifications_enabled: bool = False
  notification_email: str | None = None
  phone_number: str | None = None
  phone_verified: bool = False
  quiet_hours_start: str | None = None
  quiet_hours_end: str | None = None
  timezone: str | None = None


@dataclass(frozen=True)
class UserContext:
  """The authenticated session deliveries are made against."""

  user_id: str
  email: str | None = None


@dataclass(frozen=True)
class DeliveryResult:
  """Outcome of one channel attempt."""

  success: bool
  channel_type: ChannelType
  message_id: str | None = None
  error: str | None = None
  error_code: str | None = None
  provider: str | None = None
  recipient: str | None = None
