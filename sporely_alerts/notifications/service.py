"""Alert orchestration: rules, in-app notifications and background delivery."""

from __future__ import annotations

import asyncio
import datetime
import logging
from typing import Any

from starlette.concurrency import run_in_threadpool

from sporely_alerts.notifications.dispatcher import DeliveryDispatcher
from sporely_alerts.notifications.models import (
  DELIVERY_CATEGORIES,
  AppSettings,
  DeliveryResult,
  EntityType,
  Notification,
  NotificationCategory,
  NotificationPayload,
  NotificationPriority,
  UserContext,
)
from sporely_alerts.notifications.preferences import PreferenceStore
from sporely_alerts.notifications.rules import RuleEngine
from sporely_alerts.notifications.store import NotificationStore
from sporely_alerts.notifications.toasts import ToastScheduler

logger = logging.getLogger(__name__)


class AlertService:
  """Turns observed domain conditions into notifications and schedules their delivery."""

  def __init__(self, *, preferences: PreferenceStore, rules: RuleEngine, store: NotificationStore, toasts: ToastScheduler, dispatcher: DeliveryDispatcher) -> None:
    self.preferences = preferences
    self.rules = rules
    self.store = store
    self.toasts = toasts
    self.dispatcher = dispatcher
    self._tasks: set[asyncio.Task[list[DeliveryResult]]] = set()

  def set_user(self, user: UserContext | None) -> None:
    self.dispatcher.set_user(user)

  async def observe(
    self,
    category: NotificationCategory | str,
    *,
    title: str,
    message: str,
    observed_value: float | None = None,
    entity_type: EntityType | None = None,
    entity_id: str | None = None,
    entity_name: str | None = None,
    priority: NotificationPriority | None = None,
    metadata: dict[str, Any] | None = None,
    action_label: str | None = None,
    action_page: str | None = None,
    auto_dismiss: bool = True,
    auto_dismiss_ms: int | None = None,
    settings: AppSettings | None = None,
    now: datetime.datetime | None = None,
  ) -> Notification | None:
    """Evaluate an observation and, when a rule fires, create the notification.

    Delivery for out-of-band categories runs as a background task and is never awaited here.
    """
    try:
      category = NotificationCategory(category)
    except ValueError:
      logger.warning("Ignoring observation for unknown category=%s", category)
      return None

    if not self.preferences.is_category_enabled(category):
      return None

    decision = self.rules.evaluate(category, observed_value, entity_id, now)
    if not decision.should_fire or decision.severity is None:
      logger.debug("Rule did not fire category=%s entity_id=%s reason=%s", category.value, entity_id, decision.reason)
      return None

    payload = NotificationPayload(
      category=category,
      type=decision.severity,
      title=title,
      message=message,
      priority=priority,
      entity_type=entity_type,
      entity_id=entity_id,
      entity_name=entity_name,
      action_label=action_label,
      action_page=action_page,
      metadata=dict(metadata or {}),
      auto_dismiss=auto_dismiss,
      auto_dismiss_ms=auto_dismiss_ms,
    )
    # The store persists synchronously; keep that write off the event loop.
    notification = await run_in_threadpool(self.store.add_notification, payload)
    if notification is not None and settings is not None and category in DELIVERY_CATEGORIES:
      self._schedule_delivery(payload, settings)
    return notification

  def _schedule_delivery(self, payload: NotificationPayload, settings: AppSettings) -> None:
    task = asyncio.create_task(self.dispatcher.send_notification(payload, settings))
    self._tasks.add(task)
    task.add_done_callback(self._tasks.discard)
    task.add_done_callback(self._log_task_error)

  @staticmethod
  def _log_task_error(task: asyncio.Task[list[DeliveryResult]]) -> None:
    """Log background task exceptions to avoid silent delivery failures."""
    if task.cancelled():
      return
    try:
      _ = task.result()
    except Exception as exc:  # noqa: BLE001
      logger.error("Background delivery task failed: %s", exc, exc_info=True)

  async def retry_due_deliveries(self, settings: AppSettings) -> list[DeliveryResult]:
    return await self.dispatcher.retry_due_deliveries(settings)

  async def drain(self) -> None:
    """Wait for every in-flight delivery task."""
    pending = list(self._tasks)
    if pending:
      await asyncio.gather(*pending, return_exceptions=True)

  async def shutdown(self) -> None:
    """Cancel toast timers and let in-flight deliveries finish."""
    self.toasts.shutdown()
    await self.drain()

  async def notify_contamination(self, name: str, entity_type: EntityType, entity_id: str, *, settings: AppSettings | None = None) -> Notification | None:
    return await self.observe(
      NotificationCategory.CONTAMINATION,
      title="Contamination Detected",
      message=f"Contamination has been detected in {name}. Immediate action recommended.",
      priority=NotificationPriority.URGENT,
      entity_type=entity_type,
      entity_id=entity_id,
      entity_name=name,
      settings=settings,
    )

  async def notify_harvest_ready(self, grow_name: str, grow_id: str, *, settings: AppSettings | None = None) -> Notification | None:
    return await self.observe(
      NotificationCategory.HARVEST_READY,
      title="Harvest Ready",
      message=f"{grow_name} is ready for harvest!",
      priority=NotificationPriority.HIGH,
      entity_type=EntityType.GROW,
      entity_id=grow_id,
      entity_name=grow_name,
      settings=settings,
    )

  async def notify_stage_transition(self, grow_name: str, grow_id: str, from_stage: str, to_stage: str, *, settings: AppSettings | None = None) -> Notification | None:
    return await self.observe(
      NotificationCategory.STAGE_TRANSITION,
      title="Stage Transition Due",
      message=f"{grow_name} is ready to advance from {from_stage} to {to_stage}.",
      priority=NotificationPriority.NORMAL,
      entity_type=EntityType.GROW,
      entity_id=grow_id,
      entity_name=grow_name,
      metadata={"from_stage": from_stage, "to_stage": to_stage},
      settings=settings,
    )

  async def notify_low_inventory(self, item_name: str, item_id: str, current_qty: float, reorder_point: float, *, settings: AppSettings | None = None) -> Notification | None:
    return await self.observe(
      NotificationCategory.LOW_INVENTORY,
      title="Low Inventory Alert",
      message=f"{item_name} is running low ({current_qty} remaining, reorder point: {reorder_point}).",
      observed_value=current_qty,
      priority=NotificationPriority.NORMAL,
      entity_type=EntityType.INVENTORY,
      entity_id=item_id,
      entity_name=item_name,
      metadata={"current_qty": current_qty, "reorder_point": reorder_point},
      settings=settings,
    )

  async def notify_culture_expiring(self, culture_name: str, culture_id: str, days_until_expiry: int, *, settings: AppSettings | None = None) -> Notification | None:
    suffix = "" if days_until_expiry == 1 else "s"
    return await self.observe(
      NotificationCategory.CULTURE_EXPIRING,
      title="Culture Expiring Soon",
      message=f"{culture_name} will expire in {days_until_expiry} day{suffix}.",
      observed_value=days_until_expiry,
      priority=NotificationPriority.HIGH if days_until_expiry <= 3 else NotificationPriority.NORMAL,
      entity_type=EntityType.CULTURE,
      entity_id=culture_id,
      entity_name=culture_name,
      metadata={"days_until_expiry": days_until_expiry},
      settings=settings,
    )

  async def notify_lc_age(self, culture_name: str, culture_id: str, age_in_days: int, *, settings: AppSettings | None = None) -> Notification | None:
    return await self.observe(
      NotificationCategory.LC_AGE,
      title="LC Age Warning",
      message=f"{culture_name} is {age_in_days} days old. Consider transferring or testing viability.",
      observed_value=age_in_days,
      priority=NotificationPriority.HIGH if age_in_days > 90 else NotificationPriority.NORMAL,
      entity_type=EntityType.CULTURE,
      entity_id=culture_id,
      entity_name=culture_name,
      metadata={"age_in_days": age_in_days},
      settings=settings,
    )

  async def notify_slow_growth(self, grow_name: str, grow_id: str, stage: str, days_in_stage: int) -> Notification | None:
    # In-app only: slow growth is not an out-of-band delivery category.
    return await self.observe(
      NotificationCategory.SLOW_GROWTH,
      title="Slow Growth",
      message=f"{grow_name} has been in {stage} for {days_in_stage} days.",
      observed_value=days_in_stage,
      entity_type=EntityType.GROW,
      entity_id=grow_id,
      entity_name=grow_name,
      metadata={"stage": stage, "days_in_stage": days_in_stage},
    )
