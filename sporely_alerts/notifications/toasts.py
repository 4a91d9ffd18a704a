"""Ephemeral toast notifications with per-toast auto-dismiss timers."""

from __future__ import annotations

import asyncio
import datetime
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Protocol

from sporely_alerts.notifications.models import NotificationType
from sporely_alerts.utils.clock import utc_now
from sporely_alerts.utils.ids import generate_toast_id

logger = logging.getLogger(__name__)


class TimerHandle(Protocol):
  def cancel(self) -> None: ...


TimerFactory = Callable[[float, Callable[[], None]], TimerHandle]


def default_timer_factory(delay_seconds: float, callback: Callable[[], None]) -> TimerHandle:
  """Schedule on the running event loop, or on a daemon thread when no loop is running."""
  try:
    loop = asyncio.get_running_loop()
  except RuntimeError:
    timer = threading.Timer(delay_seconds, callback)
    timer.daemon = True
    timer.start()
    return timer
  return loop.call_later(delay_seconds, callback)


@dataclass
class Toast:
  """A transient notification shown for the current session only."""

  id: str
  type: NotificationType
  title: str
  message: str
  auto_dismiss_ms: int
  action_label: str | None = None
  on_action: Callable[[], None] | None = field(default=None, repr=False)
  created_at: datetime.datetime = field(default_factory=utc_now)

  def to_dict(self) -> dict[str, object]:
    return {"id": self.id, "type": self.type.value, "title": self.title, "message": self.message, "action_label": self.action_label, "auto_dismiss_ms": self.auto_dismiss_ms, "created_at": self.created_at.isoformat()}


class ToastScheduler:
  """Owns the active toast list and one cancellation handle per scheduled toast."""

  def __init__(self, *, default_duration_ms: Callable[[], int] | None = None, timer_factory: TimerFactory = default_timer_factory) -> None:
    self._default_duration_ms = default_duration_ms or (lambda: 5000)
    self._timer_factory = timer_factory
    self._toasts: list[Toast] = []
    self._timers: dict[str, TimerHandle] = {}
    # Re-entrant so a timer callback on another thread serializes with manual dismissal.
    self._lock = threading.RLock()

  @property
  def active_toasts(self) -> list[Toast]:
    with self._lock:
      return list(self._toasts)

  def get(self, toast_id: str) -> Toast | None:
    with self._lock:
      return next((toast for toast in self._toasts if toast.id == toast_id), None)

  def show_toast(
    self, type: NotificationType, title: str, message: str, *, action_label: str | None = None, on_action: Callable[[], None] | None = None, auto_dismiss_ms: int | None = None
  ) -> str:
    """Add a toast and schedule its expiry; a duration of zero or less keeps it until dismissed."""
    duration_ms = self._default_duration_ms() if auto_dismiss_ms is None else auto_dismiss_ms
    toast = Toast(id=generate_toast_id(), type=NotificationType(type), title=title, message=message, auto_dismiss_ms=duration_ms, action_label=action_label, on_action=on_action)

    with self._lock:
      self._toasts.append(toast)
      if duration_ms > 0:
        self._timers[toast.id] = self._timer_factory(duration_ms / 1000, lambda: self._expire(toast.id))

    return toast.id

  def _expire(self, toast_id: str) -> None:
    if self.dismiss_toast(toast_id):
      logger.debug("Toast expired id=%s", toast_id)

  def dismiss_toast(self, toast_id: str) -> bool:
    """Remove a toast and cancel its timer; returns False when it is already gone."""
    with self._lock:
      handle = self._timers.pop(toast_id, None)
      remaining = [toast for toast in self._toasts if toast.id != toast_id]
      removed = len(remaining) != len(self._toasts)
      self._toasts = remaining

    if handle is not None:
      handle.cancel()
    return removed

  def trigger_action(self, toast_id: str) -> bool:
    """Run a toast's action callback, then dismiss it."""
    toast = self.get(toast_id)
    if toast is None:
      return False

    if toast.on_action is not None:
      try:
        toast.on_action()
      except Exception as exc:  # noqa: BLE001
        logger.error("Toast action failed id=%s: %s", toast_id, exc, exc_info=True)
    self.dismiss_toast(toast_id)
    return True

  def success(self, title: str, message: str, **kwargs) -> str:
    return self.show_toast(NotificationType.SUCCESS, title, message, **kwargs)

  def error(self, title: str, message: str, **kwargs) -> str:
    return self.show_toast(NotificationType.ERROR, title, message, **kwargs)

  def warning(self, title: str, message: str, **kwargs) -> str:
    return self.show_toast(NotificationType.WARNING, title, message, **kwargs)

  def info(self, title: str, message: str, **kwargs) -> str:
    return self.show_toast(NotificationType.INFO, title, message, **kwargs)

  def shutdown(self) -> None:
    """Cancel every pending timer and drop all active toasts."""
    with self._lock:
      handles = list(self._timers.values())
      self._timers.clear()
      self._toasts.clear()

    for handle in handles:
      handle.cancel()
    if handles:
      logger.debug("Cancelled %s pending toast timers", len(handles))
