from __future__ import annotations

import asyncio
import time
from unittest.mock import MagicMock

import pytest

from sporely_alerts.notifications.models import NotificationType
from sporely_alerts.notifications.toasts import ToastScheduler, default_timer_factory


def test_toast_auto_dismisses_after_its_duration(toast_scheduler, timers):
  toast_id = toast_scheduler.show_toast(NotificationType.SUCCESS, "Saved", "Culture saved", auto_dismiss_ms=5000)
  assert [toast.id for toast in toast_scheduler.active_toasts] == [toast_id]
  assert timers.timers[0].delay_seconds == 5.0

  timers.advance(4.999)
  assert toast_scheduler.get(toast_id) is not None

  timers.advance(5.0)
  assert toast_scheduler.active_toasts == []


def test_duration_falls_back_to_preference(toast_scheduler, preference_store, timers):
  preference_store.update_preferences({"toast_duration_ms": 8000})
  toast_scheduler.info("Heads up", "Stage changed")
  assert timers.timers[0].delay_seconds == 8.0


@pytest.mark.parametrize("duration", [0, -1])
def test_non_positive_duration_persists_until_dismissed(toast_scheduler, timers, duration):
  toast_id = toast_scheduler.warning("Sticky", "Stays put", auto_dismiss_ms=duration)
  assert timers.timers == []
  assert toast_scheduler.get(toast_id).auto_dismiss_ms == duration

  assert toast_scheduler.dismiss_toast(toast_id) is True
  assert toast_scheduler.active_toasts == []


def test_manual_dismiss_cancels_timer_and_is_idempotent(toast_scheduler, timers):
  toast_id = toast_scheduler.error("Oops", "Something failed")

  assert toast_scheduler.dismiss_toast(toast_id) is True
  assert timers.timers[0].cancelled is True
  assert toast_scheduler.dismiss_toast(toast_id) is False
  assert toast_scheduler.dismiss_toast("toast-unknown") is False


def test_timer_expiry_after_manual_dismiss_is_harmless(toast_scheduler, timers):
  keep = toast_scheduler.success("Keep", "still here", auto_dismiss_ms=60_000)
  gone = toast_scheduler.success("Gone", "dismissed", auto_dismiss_ms=1000)
  toast_scheduler.dismiss_toast(gone)

  # A timer that raced the manual dismissal finds nothing to do.
  timers.timers[1].callback()
  assert [toast.id for toast in toast_scheduler.active_toasts] == [keep]


def test_shutdown_cancels_all_pending_timers(toast_scheduler, timers):
  toast_scheduler.info("one", "1")
  toast_scheduler.info("two", "2")

  toast_scheduler.shutdown()

  assert toast_scheduler.active_toasts == []
  assert all(timer.cancelled for timer in timers.timers)


def test_trigger_action_runs_callback_then_dismisses(toast_scheduler):
  action = MagicMock()
  toast_id = toast_scheduler.info("Undo?", "Culture archived", action_label="Undo", on_action=action)

  assert toast_scheduler.trigger_action(toast_id) is True
  action.assert_called_once_with()
  assert toast_scheduler.get(toast_id) is None
  assert toast_scheduler.trigger_action(toast_id) is False


def test_default_timer_factory_uses_thread_without_loop():
  scheduler = ToastScheduler(timer_factory=default_timer_factory)
  toast_id = scheduler.info("Thread", "timer", auto_dismiss_ms=10)

  deadline = time.monotonic() + 2
  while scheduler.get(toast_id) is not None and time.monotonic() < deadline:
    time.sleep(0.01)

  assert scheduler.get(toast_id) is None


@pytest.mark.anyio
async def test_default_timer_factory_uses_running_loop():
  scheduler = ToastScheduler(timer_factory=default_timer_factory)
  toast_id = scheduler.info("Loop", "timer", auto_dismiss_ms=10)

  assert scheduler.get(toast_id) is not None
  await asyncio.sleep(0.05)
  assert scheduler.get(toast_id) is None
  scheduler.shutdown()
