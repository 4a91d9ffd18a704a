"""Shared fixtures for the alerting engine tests."""

from __future__ import annotations

import asyncio
import datetime
import sys
from collections.abc import Callable
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
  sys.path.insert(0, str(ROOT))

import pytest  # noqa: E402

from sporely_alerts.notifications.delivery_log_repo import InMemoryDeliveryLogRepository  # noqa: E402
from sporely_alerts.notifications.dispatcher import DeliveryDispatcher  # noqa: E402
from sporely_alerts.notifications.models import UserContext  # noqa: E402
from sporely_alerts.notifications.preferences import PreferenceStore  # noqa: E402
from sporely_alerts.notifications.rules import RuleEngine  # noqa: E402
from sporely_alerts.notifications.service import AlertService  # noqa: E402
from sporely_alerts.notifications.store import NotificationStore  # noqa: E402
from sporely_alerts.notifications.toasts import ToastScheduler  # noqa: E402
from sporely_alerts.storage.kv_store import InMemoryKeyValueStore  # noqa: E402

T0 = datetime.datetime(2024, 6, 1, 12, 0, tzinfo=datetime.UTC)


class LoopTrackingKeyValueStore(InMemoryKeyValueStore):
  """In-memory store that records whether each save ran on an event loop thread."""

  def __init__(self) -> None:
    super().__init__()
    self.saved_on_loop: list[bool] = []

  def save(self, key: str, value: str) -> None:
    try:
      asyncio.get_running_loop()
    except RuntimeError:
      self.saved_on_loop.append(False)
    else:
      self.saved_on_loop.append(True)
    super().save(key, value)


class FakeTimer:
  def __init__(self, delay_seconds: float, callback: Callable[[], None]) -> None:
    self.delay_seconds = delay_seconds
    self.callback = callback
    self.cancelled = False
    self.fired = False

  def cancel(self) -> None:
    self.cancelled = True

  def fire(self) -> None:
    self.fired = True
    self.callback()


class FakeTimers:
  """Timer factory that records handles and fires them on demand."""

  def __init__(self) -> None:
    self.timers: list[FakeTimer] = []

  def __call__(self, delay_seconds: float, callback: Callable[[], None]) -> FakeTimer:
    timer = FakeTimer(delay_seconds, callback)
    self.timers.append(timer)
    return timer

  def advance(self, seconds: float) -> None:
    """Fire every live timer whose delay has elapsed."""
    for timer in list(self.timers):
      if not timer.cancelled and not timer.fired and timer.delay_seconds <= seconds:
        timer.fire()


class FakeClock:
  def __init__(self, start: datetime.datetime = T0) -> None:
    self.now = start

  def __call__(self) -> datetime.datetime:
    return self.now

  def advance(self, **kwargs: float) -> None:
    self.now += datetime.timedelta(**kwargs)


class RecordingSender:
  """Email/SMS sender double that records calls and can be told to fail."""

  def __init__(self, provider: str) -> None:
    self.provider = provider
    self.sent: list[object] = []
    self.error: Exception | None = None

  def send(self, notification: object) -> dict[str, str | None]:
    self.sent.append(notification)
    if self.error is not None:
      raise self.error
    return {"provider": self.provider, "message_id": f"{self.provider}-{len(self.sent)}", "request_id": None}


@pytest.fixture
def anyio_backend():
  return "asyncio"


@pytest.fixture
def kv_store():
  return LoopTrackingKeyValueStore()


@pytest.fixture
def clock():
  return FakeClock()


@pytest.fixture
def timers():
  return FakeTimers()


@pytest.fixture
def preference_store(kv_store):
  return PreferenceStore(kv_store)


@pytest.fixture
def toast_scheduler(preference_store, timers):
  return ToastScheduler(default_duration_ms=lambda: preference_store.preferences.toast_duration_ms, timer_factory=timers)


@pytest.fixture
def notification_store(kv_store, preference_store, toast_scheduler, clock):
  return NotificationStore(kv_store, preferences=preference_store, toasts=toast_scheduler, clock=clock)


@pytest.fixture
def rule_engine(kv_store, clock):
  return RuleEngine(kv_store, clock=clock)


@pytest.fixture
def email_sender():
  return RecordingSender("mailersend")


@pytest.fixture
def sms_sender():
  return RecordingSender("twilio")


@pytest.fixture
def delivery_log():
  return InMemoryDeliveryLogRepository()


@pytest.fixture
def dispatcher(preference_store, email_sender, sms_sender, delivery_log, clock):
  return DeliveryDispatcher(
    preferences=preference_store, email_sender=email_sender, sms_sender=sms_sender, log_repo=delivery_log, user=UserContext(user_id="user-1", email="grower@example.com"), clock=clock
  )


@pytest.fixture
def alert_service(preference_store, rule_engine, notification_store, toast_scheduler, dispatcher):
  return AlertService(preferences=preference_store, rules=rule_engine, store=notification_store, toasts=toast_scheduler, dispatcher=dispatcher)
