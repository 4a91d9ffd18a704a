"""Factory helpers for the alerting service."""

from __future__ import annotations

from sporely_alerts.config import Settings
from sporely_alerts.core.database import get_session_factory
from sporely_alerts.notifications.contracts import EmailSender, SmsSender
from sporely_alerts.notifications.delivery_log_repo import DeliveryLogRepository, DeliveryLogStore, InMemoryDeliveryLogRepository
from sporely_alerts.notifications.dispatcher import DeliveryDispatcher
from sporely_alerts.notifications.email_sender import MailerSendConfig, MailerSendEmailSender, NullEmailSender
from sporely_alerts.notifications.models import UserContext
from sporely_alerts.notifications.preferences import PreferenceStore
from sporely_alerts.notifications.rules import RuleEngine
from sporely_alerts.notifications.service import AlertService
from sporely_alerts.notifications.sms_sender import NullSmsSender, TwilioConfig, TwilioSmsSender
from sporely_alerts.notifications.store import NotificationStore
from sporely_alerts.notifications.toasts import TimerFactory, ToastScheduler, default_timer_factory
from sporely_alerts.storage.kv_store import InMemoryKeyValueStore, KeyValueStore, SqlKeyValueStore


def build_email_sender(settings: Settings) -> EmailSender:
  # Email is disabled by default to avoid accidental delivery in dev/test.
  if not settings.email_delivery_enabled:
    return NullEmailSender()

  config = MailerSendConfig(
    api_key=settings.mailersend_api_key or "", from_address=settings.email_from_address or "", from_name=settings.email_from_name, timeout_seconds=settings.mailersend_timeout_seconds, base_url=settings.mailersend_base_url
  )
  return MailerSendEmailSender(config=config)


def build_sms_sender(settings: Settings) -> SmsSender:
  if not settings.sms_delivery_enabled:
    return NullSmsSender()

  config = TwilioConfig(
    account_sid=settings.twilio_account_sid or "", auth_token=settings.twilio_auth_token or "", from_number=settings.twilio_from_number or "", timeout_seconds=settings.twilio_timeout_seconds, base_url=settings.twilio_base_url
  )
  return TwilioSmsSender(config=config)


def build_alert_service(
  settings: Settings, *, kv_store: KeyValueStore | None = None, log_repo: DeliveryLogStore | None = None, email_sender: EmailSender | None = None, sms_sender: SmsSender | None = None, timer_factory: TimerFactory = default_timer_factory
) -> AlertService:
  """Construct the alerting service based on environment configuration."""
  # Persist to the database only when a DSN is configured.
  session_factory = get_session_factory() if settings.db_dsn else None
  if kv_store is None:
    kv_store = SqlKeyValueStore(session_factory) if session_factory is not None else InMemoryKeyValueStore()
  if log_repo is None:
    log_repo = DeliveryLogRepository(session_factory) if session_factory is not None else InMemoryDeliveryLogRepository()

  preferences = PreferenceStore(kv_store)
  toasts = ToastScheduler(default_duration_ms=lambda: preferences.preferences.toast_duration_ms, timer_factory=timer_factory)
  store = NotificationStore(kv_store, preferences=preferences, toasts=toasts)
  rules = RuleEngine(kv_store)

  user = UserContext(user_id=settings.user_id, email=settings.user_email) if settings.user_id else None
  dispatcher = DeliveryDispatcher(
    preferences=preferences,
    email_sender=email_sender or build_email_sender(settings),
    sms_sender=sms_sender or build_sms_sender(settings),
    log_repo=log_repo,
    brand_name=settings.brand_name,
    max_retries=settings.delivery_max_retries,
    retry_base_seconds=settings.delivery_retry_base_seconds,
    user=user,
  )
  return AlertService(preferences=preferences, rules=rules, store=store, toasts=toasts, dispatcher=dispatcher)
