"""Out-of-band delivery of notifications over email and SMS."""

from __future__ import annotations

import datetime
import logging
from collections.abc import Callable

from starlette.concurrency import run_in_threadpool

from sporely_alerts.notifications.contracts import EmailNotification, EmailSender, NotificationProviderError, SmsNotification, SmsSender
from sporely_alerts.notifications.delivery_log_repo import DeliveryLogStore
from sporely_alerts.notifications.models import (
  URGENT_PRIORITIES,
  AppSettings,
  ChannelType,
  DeliveryLogEntry,
  DeliveryResult,
  DeliveryStatus,
  EntityType,
  NotificationEventPreference,
  NotificationPayload,
  NotificationType,
  UserContext,
)
from sporely_alerts.notifications.preferences import PreferenceStore
from sporely_alerts.notifications.quiet_hours import is_in_quiet_hours
from sporely_alerts.notifications.templates import render_email, render_sms
from sporely_alerts.utils.clock import utc_now
from sporely_alerts.utils.ids import generate_delivery_id

logger = logging.getLogger(__name__)

NO_DESTINATION = "NO_DESTINATION"
UNVERIFIED_DESTINATION = "UNVERIFIED_DESTINATION"
NOT_CONFIGURED = "NOT_CONFIGURED"
CHANNEL_DISABLED = "CHANNEL_DISABLED"
PROVIDER_ERROR = "PROVIDER_ERROR"
DELIVERY_FAILED = "DELIVERY_FAILED"

# Only provider-side failures are worth retrying; destination problems need user action.
RETRYABLE_ERROR_CODES = frozenset({PROVIDER_ERROR, DELIVERY_FAILED})

_TYPE_METADATA_KEY = "notification_type"


def channel_allowed(channel: ChannelType, payload: NotificationPayload, settings: AppSettings, preference: NotificationEventPreference) -> bool:
  """Combine the account-level switch with the per-category preference for one channel."""
  if channel is ChannelType.EMAIL:
    return settings.email_notifications_enabled and preference.email_enabled

  if not (settings.sms_notifications_enabled and preference.sms_enabled):
    return False
  return not preference.sms_urgent_only or payload.effective_priority in URGENT_PRIORITIES


class DeliveryDispatcher:
  """Resolves preferences and quiet hours, sends per channel, and logs every attempt."""

  def __init__(
    self,
    *,
    preferences: PreferenceStore,
    email_sender: EmailSender,
    sms_sender: SmsSender,
    log_repo: DeliveryLogStore,
    brand_name: str = "Sporely",
    max_retries: int = 3,
    retry_base_seconds: int = 300,
    user: UserContext | None = None,
    clock: Callable[[], datetime.datetime] = utc_now,
  ) -> None:
    self._preferences = preferences
    self._email_sender = email_sender
    self._sms_sender = sms_sender
    self._log_repo = log_repo
    self._brand_name = brand_name
    self._max_retries = max_retries
    self._retry_base_seconds = retry_base_seconds
    self._user = user
    self._clock = clock

  @property
  def user(self) -> UserContext | None:
    return self._user

  def set_user(self, user: UserContext | None) -> None:
    self._user = user

  def _can_deliver(self, settings: AppSettings, now: datetime.datetime) -> UserContext | None:
    user = self._user
    if user is None:
      logger.debug("No user context; skipping out-of-band delivery")
      return None

    if not self._preferences.preferences.enabled:
      return None

    if is_in_quiet_hours(settings, now):
      logger.info("Within quiet hours; skipping out-of-band delivery user_id=%s", user.user_id)
      return None

    return user

  async def send_notification(self, payload: NotificationPayload, settings: AppSettings) -> list[DeliveryResult]:
    """Attempt every allowed channel once; failures come back as results, never exceptions."""
    now = self._clock()
    user = self._can_deliver(settings, now)
    if user is None:
      return []

    preference = self._preferences.get_event_preference(payload.category)
    results: list[DeliveryResult] = []
    for channel in (ChannelType.EMAIL, ChannelType.SMS):
      if not channel_allowed(channel, payload, settings, preference):
        continue
      result = await self._deliver(channel, payload, settings, user)
      await self._record(result, payload=payload, user=user, delivery_id=generate_delivery_id(), retry_count=0)
      results.append(result)

    return results

  async def retry_due_deliveries(self, settings: AppSettings) -> list[DeliveryResult]:
    """Re-attempt failed deliveries whose retry time has passed for the current user."""
    now = self._clock()
    user = self._can_deliver(settings, now)
    if user is None:
      return []

    try:
      due = await run_in_threadpool(self._log_repo.list_due_retries, user.user_id, now)
    except Exception as exc:  # noqa: BLE001
      logger.error("Delivery retry lookup failed: %s", exc, exc_info=True)
      return []

    results: list[DeliveryResult] = []
    for previous in due:
      payload = self._payload_from_entry(previous)
      preference = self._preferences.get_event_preference(payload.category)
      if channel_allowed(previous.channel_type, payload, settings, preference):
        result = await self._deliver(previous.channel_type, payload, settings, user)
      else:
        result = DeliveryResult(success=False, channel_type=previous.channel_type, error="Channel disabled; retry abandoned", error_code=CHANNEL_DISABLED, recipient=previous.recipient)

      await self._record(result, payload=payload, user=user, delivery_id=previous.delivery_id, retry_count=previous.retry_count + 1)
      results.append(result)

    if results:
      logger.info("Retried %s due deliveries user_id=%s", len(results), user.user_id)
    return results

  async def get_delivery_history(self, limit: int = 50) -> list[DeliveryLogEntry]:
    """Return the current user's newest delivery attempts."""
    if self._user is None:
      return []
    return await run_in_threadpool(self._log_repo.list_for_user, self._user.user_id, limit=limit)

  async def _deliver(self, channel: ChannelType, payload: NotificationPayload, settings: AppSettings, user: UserContext) -> DeliveryResult:
    if channel is ChannelType.EMAIL:
      return await self._send_email(payload, settings, user)
    return await self._send_sms(payload, settings)

  async def _send_email(self, payload: NotificationPayload, settings: AppSettings, user: UserContext) -> DeliveryResult:
    recipient = settings.notification_email or user.email
    if not recipient:
      return DeliveryResult(success=False, channel_type=ChannelType.EMAIL, error="No email address configured", error_code=NO_DESTINATION)

    try:
      subject, text_body, html_body = render_email(payload, brand_name=self._brand_name)
      notification = EmailNotification(to_address=recipient, to_name=None, subject=subject, text=text_body, html=html_body, category=payload.category.value, priority=payload.effective_priority.value)
      send_result = await run_in_threadpool(self._email_sender.send, notification)
    except NotificationProviderError as exc:
      # Provider errors are expected outcomes (e.g. 403, 422) and are logged without a traceback.
      logger.error("Email delivery failed (provider error): %s", exc)
      return DeliveryResult(success=False, channel_type=ChannelType.EMAIL, error=str(exc), error_code=PROVIDER_ERROR, recipient=recipient)
    except Exception as exc:  # noqa: BLE001
      logger.error("Email delivery failed: %s", exc, exc_info=True)
      return DeliveryResult(success=False, channel_type=ChannelType.EMAIL, error=str(exc), error_code=DELIVERY_FAILED, recipient=recipient)

    return self._result_from_send(ChannelType.EMAIL, send_result, recipient)

  async def _send_sms(self, payload: NotificationPayload, settings: AppSettings) -> DeliveryResult:
    recipient = settings.phone_number
    if not recipient:
      return DeliveryResult(success=False, channel_type=ChannelType.SMS, error="No phone number configured", error_code=NO_DESTINATION)
    if not settings.phone_verified:
      return DeliveryResult(success=False, channel_type=ChannelType.SMS, error="Phone number not verified", error_code=UNVERIFIED_DESTINATION, recipient=recipient)

    try:
      notification = SmsNotification(to_number=recipient, body=render_sms(payload, brand_name=self._brand_name), category=payload.category.value, priority=payload.effective_priority.value)
      send_result = await run_in_threadpool(self._sms_sender.send, notification)
    except NotificationProviderError as exc:
      logger.error("SMS delivery failed (provider error): %s", exc)
      return DeliveryResult(success=False, channel_type=ChannelType.SMS, error=str(exc), error_code=PROVIDER_ERROR, recipient=recipient)
    except Exception as exc:  # noqa: BLE001
      logger.error("SMS delivery failed: %s", exc, exc_info=True)
      return DeliveryResult(success=False, channel_type=ChannelType.SMS, error=str(exc), error_code=DELIVERY_FAILED, recipient=recipient)

    return self._result_from_send(ChannelType.SMS, send_result, recipient)

  @staticmethod
  def _result_from_send(channel: ChannelType, send_result: dict[str, str | None], recipient: str) -> DeliveryResult:
    provider = send_result.get("provider")
    # Null senders report no provider: the channel is switched off server-side.
    if not provider:
      return DeliveryResult(success=False, channel_type=channel, error=f"{channel.value} delivery is not configured", error_code=NOT_CONFIGURED, recipient=recipient)
    return DeliveryResult(success=True, channel_type=channel, message_id=send_result.get("message_id"), provider=provider, recipient=recipient)

  def _next_retry_at(self, result: DeliveryResult, retry_count: int, now: datetime.datetime) -> datetime.datetime | None:
    if result.success or result.error_code not in RETRYABLE_ERROR_CODES or retry_count >= self._max_retries:
      return None
    return now + datetime.timedelta(seconds=self._retry_base_seconds * 2**retry_count)

  async def _record(self, result: DeliveryResult, *, payload: NotificationPayload, user: UserContext, delivery_id: str, retry_count: int) -> None:
    """Append one log entry for an attempt; storage failures are logged, not raised."""
    now = self._clock()
    next_retry_at = self._next_retry_at(result, retry_count, now)
    if result.success:
      status = DeliveryStatus.SENT
    elif next_retry_at is not None and retry_count > 0:
      status = DeliveryStatus.RETRYING
    else:
      status = DeliveryStatus.FAILED

    entry = DeliveryLogEntry(
      id=generate_delivery_id(),
      delivery_id=delivery_id,
      user_id=user.user_id,
      channel_type=result.channel_type,
      event_category=payload.category,
      title=payload.title,
      message=payload.message,
      priority=payload.effective_priority,
      status=status,
      created_at=now,
      entity_type=payload.entity_type.value if payload.entity_type else None,
      entity_id=payload.entity_id,
      entity_name=payload.entity_name,
      recipient=result.recipient,
      provider=result.provider,
      provider_message_id=result.message_id,
      sent_at=now if result.success else None,
      error_code=result.error_code,
      error_message=result.error,
      retry_count=retry_count,
      next_retry_at=next_retry_at,
      metadata={**payload.metadata, _TYPE_METADATA_KEY: payload.type.value},
    )

    try:
      await run_in_threadpool(self._log_repo.insert, entry)
    except Exception as exc:  # noqa: BLE001
      logger.error("Delivery log insert failed delivery_id=%s: %s", delivery_id, exc, exc_info=True)

  @staticmethod
  def _payload_from_entry(entry: DeliveryLogEntry) -> NotificationPayload:
    metadata = dict(entry.metadata)
    notification_type = NotificationType(metadata.pop(_TYPE_METADATA_KEY, NotificationType.INFO.value))
    return NotificationPayload(
      category=entry.event_category,
      type=notification_type,
      title=entry.title,
      message=entry.message,
      priority=entry.priority,
      entity_type=EntityType(entry.entity_type) if entry.entity_type else None,
      entity_id=entry.entity_id,
      entity_name=entry.entity_name,
      metadata=metadata,
    )
