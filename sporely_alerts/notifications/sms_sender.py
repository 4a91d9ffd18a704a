"""SMS delivery implementations backed by the Twilio Messages REST API."""

from __future__ import annotations

import base64
import json
import logging
import re
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass

from sporely_alerts.notifications.contracts import NotificationProviderError, SmsNotification, SmsSender

logger = logging.getLogger(__name__)

_NON_DIAL_RE = re.compile(r"[^\d+]")


def normalize_phone_number(raw: str) -> str:
  """Strip formatting and assume a North American number when no country code is given."""
  digits = _NON_DIAL_RE.sub("", raw)
  if digits.startswith("+"):
    return digits
  if digits.startswith("1"):
    digits = digits[1:]
  return f"+1{digits}"


@dataclass(frozen=True)
class TwilioConfig:
  """Twilio account configuration needed to send SMS."""

  account_sid: str
  auth_token: str
  from_number: str
  timeout_seconds: int
  base_url: str = "https://api.twilio.com/2010-04-01"


class TwilioSmsSender(SmsSender):
  """Twilio-backed SMS sender."""

  def __init__(self, *, config: TwilioConfig) -> None:
    self._config = config

  def send(self, notification: SmsNotification) -> dict[str, str | None]:
    """Send an SMS through Twilio and return the message SID."""
    form = urllib.parse.urlencode({"To": normalize_phone_number(notification.to_number), "From": self._config.from_number, "Body": notification.body}).encode("utf-8")
    credentials = base64.b64encode(f"{self._config.account_sid}:{self._config.auth_token}".encode()).decode("ascii")

    request = urllib.request.Request(
      url=f"{self._config.base_url}/Accounts/{self._config.account_sid}/Messages.json",
      data=form,
      method="POST",
      headers={"Authorization": f"Basic {credentials}", "Content-Type": "application/x-www-form-urlencoded", "Accept": "application/json"},
    )

    try:
      with urllib.request.urlopen(request, timeout=self._config.timeout_seconds) as response:
        raw_body = response.read().decode("utf-8") if response else ""
        try:
          body_json = json.loads(raw_body) if raw_body else {}
        except json.JSONDecodeError:
          body_json = {}

        message_id = body_json.get("sid") if isinstance(body_json, dict) else None
        return {"provider": "twilio", "message_id": str(message_id) if message_id else None, "request_id": None}

    except urllib.error.HTTPError as exc:
      raw_error = exc.read().decode("utf-8") if exc.fp else ""
      logger.error("Twilio SMS request failed status=%s body=%s", exc.code, raw_error)
      detail = _twilio_error_message(raw_error) or f"status {exc.code}"
      raise NotificationProviderError(f"Twilio rejected the SMS ({detail})") from exc

    except urllib.error.URLError as exc:
      logger.error("Twilio SMS request failed: %s", exc)
      raise NotificationProviderError(f"Twilio request failed: {exc.reason}") from exc


def _twilio_error_message(raw_error: str) -> str | None:
  if not raw_error:
    return None
  try:
    body = json.loads(raw_error)
  except json.JSONDecodeError:
    return None
  if isinstance(body, dict) and body.get("message"):
    return str(body["message"])
  return None


class NullSmsSender(SmsSender):
  """No-op SMS sender used when SMS delivery is not configured."""

  def send(self, notification: SmsNotification) -> dict[str, str | None]:
    logger.debug("SMS delivery disabled; dropping sms to=%s", notification.to_number)
    return {"provider": None, "message_id": None, "request_id": None}
