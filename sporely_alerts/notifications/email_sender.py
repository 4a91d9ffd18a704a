"""Alert emails sent through MailerSend's transactional email endpoint."""

from __future__ import annotations

import json
import logging
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Any

from sporely_alerts.notifications.contracts import EmailNotification, EmailSender, NotificationProviderError

logger = logging.getLogger(__name__)

PROVIDER = "mailersend"


@dataclass(frozen=True)
class MailerSendConfig:
  api_key: str
  from_address: str
  from_name: str | None
  timeout_seconds: int
  base_url: str = "https://api.mailersend.com/v1"


def _address(email: str, name: str | None) -> dict[str, str]:
  return {"email": email, "name": name} if name else {"email": email}


def build_email_body(notification: EmailNotification, config: MailerSendConfig) -> dict[str, Any]:
  """Shape one alert into the JSON document the ``/email`` endpoint expects."""
  body: dict[str, Any] = {
    "from": _address(config.from_address, config.from_name),
    "to": [_address(notification.to_address, notification.to_name)],
    "subject": notification.subject,
    "text": notification.text,
    "html": notification.html,
  }
  # Category and priority become tags for filtering in the MailerSend activity log.
  tags = [tag for tag in (notification.category, notification.priority) if tag]
  if tags:
    body["tags"] = tags
  return body


def _message_id(headers: dict[str, str], raw_body: str) -> str | None:
  """Prefer the id header; fall back to an id field when the body carries JSON."""
  if headers.get("x-message-id"):
    return headers["x-message-id"]
  if not raw_body:
    return None
  try:
    parsed = json.loads(raw_body)
  except json.JSONDecodeError:
    return None
  if not isinstance(parsed, dict):
    return None
  found = parsed.get("message_id") or parsed.get("id")
  return str(found) if found else None


class MailerSendEmailSender(EmailSender):
  """Posts alert emails to MailerSend and reports the id it assigns."""

  def __init__(self, *, config: MailerSendConfig) -> None:
    self._config = config

  def _request(self, body: dict[str, Any]) -> urllib.request.Request:
    headers = {"Authorization": f"Bearer {self._config.api_key}", "Content-Type": "application/json", "Accept": "application/json"}
    return urllib.request.Request(url=f"{self._config.base_url}/email", data=json.dumps(body).encode("utf-8"), method="POST", headers=headers)

  def send(self, notification: EmailNotification) -> dict[str, str | None]:
    request = self._request(build_email_body(notification, self._config))
    try:
      with urllib.request.urlopen(request, timeout=self._config.timeout_seconds) as response:
        headers = {name.lower(): value for name, value in response.headers.items()}
        raw_body = response.read().decode("utf-8")
    except urllib.error.HTTPError as exc:
      detail = exc.read().decode("utf-8") if exc.fp else ""
      logger.error("MailerSend returned an error status=%s to=%s detail=%s", exc.code, notification.to_address, detail)
      raise NotificationProviderError(f"MailerSend rejected the email (status {exc.code})") from exc
    except urllib.error.URLError as exc:
      logger.error("MailerSend unreachable to=%s: %s", notification.to_address, exc.reason)
      raise NotificationProviderError(f"MailerSend request failed: {exc.reason}") from exc

    message_id = _message_id(headers, raw_body)
    logger.debug("Alert email accepted to=%s message_id=%s", notification.to_address, message_id)
    return {"provider": PROVIDER, "message_id": message_id, "request_id": headers.get("x-request-id")}


class NullEmailSender(EmailSender):
  """Stands in when email delivery is switched off; nothing leaves the process."""

  def send(self, notification: EmailNotification) -> dict[str, str | None]:
    logger.debug("Email delivery off; not sending subject=%s", notification.subject)
    return {"provider": None, "message_id": None, "request_id": None}
