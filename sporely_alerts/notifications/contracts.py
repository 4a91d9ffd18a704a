"""Contracts for out-of-band notification delivery channels."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class EmailNotification:
  """Represents an email notification payload."""

  to_address: str
  to_name: str | None
  subject: str
  text: str
  html: str
  category: str | None = None
  priority: str | None = None


@dataclass(frozen=True)
class SmsNotification:
  """Represents a single-message SMS payload."""

  to_number: str
  body: str
  category: str | None = None
  priority: str | None = None


class NotificationError(Exception):
  """Base class for all notification delivery failures."""


class NotificationProviderError(NotificationError):
  """Exception raised when a specific provider (e.g. MailerSend, Twilio) returns a delivery error."""


class NotificationNotFoundError(LookupError):
  """Raised when a notification id does not exist in the store."""


class RuleNotFoundError(LookupError):
  """Raised when a rule id does not exist in the rule engine."""


class EmailSender(Protocol):
  """Delivery contract for sending email notifications."""

  def send(self, notification: EmailNotification) -> dict[str, str | None]:
    """Send an email notification synchronously and return provider identifiers."""


class SmsSender(Protocol):
  """Delivery contract for sending SMS notifications."""

  def send(self, notification: SmsNotification) -> dict[str, str | None]:
    """Send an SMS synchronously and return provider identifiers."""
