"""Quiet-hours evaluation for out-of-band delivery."""

from __future__ import annotations

import datetime
import logging
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sporely_alerts.notifications.models import AppSettings

logger = logging.getLogger(__name__)


def parse_hhmm(value: str) -> int:
  """Convert an ``HH:MM`` string to minutes since midnight."""
  hours_text, sep, minutes_text = value.strip().partition(":")
  if not sep:
    raise ValueError(f"Expected HH:MM, got {value!r}")

  hours, minutes = int(hours_text), int(minutes_text[:2])
  if not (0 <= hours < 24 and 0 <= minutes < 60):
    raise ValueError(f"Time out of range: {value!r}")
  return hours * 60 + minutes


def _local_time(settings: AppSettings, now: datetime.datetime) -> datetime.datetime | None:
  # Without a configured zone, aware values are read in the host's local time.
  if not settings.timezone:
    return now.astimezone() if now.tzinfo is not None else now

  try:
    zone = ZoneInfo(settings.timezone)
  except (ZoneInfoNotFoundError, ValueError) as exc:
    logger.warning("Unknown quiet-hours timezone=%s: %s", settings.timezone, exc)
    return None

  # Naive values are taken as UTC before conversion.
  if now.tzinfo is None:
    now = now.replace(tzinfo=datetime.UTC)
  return now.astimezone(zone)


def is_in_quiet_hours(settings: AppSettings, now: datetime.datetime) -> bool:
  """Return True when ``now`` falls in the half-open quiet window ``[start, end)``.

  Windows where start is after end span midnight (e.g. 22:00-08:00).
  """
  if not settings.quiet_hours_start or not settings.quiet_hours_end:
    return False

  try:
    start = parse_hhmm(settings.quiet_hours_start)
    end = parse_hhmm(settings.quiet_hours_end)
  except ValueError as exc:
    logger.warning("Ignoring malformed quiet hours start=%s end=%s: %s", settings.quiet_hours_start, settings.quiet_hours_end, exc)
    return False

  local = _local_time(settings, now)
  if local is None:
    return False

  current = local.hour * 60 + local.minute
  if start <= end:
    return start <= current < end
  return current >= start or current < end
