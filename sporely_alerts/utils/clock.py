"""Time helpers shared by the notification components."""

from __future__ import annotations

import datetime


def utc_now() -> datetime.datetime:
  """Return the current time as an aware UTC datetime."""
  return datetime.datetime.now(tz=datetime.UTC)
