"""Identifier utilities."""

from __future__ import annotations

import secrets
import string
import time
import uuid


def generate_nanoid(size: int = 9) -> str:
  """Return a short non-sequential id suitable for public references."""
  alphabet = string.ascii_lowercase + string.digits
  return "".join(secrets.choice(alphabet) for _ in range(size))


def generate_notification_id() -> str:
  """Return a notification id ordered by creation time."""
  return f"notif-{time.time_ns() // 1_000_000}-{generate_nanoid()}"


def generate_toast_id() -> str:
  """Return a toast id; toasts never leave the process so a short id is enough."""
  return f"toast-{generate_nanoid(12)}"


def generate_delivery_id() -> str:
  """Return a delivery group identifier shared by an attempt and its retries."""
  return str(uuid.uuid4())
