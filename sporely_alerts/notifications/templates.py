"""Email and SMS message rendering for out-of-band deliveries.

Email HTML is table-based with inline styles for compatibility with major clients.
Templates are stored on disk and rendered with escaped placeholders.
"""

from __future__ import annotations

import html
import re
from functools import lru_cache
from pathlib import Path
from typing import Any

from sporely_alerts.notifications.models import NotificationPayload

_PLACEHOLDER_RE = re.compile(r"\{\{\s*([a-zA-Z0-9_]+)\s*\}\}")
_TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"

# Metadata keys that name the related entity when the payload omits entity_name.
_ENTITY_NAME_KEYS = ("culture_label", "grow_name", "item_name")


def related_entity_name(payload: NotificationPayload) -> str | None:
  if payload.entity_name:
    return payload.entity_name
  for key in _ENTITY_NAME_KEYS:
    value = payload.metadata.get(key)
    if value:
      return str(value)
  return None


def render_email(payload: NotificationPayload, *, brand_name: str) -> tuple[str, str, str]:
  """Render subject/text/html for a notification delivery."""
  entity_name = related_entity_name(payload)
  placeholders = {"brand_name": brand_name, "title": payload.title, "message": payload.message, "related_line": f"Related: {entity_name}" if entity_name else ""}

  subject = f"[{brand_name}] {payload.title}"
  text_body = _render_text(_load_template_file("delivery_v1.txt"), placeholders=placeholders, escape_html=False)
  html_body = _render_text(_load_template_file("delivery_v1.html"), placeholders=placeholders, escape_html=True)
  return subject, text_body, html_body


def render_sms(payload: NotificationPayload, *, brand_name: str) -> str:
  """Render the single-line SMS body."""
  return f"[{brand_name}] {payload.title}: {payload.message}"


def _render_text(raw_template: str, *, placeholders: dict[str, Any], escape_html: bool) -> str:
  """Replace {{placeholders}} with values, escaping for HTML when needed."""

  def _replace(match: re.Match[str]) -> str:
    value = placeholders.get(match.group(1), "")
    rendered = str(value) if value is not None else ""
    if escape_html:
      return html.escape(rendered, quote=True)
    return rendered

  return _PLACEHOLDER_RE.sub(_replace, raw_template)


@lru_cache(maxsize=4)
def _load_template_file(filename: str) -> str:
  """Load a template file from disk with caching."""
  return (_TEMPLATE_DIR / filename).read_text(encoding="utf-8")
