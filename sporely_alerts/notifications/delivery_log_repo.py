"""Repository helpers for out-of-band delivery logs."""

from __future__ import annotations

import datetime
import logging
import threading
from typing import Protocol

from sqlalchemy import exists, select
from sqlalchemy.orm import Session, aliased, sessionmaker

from sporely_alerts.notifications.models import ChannelType, DeliveryLogEntry, DeliveryStatus, NotificationCategory, NotificationPriority
from sporely_alerts.schema.delivery_logs import DeliveryLogRecord

logger = logging.getLogger(__name__)


class DeliveryLogStore(Protocol):
  """Append-only storage of delivery attempts."""

  def insert(self, entry: DeliveryLogEntry) -> None: ...

  def list_for_user(self, user_id: str, *, limit: int = 50) -> list[DeliveryLogEntry]: ...

  def list_due_retries(self, user_id: str, now: datetime.datetime, *, limit: int = 100) -> list[DeliveryLogEntry]: ...


def _as_utc(value: datetime.datetime | None) -> datetime.datetime | None:
  # SQLite hands back naive datetimes; every stored value is UTC.
  if value is not None and value.tzinfo is None:
    return value.replace(tzinfo=datetime.UTC)
  return value


def _is_latest_due(entry: DeliveryLogEntry, now: datetime.datetime) -> bool:
  return entry.next_retry_at is not None and entry.next_retry_at <= now


class DeliveryLogRepository(DeliveryLogStore):
  """Persist delivery attempts using SQLAlchemy."""

  def __init__(self, session_factory: sessionmaker[Session]) -> None:
    self._session_factory = session_factory

  def insert(self, entry: DeliveryLogEntry) -> None:
    """Insert a new delivery log row."""
    record = DeliveryLogRecord(
      id=entry.id,
      delivery_id=entry.delivery_id,
      user_id=entry.user_id,
      channel_type=entry.channel_type.value,
      event_category=entry.event_category.value,
      title=entry.title,
      message=entry.message,
      priority=entry.priority.value,
      entity_type=entry.entity_type,
      entity_id=entry.entity_id,
      entity_name=entry.entity_name,
      recipient=entry.recipient,
      status=entry.status.value,
      provider=entry.provider,
      provider_message_id=entry.provider_message_id,
      sent_at=entry.sent_at,
      error_code=entry.error_code,
      error_message=entry.error_message,
      retry_count=entry.retry_count,
      next_retry_at=entry.next_retry_at,
      metadata_json=dict(entry.metadata),
      created_at=entry.created_at,
    )
    with self._session_factory() as session:
      session.add(record)
      session.commit()

  def list_for_user(self, user_id: str, *, limit: int = 50) -> list[DeliveryLogEntry]:
    """Return the newest delivery attempts for one user."""
    stmt = select(DeliveryLogRecord).where(DeliveryLogRecord.user_id == user_id).order_by(DeliveryLogRecord.created_at.desc()).limit(limit)
    with self._session_factory() as session:
      return [self._to_entry(record) for record in session.scalars(stmt)]

  def list_due_retries(self, user_id: str, now: datetime.datetime, *, limit: int = 100) -> list[DeliveryLogEntry]:
    """Return the latest attempt of each of the user's delivery groups whose retry time has passed."""
    newer = aliased(DeliveryLogRecord)
    has_newer_attempt = exists().where(newer.delivery_id == DeliveryLogRecord.delivery_id, newer.retry_count > DeliveryLogRecord.retry_count)
    stmt = (
      select(DeliveryLogRecord)
      .where(DeliveryLogRecord.user_id == user_id, DeliveryLogRecord.next_retry_at.is_not(None), DeliveryLogRecord.next_retry_at <= now, ~has_newer_attempt)
      .order_by(DeliveryLogRecord.next_retry_at.asc())
      .limit(limit)
    )
    with self._session_factory() as session:
      return [self._to_entry(record) for record in session.scalars(stmt)]

  @staticmethod
  def _to_entry(record: DeliveryLogRecord) -> DeliveryLogEntry:
    return DeliveryLogEntry(
      id=record.id,
      delivery_id=record.delivery_id,
      user_id=record.user_id,
      channel_type=ChannelType(record.channel_type),
      event_category=NotificationCategory(record.event_category),
      title=record.title,
      message=record.message,
      priority=NotificationPriority(record.priority),
      status=DeliveryStatus(record.status),
      created_at=_as_utc(record.created_at),
      entity_type=record.entity_type,
      entity_id=record.entity_id,
      entity_name=record.entity_name,
      recipient=record.recipient,
      provider=record.provider,
      provider_message_id=record.provider_message_id,
      sent_at=_as_utc(record.sent_at),
      error_code=record.error_code,
      error_message=record.error_message,
      retry_count=record.retry_count,
      next_retry_at=_as_utc(record.next_retry_at),
      metadata=dict(record.metadata_json or {}),
    )


class InMemoryDeliveryLogRepository(DeliveryLogStore):
  """Process-local delivery log used when no database is configured."""

  def __init__(self) -> None:
    self._entries: list[DeliveryLogEntry] = []
    self._lock = threading.Lock()

  @property
  def entries(self) -> list[DeliveryLogEntry]:
    with self._lock:
      return list(self._entries)

  def insert(self, entry: DeliveryLogEntry) -> None:
    with self._lock:
      self._entries.append(entry)

  def list_for_user(self, user_id: str, *, limit: int = 50) -> list[DeliveryLogEntry]:
    with self._lock:
      matching = [entry for entry in reversed(self._entries) if entry.user_id == user_id]
    return matching[:limit]

  def list_due_retries(self, user_id: str, now: datetime.datetime, *, limit: int = 100) -> list[DeliveryLogEntry]:
    with self._lock:
      latest: dict[str, DeliveryLogEntry] = {}
      for entry in self._entries:
        if entry.user_id != user_id:
          continue
        current = latest.get(entry.delivery_id)
        if current is None or entry.retry_count > current.retry_count:
          latest[entry.delivery_id] = entry

    due = [entry for entry in latest.values() if _is_latest_due(entry, now)]
    due.sort(key=lambda entry: entry.next_retry_at)
    return due[:limit]
