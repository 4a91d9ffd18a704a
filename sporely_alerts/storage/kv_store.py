"""Durable key-value storage for notification state blobs."""

from __future__ import annotations

import logging
import threading
from typing import Any, Protocol, TypeVar

import msgspec
from sqlalchemy.orm import Session, sessionmaker

from sporely_alerts.schema.kv_blobs import KeyValueBlob

logger = logging.getLogger(__name__)

NOTIFICATIONS_KEY = "sporely-notifications"
PREFERENCES_KEY = "sporely-notification-preferences"
RULES_KEY = "sporely-notification-rules"
EVENT_PREFERENCES_KEY = "sporely-notification-event-preferences"


class KeyValueStore(Protocol):
  """Load and save serialized documents by key."""

  def load(self, key: str) -> str | None: ...

  def save(self, key: str, value: str) -> None: ...


class InMemoryKeyValueStore(KeyValueStore):
  """Process-local store used when no database is configured."""

  def __init__(self, initial: dict[str, str] | None = None) -> None:
    self._values: dict[str, str] = dict(initial or {})
    self._lock = threading.Lock()

  def load(self, key: str) -> str | None:
    with self._lock:
      return self._values.get(key)

  def save(self, key: str, value: str) -> None:
    with self._lock:
      self._values[key] = value


class SqlKeyValueStore(KeyValueStore):
  """Persist blobs in the kv_blobs table using SQLAlchemy."""

  def __init__(self, session_factory: sessionmaker[Session]) -> None:
    self._session_factory = session_factory

  def load(self, key: str) -> str | None:
    with self._session_factory() as session:
      record = session.get(KeyValueBlob, key)
      return record.value if record is not None else None

  def save(self, key: str, value: str) -> None:
    with self._session_factory() as session:
      # merge() turns the write into an upsert keyed on the primary key.
      session.merge(KeyValueBlob(key=key, value=value))
      session.commit()


T = TypeVar("T")


def load_blob(store: KeyValueStore, key: str, type_: Any, default: T) -> T:
  """Decode a stored document, falling back to ``default`` when absent or unreadable."""
  try:
    raw = store.load(key)
  except Exception as exc:  # noqa: BLE001
    logger.error("Failed reading persisted blob key=%s: %s", key, exc, exc_info=True)
    return default

  if raw is None:
    return default

  try:
    return msgspec.json.decode(raw, type=type_)
  except (msgspec.DecodeError, msgspec.ValidationError) as exc:
    logger.warning("Discarding corrupt persisted blob key=%s: %s", key, exc)
    return default


def save_blob(store: KeyValueStore, key: str, value: Any) -> bool:
  """Encode and persist a document; failures are logged and reported as False."""
  try:
    store.save(key, msgspec.json.encode(value).decode("utf-8"))
  except Exception as exc:  # noqa: BLE001
    logger.error("Failed persisting blob key=%s: %s", key, exc, exc_info=True)
    return False
  return True
