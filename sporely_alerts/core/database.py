from __future__ import annotations

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from sporely_alerts.config import get_database_settings


class Base(DeclarativeBase):
  pass


engine: Engine | None = None
SessionLocal: sessionmaker[Session] | None = None


def get_db_engine() -> Engine | None:
  global engine
  database_url = get_database_settings().db_dsn
  if engine is None and database_url:
    # SQLite connections are shared with the thread pool used for delivery logging.
    connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
    engine = create_engine(database_url, echo=get_database_settings().debug, connect_args=connect_args)
  return engine


def get_session_factory() -> sessionmaker[Session] | None:
  global SessionLocal
  if SessionLocal is None:
    db_engine = get_db_engine()
    if db_engine:
      SessionLocal = sessionmaker(bind=db_engine, expire_on_commit=False)
  return SessionLocal


def create_tables() -> bool:
  """Create the alerting tables when a database is configured."""
  db_engine = get_db_engine()
  if db_engine is None:
    return False

  # Import models so they register on the shared metadata.
  from sporely_alerts.schema import DeliveryLogRecord, KeyValueBlob  # noqa: F401

  Base.metadata.create_all(db_engine)
  return True


def dispose_engine() -> None:
  """Release pooled connections and forget the cached factory."""
  global engine, SessionLocal
  if engine is not None:
    engine.dispose()
  engine = None
  SessionLocal = None
