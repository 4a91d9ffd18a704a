"""SQLAlchemy model for durable key-value blobs."""

from __future__ import annotations

import datetime

from sqlalchemy import DateTime, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from sporely_alerts.core.database import Base


class KeyValueBlob(Base):
  """One serialized document per key (notifications, preferences, rules)."""

  __tablename__ = "kv_blobs"

  key: Mapped[str] = mapped_column(String(128), primary_key=True)
  value: Mapped[str] = mapped_column(Text, nullable=False)
  updated_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
