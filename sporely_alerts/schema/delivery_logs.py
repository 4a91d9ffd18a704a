"""SQLAlchemy model for out-of-band delivery attempts."""

from __future__ import annotations

import datetime

from sqlalchemy import JSON, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from sporely_alerts.core.database import Base


class DeliveryLogRecord(Base):
  """Append-only row per delivery attempt per channel."""

  __tablename__ = "notification_delivery_log"

  id: Mapped[str] = mapped_column(String(36), primary_key=True)
  delivery_id: Mapped[str] = mapped_column(String(36), index=True, nullable=False)
  user_id: Mapped[str] = mapped_column(String, index=True, nullable=False)
  channel_type: Mapped[str] = mapped_column(String(16), nullable=False)
  event_category: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
  title: Mapped[str] = mapped_column(String, nullable=False)
  message: Mapped[str] = mapped_column(Text, nullable=False)
  priority: Mapped[str] = mapped_column(String(16), nullable=False)
  entity_type: Mapped[str | None] = mapped_column(String(32), nullable=True)
  entity_id: Mapped[str | None] = mapped_column(String, nullable=True)
  entity_name: Mapped[str | None] = mapped_column(String, nullable=True)
  recipient: Mapped[str | None] = mapped_column(String, nullable=True)
  status: Mapped[str] = mapped_column(String(16), index=True, nullable=False)
  provider: Mapped[str | None] = mapped_column(String(32), nullable=True)
  provider_message_id: Mapped[str | None] = mapped_column(String, nullable=True)
  sent_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  error_code: Mapped[str | None] = mapped_column(String(32), nullable=True)
  error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
  retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  next_retry_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), index=True, nullable=True)
  metadata_json: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False)
