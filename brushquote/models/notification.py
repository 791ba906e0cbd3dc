# brushquote/models/notification.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from brushquote.db import Base


class OutboxMessage(Base):
    """Notification written in the same transaction as the state change it reports."""

    __tablename__ = "notification_outbox"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(String(100), index=True, nullable=False)
    quote_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("quotes.id", ondelete="SET NULL"), index=True, nullable=True
    )

    event: Mapped[str] = mapped_column(String(50), nullable=False)
    recipient: Mapped[Optional[str]] = mapped_column(String(320), nullable=True)
    payload: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    status: Mapped[str] = mapped_column(String(20), index=True, nullable=False, default="pending")
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<OutboxMessage id={self.id} event={self.event} status={self.status}>"
