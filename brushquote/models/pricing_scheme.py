# brushquote/models/pricing_scheme.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict

from sqlalchemy import JSON, Boolean, DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from brushquote.db import Base


class PricingScheme(Base):
    __tablename__ = "pricing_schemes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(String(100), index=True, nullable=False)

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    # canonical model or one of the legacy aliases
    type: Mapped[str] = mapped_column(String(40), nullable=False)
    rules: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<PricingScheme id={self.id} tenant={self.tenant_id} type={self.type}>"
