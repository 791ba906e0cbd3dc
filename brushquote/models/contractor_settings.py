# brushquote/models/contractor_settings.py
from __future__ import annotations

from typing import Optional

from sqlalchemy import Boolean, Float, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, validates

from brushquote.core.errors import ValidationError
from brushquote.db import Base

PERCENT_FIELDS = (
    "labor_markup_percent",
    "material_markup_percent",
    "overhead_percent",
    "profit_margin_percent",
    "tax_percent",
    "deposit_percent",
)


class ContractorSettings(Base):
    __tablename__ = "contractor_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(String(100), index=True, unique=True, nullable=False)

    company_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    notification_email: Mapped[Optional[str]] = mapped_column(String(320), nullable=True)

    # markups (percent)
    labor_markup_percent: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    material_markup_percent: Mapped[float] = mapped_column(Float, nullable=False, default=25.0)
    overhead_percent: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    profit_margin_percent: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    tax_percent: Mapped[float] = mapped_column(Float, nullable=False, default=8.25)
    deposit_percent: Mapped[float] = mapped_column(Float, nullable=False, default=50.0)

    # lifecycle
    quote_validity_days: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    portal_duration_days: Mapped[int] = mapped_column(Integer, nullable=False, default=14)
    portal_auto_lock: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # pricing overrides (None -> scheme value)
    turnkey_interior_rate: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    turnkey_exterior_rate: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    hourly_rate: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    crew_size: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    default_production_rate: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    @validates(*PERCENT_FIELDS)
    def _validate_percent(self, key: str, value):
        if value is None or not (0.0 <= float(value) <= 100.0):
            raise ValidationError(
                f"{key} must be between 0 and 100",
                code="INVALID_PERCENTAGE",
                details={"field": key, "value": value},
            )
        return float(value)

    def rule_overrides(self) -> dict:
        return {
            "turnkey_interior_rate": self.turnkey_interior_rate,
            "turnkey_exterior_rate": self.turnkey_exterior_rate,
            "hourly_rate": self.hourly_rate,
            "crew_size": self.crew_size,
            "default_production_rate": self.default_production_rate,
        }

    def __repr__(self) -> str:
        return f"<ContractorSettings tenant_id={self.tenant_id!r}>"
