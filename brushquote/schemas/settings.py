# brushquote/schemas/settings.py
from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field



class ContractorSettingsIn(BaseModel):
    company_name: Optional[str] = None
    notification_email: Optional[EmailStr] = None
    labor_markup_percent: Optional[float] = Field(None, ge=0, le=100)
    material_markup_percent: Optional[float] = Field(None, ge=0, le=100)
    overhead_percent: Optional[float] = Field(None, ge=0, le=100)
    profit_margin_percent: Optional[float] = Field(None, ge=0, le=100)
    tax_percent: Optional[float] = Field(None, ge=0, le=100)
    deposit_percent: Optional[float] = Field(None, ge=0, le=100)
    quote_validity_days: Optional[int] = Field(None, ge=1, le=365)
    portal_duration_days: Optional[int] = Field(None, ge=1, le=365)
    portal_auto_lock: Optional[bool] = None
    turnkey_interior_rate: Optional[float] = Field(None, ge=0)
    turnkey_exterior_rate: Optional[float] = Field(None, ge=0)
    hourly_rate: Optional[float] = Field(None, ge=0)
    crew_size: Optional[int] = Field(None, ge=1)
    default_production_rate: Optional[float] = Field(None, gt=0)


class ContractorSettingsOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    tenant_id: str
    company_name: Optional[str] = None
    notification_email: Optional[str] = None
    labor_markup_percent: float
    material_markup_percent: float
    overhead_percent: float
    profit_margin_percent: float
    tax_percent: float
    deposit_percent: float
    quote_validity_days: int
    portal_duration_days: int
    portal_auto_lock: bool
    turnkey_interior_rate: Optional[float] = None
    turnkey_exterior_rate: Optional[float] = None
    hourly_rate: Optional[float] = None
    crew_size: Optional[int] = None
    default_production_rate: Optional[float] = None


class PricingSchemeIn(BaseModel):
    name: str
    type: str
    rules: Dict[str, Any] = {}
    is_default: bool = False


class PricingSchemeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    type: str
    rules: Dict[str, Any]
    is_default: bool
