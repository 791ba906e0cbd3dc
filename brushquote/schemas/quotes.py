# brushquote/schemas/quotes.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class DimensionsIn(BaseModel):
    length: float = Field(0, ge=0)
    width: float = Field(0, ge=0)
    height: float = Field(0, ge=0)


class LaborItemIn(BaseModel):
    category: str
    measurement_unit: Literal["sqft", "linear_foot", "hour", "unit"] = "sqft"
    quantity: Optional[float] = Field(None, ge=0)
    dimensions: Optional[DimensionsIn] = None
    coats: Optional[int] = Field(None, ge=1, le=5)
    labor_rate: float = Field(0, ge=0)
    selected: bool = True
    gallons: Optional[float] = Field(None, ge=0)


class AreaIn(BaseModel):
    id: Optional[int] = None
    name: str
    labor_items: List[LaborItemIn] = []


class ProductIn(BaseModel):
    product_id: Optional[str] = None
    name: str = ""
    price_per_gallon: Optional[float] = Field(None, ge=0)


class ProductSetIn(BaseModel):
    category: str
    good: Optional[ProductIn] = None
    better: Optional[ProductIn] = None
    best: Optional[ProductIn] = None


class QuoteInputs(BaseModel):
    pricing_scheme_id: Optional[int] = None
    job_scope: Literal["interior", "exterior"] = "interior"
    home_sqft: Optional[float] = Field(None, ge=0)
    home_condition: Optional[Literal["excellent", "good", "average", "fair", "poor"]] = None
    include_materials: bool = True
    application_method: Literal["roll", "spray"] = "roll"
    coats: int = Field(2, ge=1, le=5)
    coverage: Optional[float] = Field(None, gt=0)
    waste_factor: Optional[float] = Field(None, ge=1)
    add_ons: float = Field(0, ge=0)
    areas: List[AreaIn] = []
    product_sets: List[ProductSetIn] = []
    notes: Optional[str] = None


class QuoteCreate(QuoteInputs):
    client_id: str
    customer_name: Optional[str] = None
    customer_email: Optional[EmailStr] = None
    owner_email: Optional[EmailStr] = None


class QuoteUpdate(BaseModel):
    pricing_scheme_id: Optional[int] = None
    job_scope: Optional[Literal["interior", "exterior"]] = None
    home_sqft: Optional[float] = Field(None, ge=0)
    home_condition: Optional[Literal["excellent", "good", "average", "fair", "poor"]] = None
    include_materials: Optional[bool] = None
    application_method: Optional[Literal["roll", "spray"]] = None
    coverage: Optional[float] = Field(None, gt=0)
    waste_factor: Optional[float] = Field(None, ge=1)
    add_ons: Optional[float] = Field(None, ge=0)
    areas: Optional[List[AreaIn]] = None
    product_sets: Optional[List[ProductSetIn]] = None
    notes: Optional[str] = None
    customer_name: Optional[str] = None
    customer_email: Optional[EmailStr] = None
    owner_email: Optional[EmailStr] = None


class QuoteOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    quote_number: str
    tenant_id: str
    client_id: str
    customer_name: Optional[str] = None
    status: str
    selected_tier: Optional[str] = None
    pricing_source: Optional[str] = None

    labor_total: float
    material_total: float
    labor_markup_amount: float
    material_markup_amount: float
    subtotal_before_overhead: float
    overhead_amount: float
    subtotal_before_profit: float
    profit_amount: float
    subtotal: float
    tax_amount: float
    base_total: float
    total: float
    deposit_amount: float
    balance_amount: float
    pricing_breakdown: Optional[Dict[str, Any]] = None

    valid_until: Optional[datetime] = None
    deposit_verified: bool
    portal_open: bool
    selections_complete: bool
    tier_change_request: Optional[str] = None
    is_active: bool


class SendOut(BaseModel):
    quote: QuoteOut
    portal_token: str
    tiers: Dict[str, Dict[str, Any]]


class TierChangeDecisionOut(BaseModel):
    status: str
    selected_tier: Optional[str]
    total: float
    deposit_amount: float
    balance_amount: float
