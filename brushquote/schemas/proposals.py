# brushquote/schemas/proposals.py
from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel


class AcceptIn(BaseModel):
    selected_tier: Optional[str] = None


class AcceptOut(BaseModel):
    status: str
    deposit_amount: float
    selected_tier: str
    total: float


class DeclineIn(BaseModel):
    reason: Optional[str] = None


class ChangeTierIn(BaseModel):
    new_tier: Optional[str] = None
    reason: Optional[str] = None


class PaymentIntentIn(BaseModel):
    tier: Optional[str] = None


class PaymentIntentOut(BaseModel):
    client_secret: Optional[str]
    payment_intent_id: str
    amount: float


class VerifyDepositIn(BaseModel):
    payment_intent_id: Optional[str] = None


class VerifyDepositOut(BaseModel):
    success: bool = True
    portal_open: bool
    portal_expires_at: Optional[str]
    replayed: bool = False


class SelectionIn(BaseModel):
    brand_id: Optional[str] = None
    product_id: Optional[str] = None
    color_id: Optional[str] = None
    custom_color: Optional[str] = None
    sheen: Optional[str] = None
    is_custom: Optional[bool] = None
    is_other_brand: Optional[bool] = None


class ProposalOut(BaseModel):
    id: int
    quote_number: str
    status: str
    customer_name: Optional[str] = None
    scope: str
    selected_tier: Optional[str] = None
    total: float
    deposit_amount: float
    balance_amount: float
    valid_until: Optional[str] = None
    tiers: Dict[str, Dict[str, Any]]
    areas: List[Dict[str, Any]]
    deposit_verified: bool
    portal_open: bool
    selections_complete: bool
    tier_change_request: Optional[str] = None
