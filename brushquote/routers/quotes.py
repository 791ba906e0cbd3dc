# brushquote/routers/quotes.py
"""Staff endpoints: drafts, pricing preview, send, portal and tier-change decisions."""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from brushquote.auth.deps import StaffUser, get_current_staff, get_portal_tokens
from brushquote.auth.portal_tokens import PortalTokenService
from brushquote.core.errors import StateConflictError
from brushquote.core.timeutil import utcnow
from brushquote.db import get_db, unit_of_work
from brushquote.models.quote import Quote
from brushquote.pricing.markup import PricingSettings
from brushquote.pricing.tiers import TierPricer
from brushquote.repositories.quotes import (
    get_contractor_settings,
    get_quote_for_tenant,
    insert_quote_with_number,
)
from brushquote.schemas.quotes import (
    AreaIn,
    QuoteCreate,
    QuoteInputs,
    QuoteOut,
    QuoteUpdate,
    SendOut,
    TierChangeDecisionOut,
)
from brushquote.services.quote_pricing import reprice_quote
from brushquote.workflow.proposal_state import ProposalStateMachine
from brushquote.workflow.status import ProposalStatus

router = APIRouter(prefix="/quotes", tags=["quotes"])

EDITABLE = {ProposalStatus.DRAFT, ProposalStatus.SENT}
INPUT_FIELDS = (
    "pricing_scheme_id",
    "job_scope",
    "home_sqft",
    "home_condition",
    "include_materials",
    "application_method",
    "coats",
    "coverage",
    "waste_factor",
    "add_ons",
    "notes",
)


def _areas_json(areas: List[AreaIn], existing: Optional[List[Dict[str, Any]]] = None) -> List[Dict[str, Any]]:
    """Assign missing area ids and carry customer selections over by id."""
    previous = {str(a.get("id")): a for a in (existing or [])}
    next_id = max([int(a["id"]) for a in (existing or []) if str(a.get("id", "")).isdigit()] + [0]) + 1

    out = []
    for area in areas:
        data = area.model_dump()
        if data.get("id") is None:
            data["id"] = next_id
            next_id += 1
        else:
            next_id = max(next_id, int(data["id"]) + 1)
        old = previous.get(str(data["id"]))
        if old and old.get("selections"):
            data["selections"] = old["selections"]
        out.append(data)
    return out


def _apply_inputs(quote: Quote, data: Dict[str, Any]) -> None:
    for field in INPUT_FIELDS:
        if field in data:
            setattr(quote, field, data[field])
    if "areas" in data and data["areas"] is not None:
        quote.areas = _areas_json([AreaIn(**a) for a in data["areas"]], quote.areas)
    if "product_sets" in data and data["product_sets"] is not None:
        quote.product_sets = list(data["product_sets"])


@router.post("", response_model=QuoteOut, status_code=201)
def create_quote(
    body: QuoteCreate,
    staff: StaffUser = Depends(get_current_staff),
    db: Session = Depends(get_db),
    now: datetime = Depends(utcnow),
):
    quote = Quote(
        tenant_id=staff.tenant_id,
        client_id=body.client_id,
        customer_name=body.customer_name,
        customer_email=body.customer_email,
        owner_email=body.owner_email or staff.email or None,
        status=ProposalStatus.DRAFT.value,
        areas=[],
        product_sets=[],
        is_active=True,
    )
    _apply_inputs(quote, body.model_dump(exclude={"client_id", "customer_name", "customer_email", "owner_email"}))
    reprice_quote(db, quote)
    with unit_of_work(db):
        insert_quote_with_number(db, quote, now=now)
    return quote


@router.post("/calculate")
def calculate_quote(
    body: QuoteInputs,
    staff: StaffUser = Depends(get_current_staff),
    db: Session = Depends(get_db),
):
    """Price preview; nothing is stored."""
    quote = Quote(tenant_id=staff.tenant_id, areas=[], product_sets=[])
    _apply_inputs(quote, body.model_dump())
    priced = reprice_quote(db, quote)
    contractor = get_contractor_settings(db, staff.tenant_id)
    tiers = TierPricer(PricingSettings.from_contractor(contractor).deposit_percent).preview(priced.total)
    return {
        "pricing": priced.as_dict(),
        "pricing_source": quote.pricing_source,
        "breakdown": quote.pricing_breakdown,
        "tiers": {k: v.as_dict() for k, v in tiers.items()},
    }


@router.get("/{quote_id}", response_model=QuoteOut)
def get_quote(
    quote_id: int,
    staff: StaffUser = Depends(get_current_staff),
    db: Session = Depends(get_db),
):
    return get_quote_for_tenant(db, quote_id, staff.tenant_id)


@router.put("/{quote_id}", response_model=QuoteOut)
def update_quote(
    quote_id: int,
    body: QuoteUpdate,
    staff: StaffUser = Depends(get_current_staff),
    db: Session = Depends(get_db),
):
    quote = get_quote_for_tenant(db, quote_id, staff.tenant_id)
    if ProposalStatus.parse(quote.status) not in EDITABLE:
        raise StateConflictError(
            "Only draft or sent proposals can be edited",
            code="NOT_EDITABLE",
            details={"status": quote.status},
        )
    data = body.model_dump(exclude_unset=True)
    with unit_of_work(db):
        for field in ("customer_name", "customer_email", "owner_email"):
            if field in data:
                setattr(quote, field, data[field])
        _apply_inputs(quote, data)
        reprice_quote(db, quote)
    return quote


@router.post("/{quote_id}/send", response_model=SendOut)
def send_quote(
    quote_id: int,
    staff: StaffUser = Depends(get_current_staff),
    db: Session = Depends(get_db),
    tokens: PortalTokenService = Depends(get_portal_tokens),
    now: datetime = Depends(utcnow),
):
    quote = get_quote_for_tenant(db, quote_id, staff.tenant_id)
    sm = ProposalStateMachine(db, get_contractor_settings(db, staff.tenant_id), now=now)
    with unit_of_work(db):
        reprice_quote(db, quote)
        tiers = sm.send(quote)
    return SendOut(
        quote=QuoteOut.model_validate(quote),
        portal_token=tokens.make(client_id=quote.client_id, tenant_id=quote.tenant_id),
        tiers={k: v.as_dict() for k, v in tiers.items()},
    )


@router.delete("/{quote_id}")
def deactivate_quote(
    quote_id: int,
    staff: StaffUser = Depends(get_current_staff),
    db: Session = Depends(get_db),
):
    quote = get_quote_for_tenant(db, quote_id, staff.tenant_id)
    with unit_of_work(db):
        ProposalStateMachine(db).deactivate(quote)
    return {"success": True, "id": quote_id, "is_active": False}


@router.post("/{quote_id}/portal/reopen")
def reopen_portal(
    quote_id: int,
    staff: StaffUser = Depends(get_current_staff),
    db: Session = Depends(get_db),
    now: datetime = Depends(utcnow),
):
    quote = get_quote_for_tenant(db, quote_id, staff.tenant_id)
    sm = ProposalStateMachine(db, get_contractor_settings(db, staff.tenant_id), now=now)
    with unit_of_work(db):
        sm.reopen_portal(quote)
    return {
        "success": True,
        "portal_open": quote.portal_open,
        "portal_expires_at": quote.portal_expires_at.isoformat() if quote.portal_expires_at else None,
    }


@router.post("/{quote_id}/tier-change/{decision}", response_model=TierChangeDecisionOut)
def decide_tier_change(
    quote_id: int,
    decision: Literal["approve", "reject"],
    staff: StaffUser = Depends(get_current_staff),
    db: Session = Depends(get_db),
):
    quote = get_quote_for_tenant(db, quote_id, staff.tenant_id)
    sm = ProposalStateMachine(db, get_contractor_settings(db, staff.tenant_id))
    with unit_of_work(db):
        sm.decide_tier_change(quote, approve=decision == "approve")
    return TierChangeDecisionOut(
        status="approved" if decision == "approve" else "rejected",
        selected_tier=quote.selected_tier,
        total=quote.total,
        deposit_amount=quote.deposit_amount,
        balance_amount=quote.balance_amount,
    )
