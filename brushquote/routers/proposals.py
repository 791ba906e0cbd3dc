# brushquote/routers/proposals.py
"""Customer-facing proposal endpoints (portal token auth)."""

from datetime import datetime

from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from brushquote.auth.deps import PortalSession, get_portal_session
from brushquote.core.errors import (
    BrushquoteError,
    ConsistencyError,
    PaymentFailedError,
    PaymentProcessingError,
    StateConflictError,
    ValidationError,
)
from brushquote.core.logging_config import logger
from brushquote.core.rate_limit import limiter
from brushquote.core.settings import settings
from brushquote.core.timeutil import as_utc, utcnow
from brushquote.db import get_db, unit_of_work
from brushquote.models.quote import Quote
from brushquote.pricing.markup import PricingSettings
from brushquote.pricing.tiers import TierPricer, parse_tier
from brushquote.repositories.quotes import get_contractor_settings, get_quote_for_client
from brushquote.schemas.proposals import (
    AcceptIn,
    AcceptOut,
    ChangeTierIn,
    DeclineIn,
    PaymentIntentIn,
    PaymentIntentOut,
    ProposalOut,
    SelectionIn,
    VerifyDepositIn,
    VerifyDepositOut,
)
from brushquote.services.deposit_verifier import DepositVerifier, to_minor_units
from brushquote.services.documents import project_scope, render_document
from brushquote.services.notifications import Notifier, dispatch_after_commit, get_notifier
from brushquote.services.payment_gateway import (
    GatewayError,
    GatewayTimeout,
    PaymentGateway,
    get_payment_gateway,
)
from brushquote.services.portal_access import PortalAccessWindow
from brushquote.services.selections import save_area_selection
from brushquote.workflow.proposal_state import ProposalStateMachine
from brushquote.workflow.status import ProposalStatus

router = APIRouter(prefix="/proposals", tags=["proposals"])

PAYMENT_LIMIT = f"{settings.rate_limit_payment}/minute"
PORTAL_LIMIT = f"{settings.rate_limit_portal}/minute"


def _quote(db: Session, session: PortalSession, proposal_id: int) -> Quote:
    return get_quote_for_client(db, proposal_id, session.tenant_id, session.client_id)


def _proposal_out(quote: Quote, pricing: PricingSettings) -> ProposalOut:
    tiers = TierPricer(pricing.deposit_percent).preview(quote.base_total)
    return ProposalOut(
        id=quote.id,
        quote_number=quote.quote_number,
        status=quote.status,
        customer_name=quote.customer_name,
        scope=project_scope(quote),
        selected_tier=quote.selected_tier,
        total=quote.total,
        deposit_amount=quote.deposit_amount,
        balance_amount=quote.balance_amount,
        valid_until=as_utc(quote.valid_until).isoformat() if quote.valid_until else None,
        tiers={k: v.as_dict() for k, v in tiers.items()},
        areas=quote.areas or [],
        deposit_verified=quote.deposit_verified,
        portal_open=quote.portal_open,
        selections_complete=quote.selections_complete,
        tier_change_request=quote.tier_change_request,
    )


# -------------------------
# Proposal
# -------------------------
@router.get("/{proposal_id}", response_model=ProposalOut)
def get_proposal(
    proposal_id: int,
    session: PortalSession = Depends(get_portal_session),
    db: Session = Depends(get_db),
):
    quote = _quote(db, session, proposal_id)
    contractor = get_contractor_settings(db, session.tenant_id)
    return _proposal_out(quote, PricingSettings.from_contractor(contractor))


@router.post("/{proposal_id}/accept", response_model=AcceptOut)
def accept_proposal(
    proposal_id: int,
    body: AcceptIn,
    session: PortalSession = Depends(get_portal_session),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    now: datetime = Depends(utcnow),
):
    quote = _quote(db, session, proposal_id)
    sm = ProposalStateMachine(db, get_contractor_settings(db, session.tenant_id), now=now)
    with unit_of_work(db):
        tp = sm.accept(quote, body.selected_tier)
    dispatch_after_commit(db, notifier, tenant_id=session.tenant_id)
    return AcceptOut(
        status=quote.status,
        deposit_amount=tp.deposit_amount,
        selected_tier=tp.tier.value,
        total=tp.total,
    )


@router.post("/{proposal_id}/decline")
def decline_proposal(
    proposal_id: int,
    body: DeclineIn,
    session: PortalSession = Depends(get_portal_session),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    now: datetime = Depends(utcnow),
):
    quote = _quote(db, session, proposal_id)
    sm = ProposalStateMachine(db, get_contractor_settings(db, session.tenant_id), now=now)
    with unit_of_work(db):
        sm.decline(quote, body.reason)
    dispatch_after_commit(db, notifier, tenant_id=session.tenant_id)
    return {"success": True, "status": quote.status}


@router.post("/{proposal_id}/change-tier")
def change_tier(
    proposal_id: int,
    body: ChangeTierIn,
    session: PortalSession = Depends(get_portal_session),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    now: datetime = Depends(utcnow),
):
    quote = _quote(db, session, proposal_id)
    sm = ProposalStateMachine(db, get_contractor_settings(db, session.tenant_id), now=now)
    with unit_of_work(db):
        result = sm.change_tier(quote, body.new_tier, body.reason)
    dispatch_after_commit(db, notifier, tenant_id=session.tenant_id)
    return {"success": True, **result}


# -------------------------
# Payment
# -------------------------
@router.post("/{proposal_id}/create-payment-intent", response_model=PaymentIntentOut)
@limiter.limit(PAYMENT_LIMIT)
def create_payment_intent(
    request: Request,
    proposal_id: int,
    body: PaymentIntentIn,
    session: PortalSession = Depends(get_portal_session),
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    quote = _quote(db, session, proposal_id)
    if ProposalStatus.parse(quote.status) != ProposalStatus.ACCEPTED or quote.deposit_verified:
        raise StateConflictError(
            "Deposit can only be paid on an accepted proposal",
            details={"status": quote.status},
        )
    tier = parse_tier(body.tier or quote.selected_tier)
    if tier.value != quote.selected_tier:
        raise ValidationError(
            "Tier does not match the accepted tier",
            code="TIER_MISMATCH",
            details={"selected_tier": quote.selected_tier, "requested_tier": tier.value},
        )

    log = logger.bind(tenant_id=quote.tenant_id, quote_id=quote.id)
    try:
        intent = gateway.create_payment_intent(
            amount_cents=to_minor_units(quote.deposit_amount),
            currency=settings.PAYMENT_CURRENCY,
            metadata={"quote_id": str(quote.id), "tenant_id": quote.tenant_id, "tier": tier.value},
        )
    except GatewayTimeout:
        raise PaymentProcessingError("Payment gateway did not answer in time, retry shortly")
    except GatewayError as e:
        log.warning("payment_intent_failed", error=str(e))
        if e.retryable:
            raise PaymentProcessingError("Payment gateway unavailable, retry shortly", code="GATEWAY_UNAVAILABLE")
        raise PaymentFailedError("Payment could not be started", code="PAYMENT_INTENT_FAILED")

    with unit_of_work(db):
        quote.payment_intent_id = intent.id
    log.info("payment_intent_created", payment_intent_id=intent.id, amount_cents=intent.amount)
    return PaymentIntentOut(
        client_secret=intent.client_secret,
        payment_intent_id=intent.id,
        amount=quote.deposit_amount,
    )


@router.post("/{proposal_id}/verify-deposit", response_model=VerifyDepositOut)
@limiter.limit(PAYMENT_LIMIT)
def verify_deposit(
    request: Request,
    proposal_id: int,
    body: VerifyDepositIn,
    session: PortalSession = Depends(get_portal_session),
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    notifier: Notifier = Depends(get_notifier),
    now: datetime = Depends(utcnow),
):
    quote = _quote(db, session, proposal_id)
    verifier = DepositVerifier(db, gateway, get_contractor_settings(db, session.tenant_id), now=now)

    try:
        result = verifier.verify(quote, body.payment_intent_id)
    except BrushquoteError:
        db.rollback()
        raise

    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.bind(tenant_id=session.tenant_id, quote_id=proposal_id).error(
            "deposit_verify_commit_failed", error=str(e), payment_reference=result.payment_reference
        )
        raise ConsistencyError(
            "Payment succeeded but the proposal could not be updated. Contact support.",
            payment_reference=result.payment_reference,
        ) from e

    dispatch_after_commit(db, notifier, tenant_id=session.tenant_id)
    return VerifyDepositOut(
        portal_open=result.portal_open,
        portal_expires_at=result.portal_expires_at.isoformat() if result.portal_expires_at else None,
        replayed=result.replayed,
    )


# -------------------------
# Portal
# -------------------------
@router.get("/{proposal_id}/portal-status")
@limiter.limit(PORTAL_LIMIT)
def portal_status(
    request: Request,
    proposal_id: int,
    session: PortalSession = Depends(get_portal_session),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    now: datetime = Depends(utcnow),
):
    quote = _quote(db, session, proposal_id)
    window = PortalAccessWindow(
        db, get_contractor_settings(db, session.tenant_id), notifier=notifier, now=now
    )
    state = window.check(quote)
    window.commit_lock(state)
    return state.as_dict()


@router.put("/{proposal_id}/areas/{area_id}/selections")
@limiter.limit(PORTAL_LIMIT)
def save_selection(
    request: Request,
    proposal_id: int,
    area_id: str,
    body: SelectionIn,
    session: PortalSession = Depends(get_portal_session),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    now: datetime = Depends(utcnow),
):
    quote = _quote(db, session, proposal_id)
    window = PortalAccessWindow(
        db, get_contractor_settings(db, session.tenant_id), notifier=notifier, now=now
    )
    window.enforce(quote)
    with unit_of_work(db):
        selections = save_area_selection(quote, area_id, body.model_dump(exclude_none=True), now=now)
    return {"success": True, "area_id": area_id, "selections": selections}


@router.post("/{proposal_id}/selections/submit")
def submit_selections(
    proposal_id: int,
    session: PortalSession = Depends(get_portal_session),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    now: datetime = Depends(utcnow),
):
    quote = _quote(db, session, proposal_id)
    contractor = get_contractor_settings(db, session.tenant_id)
    PortalAccessWindow(db, contractor, notifier=notifier, now=now).enforce(quote)

    sm = ProposalStateMachine(db, contractor, now=now)
    with unit_of_work(db):
        sm.submit_selections(quote)
    dispatch_after_commit(db, notifier, tenant_id=session.tenant_id)
    return {"success": True, "status": quote.status, "portal_open": quote.portal_open}


@router.get("/{proposal_id}/documents/{kind}")
def get_document(
    proposal_id: int,
    kind: str,
    session: PortalSession = Depends(get_portal_session),
    db: Session = Depends(get_db),
):
    quote = _quote(db, session, proposal_id)
    doc = render_document(quote, kind)
    return Response(
        content=doc.content,
        media_type=doc.media_type,
        headers={"Content-Disposition": f'attachment; filename="{doc.filename}"'},
    )
