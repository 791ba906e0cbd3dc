# brushquote/repositories/quotes.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from brushquote.core.errors import NotFoundError
from brushquote.core.logging_config import logger
from brushquote.core.settings import settings
from brushquote.models.contractor_settings import ContractorSettings
from brushquote.models.pricing_scheme import PricingScheme
from brushquote.models.quote import Quote
from brushquote.pricing.schemes import load_default_schemes
from brushquote.workflow.status import ProposalStatus

QUOTE_NUMBER_PREFIX = "Q"


# -------------------------
# Lookups
# -------------------------
def get_quote_for_tenant(db: Session, quote_id: int, tenant_id: str) -> Quote:
    quote = (
        db.query(Quote)
        .filter(Quote.id == quote_id, Quote.tenant_id == str(tenant_id))
        .first()
    )
    if not quote:
        raise NotFoundError("Quote not found", details={"quote_id": quote_id})
    return quote


def get_quote_for_client(db: Session, quote_id: int, tenant_id: str, client_id: str) -> Quote:
    """Customer-side lookup: inactive quotes are invisible."""
    quote = (
        db.query(Quote)
        .filter(
            Quote.id == quote_id,
            Quote.tenant_id == str(tenant_id),
            Quote.client_id == str(client_id),
            Quote.is_active.is_(True),
        )
        .first()
    )
    if not quote:
        raise NotFoundError("Proposal not found", details={"quote_id": quote_id})
    return quote


def list_open_portals(db: Session) -> List[Quote]:
    return (
        db.query(Quote)
        .filter(
            Quote.status == ProposalStatus.DEPOSIT_PAID.value,
            Quote.portal_lock_reason.is_(None),
            Quote.is_active.is_(True),
        )
        .order_by(Quote.id)
        .all()
    )


def get_contractor_settings(db: Session, tenant_id: str) -> Optional[ContractorSettings]:
    return (
        db.query(ContractorSettings)
        .filter(ContractorSettings.tenant_id == str(tenant_id))
        .first()
    )


def get_or_create_contractor_settings(db: Session, tenant_id: str) -> ContractorSettings:
    row = get_contractor_settings(db, tenant_id)
    if row:
        return row
    row = ContractorSettings(tenant_id=str(tenant_id))
    db.add(row)
    db.flush()
    return row


def get_pricing_scheme(db: Session, tenant_id: str, scheme_id: Optional[int]) -> Optional[PricingScheme]:
    if scheme_id is None:
        return None
    return (
        db.query(PricingScheme)
        .filter(
            PricingScheme.id == scheme_id,
            PricingScheme.tenant_id == str(tenant_id),
            PricingScheme.is_active.is_(True),
        )
        .first()
    )


def list_pricing_schemes(db: Session, tenant_id: str) -> List[PricingScheme]:
    return (
        db.query(PricingScheme)
        .filter(PricingScheme.tenant_id == str(tenant_id), PricingScheme.is_active.is_(True))
        .order_by(PricingScheme.id)
        .all()
    )


# -------------------------
# Quote numbers
# -------------------------
def next_quote_number(db: Session, tenant_id: str, year: int) -> str:
    prefix = f"{QUOTE_NUMBER_PREFIX}-{year}-"
    rows = (
        db.query(Quote.quote_number)
        .filter(Quote.tenant_id == str(tenant_id), Quote.quote_number.like(f"{prefix}%"))
        .all()
    )
    highest = 0
    for (number,) in rows:
        try:
            highest = max(highest, int(number[len(prefix):]))
        except ValueError:
            continue
    return f"{prefix}{highest + 1:03d}"


def insert_quote_with_number(db: Session, quote: Quote, *, now: datetime) -> Quote:
    """
    Allocate ``Q-<year>-<nnn>`` and insert in the caller's transaction.

    The (tenant_id, quote_number) constraint catches a concurrent insert of
    the same number; the savepoint is rolled back and the next number tried.
    """
    attempts = max(1, settings.quote_number_max_attempts)
    last_error: Optional[IntegrityError] = None
    for attempt in range(1, attempts + 1):
        quote.quote_number = next_quote_number(db, quote.tenant_id, now.year)
        savepoint = db.begin_nested()
        try:
            db.add(quote)
            db.flush()
            savepoint.commit()
            return quote
        except IntegrityError as e:
            savepoint.rollback()
            last_error = e
            logger.bind(tenant_id=quote.tenant_id, attempt=attempt).warning(
                "quote_number_collision", quote_number=quote.quote_number
            )
    raise last_error  # type: ignore[misc]


# -------------------------
# Deposit compare-and-set
# -------------------------
def cas_mark_deposit_verified(
    db: Session,
    quote_id: int,
    *,
    transaction_id: str,
    verified_at: datetime,
    portal_closes_at: datetime,
) -> bool:
    """
    Single UPDATE guarded on (status=accepted, no stored reference).
    Returns False when another writer got there first.
    """
    values: Dict[str, Any] = {
        "status": ProposalStatus.DEPOSIT_PAID.value,
        "deposit_transaction_id": transaction_id,
        "deposit_verified_at": verified_at,
        "portal_opened_at": verified_at,
        "portal_closed_at": portal_closes_at,
        "portal_lock_reason": None,
    }
    stmt = (
        update(Quote)
        .where(
            Quote.id == quote_id,
            Quote.status == ProposalStatus.ACCEPTED.value,
            Quote.deposit_transaction_id.is_(None),
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = db.execute(stmt)
    return result.rowcount == 1


def seed_default_schemes(db: Session, tenant_id: str) -> List[PricingScheme]:
    """Add the stock schemes for a tenant that has none. Caller commits."""
    created = []
    for s in load_default_schemes():
        scheme = PricingScheme(
            tenant_id=str(tenant_id),
            name=s["name"],
            type=s["type"],
            rules=s["rules"],
            is_default=bool(s.get("is_default", False)),
            is_active=True,
        )
        db.add(scheme)
        created.append(scheme)
    return created
