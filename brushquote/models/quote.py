# brushquote/models/quote.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from brushquote.core.timeutil import as_utc
from brushquote.db import Base
from brushquote.workflow.status import ProposalStatus


class Quote(Base):
    __tablename__ = "quotes"
    __table_args__ = (
        UniqueConstraint("tenant_id", "quote_number", name="uq_quotes_tenant_number"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # multi-tenant
    tenant_id: Mapped[str] = mapped_column(String(100), index=True, nullable=False)
    quote_number: Mapped[str] = mapped_column(String(32), nullable=False)

    # customer
    client_id: Mapped[str] = mapped_column(String(100), index=True, nullable=False)
    customer_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    customer_email: Mapped[Optional[str]] = mapped_column(String(320), nullable=True)
    owner_email: Mapped[Optional[str]] = mapped_column(String(320), nullable=True)

    # job input
    pricing_scheme_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("pricing_schemes.id", ondelete="SET NULL"), nullable=True
    )
    job_scope: Mapped[str] = mapped_column(String(20), nullable=False, default="interior")
    home_sqft: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    home_condition: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    include_materials: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    application_method: Mapped[str] = mapped_column(String(20), nullable=False, default="roll")
    coats: Mapped[int] = mapped_column(Integer, nullable=False, default=2)
    coverage: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    waste_factor: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    add_ons: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    areas: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    product_sets: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # computed totals
    labor_total: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    material_total: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    labor_markup_amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    material_markup_amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    subtotal_before_overhead: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    overhead_amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    subtotal_before_profit: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    profit_amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    subtotal: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    tax_amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    base_total: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    total: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    deposit_amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    balance_amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    pricing_breakdown: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    pricing_source: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    # lifecycle
    status: Mapped[str] = mapped_column(
        String(30), index=True, nullable=False, default=ProposalStatus.DRAFT.value
    )
    selected_tier: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    valid_until: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    accepted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    declined_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    decline_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # deposit
    payment_intent_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    deposit_transaction_id: Mapped[Optional[str]] = mapped_column(
        String(255), unique=True, nullable=True
    )
    deposit_verified_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # portal
    portal_opened_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    # scheduled close while open, actual close once locked
    portal_closed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    portal_lock_reason: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    selections_completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # tier change after deposit
    tier_change_request: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    tier_change_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    tier_change_requested_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    # -------------------------
    # Projections of status
    # -------------------------
    @property
    def proposal_status(self) -> ProposalStatus:
        return ProposalStatus.parse(self.status)

    @property
    def deposit_verified(self) -> bool:
        return self.deposit_transaction_id is not None

    @property
    def portal_open(self) -> bool:
        return self.proposal_status == ProposalStatus.DEPOSIT_PAID and self.portal_lock_reason is None

    @property
    def selections_complete(self) -> bool:
        return self.proposal_status == ProposalStatus.SELECTIONS_COMPLETE

    @property
    def portal_expires_at(self) -> Optional[datetime]:
        return as_utc(self.portal_closed_at) if self.portal_open else None

    def __repr__(self) -> str:
        return f"<Quote id={self.id} tenant={self.tenant_id} number={self.quote_number!r} status={self.status}>"
