# brushquote/workflow/proposal_state.py
"""
Proposal lifecycle.

    draft -> sent -> {accepted | declined}
    accepted -> deposit_paid -> selections_complete

Only DepositVerifier moves a proposal to deposit_paid. Every method mutates
the quote inside the caller's transaction and raises a domain error naming
the failed precondition when the transition is not allowed.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from brushquote.core.errors import QuoteExpiredError, StateConflictError, ValidationError
from brushquote.core.logging_config import logger
from brushquote.core.timeutil import as_utc, utcnow
from brushquote.models.contractor_settings import ContractorSettings
from brushquote.models.quote import Quote
from brushquote.observability.metrics import transition_counter
from brushquote.pricing.markup import PricingSettings
from brushquote.pricing.tiers import TierPrice, TierPricer, parse_tier
from brushquote.services.notifications import queue_notification
from brushquote.workflow.status import (
    PortalLockReason,
    ProposalStatus,
    can_transition,
)

DEFAULT_QUOTE_VALIDITY_DAYS = 30
DEFAULT_PORTAL_DURATION_DAYS = 14


def area_is_complete(area: Dict[str, Any]) -> bool:
    sel = area.get("selections") or {}
    has_color = bool(sel.get("color_id") or sel.get("is_custom") or sel.get("is_other_brand"))
    return has_color and bool(sel.get("sheen"))


def incomplete_areas(quote: Quote) -> List[str]:
    return [a.get("name") or f"Area {a.get('id')}" for a in (quote.areas or []) if not area_is_complete(a)]


class ProposalStateMachine:
    def __init__(
        self,
        db: Session,
        contractor: Optional[ContractorSettings] = None,
        *,
        now: Optional[datetime] = None,
    ):
        self.db = db
        self.contractor = contractor
        self.now = now or utcnow()
        self.pricing = PricingSettings.from_contractor(contractor)

    # -------------------------
    # helpers
    # -------------------------
    @property
    def tier_pricer(self) -> TierPricer:
        return TierPricer(self.pricing.deposit_percent)

    def _days(self, attr: str, default: int) -> int:
        value = getattr(self.contractor, attr, None) if self.contractor else None
        return int(value) if value else default

    def _staff_recipient(self, quote: Quote) -> Optional[str]:
        if quote.owner_email:
            return quote.owner_email
        return self.contractor.notification_email if self.contractor else None

    def _payload(self, quote: Quote, **extra: Any) -> Dict[str, Any]:
        payload = {
            "quote_number": quote.quote_number,
            "customer_name": quote.customer_name,
            "selected_tier": quote.selected_tier,
            "total": quote.total,
            "deposit_amount": quote.deposit_amount,
        }
        payload.update(extra)
        return payload

    def notify_staff(self, quote: Quote, event: str, **extra: Any) -> None:
        queue_notification(
            self.db,
            tenant_id=quote.tenant_id,
            quote_id=quote.id,
            event=event,
            recipient=self._staff_recipient(quote),
            payload=self._payload(quote, **extra),
        )

    def _current(self, quote: Quote) -> ProposalStatus:
        return ProposalStatus.parse(quote.status)

    def _move(self, quote: Quote, dst: ProposalStatus, **log_fields: Any) -> None:
        src = self._current(quote)
        if not can_transition(src, dst):
            raise StateConflictError(
                f"Cannot move proposal from {src.value} to {dst.value}",
                details={"status": src.value, "target": dst.value},
            )
        quote.status = dst.value
        transition_counter.labels(from_status=src.value, to_status=dst.value).inc()
        logger.bind(tenant_id=quote.tenant_id, quote_id=quote.id).info(
            "proposal_transition", from_status=src.value, to_status=dst.value, **log_fields
        )

    def _require_sent(self, quote: Quote) -> None:
        status = self._current(quote)
        if status == ProposalStatus.SENT:
            return
        if status == ProposalStatus.DRAFT:
            raise StateConflictError(
                "Proposal has not been sent yet", code="NOT_SENT", details={"status": status.value}
            )
        raise StateConflictError(
            "Proposal has already been processed",
            code="ALREADY_PROCESSED",
            details={"status": status.value},
        )

    # -------------------------
    # staff transitions
    # -------------------------
    def send(self, quote: Quote) -> Dict[str, TierPrice]:
        if not quote.areas and not quote.home_sqft:
            raise ValidationError("Proposal has nothing to price", code="EMPTY_PROPOSAL")
        self._move(quote, ProposalStatus.SENT)
        quote.sent_at = self.now
        quote.valid_until = self.now + timedelta(
            days=self._days("quote_validity_days", DEFAULT_QUOTE_VALIDITY_DAYS)
        )
        return self.tier_pricer.preview(quote.base_total)

    def reopen_portal(self, quote: Quote) -> None:
        if self._current(quote) != ProposalStatus.DEPOSIT_PAID:
            raise StateConflictError(
                "Portal can only be reopened after the deposit is paid",
                code="PORTAL_NOT_REOPENABLE",
                details={"status": quote.status},
            )
        if quote.portal_open:
            raise StateConflictError("Portal is already open", code="PORTAL_ALREADY_OPEN")
        quote.portal_lock_reason = None
        quote.portal_opened_at = self.now
        quote.portal_closed_at = self.now + timedelta(
            days=self._days("portal_duration_days", DEFAULT_PORTAL_DURATION_DAYS)
        )
        logger.bind(tenant_id=quote.tenant_id, quote_id=quote.id).info(
            "portal_reopened", expires_at=quote.portal_closed_at.isoformat()
        )

    def deactivate(self, quote: Quote) -> None:
        if quote.deposit_verified:
            raise StateConflictError(
                "Quote has a verified deposit and cannot be deactivated",
                code="DEPOSIT_ON_FILE",
                details={"payment_reference": quote.deposit_transaction_id},
            )
        quote.is_active = False
        logger.bind(tenant_id=quote.tenant_id, quote_id=quote.id).info("quote_deactivated")

    # -------------------------
    # customer transitions
    # -------------------------
    def accept(self, quote: Quote, tier: Optional[str]) -> TierPrice:
        self._require_sent(quote)
        if quote.valid_until and self.now > as_utc(quote.valid_until):
            raise QuoteExpiredError(
                "Proposal has expired",
                details={"valid_until": as_utc(quote.valid_until).isoformat()},
            )
        tp = self.tier_pricer.price(quote.base_total, parse_tier(tier))

        quote.selected_tier = tp.tier.value
        quote.total = tp.total
        quote.deposit_amount = tp.deposit_amount
        quote.balance_amount = tp.balance_amount
        quote.accepted_at = self.now
        self._move(quote, ProposalStatus.ACCEPTED, tier=tp.tier.value, total=tp.total)

        self.notify_staff(quote, "proposal_accepted")
        return tp

    def decline(self, quote: Quote, reason: Optional[str] = None) -> None:
        self._require_sent(quote)
        quote.decline_reason = (reason or "").strip() or None
        quote.declined_at = self.now
        quote.selected_tier = None
        self._move(quote, ProposalStatus.DECLINED)
        self.notify_staff(quote, "proposal_declined", reason=quote.decline_reason)

    def change_tier(self, quote: Quote, new_tier: Optional[str], reason: Optional[str] = None) -> Dict[str, Any]:
        tier = parse_tier(new_tier)
        status = self._current(quote)
        log = logger.bind(tenant_id=quote.tenant_id, quote_id=quote.id)

        if status == ProposalStatus.ACCEPTED:
            tp = self.tier_pricer.price(quote.base_total, tier)
            previous = quote.selected_tier
            quote.selected_tier = tp.tier.value
            quote.total = tp.total
            quote.deposit_amount = tp.deposit_amount
            quote.balance_amount = tp.balance_amount
            # existing intent was created for the old deposit amount
            quote.payment_intent_id = None
            log.info("tier_changed", from_tier=previous, to_tier=tier.value)
            return {"status": "changed", "selected_tier": tier.value, "total": tp.total,
                    "deposit_amount": tp.deposit_amount}

        if status == ProposalStatus.DEPOSIT_PAID:
            if tier.value == quote.selected_tier:
                raise ValidationError("Tier is already selected", code="SAME_TIER")
            quote.tier_change_request = tier.value
            quote.tier_change_reason = (reason or "").strip() or None
            quote.tier_change_requested_at = self.now
            log.info("tier_change_requested", from_tier=quote.selected_tier, to_tier=tier.value)
            self.notify_staff(
                quote,
                "tier_change_requested",
                current_tier=quote.selected_tier,
                new_tier=tier.value,
                reason=quote.tier_change_reason,
            )
            return {"status": "requested", "selected_tier": quote.selected_tier,
                    "requested_tier": tier.value}

        raise StateConflictError(
            "Tier can only change after acceptance and before selections are submitted",
            code="TIER_CHANGE_NOT_ALLOWED",
            details={"status": status.value},
        )

    def decide_tier_change(self, quote: Quote, approve: bool) -> None:
        if not quote.tier_change_request:
            raise StateConflictError("No pending tier change request", code="NO_TIER_CHANGE_REQUEST")
        requested = quote.tier_change_request
        if approve:
            status = self._current(quote)
            if status != ProposalStatus.DEPOSIT_PAID:
                raise StateConflictError(
                    "Tier changes can only be approved while selections are open",
                    code="TIER_CHANGE_NOT_ALLOWED",
                    details={"status": status.value},
                )
            tp = self.tier_pricer.price(quote.base_total, requested)
            quote.selected_tier = tp.tier.value
            quote.total = tp.total
            # paid deposit stands; the difference moves to the balance
            quote.balance_amount = round(tp.total - float(quote.deposit_amount or 0), 2)
        quote.tier_change_request = None
        quote.tier_change_reason = None
        quote.tier_change_requested_at = None
        logger.bind(tenant_id=quote.tenant_id, quote_id=quote.id).info(
            "tier_change_decided", approved=approve, tier=requested
        )

    def submit_selections(self, quote: Quote) -> None:
        status = self._current(quote)
        if status != ProposalStatus.DEPOSIT_PAID:
            raise StateConflictError(
                "Selections can only be submitted after the deposit is paid",
                details={"status": status.value},
            )
        missing = incomplete_areas(quote)
        if missing:
            raise ValidationError(
                f"All areas must have complete selections. {len(missing)} area(s) incomplete.",
                code="INCOMPLETE_SELECTIONS",
                details={"incomplete_count": len(missing), "incomplete_areas": missing},
            )
        quote.selections_completed_at = self.now
        quote.portal_lock_reason = PortalLockReason.SELECTIONS_SUBMITTED.value
        quote.portal_closed_at = self.now
        self._move(quote, ProposalStatus.SELECTIONS_COMPLETE, area_count=len(quote.areas or []))
        self.notify_staff(quote, "selections_complete", area_count=len(quote.areas or []))
