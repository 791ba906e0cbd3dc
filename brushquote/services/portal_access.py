# brushquote/services/portal_access.py
"""
Selection-portal gate.

Expiry is evaluated lazily on each portal request. When the paid window has
passed and the tenant has auto-lock enabled, the lock is committed before the
request is refused, so the closure survives even though the request fails.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from brushquote.core.errors import PortalClosedError, PortalExpiredError
from brushquote.core.logging_config import logger
from brushquote.core.timeutil import as_utc, utcnow
from brushquote.models.contractor_settings import ContractorSettings
from brushquote.models.notification import OutboxMessage
from brushquote.models.quote import Quote
from brushquote.repositories.quotes import get_contractor_settings, list_open_portals
from brushquote.observability.metrics import portal_autolock_counter
from brushquote.services.notifications import Notifier, dispatch_after_commit, queue_notification
from brushquote.workflow.status import PortalLockReason, ProposalStatus


@dataclass(frozen=True)
class PortalState:
    is_open: bool
    expires_at: Optional[datetime]
    is_expired: bool
    selections_complete: bool
    locked_now: bool = False

    def as_dict(self) -> Dict[str, Any]:
        return {
            "is_open": self.is_open,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "is_expired": self.is_expired,
            "selections_complete": self.selections_complete,
        }


class PortalAccessWindow:
    def __init__(
        self,
        db: Session,
        contractor: Optional[ContractorSettings] = None,
        *,
        notifier: Optional[Notifier] = None,
        now: Optional[datetime] = None,
        trigger: str = "request",
    ):
        self.db = db
        self.contractor = contractor
        self.notifier = notifier
        self.now = now or utcnow()
        self.trigger = trigger

    @property
    def auto_lock(self) -> bool:
        if self.contractor is None or self.contractor.portal_auto_lock is None:
            return True
        return bool(self.contractor.portal_auto_lock)

    def _lock_expired(self, quote: Quote) -> None:
        scheduled = as_utc(quote.portal_closed_at)
        quote.portal_lock_reason = PortalLockReason.EXPIRED.value
        quote.portal_closed_at = self.now
        portal_autolock_counter.labels(trigger=self.trigger).inc()
        logger.bind(tenant_id=quote.tenant_id, quote_id=quote.id).info(
            "portal_auto_locked",
            scheduled_close=scheduled.isoformat() if scheduled else None,
            trigger=self.trigger,
        )
        recipient = quote.owner_email or (
            self.contractor.notification_email if self.contractor else None
        )
        queue_notification(
            self.db,
            tenant_id=quote.tenant_id,
            quote_id=quote.id,
            event="portal_expired",
            recipient=recipient,
            payload={
                "quote_number": quote.quote_number,
                "customer_name": quote.customer_name,
                "closed_at": self.now.isoformat(),
            },
        )

    def check(self, quote: Quote) -> PortalState:
        """Apply the lazy lock (without committing) and report the window."""
        closes_at = as_utc(quote.portal_closed_at)
        locked_now = False

        if quote.portal_open and closes_at is not None and self.now > closes_at:
            if self.auto_lock:
                self._lock_expired(quote)
                locked_now = True
            else:
                return PortalState(
                    is_open=True,
                    expires_at=closes_at,
                    is_expired=True,
                    selections_complete=False,
                )

        return PortalState(
            is_open=quote.portal_open,
            expires_at=quote.portal_expires_at,
            is_expired=quote.portal_lock_reason == PortalLockReason.EXPIRED.value,
            selections_complete=quote.selections_complete,
            locked_now=locked_now,
        )

    def commit_lock(self, state: PortalState) -> None:
        if not state.locked_now:
            return
        self.db.commit()
        if self.notifier is not None:
            dispatch_after_commit(self.db, self.notifier, tenant_id=None)

    def enforce(self, quote: Quote) -> PortalState:
        """Refuse the request unless the portal is open."""
        state = self.check(quote)
        self.commit_lock(state)
        if state.is_open:
            return state

        status = ProposalStatus.parse(quote.status)
        if status in (ProposalStatus.DRAFT, ProposalStatus.SENT, ProposalStatus.ACCEPTED):
            raise PortalClosedError(
                "Deposit must be verified before the portal opens",
                code="DEPOSIT_NOT_VERIFIED",
                details={"status": status.value},
            )
        if state.is_expired:
            raise PortalExpiredError(
                "The selection window has expired. Contact your contractor to reopen it.",
                details={"closed_at": as_utc(quote.portal_closed_at).isoformat()},
            )
        raise PortalClosedError(
            "The selection portal is closed",
            details={"status": status.value, "reason": quote.portal_lock_reason},
        )


def sweep_expired_portals(
    db: Session,
    *,
    now: Optional[datetime] = None,
    dry_run: bool = False,
    notifier: Optional[Notifier] = None,
    notify: bool = True,
) -> List[int]:
    """
    One-shot pass over every open portal, applying the same lock rules as a
    portal request. Returns the ids of quotes that were (or would be) locked.

    With ``notify=False`` the expiry emails this pass queues are marked
    ``skipped`` so no later dispatch picks them up.
    """
    now = now or utcnow()
    locked: List[int] = []
    contractors: Dict[str, Optional[ContractorSettings]] = {}

    for quote in list_open_portals(db):
        closes_at = as_utc(quote.portal_closed_at)
        if closes_at is None or now <= closes_at:
            continue
        if quote.tenant_id not in contractors:
            contractors[quote.tenant_id] = get_contractor_settings(db, quote.tenant_id)
        window = PortalAccessWindow(db, contractors[quote.tenant_id], now=now, trigger="sweep")
        if not window.auto_lock:
            continue
        locked.append(quote.id)
        if not dry_run:
            window.check(quote)

    if dry_run:
        logger.info("portal_sweep_dry_run", would_lock=locked)
        return locked

    if not notify and locked:
        db.flush()
        suppressed = (
            db.query(OutboxMessage)
            .filter(
                OutboxMessage.status == "pending",
                OutboxMessage.event == "portal_expired",
                OutboxMessage.quote_id.in_(locked),
            )
            .update({"status": "skipped", "last_error": "suppressed_by_sweep"}, synchronize_session="fetch")
        )
        logger.info("portal_sweep_emails_suppressed", count=suppressed)

    db.commit()
    logger.info("portal_sweep_done", locked=locked)
    if notify and notifier is not None and locked:
        dispatch_after_commit(db, notifier)
    return locked
