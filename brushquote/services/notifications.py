# brushquote/services/notifications.py
"""
Notification outbox.

State transitions call ``queue_notification`` inside their transaction. After
the commit, ``dispatch_outbox`` renders and sends whatever is pending. Send
failures are recorded on the row and logged; they never reach the caller.
"""
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional, Protocol

from jinja2 import Environment, FileSystemLoader, select_autoescape
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from brushquote.core.logging_config import logger
from brushquote.core.timeutil import utcnow
from brushquote.models.notification import OutboxMessage
from brushquote.services.email import PostmarkNotifier

TEMPLATE_DIR = Path(__file__).resolve().parents[1] / "templates"

_env = Environment(
    loader=FileSystemLoader(str(TEMPLATE_DIR)),
    autoescape=select_autoescape(["html", "xml"]),
)

# event -> (subject, template)
EVENTS: Dict[str, tuple] = {
    "proposal_accepted": ("Proposal {quote_number} accepted", "email/proposal_accepted.html"),
    "proposal_declined": ("Proposal {quote_number} declined", "email/proposal_declined.html"),
    "deposit_verified": ("Deposit received for {quote_number}", "email/deposit_verified.html"),
    "selections_complete": ("Selections submitted for {quote_number}", "email/selections_complete.html"),
    "portal_expired": ("Selection portal expired for {quote_number}", "email/portal_expired.html"),
    "tier_change_requested": ("Tier change requested on {quote_number}", "email/tier_change_requested.html"),
}

MAX_ATTEMPTS = 3


class Notifier(Protocol):
    def send(self, *, to: str, subject: str, html_body: str, metadata: Dict[str, Any]) -> str: ...


def get_notifier() -> Notifier:
    return PostmarkNotifier()


def render_notification(event: str, payload: Dict[str, Any]) -> tuple:
    subject_tmpl, template = EVENTS[event]
    subject = subject_tmpl.format(quote_number=payload.get("quote_number", ""))
    html = _env.get_template(template).render(**payload)
    return subject, html


def queue_notification(
    db: Session,
    *,
    tenant_id: str,
    event: str,
    recipient: Optional[str],
    payload: Dict[str, Any],
    quote_id: Optional[int] = None,
) -> OutboxMessage:
    if event not in EVENTS:
        raise ValueError(f"Unknown notification event: {event}")
    msg = OutboxMessage(
        tenant_id=str(tenant_id),
        quote_id=quote_id,
        event=event,
        recipient=recipient,
        payload=payload,
        status="pending",
    )
    db.add(msg)
    return msg


def dispatch_outbox(db: Session, notifier: Notifier, *, tenant_id: Optional[str] = None) -> int:
    """Send pending messages. Returns how many were delivered."""
    q = db.query(OutboxMessage).filter(OutboxMessage.status == "pending")
    if tenant_id is not None:
        q = q.filter(OutboxMessage.tenant_id == str(tenant_id))

    sent = 0
    for msg in q.order_by(OutboxMessage.id).all():
        log = logger.bind(
            tenant_id=msg.tenant_id, quote_id=msg.quote_id, event=msg.event, outbox_id=msg.id
        )
        msg.attempts = (msg.attempts or 0) + 1

        if not msg.recipient:
            msg.status = "skipped"
            log.info("notification_skipped", reason="no_recipient")
            continue

        try:
            subject, html = render_notification(msg.event, msg.payload or {})
            message_id = notifier.send(
                to=msg.recipient,
                subject=subject,
                html_body=html,
                metadata={"tenant_id": msg.tenant_id, "quote_id": msg.quote_id, "event": msg.event},
            )
        except Exception as e:
            msg.last_error = str(e)
            msg.status = "failed" if msg.attempts >= MAX_ATTEMPTS else "pending"
            log.warning("notification_failed", error=str(e), attempts=msg.attempts)
            continue

        msg.status = "sent"
        msg.sent_at = utcnow()
        msg.last_error = None
        sent += 1
        log.info("notification_sent", message_id=message_id)

    db.commit()
    return sent


def dispatch_after_commit(db: Session, notifier: Notifier, *, tenant_id: Optional[str] = None) -> None:
    """Request-path wrapper: outbox trouble is logged, the response still goes out."""
    try:
        dispatch_outbox(db, notifier, tenant_id=tenant_id)
    except SQLAlchemyError as e:
        db.rollback()
        logger.bind(tenant_id=tenant_id).error("notification_dispatch_failed", error=str(e))
