import pytest

from brushquote.models.notification import OutboxMessage
from brushquote.services.notifications import (
    MAX_ATTEMPTS,
    dispatch_outbox,
    queue_notification,
    render_notification,
)

from conftest import FakeNotifier


def queue(db, recipient="owner@paintco.test", event="proposal_accepted"):
    msg = queue_notification(
        db,
        tenant_id="tenant-a",
        event=event,
        recipient=recipient,
        payload={"quote_number": "Q-2026-001", "selected_tier": "best", "total": 230.3, "deposit_amount": 115.15},
    )
    db.commit()
    return msg


def test_render_accepted():
    subject, html = render_notification(
        "proposal_accepted",
        {"quote_number": "Q-2026-004", "customer_name": "Dana", "selected_tier": "best", "total": 230.3, "deposit_amount": 115.15},
    )
    assert subject == "Proposal Q-2026-004 accepted"
    assert "$115.15" in html
    assert "Dana" in html


def test_unknown_event_rejected(db):
    with pytest.raises(ValueError):
        queue_notification(db, tenant_id="t", event="quote_exploded", recipient=None, payload={})


def test_dispatch_sends_pending(db):
    queue(db)
    notifier = FakeNotifier()
    assert dispatch_outbox(db, notifier) == 1
    msg = db.query(OutboxMessage).one()
    assert msg.status == "sent"
    assert msg.sent_at is not None
    assert notifier.sent[0]["subject"] == "Proposal Q-2026-001 accepted"
    assert dispatch_outbox(db, notifier) == 0


def test_message_without_recipient_is_skipped(db):
    queue(db, recipient=None)
    assert dispatch_outbox(db, FakeNotifier()) == 0
    assert db.query(OutboxMessage).one().status == "skipped"


def test_failures_retry_then_give_up(db):
    queue(db)
    failing = FakeNotifier(fail=True)
    for _ in range(MAX_ATTEMPTS - 1):
        dispatch_outbox(db, failing)
        assert db.query(OutboxMessage).one().status == "pending"
    dispatch_outbox(db, failing)
    msg = db.query(OutboxMessage).one()
    assert msg.status == "failed"
    assert msg.attempts == MAX_ATTEMPTS
    assert "smtp down" in msg.last_error


def test_dispatch_filters_by_tenant(db):
    queue(db)
    assert dispatch_outbox(db, FakeNotifier(), tenant_id="tenant-b") == 0
    assert db.query(OutboxMessage).one().status == "pending"
