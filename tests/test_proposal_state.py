from datetime import timedelta

import pytest

from brushquote.core.errors import QuoteExpiredError, StateConflictError, ValidationError
from brushquote.models.notification import OutboxMessage
from brushquote.workflow.proposal_state import ProposalStateMachine
from brushquote.workflow.status import ProposalStatus, can_transition

from conftest import NOW, STAFF_EMAIL, bare_area, complete_area


def events(db):
    return [m.event for m in db.query(OutboxMessage).order_by(OutboxMessage.id)]


def test_transition_table():
    assert can_transition(ProposalStatus.DRAFT, ProposalStatus.SENT)
    assert can_transition(ProposalStatus.ACCEPTED, ProposalStatus.DEPOSIT_PAID)
    assert not can_transition(ProposalStatus.ACCEPTED, ProposalStatus.SELECTIONS_COMPLETE)
    assert not can_transition(ProposalStatus.DECLINED, ProposalStatus.ACCEPTED)
    assert not can_transition(ProposalStatus.SELECTIONS_COMPLETE, ProposalStatus.DEPOSIT_PAID)
    assert ProposalStatus.parse("pending") == ProposalStatus.SENT


def test_send_sets_validity(db, contractor, make_quote):
    quote = make_quote()
    tiers = ProposalStateMachine(db, contractor, now=NOW).send(quote)
    assert quote.status == "sent"
    assert quote.valid_until == NOW + timedelta(days=30)
    assert set(tiers) == {"good", "better", "best"}


def test_send_empty_proposal(db, make_quote):
    quote = make_quote(areas=[], home_sqft=None)
    with pytest.raises(ValidationError) as exc:
        ProposalStateMachine(db, now=NOW).send(quote)
    assert exc.value.code == "EMPTY_PROPOSAL"
    assert quote.status == "draft"


def test_accept_applies_tier_and_queues_notification(db, contractor, make_quote):
    quote = make_quote(status="sent", valid_until=NOW + timedelta(days=5))
    tp = ProposalStateMachine(db, contractor, now=NOW).accept(quote, "best")
    db.commit()

    assert quote.status == "accepted"
    assert quote.selected_tier == "best"
    assert quote.total == tp.total == 230.3
    assert quote.deposit_amount == 115.15
    assert quote.balance_amount == 115.15
    assert events(db) == ["proposal_accepted"]
    assert db.query(OutboxMessage).one().recipient == STAFF_EMAIL


def test_accept_requires_tier(db, make_quote):
    quote = make_quote(status="sent")
    with pytest.raises(ValidationError) as exc:
        ProposalStateMachine(db, now=NOW).accept(quote, None)
    assert exc.value.code == "TIER_REQUIRED"
    assert quote.status == "sent"


def test_accept_draft(db, make_quote):
    with pytest.raises(StateConflictError) as exc:
        ProposalStateMachine(db, now=NOW).accept(make_quote(), "good")
    assert exc.value.code == "NOT_SENT"


def test_accept_twice(db, make_quote):
    quote = make_quote(status="sent")
    sm = ProposalStateMachine(db, now=NOW)
    sm.accept(quote, "good")
    with pytest.raises(StateConflictError) as exc:
        sm.accept(quote, "best")
    assert exc.value.code == "ALREADY_PROCESSED"
    assert quote.selected_tier == "good"


def test_accept_after_decline(db, make_quote):
    quote = make_quote(status="sent")
    sm = ProposalStateMachine(db, now=NOW)
    sm.decline(quote, "  too pricey ")
    assert quote.decline_reason == "too pricey"
    with pytest.raises(StateConflictError) as exc:
        sm.accept(quote, "good")
    assert exc.value.code == "ALREADY_PROCESSED"


def test_accept_expired_quote(db, make_quote):
    quote = make_quote(status="sent", valid_until=NOW - timedelta(minutes=1))
    with pytest.raises(QuoteExpiredError):
        ProposalStateMachine(db, now=NOW).accept(quote, "better")
    assert quote.status == "sent"


def test_change_tier_before_deposit_reprices(db, make_quote):
    quote = make_quote(status="accepted", selected_tier="better", payment_intent_id="pi_old")
    result = ProposalStateMachine(db, now=NOW).change_tier(quote, "good")
    assert result["status"] == "changed"
    assert quote.selected_tier == "good"
    assert quote.total == 170.22
    assert quote.deposit_amount == 85.11
    assert quote.payment_intent_id is None


def test_change_tier_not_allowed_before_acceptance(db, make_quote):
    with pytest.raises(StateConflictError) as exc:
        ProposalStateMachine(db, now=NOW).change_tier(make_quote(status="sent"), "good")
    assert exc.value.code == "TIER_CHANGE_NOT_ALLOWED"


def test_tier_change_after_deposit_is_a_request(db, contractor, make_quote):
    quote = make_quote(
        status="deposit_paid",
        selected_tier="better",
        deposit_transaction_id="pi_paid",
    )
    sm = ProposalStateMachine(db, contractor, now=NOW)

    with pytest.raises(ValidationError) as exc:
        sm.change_tier(quote, "better")
    assert exc.value.code == "SAME_TIER"

    result = sm.change_tier(quote, "best", "want the premium paint")
    db.commit()
    assert result == {"status": "requested", "selected_tier": "better", "requested_tier": "best"}
    assert quote.selected_tier == "better"
    assert quote.tier_change_request == "best"
    assert events(db) == ["tier_change_requested"]

    sm.decide_tier_change(quote, approve=True)
    assert quote.selected_tier == "best"
    assert quote.total == 230.3
    assert quote.deposit_amount == 100.13
    assert quote.balance_amount == 130.17
    assert quote.tier_change_request is None


def test_reject_tier_change_keeps_prices(db, make_quote):
    quote = make_quote(status="deposit_paid", selected_tier="better", tier_change_request="good")
    ProposalStateMachine(db, now=NOW).decide_tier_change(quote, approve=False)
    assert quote.selected_tier == "better"
    assert quote.total == 200.26
    assert quote.tier_change_request is None


def test_stale_request_cannot_be_approved_after_selections(db, make_quote):
    quote = make_quote(
        status="selections_complete",
        selected_tier="better",
        tier_change_request="best",
        deposit_transaction_id="pi_paid",
    )
    sm = ProposalStateMachine(db, now=NOW)

    with pytest.raises(StateConflictError) as exc:
        sm.decide_tier_change(quote, approve=True)
    assert exc.value.code == "TIER_CHANGE_NOT_ALLOWED"
    assert quote.selected_tier == "better"
    assert quote.total == 200.26
    assert quote.balance_amount == 100.13

    sm.decide_tier_change(quote, approve=False)
    assert quote.tier_change_request is None
    assert quote.total == 200.26


def test_decide_without_request(db, make_quote):
    with pytest.raises(StateConflictError) as exc:
        ProposalStateMachine(db, now=NOW).decide_tier_change(make_quote(status="deposit_paid"), approve=True)
    assert exc.value.code == "NO_TIER_CHANGE_REQUEST"


def test_submit_selections_reports_incomplete_areas(db, make_quote):
    quote = make_quote(
        status="deposit_paid",
        deposit_transaction_id="pi_paid",
        areas=[complete_area(1, "Kitchen"), bare_area(2, "Bath"), bare_area(3, "Den")],
    )
    with pytest.raises(ValidationError) as exc:
        ProposalStateMachine(db, now=NOW).submit_selections(quote)
    assert exc.value.code == "INCOMPLETE_SELECTIONS"
    assert exc.value.message == "All areas must have complete selections. 2 area(s) incomplete."
    assert exc.value.details == {"incomplete_count": 2, "incomplete_areas": ["Bath", "Den"]}
    assert quote.status == "deposit_paid"


def test_submit_selections_closes_portal(db, make_quote):
    quote = make_quote(
        status="deposit_paid",
        deposit_transaction_id="pi_paid",
        portal_closed_at=NOW + timedelta(days=3),
        areas=[complete_area(1, "Kitchen"), complete_area(2, "Bath")],
    )
    assert quote.portal_open
    ProposalStateMachine(db, now=NOW).submit_selections(quote)
    db.commit()
    assert quote.status == "selections_complete"
    assert quote.selections_complete
    assert not quote.portal_open
    assert quote.portal_lock_reason == "selections_submitted"
    assert events(db) == ["selections_complete"]


def test_submit_selections_needs_deposit(db, make_quote):
    quote = make_quote(status="accepted", areas=[complete_area(1, "Kitchen")])
    with pytest.raises(StateConflictError):
        ProposalStateMachine(db, now=NOW).submit_selections(quote)


def test_deactivate_blocked_by_deposit(db, make_quote):
    quote = make_quote(status="deposit_paid", deposit_transaction_id="pi_paid")
    with pytest.raises(StateConflictError) as exc:
        ProposalStateMachine(db, now=NOW).deactivate(quote)
    assert exc.value.code == "DEPOSIT_ON_FILE"
    assert quote.is_active


def test_reopen_expired_portal(db, contractor, make_quote):
    quote = make_quote(
        status="deposit_paid",
        deposit_transaction_id="pi_paid",
        portal_lock_reason="expired",
        portal_closed_at=NOW - timedelta(days=1),
    )
    sm = ProposalStateMachine(db, contractor, now=NOW)
    sm.reopen_portal(quote)
    assert quote.portal_open
    assert quote.portal_expires_at == NOW + timedelta(days=14)

    with pytest.raises(StateConflictError) as exc:
        sm.reopen_portal(quote)
    assert exc.value.code == "PORTAL_ALREADY_OPEN"


def test_reopen_after_selections_submitted(db, make_quote):
    quote = make_quote(status="selections_complete", portal_lock_reason="selections_submitted")
    with pytest.raises(StateConflictError) as exc:
        ProposalStateMachine(db, now=NOW).reopen_portal(quote)
    assert exc.value.code == "PORTAL_NOT_REOPENABLE"
