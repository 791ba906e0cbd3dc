from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from brushquote.auth.portal_tokens import PortalTokenService
from brushquote.core.settings import settings
from brushquote.services import deposit_verifier as dv

from conftest import STAFF_EMAIL, TENANT

QUOTE_BODY = {
    "client_id": "client-1",
    "customer_name": "Dana Customer",
    "customer_email": "dana@example.com",
    "areas": [{"name": "Living room", "labor_items": [{"category": "walls", "quantity": 200}]}],
}


def create_and_send(client, staff_headers, scheme_id):
    r = client.post("/quotes", json={**QUOTE_BODY, "pricing_scheme_id": scheme_id}, headers=staff_headers)
    assert r.status_code == 201, r.text
    quote = r.json()
    r = client.post(f"/quotes/{quote['id']}/send", headers=staff_headers)
    assert r.status_code == 200, r.text
    return quote["id"], {"X-Portal-Token": r.json()["portal_token"]}


def accept_and_pay(client, gateway, quote_id, portal, tier="best"):
    r = client.post(f"/proposals/{quote_id}/accept", json={"selected_tier": tier}, headers=portal)
    assert r.status_code == 200, r.text
    r = client.post(f"/proposals/{quote_id}/create-payment-intent", json={}, headers=portal)
    assert r.status_code == 200, r.text
    intent_id = r.json()["payment_intent_id"]
    gateway.set_status(intent_id, "succeeded")
    return intent_id


def test_full_proposal_flow(client, staff_headers, gateway, notifier, contractor, rate_scheme):
    r = client.post("/quotes", json={**QUOTE_BODY, "pricing_scheme_id": rate_scheme.id}, headers=staff_headers)
    assert r.status_code == 201, r.text
    quote = r.json()
    assert quote["quote_number"] == "Q-2026-001"
    assert quote["status"] == "draft"
    assert quote["pricing_source"] == "unified"
    assert quote["labor_total"] == 110.0
    assert quote["material_total"] == 60.0
    assert quote["subtotal"] == 185.0
    assert quote["total"] == 200.26
    qid = quote["id"]

    r = client.post(f"/quotes/{qid}/send", headers=staff_headers)
    assert r.status_code == 200, r.text
    sent = r.json()
    assert sent["quote"]["status"] == "sent"
    assert sent["tiers"]["best"]["total"] == 230.3
    portal = {"X-Portal-Token": sent["portal_token"]}

    r = client.get(f"/proposals/{qid}", headers=portal)
    assert r.status_code == 200
    assert r.json()["scope"].startswith("Interior painting of 1 area(s)")

    r = client.post(f"/proposals/{qid}/accept", json={"selected_tier": "best"}, headers=portal)
    assert r.status_code == 200, r.text
    assert r.json() == {"status": "accepted", "deposit_amount": 115.15, "selected_tier": "best", "total": 230.3}

    r = client.post(f"/proposals/{qid}/create-payment-intent", json={"tier": "best"}, headers=portal)
    assert r.status_code == 200, r.text
    intent_id = r.json()["payment_intent_id"]
    assert r.json()["amount"] == 115.15
    assert gateway.intents[intent_id].amount == 11515
    assert gateway.intents[intent_id].metadata["quote_id"] == str(qid)

    gateway.set_status(intent_id, "succeeded")
    r = client.post(f"/proposals/{qid}/verify-deposit", json={"payment_intent_id": intent_id}, headers=portal)
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["success"] is True
    assert body["portal_open"] is True
    assert body["replayed"] is False

    r = client.post(f"/proposals/{qid}/verify-deposit", json={"payment_intent_id": intent_id}, headers=portal)
    assert r.status_code == 200
    assert r.json()["replayed"] is True
    assert r.json()["portal_expires_at"] == body["portal_expires_at"]

    r = client.get(f"/proposals/{qid}/portal-status", headers=portal)
    assert r.json()["is_open"] is True

    r = client.put(
        f"/proposals/{qid}/areas/1/selections",
        json={"color_id": "SW7008", "sheen": "eggshell", "product_id": "duration"},
        headers=portal,
    )
    assert r.status_code == 200, r.text
    assert r.json()["selections"]["sheen"] == "eggshell"

    r = client.post(f"/proposals/{qid}/selections/submit", headers=portal)
    assert r.status_code == 200, r.text
    assert r.json() == {"success": True, "status": "selections_complete", "portal_open": False}

    r = client.get(f"/proposals/{qid}/documents/store_order", headers=portal)
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("application/vnd.openxmlformats")

    r = client.get(f"/quotes/{qid}", headers=staff_headers)
    final = r.json()
    assert final["status"] == "selections_complete"
    assert final["deposit_verified"] is True
    assert final["selections_complete"] is True
    assert final["deposit_amount"] == 115.15

    subjects = [m["subject"] for m in notifier.sent]
    assert subjects == [
        "Proposal Q-2026-001 accepted",
        "Deposit received for Q-2026-001",
        "Selections submitted for Q-2026-001",
    ]
    assert {m["to"] for m in notifier.sent} == {STAFF_EMAIL}


def test_better_tier_deposit_is_half_the_tier_total(client, staff_headers, gateway, contractor, rate_scheme):
    qid, portal = create_and_send(client, staff_headers, rate_scheme.id)

    r = client.post(f"/proposals/{qid}/accept", json={"selected_tier": "better"}, headers=portal)
    assert r.status_code == 200, r.text
    accepted = r.json()
    assert accepted["selected_tier"] == "better"
    assert accepted["total"] == 200.26
    assert accepted["deposit_amount"] == 100.13

    r = client.post(f"/proposals/{qid}/create-payment-intent", json={"tier": "better"}, headers=portal)
    assert r.status_code == 200, r.text
    intent_id = r.json()["payment_intent_id"]
    assert gateway.intents[intent_id].amount == 10013

    gateway.set_status(intent_id, "succeeded")
    r = client.post(f"/proposals/{qid}/verify-deposit", json={"payment_intent_id": intent_id}, headers=portal)
    assert r.status_code == 200, r.text
    assert r.json()["portal_open"] is True

    final = client.get(f"/quotes/{qid}", headers=staff_headers).json()
    assert final["status"] == "deposit_paid"
    assert final["deposit_amount"] == 100.13
    assert final["balance_amount"] == 100.13


def test_incomplete_selections_are_listed(client, staff_headers, gateway, contractor, rate_scheme):
    body = {
        **QUOTE_BODY,
        "pricing_scheme_id": rate_scheme.id,
        "areas": [
            {"name": "Kitchen", "labor_items": [{"category": "walls", "quantity": 120}]},
            {"name": "Bath", "labor_items": [{"category": "walls", "quantity": 80}]},
        ],
    }
    qid = client.post("/quotes", json=body, headers=staff_headers).json()["id"]
    portal = {"X-Portal-Token": client.post(f"/quotes/{qid}/send", headers=staff_headers).json()["portal_token"]}
    intent_id = accept_and_pay(client, gateway, qid, portal, tier="good")
    client.post(f"/proposals/{qid}/verify-deposit", json={"payment_intent_id": intent_id}, headers=portal)

    client.put(f"/proposals/{qid}/areas/1/selections", json={"color_id": "SW1", "sheen": "flat"}, headers=portal)
    r = client.post(f"/proposals/{qid}/selections/submit", headers=portal)
    assert r.status_code == 400
    err = r.json()
    assert err["code"] == "INCOMPLETE_SELECTIONS"
    assert err["details"] == {"incomplete_count": 1, "incomplete_areas": ["Bath"]}


def test_deposit_on_unaccepted_proposal(client, staff_headers, gateway, contractor, rate_scheme):
    qid, portal = create_and_send(client, staff_headers, rate_scheme.id)
    gateway.add("pi_early", status="succeeded", amount=10013, quote_id=qid)
    r = client.post(f"/proposals/{qid}/verify-deposit", json={"payment_intent_id": "pi_early"}, headers=portal)
    assert r.status_code == 409
    assert r.json()["code"] == "INVALID_STATE"


def test_processing_payment_answers_202(client, staff_headers, gateway, contractor, rate_scheme):
    qid, portal = create_and_send(client, staff_headers, rate_scheme.id)
    intent_id = accept_and_pay(client, gateway, qid, portal)
    gateway.set_status(intent_id, "processing")

    r = client.post(f"/proposals/{qid}/verify-deposit", json={"payment_intent_id": intent_id}, headers=portal)
    assert r.status_code == 202
    assert r.json()["code"] == "PAYMENT_PROCESSING"
    assert client.get(f"/proposals/{qid}", headers=portal).json()["status"] == "accepted"


def test_inconsistent_deposit_state(client, staff_headers, gateway, contractor, rate_scheme, monkeypatch):
    qid, portal = create_and_send(client, staff_headers, rate_scheme.id)
    intent_id = accept_and_pay(client, gateway, qid, portal)

    def broken(*args, **kwargs):
        raise OperationalError("UPDATE quotes", {}, Exception("database is locked"))

    monkeypatch.setattr(dv, "cas_mark_deposit_verified", broken)
    r = client.post(f"/proposals/{qid}/verify-deposit", json={"payment_intent_id": intent_id}, headers=portal)
    assert r.status_code == 500
    assert r.json()["code"] == "DEPOSIT_STATE_INCONSISTENT"
    assert r.json()["details"]["payment_reference"] == intent_id


def test_expired_portal_is_locked_by_the_request(client, staff_headers, gateway, clock, contractor, rate_scheme):
    qid, portal = create_and_send(client, staff_headers, rate_scheme.id)
    intent_id = accept_and_pay(client, gateway, qid, portal)
    client.post(f"/proposals/{qid}/verify-deposit", json={"payment_intent_id": intent_id}, headers=portal)

    clock.advance(days=15)
    r = client.put(f"/proposals/{qid}/areas/1/selections", json={"sheen": "satin"}, headers=portal)
    assert r.status_code == 403
    assert r.json()["code"] == "PORTAL_EXPIRED"

    status = client.get(f"/proposals/{qid}/portal-status", headers=portal).json()
    assert status["is_open"] is False
    assert status["is_expired"] is True

    r = client.post(f"/quotes/{qid}/portal/reopen", headers=staff_headers)
    assert r.status_code == 200, r.text
    assert r.json()["portal_open"] is True
    r = client.put(f"/proposals/{qid}/areas/1/selections", json={"sheen": "satin"}, headers=portal)
    assert r.status_code == 200


def test_tier_mismatch_on_payment(client, staff_headers, gateway, contractor, rate_scheme):
    qid, portal = create_and_send(client, staff_headers, rate_scheme.id)
    client.post(f"/proposals/{qid}/accept", json={"selected_tier": "good"}, headers=portal)
    r = client.post(f"/proposals/{qid}/create-payment-intent", json={"tier": "best"}, headers=portal)
    assert r.status_code == 400
    assert r.json()["code"] == "TIER_MISMATCH"


def test_portal_token_is_required(client, staff_headers, contractor, rate_scheme):
    qid, _ = create_and_send(client, staff_headers, rate_scheme.id)
    assert client.get(f"/proposals/{qid}").status_code == 401
    assert client.get(f"/proposals/{qid}", headers={"X-Portal-Token": "garbage"}).status_code == 401


def test_other_client_cannot_see_proposal(client, staff_headers, contractor, rate_scheme):
    qid, _ = create_and_send(client, staff_headers, rate_scheme.id)
    token = PortalTokenService(settings.PORTAL_TOKEN_SECRET).make(client_id="client-2", tenant_id=TENANT)
    r = client.get(f"/proposals/{qid}", headers={"X-Portal-Token": token})
    assert r.status_code == 404


def test_staff_token_is_required(client):
    assert client.post("/quotes", json=QUOTE_BODY).status_code == 401


def test_request_validation_answers_400(client, staff_headers):
    r = client.post("/quotes", json={"customer_name": "No client id"}, headers=staff_headers)
    assert r.status_code == 400
    assert r.json()["code"] == "VALIDATION_ERROR"


def test_quote_without_scheme_uses_legacy_pricing(client, staff_headers, contractor):
    body = {
        **QUOTE_BODY,
        "areas": [{"name": "Den", "labor_items": [{"category": "walls", "quantity": 100, "labor_rate": 1.0}]}],
    }
    r = client.post("/quotes", json=body, headers=staff_headers)
    assert r.status_code == 201
    assert r.json()["pricing_source"] == "legacy"
    assert r.json()["labor_total"] == 200.0


def test_quote_coats_apply_to_items_without_their_own(client, staff_headers, contractor, rate_scheme):
    body = {
        **QUOTE_BODY,
        "pricing_scheme_id": rate_scheme.id,
        "coats": 3,
        "areas": [
            {"name": "Living room", "labor_items": [{"category": "walls", "quantity": 200}]},
            {"name": "Closet", "labor_items": [{"category": "walls", "quantity": 200, "coats": 1}]},
        ],
    }
    r = client.post("/quotes", json=body, headers=staff_headers)
    assert r.status_code == 201, r.text
    lines = r.json()["pricing_breakdown"]["lines"]
    # 200 * 3 / 350 * 1.10 -> 2.0 gal; 200 * 1 / 350 * 1.10 -> 0.75 gal
    assert [line["gallons"] for line in lines] == [2.0, 0.75]
    assert r.json()["material_total"] == 110.0


def test_calculate_preview_stores_nothing(client, staff_headers, contractor, rate_scheme):
    r = client.post(
        "/quotes/calculate",
        json={"pricing_scheme_id": rate_scheme.id, "areas": QUOTE_BODY["areas"]},
        headers=staff_headers,
    )
    assert r.status_code == 200, r.text
    data = r.json()
    assert data["pricing"]["total"] == 200.26
    assert data["tiers"]["good"]["total"] == 170.22
    assert client.get("/quotes/1", headers=staff_headers).status_code == 404


def test_sent_quote_cannot_be_edited_after_acceptance(client, staff_headers, contractor, rate_scheme):
    qid, portal = create_and_send(client, staff_headers, rate_scheme.id)
    client.post(f"/proposals/{qid}/accept", json={"selected_tier": "better"}, headers=portal)
    r = client.put(f"/quotes/{qid}", json={"add_ons": 50}, headers=staff_headers)
    assert r.status_code == 409
    assert r.json()["code"] == "NOT_EDITABLE"


def test_settings_and_schemes(client, staff_headers):
    r = client.get("/settings", headers=staff_headers)
    assert r.status_code == 200
    assert r.json()["deposit_percent"] == 50.0

    r = client.put("/settings", json={"deposit_percent": 30}, headers=staff_headers)
    assert r.json()["deposit_percent"] == 30.0
    assert client.put("/settings", json={"tax_percent": 150}, headers=staff_headers).status_code == 400

    r = client.get("/pricing-schemes", headers=staff_headers)
    assert len(r.json()) == 4

    r = client.post(
        "/pricing-schemes",
        json={"name": "Bad", "type": "per_brushstroke", "rules": {}},
        headers=staff_headers,
    )
    assert r.status_code == 400
    assert r.json()["code"] == "INVALID_PRICING_SCHEME"


@pytest.mark.parametrize("path", ["/health", "/metrics"])
def test_ops_endpoints(client, path):
    r = client.get(path)
    assert r.status_code == 200
    assert "X-Request-ID" in r.headers


def test_app_is_named_from_settings(client):
    assert client.app.title == settings.app_name
    assert settings.metrics_enabled
    assert any(getattr(route, "path", None) == "/metrics" for route in client.app.routes)
