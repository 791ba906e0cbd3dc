from urllib.parse import parse_qs

import httpx
import pytest

from brushquote.services.payment_gateway import GatewayError, GatewayTimeout, StripeGateway


def gateway(handler):
    return StripeGateway(
        "sk_test_123",
        api_base="https://stripe.test/v1",
        timeout=2,
        transport=httpx.MockTransport(handler),
    )


def test_create_payment_intent_sends_form_metadata():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["form"] = parse_qs(request.content.decode())
        return httpx.Response(
            200,
            json={
                "id": "pi_123",
                "status": "requires_payment_method",
                "amount": 11515,
                "currency": "usd",
                "metadata": {"quote_id": "7"},
                "client_secret": "pi_123_secret",
            },
        )

    intent = gateway(handler).create_payment_intent(
        amount_cents=11515, currency="usd", metadata={"quote_id": "7", "tier": "best"}
    )
    assert seen["url"] == "https://stripe.test/v1/payment_intents"
    assert seen["form"]["amount"] == ["11515"]
    assert seen["form"]["metadata[tier]"] == ["best"]
    assert intent.id == "pi_123"
    assert intent.amount == 11515
    assert intent.client_secret == "pi_123_secret"


def test_retrieve_payment_intent():
    def handler(request):
        assert request.url.path == "/v1/payment_intents/pi_9"
        return httpx.Response(200, json={"id": "pi_9", "status": "succeeded", "amount": 500, "metadata": {"quote_id": 3}})

    intent = gateway(handler).retrieve_payment_intent("pi_9")
    assert intent.status == "succeeded"
    assert intent.metadata == {"quote_id": "3"}


@pytest.mark.parametrize("status, retryable", [(404, False), (402, False), (500, True), (503, True)])
def test_http_errors(status, retryable):
    def handler(request):
        return httpx.Response(status, json={"error": {"code": "boom"}})

    with pytest.raises(GatewayError) as exc:
        gateway(handler).retrieve_payment_intent("pi_x")
    assert exc.value.status_code == status
    assert exc.value.retryable is retryable


def test_timeout():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(GatewayTimeout):
        gateway(handler).retrieve_payment_intent("pi_x")


def test_missing_secret_key():
    with pytest.raises(GatewayError):
        StripeGateway("", api_base="https://stripe.test/v1").retrieve_payment_intent("pi_x")


@pytest.mark.parametrize("intent_id", ["../customers/cus_123?expand[]=sources", "..", "pi_1/../charges", ""])
def test_retrieve_rejects_ids_that_are_not_payment_intents(intent_id):
    seen = []

    def handler(request):
        seen.append(str(request.url))
        return httpx.Response(200, json={"id": "cus_123", "status": "active"})

    with pytest.raises(GatewayError) as exc:
        gateway(handler).retrieve_payment_intent(intent_id)
    assert exc.value.status_code == 400
    assert exc.value.retryable is False
    assert seen == []
