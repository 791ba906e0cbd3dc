# brushquote/services/payment_gateway.py
from __future__ import annotations

import re
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol
from urllib.parse import quote

import httpx

from brushquote.core.logging_config import logger
from brushquote.core.settings import settings
from brushquote.observability.metrics import gateway_latency_hist

PAYMENT_INTENT_ID_RE = re.compile(r"pi_[A-Za-z0-9_]+")


def is_payment_intent_id(value: str) -> bool:
    return bool(PAYMENT_INTENT_ID_RE.fullmatch(value or ""))


@dataclass(frozen=True)
class PaymentIntent:
    id: str
    status: str
    amount: int  # minor units
    currency: str = "usd"
    metadata: Dict[str, str] = field(default_factory=dict)
    client_secret: Optional[str] = None


class GatewayError(RuntimeError):
    def __init__(self, message: str, *, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        return self.status_code is None or self.status_code >= 500


class GatewayTimeout(GatewayError):
    """No answer within the configured timeout; outcome unknown."""


class PaymentGateway(Protocol):
    def create_payment_intent(
        self, *, amount_cents: int, currency: str, metadata: Dict[str, str]
    ) -> PaymentIntent: ...

    def retrieve_payment_intent(self, intent_id: str) -> PaymentIntent: ...


def _intent_from_json(data: Dict[str, Any]) -> PaymentIntent:
    return PaymentIntent(
        id=str(data.get("id") or ""),
        status=str(data.get("status") or ""),
        amount=int(data.get("amount") or 0),
        currency=str(data.get("currency") or ""),
        metadata={k: str(v) for k, v in (data.get("metadata") or {}).items()},
        client_secret=data.get("client_secret"),
    )


class StripeGateway:
    """Minimal Stripe PaymentIntents client over the REST API."""

    def __init__(
        self,
        secret_key: Optional[str] = None,
        *,
        api_base: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.secret_key = secret_key if secret_key is not None else settings.STRIPE_SECRET_KEY
        self.api_base = (api_base or settings.STRIPE_API_BASE).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.STRIPE_TIMEOUT_SECONDS
        self._transport = transport

    def _request(self, operation: str, method: str, path: str, data: Optional[Dict[str, Any]] = None):
        if not self.secret_key:
            raise GatewayError("stripe_not_configured: STRIPE_SECRET_KEY missing")

        start = time.time()
        try:
            with httpx.Client(
                base_url=self.api_base,
                auth=(self.secret_key, ""),
                timeout=self.timeout,
                transport=self._transport,
            ) as client:
                r = client.request(method, path, data=data)
        except httpx.TimeoutException as e:
            logger.bind(operation=operation).warning("payment_gateway_timeout", error=str(e))
            raise GatewayTimeout(f"stripe_timeout:{operation}") from e
        except httpx.HTTPError as e:
            raise GatewayError(f"stripe_network_error:{type(e).__name__}:{e}") from e
        finally:
            gateway_latency_hist.labels(operation=operation).observe(time.time() - start)

        if r.status_code >= 300:
            try:
                err = r.json().get("error", {})
            except ValueError:
                err = {"message": r.text}
            raise GatewayError(
                f"stripe_error:{r.status_code}:{err.get('code') or err.get('message')}",
                status_code=r.status_code,
            )
        return r.json()

    def create_payment_intent(
        self, *, amount_cents: int, currency: str, metadata: Dict[str, str]
    ) -> PaymentIntent:
        data: Dict[str, Any] = {
            "amount": int(amount_cents),
            "currency": currency,
            "automatic_payment_methods[enabled]": "true",
        }
        for k, v in metadata.items():
            data[f"metadata[{k}]"] = str(v)
        return _intent_from_json(self._request("create_intent", "POST", "/payment_intents", data))

    def retrieve_payment_intent(self, intent_id: str) -> PaymentIntent:
        if not is_payment_intent_id(intent_id):
            raise GatewayError(f"stripe_invalid_intent_id:{intent_id!r}", status_code=400)
        path = f"/payment_intents/{quote(intent_id, safe='')}"
        return _intent_from_json(self._request("retrieve_intent", "GET", path))


def get_payment_gateway() -> PaymentGateway:
    return StripeGateway()
