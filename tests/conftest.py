import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET", "test-jwt-secret-0123456789abcdef0123")
os.environ.setdefault("PORTAL_TOKEN_SECRET", "test-portal-secret-0123456789abcdef")

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from brushquote import models  # noqa: F401  (registers SQLAlchemy models)
from brushquote.auth.jwt import create_access_token
from brushquote.auth.portal_tokens import PortalTokenService
from brushquote.core.rate_limit import limiter
from brushquote.core.settings import settings
from brushquote.core.timeutil import utcnow
from brushquote.db import Base, get_db
from brushquote.models.contractor_settings import ContractorSettings
from brushquote.models.pricing_scheme import PricingScheme
from brushquote.models.quote import Quote
from brushquote.services.notifications import get_notifier
from brushquote.services.payment_gateway import GatewayError, PaymentIntent, get_payment_gateway

TENANT = "tenant-a"
CLIENT = "client-1"
STAFF_EMAIL = "owner@paintco.test"
NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


# -------------------------
# Fakes
# -------------------------
class FakeGateway:
    """In-memory PaymentIntents; tests flip intent status to simulate the customer paying."""

    def __init__(self):
        self.intents: Dict[str, PaymentIntent] = {}
        self.retrieve_calls: List[str] = []
        self.fail_with: Optional[GatewayError] = None
        self._seq = 0

    def add(self, intent_id: str, *, status: str, amount: int, quote_id: Any) -> PaymentIntent:
        intent = PaymentIntent(
            id=intent_id,
            status=status,
            amount=amount,
            metadata={"quote_id": str(quote_id)},
            client_secret=f"{intent_id}_secret",
        )
        self.intents[intent_id] = intent
        return intent

    def set_status(self, intent_id: str, status: str) -> None:
        old = self.intents[intent_id]
        self.intents[intent_id] = PaymentIntent(
            id=old.id,
            status=status,
            amount=old.amount,
            currency=old.currency,
            metadata=old.metadata,
            client_secret=old.client_secret,
        )

    def create_payment_intent(self, *, amount_cents, currency, metadata):
        self._seq += 1
        intent = PaymentIntent(
            id=f"pi_test_{self._seq}",
            status="requires_payment_method",
            amount=amount_cents,
            currency=currency,
            metadata=dict(metadata),
            client_secret=f"pi_test_{self._seq}_secret",
        )
        self.intents[intent.id] = intent
        return intent

    def retrieve_payment_intent(self, intent_id):
        self.retrieve_calls.append(intent_id)
        if self.fail_with is not None:
            raise self.fail_with
        if intent_id not in self.intents:
            raise GatewayError("stripe_error:404:resource_missing", status_code=404)
        return self.intents[intent_id]


class FakeNotifier:
    def __init__(self, fail: bool = False):
        self.sent: List[Dict[str, Any]] = []
        self.fail = fail

    def send(self, *, to, subject, html_body, metadata):
        if self.fail:
            raise RuntimeError("smtp down")
        self.sent.append({"to": to, "subject": subject, "html": html_body, "metadata": metadata})
        return f"msg-{len(self.sent)}"


class Clock:
    def __init__(self, now: datetime):
        self.now = now

    def advance(self, **kw) -> None:
        self.now = self.now + timedelta(**kw)


# -------------------------
# Database
# -------------------------
@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def clock():
    return Clock(NOW)


@pytest.fixture
def contractor(db):
    row = ContractorSettings(tenant_id=TENANT, company_name="Paint Co", notification_email=STAFF_EMAIL)
    db.add(row)
    db.commit()
    return row


@pytest.fixture
def rate_scheme(db):
    scheme = PricingScheme(
        tenant_id=TENANT,
        name="Interior - per square foot",
        type="rate_based_sqft",
        rules={"default_rate": 0.55, "categories": {"walls": {"rate": 0.55}}},
        is_default=True,
        is_active=True,
    )
    db.add(scheme)
    db.commit()
    return scheme


def complete_area(area_id: int, name: str) -> Dict[str, Any]:
    return {
        "id": area_id,
        "name": name,
        "labor_items": [{"category": "walls", "quantity": 200}],
        "selections": {"color_id": "SW7008", "sheen": "eggshell", "product_id": "duration"},
    }


def bare_area(area_id: int, name: str) -> Dict[str, Any]:
    return {"id": area_id, "name": name, "labor_items": [{"category": "walls", "quantity": 200}]}


@pytest.fixture
def make_quote(db):
    counter = {"n": 0}

    def _make(**overrides) -> Quote:
        counter["n"] += 1
        data = dict(
            tenant_id=TENANT,
            quote_number=f"Q-2026-{counter['n']:03d}",
            client_id=CLIENT,
            customer_name="Dana Customer",
            owner_email=STAFF_EMAIL,
            areas=[bare_area(1, "Living room")],
            product_sets=[],
            base_total=200.26,
            total=200.26,
            deposit_amount=100.13,
            balance_amount=100.13,
            status="draft",
            is_active=True,
        )
        data.update(overrides)
        quote = Quote(**data)
        db.add(quote)
        db.commit()
        return quote

    return _make


# -------------------------
# API client
# -------------------------
@pytest.fixture
def client(session_factory, gateway, notifier, clock):
    from brushquote.main import app

    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[utcnow] = lambda: clock.now
    limiter.enabled = False
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
        limiter.enabled = True


@pytest.fixture
def staff_headers():
    token = create_access_token(user_id="user-1", tenant_id=TENANT, email=STAFF_EMAIL)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def portal_headers():
    token = PortalTokenService(settings.PORTAL_TOKEN_SECRET).make(client_id=CLIENT, tenant_id=TENANT)
    return {"X-Portal-Token": token}
