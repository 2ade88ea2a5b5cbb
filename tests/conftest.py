"""
Pytest configuration and fixtures for the PIX API tests.
"""

import json
import re
from datetime import datetime, timezone

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool

from shared.config.settings import Settings
from shared.infrastructure.db import Store
from shared.security.rate_limit import limiter
from pix_api.main import create_app
from pix_api.models import Invoice, SubscriberAccount
from pix_api.services.payments import (
    CircuitBreaker,
    CircuitBreakerConfig,
    MercadoPagoClient,
)


MP_BASE_URL = "https://api.mercadopago.test"
WEBHOOK_URL = "https://pix.example.test/webhook/mercadopago"

_PAYMENT_PATH = re.compile(r"^/v1/payments/(?P<payment_id>[^/]+)$")


def as_utc(value: datetime | None) -> datetime | None:
    """SQLite drops tzinfo; every stored timestamp is UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class FakeMercadoPago:
    """
    In-process stand-in for the Mercado Pago payments API, served through
    httpx.MockTransport.
    """

    def __init__(self):
        self.payments: dict[str, dict] = {}
        self.created: list[dict] = []
        self.requests: list[httpx.Request] = []
        # When set, every request answers with this status code
        self.fail_with: int | None = None
        self.raise_exc: Exception | None = None
        self.create_response: tuple[int, dict] | None = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)

        if self.raise_exc is not None:
            raise self.raise_exc
        if self.fail_with is not None:
            return httpx.Response(self.fail_with, json={"message": "internal_error"})

        if request.method == "POST" and request.url.path == "/v1/payments":
            body = json.loads(request.content)
            self.created.append({"body": body, "headers": dict(request.headers)})
            if self.create_response is not None:
                status_code, payload = self.create_response
                return httpx.Response(status_code, json=payload)
            return httpx.Response(
                201,
                json={
                    "id": 9000 + len(self.created),
                    "status": "pending",
                    "point_of_interaction": {
                        "transaction_data": {
                            "qr_code": "00020126580014br.gov.bcb.pix",
                            "qr_code_base64": "iVBORw0KGgo=",
                        }
                    },
                },
            )

        match = _PAYMENT_PATH.match(request.url.path)
        if request.method == "GET" and match:
            payment = self.payments.get(match.group("payment_id"))
            if payment is None:
                return httpx.Response(404, json={"message": "Payment not found"})
            return httpx.Response(200, json=payment)

        return httpx.Response(404, json={"message": "not found"})


@pytest.fixture
def settings():
    return Settings(
        mercado_pago_access_token="TEST-access-token",
        database_url="sqlite://",
        mercado_pago_api_url=MP_BASE_URL,
        mp_webhook_url=WEBHOOK_URL,
        environment="test",
    )


@pytest.fixture
def store():
    """
    Fresh in-memory store for each test. StaticPool keeps one connection so
    worker threads see the same database.
    """
    store = Store(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    store.create_all()
    yield store
    store.close()


@pytest.fixture
def mercadopago():
    return FakeMercadoPago()


def make_gateway(mercadopago: FakeMercadoPago, **breaker_options) -> MercadoPagoClient:
    return MercadoPagoClient(
        "TEST-access-token",
        base_url=MP_BASE_URL,
        notification_url=WEBHOOK_URL,
        breaker=CircuitBreaker(CircuitBreakerConfig(name="mercadopago", **breaker_options)),
        transport=httpx.MockTransport(mercadopago.handler),
    )


@pytest.fixture
def gateway(mercadopago):
    return make_gateway(mercadopago)


@pytest.fixture
def client(settings, store, gateway):
    """
    Test client running the full lifespan against the in-memory store and the
    fake Mercado Pago.
    """
    limiter.enabled = False
    app = create_app(settings, store=store, gateway=gateway)

    with TestClient(app) as test_client:
        yield test_client

    limiter.enabled = True


# =============================================================================
# Seed data
# =============================================================================


@pytest.fixture
def seed_account(store):
    """Inactive subscriber account u1."""
    with store.transaction() as db:
        db.add(SubscriberAccount(id="u1", status="inactive"))
    return "u1"


@pytest.fixture
def seed_invoice(store, seed_account):
    """
    Pending invoice inv-100: 49.90, customer c1, period 2025-01, plan Mensal,
    linked to account u1.
    """
    with store.transaction() as db:
        db.add(
            Invoice(
                id="inv-100",
                amount=49.90,
                status="pending",
                customer_id="c1",
                period_id="2025-01",
                plan="Mensal",
                account_id=seed_account,
            )
        )
    return "inv-100"


def approved_payment(payment_id: str = "123456", invoice_id: str = "inv-100", **overrides) -> dict:
    """Authoritative gateway record for an approved PIX payment."""
    payment = {
        "id": int(payment_id) if payment_id.isdigit() else payment_id,
        "status": "approved",
        "status_detail": "accredited",
        "transaction_amount": 49.90,
        "date_approved": "2025-01-05T10:00:00.000Z",
        "external_reference": invoice_id,
        "description": f"Fatura {invoice_id}",
        "metadata": {"fatura_id": invoice_id},
        "payment_method_id": "pix",
    }
    payment.update(overrides)
    return payment
