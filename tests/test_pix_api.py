"""
Tests for POST /api/pix and GET /pix/status/{payment_id}.
"""

import pytest

from tests.conftest import approved_payment


def charge_body(**overrides) -> dict:
    body = {
        "invoiceId": "inv-100",
        "amount": 49.9,
        "payerEmail": "ana@example.com",
        "payerName": "Ana",
    }
    body.update(overrides)
    return body


class TestCreateCharge:
    """POST /api/pix."""

    def test_creates_charge(self, client, mercadopago):
        response = client.post("/api/pix", json=charge_body())

        assert response.status_code == 200
        data = response.json()
        assert data["ok"] is True
        assert data["invoiceId"] == "inv-100"
        assert data["gatewayPaymentId"] == "9001"
        assert data["status"] == "pending"
        assert data["qrText"] == "00020126580014br.gov.bcb.pix"
        assert data["qrImageBase64"] == "iVBORw0KGgo="

        sent = mercadopago.created[0]["body"]
        assert sent["payer"]["first_name"] == "Ana"
        assert sent["metadata"] == {"fatura_id": "inv-100"}

    def test_due_time_becomes_expiration(self, client, mercadopago):
        client.post("/api/pix", json=charge_body(dueTime="2025-01-10T23:59:00Z"))

        sent = mercadopago.created[0]["body"]
        assert sent["date_of_expiration"] == "2025-01-10T23:59:00.000+00:00"

    def test_invalid_email_is_400(self, client, mercadopago):
        response = client.post("/api/pix", json=charge_body(payerEmail="nope"))

        assert response.status_code == 400
        assert response.json()["ok"] is False
        assert "payerEmail" in response.json()["message"]
        assert mercadopago.created == []

    def test_non_positive_amount_is_400(self, client, mercadopago):
        response = client.post("/api/pix", json=charge_body(amount=0))

        assert response.status_code == 400
        assert response.json()["ok"] is False
        assert mercadopago.created == []

    def test_huge_amount_is_400(self, client, mercadopago):
        response = client.post("/api/pix", json=charge_body(amount=1e308))

        assert response.status_code == 400
        assert response.json()["ok"] is False
        assert "amount" in response.json()["message"]
        assert mercadopago.created == []

    @pytest.mark.parametrize("literal", ["Infinity", "-Infinity", "NaN"])
    def test_non_finite_amount_is_400(self, client, mercadopago, literal):
        raw = '{"invoiceId": "inv-100", "amount": ' + literal + ', "payerEmail": "ana@example.com"}'

        response = client.post(
            "/api/pix", content=raw, headers={"content-type": "application/json"}
        )

        assert response.status_code == 400
        assert response.json()["ok"] is False
        assert mercadopago.created == []

    def test_missing_invoice_id_is_400(self, client):
        body = charge_body()
        del body["invoiceId"]

        response = client.post("/api/pix", json=body)

        assert response.status_code == 400

    def test_gateway_rejection_is_400_with_causes(self, client, mercadopago):
        mercadopago.create_response = (
            400,
            {
                "message": "bad_request",
                "error": "bad_request",
                "cause": [{"code": 2067, "description": "Invalid user identification number"}],
            },
        )

        response = client.post("/api/pix", json=charge_body(payerTaxId="000"))

        assert response.status_code == 400
        data = response.json()
        assert data["ok"] is False
        assert data["message"] == "Erro Mercado Pago: bad_request"
        assert data["causes"] == ["Invalid user identification number"]

    def test_gateway_outage_is_503(self, client, mercadopago):
        mercadopago.fail_with = 503

        response = client.post("/api/pix", json=charge_body())

        assert response.status_code == 503
        assert response.json()["ok"] is False

    def test_charge_creation_does_not_touch_invoice(self, client, store, mercadopago, seed_invoice):
        from pix_api.models import Invoice

        client.post("/api/pix", json=charge_body())

        with store.session() as db:
            invoice = db.get(Invoice, "inv-100")
            assert invoice.status == "pending"
            assert invoice.gateway_payment_id is None


class TestPaymentStatus:
    """GET /pix/status/{payment_id}."""

    def test_returns_gateway_status(self, client, mercadopago):
        mercadopago.payments["123456"] = approved_payment()

        response = client.get("/pix/status/123456")

        assert response.status_code == 200
        data = response.json()
        assert data["ok"] is True
        assert data["status"] == "approved"
        assert data["statusDetail"] == "accredited"
        assert data["rawRecord"]["id"] == 123456

    def test_unknown_payment_is_503(self, client):
        response = client.get("/pix/status/404404")

        assert response.status_code == 503

    def test_unsafe_id_is_rejected(self, client, mercadopago):
        response = client.get("/pix/status/abc$def")

        assert response.status_code == 400
        assert mercadopago.requests == []
