"""
Tests for the reconciliation engine.

The gateway is an AsyncMock returning GatewayPayment snapshots; the ledger
is real, on the in-memory store.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from pix_api.models import Invoice, SubscriberAccount
from pix_api.services.payments import (
    GatewayPayment,
    GatewayUnavailable,
    LedgerWriter,
    ReconciliationEngine,
    ReconciliationOutcome,
    derive_invoice_id,
    map_gateway_status,
)
from tests.conftest import approved_payment, as_utc


def payment(**fields) -> GatewayPayment:
    return GatewayPayment.from_api({"id": 123456, **fields})


def engine_for(store, *payments: dict) -> tuple[ReconciliationEngine, AsyncMock]:
    gateway = AsyncMock()
    gateway.fetch_payment.side_effect = [GatewayPayment.from_api(p) for p in payments]
    return ReconciliationEngine(gateway, LedgerWriter(store)), gateway


class TestDeriveInvoiceId:
    """Correlation precedence: metadata, external_reference, description."""

    def test_metadata_wins(self):
        p = payment(
            metadata={"fatura_id": "from-meta"},
            external_reference="from-ref",
            description="Fatura from-desc",
        )
        assert derive_invoice_id(p) == "from-meta"

    def test_camel_case_metadata_key(self):
        assert derive_invoice_id(payment(metadata={"faturaId": "inv-7"})) == "inv-7"

    def test_external_reference_when_metadata_missing(self):
        p = payment(metadata={}, external_reference="from-ref", description="Fatura from-desc")
        assert derive_invoice_id(p) == "from-ref"

    def test_blank_candidates_are_skipped(self):
        p = payment(
            metadata={"fatura_id": "  "},
            external_reference="",
            description="Fatura from-desc",
        )
        assert derive_invoice_id(p) == "from-desc"

    def test_description_needs_invoice_prefix(self):
        assert derive_invoice_id(payment(description="Mensalidade janeiro")) is None

    def test_nothing_to_correlate(self):
        assert derive_invoice_id(payment()) is None


class TestMapGatewayStatus:
    """Non-approved gateway statuses onto invoice statuses."""

    @pytest.mark.parametrize(
        "status,detail,expected",
        [
            ("pending", "pending_waiting_transfer", "pending"),
            ("in_process", None, "pending"),
            ("cancelled", "by_collector", "cancelled"),
            ("cancelled", "expired", "expired"),
            ("rejected", "cc_rejected_other_reason", "unknown"),
            ("refunded", None, "unknown"),
            (None, None, "unknown"),
        ],
    )
    def test_mapping(self, status, detail, expected):
        p = payment(status=status, status_detail=detail)
        assert map_gateway_status(p).value == expected


class TestReconcile:
    """ReconciliationEngine.reconcile."""

    @pytest.mark.asyncio
    async def test_approved_payment_marks_invoice_paid(self, store, seed_invoice):
        engine, gateway = engine_for(store, approved_payment())

        result = await engine.reconcile("123456")

        gateway.fetch_payment.assert_awaited_once_with("123456")
        assert result.outcome == ReconciliationOutcome.PAID
        assert result.invoice_id == "inv-100"
        assert result.gateway_payment_id == "123456"

        with store.session() as db:
            invoice = db.get(Invoice, "inv-100")
            account = db.get(SubscriberAccount, "u1")
            assert invoice.status == "paid"
            assert invoice.paid_amount == pytest.approx(49.90)
            assert as_utc(invoice.approved_at) == datetime(2025, 1, 5, 10, 0, tzinfo=timezone.utc)
            assert account.status == "active"
            assert as_utc(account.expires_at) == datetime(2025, 2, 4, 10, 0, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_redelivery_is_duplicate(self, store, seed_invoice):
        engine, _ = engine_for(store, approved_payment(), approved_payment())

        first = await engine.reconcile("123456")
        with store.session() as db:
            expires_after_first = db.get(SubscriberAccount, "u1").expires_at

        second = await engine.reconcile("123456")

        assert first.outcome == ReconciliationOutcome.PAID
        assert second.outcome == ReconciliationOutcome.DUPLICATE
        with store.session() as db:
            assert db.get(SubscriberAccount, "u1").expires_at == expires_after_first

    @pytest.mark.asyncio
    async def test_late_pending_event_after_paid_is_ignored(self, store, seed_invoice):
        engine, _ = engine_for(
            store,
            approved_payment(),
            approved_payment(status="pending", status_detail="pending_waiting_transfer"),
        )

        await engine.reconcile("123456")
        result = await engine.reconcile("123456")

        assert result.outcome == ReconciliationOutcome.IGNORED
        with store.session() as db:
            assert db.get(Invoice, "inv-100").status == "paid"

    @pytest.mark.asyncio
    async def test_expired_payment_updates_status_only(self, store, seed_invoice):
        engine, _ = engine_for(
            store, approved_payment(status="cancelled", status_detail="expired")
        )

        result = await engine.reconcile("123456")

        assert result.outcome == ReconciliationOutcome.STATUS_UPDATED
        assert result.gateway_status == "cancelled"
        with store.session() as db:
            assert db.get(Invoice, "inv-100").status == "expired"
            assert db.get(SubscriberAccount, "u1").status == "inactive"

    @pytest.mark.asyncio
    async def test_unknown_invoice_is_unreconcilable(self, store, seed_invoice):
        engine, _ = engine_for(
            store,
            approved_payment(
                external_reference="inv-404",
                metadata={"fatura_id": "inv-404"},
                description="Fatura inv-404",
            ),
        )

        result = await engine.reconcile("123456")

        assert result.outcome == ReconciliationOutcome.UNRECONCILABLE
        assert result.invoice_id == "inv-404"
        with store.session() as db:
            assert db.get(Invoice, "inv-100").status == "pending"

    @pytest.mark.asyncio
    async def test_payment_without_correlation_is_unreconcilable(self, store, seed_invoice):
        engine, _ = engine_for(
            store,
            approved_payment(external_reference=None, metadata={}, description="PIX"),
        )

        result = await engine.reconcile("123456")

        assert result.outcome == ReconciliationOutcome.UNRECONCILABLE
        assert result.invoice_id is None
        assert result.reason == "no invoice correlation"

    @pytest.mark.asyncio
    async def test_fetch_failure_writes_nothing(self, store, seed_invoice):
        gateway = AsyncMock()
        gateway.fetch_payment.side_effect = GatewayUnavailable("timeout")
        engine = ReconciliationEngine(gateway, LedgerWriter(store))

        with pytest.raises(GatewayUnavailable):
            await engine.reconcile("123456")

        with store.session() as db:
            invoice = db.get(Invoice, "inv-100")
            assert invoice.status == "pending"
            assert invoice.updated_at is None

    @pytest.mark.asyncio
    async def test_approval_without_date_uses_current_time(self, store, seed_invoice):
        engine, _ = engine_for(store, approved_payment(date_approved=None))
        before = datetime.now(timezone.utc)

        result = await engine.reconcile("123456")

        assert result.outcome == ReconciliationOutcome.PAID
        with store.session() as db:
            assert as_utc(db.get(Invoice, "inv-100").approved_at) >= before.replace(microsecond=0)
