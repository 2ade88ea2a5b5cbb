"""
Reconciliation engine.

Turns a gateway payment id into at most one ledger change:

1. Fetch the authoritative payment from the gateway (the notification body
   is never trusted). A failed fetch fails the whole attempt and nothing is
   written; the gateway's redelivery is the retry.
2. Derive the invoice id: metadata -> external_reference -> description.
3. ``approved`` -> LedgerWriter.mark_paid (conditional write, exactly once).
   Anything else -> informational status on the invoice, unless it is paid.
4. Unknown invoice or no correlation -> UNRECONCILABLE, logged and dropped.

Each call only awaits network and store I/O; the blocking store work runs
in a worker thread so concurrent deliveries do not block each other.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Protocol

from shared.config.logging import get_logger
from pix_api.models import InvoiceStatus

from .gateway import INVOICE_DESCRIPTION_PREFIX, GatewayPayment
from .ledger import LedgerOutcome, LedgerWriter, PaidEvent
from .errors import Unreconcilable

logger = get_logger(__name__)

APPROVED = "approved"
METADATA_KEYS = ("fatura_id", "faturaId", "invoice_id")

# Gateway statuses mirrored onto the invoice when not approved
GATEWAY_STATUS_MAP = {
    "pending": InvoiceStatus.PENDING,
    "in_process": InvoiceStatus.PENDING,
    "authorized": InvoiceStatus.PENDING,
    "cancelled": InvoiceStatus.CANCELLED,
    "expired": InvoiceStatus.EXPIRED,
}


class PaymentFetcher(Protocol):
    async def fetch_payment(self, gateway_payment_id: str) -> GatewayPayment: ...


class ReconciliationOutcome(str, Enum):
    PAID = "paid"
    DUPLICATE = "duplicate"
    STATUS_UPDATED = "status_updated"
    IGNORED = "ignored"
    UNRECONCILABLE = "unreconcilable"


@dataclass
class ReconciliationResult:
    outcome: ReconciliationOutcome
    gateway_payment_id: str
    invoice_id: str | None = None
    gateway_status: str | None = None
    reason: str | None = None


def _clean(value: object) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def derive_invoice_id(payment: GatewayPayment) -> str | None:
    """
    Resolve the correlation token echoed back by the gateway.

    Precedence: metadata field, external_reference, then a description of the
    form "Fatura <id>". The first non-empty candidate wins.
    """
    for key in METADATA_KEYS:
        candidate = _clean(payment.metadata.get(key))
        if candidate:
            return candidate

    candidate = _clean(payment.external_reference)
    if candidate:
        return candidate

    description = _clean(payment.description)
    if description and description.startswith(INVOICE_DESCRIPTION_PREFIX):
        return _clean(description[len(INVOICE_DESCRIPTION_PREFIX):])
    return None


def map_gateway_status(payment: GatewayPayment) -> InvoiceStatus:
    """Invoice status for a non-approved gateway payment."""
    status = (payment.status or "").lower()
    if status == "cancelled" and (payment.status_detail or "").lower() == "expired":
        return InvoiceStatus.EXPIRED
    return GATEWAY_STATUS_MAP.get(status, InvoiceStatus.UNKNOWN)


class ReconciliationEngine:
    """Decides whether and how a gateway payment changes billing state."""

    def __init__(self, gateway: PaymentFetcher, ledger: LedgerWriter):
        self._gateway = gateway
        self._ledger = ledger

    async def reconcile(self, gateway_payment_id: str) -> ReconciliationResult:
        """
        Reconcile one payment.

        Raises:
            GatewayUnavailable: authoritative record could not be fetched
            StoreUnavailable: the ledger write did not commit
        """
        payment = await self._gateway.fetch_payment(gateway_payment_id)
        status = (payment.status or "").lower()

        logger.info(
            "Gateway payment fetched",
            gateway_payment_id=payment.id,
            gateway_status=status,
        )

        invoice_id = derive_invoice_id(payment)
        if not invoice_id:
            logger.warning(
                "Payment has no invoice correlation, dropped",
                gateway_payment_id=payment.id,
                gateway_status=status,
            )
            return ReconciliationResult(
                outcome=ReconciliationOutcome.UNRECONCILABLE,
                gateway_payment_id=payment.id,
                gateway_status=status,
                reason="no invoice correlation",
            )

        try:
            if status == APPROVED:
                event = self._paid_event(payment, invoice_id)
                outcome = await asyncio.to_thread(self._ledger.mark_paid, event)
            else:
                outcome = await asyncio.to_thread(
                    self._ledger.record_status,
                    invoice_id,
                    map_gateway_status(payment),
                    payment.id,
                    status or None,
                )
        except Unreconcilable as exc:
            logger.warning(
                "Payment references unknown invoice, dropped",
                gateway_payment_id=payment.id,
                invoice_id=invoice_id,
                reason=exc.reason,
            )
            return ReconciliationResult(
                outcome=ReconciliationOutcome.UNRECONCILABLE,
                gateway_payment_id=payment.id,
                invoice_id=invoice_id,
                gateway_status=status,
                reason=exc.reason,
            )

        if outcome == LedgerOutcome.ALREADY_PAID and status != APPROVED:
            # Paid is terminal: later non-approved events are ignored
            result_outcome = ReconciliationOutcome.IGNORED
        else:
            result_outcome = _OUTCOMES[outcome]

        return ReconciliationResult(
            outcome=result_outcome,
            gateway_payment_id=payment.id,
            invoice_id=invoice_id,
            gateway_status=status,
        )

    @staticmethod
    def _paid_event(payment: GatewayPayment, invoice_id: str) -> PaidEvent:
        approved_at = payment.date_approved
        if approved_at is None:
            logger.warning("Approved payment without date_approved", gateway_payment_id=payment.id)
            approved_at = datetime.now(timezone.utc)

        return PaidEvent(
            invoice_id=invoice_id,
            gateway_payment_id=payment.id,
            paid_amount=payment.transaction_amount,
            approved_at=approved_at,
            raw=payment.raw,
        )


_OUTCOMES = {
    LedgerOutcome.PAID: ReconciliationOutcome.PAID,
    LedgerOutcome.ALREADY_PAID: ReconciliationOutcome.DUPLICATE,
    LedgerOutcome.STATUS_UPDATED: ReconciliationOutcome.STATUS_UPDATED,
}
