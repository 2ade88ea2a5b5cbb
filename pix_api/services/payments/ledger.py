"""
Ledger writer.

Applies "invoice X is now paid" as one transaction:

1. Conditional update of the invoice: ``SET status='paid' ... WHERE id = :id
   AND status <> 'paid'``. The row count decides who won; a concurrent or
   repeated delivery for the same invoice updates zero rows and stops.
2. Mirror the resulting invoice row into the customer and period views
   whose key is present on the invoice.
3. Activate the linked subscriber account with the plan expiration.

All three happen in the same database transaction, so the account is never
extended without the invoice becoming paid and never extended twice. A store
without multi-row transactions would have to run step 3 as a best-effort
follow-up write, leaving activation able to lag behind invoice visibility;
the relational store used here does not have that gap.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from shared.config.logging import get_logger
from shared.infrastructure.db import Store
from pix_api.models import (
    AccountStatus,
    CustomerInvoice,
    Invoice,
    InvoiceStatus,
    MIRRORED_FIELDS,
    PeriodInvoice,
    SubscriberAccount,
)

from .errors import Unreconcilable

logger = get_logger(__name__)

PLAN_DURATION_DAYS = {
    "Mensal": 30,
    "Trimestral": 90,
    "Semestral": 180,
    "Anual": 365,
}
DEFAULT_PLAN = "Mensal"
DEFAULT_PLAN_DAYS = 30
GATEWAY_NAME = "mercadopago"


def plan_duration(plan: str | None) -> timedelta:
    """Duration bought by one payment of ``plan``; unknown plans get 30 days."""
    return timedelta(days=PLAN_DURATION_DAYS.get(plan or "", DEFAULT_PLAN_DAYS))


def calculate_expiration(plan: str | None, paid_at: datetime) -> datetime:
    return paid_at + plan_duration(plan)


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class LedgerOutcome(str, Enum):
    PAID = "paid"
    ALREADY_PAID = "already_paid"
    STATUS_UPDATED = "status_updated"


@dataclass
class PaidEvent:
    """An approved gateway payment, ready to be applied."""
    invoice_id: str
    gateway_payment_id: str
    paid_amount: float | None
    approved_at: datetime
    raw: dict[str, Any]


class LedgerWriter:
    """Atomic, idempotent invoice/account writes. Synchronous; run off the event loop."""

    def __init__(self, store: Store, clock=lambda: datetime.now(timezone.utc)):
        self._store = store
        self._clock = clock

    def mark_paid(self, event: PaidEvent) -> LedgerOutcome:
        """
        Move the invoice to ``paid`` with all side effects, exactly once.

        Returns ALREADY_PAID when the invoice was paid before this call.

        Raises:
            Unreconcilable: the invoice does not exist
            StoreUnavailable: the transaction could not be committed
        """
        approved_at = as_utc(event.approved_at)
        now = self._clock()
        patch = {
            "status": InvoiceStatus.PAID.value,
            "gateway_payment_id": event.gateway_payment_id,
            "gateway_status": "approved",
            "paid_amount": event.paid_amount,
            "approved_at": approved_at,
            "payment_ref": {
                "gateway": GATEWAY_NAME,
                "payment_id": event.gateway_payment_id,
                "paid_at": approved_at.isoformat(),
            },
            "updated_at": now,
            "webhook_raw": event.raw,
        }

        with self._store.transaction() as db:
            if not self._conditional_update(db, event.invoice_id, patch):
                return self._classify_noop(db, event.invoice_id, "approved")

            invoice = db.get(Invoice, event.invoice_id, populate_existing=True)
            self._mirror_views(db, invoice)
            self._activate_account(db, invoice, approved_at, now)

        logger.info(
            "Invoice marked as paid",
            invoice_id=event.invoice_id,
            gateway_payment_id=event.gateway_payment_id,
            paid_amount=event.paid_amount,
        )
        return LedgerOutcome.PAID

    def record_status(
        self,
        invoice_id: str,
        status: InvoiceStatus,
        gateway_payment_id: str,
        gateway_status: str | None,
    ) -> LedgerOutcome:
        """
        Mirror a non-approved gateway status onto the invoice for observability.

        Never touches a paid invoice and never touches the subscriber account.
        """
        if status == InvoiceStatus.PAID:
            raise ValueError("use mark_paid for approved payments")

        patch = {
            "status": status.value,
            "gateway_payment_id": gateway_payment_id,
            "gateway_status": gateway_status,
            "updated_at": self._clock(),
        }

        with self._store.transaction() as db:
            if not self._conditional_update(db, invoice_id, patch):
                return self._classify_noop(db, invoice_id, gateway_status)

            invoice = db.get(Invoice, invoice_id, populate_existing=True)
            self._mirror_views(db, invoice)

        logger.info(
            "Invoice status updated from gateway",
            invoice_id=invoice_id,
            status=status.value,
            gateway_status=gateway_status,
        )
        return LedgerOutcome.STATUS_UPDATED

    # -------------------------------------------------------------------------

    @staticmethod
    def _conditional_update(db: Session, invoice_id: str, patch: dict[str, Any]) -> bool:
        result = db.execute(
            update(Invoice)
            .where(Invoice.id == invoice_id, Invoice.status != InvoiceStatus.PAID.value)
            .values(**patch)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @staticmethod
    def _classify_noop(db: Session, invoice_id: str, gateway_status: str | None) -> LedgerOutcome:
        current = db.scalar(select(Invoice.status).where(Invoice.id == invoice_id))
        if current is None:
            raise Unreconcilable("invoice not found", invoice_id=invoice_id)

        logger.info(
            "Invoice already paid, gateway event ignored",
            invoice_id=invoice_id,
            gateway_status=gateway_status,
        )
        return LedgerOutcome.ALREADY_PAID

    @staticmethod
    def _mirror_views(db: Session, invoice: Invoice) -> None:
        fields = {name: getattr(invoice, name) for name in MIRRORED_FIELDS}

        if invoice.customer_id:
            db.merge(CustomerInvoice(id=invoice.id, **fields))
        if invoice.period_id:
            db.merge(PeriodInvoice(id=invoice.id, **fields))

    @staticmethod
    def _activate_account(
        db: Session,
        invoice: Invoice,
        paid_at: datetime,
        now: datetime,
    ) -> None:
        if not invoice.account_id:
            return

        account = db.get(SubscriberAccount, invoice.account_id)
        if account is None:
            logger.warning(
                "Linked subscriber account not found, activation skipped",
                invoice_id=invoice.id,
                account_id=invoice.account_id,
            )
            return

        plan = invoice.plan or DEFAULT_PLAN
        account.status = AccountStatus.ACTIVE.value
        account.plan = plan
        account.plan_price = invoice.amount if invoice.amount is not None else invoice.paid_amount
        account.last_payment_at = paid_at
        account.expires_at = calculate_expiration(plan, paid_at)
        account.updated_at = now

        logger.info(
            "Subscriber account activated",
            account_id=account.id,
            plan=plan,
            expires_at=account.expires_at.isoformat(),
        )
