"""
Invoice models: the authoritative invoice and its denormalized views.

CustomerInvoice and PeriodInvoice are derived copies of Invoice keyed by
customer and by billing period. They are written only in the same
transaction as the invoice row they mirror and are never read for conflict
resolution.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from sqlalchemy import JSON, DateTime, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class InvoiceStatus(str, Enum):
    """Billing status of an invoice. PAID is terminal."""
    PENDING = "pending"
    PAID = "paid"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    UNKNOWN = "unknown"


class InvoiceRecordMixin:
    """Columns shared by the invoice and every secondary view."""

    amount: Mapped[float] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=False)
    status: Mapped[str] = mapped_column(
        String(16), default=InvoiceStatus.PENDING.value, nullable=False, index=True
    )
    customer_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    period_id: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    plan: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    account_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    gateway_payment_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    gateway_status: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    paid_amount: Mapped[Optional[float]] = mapped_column(
        Numeric(12, 2, asdecimal=False), nullable=True
    )
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    # {"gateway": "mercadopago", "payment_id": ..., "paid_at": ...}
    payment_ref: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    # Authoritative gateway record kept for forensic traceability
    webhook_raw: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


# Fields copied verbatim from the invoice into its secondary views
MIRRORED_FIELDS = (
    "amount",
    "status",
    "customer_id",
    "period_id",
    "plan",
    "account_id",
    "gateway_payment_id",
    "gateway_status",
    "paid_amount",
    "approved_at",
    "payment_ref",
    "webhook_raw",
    "updated_at",
)


class Invoice(InvoiceRecordMixin, Base):
    """
    One billable charge. Created by the billing process elsewhere in the
    product and mutated here only by payment reconciliation.
    """

    __tablename__ = "invoice"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)

    def __repr__(self) -> str:
        return f"<Invoice(id={self.id}, status={self.status}, amount={self.amount})>"


class CustomerInvoice(InvoiceRecordMixin, Base):
    """Invoice copy under its customer (clientes/{customer}/faturas/{id})."""

    __tablename__ = "customer_invoice"

    customer_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    id: Mapped[str] = mapped_column(String(128), primary_key=True)

    def __repr__(self) -> str:
        return f"<CustomerInvoice(customer={self.customer_id}, id={self.id}, status={self.status})>"


class PeriodInvoice(InvoiceRecordMixin, Base):
    """Invoice copy under its billing period (competencias/{period}/faturas/{id})."""

    __tablename__ = "period_invoice"

    period_id: Mapped[str] = mapped_column(String(16), primary_key=True)
    id: Mapped[str] = mapped_column(String(128), primary_key=True)

    def __repr__(self) -> str:
        return f"<PeriodInvoice(period={self.period_id}, id={self.id}, status={self.status})>"
