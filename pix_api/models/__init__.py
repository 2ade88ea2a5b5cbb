"""
SQLAlchemy ORM Models Package.

- base: Base class
- invoice: Invoice, CustomerInvoice, PeriodInvoice (derived views)
- account: SubscriberAccount
"""

from .base import Base
from .invoice import (
    Invoice,
    InvoiceStatus,
    CustomerInvoice,
    PeriodInvoice,
    InvoiceRecordMixin,
    MIRRORED_FIELDS,
)
from .account import SubscriberAccount, AccountStatus

__all__ = [
    "Base",
    "Invoice",
    "InvoiceStatus",
    "CustomerInvoice",
    "PeriodInvoice",
    "InvoiceRecordMixin",
    "MIRRORED_FIELDS",
    "SubscriberAccount",
    "AccountStatus",
]
