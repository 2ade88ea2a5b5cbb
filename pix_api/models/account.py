"""
Subscriber account model.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class AccountStatus(str, Enum):
    INACTIVE = "inactive"
    ACTIVE = "active"


class SubscriberAccount(Base):
    """
    Access/subscription state of a customer.

    Pre-existing; this service only activates it when one of its invoices
    becomes paid. expires_at = last_payment_at + plan duration.
    """

    __tablename__ = "subscriber_account"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    status: Mapped[str] = mapped_column(
        String(16), default=AccountStatus.INACTIVE.value, nullable=False
    )
    plan: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    plan_price: Mapped[Optional[float]] = mapped_column(
        Numeric(12, 2, asdecimal=False), nullable=True
    )
    last_payment_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<SubscriberAccount(id={self.id}, status={self.status}, expires_at={self.expires_at})>"
