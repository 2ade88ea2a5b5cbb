"""
Pydantic schemas for the public API.

The HTTP surface uses camelCase keys; Python code uses snake_case.
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel


# =============================================================================
# Common Types
# =============================================================================

WebhookOutcome = Literal["paid", "duplicate", "status_updated", "ignored"]


class CamelModel(BaseModel):
    """Base model that reads and writes camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# Charge creation
# =============================================================================


class CreateChargeRequest(CamelModel):
    """Request to create a PIX charge for an invoice."""

    invoice_id: str = Field(min_length=1, max_length=128)
    description: str | None = Field(default=None, max_length=255)
    amount: float = Field(gt=0, allow_inf_nan=False)
    due_time: datetime | None = None
    idempotency_token: str | None = Field(default=None, max_length=128)
    payer_name: str | None = Field(default=None, max_length=120)
    payer_tax_id: str | None = Field(default=None, max_length=32)
    payer_email: EmailStr
    correlation_token: str | None = Field(default=None, max_length=128)


class CreateChargeResponse(CamelModel):
    """Created charge with the PIX QR code to show the payer."""

    ok: bool = True
    invoice_id: str
    gateway_payment_id: str
    status: str
    qr_text: str | None = None
    qr_image_base64: str | None = None


# =============================================================================
# Status query
# =============================================================================


class PaymentStatusResponse(CamelModel):
    """Authoritative payment status as reported by the gateway."""

    ok: bool = True
    status: str | None = None
    status_detail: str | None = None
    raw_record: dict[str, Any]


# =============================================================================
# Webhook
# =============================================================================


class WebhookAck(BaseModel):
    """Acknowledgment returned to the gateway."""

    status: WebhookOutcome
    reason: str | None = None
    invoice_id: str | None = None
