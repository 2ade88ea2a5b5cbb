"""
PIX router.
Creates PIX charges and queries payment status at Mercado Pago.
"""

from fastapi import APIRouter, Depends, Path, Request

from shared.config.logging import billing_logger as logger, mask_email
from shared.config.settings import get_settings
from shared.security.rate_limit import limiter
from shared.utils.exceptions import (
    ExternalServiceError,
    GatewayRejectedError,
    NotConfiguredError,
    ValidationError,
)
from shared.utils.schemas import (
    CreateChargeRequest,
    CreateChargeResponse,
    PaymentStatusResponse,
)
from pix_api.dependencies import get_gateway
from pix_api.services.payments import (
    ChargeRequest,
    ConfigurationError,
    GatewayRejected,
    GatewayUnavailable,
    InvalidChargeRequest,
    MercadoPagoClient,
)


router = APIRouter(tags=["pix"])

GATEWAY = "Mercado Pago"


def _charge_rate_limit() -> str:
    return get_settings().create_charge_rate_limit


@router.post("/api/pix", response_model=CreateChargeResponse)
@limiter.limit(_charge_rate_limit)
async def create_pix_charge(
    request: Request,
    body: CreateChargeRequest,
    gateway: MercadoPagoClient = Depends(get_gateway),
) -> CreateChargeResponse:
    """
    Create a PIX charge for an invoice.

    Returns the QR code (copy-and-paste text and PNG base64) for the payer.
    Repeating the call for the same invoice reuses the gateway idempotency
    key, so no duplicate charge is created.
    """
    logger.info(
        "Creating PIX charge",
        invoice_id=body.invoice_id,
        amount=body.amount,
        payer=mask_email(body.payer_email),
    )

    try:
        result = await gateway.create_charge(
            ChargeRequest(
                invoice_id=body.invoice_id,
                amount=body.amount,
                payer_email=body.payer_email,
                description=body.description,
                payer_name=body.payer_name,
                payer_tax_id=body.payer_tax_id,
                expiration_time=body.due_time,
                correlation_token=body.correlation_token,
                idempotency_token=body.idempotency_token,
            )
        )
    except InvalidChargeRequest as e:
        raise ValidationError(str(e), field=e.field, invoice_id=body.invoice_id)
    except ConfigurationError:
        raise NotConfiguredError(GATEWAY)
    except GatewayRejected as e:
        raise GatewayRejectedError(e.message, causes=e.causes, invoice_id=body.invoice_id)
    except GatewayUnavailable as e:
        raise ExternalServiceError(
            GATEWAY,
            is_unavailable=True,
            retry_after=int(e.retry_after) if e.retry_after else None,
            invoice_id=body.invoice_id,
            error=str(e),
        )

    return CreateChargeResponse(
        invoice_id=body.invoice_id,
        gateway_payment_id=result.gateway_payment_id,
        status=result.status,
        qr_text=result.qr_text,
        qr_image_base64=result.qr_image_base64,
    )


@router.get("/pix/status/{payment_id}", response_model=PaymentStatusResponse)
async def get_payment_status(
    payment_id: str = Path(..., pattern=r"^[A-Za-z0-9_-]{1,64}$"),
    gateway: MercadoPagoClient = Depends(get_gateway),
) -> PaymentStatusResponse:
    """Current status of a payment, straight from the gateway."""
    logger.info("Querying payment status", gateway_payment_id=payment_id)

    try:
        payment = await gateway.fetch_payment(payment_id)
    except ConfigurationError:
        raise NotConfiguredError(GATEWAY)
    except GatewayUnavailable as e:
        raise ExternalServiceError(
            GATEWAY,
            is_unavailable=True,
            retry_after=int(e.retry_after) if e.retry_after else None,
            gateway_payment_id=payment_id,
            error=str(e),
        )

    return PaymentStatusResponse(
        status=payment.status,
        status_detail=payment.status_detail,
        raw_record=payment.raw,
    )
