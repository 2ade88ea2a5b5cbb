"""
Mercado Pago webhook router.

The notification body is only used to find the payment id; the payment
itself is always re-fetched from the gateway before anything is written.

Answers:
- 200 for everything that was handled or can never be handled
  (not actionable, unknown invoice, duplicate delivery).
- 503 when the gateway or the store is temporarily unavailable, so that
  Mercado Pago redelivers the notification later.
"""

from fastapi import APIRouter, Depends, Request

from shared.config.logging import webhook_logger as logger
from shared.utils.exceptions import ExternalServiceError
from shared.utils.schemas import WebhookAck
from pix_api.dependencies import get_reconciliation_engine
from pix_api.services.payments import (
    ConfigurationError,
    GatewayUnavailable,
    ReconciliationEngine,
    ReconciliationOutcome,
    StoreUnavailable,
    decode_body,
    normalize_notification,
)


router = APIRouter(tags=["webhook"])


@router.post("/webhook/mercadopago", response_model=WebhookAck, response_model_exclude_none=True)
async def mercadopago_webhook(
    request: Request,
    engine: ReconciliationEngine = Depends(get_reconciliation_engine),
) -> WebhookAck:
    """
    Webhook endpoint for Mercado Pago payment notifications.

    Accepts JSON or URL-encoded bodies and query-string (IPN) deliveries.
    """
    raw = await request.body()
    body = decode_body(raw, request.headers.get("content-type"))
    notification = normalize_notification(body, dict(request.query_params))

    if notification is None:
        logger.info(
            "Webhook not actionable, ignored",
            body_keys=sorted(body.keys()),
            query_keys=sorted(request.query_params.keys()),
        )
        return WebhookAck(status="ignored", reason="not a payment notification")

    logger.info(
        "Mercado Pago webhook received",
        event_type=notification.event_type,
        gateway_payment_id=notification.gateway_payment_id,
    )

    try:
        result = await engine.reconcile(notification.gateway_payment_id)
    except (GatewayUnavailable, ConfigurationError) as e:
        raise ExternalServiceError(
            "Mercado Pago",
            is_unavailable=True,
            retry_after=int(e.retry_after) if getattr(e, "retry_after", None) else None,
            gateway_payment_id=notification.gateway_payment_id,
            error=str(e),
        )
    except StoreUnavailable as e:
        # An approved payment that was not recorded must be redelivered
        raise ExternalServiceError(
            "banco de dados",
            is_unavailable=True,
            gateway_payment_id=notification.gateway_payment_id,
            error=str(e),
        )

    if result.outcome == ReconciliationOutcome.UNRECONCILABLE:
        return WebhookAck(status="ignored", reason=result.reason, invoice_id=result.invoice_id)

    return WebhookAck(status=result.outcome.value, invoice_id=result.invoice_id)
