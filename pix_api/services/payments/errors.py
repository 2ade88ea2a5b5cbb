"""
Domain errors raised by the payment services.

Routers translate them into HTTP responses; the webhook boundary decides
which of them are absorbed and which invite a gateway redelivery.
"""

from shared.infrastructure.db import StoreUnavailable


class PaymentError(Exception):
    """Base class for payment domain errors."""


class ConfigurationError(PaymentError):
    """Mandatory credentials or settings are missing. Fatal at startup."""


class InvalidChargeRequest(PaymentError):
    """Charge input failed validation before reaching the gateway."""

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class InvalidPaymentId(PaymentError):
    """A payment id that is not a plain token. Never sent to the gateway, never retried."""

    def __init__(self, payment_id: str):
        self.payment_id = payment_id
        super().__init__(f"Identificador de pagamento inválido: {payment_id!r}")


class GatewayRejected(PaymentError):
    """The gateway answered, and declined the request."""

    def __init__(self, message: str, causes: list[str] | None = None, status_code: int | None = None):
        self.message = message
        self.causes = causes or []
        self.status_code = status_code
        detail = message
        if self.causes:
            detail = f"{message} | cause: {'; '.join(self.causes)}"
        super().__init__(detail)


class GatewayUnavailable(PaymentError):
    """The gateway could not be reached or answered with an error. Retryable."""

    def __init__(self, message: str, retry_after: float | None = None):
        self.retry_after = retry_after
        super().__init__(message)


class GatewayTimeout(GatewayUnavailable):
    """The gateway did not answer within the configured bound."""


class Unreconcilable(PaymentError):
    """A payment cannot be linked to a known invoice. Logged and dropped, never retried."""

    def __init__(self, reason: str, invoice_id: str | None = None):
        self.reason = reason
        self.invoice_id = invoice_id
        super().__init__(f"{reason} (invoice_id={invoice_id})")


__all__ = [
    "PaymentError",
    "ConfigurationError",
    "InvalidChargeRequest",
    "InvalidPaymentId",
    "GatewayRejected",
    "GatewayUnavailable",
    "GatewayTimeout",
    "Unreconcilable",
    "StoreUnavailable",
]
