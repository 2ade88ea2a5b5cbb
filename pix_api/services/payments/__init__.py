"""
Payment Services - PIX charges and Mercado Pago reconciliation.

Provides:
- Mercado Pago client (charge creation, payment lookup) behind a circuit breaker
- Notification normalizer for every observed webhook shape
- Reconciliation engine deciding whether a payment changes billing state
- Ledger writer applying paid/status changes atomically and idempotently
"""

from .circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerError,
    CircuitState,
)
from .errors import (
    PaymentError,
    ConfigurationError,
    InvalidChargeRequest,
    InvalidPaymentId,
    GatewayRejected,
    GatewayUnavailable,
    GatewayTimeout,
    Unreconcilable,
    StoreUnavailable,
)
from .gateway import (
    MercadoPagoClient,
    ChargeRequest,
    ChargeResult,
    GatewayPayment,
)
from .notifications import (
    PaymentNotification,
    decode_body,
    normalize_notification,
)
from .ledger import (
    LedgerWriter,
    LedgerOutcome,
    PaidEvent,
    calculate_expiration,
    plan_duration,
)
from .reconciliation import (
    ReconciliationEngine,
    ReconciliationOutcome,
    ReconciliationResult,
    derive_invoice_id,
    map_gateway_status,
)

__all__ = [
    # Circuit breaker
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerError",
    "CircuitState",
    # Errors
    "PaymentError",
    "ConfigurationError",
    "InvalidChargeRequest",
    "InvalidPaymentId",
    "GatewayRejected",
    "GatewayUnavailable",
    "GatewayTimeout",
    "Unreconcilable",
    "StoreUnavailable",
    # Gateway
    "MercadoPagoClient",
    "ChargeRequest",
    "ChargeResult",
    "GatewayPayment",
    # Notifications
    "PaymentNotification",
    "decode_body",
    "normalize_notification",
    # Ledger
    "LedgerWriter",
    "LedgerOutcome",
    "PaidEvent",
    "calculate_expiration",
    "plan_duration",
    # Reconciliation
    "ReconciliationEngine",
    "ReconciliationOutcome",
    "ReconciliationResult",
    "derive_invoice_id",
    "map_gateway_status",
]
