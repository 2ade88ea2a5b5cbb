"""
Mercado Pago client.

Two calls: create a PIX charge and fetch a payment's current status. The
client is process-scoped: one httpx.AsyncClient created at startup and
closed on shutdown.

Every call is bounded by the configured timeout (15s by default) and goes
through the circuit breaker. Transport errors, timeouts and 5xx answers
count as breaker failures; a 4xx rejection does not.
"""

import math
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING, Any

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from shared.config.logging import get_logger, mask_email

from .circuit_breaker import CircuitBreaker, CircuitBreakerConfig, CircuitBreakerError
from .errors import (
    ConfigurationError,
    GatewayRejected,
    GatewayTimeout,
    GatewayUnavailable,
    InvalidChargeRequest,
    InvalidPaymentId,
)

if TYPE_CHECKING:
    from shared.config.settings import Settings

logger = get_logger(__name__)

DEFAULT_API_URL = "https://api.mercadopago.com"
DEFAULT_TIMEOUT_SECONDS = 15.0
INVOICE_DESCRIPTION_PREFIX = "Fatura "

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_PAYMENT_ID_RE = re.compile(r"^[A-Za-z0-9_-]+$")


def only_digits(value: str | None) -> str:
    return re.sub(r"\D", "", value or "")


def round2(value: float) -> float:
    """Round half away from zero to cents, as displayed on the PIX charge."""
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


@dataclass
class ChargeRequest:
    """Input for a PIX charge."""
    invoice_id: str
    amount: float
    payer_email: str
    description: str | None = None
    payer_name: str | None = None
    payer_tax_id: str | None = None
    expiration_time: datetime | None = None
    correlation_token: str | None = None
    idempotency_token: str | None = None


@dataclass
class ChargeResult:
    gateway_payment_id: str
    status: str
    qr_text: str | None = None
    qr_image_base64: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)


class GatewayPayment(BaseModel):
    """
    Authoritative payment snapshot returned by GET /v1/payments/{id}.

    Only the fields reconciliation reads are declared; the full body is kept
    in ``raw`` for audit.
    """

    model_config = ConfigDict(extra="ignore")

    id: str
    status: str | None = None
    status_detail: str | None = None
    transaction_amount: float | None = None
    date_approved: datetime | None = None
    external_reference: str | None = None
    description: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    raw: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "GatewayPayment":
        def text(key: str) -> str | None:
            value = data.get(key)
            return None if value is None else str(value)

        metadata = data.get("metadata")
        try:
            return cls(
                id=str(data["id"]),
                status=text("status"),
                status_detail=text("status_detail"),
                transaction_amount=data.get("transaction_amount"),
                date_approved=data.get("date_approved"),
                external_reference=text("external_reference"),
                description=text("description"),
                metadata=metadata if isinstance(metadata, dict) else {},
                raw=data,
            )
        except ValidationError as exc:
            raise GatewayUnavailable(f"Resposta inválida do Mercado Pago: {exc}") from exc


def validate_charge(request: ChargeRequest) -> float:
    """Check charge input and return the amount rounded to 2 decimals."""
    if not (request.invoice_id or "").strip():
        raise InvalidChargeRequest("invoiceId é obrigatório", field="invoiceId")

    try:
        if not math.isfinite(float(request.amount)):
            raise InvalidChargeRequest("amount deve ser finito", field="amount")
        amount = round2(request.amount)
    except (TypeError, ValueError, ArithmeticError):
        raise InvalidChargeRequest("amount deve ser numérico", field="amount")
    if amount <= 0:
        raise InvalidChargeRequest("amount deve ser positivo", field="amount")

    email = (request.payer_email or "").strip()
    if not email or not _EMAIL_RE.match(email):
        raise InvalidChargeRequest("payerEmail ausente ou inválido", field="payerEmail")

    return amount


def _format_expiration(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat(timespec="milliseconds")


def _rejection_from(response: httpx.Response, data: dict[str, Any]) -> GatewayRejected:
    causes = []
    for cause in data.get("cause") or []:
        if isinstance(cause, dict):
            text = cause.get("description") or cause.get("code")
            if text is not None:
                causes.append(str(text))
    message = data.get("message") or f"HTTP {response.status_code}"
    return GatewayRejected(str(message), causes=causes, status_code=response.status_code)


class MercadoPagoClient:
    """Request/response adapter over the Mercado Pago payments API."""

    def __init__(
        self,
        access_token: str,
        *,
        base_url: str = DEFAULT_API_URL,
        notification_url: str | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        breaker: CircuitBreaker | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._access_token = access_token or ""
        self.notification_url = notification_url or None
        self.timeout = timeout
        self.breaker = breaker or CircuitBreaker(CircuitBreakerConfig(name="mercadopago"))
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: "Settings", **kwargs: Any) -> "MercadoPagoClient":
        return cls(
            settings.mercado_pago_access_token,
            base_url=settings.mercado_pago_api_url,
            notification_url=settings.mp_webhook_url,
            timeout=settings.gateway_timeout_seconds,
            breaker=CircuitBreaker.for_gateway(settings),
            **kwargs,
        )

    @property
    def configured(self) -> bool:
        return bool(self._access_token.strip())

    def _auth_headers(self) -> dict[str, str]:
        if not self.configured:
            raise ConfigurationError("Configuração ausente: MERCADO_PAGO_ACCESS_TOKEN")
        return {
            "Authorization": f"Bearer {self._access_token}",
            "Content-Type": "application/json",
        }

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """
        Send through the breaker. 5xx answers are raised inside the breaker so
        they count as failures; anything below 500 is returned to the caller.
        """
        try:
            async with self.breaker.call():
                try:
                    response = await self._client.request(method, url, **kwargs)
                except httpx.TimeoutException as exc:
                    raise GatewayTimeout(
                        f"Mercado Pago não respondeu em {self.timeout:.0f}s"
                    ) from exc
                except httpx.HTTPError as exc:
                    raise GatewayUnavailable(f"Falha de comunicação com Mercado Pago: {exc}") from exc

                if response.status_code >= 500:
                    raise GatewayUnavailable(
                        f"Mercado Pago indisponível: HTTP {response.status_code}"
                    )
                return response
        except CircuitBreakerError as exc:
            raise GatewayUnavailable(str(exc), retry_after=exc.retry_after) from exc

    async def create_charge(self, request: ChargeRequest) -> ChargeResult:
        """
        Create a PIX payment for an invoice.

        Raises:
            InvalidChargeRequest, ConfigurationError, GatewayRejected,
            GatewayTimeout, GatewayUnavailable
        """
        amount = validate_charge(request)
        headers = self._auth_headers()
        # Repeated attempts for one invoice must not create duplicate charges
        headers["X-Idempotency-Key"] = request.idempotency_token or request.invoice_id

        payer: dict[str, Any] = {
            "type": "customer",
            "first_name": request.payer_name or "Cliente",
            "email": request.payer_email.strip(),
        }
        tax_id = only_digits(request.payer_tax_id)
        if tax_id:
            payer["identification"] = {"type": "CPF", "number": tax_id}

        body: dict[str, Any] = {
            "description": request.description or f"{INVOICE_DESCRIPTION_PREFIX}{request.invoice_id}",
            "transaction_amount": amount,
            "payment_method_id": "pix",
            "payer": payer,
            "metadata": {"fatura_id": request.invoice_id},
            "external_reference": request.correlation_token or request.invoice_id,
        }
        if request.expiration_time:
            body["date_of_expiration"] = _format_expiration(request.expiration_time)
        if self.notification_url:
            body["notification_url"] = self.notification_url

        response = await self._send("POST", "/v1/payments", headers=headers, json=body)
        try:
            data = response.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}

        if not response.is_success or data.get("error") or data.get("message") == "bad_request":
            rejection = _rejection_from(response, data)
            logger.error(
                "Mercado Pago rejected charge",
                invoice_id=request.invoice_id,
                status_code=response.status_code,
                message=rejection.message,
                causes=rejection.causes,
            )
            raise rejection

        transaction = (data.get("point_of_interaction") or {}).get("transaction_data") or {}
        result = ChargeResult(
            gateway_payment_id=str(data.get("id", "")),
            status=data.get("status") or "pending",
            qr_text=transaction.get("qr_code"),
            qr_image_base64=transaction.get("qr_code_base64"),
            raw=data,
        )
        logger.info(
            "PIX charge created",
            invoice_id=request.invoice_id,
            gateway_payment_id=result.gateway_payment_id,
            status=result.status,
            amount=amount,
            payer=mask_email(request.payer_email),
        )
        return result

    async def fetch_payment(self, gateway_payment_id: str) -> GatewayPayment:
        """
        Fetch the authoritative payment record.

        Raises:
            InvalidPaymentId: id is not a plain token; nothing is sent
            GatewayUnavailable: non-2xx answer, timeout or open circuit
            ConfigurationError: no access token
        """
        payment_id = str(gateway_payment_id).strip()
        if not _PAYMENT_ID_RE.match(payment_id):
            raise InvalidPaymentId(payment_id)

        response = await self._send(
            "GET", f"/v1/payments/{payment_id}", headers=self._auth_headers()
        )
        if not response.is_success:
            logger.warning(
                "Mercado Pago payment lookup failed",
                gateway_payment_id=payment_id,
                status_code=response.status_code,
            )
            raise GatewayUnavailable(f"Falha ao consultar pagamento: HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError as exc:
            raise GatewayUnavailable("Resposta inválida do Mercado Pago") from exc
        if not isinstance(data, dict) or data.get("id") is None:
            raise GatewayUnavailable("Resposta inválida do Mercado Pago")

        return GatewayPayment.from_api(data)

    async def aclose(self) -> None:
        await self._client.aclose()
