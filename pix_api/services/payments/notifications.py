"""
Notification normalizer.

Mercado Pago has delivered payment notifications in several shapes over
time:

    JSON (current)      {"type": "payment", "data": {"id": "123"}}
    JSON (action only)  {"action": "payment.updated", "data": {"id": "123"}}
    JSON (legacy)       {"type": "payment", "id": "123"}
    Form body           type=payment&data.id=123
    Query (IPN)         ?topic=payment&id=123   or   ?type=payment&data.id=123
    Resource URL        {"topic": "payment", "resource": ".../payments/123"}

All of them reduce to a PaymentNotification or to None ("not actionable").
Nothing in here raises: a delivery that cannot be understood is a no-op.
"""

import json
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any
from urllib.parse import parse_qsl

from shared.config.logging import get_logger

logger = get_logger(__name__)

PAYMENT_EVENT = "payment"

_PAYMENT_ID_RE = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


@dataclass(frozen=True)
class PaymentNotification:
    event_type: str
    gateway_payment_id: str


def decode_body(raw: bytes, content_type: str | None = None) -> dict[str, Any]:
    """
    Decode a JSON or URL-encoded body. Returns {} when the body is empty or
    cannot be decoded.
    """
    if not raw or not raw.strip():
        return {}

    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError:
        return {}

    if "x-www-form-urlencoded" not in (content_type or ""):
        try:
            data = json.loads(text)
        except ValueError:
            data = None
        if isinstance(data, dict):
            return data
        if data is not None:
            return {}

    try:
        return dict(parse_qsl(text, keep_blank_values=False))
    except ValueError:
        return {}


def _text(value: Any) -> str | None:
    if value is None or isinstance(value, (dict, list, bool)):
        return None
    value = str(value).strip()
    return value or None


def _event_type(body: Mapping[str, Any], query: Mapping[str, Any]) -> str | None:
    for source in (body, query):
        for key in ("type", "topic"):
            value = _text(source.get(key))
            if value:
                return value

    action = _text(body.get("action"))
    if action and "." in action:
        return action.split(".", 1)[0]
    return None


def _payment_id(body: Mapping[str, Any], query: Mapping[str, Any]) -> str | None:
    data = body.get("data")
    if isinstance(data, Mapping):
        candidate = _text(data.get("id"))
        if candidate:
            return candidate

    candidate = _text(body.get("data.id"))
    if candidate:
        return candidate

    # A bare "id" in a body that has "data" is the notification id, not the payment
    if "data" not in body:
        candidate = _text(body.get("id"))
        if candidate:
            return candidate

    for key in ("data.id", "id"):
        candidate = _text(query.get(key))
        if candidate:
            return candidate

    resource = _text(body.get("resource"))
    if resource:
        return resource.rstrip("/").rsplit("/", 1)[-1] or None
    return None


def normalize_notification(
    body: Any,
    query: Mapping[str, Any] | None = None,
) -> PaymentNotification | None:
    """
    Extract (event type, gateway payment id) from a delivery.

    Returns None when the delivery is empty, is not a payment notification or
    carries no usable payment id.
    """
    try:
        body = body if isinstance(body, Mapping) else {}
        query = query if isinstance(query, Mapping) else {}

        if not body and not query:
            logger.info("Empty notification ignored")
            return None

        event_type = _event_type(body, query)
        if event_type != PAYMENT_EVENT:
            logger.info("Notification is not a payment event", event_type=event_type)
            return None

        payment_id = _payment_id(body, query)
        if not payment_id or not _PAYMENT_ID_RE.match(payment_id):
            logger.warning("Payment notification without usable id", payment_id=payment_id)
            return None

        return PaymentNotification(event_type=event_type, gateway_payment_id=payment_id)
    except Exception:
        logger.warning("Malformed notification ignored", exc_info=True)
        return None
