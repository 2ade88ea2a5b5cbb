"""
Property-based tests with Hypothesis.
"""

from datetime import datetime, timedelta, timezone

from hypothesis import given, settings, strategies as st

from pix_api.services.payments import (
    GatewayPayment,
    PaymentNotification,
    calculate_expiration,
    decode_body,
    derive_invoice_id,
    normalize_notification,
)
from pix_api.services.payments.ledger import PLAN_DURATION_DAYS


aware_datetimes = st.datetimes(
    min_value=datetime(2000, 1, 1),
    max_value=datetime(2100, 1, 1),
    timezones=st.just(timezone.utc),
)

json_values = st.recursive(
    st.none() | st.booleans() | st.integers() | st.floats(allow_nan=False) | st.text(max_size=20),
    lambda children: st.lists(children, max_size=4)
    | st.dictionaries(st.text(max_size=10), children, max_size=4),
    max_leaves=12,
)

payment_ids = st.from_regex(r"[A-Za-z0-9_-]{1,64}", fullmatch=True)


class TestExpirationProperties:

    @given(plan=st.sampled_from(sorted(PLAN_DURATION_DAYS)), paid_at=aware_datetimes)
    def test_known_plan_adds_its_duration(self, plan, paid_at):
        expires_at = calculate_expiration(plan, paid_at)
        assert expires_at - paid_at == timedelta(days=PLAN_DURATION_DAYS[plan])
        assert expires_at > paid_at

    @given(plan=st.text(max_size=20), paid_at=aware_datetimes)
    def test_any_other_plan_gets_thirty_days(self, plan, paid_at):
        expected_days = PLAN_DURATION_DAYS.get(plan, 30)
        assert calculate_expiration(plan, paid_at) - paid_at == timedelta(days=expected_days)


class TestNormalizerProperties:

    @given(body=json_values, query=st.dictionaries(st.text(max_size=10), st.text(max_size=20)))
    @settings(max_examples=200)
    def test_never_raises(self, body, query):
        result = normalize_notification(body, query)
        assert result is None or isinstance(result, PaymentNotification)

    @given(raw=st.binary(max_size=200), content_type=st.sampled_from([None, "application/json", "application/x-www-form-urlencoded"]))
    def test_decode_body_never_raises(self, raw, content_type):
        assert isinstance(decode_body(raw, content_type), dict)

    @given(payment_id=payment_ids)
    def test_every_payment_shape_yields_the_same_id(self, payment_id):
        shapes = [
            ({"type": "payment", "data": {"id": payment_id}}, {}),
            ({"action": "payment.updated", "data": {"id": payment_id}}, {}),
            ({"type": "payment", "data.id": payment_id}, {}),
            ({}, {"topic": "payment", "id": payment_id}),
        ]
        for body, query in shapes:
            notification = normalize_notification(body, query)
            assert notification is not None
            assert notification.gateway_payment_id == payment_id


class TestCorrelationProperties:

    @given(
        meta=st.text(alphabet=st.characters(whitelist_categories=("L", "N")), min_size=1, max_size=20),
        ref=st.text(max_size=20),
    )
    def test_metadata_always_wins(self, meta, ref):
        payment = GatewayPayment.from_api(
            {
                "id": 1,
                "metadata": {"fatura_id": meta},
                "external_reference": ref,
                "description": f"Fatura {ref}",
            }
        )
        assert derive_invoice_id(payment) == meta
