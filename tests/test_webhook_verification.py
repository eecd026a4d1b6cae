import json
from datetime import datetime, timezone

import pytest

from shopilent.core.errors import UnauthorizedError, ValidationError
from shopilent.gateways import get_provider
from shopilent.gateways.stripe import (
    StripeWebhookProvider,
    build_signature_header,
    compute_signature,
    parse_signature_header,
)
from shopilent.models.payment import PaymentStatus

SECRET = "whsec_unit"
NOW = datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc)
TS = int(NOW.timestamp())


def _event(event_type, obj, event_id="evt_1"):
    return json.dumps({"id": event_id, "type": event_type, "data": {"object": obj}}).encode("utf-8")


@pytest.fixture
def provider():
    return StripeWebhookProvider(SECRET, tolerance_seconds=300)


class TestSignatureVerification:
    def test_valid_signature_passes(self, provider):
        payload = _event("payment_intent.succeeded", {"id": "pi_1"})
        provider.verify_signature(payload, build_signature_header(SECRET, TS, payload), now=NOW)

    def test_tampered_payload_fails(self, provider):
        payload = _event("payment_intent.succeeded", {"id": "pi_1", "amount": 1000})
        header = build_signature_header(SECRET, TS, payload)
        tampered = payload.replace(b"1000", b"1")

        with pytest.raises(UnauthorizedError) as exc:
            provider.verify_signature(tampered, header, now=NOW)
        assert exc.value.error.code == "invalid_signature"

    def test_wrong_secret_fails(self, provider):
        payload = _event("payment_intent.succeeded", {"id": "pi_1"})
        with pytest.raises(UnauthorizedError):
            provider.verify_signature(payload, build_signature_header("whsec_other", TS, payload), now=NOW)

    def test_stale_timestamp_is_rejected(self, provider):
        payload = _event("payment_intent.succeeded", {"id": "pi_1"})
        header = build_signature_header(SECRET, TS - 301, payload)

        with pytest.raises(UnauthorizedError) as exc:
            provider.verify_signature(payload, header, now=NOW)
        assert exc.value.error.code == "stale_webhook"

    @pytest.mark.parametrize("header", [None, "", "garbage", "t=abc,v1=deadbeef", f"t={TS}"])
    def test_missing_or_malformed_header_fails(self, provider, header):
        with pytest.raises(UnauthorizedError):
            provider.verify_signature(b"{}", header, now=NOW)

    def test_any_v1_signature_may_match(self, provider):
        payload = _event("payment_intent.succeeded", {"id": "pi_1"})
        good = compute_signature(SECRET, TS, payload)
        provider.verify_signature(payload, f"t={TS},v1={'0' * 64},v1={good}", now=NOW)

    def test_missing_secret_fails_closed(self):
        provider = StripeWebhookProvider("")
        payload = _event("payment_intent.succeeded", {"id": "pi_1"})
        with pytest.raises(UnauthorizedError):
            provider.verify_signature(payload, build_signature_header("", TS, payload), now=NOW)

    def test_parse_signature_header_collects_all_signatures(self):
        timestamp, signatures = parse_signature_header("t=12, v1=aa, v0=zz, v1=bb")
        assert timestamp == 12
        assert signatures == ["aa", "bb"]


class TestEventParsing:
    def test_payment_intent_succeeded(self, provider):
        result = provider.parse_event(
            _event("payment_intent.succeeded", {"id": "pi_1", "customer": "cus_1", "metadata": {"orderId": "o-1"}})
        )
        assert result.payment_status == PaymentStatus.SUCCEEDED
        assert result.transaction_id == "pi_1"
        assert result.order_id == "o-1"
        assert result.customer_id == "cus_1"
        assert result.is_processed

    def test_payment_failed_carries_error_message(self, provider):
        result = provider.parse_event(
            _event("payment_intent.payment_failed", {"id": "pi_1", "last_payment_error": {"message": "Card declined"}})
        )
        assert result.payment_status == PaymentStatus.FAILED
        assert result.event_data["last_payment_error"] == "Card declined"

    def test_charge_refunded_resolves_payment_intent(self, provider):
        result = provider.parse_event(_event("charge.refunded", {"id": "ch_1", "payment_intent": "pi_1"}))
        assert result.payment_status == PaymentStatus.REFUNDED
        assert result.transaction_id == "pi_1"

    def test_dispute_implies_no_status_change(self, provider):
        result = provider.parse_event(
            _event("charge.dispute.created", {"id": "dp_1", "charge": "ch_1", "payment_intent": "pi_1", "reason": "fraudulent"})
        )
        assert result.payment_status is None
        assert result.event_data["dispute_id"] == "dp_1"

    def test_unhandled_event_type_is_acknowledged(self, provider):
        result = provider.parse_event(_event("customer.created", {"id": "cus_1"}))
        assert result.payment_status is None
        assert "not handled" in result.processing_message

    @pytest.mark.parametrize(
        "payload",
        [
            b"not json",
            b"[]",
            b'{"type": "x"}',
            b'{"id": "evt_1", "type": 123, "data": {"object": {}}}',
            b'{"id": "evt_1", "type": "payment_intent.succeeded"}',
            b'{"id": "evt_1", "type": "payment_intent.succeeded", "data": []}',
            b'{"id": "evt_1", "type": "payment_intent.succeeded", "data": {"object": "pi_1"}}',
            b'{"id": "evt_1", "type": "payment_intent.succeeded", "data": {"object": {"id": "pi_1", "metadata": "x"}}}',
        ],
    )
    def test_malformed_payload_is_a_validation_error(self, provider, payload):
        with pytest.raises(ValidationError) as exc:
            provider.parse_event(payload)
        assert exc.value.error.code == "invalid_payload"

    def test_failed_payment_with_non_object_error_uses_fallback_message(self, provider):
        result = provider.parse_event(
            _event("payment_intent.payment_failed", {"id": "pi_1", "last_payment_error": "declined"})
        )
        assert result.event_data["last_payment_error"] == "Unknown error"


def test_unknown_provider_is_rejected():
    with pytest.raises(ValidationError) as exc:
        get_provider("square")
    assert exc.value.error.code == "invalid_provider"
