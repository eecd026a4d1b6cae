"""Stripe webhook verification (v1 signature scheme) and event normalization.

Security contract:
- Signature header: Stripe-Signature: t=<unix>,v1=<hex>[,v1=<hex>...]
- Signed string is "<t>." + raw body, HMAC-SHA256 with the endpoint secret
- Comparison is constant-time; any v1 signature may match (secret rotation)
- Timestamps outside the tolerance window are rejected (replay protection)
- Missing secret -> verification always fails (fail-closed)
"""
import hashlib
import hmac
import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from shopilent.core.clock import utcnow
from shopilent.core.errors import UnauthorizedError, ValidationError
from shopilent.gateways.base import WebhookProvider, WebhookResult
from shopilent.models.payment import PaymentProvider, PaymentStatus

log = logging.getLogger(__name__)

# Stripe event type -> payment status it implies
_STATUS_BY_EVENT_TYPE = {
    "payment_intent.succeeded": PaymentStatus.SUCCEEDED,
    "payment_intent.payment_failed": PaymentStatus.FAILED,
    "payment_intent.requires_action": PaymentStatus.REQUIRES_ACTION,
    "payment_intent.processing": PaymentStatus.PROCESSING,
    "payment_intent.canceled": PaymentStatus.CANCELED,
    "charge.succeeded": PaymentStatus.SUCCEEDED,
    "charge.refunded": PaymentStatus.REFUNDED,
}

DISPUTE_CREATED = "charge.dispute.created"


def compute_signature(secret: str, timestamp: int, payload: bytes) -> str:
    signed_payload = f"{timestamp}.".encode("utf-8") + payload
    return hmac.new(secret.encode("utf-8"), signed_payload, hashlib.sha256).hexdigest()


def build_signature_header(secret: str, timestamp: int, payload: bytes) -> str:
    """Produces a header exactly as Stripe sends it; used by tests and local tooling."""
    return f"t={timestamp},v1={compute_signature(secret, timestamp, payload)}"


def parse_signature_header(header: str) -> Tuple[Optional[int], List[str]]:
    timestamp = None
    signatures = []
    for item in header.split(","):
        key, sep, value = item.strip().partition("=")
        if not sep:
            continue
        if key == "t":
            try:
                timestamp = int(value)
            except ValueError:
                return None, []
        elif key == "v1":
            signatures.append(value)
    return timestamp, signatures


class StripeWebhookProvider(WebhookProvider):
    provider = PaymentProvider.STRIPE
    signature_header = "Stripe-Signature"

    def __init__(self, secret: str, tolerance_seconds: int = 300):
        self.secret = secret
        self.tolerance_seconds = tolerance_seconds

    def verify_signature(self, payload: bytes, signature: Optional[str], now: Optional[datetime] = None) -> None:
        if not self.secret:
            log.warning("STRIPE_WEBHOOK_SECRET not set, rejecting webhook")
            raise UnauthorizedError("Webhook secret is not configured.", code="invalid_signature")
        if not signature:
            raise UnauthorizedError("Missing webhook signature.", code="invalid_signature")

        timestamp, signatures = parse_signature_header(signature)
        if timestamp is None or not signatures:
            raise UnauthorizedError("Malformed webhook signature header.", code="invalid_signature")

        current = (now or utcnow()).timestamp()
        if abs(current - timestamp) > self.tolerance_seconds:
            log.warning("Stripe webhook timestamp outside tolerance: %s", timestamp)
            raise UnauthorizedError("Webhook timestamp outside the tolerance window.", code="stale_webhook")

        expected = compute_signature(self.secret, timestamp, payload)
        if not any(hmac.compare_digest(expected, candidate) for candidate in signatures):
            raise UnauthorizedError("Invalid webhook signature.", code="invalid_signature")

    def parse_event(self, payload: bytes) -> WebhookResult:
        try:
            event = json.loads(payload)
        except (UnicodeDecodeError, ValueError):
            raise ValidationError("Invalid webhook payload.", code="invalid_payload")
        if not isinstance(event, dict) or not event.get("id") or not event.get("type"):
            raise ValidationError("Webhook payload is missing the event id or type.", code="invalid_payload")
        if not isinstance(event["type"], str):
            raise ValidationError("Webhook event type must be a string.", code="invalid_payload")

        data = event.get("data")
        if not isinstance(data, dict) or not isinstance(data.get("object"), dict):
            raise ValidationError("Webhook payload has an invalid data object.", code="invalid_payload")
        obj = data["object"]

        metadata = obj.get("metadata")
        if metadata is None:
            metadata = {}
        if not isinstance(metadata, dict):
            raise ValidationError("Webhook payload has invalid metadata.", code="invalid_payload")

        event_type = event["type"]
        result = WebhookResult(event_id=str(event["id"]), event_type=event_type, provider=self.provider)
        result.order_id = metadata.get("orderId") or metadata.get("order_id")
        result.customer_id = obj.get("customer")

        if event_type.startswith("payment_intent.") and event_type in _STATUS_BY_EVENT_TYPE:
            self._parse_payment_intent(event_type, obj, result)
        elif event_type in ("charge.succeeded", "charge.refunded"):
            self._parse_charge(event_type, obj, result)
        elif event_type == DISPUTE_CREATED:
            self._parse_dispute(obj, result)
        else:
            log.info("Unhandled Stripe event type: %s", event_type)
            result.processing_message = f"Event type {event_type} is not handled"

        result.is_processed = True
        return result

    def _parse_payment_intent(self, event_type: str, obj: Dict[str, Any], result: WebhookResult) -> None:
        result.transaction_id = obj.get("id")
        result.payment_status = _STATUS_BY_EVENT_TYPE[event_type]
        result.event_data = {"amount": obj.get("amount"), "currency": obj.get("currency")}
        if result.payment_status == PaymentStatus.FAILED:
            last_error = obj.get("last_payment_error")
            error = (last_error.get("message") if isinstance(last_error, dict) else None) or "Unknown error"
            result.event_data["last_payment_error"] = error
            result.processing_message = f"Payment failed: {error}"
        else:
            result.processing_message = f"Payment {result.payment_status.value.lower()}"

    def _parse_charge(self, event_type: str, obj: Dict[str, Any], result: WebhookResult) -> None:
        result.transaction_id = obj.get("payment_intent") or obj.get("id")
        result.payment_status = _STATUS_BY_EVENT_TYPE[event_type]
        result.event_data = {
            "charge_id": obj.get("id"),
            "amount": obj.get("amount"),
            "amount_refunded": obj.get("amount_refunded"),
            "currency": obj.get("currency"),
        }
        result.processing_message = "Charge refunded" if event_type == "charge.refunded" else "Charge succeeded"

    def _parse_dispute(self, obj: Dict[str, Any], result: WebhookResult) -> None:
        result.transaction_id = obj.get("payment_intent") or obj.get("charge")
        result.event_data = {
            "dispute_id": obj.get("id"),
            "reason": obj.get("reason"),
            "amount": obj.get("amount"),
            "currency": obj.get("currency"),
        }
        result.processing_message = f"Dispute created for charge: {obj.get('charge')}"
