from enum import Enum
from typing import Any, Dict, List, Optional
import uuid

from tortoise import fields

from shopilent.core.clock import utcnow
from shopilent.core.errors import ValidationError
from shopilent.events.domain_events import (
    DomainEvent,
    PAYMENT_DISPUTED,
    PAYMENT_FAILED,
    PAYMENT_REFUNDED,
    PAYMENT_STATUS_CHANGED,
    PAYMENT_SUCCEEDED,
)
from shopilent.models.base import VersionedModel


class PaymentStatus(str, Enum):
    PENDING = "Pending"
    REQUIRES_ACTION = "RequiresAction"
    PROCESSING = "Processing"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    CANCELED = "Canceled"
    REFUNDED = "Refunded"


class PaymentProvider(str, Enum):
    STRIPE = "stripe"
    PAYPAL = "paypal"


# Status only moves forward along these edges; anything else is stale or invalid.
PAYMENT_TRANSITIONS = {
    PaymentStatus.PENDING: {
        PaymentStatus.REQUIRES_ACTION,
        PaymentStatus.PROCESSING,
        PaymentStatus.SUCCEEDED,
        PaymentStatus.FAILED,
        PaymentStatus.CANCELED,
    },
    PaymentStatus.REQUIRES_ACTION: {
        PaymentStatus.PROCESSING,
        PaymentStatus.SUCCEEDED,
        PaymentStatus.FAILED,
        PaymentStatus.CANCELED,
    },
    PaymentStatus.PROCESSING: {
        PaymentStatus.REQUIRES_ACTION,
        PaymentStatus.SUCCEEDED,
        PaymentStatus.FAILED,
        PaymentStatus.CANCELED,
    },
    PaymentStatus.FAILED: {PaymentStatus.SUCCEEDED, PaymentStatus.CANCELED},
    PaymentStatus.SUCCEEDED: {PaymentStatus.REFUNDED},
    PaymentStatus.CANCELED: set(),
    PaymentStatus.REFUNDED: set(),
}


def can_transition(current: PaymentStatus, target: PaymentStatus) -> bool:
    return target in PAYMENT_TRANSITIONS[PaymentStatus(current)]


class Payment(VersionedModel):
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    order = fields.ForeignKeyField("models.Order", related_name="payments")
    user_id = fields.CharField(max_length=64)
    amount = fields.DecimalField(max_digits=14, decimal_places=2)
    currency = fields.CharField(max_length=3, default="USD")
    method_type = fields.CharField(max_length=32, default="card")
    provider = fields.CharEnumField(PaymentProvider, default=PaymentProvider.STRIPE)
    status = fields.CharEnumField(PaymentStatus, default=PaymentStatus.PENDING)
    external_reference = fields.CharField(max_length=255, null=True)  # Provider-side intent id
    transaction_id = fields.CharField(max_length=255, null=True)
    error_message = fields.TextField(null=True)
    processed_at = fields.DatetimeField(null=True)
    metadata = fields.JSONField(default=dict)

    class Meta:
        table = "payments"
        indexes = [
            ("order_id",),
            ("provider", "external_reference"),
            ("transaction_id",),
        ]

    # Columns touched by state transitions, persisted via save_versioned()
    STATE_FIELDS = ("status", "transaction_id", "error_message", "processed_at", "metadata")

    def can_transition_to(self, target: PaymentStatus) -> bool:
        return can_transition(self.status, target)

    def transition_to(
        self,
        target: PaymentStatus,
        transaction_id: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> List[DomainEvent]:
        """
        Moves the payment to `target` and returns the domain events to persist.
        Re-applying the current status is a no-op and returns no events.
        """
        if self.status == target:
            return []
        if not self.can_transition_to(target):
            raise ValidationError(
                f"Payment cannot move from {self.status.value} to {target.value}.",
                code="invalid_payment_status",
            )

        old_status = self.status
        self.status = target
        if transaction_id:
            self.transaction_id = transaction_id
        if error_message:
            self.error_message = error_message
        if target == PaymentStatus.SUCCEEDED:
            self.processed_at = utcnow()

        events = [self._event(PAYMENT_STATUS_CHANGED, old_status=old_status.value, new_status=target.value)]
        if target == PaymentStatus.SUCCEEDED:
            events.append(self._event(PAYMENT_SUCCEEDED, transaction_id=self.transaction_id))
        elif target == PaymentStatus.FAILED:
            events.append(self._event(PAYMENT_FAILED, error_message=self.error_message))
        elif target == PaymentStatus.REFUNDED:
            events.append(self._event(PAYMENT_REFUNDED, transaction_id=self.transaction_id))
        return events

    def record_dispute(self, dispute: Dict[str, Any]) -> List[DomainEvent]:
        disputes = list(self.metadata.get("disputes", []))
        if any(d.get("dispute_id") == dispute.get("dispute_id") for d in disputes):
            return []
        disputes.append(dispute)
        self.metadata = {**self.metadata, "disputes": disputes}
        return [self._event(PAYMENT_DISPUTED, **dispute)]

    def _event(self, event_type: str, **data) -> DomainEvent:
        payload = {"payment_id": str(self.id), "order_id": str(self.order_id)}
        payload.update(data)
        return DomainEvent(event_type=event_type, aggregate_type="payment", aggregate_id=self.id, payload=payload)
