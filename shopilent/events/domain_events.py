from dataclasses import dataclass, field
from typing import Any, Dict
from uuid import UUID

# Event type tags written to the outbox
ORDER_CREATED = "order.created.v1"
ORDER_STATUS_CHANGED = "order.status_changed.v1"
ORDER_PAYMENT_STATUS_CHANGED = "order.payment_status_changed.v1"
ORDER_PAID = "order.paid.v1"
ORDER_SHIPPED = "order.shipped.v1"
ORDER_DELIVERED = "order.delivered.v1"
ORDER_CANCELLED = "order.cancelled.v1"

PAYMENT_CREATED = "payment.created.v1"
PAYMENT_STATUS_CHANGED = "payment.status_changed.v1"
PAYMENT_SUCCEEDED = "payment.succeeded.v1"
PAYMENT_FAILED = "payment.failed.v1"
PAYMENT_REFUNDED = "payment.refunded.v1"
PAYMENT_DISPUTED = "payment.disputed.v1"


@dataclass(frozen=True)
class DomainEvent:
    """A fact raised by an aggregate mutation, persisted to the outbox with it."""

    event_type: str
    aggregate_type: str
    aggregate_id: UUID
    payload: Dict[str, Any] = field(default_factory=dict)
