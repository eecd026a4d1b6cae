from enum import Enum
from typing import List, Optional
import uuid

from tortoise import fields, models

from shopilent.core.errors import ValidationError
from shopilent.events.domain_events import (
    DomainEvent,
    ORDER_CANCELLED,
    ORDER_DELIVERED,
    ORDER_PAID,
    ORDER_PAYMENT_STATUS_CHANGED,
    ORDER_SHIPPED,
    ORDER_STATUS_CHANGED,
)
from shopilent.models.base import VersionedModel
from shopilent.models.payment import PaymentStatus, can_transition


class OrderStatus(str, Enum):
    PENDING = "Pending"  # Created, awaiting payment
    PROCESSING = "Processing"  # Paid, being prepared
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"


FINAL_ORDER_STATUSES = (OrderStatus.DELIVERED, OrderStatus.CANCELLED)


class Order(VersionedModel):
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    user_id = fields.CharField(max_length=64)
    status = fields.CharEnumField(OrderStatus, default=OrderStatus.PENDING)
    payment_status = fields.CharEnumField(PaymentStatus, default=PaymentStatus.PENDING)
    total_amount = fields.DecimalField(max_digits=14, decimal_places=2, default=0)
    currency = fields.CharField(max_length=3, default="USD")
    tracking_number = fields.CharField(max_length=128, null=True)
    cancellation_reason = fields.TextField(null=True)
    metadata = fields.JSONField(default=dict)

    class Meta:
        table = "orders"
        indexes = [
            ("status",),                 # Status-based filtering
            ("user_id",),                # User order history
            ("created_at",),             # Time-based queries
            ("status", "created_at"),    # Composite: status with time
        ]

    # Columns touched by state transitions, persisted via save_versioned()
    STATE_FIELDS = ("status", "payment_status", "tracking_number", "cancellation_reason", "metadata")

    # --- State transitions: each returns the domain events to write to the outbox ---

    def update_status(self, new_status: OrderStatus) -> List[DomainEvent]:
        if self.status == new_status:
            return []
        # Block status updates if the order is in a final, irreversible state.
        if self.status in FINAL_ORDER_STATUSES:
            raise ValidationError(
                f"Order is already in a final state: {self.status.value}. Status cannot be updated.",
                code="invalid_order_status",
            )
        return [self._set_status(new_status)]

    def update_payment_status(self, new_status: PaymentStatus) -> List[DomainEvent]:
        if self.payment_status == new_status:
            return []
        if not can_transition(self.payment_status, new_status):
            raise ValidationError(
                f"Order payment status cannot move from {self.payment_status.value} to {new_status.value}.",
                code="invalid_payment_status",
            )
        old = self.payment_status
        self.payment_status = new_status
        return [self._event(ORDER_PAYMENT_STATUS_CHANGED, old_status=old.value, new_status=new_status.value)]

    def mark_as_paid(self) -> List[DomainEvent]:
        if self.payment_status == PaymentStatus.SUCCEEDED:
            return []
        events = self.update_payment_status(PaymentStatus.SUCCEEDED)
        if self.status == OrderStatus.PENDING:
            events.append(self._set_status(OrderStatus.PROCESSING))
        events.append(self._event(ORDER_PAID, total_amount=str(self.total_amount), currency=self.currency))
        return events

    def mark_as_shipped(self, tracking_number: Optional[str] = None) -> List[DomainEvent]:
        if self.status == OrderStatus.SHIPPED:
            return []
        if self.payment_status != PaymentStatus.SUCCEEDED:
            raise ValidationError("Order must be paid before it can be shipped.", code="invalid_order_status")
        if self.status in FINAL_ORDER_STATUSES:
            raise ValidationError(f"Cannot ship order in status {self.status.value}.", code="invalid_order_status")
        if tracking_number:
            self.tracking_number = tracking_number
        events = [self._set_status(OrderStatus.SHIPPED)]
        events.append(self._event(ORDER_SHIPPED, tracking_number=self.tracking_number))
        return events

    def mark_as_delivered(self) -> List[DomainEvent]:
        if self.status == OrderStatus.DELIVERED:
            return []
        if self.status != OrderStatus.SHIPPED:
            raise ValidationError("Only shipped orders can be marked as delivered.", code="invalid_order_status")
        return [self._set_status(OrderStatus.DELIVERED), self._event(ORDER_DELIVERED)]

    def cancel(self, reason: Optional[str] = None) -> List[DomainEvent]:
        if self.status == OrderStatus.CANCELLED:
            return []
        # Validation: Cannot cancel once the order has left the warehouse
        if self.status in (OrderStatus.SHIPPED, OrderStatus.DELIVERED):
            raise ValidationError(f"Cannot cancel order in status {self.status.value}", code="invalid_order_status")
        self.cancellation_reason = reason
        return [
            self._set_status(OrderStatus.CANCELLED),
            self._event(ORDER_CANCELLED, reason=reason, payment_status=self.payment_status.value),
        ]

    def _set_status(self, new_status: OrderStatus) -> DomainEvent:
        old = self.status
        self.status = new_status
        return self._event(ORDER_STATUS_CHANGED, old_status=old.value, new_status=new_status.value)

    def _event(self, event_type: str, **data) -> DomainEvent:
        payload = {"order_id": str(self.id), "user_id": self.user_id}
        payload.update(data)
        return DomainEvent(event_type=event_type, aggregate_type="order", aggregate_id=self.id, payload=payload)


class OrderItem(models.Model):
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    order = fields.ForeignKeyField("models.Order", related_name="items")
    product_name = fields.CharField(max_length=255)
    quantity = fields.IntField()
    unit_price = fields.DecimalField(max_digits=12, decimal_places=2)
    line_total = fields.DecimalField(max_digits=14, decimal_places=2)

    class Meta:
        table = "order_items"
        indexes = [
            ("order_id",),              # Order line items
        ]
