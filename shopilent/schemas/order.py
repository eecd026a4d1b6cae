from datetime import datetime
from decimal import Decimal
from typing import List, Optional
import uuid

from pydantic import BaseModel, Field

from shopilent.models.order import Order, OrderStatus
from shopilent.models.payment import PaymentStatus


class OrderItemRequest(BaseModel):
    """Schema for a single item in the order request."""
    product_name: str = Field(min_length=1, max_length=255)
    quantity: int = Field(gt=0)
    unit_price: Decimal = Field(ge=0)


class OrderRequest(BaseModel):
    """Schema for the full order placement request body."""
    items: List[OrderItemRequest] = Field(min_length=1)
    currency: str = Field(default="USD", min_length=3, max_length=3)


class OrderStatusUpdate(BaseModel):
    """Schema for an administrative status change."""
    status: OrderStatus
    expected_version: Optional[int] = None


class CancelOrderRequest(BaseModel):
    reason: Optional[str] = None
    expected_version: Optional[int] = None


class ShipOrderRequest(BaseModel):
    tracking_number: Optional[str] = None
    expected_version: Optional[int] = None


class DeliverOrderRequest(BaseModel):
    expected_version: Optional[int] = None


class OrderItemResponse(BaseModel):
    """Schema for an item inside the detailed order response."""
    product_name: str
    quantity: int
    unit_price: str  # Use string for Decimal type serialization
    line_total: str


class OrderDetailResponse(BaseModel):
    """Schema for fetching detailed order information."""
    id: uuid.UUID
    user_id: str
    status: OrderStatus
    payment_status: PaymentStatus
    total_amount: str
    currency: str
    tracking_number: Optional[str] = None
    cancellation_reason: Optional[str] = None
    version: int
    items: List[OrderItemResponse] = []
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_order(cls, order: Order, include_items: bool = True) -> "OrderDetailResponse":
        items = []
        if include_items:
            items = [
                OrderItemResponse(
                    product_name=i.product_name,
                    quantity=i.quantity,
                    unit_price=str(i.unit_price),
                    line_total=str(i.line_total),
                )
                for i in order.items
            ]
        return cls(
            id=order.id,
            user_id=order.user_id,
            status=order.status,
            payment_status=order.payment_status,
            total_amount=str(order.total_amount),
            currency=order.currency,
            tracking_number=order.tracking_number,
            cancellation_reason=order.cancellation_reason,
            version=order.version,
            items=items,
            created_at=order.created_at,
            updated_at=order.updated_at,
        )
