from datetime import datetime
from typing import Optional
import uuid

from pydantic import BaseModel, Field

from shopilent.models.payment import Payment, PaymentProvider, PaymentStatus


class PaymentRequest(BaseModel):
    """Registers a payment attempt for an order."""
    provider: PaymentProvider = PaymentProvider.STRIPE
    method_type: str = Field(default="card", max_length=32)
    external_reference: Optional[str] = Field(default=None, max_length=255)


class PaymentResponse(BaseModel):
    id: uuid.UUID
    order_id: uuid.UUID
    user_id: str
    amount: str
    currency: str
    method_type: str
    provider: PaymentProvider
    status: PaymentStatus
    external_reference: Optional[str] = None
    transaction_id: Optional[str] = None
    error_message: Optional[str] = None
    processed_at: Optional[datetime] = None
    version: int
    created_at: datetime

    @classmethod
    def from_payment(cls, payment: Payment) -> "PaymentResponse":
        return cls(
            id=payment.id,
            order_id=payment.order_id,
            user_id=payment.user_id,
            amount=str(payment.amount),
            currency=payment.currency,
            method_type=payment.method_type,
            provider=payment.provider,
            status=payment.status,
            external_reference=payment.external_reference,
            transaction_id=payment.transaction_id,
            error_message=payment.error_message,
            processed_at=payment.processed_at,
            version=payment.version,
            created_at=payment.created_at,
        )


class WebhookResponse(BaseModel):
    """Result of processing one provider webhook delivery."""
    event_id: str
    event_type: str
    provider: str
    outcome: str  # applied | duplicate | ignored
    message: str
    payment_id: Optional[uuid.UUID] = None
    payment_status: Optional[PaymentStatus] = None
