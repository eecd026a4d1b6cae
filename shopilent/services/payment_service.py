import logging
from typing import List, Optional
from uuid import UUID

from tortoise.transactions import in_transaction

from shopilent.core.errors import ConflictError, NotFoundError, ValidationError
from shopilent.events.domain_events import PAYMENT_CREATED
from shopilent.events.outbox_utility import create_outbox_event
from shopilent.models.order import Order, OrderStatus
from shopilent.models.payment import Payment, PaymentProvider, PaymentStatus

log = logging.getLogger(__name__)


async def create_payment(
    order_id: UUID,
    user_id: str,
    provider: PaymentProvider,
    method_type: str = "card",
    external_reference: Optional[str] = None,
) -> Payment:
    """
    Registers a pending payment for the full order amount. `external_reference`
    is the provider-side intent id that later webhooks refer to.
    """
    async with in_transaction() as conn:
        order = await Order.filter(id=order_id).using_db(conn).first()
        if not order:
            raise NotFoundError(f"Order {order_id} not found.")
        if order.status == OrderStatus.CANCELLED:
            raise ValidationError("Cannot pay for a cancelled order.", code="invalid_order_status")
        if order.payment_status == PaymentStatus.SUCCEEDED:
            raise ValidationError("Order has already been paid.", code="already_paid")

        if external_reference and await (
            Payment.filter(provider=provider, external_reference=external_reference).using_db(conn).exists()
        ):
            raise ConflictError(f"A payment for {provider.value} reference {external_reference} already exists.")

        payment = await Payment.create(
            order_id=order.id,
            user_id=str(user_id),
            amount=order.total_amount,
            currency=order.currency,
            method_type=method_type,
            provider=provider,
            external_reference=external_reference,
            using_db=conn,
        )

        await create_outbox_event(
            aggregate_type="payment",
            aggregate_id=payment.id,
            event_type=PAYMENT_CREATED,
            payload={
                "payment_id": str(payment.id),
                "order_id": str(order.id),
                "amount": str(payment.amount),
                "currency": payment.currency,
                "provider": provider.value,
            },
            conn=conn,
        )

    log.info("Payment %s created for order %s via %s.", payment.id, order_id, provider.value)
    return payment


async def get_payment(payment_id: UUID) -> Payment:
    payment = await Payment.get_or_none(id=payment_id)
    if not payment:
        raise NotFoundError(f"Payment {payment_id} not found.")
    return payment


async def list_order_payments(order_id: UUID) -> List[Payment]:
    return await Payment.filter(order_id=order_id).order_by("-created_at")
