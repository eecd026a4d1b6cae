"""
Outbox subscribers that reconcile Order state with Payment events.

These run on the drain task and race with API writers on the same order rows;
every write is version-checked, so a lost race raises ConcurrencyConflictError
and the outbox retries the message with backoff.
"""
import logging
from typing import Any, Dict, List, Optional
from uuid import UUID

from tortoise.transactions import in_transaction

from shopilent.events.domain_events import DomainEvent
from shopilent.events.outbox_utility import add_domain_events
from shopilent.models.order import Order, OrderStatus
from shopilent.models.payment import PaymentStatus, can_transition

log = logging.getLogger(__name__)


async def _update_order(order_id: UUID, mutate) -> Optional[List[DomainEvent]]:
    async with in_transaction() as conn:
        order = await Order.filter(id=order_id).using_db(conn).first()
        if not order:
            log.warning("Order %s not found.", order_id)
            return None

        events = mutate(order)
        if not events:
            return events

        await order.save_versioned(Order.STATE_FIELDS, using_db=conn)
        await add_domain_events(events, conn)
        return events


async def handle_payment_succeeded(event_payload: Dict[str, Any], event_id: UUID):
    """
    Consumer logic for 'payment.succeeded.v1'.
    Marks the order as paid, moving it from Pending to Processing.
    """
    order_id = UUID(event_payload["order_id"])
    log.info("Marking order %s as paid (message %s).", order_id, event_id)

    def mutate(order: Order) -> List[DomainEvent]:
        if order.status == OrderStatus.CANCELLED:
            log.warning("Payment succeeded for cancelled order %s; a refund is required.", order.id)
        return order.mark_as_paid()

    events = await _update_order(order_id, mutate)
    if events == []:
        log.info("Order %s already marked as paid.", order_id)


async def _sync_payment_status(event_payload: Dict[str, Any], event_id: UUID, target: PaymentStatus):
    order_id = UUID(event_payload["order_id"])

    def mutate(order: Order) -> List[DomainEvent]:
        if order.payment_status != target and not can_transition(order.payment_status, target):
            log.info(
                "Ignoring stale payment status %s for order %s (currently %s).",
                target.value, order.id, order.payment_status.value,
            )
            return []
        return order.update_payment_status(target)

    events = await _update_order(order_id, mutate)
    if events:
        log.info("Order %s payment status set to %s (message %s).", order_id, target.value, event_id)


async def handle_payment_failed(event_payload: Dict[str, Any], event_id: UUID):
    """Consumer logic for 'payment.failed.v1'."""
    await _sync_payment_status(event_payload, event_id, PaymentStatus.FAILED)


async def handle_payment_refunded(event_payload: Dict[str, Any], event_id: UUID):
    """Consumer logic for 'payment.refunded.v1'."""
    await _sync_payment_status(event_payload, event_id, PaymentStatus.REFUNDED)
