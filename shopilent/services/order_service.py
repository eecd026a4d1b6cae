from decimal import Decimal, InvalidOperation
from typing import Callable, Dict, List, Optional
from uuid import UUID

from tortoise.transactions import in_transaction

from shopilent.core.errors import ConcurrencyConflictError, NotFoundError, ValidationError
from shopilent.events.domain_events import DomainEvent, ORDER_CREATED
from shopilent.events.outbox_utility import add_domain_events, create_outbox_event
from shopilent.models.order import Order, OrderItem, OrderStatus


def _to_decimal(value, field: str) -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Invalid {field}: {value}")


async def create_order(user_id: str, items: List[Dict], currency: str = "USD") -> Order:
    """
    Creates the Order with its line items and the order.created event atomically.
    """
    if not items:
        raise ValidationError("Order must contain items.")

    lines = []
    for it in items:
        quantity = int(it["quantity"])
        unit_price = _to_decimal(it["unit_price"], "unit_price")
        if quantity <= 0:
            raise ValidationError(f"Quantity for '{it['product_name']}' must be positive.")
        if unit_price < 0:
            raise ValidationError(f"Unit price for '{it['product_name']}' cannot be negative.")
        lines.append((it["product_name"], quantity, unit_price, unit_price * quantity))

    total = sum((line[3] for line in lines), Decimal("0"))

    async with in_transaction() as conn:
        # 1. Create the Order header
        order = await Order.create(
            user_id=str(user_id),
            status=OrderStatus.PENDING,
            total_amount=total,
            currency=currency.upper(),
            using_db=conn,
        )

        # 2. Create Order Item lines
        for product_name, quantity, unit_price, line_total in lines:
            await OrderItem.create(
                order=order,
                product_name=product_name,
                quantity=quantity,
                unit_price=unit_price,
                line_total=line_total,
                using_db=conn,
            )

        # 3. ATOMIC EVENT
        await create_outbox_event(
            aggregate_type="order",
            aggregate_id=order.id,
            event_type=ORDER_CREATED,
            payload={
                "order_id": str(order.id),
                "user_id": order.user_id,
                "total_amount": str(total),
                "currency": order.currency,
                "items": [{"product_name": name, "quantity": qty} for name, qty, _, _ in lines],
            },
            conn=conn,
        )

    return order


async def get_order(order_id: UUID) -> Order:
    """Fetches order details with items."""
    order = await Order.get_or_none(id=order_id).prefetch_related("items")
    if not order:
        raise NotFoundError(f"Order {order_id} not found.")
    return order


async def list_user_orders(user_id: str) -> List[Order]:
    return await Order.filter(user_id=str(user_id)).order_by("-created_at").prefetch_related("items")


async def _mutate_order(
    order_id: UUID,
    mutate: Callable[[Order], List[DomainEvent]],
    expected_version: Optional[int] = None,
) -> Order:
    """
    Loads the order, applies one state transition and persists it with its
    events. The write is version-checked; `expected_version` lets an API
    caller assert the version it last read.
    """
    async with in_transaction() as conn:
        order = await Order.filter(id=order_id).using_db(conn).first()
        if not order:
            raise NotFoundError(f"Order {order_id} not found.")
        if expected_version is not None and order.version != expected_version:
            raise ConcurrencyConflictError(
                f"Order {order_id} is at version {order.version}, not {expected_version}."
            )

        events = mutate(order)
        if events:
            await order.save_versioned(Order.STATE_FIELDS, using_db=conn)
            await add_domain_events(events, conn)
    return order


async def update_order_status(order_id: UUID, new_status: OrderStatus, expected_version: Optional[int] = None) -> Order:
    """Administrative status override; final states (Delivered, Cancelled) are locked."""
    return await _mutate_order(order_id, lambda order: order.update_status(new_status), expected_version)


async def cancel_order(order_id: UUID, reason: Optional[str] = None, expected_version: Optional[int] = None) -> Order:
    return await _mutate_order(order_id, lambda order: order.cancel(reason), expected_version)


async def mark_order_shipped(
    order_id: UUID, tracking_number: Optional[str] = None, expected_version: Optional[int] = None
) -> Order:
    return await _mutate_order(order_id, lambda order: order.mark_as_shipped(tracking_number), expected_version)


async def mark_order_delivered(order_id: UUID, expected_version: Optional[int] = None) -> Order:
    return await _mutate_order(order_id, lambda order: order.mark_as_delivered(), expected_version)
