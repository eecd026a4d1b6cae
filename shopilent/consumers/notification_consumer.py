import logging
from typing import Any, Dict
from uuid import UUID

log = logging.getLogger(__name__)


async def notify_order_paid(event_payload: Dict[str, Any], event_id: UUID):
    """Consumer N: customer notification for 'order.paid.v1'."""
    log.info(
        "NOTIFICATION: Order %s confirmed for user %s (%s %s).",
        event_payload.get("order_id"),
        event_payload.get("user_id"),
        event_payload.get("total_amount"),
        event_payload.get("currency"),
    )


async def notify_order_shipped(event_payload: Dict[str, Any], event_id: UUID):
    """Consumer N: customer notification for 'order.shipped.v1'."""
    log.info(
        "NOTIFICATION: Order %s shipped (tracking: %s).",
        event_payload.get("order_id"),
        event_payload.get("tracking_number") or "n/a",
    )


async def notify_order_cancelled(event_payload: Dict[str, Any], event_id: UUID):
    """Consumer N: customer notification for 'order.cancelled.v1'."""
    log.info(
        "NOTIFICATION: Order %s cancelled. Reason: %s",
        event_payload.get("order_id"),
        event_payload.get("reason") or "not given",
    )


async def alert_payment_disputed(event_payload: Dict[str, Any], event_id: UUID):
    """Consumer N: operator alert for 'payment.disputed.v1'."""
    log.warning(
        "!!! SYSTEM ALERT !!! Dispute %s opened on payment %s (order %s): %s",
        event_payload.get("dispute_id"),
        event_payload.get("payment_id"),
        event_payload.get("order_id"),
        event_payload.get("reason"),
    )
