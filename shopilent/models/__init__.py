# shopilent/models/__init__.py
from .order import Order, OrderItem, OrderStatus
from .outbox import OutboxMessage
from .payment import Payment, PaymentProvider, PaymentStatus
from .processed_event import ProcessedEvent

# Export all models
__all__ = [
    "Order",
    "OrderItem",
    "OrderStatus",
    "OutboxMessage",
    "Payment",
    "PaymentProvider",
    "PaymentStatus",
    "ProcessedEvent",
]
