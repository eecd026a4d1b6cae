"""
Payment provider port (abstract interface).

The provider itself is an opaque external service; this side only needs to
authenticate its webhook callbacks and normalize their payloads.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from shopilent.models.payment import PaymentProvider, PaymentStatus


@dataclass
class WebhookResult:
    """Provider event normalized into the fields reconciliation needs."""

    event_id: str
    event_type: str
    provider: PaymentProvider
    transaction_id: Optional[str] = None
    payment_status: Optional[PaymentStatus] = None  # None: no status change implied
    order_id: Optional[str] = None
    customer_id: Optional[str] = None
    event_data: Dict[str, Any] = field(default_factory=dict)
    processing_message: str = ""
    is_processed: bool = False


class WebhookProvider(ABC):
    """Abstract payment-provider webhook interface."""

    provider: PaymentProvider
    signature_header: str

    @abstractmethod
    def verify_signature(self, payload: bytes, signature: Optional[str], now: Optional[datetime] = None) -> None:
        """Raises UnauthorizedError unless the payload is authentically from the provider and fresh."""
        ...

    @abstractmethod
    def parse_event(self, payload: bytes) -> WebhookResult:
        """Raises ValidationError when the payload is not a well-formed provider event."""
        ...
