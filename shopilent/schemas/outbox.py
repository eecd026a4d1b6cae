from datetime import datetime
from typing import Any, Dict, Optional
import uuid

from pydantic import BaseModel

from shopilent.models.outbox import OutboxMessage


class OutboxMessageResponse(BaseModel):
    id: uuid.UUID
    event_type: str
    aggregate_type: str
    aggregate_id: Optional[uuid.UUID] = None
    payload: Dict[str, Any]
    status: str
    retry_count: int
    error: Optional[str] = None
    scheduled_at: datetime
    processed_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    created_at: datetime

    @classmethod
    def from_message(cls, message: OutboxMessage) -> "OutboxMessageResponse":
        return cls(
            id=message.id,
            event_type=message.event_type,
            aggregate_type=message.aggregate_type,
            aggregate_id=message.aggregate_id,
            payload=message.payload,
            status=message.status,
            retry_count=message.retry_count,
            error=message.error,
            scheduled_at=message.scheduled_at,
            processed_at=message.processed_at,
            failed_at=message.failed_at,
            created_at=message.created_at,
        )


class OutboxStatsResponse(BaseModel):
    total: int
    pending: int
    retrying: int
    processed: int
    failed: int
