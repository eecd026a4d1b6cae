from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

from shopilent.core.clock import utcnow
from shopilent.events.domain_events import DomainEvent
from shopilent.models.outbox import OutboxMessage


async def create_outbox_event(
    aggregate_type: str,
    aggregate_id: Optional[UUID],
    event_type: str,
    payload: Dict[str, Any],
    conn: Any = None,
    scheduled_at: Optional[datetime] = None,
) -> OutboxMessage:
    """
    Creates a new Outbox message using the provided database connection (transaction).

    CRITICAL: Passing 'conn' ensures the event is created atomically with the business data.
    """
    return await OutboxMessage.create(
        aggregate_type=aggregate_type,
        aggregate_id=aggregate_id,
        event_type=event_type,
        payload=payload,
        retry_count=0,
        scheduled_at=scheduled_at or utcnow(),
        using_db=conn,
    )


async def add_domain_events(events: Iterable[DomainEvent], conn: Any = None) -> List[OutboxMessage]:
    """Persists every event raised by an aggregate mutation on the caller's transaction."""
    messages = []
    for event in events:
        messages.append(
            await create_outbox_event(
                aggregate_type=event.aggregate_type,
                aggregate_id=event.aggregate_id,
                event_type=event.event_type,
                payload=event.payload,
                conn=conn,
            )
        )
    return messages
