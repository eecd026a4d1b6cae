"""
In-process event bus fed by the outbox drain.

Subscribers are plain async functions `handler(payload, message_id)`. Delivery
is at-least-once: a handler that completed for a message is recorded in the
ProcessedEvent ledger and skipped if the message is redelivered after a later
handler failed.
"""
import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable, Dict, List
from uuid import UUID

from tortoise.exceptions import IntegrityError

from shopilent.models.processed_event import CONSUMER_SOURCE_PREFIX, ProcessedEvent

log = logging.getLogger(__name__)

EventHandler = Callable[[Dict[str, Any], UUID], Awaitable[None]]


def handler_name(handler: EventHandler) -> str:
    return f"{handler.__module__}.{handler.__qualname__}"


class EventBus:
    def __init__(self):
        self._handlers: Dict[str, List[EventHandler]] = defaultdict(list)

    def subscribe(self, event_type: str, handler: EventHandler) -> EventHandler:
        if handler not in self._handlers[event_type]:
            self._handlers[event_type].append(handler)
        return handler

    def handlers_for(self, event_type: str) -> List[EventHandler]:
        return list(self._handlers.get(event_type, []))

    async def publish(self, event_type: str, payload: Dict[str, Any], message_id: UUID) -> int:
        """
        Runs every subscriber of `event_type` in registration order.
        Returns the number of handlers invoked; the first handler error propagates.
        """
        handlers = self.handlers_for(event_type)
        if not handlers:
            log.warning("No handler found for event type: %s (message %s)", event_type, message_id)
            return 0

        invoked = 0
        for handler in handlers:
            source = f"{CONSUMER_SOURCE_PREFIX}{handler_name(handler)}"
            # Idempotency Check
            if await ProcessedEvent.filter(source=source, event_id=str(message_id)).exists():
                log.debug("Skipping %s for message %s: already handled.", source, message_id)
                continue

            await handler(payload, message_id)
            invoked += 1

            try:
                await ProcessedEvent.create(source=source, event_id=str(message_id), event_type=event_type)
            except IntegrityError:
                # A concurrent delivery recorded the same completion first.
                log.debug("Completion of %s for message %s already recorded.", source, message_id)
        return invoked
