import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional

from shopilent.consumers.notification_consumer import (
    alert_payment_disputed,
    notify_order_cancelled,
    notify_order_paid,
    notify_order_shipped,
)
from shopilent.consumers.order_status_consumer import (
    handle_payment_failed,
    handle_payment_refunded,
    handle_payment_succeeded,
)
from shopilent.core.clock import utcnow
from shopilent.core.config import (
    BATCH_SIZE,
    CLEANUP_INTERVAL_HOURS,
    DAYS_TO_KEEP_PROCESSED,
    MAX_BACKOFF_SECONDS,
    MAX_RETRIES,
    POLLING_INTERVAL,
    RETRY_BASE_SECONDS,
)
from shopilent.core.db import close_db, init_db
from shopilent.core.log_config import setup_logging
from shopilent.events import domain_events as events
from shopilent.events.bus import EventBus
from shopilent.models.outbox import OutboxMessage
from shopilent.services.outbox_service import cleanup_processed_messages

log = logging.getLogger(__name__)

MAX_ERROR_LENGTH = 4000


def build_event_bus() -> EventBus:
    """Routing table from outbox event types to their subscribers."""
    bus = EventBus()
    # Order reconciliation (writes order rows)
    bus.subscribe(events.PAYMENT_SUCCEEDED, handle_payment_succeeded)
    bus.subscribe(events.PAYMENT_FAILED, handle_payment_failed)
    bus.subscribe(events.PAYMENT_REFUNDED, handle_payment_refunded)
    # Notifications / alerting
    bus.subscribe(events.ORDER_PAID, notify_order_paid)
    bus.subscribe(events.ORDER_SHIPPED, notify_order_shipped)
    bus.subscribe(events.ORDER_CANCELLED, notify_order_cancelled)
    bus.subscribe(events.PAYMENT_DISPUTED, alert_payment_disputed)
    return bus


def compute_backoff_seconds(retry_count: int, base: int = RETRY_BASE_SECONDS, cap: int = MAX_BACKOFF_SECONDS) -> int:
    # retry 1 -> base, retry 2 -> 2*base, retry 3 -> 4*base ... clamped at cap
    return min(cap, base * 2 ** max(0, retry_count - 1))


@dataclass
class BatchReport:
    processed: int = 0
    retried: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.processed + self.retried + self.failed


async def fetch_due_messages(batch_size: int, now: datetime) -> List[OutboxMessage]:
    """Unprocessed, not permanently failed, and due: oldest schedule first."""
    return await (
        OutboxMessage.filter(processed_at__isnull=True, failed_at__isnull=True, scheduled_at__lte=now)
        .order_by("scheduled_at", "created_at")
        .limit(batch_size)
    )


async def _mark_processed(message: OutboxMessage, now: datetime) -> None:
    await OutboxMessage.filter(id=message.id, processed_at__isnull=True).update(
        processed_at=now, error=None, updated_at=now
    )


async def _mark_failed(message: OutboxMessage, exc: Exception, max_retries: int, now: datetime) -> bool:
    """Records the failure; returns True when the message is now permanently failed."""
    retry_count = message.retry_count + 1
    error = f"{type(exc).__name__}: {exc}"[:MAX_ERROR_LENGTH]
    values = {"error": error, "retry_count": retry_count, "updated_at": now}

    exhausted = retry_count >= max_retries
    if exhausted:
        values["failed_at"] = now
        log.error(
            "Outbox message %s (%s) permanently failed after %d attempts: %s",
            message.id, message.event_type, retry_count, error,
        )
    else:
        delay = compute_backoff_seconds(retry_count)
        values["scheduled_at"] = now + timedelta(seconds=delay)
        log.warning(
            "Outbox message %s (%s) failed (attempt %d/%d), retrying in %ss: %s",
            message.id, message.event_type, retry_count, max_retries, delay, error,
        )

    await OutboxMessage.filter(id=message.id, processed_at__isnull=True).update(**values)
    return exhausted


async def process_outbox_batch(
    bus: EventBus,
    batch_size: int = BATCH_SIZE,
    max_retries: int = MAX_RETRIES,
    now: Optional[datetime] = None,
) -> BatchReport:
    """
    Drains one batch of due outbox messages through the event bus.
    No transaction or row lock is held while a subscriber runs.
    """
    now = now or utcnow()
    report = BatchReport()
    if batch_size <= 0:
        return report

    messages = await fetch_due_messages(batch_size, now)
    for message in messages:
        try:
            # 1. Dispatch the event (calls the subscribed handlers)
            await bus.publish(message.event_type, message.payload, message.id)
        except Exception as exc:
            # 2. Record the failure and reschedule, or park it once retries are exhausted
            if await _mark_failed(message, exc, max_retries, now):
                report.failed += 1
            else:
                report.retried += 1
        else:
            # 3. Mark the message as processed on success
            await _mark_processed(message, now)
            report.processed += 1
    return report


async def _wait(interval: float, stop_event: Optional[asyncio.Event]) -> None:
    if stop_event is None:
        await asyncio.sleep(interval)
        return
    try:
        await asyncio.wait_for(stop_event.wait(), timeout=interval)
    except asyncio.TimeoutError:
        pass


async def run_outbox_processor(
    bus: EventBus,
    stop_event: Optional[asyncio.Event] = None,
    interval: float = POLLING_INTERVAL,
    cleanup_interval_hours: float = CLEANUP_INTERVAL_HOURS,
    days_to_keep: int = DAYS_TO_KEEP_PROCESSED,
) -> None:
    """Main loop for the drain task; runs until stop_event is set or the task is cancelled."""
    log.info("Outbox processing service is starting")
    next_cleanup = utcnow()

    while stop_event is None or not stop_event.is_set():
        try:
            report = await process_outbox_batch(bus)
            if report.total:
                log.info(
                    "Outbox batch: %d processed, %d retrying, %d failed.",
                    report.processed, report.retried, report.failed,
                )
        except Exception:
            log.exception("Error occurred while processing outbox messages")

        if utcnow() >= next_cleanup:
            try:
                await cleanup_processed_messages(days_to_keep)
            except Exception:
                log.exception("Error occurred while cleaning up old outbox messages")
            next_cleanup = utcnow() + timedelta(hours=cleanup_interval_hours)

        await _wait(interval, stop_event)

    log.info("Outbox processing service is stopping")


async def start_outbox_poller():
    """Entry point for running the drain as a standalone worker process."""
    setup_logging()
    await init_db()
    try:
        await run_outbox_processor(build_event_bus())
    finally:
        await close_db()


def main():
    try:
        asyncio.run(start_outbox_poller())
    except KeyboardInterrupt:
        log.info("Poller service stopped.")


if __name__ == "__main__":
    main()
