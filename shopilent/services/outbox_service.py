"""Operator-facing queries and actions over the outbox table."""
import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional
from uuid import UUID

from tortoise.queryset import QuerySet
from tortoise.transactions import in_transaction

from shopilent.core.clock import utcnow
from shopilent.core.errors import NotFoundError, ValidationError
from shopilent.models.outbox import OutboxMessage
from shopilent.models.processed_event import CONSUMER_SOURCE_PREFIX, ProcessedEvent

log = logging.getLogger(__name__)

MESSAGE_STATUSES = ("pending", "retrying", "processed", "failed")


def _filter_by_status(queryset: QuerySet, status: str) -> QuerySet:
    if status == "processed":
        return queryset.filter(processed_at__isnull=False)
    if status == "failed":
        return queryset.filter(processed_at__isnull=True, failed_at__isnull=False)
    if status == "retrying":
        return queryset.filter(processed_at__isnull=True, failed_at__isnull=True, error__isnull=False)
    if status == "pending":
        return queryset.filter(processed_at__isnull=True, failed_at__isnull=True, error__isnull=True)
    raise ValidationError(f"Unknown outbox status '{status}'. Expected one of: {', '.join(MESSAGE_STATUSES)}.")


async def list_messages(
    status: Optional[str] = None,
    event_type: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> List[OutboxMessage]:
    queryset = OutboxMessage.all()
    if status:
        queryset = _filter_by_status(queryset, status)
    if event_type:
        queryset = queryset.filter(event_type=event_type)
    return await queryset.order_by("-created_at").offset(offset).limit(limit)


async def get_message(message_id: UUID) -> OutboxMessage:
    message = await OutboxMessage.get_or_none(id=message_id)
    if not message:
        raise NotFoundError(f"Outbox message {message_id} not found.")
    return message


async def get_outbox_stats() -> Dict[str, int]:
    stats = {"total": await OutboxMessage.all().count()}
    for status in MESSAGE_STATUSES:
        stats[status] = await _filter_by_status(OutboxMessage.all(), status).count()
    return stats


async def requeue_message(message_id: UUID) -> OutboxMessage:
    """
    Operator intervention for a message that exhausted its retries (or is
    stuck retrying): resets the attempt counter and makes it due immediately.
    """
    message = await get_message(message_id)
    if message.processed_at is not None:
        raise ValidationError(f"Outbox message {message_id} was already processed.", code="already_processed")

    now = utcnow()
    message.retry_count = 0
    message.error = None
    message.failed_at = None
    message.scheduled_at = now
    await message.save(update_fields=["retry_count", "error", "failed_at", "scheduled_at", "updated_at"])
    log.info("Outbox message %s (%s) requeued by operator.", message.id, message.event_type)
    return message


async def cleanup_processed_messages(days_to_keep: int, now: Optional[datetime] = None) -> int:
    """
    Retention sweep: deletes processed messages older than the cutoff together
    with the subscriber completion rows keyed by their ids. Never touches failed ones.
    """
    cutoff = (now or utcnow()) - timedelta(days=days_to_keep)
    async with in_transaction() as conn:
        expired_ids = await (
            OutboxMessage.filter(processed_at__isnull=False, processed_at__lt=cutoff)
            .using_db(conn)
            .values_list("id", flat=True)
        )
        if not expired_ids:
            return 0

        ledger_deleted = await (
            ProcessedEvent.filter(source__startswith=CONSUMER_SOURCE_PREFIX, event_id__in=[str(i) for i in expired_ids])
            .using_db(conn)
            .delete()
        )
        deleted = await OutboxMessage.filter(id__in=expired_ids).using_db(conn).delete()

    log.info(
        "Cleaned up %d processed outbox messages (%d consumer ledger rows) older than %s.",
        deleted, ledger_deleted, cutoff.isoformat(),
    )
    return deleted
