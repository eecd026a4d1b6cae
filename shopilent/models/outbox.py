from tortoise import fields, models
import uuid


class OutboxMessage(models.Model):
    """
    The Outbox table stores events atomically with the database transaction.
    This is the core of the Transactional Outbox Pattern.

    Lifecycle: pending -> processed, or pending -> retrying (error set,
    rescheduled) -> ... -> failed (failed_at set once retries are exhausted).
    Failed messages stay in the table until an operator requeues them.
    """
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    event_type = fields.CharField(max_length=128)  # e.g., 'payment.succeeded.v1'
    aggregate_type = fields.CharField(max_length=64)  # e.g., 'order', 'payment'
    aggregate_id = fields.UUIDField(null=True)  # ID of the entity that generated the event
    payload = fields.JSONField()  # The actual event data
    processed_at = fields.DatetimeField(null=True)
    error = fields.TextField(null=True)
    retry_count = fields.IntField(default=0)
    scheduled_at = fields.DatetimeField()
    failed_at = fields.DatetimeField(null=True)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "outbox_messages"
        indexes = [
            ("processed_at", "failed_at", "scheduled_at"),  # Drain query
            ("event_type",),
        ]

    @property
    def status(self) -> str:
        if self.processed_at is not None:
            return "processed"
        if self.failed_at is not None:
            return "failed"
        if self.error:
            return "retrying"
        return "pending"
