from tortoise import fields, models
import uuid

# Ledger source prefixes
WEBHOOK_SOURCE_PREFIX = "webhook:"
CONSUMER_SOURCE_PREFIX = "consumer:"


class ProcessedEvent(models.Model):
    """
    Idempotency ledger. One row per (source, event_id) that has been applied:
    provider webhook events use source 'webhook:<provider>', outbox
    subscribers use 'consumer:<handler>' keyed by the outbox message id.
    """
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    source = fields.CharField(max_length=255)
    event_id = fields.CharField(max_length=255)
    event_type = fields.CharField(max_length=128, null=True)
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "processed_events"
        unique_together = (("source", "event_id"),)
