import pytest
from tortoise.exceptions import IntegrityError

from shopilent.core.errors import ConflictError, NotFoundError, UnauthorizedError, ValidationError
from shopilent.events.domain_events import PAYMENT_DISPUTED, PAYMENT_REFUNDED, PAYMENT_SUCCEEDED
from shopilent.models.outbox import OutboxMessage
from shopilent.models.payment import Payment, PaymentStatus
from shopilent.models.processed_event import ProcessedEvent
from shopilent.services import webhook_service
from shopilent.services.webhook_service import APPLIED, DUPLICATE, IGNORED, process_webhook

from conftest import INTENT_ID


async def _payment_events(payment_id):
    return await OutboxMessage.filter(aggregate_id=payment_id).values_list("event_type", flat=True)


async def test_succeeded_webhook_updates_payment_and_writes_outbox(payment, stripe_webhook):
    payload, signature = stripe_webhook(
        "evt_1", "payment_intent.succeeded", {"id": INTENT_ID, "metadata": {"orderId": str(payment.order_id)}}
    )

    outcome = await process_webhook("stripe", payload, signature)

    assert outcome.outcome == APPLIED
    assert outcome.payment_id == payment.id
    assert outcome.payment_status == PaymentStatus.SUCCEEDED

    stored = await Payment.get(id=payment.id)
    assert stored.status == PaymentStatus.SUCCEEDED
    assert stored.transaction_id == INTENT_ID
    assert stored.processed_at is not None
    assert stored.version == payment.version + 1
    assert PAYMENT_SUCCEEDED in await _payment_events(payment.id)
    assert await ProcessedEvent.filter(source="webhook:stripe", event_id="evt_1").exists()


async def test_replayed_event_leaves_payment_unchanged(payment, stripe_webhook):
    payload, signature = stripe_webhook("evt_1", "payment_intent.succeeded", {"id": INTENT_ID})

    first = await process_webhook("stripe", payload, signature)
    after_first = await Payment.get(id=payment.id)
    outbox_count = await OutboxMessage.all().count()

    second = await process_webhook("stripe", payload, signature)
    after_second = await Payment.get(id=payment.id)

    assert first.outcome == APPLIED
    assert second.outcome == DUPLICATE
    assert after_second.version == after_first.version
    assert after_second.status == PaymentStatus.SUCCEEDED
    assert await OutboxMessage.all().count() == outbox_count


async def test_out_of_order_event_is_recorded_and_ignored(payment, stripe_webhook):
    await process_webhook("stripe", *stripe_webhook("evt_1", "payment_intent.succeeded", {"id": INTENT_ID}))

    late_failure = stripe_webhook(
        "evt_0", "payment_intent.payment_failed", {"id": INTENT_ID, "last_payment_error": {"message": "declined"}}
    )
    outcome = await process_webhook("stripe", *late_failure)

    assert outcome.outcome == IGNORED
    stored = await Payment.get(id=payment.id)
    assert stored.status == PaymentStatus.SUCCEEDED
    assert stored.error_message is None
    assert await ProcessedEvent.filter(source="webhook:stripe", event_id="evt_0").exists()


async def test_failed_payment_records_error(payment, stripe_webhook):
    outcome = await process_webhook(
        "stripe",
        *stripe_webhook("evt_f", "payment_intent.payment_failed", {"id": INTENT_ID, "last_payment_error": {"message": "Card declined"}}),
    )

    assert outcome.outcome == APPLIED
    stored = await Payment.get(id=payment.id)
    assert stored.status == PaymentStatus.FAILED
    assert stored.error_message == "Card declined"


async def test_charge_refund_after_success(payment, stripe_webhook):
    await process_webhook("stripe", *stripe_webhook("evt_1", "payment_intent.succeeded", {"id": INTENT_ID}))
    outcome = await process_webhook(
        "stripe", *stripe_webhook("evt_2", "charge.refunded", {"id": "ch_1", "payment_intent": INTENT_ID})
    )

    assert outcome.outcome == APPLIED
    assert (await Payment.get(id=payment.id)).status == PaymentStatus.REFUNDED
    assert PAYMENT_REFUNDED in await _payment_events(payment.id)


async def test_dispute_is_recorded_once(payment, stripe_webhook):
    dispute = {"id": "dp_1", "charge": "ch_1", "payment_intent": INTENT_ID, "reason": "fraudulent", "amount": 2500}

    first = await process_webhook("stripe", *stripe_webhook("evt_d1", "charge.dispute.created", dispute))
    # Same dispute delivered under a different event id
    second = await process_webhook("stripe", *stripe_webhook("evt_d2", "charge.dispute.created", dispute))

    stored = await Payment.get(id=payment.id)
    assert first.outcome == APPLIED
    assert second.outcome == IGNORED
    assert stored.status == PaymentStatus.PENDING
    assert [d["dispute_id"] for d in stored.metadata["disputes"]] == ["dp_1"]
    assert list(await _payment_events(payment.id)).count(PAYMENT_DISPUTED) == 1


async def test_payment_found_through_order_metadata(payment, stripe_webhook):
    obj = {"id": "pi_replaced", "metadata": {"orderId": str(payment.order_id)}}
    outcome = await process_webhook("stripe", *stripe_webhook("evt_1", "payment_intent.processing", obj))

    assert outcome.payment_id == payment.id
    assert (await Payment.get(id=payment.id)).status == PaymentStatus.PROCESSING


async def test_unhandled_event_type_is_ignored(db, stripe_webhook):
    outcome = await process_webhook("stripe", *stripe_webhook("evt_c", "customer.created", {"id": "cus_1"}))

    assert outcome.outcome == IGNORED
    assert await ProcessedEvent.filter(event_id="evt_c").exists()


async def test_bad_signature_is_rejected_before_any_mutation(payment, stripe_webhook):
    payload, signature = stripe_webhook("evt_1", "payment_intent.succeeded", {"id": INTENT_ID})
    tampered = payload.replace(b"payment_intent.succeeded", b"payment_intent.canceled")

    with pytest.raises(UnauthorizedError):
        await process_webhook("stripe", tampered, signature)

    stored = await Payment.get(id=payment.id)
    assert stored.status == PaymentStatus.PENDING
    assert stored.version == payment.version
    assert not await ProcessedEvent.all().exists()


async def test_unknown_provider_is_a_validation_error(db, stripe_webhook):
    with pytest.raises(ValidationError):
        await process_webhook("square", *stripe_webhook("evt_1", "payment_intent.succeeded", {"id": INTENT_ID}))


async def test_unknown_payment_is_not_found_and_not_recorded(db, stripe_webhook):
    with pytest.raises(NotFoundError):
        await process_webhook("stripe", *stripe_webhook("evt_x", "payment_intent.succeeded", {"id": "pi_unknown"}))

    # Rolled back with the transaction, so the provider's retry can still apply it
    assert not await ProcessedEvent.filter(event_id="evt_x").exists()


async def test_version_conflict_rolls_back_the_ledger_row(payment, stripe_webhook, monkeypatch):
    find_payment = webhook_service._find_payment

    async def find_then_lose_race(result, conn):
        found = await find_payment(result, conn)
        # Another writer commits a newer version between read and write
        await Payment.filter(id=found.id).using_db(conn).update(version=found.version + 1)
        return found

    monkeypatch.setattr(webhook_service, "_find_payment", find_then_lose_race)

    with pytest.raises(ConflictError) as exc:
        await process_webhook("stripe", *stripe_webhook("evt_v", "payment_intent.succeeded", {"id": INTENT_ID}))

    assert exc.value.status_code == 409
    assert not await ProcessedEvent.filter(event_id="evt_v").exists()
    stored = await Payment.get(id=payment.id)
    assert stored.status == PaymentStatus.PENDING
    assert stored.version == payment.version


class _ConcurrentDelivery:
    """Fast-path lookup that misses while a concurrent delivery records the event."""

    def __init__(self, event_id):
        self.event_id = event_id

    async def exists(self):
        await ProcessedEvent.create(source="webhook:stripe", event_id=self.event_id)
        return False


async def test_concurrent_delivery_is_reported_as_duplicate(payment, stripe_webhook, monkeypatch):
    monkeypatch.setattr(ProcessedEvent, "filter", lambda *args, **kwargs: _ConcurrentDelivery("evt_r"))

    outcome = await process_webhook("stripe", *stripe_webhook("evt_r", "payment_intent.succeeded", {"id": INTENT_ID}))
    monkeypatch.undo()

    assert outcome.outcome == DUPLICATE
    assert await ProcessedEvent.filter(event_id="evt_r").count() == 1
    stored = await Payment.get(id=payment.id)
    assert stored.status == PaymentStatus.PENDING
    assert stored.version == payment.version
    assert PAYMENT_SUCCEEDED not in await _payment_events(payment.id)


async def test_integrity_error_outside_the_ledger_insert_propagates(payment, stripe_webhook, monkeypatch):
    async def failing_outbox_write(events, conn):
        raise IntegrityError("duplicate outbox key")

    monkeypatch.setattr(webhook_service, "add_domain_events", failing_outbox_write)

    with pytest.raises(IntegrityError):
        await process_webhook("stripe", *stripe_webhook("evt_i", "payment_intent.succeeded", {"id": INTENT_ID}))

    assert not await ProcessedEvent.filter(event_id="evt_i").exists()
    assert (await Payment.get(id=payment.id)).status == PaymentStatus.PENDING
