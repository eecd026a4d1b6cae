import uuid

import pytest

from shopilent.core.errors import ConflictError, NotFoundError, ValidationError
from shopilent.events.domain_events import PAYMENT_CREATED, PAYMENT_STATUS_CHANGED, PAYMENT_SUCCEEDED
from shopilent.models.outbox import OutboxMessage
from shopilent.models.payment import PaymentProvider, PaymentStatus, can_transition
from shopilent.services.order_service import cancel_order
from shopilent.services.payment_service import create_payment, get_payment, list_order_payments

from conftest import CUSTOMER_ID, INTENT_ID


@pytest.mark.parametrize(
    "current,target,allowed",
    [
        (PaymentStatus.PENDING, PaymentStatus.SUCCEEDED, True),
        (PaymentStatus.PROCESSING, PaymentStatus.REQUIRES_ACTION, True),
        (PaymentStatus.FAILED, PaymentStatus.SUCCEEDED, True),
        (PaymentStatus.SUCCEEDED, PaymentStatus.REFUNDED, True),
        (PaymentStatus.SUCCEEDED, PaymentStatus.FAILED, False),
        (PaymentStatus.REFUNDED, PaymentStatus.SUCCEEDED, False),
        (PaymentStatus.CANCELED, PaymentStatus.PENDING, False),
        (PaymentStatus.PENDING, PaymentStatus.REFUNDED, False),
    ],
)
def test_status_transitions_only_move_forward(current, target, allowed):
    assert can_transition(current, target) is allowed


async def test_create_payment_charges_the_order_total(order):
    payment = await create_payment(order.id, str(CUSTOMER_ID), PaymentProvider.STRIPE, external_reference="pi_new")

    assert payment.amount == order.total_amount
    assert payment.currency == order.currency
    assert payment.status == PaymentStatus.PENDING
    assert payment.user_id == str(CUSTOMER_ID)
    events = await OutboxMessage.filter(aggregate_id=payment.id).values_list("event_type", flat=True)
    assert list(events) == [PAYMENT_CREATED]
    assert [p.id for p in await list_order_payments(order.id)] == [payment.id]


async def test_duplicate_provider_reference_is_a_conflict(payment):
    with pytest.raises(ConflictError):
        await create_payment(payment.order_id, str(CUSTOMER_ID), PaymentProvider.STRIPE, external_reference=INTENT_ID)


async def test_cancelled_order_cannot_be_paid(order):
    await cancel_order(order.id, "no longer needed")

    with pytest.raises(ValidationError):
        await create_payment(order.id, str(CUSTOMER_ID), PaymentProvider.STRIPE)


async def test_unknown_order_or_payment_is_not_found(db):
    with pytest.raises(NotFoundError):
        await create_payment(uuid.uuid4(), str(CUSTOMER_ID), PaymentProvider.STRIPE)
    with pytest.raises(NotFoundError):
        await get_payment(uuid.uuid4())


async def test_transition_emits_events_and_same_status_is_noop(payment):
    events = payment.transition_to(PaymentStatus.SUCCEEDED, transaction_id="ch_1")

    assert [e.event_type for e in events] == [PAYMENT_STATUS_CHANGED, PAYMENT_SUCCEEDED]
    assert payment.processed_at is not None
    assert payment.transition_to(PaymentStatus.SUCCEEDED) == []
    with pytest.raises(ValidationError):
        payment.transition_to(PaymentStatus.FAILED)
