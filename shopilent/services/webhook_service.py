"""
Payment webhook reconciliation.

verify signature -> parse -> dedupe on provider event id -> apply the payment
transition and write its events to the outbox, all in one transaction. The
ledger row and the state change commit together, so a rolled-back attempt
(e.g. a version conflict) leaves the event free to be applied on redelivery.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Optional
from uuid import UUID

from tortoise.exceptions import IntegrityError
from tortoise.expressions import Q
from tortoise.transactions import in_transaction

from shopilent.core.errors import NotFoundError
from shopilent.events.outbox_utility import add_domain_events
from shopilent.gateways import WebhookResult, get_provider
from shopilent.models.payment import Payment, PaymentStatus
from shopilent.models.processed_event import WEBHOOK_SOURCE_PREFIX, ProcessedEvent

log = logging.getLogger(__name__)

APPLIED = "applied"
DUPLICATE = "duplicate"
IGNORED = "ignored"


@dataclass
class WebhookOutcome:
    event_id: str
    event_type: str
    provider: str
    outcome: str
    message: str
    payment_id: Optional[UUID] = None
    payment_status: Optional[PaymentStatus] = None


async def _find_payment(result: WebhookResult, conn: Any) -> Optional[Payment]:
    if result.transaction_id:
        payment = await (
            Payment.filter(provider=result.provider)
            .filter(Q(external_reference=result.transaction_id) | Q(transaction_id=result.transaction_id))
            .using_db(conn)
            .first()
        )
        if payment:
            return payment
    if result.order_id:
        try:
            order_id = UUID(str(result.order_id))
        except ValueError:
            return None
        # Fall back to the most recent payment attempt for the order
        return await (
            Payment.filter(order_id=order_id, provider=result.provider)
            .order_by("-created_at")
            .using_db(conn)
            .first()
        )
    return None


async def _transition(payment: Payment, result: WebhookResult, conn: Any, **changes) -> str:
    target = result.payment_status
    if payment.status == target:
        return f"Payment already {target.value}"
    if not payment.can_transition_to(target):
        log.warning(
            "Ignoring out-of-order %s for payment %s: %s -> %s is not allowed.",
            result.event_type, payment.id, payment.status.value, target.value,
        )
        return f"Stale event ignored: payment is {payment.status.value}"

    events = payment.transition_to(target, **changes)
    await payment.save_versioned(Payment.STATE_FIELDS, using_db=conn)
    await add_domain_events(events, conn)
    log.info("Payment %s moved to %s by %s %s.", payment.id, target.value, result.event_type, result.event_id)
    return result.processing_message or f"Payment {target.value}"


async def _apply_succeeded(payment: Payment, result: WebhookResult, conn: Any) -> str:
    return await _transition(payment, result, conn, transaction_id=result.transaction_id)


async def _apply_failed(payment: Payment, result: WebhookResult, conn: Any) -> str:
    return await _transition(payment, result, conn, error_message=result.event_data.get("last_payment_error"))


async def _apply_refunded(payment: Payment, result: WebhookResult, conn: Any) -> str:
    return await _transition(payment, result, conn, transaction_id=result.transaction_id)


async def _apply_progress(payment: Payment, result: WebhookResult, conn: Any) -> str:
    return await _transition(payment, result, conn)


async def _apply_dispute(payment: Payment, result: WebhookResult, conn: Any) -> str:
    events = payment.record_dispute(dict(result.event_data))
    if events:
        await payment.save_versioned(Payment.STATE_FIELDS, using_db=conn)
        await add_domain_events(events, conn)
    return result.processing_message


# Normalized event -> state transition handler
TransitionHandler = Callable[[Payment, WebhookResult, Any], Awaitable[str]]
_TRANSITION_HANDLERS: Dict[PaymentStatus, TransitionHandler] = {
    PaymentStatus.SUCCEEDED: _apply_succeeded,
    PaymentStatus.FAILED: _apply_failed,
    PaymentStatus.REFUNDED: _apply_refunded,
    PaymentStatus.REQUIRES_ACTION: _apply_progress,
    PaymentStatus.PROCESSING: _apply_progress,
    PaymentStatus.CANCELED: _apply_progress,
}


def _select_handler(result: WebhookResult) -> Optional[TransitionHandler]:
    if result.payment_status is not None:
        return _TRANSITION_HANDLERS.get(result.payment_status)
    if result.event_data.get("dispute_id"):
        return _apply_dispute
    return None


async def _apply(result: WebhookResult, conn: Any) -> WebhookOutcome:
    outcome = WebhookOutcome(
        event_id=result.event_id,
        event_type=result.event_type,
        provider=result.provider.value,
        outcome=IGNORED,
        message=result.processing_message or "No action required",
    )
    handler = _select_handler(result)
    if handler is None:
        return outcome

    payment = await _find_payment(result, conn)
    if payment is None:
        raise NotFoundError(
            f"No payment matches {result.provider.value} transaction {result.transaction_id or '-'} "
            f"(order {result.order_id or '-'}).",
            code="payment_not_found",
        )

    version_before = payment.version
    outcome.message = await handler(payment, result, conn)
    outcome.payment_id = payment.id
    outcome.payment_status = payment.status
    if payment.version != version_before:
        outcome.outcome = APPLIED
    return outcome


class _AlreadyRecorded(Exception):
    """A concurrent delivery wrote the ledger row for this event first."""


async def _record_event(source: str, result: WebhookResult, conn: Any) -> None:
    try:
        await ProcessedEvent.create(source=source, event_id=result.event_id, event_type=result.event_type, using_db=conn)
    except IntegrityError:
        raise _AlreadyRecorded(result.event_id)


async def process_webhook(
    provider_name: str,
    payload: bytes,
    signature: Optional[str],
    now: Optional[datetime] = None,
) -> WebhookOutcome:
    """
    Verifies and applies one provider webhook exactly once.

    Raises ValidationError (unknown provider / malformed payload),
    UnauthorizedError (bad signature or stale timestamp, before any mutation),
    NotFoundError (no local payment) and ConflictError (concurrent writer).
    """
    provider = get_provider(provider_name)
    provider.verify_signature(payload, signature, now=now)
    result = provider.parse_event(payload)

    source = f"{WEBHOOK_SOURCE_PREFIX}{provider.provider.value}"
    duplicate = WebhookOutcome(
        event_id=result.event_id,
        event_type=result.event_type,
        provider=provider.provider.value,
        outcome=DUPLICATE,
        message="Event already processed",
    )

    # Idempotency Check (fast path; the unique key below settles races)
    if await ProcessedEvent.filter(source=source, event_id=result.event_id).exists():
        log.info("Idempotency: %s event %s already processed.", source, result.event_id)
        return duplicate

    try:
        async with in_transaction() as conn:
            await _record_event(source, result, conn)
            outcome = await _apply(result, conn)
    except _AlreadyRecorded:
        log.info("Idempotency: %s event %s was applied concurrently.", source, result.event_id)
        return duplicate

    log.info("Webhook %s %s (%s): %s - %s", source, result.event_id, result.event_type, outcome.outcome, outcome.message)
    return outcome
