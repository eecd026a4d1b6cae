import logging
from dataclasses import asdict
from uuid import UUID

from fastapi import APIRouter, Depends, Request

from shopilent.core.errors import ValidationError
from shopilent.core.security import CurrentUser, ensure_owner_or_staff, get_current_user
from shopilent.gateways import get_provider
from shopilent.schemas.payment import PaymentResponse, WebhookResponse
from shopilent.schemas.response import SuccessResponse
from shopilent.services.payment_service import get_payment
from shopilent.services.webhook_service import process_webhook

router = APIRouter()
log = logging.getLogger("uvicorn")


@router.post("/webhooks/{provider}/process", response_model=SuccessResponse)
async def process_webhook_endpoint(provider: str, request: Request):
    """
    Receives a payment provider webhook. Anonymous: authenticity comes from the
    provider signature header, which is checked against the raw body.
    """
    gateway = get_provider(provider)
    payload = await request.body()
    if not payload:
        raise ValidationError("Webhook body is empty.", code="invalid_payload")

    signature = request.headers.get(gateway.signature_header)
    outcome = await process_webhook(provider, payload, signature)
    return SuccessResponse(data=WebhookResponse(**asdict(outcome)).model_dump(mode="json"))


@router.get("/{payment_id}", response_model=SuccessResponse)
async def get_payment_endpoint(payment_id: UUID, user: CurrentUser = Depends(get_current_user)):
    payment = await get_payment(payment_id)
    ensure_owner_or_staff(user, payment.user_id)
    return SuccessResponse(data=PaymentResponse.from_payment(payment).model_dump(mode="json"))
