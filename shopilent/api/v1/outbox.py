import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from shopilent.core.security import CurrentUser, Role, require_roles
from shopilent.schemas.outbox import OutboxMessageResponse, OutboxStatsResponse
from shopilent.schemas.response import SuccessResponse
from shopilent.services.outbox_service import get_message, get_outbox_stats, list_messages, requeue_message

router = APIRouter()
log = logging.getLogger("uvicorn")

require_admin = require_roles(Role.ADMIN)


@router.get("/messages", response_model=SuccessResponse)
async def list_messages_endpoint(
    status: Optional[str] = Query(default=None, description="pending | retrying | processed | failed"),
    event_type: Optional[str] = None,
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    user: CurrentUser = Depends(require_admin),
):
    messages = await list_messages(status=status, event_type=event_type, limit=limit, offset=offset)
    return SuccessResponse(data=[OutboxMessageResponse.from_message(m).model_dump(mode="json") for m in messages])


@router.get("/messages/{message_id}", response_model=SuccessResponse)
async def get_message_endpoint(message_id: UUID, user: CurrentUser = Depends(require_admin)):
    message = await get_message(message_id)
    return SuccessResponse(data=OutboxMessageResponse.from_message(message).model_dump(mode="json"))


@router.get("/stats", response_model=SuccessResponse)
async def outbox_stats_endpoint(user: CurrentUser = Depends(require_admin)):
    """Message counts per lifecycle status."""
    stats = await get_outbox_stats()
    return SuccessResponse(data=OutboxStatsResponse(**stats).model_dump())


@router.post("/messages/{message_id}/requeue", response_model=SuccessResponse)
async def requeue_message_endpoint(message_id: UUID, user: CurrentUser = Depends(require_admin)):
    """Puts a failed message back into the drain with its retry count reset."""
    message = await requeue_message(message_id)
    log.info("Outbox message %s requeued by %s.", message_id, user.id)
    return SuccessResponse(data=OutboxMessageResponse.from_message(message).model_dump(mode="json"))
