import logging
from uuid import UUID

from fastapi import APIRouter, Depends, status

from shopilent.core.errors import ForbiddenError
from shopilent.core.security import CurrentUser, Role, ensure_owner_or_staff, get_current_user, require_roles
from shopilent.schemas.order import (
    CancelOrderRequest,
    DeliverOrderRequest,
    OrderDetailResponse,
    OrderRequest,
    OrderStatusUpdate,
    ShipOrderRequest,
)
from shopilent.schemas.payment import PaymentRequest, PaymentResponse
from shopilent.schemas.response import SuccessResponse
from shopilent.services.order_service import (
    cancel_order,
    create_order,
    get_order,
    list_user_orders,
    mark_order_delivered,
    mark_order_shipped,
    update_order_status,
)
from shopilent.services.payment_service import create_payment, list_order_payments

router = APIRouter()
log = logging.getLogger("uvicorn")

require_staff = require_roles(Role.ADMIN, Role.MANAGER)


@router.post("/", status_code=status.HTTP_201_CREATED, response_model=SuccessResponse)
async def create_order_endpoint(request_data: OrderRequest, user: CurrentUser = Depends(get_current_user)):
    """Places a new order for the calling user. Payment is registered separately."""
    items_data = [
        {
            "product_name": item.product_name,
            "quantity": item.quantity,
            "unit_price": item.unit_price,
        }
        for item in request_data.items
    ]
    order = await create_order(user_id=str(user.id), items=items_data, currency=request_data.currency)
    order = await get_order(order.id)
    log.info("Order %s placed for user %s.", order.id, user.id)
    return SuccessResponse(data=OrderDetailResponse.from_order(order).model_dump(mode="json"))


@router.get("/", response_model=SuccessResponse)
async def list_orders_endpoint(user: CurrentUser = Depends(get_current_user)):
    """Order history of the calling user, newest first."""
    orders = await list_user_orders(str(user.id))
    return SuccessResponse(data=[OrderDetailResponse.from_order(o).model_dump(mode="json") for o in orders])


@router.get("/{order_id}", response_model=SuccessResponse)
async def get_order_endpoint(order_id: UUID, user: CurrentUser = Depends(get_current_user)):
    """Fetches details for a specific order."""
    order = await get_order(order_id)
    ensure_owner_or_staff(user, order.user_id)
    return SuccessResponse(data=OrderDetailResponse.from_order(order).model_dump(mode="json"))


@router.post("/{order_id}/cancel", response_model=SuccessResponse)
async def cancel_order_endpoint(
    order_id: UUID,
    payload: CancelOrderRequest = CancelOrderRequest(),
    user: CurrentUser = Depends(get_current_user),
):
    """Cancels the order unless it has already shipped."""
    order = await get_order(order_id)
    ensure_owner_or_staff(user, order.user_id)
    order = await cancel_order(order_id, payload.reason, payload.expected_version)
    log.info("Order %s cancelled by %s.", order_id, user.id)
    return SuccessResponse(data=OrderDetailResponse.from_order(order, include_items=False).model_dump(mode="json"))


@router.put("/{order_id}/status", response_model=SuccessResponse)
async def update_status_endpoint(order_id: UUID, payload: OrderStatusUpdate, user: CurrentUser = Depends(require_staff)):
    """Administrative status override (e.g. 'Processing', 'Shipped')."""
    order = await update_order_status(order_id, payload.status, payload.expected_version)
    log.info("Order %s status set to %s by %s.", order_id, order.status.value, user.id)
    return SuccessResponse(data=OrderDetailResponse.from_order(order, include_items=False).model_dump(mode="json"))


@router.post("/{order_id}/shipped", response_model=SuccessResponse)
async def mark_shipped_endpoint(
    order_id: UUID,
    payload: ShipOrderRequest = ShipOrderRequest(),
    user: CurrentUser = Depends(require_staff),
):
    order = await mark_order_shipped(order_id, payload.tracking_number, payload.expected_version)
    return SuccessResponse(data=OrderDetailResponse.from_order(order, include_items=False).model_dump(mode="json"))


@router.post("/{order_id}/delivered", response_model=SuccessResponse)
async def mark_delivered_endpoint(
    order_id: UUID,
    payload: DeliverOrderRequest = DeliverOrderRequest(),
    user: CurrentUser = Depends(require_staff),
):
    order = await mark_order_delivered(order_id, payload.expected_version)
    return SuccessResponse(data=OrderDetailResponse.from_order(order, include_items=False).model_dump(mode="json"))


@router.post("/{order_id}/payments", status_code=status.HTTP_201_CREATED, response_model=SuccessResponse)
async def create_payment_endpoint(order_id: UUID, payload: PaymentRequest, user: CurrentUser = Depends(get_current_user)):
    """Registers a payment attempt; only the order owner may pay for it."""
    order = await get_order(order_id)
    if str(order.user_id) != str(user.id):
        raise ForbiddenError("Only the order owner can pay for this order.")
    payment = await create_payment(
        order_id=order_id,
        user_id=str(user.id),
        provider=payload.provider,
        method_type=payload.method_type,
        external_reference=payload.external_reference,
    )
    return SuccessResponse(data=PaymentResponse.from_payment(payment).model_dump(mode="json"))


@router.get("/{order_id}/payments", response_model=SuccessResponse)
async def list_payments_endpoint(order_id: UUID, user: CurrentUser = Depends(get_current_user)):
    order = await get_order(order_id)
    ensure_owner_or_staff(user, order.user_id)
    payments = await list_order_payments(order_id)
    return SuccessResponse(data=[PaymentResponse.from_payment(p).model_dump(mode="json") for p in payments])
