# scripts/seed_data.py
import asyncio
import uuid

from shopilent.core.db import close_db, init_db
from shopilent.models.payment import PaymentProvider
from shopilent.services.order_service import create_order
from shopilent.services.payment_service import create_payment

DEMO_USER_ID = uuid.UUID("00000000-0000-4000-8000-000000000001")


async def seed():
    # One order for the demo customer
    order = await create_order(
        user_id=str(DEMO_USER_ID),
        items=[
            {"product_name": "Mechanical Keyboard", "quantity": 1, "unit_price": "89.00"},
            {"product_name": "USB-C Cable", "quantity": 2, "unit_price": "9.50"},
        ],
        currency="USD",
    )
    print("Order:", order.id, "total", order.total_amount)

    # A pending Stripe payment whose intent id the webhook will reference
    intent_id = f"pi_demo_{order.id.hex[:16]}"
    payment = await create_payment(
        order_id=order.id,
        user_id=str(DEMO_USER_ID),
        provider=PaymentProvider.STRIPE,
        external_reference=intent_id,
    )
    print("Payment:", payment.id, "intent", intent_id)


async def main():
    await init_db()
    try:
        await seed()
    finally:
        await close_db()


if __name__ == "__main__":
    asyncio.run(main())
