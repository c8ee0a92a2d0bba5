"""
Customer Order Endpoints

Lookup and cancel by external reference, authorized by the payer e-mail.
"""

from fastapi import APIRouter, Depends, Query

from core.orders.customer import cancel_customer_order, find_customer_order
from core.orders.serializer import build_customer_order
from core.routers.deps import get_db

from ..models import CustomerCancelRequest

lookup_router = APIRouter()


@lookup_router.get("/api/orders/{external_reference}")
async def get_customer_order(external_reference: str, email: str = Query(""), db=Depends(get_db)):
    order = await find_customer_order(db, external_reference, email)
    items = await db.orders.get_items(order.id)
    return build_customer_order(order, items)


@lookup_router.post("/api/orders/{external_reference}/cancel")
async def cancel_order(external_reference: str, body: CustomerCancelRequest, db=Depends(get_db)):
    order = await cancel_customer_order(db, external_reference, body.email)
    return {"ok": True, "order": build_customer_order(order, await db.orders.get_items(order.id))}
