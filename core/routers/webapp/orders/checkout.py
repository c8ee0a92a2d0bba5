"""
Checkout Endpoints

Order creation. Totals are always computed server-side.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from core.orders.checkout import CheckoutService, RequestContext
from core.routers.deps import get_db

from ..models import CreateOrderRequest

checkout_router = APIRouter()


def _client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip() or None
    return request.headers.get("x-real-ip") or (request.client.host if request.client else None)


@checkout_router.post("/api/checkout/orders")
async def create_checkout_order(body: CreateOrderRequest, request: Request, db=Depends(get_db)):
    """Create a PENDING order. 201 with orderId, externalReference and totals."""
    context = RequestContext(
        ip_address=_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    result = await CheckoutService(db).create_order(body, context)
    return JSONResponse(result, status_code=201)
