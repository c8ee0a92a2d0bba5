"""Fulfillment Workers.

Hands a ready order to the print-on-demand partner. QStash retries on
non-2xx; the handoff itself is a no-op for orders already sent.
"""

from typing import Any

from fastapi import APIRouter, Depends, Request

from core.errors import OrderNotFoundError
from core.logging import get_logger
from core.orders.fulfillment import FulfillmentService
from core.queue import verify_qstash_request
from core.routers.deps import get_db, get_fulfillment

logger = get_logger(__name__)

fulfillment_router = APIRouter()


@fulfillment_router.post("/fulfill-order")
async def worker_fulfill_order(
    request: Request, db=Depends(get_db), client=Depends(get_fulfillment)
) -> dict[str, Any]:
    """QStash Worker: create the partner order for a READY_FOR_FULFILLMENT order."""
    data = await verify_qstash_request(request)
    order_id = data.get("order_id")
    if not order_id:
        return {"ok": False, "error": "order_id required"}

    try:
        result = await FulfillmentService(db, client).handoff(str(order_id))
    except OrderNotFoundError:
        # Nothing to retry
        logger.error(f"fulfill-order: order {order_id} not found")
        return {"ok": False, "error": "ORDER_NOT_FOUND"}

    return {"ok": True, **result.to_dict()}
