"""
Admin Orders Router

Order detail with the full transition log, manual fulfillment actions,
cancel and the risk review queue.
"""
from fastapi import APIRouter, Depends, Query

from core.errors import OrderNotFoundError
from core.logging import get_logger
from core.orders.constants import OrderStatus, TransitionActor
from core.orders.fulfillment import FulfillmentService
from core.orders.serializer import build_admin_order, build_risk_review_row
from core.orders.status_service import OrderStatusService
from core.routers.deps import get_db, get_fulfillment

from .models import AdminCancelRequest, MarkSentRequest

logger = get_logger(__name__)

router = APIRouter(tags=["admin-orders"])


async def _load(db, order_id: str):
    order = await db.orders.get_by_id(order_id)
    if order is None:
        raise OrderNotFoundError(order_id=order_id)
    return order


# ==================== ORDERS ====================

@router.get("/orders/risk-review")
async def admin_risk_review(limit: int = Query(50, ge=1, le=200), db=Depends(get_db)):
    """Orders flagged at creation, newest first. Observational only."""
    orders = await db.orders.list_risk_flagged(limit)
    return {"orders": [build_risk_review_row(order) for order in orders], "count": len(orders)}


@router.get("/orders/{order_id}")
async def admin_get_order(order_id: str, db=Depends(get_db)):
    """Full order record, items and transition log with gateway snapshots."""
    order = await _load(db, order_id)
    items = await db.get_order_items(order.id)
    history = await db.get_order_history(order.id)
    return build_admin_order(order, items, history)


@router.post("/orders/{order_id}/mark-sent-to-fulfillment")
async def admin_mark_sent(
    order_id: str, body: MarkSentRequest, db=Depends(get_db), client=Depends(get_fulfillment)
):
    """Record an order placed with the partner by hand."""
    service = FulfillmentService(db, client)
    order = await service.mark_sent_manually(order_id, body.fulfillment_order_id, body.note)
    return {"ok": True, "status": order.status.value, "fulfillment_order_id": order.fulfillment_order_id}


@router.post("/orders/{order_id}/retry-fulfillment")
async def admin_retry_fulfillment(order_id: str, db=Depends(get_db), client=Depends(get_fulfillment)):
    """
    Re-run the readiness check (for orders stuck in PAID) and the handoff.
    """
    service = FulfillmentService(db, client)
    order = await _load(db, order_id)
    if order.status == OrderStatus.PAID:
        ready = await service.status_service.ensure_ready_for_fulfillment(order, TransitionActor.ADMIN)
        if not ready.applied:
            return {"ok": False, "status": order.status.value, "note": ready.note}
    result = await service.handoff(order_id, actor=TransitionActor.ADMIN)
    return {"ok": result.handed_off, **result.to_dict()}


@router.post("/orders/{order_id}/cancel")
async def admin_cancel_order(order_id: str, body: AdminCancelRequest | None = None, db=Depends(get_db)):
    order = await _load(db, order_id)
    if order.gateway_payment_id:
        logger.warning(f"Admin cancelling order {order.id} with attached payment {order.gateway_payment_id}")
    reason = (body.reason if body else None) or "canceled by admin"
    result = await OrderStatusService(db).transition(
        order, OrderStatus.CANCELED, TransitionActor.ADMIN, reason
    )
    return {"ok": True, "status": result.order.status.value}
