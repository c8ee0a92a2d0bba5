"""
Fulfillment handoff for ready orders.

READY_FOR_FULFILLMENT / FAILED_FULFILLMENT -> partner order -> SENT_TO_FULFILLMENT,
or READY_FOR_FULFILLMENT -> FAILED_FULFILLMENT when the partner refuses.
Triggered by the QStash worker after the readiness check, by admins on retry,
or directly when the queue is not available.
"""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Optional

from core.errors import FulfillmentError, InvalidTransitionError, OrderNotFoundError
from core.logging import format_fields, get_logger
from core.orders.constants import OrderStatus, TransitionActor
from core.orders.status_service import OrderStatusService, run_with_stale_retry
from core.queue import WorkerEndpoints, is_queue_configured, publish_to_worker
from core.services.fulfillment import FulfillmentClient, PartnerOrder, get_fulfillment_client
from core.services.models import Order
from core.services.notifications import AlertSeverity

logger = get_logger(__name__)

HANDOFF_STATES = frozenset({OrderStatus.READY_FOR_FULFILLMENT, OrderStatus.FAILED_FULFILLMENT})

# fulfillment_status while a handoff holds the order
HANDOFF_IN_PROGRESS = "handoff_in_progress"
# A claim older than this is treated as abandoned by a crashed worker
HANDOFF_LEASE = timedelta(minutes=10)


@dataclass
class HandoffResult:
    order_id: str
    status: OrderStatus
    handed_off: bool
    fulfillment_order_id: Optional[str] = None
    note: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "order_id": self.order_id,
            "status": self.status.value,
            "handed_off": self.handed_off,
            "fulfillment_order_id": self.fulfillment_order_id,
            "note": self.note,
        }


class FulfillmentService:
    """Moves ready orders to the fulfillment partner."""

    def __init__(
        self,
        db,
        client: Optional[FulfillmentClient] = None,
        status_service: Optional[OrderStatusService] = None,
    ):
        self.db = db
        self.client = client or get_fulfillment_client()
        self.status_service = status_service or OrderStatusService(db)

    async def _load(self, order_id: str) -> Order:
        order = await self.db.orders.get_by_id(order_id)
        if order is None:
            raise OrderNotFoundError(order_id=order_id)
        return order

    async def handoff(
        self, order_id: str, actor: TransitionActor | str = TransitionActor.FULFILLMENT_WORKER
    ) -> HandoffResult:
        order = await self._load(order_id)

        if order.status not in HANDOFF_STATES:
            logger.info(
                "Fulfillment handoff skipped "
                + format_fields(order_id=order.id, status=order.status)
            )
            return HandoffResult(order.id, order.status, False, order.fulfillment_order_id, "not_ready")

        if not self.client.enabled:
            logger.info(f"Fulfillment handoff skipped: partner order creation disabled, order={order.id}")
            return HandoffResult(order.id, order.status, False, None, "disabled")

        if _claim_is_held(order):
            logger.info(f"Fulfillment handoff skipped: already in progress, order={order.id}")
            return HandoffResult(order.id, order.status, False, None, HANDOFF_IN_PROGRESS)

        items = await self.db.orders.get_items(order.id)
        claimed = await self.db.orders.claim_fulfillment_handoff(
            order.id, order.version, [s.value for s in HANDOFF_STATES], HANDOFF_IN_PROGRESS
        )
        if claimed is None:
            logger.info(
                "Fulfillment handoff skipped: order moved concurrently "
                + format_fields(order_id=order.id, version=order.version)
            )
            return HandoffResult(order.id, order.status, False, None, HANDOFF_IN_PROGRESS)

        try:
            partner = await self.client.create_order(claimed, items)
        except FulfillmentError as e:
            return await self._record_failure(claimed, actor, e)

        return await self._record_success(order.id, actor, partner)

    async def _record_success(
        self, order_id: str, actor: TransitionActor | str, partner: PartnerOrder
    ) -> HandoffResult:
        async def apply(current: Order):
            if current.status == OrderStatus.SENT_TO_FULFILLMENT:
                return current
            result = await self.status_service.transition(
                current,
                OrderStatus.SENT_TO_FULFILLMENT,
                actor,
                "handed off to fulfillment partner",
                fulfillment_order_id=partner.id,
                fulfillment_status=partner.status,
            )
            return result.order

        updated = await run_with_stale_retry(lambda: self.db.orders.get_by_id(order_id), apply)
        logger.info(
            "Fulfillment handoff succeeded "
            + format_fields(order_id=order_id, fulfillment_order_id=partner.id)
        )
        return HandoffResult(order_id, updated.status, True, updated.fulfillment_order_id)

    async def _record_failure(
        self, order: Order, actor: TransitionActor | str, error: FulfillmentError
    ) -> HandoffResult:
        message = error.message[:255]
        logger.error(
            "Fulfillment handoff failed " + format_fields(order_id=order.id, error=message)
        )
        if order.status == OrderStatus.READY_FOR_FULFILLMENT:
            result = await self.status_service.transition(
                order,
                OrderStatus.FAILED_FULFILLMENT,
                actor,
                "fulfillment partner refused the order",
                fulfillment_status=message,
            )
            order = result.order
        else:
            released = await self.db.orders.set_fulfillment_status(order.id, order.version, message)
            order = released or order
            await self.status_service.notifier.alert_admins(
                "Fulfillment retry failed",
                AlertSeverity.WARNING,
                order_id=order.id,
                error=message,
            )
        return HandoffResult(order.id, order.status, False, None, message)

    async def mark_sent_manually(
        self, order_id: str, fulfillment_order_id: str, note: Optional[str] = None
    ) -> Order:
        """
        Admin override: the order was placed with the partner by hand.

        Only allowed from READY_FOR_FULFILLMENT or FAILED_FULFILLMENT.
        """
        order = await self._load(order_id)
        if order.status not in HANDOFF_STATES:
            raise InvalidTransitionError(
                order.status.value, OrderStatus.SENT_TO_FULFILLMENT.value, order_id=order.id
            )
        result = await self.status_service.transition(
            order,
            OrderStatus.SENT_TO_FULFILLMENT,
            TransitionActor.ADMIN,
            note or "marked as sent by admin",
            fulfillment_order_id=fulfillment_order_id,
            fulfillment_status="sent_manually",
        )
        return result.order


def _claim_is_held(order: Order, now: Optional[datetime] = None) -> bool:
    if order.fulfillment_status != HANDOFF_IN_PROGRESS:
        return False
    if order.updated_at is None:
        return True
    now = now or datetime.now(UTC)
    claimed_at = order.updated_at if order.updated_at.tzinfo else order.updated_at.replace(tzinfo=UTC)
    return now - claimed_at < HANDOFF_LEASE


async def enqueue_fulfillment_handoff(order: Order, service: Optional[FulfillmentService] = None) -> dict:
    """
    Schedule the handoff of a ready order.

    QStash job deduplicated per order; direct call when the queue is unavailable.
    Never raises.
    """
    if is_queue_configured():
        result = await publish_to_worker(
            WorkerEndpoints.FULFILL_ORDER,
            {"order_id": order.id},
            deduplication_id=f"fulfill-{order.id}",
        )
        if result.get("queued"):
            return result
        logger.warning(f"Fulfillment enqueue failed for {order.id}, handing off directly")

    try:
        if service is None:
            from core.services.database import get_database_async

            service = FulfillmentService(await get_database_async())
        handoff = await service.handoff(order.id)
        return {"queued": False, "direct": True, **handoff.to_dict()}
    except Exception as e:
        logger.error(f"Direct fulfillment handoff failed for {order.id}: {e}", exc_info=True)
        return {"queued": False, "direct": True, "error": str(e)}
