"""
Payment ingestion: one path for every observation of a gateway payment.

Webhook notifications, reconciliation, abandonment and synchronous payment
creation all end up in `PaymentIngestionService.ingest_payment`, so a payment
is judged the same way whoever saw it first. The webhook path adds durable
event dedup in front of it.

Webhook flow:
    1. record event id (duplicate -> 200, storage failure -> 503)
    2. non-payment events -> ignored
    3. re-fetch the payment from the gateway (body status is never trusted)
    4. map gateway status -> target order status
    5. find the order by external_reference, drive the state machine
    6. after PAID: readiness check, then fulfillment handoff
    7. mark the event processed / ignored / failed, always 200
"""

from dataclasses import dataclass, field
from typing import Any, Optional

from core.errors import (
    GatewayRejectedError,
    GatewayUnavailableError,
    InvalidTransitionError,
    OrderEngineError,
    StaleWriteError,
)
from core.logging import format_fields, get_logger, sanitize_id_for_logging
from core.orders.constants import OrderStatus, TransitionActor
from core.orders.fulfillment import enqueue_fulfillment_handoff
from core.orders.status_service import (
    OrderStatusService,
    TransitionResult,
    run_with_stale_retry,
)
from core.payments.constants import WEBHOOK_PROVIDER
from core.payments.status_mapper import map_gateway_status
from core.services.models import Order
from core.services.notifications import AlertSeverity
from core.services.payments import GatewayPayment, PaymentGatewayClient, get_gateway_client
from core.services.repositories import WebhookEventStatus

logger = get_logger(__name__)


class IngestionOutcome:
    """What ingesting one payment observation did to its order."""

    APPLIED = "applied"  # a transition was stored
    UNCHANGED = "unchanged"  # nothing to do (in flight, replay)
    IGNORED = "ignored"  # no matching order, or payment belongs elsewhere
    INVALID = "invalid"  # gateway state contradicts a final order state


@dataclass
class IngestionResult:
    outcome: str
    order_id: Optional[str] = None
    from_status: Optional[OrderStatus] = None
    to_status: Optional[OrderStatus] = None
    note: Optional[str] = None
    order: Optional[Order] = field(default=None, repr=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "outcome": self.outcome,
            "order_id": self.order_id,
            "from": self.from_status.value if self.from_status else None,
            "to": self.to_status.value if self.to_status else None,
            "note": self.note,
        }


@dataclass
class WebhookNotification:
    """A gateway notification as received over HTTP."""

    body: dict[str, Any]
    request_id: Optional[str] = None
    query_data_id: Optional[str] = None
    query_type: Optional[str] = None

    @property
    def event_type(self) -> str:
        return str(self.body.get("type") or self.body.get("topic") or self.query_type or "unknown")

    @property
    def action(self) -> str:
        return str(self.body.get("action") or "")

    @property
    def data_id(self) -> Optional[str]:
        if self.query_data_id:
            return str(self.query_data_id)
        data = self.body.get("data")
        if isinstance(data, dict) and data.get("id") is not None:
            return str(data["id"])
        return None

    @property
    def event_id(self) -> str:
        """Notification id, else x-request-id, else type:action:data.id."""
        if self.body.get("id") is not None:
            return str(self.body["id"])
        if self.request_id:
            return self.request_id
        return f"{self.event_type}:{self.action}:{self.data_id or ''}"


@dataclass
class WebhookOutcome:
    status_code: int
    body: dict[str, Any]


class PaymentIngestionService:
    """Applies gateway truth to orders."""

    def __init__(
        self,
        db,
        gateway: Optional[PaymentGatewayClient] = None,
        status_service: Optional[OrderStatusService] = None,
        fulfillment_enqueuer=enqueue_fulfillment_handoff,
    ):
        self.db = db
        self.gateway = gateway or get_gateway_client()
        self.status_service = status_service or OrderStatusService(db)
        self.enqueue_fulfillment = fulfillment_enqueuer

    @property
    def notifier(self):
        return self.status_service.notifier

    # ==================== SHARED PATH ====================

    async def ingest_payment(
        self,
        payment: GatewayPayment,
        actor: TransitionActor | str,
        order: Optional[Order] = None,
    ) -> IngestionResult:
        """Drive the order owning `payment` to the state the gateway reports."""
        target = map_gateway_status(payment.status)

        if order is None:
            order = await self._find_order(payment)
        if order is None:
            logger.warning(
                "Payment for unknown order ignored "
                + format_fields(
                    payment_id=sanitize_id_for_logging(payment.id),
                    external_reference=payment.external_reference,
                )
            )
            return IngestionResult(IngestionOutcome.IGNORED, note="order_not_found")

        owner = await self.db.orders.get_by_gateway_payment_id(payment.id)
        if owner is not None and owner.id != order.id:
            logger.error(
                "Payment already attached to a different order "
                + format_fields(payment_id=payment.id, order_id=order.id, owner_id=owner.id)
            )
            return IngestionResult(
                IngestionOutcome.IGNORED, order.id, note="payment_attached_to_other_order"
            )

        if order.gateway_payment_id and order.gateway_payment_id != payment.id:
            return await self._foreign_payment(order, payment, target)

        if target is None:
            await self._attach_in_flight(order, payment)
            return IngestionResult(
                IngestionOutcome.UNCHANGED, order.id, order.status, order.status, note=payment.status
            )

        try:
            result = await run_with_stale_retry(
                lambda: self.db.orders.get_by_id(order.id),
                lambda current: self._apply(current, payment, target, actor),
            )
        except InvalidTransitionError as e:
            await self._report_contradiction(order, payment, e)
            return IngestionResult(
                IngestionOutcome.INVALID, order.id, order.status, target, note=e.message
            )

        if result.order.status == OrderStatus.PAID:
            await self._after_paid(result.order, actor)

        return IngestionResult(
            IngestionOutcome.APPLIED if result.applied else IngestionOutcome.UNCHANGED,
            result.order.id,
            result.from_status,
            result.to_status,
            note=result.note,
            order=result.order,
        )

    async def _find_order(self, payment: GatewayPayment) -> Optional[Order]:
        if payment.external_reference:
            order = await self.db.orders.get_by_external_reference(payment.external_reference)
            if order is not None:
                return order
        return await self.db.orders.get_by_gateway_payment_id(payment.id)

    async def _apply(
        self,
        order: Order,
        payment: GatewayPayment,
        target: OrderStatus,
        actor: TransitionActor | str,
    ) -> TransitionResult:
        snapshot = payment.snapshot()
        if target == OrderStatus.PAID:
            return await self.status_service.mark_payment_confirmed(
                order, payment.id, actor, gateway_status=payment.status, snapshot=snapshot
            )
        if order.status == target:
            return TransitionResult(order, False, order.status, target, note="already_in_state")
        return await self.status_service.transition(
            order,
            target,
            actor,
            f"gateway status {payment.status}",
            gateway_payment_id=payment.id,
            gateway_status=payment.status,
            snapshot=snapshot,
        )

    async def _after_paid(self, order: Order, actor: TransitionActor | str) -> None:
        """Readiness check and fulfillment scheduling. Failures leave the order PAID."""
        try:
            ready = await self.status_service.ensure_ready_for_fulfillment(order, actor)
        except StaleWriteError:
            logger.info(f"Readiness check lost a race for order {order.id}, leaving it to the winner")
            return
        if ready.applied:
            await self.enqueue_fulfillment(ready.order)

    async def _attach_in_flight(self, order: Order, payment: GatewayPayment) -> None:
        """Remember the payment id of a still-open payment so later checks fetch it directly."""
        if order.gateway_payment_id or order.status != OrderStatus.PENDING:
            return
        attached = await self.db.orders.attach_gateway_payment(
            order.id, order.version, payment.id, payment.status
        )
        if attached is None:
            logger.info(f"In-flight payment attach skipped for order {order.id} (version moved)")

    async def _foreign_payment(
        self, order: Order, payment: GatewayPayment, target: Optional[OrderStatus]
    ) -> IngestionResult:
        """A second payment for an order that already has one attached."""
        if target == OrderStatus.PAID:
            await self.notifier.alert_admins(
                "Second approved payment for an order, refund required",
                AlertSeverity.CRITICAL,
                order_id=order.id,
                attached_payment_id=order.gateway_payment_id,
                payment_id=payment.id,
            )
        else:
            logger.warning(
                "Ignoring status of a payment not attached to its order "
                + format_fields(order_id=order.id, payment_id=payment.id, status=payment.status)
            )
        return IngestionResult(IngestionOutcome.IGNORED, order.id, note="foreign_payment")

    async def _report_contradiction(
        self, order: Order, payment: GatewayPayment, error: InvalidTransitionError
    ) -> None:
        """Gateway says something a final order state cannot accept."""
        severity = (
            AlertSeverity.CRITICAL
            if map_gateway_status(payment.status) == OrderStatus.PAID
            else AlertSeverity.ERROR
        )
        await self.notifier.alert_admins(
            "Gateway status contradicts order state",
            severity,
            order_id=order.id,
            from_status=error.from_status,
            gateway_status=payment.status,
            payment_id=payment.id,
        )

    # ==================== WEBHOOK ====================

    async def ingest_notification(self, notification: WebhookNotification) -> WebhookOutcome:
        """Process a signature-verified notification. Never raises."""
        event_id = notification.event_id
        event_type = notification.event_type
        data_id = notification.data_id
        log_ctx = format_fields(
            event_id=sanitize_id_for_logging(event_id),
            type=event_type,
            data_id=sanitize_id_for_logging(data_id),
        )

        try:
            is_new = await self.db.webhook_events.record_received(
                event_id, WEBHOOK_PROVIDER, event_type, data_id, notification.body
            )
        except Exception as e:
            logger.error(f"Webhook event not recorded {log_ctx}: {e}", exc_info=True)
            return WebhookOutcome(503, {"ok": False, "error": "EVENT_NOT_RECORDED"})

        if not is_new:
            return WebhookOutcome(200, {"ok": True, "duplicate": True})

        if event_type != "payment" or not data_id:
            await self._mark(event_id, WebhookEventStatus.IGNORED, "not a payment event")
            return WebhookOutcome(200, {"ok": True, "ignored": True})

        try:
            payment = await self.gateway.fetch_payment_status(data_id)
        except (GatewayUnavailableError, GatewayRejectedError) as e:
            logger.warning(f"Webhook payment fetch failed {log_ctx}: {e.code}")
            await self._mark(event_id, WebhookEventStatus.FAILED, f"{e.code}: {e.message}")
            return WebhookOutcome(200, {"ok": True, "processed": False})

        try:
            result = await self.ingest_payment(payment, TransitionActor.WEBHOOK)
        except OrderEngineError as e:
            logger.error(f"Webhook ingestion failed {log_ctx}: {e.code} {e.message}")
            await self._mark(event_id, WebhookEventStatus.FAILED, f"{e.code}: {e.message}", payment.id)
            return WebhookOutcome(200, {"ok": True, "processed": False})
        except Exception as e:
            logger.error(f"Webhook ingestion crashed {log_ctx}: {e}", exc_info=True)
            await self._mark(event_id, WebhookEventStatus.FAILED, str(e), payment.id)
            return WebhookOutcome(200, {"ok": True, "processed": False})

        if result.outcome in (IngestionOutcome.APPLIED, IngestionOutcome.UNCHANGED):
            await self._mark(event_id, WebhookEventStatus.PROCESSED, result.note, payment.id)
        else:
            await self._mark(event_id, WebhookEventStatus.IGNORED, result.note, payment.id)

        logger.info(f"Webhook handled {log_ctx} outcome={result.outcome}")
        return WebhookOutcome(200, {"ok": True, **result.to_dict()})

    async def _mark(
        self,
        event_id: str,
        status: str,
        message: Optional[str] = None,
        payment_id: Optional[str] = None,
    ) -> None:
        try:
            await self.db.webhook_events.mark(event_id, status, message, payment_id)
        except Exception as e:
            # The event row exists as "received"; the response stays 200
            logger.error(f"Failed to mark webhook event {sanitize_id_for_logging(event_id)} {status}: {e}")
