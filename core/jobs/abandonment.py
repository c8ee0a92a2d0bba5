"""
Abandonment job: cancel orders left unpaid past the deadline.

Cancelling releases the coupon reservation inside the same DB transaction.
A payment that reached the gateway is never cancelled blindly: approved or
rejected payments are ingested instead, open ones defer the order to the
next run. A STALE_WRITE means a webhook or reconciliation got there first,
which counts as handled.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any, Optional

from core.errors import GatewayRejectedError, GatewayUnavailableError, StaleWriteError
from core.jobs.config import AbandonmentSettings
from core.logging import format_fields, get_logger
from core.orders.constants import OrderStatus, TransitionActor
from core.orders.status_service import OrderStatusService
from core.payments.ingestion import IngestionOutcome, PaymentIngestionService
from core.payments.status_mapper import is_in_flight, map_gateway_status
from core.services.models import Order
from core.services.payments import PaymentGatewayClient, get_gateway_client

logger = get_logger(__name__)

ABANDON_REASON = "payment window expired"


@dataclass
class AbandonmentSummary:
    checked: int = 0
    canceled: int = 0
    already_handled: int = 0
    deferred: int = 0
    ingested: int = 0
    errors: int = 0
    dry_run: bool = False
    would_cancel: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "checked": self.checked,
            "canceled": self.canceled,
            "already_handled": self.already_handled,
            "deferred": self.deferred,
            "ingested": self.ingested,
            "errors": self.errors,
            "dry_run": self.dry_run,
            "would_cancel": self.would_cancel,
        }


class AbandonmentJob:
    """Cancels stale PENDING orders in one batch."""

    def __init__(
        self,
        db,
        gateway: Optional[PaymentGatewayClient] = None,
        ingestion: Optional[PaymentIngestionService] = None,
        status_service: Optional[OrderStatusService] = None,
        settings: Optional[AbandonmentSettings] = None,
    ):
        self.db = db
        self.gateway = gateway or get_gateway_client()
        self.status_service = status_service or OrderStatusService(db)
        self.ingestion = ingestion or PaymentIngestionService(
            db, self.gateway, status_service=self.status_service
        )
        self.settings = settings or AbandonmentSettings.from_env()

    async def run_once(self, now: Optional[datetime] = None, dry_run: bool = False) -> AbandonmentSummary:
        now = now or datetime.now(UTC)
        cutoff = now - timedelta(minutes=self.settings.after_minutes)
        summary = AbandonmentSummary(dry_run=dry_run)

        orders = await self.db.orders.list_pending_older_than(cutoff, self.settings.batch_limit)
        gateway_calls = 0
        for order in orders:
            summary.checked += 1
            if order.gateway_payment_id or order.payment_attempt_key:
                if gateway_calls and self.settings.rate_delay > 0:
                    await asyncio.sleep(self.settings.rate_delay)
                gateway_calls += 1
                if not await self._settle_with_gateway(order, summary, dry_run):
                    continue

            if dry_run:
                summary.would_cancel.append(order.external_reference)
                continue
            await self._cancel(order, summary)

        logger.info(
            "Abandonment run finished "
            + format_fields(**{k: v for k, v in summary.to_dict().items() if k != "would_cancel"})
        )
        return summary

    async def _settle_with_gateway(self, order: Order, summary: AbandonmentSummary, dry_run: bool) -> bool:
        """Check a claimed order with the gateway. True when it can still be cancelled."""
        try:
            if order.gateway_payment_id:
                payment = await self.gateway.fetch_payment_status(order.gateway_payment_id)
            else:
                payment = await self.gateway.search_payment_by_reference(order.external_reference)
        except (GatewayUnavailableError, GatewayRejectedError) as e:
            # Unverifiable: never cancel something that may be paid
            summary.errors += 1
            logger.warning(
                "Abandonment gateway check failed, deferring "
                + format_fields(order_id=order.id, error=e.code)
            )
            return False

        if payment is None:
            return True

        if map_gateway_status(payment.status) is not None:
            if dry_run:
                summary.deferred += 1
                return False
            try:
                result = await self.ingestion.ingest_payment(
                    payment, TransitionActor.ABANDONMENT_JOB, order=order
                )
            except Exception as e:
                summary.errors += 1
                logger.error(
                    "Abandonment ingestion failed "
                    + format_fields(order_id=order.id, status=payment.status, error=type(e).__name__),
                    exc_info=True,
                )
                return False
            if result.outcome in (IngestionOutcome.APPLIED, IngestionOutcome.UNCHANGED):
                summary.ingested += 1
            else:
                summary.errors += 1
            return False

        if is_in_flight(payment.status):
            summary.deferred += 1
            logger.info(
                "Payment still open, deferring abandonment "
                + format_fields(order_id=order.id, status=payment.status)
            )
            return False

        return True

    async def _cancel(self, order: Order, summary: AbandonmentSummary) -> None:
        try:
            await self.status_service.transition(
                order, OrderStatus.CANCELED, TransitionActor.ABANDONMENT_JOB, ABANDON_REASON
            )
            summary.canceled += 1
        except StaleWriteError:
            summary.already_handled += 1
            logger.info(f"Order {order.id} resolved concurrently, not cancelling")
        except Exception as e:
            summary.errors += 1
            logger.error(
                "Abandonment cancel failed "
                + format_fields(order_id=order.id, attempted=OrderStatus.CANCELED, error=type(e).__name__),
                exc_info=True,
            )
