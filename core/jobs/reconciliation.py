"""
Reconciliation job: converge PENDING orders with the gateway.

Webhooks get lost. Every few minutes PENDING orders older than the grace
period (and younger than the abandonment timeout) are checked against the
gateway and fed through the same ingestion path as webhooks.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any, Optional

from core.errors import OrderEngineError
from core.jobs.config import ReconciliationSettings
from core.logging import format_fields, get_logger
from core.orders.constants import TransitionActor
from core.payments.ingestion import IngestionOutcome, PaymentIngestionService
from core.payments.status_mapper import map_gateway_status
from core.services.models import Order
from core.services.payments import PaymentGatewayClient, get_gateway_client

logger = get_logger(__name__)

MAX_EXAMPLES = 5


@dataclass
class ReconciliationSummary:
    checked: int = 0
    updated: int = 0
    unchanged: int = 0
    skipped: int = 0
    errors: int = 0
    batches: int = 0
    stopped: bool = False
    examples: list[dict[str, Any]] = field(default_factory=list)

    def add_example(self, example: dict[str, Any]) -> None:
        if len(self.examples) < MAX_EXAMPLES:
            self.examples.append(example)

    def to_dict(self) -> dict[str, Any]:
        return {
            "checked": self.checked,
            "updated": self.updated,
            "unchanged": self.unchanged,
            "skipped": self.skipped,
            "errors": self.errors,
            "batches": self.batches,
            "stopped": self.stopped,
            "examples": self.examples,
        }


class ReconciliationJob:
    """One pass over stale PENDING orders."""

    def __init__(
        self,
        db,
        gateway: Optional[PaymentGatewayClient] = None,
        ingestion: Optional[PaymentIngestionService] = None,
        settings: Optional[ReconciliationSettings] = None,
        stop_event: Optional[asyncio.Event] = None,
    ):
        self.db = db
        self.gateway = gateway or get_gateway_client()
        self.ingestion = ingestion or PaymentIngestionService(db, self.gateway)
        self.settings = settings or ReconciliationSettings.from_env()
        self.stop_event = stop_event
        self._gateway_calls = 0

    async def run_once(self, now: Optional[datetime] = None) -> ReconciliationSummary:
        now = now or datetime.now(UTC)
        created_before = now - timedelta(minutes=self.settings.grace_minutes)
        created_from = now - timedelta(minutes=self.settings.outer_bound_minutes)
        summary = ReconciliationSummary()
        self._gateway_calls = 0
        cursor: Optional[datetime] = None

        for _ in range(self.settings.max_batches):
            if self.stop_event is not None and self.stop_event.is_set():
                summary.stopped = True
                break

            batch = await self.db.orders.list_pending_between(
                created_before, created_from, self.settings.batch_limit, after=cursor
            )
            if not batch:
                break
            summary.batches += 1

            for order in batch:
                await self._reconcile(order, summary)
            cursor = batch[-1].created_at

            if len(batch) < self.settings.batch_limit or cursor is None:
                break

        counts = {k: v for k, v in summary.to_dict().items() if k != "examples"}
        logger.info("Reconciliation run finished " + format_fields(**counts))
        return summary

    async def _throttle(self) -> None:
        """Spacing between gateway calls."""
        if self._gateway_calls and self.settings.rate_delay > 0:
            await asyncio.sleep(self.settings.rate_delay)
        self._gateway_calls += 1

    async def _reconcile(self, order: Order, summary: ReconciliationSummary) -> None:
        summary.checked += 1
        attempted = None
        try:
            await self._throttle()
            if order.gateway_payment_id:
                payment = await self.gateway.fetch_payment_status(order.gateway_payment_id)
            else:
                payment = await self.gateway.search_payment_by_reference(order.external_reference)
            if payment is None:
                summary.skipped += 1
                return

            target = map_gateway_status(payment.status)
            attempted = target.value if target else None
            result = await self.ingestion.ingest_payment(
                payment, TransitionActor.RECONCILIATION_JOB, order=order
            )
        except OrderEngineError as e:
            summary.errors += 1
            logger.error(
                "Reconciliation failed for order "
                + format_fields(order_id=order.id, attempted=attempted, error=e.code, message=e.message)
            )
            summary.add_example({"order_id": order.id, "error": e.code})
            return
        except Exception as e:
            summary.errors += 1
            logger.error(
                "Reconciliation crashed for order "
                + format_fields(order_id=order.id, attempted=attempted, error=type(e).__name__),
                exc_info=True,
            )
            summary.add_example({"order_id": order.id, "error": type(e).__name__})
            return

        if result.outcome == IngestionOutcome.APPLIED:
            summary.updated += 1
            summary.add_example(
                {
                    "order_id": order.id,
                    "from": result.from_status.value if result.from_status else None,
                    "to": result.to_status.value if result.to_status else None,
                }
            )
        elif result.outcome == IngestionOutcome.UNCHANGED:
            summary.unchanged += 1
        else:
            summary.skipped += 1
            summary.add_example({"order_id": order.id, "outcome": result.outcome, "note": result.note})
