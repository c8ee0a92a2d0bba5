"""Notification Service - post-commit side effects of order transitions.

Everything here runs after the transition is stored and is best effort:
live status stream, queued customer e-mail, admin alerts. Failures are
logged and swallowed so they can never roll back or block a transition.
"""

import os
from typing import Any, Optional

from core.logging import format_fields, get_logger
from core.orders.constants import CUSTOMER_STATUS_LABELS, OrderStatus
from core.queue import is_queue_configured, publish_to_url
from core.realtime import emit_admin_risk_flag, emit_order_status_change
from core.services.models import Order

logger = get_logger(__name__)

# Statuses the customer gets an e-mail about
EMAIL_STATUSES = frozenset(
    {
        OrderStatus.PAID,
        OrderStatus.SENT_TO_FULFILLMENT,
        OrderStatus.CANCELED,
        OrderStatus.FAILED,
        OrderStatus.REFUNDED,
    }
)


class AlertSeverity:
    """Alert severity levels."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class OrderNotifier:
    """Fan-out of order events to the external mailer, alert hook and realtime streams."""

    def __init__(
        self,
        email_webhook_url: Optional[str] = None,
        alert_webhook_url: Optional[str] = None,
    ) -> None:
        self.email_webhook_url = email_webhook_url or os.environ.get("ORDER_EMAIL_WEBHOOK_URL", "")
        self.alert_webhook_url = alert_webhook_url or os.environ.get("ADMIN_ALERT_WEBHOOK_URL", "")

    async def order_transitioned(
        self, order: Order, from_status: Optional[OrderStatus], actor: str
    ) -> None:
        """Called once per committed transition."""
        try:
            await emit_order_status_change(
                order.external_reference,
                CUSTOMER_STATUS_LABELS.get(order.status, "processing"),
                order.status.value,
            )
            if order.status in EMAIL_STATUSES:
                await self._queue_status_email(order)
        except Exception as e:
            logger.warning(
                f"Post-transition notification failed: {e} "
                f"{format_fields(order_id=order.id, to_status=order.status, actor=actor)}"
            )

    async def order_created(self, order: Order) -> None:
        if order.risk_flagged:
            await emit_admin_risk_flag(order.external_reference, order.risk_score, order.risk_flags)
            await self.alert_admins(
                "Order flagged for manual risk review",
                AlertSeverity.WARNING,
                order_id=order.id,
                risk_score=order.risk_score,
                flags=",".join(order.risk_flags),
            )

    async def alert_admins(self, title: str, severity: str = AlertSeverity.ERROR, **fields: Any) -> None:
        """Log the alert and forward it to the admin alert hook when configured."""
        line = f"ADMIN ALERT [{severity}] {title} {format_fields(**fields)}"
        if severity in (AlertSeverity.ERROR, AlertSeverity.CRITICAL):
            logger.error(line)
        else:
            logger.warning(line)

        if not (self.alert_webhook_url and is_queue_configured()):
            return
        body = {"title": title, "severity": severity, "fields": {k: str(v) for k, v in fields.items()}}
        await publish_to_url(self.alert_webhook_url, body)

    async def _queue_status_email(self, order: Order) -> None:
        if not (self.email_webhook_url and is_queue_configured() and order.payer_email):
            return
        body = {
            "template": f"order_{order.status.value.lower()}",
            "to": order.payer_email,
            "external_reference": order.external_reference,
            "status": CUSTOMER_STATUS_LABELS.get(order.status, "processing"),
            "total": order.total,
        }
        # One e-mail per (order, status) even if the transition is re-observed
        await publish_to_url(
            self.email_webhook_url,
            body,
            deduplication_id=f"order-email-{order.id}-{order.status.value}",
        )


_notifier: Optional[OrderNotifier] = None


def get_notifier() -> OrderNotifier:
    """Get notifier singleton."""
    global _notifier
    if _notifier is None:
        _notifier = OrderNotifier()
    return _notifier
