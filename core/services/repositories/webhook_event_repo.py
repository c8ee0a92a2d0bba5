"""Webhook Event Repository - durable dedup of gateway notifications."""

from datetime import UTC, datetime
from typing import Any, Optional

from core.logging import get_logger, sanitize_id_for_logging
from core.services.models import ProcessedWebhookEvent

from .base import BaseRepository, is_duplicate_key_error

logger = get_logger(__name__)

EVENTS_TABLE = "processed_webhook_events"


class WebhookEventStatus:
    """Lifecycle of a recorded webhook event."""

    RECEIVED = "received"
    PROCESSED = "processed"
    IGNORED = "ignored"
    FAILED = "failed"


class WebhookEventRepository(BaseRepository):
    """processed_webhook_events operations."""

    async def record_received(
        self,
        event_id: str,
        provider: str,
        event_type: Optional[str],
        payment_id: Optional[str],
        payload: Optional[dict[str, Any]] = None,
    ) -> bool:
        """Insert the event. Returns False if the event id was already recorded.

        Any other storage failure propagates: the event was not durably received.
        """
        try:
            await (
                self.client.table(EVENTS_TABLE)
                .insert(
                    {
                        "event_id": event_id,
                        "provider": provider,
                        "event_type": event_type,
                        "payment_id": payment_id,
                        "status": WebhookEventStatus.RECEIVED,
                        "payload": payload,
                    }
                )
                .execute()
            )
        except Exception as e:
            if is_duplicate_key_error(e):
                logger.info(f"Duplicate webhook event {sanitize_id_for_logging(event_id)}")
                return False
            raise
        return True

    async def mark(
        self,
        event_id: str,
        status: str,
        error_message: Optional[str] = None,
        payment_id: Optional[str] = None,
    ) -> None:
        data: dict[str, Any] = {
            "status": status,
            "processed_at": datetime.now(UTC).isoformat(),
        }
        if error_message:
            data["error_message"] = error_message[:500]
        if payment_id:
            data["payment_id"] = payment_id
        await self.client.table(EVENTS_TABLE).update(data).eq("event_id", event_id).execute()

    async def get(self, event_id: str) -> Optional[ProcessedWebhookEvent]:
        result = await self.client.table(EVENTS_TABLE).select("*").eq("event_id", event_id).execute()
        return ProcessedWebhookEvent(**result.data[0]) if result.data else None
