"""Transition Log Repository - read side of the append-only audit trail.

Rows are written only by the `apply_order_transition` and
`create_checkout_order` database functions.
"""

from core.services.models import TransitionLogEntry

from .base import BaseRepository

LOG_TABLE = "order_transition_log"


class TransitionLogRepository(BaseRepository):
    """Order transition log queries."""

    async def list_for_order(self, order_id: str) -> list[TransitionLogEntry]:
        """Full history of an order, oldest first."""
        result = (
            await self.client.table(LOG_TABLE)
            .select("*")
            .eq("order_id", order_id)
            .order("created_at")
            .execute()
        )
        return [TransitionLogEntry(**row) for row in result.data]

    async def count_for_order(self, order_id: str, to_status: str | None = None) -> int:
        query = self.client.table(LOG_TABLE).select("id", count="exact").eq("order_id", order_id)
        if to_status:
            query = query.eq("to_status", to_status)
        result = await query.execute()
        return result.count or 0
