"""Order Repository - Order operations."""

from datetime import UTC, datetime
from typing import Any, Optional

from core.orders.constants import OrderStatus
from core.services.models import Order, OrderItem

from .base import BaseRepository

ORDER_TABLE = "orders"
ITEMS_TABLE = "order_items"


class OrderRepository(BaseRepository):
    """Order database operations.

    Every write is conditional: either on `version` through PostgREST filters
    or inside the `apply_order_transition` / `create_checkout_order` functions.
    """

    async def create_with_items(self, order: dict[str, Any], items: list[dict[str, Any]]) -> Order:
        """Insert order, items, creation log entry and coupon reservation in one transaction."""
        result = await self.client.rpc(
            "create_checkout_order", {"p_order": order, "p_items": items}
        ).execute()
        return Order(**result.data[0])

    async def get_by_id(self, order_id: str) -> Optional[Order]:
        result = await self.client.table(ORDER_TABLE).select("*").eq("id", order_id).execute()
        return Order(**result.data[0]) if result.data else None

    async def get_by_external_reference(self, external_reference: str) -> Optional[Order]:
        result = (
            await self.client.table(ORDER_TABLE)
            .select("*")
            .eq("external_reference", external_reference)
            .limit(1)
            .execute()
        )
        return Order(**result.data[0]) if result.data else None

    async def get_by_gateway_payment_id(self, payment_id: str) -> Optional[Order]:
        result = (
            await self.client.table(ORDER_TABLE)
            .select("*")
            .eq("gateway_payment_id", str(payment_id))
            .limit(1)
            .execute()
        )
        return Order(**result.data[0]) if result.data else None

    async def get_items(self, order_id: str) -> list[OrderItem]:
        result = await self.client.table(ITEMS_TABLE).select("*").eq("order_id", order_id).execute()
        return [OrderItem(**row) for row in result.data]

    async def list_pending_between(
        self,
        created_before: datetime,
        created_from: datetime,
        limit: int,
        after: Optional[datetime] = None,
    ) -> list[Order]:
        """PENDING orders with created_from <= created_at < created_before, oldest first.

        `after` is a keyset cursor (created_at of the last order already seen).
        """
        query = (
            self.client.table(ORDER_TABLE)
            .select("*")
            .eq("status", OrderStatus.PENDING.value)
            .lt("created_at", created_before.isoformat())
            .gte("created_at", created_from.isoformat())
        )
        if after is not None:
            query = query.gt("created_at", after.isoformat())
        result = await query.order("created_at").limit(limit).execute()
        return [Order(**row) for row in result.data]

    async def list_pending_older_than(self, cutoff: datetime, limit: int) -> list[Order]:
        """PENDING orders created before cutoff, oldest first."""
        result = (
            await self.client.table(ORDER_TABLE)
            .select("*")
            .eq("status", OrderStatus.PENDING.value)
            .lt("created_at", cutoff.isoformat())
            .order("created_at")
            .limit(limit)
            .execute()
        )
        return [Order(**row) for row in result.data]

    async def list_risk_flagged(self, limit: int = 50) -> list[Order]:
        result = (
            await self.client.table(ORDER_TABLE)
            .select("*")
            .eq("risk_flagged", True)
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
        return [Order(**row) for row in result.data]

    async def apply_transition(
        self,
        order_id: str,
        expected_version: int,
        from_status: OrderStatus,
        to_status: OrderStatus,
        actor: str,
        reason: Optional[str] = None,
        snapshot: Optional[dict[str, Any]] = None,
        gateway_payment_id: Optional[str] = None,
        gateway_status: Optional[str] = None,
        fulfillment_order_id: Optional[str] = None,
        fulfillment_status: Optional[str] = None,
    ) -> Optional[Order]:
        """Version-checked transition with log append. Returns None when the version moved."""
        result = await self.client.rpc(
            "apply_order_transition",
            {
                "p_order_id": order_id,
                "p_expected_version": expected_version,
                "p_from": from_status.value,
                "p_to": to_status.value,
                "p_actor": actor,
                "p_reason": reason,
                "p_snapshot": snapshot,
                "p_gateway_payment_id": gateway_payment_id,
                "p_gateway_status": gateway_status,
                "p_fulfillment_order_id": fulfillment_order_id,
                "p_fulfillment_status": fulfillment_status,
            },
        ).execute()
        return Order(**result.data[0]) if result.data else None

    async def claim_payment_attempt(
        self, order_id: str, expected_version: int, attempt_key: str, payment_method: str
    ) -> Optional[Order]:
        """Take the single payment slot. None when someone else holds it or the version moved."""
        result = (
            await self.client.table(ORDER_TABLE)
            .update(
                {
                    "payment_attempt_key": attempt_key,
                    "payment_method": payment_method,
                    "version": expected_version + 1,
                    "updated_at": _now_iso(),
                }
            )
            .eq("id", order_id)
            .eq("version", expected_version)
            .eq("status", OrderStatus.PENDING.value)
            .is_("payment_attempt_key", "null")
            .execute()
        )
        return Order(**result.data[0]) if result.data else None

    async def attach_gateway_payment(
        self,
        order_id: str,
        expected_version: int,
        payment_id: str,
        gateway_status: Optional[str],
    ) -> Optional[Order]:
        """Set gateway_payment_id once. None when already set or the version moved."""
        result = (
            await self.client.table(ORDER_TABLE)
            .update(
                {
                    "gateway_payment_id": str(payment_id),
                    "gateway_status": gateway_status,
                    "version": expected_version + 1,
                    "updated_at": _now_iso(),
                }
            )
            .eq("id", order_id)
            .eq("version", expected_version)
            .is_("gateway_payment_id", "null")
            .execute()
        )
        return Order(**result.data[0]) if result.data else None

    async def claim_fulfillment_handoff(
        self, order_id: str, expected_version: int, handoff_states: list[str], marker: str
    ) -> Optional[Order]:
        """Mark the order as being handed off. None when the version or status moved."""
        result = (
            await self.client.table(ORDER_TABLE)
            .update(
                {
                    "fulfillment_status": marker,
                    "version": expected_version + 1,
                    "updated_at": _now_iso(),
                }
            )
            .eq("id", order_id)
            .eq("version", expected_version)
            .in_("status", handoff_states)
            .execute()
        )
        return Order(**result.data[0]) if result.data else None

    async def set_fulfillment_status(
        self, order_id: str, expected_version: int, fulfillment_status: str
    ) -> Optional[Order]:
        result = (
            await self.client.table(ORDER_TABLE)
            .update(
                {
                    "fulfillment_status": fulfillment_status,
                    "version": expected_version + 1,
                    "updated_at": _now_iso(),
                }
            )
            .eq("id", order_id)
            .eq("version", expected_version)
            .execute()
        )
        return Order(**result.data[0]) if result.data else None

    async def count_by_ip_since(self, ip_address: str, since: datetime) -> int:
        result = (
            await self.client.table(ORDER_TABLE)
            .select("id", count="exact")
            .eq("ip_address", ip_address)
            .gte("created_at", since.isoformat())
            .execute()
        )
        return result.count or 0

    async def count_unsuccessful_by_email_since(self, email: str, since: datetime) -> int:
        result = (
            await self.client.table(ORDER_TABLE)
            .select("id", count="exact")
            .ilike("payer_email", email)
            .in_("status", [OrderStatus.FAILED.value, OrderStatus.CANCELED.value])
            .gte("created_at", since.isoformat())
            .execute()
        )
        return result.count or 0


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()
