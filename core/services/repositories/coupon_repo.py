"""Coupon Repository - coupon lookup. Usage counters move only inside order DB functions."""

from typing import Optional

from core.services.models import Coupon

from .base import BaseRepository


class CouponRepository(BaseRepository):
    """Coupon database operations."""

    async def get_by_code(self, code: str) -> Optional[Coupon]:
        result = (
            await self.client.table("coupons").select("*").eq("code", code.strip().upper()).execute()
        )
        return Coupon(**result.data[0]) if result.data else None
