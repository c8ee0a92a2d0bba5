"""Product Repository - read-only catalog access for checkout."""

from core.services.models import Product

from .base import BaseRepository


class ProductRepository(BaseRepository):
    """Product database operations."""

    async def get_by_ids(self, product_ids: list[str]) -> dict[str, Product]:
        """Fetch products by id. Missing ids are simply absent from the result."""
        if not product_ids:
            return {}
        result = await self.client.table("products").select("*").in_("id", product_ids).execute()
        return {str(row["id"]): Product(**row) for row in result.data}
