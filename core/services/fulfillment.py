"""Fulfillment Partner Client - print-on-demand partner REST API.

Creates the partner order for a ready internal order. Gated by
FULFILLMENT_CREATE_ORDER_ENABLED; when disabled the handoff is skipped and the
order waits for an admin to mark it sent manually.
"""

import os
import re
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from core.errors import FulfillmentError
from core.logging import get_logger
from core.services.models import Order, OrderItem

logger = get_logger(__name__)

DEFAULT_BASE_URL = "https://api.montink.com.br"


@dataclass
class PartnerOrder:
    """Partner's answer to an order creation."""

    id: Optional[str]
    status: str


def build_partner_payload(order: Order, items: list[OrderItem]) -> dict[str, Any]:
    """Map an order and its items to the partner order payload."""
    address = ", ".join(
        part for part in (order.shipping_address1, order.shipping_number, order.shipping_complement) if part
    )
    shipping: dict[str, Any] = {
        "cep": re.sub(r"\D", "", order.shipping_cep or "") or None,
        "address": address or None,
    }
    for key, value in (
        ("district", order.shipping_district),
        ("city", order.shipping_city),
        ("state", order.shipping_state),
    ):
        if value:
            shipping[key] = value

    payload: dict[str, Any] = {
        "orderId": order.id,
        "externalReference": order.external_reference,
        "items": [
            {
                "productId": item.product_id,
                "quantity": item.quantity,
                "size": item.size,
                "color": item.color,
            }
            for item in items
        ],
        "shipping": shipping,
    }
    optional = {
        "customerName": order.payer_name,
        "customerEmail": order.payer_email,
        "customerPhone": order.payer_phone,
        "shippingService": order.shipping_service,
        "shippingDeadline": order.shipping_deadline,
    }
    payload.update({k: v for k, v in optional.items() if v})
    return payload


class FulfillmentClient:
    """Partner HTTP client with strict timeouts."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_token: Optional[str] = None,
        enabled: Optional[bool] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = (base_url or os.environ.get("FULFILLMENT_BASE_URL", DEFAULT_BASE_URL)).rstrip("/")
        self.api_token = api_token if api_token is not None else os.environ.get("FULFILLMENT_API_TOKEN", "")
        if enabled is None:
            enabled = os.environ.get("FULFILLMENT_CREATE_ORDER_ENABLED", "false").lower() == "true"
        self.enabled = enabled
        self._http_client = http_client

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Lazy creation of shared httpx client with timeouts."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(15.0, connect=5.0),
                limits=httpx.Limits(max_connections=5, max_keepalive_connections=2),
            )
        return self._http_client

    async def close(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def create_order(self, order: Order, items: list[OrderItem]) -> PartnerOrder:
        """
        POST /order on the partner API.

        Raises:
            FulfillmentError: missing token, network failure or non-2xx answer
        """
        if not self.api_token:
            raise FulfillmentError("FULFILLMENT_API_TOKEN not configured")

        client = await self._get_http_client()
        try:
            response = await client.post(
                f"{self.base_url}/order",
                json=build_partner_payload(order, items),
                headers={
                    "Authorization": f"Bearer {self.api_token}",
                    "Content-Type": "application/json",
                    "X-Idempotency-Key": f"fulfill-{order.id}",
                },
            )
        except httpx.HTTPError as e:
            raise FulfillmentError(f"Partner request failed: {type(e).__name__}") from e

        if response.status_code >= 400:
            message = response.text[:200] if response.text else "unknown error"
            logger.error(f"Fulfillment partner error {response.status_code} for order {order.id}")
            raise FulfillmentError(
                f"Partner API error ({response.status_code}): {message}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError:
            data = {}
        partner_id = data.get("id") if isinstance(data, dict) else None
        status = (data.get("status") if isinstance(data, dict) else None) or "sent"
        return PartnerOrder(id=str(partner_id) if partner_id is not None else None, status=str(status))


_fulfillment_client: Optional[FulfillmentClient] = None


def get_fulfillment_client() -> FulfillmentClient:
    """Get fulfillment client singleton."""
    global _fulfillment_client
    if _fulfillment_client is None:
        _fulfillment_client = FulfillmentClient()
    return _fulfillment_client
