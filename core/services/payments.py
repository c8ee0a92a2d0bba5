"""Payment Gateway Client - Mercado Pago v1 payments API.

Thin async HTTP layer. Every failure is translated into one of two errors:
- GatewayUnavailableError: timeout, network failure, 5xx (retryable by the scheduler)
- GatewayRejectedError: 4xx (final)
No retries happen here.
"""

from dataclasses import dataclass, field
from typing import Any, Optional
from urllib.parse import quote

import httpx

from core.errors import GatewayRejectedError, GatewayUnavailableError
from core.logging import get_logger, sanitize_id_for_logging
from core.payments.config import GatewayConfig, validate_gateway_config
from core.payments.constants import GatewayPaymentStatus
from core.services.money import to_minor_units

logger = get_logger(__name__)

# Fields kept in the transition log snapshot (no payer PII)
SNAPSHOT_FIELDS = (
    "id",
    "status",
    "status_detail",
    "external_reference",
    "transaction_amount",
    "payment_method_id",
    "payment_type_id",
    "date_created",
    "date_approved",
    "date_last_updated",
    "live_mode",
)


@dataclass
class GatewayPayment:
    """A payment as reported by the gateway."""

    id: str
    status: str
    status_detail: Optional[str] = None
    external_reference: Optional[str] = None
    amount: Optional[int] = None  # centavos
    payment_method_id: Optional[str] = None
    pix_qr_code: Optional[str] = None
    pix_qr_code_base64: Optional[str] = None
    ticket_url: Optional[str] = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "GatewayPayment":
        transaction = (data.get("point_of_interaction") or {}).get("transaction_data") or {}
        details = data.get("transaction_details") or {}
        amount = data.get("transaction_amount")
        return cls(
            id=str(data.get("id")),
            status=str(data.get("status") or "").lower(),
            status_detail=data.get("status_detail"),
            external_reference=data.get("external_reference"),
            amount=to_minor_units(amount) if amount is not None else None,
            payment_method_id=data.get("payment_method_id"),
            pix_qr_code=transaction.get("qr_code"),
            pix_qr_code_base64=transaction.get("qr_code_base64"),
            ticket_url=transaction.get("ticket_url") or details.get("external_resource_url"),
            raw=data,
        )

    def snapshot(self) -> dict[str, Any]:
        """Trimmed raw payload for the audit log."""
        return {key: self.raw.get(key) for key in SNAPSHOT_FIELDS if key in self.raw}


class PaymentGatewayClient:
    """Mercado Pago REST client with strict timeouts."""

    def __init__(
        self,
        config: Optional[GatewayConfig] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self._config = config
        # HTTP client (lazy init)
        self._http_client = http_client

    @property
    def config(self) -> GatewayConfig:
        if self._config is None:
            self._config = validate_gateway_config()
        return self._config

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Lazy creation of shared httpx client with timeouts."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(
                    self.config.timeout_seconds, connect=self.config.connect_timeout_seconds
                ),
                limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
            )
        return self._http_client

    async def close(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[dict[str, Any]] = None,
        params: Optional[dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
    ) -> dict[str, Any]:
        headers = {
            "Authorization": f"Bearer {self.config.access_token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if idempotency_key:
            headers["X-Idempotency-Key"] = idempotency_key

        client = await self._get_http_client()
        url = f"{self.config.api_url}{path}"
        try:
            response = await client.request(method, url, headers=headers, json=json, params=params)
        except httpx.TimeoutException as e:
            logger.warning(f"Gateway timeout on {method} {path}")
            raise GatewayUnavailableError("Gateway timeout", path=path) from e
        except httpx.HTTPError as e:
            logger.warning(f"Gateway network error on {method} {path}: {type(e).__name__}")
            raise GatewayUnavailableError("Gateway network error", path=path) from e

        if response.status_code >= 500:
            logger.warning(f"Gateway {response.status_code} on {method} {path}")
            raise GatewayUnavailableError(
                f"Gateway returned {response.status_code}", status_code=response.status_code
            )
        if response.status_code >= 400:
            logger.warning(f"Gateway rejected {method} {path}: {response.status_code}")
            raise GatewayRejectedError(response.status_code, body=response.text)

        try:
            data = response.json()
        except ValueError as e:
            raise GatewayUnavailableError("Gateway returned invalid JSON") from e
        if not isinstance(data, dict):
            raise GatewayUnavailableError("Gateway returned unexpected payload")
        return data

    async def fetch_payment_status(self, payment_id: str) -> GatewayPayment:
        """GET /v1/payments/{id}. The only source of truth for a payment's status."""
        data = await self._request("GET", f"/v1/payments/{quote(str(payment_id), safe='')}")
        payment = GatewayPayment.from_api(data)
        logger.info(
            f"Fetched payment {sanitize_id_for_logging(payment.id)} status={payment.status}"
        )
        return payment

    async def search_payment_by_reference(self, external_reference: str) -> Optional[GatewayPayment]:
        """
        Find the payment for an order by external_reference.

        Prefers an approved payment, otherwise the most recently created one.
        """
        data = await self._request(
            "GET",
            "/v1/payments/search",
            params={
                "external_reference": external_reference,
                "sort": "date_created",
                "criteria": "desc",
            },
        )
        results = [r for r in data.get("results") or [] if isinstance(r, dict)]
        if not results:
            return None
        for row in results:
            if str(row.get("status")).lower() == GatewayPaymentStatus.APPROVED.value:
                return GatewayPayment.from_api(row)
        return GatewayPayment.from_api(results[0])

    async def create_payment(self, body: dict[str, Any], idempotency_key: str) -> GatewayPayment:
        """POST /v1/payments with X-Idempotency-Key. The gateway dedups repeated keys."""
        data = await self._request("POST", "/v1/payments", json=body, idempotency_key=idempotency_key)
        payment = GatewayPayment.from_api(data)
        logger.info(
            f"Gateway payment created {sanitize_id_for_logging(payment.id)} status={payment.status}"
        )
        return payment


_gateway_client: Optional[PaymentGatewayClient] = None


def get_gateway_client() -> PaymentGatewayClient:
    """Get gateway client singleton."""
    global _gateway_client
    if _gateway_client is None:
        _gateway_client = PaymentGatewayClient()
    return _gateway_client


async def close_gateway_client() -> None:
    global _gateway_client
    if _gateway_client is not None:
        await _gateway_client.close()
        _gateway_client = None
