"""Payment gateway configuration and validation."""

import os
from dataclasses import dataclass

from fastapi import HTTPException

from core.logging import get_logger

logger = get_logger(__name__)


GATEWAY_ENV_REQUIREMENTS: tuple[str, ...] = ("MP_ACCESS_TOKEN",)

DEFAULT_API_URL = "https://api.mercadopago.com"
DEFAULT_TIMEOUT_SECONDS = 10.0
DEFAULT_CONNECT_TIMEOUT_SECONDS = 5.0


@dataclass(frozen=True)
class GatewayConfig:
    """Mercado Pago settings read from the environment."""

    access_token: str
    api_url: str
    webhook_secret: str
    notification_url: str | None
    statement_descriptor: str
    timeout_seconds: float
    connect_timeout_seconds: float


def get_gateway_config() -> GatewayConfig:
    """Read gateway settings from the environment (no validation)."""
    backend_url = os.environ.get("BACKEND_URL", "").rstrip("/")
    return GatewayConfig(
        access_token=os.environ.get("MP_ACCESS_TOKEN", ""),
        api_url=os.environ.get("MP_API_URL", DEFAULT_API_URL).rstrip("/"),
        webhook_secret=os.environ.get("MP_WEBHOOK_SECRET", ""),
        notification_url=f"{backend_url}/api/webhook/mercadopago" if backend_url else None,
        statement_descriptor=os.environ.get("MP_STATEMENT_DESCRIPTOR", "STAMPSHOP"),
        timeout_seconds=float(os.environ.get("MP_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS)),
        connect_timeout_seconds=float(
            os.environ.get("MP_CONNECT_TIMEOUT_SECONDS", DEFAULT_CONNECT_TIMEOUT_SECONDS)
        ),
    )


def validate_gateway_config(config: GatewayConfig | None = None) -> GatewayConfig:
    """
    Validate payment gateway environment configuration.

    Raises:
        HTTPException: If the access token is not configured
    """
    config = config or get_gateway_config()
    if not config.access_token:
        logger.error("Payment gateway not configured. Missing: %s", ", ".join(GATEWAY_ENV_REQUIREMENTS))
        raise HTTPException(
            status_code=500,
            detail=f"Payment gateway not configured. Set: {', '.join(GATEWAY_ENV_REQUIREMENTS)}",
        )
    return config

