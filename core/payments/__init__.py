"""Payment processing module."""
from .config import validate_gateway_config
from .constants import (
    GatewayPaymentStatus,
    PaymentGateway,
    PaymentMethod,
    normalize_method,
)

__all__ = [
    "GatewayPaymentStatus",
    "PaymentGateway",
    "PaymentMethod",
    "normalize_method",
    "validate_gateway_config",
]
