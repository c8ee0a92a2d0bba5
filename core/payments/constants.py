"""Payment constants: gateway, methods and gateway status vocabulary."""

from enum import Enum


class PaymentGateway(str, Enum):
    """Supported payment gateways."""

    MERCADOPAGO = "mercadopago"


class PaymentMethod(str, Enum):
    """Payment methods offered at checkout."""

    PIX = "pix"
    BOLETO = "bolbradesco"
    CARD = "card"


class GatewayPaymentStatus(str, Enum):
    """Mercado Pago payment status vocabulary."""

    APPROVED = "approved"
    AUTHORIZED = "authorized"
    PENDING = "pending"
    IN_PROCESS = "in_process"
    IN_MEDIATION = "in_mediation"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    CHARGED_BACK = "charged_back"


# Payment still live on the gateway side; the order must stay PENDING
IN_FLIGHT_STATUSES: frozenset[str] = frozenset(
    {
        GatewayPaymentStatus.PENDING.value,
        GatewayPaymentStatus.IN_PROCESS.value,
        GatewayPaymentStatus.AUTHORIZED.value,
        GatewayPaymentStatus.IN_MEDIATION.value,
    }
)

KNOWN_STATUSES: frozenset[str] = frozenset(s.value for s in GatewayPaymentStatus)

# Boleto stays payable for 3 days after creation
BOLETO_EXPIRATION_DAYS = 3

WEBHOOK_PROVIDER = PaymentGateway.MERCADOPAGO.value


def normalize_method(method: str | None) -> str:
    """
    Normalize payment method name to canonical form.

    Example:
        normalize_method("PIX") -> "pix"
        normalize_method("boleto") -> "bolbradesco"
    """
    if not method:
        return PaymentMethod.PIX.value
    normalized = method.lower().strip()
    if normalized in ("boleto", "bolbradesco"):
        return PaymentMethod.BOLETO.value
    if normalized in ("credit_card", "debit_card", "card"):
        return PaymentMethod.CARD.value
    return normalized
