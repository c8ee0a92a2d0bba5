"""
WebApp API Pydantic Models

Request bodies for the storefront checkout and order endpoints.
"""
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from core.orders.checkout import CheckoutItem, CheckoutRequest, PayerData, ShippingInfo


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


# ==================== CHECKOUT MODELS ====================

CreateOrderRequest = CheckoutRequest


class PaymentPayer(_CamelModel):
    email: Optional[str] = None
    name: Optional[str] = None
    cpf: Optional[str] = None
    phone: Optional[str] = None


class CreatePaymentRequest(_CamelModel):
    method: str  # pix | boleto
    payer: Optional[PaymentPayer] = None


class CardPaymentRequest(_CamelModel):
    token: str
    payment_method_id: str
    installments: int = Field(default=1, ge=1, le=12)
    transaction_amount: Decimal = Field(gt=0)
    issuer_id: Optional[str] = None
    payer_email: Optional[str] = None
    identification_type: Optional[str] = None
    identification_number: Optional[str] = None
    device_id: Optional[str] = None


# ==================== ORDER MODELS ====================

class CustomerCancelRequest(_CamelModel):
    email: str


__all__ = [
    "CheckoutItem",
    "PayerData",
    "ShippingInfo",
    "CreateOrderRequest",
    "PaymentPayer",
    "CreatePaymentRequest",
    "CardPaymentRequest",
    "CustomerCancelRequest",
]
