from pydantic import BaseModel, ConfigDict, Field, field_validator
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Union

from orderpay.domain.models import (
    CardData, OrderStatus, PayerInfo, PaymentMethod, PaymentStatus, PromotionKind, ShippingMethod
)


class OrderLineRequest(BaseModel):
    product_id: str
    quantity: int = Field(ge=1)


class CreateOrderRequest(BaseModel):
    user_id: str
    address_id: Optional[str] = None
    lines: List[OrderLineRequest] = Field(min_length=1)
    payment_method: PaymentMethod
    shipping_method: ShippingMethod
    promotion_code: Optional[str] = None
    customer_notes: Optional[str] = None


class OrderLineResponse(BaseModel):
    product_id: str
    quantity: int
    unit_price: Decimal
    subtotal: Decimal


class OrderResponse(BaseModel):
    id: str
    number: str
    user_id: str
    address_id: Optional[str] = None
    subtotal: Decimal
    shipping_amount: Decimal
    discount_amount: Decimal
    total: Decimal
    promotion_code: Optional[str] = None
    payment_method: PaymentMethod
    shipping_method: ShippingMethod
    status: OrderStatus
    customer_notes: Optional[str] = None
    lines: List[OrderLineResponse]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_domain(cls, order):
        return cls(
            id=order.id,
            number=order.number,
            user_id=order.user_id,
            address_id=order.address_id,
            subtotal=order.subtotal,
            shipping_amount=order.shipping_amount,
            discount_amount=order.discount_amount,
            total=order.total,
            promotion_code=order.promotion_code,
            payment_method=order.payment_method,
            shipping_method=order.shipping_method,
            status=order.status,
            customer_notes=order.customer_notes,
            lines=[
                OrderLineResponse(
                    product_id=line.product_id,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                    subtotal=line.subtotal
                )
                for line in order.lines
            ],
            created_at=order.created_at,
            updated_at=order.updated_at
        )


class UpdateOrderStatusRequest(BaseModel):
    status: OrderStatus
    internal_notes: Optional[str] = None


class PromotionValidationResponse(BaseModel):
    code: str
    name: str
    kind: PromotionKind
    value: Decimal
    discount: Decimal


class CardPaymentRequest(BaseModel):
    order_id: str
    user_id: str
    token: Optional[str] = None
    card: Optional[CardData] = None
    payment_method_id: Optional[str] = None
    installments: int = 1
    payer: PayerInfo
    idempotency_key: Optional[str] = None


class PaymentResponse(BaseModel):
    id: str
    order_id: str
    gateway_id: Optional[str] = None
    amount: Decimal
    status: PaymentStatus
    status_detail: Optional[str] = None
    method_id: Optional[str] = None
    card_last_four: Optional[str] = None
    installments: int
    refunded_amount: Decimal
    paid_at: Optional[datetime] = None
    preference_id: Optional[str] = None
    init_point: Optional[str] = None
    sandbox_init_point: Optional[str] = None

    @classmethod
    def from_domain(cls, payment):
        return cls(
            id=payment.id,
            order_id=payment.order_id,
            gateway_id=payment.gateway_id,
            amount=payment.amount,
            status=payment.status,
            status_detail=payment.status_detail,
            method_id=payment.method_id,
            card_last_four=payment.card_last_four,
            installments=payment.installments,
            refunded_amount=payment.refunded_amount,
            paid_at=payment.paid_at,
            preference_id=payment.preference_id,
            init_point=payment.init_point,
            sandbox_init_point=payment.sandbox_init_point
        )


class CheckoutPaymentRequest(BaseModel):
    order_id: str
    user_id: str
    payer: Optional[PayerInfo] = None


class PaymentStatusResponse(BaseModel):
    """Pago local junto al estado que informa la pasarela"""
    payment: PaymentResponse
    gateway_status: str
    gateway_status_detail: Optional[str] = None
    transaction_amount: Optional[Decimal] = None
    transaction_amount_refunded: Optional[Decimal] = None


class CaptureRequest(BaseModel):
    amount: Optional[Decimal] = None


class RefundRequest(BaseModel):
    amount: Optional[Decimal] = None
    reason: Optional[str] = None


class RefundResponse(BaseModel):
    refund_id: str
    amount: Optional[Decimal] = None
    status: Optional[str] = None
    payment: PaymentResponse


class WebhookData(BaseModel):
    id: Optional[Union[int, str]] = None


class WebhookRequest(BaseModel):
    """Cuerpo del webhook de MercadoPago; los campos extra se ignoran"""
    model_config = ConfigDict(extra="ignore")

    id: Optional[Union[int, str]] = None
    type: Optional[str] = None
    action: Optional[str] = None
    date_created: Optional[str] = None
    data: Optional[WebhookData] = None

    @field_validator("date_created", mode="before")
    @classmethod
    def _stringify(cls, value):
        return str(value) if value is not None else None


class WebhookResponse(BaseModel):
    received: bool
    processed: bool
    event_id: Optional[str] = None
    type: Optional[str] = None
    outcome: Optional[str] = None
    payment_status: Optional[str] = None
    error: Optional[str] = None


class CustomerRequest(BaseModel):
    model_config = ConfigDict(extra="allow")

    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    description: Optional[str] = None


class ErrorResponse(BaseModel):
    detail: str
