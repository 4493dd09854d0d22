from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field

CENTS = Decimal("0.01")


def money(value) -> Decimal:
    """Redondeo half-up a céntimos"""
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def as_utc(value: datetime) -> datetime:
    # SQLite devuelve fechas naive; se interpretan como UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    AUTHORIZED = "AUTHORIZED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class PaymentMethod(str, Enum):
    CREDIT_CARD = "CREDIT_CARD"
    DEBIT_CARD = "DEBIT_CARD"


class ShippingMethod(str, Enum):
    DELIVERY = "DELIVERY"
    PICKUP = "PICKUP"


class PromotionKind(str, Enum):
    PERCENTAGE = "PERCENTAGE"
    FIXED_AMOUNT = "FIXED_AMOUNT"
    FREE_SHIPPING = "FREE_SHIPPING"
    FREE_PRODUCT = "FREE_PRODUCT"


class OrderLine(BaseModel):
    """Línea de pedido con el precio congelado al momento de la compra"""
    id: str
    order_id: str
    product_id: str
    quantity: int
    unit_price: Decimal
    subtotal: Decimal


class Order(BaseModel):
    """Domain Entity: pedido"""
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
    internal_notes: Optional[str] = None
    lines: List[OrderLine] = []
    created_at: datetime
    updated_at: datetime

    def can_be_confirmed(self) -> bool:
        """Regla de negocio: solo se confirma un pedido PENDING"""
        return self.status == OrderStatus.PENDING

    def can_be_cancelled(self) -> bool:
        """Regla de negocio: solo se cancela automáticamente un pedido PENDING"""
        return self.status == OrderStatus.PENDING


class Payment(BaseModel):
    """Domain Entity: intento de cobro de un pedido"""
    id: str
    order_id: str
    amount: Decimal
    status: PaymentStatus
    gateway_id: Optional[str] = None
    method_id: Optional[str] = None
    card_last_four: Optional[str] = None
    installments: int = 1
    status_detail: Optional[str] = None
    refunded_amount: Decimal = Decimal("0")
    paid_at: Optional[datetime] = None
    preference_id: Optional[str] = None
    init_point: Optional[str] = None
    sandbox_init_point: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class Promotion(BaseModel):
    id: str
    code: str
    name: str
    kind: PromotionKind
    value: Decimal
    minimum_amount: Optional[Decimal] = None
    active: bool = True
    starts_at: datetime
    ends_at: datetime
    usage_cap: Optional[int] = None
    usage_count: int = 0


class Product(BaseModel):
    """Value Object: producto del catálogo"""
    id: str
    name: str
    sku: Optional[str] = None
    unit_price: Decimal
    stock: int


class User(BaseModel):
    id: str
    first_name: str
    last_name: str
    email: str
    phone: Optional[str] = None


# Gateway value types

class GatewayPayment(BaseModel):
    """Pago normalizado desde la respuesta de la pasarela"""
    id: str
    status: str
    status_detail: Optional[str] = None
    method_id: Optional[str] = None
    card_last_four: Optional[str] = None
    installments: Optional[int] = None
    transaction_amount: Optional[Decimal] = None
    transaction_amount_refunded: Optional[Decimal] = None
    external_reference: Optional[str] = None
    date_created: Optional[datetime] = None
    date_approved: Optional[datetime] = None


class GatewayRefund(BaseModel):
    id: str
    payment_id: str
    amount: Optional[Decimal] = None
    status: Optional[str] = None
    date_created: Optional[datetime] = None
    reason: Optional[str] = None


class GatewayCustomer(BaseModel):
    id: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[dict] = None
    identification: Optional[dict] = None
    description: Optional[str] = None
    date_created: Optional[datetime] = None
    date_last_updated: Optional[datetime] = None


class CardToken(BaseModel):
    id: str
    first_six_digits: Optional[str] = None
    last_four_digits: Optional[str] = None
    status: Optional[str] = None


class CardData(BaseModel):
    """Datos de tarjeta sin tokenizar (solo sandbox)"""
    card_number: str
    security_code: str
    expiration_month: int
    expiration_year: int
    cardholder_name: str
    identification_number: Optional[str] = None

    @property
    def bin(self) -> str:
        return self.card_number.replace(" ", "")[:6]


class PayerInfo(BaseModel):
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    identification_number: Optional[str] = None


class GatewayPaymentRequest(BaseModel):
    """Solicitud de cobro ya tokenizada, lista para la pasarela"""
    external_reference: str
    amount: Decimal
    token: str
    payment_method_id: Optional[str] = None
    installments: int = 1
    description: str
    payer: PayerInfo
    identification_type: str = "DNI"


class PreferenceItem(BaseModel):
    id: str
    title: str
    quantity: int
    unit_price: Decimal


class PreferenceRequest(BaseModel):
    """Preferencia de Checkout Pro: el cliente paga en la página de MercadoPago"""
    external_reference: str
    order_id: str
    items: List[PreferenceItem]
    shipping_cost: Decimal = Decimal("0")
    payer: PayerInfo
    payer_phone: Optional[str] = None
    identification_type: str = "DNI"


class CheckoutPreference(BaseModel):
    id: str
    init_point: Optional[str] = None
    sandbox_init_point: Optional[str] = None
    external_reference: Optional[str] = None


class SearchResult(BaseModel):
    results: List[GatewayPayment] = []
    total: int = 0
    limit: int = 50
    offset: int = 0


# Notifications

class NotificationType(str, Enum):
    PAGO_APROBADO = "PAGO_APROBADO"
    PAGO_PENDIENTE = "PAGO_PENDIENTE"
    PAGO_VALIDACION_REQUERIDA = "PAGO_VALIDACION_REQUERIDA"
    PAGO_FONDOS_INSUFICIENTES = "PAGO_FONDOS_INSUFICIENTES"
    PAGO_CODIGO_SEGURIDAD_INVALIDO = "PAGO_CODIGO_SEGURIDAD_INVALIDO"
    PAGO_ERROR_FORMULARIO = "PAGO_ERROR_FORMULARIO"
    PAGO_EXPIRADO = "PAGO_EXPIRADO"
    PAGO_RECHAZADO = "PAGO_RECHAZADO"
    PAGO_CANCELADO = "PAGO_CANCELADO"
    PAGO_REEMBOLSADO = "PAGO_REEMBOLSADO"


class NotificationChannelKind(str, Enum):
    EMAIL = "EMAIL"
    SMS = "SMS"
    PUSH = "PUSH"
    IN_APP = "IN_APP"


class NotificationPriority(str, Enum):
    BAJA = "BAJA"
    NORMAL = "NORMAL"
    ALTA = "ALTA"
    CRITICA = "CRITICA"


class NotificationUser(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    first_name: str = Field(alias="nombres")
    last_name: str = Field(alias="apellidos")
    email: str
    phone: Optional[str] = Field(default=None, alias="celular")


class NotificationContext(BaseModel):
    """Contexto efímero de una notificación: pago + pedido + usuario"""
    model_config = ConfigDict(populate_by_name=True)

    payment_id: str = Field(alias="pagoId")
    gateway_id: Optional[str] = Field(default=None, alias="mercadopagoId")
    amount: Decimal = Field(alias="monto")
    currency: str = Field(alias="moneda")
    payment_method: Optional[str] = Field(default=None, alias="metodoPago")
    card_last_four: Optional[str] = Field(default=None, alias="ultimosCuatroDigitos")
    paid_at: Optional[datetime] = Field(default=None, alias="fechaPago")
    order_id: str = Field(alias="pedidoId")
    order_number: str = Field(alias="numeroPedido")
    user: NotificationUser = Field(alias="usuario")

    def to_contract(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")
