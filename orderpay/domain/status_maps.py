"""Tablas de mapeo de estados.

Todas son constantes inmutables (``MappingProxyType``/``frozenset``) para
poder auditarlas y probarlas de forma aislada.
"""
from types import MappingProxyType
from typing import Optional

from orderpay.domain.models import NotificationType, OrderStatus, PaymentStatus, ShippingMethod


# Estado de la pasarela -> estado interno del pago
GATEWAY_STATUS_TO_PAYMENT = MappingProxyType({
    "pending": PaymentStatus.PROCESSING,
    "in_process": PaymentStatus.PROCESSING,
    "in_mediation": PaymentStatus.PROCESSING,
    "authorized": PaymentStatus.AUTHORIZED,
    "approved": PaymentStatus.COMPLETED,
    "rejected": PaymentStatus.FAILED,
    "cancelled": PaymentStatus.CANCELLED,
    "refunded": PaymentStatus.REFUNDED,
    "charged_back": PaymentStatus.REFUNDED,
})

# Orden monótono de estados; un evento solo se aplica si sube de rango
PAYMENT_STATUS_RANK = MappingProxyType({
    PaymentStatus.PENDING: 0,
    PaymentStatus.PROCESSING: 1,
    PaymentStatus.AUTHORIZED: 2,
    PaymentStatus.COMPLETED: 3,
    PaymentStatus.FAILED: 3,
    PaymentStatus.CANCELLED: 3,
    PaymentStatus.REFUNDED: 4,
})

# Pagos que bloquean un nuevo intento sobre el mismo pedido
ACTIVE_PAYMENT_STATUSES = frozenset({
    PaymentStatus.PENDING,
    PaymentStatus.PROCESSING,
    PaymentStatus.AUTHORIZED,
    PaymentStatus.COMPLETED,
})

# Operaciones administrativas -> estados de origen permitidos
CAPTURE = "capture"
REFUND = "refund"
CANCEL = "cancel"

ALLOWED_SOURCE_STATUSES = MappingProxyType({
    CAPTURE: frozenset({PaymentStatus.AUTHORIZED}),
    REFUND: frozenset({PaymentStatus.COMPLETED}),
    CANCEL: frozenset({PaymentStatus.PENDING, PaymentStatus.PROCESSING, PaymentStatus.AUTHORIZED}),
})

# Estado interno del pago -> transición del pedido (desde PENDING)
PAYMENT_TO_ORDER_TRANSITION = MappingProxyType({
    PaymentStatus.COMPLETED: OrderStatus.CONFIRMED,
    PaymentStatus.FAILED: OrderStatus.CANCELLED,
    PaymentStatus.CANCELLED: OrderStatus.CANCELLED,
})

# status_detail de un pago aprobado con reembolsos parciales
PARTIALLY_REFUNDED = "partially_refunded"

# Sub-estados en contingencia: el pedido sigue PENDING sin transición
CONTINGENCY_STATUS_DETAILS = frozenset({
    "pending_contingency",
    "pending_review_manual",
})

# Política de envío: ¿el método requiere despacho a domicilio?
SHIPPING_REQUIRES_DELIVERY = MappingProxyType({
    ShippingMethod.DELIVERY: True,
    ShippingMethod.PICKUP: False,
})


# Estado interno del pago -> tipo de notificación
PAYMENT_STATUS_TO_NOTIFICATION = MappingProxyType({
    PaymentStatus.PROCESSING: NotificationType.PAGO_PENDIENTE,
    PaymentStatus.AUTHORIZED: NotificationType.PAGO_PENDIENTE,
    PaymentStatus.COMPLETED: NotificationType.PAGO_APROBADO,
    PaymentStatus.FAILED: NotificationType.PAGO_RECHAZADO,
    PaymentStatus.CANCELLED: NotificationType.PAGO_CANCELADO,
    PaymentStatus.REFUNDED: NotificationType.PAGO_REEMBOLSADO,
})

# status_detail de la pasarela -> tipo de notificación (tiene prioridad)
STATUS_DETAIL_TO_NOTIFICATION = MappingProxyType({
    "cc_rejected_insufficient_amount": NotificationType.PAGO_FONDOS_INSUFICIENTES,
    "cc_rejected_bad_filled_security_code": NotificationType.PAGO_CODIGO_SEGURIDAD_INVALIDO,
    "cc_rejected_bad_filled_date": NotificationType.PAGO_ERROR_FORMULARIO,
    "cc_rejected_bad_filled_card_number": NotificationType.PAGO_ERROR_FORMULARIO,
    "cc_rejected_bad_filled_other": NotificationType.PAGO_ERROR_FORMULARIO,
    "cc_rejected_call_for_authorize": NotificationType.PAGO_VALIDACION_REQUERIDA,
    "expired": NotificationType.PAGO_EXPIRADO,
})


def map_gateway_status(status: str) -> PaymentStatus:
    return GATEWAY_STATUS_TO_PAYMENT.get(status, PaymentStatus.PENDING)


def is_forward(current: PaymentStatus, new: PaymentStatus) -> bool:
    return PAYMENT_STATUS_RANK[new] > PAYMENT_STATUS_RANK[current]


def select_notification(status: PaymentStatus, status_detail: Optional[str]) -> Optional[NotificationType]:
    if status_detail and status_detail in STATUS_DETAIL_TO_NOTIFICATION:
        return STATUS_DETAIL_TO_NOTIFICATION[status_detail]
    return PAYMENT_STATUS_TO_NOTIFICATION.get(status)
