from types import MappingProxyType
from typing import List, Optional
from pydantic import BaseModel

from orderpay.domain.models import (
    NotificationChannelKind as Channel, NotificationContext, NotificationPriority as Priority, NotificationType
)


class NotificationTemplate(BaseModel):
    title: str
    message: str
    priority: Priority
    channels: List[Channel]
    sms: Optional[str] = None


class RenderedNotification(BaseModel):
    """Notificación lista para entregar por un canal"""
    type: NotificationType
    title: str
    message: str
    sms: Optional[str] = None
    priority: Priority
    channels: List[Channel]
    context: NotificationContext


NOTIFICATION_TEMPLATES = MappingProxyType({
    NotificationType.PAGO_APROBADO: NotificationTemplate(
        title="¡Pago aprobado exitosamente!",
        message="Tu pago de {{monto}} {{moneda}} ha sido aprobado. Tu pedido #{{numeroPedido}} está siendo procesado.",
        priority=Priority.ALTA,
        channels=[Channel.EMAIL, Channel.IN_APP],
        sms="Tu pago de {{monto}} {{moneda}} fue aprobado. Pedido #{{numeroPedido}} en proceso. ¡Gracias!",
    ),
    NotificationType.PAGO_PENDIENTE: NotificationTemplate(
        title="Pago pendiente de confirmación",
        message="Tu pago de {{monto}} {{moneda}} está pendiente. Te notificaremos cuando se confirme.",
        priority=Priority.NORMAL,
        channels=[Channel.EMAIL, Channel.IN_APP],
        sms="Tu pago de {{monto}} {{moneda}} está pendiente. Te avisaremos cuando se confirme. Pedido #{{numeroPedido}}",
    ),
    NotificationType.PAGO_VALIDACION_REQUERIDA: NotificationTemplate(
        title="Se requiere validación para autorizar el pago",
        message="Tu pago requiere validación adicional. Revisa tu banco o contacta soporte.",
        priority=Priority.ALTA,
        channels=[Channel.EMAIL, Channel.IN_APP, Channel.SMS],
        sms="Tu pago requiere validación adicional. Revisa tu banco o intenta nuevamente. Pedido #{{numeroPedido}}",
    ),
    NotificationType.PAGO_FONDOS_INSUFICIENTES: NotificationTemplate(
        title="Fondos insuficientes para procesar el pago",
        message="El pago fue rechazado por fondos insuficientes. Verifica el saldo de tu tarjeta {{tarjetaEnmascarada}}.",
        priority=Priority.ALTA,
        channels=[Channel.EMAIL, Channel.IN_APP],
        sms="Pago rechazado por fondos insuficientes. Verifica saldo y prueba nuevamente. Pedido #{{numeroPedido}}",
    ),
    NotificationType.PAGO_CODIGO_SEGURIDAD_INVALIDO: NotificationTemplate(
        title="Código de seguridad inválido",
        message="El código de seguridad de tu tarjeta es incorrecto. Verifica e intenta nuevamente.",
        priority=Priority.ALTA,
        channels=[Channel.EMAIL, Channel.IN_APP],
        sms="Código de seguridad incorrecto. Verifica CVV/CVC e intenta nuevamente. Pedido #{{numeroPedido}}",
    ),
    NotificationType.PAGO_ERROR_FORMULARIO: NotificationTemplate(
        title="Error en los datos del formulario",
        message="Hay errores en los datos proporcionados. Verifica la información e intenta nuevamente.",
        priority=Priority.NORMAL,
        channels=[Channel.IN_APP, Channel.EMAIL],
        sms="Datos de pago incorrectos. Verifica la información e intenta nuevamente. Pedido #{{numeroPedido}}",
    ),
    NotificationType.PAGO_EXPIRADO: NotificationTemplate(
        title="Pago vencido",
        message="El pago ha vencido por límite de tiempo. Puedes intentar realizar un nuevo pago.",
        priority=Priority.NORMAL,
        channels=[Channel.EMAIL, Channel.IN_APP],
        sms="Pago vencido por tiempo límite. Puedes realizar un nuevo pago cuando gustes. Pedido #{{numeroPedido}}",
    ),
    NotificationType.PAGO_RECHAZADO: NotificationTemplate(
        title="Pago rechazado",
        message="Tu pago fue rechazado. Intenta con otro método de pago o contacta tu banco.",
        priority=Priority.ALTA,
        channels=[Channel.EMAIL, Channel.IN_APP],
        sms="Pago rechazado. Intenta con otra tarjeta o método de pago. Pedido #{{numeroPedido}}",
    ),
    NotificationType.PAGO_CANCELADO: NotificationTemplate(
        title="Pago cancelado",
        message="El pago fue cancelado. Puedes intentar nuevamente cuando desees.",
        priority=Priority.NORMAL,
        channels=[Channel.EMAIL, Channel.IN_APP],
        sms="Pago cancelado. No se realizó cargo. Puedes pagar nuevamente cuando gustes. Pedido #{{numeroPedido}}",
    ),
    NotificationType.PAGO_REEMBOLSADO: NotificationTemplate(
        title="Pago reembolsado",
        message="Tu pago ha sido reembolsado exitosamente. El dinero será devuelto a tu cuenta.",
        priority=Priority.ALTA,
        channels=[Channel.EMAIL, Channel.IN_APP, Channel.SMS],
        sms=(
            "Reembolso procesado de {{monto}} {{moneda}}. Aparecerá en tu cuenta en 1-10 días hábiles. "
            "Pedido #{{numeroPedido}}"
        ),
    ),
})
