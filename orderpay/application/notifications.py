import asyncio
import logging
from typing import Dict, Mapping, Optional

from orderpay.domain.models import (
    NotificationChannelKind, NotificationContext, NotificationType, PaymentStatus
)
from orderpay.domain.status_maps import select_notification
from orderpay.application.interfaces import NotificationChannel
from orderpay.application.notification_templates import (
    NOTIFICATION_TEMPLATES, NotificationTemplate, RenderedNotification
)

logger = logging.getLogger(__name__)


def template_variables(context: NotificationContext) -> Dict[str, str]:
    user = context.user
    last_four = context.card_last_four or "****"
    return {
        "nombreCompleto": f"{user.first_name} {user.last_name}",
        "nombres": user.first_name,
        "apellidos": user.last_name,
        "email": user.email,
        "monto": f"{context.amount:.2f}",
        "moneda": context.currency,
        "metodoPago": context.payment_method or "Tarjeta",
        "ultimosCuatroDigitos": last_four,
        "tarjetaEnmascarada": f"**** **** **** {last_four}",
        "fechaPago": context.paid_at.strftime("%d/%m/%Y %H:%M") if context.paid_at else "Pendiente",
        "numeroPedido": context.order_number,
        "pedidoId": context.order_id,
        "pagoId": context.payment_id,
        "mercadopagoId": context.gateway_id or "",
    }


def render(text: str, variables: Mapping[str, str]) -> str:
    for key, value in variables.items():
        text = text.replace("{{" + key + "}}", value)
    return text


class NotificationDispatcher:
    def __init__(
        self,
        channels: Mapping[NotificationChannelKind, NotificationChannel],
        templates: Optional[Mapping[NotificationType, NotificationTemplate]] = None
    ):
        self._channels = channels
        self._templates = NOTIFICATION_TEMPLATES if templates is None else templates

    async def dispatch_for_payment(self, status: PaymentStatus, status_detail: Optional[str],
                                   context: NotificationContext) -> bool:
        notification_type = select_notification(status, status_detail)
        if notification_type is None:
            logger.info(f"Sin notificación definida para el estado {status.value} ({status_detail})")
            return False
        return await self.dispatch(notification_type, context)

    async def dispatch(self, notification_type: NotificationType, context: NotificationContext) -> bool:
        template = self._templates.get(notification_type)
        if template is None:
            logger.error(f"No se encontró plantilla para el tipo {notification_type.value}")
            return False

        variables = template_variables(context)
        notification = RenderedNotification(
            type=notification_type,
            title=render(template.title, variables),
            message=render(template.message, variables),
            sms=render(template.sms, variables) if template.sms else None,
            priority=template.priority,
            channels=template.channels,
            context=context
        )
        logger.info(
            f"Enviando {notification_type.value} del pedido #{context.order_number} "
            f"por {', '.join(c.value for c in template.channels)}"
        )

        results = await asyncio.gather(
            *(self._send(channel, notification) for channel in template.channels),
            return_exceptions=True
        )

        sent = 0
        for channel, result in zip(template.channels, results):
            if isinstance(result, Exception):
                logger.error(f"Error enviando por canal {channel.value}: {result}")
            elif result:
                sent += 1
        if sent < len(results):
            logger.warning(f"Notificaciones fallidas: {len(results) - sent}/{len(results)}")
        logger.info(f"Notificaciones enviadas: {sent}/{len(results)}")
        return sent > 0

    async def _send(self, channel: NotificationChannelKind, notification: RenderedNotification) -> bool:
        handler = self._channels.get(channel)
        if handler is None:
            logger.warning(f"Canal no configurado: {channel.value}")
            return False
        return await handler.send(notification)
