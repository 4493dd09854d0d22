import httpx
import logging
import asyncio
from types import MappingProxyType
from typing import Dict, Optional

from orderpay.domain.models import NotificationChannelKind as Channel
from orderpay.application.interfaces import EventPublisher, NotificationChannel
from orderpay.application.notification_templates import RenderedNotification

logger = logging.getLogger(__name__)


SIMULATED_LATENCY = MappingProxyType({
    Channel.EMAIL: 0.1,
    Channel.SMS: 0.15,
    Channel.PUSH: 0.2,
    Channel.IN_APP: 0.05,
})


def _recipient(kind: Channel, notification: RenderedNotification) -> Optional[str]:
    user = notification.context.user
    if kind == Channel.EMAIL:
        return user.email
    if kind == Channel.SMS:
        return user.phone
    return user.id


class HTTPNotificationChannel(NotificationChannel):
    """Canal sobre el servicio HTTP de notificaciones (email, SMS, push)"""

    def __init__(self, kind: Channel, base_url: str, api_token: str, max_retries: int = 3,
                 retry_delay: float = 0.5, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._kind = kind
        self._base_url = base_url.rstrip("/")
        self._api_token = api_token
        self._max_retries = max_retries
        self._retry_delay = retry_delay
        self._transport = transport

    async def send(self, notification: RenderedNotification) -> bool:
        """Envío con reintentos acotados"""
        recipient = _recipient(self._kind, notification)
        if not recipient:
            logger.info(f"{self._kind.value} no enviado: usuario sin destinatario")
            return False

        body = {
            "to": recipient,
            "type": notification.type.value,
            "title": notification.title,
            "message": notification.sms if self._kind == Channel.SMS and notification.sms else notification.message,
            "priority": notification.priority.value,
            "context": notification.context.to_contract()
        }

        for attempt in range(self._max_retries):
            try:
                async with httpx.AsyncClient(transport=self._transport) as client:
                    response = await client.post(
                        f"{self._base_url}/api/notifications/{self._kind.value.lower()}",
                        json=body,
                        headers={"X-API-Key": self._api_token},
                        timeout=10.0
                    )

                    if response.status_code in (200, 201, 202):
                        logger.info(f"{self._kind.value} enviado a {recipient} (intento {attempt + 1})")
                        return True
                    else:
                        logger.warning(f"Servicio de notificaciones respondió {response.status_code}")

            except httpx.HTTPError as e:
                logger.warning(
                    f"Error enviando {self._kind.value} (intento {attempt + 1}/{self._max_retries}): {e}"
                )

            if attempt < self._max_retries - 1:
                await asyncio.sleep(self._retry_delay)

        logger.error(f"No se pudo enviar {self._kind.value} tras {self._max_retries} intentos")
        return False


class KafkaInAppChannel(NotificationChannel):
    def __init__(self, publisher: EventPublisher):
        self._publisher = publisher

    async def send(self, notification: RenderedNotification) -> bool:
        return await self._publisher.publish_notification(
            notification.context.user.id,
            {
                "type": notification.type.value,
                "title": notification.title,
                "message": notification.message,
                "priority": notification.priority.value,
                "context": notification.context.to_contract()
            }
        )


class SimulatedChannel(NotificationChannel):
    """Canal sin transporte real: registra el envío y simula la latencia"""

    def __init__(self, kind: Channel, latency: Optional[float] = None):
        self._kind = kind
        self._latency = SIMULATED_LATENCY[kind] if latency is None else latency

    async def send(self, notification: RenderedNotification) -> bool:
        recipient = _recipient(self._kind, notification)
        if not recipient:
            logger.info(f"{self._kind.value} no enviado: usuario sin destinatario")
            return False
        await asyncio.sleep(self._latency)
        logger.info(f"{self._kind.value} simulado a {recipient}: {notification.title}")
        return True


def build_channels(base_url: str, api_token: str,
                   publisher: Optional[EventPublisher] = None) -> Dict[Channel, NotificationChannel]:
    if base_url:
        channels: Dict[Channel, NotificationChannel] = {
            kind: HTTPNotificationChannel(kind, base_url, api_token)
            for kind in (Channel.EMAIL, Channel.SMS, Channel.PUSH)
        }
    else:
        logger.warning("NOTIFICATIONS_BASE_URL no configurado; canales en modo simulación")
        channels = {kind: SimulatedChannel(kind) for kind in (Channel.EMAIL, Channel.SMS, Channel.PUSH)}
    channels[Channel.IN_APP] = KafkaInAppChannel(publisher) if publisher else SimulatedChannel(Channel.IN_APP)
    return channels
