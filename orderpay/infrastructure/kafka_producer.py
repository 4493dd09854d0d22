import json
import logging
from aiokafka import AIOKafkaProducer

from orderpay.application.interfaces import EventPublisher

logger = logging.getLogger(__name__)


class KafkaProducerClient(EventPublisher):
    def __init__(self, bootstrap_servers: str, topic: str):
        self._bootstrap_servers = bootstrap_servers
        self._producer: AIOKafkaProducer | None = None
        self._topic = topic

    async def start(self):
        if not self._producer:
            producer = AIOKafkaProducer(
                bootstrap_servers=self._bootstrap_servers
            )
            await producer.start()
            self._producer = producer
            logger.info("Kafka producer iniciado")

    async def stop(self):
        if self._producer:
            await self._producer.stop()
            self._producer = None
            logger.info("Kafka producer detenido")

    async def publish_notification(self, user_id: str, payload: dict) -> bool:
        if not self._producer:
            logger.error("Kafka producer no iniciado")
            return False

        try:
            event = {
                "event_type": "notification.in_app",
                "user_id": user_id,
                **payload
            }

            await self._producer.send_and_wait(
                topic=self._topic,
                key=user_id.encode(),
                value=json.dumps(event, default=str).encode()
            )
            logger.info(f"Notificación in-app publicada para el usuario {user_id}")
            return True

        except Exception as e:
            logger.error(f"Error publicando notificación in-app: {e}")
            return False
