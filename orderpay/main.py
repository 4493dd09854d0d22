import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI

from orderpay.config import settings
from orderpay.presentation.api import router
from orderpay.infrastructure.kafka_producer import KafkaProducerClient

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Ciclo de vida de la aplicación"""
    producer = KafkaProducerClient(settings.KAFKA_BOOTSTRAP_SERVERS, settings.NOTIFICATIONS_TOPIC)
    try:
        await producer.start()
        app.state.kafka_producer = producer
    except Exception as e:
        # Sin Kafka las notificaciones in-app pasan a modo simulación
        logger.warning(f"Kafka no disponible: {e}")
        app.state.kafka_producer = None

    if settings.GATEWAY_SANDBOX:
        logger.info("MercadoPago en modo sandbox")

    yield

    logger.info("Aplicación deteniéndose...")
    if app.state.kafka_producer:
        await producer.stop()


app = FastAPI(
    title="Order Payment Service",
    description="Pedidos, cobros con MercadoPago y conciliación de webhooks",
    version="1.0.0",
    lifespan=lifespan
)

app.include_router(router)


@app.get("/health")
async def health():
    return {"status": "healthy", "kafka": "running" if getattr(app.state, "kafka_producer", None) else "disabled"}
