import os
from decimal import Decimal
from dotenv import load_dotenv

load_dotenv()


class Settings:
    # Database
    POSTGRES_CONNECTION_STRING: str = os.getenv("POSTGRES_CONNECTION_STRING", "")
    SQLITE_FALLBACK_URL: str = os.getenv("SQLITE_FALLBACK_URL", "sqlite+aiosqlite:///./orderpay.db")

    # API
    ADMIN_API_TOKEN: str = os.getenv("ADMIN_API_TOKEN", "")

    # MercadoPago
    MP_ACCESS_TOKEN: str = os.getenv("MP_ACCESS_TOKEN", "")
    MP_PUBLIC_KEY: str = os.getenv("MP_PUBLIC_KEY", "")
    MP_BASE_URL: str = os.getenv("MP_BASE_URL", "https://api.mercadopago.com")
    MP_WEBHOOK_URL: str = os.getenv("MP_WEBHOOK_URL", "http://localhost:3001/pagos/webhook")
    MP_WEBHOOK_SECRET: str = os.getenv("MP_WEBHOOK_SECRET", "")
    MP_STATEMENT_DESCRIPTOR: str = os.getenv("MP_STATEMENT_DESCRIPTOR", "DELA-PLATFORM")
    MP_SUCCESS_URL: str = os.getenv("MP_SUCCESS_URL", "http://localhost:3000/pagos/exito")
    MP_FAILURE_URL: str = os.getenv("MP_FAILURE_URL", "http://localhost:3000/pagos/error")
    MP_PENDING_URL: str = os.getenv("MP_PENDING_URL", "http://localhost:3000/pagos/pendiente")
    GATEWAY_TIMEOUT: float = float(os.getenv("GATEWAY_TIMEOUT", "5.0"))
    REFUND_WINDOW_DAYS: int = int(os.getenv("REFUND_WINDOW_DAYS", "90"))

    # Pricing
    CURRENCY: str = os.getenv("CURRENCY", "PEN")
    SHIPPING_DELIVERY_FEE: Decimal = Decimal(os.getenv("SHIPPING_DELIVERY_FEE", "10.00"))

    # Notifications
    NOTIFICATIONS_BASE_URL: str = os.getenv("NOTIFICATIONS_BASE_URL", "")
    NOTIFICATIONS_API_TOKEN: str = os.getenv("NOTIFICATIONS_API_TOKEN", "")

    # Kafka
    KAFKA_BOOTSTRAP_SERVERS: str = os.getenv("KAFKA_BOOTSTRAP_SERVERS", "localhost:9092")
    NOTIFICATIONS_TOPIC: str = os.getenv("NOTIFICATIONS_TOPIC", "orderpay.notifications")

    @property
    def DATABASE_URL(self) -> str:
        """URL asíncrono para la aplicación"""
        if not self.POSTGRES_CONNECTION_STRING:
            return self.SQLITE_FALLBACK_URL
        url = self.POSTGRES_CONNECTION_STRING
        for prefix in ("postgres://", "postgresql://"):
            if url.startswith(prefix):
                return "postgresql+asyncpg://" + url[len(prefix):]
        return url

    @property
    def GATEWAY_SANDBOX(self) -> bool:
        """Las credenciales de sandbox siempre empiezan con TEST-"""
        return self.MP_ACCESS_TOKEN.startswith("TEST-")


settings = Settings()
