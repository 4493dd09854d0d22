from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Optional, List

from orderpay.domain.models import (
    CardData, CardToken, CheckoutPreference, GatewayCustomer, GatewayPayment, GatewayPaymentRequest,
    GatewayRefund, Order, OrderStatus, Payment, PreferenceRequest, Product, Promotion, SearchResult, User
)


class ProductRepository(ABC):
    @abstractmethod
    async def get_by_id(self, product_id: str) -> Optional[Product]:
        pass

    @abstractmethod
    async def decrement_stock(self, product_id: str, quantity: int) -> bool:
        pass

    @abstractmethod
    async def restore_stock(self, product_id: str, quantity: int) -> None:
        pass


class UserRepository(ABC):
    @abstractmethod
    async def get_by_id(self, user_id: str) -> Optional[User]:
        pass


class AddressRepository(ABC):
    @abstractmethod
    async def belongs_to(self, address_id: str, user_id: str) -> bool:
        pass


class PromotionRepository(ABC):
    @abstractmethod
    async def get_by_code(self, code: str) -> Optional[Promotion]:
        pass

    @abstractmethod
    async def increment_usage(self, promotion_id: str) -> bool:
        pass


class OrderRepository(ABC):
    @abstractmethod
    async def get_by_id(self, order_id: str) -> Optional[Order]:
        pass

    @abstractmethod
    async def get_by_number(self, number: str) -> Optional[Order]:
        pass

    @abstractmethod
    async def create(self, order: Order) -> None:
        pass

    @abstractmethod
    async def update_status(self, order_id: str, status: OrderStatus, internal_notes: Optional[str] = None) -> None:
        pass

    @abstractmethod
    async def next_sequence(self, year: int) -> int:
        pass


class PaymentRepository(ABC):
    @abstractmethod
    async def get_by_id(self, payment_id: str) -> Optional[Payment]:
        pass

    @abstractmethod
    async def get_by_gateway_id(self, gateway_id: str) -> Optional[Payment]:
        pass

    @abstractmethod
    async def list_for_order(self, order_id: str) -> List[Payment]:
        pass

    @abstractmethod
    async def create(self, payment: Payment) -> None:
        pass

    @abstractmethod
    async def reserve(self, payment: Payment) -> bool:
        pass

    @abstractmethod
    async def update(self, payment: Payment) -> None:
        pass

    @abstractmethod
    async def delete(self, payment_id: str) -> None:
        pass


class WebhookEventRepository(ABC):
    @abstractmethod
    async def exists(self, event_id: str) -> bool:
        pass

    @abstractmethod
    async def record(self, event_id: str, gateway_payment_id: str, event_type: str,
                     action: Optional[str], outcome: str) -> None:
        pass


class UnitOfWork(ABC):
    @property
    @abstractmethod
    def products(self) -> ProductRepository:
        pass

    @property
    @abstractmethod
    def users(self) -> UserRepository:
        pass

    @property
    @abstractmethod
    def addresses(self) -> AddressRepository:
        pass

    @property
    @abstractmethod
    def promotions(self) -> PromotionRepository:
        pass

    @property
    @abstractmethod
    def orders(self) -> OrderRepository:
        pass

    @property
    @abstractmethod
    def payments(self) -> PaymentRepository:
        pass

    @property
    @abstractmethod
    def webhook_events(self) -> WebhookEventRepository:
        pass

    @abstractmethod
    async def __call__(self):
        pass

    @abstractmethod
    async def commit(self):
        pass

    @abstractmethod
    async def rollback(self):
        pass


# Pasarela de pagos: una interfaz por capacidad

class PaymentsGateway(ABC):
    @abstractmethod
    async def create_payment(self, request: GatewayPaymentRequest, idempotency_key: str) -> GatewayPayment:
        pass

    @abstractmethod
    async def get_payment(self, payment_id: str) -> GatewayPayment:
        pass

    @abstractmethod
    async def search_payments(self, filters: dict, limit: int = 50, offset: int = 0) -> SearchResult:
        pass

    @abstractmethod
    async def cancel_payment(self, payment_id: str) -> GatewayPayment:
        pass

    @abstractmethod
    async def capture_payment(self, payment_id: str, amount: Optional[Decimal], idempotency_key: str) -> GatewayPayment:
        pass


class RefundsGateway(ABC):
    @abstractmethod
    async def create_refund(self, payment_id: str, amount: Optional[Decimal], idempotency_key: str) -> GatewayRefund:
        pass

    @abstractmethod
    async def list_refunds(self, payment_id: str) -> List[GatewayRefund]:
        pass

    @abstractmethod
    async def get_refund(self, payment_id: str, refund_id: str) -> GatewayRefund:
        pass


class CustomersGateway(ABC):
    @abstractmethod
    async def create_customer(self, data: dict) -> GatewayCustomer:
        pass

    @abstractmethod
    async def get_customer(self, customer_id: str) -> GatewayCustomer:
        pass

    @abstractmethod
    async def search_customers(self, email: str) -> List[GatewayCustomer]:
        pass

    @abstractmethod
    async def update_customer(self, customer_id: str, data: dict) -> GatewayCustomer:
        pass

    @abstractmethod
    async def create_card_token(self, card: CardData, identification_type: str) -> CardToken:
        pass


class PreferencesGateway(ABC):
    @abstractmethod
    async def create_preference(self, request: PreferenceRequest) -> CheckoutPreference:
        pass


class MetaGateway(ABC):
    @abstractmethod
    async def list_payment_methods(self) -> List[dict]:
        pass

    @abstractmethod
    async def list_identification_types(self) -> List[dict]:
        pass


class NotificationChannel(ABC):
    @abstractmethod
    async def send(self, notification) -> bool:
        pass


class EventPublisher(ABC):
    @abstractmethod
    async def publish_notification(self, user_id: str, payload: dict) -> bool:
        pass
