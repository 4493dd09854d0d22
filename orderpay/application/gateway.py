import logging
import uuid
from decimal import Decimal
from types import MappingProxyType
from typing import List, Optional

from orderpay.domain.models import (
    CardData, CardToken, CheckoutPreference, GatewayCustomer, GatewayPayment, GatewayPaymentRequest,
    GatewayRefund, PayerInfo, PreferenceItem, PreferenceRequest, SearchResult, money
)
from orderpay.domain.exceptions import InvalidCardError, ValidationError
from orderpay.application.interfaces import (
    CustomersGateway, MetaGateway, PaymentsGateway, PreferencesGateway, RefundsGateway
)

logger = logging.getLogger(__name__)


# Tarjetas de prueba de MercadoPago aceptadas con datos sin tokenizar
SANDBOX_CARD_BINS = MappingProxyType({
    "503175": "master",
    "400917": "visa",
    "371180": "amex",
})


def identification_type(number: Optional[str]) -> str:
    digits = (number or "").strip()
    if len(digits) == 11:
        return "RUC"
    return "DNI"


class PaymentGateway:
    """Fachada sobre las capacidades de la pasarela.

    Coordina la tokenización de tarjetas de prueba antes de crear el pago y
    delega el resto de operaciones en el adaptador de cada capacidad.
    """

    def __init__(
        self,
        payments: PaymentsGateway,
        refunds: RefundsGateway,
        customers: CustomersGateway,
        meta: MetaGateway,
        preferences: PreferencesGateway,
        sandbox: bool
    ):
        self._payments = payments
        self._refunds = refunds
        self._customers = customers
        self._meta = meta
        self._preferences = preferences
        self._sandbox = sandbox

    async def create_payment(
        self,
        order_reference: str,
        amount: Decimal,
        payer: PayerInfo,
        token: Optional[str] = None,
        card: Optional[CardData] = None,
        payment_method_id: Optional[str] = None,
        installments: int = 1,
        description: Optional[str] = None,
        idempotency_key: Optional[str] = None
    ) -> GatewayPayment:
        id_type = identification_type(payer.identification_number)

        if card is not None:
            if not self._sandbox:
                raise InvalidCardError(
                    "Los datos de tarjeta sin tokenizar solo se aceptan con credenciales de prueba. "
                    "En producción envíe un token generado en el cliente."
                )
            brand = SANDBOX_CARD_BINS.get(card.bin)
            if brand is None:
                allowed = ", ".join(f"{bin_} ({name})" for bin_, name in SANDBOX_CARD_BINS.items())
                raise InvalidCardError(
                    f"La tarjeta con BIN {card.bin} no es una tarjeta de prueba válida. Use: {allowed}"
                )
            card_token = await self._customers.create_card_token(card, id_type)
            logger.info(f"Tarjeta de prueba {brand} tokenizada para el pedido {order_reference}")
            token = card_token.id
            payment_method_id = payment_method_id or brand

        if not token:
            raise ValidationError("Se requiere un token de tarjeta o los datos de la tarjeta")

        request = GatewayPaymentRequest(
            external_reference=order_reference,
            amount=money(amount),
            token=token,
            payment_method_id=payment_method_id,
            installments=installments,
            description=description or f"Pedido {order_reference}",
            payer=payer,
            identification_type=id_type
        )
        return await self._payments.create_payment(request, idempotency_key or str(uuid.uuid4()))

    async def get_payment(self, payment_id: str) -> GatewayPayment:
        return await self._payments.get_payment(payment_id)

    async def search_payments(self, filters: dict, limit: int = 50, offset: int = 0) -> SearchResult:
        return await self._payments.search_payments(filters, limit, offset)

    async def cancel_payment(self, payment_id: str) -> GatewayPayment:
        return await self._payments.cancel_payment(payment_id)

    async def capture_payment(self, payment_id: str, amount: Optional[Decimal] = None) -> GatewayPayment:
        return await self._payments.capture_payment(payment_id, amount, str(uuid.uuid4()))

    async def create_refund(self, payment_id: str, amount: Optional[Decimal] = None,
                            reason: Optional[str] = None) -> GatewayRefund:
        if amount is not None and amount <= 0:
            raise ValidationError("El monto del reembolso debe ser mayor a cero")
        logger.info(f"Reembolso de {amount if amount is not None else 'total'} para el pago {payment_id}: {reason or '-'}")
        refund = await self._refunds.create_refund(payment_id, amount, str(uuid.uuid4()))
        if reason and not refund.reason:
            refund = refund.model_copy(update={"reason": reason})
        return refund

    async def create_total_refund(self, payment_id: str, reason: Optional[str] = None) -> GatewayRefund:
        return await self.create_refund(payment_id, None, reason)

    async def list_refunds(self, payment_id: str) -> List[GatewayRefund]:
        return await self._refunds.list_refunds(payment_id)

    async def get_refund(self, payment_id: str, refund_id: str) -> GatewayRefund:
        return await self._refunds.get_refund(payment_id, refund_id)

    async def create_customer(self, data: dict) -> GatewayCustomer:
        return await self._customers.create_customer(data)

    async def get_customer(self, customer_id: str) -> GatewayCustomer:
        return await self._customers.get_customer(customer_id)

    async def search_customers(self, email: str) -> List[GatewayCustomer]:
        return await self._customers.search_customers(email)

    async def update_customer(self, customer_id: str, data: dict) -> GatewayCustomer:
        return await self._customers.update_customer(customer_id, data)

    async def create_card_token(self, card: CardData) -> CardToken:
        return await self._customers.create_card_token(card, identification_type(card.identification_number))

    async def list_payment_methods(self) -> List[dict]:
        return await self._meta.list_payment_methods()

    async def list_identification_types(self) -> List[dict]:
        return await self._meta.list_identification_types()

    async def create_preference(
        self,
        order_reference: str,
        order_id: str,
        items: List[PreferenceItem],
        payer: PayerInfo,
        shipping_cost: Decimal = Decimal("0"),
        payer_phone: Optional[str] = None
    ) -> CheckoutPreference:
        if not items:
            raise ValidationError("La preferencia de pago necesita al menos un ítem")
        request = PreferenceRequest(
            external_reference=order_reference,
            order_id=order_id,
            items=[item.model_copy(update={"unit_price": money(item.unit_price)}) for item in items],
            shipping_cost=money(shipping_cost),
            payer=payer,
            payer_phone=payer_phone,
            identification_type=identification_type(payer.identification_number)
        )
        preference = await self._preferences.create_preference(request)
        logger.info(f"Preferencia {preference.id} creada para el pedido {order_reference}")
        return preference
