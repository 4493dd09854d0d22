import httpx
import logging
from decimal import Decimal
from typing import List, Optional

from orderpay.domain.models import (
    CardData, CardToken, CheckoutPreference, GatewayCustomer, GatewayPayment, GatewayPaymentRequest,
    GatewayRefund, PreferenceRequest, SearchResult
)
from orderpay.domain.exceptions import GatewayUnavailableError, NotFoundError
from orderpay.application.interfaces import (
    CustomersGateway, MetaGateway, PaymentsGateway, PreferencesGateway, RefundsGateway
)
from orderpay.application.gateway_errors import translate_gateway_error

logger = logging.getLogger(__name__)


def _decimal(value) -> Optional[Decimal]:
    return Decimal(str(value)) if value is not None else None


def _error_text(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text
    if not isinstance(data, dict):
        return str(data)
    parts = [str(data.get("message") or ""), str(data.get("error") or "")]
    for cause in data.get("cause") or []:
        if isinstance(cause, dict):
            parts.append(f"{cause.get('code', '')} {cause.get('description', '')}")
    return " ".join(p for p in parts if p).strip() or response.text


def to_gateway_payment(data: dict) -> GatewayPayment:
    card = data.get("card") or {}
    return GatewayPayment(
        id=str(data["id"]),
        status=data.get("status") or "pending",
        status_detail=data.get("status_detail"),
        method_id=data.get("payment_method_id"),
        card_last_four=card.get("last_four_digits"),
        installments=data.get("installments"),
        transaction_amount=_decimal(data.get("transaction_amount")),
        transaction_amount_refunded=_decimal(data.get("transaction_amount_refunded")),
        external_reference=data.get("external_reference"),
        date_created=data.get("date_created"),
        date_approved=data.get("date_approved")
    )


def to_gateway_refund(data: dict) -> GatewayRefund:
    return GatewayRefund(
        id=str(data["id"]),
        payment_id=str(data.get("payment_id", "")),
        amount=_decimal(data.get("amount")),
        status=data.get("status"),
        date_created=data.get("date_created"),
        reason=data.get("reason")
    )


def to_gateway_customer(data: dict) -> GatewayCustomer:
    return GatewayCustomer(
        id=str(data["id"]),
        email=data.get("email"),
        first_name=data.get("first_name"),
        last_name=data.get("last_name"),
        phone=data.get("phone"),
        identification=data.get("identification"),
        description=data.get("description"),
        date_created=data.get("date_created"),
        date_last_updated=data.get("date_last_updated")
    )


class MercadoPagoClient:
    """Cliente HTTP base para la API REST de MercadoPago"""

    def __init__(self, base_url: str, access_token: str, timeout: float = 5.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self._base_url = base_url.rstrip("/")
        self._access_token = access_token
        self._timeout = timeout
        self._transport = transport

    async def _request(self, method: str, path: str, json: Optional[dict] = None,
                       params: Optional[dict] = None, idempotency_key: Optional[str] = None):
        headers = {
            "Authorization": f"Bearer {self._access_token}",
            "Content-Type": "application/json"
        }
        if idempotency_key:
            headers["X-Idempotency-Key"] = idempotency_key

        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                response = await client.request(
                    method,
                    f"{self._base_url}{path}",
                    json=json,
                    params=params,
                    headers=headers,
                    timeout=self._timeout
                )
        except httpx.RequestError as e:
            logger.error(f"MercadoPago error de conexión en {method} {path}: {e}")
            raise GatewayUnavailableError("La pasarela de pagos no está disponible. Intente nuevamente.")

        if response.status_code == 404:
            raise NotFoundError(f"Recurso no encontrado en MercadoPago: {path}")
        if response.status_code >= 500:
            logger.error(f"MercadoPago respondió {response.status_code} en {method} {path}")
            raise GatewayUnavailableError("La pasarela de pagos no está disponible. Intente nuevamente.")
        if response.status_code >= 400:
            raw = _error_text(response)
            logger.warning(f"MercadoPago respondió {response.status_code} en {method} {path}: {raw}")
            raise translate_gateway_error(raw)

        return response.json()


class MercadoPagoPayments(MercadoPagoClient, PaymentsGateway):
    def __init__(self, base_url: str, access_token: str, notification_url: str = "",
                 statement_descriptor: str = "", timeout: float = 5.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        super().__init__(base_url, access_token, timeout, transport)
        self._notification_url = notification_url
        self._statement_descriptor = statement_descriptor

    async def create_payment(self, request: GatewayPaymentRequest, idempotency_key: str) -> GatewayPayment:
        payer = {"email": request.payer.email}
        if request.payer.first_name:
            payer["first_name"] = request.payer.first_name
        if request.payer.last_name:
            payer["last_name"] = request.payer.last_name
        if request.payer.identification_number:
            payer["identification"] = {
                "type": request.identification_type,
                "number": request.payer.identification_number
            }

        body = {
            "transaction_amount": float(request.amount),
            "token": request.token,
            "description": request.description,
            "installments": request.installments,
            "payer": payer,
            "external_reference": request.external_reference,
            "capture": True
        }
        if request.payment_method_id:
            body["payment_method_id"] = request.payment_method_id
        if self._notification_url:
            body["notification_url"] = self._notification_url
        if self._statement_descriptor:
            body["statement_descriptor"] = self._statement_descriptor

        data = await self._request("POST", "/v1/payments", json=body, idempotency_key=idempotency_key)
        payment = to_gateway_payment(data)
        logger.info(f"Pago {payment.id} creado en MercadoPago: {payment.status} ({payment.status_detail})")
        return payment

    async def get_payment(self, payment_id: str) -> GatewayPayment:
        data = await self._request("GET", f"/v1/payments/{payment_id}")
        return to_gateway_payment(data)

    async def search_payments(self, filters: dict, limit: int = 50, offset: int = 0) -> SearchResult:
        params = {k: v for k, v in filters.items() if v is not None}
        params.update({"limit": limit, "offset": offset})
        data = await self._request("GET", "/v1/payments/search", params=params)
        paging = data.get("paging") or {}
        return SearchResult(
            results=[to_gateway_payment(item) for item in data.get("results") or []],
            total=paging.get("total", 0),
            limit=paging.get("limit", limit),
            offset=paging.get("offset", offset)
        )

    async def cancel_payment(self, payment_id: str) -> GatewayPayment:
        data = await self._request("PUT", f"/v1/payments/{payment_id}", json={"status": "cancelled"})
        return to_gateway_payment(data)

    async def capture_payment(self, payment_id: str, amount: Optional[Decimal], idempotency_key: str) -> GatewayPayment:
        body = {"capture": True}
        if amount is not None:
            body["transaction_amount"] = float(amount)
        data = await self._request("PUT", f"/v1/payments/{payment_id}", json=body, idempotency_key=idempotency_key)
        return to_gateway_payment(data)


class MercadoPagoRefunds(MercadoPagoClient, RefundsGateway):
    async def create_refund(self, payment_id: str, amount: Optional[Decimal], idempotency_key: str) -> GatewayRefund:
        body = {"amount": float(amount)} if amount is not None else {}
        data = await self._request(
            "POST", f"/v1/payments/{payment_id}/refunds", json=body, idempotency_key=idempotency_key
        )
        return to_gateway_refund(data)

    async def list_refunds(self, payment_id: str) -> List[GatewayRefund]:
        data = await self._request("GET", f"/v1/payments/{payment_id}/refunds")
        return [to_gateway_refund(item) for item in data or []]

    async def get_refund(self, payment_id: str, refund_id: str) -> GatewayRefund:
        data = await self._request("GET", f"/v1/payments/{payment_id}/refunds/{refund_id}")
        return to_gateway_refund(data)


class MercadoPagoCustomers(MercadoPagoClient, CustomersGateway):
    async def create_customer(self, data: dict) -> GatewayCustomer:
        return to_gateway_customer(await self._request("POST", "/v1/customers", json=data))

    async def get_customer(self, customer_id: str) -> GatewayCustomer:
        return to_gateway_customer(await self._request("GET", f"/v1/customers/{customer_id}"))

    async def search_customers(self, email: str) -> List[GatewayCustomer]:
        data = await self._request("GET", "/v1/customers/search", params={"email": email})
        return [to_gateway_customer(item) for item in data.get("results") or []]

    async def update_customer(self, customer_id: str, data: dict) -> GatewayCustomer:
        return to_gateway_customer(await self._request("PUT", f"/v1/customers/{customer_id}", json=data))

    async def create_card_token(self, card: CardData, identification_type: str) -> CardToken:
        cardholder = {"name": card.cardholder_name}
        if card.identification_number:
            cardholder["identification"] = {"type": identification_type, "number": card.identification_number}
        data = await self._request("POST", "/v1/card_tokens", json={
            "card_number": card.card_number.replace(" ", ""),
            "security_code": card.security_code,
            "expiration_month": card.expiration_month,
            "expiration_year": card.expiration_year,
            "cardholder": cardholder
        })
        return CardToken(
            id=str(data["id"]),
            first_six_digits=data.get("first_six_digits"),
            last_four_digits=data.get("last_four_digits"),
            status=data.get("status")
        )


class MercadoPagoMeta(MercadoPagoClient, MetaGateway):
    async def list_payment_methods(self) -> List[dict]:
        return await self._request("GET", "/v1/payment_methods")

    async def list_identification_types(self) -> List[dict]:
        return await self._request("GET", "/v1/identification_types")


class MercadoPagoPreferences(MercadoPagoClient, PreferencesGateway):
    """Checkout Pro: preferencias con redirección a la página de pago de MercadoPago"""

    def __init__(self, base_url: str, access_token: str, currency: str = "PEN",
                 back_urls: Optional[dict] = None, notification_url: str = "",
                 statement_descriptor: str = "", timeout: float = 5.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        super().__init__(base_url, access_token, timeout, transport)
        self._currency = currency
        self._back_urls = back_urls or {}
        self._notification_url = notification_url
        self._statement_descriptor = statement_descriptor

    async def create_preference(self, request: PreferenceRequest) -> CheckoutPreference:
        payer = {"email": request.payer.email}
        if request.payer.first_name:
            payer["name"] = request.payer.first_name
        if request.payer.last_name:
            payer["surname"] = request.payer.last_name
        if request.payer_phone:
            payer["phone"] = {"number": request.payer_phone}
        if request.payer.identification_number:
            payer["identification"] = {
                "type": request.identification_type,
                "number": request.payer.identification_number
            }

        body = {
            "items": [
                {
                    "id": item.id,
                    "title": item.title,
                    "quantity": item.quantity,
                    "unit_price": float(item.unit_price),
                    "currency_id": self._currency
                }
                for item in request.items
            ],
            "payer": payer,
            "external_reference": request.external_reference,
            "payment_methods": {"installments": 12},
            "metadata": {"order_id": request.order_id, "order_number": request.external_reference}
        }
        if self._back_urls:
            body["back_urls"] = self._back_urls
            body["auto_return"] = "approved"
        if request.shipping_cost > 0:
            body["shipments"] = {"cost": float(request.shipping_cost), "mode": "not_specified"}
        if self._notification_url:
            body["notification_url"] = self._notification_url
        if self._statement_descriptor:
            body["statement_descriptor"] = self._statement_descriptor

        data = await self._request("POST", "/checkout/preferences", json=body)
        return CheckoutPreference(
            id=str(data["id"]),
            init_point=data.get("init_point"),
            sandbox_init_point=data.get("sandbox_init_point"),
            external_reference=data.get("external_reference")
        )
