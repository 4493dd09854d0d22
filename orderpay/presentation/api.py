import hmac
import logging
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from orderpay.config import settings
from orderpay.database import get_session_factory
from orderpay.presentation.schemas import (
    CaptureRequest, CardPaymentRequest, CheckoutPaymentRequest, CreateOrderRequest, CustomerRequest,
    ErrorResponse, OrderResponse, PaymentResponse, PaymentStatusResponse, PromotionValidationResponse,
    RefundRequest, RefundResponse, UpdateOrderStatusRequest, WebhookRequest, WebhookResponse
)
from orderpay.application.create_order import CreateOrderDTO, CreateOrderUseCase, OrderLineDTO
from orderpay.application.get_order import GetOrderUseCase
from orderpay.application.update_order_status import UpdateOrderStatusUseCase
from orderpay.application.promotions import ValidatePromotionUseCase
from orderpay.application.gateway import PaymentGateway
from orderpay.application.notifications import NotificationDispatcher
from orderpay.application.reconcile_payment import PaymentReconciler, WebhookEventDTO
from orderpay.application.payment_operations import (
    CancelPaymentUseCase, CapturePaymentUseCase, CardPaymentDTO, CreateCardPaymentUseCase,
    CreateRedirectPaymentUseCase, GetPaymentStatusUseCase, ListOrderPaymentsUseCase, RedirectPaymentDTO,
    RefundPaymentUseCase
)
from orderpay.domain.exceptions import (
    AuthorizationError, ConflictError, DomainException, GatewayRejectionError,
    GatewayUnavailableError, NotFoundError, ValidationError
)
from orderpay.infrastructure.unit_of_work import UnitOfWork
from orderpay.infrastructure.mercadopago import (
    MercadoPagoCustomers, MercadoPagoMeta, MercadoPagoPayments, MercadoPagoPreferences, MercadoPagoRefunds
)
from orderpay.infrastructure.notification_channels import build_channels

logger = logging.getLogger(__name__)

router = APIRouter()


def _http_error(exc: DomainException) -> HTTPException:
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, AuthorizationError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    if isinstance(exc, ConflictError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, GatewayRejectionError):
        return HTTPException(status_code=status.HTTP_402_PAYMENT_REQUIRED, detail=str(exc))
    if isinstance(exc, GatewayUnavailableError):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


# Fábricas de dependencias
def get_unit_of_work(session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory)):
    return UnitOfWork(session_factory)


def get_payment_gateway() -> PaymentGateway:
    common = dict(base_url=settings.MP_BASE_URL, access_token=settings.MP_ACCESS_TOKEN, timeout=settings.GATEWAY_TIMEOUT)
    return PaymentGateway(
        payments=MercadoPagoPayments(
            notification_url=settings.MP_WEBHOOK_URL,
            statement_descriptor=settings.MP_STATEMENT_DESCRIPTOR,
            **common
        ),
        refunds=MercadoPagoRefunds(**common),
        customers=MercadoPagoCustomers(**common),
        meta=MercadoPagoMeta(**common),
        preferences=MercadoPagoPreferences(
            currency=settings.CURRENCY,
            back_urls={
                "success": settings.MP_SUCCESS_URL,
                "failure": settings.MP_FAILURE_URL,
                "pending": settings.MP_PENDING_URL
            },
            notification_url=settings.MP_WEBHOOK_URL,
            statement_descriptor=settings.MP_STATEMENT_DESCRIPTOR,
            **common
        ),
        sandbox=settings.GATEWAY_SANDBOX
    )


def get_dispatcher(request: Request) -> NotificationDispatcher:
    producer = getattr(request.app.state, "kafka_producer", None)
    return NotificationDispatcher(
        build_channels(settings.NOTIFICATIONS_BASE_URL, settings.NOTIFICATIONS_API_TOKEN, producer)
    )


def get_reconciler(
    uow=Depends(get_unit_of_work),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher)
):
    return PaymentReconciler(uow, gateway, dispatcher, settings.MP_WEBHOOK_SECRET)


def require_admin(x_admin_token: Optional[str] = Header(default=None)):
    expected = settings.ADMIN_API_TOKEN
    if not expected or not x_admin_token or not hmac.compare_digest(x_admin_token, expected):
        raise _http_error(AuthorizationError("Se requiere token de administrador"))


# Pedidos

@router.post(
    "/pedidos",
    response_model=OrderResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    status_code=status.HTTP_201_CREATED
)
async def create_order(request: CreateOrderRequest, uow=Depends(get_unit_of_work)):
    """Crear un pedido descontando stock"""
    try:
        dto = CreateOrderDTO(
            user_id=request.user_id,
            address_id=request.address_id,
            lines=[OrderLineDTO(product_id=line.product_id, quantity=line.quantity) for line in request.lines],
            payment_method=request.payment_method,
            shipping_method=request.shipping_method,
            promotion_code=request.promotion_code,
            customer_notes=request.customer_notes
        )
        order = await CreateOrderUseCase(uow)(dto)
        return OrderResponse.from_domain(order)
    except DomainException as e:
        raise _http_error(e)


@router.get(
    "/pedidos/{order_id}",
    response_model=OrderResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}}
)
async def get_order(order_id: str, x_user_id: Optional[str] = Header(default=None), uow=Depends(get_unit_of_work)):
    try:
        order = await GetOrderUseCase(uow)(order_id, x_user_id)
        return OrderResponse.from_domain(order)
    except DomainException as e:
        raise _http_error(e)


@router.get(
    "/pedidos/{order_id}/pagos",
    response_model=List[PaymentResponse],
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}}
)
async def list_order_payments(
    order_id: str,
    x_user_id: Optional[str] = Header(default=None),
    uow=Depends(get_unit_of_work)
):
    """Pagos registrados para el pedido, el más reciente primero"""
    try:
        payments = await ListOrderPaymentsUseCase(uow)(order_id, x_user_id)
        return [PaymentResponse.from_domain(p) for p in payments]
    except DomainException as e:
        raise _http_error(e)


@router.patch(
    "/pedidos/{order_id}/estado",
    response_model=OrderResponse,
    dependencies=[Depends(require_admin)]
)
async def update_order_status(order_id: str, request: UpdateOrderStatusRequest, uow=Depends(get_unit_of_work)):
    """Cambio manual de estado (administración)"""
    try:
        order = await UpdateOrderStatusUseCase(uow)(order_id, request.status, request.internal_notes)
        return OrderResponse.from_domain(order)
    except DomainException as e:
        raise _http_error(e)


@router.get("/promociones/{code}/validar", response_model=PromotionValidationResponse)
async def validate_promotion(code: str, monto: Decimal = Query(ge=0), uow=Depends(get_unit_of_work)):
    try:
        promotion, discount = await ValidatePromotionUseCase(uow)(code, monto)
        return PromotionValidationResponse(
            code=promotion.code,
            name=promotion.name,
            kind=promotion.kind,
            value=promotion.value,
            discount=discount
        )
    except DomainException as e:
        raise _http_error(e)


# Pagos

@router.post(
    "/pagos/tarjeta",
    response_model=PaymentResponse,
    responses={402: {"model": ErrorResponse}, 409: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
    status_code=status.HTTP_201_CREATED
)
async def create_card_payment(
    request: CardPaymentRequest,
    uow=Depends(get_unit_of_work),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    reconciler: PaymentReconciler = Depends(get_reconciler)
):
    """Cobro directo con tarjeta"""
    try:
        dto = CardPaymentDTO(**request.model_dump())
        payment = await CreateCardPaymentUseCase(uow, gateway, reconciler)(dto)
        return PaymentResponse.from_domain(payment)
    except DomainException as e:
        raise _http_error(e)


@router.post(
    "/pagos/checkout",
    response_model=PaymentResponse,
    responses={409: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
    status_code=status.HTTP_201_CREATED
)
async def create_checkout_payment(
    request: CheckoutPaymentRequest,
    uow=Depends(get_unit_of_work),
    gateway: PaymentGateway = Depends(get_payment_gateway)
):
    """Checkout Pro: devuelve el pago PENDING con los enlaces init_point"""
    try:
        dto = RedirectPaymentDTO(**request.model_dump())
        payment = await CreateRedirectPaymentUseCase(uow, gateway)(dto)
        return PaymentResponse.from_domain(payment)
    except DomainException as e:
        raise _http_error(e)


@router.get(
    "/pagos/registro/{payment_id}/estado",
    response_model=PaymentStatusResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}}
)
async def get_payment_status(
    payment_id: str,
    x_user_id: Optional[str] = Header(default=None),
    uow=Depends(get_unit_of_work),
    gateway: PaymentGateway = Depends(get_payment_gateway)
):
    """Pago local y su estado actual en MercadoPago"""
    try:
        payment, gateway_payment = await GetPaymentStatusUseCase(uow, gateway)(payment_id, x_user_id)
        return PaymentStatusResponse(
            payment=PaymentResponse.from_domain(payment),
            gateway_status=gateway_payment.status,
            gateway_status_detail=gateway_payment.status_detail,
            transaction_amount=gateway_payment.transaction_amount,
            transaction_amount_refunded=gateway_payment.transaction_amount_refunded
        )
    except DomainException as e:
        raise _http_error(e)


@router.post("/pagos/webhook", response_model=WebhookResponse)
async def payment_webhook(
    request: Request,
    reconciler: PaymentReconciler = Depends(get_reconciler),
    x_signature: Optional[str] = Header(default=None),
    x_request_id: Optional[str] = Header(default=None)
):
    """Webhook de MercadoPago: siempre responde 200 con un resumen"""
    try:
        payload = WebhookRequest.model_validate(await request.json())
    except ValueError:
        payload = WebhookRequest()

    params = request.query_params
    data_id = payload.data.id if payload.data and payload.data.id is not None else params.get("data.id")
    event = WebhookEventDTO(
        event_id=str(payload.id) if payload.id is not None else params.get("id"),
        type=payload.type or params.get("type") or params.get("topic"),
        action=payload.action,
        data_id=str(data_id) if data_id is not None else None
    )

    try:
        summary = await reconciler.process_webhook(event, x_signature, x_request_id)
        return WebhookResponse(**summary)
    except Exception as e:
        logger.error(f"Error procesando webhook {event.event_id}: {e}")
        return WebhookResponse(
            received=True,
            processed=False,
            event_id=event.event_id,
            type=event.type,
            outcome="error",
            error=str(e)
        )


@router.get("/pagos/buscar", dependencies=[Depends(require_admin)])
async def search_payments(
    status_filter: Optional[str] = Query(default=None, alias="status"),
    external_reference: Optional[str] = None,
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    gateway: PaymentGateway = Depends(get_payment_gateway)
):
    try:
        filters = {"status": status_filter, "external_reference": external_reference}
        return await gateway.search_payments(filters, limit, offset)
    except DomainException as e:
        raise _http_error(e)


@router.get("/pagos/metodos")
async def list_payment_methods(gateway: PaymentGateway = Depends(get_payment_gateway)):
    try:
        return await gateway.list_payment_methods()
    except DomainException as e:
        raise _http_error(e)


@router.get("/pagos/tipos-identificacion")
async def list_identification_types(gateway: PaymentGateway = Depends(get_payment_gateway)):
    try:
        return await gateway.list_identification_types()
    except DomainException as e:
        raise _http_error(e)


@router.post("/pagos/clientes", dependencies=[Depends(require_admin)], status_code=status.HTTP_201_CREATED)
async def create_customer(request: CustomerRequest, gateway: PaymentGateway = Depends(get_payment_gateway)):
    try:
        return await gateway.create_customer(request.model_dump(exclude_none=True))
    except DomainException as e:
        raise _http_error(e)


@router.get("/pagos/clientes/buscar", dependencies=[Depends(require_admin)])
async def search_customers(email: str, gateway: PaymentGateway = Depends(get_payment_gateway)):
    try:
        return await gateway.search_customers(email)
    except DomainException as e:
        raise _http_error(e)


@router.get("/pagos/clientes/{customer_id}", dependencies=[Depends(require_admin)])
async def get_customer(customer_id: str, gateway: PaymentGateway = Depends(get_payment_gateway)):
    try:
        return await gateway.get_customer(customer_id)
    except DomainException as e:
        raise _http_error(e)


@router.put("/pagos/clientes/{customer_id}", dependencies=[Depends(require_admin)])
async def update_customer(customer_id: str, request: CustomerRequest,
                          gateway: PaymentGateway = Depends(get_payment_gateway)):
    try:
        return await gateway.update_customer(customer_id, request.model_dump(exclude_none=True))
    except DomainException as e:
        raise _http_error(e)


@router.get("/pagos/{gateway_id}", dependencies=[Depends(require_admin)])
async def get_gateway_payment(gateway_id: str, gateway: PaymentGateway = Depends(get_payment_gateway)):
    try:
        return await gateway.get_payment(gateway_id)
    except DomainException as e:
        raise _http_error(e)


@router.post("/pagos/{gateway_id}/capturar", response_model=PaymentResponse, dependencies=[Depends(require_admin)])
async def capture_payment(
    gateway_id: str,
    request: Optional[CaptureRequest] = None,
    uow=Depends(get_unit_of_work),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    reconciler: PaymentReconciler = Depends(get_reconciler)
):
    try:
        amount = request.amount if request else None
        payment = await CapturePaymentUseCase(uow, gateway, reconciler)(gateway_id, amount)
        return PaymentResponse.from_domain(payment)
    except DomainException as e:
        raise _http_error(e)


@router.post("/pagos/{gateway_id}/cancelar", response_model=PaymentResponse, dependencies=[Depends(require_admin)])
async def cancel_payment(
    gateway_id: str,
    uow=Depends(get_unit_of_work),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    reconciler: PaymentReconciler = Depends(get_reconciler)
):
    try:
        payment = await CancelPaymentUseCase(uow, gateway, reconciler)(gateway_id)
        return PaymentResponse.from_domain(payment)
    except DomainException as e:
        raise _http_error(e)


@router.post(
    "/pagos/{gateway_id}/reembolsos",
    response_model=RefundResponse,
    dependencies=[Depends(require_admin)],
    status_code=status.HTTP_201_CREATED
)
async def refund_payment(
    gateway_id: str,
    request: Optional[RefundRequest] = None,
    uow=Depends(get_unit_of_work),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    reconciler: PaymentReconciler = Depends(get_reconciler)
):
    """Reembolso total (sin monto) o parcial"""
    try:
        request = request or RefundRequest()
        payment, refund = await RefundPaymentUseCase(uow, gateway, reconciler)(
            gateway_id, request.amount, request.reason
        )
        return RefundResponse(
            refund_id=refund.id,
            amount=refund.amount,
            status=refund.status,
            payment=PaymentResponse.from_domain(payment)
        )
    except DomainException as e:
        raise _http_error(e)


@router.get("/pagos/{gateway_id}/reembolsos", dependencies=[Depends(require_admin)])
async def list_refunds(gateway_id: str, gateway: PaymentGateway = Depends(get_payment_gateway)):
    try:
        return await gateway.list_refunds(gateway_id)
    except DomainException as e:
        raise _http_error(e)


@router.get("/pagos/{gateway_id}/reembolsos/{refund_id}", dependencies=[Depends(require_admin)])
async def get_refund(gateway_id: str, refund_id: str, gateway: PaymentGateway = Depends(get_payment_gateway)):
    try:
        return await gateway.get_refund(gateway_id, refund_id)
    except DomainException as e:
        raise _http_error(e)
