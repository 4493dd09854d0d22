import logging
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import List, Optional, Tuple
from pydantic import BaseModel

from orderpay.config import settings
from orderpay.domain.models import (
    CardData, GatewayPayment, Order, OrderStatus, PayerInfo, Payment, PaymentStatus, PreferenceItem,
    as_utc, money
)
from orderpay.domain.status_maps import (
    ACTIVE_PAYMENT_STATUSES, ALLOWED_SOURCE_STATUSES, CANCEL, CAPTURE, PARTIALLY_REFUNDED, REFUND
)
from orderpay.domain.exceptions import (
    AuthorizationError, ConflictError, GatewayRejectionError, OrderNotFoundError, PaymentNotFoundError,
    UserNotFoundError, ValidationError
)
from orderpay.application.gateway import PaymentGateway
from orderpay.application.gateway_errors import rejection_for
from orderpay.application.reconcile_payment import PaymentReconciler

logger = logging.getLogger(__name__)


class CardPaymentDTO(BaseModel):
    order_id: str
    user_id: str
    token: Optional[str] = None
    card: Optional[CardData] = None
    payment_method_id: Optional[str] = None
    installments: int = 1
    payer: PayerInfo
    idempotency_key: Optional[str] = None


async def _load_payment(uow, gateway_id: str) -> Payment:
    payment = await uow.payments.get_by_gateway_id(gateway_id)
    if not payment:
        raise PaymentNotFoundError(f"Pago {gateway_id} no encontrado")
    return payment


def _ensure_allowed(operation: str, payment: Payment) -> None:
    if payment.status not in ALLOWED_SOURCE_STATUSES[operation]:
        allowed = ", ".join(sorted(s.value for s in ALLOWED_SOURCE_STATUSES[operation]))
        raise ConflictError(
            f"No se puede ejecutar '{operation}' sobre un pago en estado {payment.status.value}. "
            f"Estados permitidos: {allowed}"
        )


async def _load_payable_order(uow, order_id: str, user_id: str) -> Order:
    order = await uow.orders.get_by_id(order_id)
    if not order:
        raise OrderNotFoundError(f"Pedido {order_id} no encontrado")
    if order.user_id != user_id:
        raise AuthorizationError("El pedido no pertenece al usuario")
    if order.status != OrderStatus.PENDING:
        raise ConflictError(f"El pedido {order.number} no está pendiente de pago ({order.status.value})")
    return order


def _new_reservation(order: Order, installments: int = 1) -> Payment:
    now = datetime.now(timezone.utc)
    return Payment(
        id=str(uuid.uuid4()),
        order_id=order.id,
        amount=order.total,
        status=PaymentStatus.PENDING,
        installments=installments,
        created_at=now,
        updated_at=now
    )


async def _supersede_checkout(uow, payment: Payment) -> None:
    """Una preferencia de Checkout Pro sin pago asociado cede ante el cobro con tarjeta"""
    await uow.payments.update(payment.model_copy(update={
        "status": PaymentStatus.CANCELLED,
        "status_detail": "superseded"
    }))
    logger.info(f"Preferencia {payment.preference_id} reemplazada por un cobro con tarjeta")


class CreateCardPaymentUseCase:
    """
    Cobro con tarjeta en tres pasos: reserva local PENDING, llamada a la
    pasarela y aplicación del resultado sobre la reserva. La reserva hace que
    un segundo cobro concurrente del mismo pedido falle antes de llegar a la
    pasarela.
    """

    def __init__(self, unit_of_work, gateway: PaymentGateway, reconciler: PaymentReconciler):
        self._uow = unit_of_work
        self._gateway = gateway
        self._reconciler = reconciler

    async def __call__(self, dto: CardPaymentDTO) -> Payment:
        if not 1 <= dto.installments <= 12:
            raise ValidationError("El número de cuotas debe estar entre 1 y 12")
        if not dto.token and dto.card is None:
            raise ValidationError("Se requiere un token de tarjeta o los datos de la tarjeta")

        async with self._uow() as uow:
            order = await _load_payable_order(uow, dto.order_id, dto.user_id)
            payments = await uow.payments.list_for_order(order.id)
            for payment in payments:
                if payment.status in ACTIVE_PAYMENT_STATUSES and payment.preference_id and payment.gateway_id is None:
                    await _supersede_checkout(uow, payment)
                elif payment.status in ACTIVE_PAYMENT_STATUSES:
                    raise ConflictError(f"El pedido {order.number} ya tiene un pago activo")
            attempt = sum(1 for p in payments if p.status not in ACTIVE_PAYMENT_STATUSES)
            reservation = _new_reservation(order, dto.installments)
            if not await uow.payments.reserve(reservation):
                raise ConflictError(f"El pedido {order.number} ya tiene un pago activo")
            await uow.commit()

        idempotency_key = dto.idempotency_key or f"pedido-{order.id}-{attempt}"
        logger.info(f"Cobro con tarjeta para el pedido {order.number} por {order.total} ({idempotency_key})")
        try:
            gateway_payment = await self._gateway.create_payment(
                order_reference=order.number,
                amount=order.total,
                payer=dto.payer,
                token=dto.token,
                card=dto.card,
                payment_method_id=dto.payment_method_id,
                installments=dto.installments,
                idempotency_key=idempotency_key
            )
        except GatewayRejectionError as e:
            await self._close_reservation(reservation, e.reason.value.lower())
            raise
        except Exception:
            await self._release_reservation(reservation)
            raise

        async with self._uow() as uow:
            payment = await uow.payments.get_by_id(reservation.id)
            if payment is None:
                raise PaymentNotFoundError(f"Reserva de pago {reservation.id} no encontrada")
            payment = payment.model_copy(update={"gateway_id": gateway_payment.id})
            await uow.payments.update(payment)
            outcome = await self._reconciler.apply(uow, payment, gateway_payment)
            await uow.commit()

        await self._reconciler.notify(outcome)

        if outcome.payment.status == PaymentStatus.FAILED:
            logger.warning(f"Pago {gateway_payment.id} rechazado: {gateway_payment.status_detail}")
            raise rejection_for(gateway_payment.status_detail)
        return outcome.payment

    async def _close_reservation(self, reservation: Payment, status_detail: str) -> None:
        # Rechazo sin pago creado en la pasarela: el pedido sigue pendiente
        async with self._uow() as uow:
            await uow.payments.update(reservation.model_copy(update={
                "status": PaymentStatus.FAILED,
                "status_detail": status_detail
            }))
            await uow.commit()
        logger.info(f"Reserva {reservation.id} cerrada como FAILED ({status_detail})")

    async def _release_reservation(self, reservation: Payment) -> None:
        async with self._uow() as uow:
            await uow.payments.delete(reservation.id)
            await uow.commit()
        logger.warning(f"Reserva {reservation.id} liberada tras un error de la pasarela")


class _AdminPaymentOperation:
    operation: str

    def __init__(self, unit_of_work, gateway: PaymentGateway, reconciler: PaymentReconciler):
        self._uow = unit_of_work
        self._gateway = gateway
        self._reconciler = reconciler

    async def _check(self, gateway_id: str) -> Payment:
        async with self._uow() as uow:
            payment = await _load_payment(uow, gateway_id)
        _ensure_allowed(self.operation, payment)
        return payment

    async def _apply(self, gateway_id: str, gateway_payment: GatewayPayment,
                     refunded_amount: Optional[Decimal] = None) -> Payment:
        async with self._uow() as uow:
            payment = await _load_payment(uow, gateway_id)
            outcome = await self._reconciler.apply(uow, payment, gateway_payment, refunded_amount)
            await uow.commit()
        await self._reconciler.notify(outcome)
        return outcome.payment


class CapturePaymentUseCase(_AdminPaymentOperation):
    operation = CAPTURE

    async def __call__(self, gateway_id: str, amount: Optional[Decimal] = None) -> Payment:
        payment = await self._check(gateway_id)
        if amount is not None and (amount <= 0 or amount > payment.amount):
            raise ValidationError(f"Monto de captura inválido: {amount}")
        gateway_payment = await self._gateway.capture_payment(gateway_id, amount)
        logger.info(f"Pago {gateway_id} capturado: {gateway_payment.status}")
        return await self._apply(gateway_id, gateway_payment)


class CancelPaymentUseCase(_AdminPaymentOperation):
    operation = CANCEL

    async def __call__(self, gateway_id: str) -> Payment:
        await self._check(gateway_id)
        gateway_payment = await self._gateway.cancel_payment(gateway_id)
        logger.info(f"Pago {gateway_id} cancelado: {gateway_payment.status}")
        return await self._apply(gateway_id, gateway_payment)


class RefundPaymentUseCase(_AdminPaymentOperation):
    """
    Reembolso total o parcial. Un reembolso parcial deja el pago REFUNDED con
    detalle partially_refunded y admite nuevos reembolsos hasta cubrir el monto.
    """
    operation = REFUND

    def __init__(self, unit_of_work, gateway: PaymentGateway, reconciler: PaymentReconciler,
                 refund_window_days: Optional[int] = None, clock=None):
        super().__init__(unit_of_work, gateway, reconciler)
        self._window = timedelta(days=settings.REFUND_WINDOW_DAYS if refund_window_days is None else refund_window_days)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def _check(self, gateway_id: str) -> Payment:
        async with self._uow() as uow:
            payment = await _load_payment(uow, gateway_id)
        if payment.status == PaymentStatus.REFUNDED and payment.refunded_amount < payment.amount:
            return payment
        _ensure_allowed(self.operation, payment)
        return payment

    async def __call__(self, gateway_id: str, amount: Optional[Decimal] = None, reason: Optional[str] = None):
        payment = await self._check(gateway_id)

        if payment.paid_at is not None and self._clock() - as_utc(payment.paid_at) > self._window:
            raise ConflictError(
                f"El pago {gateway_id} supera la ventana de reembolso de {self._window.days} días"
            )
        remaining = payment.amount - payment.refunded_amount
        if amount is not None and amount > remaining:
            raise ValidationError(f"El monto a reembolsar ({amount}) supera el saldo reembolsable ({remaining})")

        if amount is None:
            refund = await self._gateway.create_total_refund(gateway_id, reason)
        else:
            refund = await self._gateway.create_refund(gateway_id, amount, reason)
        refunded = money(refund.amount if refund.amount is not None else (amount or remaining))
        logger.info(f"Reembolso {refund.id} de {refunded} sobre el pago {gateway_id}")

        refunded_total = min(payment.refunded_amount + refunded, payment.amount)
        gateway_payment = GatewayPayment(
            id=gateway_id,
            status="refunded",
            status_detail=PARTIALLY_REFUNDED if refunded_total < payment.amount else "refunded",
        )
        updated = await self._apply(gateway_id, gateway_payment, refunded_total)
        return updated, refund


class RedirectPaymentDTO(BaseModel):
    order_id: str
    user_id: str
    payer: Optional[PayerInfo] = None


class CreateRedirectPaymentUseCase:
    """
    Checkout Pro: crea la preferencia de MercadoPago y deja el pago PENDING
    con los enlaces de redirección. El pago real llega luego por webhook.
    """

    def __init__(self, unit_of_work, gateway: PaymentGateway):
        self._uow = unit_of_work
        self._gateway = gateway

    async def __call__(self, dto: RedirectPaymentDTO) -> Payment:
        async with self._uow() as uow:
            order = await _load_payable_order(uow, dto.order_id, dto.user_id)
            payments = await uow.payments.list_for_order(order.id)
            for payment in payments:
                if payment.status in ACTIVE_PAYMENT_STATUSES and payment.preference_id and payment.gateway_id is None:
                    logger.info(f"Pedido {order.number} ya tiene la preferencia {payment.preference_id}")
                    return payment
            if any(p.status in ACTIVE_PAYMENT_STATUSES for p in payments):
                raise ConflictError(f"El pedido {order.number} ya tiene un pago activo")

            user = await uow.users.get_by_id(order.user_id)
            if user is None:
                raise UserNotFoundError(f"Usuario {order.user_id} no encontrado")
            items = await self._items(uow, order)

            reservation = _new_reservation(order)
            if not await uow.payments.reserve(reservation):
                raise ConflictError(f"El pedido {order.number} ya tiene un pago activo")
            await uow.commit()

        payer = dto.payer or PayerInfo(email=user.email, first_name=user.first_name, last_name=user.last_name)
        try:
            preference = await self._gateway.create_preference(
                order_reference=order.number,
                order_id=order.id,
                items=items,
                payer=payer,
                shipping_cost=order.shipping_amount,
                payer_phone=user.phone
            )
        except Exception:
            async with self._uow() as uow:
                await uow.payments.delete(reservation.id)
                await uow.commit()
            raise

        payment = reservation.model_copy(update={
            "preference_id": preference.id,
            "init_point": preference.init_point,
            "sandbox_init_point": preference.sandbox_init_point
        })
        async with self._uow() as uow:
            await uow.payments.update(payment)
            await uow.commit()
        logger.info(f"Preferencia {preference.id} lista para el pedido {order.number}")
        return payment

    @staticmethod
    async def _items(uow, order: Order) -> List[PreferenceItem]:
        # Con descuento se envía un único ítem para que el total coincida con el pedido
        if order.discount_amount > 0:
            return [PreferenceItem(
                id=order.number,
                title=f"Pedido {order.number}",
                quantity=1,
                unit_price=order.subtotal - order.discount_amount
            )]
        items = []
        for line in order.lines:
            product = await uow.products.get_by_id(line.product_id)
            items.append(PreferenceItem(
                id=(product.sku if product and product.sku else line.product_id),
                title=product.name if product else line.product_id,
                quantity=line.quantity,
                unit_price=line.unit_price
            ))
        return items


class ListOrderPaymentsUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, order_id: str, user_id: Optional[str] = None) -> List[Payment]:
        """Pagos locales del pedido, el más reciente primero"""
        async with self._uow() as uow:
            order = await uow.orders.get_by_id(order_id)
            if not order:
                raise OrderNotFoundError(f"Pedido {order_id} no encontrado")
            if user_id is not None and order.user_id != user_id:
                raise AuthorizationError("El pedido no pertenece al usuario")
            payments = await uow.payments.list_for_order(order_id)
        return list(reversed(payments))


class GetPaymentStatusUseCase:
    def __init__(self, unit_of_work, gateway: PaymentGateway):
        self._uow = unit_of_work
        self._gateway = gateway

    async def __call__(self, payment_id: str, user_id: Optional[str] = None) -> Tuple[Payment, GatewayPayment]:
        async with self._uow() as uow:
            payment = await uow.payments.get_by_id(payment_id)
            if payment is None:
                raise PaymentNotFoundError(f"Pago {payment_id} no encontrado")
            if user_id is not None:
                order = await uow.orders.get_by_id(payment.order_id)
                if order is None or order.user_id != user_id:
                    raise AuthorizationError("El pago no pertenece al usuario")
        if not payment.gateway_id:
            raise ValidationError("Este pago no tiene un ID de pago de MercadoPago")
        gateway_payment = await self._gateway.get_payment(payment.gateway_id)
        return payment, gateway_payment
