import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel

from orderpay.domain.models import (
    GatewayPayment, NotificationContext, NotificationUser, Order, OrderStatus,
    Payment, PaymentStatus, User, money
)
from orderpay.domain.status_maps import (
    ACTIVE_PAYMENT_STATUSES, CONTINGENCY_STATUS_DETAILS, PARTIALLY_REFUNDED, PAYMENT_TO_ORDER_TRANSITION,
    is_forward, map_gateway_status
)
from orderpay.application.gateway import PaymentGateway
from orderpay.application.notifications import NotificationDispatcher
from orderpay.application.webhook_signature import verify_signature
from orderpay.config import settings

logger = logging.getLogger(__name__)


class WebhookEventDTO(BaseModel):
    event_id: Optional[str] = None
    type: Optional[str] = None
    action: Optional[str] = None
    data_id: Optional[str] = None


class ReconcileOutcome(BaseModel):
    payment: Payment
    applied: bool
    order_status: Optional[OrderStatus] = None
    context: Optional[NotificationContext] = None


def build_context(payment: Payment, order: Order, user: User, currency: str) -> NotificationContext:
    return NotificationContext(
        payment_id=payment.id,
        gateway_id=payment.gateway_id,
        amount=payment.amount,
        currency=currency,
        payment_method=payment.method_id,
        card_last_four=payment.card_last_four,
        paid_at=payment.paid_at,
        order_id=order.id,
        order_number=order.number,
        user=NotificationUser(
            id=user.id,
            first_name=user.first_name,
            last_name=user.last_name,
            email=user.email,
            phone=user.phone
        )
    )


class PaymentReconciler:
    """Concilia el estado local de pagos y pedidos con la pasarela.

    Cada actualización de estado, ya venga de un webhook o de una operación
    administrativa, pasa por ``apply``: el pago solo avanza si el rango del
    nuevo estado es mayor, y el pedido solo transiciona desde PENDING.
    Las notificaciones se despachan después del commit.
    """

    def __init__(
        self,
        unit_of_work,
        gateway: PaymentGateway,
        dispatcher: NotificationDispatcher,
        webhook_secret: str = "",
        currency: Optional[str] = None
    ):
        self._uow = unit_of_work
        self._gateway = gateway
        self._dispatcher = dispatcher
        self._webhook_secret = webhook_secret
        self._currency = currency or settings.CURRENCY

    async def process_webhook(
        self,
        event: WebhookEventDTO,
        signature: Optional[str] = None,
        request_id: Optional[str] = None
    ) -> dict:
        summary = {
            "received": True,
            "processed": False,
            "event_id": event.event_id,
            "type": event.type,
            "outcome": None,
            "payment_status": None,
        }

        if self._webhook_secret and not verify_signature(self._webhook_secret, event.data_id, request_id, signature):
            logger.warning(f"Firma inválida en webhook {event.event_id}")
            summary["outcome"] = "invalid_signature"
            return summary

        if event.type != "payment":
            logger.info(f"Webhook de tipo {event.type} recibido; sin procesamiento")
            summary["outcome"] = "ignored"
            return summary

        if not event.data_id:
            logger.warning(f"Webhook {event.event_id} sin data.id")
            summary["outcome"] = "missing_data"
            return summary

        if event.event_id:
            async with self._uow() as uow:
                if await uow.webhook_events.exists(event.event_id):
                    logger.info(f"Webhook {event.event_id} ya procesado")
                    summary["outcome"] = "duplicate"
                    return summary

        gateway_payment = await self._gateway.get_payment(event.data_id)

        async with self._uow() as uow:
            payment = await uow.payments.get_by_gateway_id(gateway_payment.id)
            if payment is None:
                payment = await self._create_from_gateway(uow, gateway_payment)
                if payment is None:
                    summary["outcome"] = "unknown_payment"
                    return summary

            outcome = await self.apply(uow, payment, gateway_payment)
            if event.event_id:
                await uow.webhook_events.record(
                    event.event_id,
                    gateway_payment.id,
                    event.type,
                    event.action,
                    "applied" if outcome.applied else "skipped"
                )
            await uow.commit()

        await self.notify(outcome)

        summary["processed"] = True
        summary["outcome"] = "applied" if outcome.applied else "skipped"
        summary["payment_status"] = outcome.payment.status.value
        return summary

    async def apply(
        self,
        uow,
        payment: Payment,
        gateway_payment: GatewayPayment,
        refunded_amount: Optional[Decimal] = None
    ) -> ReconcileOutcome:
        new_status = map_gateway_status(gateway_payment.status)
        if (
            gateway_payment.status_detail == PARTIALLY_REFUNDED
            and payment.status in (PaymentStatus.COMPLETED, PaymentStatus.REFUNDED)
        ):
            new_status = PaymentStatus.REFUNDED

        refunded_total = self._refunded_total(payment, new_status, gateway_payment, refunded_amount)
        refund_grows = (
            payment.status == new_status == PaymentStatus.REFUNDED
            and refunded_total is not None
            and refunded_total > payment.refunded_amount
        )
        if not is_forward(payment.status, new_status) and not refund_grows:
            logger.info(
                f"Pago {payment.id}: estado {new_status.value} no avanza desde {payment.status.value}; se omite"
            )
            return ReconcileOutcome(payment=payment, applied=False)

        now = datetime.now(timezone.utc)
        changes = {
            "status": new_status,
            "status_detail": gateway_payment.status_detail or payment.status_detail,
            "method_id": gateway_payment.method_id or payment.method_id,
            "card_last_four": gateway_payment.card_last_four or payment.card_last_four,
            "installments": gateway_payment.installments or payment.installments,
            "updated_at": now,
        }
        if new_status == PaymentStatus.COMPLETED and payment.paid_at is None:
            changes["paid_at"] = gateway_payment.date_approved or now
        if refunded_total is not None:
            changes["refunded_amount"] = max(refunded_total, payment.refunded_amount)
            if changes["status_detail"] == PARTIALLY_REFUNDED and changes["refunded_amount"] >= payment.amount:
                changes["status_detail"] = "refunded"

        updated = payment.model_copy(update=changes)
        await uow.payments.update(updated)
        logger.info(f"Pago {payment.id}: {payment.status.value} -> {new_status.value} ({updated.status_detail})")

        order = await uow.orders.get_by_id(payment.order_id)
        if order is None:
            logger.error(f"Pedido {payment.order_id} del pago {payment.id} no existe")
            return ReconcileOutcome(payment=updated, applied=True)

        order_status = await self._transition_order(uow, order, updated)

        user = await uow.users.get_by_id(order.user_id)
        context = None
        if user:
            context = build_context(updated, order, user, self._currency)
        else:
            logger.warning(f"Usuario {order.user_id} no encontrado; no se notificará el pago {payment.id}")

        return ReconcileOutcome(payment=updated, applied=True, order_status=order_status, context=context)

    async def notify(self, outcome: ReconcileOutcome) -> bool:
        if not outcome.applied or outcome.context is None:
            return False
        try:
            return await self._dispatcher.dispatch_for_payment(
                outcome.payment.status, outcome.payment.status_detail, outcome.context
            )
        except Exception as e:
            logger.error(f"Error despachando notificación del pago {outcome.payment.id}: {e}")
            return False

    @staticmethod
    def _refunded_total(
        payment: Payment,
        new_status: PaymentStatus,
        gateway_payment: GatewayPayment,
        refunded_amount: Optional[Decimal]
    ) -> Optional[Decimal]:
        """Total reembolsado acumulado; None si el evento no informa reembolsos"""
        if refunded_amount is not None:
            return money(refunded_amount)
        if gateway_payment.transaction_amount_refunded:
            return money(gateway_payment.transaction_amount_refunded)
        if new_status == PaymentStatus.REFUNDED and gateway_payment.status_detail != PARTIALLY_REFUNDED:
            return payment.amount
        return None

    async def _transition_order(self, uow, order: Order, payment: Payment) -> Optional[OrderStatus]:
        if payment.status_detail in CONTINGENCY_STATUS_DETAILS:
            logger.info(f"Pago {payment.id} en contingencia ({payment.status_detail}); pedido {order.number} sin cambios")
            return None

        target = PAYMENT_TO_ORDER_TRANSITION.get(payment.status)
        if target is None:
            return None

        allowed = order.can_be_confirmed() if target == OrderStatus.CONFIRMED else order.can_be_cancelled()
        if not allowed:
            # TODO: definir compensación cuando el pago falla con el pedido ya confirmado
            logger.warning(
                f"Pedido {order.number} en estado {order.status.value}; se ignora la transición a {target.value}"
            )
            return None

        await uow.orders.update_status(order.id, target)
        if target == OrderStatus.CANCELLED:
            for line in order.lines:
                await uow.products.restore_stock(line.product_id, line.quantity)
            logger.info(f"Pedido {order.number} cancelado; stock restaurado para {len(order.lines)} productos")
        else:
            logger.info(f"Pedido {order.number} confirmado")
        return target

    async def _create_from_gateway(self, uow, gateway_payment: GatewayPayment) -> Optional[Payment]:
        order = None
        if gateway_payment.external_reference:
            order = await uow.orders.get_by_number(gateway_payment.external_reference)
        if order is None:
            logger.warning(
                f"Pago {gateway_payment.id} desconocido (referencia {gateway_payment.external_reference}); se ignora"
            )
            return None

        payments = await uow.payments.list_for_order(order.id)
        active = [p for p in payments if p.status in ACTIVE_PAYMENT_STATUSES]
        checkout = next((p for p in active if p.preference_id and p.gateway_id is None), None)
        if checkout is not None:
            payment = checkout.model_copy(update={"gateway_id": gateway_payment.id})
            await uow.payments.update(payment)
            logger.info(
                f"Pago {gateway_payment.id} asociado a la preferencia {checkout.preference_id} del pedido {order.number}"
            )
            return payment
        if active:
            logger.warning(
                f"Pedido {order.number} ya tiene un pago activo; se ignora el pago {gateway_payment.id}"
            )
            return None

        now = datetime.now(timezone.utc)
        amount = gateway_payment.transaction_amount
        payment = Payment(
            id=str(uuid.uuid4()),
            order_id=order.id,
            amount=money(amount) if amount is not None else order.total,
            status=PaymentStatus.PENDING,
            gateway_id=gateway_payment.id,
            installments=gateway_payment.installments or 1,
            created_at=now,
            updated_at=now
        )
        await uow.payments.create(payment)
        logger.info(f"Pago {payment.id} creado desde webhook para el pedido {order.number}")
        return payment
