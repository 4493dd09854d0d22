import logging
from typing import Optional

from orderpay.domain.models import Order, OrderStatus
from orderpay.domain.exceptions import OrderNotFoundError

logger = logging.getLogger(__name__)


class UpdateOrderStatusUseCase:
    """Actualización manual del estado (solo administración, sin efectos colaterales)"""

    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, order_id: str, status: OrderStatus, internal_notes: Optional[str] = None) -> Order:
        async with self._uow() as uow:
            order = await uow.orders.get_by_id(order_id)
            if not order:
                raise OrderNotFoundError(f"Pedido {order_id} no encontrado")

            await uow.orders.update_status(order_id, status, internal_notes)
            await uow.commit()

            logger.info(f"Pedido {order.number}: {order.status.value} -> {status.value} (manual)")
            return await uow.orders.get_by_id(order_id)
