from typing import Optional

from orderpay.domain.models import Order
from orderpay.domain.exceptions import AuthorizationError, OrderNotFoundError


class GetOrderUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, order_id: str, user_id: Optional[str] = None) -> Order:
        async with self._uow() as uow:
            order = await uow.orders.get_by_id(order_id)
            if not order:
                raise OrderNotFoundError(f"Pedido {order_id} no encontrado")
            if user_id is not None and order.user_id != user_id:
                raise AuthorizationError("El pedido no pertenece al usuario")
            return order
