import logging
from pydantic import BaseModel
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional
import uuid

from orderpay.config import settings
from orderpay.domain.models import (
    Order, OrderLine, OrderStatus, PaymentMethod, PromotionKind, ShippingMethod, money
)
from orderpay.domain.status_maps import SHIPPING_REQUIRES_DELIVERY
from orderpay.domain.exceptions import (
    AddressNotFoundError, InsufficientStockError, ProductNotFoundError,
    PromotionRejectedError, PromotionRejection, UserNotFoundError, ValidationError
)
from orderpay.application.promotions import PromotionEvaluator


logger = logging.getLogger(__name__)


class OrderLineDTO(BaseModel):
    product_id: str
    quantity: int


class CreateOrderDTO(BaseModel):
    user_id: str
    address_id: Optional[str] = None
    lines: List[OrderLineDTO]
    payment_method: PaymentMethod
    shipping_method: ShippingMethod
    promotion_code: Optional[str] = None
    customer_notes: Optional[str] = None


def format_order_number(year: int, sequence: int) -> str:
    return f"PED-{year}-{sequence:06d}"


class CreateOrderUseCase:
    def __init__(
        self,
        unit_of_work,
        evaluator: Optional[PromotionEvaluator] = None,
        delivery_fee: Optional[Decimal] = None
    ):
        self._uow = unit_of_work
        self._evaluator = evaluator or PromotionEvaluator()
        self._delivery_fee = settings.SHIPPING_DELIVERY_FEE if delivery_fee is None else delivery_fee

    async def __call__(self, order_data: CreateOrderDTO) -> Order:
        logger.info(f"Creando pedido para el usuario {order_data.user_id}")

        quantities = self._merge_lines(order_data.lines)

        async with self._uow() as uow:
            # 1. Comprador
            user = await uow.users.get_by_id(order_data.user_id)
            if not user:
                raise UserNotFoundError(f"Usuario {order_data.user_id} no encontrado")

            # 2. Dirección según la política de envío
            requires_delivery = SHIPPING_REQUIRES_DELIVERY[order_data.shipping_method]
            if requires_delivery and not order_data.address_id:
                raise ValidationError("El envío a domicilio requiere una dirección")
            if order_data.address_id and not await uow.addresses.belongs_to(order_data.address_id, user.id):
                raise AddressNotFoundError(f"Dirección {order_data.address_id} no encontrada")

            # 3. Stock y precios congelados
            order_id = str(uuid.uuid4())
            lines = []
            for product_id, quantity in quantities.items():
                product = await uow.products.get_by_id(product_id)
                if not product:
                    raise ProductNotFoundError(f"Producto {product_id} no encontrado")
                if product.stock < quantity:
                    raise InsufficientStockError(product_id, product.stock, quantity)
                lines.append(OrderLine(
                    id=str(uuid.uuid4()),
                    order_id=order_id,
                    product_id=product_id,
                    quantity=quantity,
                    unit_price=product.unit_price,
                    subtotal=money(product.unit_price * quantity)
                ))

            # 4. Subtotal y envío
            subtotal = money(sum((line.subtotal for line in lines), Decimal("0")))
            shipping = money(self._delivery_fee) if requires_delivery else money(0)

            # 5. Promoción
            discount = money(0)
            promotion_code = None
            if order_data.promotion_code:
                promotion = await self._evaluator.validate(uow.promotions, order_data.promotion_code, subtotal)
                discount = self._evaluator.compute_discount(promotion, subtotal)
                if promotion.kind == PromotionKind.FREE_SHIPPING:
                    shipping = money(0)
                if not await uow.promotions.increment_usage(promotion.id):
                    raise PromotionRejectedError(
                        PromotionRejection.USAGE_EXCEEDED,
                        f"La promoción {promotion.code} alcanzó su límite de usos"
                    )
                promotion_code = promotion.code

            total = money(subtotal + shipping - discount)

            # 6. Numeración
            now = datetime.now(timezone.utc)
            sequence = await uow.orders.next_sequence(now.year)

            order = Order(
                id=order_id,
                number=format_order_number(now.year, sequence),
                user_id=user.id,
                address_id=order_data.address_id,
                subtotal=subtotal,
                shipping_amount=shipping,
                discount_amount=discount,
                total=total,
                promotion_code=promotion_code,
                payment_method=order_data.payment_method,
                shipping_method=order_data.shipping_method,
                status=OrderStatus.PENDING,
                customer_notes=order_data.customer_notes,
                lines=lines,
                created_at=now,
                updated_at=now
            )

            # 7. Persistencia y descuento de stock condicional
            await uow.orders.create(order)
            for line in lines:
                if not await uow.products.decrement_stock(line.product_id, line.quantity):
                    product = await uow.products.get_by_id(line.product_id)
                    raise InsufficientStockError(line.product_id, product.stock if product else 0, line.quantity)

            # 8. Commit
            await uow.commit()

        logger.info(f"Pedido creado: {order.number} ({order.id}) total {order.total}")
        return order

    @staticmethod
    def _merge_lines(lines: List[OrderLineDTO]) -> Dict[str, int]:
        if not lines:
            raise ValidationError("El pedido debe tener al menos un producto")
        quantities: Dict[str, int] = {}
        for line in lines:
            if line.quantity < 1:
                raise ValidationError(f"Cantidad inválida para el producto {line.product_id}")
            quantities[line.product_id] = quantities.get(line.product_id, 0) + line.quantity
        return quantities
