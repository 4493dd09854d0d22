import unittest
from datetime import datetime, timezone
from decimal import Decimal

from orderpay.domain.models import OrderStatus, ShippingMethod
from orderpay.domain.exceptions import (
    AddressNotFoundError, AuthorizationError, InsufficientStockError, ProductNotFoundError,
    PromotionRejectedError, PromotionRejection, UserNotFoundError, ValidationError
)
from orderpay.application.create_order import format_order_number
from orderpay.application.get_order import GetOrderUseCase
from orderpay.application.update_order_status import UpdateOrderStatusUseCase

from tests.base import DatabaseTestCase


class TestCreateOrder(DatabaseTestCase):
    """
    Construcción de pedidos contra la base temporal: totales, stock,
    uso de promociones y numeración.
    """

    def test_format_order_number(self):
        self.assertEqual(format_order_number(2026, 42), "PED-2026-000042")

    async def test_totals_with_percentage_promotion(self):
        order = await self.place_order(promotion_code="BIENVENIDO10")

        self.assertEqual(order.subtotal, Decimal("23.00"))
        self.assertEqual(order.shipping_amount, Decimal("10.00"))
        self.assertEqual(order.discount_amount, Decimal("2.30"))
        self.assertEqual(order.total, Decimal("30.70"))
        self.assertEqual(order.status, OrderStatus.PENDING)
        self.assertEqual(order.promotion_code, "BIENVENIDO10")

        # Stock descontado y uso registrado
        self.assertEqual(await self.stock("A"), 8)
        self.assertEqual(await self.stock("B"), 4)
        self.assertEqual(await self.usage_count("BIENVENIDO10"), 1)

    async def test_numbers_are_sequential_per_year(self):
        year = datetime.now(timezone.utc).year
        first = await self.place_order(lines=[("A", 1)])
        second = await self.place_order(lines=[("A", 1)])
        self.assertEqual(first.number, f"PED-{year}-000001")
        self.assertEqual(second.number, f"PED-{year}-000002")

    async def test_insufficient_stock_leaves_nothing_behind(self):
        with self.assertRaises(InsufficientStockError) as ctx:
            await self.place_order(lines=[("A", 2), ("C", 5)], promotion_code="BIENVENIDO10")

        self.assertEqual(ctx.exception.product_id, "C")
        self.assertEqual(ctx.exception.available, 1)
        self.assertEqual(await self.stock("A"), 10)
        self.assertEqual(await self.stock("C"), 1)
        self.assertEqual(await self.order_count(), 0)
        self.assertEqual(await self.usage_count("BIENVENIDO10"), 0)

    async def test_duplicate_products_are_merged(self):
        order = await self.place_order(lines=[("A", 1), ("A", 2)])
        self.assertEqual(len(order.lines), 1)
        self.assertEqual(order.lines[0].quantity, 3)
        self.assertEqual(order.lines[0].subtotal, Decimal("19.50"))
        self.assertEqual(await self.stock("A"), 7)

    async def test_pickup_has_no_shipping_and_no_address(self):
        order = await self.place_order(address_id=None, shipping_method=ShippingMethod.PICKUP)
        self.assertEqual(order.shipping_amount, Decimal("0.00"))
        self.assertEqual(order.total, Decimal("23.00"))

    async def test_delivery_requires_address(self):
        with self.assertRaises(ValidationError):
            await self.place_order(address_id=None)

    async def test_address_of_another_user(self):
        with self.assertRaises(AddressNotFoundError):
            await self.place_order(address_id="addr2")

    async def test_free_shipping_promotion(self):
        order = await self.place_order(promotion_code="ENVIOGRATIS")
        self.assertEqual(order.shipping_amount, Decimal("0.00"))
        self.assertEqual(order.discount_amount, Decimal("0.00"))
        self.assertEqual(order.total, Decimal("23.00"))

    async def test_free_shipping_below_minimum(self):
        with self.assertRaises(PromotionRejectedError) as ctx:
            await self.place_order(lines=[("A", 1)], promotion_code="ENVIOGRATIS")
        self.assertEqual(ctx.exception.reason, PromotionRejection.BELOW_MINIMUM)
        self.assertEqual(await self.order_count(), 0)

    async def test_promotion_usage_cap(self):
        with self.assertRaises(PromotionRejectedError) as ctx:
            await self.place_order(promotion_code="UNICO")
        self.assertEqual(ctx.exception.reason, PromotionRejection.USAGE_EXCEEDED)
        self.assertEqual(await self.stock("A"), 10)

    async def test_unknown_product(self):
        with self.assertRaises(ProductNotFoundError):
            await self.place_order(lines=[("ZZZ", 1)])

    async def test_unknown_user(self):
        with self.assertRaises(UserNotFoundError):
            await self.place_order(user_id="nadie", address_id=None, shipping_method=ShippingMethod.PICKUP)

    async def test_zero_quantity_is_rejected(self):
        with self.assertRaises(ValidationError):
            await self.place_order(lines=[("A", 0)])


class TestReadAndUpdateOrder(DatabaseTestCase):

    async def test_get_order_checks_owner(self):
        order = await self.place_order()

        loaded = await GetOrderUseCase(self.uow)(order.id, user_id="u1")
        self.assertEqual(loaded.number, order.number)
        self.assertEqual(sorted(line.product_id for line in loaded.lines), ["A", "B"])

        with self.assertRaises(AuthorizationError):
            await GetOrderUseCase(self.uow)(order.id, user_id="u2")

    async def test_manual_status_update(self):
        order = await self.place_order()

        updated = await UpdateOrderStatusUseCase(self.uow)(order.id, OrderStatus.SHIPPED, "despachado")

        self.assertEqual(updated.status, OrderStatus.SHIPPED)
        self.assertEqual(updated.internal_notes, "despachado")
        # Sin efectos sobre el stock
        self.assertEqual(await self.stock("A"), 8)


if __name__ == "__main__":
    unittest.main()
