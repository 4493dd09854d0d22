import asyncio
import unittest
import uuid
from datetime import datetime, timezone

from orderpay.domain.models import Payment, PaymentStatus

from tests.base import DatabaseTestCase


class TestOrderSequence(DatabaseTestCase):

    async def next_sequence(self, year):
        async with self.uow() as uow:
            value = await uow.orders.next_sequence(year)
            await uow.commit()
        return value

    async def test_sequence_starts_at_one_and_increments(self):
        self.assertEqual(await self.next_sequence(2031), 1)
        self.assertEqual(await self.next_sequence(2031), 2)
        self.assertEqual(await self.next_sequence(2032), 1)

    async def test_uncommitted_increment_is_discarded(self):
        await self.next_sequence(2031)
        async with self.uow() as uow:
            self.assertEqual(await uow.orders.next_sequence(2031), 2)
        self.assertEqual(await self.next_sequence(2031), 2)

    async def test_concurrent_first_use_of_a_year(self):
        values = await asyncio.gather(*(self.next_sequence(2033) for _ in range(4)))
        self.assertEqual(sorted(values), [1, 2, 3, 4])


class TestPaymentReservation(DatabaseTestCase):
    """Un solo pago activo por pedido, garantizado por el índice parcial"""

    def payment(self, order, status=PaymentStatus.PENDING):
        now = datetime.now(timezone.utc)
        return Payment(
            id=str(uuid.uuid4()), order_id=order.id, amount=order.total, status=status,
            created_at=now, updated_at=now
        )

    async def reserve(self, payment):
        async with self.uow() as uow:
            reserved = await uow.payments.reserve(payment)
            if reserved:
                await uow.commit()
        return reserved

    async def test_second_active_payment_is_refused(self):
        order = await self.place_order()

        self.assertTrue(await self.reserve(self.payment(order)))
        self.assertFalse(await self.reserve(self.payment(order)))

        _, payments = await self.load_order(order.id)
        self.assertEqual(len(payments), 1)

    async def test_closed_payments_do_not_block(self):
        order = await self.place_order()
        self.assertTrue(await self.reserve(self.payment(order, PaymentStatus.FAILED)))
        self.assertTrue(await self.reserve(self.payment(order, PaymentStatus.CANCELLED)))
        self.assertTrue(await self.reserve(self.payment(order)))

    async def test_released_reservation_can_be_taken_again(self):
        order = await self.place_order()
        first = self.payment(order)
        await self.reserve(first)

        async with self.uow() as uow:
            await uow.payments.delete(first.id)
            await uow.commit()

        self.assertTrue(await self.reserve(self.payment(order)))
        async with self.uow() as uow:
            self.assertIsNone(await uow.payments.get_by_id(first.id))


if __name__ == "__main__":
    unittest.main()
