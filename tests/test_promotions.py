import unittest
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from orderpay.domain.models import Promotion, PromotionKind
from orderpay.domain.exceptions import PromotionNotFoundError, PromotionRejectedError, PromotionRejection
from orderpay.application.promotions import PromotionEvaluator, ValidatePromotionUseCase

from tests.base import DatabaseTestCase

NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


def make_promotion(**overrides) -> Promotion:
    data = {
        "id": "p",
        "code": "PROMO",
        "name": "Promo",
        "kind": PromotionKind.PERCENTAGE,
        "value": Decimal("10"),
        "starts_at": NOW - timedelta(days=1),
        "ends_at": NOW + timedelta(days=1),
    }
    data.update(overrides)
    return Promotion(**data)


class TestPromotionEvaluator(unittest.TestCase):
    """Reglas de validación y cálculo de descuento, sin base de datos"""

    def setUp(self):
        self.evaluator = PromotionEvaluator(clock=lambda: NOW)

    def assertRejected(self, promotion, amount, reason):
        with self.assertRaises(PromotionRejectedError) as ctx:
            self.evaluator.check(promotion, amount)
        self.assertEqual(ctx.exception.reason, reason)

    def test_percentage_discount(self):
        self.assertEqual(self.evaluator.compute_discount(make_promotion(), Decimal("23.00")), Decimal("2.30"))

    def test_percentage_discount_rounds_half_up(self):
        self.assertEqual(self.evaluator.compute_discount(make_promotion(), Decimal("0.05")), Decimal("0.01"))

    def test_fixed_discount_capped_at_subtotal(self):
        promotion = make_promotion(kind=PromotionKind.FIXED_AMOUNT, value=Decimal("50.00"))
        self.assertEqual(self.evaluator.compute_discount(promotion, Decimal("12.00")), Decimal("12.00"))

    def test_non_monetary_promotions_do_not_discount_subtotal(self):
        for kind in (PromotionKind.FREE_SHIPPING, PromotionKind.FREE_PRODUCT):
            with self.subTest(kind=kind):
                discount = self.evaluator.compute_discount(make_promotion(kind=kind), Decimal("40.00"))
                self.assertEqual(discount, Decimal("0.00"))

    def test_rejection_reasons(self):
        cases = [
            ({"starts_at": NOW + timedelta(hours=1)}, PromotionRejection.NOT_YET_VALID),
            ({"ends_at": NOW - timedelta(seconds=1)}, PromotionRejection.EXPIRED),
            ({"usage_cap": 3, "usage_count": 3}, PromotionRejection.USAGE_EXCEEDED),
            ({"minimum_amount": Decimal("50.00")}, PromotionRejection.BELOW_MINIMUM),
        ]
        for overrides, reason in cases:
            with self.subTest(reason=reason):
                self.assertRejected(make_promotion(**overrides), Decimal("20.00"), reason)

    def test_inactive_is_reported_before_expired(self):
        promotion = make_promotion(active=False, ends_at=NOW - timedelta(days=1))
        self.assertRejected(promotion, Decimal("100"), PromotionRejection.INACTIVE)

    def test_expired_is_reported_before_usage_and_minimum(self):
        promotion = make_promotion(
            ends_at=NOW - timedelta(days=1), usage_cap=1, usage_count=1, minimum_amount=Decimal("999")
        )
        self.assertRejected(promotion, Decimal("1"), PromotionRejection.EXPIRED)

    def test_naive_dates_are_read_as_utc(self):
        promotion = make_promotion(starts_at=datetime(2026, 3, 14, 12, 0), ends_at=datetime(2026, 3, 16, 12, 0))
        self.evaluator.check(promotion, Decimal("10"))


class TestValidatePromotion(DatabaseTestCase):

    async def test_valid_code_returns_discount(self):
        promotion, discount = await ValidatePromotionUseCase(self.uow)("BIENVENIDO10", Decimal("23.00"))
        self.assertEqual(promotion.code, "BIENVENIDO10")
        self.assertEqual(discount, Decimal("2.30"))

    async def test_unknown_code(self):
        with self.assertRaises(PromotionNotFoundError):
            await ValidatePromotionUseCase(self.uow)("NOEXISTE", Decimal("23.00"))

    async def test_validation_does_not_consume_usage(self):
        await ValidatePromotionUseCase(self.uow)("BIENVENIDO10", Decimal("23.00"))
        self.assertEqual(await self.usage_count("BIENVENIDO10"), 0)


if __name__ == "__main__":
    unittest.main()
